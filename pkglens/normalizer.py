"""
Normalizer
==========

Merges loaded-namespace state with on-disk metadata into one PackageRecord
per package and classifies each against the library roots.
"""

import os
from typing import Dict, Iterable, List, Optional

from packaging.utils import canonicalize_name

from pkglens.checksums import dll_checksum_status
from pkglens.collector import install_date, is_base, source_label
from pkglens.models import LoadedPackage, PackageDescription, PackageRecord


def _normalize(path: str) -> str:
    return os.path.normpath(os.path.realpath(path))


def normalize_library_paths(paths: Iterable[str]) -> List[str]:
    """Absolute, symlink-resolved library roots with duplicates removed."""
    result: List[str] = []
    for path in paths:
        normalized = _normalize(path)
        if normalized not in result:
            result.append(normalized)
    return result


def classify_library(path: Optional[str], library_paths: List[str]) -> Optional[int]:
    """Index of the library root containing *path*, or None."""
    if not path:
        return None
    directory = _normalize(os.path.dirname(path))
    try:
        return library_paths.index(directory)
    except ValueError:
        return None


def build_record(
    name: str,
    desc: Optional[PackageDescription],
    loaded: Optional[LoadedPackage],
    library_paths: List[str],
    native_checks: bool,
) -> PackageRecord:
    loaded_path = loaded.path if loaded else None
    disk_path = desc.path if desc else None

    return PackageRecord(
        name=desc.name if desc else (loaded.name if loaded else name),
        ondisk_version=desc.version if desc else None,
        loaded_version=loaded.version if loaded else None,
        disk_path=disk_path,
        loaded_path=loaded_path,
        attached=loaded.attached if loaded else False,
        is_base=is_base(desc),
        install_date=install_date(desc),
        source_label=source_label(desc),
        checksum_ok=dll_checksum_status(desc, native_checks),
        library_root=classify_library(loaded_path or disk_path, library_paths),
    )


def build_records(
    names: Iterable[str],
    descriptions: Dict[str, Optional[PackageDescription]],
    loaded: Dict[str, LoadedPackage],
    library_paths: List[str],
    native_checks: bool = False,
) -> List[PackageRecord]:
    """Build one record per package name.

    A name may resolve to a differently named package (a module name given
    for its distribution); the loaded entry is then found under either name,
    and later duplicates of the same package are dropped.
    """
    records = []
    seen = set()
    for name in names:
        desc = descriptions.get(name)
        entry = loaded.get(canonicalize_name(name))
        if entry is None and desc is not None:
            entry = loaded.get(canonicalize_name(desc.name))

        record = build_record(name, desc, entry, library_paths, native_checks)
        key = canonicalize_name(record.name)
        if key in seen:
            continue
        seen.add(key)
        records.append(record)
    return records


def select_records(records: Iterable[PackageRecord], include_base: bool = False) -> List[PackageRecord]:
    """Drop base packages unless requested and order rows by package name."""
    selected = [r for r in records if include_base or not r.is_base]
    return sorted(selected, key=lambda r: r.name.lower())
