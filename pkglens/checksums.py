"""MD5 verification of a package's native libraries against its install manifest."""

from __future__ import annotations

import contextlib
import hashlib
import logging
import os
import re
from pathlib import Path

from pkglens.constants import MANIFEST_FILE, NATIVE_LIBS_DIR, ChecksumStatus
from pkglens.models import PackageDescription

logger = logging.getLogger(__name__)

_DLL_PATTERN = re.compile(r"\.dll$", re.IGNORECASE)
_MANIFEST_LINE = re.compile(r"^(?P<hash>\S+) \*(?P<filename>.+)$")


def _md5_file(path: Path) -> str:
    """Return MD5 hex digest of the file at *path* (non-security use)."""
    digest = hashlib.md5(usedforsecurity=False)  # nosec B324
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            digest.update(chunk)
    return digest.hexdigest()


def _by_name(hashes: dict[str, str]) -> dict[str, str]:
    return dict(sorted(hashes.items()))


def stored_dll_hashes(package_dir: Path) -> dict[str, str] | None:
    """Read ``<hash> *<filename>`` lines from the manifest, keeping DLLs only.

    Returns None when the manifest cannot be read.
    """
    try:
        lines = (package_dir / MANIFEST_FILE).read_text(encoding="utf-8", errors="replace").splitlines()
    except OSError as e:
        logger.debug("No readable manifest in %s: %s", package_dir, e)
        return None

    hashes: dict[str, str] = {}
    for line in lines:
        match = _MANIFEST_LINE.match(line.rstrip("\r"))
        if not match or not _DLL_PATTERN.search(match["filename"]):
            continue
        hashes[match["filename"].lower()] = match["hash"].lower()
    return _by_name(hashes)


def disk_dll_hashes(package_dir: Path) -> dict[str, str]:
    """Hash every DLL under the package's native-library directory."""
    hashes: dict[str, str] = {}
    with contextlib.chdir(package_dir):
        for root, _dirs, files in os.walk(NATIVE_LIBS_DIR):
            for filename in files:
                if not _DLL_PATTERN.search(filename):
                    continue
                relative = Path(root, filename).as_posix()
                hashes[relative.lower()] = _md5_file(Path(relative))
    return _by_name(hashes)


def dll_checksum_status(desc: PackageDescription | None, native_checks: bool) -> ChecksumStatus:
    """Compare recorded and on-disk DLL hashes for one package."""
    if desc is None or not native_checks or not desc.path:
        return ChecksumStatus.NOT_APPLICABLE

    package_dir = Path(desc.path)
    if not (package_dir / NATIVE_LIBS_DIR).exists():
        return ChecksumStatus.OK

    stored = stored_dll_hashes(package_dir)
    if stored is None:
        return ChecksumStatus.NOT_APPLICABLE

    try:
        disk = disk_dll_hashes(package_dir)
    except OSError as e:
        logger.debug("Cannot hash native libraries of %s: %s", desc.name, e)
        return ChecksumStatus.NOT_APPLICABLE

    if stored == disk:
        return ChecksumStatus.OK
    logger.debug("DLL hash mismatch for %s", desc.name)
    return ChecksumStatus.MISMATCH
