#!/usr/bin/env python3
"""
Package Info
============

Reports on the packages loaded in the running interpreter, or on a chosen set
of packages plus their dependencies: version on disk vs. version loaded,
install date, library root and install source. Rows where the loaded copy
disagrees with what is installed are flagged.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Dict, Iterable, List, Optional, TextIO, Union

from pkglens import reporter
from pkglens.collector import collect_descriptions, resolve_targets
from pkglens.config import Settings, settings as default_settings
from pkglens.constants import DependencyMode
from pkglens.models import PackageRecord
from pkglens.normalizer import build_records, normalize_library_paths, select_records
from pkglens.package_list import load_package_list
from pkglens.registry import PackageEnvironment, PythonEnvironment

logger = logging.getLogger(__name__)


class PackagesInfo:
    """A package report: records keyed by name plus the library roots they index."""

    def __init__(self, records: List[PackageRecord], library_paths: List[str]):
        self.records = list(records)
        self.library_paths = list(library_paths)

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self):
        return iter(self.records)

    def __contains__(self, name: str) -> bool:
        return any(r.name == name for r in self.records)

    def __getitem__(self, name: str) -> PackageRecord:
        for record in self.records:
            if record.name == name:
                return record
        raise KeyError(name)

    @property
    def names(self) -> List[str]:
        return [r.name for r in self.records]

    def library_path(self, record: PackageRecord) -> Optional[str]:
        if record.library_root is None:
            return None
        return self.library_paths[record.library_root]

    def print(self, file: Optional[TextIO] = None) -> None:
        reporter.print_report(self.records, self.library_paths, file=file)

    def __str__(self) -> str:
        return reporter.as_text(self.records, self.library_paths)

    def to_dict(self) -> Dict:
        return {
            "packages": [
                {**r.model_dump(mode="json"), "flags": reporter.record_flags(r)}
                for r in self.records
            ],
            "library_paths": self.library_paths,
        }


def package_info(
    pkgs: Union[Iterable[str], str, None] = None,
    include_base: Optional[bool] = None,
    dependencies: Union[DependencyMode, str, None] = DependencyMode.DEFAULT,
    environment: Optional[PackageEnvironment] = None,
    settings: Optional[Settings] = None,
) -> PackagesInfo:
    """Information about the loaded packages, or about a chosen set.

    Args:
        pkgs: Package names, or None for every loaded package
        include_base: Include standard-library packages (default from settings)
        dependencies: How to expand an explicit list with dependencies
        environment: Environment to inspect (default: the running interpreter)
        settings: Settings to use instead of the process-wide ones

    Returns:
        PackagesInfo with one record per package, sorted by name

    Raises:
        ValueError: If dependencies is not a recognized mode
    """
    settings = settings or default_settings
    environment = environment or PythonEnvironment(settings)
    if include_base is None:
        include_base = settings.INCLUDE_BASE

    loaded = environment.loaded_packages()
    library_paths = normalize_library_paths(environment.library_paths())

    names = resolve_targets(pkgs, environment, loaded, dependencies, settings)
    logger.debug("Inspecting %d packages", len(names))

    descriptions = collect_descriptions(names, environment)
    if pkgs is not None:
        for name, desc in descriptions.items():
            if desc is None:
                logger.warning("Package %s is not installed", name)

    records = build_records(names, descriptions, loaded, library_paths, settings.native_checks)
    return PackagesInfo(select_records(records, include_base), library_paths)


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Report loaded and installed Python packages, flagging mismatches",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Flags:
  V  loaded and on-disk version differ
  P  loaded and on-disk path differ
  D  DLL MD5 mismatch (Windows only)
  R  package was removed from disk

Examples:
  # Every package loaded by the interpreter
  pkglens

  # A chosen set and its recursive dependencies
  pkglens requests httpx --dependencies recursive

  # Package names from a YAML file, as JSON
  pkglens --packages-file packages.yml --json
        """
    )

    parser.add_argument("packages", nargs="*", help="Package names (default: all loaded packages)")
    parser.add_argument("--packages-file", type=Path,
                        help="YAML file listing package names")
    parser.add_argument("--include-base", action="store_true", default=None,
                        help="Include standard-library packages")
    parser.add_argument("--dependencies", default=DependencyMode.DEFAULT.value,
                        choices=[m.value for m in DependencyMode],
                        help="Dependency expansion for explicit packages (default: from settings)")
    parser.add_argument("--json", action="store_true",
                        help="Output results as JSON")
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Verbose output")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else default_settings.LOG_LEVEL,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    pkgs: Optional[List[str]] = list(args.packages) or None
    try:
        if args.packages_file:
            pkgs = (pkgs or []) + load_package_list(args.packages_file)

        info = package_info(pkgs, include_base=args.include_base, dependencies=args.dependencies)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    if args.json:
        print(json.dumps(info.to_dict(), indent=2))
    else:
        info.print()

    return 0


if __name__ == "__main__":
    sys.exit(main())
