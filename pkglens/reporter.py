"""
Reporter
========

Renders package records as a left-aligned table, followed by the library
legend and an explanation of every mismatch flag that occurs.
"""

from __future__ import annotations

import io
import sys
from typing import Iterable, Sequence, TextIO

from packaging.version import InvalidVersion, Version

from pkglens.constants import FLAG_LEGEND, NA, ChecksumStatus
from pkglens.models import PackageRecord

LEGEND_DASH = "──"


def _parse_version(value: str | None) -> Version | None:
    if value is None:
        return None
    try:
        return Version(value)
    except InvalidVersion:
        return None


def version_mismatch(record: PackageRecord) -> bool:
    """Loaded and on-disk versions differ; unparsable versions never count."""
    loaded = _parse_version(record.loaded_version)
    ondisk = _parse_version(record.ondisk_version)
    if loaded is None or ondisk is None:
        return False
    return loaded != ondisk


def removed(record: PackageRecord) -> bool:
    return record.ondisk_version is None


def path_mismatch(record: PackageRecord) -> bool:
    if removed(record):
        return False
    return (
        record.loaded_path is not None
        and record.disk_path is not None
        and record.loaded_path != record.disk_path
    )


def checksum_mismatch(record: PackageRecord) -> bool:
    return record.checksum_ok is ChecksumStatus.MISMATCH


FLAG_CHECKS = (
    ("V", version_mismatch),
    ("P", path_mismatch),
    ("D", checksum_mismatch),
    ("R", removed),
)


def record_flags(record: PackageRecord) -> str:
    """Mismatch letters for one row, in V, P, D, R order."""
    return "".join(letter for letter, check in FLAG_CHECKS if check(record))


def effective_version(record: PackageRecord) -> str:
    """Loaded version when loaded, else the on-disk version, else a placeholder."""
    if record.loaded_version is not None:
        return record.loaded_version
    if record.ondisk_version is not None:
        return record.ondisk_version
    return NA


def library_cell(record: PackageRecord) -> str:
    if record.library_root is None:
        return "[?]"
    return f"[{record.library_root + 1}]"


def table_rows(records: Sequence[PackageRecord]) -> tuple[list[str], list[list[str]]]:
    """Header and cell values; the '!' column only appears when a row is flagged."""
    header = ["package", "*", "version", "date", "lib", "source"]
    rows = [
        [
            r.name,
            "*" if r.attached else "",
            effective_version(r),
            r.install_date.isoformat() if r.install_date else NA,
            library_cell(r),
            r.source_label if r.source_label is not None else NA,
        ]
        for r in records
    ]

    flags = [record_flags(r) for r in records]
    if any(flags):
        header = ["!"] + header
        rows = [[flag] + row for flag, row in zip(flags, rows)]
    return header, rows


def format_table(header: list[str], rows: list[list[str]]) -> list[str]:
    widths = [len(h) for h in header]
    for row in rows:
        widths = [max(w, len(cell)) for w, cell in zip(widths, row)]

    def line(cells: Iterable[str]) -> str:
        return " ".join(cell.ljust(w) for cell, w in zip(cells, widths)).rstrip()

    return [line(header)] + [line(row) for row in rows]


def report_lines(records: Sequence[PackageRecord], library_paths: Sequence[str]) -> list[str]:
    """Return the package report as a list of plain-text lines."""
    header, rows = table_rows(records)
    lines = format_table(header, rows)

    lines.append("")
    for index, path in enumerate(library_paths, 1):
        lines.append(f"[{index}] {path}")

    occurring = {letter for r in records for letter in record_flags(r)}
    if occurring:
        lines.append("")
        for letter, text in FLAG_LEGEND.items():
            if letter in occurring:
                lines.append(f" {letter} {LEGEND_DASH} {text}")

    return lines


def print_report(
    records: Sequence[PackageRecord],
    library_paths: Sequence[str],
    file: TextIO | None = None,
) -> None:
    out = file if file is not None else sys.stdout
    for line in report_lines(records, library_paths):
        print(line, file=out)


def as_text(records: Sequence[PackageRecord], library_paths: Sequence[str]) -> str:
    """Capture exactly what print_report writes."""
    buffer = io.StringIO()
    print_report(records, library_paths, file=buffer)
    return buffer.getvalue()
