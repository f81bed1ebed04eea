"""
Models
======

Raw registry descriptions, loaded-namespace entries and the normalized
per-package record.
"""

from dataclasses import dataclass
from datetime import date
from typing import Optional

from pydantic import BaseModel, Field

from pkglens.constants import ChecksumStatus


@dataclass
class PackageDescription:
    """Descriptive metadata for one installed package, as the registry reports it."""
    name: str
    version: Optional[str] = None
    path: Optional[str] = None
    priority: Optional[str] = None
    date_publication: Optional[str] = None
    built: Optional[str] = None
    vcs_host: Optional[str] = None
    vcs_sha: Optional[str] = None
    vcs_username: Optional[str] = None
    vcs_repo: Optional[str] = None
    remote_type: Optional[str] = None
    remote_username: Optional[str] = None
    remote_repo: Optional[str] = None
    remote_sha: Optional[str] = None
    repository: Optional[str] = None
    bioc_views: Optional[str] = None


@dataclass
class LoadedPackage:
    """A package the running process has imported."""
    name: str
    version: Optional[str] = None
    path: Optional[str] = None
    attached: bool = False


class PackageRecord(BaseModel):
    """One row of the package report."""
    name: str
    ondisk_version: Optional[str] = None
    loaded_version: Optional[str] = None
    disk_path: Optional[str] = None
    loaded_path: Optional[str] = None
    attached: bool = False
    is_base: bool = False
    install_date: Optional[date] = None
    source_label: Optional[str] = None
    checksum_ok: ChecksumStatus = ChecksumStatus.NOT_APPLICABLE
    library_root: Optional[int] = Field(None, ge=0, description="Index into the report's library paths")

    model_config = {"frozen": True}
