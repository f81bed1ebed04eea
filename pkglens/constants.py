"""
Constants and enums shared across pkglens.
"""
from enum import Enum


class DependencyMode(str, Enum):
    """How far to expand an explicit package list."""
    NONE = "none"
    DIRECT = "direct"
    DIRECT_SUGGESTS = "direct_suggests"
    RECURSIVE = "recursive"
    RECURSIVE_SUGGESTS = "recursive_suggests"
    DEFAULT = "default"


class ChecksumStatus(str, Enum):
    """Outcome of the native-library checksum check."""
    OK = "ok"
    MISMATCH = "mismatch"
    NOT_APPLICABLE = "not_applicable"


BASE_PRIORITY = "base"
NA = "<NA>"
MANIFEST_FILE = "MD5"
NATIVE_LIBS_DIR = "libs"

# Remote type of the public index; installs from it are reported by repository.
PUBLIC_REMOTE_TYPE = "pypi"
DEFAULT_VCS_HOST = "GitHub"

FLAG_LEGEND = {
    "V": "Loaded and on-disk version mismatch.",
    "P": "Loaded and on-disk path mismatch.",
    "D": "DLL MD5 mismatch, broken installation.",
    "R": "Package was removed from disk.",
}
