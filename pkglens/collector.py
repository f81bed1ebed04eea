"""
Collector
=========

Resolves the set of packages to inspect and derives install date, source
label and base-package status from registry metadata.
"""

import logging
import re
from datetime import date, datetime
from importlib import metadata
from typing import Dict, Iterable, List, Optional, Union

from packaging.utils import canonicalize_name

from pkglens.config import Settings, settings as default_settings
from pkglens.constants import BASE_PRIORITY, DEFAULT_VCS_HOST, PUBLIC_REMOTE_TYPE, DependencyMode
from pkglens.models import LoadedPackage, PackageDescription
from pkglens.registry import PackageEnvironment

logger = logging.getLogger(__name__)

_DATE_PREFIX = re.compile(r"^\s*(\d{4}-\d{1,2}-\d{1,2})")

LOOKUP_ERRORS = (metadata.PackageNotFoundError, OSError, ValueError)


def resolve_dependency_mode(
    dependencies: Union[DependencyMode, str, None],
    settings: Optional[Settings] = None,
) -> DependencyMode:
    """Coerce *dependencies* to a concrete mode, applying the configured default."""
    settings = settings or default_settings

    if dependencies is None:
        mode = DependencyMode.DEFAULT
    else:
        try:
            mode = DependencyMode(dependencies)
        except ValueError as err:
            valid = ", ".join(m.value for m in DependencyMode)
            raise ValueError(f"Unknown dependency mode: {dependencies!r}. Supported: {valid}") from err

    if mode is DependencyMode.DEFAULT:
        return settings.DEFAULT_DEPENDENCIES
    return mode


def _unique(names: Iterable[str]) -> List[str]:
    seen = set()
    result = []
    for name in names:
        key = canonicalize_name(name)
        if key not in seen:
            seen.add(key)
            result.append(name)
    return result


def _requirements(registry: PackageEnvironment, name: str, suggests: bool) -> List[str]:
    try:
        return registry.requirements(name, suggests=suggests)
    except LOOKUP_ERRORS as e:
        logger.debug("No dependency information for %s: %s", name, e)
        return []


def dependent_packages(
    pkgs: Iterable[str],
    registry: PackageEnvironment,
    mode: DependencyMode,
) -> List[str]:
    """Expand *pkgs* with their dependencies according to *mode*."""
    names = _unique(pkgs)

    if mode is DependencyMode.NONE:
        return names

    suggests = mode in (DependencyMode.DIRECT_SUGGESTS, DependencyMode.RECURSIVE_SUGGESTS)
    top = []
    for name in names:
        top.extend(_requirements(registry, name, suggests))
    result = _unique(names + top)

    if mode in (DependencyMode.DIRECT, DependencyMode.DIRECT_SUGGESTS):
        return result

    # Suggested packages only count at the top level; recurse over hard dependencies
    seen = {canonicalize_name(name) for name in result}
    queue = list(result[len(names):])
    while queue:
        name = queue.pop(0)
        for dep in _requirements(registry, name, suggests=False):
            key = canonicalize_name(dep)
            if key not in seen:
                seen.add(key)
                result.append(dep)
                queue.append(dep)

    return result


def resolve_targets(
    pkgs: Optional[Iterable[str]],
    registry: PackageEnvironment,
    loaded: Dict[str, LoadedPackage],
    dependencies: Union[DependencyMode, str, None] = DependencyMode.DEFAULT,
    settings: Optional[Settings] = None,
) -> List[str]:
    """Return the ordered, deduplicated package names to inspect.

    With ``pkgs=None`` every loaded package is reported and no expansion
    takes place.
    """
    mode = resolve_dependency_mode(dependencies, settings)

    if pkgs is None:
        return _unique(entry.name for entry in loaded.values())

    if isinstance(pkgs, str):
        pkgs = [pkgs]
    return dependent_packages(pkgs, registry, mode)


def fetch_description(registry: PackageEnvironment, name: str) -> Optional[PackageDescription]:
    """Look up *name*, returning None instead of failing the batch."""
    try:
        return registry.describe(name)
    except LOOKUP_ERRORS as e:
        logger.debug("No metadata for %s: %s", name, e)
        return None


def is_base(desc: Optional[PackageDescription]) -> bool:
    return desc is not None and desc.priority == BASE_PRIORITY


def _built_fields(built: str) -> List[str]:
    return [part.strip() for part in built.split(";")]


def install_date(desc: Optional[PackageDescription]) -> Optional[date]:
    """Date the package was published or built, at day granularity."""
    if desc is None:
        return None

    if desc.date_publication:
        raw = desc.date_publication
    elif desc.built:
        fields = _built_fields(desc.built)
        raw = fields[2] if len(fields) > 2 else None
    else:
        raw = None

    if not raw:
        return None

    match = _DATE_PREFIX.match(raw)
    if not match:
        return None
    try:
        return datetime.strptime(match.group(1), "%Y-%m-%d").date()
    except ValueError:
        return None


def _user_repo_sha(username: Optional[str], repo: Optional[str], sha: Optional[str]) -> str:
    user_repo = f"{username}/{repo}" if username and repo else ""
    short_sha = f"@{sha[:7]}" if sha else ""
    if not user_repo and not short_sha:
        return ""
    return f" ({user_repo}{short_sha})"


def source_label(desc: Optional[PackageDescription]) -> Optional[str]:
    """Human-readable provenance of an installed package.

    The first matching rule wins: hosted VCS commit with its owner and repo,
    non-public remote, repository, Bioconductor, then local. A repository
    label carries the Python version the package was built for, taken from
    the first field of ``built`` (e.g. "PyPI (Python 3.11)").
    """
    if desc is None:
        return None

    if desc.vcs_sha and desc.vcs_username and desc.vcs_repo:
        host = desc.vcs_host or DEFAULT_VCS_HOST
        return f"{host} ({desc.vcs_username}/{desc.vcs_repo}@{desc.vcs_sha[:7]})"

    if desc.remote_type and desc.remote_type.lower() != PUBLIC_REMOTE_TYPE:
        return desc.remote_type + _user_repo_sha(desc.remote_username, desc.remote_repo, desc.remote_sha)

    if desc.repository:
        if desc.built:
            built_with = _built_fields(desc.built)[0]
            if built_with:
                return f"{desc.repository} ({built_with})"
        return desc.repository

    if desc.bioc_views and desc.bioc_views.strip():
        return "Bioconductor"

    return "local"


def collect_descriptions(
    names: Iterable[str],
    registry: PackageEnvironment,
) -> Dict[str, Optional[PackageDescription]]:
    """Fetch metadata for every name; missing packages map to None."""
    descriptions = {}
    for name in names:
        descriptions[name] = fetch_description(registry, name)
    return descriptions
