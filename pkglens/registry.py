"""
Package Registry
================

Query interface over the host environment's installed packages, its loaded
namespace table and its library roots.

The Python implementation reads distribution metadata with importlib.metadata
and translates install records (WHEEL, INSTALLER, direct_url.json) into a
standardized PackageDescription. Standard-library modules are described as
base packages that track the interpreter version.
"""

import importlib.util
import json
import logging
import os
import platform
import re
import sys
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from importlib import metadata
from pathlib import Path
from types import ModuleType
from typing import Dict, List, Optional, Tuple
from urllib.parse import urlparse

from packaging.requirements import InvalidRequirement, Requirement
from packaging.utils import canonicalize_name

from pkglens.config import Settings, settings as default_settings
from pkglens.constants import BASE_PRIORITY
from pkglens.models import LoadedPackage, PackageDescription

logger = logging.getLogger(__name__)

KNOWN_VCS_HOSTS = {
    "github.com": "GitHub",
    "gitlab.com": "GitLab",
    "bitbucket.org": "Bitbucket",
}
PUBLIC_INSTALLERS = {"pip", "uv", "poetry", "pdm"}
_PYTHON_TAG = re.compile(r"^[a-z]+(\d)(\d*)$")


class PackageEnvironment(ABC):
    """Abstract interface for the environment being inspected."""

    @abstractmethod
    def describe(self, package_name: str) -> PackageDescription:
        """Return metadata for an installed package.

        Raises metadata.PackageNotFoundError if it is not installed.
        """
        pass

    @abstractmethod
    def requirements(self, package_name: str, suggests: bool = False) -> List[str]:
        """Get the declared dependencies of a package."""
        pass

    @abstractmethod
    def loaded_packages(self) -> Dict[str, LoadedPackage]:
        """Return the loaded-namespace table keyed by canonical package name."""
        pass

    @abstractmethod
    def library_paths(self) -> List[str]:
        """Return the configured library roots, in search order."""
        pass


def _module_path(module: ModuleType) -> Optional[str]:
    """Location a module was imported from: its package directory or its file."""
    file = getattr(module, "__file__", None)
    if not file:
        search = list(getattr(module, "__path__", None) or [])
        return os.path.normpath(search[0]) if search else None
    if hasattr(module, "__path__"):
        return os.path.normpath(os.path.dirname(file))
    return os.path.normpath(file)


def _owner_repo(url: str) -> Tuple[Optional[str], Optional[str]]:
    """Split 'https://host/owner/repo.git' into (owner, repo)."""
    parsed = urlparse(url)
    if parsed.scheme in ("", "file"):
        return None, None
    parts = [p for p in parsed.path.split("/") if p]
    if len(parts) < 2:
        return None, None
    repo = parts[1]
    if repo.endswith(".git"):
        repo = repo[: -len(".git")]
    return parts[0], repo


def _parse_wheel_file(text: str) -> Dict[str, str]:
    fields: Dict[str, str] = {}
    for line in text.splitlines():
        if ":" not in line:
            continue
        key, value = line.split(":", 1)
        fields.setdefault(key.strip(), value.strip())
    return fields


def _tag_python_version(tag: str) -> Optional[str]:
    """'cp311-cp311-manylinux_2_17_x86_64' -> '3.11', 'py2.py3-none-any' -> '3'."""
    python_tag = tag.split("-")[0].split(".")[-1]
    match = _PYTHON_TAG.match(python_tag)
    if not match:
        return None
    major, minor = match.groups()
    return f"{major}.{minor}" if minor else major


def _valid_direct_url(data) -> bool:
    """Check the PEP 610 fields pkglens reads have the expected types."""
    if not isinstance(data, dict) or not isinstance(data.get("url", ""), str):
        return False
    for key in ("vcs_info", "archive_info", "dir_info"):
        if key in data and not isinstance(data[key], dict):
            return False
    vcs_info = data.get("vcs_info", {})
    return all(isinstance(vcs_info.get(field, ""), str) for field in ("vcs", "commit_id"))


class PythonEnvironment(PackageEnvironment):
    """Inspects the running Python interpreter."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or default_settings
        self._module_distributions: Optional[Dict[str, List[str]]] = None

    @property
    def module_distributions(self) -> Dict[str, List[str]]:
        if self._module_distributions is None:
            self._module_distributions = dict(metadata.packages_distributions())
        return self._module_distributions

    # -- registry ----------------------------------------------------------

    def _distribution(self, package_name: str) -> metadata.Distribution:
        """Find a distribution by its name, or by a top-level module it provides."""
        try:
            return metadata.distribution(package_name)
        except metadata.PackageNotFoundError:
            dists = self.module_distributions.get(package_name)
            if not dists:
                raise
            return metadata.distribution(dists[0])

    def describe(self, package_name: str) -> PackageDescription:
        if package_name in sys.stdlib_module_names:
            return self._describe_stdlib(package_name)

        dist = self._distribution(package_name)
        try:
            meta = dist.metadata
        except TypeError as err:
            raise ValueError(f"Unreadable metadata for {package_name}") from err
        if meta is None or not meta["Version"]:
            raise ValueError(f"Unreadable metadata for {package_name}")

        name = meta["Name"] or package_name
        desc = PackageDescription(
            name=name,
            version=meta["Version"],
            path=self._distribution_location(dist, name),
            built=self._built(dist),
        )
        self._apply_provenance(desc, dist)
        return desc

    def _describe_stdlib(self, module_name: str) -> PackageDescription:
        spec = importlib.util.find_spec(module_name)
        if spec is None:
            raise metadata.PackageNotFoundError(module_name)

        path = None
        if spec.submodule_search_locations:
            path = list(spec.submodule_search_locations)[0]
        elif spec.has_location and spec.origin:
            path = spec.origin

        return PackageDescription(
            name=module_name,
            version=platform.python_version(),
            path=os.path.normpath(path) if path else None,
            priority=BASE_PRIORITY,
        )

    def _top_level_modules(self, dist: metadata.Distribution, name: str) -> List[str]:
        key = canonicalize_name(name)
        text = dist.read_text("top_level.txt")
        if text:
            modules = [line.strip() for line in text.splitlines() if line.strip()]
        else:
            modules = [
                module
                for module, dists in self.module_distributions.items()
                if any(canonicalize_name(d) == key for d in dists)
            ]

        # Same preference as loaded_packages: the module named after the
        # distribution, then public modules in name order
        return sorted(
            modules,
            key=lambda module: (canonicalize_name(module) != key, module.startswith("_"), module),
        )

    def _distribution_location(self, dist: metadata.Distribution, name: str) -> Optional[str]:
        """On-disk location of the package's importable code."""
        try:
            base = Path(str(dist.locate_file("")))
        except (NotImplementedError, TypeError):
            return None

        modules = self._top_level_modules(dist, name)
        for module in modules:
            for candidate in (base / module, base / f"{module}.py"):
                if candidate.exists():
                    return os.path.normpath(str(candidate))

        fallback = modules[0] if modules else name.replace("-", "_")
        return os.path.normpath(str(base / fallback))

    def _installed_at(self, dist: metadata.Distribution) -> Optional[datetime]:
        record = next(
            (f for f in dist.files or () if f.name in ("METADATA", "PKG-INFO")),
            None,
        )
        if record is None:
            return None
        try:
            mtime = Path(str(record.locate())).stat().st_mtime
        except OSError:
            return None
        return datetime.fromtimestamp(mtime, tz=timezone.utc)

    def _built(self, dist: metadata.Distribution) -> Optional[str]:
        """Build string in the form 'Python <version>; <tag>; <timestamp>; <os>'.

        The version is the one the wheel targets; installs without a wheel tag
        were built by the running interpreter.
        """
        installed_at = self._installed_at(dist)
        if installed_at is None:
            return None

        tag = _parse_wheel_file(dist.read_text("WHEEL") or "").get("Tag")
        python = _tag_python_version(tag) if tag else None
        if python is None:
            python = "{}.{}".format(*sys.version_info[:2])
        return f"Python {python}; {tag or 'source'}; {installed_at:%Y-%m-%d %H:%M:%S} UTC; {os.name}"

    def _direct_url(self, dist: metadata.Distribution) -> Optional[dict]:
        text = dist.read_text("direct_url.json")
        if not text:
            return None
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            logger.debug("Ignoring malformed direct_url.json: %s", e)
            return None
        if not _valid_direct_url(data):
            logger.debug("Ignoring direct_url.json with unexpected structure: %r", data)
            return None
        return data

    def _apply_provenance(self, desc: PackageDescription, dist: metadata.Distribution) -> None:
        """Fill the VCS, remote and repository fields from install records."""
        direct_url = self._direct_url(dist)

        if direct_url is not None:
            url = direct_url.get("url", "")
            vcs_info = direct_url.get("vcs_info")

            if vcs_info:
                owner, repo = _owner_repo(url)
                commit = vcs_info.get("commit_id")
                desc.remote_type = vcs_info.get("vcs", "vcs")
                desc.remote_username = owner
                desc.remote_repo = repo
                desc.remote_sha = commit

                host = KNOWN_VCS_HOSTS.get(urlparse(url).hostname or "")
                if host and commit and owner and repo:
                    desc.vcs_host = host
                    desc.vcs_sha = commit
                    desc.vcs_username = owner
                    desc.vcs_repo = repo
            elif "archive_info" in direct_url:
                desc.remote_type = "url"
            elif "dir_info" in direct_url:
                editable = direct_url["dir_info"].get("editable", False)
                desc.remote_type = "editable" if editable else "local"
            return

        installer = (dist.read_text("INSTALLER") or "").strip().lower()
        if installer in PUBLIC_INSTALLERS:
            desc.repository = self.settings.PUBLIC_REPOSITORY
        elif installer:
            desc.repository = installer

    def requirements(self, package_name: str, suggests: bool = False) -> List[str]:
        if package_name in sys.stdlib_module_names:
            return []

        dist = self._distribution(package_name)
        names: List[str] = []

        for line in dist.requires or []:
            try:
                req = Requirement(line)
            except InvalidRequirement as e:
                logger.debug("Skipping unparsable requirement %r of %s: %s", line, package_name, e)
                continue

            if req.marker is None:
                wanted = True
            elif "extra" in str(req.marker):
                wanted = suggests
            else:
                wanted = req.marker.evaluate()

            if wanted and req.name not in names:
                names.append(req.name)

        return names

    # -- loaded namespace --------------------------------------------------

    def _loaded_version(self, module: ModuleType, name: str, from_distribution: bool) -> Optional[str]:
        version = getattr(module, "__version__", None)
        if isinstance(version, str):
            return version
        if name in sys.stdlib_module_names:
            return platform.python_version()
        if from_distribution:
            try:
                return metadata.version(name)
            except metadata.PackageNotFoundError:
                return None
        return None

    def loaded_packages(self) -> Dict[str, LoadedPackage]:
        main = sys.modules.get("__main__")
        attached_ids = {
            id(value) for value in vars(main).values() if isinstance(value, ModuleType)
        } if main is not None else set()

        loaded: Dict[str, LoadedPackage] = {}

        for module_name, module in sorted(list(sys.modules.items())):
            if module is None or "." in module_name or module_name.startswith("_"):
                continue

            dists = self.module_distributions.get(module_name)
            path = _module_path(module)
            if not dists and module_name not in sys.stdlib_module_names:
                # Plain modules outside any distribution count only once their files are gone
                if path is None or os.path.exists(path):
                    continue

            name = dists[0] if dists else module_name
            key = canonicalize_name(name)
            attached = id(module) in attached_ids
            version = self._loaded_version(module, name, bool(dists))

            entry = loaded.get(key)
            if entry is not None:
                entry.attached = entry.attached or attached
                # Prefer the module named after its distribution
                if canonicalize_name(module_name) == key:
                    entry.version = version
                    entry.path = path
                continue

            loaded[key] = LoadedPackage(name=name, version=version, path=path, attached=attached)

        return loaded

    def library_paths(self) -> List[str]:
        if self.settings.LIBRARY_PATHS:
            return list(self.settings.LIBRARY_PATHS)
        return [p for p in sys.path if p and os.path.isdir(p)]
