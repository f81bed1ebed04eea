"""
Pytest Configuration and Fixtures
==================================

An in-memory package environment shared by the pkglens tests.
"""

from importlib import metadata
from typing import Dict, Iterable, List, Optional

import pytest
from packaging.utils import canonicalize_name

from pkglens.config import Settings
from pkglens.models import LoadedPackage, PackageDescription
from pkglens.registry import PackageEnvironment


class FakeEnvironment(PackageEnvironment):
    """Registry, loaded table and library roots held in dictionaries."""

    def __init__(
        self,
        descriptions: Iterable[PackageDescription] = (),
        requires: Optional[Dict[str, List[str]]] = None,
        suggests: Optional[Dict[str, List[str]]] = None,
        loaded: Iterable[LoadedPackage] = (),
        libs: Iterable[str] = (),
        broken: Iterable[str] = (),
    ):
        self.descriptions = {canonicalize_name(d.name): d for d in descriptions}
        self.requires = requires or {}
        self.suggests = suggests or {}
        self.loaded = {canonicalize_name(p.name): p for p in loaded}
        self.libs = list(libs)
        self.broken = set(broken)
        self.describe_calls: List[str] = []

    def describe(self, package_name: str) -> PackageDescription:
        self.describe_calls.append(package_name)
        if package_name in self.broken:
            raise ValueError(f"Unreadable metadata for {package_name}")
        try:
            return self.descriptions[canonicalize_name(package_name)]
        except KeyError as err:
            raise metadata.PackageNotFoundError(package_name) from err

    def requirements(self, package_name: str, suggests: bool = False) -> List[str]:
        if canonicalize_name(package_name) not in self.descriptions:
            raise metadata.PackageNotFoundError(package_name)
        deps = list(self.requires.get(package_name, []))
        if suggests:
            deps.extend(self.suggests.get(package_name, []))
        return deps

    def loaded_packages(self) -> Dict[str, LoadedPackage]:
        return dict(self.loaded)

    def library_paths(self) -> List[str]:
        return list(self.libs)


@pytest.fixture
def test_settings() -> Settings:
    return Settings(NATIVE_CHECKSUMS=False, INCLUDE_BASE=False)


@pytest.fixture
def sample_environment() -> FakeEnvironment:
    """Two library roots, a healthy package, a base package, a stale one and a removed one."""
    return FakeEnvironment(
        descriptions=[
            PackageDescription(
                name="demo",
                version="1.0.0",
                path="/opt/lib1/demo",
                built="Python 3; py3-none-any; 2024-03-05 10:00:00 UTC; posix",
                repository="PyPI",
            ),
            PackageDescription(
                name="json",
                version="3.12.0",
                path="/opt/lib2/json",
                priority="base",
            ),
            PackageDescription(
                name="stale",
                version="2.0.0",
                path="/opt/lib2/stale",
                remote_type="git",
                remote_username="acme",
                remote_repo="stale",
                remote_sha="0123456789abcdef",
            ),
            PackageDescription(name="helper", version="0.3", path="/opt/lib1/helper"),
        ],
        requires={"demo": ["helper"]},
        suggests={"demo": ["stale"]},
        loaded=[
            LoadedPackage(name="demo", version="1.0.0", path="/opt/lib1/demo", attached=True),
            LoadedPackage(name="json", version="3.12.0", path="/opt/lib2/json"),
            LoadedPackage(name="stale", version="1.0.0", path="/opt/lib2/stale"),
            LoadedPackage(name="gone", version="0.9.0", path="/old/lib/gone"),
        ],
        libs=["/opt/lib1", "/opt/lib2"],
    )
