import json
import os
import platform
import sys
from datetime import datetime, timezone
from importlib import metadata
from pathlib import Path
from types import ModuleType

import packaging
import pytest

from pkglens import registry
from pkglens.collector import fetch_description
from pkglens.config import Settings
from pkglens.models import PackageDescription
from pkglens.registry import (
    PythonEnvironment,
    _module_path,
    _owner_repo,
    _parse_wheel_file,
    _tag_python_version,
)


class StubDistribution:
    """Distribution whose install records are held in a dict."""

    def __init__(self, files=None, requires=None, root=None, meta=None):
        self._files = files or {}
        self.requires = requires
        self.root = root
        self.metadata = meta
        self.files = None

    def read_text(self, filename):
        return self._files.get(filename)

    def locate_file(self, path):
        return Path(self.root) / path


@pytest.fixture
def environment():
    return PythonEnvironment(Settings(NATIVE_CHECKSUMS=False))


def _provenance(environment, files) -> PackageDescription:
    desc = PackageDescription(name="pkg", version="1.0")
    environment._apply_provenance(desc, StubDistribution(files))
    return desc


# ---------------------------------------------------------------------------
# helpers
# ---------------------------------------------------------------------------


class TestHelpers:
    def test_owner_repo_from_https(self):
        assert _owner_repo("https://github.com/org/repo.git") == ("org", "repo")

    def test_owner_repo_from_ssh(self):
        assert _owner_repo("ssh://git@gitlab.com/org/repo") == ("org", "repo")

    def test_owner_repo_from_local_path(self):
        assert _owner_repo("file:///home/me/src/repo") == (None, None)

    def test_owner_repo_too_short(self):
        assert _owner_repo("https://example.com/repo") == (None, None)

    def test_parse_wheel_file(self):
        fields = _parse_wheel_file("Wheel-Version: 1.0\nGenerator: bdist_wheel (0.41.2)\nTag: py3-none-any\n")
        assert fields["Tag"] == "py3-none-any"
        assert fields["Generator"] == "bdist_wheel (0.41.2)"

    @pytest.mark.parametrize(
        "tag, expected",
        [
            ("cp311-cp311-manylinux_2_17_x86_64", "3.11"),
            ("py3-none-any", "3"),
            ("py2.py3-none-any", "3"),
            ("garbage", None),
        ],
    )
    def test_tag_python_version(self, tag, expected):
        assert _tag_python_version(tag) == expected

    def test_module_path_of_package(self):
        assert _module_path(packaging) == os.path.normpath(os.path.dirname(packaging.__file__))

    def test_module_path_of_builtin(self):
        assert _module_path(sys) is None


# ---------------------------------------------------------------------------
# provenance
# ---------------------------------------------------------------------------


class TestProvenance:
    def test_hosted_vcs(self, environment):
        direct_url = {
            "url": "https://github.com/org/repo.git",
            "vcs_info": {"vcs": "git", "commit_id": "abcdef0123456789"},
        }
        desc = _provenance(environment, {"direct_url.json": json.dumps(direct_url)})
        assert desc.vcs_host == "GitHub"
        assert desc.vcs_sha == "abcdef0123456789"
        assert (desc.vcs_username, desc.vcs_repo) == ("org", "repo")
        assert desc.remote_type == "git"

    def test_other_vcs_host(self, environment):
        direct_url = {
            "url": "https://git.example.com/team/tool",
            "vcs_info": {"vcs": "git", "commit_id": "1234567890"},
        }
        desc = _provenance(environment, {"direct_url.json": json.dumps(direct_url)})
        assert desc.vcs_sha is None
        assert desc.remote_type == "git"
        assert (desc.remote_username, desc.remote_repo, desc.remote_sha) == ("team", "tool", "1234567890")

    def test_archive(self, environment):
        direct_url = {"url": "https://example.com/pkg-1.0.tar.gz", "archive_info": {}}
        desc = _provenance(environment, {"direct_url.json": json.dumps(direct_url)})
        assert desc.remote_type == "url"
        assert desc.remote_username is None

    def test_editable_directory(self, environment):
        direct_url = {"url": "file:///src/pkg", "dir_info": {"editable": True}}
        desc = _provenance(environment, {"direct_url.json": json.dumps(direct_url)})
        assert desc.remote_type == "editable"

    def test_pip_install_is_public_repository(self, environment):
        desc = _provenance(environment, {"INSTALLER": "pip\n"})
        assert desc.repository == "PyPI"

    def test_other_installer(self, environment):
        desc = _provenance(environment, {"INSTALLER": "conda\n"})
        assert desc.repository == "conda"

    def test_no_install_records(self, environment):
        desc = _provenance(environment, {})
        assert desc.repository is None
        assert desc.remote_type is None

    def test_malformed_direct_url_ignored(self, environment):
        desc = _provenance(environment, {"direct_url.json": "{not json", "INSTALLER": "pip"})
        assert desc.repository == "PyPI"

    @pytest.mark.parametrize(
        "direct_url",
        [
            {"url": "file:///x", "dir_info": None},
            {"url": "https://github.com/org/repo.git", "vcs_info": "git"},
            {"url": "https://github.com/org/repo.git", "vcs_info": {"vcs": "git", "commit_id": 123}},
            {"url": 42, "archive_info": {}},
            ["not", "a", "mapping"],
        ],
    )
    def test_wrongly_typed_direct_url_ignored(self, environment, direct_url):
        desc = _provenance(environment, {"direct_url.json": json.dumps(direct_url), "INSTALLER": "pip"})
        assert desc.repository == "PyPI"
        assert desc.remote_type is None
        assert desc.vcs_sha is None

    def test_wrongly_typed_direct_url_does_not_abort_lookup(self, environment, monkeypatch, tmp_path):
        stub = StubDistribution(
            {"direct_url.json": '{"url": "file:///x", "dir_info": null}'},
            root=tmp_path,
            meta={"Name": "corrupt", "Version": "1.0"},
        )
        monkeypatch.setattr(registry.metadata, "distribution", lambda name: stub)

        desc = fetch_description(environment, "corrupt")
        assert desc is not None
        assert desc.version == "1.0"
        assert desc.remote_type is None


# ---------------------------------------------------------------------------
# on-disk location and build string
# ---------------------------------------------------------------------------


class TestDistributionLocation:
    def test_public_module_preferred_over_private(self, environment, tmp_path):
        (tmp_path / "_yaml").mkdir()
        (tmp_path / "yaml").mkdir()
        stub = StubDistribution({"top_level.txt": "_yaml\nyaml\n"}, root=tmp_path)
        assert environment._distribution_location(stub, "PyYAML") == os.path.normpath(str(tmp_path / "yaml"))

    def test_module_named_after_distribution_preferred(self, environment, tmp_path):
        (tmp_path / "pkg_resources").mkdir()
        (tmp_path / "setuptools").mkdir()
        (tmp_path / "_distutils_hack").mkdir()
        stub = StubDistribution(
            {"top_level.txt": "_distutils_hack\npkg_resources\nsetuptools\n"}, root=tmp_path
        )
        location = environment._distribution_location(stub, "setuptools")
        assert location == os.path.normpath(str(tmp_path / "setuptools"))

    def test_single_module_file(self, environment, tmp_path):
        (tmp_path / "six.py").write_text("")
        stub = StubDistribution({"top_level.txt": "six\n"}, root=tmp_path)
        assert environment._distribution_location(stub, "six") == os.path.normpath(str(tmp_path / "six.py"))

    def test_built_leads_with_targeted_python(self, environment, monkeypatch):
        installed = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        monkeypatch.setattr(environment, "_installed_at", lambda dist: installed)
        stub = StubDistribution({"WHEEL": "Wheel-Version: 1.0\nTag: cp311-cp311-linux_x86_64\n"})
        assert environment._built(stub) == (
            f"Python 3.11; cp311-cp311-linux_x86_64; 2024-01-02 03:04:05 UTC; {os.name}"
        )

    def test_built_without_wheel_uses_running_interpreter(self, environment, monkeypatch):
        installed = datetime(2024, 1, 2, tzinfo=timezone.utc)
        monkeypatch.setattr(environment, "_installed_at", lambda dist: installed)
        python = "{}.{}".format(*sys.version_info[:2])
        assert environment._built(StubDistribution()).startswith(f"Python {python}; source; 2024-01-02")


# ---------------------------------------------------------------------------
# requirements
# ---------------------------------------------------------------------------


class TestRequirements:
    def test_required_and_suggested(self, environment, monkeypatch):
        stub = StubDistribution(
            requires=[
                "core>=1.0",
                "extra-lib; extra == 'fast'",
                "never-here; python_version < '2.0'",
                "core",
                "not a requirement!!",
            ]
        )
        monkeypatch.setattr(registry.metadata, "distribution", lambda name: stub)
        assert environment.requirements("pkg") == ["core"]
        assert environment.requirements("pkg", suggests=True) == ["core", "extra-lib"]

    def test_stdlib_has_no_requirements(self, environment):
        assert environment.requirements("json") == []

    def test_missing_package(self, environment):
        with pytest.raises(metadata.PackageNotFoundError):
            environment.requirements("surely-not-installed-pkglens-xyz")


# ---------------------------------------------------------------------------
# describe / loaded table on the running interpreter
# ---------------------------------------------------------------------------


class TestRunningInterpreter:
    def test_describe_installed_distribution(self, environment):
        desc = environment.describe("packaging")
        assert desc.version == metadata.version("packaging")
        assert desc.priority is None
        assert Path(desc.path).name == "packaging"

    def test_describe_stdlib_module(self, environment):
        desc = environment.describe("json")
        assert desc.priority == "base"
        assert desc.version == platform.python_version()
        assert desc.path == os.path.normpath(os.path.dirname(json.__file__))

    def test_describe_missing(self, environment):
        with pytest.raises(metadata.PackageNotFoundError):
            environment.describe("surely-not-installed-pkglens-xyz")

    def test_loaded_packages_include_imported_distribution(self, environment):
        loaded = environment.loaded_packages()
        assert "packaging" in loaded
        entry = loaded["packaging"]
        assert entry.version == packaging.__version__
        assert entry.path == _module_path(packaging)

    def test_describe_by_module_name(self, environment, monkeypatch):
        monkeypatch.setattr(environment, "_module_distributions", {"pkglens_fake_mod": ["packaging"]})
        assert environment.describe("pkglens_fake_mod").name.lower() == "packaging"

    def test_local_modules_outside_distributions_skipped(self, environment, tmp_path, monkeypatch):
        local = tmp_path / "pkglens_local_mod.py"
        local.write_text("")
        module = ModuleType("pkglens_local_mod")
        module.__file__ = str(local)
        monkeypatch.setitem(sys.modules, "pkglens_local_mod", module)
        assert "pkglens-local-mod" not in environment.loaded_packages()

    def test_local_module_with_missing_file_reported(self, environment, tmp_path, monkeypatch):
        module = ModuleType("pkglens_gone_mod")
        module.__file__ = str(tmp_path / "pkglens_gone_mod.py")
        monkeypatch.setitem(sys.modules, "pkglens_gone_mod", module)
        entry = environment.loaded_packages()["pkglens-gone-mod"]
        assert entry.path == os.path.normpath(module.__file__)

    def test_loaded_packages_skip_private_and_submodules(self, environment):
        loaded = environment.loaded_packages()
        assert all("." not in key and not key.startswith("_") for key in loaded)

    def test_loaded_and_disk_paths_agree(self, environment):
        desc = environment.describe("packaging")
        assert environment.loaded_packages()["packaging"].path == desc.path

    def test_multi_module_distribution_paths_agree(self, environment):
        import yaml  # noqa: F401

        desc = environment.describe("PyYAML")
        assert environment.loaded_packages()["pyyaml"].path == desc.path
        assert Path(desc.path).name == "yaml"

    def test_library_paths_from_sys_path(self, environment):
        paths = environment.library_paths()
        assert paths
        assert all(os.path.isdir(p) for p in paths)

    def test_library_paths_override(self):
        env = PythonEnvironment(Settings(LIBRARY_PATHS=["/opt/custom"]))
        assert env.library_paths() == ["/opt/custom"]
