import io
import zipfile
from pathlib import Path

import pytest
import yaml

from modsync.errors import InstallError, UpdateError
from modsync.library import Library
from modsync.models import InstalledPackageRecord, RemotePackageInfo
from modsync.state import get_registry_versions, record_install
from modsync.versions import same_version, select_version

FEED = 'https://feed.example/v3-flatcontainer'


def nuspec(name: str, version: str) -> str:
    return (
        '<?xml version="1.0" encoding="utf-8"?>\n'
        '<package xmlns="http://schemas.microsoft.com/packaging/2013/05/nuspec.xsd">\n'
        f'  <metadata><id>{name}</id><version>{version}</version></metadata>\n'
        '</package>\n'
    )


def make_version(root: Path, name: str, version: str, manifest_version: str | None = None) -> Path:
    """Create a version directory the way a hand copy or an install leaves it."""
    path = root / name / version
    path.mkdir(parents=True)
    (path / f'{name}.txt').write_text(f'# {name} {version}\n')
    if manifest_version is not None:
        (path / f'{name}.nuspec').write_text(nuspec(name, manifest_version))
    return path


def make_nupkg(name: str, version: str, files: dict[str, str] | None = None) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, 'w') as archive:
        archive.writestr('[Content_Types].xml', '<Types/>')
        archive.writestr('_rels/.rels', '<Relationships/>')
        archive.writestr('package/services/metadata/core-properties/x.psmdcp', '<x/>')
        archive.writestr(f'{name}.nuspec', nuspec(name, version))
        for path, content in (files or {f'content/{name}.txt': f'# {name}\n'}).items():
            archive.writestr(path, content)
    return buffer.getvalue()


def save_yaml(path: Path, data: dict):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(data, sort_keys=False))


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Point config and state files into the test's temp dir."""
    config_dir = tmp_path / 'config'
    monkeypatch.setattr('modsync.config.CONFIG_FILE', config_dir / 'config.yaml')
    monkeypatch.setattr('modsync.state.STATE_FILE', config_dir / 'state.yaml')
    return config_dir


@pytest.fixture
def library(tmp_path):
    root = tmp_path / 'modules'
    root.mkdir()
    return Library(root)


class FakeClient:
    """In-memory feed that installs into a real library directory."""

    def __init__(self, library: Library, remote: dict[str, list[str]] | None = None):
        self.library = library
        self.remote = remote or {}
        self.calls = []
        self.fail = set()

    def find_remote(self, name, version='', allow_prerelease=False, repository=None):
        self.calls.append(('find', name, version))
        versions = self.remote.get(name)
        if not versions:
            return None
        selected = select_version(versions, version, allow_prerelease)
        if selected is None:
            return None
        return RemotePackageInfo(name=name, version=selected, repository=repository or FEED)

    def _put(self, name, version, repository):
        if name in self.fail:
            raise InstallError(f'{name} {version}: download failed with HTTP 500')
        path = self.library.version_dir(name, version)
        path.mkdir(parents=True, exist_ok=True)
        (path / f'{name}.nuspec').write_text(nuspec(name, version))
        record_install(name, version, repository or FEED)
        return InstalledPackageRecord(name, version, path, True, repository or FEED)

    def install(self, name, version, repository=None):
        self.calls.append(('install', name, version))
        return self._put(name, version, repository)

    def update(self, name, version, repository=None):
        self.calls.append(('update', name, version))
        if not get_registry_versions(name):
            raise UpdateError(f'{name}: was not installed from a repository, cannot update')
        if name in self.fail:
            raise UpdateError(f'{name} {version}: download failed with HTTP 500')
        return self._put(name, version, repository)

    def uninstall(self, name, version):
        self.calls.append(('uninstall', name, version))
        for record in self.library.enumerate_installed(name):
            if same_version(record.version, version):
                self.library.remove_version(record)

    def mutations(self):
        return [c for c in self.calls if c[0] != 'find']


@pytest.fixture
def fake_client(library):
    return FakeClient(library)


@pytest.fixture
def installed_from_registry(library):
    """Create a version directory and record it as a registry install."""

    def _install(name: str, version: str) -> Path:
        path = make_version(library.root, name, version, manifest_version=version)
        record_install(name, version, FEED)
        return path

    return _install
