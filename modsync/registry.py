"""Registry client for NuGet v3 flat-container feeds.

The feed is queried for ``{base}/{id}/index.json`` (the version list) and
``{base}/{id}/{version}/{id}.{version}.nupkg`` (the package archive), with the
id and version lower-cased. Archives are unpacked into the local library.
"""
import io
import logging
import shutil
import tempfile
import urllib.parse
import zipfile
from pathlib import Path, PurePosixPath

import requests

from modsync.constants import ARCHIVE_METADATA, DEFAULT_REPOSITORY, REQUEST_TIMEOUT
from modsync.errors import InstallError, RegistryError, RemovalError, UpdateError
from modsync.library import Library, read_manifest
from modsync.models import InstalledPackageRecord, RemotePackageInfo
from modsync.state import get_registry_versions, record_install
from modsync.versions import normalize, same_version, select_version

logger = logging.getLogger(__name__)

HEADERS_JSON = {'Accept': 'application/json'}


def _is_metadata(member: str) -> bool:
    return any(member == m or (m.endswith('/') and member.startswith(m)) for m in ARCHIVE_METADATA)


def extract_package(data: bytes, target: Path):
    """Unpack a nupkg archive into target, dropping container metadata."""
    try:
        archive = zipfile.ZipFile(io.BytesIO(data))
    except zipfile.BadZipFile as e:
        raise InstallError(f'Not a package archive: {e}') from e

    with archive:
        for member in archive.infolist():
            name = urllib.parse.unquote(member.filename)
            if member.is_dir() or _is_metadata(name):
                continue
            relative = PurePosixPath(name)
            if relative.is_absolute() or '..' in relative.parts:
                raise InstallError(f'Archive entry escapes the package directory: {name}')
            destination = target.joinpath(*relative.parts)
            destination.parent.mkdir(parents=True, exist_ok=True)
            with archive.open(member) as src, open(destination, 'wb') as dst:
                shutil.copyfileobj(src, dst)


class RegistryClient:
    """Find, install, update and uninstall packages against a feed."""

    def __init__(
        self,
        library: Library,
        repository: str = DEFAULT_REPOSITORY,
        timeout: int = REQUEST_TIMEOUT,
        session: requests.Session | None = None,
    ):
        self.library = library
        self.repository = repository.rstrip('/')
        self.timeout = timeout
        self.session = session or requests.Session()

    def _get(self, url: str, **kwargs) -> requests.Response:
        logger.debug('GET %s', url)
        response = self.session.get(url, timeout=self.timeout, **kwargs)
        logger.debug('GET %s -> %s', url, response.status_code)
        return response

    def _package_url(self, repository: str, name: str) -> str:
        return f'{repository}/{urllib.parse.quote(name.lower(), safe="")}'

    def list_versions(self, name: str, repository: str | None = None) -> list[str] | None:
        """Get every version a feed offers for a package, or None if unknown."""
        repository = (repository or self.repository).rstrip('/')
        url = f'{self._package_url(repository, name)}/index.json'
        try:
            response = self._get(url, headers=HEADERS_JSON)
        except requests.RequestException as e:
            raise RegistryError(f'{name}: cannot reach {repository}: {e}') from e

        if response.status_code == 404:
            return None
        if response.status_code != 200:
            raise RegistryError(f'{name}: {repository} answered HTTP {response.status_code}')
        try:
            versions = response.json().get('versions', [])
        except (ValueError, AttributeError) as e:
            raise RegistryError(f'{name}: malformed version list from {repository}') from e
        return [str(v) for v in versions]

    def find_remote(
        self,
        name: str,
        version: str = '',
        allow_prerelease: bool = False,
        repository: str | None = None,
    ) -> RemotePackageInfo | None:
        """Find the pinned version, or the latest one, of a package."""
        repository = (repository or self.repository).rstrip('/')
        versions = self.list_versions(name, repository)
        if not versions:
            return None
        selected = select_version(versions, version, allow_prerelease)
        if selected is None:
            return None
        return RemotePackageInfo(name=name, version=selected, repository=repository)

    def download(self, name: str, version: str, repository: str) -> bytes:
        lowered = name.lower()
        normalized = normalize(version)
        url = f'{self._package_url(repository, name)}/{normalized}/{lowered}.{normalized}.nupkg'
        try:
            response = self._get(url)
        except requests.RequestException as e:
            raise InstallError(f'{name} {version}: download failed: {e}') from e
        if response.status_code != 200:
            raise InstallError(f'{name} {version}: download failed with HTTP {response.status_code}')
        return response.content

    def install(self, name: str, version: str, repository: str | None = None) -> InstalledPackageRecord:
        """Download and unpack one exact version, then record it in the index."""
        repository = (repository or self.repository).rstrip('/')
        data = self.download(name, version, repository)

        package_dir = self.library.package_dir(name) or self.library.root / name
        try:
            package_dir.mkdir(parents=True, exist_ok=True)
            staging = Path(tempfile.mkdtemp(prefix='.staging-', dir=package_dir))
        except OSError as e:
            raise InstallError(f'{name} {version}: cannot prepare {package_dir}: {e}') from e

        try:
            extract_package(data, staging)
            manifest = read_manifest(staging) or {}
            installed_version = manifest.get('version', version)
            if not same_version(installed_version, version):
                raise InstallError(
                    f'{name} {version}: archive manifest declares version {installed_version}'
                )
            target = self.library.version_dir(name, installed_version)
            if target.exists():
                shutil.rmtree(target)
            staging.rename(target)
        except OSError as e:
            raise InstallError(f'{name} {version}: cannot unpack into {package_dir}: {e}') from e
        finally:
            if staging.exists():
                shutil.rmtree(staging, ignore_errors=True)

        record_install(name, installed_version, repository)
        logger.debug('Installed %s %s into %s', name, installed_version, target)
        return InstalledPackageRecord(
            name=name,
            version=installed_version,
            install_location=target,
            from_registry=True,
            repository=repository,
        )

    def update(self, name: str, version: str, repository: str | None = None) -> InstalledPackageRecord:
        """Install a newer version of a package previously installed from a feed.

        The new version lands beside the old one.
        """
        index = get_registry_versions(name)
        if not index:
            raise UpdateError(f'{name}: was not installed from a repository, cannot update')
        if repository is None:
            latest = index[max(index, key=lambda v: index[v].get('installed', ''))]
            repository = latest.get('repository') or self.repository
        try:
            return self.install(name, version, repository)
        except UpdateError:
            raise
        except InstallError as e:
            raise UpdateError(str(e)) from e

    def uninstall(self, name: str, version: str):
        """Remove one installed version of a package."""
        for record in self.library.enumerate_installed(name):
            if same_version(record.version, version):
                self.library.remove_version(record)
                return
        raise RemovalError(f'{name} {version} is not installed')
