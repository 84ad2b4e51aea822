"""Tests for the NuGet flat-container registry client."""

import io
import zipfile
from unittest.mock import MagicMock

import pytest
import requests

from conftest import FEED, make_nupkg, make_version
from modsync.errors import InstallError, RegistryError, RemovalError, UpdateError
from modsync.registry import RegistryClient, extract_package
from modsync.state import get_registry_versions, record_install


def response(status_code=200, json_data=None, content=b''):
    res = MagicMock()
    res.status_code = status_code
    res.json.return_value = json_data
    res.content = content
    return res


@pytest.fixture
def session():
    return MagicMock()


@pytest.fixture
def client(library, session):
    return RegistryClient(library, FEED + '/', timeout=5, session=session)


class TestFindRemote:
    def test_picks_latest_stable(self, client, session):
        session.get.return_value = response(json_data={'versions': ['1.0.0', '1.2.0', '2.0.0-beta']})

        remote = client.find_remote('Serilog')

        assert remote.version == '1.2.0'
        assert remote.repository == FEED
        session.get.assert_called_once_with(
            f'{FEED}/serilog/index.json', timeout=5, headers={'Accept': 'application/json'}
        )

    def test_pinned_version(self, client, session):
        session.get.return_value = response(json_data={'versions': ['1.0.0', '1.2.0']})

        assert client.find_remote('Serilog', '1.0').version == '1.0.0'

    def test_repository_override(self, client, session):
        session.get.return_value = response(json_data={'versions': ['1.0.0']})

        remote = client.find_remote('A', repository='https://other.example/feed/')

        assert remote.repository == 'https://other.example/feed'
        assert session.get.call_args[0][0] == 'https://other.example/feed/a/index.json'

    def test_unknown_package(self, client, session):
        session.get.return_value = response(status_code=404)

        assert client.find_remote('Nope') is None

    def test_pinned_version_not_published(self, client, session):
        session.get.return_value = response(json_data={'versions': ['1.0.0']})

        assert client.find_remote('A', '9.9.9') is None

    def test_server_error(self, client, session):
        session.get.return_value = response(status_code=503)

        with pytest.raises(RegistryError):
            client.find_remote('A')

    def test_connection_error(self, client, session):
        session.get.side_effect = requests.ConnectionError('refused')

        with pytest.raises(RegistryError):
            client.find_remote('A')

    def test_malformed_json(self, client, session):
        res = response()
        res.json.side_effect = ValueError('no json')
        session.get.return_value = res

        with pytest.raises(RegistryError):
            client.find_remote('A')


class TestInstall:
    def test_downloads_and_unpacks(self, client, session, library):
        session.get.return_value = response(content=make_nupkg('Serilog', '5.5.0'))

        record = client.install('Serilog', '5.5.0')

        session.get.assert_called_once_with(f'{FEED}/serilog/5.5.0/serilog.5.5.0.nupkg', timeout=5)
        target = library.root / 'Serilog' / '5.5.0'
        assert record.install_location == target
        assert record.from_registry
        assert (target / 'content' / 'Serilog.txt').exists()
        assert (target / 'Serilog.nuspec').exists()
        assert not (target / '[Content_Types].xml').exists()
        assert not (target / '_rels').exists()
        assert not (target / 'package').exists()
        assert get_registry_versions('Serilog')['5.5.0']['repository'] == FEED

    def test_directory_named_after_manifest_version(self, client, session, library):
        session.get.return_value = response(content=make_nupkg('A', '1.0'))

        record = client.install('A', '1.0.0')

        assert record.version == '1.0'
        assert (library.root / 'A' / '1.0').is_dir()
        assert [r.version for r in library.enumerate_installed('A')] == ['1.0']

    def test_reuses_existing_package_directory_casing(self, client, session, library):
        make_version(library.root, 'serilog', '4.0.0')
        session.get.return_value = response(content=make_nupkg('Serilog', '5.0.0'))

        client.install('Serilog', '5.0.0')

        assert (library.root / 'serilog' / '5.0.0').is_dir()

    def test_decodes_escaped_entry_names(self, client, session, library):
        session.get.return_value = response(
            content=make_nupkg('A', '1.0.0', {'en-US/about%20A.txt': 'help'})
        )

        client.install('A', '1.0.0')

        assert (library.root / 'A' / '1.0.0' / 'en-US' / 'about A.txt').read_text() == 'help'

    def test_download_failure(self, client, session, library):
        session.get.return_value = response(status_code=500)

        with pytest.raises(InstallError):
            client.install('A', '1.0.0')
        assert get_registry_versions('A') == {}

    def test_bad_archive_leaves_no_staging(self, client, session, library):
        session.get.return_value = response(content=b'not a zip')

        with pytest.raises(InstallError):
            client.install('A', '1.0.0')
        assert list((library.root / 'A').iterdir()) == []

    def test_manifest_version_mismatch(self, client, session):
        session.get.return_value = response(content=make_nupkg('A', '2.0.0'))

        with pytest.raises(InstallError):
            client.install('A', '1.0.0')


class TestUpdate:
    def test_requires_registry_install(self, client):
        with pytest.raises(UpdateError):
            client.update('A', '2.0.0')

    def test_installs_beside_previous_version(self, client, session, library, installed_from_registry):
        installed_from_registry('A', '1.0.0')
        session.get.return_value = response(content=make_nupkg('A', '2.0.0'))

        client.update('A', '2.0.0')

        assert [r.version for r in library.enumerate_installed('A')] == ['1.0.0', '2.0.0']

    def test_uses_recorded_repository(self, client, session):
        record_install('A', '1.0.0', 'https://private.example/feed')
        session.get.return_value = response(content=make_nupkg('A', '2.0.0'))

        client.update('A', '2.0.0')

        assert session.get.call_args[0][0].startswith('https://private.example/feed/a/2.0.0/')

    def test_failure_is_update_error(self, client, session, installed_from_registry):
        installed_from_registry('A', '1.0.0')
        session.get.return_value = response(status_code=404)

        with pytest.raises(UpdateError):
            client.update('A', '2.0.0')


class TestUninstall:
    def test_removes_version(self, client, library, installed_from_registry):
        path = installed_from_registry('A', '1.0.0')

        client.uninstall('A', '1.0')

        assert not path.exists()
        assert get_registry_versions('A') == {}

    def test_missing_version(self, client):
        with pytest.raises(RemovalError):
            client.uninstall('A', '1.0.0')


def test_extract_rejects_path_traversal(tmp_path):
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, 'w') as archive:
        archive.writestr('../evil.txt', 'x')

    with pytest.raises(InstallError):
        extract_package(buffer.getvalue(), tmp_path / 'target')
    assert not (tmp_path / 'evil.txt').exists()
