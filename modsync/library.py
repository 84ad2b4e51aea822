"""Local package library: ``<root>/<Name>/<version>/`` side-by-side installs."""
import logging
import shutil
import sys
from pathlib import Path
from xml.etree import ElementTree as ET

from modsync.errors import RemovalError, SafetyCheckError
from modsync.models import InstalledPackageRecord
from modsync.state import forget_install, get_registry_versions, registry_names
from modsync.versions import highest, same_version, version_sort_key

logger = logging.getLogger(__name__)


def _local_name(tag: str) -> str:
    return tag.rsplit('}', 1)[-1]


def read_manifest(path: Path) -> dict | None:
    """Read id and version from the .nuspec manifest in a version directory."""
    for nuspec in sorted(path.glob('*.nuspec')):
        try:
            root = ET.parse(nuspec).getroot()
        except (ET.ParseError, OSError) as e:
            logger.debug('Unreadable manifest %s: %s', nuspec, e)
            continue
        fields = {}
        for metadata in root:
            if _local_name(metadata.tag) != 'metadata':
                continue
            for child in metadata:
                key = _local_name(child.tag)
                if key in ('id', 'version') and child.text:
                    fields[key] = child.text.strip()
        if 'version' in fields:
            return fields
    return None


class Library:
    """Installed package versions under a library root."""

    def __init__(self, root: Path):
        self.root = Path(root)

    def package_dir(self, name: str) -> Path | None:
        """Find a package directory, matching the name case-insensitively."""
        if not self.root.is_dir():
            return None
        exact = self.root / name
        if exact.is_dir():
            return exact
        lowered = name.lower()
        for path in self.root.iterdir():
            if path.is_dir() and path.name.lower() == lowered:
                return path
        return None

    def version_dir(self, name: str, version: str) -> Path:
        """Directory a version of a package lives (or would live) in."""
        return (self.package_dir(name) or self.root / name) / version

    def enumerate_installed(self, name: str) -> list[InstalledPackageRecord]:
        """List the versions of a package present on disk, lowest first."""
        package_dir = self.package_dir(name)
        if package_dir is None:
            return []

        index = get_registry_versions(name)
        records = []
        for path in sorted(package_dir.iterdir()):
            if not path.is_dir() or path.name.startswith('.'):
                continue
            manifest = read_manifest(path) or {}
            version = manifest.get('version', path.name)
            repository = None
            from_registry = False
            for indexed, details in index.items():
                if same_version(indexed, version):
                    from_registry = True
                    repository = details.get('repository')
                    break
            records.append(
                InstalledPackageRecord(
                    name=name,
                    version=version,
                    install_location=path,
                    from_registry=from_registry,
                    repository=repository,
                )
            )
        records.sort(key=lambda r: version_sort_key(r.version))
        return records

    def registry_record(self, name: str) -> InstalledPackageRecord | None:
        """Get the highest version of a package that was installed from a repository.

        Versions still on disk win over index records whose directory is gone.
        """
        index = get_registry_versions(name)
        if not index:
            return None

        on_disk = [r for r in self.enumerate_installed(name) if r.from_registry]
        if on_disk:
            return on_disk[-1]

        version = highest(list(index))
        return InstalledPackageRecord(
            name=name,
            version=version,
            install_location=None,
            from_registry=True,
            repository=index[version].get('repository'),
        )

    def installed_names(self) -> list[str]:
        """Names of every package in the library or the install index."""
        names = {}
        if self.root.is_dir():
            for path in self.root.iterdir():
                if not path.is_dir() or path.name.startswith('.'):
                    continue
                if any(p.is_dir() and not p.name.startswith('.') for p in path.iterdir()):
                    names[path.name.lower()] = path.name
        for name in registry_names():
            names.setdefault(name.lower(), name)
        return sorted(names.values(), key=str.lower)

    def unload_if_loaded(self, record: InstalledPackageRecord) -> list[str]:
        """Drop modules imported from a version directory out of sys.modules."""
        if record.install_location is None:
            return []
        location = record.install_location.resolve()
        unloaded = []
        for module_name, module in list(sys.modules.items()):
            module_file = getattr(module, '__file__', None)
            if not module_file:
                continue
            if Path(module_file).resolve().is_relative_to(location):
                del sys.modules[module_name]
                unloaded.append(module_name)
        if unloaded:
            logger.debug('Unloaded %s from %s', ', '.join(unloaded), location)
        return unloaded

    def remove_version(self, record: InstalledPackageRecord):
        """Unload and delete a version directory, then drop its index record.

        Raises SafetyCheckError unless the directory is named exactly after
        the version, and RemovalError when deletion fails. Nothing is unloaded
        when the safety check fails.
        """
        location = record.install_location
        if location is None or location.name != record.version:
            raise SafetyCheckError(
                f'{record.name} {record.version}: refusing to delete {location}, '
                'directory name does not match the version'
            )
        self.unload_if_loaded(record)
        try:
            shutil.rmtree(location)
        except OSError as e:
            raise RemovalError(f'{record.name} {record.version}: cannot delete {location}: {e}') from e
        forget_install(record.name, record.version)
        logger.debug('Removed %s', location)

        package_dir = location.parent
        if package_dir.is_dir() and not any(package_dir.iterdir()):
            package_dir.rmdir()
