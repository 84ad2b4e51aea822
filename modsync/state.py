"""Install index: which package versions were installed from a repository.

Layout of the state file::

    packages:
      Some.Package:
        1.2.0:
          repository: https://api.nuget.org/v3-flatcontainer
          installed: '2026-01-01T00:00:00+00:00'
"""
import logging
from datetime import datetime, timezone

import yaml

from modsync.constants import STATE_FILE
from modsync.errors import ConfigError
from modsync.versions import same_version

logger = logging.getLogger(__name__)


def load_state() -> dict:
    """Load the install index, empty when it does not exist yet."""
    if not STATE_FILE.exists():
        return {}
    try:
        with open(STATE_FILE) as f:
            state = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f'Cannot parse install index {STATE_FILE}: {e}') from e
    if not isinstance(state, dict) or not isinstance(state.get('packages') or {}, dict):
        raise ConfigError(f'{STATE_FILE} is not a valid install index')
    return state


def save_state(state: dict):
    """Save state."""
    STATE_FILE.parent.mkdir(parents=True, exist_ok=True)
    with open(STATE_FILE, 'w') as f:
        yaml.safe_dump(state, f, sort_keys=True)


def _find_key(packages: dict, name: str) -> str | None:
    lowered = name.lower()
    for key in packages:
        if key.lower() == lowered:
            return key
    return None


def get_registry_versions(name: str) -> dict[str, dict]:
    """Get index records for a package, keyed by version."""
    packages = load_state().get('packages') or {}
    key = _find_key(packages, name)
    if key is None:
        return {}
    return {str(v): info or {} for v, info in (packages[key] or {}).items()}


def registry_names() -> list[str]:
    """Get names of all packages with at least one index record."""
    packages = load_state().get('packages') or {}
    return sorted(name for name, versions in packages.items() if versions)


def record_install(name: str, version: str, repository: str):
    """Record that a version was installed from a repository."""
    state = load_state()
    packages = state.get('packages') or {}
    state['packages'] = packages
    key = _find_key(packages, name) or name
    versions = packages.get(key) or {}
    versions[version] = {
        'repository': repository,
        'installed': datetime.now(timezone.utc).isoformat(timespec='seconds'),
    }
    packages[key] = versions
    save_state(state)
    logger.debug('Recorded %s %s from %s', name, version, repository)


def forget_install(name: str, version: str):
    """Drop the index record for one version, if any."""
    state = load_state()
    packages = state.get('packages') or {}
    key = _find_key(packages, name)
    if key is None:
        return
    versions = packages.get(key) or {}
    indexed = next((v for v in versions if same_version(str(v), version)), None)
    if indexed is None:
        return
    del versions[indexed]
    if versions:
        packages[key] = versions
    else:
        del packages[key]
    save_state(state)
    logger.debug('Forgot %s %s', name, version)
