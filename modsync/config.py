import logging
from pathlib import Path

import yaml

from modsync.constants import (
    CONFIG_FILE,
    DEFAULT_REPOSITORY,
    LIBRARY_DIR,
    PROTECTED_PACKAGES,
    REQUEST_TIMEOUT,
)
from modsync.errors import ConfigError

logger = logging.getLogger(__name__)


def load_config() -> dict:
    """Load main config."""
    if not CONFIG_FILE.exists():
        return {}
    try:
        with open(CONFIG_FILE) as f:
            config = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f'Cannot parse {CONFIG_FILE}: {e}') from e
    if not isinstance(config, dict):
        raise ConfigError(f'{CONFIG_FILE} must contain a mapping')
    logger.debug('Loaded %s', CONFIG_FILE)
    return config


def get_library_dir(override: Path | None = None) -> Path:
    """Get the library root holding installed package versions."""
    if override is not None:
        return Path(override).expanduser()
    configured = load_config().get('library')
    if configured:
        return Path(configured).expanduser()
    return LIBRARY_DIR


def resolve_repository(value: str | None = None) -> str:
    """Resolve a repository name or URL to a feed base URL.

    Falls back to the configured default repository, then to nuget.org.
    """
    config = load_config()
    repositories = config.get('repositories') or {}
    if not isinstance(repositories, dict):
        raise ConfigError("'repositories' must map names to feed URLs")

    value = value or config.get('repository')
    if not value:
        return DEFAULT_REPOSITORY
    if value in repositories:
        return str(repositories[value]).rstrip('/')
    if value.startswith(('http://', 'https://', 'file://')):
        return value.rstrip('/')
    raise ConfigError(f'Unknown repository "{value}". Known: {", ".join(sorted(repositories)) or "none"}')


def get_protected_packages() -> set[str]:
    """Get lower-cased names that must never be swept."""
    configured = load_config().get('protected')
    names = PROTECTED_PACKAGES if configured is None else configured
    return {str(n).lower() for n in names}


def get_timeout() -> int:
    return int(load_config().get('timeout', REQUEST_TIMEOUT))


def get_declared_packages() -> tuple[list[str], dict[str, str]]:
    """Get packages declared in config.

    Returns (names, pinned) where a list declaration fills names and a mapping
    declaration fills pinned (empty/null versions mean latest).
    """
    declared = load_config().get('packages')
    if not declared:
        return [], {}
    if isinstance(declared, list):
        return [str(p) for p in declared], {}
    if isinstance(declared, dict):
        return [], {str(k): '' if v is None else str(v) for k, v in declared.items()}
    raise ConfigError("'packages' must be a list of names or a name: version mapping")

