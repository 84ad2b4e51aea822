from modsync.errors import ConfigError
from modsync.models import PackageRequest


def parse_pins(values: list[str]) -> dict[str, str]:
    """Parse NAME=VERSION tokens into a name -> version mapping."""
    pins = {}
    for value in values:
        name, sep, version = value.partition('=')
        name, version = name.strip(), version.strip()
        if not sep or not name or not version:
            raise ConfigError(f'Invalid pin "{value}", expected NAME=VERSION')
        pins[name] = version
    return pins


def resolve_work_list(
    names: list[str] | None = None,
    pinned: dict[str, str] | None = None,
    installed: list[str] | None = None,
) -> dict[str, PackageRequest]:
    """Merge requested and installed packages into one work list.

    Explicit pins are used verbatim, else explicit names track latest.
    Installed names (passed when updating everything installed) are added as
    latest without overriding explicit entries. Explicit entries are flagged
    to be treated as registry-sourced when installed names are also given.
    """
    if names and pinned:
        raise ConfigError('Package names and pinned versions are mutually exclusive')

    explicit = dict(pinned) if pinned else {name: '' for name in names or []}
    update_all = installed is not None

    work = {}
    seen = set()
    for name, version in explicit.items():
        if name.lower() in seen:
            continue
        seen.add(name.lower())
        work[name] = PackageRequest(
            name=name,
            desired_version=version or '',
            treat_as_registry=update_all,
        )

    for name in installed or []:
        if name.lower() in seen:
            continue
        seen.add(name.lower())
        work[name] = PackageRequest(name=name)

    return work
