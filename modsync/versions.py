"""NuGet version handling on top of semantic_version.

NuGet versions are SemVer 2.0 with two differences: the release may have one
to four numeric parts (``1.0`` is ``1.0.0`` and ``1.0.0.0``), and prerelease
labels compare case-insensitively. The fourth part sorts between patch and
the prerelease label.
"""
import semantic_version


def parse_version(text: str) -> tuple[semantic_version.Version, int] | None:
    """Split a NuGet version into its SemVer part and its fourth (revision) part.

    Build metadata is dropped. Returns None for strings that are not versions.
    """
    if not text:
        return None
    text = text.strip().lstrip('vV').split('+', 1)[0]
    release, _, label = text.partition('-')
    parts = release.split('.')
    if not 1 <= len(parts) <= 4 or not all(p.isdigit() for p in parts):
        return None
    revision = int(parts[3]) if len(parts) == 4 else 0
    try:
        semver = semantic_version.Version.coerce('.'.join(parts[:3]))
        if label:
            semver = semantic_version.Version(f'{semver}-{label.lower()}')
    except ValueError:
        return None
    return semver, revision


def _precedence(parsed: tuple[semantic_version.Version, int]):
    semver, revision = parsed
    return semver.truncate(), revision, semver


def is_prerelease(text: str) -> bool:
    parsed = parse_version(text)
    return parsed is not None and bool(parsed[0].prerelease)


def version_sort_key(text: str):
    """Sort key placing unparseable strings before every real version."""
    parsed = parse_version(text)
    if parsed is None:
        return (0, (), text or '')
    return (1, _precedence(parsed), '')


def same_version(left: str, right: str) -> bool:
    """Compare two version strings the way the registry does."""
    a, b = parse_version(left), parse_version(right)
    if a is not None and b is not None:
        return _precedence(a) == _precedence(b)
    return (left or '').strip().lower() == (right or '').strip().lower()


def highest(versions: list[str]) -> str | None:
    """Return the highest version string, or None for an empty list."""
    if not versions:
        return None
    return max(versions, key=version_sort_key)


def normalize(text: str) -> str:
    """Normalize a version string for feed URLs, lower-cased."""
    parsed = parse_version(text)
    if parsed is None:
        return (text or '').strip().lower()
    semver, revision = parsed
    normalized = str(semver.truncate())
    if revision:
        normalized += f'.{revision}'
    if semver.prerelease:
        normalized += '-' + '.'.join(semver.prerelease)
    return normalized


def select_version(
    candidates: list[str],
    desired: str = '',
    allow_prerelease: bool = False,
) -> str | None:
    """Pick the requested version out of a feed's version list.

    An empty ``desired`` selects the highest candidate, skipping prereleases
    unless ``allow_prerelease`` is set. A pinned ``desired`` must be present.
    """
    if desired:
        for candidate in candidates:
            if same_version(candidate, desired):
                return candidate
        return None

    eligible = [v for v in candidates if parse_version(v) is not None]
    if not allow_prerelease:
        eligible = [v for v in eligible if not is_prerelease(v)]
    return highest(eligible)
