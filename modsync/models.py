from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


@dataclass
class PackageRequest:
    """One work-list entry. An empty desired_version means latest."""

    name: str
    desired_version: str = ''
    treat_as_registry: bool = False

    @property
    def pinned(self) -> bool:
        return bool(self.desired_version)


@dataclass
class InstalledPackageRecord:
    """A single version of a package present in the local library."""

    name: str
    version: str
    install_location: Path | None = None
    from_registry: bool = False
    repository: str | None = None


@dataclass
class RemotePackageInfo:
    name: str
    version: str
    repository: str


class OutcomeKind(Enum):
    INSTALLED = 'installed'
    UPDATED = 'updated'
    UNCHANGED = 'unchanged'
    REMOVED = 'removed'
    FAILED = 'failed'


@dataclass
class Outcome:
    """What happened to one package (or one removed version) during a run."""

    kind: OutcomeKind
    name: str
    version: str = ''
    previous_version: str = ''
    reason: str = ''
    error: str = ''


# Unchanged outcomes with these reasons are reported as skipped
SKIPPED_REASONS = ('manual', 'declined')


@dataclass
class RunReport:
    """Outcomes accumulated over one reconciliation run."""

    outcomes: list[Outcome] = field(default_factory=list)
    dry_run: bool = False

    def add(self, outcome: Outcome) -> Outcome:
        self.outcomes.append(outcome)
        return outcome

    def extend(self, outcomes: list[Outcome]):
        self.outcomes.extend(outcomes)

    def _select(self, kind: OutcomeKind, skipped: bool | None = None) -> list[Outcome]:
        seen = set()
        result = []
        for outcome in self.outcomes:
            if outcome.kind is not kind:
                continue
            if skipped is not None and (outcome.reason in SKIPPED_REASONS) != skipped:
                continue
            key = (outcome.name.lower(), outcome.version, outcome.previous_version)
            if key in seen:
                continue
            seen.add(key)
            result.append(outcome)
        return result

    @property
    def installed(self) -> list[Outcome]:
        return self._select(OutcomeKind.INSTALLED)

    @property
    def updated(self) -> list[Outcome]:
        return self._select(OutcomeKind.UPDATED)

    @property
    def removed(self) -> list[Outcome]:
        return self._select(OutcomeKind.REMOVED)

    @property
    def unchanged(self) -> list[Outcome]:
        return self._select(OutcomeKind.UNCHANGED, skipped=False)

    @property
    def skipped(self) -> list[Outcome]:
        return self._select(OutcomeKind.UNCHANGED, skipped=True)

    @property
    def failed(self) -> list[Outcome]:
        return self._select(OutcomeKind.FAILED)

    @property
    def ok(self) -> bool:
        return not self.failed
