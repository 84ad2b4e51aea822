import logging
from dataclasses import dataclass, field
from typing import Callable

from modsync.constants import PROTECTED_PACKAGES
from modsync.errors import InstallError, RegistryError, RemovalError, SafetyCheckError
from modsync.library import Library
from modsync.models import (
    InstalledPackageRecord,
    Outcome,
    OutcomeKind,
    PackageRequest,
    RemotePackageInfo,
    RunReport,
)
from modsync.output import info, success, warning, error
from modsync.registry import RegistryClient
from modsync.versions import same_version

logger = logging.getLogger(__name__)

Approve = Callable[[str], bool]


def approve_all(prompt: str) -> bool:
    return True


@dataclass
class ReconcileOptions:
    allow_prerelease: bool = False
    include_manual: bool = False
    keep_prior_versions: bool = False
    repository: str | None = None
    dry_run: bool = False
    fail_fast: bool = False
    protected: set[str] = field(default_factory=lambda: {p.lower() for p in PROTECTED_PACKAGES})


class Reconciler:
    """Bring each requested package in line with the repository."""

    def __init__(
        self,
        client: RegistryClient,
        library: Library,
        options: ReconcileOptions | None = None,
        approve: Approve = approve_all,
    ):
        self.client = client
        self.library = library
        self.options = options or ReconcileOptions()
        self.approve = approve

    def _confirm(self, prompt: str) -> bool:
        if self.options.dry_run:
            return True
        return self.approve(prompt)

    def _find_remote(self, request: PackageRequest) -> RemotePackageInfo | None:
        target = request.desired_version or 'latest'
        try:
            remote = self.client.find_remote(
                request.name,
                request.desired_version,
                allow_prerelease=self.options.allow_prerelease,
                repository=self.options.repository,
            )
        except RegistryError as e:
            warning(f'{e}; leaving {request.name} unchanged')
            return None
        if remote is None:
            warning(f'{request.name} ({target}) not found in repository')
        else:
            logger.debug('%s (%s) resolved to %s', request.name, target, remote.version)
        return remote

    def _install(self, name: str, remote: RemotePackageInfo) -> str:
        if self.options.dry_run:
            info(f'Would install {name} version {remote.version}')
            return remote.version
        info(f'Installing {name} version {remote.version}')
        record = self.client.install(name, remote.version, remote.repository)
        success(f'Installed {name} version {record.version}')
        return record.version

    def _update(self, name: str, current: str, remote: RemotePackageInfo) -> str:
        if self.options.dry_run:
            info(f'Would update {name} from {current} to {remote.version}')
            return remote.version
        info(f'Updating {name} from {current} to {remote.version}')
        record = self.client.update(name, remote.version, remote.repository)
        success(f'Updated {name} to {record.version}')
        return record.version

    def _reconcile_missing(self, request: PackageRequest) -> Outcome:
        name = request.name
        remote = self._find_remote(request)
        if remote is None:
            return Outcome(OutcomeKind.UNCHANGED, name, reason='not-found')
        if not self._confirm(f'Install {name} version {remote.version}?'):
            return Outcome(OutcomeKind.UNCHANGED, name, reason='declined')
        version = self._install(name, remote)
        return Outcome(OutcomeKind.INSTALLED, name, version=version)

    def _reconcile_installed(
        self,
        request: PackageRequest,
        local: list[InstalledPackageRecord],
        record: InstalledPackageRecord | None,
    ) -> Outcome:
        name = request.name
        current = record.version if record is not None else local[-1].version

        if request.pinned and same_version(request.desired_version, current):
            logger.debug('%s is pinned to installed version %s', name, current)
            return Outcome(OutcomeKind.UNCHANGED, name, version=current, reason='current')

        remote = self._find_remote(request)
        if remote is None:
            return Outcome(OutcomeKind.UNCHANGED, name, version=current, reason='not-found')
        if same_version(remote.version, current):
            logger.debug('%s %s is current', name, current)
            return Outcome(OutcomeKind.UNCHANGED, name, version=current, reason='current')

        if record is not None:
            if not self._confirm(f'Update {name} from {current} to {remote.version}?'):
                return Outcome(OutcomeKind.UNCHANGED, name, version=current, reason='declined')
            version = self._update(name, current, remote)
        elif self.options.include_manual or request.treat_as_registry:
            if not self._confirm(f'Install {name} version {remote.version} over manual copy {current}?'):
                return Outcome(OutcomeKind.UNCHANGED, name, version=current, reason='declined')
            version = self._install(name, remote)
        else:
            info(
                f'{name} {current} was not installed from a repository; '
                f'skipping {remote.version} (use --include-manual)'
            )
            return Outcome(OutcomeKind.UNCHANGED, name, version=current, reason='manual')

        return Outcome(OutcomeKind.UPDATED, name, version=version, previous_version=current)

    def reconcile(self, request: PackageRequest) -> list[Outcome]:
        """Reconcile one package and sweep its old versions.

        Raises InstallError (or UpdateError) when the repository operation fails.
        """
        local = self.library.enumerate_installed(request.name)
        record = self.library.registry_record(request.name)

        if not local and record is None:
            outcome = self._reconcile_missing(request)
            if outcome.kind is not OutcomeKind.INSTALLED:
                return [outcome]
        else:
            outcome = self._reconcile_installed(request, local, record)

        planned = self.options.dry_run and outcome.kind in (OutcomeKind.INSTALLED, OutcomeKind.UPDATED)
        return [outcome] + self.sweep_old_versions(request.name, outcome.version, planned)

    def sweep_old_versions(self, name: str, current: str, planned: bool = False) -> list[Outcome]:
        """Remove every local version of a package other than current.

        Nothing is removed unless current is on disk, or planned is set for a
        dry-run install or update that would have put it there.
        """
        if name.lower() in self.options.protected:
            logger.debug('%s is protected, not sweeping', name)
            return []

        records = self.library.enumerate_installed(name)
        if not planned and not any(same_version(r.version, current) for r in records):
            logger.debug('%s %s is not on disk, not sweeping', name, current)
            return []
        if len({r.version for r in records} | {current}) <= 1:
            return []
        if self.options.keep_prior_versions:
            logger.debug('Keeping %d prior versions of %s', len(records) - 1, name)
            return []

        outcomes = []
        for record in records:
            if same_version(record.version, current):
                continue
            if not self._confirm(f'Remove {name} version {record.version}?'):
                continue
            if self.options.dry_run:
                info(f'Would remove {name} version {record.version}')
                outcomes.append(Outcome(OutcomeKind.REMOVED, name, version=record.version))
                continue

            try:
                self.library.remove_version(record)
            except SafetyCheckError as e:
                warning(f'{e}; skipping')
                continue
            except RemovalError as e:
                warning(f'{e}; old files left in place')
                continue
            info(f'Removed {name} version {record.version}')
            outcomes.append(Outcome(OutcomeKind.REMOVED, name, version=record.version))
        return outcomes

    def run(self, work: dict[str, PackageRequest], report: RunReport | None = None) -> RunReport:
        """Reconcile every work-list entry in order.

        A failed install or update is recorded and the run moves on, unless
        fail_fast is set, in which case the error propagates.
        """
        if report is None:
            report = RunReport(dry_run=self.options.dry_run)
        for request in work.values():
            try:
                report.extend(self.reconcile(request))
            except InstallError as e:
                error(str(e))
                report.add(Outcome(OutcomeKind.FAILED, request.name, error=str(e)))
                if self.options.fail_fast:
                    raise
        return report
