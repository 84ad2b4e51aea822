from modsync.models import RunReport
from modsync.output import added, changed, error, header, info, removed, success, warning


def print_report(report: RunReport):
    """Print the grouped run summary."""
    planned = report.dry_run

    if report.installed:
        header('Modules to install:' if planned else 'Modules Installed:')
        for outcome in report.installed:
            added(f'{outcome.name} version {outcome.version}')

    if report.updated:
        header('Modules to update:' if planned else 'Modules Updated:')
        for outcome in report.updated:
            changed(f'{outcome.name} from {outcome.previous_version} to {outcome.version}')

    if report.removed:
        header('Old versions to remove:' if planned else 'Old Versions Removed:')
        for outcome in report.removed:
            removed(f'{outcome.name} version {outcome.version}')

    if report.unchanged:
        header('Modules Unchanged:')
        for outcome in report.unchanged:
            version = f' version {outcome.version}' if outcome.version else ''
            suffix = ' (not found in repository)' if outcome.reason == 'not-found' else ''
            info(f'  {outcome.name}{version}{suffix}')

    if report.skipped:
        header('Modules Skipped:')
        for outcome in report.skipped:
            why = 'not installed from a repository' if outcome.reason == 'manual' else 'declined'
            info(f'  {outcome.name} version {outcome.version} ({why})')

    if report.failed:
        header('Modules Failed:')
        for outcome in report.failed:
            error(f'{outcome.name}: {outcome.error}')

    info('')
    if not report.outcomes:
        info('Nothing to do')
    elif report.failed:
        warning(f'{len(report.failed)} module(s) failed')
    elif planned:
        warning('Dry run - no changes made')
    else:
        success('Modules in sync')
