from pathlib import Path

import typer

from modsync import __version__
from modsync.config import (
    get_declared_packages,
    get_library_dir,
    get_protected_packages,
    get_timeout,
    resolve_repository,
)
from modsync.errors import ConfigError, InstallError
from modsync.library import Library
from modsync.models import RunReport
from modsync.output import error, header, info, setup_logging, warning
from modsync.plan import parse_pins, resolve_work_list
from modsync.reconcile import ReconcileOptions, Reconciler, approve_all
from modsync.registry import RegistryClient
from modsync.report import print_report
from modsync.state import load_state
from modsync.versions import same_version

app = typer.Typer(
    name='modsync',
    help='Keep a local package library in sync with a NuGet feed',
    context_settings={
        'help_option_names': ['--help', '-h'],
    },
)


def version_callback(value: bool):
    if value:
        typer.echo(f'modsync {__version__}')
        raise typer.Exit()


@app.callback()
def main_callback(
    version: bool = typer.Option(
        False, '--version', '-V', callback=version_callback, is_eager=True, help='Show version'
    ),
):
    """Keep a local package library in sync with a NuGet feed."""
    pass


def prompt_approve(prompt: str) -> bool:
    return typer.confirm(prompt)


@app.command()
def sync(
    names: list[str] | None = typer.Argument(None, help='Package(s) to bring to their latest version'),
    pin: list[str] | None = typer.Option(None, '--pin', '-p', help='Pinned version, NAME=VERSION (repeatable)'),
    confirm: bool = typer.Option(True, '--confirm/--no-confirm', help='Prompt before changing anything'),
    update_existing: bool = typer.Option(
        False, '--update-existing', '-u', help='Also reconcile every installed package'
    ),
    allow_prerelease: bool = typer.Option(False, '--allow-prerelease', help='Allow prerelease versions'),
    include_manual: bool = typer.Option(
        False, '--include-manual', help='Also update packages not installed from a repository (implies -u)'
    ),
    keep_prior_versions: bool = typer.Option(
        False, '--keep-prior-versions', '-k', help='Do not remove superseded versions'
    ),
    repository: str = typer.Option(None, '--repository', '-r', help='Repository name or feed URL'),
    library: Path = typer.Option(None, '--library', '-l', help='Library root directory'),
    dry_run: bool = typer.Option(False, '--dry-run', '-n', help='Show what would be done'),
    fail_fast: bool = typer.Option(False, '--fail-fast', help='Stop at the first failed install or update'),
    verbose: bool = typer.Option(False, '--verbose', '-v', help='Debug logging'),
):
    """Install, update and prune packages to match the repository."""
    setup_logging(verbose)
    if include_manual:
        update_existing = True

    try:
        root = get_library_dir(library)
        load_state()
        repo_url = resolve_repository(repository)
        pinned = parse_pins(pin or [])
        if not names and not pinned:
            names, pinned = get_declared_packages()
        lib = Library(root)
        installed = lib.installed_names() if update_existing else None
        work = resolve_work_list(names, pinned, installed)
        options = ReconcileOptions(
            allow_prerelease=allow_prerelease,
            include_manual=include_manual,
            keep_prior_versions=keep_prior_versions,
            repository=repo_url,
            dry_run=dry_run,
            fail_fast=fail_fast,
            protected=get_protected_packages(),
        )
        client = RegistryClient(lib, repo_url, timeout=get_timeout())
    except ConfigError as e:
        error(str(e))
        raise typer.Exit(1)

    if not work:
        warning('No packages requested')
        info('Pass package names, --pin NAME=VERSION, --update-existing, or declare packages in config.yaml')
        return

    info(f'Library: {root}')
    info(f'Repository: {repo_url}')
    info(f'Checking {len(work)} module(s)')

    reconciler = Reconciler(client, lib, options, prompt_approve if confirm else approve_all)
    report = RunReport(dry_run=dry_run)
    try:
        reconciler.run(work, report)
    except InstallError:
        error('Aborted after failure (--fail-fast)')
        raise typer.Exit(1)
    finally:
        print_report(report)

    if not report.ok:
        raise typer.Exit(1)


@app.command('list')
def list_installed(
    name: str = typer.Argument(None, help='Only show this package'),
    library: Path = typer.Option(None, '--library', '-l', help='Library root directory'),
):
    """List installed package versions and where they came from."""
    try:
        root = get_library_dir(library)
        load_state()
    except ConfigError as e:
        error(str(e))
        raise typer.Exit(1)

    lib = Library(root)
    names = [name] if name else lib.installed_names()
    if not names:
        info(f'No modules installed in {root}')
        return

    for package in names:
        records = lib.enumerate_installed(package)
        tracked = lib.registry_record(package)
        header(f'{package}:')
        if not records:
            if tracked is not None:
                warning(f'  {tracked.version} recorded as installed but missing from {root}')
            else:
                info('  not installed')
            continue

        current = tracked.version if tracked is not None else records[-1].version
        for record in reversed(records):
            status = '✓' if same_version(record.version, current) else '○'
            source = record.repository if record.from_registry else 'manual'
            info(f'  {status} {record.version} ({source})')


def main():
    app()


if __name__ == '__main__':
    main()
