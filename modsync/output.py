import logging

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

console = Console()


def setup_logging(verbose: bool = False):
    """Route modsync loggers through rich."""
    logger = logging.getLogger('modsync')
    logger.handlers.clear()
    logger.addHandler(RichHandler(console=console, show_path=False, markup=False))
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    logger.propagate = False


# Messages carry package names, paths and feed errors, never markup.
def _print(style: str | None, msg: str, prefix: str = ''):
    text = f'{prefix}{escape(msg)}'
    console.print(f'[{style}]{text}[/{style}]' if style else text)


def info(msg: str):
    _print(None, msg)


def success(msg: str):
    console.print(f'[green]✓[/green] {escape(msg)}')


def warning(msg: str):
    console.print(f'[yellow]![/yellow] {escape(msg)}')


def error(msg: str):
    console.print(f'[red]✗[/red] {escape(msg)}')


def added(msg: str):
    _print('green', msg, '  + ')


def changed(msg: str):
    _print('cyan', msg, '  ~ ')


def removed(msg: str):
    _print('red', msg, '  - ')


def header(msg: str):
    console.print()
    _print('bold', msg)
