"""
CLI commands for workspace-filesync.

Provides the `fsync` command-line interface: run the sync session for a
workspace, create a default fsconfig.json, and inspect configured syncs.
"""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Awaitable, Callable, Iterable, List, Optional, Tuple

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from config.loader import SettingsLoader
from core.errors import ConfigLoadError
from core.models.config import GlobalSettings, SyncConfigFile
from core.sync.discovery import ConfigDiscovery
from core.sync.engine import FileSyncOrchestrator
from core.sync.events import Command
from core.sync.registry import ConfigEntry
from core.sync.router import format_path
from workspace_filesync import __version__
from workspace_filesync.output import ConsoleOutputChannel, ConsoleStatusIndicator
from workspace_filesync.prompts import ConsoleChoicePrompt, ConsoleMultiSelectPrompt
from workspace_filesync.workspace import Workspace

console = Console()
logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# REPL command -> operator command
REPL_COMMANDS = {
    "toggle": Command.TOGGLE_SYNCS,
    "start": Command.START_ALL_SYNCS,
    "stop": Command.STOP_ALL_SYNCS,
    "create": Command.CREATE_CONFIG_FILE,
}
REPL_COMMANDS.update({command.value.lower(): command for command in Command})

REPL_HELP = (
    "Commands: toggle, start, stop, create, status, "
    "add <folder>, remove <folder>, help, quit"
)

LineReader = Callable[[], Awaitable[Optional[str]]]


def configure_logging(settings: GlobalSettings, verbose: bool = False) -> None:
    """Configure process logging once, from settings and the verbosity flag"""
    level = logging.DEBUG if verbose else getattr(logging, settings.log_level)
    logging.basicConfig(level=level, format=LOG_FORMAT, force=True)
    if settings.log_file:
        handler = logging.FileHandler(settings.log_file, encoding='utf-8')
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logging.getLogger().addHandler(handler)


@click.group()
@click.version_option(version=__version__, prog_name="fsync")
@click.option('--verbose', '-v', is_flag=True, help='Enable debug logging')
@click.pass_context
def main(ctx: click.Context, verbose: bool):
    """
    Workspace FileSync CLI.

    Keep the syncs described by fsconfig.json files running across every
    folder of a workspace.
    """
    settings = GlobalSettings()
    configure_logging(settings, verbose)
    ctx.obj = settings


def _resolve_folders(folders: Iterable[Path], workspace_file: Optional[Path]) -> List[Path]:
    folders = list(folders)
    if not folders and workspace_file is None:
        folders = [Path.cwd()]
    return folders


@main.command()
@click.option(
    '--folder', '-f', 'folders',
    multiple=True,
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help='Workspace folder (repeatable, default: current directory)'
)
@click.option(
    '--workspace-file', '-w',
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help='Workspace file listing folders ({"folders": [{"path": ...}]})'
)
@click.option(
    '--settings', '-s', 'settings_file',
    type=click.Path(dir_okay=False, path_type=Path),
    help='Settings file (showStatusBarInfo, top level or under "filesync")'
)
@click.option(
    '--log-file',
    type=click.Path(dir_okay=False, path_type=Path),
    help='Also append the sync log to this file'
)
@click.option('--no-watch', is_flag=True, help='Do not watch for config file changes')
@click.pass_obj
def run(
    settings: GlobalSettings,
    folders: Tuple[Path, ...],
    workspace_file: Optional[Path],
    settings_file: Optional[Path],
    log_file: Optional[Path],
    no_watch: bool
):
    """Run the sync session and read operator commands."""
    workspace = Workspace(_resolve_folders(folders, workspace_file), workspace_file=workspace_file)
    if not len(workspace):
        console.print("[red]❌ No workspace folders[/red]")
        sys.exit(1)

    console.print(f"[blue]🚀 Workspace FileSync v{__version__}[/blue]")
    for folder in workspace.folders:
        console.print(f"[dim]📂 {escape(str(folder))}[/dim]")
    console.print(f"[dim]{REPL_HELP}[/dim]")

    try:
        asyncio.run(_run_session(settings, workspace, settings_file, log_file, not no_watch))
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")


async def _read_stdin_line() -> Optional[str]:
    try:
        return await asyncio.to_thread(input, "fsync> ")
    except EOFError:
        return None


async def _run_session(
    settings: GlobalSettings,
    workspace: Workspace,
    settings_file: Optional[Path],
    log_file: Optional[Path],
    watch: bool,
    read_line: LineReader = _read_stdin_line
) -> None:
    loader = SettingsLoader(settings_file, settings.config_file_name)
    output = ConsoleOutputChannel(console, log_file=log_file)
    indicator = ConsoleStatusIndicator(console)

    orchestrator = FileSyncOrchestrator(
        folder_provider=workspace,
        log_sink=output,
        settings_provider=loader,
        status_indicator=indicator,
        multi_select_prompt=ConsoleMultiSelectPrompt(console),
        choice_prompt=ConsoleChoicePrompt(console),
        template_factory=loader.build_config_template,
        global_settings=settings,
        workspace_refresh=workspace.refresh,
        settings_file=settings_file,
        workspace_file=workspace.workspace_file,
        watch=watch
    )
    workspace.add_listener(orchestrator.notify_workspace_changed)

    try:
        async with orchestrator:
            await orchestrator.wait_idle()
            await command_loop(orchestrator, workspace, indicator, read_line)
    finally:
        output.close()
    console.print("[green]👋 All syncs stopped[/green]")


async def command_loop(
    orchestrator: FileSyncOrchestrator,
    workspace: Workspace,
    indicator: ConsoleStatusIndicator,
    read_line: LineReader
) -> None:
    """
    Read operator commands until end of input or ``quit``.

    Each command is queued on the orchestrator and fully handled before the
    next line is read, so prompts own the terminal while they are open.
    """
    while True:
        indicator.render()
        line = await read_line()
        if line is None:
            break

        name, _, argument = line.strip().partition(" ")
        name = name.lower()
        argument = argument.strip()

        if not name:
            continue
        if name in ("quit", "exit", "q"):
            break
        if name == "help":
            console.print(REPL_HELP)
        elif name == "status":
            console.print(render_entries_table(orchestrator.registry.entries()))
        elif name in ("add", "remove"):
            if not argument:
                console.print(f"[red]Usage: {name} <folder>[/red]")
                continue
            folder = Path(argument).expanduser()
            if name == "add" and not folder.is_dir():
                console.print(f"[red]Not a directory: {escape(str(folder))}[/red]")
                continue
            changed = workspace.add_folder(folder) if name == "add" else workspace.remove_folder(folder)
            if not changed:
                console.print("[yellow]Workspace unchanged[/yellow]")
        elif name in REPL_COMMANDS:
            orchestrator.execute_command(REPL_COMMANDS[name])
        else:
            console.print(f"[red]Unknown command: {escape(name)}[/red] ({REPL_HELP})")
            continue

        await orchestrator.wait_idle()


def render_entries_table(entries: List[ConfigEntry]) -> Table:
    """Table of every loaded sync definition and whether its task runs"""
    table = Table(title="FileSync Status")
    table.add_column("Config", style="cyan")
    table.add_column("Group", style="white")
    table.add_column("Source", style="white")
    table.add_column("Destination", style="dim")
    table.add_column("State", no_wrap=True)

    for entry in entries:
        for group, definition in entry.iter_definitions():
            handle = group.task_handle
            running = handle is not None and any(d is definition for d in handle.running_definitions())
            table.add_row(
                escape(format_path(entry.path)),
                escape(group.name),
                escape(format_path(definition.source_path)),
                escape(format_path(definition.destination_path)),
                "[green]running[/green]" if running else "[dim]stopped[/dim]"
            )
    return table


@main.command()
@click.argument(
    'folder',
    required=False,
    type=click.Path(exists=True, file_okay=False, path_type=Path)
)
@click.option('--force', '-f', is_flag=True, help='Overwrite an existing config file')
@click.pass_obj
def init(settings: GlobalSettings, folder: Optional[Path], force: bool):
    """Create a default fsconfig.json in FOLDER (default: current directory)."""
    folder = folder or Path.cwd()
    loader = SettingsLoader(config_file_name=settings.config_file_name)

    try:
        created = loader.write_default_config_file(folder, overwrite=force)
    except (OSError, ValueError) as e:
        console.print(f"[red]❌ Failed to create config file: {escape(str(e))}[/red]")
        sys.exit(1)

    if created is None:
        console.print("[yellow]⚠️  Config file already exists. Use --force to overwrite.[/yellow]")
        return
    console.print(f"[green]✅ Created {escape(str(created))}[/green]")


@main.command()
@click.option(
    '--folder', '-f', 'folders',
    multiple=True,
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help='Workspace folder (repeatable, default: current directory)'
)
@click.option(
    '--workspace-file', '-w',
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help='Workspace file listing folders'
)
@click.pass_obj
def status(settings: GlobalSettings, folders: Tuple[Path, ...], workspace_file: Optional[Path]):
    """Show the sync definitions of every config file in the workspace."""
    workspace = Workspace(_resolve_folders(folders, workspace_file), workspace_file=workspace_file)
    discovery = ConfigDiscovery(workspace)
    paths = asyncio.run(discovery.discover(settings.config_glob))

    if not paths:
        console.print(f"[yellow]No {escape(settings.config_file_name)} found. Run 'fsync init' to create one.[/yellow]")
        return

    table = Table(title="Workspace FileSync Configs")
    table.add_column("Config", style="cyan")
    table.add_column("Group", style="white")
    table.add_column("Source", style="white")
    table.add_column("Destination", style="dim")
    table.add_column("Active", no_wrap=True)

    failures = 0
    for path in paths:
        try:
            config = SyncConfigFile.parse(path.read_text(encoding='utf-8'), path)
        except (OSError, UnicodeDecodeError) as e:
            failures += 1
            table.add_row(escape(format_path(path)), "[red]❌ Unreadable[/red]", escape(str(e)), "", "")
            continue
        except ConfigLoadError as e:
            failures += 1
            table.add_row(escape(format_path(path)), "[red]❌ Invalid[/red]", escape(e.reason), "", "")
            continue

        for group in config.configs:
            for definition in group.sync_definitions:
                table.add_row(
                    escape(format_path(path)),
                    escape(group.name),
                    escape(format_path(definition.source_path)),
                    escape(format_path(definition.destination_path)),
                    "[green]yes[/green]" if definition.active else "[dim]no[/dim]"
                )

    console.print(table)
    if failures:
        console.print(f"\n[yellow]⚠️  {failures} config file(s) could not be loaded[/yellow]")


if __name__ == "__main__":
    main()
