"""
Command-line interface for pomosync.

Commands:
    pomosync add NAME [--estimate N] [--priority P] [--notes TEXT]
    pomosync list [--pending]
    pomosync edit ID [--name ..] [--estimate ..] [--completed ..] [--priority ..] [--notes ..]
    pomosync done ID / pomosync undo ID
    pomosync pomodoro ID               Record one finished pomodoro
    pomosync rm ID
    pomosync sync                      Run one sync pass now
    pomosync status                    Show local and sync status
    pomosync watch                     Keep syncing (periodic + on local change)
    pomosync auth login|logout|status

Configuration:
    See pomosync.core.config. Without a config file the defaults apply and
    the OAuth client credentials must come from POMOSYNC_CLIENT_ID and
    POMOSYNC_CLIENT_SECRET (a .env file is honoured).
"""

import functools
import sys
import time
import webbrowser
from pathlib import Path

import click

from pomosync import __version__
from pomosync.core.config import Config, load_config
from pomosync.core.database import TaskStore
from pomosync.core.exceptions import PomoSyncError
from pomosync.core.logger import configure_from_config, get_logger, setup_logging
from pomosync.remote.auth import TokenManager
from pomosync.remote.client import RemoteTaskClient
from pomosync.sync.orchestrator import SyncOrchestrator
from pomosync.sync.scheduler import SyncScheduler, SyncStatusKind
from pomosync.tasks.models import Priority, SyncStats, Task
from pomosync.utils import format_timestamp


logger = get_logger(__name__)

PRIORITY_CHOICES = click.Choice([p.value for p in Priority], case_sensitive=False)
PRIORITY_COLORS = {Priority.HIGH: 'red', Priority.MEDIUM: 'yellow', Priority.LOW: 'cyan'}

# Seconds between local change checks in watch mode
WATCH_POLL_INTERVAL = 2.0


class AppContext:
    """
    Lazily built application components shared by all commands.

    Nothing touches the disk or network until a command asks for it.
    """

    def __init__(self, config_path: Path | None = None, verbose: bool = False) -> None:
        self.config_path = config_path
        self.verbose = verbose
        self._config: Config | None = None
        self._store: TaskStore | None = None
        self._tokens: TokenManager | None = None
        self._scheduler: SyncScheduler | None = None

    @property
    def config(self) -> Config:
        if self._config is None:
            self._config = load_config(self.config_path)
            configure_from_config(self._config)
            if self.verbose:
                setup_logging(
                    level="DEBUG",
                    log_file=self._current_log_file(),
                    colored_output=self._config.logging.colored_output
                )
        return self._config

    def _current_log_file(self) -> Path | None:
        if not self._config or not self._config.logging.file:
            return None
        log_file = Path(self._config.logging.file).expanduser()
        return log_file if log_file.is_absolute() else self._config.config_directory() / log_file

    @property
    def store(self) -> TaskStore:
        if self._store is None:
            self._store = TaskStore(self.config.storage.database_path)
        return self._store

    @property
    def tokens(self) -> TokenManager:
        if self._tokens is None:
            self._tokens = TokenManager(self.config)
        return self._tokens

    @property
    def scheduler(self) -> SyncScheduler:
        if self._scheduler is None:
            client = RemoteTaskClient(self.config.remote, self.config.network)
            orchestrator = SyncOrchestrator(self.store, client)
            self._scheduler = SyncScheduler(orchestrator, self.tokens, self.config.sync)
        return self._scheduler

    def close(self) -> None:
        if self._scheduler is not None:
            self._scheduler.stop()
            self._scheduler.orchestrator.client.close()
        if self._store is not None:
            self._store.close()


def handle_error(func):
    """
    Decorator to handle common CLI errors gracefully

    pomosync errors become a red message and exit code 1; Ctrl-C exits
    with 130.
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except KeyboardInterrupt:
            click.echo(click.style("\nOperation cancelled by user", fg='yellow'), err=True)
            sys.exit(130)
        except PomoSyncError as e:
            logger.debug(f"Command failed: {e.message} {e.details}")
            click.echo(click.style(f"Error: {e.message}", fg='red'), err=True)
            sys.exit(1)
    return wrapper


def _format_task(task: Task) -> str:
    check = click.style("x", fg='green') if task.is_complete else " "
    priority = click.style(f"{task.priority.value:<6}", fg=PRIORITY_COLORS[task.priority])
    progress = f"{task.completed_pomodoros}/{task.estimated_pomodoros}"
    link = "" if task.remote_task_id else click.style(" (not synced)", dim=True)
    line = f"[{check}] {task.id:>4}  {priority} {progress:>5}  {task.name}{link}"
    if task.notes:
        line += click.style(f"\n{'':>14}{task.notes}", dim=True)
    return line


def _print_stats(stats: SyncStats) -> None:
    click.echo(f"   Created:   {stats.created}")
    click.echo(f"   Updated:   {stats.updated}")
    click.echo(f"   Deleted:   {stats.deleted}")
    click.echo(f"   Conflicts: {stats.conflicts}")
    if stats.skipped:
        click.echo(click.style(f"   Skipped:   {stats.skipped}", fg='yellow'))
        for failure in stats.failures:
            click.echo(click.style(f"      - {failure}", fg='yellow'))


def _changed(task: Task, verb: str) -> None:
    click.echo(f"{verb} task {task.id}: {task.name} ({task.completed_pomodoros}/{task.estimated_pomodoros})")


# Main CLI group - root command that all subcommands attach to
@click.group(invoke_without_command=True)
@click.option('--config', 'config_path', type=click.Path(path_type=Path), help='Path to config file')
@click.option('--verbose', '-v', is_flag=True, help='Enable debug output')
@click.option('--version', is_flag=True, help='Show version information')
@click.pass_context
def cli(ctx, config_path, verbose, version):
    """
    pomosync - Pomodoro task list with Google Tasks sync
    """
    if version:
        click.echo(f"pomosync {__version__}")
        ctx.exit(0)

    app = AppContext(config_path=config_path, verbose=verbose)
    ctx.obj = app
    ctx.call_on_close(app.close)

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


# =============================================================================
# Task commands
# =============================================================================

@cli.command()
@click.argument('name')
@click.option('--estimate', '-e', type=int, default=1, show_default=True, help='Estimated pomodoros')
@click.option('--priority', '-p', type=PRIORITY_CHOICES, default='medium', show_default=True)
@click.option('--notes', '-n', help='Free-text notes')
@click.pass_obj
@handle_error
def add(app: AppContext, name, estimate, priority, notes):
    """Add a task"""
    task = app.store.insert(name, estimated_pomodoros=estimate, priority=priority, notes=notes)
    _changed(task, "Added")


@cli.command(name='list')
@click.option('--pending', is_flag=True, help='Hide completed tasks')
@click.pass_obj
@handle_error
def list_tasks(app: AppContext, pending):
    """List tasks"""
    tasks = app.store.list_tasks(include_complete=not pending)
    if not tasks:
        click.echo("No tasks yet. Add one with 'pomosync add NAME'")
        return
    for task in tasks:
        click.echo(_format_task(task))


@cli.command()
@click.argument('task_id', type=int)
@click.option('--name')
@click.option('--estimate', type=int, help='Estimated pomodoros')
@click.option('--completed', type=int, help='Completed pomodoros')
@click.option('--priority', '-p', type=PRIORITY_CHOICES)
@click.option('--notes', '-n', help="Free-text notes ('' clears them)")
@click.pass_obj
@handle_error
def edit(app: AppContext, task_id, name, estimate, completed, priority, notes):
    """Edit a task"""
    fields = {
        "name": name,
        "estimated_pomodoros": estimate,
        "completed_pomodoros": completed,
        "priority": priority,
    }
    fields = {key: value for key, value in fields.items() if value is not None}
    if notes is not None:
        fields["notes"] = notes or None

    if not fields:
        raise click.UsageError("Nothing to change; pass at least one option")

    task = app.store.update(task_id, **fields)
    _changed(task, "Updated")


@cli.command()
@click.argument('task_id', type=int)
@click.pass_obj
@handle_error
def done(app: AppContext, task_id):
    """Mark a task complete"""
    task = app.store.set_complete(task_id, True)
    _changed(task, "Completed")


@cli.command()
@click.argument('task_id', type=int)
@click.pass_obj
@handle_error
def undo(app: AppContext, task_id):
    """Reopen a completed task"""
    task = app.store.set_complete(task_id, False)
    _changed(task, "Reopened")


@cli.command()
@click.argument('task_id', type=int)
@click.pass_obj
@handle_error
def pomodoro(app: AppContext, task_id):
    """Record one finished pomodoro"""
    task = app.store.increment_pomodoro(task_id)
    _changed(task, "Completed" if task.is_complete else "Progress on")


@cli.command()
@click.argument('task_id', type=int)
@click.pass_obj
@handle_error
def rm(app: AppContext, task_id):
    """Delete a task (also remotely on the next sync)"""
    task = app.store.get(task_id)
    app.store.delete(task_id)
    click.echo(f"Deleted task {task_id}: {task.name if task else ''}")


# =============================================================================
# Sync commands
# =============================================================================

@cli.command()
@click.pass_obj
@handle_error
def sync(app: AppContext):
    """Run one sync pass now"""
    if not app.tokens.is_connected():
        raise click.ClickException("Not connected. Run 'pomosync auth login' first")

    click.echo("Syncing with Google Tasks...")
    stats = app.scheduler.manual_sync()
    status = app.scheduler.snapshot()

    if status.sync_status == SyncStatusKind.ERROR:
        if stats is not None:
            _print_stats(stats)
        raise click.ClickException(status.last_error or "Sync failed")

    if stats is None:
        click.echo("Sync skipped: another pass is running or one finished moments ago")
        return

    click.echo(click.style("Sync completed", fg='green'))
    _print_stats(stats)


@cli.command()
@click.pass_obj
@handle_error
def status(app: AppContext):
    """Show local task and sync status"""
    counts = app.store.stats()
    click.echo("Tasks:")
    click.echo(f"   Total:        {counts['total']}")
    click.echo(f"   Completed:    {counts['complete']}")
    click.echo(f"   Pomodoros:    {counts['pomodoros']}")
    click.echo(f"   Not synced:   {counts['unlinked']}")
    click.echo(f"   Pending remote deletions: {counts['pending_deletions']}")

    click.echo("Sync:")
    if app.tokens.is_connected():
        age = app.tokens.token_age()
        age_text = f"{age / 60:.0f} min old" if age is not None else "age unknown"
        click.echo(f"   Connected ({age_text}{', stale' if app.tokens.is_stale() else ''})")
    else:
        click.echo("   Not connected. Run 'pomosync auth login'")


@cli.command()
@click.pass_obj
@handle_error
def watch(app: AppContext):
    """Keep syncing until interrupted"""
    if not app.tokens.is_connected():
        raise click.ClickException("Not connected. Run 'pomosync auth login' first")

    scheduler = app.scheduler
    interval = app.config.sync.periodic_interval
    click.echo(f"Watching for changes (periodic sync every {interval / 60:.0f} min). Ctrl-C to stop.")

    scheduler.start()
    scheduler.manual_sync()
    marker = app.store.last_modified()
    last_reported = None
    last_error_reported = None

    try:
        while True:
            time.sleep(WATCH_POLL_INTERVAL)

            current = app.store.last_modified()
            if current != marker:
                marker = current
                scheduler.notify_local_change()

            snapshot = scheduler.snapshot()
            if snapshot.last_sync is not None and snapshot.last_sync != last_reported:
                last_reported = snapshot.last_sync
                # Our own pass changes the store; do not treat it as a local edit
                marker = app.store.last_modified()
                when = format_timestamp(snapshot.last_sync)
                click.echo(f"[{when}] {snapshot.sync_stats}")
            error = snapshot.last_error if snapshot.sync_status == SyncStatusKind.ERROR else None
            if error and error != last_error_reported:
                click.echo(click.style(f"Sync error: {error}", fg='red'), err=True)
            last_error_reported = error
    finally:
        scheduler.stop()


# =============================================================================
# Auth commands
# =============================================================================

@cli.group()
def auth():
    """Connect to or disconnect from Google Tasks"""
    pass


@auth.command()
@click.option('--code', help='Authorization code (skips the prompt)')
@click.option('--no-browser', is_flag=True, help='Print the URL instead of opening a browser')
@click.pass_obj
@handle_error
def login(app: AppContext, code, no_browser):
    """Authorize pomosync to access your tasks"""
    tokens = app.tokens
    if code is None:
        url = tokens.authorization_url()
        click.echo("Open this URL, grant access and paste the code you receive:")
        click.echo(f"   {url}")
        if not no_browser:
            webbrowser.open(url)
        code = click.prompt("Authorization code")

    tokens.exchange_code(code)
    click.echo(click.style("Connected to Google Tasks", fg='green'))


@auth.command()
@click.option('--forget-links', is_flag=True, help='Also unlink local tasks from remote ones')
@click.pass_obj
@handle_error
def logout(app: AppContext, forget_links):
    """Remove stored credentials"""
    app.scheduler.disconnect()
    if forget_links:
        unlinked = app.store.clear_remote_links()
        click.echo(f"Unlinked {unlinked} task(s)")
    click.echo("Disconnected from Google Tasks")


@auth.command(name='status')
@click.pass_obj
@handle_error
def auth_status(app: AppContext):
    """Show connection status"""
    tokens = app.tokens
    if not tokens.is_connected():
        click.echo("Authentication Status: Not connected")
        click.echo("   Run 'pomosync auth login' to connect")
        return

    click.echo("Authentication Status: Connected")
    age = tokens.token_age()
    if age is not None:
        click.echo(f"   Token age: {age / 60:.0f} min")
    click.echo(f"   Refresh token: {'stored' if tokens.refresh_token else 'missing'}")
    click.echo(f"   Needs refresh: {'yes' if tokens.is_stale() else 'no'}")


def main() -> None:
    """Entry point for the pomosync command."""
    cli(prog_name="pomosync")


if __name__ == "__main__":
    main()
