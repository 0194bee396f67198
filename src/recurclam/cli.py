"""CLI entrypoint for recurclam."""

from __future__ import annotations

import json
import shlex
from pathlib import Path
from typing import Any

import click
from pydantic import ValidationError

from recurclam.backlog import ScanTask
from recurclam.config.models import AppSettings
from recurclam.config.store import SettingsStore
from recurclam.paths import settings_path
from recurclam.runner import ScanRun
from recurclam.runtime_logging import configure_runtime_logging
from recurclam.version import __version__
from recurclam.workers.pool import PoolEvent
from recurclam.workers.process import ScannerCommand, worker_log_path

INTERRUPTED_EXIT_CODE = 130


@click.group(invoke_without_command=True, context_settings={"help_option_names": ["-h", "--help"]})
@click.pass_context
def main(ctx: click.Context) -> None:
    """recurclam: depth-limited, process-capped clamscan runs."""
    if ctx.invoked_subcommand is None:
        ctx.invoke(run)


@main.command()
@click.argument("start_path", required=False)
@click.option("--depth", type=click.IntRange(min=0), help="Discovery depth below START_PATH")
@click.option("-j", "--process-limit", type=click.IntRange(min=1), help="Maximum concurrent scanners")
@click.option("--exclude", "exclude_dirs", multiple=True, help="Absolute path to exclude (repeatable)")
@click.option("--scanner", "scanner_command", help="Scanner program and leading arguments")
@click.option("--recursive-flag", help="Flag passed to scanners of the deepest level")
@click.option("--log-dir", type=click.Path(file_okay=False), help="Worker log directory")
@click.option("--settings", "settings_file", type=click.Path(dir_okay=False), help="Settings JSON file")
@click.option("--log-level", help="Runtime log level (off/error/warning/info/debug)")
@click.option("--log-file", type=click.Path(dir_okay=False), help="Runtime JSONL log file")
def run(
    start_path: str | None = None,
    depth: int | None = None,
    process_limit: int | None = None,
    exclude_dirs: tuple[str, ...] = (),
    scanner_command: str | None = None,
    recursive_flag: str | None = None,
    log_dir: str | None = None,
    settings_file: str | None = None,
    log_level: str | None = None,
    log_file: str | None = None,
) -> None:
    """Discover directories and scan them with a capped worker pool."""
    configure_runtime_logging(level=log_level, log_file=log_file)
    settings = _resolve_settings(
        settings_file,
        start_path=start_path,
        depth=depth,
        process_limit=process_limit,
        exclude_dirs=exclude_dirs,
        scanner_command=scanner_command,
        recursive_flag=recursive_flag,
        log_dir=log_dir,
    )

    command = ScannerCommand(
        command=settings.scanner.command,
        recursive_flag=settings.scanner.recursive_flag,
    )
    scan_run = ScanRun(settings, on_event=_ConsoleReporter(command), on_skip=_echo_skip)
    click.echo(f"Scanning for directories (depth = {settings.scan.depth})...")
    click.echo(f"Process limit is set to {settings.scan.process_limit}.")
    try:
        report = scan_run.run()
    except OSError as exc:
        raise click.ClickException(str(exc)) from exc

    summary = report.summary
    click.echo(
        f"Spawned {summary.spawned} of {summary.total} workers: "
        f"{summary.completed} finished, {summary.killed} killed, "
        f"{summary.spawn_failures} failed to start."
    )
    click.echo(f"Worker logs: {scan_run.log_dir}")
    if summary.interrupted:
        raise SystemExit(INTERRUPTED_EXIT_CODE)


@main.command()
@click.argument("start_path", required=False)
@click.option("--depth", type=click.IntRange(min=0))
@click.option("--exclude", "exclude_dirs", multiple=True)
@click.option("--settings", "settings_file", type=click.Path(dir_okay=False))
def discover(
    start_path: str | None,
    depth: int | None,
    exclude_dirs: tuple[str, ...],
    settings_file: str | None,
) -> None:
    """Print discovered frontiers and the scan backlog without scanning."""
    settings = _resolve_settings(
        settings_file,
        start_path=start_path,
        depth=depth,
        exclude_dirs=exclude_dirs,
    )
    skipped: list[dict[str, str]] = []
    scan_run = ScanRun(settings, on_skip=lambda path, reason: skipped.append({"path": path, "reason": reason}))
    frontiers, backlog = scan_run.plan()
    payload = {
        "start_path": scan_run.start_path,
        "depth": settings.scan.depth,
        "frontiers": [list(frontier) for frontier in frontiers],
        "backlog": [
            {"index": index, "path": task.path, "recursive": task.recursive}
            for index, task in enumerate(backlog)
        ],
        "skipped": skipped,
    }
    click.echo(json.dumps(payload, indent=2))


@main.command()
@click.argument("index", type=click.IntRange(min=0))
@click.option("--log-dir", type=click.Path(file_okay=False))
@click.option("--limit", type=click.IntRange(min=1), default=100, show_default=True)
@click.option("--settings", "settings_file", type=click.Path(dir_okay=False))
def logs(index: int, log_dir: str | None, limit: int, settings_file: str | None) -> None:
    """Print the tail of one worker's log."""
    settings = _resolve_settings(settings_file, log_dir=log_dir)
    path = worker_log_path(Path(settings.logs.worker_log_dir).expanduser(), index)
    if not path.exists():
        raise click.ClickException(f"Worker log not found: {path}")

    lines = path.read_text(encoding="utf-8", errors="replace").splitlines()
    for line in lines[-limit:]:
        click.echo(line)


@main.group()
def config() -> None:
    """Inspect or change stored settings."""


@config.command("show")
@click.option("--settings", "settings_file", type=click.Path(dir_okay=False))
def config_show(settings_file: str | None) -> None:
    """Print every stored setting."""
    settings = _store(settings_file).load()
    for key, value in settings.setting_items():
        click.echo(f"{key} = {value}")


@config.command("set")
@click.argument("key")
@click.argument("value")
@click.option("--settings", "settings_file", type=click.Path(dir_okay=False))
def config_set(key: str, value: str, settings_file: str | None) -> None:
    """Store one setting; VALUE is parsed as JSON when possible."""
    try:
        parsed: Any = json.loads(value)
    except json.JSONDecodeError:
        parsed = value
    try:
        _store(settings_file).update(key, parsed)
    except KeyError as exc:
        raise click.BadParameter(str(exc.args[0]), param_hint="KEY")
    except ValidationError as exc:
        raise click.BadParameter(str(exc), param_hint="VALUE")
    click.echo(f"{key} = {parsed}")


@main.command("settings-path")
def settings_path_command() -> None:
    """Print settings file path."""
    click.echo(str(settings_path()))


@main.command()
def about() -> None:
    """Show version and project summary."""
    payload = {
        "name": "recurclam",
        "version": __version__,
        "description": "Depth-limited directory discovery with capped parallel clamscan workers",
    }
    click.echo(json.dumps(payload, indent=2))


class _ConsoleReporter:
    def __init__(self, command: ScannerCommand) -> None:
        self.command = command

    def __call__(self, event: PoolEvent) -> None:
        payload = event.payload
        if event.type == "worker.spawned":
            task = ScanTask(path=payload["path"], recursive=payload["recursive"])
            click.echo(f"Spawning worker {payload['index']}: {shlex.join(self.command.argv(task))}")
        elif event.type == "worker.finished":
            click.echo(f"Worker {payload['index']} finished ({payload['termination']}).")
        elif event.type == "worker.killed":
            click.secho(
                f"Worker {payload['index']} received SIGKILL and will not spawn next worker.",
                fg="yellow",
                err=True,
            )
        elif event.type == "worker.spawn_failed":
            click.secho(f"Skipping worker {payload['index']}: {payload['error']}", fg="red", err=True)
        elif event.type == "pool.shutdown":
            click.secho(f"Received interrupt. Terminating {payload['active']} workers.", fg="yellow", err=True)


def _echo_skip(path: str, reason: str) -> None:
    click.secho(f"Skipping {path}: {reason}.", fg="yellow", err=True)


def _store(settings_file: str | None) -> SettingsStore:
    return SettingsStore(Path(settings_file).expanduser() if settings_file else None)


def _resolve_settings(
    settings_file: str | None,
    *,
    start_path: str | None = None,
    depth: int | None = None,
    process_limit: int | None = None,
    exclude_dirs: tuple[str, ...] = (),
    scanner_command: str | None = None,
    recursive_flag: str | None = None,
    log_dir: str | None = None,
) -> AppSettings:
    """Stored settings with command-line overrides applied for this run."""
    data = _store(settings_file).load().model_dump()
    overrides = {
        ("scan", "start_path"): start_path,
        ("scan", "depth"): depth,
        ("scan", "process_limit"): process_limit,
        ("scan", "exclude_dirs"): list(exclude_dirs) or None,
        ("scanner", "command"): scanner_command,
        ("scanner", "recursive_flag"): recursive_flag,
        ("logs", "worker_log_dir"): log_dir,
    }
    for (section, key), value in overrides.items():
        if value is not None:
            data[section][key] = value

    try:
        return AppSettings.model_validate(data)
    except ValidationError as exc:
        raise click.ClickException(f"Invalid settings: {exc}")


if __name__ == "__main__":
    main()
