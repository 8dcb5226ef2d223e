"""pibackup CLI."""

import logging
from datetime import datetime
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from pibackup.config import DEFAULT_CONFIG_PATH, get_config_template, load_config
from pibackup.destination import BackupDestination
from pibackup.errors import ConfigurationError, StorageError
from pibackup.formatting import format_duration, format_size
from pibackup.pipeline import run_backup
from pibackup.preflight import resolve_hostname
from pibackup.system import SystemTools
from pibackup.types import BackupArtifact, RunSummary

app = typer.Typer(help="pibackup - Raspberry Pi SD card backup with retention")
console = Console()
err_console = Console(stderr=True)

LOG_TIME_FORMAT = "[%Y-%m-%d %H:%M:%S]"
FILE_LOG_FORMAT = "[%(levelname)s %(asctime)s] %(message)s"


class _BelowError(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno < logging.ERROR


def setup_logging(verbose: bool = False, log_file: Path | None = None):
    """Configure logging: INFO/WARNING to stdout, ERROR to stderr."""
    level = logging.DEBUG if verbose else logging.INFO

    out_handler = RichHandler(
        console=console,
        show_path=False,
        log_time_format=LOG_TIME_FORMAT,
    )
    out_handler.addFilter(_BelowError())

    err_handler = RichHandler(
        console=err_console,
        show_path=False,
        log_time_format=LOG_TIME_FORMAT,
        rich_tracebacks=True,
    )
    err_handler.setLevel(logging.ERROR)

    handlers: list[logging.Handler] = [out_handler, err_handler]
    if log_file is not None:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter(FILE_LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        handlers.append(file_handler)

    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=handlers,
        force=True,
    )


def _config_or_exit(config_path: Path | None, **overrides):
    try:
        return load_config(config_path, **overrides)
    except ConfigurationError as e:
        err_console.print(f"[red]Error:[/red] {e.message}")
        raise typer.Exit(1)


def artifact_table(artifacts: list[BackupArtifact], now: datetime | None = None) -> Table:
    """Table of images with size, date and age."""
    now = now or datetime.now()
    table = Table()
    table.add_column("Backup")
    table.add_column("Size", justify="right")
    table.add_column("Created")
    table.add_column("Age", justify="right")

    for artifact in artifacts:
        table.add_row(
            artifact.name,
            format_size(artifact.size_bytes),
            artifact.modified_at.strftime("%Y-%m-%d %H:%M"),
            f"{artifact.age_days(now)}d",
        )
    return table


def print_summary(summary: RunSummary) -> None:
    """Print the end-of-run report."""
    if not summary.succeeded:
        err_console.print(f"[red]Backup failed:[/red] {summary.error_message}")
        return

    console.print()
    console.print("[bold]Backup Summary[/bold]")
    console.print(f"Total backups on destination: {len(summary.artifacts)}")
    if summary.artifacts:
        console.print(artifact_table(summary.artifacts))

    if summary.snapshot:
        console.print(f"Copy duration: {format_duration(int(summary.snapshot.duration_seconds))}")
    if summary.prune and summary.prune.aborted and summary.prune.candidates:
        console.print("[yellow]Old backups were kept by the safety check.[/yellow]")
    if summary.prune and summary.prune.failed:
        console.print(f"[yellow]{len(summary.prune.failed)} old backup(s) could not be deleted.[/yellow]")
    if summary.shrink and summary.shrink.error:
        console.print("[yellow]Shrink failed; image kept at original size.[/yellow]")

    ended = summary.ended_at or datetime.now()
    console.print(f"[green]Backup completed successfully at {ended:%Y-%m-%d %H:%M:%S}[/green]")


@app.command()
def backup(
    destination: Path | None = typer.Argument(None, help="Mounted backup directory [default: /mnt/backup]"),
    retention_days: int | None = typer.Argument(None, min=0, help="Delete backups older than this [default: 3]"),
    config_path: Path | None = typer.Option(None, "--config", "-c", help="YAML config file"),
    device: Path | None = typer.Option(None, "--device", "-d", help="Source block device"),
    no_resize: bool = typer.Option(False, "--no-resize", help="Skip shrinking the image"),
    log_file: Path | None = typer.Option(None, "--log-file", help="Also append log lines to this file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
):
    """Back up the SD card to DESTINATION and prune old images."""
    setup_logging(verbose, log_file)

    config = _config_or_exit(
        config_path,
        destination_path=destination,
        retention_days=retention_days,
        source_device=device,
        resize_enabled=False if no_resize else None,
    )

    try:
        summary = run_backup(config, SystemTools.local(config.shrink_tool, config.copy_method))
    except KeyboardInterrupt:
        err_console.print("\n[yellow]Interrupted.[/yellow]")
        raise typer.Exit(130)

    print_summary(summary)
    raise typer.Exit(summary.exit_code)


@app.command("list")
def list_backups(
    destination: Path | None = typer.Argument(None, help="Backup directory [default: /mnt/backup]"),
    config_path: Path | None = typer.Option(None, "--config", "-c", help="YAML config file"),
):
    """List this host's backups at DESTINATION."""
    config = _config_or_exit(config_path, destination_path=destination)

    try:
        hostname = resolve_hostname(config, SystemTools.local())
    except ConfigurationError as e:
        err_console.print(f"[red]Error:[/red] {e.message}")
        raise typer.Exit(1)

    store = BackupDestination(config.destination_path, hostname)
    try:
        artifacts = store.list_artifacts()
    except StorageError as e:
        err_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    if not artifacts:
        console.print(f"No backups for {hostname} in {config.destination_path}.")
        return

    console.print(artifact_table(artifacts))
    total = sum(a.size_bytes for a in artifacts)
    console.print(f"{len(artifacts)} backup(s), {format_size(total)} total")


@app.command("init-config")
def init_config(
    path: Path = typer.Argument(DEFAULT_CONFIG_PATH, help="Where to write the template"),
):
    """Write a commented configuration template."""
    if path.exists():
        console.print(f"[yellow]Warning:[/yellow] {path} already exists.")
        if not typer.confirm("Overwrite?"):
            raise typer.Exit(0)

    path.write_text(get_config_template())
    console.print(f"[green]Wrote {path}[/green]")
    console.print(f"\nEdit {path} to configure your backups.")


def main():
    """Entry point for `system-backup [destination] [retention_days]`."""
    typer.run(backup)


if __name__ == "__main__":
    app()
