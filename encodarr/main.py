import shlex
import typer
import threading
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from encodarr.config.loader import ProfileRegistry, default_config_path, ensure_config_exists, load_config
from encodarr.config.models import AppConfig
from encodarr.config.paths import PathResolver
from encodarr.domain.errors import EncodarrError
from encodarr.domain.events import JobCompleted, JobFailed
from encodarr.infrastructure.event_bus import EventBus
from encodarr.infrastructure.ffmpeg import FFmpegAdapter
from encodarr.infrastructure.ffprobe import FFprobeAdapter
from encodarr.infrastructure.housekeeping import HousekeepingService
from encodarr.infrastructure.logging import job_logger, new_job_id, setup_logging
from encodarr.pipeline.queue import ProcessingQueue
from encodarr.policy.selection import StreamSelector

app = typer.Typer(help="encodarr - rule-driven re-encoding of newly imported media files")

CONFIG_HELP = "Path to YAML config (default: $CONFIG_DIR/encodarr.yaml or conf/encodarr.yaml)"


def _fail(message: str) -> None:
    typer.secho(f"Error: {message}", fg=typer.colors.RED, err=True)
    raise typer.Exit(code=1)


def _load(config_path: Optional[Path]) -> AppConfig:
    path = config_path or default_config_path()
    try:
        return load_config(path)
    except FileNotFoundError as exc:
        _fail(f"{exc} (run 'encodarr init-config' to create one)")
    except (ValidationError, ValueError) as exc:
        _fail(f"Invalid config {path}: {exc}")


def _resolver(config: AppConfig) -> PathResolver:
    return PathResolver(config.general.data_dir, config.general.transcode_dir, config.general.output_dir)


@app.command()
def process(
    paths: List[str] = typer.Argument(..., help="Paths to process, relative to the data directory"),
    profile: Optional[str] = typer.Option(None, "--profile", "-p", help="Profile name (unknown names use 'default')"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help=CONFIG_HELP),
    concurrency: Optional[int] = typer.Option(None, "--concurrency", "-j", help="Override number of concurrent encodes"),
    no_delay: bool = typer.Option(False, "--no-delay", help="Ignore the profile delay"),
    debug: bool = typer.Option(False, "--debug/--no-debug", help="Enable verbose debug logging"),
):
    """Encode one or more files and wait until every job has finished."""
    config = _load(config_path)
    # Apply CLI overrides
    if concurrency is not None:
        if concurrency < 1:
            _fail("--concurrency must be at least 1")
        config.general.concurrency = concurrency
    if debug:
        config.general.debug = True

    logger = setup_logging(debug=config.general.debug, log_path=config.general.log_path)
    logger.info(
        f"Config: concurrency={config.general.concurrency}, data_dir={config.general.data_dir}, "
        f"transcode_dir={config.general.transcode_dir}, output_dir={config.general.output_dir}"
    )

    profiles = ProfileRegistry(config.profiles)
    if no_delay:
        profiles = ProfileRegistry(
            {name: p.model_copy(update={"delay_minutes": 0.0}) for name, p in config.profiles.items()}
        )

    if config.general.clean_temp_on_start:
        extensions = {p.extension for p in config.profiles.values()}
        HousekeepingService().cleanup_temp_files(config.general.transcode_dir, extensions)

    bus = EventBus()
    results: Dict[str, List[str]] = {"completed": [], "failed": []}
    results_lock = threading.Lock()

    @bus.subscribe(JobCompleted)
    def on_completed(event: JobCompleted):
        with results_lock:
            results["completed"].append(str(event.job.dest_path))

    @bus.subscribe(JobFailed)
    def on_failed(event: JobFailed):
        with results_lock:
            results["failed"].append(f"{event.job.source_path}: {event.error_message}")

    queue = ProcessingQueue(
        config=config,
        event_bus=bus,
        profiles=profiles,
        path_resolver=_resolver(config),
        ffprobe_adapter=FFprobeAdapter(config.general.ffprobe_path),
        ffmpeg_adapter=FFmpegAdapter(
            event_bus=bus,
            ffmpeg_path=config.general.ffmpeg_path,
            progress_interval_s=config.general.progress_interval_s,
        ),
    )

    try:
        for path in paths:
            queue.submit(path, profile)
        queue.shutdown(wait=True)
    except KeyboardInterrupt:
        typer.secho("\nStopped by user (Ctrl+C)", fg=typer.colors.YELLOW)
        queue.shutdown(wait=False)
        raise typer.Exit(code=130)

    for dest in results["completed"]:
        typer.secho(f"OK   {dest}", fg=typer.colors.GREEN)
    for failure in results["failed"]:
        typer.secho(f"FAIL {failure}", fg=typer.colors.RED, err=True)
    typer.echo(f"{len(results['completed'])} completed, {len(results['failed'])} failed")
    if results["failed"]:
        raise typer.Exit(code=1)


@app.command()
def plan(
    path: str = typer.Argument(..., help="Path to inspect, relative to the data directory"),
    profile: Optional[str] = typer.Option(None, "--profile", "-p", help="Profile name (unknown names use 'default')"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help=CONFIG_HELP),
    debug: bool = typer.Option(False, "--debug/--no-debug", help="Enable verbose debug logging"),
):
    """Show the streams and ffmpeg command a file would get, without encoding."""
    config = _load(config_path)
    setup_logging(debug=debug or config.general.debug)
    log = job_logger(new_job_id())

    selected_profile = ProfileRegistry(config.profiles).resolve(profile)
    resolver = _resolver(config)
    source_path = resolver.source_path(path, selected_profile)

    try:
        streams = FFprobeAdapter(config.general.ffprobe_path).probe(source_path)
    except EncodarrError as exc:
        _fail(str(exc))

    destination = StreamSelector(log).select(streams, selected_profile)
    dest_path = resolver.destination_path(source_path, selected_profile)
    temp_path = resolver.temp_path(selected_profile)

    console = Console()
    console.print(f"[bold]Source:[/bold]      {escape(str(source_path))}", soft_wrap=True)
    console.print(f"[bold]Destination:[/bold] {escape(str(dest_path))}", soft_wrap=True)

    table = Table(title="Streams", title_justify="left", expand=False)
    table.add_column("#", justify="right")
    table.add_column("Kind")
    table.add_column("Codec")
    table.add_column("Role")
    table.add_column("Output", overflow="fold")
    for stream in destination:
        role = "primary" if stream.is_primary else "secondary"
        settings = stream.output.model_dump(exclude_none=True) if stream.output else {}
        output = " ".join(f"{key}={value}" for key, value in settings.items())
        table.add_row(str(stream.index), stream.kind.value, stream.codec, role, escape(output))
    console.print(table)

    cmd = FFmpegAdapter(ffmpeg_path=config.general.ffmpeg_path).build_command(source_path, destination, temp_path)
    console.print("[bold]Command:[/bold]")
    # One unwrapped line so it can be pasted into a shell
    console.print(shlex.join(cmd), markup=False, highlight=False, soft_wrap=True)


@app.command()
def profiles(
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help=CONFIG_HELP),
):
    """List configured profiles."""
    config = _load(config_path)
    table = Table(show_header=True, box=None, padding=(0, 2))
    table.add_column("Profile", style="bold cyan", no_wrap=True)
    table.add_column("Extension")
    table.add_column("Delay", justify="right")
    table.add_column("Mappings", justify="right")
    table.add_column("Encoder rules", justify="right")
    for name, item in config.profiles.items():
        table.add_row(
            name,
            item.extension,
            f"{item.delay_minutes:g} min",
            str(len(item.path_mappings)),
            str(len(item.encoder_rules)),
        )
    Console().print(table)


@app.command("init-config")
def init_config(
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help=CONFIG_HELP),
):
    """Write a default configuration file if none exists."""
    path = config_path or default_config_path()
    if ensure_config_exists(path):
        typer.secho(f"Created {path}", fg=typer.colors.GREEN)
    else:
        typer.echo(f"{path} already exists")


if __name__ == "__main__":
    app()
