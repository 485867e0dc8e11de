"""Command-line interface for Media Butler."""
from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import List, NoReturn, Optional

import typer

from .config import Settings, load_settings
from .constants import DEFAULT_ROTATION_DAYS
from .deps import check_deps
from .errors import ButlerError, ExitCode
from .logging_utils import get_logger, setup_logging
from .manifest import ManifestStore
from .naming import suggest_short_code
from .pipeline import MB, FileOutcome, FileState, IngestionPipeline, SyncOptions
from .remote import RemoteStore, S3RemoteStore
from .rotation import RotationEngine, parse_max_age
from .transcode import FfmpegTranscoder, Transcoder

app = typer.Typer(help="Media Butler: process and sync media assets to object storage")
logger = get_logger(__name__)

_STATE_LABELS = {
    FileState.CLEANED: "OK",
    FileState.RECORDED: "OK*",
    FileState.DUPLICATE: "DUP",
    FileState.SKIPPED: "SKIP",
    FileState.FAILED: "FAIL",
}


def build_remote(settings: Settings) -> RemoteStore:
    return S3RemoteStore.from_settings(settings)


def build_transcoder(settings: Settings, ffmpeg_bin: str) -> Transcoder:
    return FfmpegTranscoder(ffmpeg_bin, params=settings.transcode)


def _fail(exc: ButlerError) -> NoReturn:
    hint = f" (hint: {exc.hint})" if exc.hint else ""
    typer.echo(f"ERROR: {exc.message}{hint}", err=True)
    logger.debug("Fatal error detail: %s", exc.to_dict())
    raise typer.Exit(code=exc.exit_code)


def _settings(config: Optional[Path], manifest: Optional[Path]) -> Settings:
    settings = load_settings(config)
    if manifest is not None:
        settings.manifest_path = manifest
    return settings


def _confirm_oversize(path: Path, kind: str, size_bytes: int, limit_bytes: int) -> bool:
    return typer.confirm(
        f"{path.name} is {size_bytes / MB:.1f} MB, above the {limit_bytes / MB:.0f} MB {kind} limit. Upload anyway?",
        default=False,
    )


def _echo_outcome(outcome: FileOutcome) -> None:
    label = _STATE_LABELS.get(outcome.state, outcome.state.value.upper())
    typer.echo(f"[{label}] {outcome.path.name}: {outcome.message}")


@app.command("check-deps")
def check_deps_command(
    config: Optional[Path] = typer.Option(None, "--config", help="Path to YAML config file"),
    json_output: bool = typer.Option(False, "--json", help="Output report as JSON"),
) -> None:
    """Check that ffmpeg is installed with the required encoders."""

    try:
        settings = load_settings(config)
    except ButlerError as exc:
        _fail(exc)

    report = check_deps(settings.ffmpeg_path)
    if json_output:
        typer.echo(json.dumps(report.to_dict(), ensure_ascii=False, indent=2))
        raise typer.Exit(code=report.exit_code)

    typer.echo(f"check-deps: {'OK' if report.ok else 'FAIL'}")
    if report.ffmpeg is not None:
        typer.echo(f"ffmpeg: {report.ffmpeg.path} (version: {report.ffmpeg.version or 'unknown'})")
    else:
        typer.echo("ffmpeg: not found")
    typer.echo("encoders:")
    for name, supported in report.encoders.items():
        typer.echo(f"  - {name}: {'yes' if supported else 'no'}")
    for err in report.errors:
        hint = f" (hint: {err['hint']})" if err.get("hint") else ""
        typer.echo(f"ERROR: {err['message']}{hint}", err=True)
    raise typer.Exit(code=report.exit_code)


@app.command()
def sync(
    project: Optional[str] = typer.Option(None, "--project", "-p", help="Project/namespace name"),
    directory: Optional[Path] = typer.Option(None, "--dir", "-d", help="Local directory with media files"),
    skip_size_check: bool = typer.Option(False, "--skip-size-check", help="Do not ask before large files"),
    short_code: Optional[str] = typer.Option(None, "--short-code", help="Short-code for a new project"),
    manifest: Optional[Path] = typer.Option(None, "--manifest", help="Manifest file (default ./manifest.json)"),
    config: Optional[Path] = typer.Option(None, "--config", help="Path to YAML config file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
    log_file: Optional[Path] = typer.Option(None, "--log-file", help="Write a debug log to this file"),
) -> None:
    """Transcode, upload and record local media files, then remove them."""

    setup_logging(verbose=verbose, log_file=log_file)
    try:
        settings = _settings(config, manifest)
        settings.require_remote()
        store = ManifestStore(settings.manifest_path)
        store.load()
    except ButlerError as exc:
        _fail(exc)

    report = check_deps(settings.ffmpeg_path)
    if not report.ok:
        for err in report.errors:
            typer.echo(f"ERROR: {err['message']}", err=True)
        raise typer.Exit(code=report.exit_code)

    if not project:
        project = typer.prompt("Project/namespace name").strip()
    if directory is None:
        directory = Path(typer.prompt("Local directory path", default="."))
    if not directory.is_dir():
        typer.echo(f"ERROR: Directory does not exist: {directory}", err=True)
        raise typer.Exit(code=ExitCode.INVALID_PARAMS)

    try:
        cfg = store.get_project_config(project)
        if cfg is None:
            code = short_code or typer.prompt(
                f"New project {project!r}: short-code (1-4 uppercase characters)",
                default=suggest_short_code(project),
            )
            cfg = store.set_project_config(project, code.strip().upper())
            typer.echo(f"Created project {project} with short-code {cfg.short_code}")
        elif short_code and short_code.upper() != cfg.short_code:
            typer.echo(f"Project {project} already uses short-code {cfg.short_code}; ignoring --short-code", err=True)

        pipeline = IngestionPipeline(
            store=store,
            transcoder=build_transcoder(settings, report.ffmpeg.path),
            remote=build_remote(settings),
            project=project,
            options=SyncOptions(
                skip_size_check=skip_size_check,
                max_video_bytes=settings.max_video_bytes,
                max_audio_bytes=settings.max_audio_bytes,
            ),
            confirm_oversize=_confirm_oversize,
            on_outcome=_echo_outcome,
        )
        directory = directory.resolve()
        typer.echo(f"Syncing {directory} into project {project} ({cfg.short_code})")
        result = pipeline.run(directory)
    except ButlerError as exc:
        _fail(exc)

    if not result.outcomes:
        typer.echo("No media files found in directory.")
    typer.echo(
        f"Done: {result.processed} processed, {result.ingested} ingested, "
        f"{result.duplicates} duplicates, {result.skipped} skipped, {result.failed} failed"
    )
    raise typer.Exit(code=result.exit_code)


@app.command()
def rotate(
    project: str = typer.Option(..., "--project", "-p", prompt="Project/namespace name", help="Project name"),
    older_than: str = typer.Option(str(DEFAULT_ROTATION_DAYS), "--older-than", help="Age threshold in days"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Only report what would be deleted"),
    manifest: Optional[Path] = typer.Option(None, "--manifest", help="Manifest file (default ./manifest.json)"),
    config: Optional[Path] = typer.Option(None, "--config", help="Path to YAML config file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Delete remote assets older than the threshold and archive them in the manifest."""

    setup_logging(verbose=verbose)
    try:
        days = parse_max_age(older_than)
        settings = _settings(config, manifest)
        settings.require_remote()
        store = ManifestStore(settings.manifest_path)
        store.load()
        engine = RotationEngine(store, build_remote(settings))
        result = engine.rotate(project, days, dry_run=dry_run)
    except ButlerError as exc:
        _fail(exc)

    prefix = "[DRY RUN] " if dry_run else ""
    if not result.affected and not result.errors:
        typer.echo(f"{prefix}No assets in {project} older than {days} days.")
    for record in result.affected:
        verb = "would delete" if dry_run else "deleted"
        typer.echo(f"{prefix}[{verb}] {record.remote_key} (uploaded {record.uploaded_at})")
    for record, error in result.errors:
        typer.echo(f"[FAIL] {record.remote_key}: {error.message}", err=True)

    action = "would be archived" if dry_run else "archived"
    typer.echo(f"{prefix}Done: {len(result.affected)} {action}, {len(result.errors)} failed")
    raise typer.Exit(code=result.exit_code)


@app.command()
def status(
    project: str = typer.Option(..., "--project", "-p", help="Project name"),
    manifest: Optional[Path] = typer.Option(None, "--manifest", help="Manifest file (default ./manifest.json)"),
    config: Optional[Path] = typer.Option(None, "--config", help="Path to YAML config file"),
    json_output: bool = typer.Option(False, "--json", help="Print records as JSON"),
) -> None:
    """List the recorded assets of a project."""

    try:
        settings = _settings(config, manifest)
        store = ManifestStore(settings.manifest_path)
        cfg = store.get_project_config(project)
        records = store.list_assets(project)
    except ButlerError as exc:
        _fail(exc)

    if json_output:
        payload = {
            "project": project,
            "config": cfg.to_dict() if cfg else None,
            "assets": [rec.to_dict() for rec in records],
        }
        typer.echo(json.dumps(payload, ensure_ascii=False, sort_keys=True, indent=2))
        raise typer.Exit(code=ExitCode.SUCCESS)

    if cfg is None:
        typer.echo(f"Project {project} is not configured.")
        raise typer.Exit(code=ExitCode.SUCCESS)

    typer.echo(
        f"{project} ({cfg.short_code}): video counter {cfg.video_counter}, audio counter {cfg.audio_counter}"
    )
    for rec in records:
        typer.echo(f"  {rec.system_filename}  {rec.status:<8}  {rec.uploaded_at}  {rec.original_filename}")


def main(argv: Optional[List[str]] = None) -> int:
    """Entrypoint for console script."""

    argv = argv if argv is not None else sys.argv[1:]
    app(prog_name="butler", args=list(argv))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
