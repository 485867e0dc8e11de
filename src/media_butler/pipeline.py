"""Per-file ingestion: hash, dedupe, transcode, upload, record, clean up.

Files are processed strictly one after another. Each file moves through::

    DISCOVERED -> SIZE_CHECKED -> HASHED -> DUPLICATE
                                         -> TRANSCODED -> UPLOADED -> RECORDED -> CLEANED

and may end early in SKIPPED (oversized, not confirmed) or FAILED. A
failure is confined to its file: the source stays on disk and the batch
moves on. The manifest write in :meth:`ManifestStore.record_asset` is the
commit point; the local source is only removed after it succeeds.
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional

from .constants import KIND_VIDEO, TEMP_PREFIX
from .errors import ButlerError, ErrorCode, ExitCode, IoError, ManifestError
from .hashing import file_sha256
from .logging_utils import get_logger
from .manifest import ManifestStore
from .naming import remote_key, system_filename
from .remote import RemoteStore
from .scan import scan_media
from .transcode import Transcoder

logger = get_logger(__name__)

MB = 1024 * 1024

# Called with (path, kind, size_bytes, limit_bytes); True means "ingest anyway"
ConfirmOversize = Callable[[Path, str, int, int], bool]


class FileState(str, Enum):
    DISCOVERED = "discovered"
    SIZE_CHECKED = "size_checked"
    HASHED = "hashed"
    DUPLICATE = "duplicate"
    TRANSCODED = "transcoded"
    UPLOADED = "uploaded"
    RECORDED = "recorded"
    CLEANED = "cleaned"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class FileOutcome:
    """Where one file ended up, and why."""

    path: Path
    kind: str
    state: FileState = FileState.DISCOVERED
    size_bytes: Optional[int] = None
    content_hash: Optional[str] = None
    system_filename: Optional[str] = None
    remote_key: Optional[str] = None
    sequence_number: Optional[int] = None
    message: str = ""
    error_code: Optional[str] = None
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None

    @property
    def ingested(self) -> bool:
        return self.state in (FileState.RECORDED, FileState.CLEANED)

    @property
    def duration_ms(self) -> Optional[int]:
        if self.started_at and self.ended_at:
            return int((self.ended_at - self.started_at).total_seconds() * 1000)
        return None


@dataclass
class SyncResult:
    project: str
    outcomes: List[FileOutcome] = field(default_factory=list)

    def _count(self, *states: FileState) -> int:
        return sum(1 for o in self.outcomes if o.state in states)

    @property
    def processed(self) -> int:
        return len(self.outcomes)

    @property
    def ingested(self) -> int:
        return self._count(FileState.RECORDED, FileState.CLEANED)

    @property
    def duplicates(self) -> int:
        return self._count(FileState.DUPLICATE)

    @property
    def skipped(self) -> int:
        return self._count(FileState.SKIPPED)

    @property
    def failed(self) -> int:
        return self._count(FileState.FAILED)

    @property
    def exit_code(self) -> int:
        return ExitCode.PARTIAL_FAILED if self.failed else ExitCode.SUCCESS


@dataclass
class SyncOptions:
    skip_size_check: bool = False
    max_video_bytes: int = 500 * MB
    max_audio_bytes: int = 50 * MB
    temp_dir: Optional[Path] = None


def _decline(path: Path, kind: str, size_bytes: int, limit_bytes: int) -> bool:
    return False


def _unlink(path: Path, what: str) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        return
    except OSError as exc:
        raise IoError(f"Cannot remove {what} {path}: {exc}") from exc


class IngestionPipeline:
    """Sync the media files of one directory into one project."""

    def __init__(
        self,
        store: ManifestStore,
        transcoder: Transcoder,
        remote: RemoteStore,
        project: str,
        options: Optional[SyncOptions] = None,
        confirm_oversize: Optional[ConfirmOversize] = None,
        on_outcome: Optional[Callable[[FileOutcome], None]] = None,
    ) -> None:
        self.store = store
        self.transcoder = transcoder
        self.remote = remote
        self.project = project
        self.options = options or SyncOptions()
        self.confirm_oversize = confirm_oversize or _decline
        self.on_outcome = on_outcome

    def run(self, directory: Path) -> SyncResult:
        """Process every supported file in ``directory``; never aborts on one file."""

        if self.store.get_project_config(self.project) is None:
            raise ManifestError(
                f"Project {self.project!r} is not configured",
                hint="Create it with a short-code before syncing.",
                code=ErrorCode.MANIFEST_CONFLICT,
            )
        try:
            files = scan_media(directory)
        except OSError as exc:
            raise IoError(f"Cannot list {directory}: {exc}") from exc

        result = SyncResult(project=self.project)
        logger.info("Found %d media files in %s for project %s", len(files), directory, self.project)
        for path, kind in files:
            outcome = self.process_file(path, kind)
            result.outcomes.append(outcome)
            if self.on_outcome is not None:
                self.on_outcome(outcome)
        return result

    def process_file(self, path: Path, kind: str) -> FileOutcome:
        outcome = FileOutcome(path=path, kind=kind, started_at=datetime.now(timezone.utc))
        try:
            self._ingest(outcome)
        except ButlerError as exc:
            outcome.state = FileState.FAILED
            outcome.error_code = exc.code
            outcome.message = exc.message
            logger.error("%s: %s", path.name, exc.message)
            if exc.detail:
                logger.debug("%s detail: %s", path.name, exc.detail)
        except OSError as exc:
            outcome.state = FileState.FAILED
            outcome.error_code = ErrorCode.IO_FAILED
            outcome.message = str(exc)
            logger.error("%s: %s", path.name, exc)
        finally:
            outcome.ended_at = datetime.now(timezone.utc)
        return outcome

    def _limit_for(self, kind: str) -> int:
        return self.options.max_video_bytes if kind == KIND_VIDEO else self.options.max_audio_bytes

    def _temp_path(self, content_hash: str, filename: str) -> Path:
        base = self.options.temp_dir or Path(tempfile.gettempdir())
        return base / f"{TEMP_PREFIX}{content_hash[:16]}_{os.getpid()}_{filename}"

    def _ingest(self, outcome: FileOutcome) -> None:
        path, kind = outcome.path, outcome.kind

        try:
            outcome.size_bytes = path.stat().st_size
        except OSError as exc:
            raise IoError(f"Cannot stat {path}: {exc}") from exc

        limit = self._limit_for(kind)
        if outcome.size_bytes > limit and not self.options.skip_size_check:
            if not self.confirm_oversize(path, kind, outcome.size_bytes, limit):
                outcome.state = FileState.SKIPPED
                outcome.message = f"{outcome.size_bytes / MB:.1f} MB exceeds the {limit / MB:.0f} MB {kind} limit"
                logger.info("Skipping %s: %s", path.name, outcome.message)
                return
        outcome.state = FileState.SIZE_CHECKED

        outcome.content_hash = file_sha256(path)
        outcome.state = FileState.HASHED

        existing = self.store.find_active_asset_by_hash(self.project, outcome.content_hash)
        if existing is not None:
            _unlink(path, "duplicate source")
            outcome.state = FileState.DUPLICATE
            outcome.system_filename = existing.system_filename
            outcome.remote_key = existing.remote_key
            outcome.message = f"already ingested as {existing.system_filename}; local copy removed"
            logger.info("%s is a duplicate of %s", path.name, existing.system_filename)
            return

        # Read the counter as late as possible; record_asset re-checks it under lock.
        sequence = self.store.peek_next_sequence(self.project, kind)
        cfg = self.store.get_project_config(self.project)
        outcome.sequence_number = sequence
        outcome.system_filename = system_filename(cfg.short_code, kind, sequence)
        outcome.remote_key = remote_key(self.project, kind, outcome.system_filename)

        temp_path = self._temp_path(outcome.content_hash, outcome.system_filename)
        try:
            if kind == KIND_VIDEO:
                self.transcoder.transcode_video(path, temp_path)
            else:
                self.transcoder.transcode_audio(path, temp_path)
            outcome.state = FileState.TRANSCODED

            confirmation = self.remote.upload(temp_path, outcome.remote_key)
            outcome.state = FileState.UPLOADED

            try:
                record = self.store.record_asset(
                    self.project,
                    kind,
                    {
                        "original_filename": path.name,
                        "content_hash": outcome.content_hash,
                        "size_bytes": confirmation.size_bytes,
                        "etag": confirmation.etag,
                        "system_filename": outcome.system_filename,
                        "remote_key": outcome.remote_key,
                    },
                )
            except ButlerError:
                logger.error("Uploaded %s but could not record it; remote object is orphaned", outcome.remote_key)
                raise
            outcome.state = FileState.RECORDED
            outcome.sequence_number = record.sequence_number
        finally:
            try:
                temp_path.unlink()
            except FileNotFoundError:
                pass
            except OSError as exc:
                logger.warning("Could not remove temp file %s: %s", temp_path, exc)

        try:
            _unlink(path, "source")
        except IoError as exc:
            outcome.message = f"ingested as {outcome.system_filename}, but {exc.message}"
            outcome.error_code = exc.code
            logger.warning("%s", outcome.message)
            return

        outcome.state = FileState.CLEANED
        outcome.message = f"ingested as {outcome.system_filename}"
        logger.info("%s -> %s", path.name, outcome.remote_key)
