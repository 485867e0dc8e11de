"""Durable project/asset manifest with atomic, locked read-modify-write.

The manifest is a single JSON document::

    {
      "schema_version": "manifest.v1",
      "updated_at": "...",
      "projects": {"demo": {"short_code": "DM", "video_counter": 1, ...}},
      "assets": {"demo": [{"kind": "video", "sequence_number": 1, ...}]}
    }

Every mutation takes an exclusive advisory lock on ``<manifest>.lock``,
re-reads the document from disk, applies the change, and replaces the file
atomically. Readers never observe a partially written document.
"""
from __future__ import annotations

import contextlib
import fcntl
import json
import os
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Tuple

from jsonschema import Draft202012Validator

from .constants import (
    KIND_AUDIO,
    KIND_VIDEO,
    LOCK_SUFFIX,
    MANIFEST_SCHEMA_VERSION,
    MEDIA_KINDS,
    STATUS_ACTIVE,
    STATUS_ARCHIVED,
)
from .errors import ButlerError, ErrorCode, InvalidArgument, ManifestError
from .logging_utils import get_logger
from .naming import remote_key as build_remote_key
from .naming import system_filename as build_system_filename
from .naming import validate_short_code

logger = get_logger(__name__)

_COUNTER_FIELDS = {KIND_VIDEO: "video_counter", KIND_AUDIO: "audio_counter"}

MANIFEST_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "required": ["schema_version", "projects", "assets"],
    "properties": {
        "schema_version": {"const": MANIFEST_SCHEMA_VERSION},
        "updated_at": {"type": ["string", "null"]},
        "projects": {
            "type": "object",
            "additionalProperties": {
                "type": "object",
                "required": ["short_code", "video_counter", "audio_counter"],
                "properties": {
                    "short_code": {"type": "string", "pattern": "^[A-Z][A-Z0-9]{0,3}$"},
                    "video_counter": {"type": "integer", "minimum": 0},
                    "audio_counter": {"type": "integer", "minimum": 0},
                    "created_at": {"type": ["string", "null"]},
                },
            },
        },
        "assets": {
            "type": "object",
            "additionalProperties": {
                "type": "array",
                "items": {
                    "type": "object",
                    "required": [
                        "kind",
                        "system_filename",
                        "original_filename",
                        "content_hash",
                        "remote_key",
                        "size_bytes",
                        "sequence_number",
                        "uploaded_at",
                        "status",
                    ],
                    "properties": {
                        "kind": {"enum": list(MEDIA_KINDS)},
                        "system_filename": {"type": "string"},
                        "original_filename": {"type": "string"},
                        "content_hash": {"type": "string", "pattern": "^[0-9a-f]{64}$"},
                        "remote_key": {"type": "string"},
                        "size_bytes": {"type": "integer", "minimum": 0},
                        "sequence_number": {"type": "integer", "minimum": 1},
                        "uploaded_at": {"type": "string"},
                        "status": {"enum": [STATUS_ACTIVE, STATUS_ARCHIVED]},
                        "deleted_at": {"type": ["string", "null"]},
                        "etag": {"type": ["string", "null"]},
                    },
                },
            },
        },
    },
}

_VALIDATOR = Draft202012Validator(MANIFEST_SCHEMA)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def parse_timestamp(value: str) -> datetime:
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class ProjectConfig:
    """Naming short-code and per-kind counters of one project."""

    short_code: str
    video_counter: int = 0
    audio_counter: int = 0
    created_at: Optional[str] = None

    def counter(self, kind: str) -> int:
        return getattr(self, _counter_field(kind))

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ProjectConfig":
        return cls(
            short_code=data["short_code"],
            video_counter=int(data.get("video_counter", 0)),
            audio_counter=int(data.get("audio_counter", 0)),
            created_at=data.get("created_at"),
        )


@dataclass
class AssetRecord:
    """One successfully ingested file."""

    kind: str
    system_filename: str
    original_filename: str
    content_hash: str
    remote_key: str
    size_bytes: int
    sequence_number: int
    uploaded_at: str
    status: str = STATUS_ACTIVE
    deleted_at: Optional[str] = None
    etag: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status == STATUS_ACTIVE

    @property
    def uploaded_datetime(self) -> datetime:
        return parse_timestamp(self.uploaded_at)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AssetRecord":
        return cls(
            kind=data["kind"],
            system_filename=data["system_filename"],
            original_filename=data["original_filename"],
            content_hash=data["content_hash"],
            remote_key=data["remote_key"],
            size_bytes=int(data["size_bytes"]),
            sequence_number=int(data["sequence_number"]),
            uploaded_at=data["uploaded_at"],
            status=data.get("status", STATUS_ACTIVE),
            deleted_at=data.get("deleted_at"),
            etag=data.get("etag"),
        )


@dataclass
class Manifest:
    """Root document: project configs and their ordered asset lists."""

    projects: Dict[str, ProjectConfig] = field(default_factory=dict)
    assets: Dict[str, List[AssetRecord]] = field(default_factory=dict)
    updated_at: Optional[str] = None

    def project_assets(self, project: str) -> List[AssetRecord]:
        return self.assets.get(project, [])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "schema_version": MANIFEST_SCHEMA_VERSION,
            "updated_at": self.updated_at,
            "projects": {name: cfg.to_dict() for name, cfg in self.projects.items()},
            "assets": {name: [rec.to_dict() for rec in recs] for name, recs in self.assets.items()},
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Manifest":
        return cls(
            projects={name: ProjectConfig.from_dict(cfg) for name, cfg in data.get("projects", {}).items()},
            assets={
                name: [AssetRecord.from_dict(rec) for rec in recs] for name, recs in data.get("assets", {}).items()
            },
            updated_at=data.get("updated_at"),
        )


@dataclass
class ArchiveResult:
    """Outcome of :meth:`ManifestStore.archive_assets`."""

    affected: List[AssetRecord] = field(default_factory=list)
    errors: List[Tuple[AssetRecord, ButlerError]] = field(default_factory=list)
    persisted: bool = False


def _counter_field(kind: str) -> str:
    try:
        return _COUNTER_FIELDS[kind]
    except KeyError:
        raise InvalidArgument(f"Unknown media kind: {kind!r}") from None


def validate_manifest_data(data: Any) -> List[str]:
    """Return schema and invariant violations of a raw manifest document."""

    problems = [
        f"{'/'.join(str(p) for p in err.absolute_path) or '<root>'}: {err.message}"
        for err in _VALIDATOR.iter_errors(data)
    ]
    if problems:
        return problems

    for project, records in data["assets"].items():
        cfg = data["projects"].get(project)
        if cfg is None:
            problems.append(f"assets/{project}: project has no config")
            continue
        active_hashes: Dict[str, int] = {}
        last_seq = {kind: 0 for kind in MEDIA_KINDS}
        for rec in records:
            kind = rec["kind"]
            seq = rec["sequence_number"]
            if seq <= last_seq[kind]:
                problems.append(f"assets/{project}: {kind} sequence {seq} is not increasing")
            last_seq[kind] = max(last_seq[kind], seq)
            if rec["status"] == STATUS_ACTIVE:
                if rec["content_hash"] in active_hashes:
                    problems.append(f"assets/{project}: duplicate active hash {rec['content_hash'][:12]}")
                active_hashes[rec["content_hash"]] = seq
        for kind in MEDIA_KINDS:
            if cfg[_COUNTER_FIELDS[kind]] < last_seq[kind]:
                problems.append(f"projects/{project}: {kind} counter is behind issued sequence {last_seq[kind]}")
    return problems


class ManifestStore:
    """File-backed manifest with single-writer commit semantics."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self.lock_path = self.path.with_name(self.path.name + LOCK_SUFFIX)

    # -- persistence -----------------------------------------------------

    @contextlib.contextmanager
    def _locked(self) -> Iterator[None]:
        try:
            self.lock_path.parent.mkdir(parents=True, exist_ok=True)
            handle = self.lock_path.open("a+")
        except OSError as exc:
            raise ManifestError(f"Cannot open manifest lock {self.lock_path}: {exc}") from exc
        try:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
            yield
        finally:
            fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
            handle.close()

    def _read(self) -> Manifest:
        if not self.path.exists():
            return Manifest()
        try:
            with self.path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as exc:
            raise ManifestError(f"Manifest {self.path} is not valid JSON: {exc}") from exc
        except OSError as exc:
            raise ManifestError(f"Cannot read manifest {self.path}: {exc}") from exc

        problems = validate_manifest_data(data)
        if problems:
            raise ManifestError(
                f"Manifest {self.path} failed validation",
                hint="Restore the manifest from a backup or fix the listed entries by hand.",
                detail={"problems": problems[:20]},
            )
        return Manifest.from_dict(data)

    def _write(self, manifest: Manifest) -> None:
        manifest.updated_at = format_timestamp(utc_now())
        tmp = self.path.with_name(f"{self.path.name}.{os.getpid()}.tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with tmp.open("w", encoding="utf-8", newline="\n") as f:
                json.dump(manifest.to_dict(), f, ensure_ascii=False, sort_keys=True, indent=2)
                f.write("\n")
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, self.path)
        except OSError as exc:
            with contextlib.suppress(OSError):
                tmp.unlink()
            raise ManifestError(f"Cannot write manifest {self.path}: {exc}", code=ErrorCode.MANIFEST_CORRUPT) from exc

    def _mutate(self, change: Callable[[Manifest], Any]) -> Any:
        with self._locked():
            manifest = self._read()
            result = change(manifest)
            self._write(manifest)
        return result

    # -- queries ---------------------------------------------------------

    def load(self) -> Manifest:
        """Return the manifest on disk, or an empty one when none exists yet."""

        return self._read()

    def get_project_config(self, project: str) -> Optional[ProjectConfig]:
        return self.load().projects.get(project)

    def find_active_asset_by_hash(self, project: str, content_hash: str) -> Optional[AssetRecord]:
        for record in self.load().project_assets(project):
            if record.is_active and record.content_hash == content_hash:
                return record
        return None

    def list_assets(self, project: str, status: Optional[str] = None) -> List[AssetRecord]:
        records = self.load().project_assets(project)
        if status is None:
            return list(records)
        return [rec for rec in records if rec.status == status]

    def peek_next_sequence(self, project: str, kind: str) -> int:
        """Counter value the next :meth:`record_asset` for ``kind`` will assign."""

        cfg = self.get_project_config(project)
        if cfg is None:
            raise ManifestError(f"Project {project!r} is not configured", code=ErrorCode.MANIFEST_CONFLICT)
        return cfg.counter(kind) + 1

    # -- mutations -------------------------------------------------------

    def set_project_config(
        self,
        project: str,
        short_code: str,
        initial_counters: Optional[Mapping[str, int]] = None,
    ) -> ProjectConfig:
        """Create the config of a new project; never overwrites an existing one."""

        if not project:
            raise InvalidArgument("Project name must not be empty")
        validate_short_code(short_code)
        counters = dict(initial_counters or {})
        for kind, value in counters.items():
            _counter_field(kind)
            if not isinstance(value, int) or value < 0:
                raise InvalidArgument(f"Initial {kind} counter must be a non-negative integer, got {value!r}")

        def change(manifest: Manifest) -> ProjectConfig:
            if project in manifest.projects:
                raise InvalidArgument(
                    f"Project {project!r} is already configured with short-code "
                    f"{manifest.projects[project].short_code!r}"
                )
            for other, cfg in manifest.projects.items():
                if cfg.short_code == short_code:
                    raise InvalidArgument(f"Short-code {short_code!r} is already used by project {other!r}")
            cfg = ProjectConfig(
                short_code=short_code,
                video_counter=counters.get(KIND_VIDEO, 0),
                audio_counter=counters.get(KIND_AUDIO, 0),
                created_at=format_timestamp(utc_now()),
            )
            manifest.projects[project] = cfg
            manifest.assets.setdefault(project, [])
            return cfg

        cfg = self._mutate(change)
        logger.info("Configured project %s with short-code %s", project, short_code)
        return cfg

    def record_asset(self, project: str, kind: str, fields: Mapping[str, Any]) -> AssetRecord:
        """Increment the (project, kind) counter, append an ACTIVE record, persist.

        ``fields`` carries ``original_filename``, ``content_hash``,
        ``size_bytes`` and optionally ``etag``, ``uploaded_at``,
        ``remote_key`` and ``system_filename``. When the caller passes the
        filename or key it uploaded under, they must match what the new
        counter value produces; a mismatch means another writer advanced the
        counter in between and is reported as a conflict.
        """

        counter_field = _counter_field(kind)

        def change(manifest: Manifest) -> AssetRecord:
            cfg = manifest.projects.get(project)
            if cfg is None:
                raise ManifestError(f"Project {project!r} is not configured", code=ErrorCode.MANIFEST_CONFLICT)
            content_hash = fields["content_hash"]
            for existing in manifest.project_assets(project):
                if existing.is_active and existing.content_hash == content_hash:
                    raise ManifestError(
                        f"Active asset {existing.system_filename} already has hash {content_hash[:12]}",
                        code=ErrorCode.MANIFEST_CONFLICT,
                    )

            sequence = getattr(cfg, counter_field) + 1
            filename = build_system_filename(cfg.short_code, kind, sequence)
            key = build_remote_key(project, kind, filename)
            for name, expected in (("system_filename", filename), ("remote_key", key)):
                given = fields.get(name)
                if given is not None and given != expected:
                    raise ManifestError(
                        f"{name} {given!r} does not match allocated {expected!r}",
                        code=ErrorCode.MANIFEST_CONFLICT,
                    )

            uploaded_at = fields.get("uploaded_at") or utc_now()
            if isinstance(uploaded_at, datetime):
                uploaded_at = format_timestamp(uploaded_at)
            record = AssetRecord(
                kind=kind,
                system_filename=filename,
                original_filename=fields["original_filename"],
                content_hash=content_hash,
                remote_key=key,
                size_bytes=int(fields["size_bytes"]),
                sequence_number=sequence,
                uploaded_at=uploaded_at,
                etag=fields.get("etag"),
            )
            setattr(cfg, counter_field, sequence)
            manifest.assets.setdefault(project, []).append(record)
            return record

        record = self._mutate(change)
        logger.debug("Recorded %s as %s (seq %d)", record.original_filename, record.system_filename, record.sequence_number)
        return record

    def archive_assets(
        self,
        project: str,
        predicate: Callable[[AssetRecord], bool],
        on_delete: Callable[[AssetRecord], Any],
        now: Optional[datetime] = None,
        dry_run: bool = False,
    ) -> ArchiveResult:
        """Archive ACTIVE assets matching ``predicate`` whose ``on_delete`` succeeds.

        Candidates are visited in manifest order. A failing ``on_delete``
        leaves that record ACTIVE and is collected in ``errors``. The
        manifest is written once at the end, and only if something was
        archived. With ``dry_run`` nothing is called or written.
        """

        result = ArchiveResult()
        stamp = format_timestamp(now or utc_now())

        with self._locked():
            manifest = self._read()
            for record in manifest.project_assets(project):
                if not record.is_active or not predicate(record):
                    continue
                if dry_run:
                    result.affected.append(record)
                    continue
                try:
                    on_delete(record)
                except ButlerError as exc:
                    logger.warning("Remote delete failed for %s: %s", record.remote_key, exc)
                    result.errors.append((record, exc))
                    continue
                record.status = STATUS_ARCHIVED
                record.deleted_at = stamp
                result.affected.append(record)

            if result.affected and not dry_run:
                self._write(manifest)
                result.persisted = True
        return result
