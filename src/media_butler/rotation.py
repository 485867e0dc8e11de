"""Retention: remote deletion of assets older than a cutoff."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, List, Optional, Tuple

from .constants import DEFAULT_ROTATION_DAYS
from .errors import ButlerError, ExitCode, InvalidArgument
from .logging_utils import get_logger
from .manifest import AssetRecord, ManifestStore, utc_now
from .remote import RemoteStore

logger = get_logger(__name__)


@dataclass
class RotationResult:
    project: str
    cutoff: datetime
    dry_run: bool
    affected: List[AssetRecord] = field(default_factory=list)
    errors: List[Tuple[AssetRecord, ButlerError]] = field(default_factory=list)

    @property
    def exit_code(self) -> int:
        return ExitCode.PARTIAL_FAILED if self.errors else ExitCode.SUCCESS


def parse_max_age(value: Any) -> int:
    """Accept a non-negative whole number of days (``"90"`` or ``90``)."""

    if isinstance(value, bool):
        raise InvalidArgument(f"--older-than must be a number of days, got {value!r}")
    try:
        days = int(str(value).strip())
    except (TypeError, ValueError):
        raise InvalidArgument(f"--older-than must be a number of days, got {value!r}") from None
    if days < 0:
        raise InvalidArgument(f"--older-than must not be negative, got {days}")
    return days


class RotationEngine:
    def __init__(self, store: ManifestStore, remote: RemoteStore) -> None:
        self.store = store
        self.remote = remote

    def rotate(
        self,
        project: str,
        max_age_days: Any = DEFAULT_ROTATION_DAYS,
        dry_run: bool = False,
        now: Optional[datetime] = None,
    ) -> RotationResult:
        """Delete remote objects of ACTIVE assets uploaded before ``now - max_age_days``.

        Each asset is handled on its own: a failed delete leaves that record
        ACTIVE and is reported in ``errors`` while the rest continue. The
        manifest is written once after all candidates, and only if at least
        one asset was archived. ``dry_run`` touches neither the store nor
        the manifest.
        """

        days = parse_max_age(max_age_days)
        now = now or utc_now()
        cutoff = now - timedelta(days=days)

        def is_expired(record: AssetRecord) -> bool:
            return record.uploaded_datetime < cutoff

        def delete_remote(record: AssetRecord) -> None:
            logger.info("Deleting %s (uploaded %s)", record.remote_key, record.uploaded_at)
            self.remote.delete(record.remote_key)

        outcome = self.store.archive_assets(project, is_expired, delete_remote, now=now, dry_run=dry_run)
        result = RotationResult(
            project=project,
            cutoff=cutoff,
            dry_run=dry_run,
            affected=outcome.affected,
            errors=outcome.errors,
        )
        logger.info(
            "Rotation of %s: %d %s, %d failed",
            project,
            len(result.affected),
            "would be archived" if dry_run else "archived",
            len(result.errors),
        )
        return result
