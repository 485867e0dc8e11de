"""Content identity for local media files."""
from __future__ import annotations

import hashlib
from pathlib import Path

from .constants import HASH_CHUNK_SIZE
from .errors import IoError


def file_sha256(path: Path, chunk_size: int = HASH_CHUNK_SIZE) -> str:
    """Return the hex SHA-256 of ``path``, read in fixed-size chunks."""

    digest = hashlib.sha256()
    try:
        with path.open("rb") as handle:
            for chunk in iter(lambda: handle.read(chunk_size), b""):
                digest.update(chunk)
    except OSError as exc:
        raise IoError(f"Cannot hash {path}: {exc}") from exc
    return digest.hexdigest()
