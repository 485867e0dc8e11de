"""Directory listing and media-kind classification for sync."""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Tuple

from .constants import AUDIO_EXTENSIONS, KIND_AUDIO, KIND_VIDEO, TEMP_PREFIX, VIDEO_EXTENSIONS


IGNORED_NAMES = {".DS_Store", "Thumbs.db"}


def classify(path: Path) -> Optional[str]:
    """Return ``video``/``audio`` by extension (case-insensitive), else ``None``."""

    suffix = path.suffix.lower()
    if suffix in VIDEO_EXTENSIONS:
        return KIND_VIDEO
    if suffix in AUDIO_EXTENSIONS:
        return KIND_AUDIO
    return None


def _should_ignore(path: Path) -> bool:
    name = path.name
    return name in IGNORED_NAMES or name.startswith(".") or name.startswith(TEMP_PREFIX)


def scan_media(root: Path) -> List[Tuple[Path, str]]:
    """List supported media files directly inside ``root``, sorted by name."""

    found: List[Tuple[Path, str]] = []
    for path in root.iterdir():
        if not path.is_file() or _should_ignore(path):
            continue
        kind = classify(path)
        if kind is None:
            continue
        found.append((path, kind))

    found.sort(key=lambda item: item[0].name)
    return found
