"""Constants and naming conventions for Media Butler."""
from __future__ import annotations

from pathlib import Path

DEFAULT_MANIFEST_PATH = Path("manifest.json")
DEFAULT_CONFIG_FILENAME = "butler.yaml"
MANIFEST_SCHEMA_VERSION = "manifest.v1"
LOCK_SUFFIX = ".lock"
TEMP_PREFIX = "butler_"

# Supported extensions for scanning (case-insensitive)
VIDEO_EXTENSIONS = {".mp4", ".mov", ".avi", ".mkv"}
AUDIO_EXTENSIONS = {".mp3", ".wav", ".m4a", ".aac", ".ogg"}

KIND_VIDEO = "video"
KIND_AUDIO = "audio"
MEDIA_KINDS = (KIND_VIDEO, KIND_AUDIO)

# Per-kind naming: filename code, output extension, remote folder
KIND_CODES = {KIND_VIDEO: "VID", KIND_AUDIO: "AUD"}
KIND_EXTENSIONS = {KIND_VIDEO: ".mp4", KIND_AUDIO: ".m4a"}
KIND_FOLDERS = {KIND_VIDEO: "videos", KIND_AUDIO: "audios"}

STATUS_ACTIVE = "active"
STATUS_ARCHIVED = "archived"

SHORT_CODE_MAX_LEN = 4
DEFAULT_ROTATION_DAYS = 90

HASH_CHUNK_SIZE = 1024 * 1024
