"""Configuration loading for Media Butler.

Settings come from three layers, highest precedence first: environment
variables, an optional YAML file, and the built-in defaults below. The YAML
file uses the same lower-case keys as :class:`Settings`.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml

from .constants import DEFAULT_CONFIG_FILENAME, DEFAULT_MANIFEST_PATH
from .errors import ConfigError, ErrorCode

# Environment variable -> settings key
ENV_KEYS: Dict[str, str] = {
    "R2_ACCESS_KEY_ID": "access_key_id",
    "R2_SECRET_ACCESS_KEY": "secret_access_key",
    "R2_ENDPOINT": "endpoint_url",
    "R2_BUCKET_NAME": "bucket",
    "FFMPEG_PATH": "ffmpeg_path",
    "MAX_VIDEO_SIZE_MB": "max_video_size_mb",
    "MAX_AUDIO_SIZE_MB": "max_audio_size_mb",
    "BUTLER_MANIFEST": "manifest_path",
}

REQUIRED_REMOTE_KEYS = ("access_key_id", "secret_access_key", "endpoint_url", "bucket")


@dataclass
class TranscodeParams:
    """Fixed encoder parameters passed to ffmpeg."""

    video_crf: int = 24
    video_preset: str = "medium"
    max_width: int = 1920
    max_height: int = 1080
    audio_bitrate: str = "128k"
    timeout_sec: int = 3600

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TranscodeParams":
        try:
            return cls(
                video_crf=int(data.get("video_crf", cls.video_crf)),
                video_preset=str(data.get("video_preset", cls.video_preset)),
                max_width=int(data.get("max_width", cls.max_width)),
                max_height=int(data.get("max_height", cls.max_height)),
                audio_bitrate=str(data.get("audio_bitrate", cls.audio_bitrate)),
                timeout_sec=int(data.get("timeout_sec", cls.timeout_sec)),
            )
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Invalid transcode settings: {exc}", code=ErrorCode.CONFIG_INVALID) from exc


@dataclass
class Settings:
    """Resolved runtime settings."""

    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    endpoint_url: Optional[str] = None
    bucket: Optional[str] = None
    region: str = "auto"
    ffmpeg_path: Optional[str] = None
    max_video_size_mb: float = 500
    max_audio_size_mb: float = 50
    manifest_path: Path = DEFAULT_MANIFEST_PATH
    connect_timeout: int = 10
    read_timeout: int = 120
    max_attempts: int = 5
    transcode: TranscodeParams = field(default_factory=TranscodeParams)

    @property
    def max_video_bytes(self) -> int:
        return int(self.max_video_size_mb * 1024 * 1024)

    @property
    def max_audio_bytes(self) -> int:
        return int(self.max_audio_size_mb * 1024 * 1024)

    def missing_remote_keys(self) -> List[str]:
        reverse = {value: key for key, value in ENV_KEYS.items()}
        return [reverse[key] for key in REQUIRED_REMOTE_KEYS if not getattr(self, key)]

    def require_remote(self) -> None:
        """Fail fast when object-store credentials are incomplete."""

        missing = self.missing_remote_keys()
        if missing:
            raise ConfigError(
                f"Missing required configuration: {', '.join(missing)}",
                hint="Set them in the environment or in the YAML config file.",
            )


def _load_yaml(path: Path) -> Dict[str, Any]:
    try:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse YAML: {exc}", code=ErrorCode.CONFIG_INVALID) from exc
    except OSError as exc:
        raise ConfigError(f"Cannot read config {path}: {exc}", code=ErrorCode.CONFIG_INVALID) from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Config {path} must contain a mapping", code=ErrorCode.CONFIG_INVALID)
    return data


def _coerce_number(key: str, value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{key} must be a number, got {value!r}", code=ErrorCode.CONFIG_INVALID) from exc
    if number <= 0:
        raise ConfigError(f"{key} must be positive, got {value!r}", code=ErrorCode.CONFIG_INVALID)
    return number


def load_settings(
    config_path: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Resolve settings from defaults, YAML and the environment.

    Parameters
    ----------
    config_path : Optional[Path]
        Explicit YAML file. When ``None``, ``./butler.yaml`` is used if present.
    environ : Optional[Mapping[str, str]]
        Environment mapping; defaults to ``os.environ``.

    Raises
    ------
    ConfigError
        If the file is missing or malformed, or a value has the wrong type.
    """

    env = os.environ if environ is None else environ
    raw: Dict[str, Any] = {}

    if config_path is not None:
        if not config_path.exists():
            raise ConfigError(f"Config path does not exist: {config_path}", code=ErrorCode.CONFIG_INVALID)
        raw.update(_load_yaml(config_path))
    else:
        implicit = Path.cwd() / DEFAULT_CONFIG_FILENAME
        if implicit.exists():
            raw.update(_load_yaml(implicit))

    for env_key, key in ENV_KEYS.items():
        value = env.get(env_key)
        if value:
            raw[key] = value

    known = {f.name for f in fields(Settings)}
    unknown = sorted(set(raw) - known)
    if unknown:
        raise ConfigError(f"Unknown config keys: {', '.join(unknown)}", code=ErrorCode.CONFIG_INVALID)

    settings = Settings()
    for key in ("access_key_id", "secret_access_key", "endpoint_url", "bucket", "region", "ffmpeg_path"):
        if raw.get(key) is not None:
            setattr(settings, key, str(raw[key]))
    for key in ("max_video_size_mb", "max_audio_size_mb"):
        if key in raw:
            setattr(settings, key, _coerce_number(key, raw[key]))
    for key in ("connect_timeout", "read_timeout", "max_attempts"):
        if key in raw:
            setattr(settings, key, int(_coerce_number(key, raw[key])))
    if raw.get("manifest_path"):
        settings.manifest_path = Path(raw["manifest_path"])
    if raw.get("transcode") is not None:
        if not isinstance(raw["transcode"], dict):
            raise ConfigError("transcode must be a mapping", code=ErrorCode.CONFIG_INVALID)
        settings.transcode = TranscodeParams.from_dict(raw["transcode"])
    return settings
