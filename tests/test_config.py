"""Tests for settings resolution from defaults, YAML and environment."""
from __future__ import annotations

from pathlib import Path

import pytest

from media_butler.config import load_settings
from media_butler.errors import ConfigError
from tests.conftest import REMOTE_ENV


def test_defaults_without_env_or_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)
    settings = load_settings(environ={})
    assert settings.max_video_size_mb == 500
    assert settings.max_audio_size_mb == 50
    assert settings.max_video_bytes == 500 * 1024 * 1024
    assert settings.manifest_path == Path("manifest.json")
    assert settings.transcode.video_crf == 24
    assert settings.missing_remote_keys() == [
        "R2_ACCESS_KEY_ID",
        "R2_SECRET_ACCESS_KEY",
        "R2_ENDPOINT",
        "R2_BUCKET_NAME",
    ]
    with pytest.raises(ConfigError) as excinfo:
        settings.require_remote()
    assert "R2_BUCKET_NAME" in excinfo.value.message


def test_env_overrides_yaml(tmp_path: Path) -> None:
    config = tmp_path / "butler.yaml"
    config.write_text(
        "bucket: from-yaml\nmax_audio_size_mb: 20\ntranscode:\n  video_crf: 28\n  audio_bitrate: 96k\n",
        encoding="utf-8",
    )
    env = dict(REMOTE_ENV, MAX_VIDEO_SIZE_MB="750", FFMPEG_PATH="/opt/ffmpeg/bin/ffmpeg")

    settings = load_settings(config, environ=env)

    assert settings.bucket == "test-bucket"
    assert settings.max_audio_size_mb == 20
    assert settings.max_video_size_mb == 750
    assert settings.ffmpeg_path == "/opt/ffmpeg/bin/ffmpeg"
    assert settings.transcode.video_crf == 28
    assert settings.transcode.audio_bitrate == "96k"
    settings.require_remote()


def test_implicit_yaml_in_working_directory(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    (tmp_path / "butler.yaml").write_text("manifest_path: state/manifest.json\n", encoding="utf-8")
    monkeypatch.chdir(tmp_path)
    assert load_settings(environ={}).manifest_path == Path("state/manifest.json")


@pytest.mark.parametrize(
    "content",
    ["bucket: [unclosed\n", "- just\n- a list\n", "unknown_key: 1\n", "max_video_size_mb: lots\n"],
)
def test_bad_yaml_raises_config_error(tmp_path: Path, content: str) -> None:
    config = tmp_path / "butler.yaml"
    config.write_text(content, encoding="utf-8")
    with pytest.raises(ConfigError):
        load_settings(config, environ={})


def test_non_numeric_env_limit_raises(tmp_path: Path) -> None:
    with pytest.raises(ConfigError):
        load_settings(environ={"MAX_AUDIO_SIZE_MB": "fifty"})


def test_missing_config_path_raises(tmp_path: Path) -> None:
    with pytest.raises(ConfigError):
        load_settings(tmp_path / "nope.yaml", environ={})
