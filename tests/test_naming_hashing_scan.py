"""Tests for filename allocation, content hashing and directory scanning."""
from __future__ import annotations

import hashlib
from pathlib import Path

import pytest

from media_butler.errors import InvalidArgument, IoError
from media_butler.hashing import file_sha256
from media_butler.naming import remote_key, suggest_short_code, system_filename, validate_short_code
from media_butler.scan import classify, scan_media
from tests.conftest import write_media


def test_system_filename_format() -> None:
    assert system_filename("AB", "video", 7) == "AB_VID_0007.mp4"
    assert system_filename("AB", "audio", 7) == "AB_AUD_0007.m4a"


def test_system_filename_widens_past_9999() -> None:
    assert system_filename("Z", "video", 12345) == "Z_VID_12345.mp4"


def test_unknown_kind_is_rejected() -> None:
    with pytest.raises(InvalidArgument):
        system_filename("AB", "image", 1)


def test_remote_key_uses_kind_folder() -> None:
    assert remote_key("demo", "video", "DM_VID_0001.mp4") == "demo/videos/DM_VID_0001.mp4"
    assert remote_key("demo", "audio", "DM_AUD_0001.m4a") == "demo/audios/DM_AUD_0001.m4a"


@pytest.mark.parametrize(
    "project,expected",
    [("demo", "DEMO"), ("demo-reel", "DR"), ("my big launch video", "MBLV"), ("marketing", "MARK"), ("2024", "P202")],
)
def test_suggest_short_code(project: str, expected: str) -> None:
    suggestion = suggest_short_code(project)
    assert suggestion == expected
    assert validate_short_code(suggestion) == suggestion


def test_file_sha256_matches_hashlib(tmp_path: Path) -> None:
    data = b"0123456789" * 300_000
    path = tmp_path / "blob.bin"
    path.write_bytes(data)
    assert file_sha256(path, chunk_size=4096) == hashlib.sha256(data).hexdigest()


def test_file_sha256_missing_file_raises_io_error(tmp_path: Path) -> None:
    with pytest.raises(IoError):
        file_sha256(tmp_path / "missing.mp4")


@pytest.mark.parametrize(
    "name,kind",
    [("a.MP4", "video"), ("b.mov", "video"), ("c.Mkv", "video"), ("d.avi", "video"), ("e.mp3", "audio"),
     ("f.WAV", "audio"), ("g.m4a", "audio"), ("h.aac", "audio"), ("i.ogg", "audio"), ("j.flac", None),
     ("k.txt", None)],
)
def test_classify_by_extension(name: str, kind) -> None:
    assert classify(Path(name)) == kind


def test_scan_media_is_sorted_and_skips_noise(tmp_path: Path) -> None:
    for name in ["b.mp4", "a.wav", ".hidden.mp4", "butler_abc_1_X.mp4", "readme.md"]:
        write_media(tmp_path, name)
    (tmp_path / "nested").mkdir()
    write_media(tmp_path / "nested", "deep.mp4")

    found = scan_media(tmp_path)
    assert [(p.name, kind) for p, kind in found] == [("a.wav", "audio"), ("b.mp4", "video")]
