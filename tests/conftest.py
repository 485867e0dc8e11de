"""Pytest fixtures and fakes for Media Butler tests."""
from __future__ import annotations

import shutil
import subprocess
from pathlib import Path
from typing import Dict, List, Optional, Set

import pytest

from media_butler.errors import RemoteError, TranscodeError
from media_butler.manifest import ManifestStore
from media_butler.remote import UploadConfirmation

REMOTE_ENV = {
    "R2_ACCESS_KEY_ID": "test-key",
    "R2_SECRET_ACCESS_KEY": "test-secret",
    "R2_ENDPOINT": "https://example.r2.cloudflarestorage.com",
    "R2_BUCKET_NAME": "test-bucket",
}


def has_ffmpeg() -> bool:
    """Check if ffmpeg is available in PATH."""
    return shutil.which("ffmpeg") is not None


def require_ffmpeg() -> None:
    """Skip test if ffmpeg is not available."""
    if not has_ffmpeg():
        pytest.skip("ffmpeg required for this test")


class FakeTranscoder:
    """Copies the input to the output, or fails for chosen file names."""

    def __init__(self, fail_names: Optional[Set[str]] = None) -> None:
        self.fail_names = fail_names or set()
        self.calls: List[tuple] = []

    def _run(self, kind: str, input_path: Path, output_path: Path) -> Path:
        self.calls.append((kind, input_path.name, output_path))
        if input_path.name in self.fail_names:
            raise TranscodeError(f"ffmpeg failed on {input_path.name} (code=1)", detail={"stderr": "boom"})
        output_path.write_bytes(b"encoded:" + input_path.read_bytes())
        return output_path

    def transcode_video(self, input_path: Path, output_path: Path) -> Path:
        return self._run("video", input_path, output_path)

    def transcode_audio(self, input_path: Path, output_path: Path) -> Path:
        return self._run("audio", input_path, output_path)


class FakeRemote:
    """In-memory object store."""

    def __init__(self, fail_upload: Optional[Set[str]] = None, fail_delete: Optional[Set[str]] = None) -> None:
        self.objects: Dict[str, bytes] = {}
        self.fail_upload = fail_upload or set()
        self.fail_delete = fail_delete or set()
        self.deleted: List[str] = []

    def upload(self, local_path: Path, key: str) -> UploadConfirmation:
        if key in self.fail_upload:
            raise RemoteError(f"Upload of {key} failed", status=503)
        data = local_path.read_bytes()
        self.objects[key] = data
        return UploadConfirmation(key=key, etag="etag-" + key.rsplit("/", 1)[-1], size_bytes=len(data))

    def delete(self, key: str) -> None:
        if key in self.fail_delete:
            raise RemoteError(f"Delete of {key} failed", status=500)
        self.objects.pop(key, None)
        self.deleted.append(key)

    def head_metadata(self, key: str) -> Optional[dict]:
        if key not in self.objects:
            return None
        return {"ContentLength": len(self.objects[key])}


def write_media(directory: Path, name: str, content: bytes = b"", size: Optional[int] = None) -> Path:
    """Create a fake media file with given content or a given size."""
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / name
    if size is not None:
        with path.open("wb") as handle:
            handle.truncate(size)
    else:
        path.write_bytes(content or name.encode("utf-8"))
    return path


@pytest.fixture
def store(tmp_path: Path) -> ManifestStore:
    return ManifestStore(tmp_path / "state" / "manifest.json")


@pytest.fixture
def transcoder() -> FakeTranscoder:
    return FakeTranscoder()


@pytest.fixture
def remote() -> FakeRemote:
    return FakeRemote()


@pytest.fixture
def media_dir(tmp_path: Path) -> Path:
    path = tmp_path / "inbox"
    path.mkdir()
    return path


@pytest.fixture
def work_tmp(tmp_path: Path) -> Path:
    path = tmp_path / "tmp"
    path.mkdir()
    return path


def gen_test_clip(tmp_path: Path, name: str = "clip.mov", size: str = "2560x1440") -> Path:
    """Generate a 1-second video with audio using ffmpeg."""
    require_ffmpeg()
    output_path = tmp_path / name
    subprocess.run(
        [
            shutil.which("ffmpeg"),
            "-y",
            "-hide_banner",
            "-loglevel",
            "error",
            "-f",
            "lavfi",
            "-i",
            f"testsrc=size={size}:rate=25:duration=1",
            "-f",
            "lavfi",
            "-i",
            "sine=frequency=440:duration=1",
            "-shortest",
            str(output_path),
        ],
        check=True,
        capture_output=True,
    )
    return output_path
