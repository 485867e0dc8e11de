#!/usr/bin/env python3
"""Quick smoke test for local development.

Checks ffmpeg, generates a short test clip and tone, and runs both through
the canonical transcoder. Nothing is uploaded and no manifest is touched.
"""
from __future__ import annotations

import json
import subprocess
import sys
import tempfile
from pathlib import Path

from media_butler.deps import check_deps
from media_butler.subprocess_utils import run_cmd
from media_butler.transcode import FfmpegTranscoder


def check_cli() -> bool:
    print("Checking dependencies via CLI...")
    result = subprocess.run(["butler", "check-deps", "--json"], capture_output=True, text=True)
    try:
        report = json.loads(result.stdout)
    except json.JSONDecodeError:
        print("ERROR: Failed to parse check-deps output")
        print(result.stderr)
        return False
    if not report.get("ok", False):
        for err in report.get("errors", []):
            print(f"  - {err.get('code')}: {err.get('message')}")
        return False
    print("Dependencies OK")
    return True


def gen_media(ffmpeg_bin: str, tmp_path: Path) -> tuple[Path, Path]:
    print("Generating test media...")
    video = tmp_path / "smoke.mov"
    audio = tmp_path / "smoke.wav"
    run_cmd(
        [
            ffmpeg_bin, "-y", "-hide_banner", "-loglevel", "error",
            "-f", "lavfi", "-i", "testsrc=size=2560x1440:rate=25:duration=1",
            "-f", "lavfi", "-i", "sine=frequency=440:duration=1",
            "-shortest", str(video),
        ],
        timeout_sec=60,
    )
    run_cmd(
        [ffmpeg_bin, "-y", "-hide_banner", "-loglevel", "error", "-f", "lavfi", "-i", "sine=duration=1", str(audio)],
        timeout_sec=60,
    )
    return video, audio


def main() -> int:
    print("=" * 60)
    print("Media Butler smoke test")
    print("=" * 60)

    if not check_cli():
        return 1

    report = check_deps()
    with tempfile.TemporaryDirectory() as tmp:
        tmp_path = Path(tmp)
        video, audio = gen_media(report.ffmpeg.path, tmp_path)
        transcoder = FfmpegTranscoder(report.ffmpeg.path, log_dir=tmp_path / "logs")
        for label, source, target, run in (
            ("video", video, tmp_path / "out.mp4", transcoder.transcode_video),
            ("audio", audio, tmp_path / "out.m4a", transcoder.transcode_audio),
        ):
            output = run(source, target)
            print(f"{label}: {source.name} -> {output.name} ({output.stat().st_size} bytes)")

    print("Smoke test passed")
    return 0


if __name__ == "__main__":
    sys.exit(main())
