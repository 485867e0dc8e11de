"""Canonical transcoding of source media through ffmpeg."""
from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Protocol

from .config import TranscodeParams
from .errors import TranscodeError, safe_detail
from .logging_utils import get_logger
from .subprocess_utils import CmdResult, CommandTimeout, run_cmd

logger = get_logger(__name__)


class Transcoder(Protocol):
    """Converts a source file into the canonical encoded output."""

    def transcode_video(self, input_path: Path, output_path: Path) -> Path:
        ...

    def transcode_audio(self, input_path: Path, output_path: Path) -> Path:
        ...


def video_filter(params: TranscodeParams) -> str:
    """Fit inside ``max_width`` x ``max_height``, never upscale, keep even dimensions."""

    return (
        f"scale=w='min({params.max_width},iw)':h='min({params.max_height},ih)'"
        ":force_original_aspect_ratio=decrease:force_divisible_by=2"
    )


def build_video_command(ffmpeg_bin: str, input_path: Path, output_path: Path, params: TranscodeParams) -> List[str]:
    return [
        ffmpeg_bin,
        "-hide_banner",
        "-nostdin",
        "-y",
        "-i",
        str(input_path),
        "-vf",
        video_filter(params),
        "-c:v",
        "libx264",
        "-crf",
        str(params.video_crf),
        "-preset",
        params.video_preset,
        "-pix_fmt",
        "yuv420p",
        "-c:a",
        "aac",
        "-b:a",
        params.audio_bitrate,
        "-movflags",
        "+faststart",
        str(output_path),
    ]


def build_audio_command(ffmpeg_bin: str, input_path: Path, output_path: Path, params: TranscodeParams) -> List[str]:
    return [
        ffmpeg_bin,
        "-hide_banner",
        "-nostdin",
        "-y",
        "-i",
        str(input_path),
        "-vn",
        "-c:a",
        "aac",
        "-b:a",
        params.audio_bitrate,
        str(output_path),
    ]


def _write_log(log_path: Path, input_path: Path, output_path: Path, result: CmdResult) -> None:
    log_path.parent.mkdir(parents=True, exist_ok=True)
    with log_path.open("w", encoding="utf-8", newline="\n") as handle:
        handle.write(f"timestamp: {datetime.now(timezone.utc).isoformat()}\n")
        handle.write(f"input: {input_path}\n")
        handle.write(f"output: {output_path}\n")
        handle.write(f"returncode: {result.returncode}\n")
        handle.write(f"duration_ms: {result.duration_ms}\n")
        handle.write("command:\n")
        handle.write("  " + result.command_line() + "\n")
        handle.write("stderr:\n")
        handle.write(result.stderr)
        if not result.stderr.endswith("\n"):
            handle.write("\n")


class FfmpegTranscoder:
    """:class:`Transcoder` backed by an ffmpeg binary."""

    def __init__(
        self,
        ffmpeg_bin: str = "ffmpeg",
        params: Optional[TranscodeParams] = None,
        log_dir: Optional[Path] = None,
    ) -> None:
        self.ffmpeg_bin = ffmpeg_bin
        self.params = params or TranscodeParams()
        self.log_dir = log_dir

    def transcode_video(self, input_path: Path, output_path: Path) -> Path:
        cmd = build_video_command(self.ffmpeg_bin, input_path, output_path, self.params)
        return self._run(cmd, input_path, output_path)

    def transcode_audio(self, input_path: Path, output_path: Path) -> Path:
        cmd = build_audio_command(self.ffmpeg_bin, input_path, output_path, self.params)
        return self._run(cmd, input_path, output_path)

    def _run(self, cmd: List[str], input_path: Path, output_path: Path) -> Path:
        logger.debug("Running: %s", " ".join(cmd))
        try:
            result = run_cmd(cmd, timeout_sec=self.params.timeout_sec)
        except CommandTimeout as exc:
            raise TranscodeError(
                f"ffmpeg timed out after {exc.timeout_sec}s on {input_path.name}",
                detail=safe_detail({"stderr": exc.stderr}),
            ) from exc
        except OSError as exc:
            raise TranscodeError(
                f"Cannot run ffmpeg ({self.ffmpeg_bin}): {exc}",
                hint="Install ffmpeg or set FFMPEG_PATH.",
            ) from exc

        if self.log_dir is not None:
            _write_log(self.log_dir / f"{output_path.name}.log", input_path, output_path, result)

        if not result.ok or not output_path.exists():
            raise TranscodeError(
                f"ffmpeg failed on {input_path.name} (code={result.returncode})",
                detail=safe_detail({"stderr": result.stderr}),
            )
        logger.debug("Transcoded %s in %d ms", input_path.name, result.duration_ms)
        return output_path
