"""Locate ffmpeg and check it can produce the canonical outputs.

Detection only runs ``ffmpeg -version`` and ``ffmpeg -encoders``; no media
is converted and no network access happens.
"""
from __future__ import annotations

import platform
import re
import shutil
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from .errors import ErrorCode, ExitCode
from .subprocess_utils import CommandTimeout, run_cmd

# Encoders the canonical video (H.264/AAC) and audio (AAC) outputs need
REQUIRED_ENCODERS = ("libx264", "aac")


@dataclass
class ToolInfo:
    """Information about the detected ffmpeg binary."""

    path: str
    version: Optional[str]
    version_raw: str


@dataclass
class DepsReport:
    """Structured result of :func:`check_deps`."""

    ok: bool
    ffmpeg: Optional[ToolInfo]
    encoders: Dict[str, bool] = field(default_factory=dict)
    errors: List[Dict[str, Optional[str]]] = field(default_factory=list)
    platform: Dict[str, str] = field(default_factory=dict)

    @property
    def exit_code(self) -> int:
        return ExitCode.SUCCESS if self.ok else ExitCode.DEPS_MISSING

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


def _parse_version(output: str) -> Optional[str]:
    """Extract the version token from ``ffmpeg -version``.

    e.g. ``ffmpeg version 7.0.2 Copyright (c) ...`` -> ``7.0.2``
    """

    first = next((line for line in output.splitlines() if line.strip()), "")
    match = re.search(r"version\s+([\w.\-]+)", first)
    return match.group(1) if match else None


def resolve_ffmpeg(ffmpeg_path: Optional[str] = None) -> Optional[str]:
    """Return the ffmpeg executable to use, honoring an explicit override."""

    if ffmpeg_path:
        candidate = Path(ffmpeg_path)
        if candidate.is_file():
            return str(candidate)
        return shutil.which(ffmpeg_path)
    return shutil.which("ffmpeg")


def _error(code: str, message: str, hint: Optional[str] = None) -> Dict[str, Optional[str]]:
    return {"code": code, "message": message, "hint": hint}


def check_deps(ffmpeg_path: Optional[str] = None, timeout_sec: int = 15) -> DepsReport:
    """Detect ffmpeg and its required encoders."""

    report = DepsReport(
        ok=False,
        ffmpeg=None,
        encoders={name: False for name in REQUIRED_ENCODERS},
        platform={
            "system": platform.system(),
            "machine": platform.machine(),
            "python_version": platform.python_version(),
        },
    )

    path = resolve_ffmpeg(ffmpeg_path)
    if path is None:
        where = f"at {ffmpeg_path}" if ffmpeg_path else "in PATH"
        report.errors.append(
            _error(ErrorCode.DEPS_MISSING, f"ffmpeg not found {where}", hint="Install ffmpeg or set FFMPEG_PATH.")
        )
        return report

    try:
        version = run_cmd([path, "-version"], timeout_sec=timeout_sec)
        encoders = run_cmd([path, "-hide_banner", "-encoders"], timeout_sec=timeout_sec)
    except (CommandTimeout, OSError) as exc:
        report.errors.append(_error(ErrorCode.DEPS_MISSING, f"ffmpeg could not be run: {exc}"))
        return report

    raw = version.stdout.strip() or version.stderr.strip()
    report.ffmpeg = ToolInfo(path=path, version=_parse_version(raw), version_raw=raw.splitlines()[0] if raw else "")
    if not version.ok:
        report.errors.append(
            _error(ErrorCode.DEPS_MISSING, f"ffmpeg -version exited with {version.returncode}", hint="Reinstall ffmpeg.")
        )

    listing = encoders.stdout.lower()
    for name in REQUIRED_ENCODERS:
        report.encoders[name] = bool(re.search(rf"\b{re.escape(name)}\b", listing))
        if not report.encoders[name]:
            report.errors.append(
                _error(
                    ErrorCode.DEPS_MISSING,
                    f"ffmpeg lacks the {name} encoder",
                    hint="Use an ffmpeg build with libx264 and the native AAC encoder.",
                )
            )

    report.ok = not report.errors
    return report
