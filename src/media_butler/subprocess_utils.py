"""Thin wrapper around :mod:`subprocess` for external media tools."""
from __future__ import annotations

import subprocess
import time
from dataclasses import dataclass
from typing import List, Optional, Sequence


@dataclass
class CmdResult:
    """Normalized result of a subprocess invocation."""

    cmd: List[str]
    returncode: int
    stdout: str
    stderr: str
    duration_ms: int

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def command_line(self) -> str:
        return " ".join(self.cmd)


class CommandTimeout(RuntimeError):
    """Raised when a subprocess exceeds the allowed timeout."""

    def __init__(self, cmd: List[str], timeout_sec: float, duration_ms: int, stderr: str = "") -> None:
        super().__init__(f"Command timed out after {timeout_sec}s: {' '.join(cmd)}")
        self.cmd = cmd
        self.timeout_sec = timeout_sec
        self.duration_ms = duration_ms
        self.stderr = stderr


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def run_cmd(cmd: Sequence[str], timeout_sec: Optional[float] = 30) -> CmdResult:
    """Run ``cmd`` to completion and capture its output as text.

    Output is decoded as UTF-8 with replacement. A missing executable
    propagates as :class:`OSError`; a timeout raises :class:`CommandTimeout`
    with whatever stderr was captured so far.
    """

    argv = [str(part) for part in cmd]
    start = time.monotonic()
    try:
        completed = subprocess.run(
            argv,
            check=False,
            capture_output=True,
            text=True,
            errors="replace",
            timeout=timeout_sec,
        )
    except subprocess.TimeoutExpired as exc:
        partial = exc.stderr or ""
        if isinstance(partial, bytes):
            partial = partial.decode("utf-8", errors="replace")
        raise CommandTimeout(argv, timeout_sec or 0, _elapsed_ms(start), stderr=partial) from exc

    return CmdResult(
        cmd=argv,
        returncode=completed.returncode,
        stdout=completed.stdout,
        stderr=completed.stderr,
        duration_ms=_elapsed_ms(start),
    )
