"""Unified error model and error code constants for Media Butler."""
from __future__ import annotations

from typing import Any, Dict, Optional


# Error codes (string constants)
class ErrorCode:
    """Error code constants for structured error reporting."""

    # Configuration errors
    CONFIG_MISSING = "config_missing"
    CONFIG_INVALID = "config_invalid"

    # Dependency errors
    DEPS_MISSING = "deps_missing"

    # Local filesystem errors
    IO_FAILED = "io_failed"

    # Transcode errors
    TRANSCODE_FAILED = "transcode_failed"

    # Remote store errors
    REMOTE_FAILED = "remote_failed"

    # Manifest errors
    MANIFEST_CORRUPT = "manifest_corrupt"
    MANIFEST_CONFLICT = "manifest_conflict"

    # Parameter errors
    INVALID_PARAMS = "invalid_params"

    # Internal errors
    INTERNAL_ERROR = "internal_error"


KNOWN_ERROR_CODES = {
    value for key, value in vars(ErrorCode).items() if not key.startswith("_") and isinstance(value, str)
}


# Exit codes (int constants)
class ExitCode:
    """Exit code constants for the CLI."""

    SUCCESS = 0
    PARTIAL_FAILED = 1  # Some files/assets failed, run completed
    DEPS_MISSING = 2
    CONFIG_ERROR = 3
    MANIFEST_ERROR = 4
    INVALID_PARAMS = 13
    INTERNAL_ERROR = 99


def safe_detail(obj: Any, max_len: int = 2000) -> Optional[Dict[str, Any]]:
    """Create a safe detail dictionary, truncating long strings.

    Parameters
    ----------
    obj: Any
        Object to convert to detail dict. If dict, truncates string values.
    max_len: int
        Maximum length for string values in detail.

    Returns
    -------
    Optional[Dict[str, Any]]
        Detail dictionary with truncated strings, or None if obj is None.
    """
    if obj is None:
        return None

    if isinstance(obj, dict):
        result: Dict[str, Any] = {}
        for key, value in obj.items():
            if isinstance(value, str) and len(value) > max_len:
                # ffmpeg puts the useful part of its diagnostics at the end
                result[key] = f"... (truncated, original length: {len(value)}) " + value[-max_len:]
            else:
                result[key] = value
        return result

    if isinstance(obj, str):
        if len(obj) > max_len:
            return {"message": f"... (truncated, original length: {len(obj)}) " + obj[-max_len:]}
        return {"message": obj}

    return {"data": str(obj)[:max_len]}


class ButlerError(Exception):
    """Base error carrying a structured code, optional hint and detail."""

    code = ErrorCode.INTERNAL_ERROR
    exit_code = ExitCode.INTERNAL_ERROR

    def __init__(
        self,
        message: str,
        hint: Optional[str] = None,
        detail: Optional[Dict[str, Any]] = None,
        code: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.hint = hint
        self.detail = detail
        if code is not None:
            self.code = code

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.hint is not None:
            result["hint"] = self.hint
        if self.detail is not None:
            result["detail"] = self.detail
        return result


class ConfigError(ButlerError):
    """Missing or invalid required settings; fatal at startup."""

    code = ErrorCode.CONFIG_MISSING
    exit_code = ExitCode.CONFIG_ERROR


class IoError(ButlerError):
    """Local filesystem read/write/delete fault."""

    code = ErrorCode.IO_FAILED
    exit_code = ExitCode.PARTIAL_FAILED


class TranscodeError(ButlerError):
    """The external transcoding tool failed; detail carries its stderr."""

    code = ErrorCode.TRANSCODE_FAILED
    exit_code = ExitCode.PARTIAL_FAILED


class RemoteError(ButlerError):
    """Upload, delete or head failure against the object store."""

    code = ErrorCode.REMOTE_FAILED
    exit_code = ExitCode.PARTIAL_FAILED

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        hint: Optional[str] = None,
        detail: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, hint=hint, detail=detail)
        self.status = status

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        if self.status is not None:
            result["status"] = self.status
        return result


class ManifestError(ButlerError):
    """Corrupt or unreadable manifest, or a manifest invariant violation."""

    code = ErrorCode.MANIFEST_CORRUPT
    exit_code = ExitCode.MANIFEST_ERROR


class InvalidArgument(ButlerError):
    """Bad CLI or option input."""

    code = ErrorCode.INVALID_PARAMS
    exit_code = ExitCode.INVALID_PARAMS
