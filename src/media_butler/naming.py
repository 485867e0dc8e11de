"""System filenames and remote keys for ingested assets."""
from __future__ import annotations

import re

from .constants import KIND_CODES, KIND_EXTENSIONS, KIND_FOLDERS, SHORT_CODE_MAX_LEN
from .errors import InvalidArgument

SHORT_CODE_RE = re.compile(rf"^[A-Z][A-Z0-9]{{0,{SHORT_CODE_MAX_LEN - 1}}}$")


def validate_short_code(short_code: str) -> str:
    if not isinstance(short_code, str) or not SHORT_CODE_RE.match(short_code):
        raise InvalidArgument(
            f"Invalid short-code {short_code!r}",
            hint=f"Use 1-{SHORT_CODE_MAX_LEN} uppercase letters or digits, starting with a letter.",
        )
    return short_code


def suggest_short_code(project: str) -> str:
    """Derive a default short-code from a project name (``demo-reel`` -> ``DR``)."""

    words = [w for w in re.split(r"[^A-Za-z0-9]+", project) if w]
    if len(words) > 1:
        candidate = "".join(w[0] for w in words)
    else:
        candidate = words[0] if words else "P"
    candidate = "".join(ch for ch in candidate.upper() if ch.isalnum())[:SHORT_CODE_MAX_LEN]
    if not candidate or not candidate[0].isalpha():
        candidate = ("P" + candidate)[:SHORT_CODE_MAX_LEN]
    return candidate


def _kind_lookup(table: dict, kind: str) -> str:
    try:
        return table[kind]
    except KeyError:
        raise InvalidArgument(f"Unknown media kind: {kind!r}") from None


def system_filename(short_code: str, kind: str, sequence_number: int) -> str:
    """Build ``{CODE}_{VID|AUD}_{NNNN}{ext}``; widths past 9999 are not truncated."""

    return f"{short_code}_{_kind_lookup(KIND_CODES, kind)}_{sequence_number:04d}{_kind_lookup(KIND_EXTENSIONS, kind)}"


def remote_key(project: str, kind: str, filename: str) -> str:
    return f"{project}/{_kind_lookup(KIND_FOLDERS, kind)}/{filename}"
