"""Shared helpers: verbosity-gated logging and small parsing utilities."""

from __future__ import annotations

import re

_VERBOSE = False  # Global flag for standard verbose output
_DEBUG = False  # Global flag for debug-level output


def set_verbosity(verbose: bool = False, debug: bool = False) -> None:
    global _VERBOSE, _DEBUG
    _VERBOSE = verbose
    _DEBUG = debug


def log_verbose(*args, **kwargs):
    """Prints if --verbose or --debug is set."""
    if _VERBOSE or _DEBUG:
        print(*args, **kwargs)


def log_debug(*args, **kwargs):
    """Prints only if --debug is set."""
    if _DEBUG:
        print(*args, **kwargs)


def normalize_work_id(raw: str) -> str:
    """Strips whitespace and an optional 'JM' prefix from a work id."""
    cleaned = (raw or "").strip()
    if cleaned.upper().startswith("JM"):
        cleaned = cleaned[2:]
    return cleaned.strip()


def normalize_query(query: str) -> str:
    """Turns ASCII and full-width comma separated keywords into a search query."""
    return re.sub(r"[，,]+", " ", query or "").strip()


__all__ = [
    "set_verbosity",
    "log_verbose",
    "log_debug",
    "normalize_work_id",
    "normalize_query",
]
