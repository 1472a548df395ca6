"""Acquisition core for JM comics: metadata, descrambling, download and PDF assembly."""

from __future__ import annotations

from .base import AcquiredImage, Chapter, SearchResult, Work
from .client import JMClient, create_session
from .config import Config
from .downloader import Downloader
from .errors import (
    AllMirrorsFailed,
    AssemblyFailure,
    JMError,
    NoChaptersFound,
    NotFound,
    PartialDownloadFailure,
)
from .mirrors import MirrorResolver
from .pdf import PDFBuilder
from .scramble import reconstruct, segment_count

__all__ = [
    "AcquiredImage",
    "AllMirrorsFailed",
    "AssemblyFailure",
    "Chapter",
    "Config",
    "Downloader",
    "JMClient",
    "JMError",
    "MirrorResolver",
    "NoChaptersFound",
    "NotFound",
    "PDFBuilder",
    "PartialDownloadFailure",
    "SearchResult",
    "Work",
    "create_session",
    "reconstruct",
    "segment_count",
]
