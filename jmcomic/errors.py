"""Error kinds surfaced by the acquisition core."""

from __future__ import annotations

from typing import List, Optional

from cloudscraper.exceptions import CaptchaException, CloudflareException
from requests.exceptions import RequestException

# Everything a session GET can raise for one host or URL.
FETCH_ERRORS = (RequestException, CloudflareException, CaptchaException)


class JMError(RuntimeError):
    """Base class for every failure raised by this package."""


class AllMirrorsFailed(JMError):
    def __init__(self, what: str, last_error: Optional[Exception] = None):
        self.last_error = last_error
        super().__init__(f"failed to fetch {what} from all domains: {last_error}")


class NotFound(JMError):
    pass


class NoChaptersFound(NotFound):
    def __init__(self, work_id: str):
        self.work_id = work_id
        super().__init__(f"no chapters found for comic {work_id}")


class PartialDownloadFailure(JMError):
    def __init__(self, chapter_id: str, errors: List[Exception]):
        self.chapter_id = chapter_id
        self.errors = list(errors)
        first = self.errors[0] if self.errors else "unknown error"
        super().__init__(
            f"failed to download chapter {chapter_id} "
            f"({len(self.errors)} image(s) failed): {first}"
        )


class AssemblyFailure(JMError):
    def __init__(self, message: str, path: Optional[str] = None):
        self.path = path
        super().__init__(message)


__all__ = [
    "FETCH_ERRORS",
    "JMError",
    "AllMirrorsFailed",
    "NotFound",
    "NoChaptersFound",
    "PartialDownloadFailure",
    "AssemblyFailure",
]
