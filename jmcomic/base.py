from __future__ import annotations

from dataclasses import dataclass, field
from typing import Generic, List, Optional, TypeVar

T = TypeVar("T")


@dataclass
class Chapter:
    id: str
    title: str = ""
    scramble_id: str = ""
    image_names: List[str] = field(default_factory=list)
    image_urls: List[str] = field(default_factory=list)
    image_domain: str = ""


@dataclass
class Work:
    id: str
    title: str
    author: str = ""
    description: str = ""
    tags: List[str] = field(default_factory=list)
    chapters: List[Chapter] = field(default_factory=list)

    @property
    def pages(self) -> int:
        return sum(len(ch.image_urls) for ch in self.chapters)


@dataclass
class AcquiredImage:
    chapter_index: int
    index: int
    path: str
    data: bytes = b""
    filename: str = ""


@dataclass
class SearchResult:
    id: str
    title: str


@dataclass
class ItemResult(Generic[T]):
    """Outcome of one independent unit of work (an image, a mirror, a page)."""

    index: int
    value: Optional[T] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


__all__ = [
    "AcquiredImage",
    "Chapter",
    "ItemResult",
    "SearchResult",
    "Work",
]
