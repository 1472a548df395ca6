"""Structural extraction from served markup.

Every field has an ordered tuple of strategies. A strategy is a pure
function ``html -> value or None``; :func:`first_match` tries them in order.
Nothing in here touches the network.
"""

from __future__ import annotations

import json
import re
from functools import lru_cache
from typing import Callable, List, Optional, Sequence, TypeVar

from bs4 import BeautifulSoup

from .base import SearchResult

T = TypeVar("T")
Strategy = Callable[[str], Optional[T]]

_SCRAMBLE_RE = re.compile(r"var\s+scramble_id\s*=\s*(\d+)\s*;")
_PAGE_ARR_RE = re.compile(r"var\s+page_arr\s*=\s*(\[.*?\])\s*;", re.S)
_BLANK_DOMAIN_RE = re.compile(r'src="https://(.*?)/media/albums/blank')
_PHOTO_DOMAIN_RE = re.compile(r'data-original="https://([\w.-]+)/media/photos/')
_PHOTO_NAME_RE = re.compile(r'data-original="[^"]*?/media/photos/\d+/([^"?]+)')
_EPISODE_RE = re.compile(r'data-album="(\d+)"[^>]*>[\s\S]*?第(\d+)[话話]')
_EPISODE_EN_RE = re.compile(
    r'data-album="(\d+)"[^>]*>[\s\S]*?Chapter\s*(\d+)', re.I
)
_IMAGE_NUM_RE = re.compile(r"(\d+)\.(?:jpg|jpeg|png|webp|gif)", re.I)
_ALBUM_HREF_RE = re.compile(r"^/album/(\d+)")
_ALT_SEARCH_RE = re.compile(r"/album/(\d+)[^>]*>[\s\S]*?<[^>]+>([^<]{3,})</")


@lru_cache(maxsize=8)
def _soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


def first_match(strategies: Sequence[Strategy], html: str) -> Optional[T]:
    for strategy in strategies:
        value = strategy(html)
        if value:
            return value
    return None


def _link_tokens(container) -> List[str]:
    tokens = []
    for link in container.find_all("a"):
        text = link.get_text(" ", strip=True)
        if text:
            tokens.append(text.split()[0])
    return tokens


# ------------------------------------------------------------------- title
def title_from_heading(html: str) -> Optional[str]:
    node = _soup(html).find(id="book-name")
    if node is None:
        return None
    return node.get_text(" ", strip=True) or None


def title_from_title_tag(html: str) -> Optional[str]:
    node = _soup(html).find("title")
    if node is None:
        return None
    title = node.get_text(strip=True)
    for sep in (" - ", " | "):
        idx = title.find(sep)
        if idx > 0:
            title = title[:idx]
    return title.strip() or None


TITLE_STRATEGIES = (title_from_heading, title_from_title_tag)


# ------------------------------------------------------------ author / tags
def author_from_span(html: str) -> Optional[str]:
    span = _soup(html).find(
        "span", attrs={"itemprop": "author", "data-type": "author"}
    )
    if span is None:
        return None
    tokens = _link_tokens(span)
    return tokens[0] if tokens else None


def tags_from_span(html: str) -> Optional[List[str]]:
    span = _soup(html).find("span", attrs={"itemprop": "genre", "data-type": "tags"})
    if span is None:
        return None
    return list(dict.fromkeys(_link_tokens(span))) or None


def description_from_intro(html: str) -> Optional[str]:
    block = _soup(html).find(id="intro-block")
    if block is None:
        return None
    node = block.find(class_="p-t-5") or block
    return node.get_text(" ", strip=True) or None


def description_from_meta(html: str) -> Optional[str]:
    soup = _soup(html)
    for attrs in ({"property": "og:description"}, {"name": "description"}):
        meta = soup.find("meta", attrs=attrs)
        if meta and meta.get("content"):
            return meta["content"].strip() or None
    return None


AUTHOR_STRATEGIES = (author_from_span,)
TAG_STRATEGIES = (tags_from_span,)
DESCRIPTION_STRATEGIES = (description_from_intro, description_from_meta)


# ---------------------------------------------------------------- chapters
def scramble_id(html: str) -> Optional[str]:
    match = _SCRAMBLE_RE.search(html)
    return match.group(1) if match else None


def _episode_ids(pattern: re.Pattern) -> Strategy:
    def strategy(html: str) -> Optional[List[str]]:
        ids = [m.group(1) for m in pattern.finditer(html)]
        return list(dict.fromkeys(ids)) or None

    return strategy


CHAPTER_ID_STRATEGIES = (_episode_ids(_EPISODE_RE), _episode_ids(_EPISODE_EN_RE))


def chapter_ids(html: str, work_id: str) -> List[str]:
    """Chapter ids sorted numerically; a single chapter equal to the work id if none."""
    ids = first_match(CHAPTER_ID_STRATEGIES, html) or [work_id]
    return sorted(ids, key=int)


def image_domain_from_blank(html: str) -> Optional[str]:
    match = _BLANK_DOMAIN_RE.search(html)
    return match.group(1) if match else None


def image_domain_from_photos(html: str) -> Optional[str]:
    match = _PHOTO_DOMAIN_RE.search(html)
    return match.group(1) if match else None


IMAGE_DOMAIN_STRATEGIES = (image_domain_from_blank, image_domain_from_photos)


def image_names_from_page_arr(html: str) -> Optional[List[str]]:
    match = _PAGE_ARR_RE.search(html)
    if not match:
        return None
    try:
        names = json.loads(match.group(1))
    except json.JSONDecodeError:
        return None
    if not isinstance(names, list):
        return None
    return [n for n in names if isinstance(n, str) and n] or None


def image_names_from_tags(html: str) -> Optional[List[str]]:
    names = [m.group(1) for m in _PHOTO_NAME_RE.finditer(html)]
    return list(dict.fromkeys(names)) or None


IMAGE_NAME_STRATEGIES = (image_names_from_page_arr, image_names_from_tags)


def image_number(filename: str) -> int:
    """The integer right before the extension (``00012.webp`` -> 12), else 0."""
    match = _IMAGE_NUM_RE.search(filename)
    return int(match.group(1)) if match else 0


def sort_image_names(names: Sequence[str]) -> List[str]:
    return sorted(names, key=image_number)


# ------------------------------------------------------------------ search
def search_results_from_cards(html: str) -> Optional[List[SearchResult]]:
    results: List[SearchResult] = []
    seen = set()
    for link in _soup(html).find_all("a", href=_ALBUM_HREF_RE):
        work_id = _ALBUM_HREF_RE.match(link["href"]).group(1)
        span = link.find("span")
        title = span.get_text(strip=True) if span else ""
        if work_id in seen or len(title) <= 1:
            continue
        seen.add(work_id)
        results.append(SearchResult(id=work_id, title=title))
    return results or None


def search_results_loose(html: str) -> Optional[List[SearchResult]]:
    results: List[SearchResult] = []
    seen = set()
    for match in _ALT_SEARCH_RE.finditer(html):
        work_id, title = match.group(1), match.group(2).strip()
        if work_id in seen or len(title) <= 2:
            continue
        seen.add(work_id)
        results.append(SearchResult(id=work_id, title=title))
    return results or None


SEARCH_STRATEGIES = (search_results_from_cards, search_results_loose)


__all__ = [
    "AUTHOR_STRATEGIES",
    "CHAPTER_ID_STRATEGIES",
    "DESCRIPTION_STRATEGIES",
    "IMAGE_DOMAIN_STRATEGIES",
    "IMAGE_NAME_STRATEGIES",
    "SEARCH_STRATEGIES",
    "TAG_STRATEGIES",
    "TITLE_STRATEGIES",
    "chapter_ids",
    "first_match",
    "image_number",
    "scramble_id",
    "sort_image_names",
]
