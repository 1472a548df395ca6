from __future__ import annotations

import random
import threading
import time
from typing import Dict, List, Optional, Tuple
from urllib.parse import quote_plus

import cloudscraper
import requests
import urllib3
from requests.exceptions import RequestException

from . import extract
from .base import Chapter, SearchResult, Work
from .config import Config
from .errors import FETCH_ERRORS, AllMirrorsFailed, NoChaptersFound, NotFound
from .mirrors import (
    DEFAULT_IMAGE_DOMAINS,
    MirrorResolver,
    probe_mirrors,
    usable_domains,
)
from .scramble import SCRAMBLE_220980
from .utils import log_debug, log_verbose, normalize_query, normalize_work_id

CONTENT_TIMEOUT = 60
MAX_PAGE_TTL = 24 * 60 * 60
MAX_PAGE_UPPER_BOUND = 3000
RANDOM_FALLBACK_PAGES = 100

_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/121.0.0.0 Safari/537.36"
)


class StatusError(RequestException):
    """A response arrived but with a status the caller cannot use."""


def create_session():
    """cloudscraper session with permissive TLS; plain requests if it fails to build."""
    try:
        session = cloudscraper.create_scraper(
            browser={"browser": "chrome", "platform": "windows", "mobile": False}
        )
    except Exception as e:
        log_verbose(
            f"  Warning: cloudscraper init failed ({e}). "
            "Falling back to requests.Session()"
        )
        session = requests.Session()
    session.verify = False
    urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)
    return session


class _RWLock:
    """Many readers or one writer."""

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0

    def acquire_read(self):
        with self._cond:
            self._readers += 1

    def release_read(self):
        with self._cond:
            self._readers -= 1
            if not self._readers:
                self._cond.notify_all()

    def acquire_write(self):
        self._cond.acquire()
        while self._readers:
            self._cond.wait()

    def release_write(self):
        self._cond.release()


class JMClient:
    """Site client: metadata, search, max-page estimation and image fetches.

    Mirror state and the max-page cache are owned by the instance, so one
    client can be shared by independently scheduled callers.
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        resolver: Optional[MirrorResolver] = None,
        session=None,
        max_retries: int = 2,
        retry_delay: float = 0.5,
    ):
        self.config = config or Config()
        self.resolver = resolver or MirrorResolver(self.config.jm_domains)
        self.session = session if session is not None else create_session()
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay
        self._cache_lock = _RWLock()
        self._max_page_cache: Dict[str, Tuple[int, float]] = {}
        self._inflight_lock = threading.Lock()
        self._inflight: Dict[str, threading.Event] = {}

    # ------------------------------------------------------------------ http
    def headers(self, accept: Optional[str] = None) -> Dict[str, str]:
        return {
            "User-Agent": _USER_AGENT,
            "Accept": accept
            or "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,image/apng,*/*;q=0.8",
            "Accept-Language": "zh-CN,zh;q=0.9,en;q=0.8",
            "Connection": "keep-alive",
            "Referer": self.resolver.active_base() + "/",
        }

    def _get(self, url: str, accept: Optional[str] = None):
        log_debug(f"  GET {url}")
        resp = self.session.get(
            url, headers=self.headers(accept), timeout=CONTENT_TIMEOUT, verify=False
        )
        if resp.status_code != 200:
            raise StatusError(f"{url} returned status {resp.status_code}")
        return resp

    def _fetch_html(self, url: str) -> str:
        resp = self._get(url)
        resp.encoding = resp.encoding or "utf-8"
        return resp.text

    def _fetch_from_mirrors(self, path: str, what: str) -> Tuple[str, str]:
        """GETs ``path`` from each mirror in order, one attempt per mirror.

        Returns the base URL that answered and the page markup.
        """
        last_error: Optional[Exception] = None
        for domain in self.resolver.domains():
            base = "https://" + domain
            try:
                return base, self._fetch_html(base + path)
            except FETCH_ERRORS as e:
                log_verbose(f"  Warning: {domain} failed: {e}")
                last_error = e
        raise AllMirrorsFailed(what, last_error) from last_error

    # --------------------------------------------------------------- mirrors
    def probe_mirrors(self) -> Dict[str, str]:
        return probe_mirrors(self.session, headers=self.headers())

    def update_mirrors(self, domains: Optional[List[str]] = None) -> List[str]:
        """Replaces the mirror list (probing first when none is given) and persists it."""
        if domains is None:
            domains = usable_domains(self.probe_mirrors())
        if self.resolver.replace(domains):
            self.config.jm_domains = self.resolver.domains()
            self.config.save()
        return self.resolver.domains()

    def reset_mirrors(self) -> None:
        self.resolver.reset()
        self.config.jm_domains = []
        self.config.save()

    # -------------------------------------------------------------- metadata
    def fetch_work(self, work_id: str) -> Work:
        work_id = normalize_work_id(work_id)
        if not work_id.isdigit():
            raise NotFound(f"invalid comic id: {work_id!r}")

        base, html = self._fetch_from_mirrors(f"/album/{work_id}", f"comic {work_id}")
        return self._parse_work(base, work_id, html)

    def _parse_work(self, base: str, work_id: str, html: str) -> Work:
        work = Work(
            id=work_id,
            title=extract.first_match(extract.TITLE_STRATEGIES, html)
            or f"Comic {work_id}",
            author=extract.first_match(extract.AUTHOR_STRATEGIES, html) or "",
            description=extract.first_match(extract.DESCRIPTION_STRATEGIES, html)
            or "",
            tags=extract.first_match(extract.TAG_STRATEGIES, html) or [],
        )
        album_scramble_id = extract.scramble_id(html) or ""

        chapter_ids = extract.chapter_ids(html, work_id)
        log_verbose(f"  Found {len(chapter_ids)} chapter(s) for {work_id}.")
        for number, chapter_id in enumerate(chapter_ids, start=1):
            try:
                chapter = self.fetch_chapter(base, chapter_id, album_scramble_id)
            except FETCH_ERRORS as e:
                log_verbose(f"  Warning: Skipping chapter {chapter_id}: {e}")
                continue
            chapter.title = f"Chapter {number}"
            work.chapters.append(chapter)

        if not work.chapters:
            raise NoChaptersFound(work_id)
        return work

    def fetch_chapter(
        self, base: str, chapter_id: str, default_scramble_id: str = ""
    ) -> Chapter:
        html = self._fetch_html(f"{base}/photo/{chapter_id}")

        domain = (
            extract.first_match(extract.IMAGE_DOMAIN_STRATEGIES, html)
            or DEFAULT_IMAGE_DOMAINS[0]
        )
        names = extract.sort_image_names(
            extract.first_match(extract.IMAGE_NAME_STRATEGIES, html) or []
        )
        return Chapter(
            id=chapter_id,
            scramble_id=extract.scramble_id(html)
            or default_scramble_id
            or str(SCRAMBLE_220980),
            image_names=names,
            image_urls=[
                f"https://{domain}/media/photos/{chapter_id}/{name}" for name in names
            ],
            image_domain=domain,
        )

    # ---------------------------------------------------------------- search
    def search_works(self, query: str, page: int = 1) -> List[SearchResult]:
        path = (
            "/search/photos"
            f"?search_query={quote_plus(normalize_query(query))}&page={page}"
        )
        _, html = self._fetch_from_mirrors(path, f"search page {page}")
        return extract.first_match(extract.SEARCH_STRATEGIES, html) or []

    def _cached_max_page(self, query: str) -> Optional[int]:
        self._cache_lock.acquire_read()
        try:
            entry = self._max_page_cache.get(query)
        finally:
            self._cache_lock.release_read()
        if entry and time.time() - entry[1] < MAX_PAGE_TTL:
            return entry[0]
        return None

    def estimate_max_page(self, query: str) -> int:
        """Last non-empty result page for ``query``, cached for 24 hours.

        Binary search assumes pages are non-empty up to the maximum and empty
        beyond it; an intermittently empty page makes it under-estimate.
        Concurrent callers for the same query share one search.
        """
        query = normalize_query(query)
        cached = self._cached_max_page(query)
        if cached is not None:
            return cached

        with self._inflight_lock:
            pending = self._inflight.get(query)
            if pending is None:
                self._inflight[query] = done = threading.Event()
        if pending is not None:
            pending.wait()
            cached = self._cached_max_page(query)
            if cached is not None:
                return cached
            return self._search_max_page(query)

        try:
            # a search that finished after the first lookup already filled it
            cached = self._cached_max_page(query)
            if cached is not None:
                return cached
            return self._search_max_page(query)
        finally:
            with self._inflight_lock:
                del self._inflight[query]
            done.set()

    def _search_max_page(self, query: str) -> int:
        if not self.search_works(query, 1):
            return 0

        low, high = 1, MAX_PAGE_UPPER_BOUND
        while low < high:
            mid = (low + high + 1) // 2
            try:
                found = bool(self.search_works(query, mid))
            except AllMirrorsFailed as e:
                log_debug(f"  Page {mid} failed during max-page search: {e}")
                found = False
            if found:
                low = mid
            else:
                high = mid - 1

        self._cache_lock.acquire_write()
        try:
            self._max_page_cache[query] = (low, time.time())
        finally:
            self._cache_lock.release_write()
        return low

    def random_work(self, query: str = "", rng: Optional[random.Random] = None) -> SearchResult:
        rng = rng or random.Random()
        try:
            max_page = self.estimate_max_page(query)
        except AllMirrorsFailed as e:
            log_verbose(f"  Warning: Could not estimate page count: {e}")
            max_page = 0
        if max_page <= 0:
            max_page = RANDOM_FALLBACK_PAGES

        results = self.search_works(query, rng.randint(1, max_page))
        if not results:
            results = self.search_works(query, 1)
        if not results:
            raise NotFound(f"no comics found for {query!r}")
        return rng.choice(results)

    # ---------------------------------------------------------------- images
    def download_image(self, url: str) -> bytes:
        """Fetches image bytes, retrying a bounded number of times."""
        accept = "image/webp,image/apng,image/*,*/*;q=0.8"
        last_error: Optional[Exception] = None
        for attempt in range(self.max_retries):
            try:
                return self._get(url, accept=accept).content
            except FETCH_ERRORS as e:
                log_verbose(
                    f"  Warning: Attempt {attempt + 1}/{self.max_retries} failed for {url}: {e}"
                )
                last_error = e
                if attempt < self.max_retries - 1:
                    time.sleep(self.retry_delay)
        raise last_error


__all__ = ["JMClient", "StatusError", "create_session"]
