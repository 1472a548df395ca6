"""Alternative domains / mirrors for JM and their health probing."""

from __future__ import annotations

import re
import threading
from typing import Dict, Iterable, List, Optional

from .errors import FETCH_ERRORS
from .utils import log_debug, log_verbose

DEFAULT_DOMAINS = (
    "18comic.vip",
    "18comic.org",
    "jmcomic.me",
    "jmcomic1.me",
    "jmcomic2.me",
)

DEFAULT_IMAGE_DOMAINS = (
    "cdn-msp.jmcomic.org",
    "cdn-msp2.jmcomic.org",
    "cdn-msp.jmapiproxy1.cc",
    "cdn-msp2.jmapiproxy2.cc",
    "cdn-msp.jmapinodeudzn.net",
)

# Public redirect pages listing the currently reachable domains.
DOMAIN_PAGE_TEMPLATE = "https://jmcmomic.github.io/go/{}.html"
DOMAIN_PAGE_RANGE = range(300, 309)

PROBE_TIMEOUT = 10
DOMAIN_PAGE_TIMEOUT = 5

_DOMAIN_RE = re.compile(
    r"(?:https?://)?([a-zA-Z0-9][a-zA-Z0-9-]*\.(?:vip|org|me|work|xyz|monster|cc|net))"
)


def _dedupe(domains: Iterable[str]) -> List[str]:
    seen = set()
    ordered = []
    for domain in domains:
        domain = (domain or "").strip()
        if domain and domain not in seen:
            ordered.append(domain)
            seen.add(domain)
    return ordered


class MirrorResolver:
    """Ordered candidate hosts; the first entry is the active one."""

    def __init__(self, domains: Optional[Iterable[str]] = None):
        self._lock = threading.Lock()
        self._domains = _dedupe(domains or ()) or list(DEFAULT_DOMAINS)

    def domains(self) -> List[str]:
        with self._lock:
            return list(self._domains)

    def active_host(self) -> str:
        with self._lock:
            return self._domains[0]

    def active_base(self) -> str:
        return "https://" + self.active_host()

    def replace(self, hosts: Iterable[str]) -> bool:
        """Swaps the candidate list. An empty list leaves it untouched."""
        cleaned = _dedupe(hosts)
        if not cleaned:
            return False
        with self._lock:
            self._domains = cleaned
        return True

    def reset(self) -> None:
        with self._lock:
            self._domains = list(DEFAULT_DOMAINS)


# ------------------------------------------------------------------ probing
def check_domain(session, domain: str, headers: Optional[Dict[str, str]] = None) -> str:
    """Returns ``"ok"`` if the host answers 200/302, ``"fail"`` otherwise."""
    try:
        resp = session.get(
            f"https://{domain}",
            headers=headers,
            timeout=PROBE_TIMEOUT,
            allow_redirects=False,
            verify=False,
        )
    except FETCH_ERRORS as e:
        log_debug(f"  Probe failed for {domain}: {e}")
        return "fail"
    return "ok" if resp.status_code in (200, 302) else "fail"


def fetch_published_domains(session) -> List[str]:
    """Harvests candidate hosts from the public redirect pages."""
    domains: List[str] = []
    for number in DOMAIN_PAGE_RANGE:
        page_url = DOMAIN_PAGE_TEMPLATE.format(number)
        try:
            resp = session.get(
                page_url, timeout=DOMAIN_PAGE_TIMEOUT, allow_redirects=False
            )
        except FETCH_ERRORS as e:
            log_debug(f"  Could not read {page_url}: {e}")
            continue
        for match in _DOMAIN_RE.finditer(resp.text or ""):
            domain = match.group(1)
            if not domain.startswith("jm365.work"):
                domains.append(domain)
    return _dedupe(domains)


def probe_mirrors(
    session,
    candidates: Iterable[str] = DEFAULT_DOMAINS,
    headers: Optional[Dict[str, str]] = None,
    include_published: bool = True,
) -> Dict[str, str]:
    """Probes every candidate host in parallel (one thread per host, no cap)."""
    results: Dict[str, str] = {}
    lock = threading.Lock()
    threads: List[threading.Thread] = []

    def probe(domain: str) -> None:
        status = check_domain(session, domain, headers)
        with lock:
            results[domain] = status

    def start(domain: str) -> None:
        with lock:
            if domain in results:
                return
            results[domain] = "pending"
        t = threading.Thread(target=probe, args=(domain,), daemon=True)
        t.start()
        threads.append(t)

    for domain in _dedupe(candidates):
        start(domain)

    if include_published:
        published = fetch_published_domains(session)
        log_verbose(f"  Found {len(published)} published domain(s).")
        for domain in published:
            start(domain)

    for t in threads:
        t.join()
    return results


def usable_domains(results: Dict[str, str]) -> List[str]:
    return sorted(domain for domain, status in results.items() if status == "ok")


__all__ = [
    "DEFAULT_DOMAINS",
    "DEFAULT_IMAGE_DOMAINS",
    "MirrorResolver",
    "probe_mirrors",
    "fetch_published_domains",
    "check_domain",
    "usable_domains",
]
