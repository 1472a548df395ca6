from cloudscraper.exceptions import CloudflareChallengeError

from jmcomic.mirrors import (
    DEFAULT_DOMAINS,
    DOMAIN_PAGE_RANGE,
    DOMAIN_PAGE_TEMPLATE,
    MirrorResolver,
    check_domain,
    fetch_published_domains,
    probe_mirrors,
    usable_domains,
)
from tests.conftest import FakeSession


def test_resolver_defaults_and_dedupes():
    assert MirrorResolver().domains() == list(DEFAULT_DOMAINS)
    resolver = MirrorResolver(["b.test", " a.test ", "b.test", ""])
    assert resolver.domains() == ["b.test", "a.test"]
    assert resolver.active_host() == "b.test"
    assert resolver.active_base() == "https://b.test"


def test_resolver_replace_and_reset():
    resolver = MirrorResolver(["a.test"])

    assert resolver.replace(["c.test", "d.test"])
    assert resolver.domains() == ["c.test", "d.test"]

    assert not resolver.replace([])
    assert resolver.domains() == ["c.test", "d.test"]

    resolver.reset()
    assert resolver.domains() == list(DEFAULT_DOMAINS)


def test_domains_returns_a_snapshot():
    resolver = MirrorResolver(["a.test"])
    snapshot = resolver.domains()
    snapshot.append("b.test")
    assert resolver.domains() == ["a.test"]


def test_check_domain(connection_error):
    session = FakeSession(
        {
            "https://up.test": (200, ""),
            "https://moved.test": (302, ""),
            "https://down.test": connection_error,
            "https://guarded.test": CloudflareChallengeError("challenge"),
        },
        default_status=503,
    )

    assert check_domain(session, "up.test") == "ok"
    assert check_domain(session, "moved.test") == "ok"
    assert check_domain(session, "down.test") == "fail"
    assert check_domain(session, "guarded.test") == "fail"
    assert check_domain(session, "broken.test") == "fail"


def test_probe_mirrors_without_published_pages():
    session = FakeSession({"https://up.test": (200, "")}, default_status=500)

    results = probe_mirrors(
        session, ["up.test", "down.test", "up.test"], include_published=False
    )

    assert results == {"up.test": "ok", "down.test": "fail"}
    assert session.count("https://jmcmomic.github.io") == 0
    assert usable_domains(results) == ["up.test"]


def test_published_domains_are_probed_too(connection_error):
    routes = {
        DOMAIN_PAGE_TEMPLATE.format(300): (
            200,
            '<a href="https://18comic-new.vip">x</a> jm365.work/abc fresh2.org',
        ),
        DOMAIN_PAGE_TEMPLATE.format(301): connection_error,
        "https://18comic-new.vip": (200, ""),
        "https://fresh2.org": (302, ""),
        "https://up.test": (200, ""),
    }
    session = FakeSession(routes, default_status=404)

    assert fetch_published_domains(session) == ["18comic-new.vip", "fresh2.org"]
    assert session.count("https://jmcmomic.github.io") == len(DOMAIN_PAGE_RANGE)

    results = probe_mirrors(session, ["up.test", "fresh2.org"])

    assert results == {"up.test": "ok", "fresh2.org": "ok", "18comic-new.vip": "ok"}
    assert session.count("https://fresh2.org") == 1


def test_usable_domains_sorted():
    results = {"z.test": "ok", "a.test": "ok", "m.test": "fail", "b.test": "pending"}
    assert usable_domains(results) == ["a.test", "z.test"]
