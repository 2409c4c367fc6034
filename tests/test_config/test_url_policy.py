"""URL policy tests for camp websites and discovered links."""

from __future__ import annotations

from campwatch.config.url_policy import (
    absolutize,
    host_of,
    is_crawlable_link,
    normalize_website,
    validate_target_url,
)


def test_rejects_non_http_scheme() -> None:
    result = validate_target_url("file:///etc/passwd")

    assert not result.allowed
    assert "Scheme 'file' not allowed" in result.reason


def test_rejects_loopback_ipv4_target() -> None:
    result = validate_target_url("http://127.0.0.1")

    assert not result.allowed
    assert "private range" in result.reason


def test_rejects_private_ipv4_target() -> None:
    assert not validate_target_url("http://10.0.0.8").allowed


def test_rejects_link_local_ipv6_target() -> None:
    assert not validate_target_url("http://[fe80::1]").allowed


def test_rejects_local_hostnames() -> None:
    assert not validate_target_url("http://localhost:8000").allowed
    assert not validate_target_url("http://camp.local").allowed


def test_accepts_public_site() -> None:
    assert validate_target_url("https://zoo.example/camp").allowed


def test_host_strips_www() -> None:
    assert host_of("https://WWW.Zoo.Example/camp") == "zoo.example"
    assert host_of("not a url") is None


def test_normalize_website() -> None:
    assert normalize_website(" zoo.example/camp ") == "https://zoo.example/camp"
    assert normalize_website("http://zoo.example") == "http://zoo.example"
    assert normalize_website("") == ""


def test_absolutize_drops_fragment() -> None:
    assert absolutize("../pricing#rates", "https://zoo.example/camp/index") == "https://zoo.example/pricing"


def test_crawlable_links() -> None:
    base = "https://www.zoo.example"
    assert is_crawlable_link("https://zoo.example/summer", base)
    assert not is_crawlable_link("https://other.example/summer", base)
    assert not is_crawlable_link("https://m.facebook.com/zoo", base)
    assert not is_crawlable_link("mailto:camp@zoo.example", base)
