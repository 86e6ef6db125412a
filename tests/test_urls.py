"""
Tests for URL canonicalisation, exclusion rules and parameter injection.
"""

import pytest

from wardscan.scanner.core.urls import (
    host_of, is_excluded, matches_exclusion, normalize_url, same_domain, with_param
)


@pytest.mark.parametrize("raw, expected", [
    ("http://Example.com:80/a#frag", "http://example.com/a"),
    ("HTTPS://EXAMPLE.com:443", "https://example.com/"),
    ("http://example.com:8080/x?b=2&a=1", "http://example.com:8080/x?b=2&a=1"),
    ("http://example.com/Path/Case", "http://example.com/Path/Case"),
    ("http://user:pw@Example.com/", "http://user:pw@example.com/"),
    ("http://[::1]:8000/x", "http://[::1]:8000/x"),
])
def test_normalize(raw, expected):
    assert normalize_url(raw) == expected


@pytest.mark.parametrize("raw", ["", "not a url", "mailto:someone@example.com", "/relative/path", "http://host:bad/"])
def test_normalize_rejects_non_absolute(raw):
    assert normalize_url(raw) is None


@pytest.mark.parametrize("raw", [
    "http://Example.com:80/a#frag",
    "https://EXAMPLE.com:8443/x?q=1#y",
    "http://example.com",
    "http://[::1]/",
    "http://user@Example.com:81/p?a=b&c",
])
def test_normalize_is_idempotent(raw):
    once = normalize_url(raw)
    assert normalize_url(once) == once


def test_host_helpers():
    assert host_of("http://Example.COM/x") == "example.com"
    assert same_domain("http://a.example/x", "https://A.example/y")
    assert not same_domain("http://a.example/", "http://b.example/")


class TestExclusions:

    URL = "http://example.com/admin/users?id=1"

    def test_literal_path_prefix(self):
        assert matches_exclusion(self.URL, "/admin")
        assert not matches_exclusion(self.URL, "/public")

    def test_literal_prefix_is_not_segment_aware(self):
        assert matches_exclusion("http://example.com/administrator", "/admin")

    def test_literal_full_url_prefix(self):
        assert matches_exclusion(self.URL, "http://example.com/admin")
        assert not matches_exclusion(self.URL, "https://example.com/admin")

    def test_glob(self):
        assert matches_exclusion("http://example.com/files/report.pdf", "*.pdf")
        assert matches_exclusion("http://example.com/static/app.js", "*/static/*")
        assert not matches_exclusion("http://example.com/report.doc", "*.pdf")

    def test_regex_is_case_insensitive(self):
        assert matches_exclusion("http://example.com/LOGOUT", r"re:/logout$")
        assert not matches_exclusion("http://example.com/logout/now", r"re:/logout$")

    def test_invalid_regex_is_ignored(self):
        assert not matches_exclusion(self.URL, "re:(")

    def test_blank_rule(self):
        assert not matches_exclusion(self.URL, "   ")

    def test_is_excluded_any_rule(self):
        assert is_excluded(self.URL, ["/nothing", "re:users"])
        assert not is_excluded(self.URL, [])
        assert not is_excluded(self.URL, None)


class TestWithParam:

    def test_appends(self):
        assert with_param("http://e.com/", "q", "<") == "http://e.com/?q=%3C"

    def test_replaces_first_occurrence_only(self):
        url = with_param("http://e.com/p?a=1&b=2&a=3", "a", "x y")
        assert url == "http://e.com/p?a=x%20y&b=2&a=3"

    def test_drops_fragment(self):
        assert with_param("http://e.com/p#top", "id", "1") == "http://e.com/p?id=1"
