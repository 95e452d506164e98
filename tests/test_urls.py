"""Tests for webmirror.urls module."""

from __future__ import annotations

import pytest

from webmirror.urls import (
    file_name,
    hostname_of,
    is_allowed_external_host,
    is_skippable_reference,
    local_path,
    normalize_host,
    normalize_seed,
    registrable_domain,
    resolve_reference,
    same_domain,
)


class TestNormalizeSeed:
    def test_adds_https_scheme(self):
        result = normalize_seed("example.com")
        assert result.is_valid
        assert result.url == "https://example.com/"
        assert result.hostname == "example.com"

    def test_keeps_http_and_lowercases_host(self):
        result = normalize_seed("  HTTP://Example.COM/Docs?page=2#intro ")
        assert result.is_valid
        assert result.url == "http://example.com/Docs?page=2"
        assert result.hostname == "example.com"

    @pytest.mark.parametrize("value", ["", "   ", None])
    def test_empty(self, value):
        result = normalize_seed(value)
        assert not result.is_valid
        assert result.error == "Please enter a valid website URL"

    @pytest.mark.parametrize(
        "value", ["file:///etc/passwd", "ftp://example.com", "javascript:alert(1)"]
    )
    def test_rejected_schemes(self, value):
        result = normalize_seed(value)
        assert not result.is_valid
        assert "protocol" in result.error

    @pytest.mark.parametrize(
        "value",
        [
            "localhost",
            "http://localhost:8000/",
            "127.0.0.1",
            "192.168.1.20",
            "10.0.0.5",
            "http://0.0.0.0:3000",
        ],
    )
    def test_local_addresses(self, value):
        result = normalize_seed(value)
        assert not result.is_valid
        assert "local or internal" in result.error

    def test_malformed_port(self):
        result = normalize_seed("https://example.com:notaport/")
        assert not result.is_valid
        assert "Invalid URL format" in result.error

    def test_missing_host(self):
        result = normalize_seed("https://")
        assert not result.is_valid
        assert "Invalid domain" in result.error


class TestLocalPath:
    @pytest.mark.parametrize(
        "url, expected",
        [
            ("https://example.com/", "index.html"),
            ("https://example.com", "index.html"),
            ("https://example.com/about", "about/index.html"),
            ("https://example.com/docs/", "docs/index.html"),
            ("https://example.com/css/style.css?v=3", "css/style.css"),
            ("https://example.com/img/logo.png#frag", "img/logo.png"),
            ("https://fonts.gstatic.com/s/inter/v1/a.woff2", "s/inter/v1/a.woff2"),
        ],
    )
    def test_mapping(self, url, expected):
        assert local_path(url) == expected

    def test_parent_segments_are_dropped(self):
        assert local_path("https://example.com/a/../../b/x.js") == "a/b/x.js"

    def test_unparseable_input_falls_back(self):
        first = local_path("http://[broken")
        second = local_path("http://[broken")
        assert first.startswith("assets/file_")
        assert first != second

    def test_file_name_matches_local_path(self):
        assert file_name("https://example.com/blog/post") == "blog/post/index.html"


class TestHosts:
    def test_normalize_host(self):
        assert normalize_host("Example.COM:8080") == "example.com"
        assert normalize_host("") == ""
        assert normalize_host(None) == ""

    def test_hostname_of(self):
        assert hostname_of("https://WWW.Example.com:443/x") == "www.example.com"
        assert hostname_of("not a url") == ""

    def test_registrable_domain(self):
        assert registrable_domain("www.example.com") == "example.com"
        assert registrable_domain("blog.example.co.uk") == "example.co.uk"
        assert registrable_domain("") is None


class TestSameDomain:
    def test_exact_host(self):
        assert same_domain("https://example.com/a", "example.com")
        assert same_domain("http://EXAMPLE.com/a", "example.com")

    def test_subdomain_excluded_by_default(self):
        assert not same_domain("https://www.example.com/", "example.com")

    def test_subdomain_included_when_enabled(self):
        assert same_domain(
            "https://blog.example.com/", "www.example.com", include_subdomains=True
        )
        assert not same_domain(
            "https://example.org/", "example.com", include_subdomains=True
        )

    def test_other_domain(self):
        assert not same_domain("https://other.com/", "example.com")


class TestAllowedExternalHosts:
    @pytest.mark.parametrize(
        "host",
        ["fonts.googleapis.com", "fonts.gstatic.com", "cdn.jsdelivr.net", "unpkg.com"],
    )
    def test_allowed(self, host):
        assert is_allowed_external_host(host)

    def test_subdomain_of_allowed_host(self):
        assert is_allowed_external_host("esm.unpkg.com")

    @pytest.mark.parametrize(
        "host",
        ["cdn.jsdelivr.net.attacker.example", "notunpkg.com", "tracker.example", ""],
    )
    def test_rejected(self, host):
        assert not is_allowed_external_host(host)


class TestResolveReference:
    BASE = "https://example.com/blog/post/"

    def test_relative_path(self):
        assert (
            resolve_reference("../img/a.png", self.BASE)
            == "https://example.com/blog/img/a.png"
        )

    def test_root_relative(self):
        assert resolve_reference("/css/a.css", self.BASE) == "https://example.com/css/a.css"

    def test_protocol_relative(self):
        assert (
            resolve_reference("//cdn.jsdelivr.net/npm/x.js", self.BASE)
            == "https://cdn.jsdelivr.net/npm/x.js"
        )

    def test_empty_path_becomes_root(self):
        assert resolve_reference("https://example.com", self.BASE) == "https://example.com/"

    def test_fragment_dropped_on_request(self):
        assert (
            resolve_reference("/about#team", self.BASE, drop_fragment=True)
            == "https://example.com/about"
        )
        assert resolve_reference("/about#team", self.BASE) == "https://example.com/about#team"

    @pytest.mark.parametrize(
        "value",
        [
            None,
            "",
            "#top",
            "data:image/png;base64,AAAA",
            "javascript:void(0)",
            "mailto:someone@example.com",
            "ftp://example.com/file.txt",
            "tel:+123456",
        ],
    )
    def test_unfetchable(self, value):
        assert resolve_reference(value, self.BASE) is None

    def test_skippable(self):
        assert is_skippable_reference("  #anchor")
        assert is_skippable_reference("JavaScript:go()")
        assert is_skippable_reference("tel:+123456")
        assert not is_skippable_reference("/page")
