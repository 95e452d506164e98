"""Tests for webmirror.validator module."""

from __future__ import annotations

from conftest import CHALLENGE_PAGE, html_page

from webmirror.validator import challenge_score, is_valid_content, looks_like_html


class TestLooksLikeHtml:
    def test_markers(self):
        assert looks_like_html("<DIV>hello</DIV>")
        assert looks_like_html("<!doctype html>")

    def test_plain_text(self):
        assert not looks_like_html("just some words")
        assert not looks_like_html("")
        assert not looks_like_html(None)


class TestChallengeScore:
    def test_counts_distinct_phrases(self):
        assert challenge_score(CHALLENGE_PAGE) == 3

    def test_no_phrases(self):
        assert challenge_score(html_page("Welcome")) == 0


class TestIsValidContent:
    def test_regular_page(self):
        assert is_valid_content(html_page("Welcome to the site"))

    def test_too_short(self):
        assert not is_valid_content("<html></html>")

    def test_empty(self):
        assert not is_valid_content("")
        assert not is_valid_content(None)

    def test_no_html_markers(self):
        assert not is_valid_content("plain text response " * 10)

    def test_challenge_page(self):
        assert not is_valid_content(CHALLENGE_PAGE)

    def test_single_challenge_phrase_is_tolerated(self):
        page = html_page("Our CDN offers DDoS protection by Cloudflare for every plan.")
        assert is_valid_content(page)

    def test_short_page_with_suspicious_words(self):
        page = "<html><body>cloudflare checking browser page</body></html>"
        assert len(page) >= 50
        assert not is_valid_content(page)

    def test_long_page_with_suspicious_words(self):
        page = html_page("cloudflare checking browser " + "article text " * 50)
        assert len(page) >= 500
        assert is_valid_content(page)
