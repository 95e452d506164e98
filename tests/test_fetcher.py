"""Tests for webmirror.fetcher module."""

from __future__ import annotations

import asyncio
import json
from urllib.parse import parse_qs, urlsplit

import httpx
import pytest
from conftest import CHALLENGE_PAGE, html_page

from webmirror.cancel import CancelToken, MirrorCancelled
from webmirror.config import MirrorOptions
from webmirror.fetcher import (
    USER_AGENTS,
    BinaryContent,
    ContentFetcher,
    DirectStrategy,
    FetchError,
    JsonRelayStrategy,
    OpaqueStrategy,
    ProtectedContentError,
    RawRelayStrategy,
    build_binary_strategies,
    build_text_strategies,
)

PAGE_URL = "https://example.com/"


def _fetcher(handler, fast_options, **kwargs) -> ContentFetcher:
    return ContentFetcher(
        fast_options, transport=httpx.MockTransport(handler), **kwargs
    )


class TestStrategyLists:
    def test_text_order_with_relays(self):
        names = [s.name for s in build_text_strategies(MirrorOptions())]
        assert names == [
            "allorigins",
            "jsonproxy",
            "corsproxy",
            "codetabs",
            "thingproxy",
            "direct",
        ]

    def test_text_direct_only(self):
        strategies = build_text_strategies(MirrorOptions(use_relays=False))
        assert [s.name for s in strategies] == ["direct"]
        assert strategies[0].timeout == 15.0

    def test_binary_order(self):
        names = [s.name for s in build_binary_strategies(MirrorOptions())]
        assert names == ["direct", "corsproxy", "allorigins-raw", "opaque"]

    def test_binary_direct_only(self):
        names = [s.name for s in build_binary_strategies(MirrorOptions(use_relays=False))]
        assert names == ["direct", "opaque"]

    def test_relay_target_quotes_url(self):
        relay = RawRelayStrategy("corsproxy", "https://corsproxy.io/?{quoted}")
        assert (
            relay.target("https://example.com/a?b=1")
            == "https://corsproxy.io/?https%3A%2F%2Fexample.com%2Fa%3Fb%3D1"
        )


class TestFetchText:
    @pytest.mark.asyncio
    async def test_direct_success(self, fast_options):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, text=html_page("Hello"))

        async with _fetcher(handler, fast_options) as fetcher:
            content = await fetcher.fetch_text(PAGE_URL, CancelToken())

        assert "Hello" in content
        assert seen[0].headers["User-Agent"] in USER_AGENTS
        assert "text/html" in seen[0].headers["Accept"]

    @pytest.mark.asyncio
    async def test_falls_back_in_order(self, fast_options):
        hosts = []

        def handler(request):
            hosts.append(request.url.host)
            if request.url.host == "relay.test":
                return httpx.Response(500, text="relay down")
            return httpx.Response(200, text=html_page("direct"))

        strategies = [
            RawRelayStrategy("relay", "https://relay.test/?url={quoted}", 1.0),
            DirectStrategy(1.0),
        ]
        async with _fetcher(handler, fast_options, text_strategies=strategies) as fetcher:
            content = await fetcher.fetch_text(PAGE_URL, CancelToken())

        assert "direct" in content
        assert hosts == ["relay.test", "example.com"]

    @pytest.mark.asyncio
    async def test_json_relay_unwraps_contents(self, fast_options):
        def handler(request):
            query = parse_qs(urlsplit(str(request.url)).query)
            assert query["url"] == [PAGE_URL]
            return httpx.Response(
                200,
                content=json.dumps({"contents": html_page("wrapped")}),
                headers={"content-type": "application/json"},
            )

        strategies = [JsonRelayStrategy("allorigins", "https://relay.test/get?url={quoted}")]
        async with _fetcher(handler, fast_options, text_strategies=strategies) as fetcher:
            content = await fetcher.fetch_text(PAGE_URL, CancelToken())

        assert "wrapped" in content

    @pytest.mark.asyncio
    async def test_invalid_content_moves_to_next_strategy(self, fast_options):
        def handler(request):
            if request.url.host == "relay.test":
                return httpx.Response(200, text="<html>tiny</html>")
            return httpx.Response(200, text=html_page("real"))

        strategies = [
            RawRelayStrategy("relay", "https://relay.test/?url={quoted}"),
            DirectStrategy(),
        ]
        async with _fetcher(handler, fast_options, text_strategies=strategies) as fetcher:
            content = await fetcher.fetch_text(PAGE_URL, CancelToken())

        assert "real" in content

    @pytest.mark.asyncio
    async def test_challenge_pages_only(self, fast_options):
        def handler(request):
            return httpx.Response(200, text=CHALLENGE_PAGE)

        async with _fetcher(handler, fast_options) as fetcher:
            with pytest.raises(ProtectedContentError, match="heavily protected"):
                await fetcher.fetch_text(PAGE_URL, CancelToken())

    @pytest.mark.asyncio
    async def test_all_strategies_fail(self, fast_options):
        def handler(request):
            return httpx.Response(404, text="missing")

        async with _fetcher(handler, fast_options) as fetcher:
            with pytest.raises(FetchError) as excinfo:
                await fetcher.fetch_text(PAGE_URL, CancelToken())

        assert "Unable to access https://example.com/" in str(excinfo.value)
        assert excinfo.value.attempts == ["direct: direct failed: 404"]

    @pytest.mark.asyncio
    async def test_network_error(self, fast_options):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        async with _fetcher(handler, fast_options) as fetcher:
            with pytest.raises(FetchError) as excinfo:
                await fetcher.fetch_text(PAGE_URL, CancelToken())

        assert "network error" in excinfo.value.attempts[-1]

    @pytest.mark.asyncio
    async def test_attempt_timeout(self, fast_options):
        async def handler(request):
            await asyncio.sleep(5)
            return httpx.Response(200, text=html_page())

        async with _fetcher(
            handler, fast_options, text_strategies=[DirectStrategy(0.05)]
        ) as fetcher:
            with pytest.raises(FetchError) as excinfo:
                await fetcher.fetch_text(PAGE_URL, CancelToken())

        assert "timed out" in excinfo.value.attempts[-1]

    @pytest.mark.asyncio
    async def test_text_resource_skips_validation(self, fast_options):
        def handler(request):
            return httpx.Response(200, text="body{margin:0}")

        async with _fetcher(handler, fast_options) as fetcher:
            css = await fetcher.fetch_text(
                "https://example.com/a.css", CancelToken(), validate=False
            )

        assert css == "body{margin:0}"

    @pytest.mark.asyncio
    async def test_cancel_aborts_in_flight_request(self, fast_options):
        async def handler(request):
            await asyncio.sleep(5)
            return httpx.Response(200, text=html_page())

        token = CancelToken()
        asyncio.get_running_loop().call_later(0.05, token.cancel)
        async with _fetcher(handler, fast_options) as fetcher:
            with pytest.raises(MirrorCancelled):
                await asyncio.wait_for(fetcher.fetch_text(PAGE_URL, token), timeout=2)

    @pytest.mark.asyncio
    async def test_requires_context_manager(self, fast_options):
        fetcher = ContentFetcher(fast_options)
        with pytest.raises(RuntimeError):
            await fetcher.fetch_text(PAGE_URL, CancelToken())


class TestFetchBinary:
    @pytest.mark.asyncio
    async def test_direct_bytes_with_referer(self, fast_options):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, content=b"\x89PNG\r\n")

        async with _fetcher(handler, fast_options, referer=PAGE_URL) as fetcher:
            data = await fetcher.fetch_binary("https://example.com/logo.png", CancelToken())

        assert data == b"\x89PNG\r\n"
        assert seen[0].headers["Referer"] == PAGE_URL
        assert seen[0].headers["Origin"] == "https://example.com"

    @pytest.mark.asyncio
    async def test_served_content_type_is_kept(self, fast_options):
        def handler(request):
            return httpx.Response(
                200, content=b"\xff\xd8jpeg", headers={"Content-Type": "image/jpeg"}
            )

        async with _fetcher(handler, fast_options) as fetcher:
            data = await fetcher.fetch_binary("https://example.com/avatar", CancelToken())

        assert isinstance(data, BinaryContent)
        assert data == b"\xff\xd8jpeg"
        assert data.content_type == "image/jpeg"

    @pytest.mark.asyncio
    async def test_returns_none_when_every_strategy_fails(self, fast_options):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(404)

        async with _fetcher(handler, fast_options) as fetcher:
            data = await fetcher.fetch_binary("https://example.com/x.png", CancelToken())

        assert data is None
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_empty_body_tries_next_strategy(self, fast_options):
        def handler(request):
            if request.url.host == "relay.test":
                return httpx.Response(200, content=b"font-bytes")
            return httpx.Response(200, content=b"")

        strategies = [
            DirectStrategy(),
            RawRelayStrategy("relay", "https://relay.test/raw?url={quoted}"),
        ]
        async with _fetcher(
            handler, fast_options, binary_strategies=strategies
        ) as fetcher:
            data = await fetcher.fetch_binary("https://example.com/a.woff2", CancelToken())

        assert data == b"font-bytes"

    @pytest.mark.asyncio
    async def test_opaque_does_not_follow_redirects(self, fast_options):
        def handler(request):
            return httpx.Response(302, headers={"location": "https://example.com/elsewhere"})

        async with _fetcher(
            handler, fast_options, binary_strategies=[OpaqueStrategy()]
        ) as fetcher:
            data = await fetcher.fetch_binary("https://example.com/a.png", CancelToken())

        assert data is None

    @pytest.mark.asyncio
    async def test_cancelled_token(self, fast_options):
        token = CancelToken()
        token.cancel()

        def handler(request):
            raise AssertionError("no request expected")

        async with _fetcher(handler, fast_options) as fetcher:
            with pytest.raises(MirrorCancelled):
                await fetcher.fetch_binary("https://example.com/a.png", token)
