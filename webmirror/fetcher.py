"""Multi-strategy content retrieval.

Every fetch walks an ordered list of :class:`FetchStrategy` objects (direct
requests and public relay proxies) and returns the first usable answer.
Each attempt runs under its own timeout and under the run's
:class:`~webmirror.cancel.CancelToken`.

Example usage:

    from webmirror.cancel import CancelToken
    from webmirror.fetcher import ContentFetcher

    token = CancelToken()
    async with ContentFetcher(referer="https://example.com/") as fetcher:
        html = await fetcher.fetch_text("https://example.com/", token)
        logo = await fetcher.fetch_binary("https://example.com/logo.png", token)
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Union
from urllib.parse import quote, urlsplit

import httpx

from .cancel import AttemptTimeout, CancelToken
from .config import MirrorOptions
from .validator import CHALLENGE_THRESHOLD, challenge_score, is_valid_content

LOGGER = logging.getLogger(__name__)

USER_AGENTS: List[str] = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:123.0) Gecko/20100101 Firefox/123.0",
]

BINARY_USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"

Payload = Union[str, bytes]


class BinaryContent(bytes):
    """Bytes of a binary answer, with the ``Content-Type`` it was served as."""

    content_type: Optional[str]

    def __new__(cls, data: bytes, content_type: Optional[str] = None) -> "BinaryContent":
        instance = super().__new__(cls, data)
        instance.content_type = content_type
        return instance


class FetchError(Exception):
    """Raised when a URL could not be retrieved."""

    def __init__(
        self,
        message: str,
        *,
        url: str = "",
        status_code: Optional[int] = None,
        attempts: Optional[List[str]] = None,
    ):
        self.url = url
        self.status_code = status_code
        self.attempts = list(attempts or [])
        super().__init__(message)


class FetchTimeout(FetchError):
    """Raised when a single attempt exceeded its timeout."""

    def __init__(self, message: str = "Request timed out", *, url: str = ""):
        super().__init__(message, url=url)


class ProtectedContentError(FetchError):
    """Raised when the only answers received were bot-challenge pages."""


@dataclass(slots=True)
class FetchRequest:
    """What is being fetched and on whose behalf."""

    url: str
    user_agent: str
    referer: Optional[str] = None

    @property
    def origin(self) -> Optional[str]:
        if not self.referer:
            return None
        parts = urlsplit(self.referer)
        return f"{parts.scheme}://{parts.netloc}"


class FetchStrategy:
    """One way of retrieving a URL; subclasses vary target and headers."""

    name = "strategy"

    def __init__(self, timeout: float = 20.0):
        self.timeout = timeout

    def target(self, url: str) -> str:
        return url

    def headers(self, request: FetchRequest, *, binary: bool) -> Dict[str, str]:
        return {"User-Agent": request.user_agent, "Accept": "*/*"}

    async def fetch(
        self, client: httpx.AsyncClient, request: FetchRequest, *, binary: bool
    ) -> Optional[Payload]:
        response = await client.get(
            self.target(request.url), headers=self.headers(request, binary=binary)
        )
        return self.read(response, binary=binary)

    def read(self, response: httpx.Response, *, binary: bool) -> Optional[Payload]:
        if not response.is_success:
            raise FetchError(
                f"{self.name} failed: {response.status_code}",
                status_code=response.status_code,
            )
        if binary:
            return BinaryContent(response.content, response.headers.get("content-type"))
        return response.text

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, timeout={self.timeout})"


class DirectStrategy(FetchStrategy):
    """Request the URL itself with browser-like headers."""

    name = "direct"

    def headers(self, request: FetchRequest, *, binary: bool) -> Dict[str, str]:
        if binary:
            headers = {"User-Agent": BINARY_USER_AGENT, "Accept": "*/*"}
            if request.referer:
                headers["Referer"] = request.referer
                headers["Origin"] = request.origin or request.referer
            return headers
        return {
            "User-Agent": request.user_agent,
            "Accept": (
                "text/html,application/xhtml+xml,application/xml;q=0.9,"
                "image/webp,*/*;q=0.8"
            ),
            "Accept-Language": "en-US,en;q=0.5",
            "Upgrade-Insecure-Requests": "1",
            "Cache-Control": "no-cache",
            "Pragma": "no-cache",
        }


class RawRelayStrategy(FetchStrategy):
    """Public relay that answers with the raw upstream body.

    ``template`` receives ``{quoted}`` (percent-encoded URL) and ``{url}``.
    """

    def __init__(
        self,
        name: str,
        template: str,
        timeout: float = 20.0,
        extra_headers: Optional[Dict[str, str]] = None,
    ):
        super().__init__(timeout)
        self.name = name
        self.template = template
        self.extra_headers = dict(extra_headers or {})

    def target(self, url: str) -> str:
        return self.template.format(quoted=quote(url, safe=""), url=url)

    def headers(self, request: FetchRequest, *, binary: bool) -> Dict[str, str]:
        user_agent = BINARY_USER_AGENT if binary else request.user_agent
        headers = {"User-Agent": user_agent, "Accept": "*/*" if binary else "text/html"}
        headers.update(self.extra_headers)
        return headers


class JsonRelayStrategy(RawRelayStrategy):
    """Relay that wraps the upstream body in a JSON ``contents`` field."""

    def headers(self, request: FetchRequest, *, binary: bool) -> Dict[str, str]:
        return {"User-Agent": request.user_agent, "Accept": "application/json"}

    def read(self, response: httpx.Response, *, binary: bool) -> Optional[Payload]:
        if binary:
            raise FetchError(f"{self.name} cannot carry binary content")
        if not response.is_success:
            raise FetchError(
                f"{self.name} failed: {response.status_code}",
                status_code=response.status_code,
            )
        data = response.json()
        if not isinstance(data, dict):
            raise FetchError(f"{self.name} returned an unexpected payload")
        contents = data.get("contents")
        return contents if isinstance(contents, str) else None


class OpaqueStrategy(FetchStrategy):
    """Bare request without redirects or headers; usually yields nothing.

    Non-success answers are treated as unreadable rather than as errors.
    """

    name = "opaque"

    def headers(self, request: FetchRequest, *, binary: bool) -> Dict[str, str]:
        return {"User-Agent": BINARY_USER_AGENT}

    async def fetch(
        self, client: httpx.AsyncClient, request: FetchRequest, *, binary: bool
    ) -> Optional[Payload]:
        response = await client.get(
            request.url,
            headers=self.headers(request, binary=binary),
            follow_redirects=False,
        )
        if not response.is_success:
            return None
        if binary:
            return BinaryContent(response.content, response.headers.get("content-type"))
        return response.text


def build_text_strategies(options: MirrorOptions) -> List[FetchStrategy]:
    """Ordered strategies for pages and text resources."""
    strategies: List[FetchStrategy] = []
    if options.use_relays:
        timeout = options.text_attempt_timeout
        strategies.extend(
            [
                JsonRelayStrategy(
                    "allorigins", "https://api.allorigins.win/get?url={quoted}", timeout
                ),
                RawRelayStrategy(
                    "jsonproxy", "https://jsonp.afeld.me/?url={quoted}", timeout
                ),
                RawRelayStrategy(
                    "corsproxy",
                    "https://corsproxy.io/?{quoted}",
                    timeout,
                    extra_headers={"Origin": "https://corsproxy.io"},
                ),
                RawRelayStrategy(
                    "codetabs",
                    "https://api.codetabs.com/v1/proxy?quest={quoted}",
                    timeout,
                ),
                RawRelayStrategy(
                    "thingproxy",
                    "https://thingproxy.freeboard.io/fetch/{url}",
                    timeout,
                    extra_headers={"Referer": "https://thingproxy.freeboard.io/"},
                ),
            ]
        )
    strategies.append(DirectStrategy(options.direct_text_timeout))
    return strategies


def build_binary_strategies(options: MirrorOptions) -> List[FetchStrategy]:
    """Ordered strategies for images, fonts, media and documents."""
    timeout = options.binary_attempt_timeout
    strategies: List[FetchStrategy] = [DirectStrategy(timeout)]
    if options.use_relays:
        strategies.extend(
            [
                RawRelayStrategy("corsproxy", "https://corsproxy.io/?{quoted}", timeout),
                RawRelayStrategy(
                    "allorigins-raw", "https://api.allorigins.win/raw?url={quoted}", timeout
                ),
            ]
        )
    strategies.append(OpaqueStrategy(timeout))
    return strategies


class ContentFetcher:
    """Fetch text and bytes through ordered fallback strategies.

    Use as an async context manager; a client passed in by the caller is not
    closed on exit.
    """

    def __init__(
        self,
        options: Optional[MirrorOptions] = None,
        *,
        client: Optional[httpx.AsyncClient] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        referer: Optional[str] = None,
        text_strategies: Optional[Sequence[FetchStrategy]] = None,
        binary_strategies: Optional[Sequence[FetchStrategy]] = None,
    ):
        self.options = options or MirrorOptions()
        self.referer = referer
        self.text_strategies = list(
            text_strategies
            if text_strategies is not None
            else build_text_strategies(self.options)
        )
        self.binary_strategies = list(
            binary_strategies
            if binary_strategies is not None
            else build_binary_strategies(self.options)
        )
        self._client = client
        self._transport = transport
        self._owns_client = client is None

    async def __aenter__(self) -> "ContentFetcher":
        if self._client is None:
            self._client = httpx.AsyncClient(
                transport=self._transport,
                follow_redirects=True,
                timeout=httpx.Timeout(self.options.text_total_timeout),
            )
        return self

    async def __aexit__(self, *exc_info) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("ContentFetcher must be used as an async context manager")
        return self._client

    async def _attempt(
        self,
        strategy: FetchStrategy,
        request: FetchRequest,
        *,
        binary: bool,
        token: CancelToken,
        timeout: float,
    ) -> Optional[Payload]:
        try:
            return await token.run(
                strategy.fetch(self.client, request, binary=binary), timeout=timeout
            )
        except AttemptTimeout:
            raise FetchTimeout(url=request.url) from None
        except httpx.TimeoutException:
            raise FetchTimeout(url=request.url) from None
        except httpx.HTTPError as exc:
            raise FetchError(
                f"{strategy.name} failed: network error ({type(exc).__name__})",
                url=request.url,
            ) from exc
        except ValueError as exc:
            raise FetchError(
                f"{strategy.name} returned malformed data", url=request.url
            ) from exc

    async def fetch_text(
        self, url: str, token: CancelToken, *, validate: bool = True
    ) -> str:
        """Return the first text answer for *url*.

        With ``validate`` (pages) an answer must pass
        :func:`~webmirror.validator.is_valid_content`; otherwise any non-empty
        body is accepted.

        Raises:
            FetchError: every strategy failed or returned unusable content.
            MirrorCancelled: the token fired.
        """
        request = FetchRequest(
            url=url, user_agent=random.choice(USER_AGENTS), referer=self.referer
        )
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.options.text_total_timeout
        errors: List[str] = []
        challenged = False
        last_index = len(self.text_strategies) - 1

        for index, strategy in enumerate(self.text_strategies):
            token.raise_if_cancelled()
            remaining = deadline - loop.time()
            if remaining <= 0:
                errors.append("Request timed out (overall limit reached)")
                break

            try:
                content = await self._attempt(
                    strategy,
                    request,
                    binary=False,
                    token=token,
                    timeout=min(strategy.timeout, remaining),
                )
            except FetchError as exc:
                LOGGER.debug("Text fetch via %s failed for %s: %s", strategy.name, url, exc)
                errors.append(f"{strategy.name}: {exc}")
                if index < last_index:
                    await token.sleep(self.options.text_backoff)
                continue

            if isinstance(content, str) and content:
                if not validate or is_valid_content(content):
                    LOGGER.debug("Fetched %s via %s", url, strategy.name)
                    return content
                if challenge_score(content) >= CHALLENGE_THRESHOLD:
                    challenged = True

            LOGGER.debug("%s returned invalid content for %s", strategy.name, url)
            errors.append(f"{strategy.name}: invalid content")

        if challenged:
            raise ProtectedContentError(
                f"Website {url} is heavily protected and cannot be downloaded",
                url=url,
                attempts=errors,
            )
        reason = errors[-1] if errors else "no retrieval strategies configured"
        raise FetchError(f"Unable to access {url} ({reason})", url=url, attempts=errors)

    async def fetch_binary(self, url: str, token: CancelToken) -> Optional[bytes]:
        """Return the first non-empty byte answer for *url*, or None.

        Answers read by the built-in strategies are :class:`BinaryContent`.

        Raises:
            MirrorCancelled: the token fired.
        """
        request = FetchRequest(url=url, user_agent=BINARY_USER_AGENT, referer=self.referer)
        last_index = len(self.binary_strategies) - 1

        for index, strategy in enumerate(self.binary_strategies):
            token.raise_if_cancelled()
            try:
                data = await self._attempt(
                    strategy,
                    request,
                    binary=True,
                    token=token,
                    timeout=strategy.timeout,
                )
            except FetchError as exc:
                LOGGER.debug(
                    "Binary fetch method %d (%s) failed for %s: %s",
                    index + 1,
                    strategy.name,
                    url,
                    exc,
                )
                if index < last_index:
                    await token.sleep(self.options.binary_backoff)
                continue

            if isinstance(data, bytes) and data:
                return data

        return None
