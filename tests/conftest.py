"""Shared fixtures and strict test-accounting guardrails."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Tuple, Union

import httpx
import pytest

from webmirror.config import MirrorOptions


@dataclass
class _TestAccounting:
    deselected: int = 0
    skipped: int = 0
    xfailed: int = 0
    xpassed: int = 0


_ACCOUNTING = _TestAccounting()


def pytest_deselected(items):  # pragma: no cover - pytest hook
    _ACCOUNTING.deselected += len(items)


def pytest_runtest_logreport(report):  # pragma: no cover - pytest hook
    if report.when not in {"setup", "call"}:
        return

    if getattr(report, "wasxfail", False):
        if report.outcome == "skipped":
            _ACCOUNTING.xfailed += 1
        elif report.outcome == "passed":
            _ACCOUNTING.xpassed += 1
        return

    if report.outcome == "skipped":
        _ACCOUNTING.skipped += 1


def pytest_sessionfinish(session, exitstatus):  # pragma: no cover - pytest hook
    violations = [
        f"{name}={count}"
        for name, count in (
            ("deselected", _ACCOUNTING.deselected),
            ("skipped", _ACCOUNTING.skipped),
            ("xfailed", _ACCOUNTING.xfailed),
            ("xpassed", _ACCOUNTING.xpassed),
        )
        if count
    ]
    if not violations:
        return

    reporter = session.config.pluginmanager.get_plugin("terminalreporter")
    if reporter:
        reporter.write_sep(
            "=",
            f"Strict guard failed: test accounting violations ({', '.join(violations)})",
        )
    session.exitstatus = 1


def html_page(body: str = "", title: str = "Test page") -> str:
    """A small but valid HTML document."""
    return (
        "<!DOCTYPE html><html><head>"
        f"<title>{title}</title></head><body>"
        f"<div class=\"content\">{body}</div>"
        "<p>Some ordinary page text so the document is long enough.</p>"
        "</body></html>"
    )


CHALLENGE_PAGE = (
    "<!DOCTYPE html><html><head><title>Just a moment...</title></head><body>"
    "<p>Checking your browser before accessing the site.</p>"
    "<p>Please enable JavaScript and cookies to continue.</p>"
    "</body></html>"
)


Route = Tuple[int, bytes, str]


class FakeSite:
    """In-memory website served through :class:`httpx.MockTransport`.

    Unknown URLs answer 404. Every request is recorded in ``requests``.
    """

    def __init__(self) -> None:
        self.routes: Dict[str, Route] = {}
        self.requests: List[httpx.Request] = []

    def add(
        self,
        url: str,
        body: Union[str, bytes],
        *,
        status: int = 200,
        content_type: str = "text/html; charset=utf-8",
    ) -> "FakeSite":
        data = body.encode("utf-8") if isinstance(body, str) else body
        self.routes[url] = (status, data, content_type)
        return self

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get(str(request.url))
        if route is None:
            return httpx.Response(404, text="not found")
        status, body, content_type = route
        return httpx.Response(status, content=body, headers={"content-type": content_type})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def hits(self, url: str) -> int:
        return sum(1 for request in self.requests if str(request.url) == url)

    @property
    def requested_hosts(self) -> List[str]:
        return [request.url.host for request in self.requests]


class RecordingReporter:
    """Progress reporter that keeps every notification."""

    def __init__(self) -> None:
        self.progress_events: List[Tuple[int, str]] = []
        self.status_events: List[Tuple[str, str]] = []

    def progress(self, percentage: int, message: str = "") -> None:
        self.progress_events.append((percentage, message))

    def status(self, message: str, severity="info") -> None:
        self.status_events.append((message, str(getattr(severity, "value", severity))))

    @property
    def percentages(self) -> List[int]:
        return [percentage for percentage, _ in self.progress_events]


@pytest.fixture
def fake_site() -> FakeSite:
    return FakeSite()


@pytest.fixture
def reporter() -> RecordingReporter:
    return RecordingReporter()


@pytest.fixture
def fast_options() -> MirrorOptions:
    """Direct-only fetching with no pauses and short timeouts."""
    return MirrorOptions(
        resource_batch_pause=0.0,
        text_attempt_timeout=2.0,
        direct_text_timeout=2.0,
        text_total_timeout=5.0,
        binary_attempt_timeout=2.0,
        text_backoff=0.0,
        binary_backoff=0.0,
        use_relays=False,
    )
