"""Heuristics separating real pages from bot-challenge and error pages."""

from __future__ import annotations

from typing import Optional

MIN_CONTENT_LENGTH = 50
SHORT_CONTENT_LENGTH = 500

HTML_MARKERS = ("<html", "<!doctype", "<head", "<body", "<div", "<title")

# Rejection needs at least CHALLENGE_THRESHOLD distinct phrases.
CHALLENGE_PHRASES = (
    "checking your browser",
    "just a moment",
    "enable javascript and cookies",
    "ddos protection by cloudflare",
    "bot protection activated",
)
CHALLENGE_THRESHOLD = 2

SUSPICIOUS_WORDS = ("cloudflare", "checking", "moment", "browser")
SUSPICIOUS_THRESHOLD = 3


def looks_like_html(content: Optional[str]) -> bool:
    """True when *content* carries at least one marker of real HTML."""
    if not content:
        return False
    lowered = content.lower()
    return any(marker in lowered for marker in HTML_MARKERS)


def challenge_score(content: str) -> int:
    """Number of distinct challenge phrases found in *content*."""
    lowered = content.lower()
    return sum(1 for phrase in CHALLENGE_PHRASES if phrase in lowered)


def is_valid_content(content: Optional[str]) -> bool:
    """Return True if *content* looks like a genuine HTML page."""
    if not content or len(content) < MIN_CONTENT_LENGTH:
        return False

    if not looks_like_html(content):
        return False

    if challenge_score(content) >= CHALLENGE_THRESHOLD:
        return False

    if len(content) < SHORT_CONTENT_LENGTH:
        lowered = content.lower()
        suspicious = sum(1 for word in SUSPICIOUS_WORDS if word in lowered)
        if suspicious >= SUSPICIOUS_THRESHOLD:
            return False

    return True
