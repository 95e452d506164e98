"""Per-run crawl state."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Set

from .config import MAX_DEPTH
from .urls import SeedValidation, same_domain


@dataclass
class CrawlContext:
    """Mutable state of one mirror run.

    Owned by the scheduler for the lifetime of a single run; nothing is shared
    between runs.
    """

    base_url: str
    base_domain: str
    max_depth: int = MAX_DEPTH
    include_subdomains: bool = False
    visited: Set[str] = field(default_factory=set)
    crawled_pages: List[str] = field(default_factory=list)

    @classmethod
    def from_seed(
        cls, seed: SeedValidation, *, include_subdomains: bool = False
    ) -> "CrawlContext":
        return cls(
            base_url=seed.url,
            base_domain=seed.hostname,
            include_subdomains=include_subdomains,
        )

    def claim(self, url: str) -> bool:
        """Mark *url* visited; False if it already was."""
        if url in self.visited:
            return False
        self.visited.add(url)
        return True

    def in_scope(self, url: str) -> bool:
        return same_domain(
            url, self.base_domain, include_subdomains=self.include_subdomains
        )

    def record_page(self, url: str) -> None:
        self.crawled_pages.append(url)
