"""
Frontier & Visited Set
======================
Pending URLs plus the set of every URL already processed or enqueued.

A URL enters the visited set at enqueue time, so a link discovered twice
(on one page or across pages) is only queued once.  The visited set only
grows during a run; ``reset()`` starts a new one.

Ordering
--------
``LIFO`` (default) pops the most recently discovered link first, which
makes crawl mode walk the site depth-first.  Seeds are pushed in reverse
so that, in both orders, the seed list itself is processed top to bottom.
``FIFO`` walks discovered links breadth-first.
"""

from __future__ import annotations

import logging
from collections import deque
from typing import Deque, Iterable, List, Optional, Set

from .errors import MalformedURLError
from .proxy import normalize_url
from .run_config import FrontierOrder

logger = logging.getLogger(__name__)


def url_key(url: str) -> str:
    """Dedup key; malformed URLs fall back to their stripped text."""
    try:
        return normalize_url(url)
    except MalformedURLError:
        return url.strip()


class Frontier:
    """Queue of pending URLs with at-most-once enqueue semantics."""

    def __init__(self, order: FrontierOrder = FrontierOrder.LIFO):
        self.order = FrontierOrder(order)
        self._pending: Deque[str] = deque()
        self._visited: Set[str] = set()

    def reset(self) -> None:
        self._pending.clear()
        self._visited.clear()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, url: str) -> bool:
        return url_key(url) in self._visited

    @property
    def pending(self) -> List[str]:
        """Pending URLs in the order they will be popped."""
        if self.order is FrontierOrder.LIFO:
            return list(reversed(self._pending))
        return list(self._pending)

    @property
    def visited_count(self) -> int:
        return len(self._visited)

    def is_exhausted(self) -> bool:
        return not self._pending

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def enqueue_if_new(self, url: str) -> bool:
        """Queue *url* unless an equal URL was seen before. True iff added."""
        key = url_key(url)
        if key in self._visited:
            return False
        self._visited.add(key)
        self._pending.append(url)
        return True

    def enqueue_all(self, urls: Iterable[str]) -> int:
        """Queue every new URL in *urls* (in order); returns how many were added."""
        return sum(1 for url in urls if self.enqueue_if_new(url))

    def seed(self, urls: Iterable[str]) -> int:
        """Queue the run's initial URLs so they pop in list order."""
        urls = list(urls)
        if self.order is FrontierOrder.LIFO:
            # Keep the first occurrence of each seed, then push in reverse
            # so the stack pops the first seed first.
            unique: List[str] = []
            seen: Set[str] = set()
            for url in urls:
                key = url_key(url)
                if key not in seen and key not in self._visited:
                    seen.add(key)
                    unique.append(url)
            return self.enqueue_all(reversed(unique))
        return self.enqueue_all(urls)

    def pop_next(self) -> Optional[str]:
        """Next URL to process, or ``None`` when exhausted."""
        if not self._pending:
            return None
        if self.order is FrontierOrder.LIFO:
            return self._pending.pop()
        return self._pending.popleft()
