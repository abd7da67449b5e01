"""
Run Monitor
===========
Counters and timings for one importer run.

Tracks:
- Rows per outcome (Success / Redirect / Invalid / Error)
- Per-page timing (probe, load+settle, extract/transform, total)
- Frontier peak size and links enqueued (crawl mode)

The scheduler is strictly sequential, so no locking is needed.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Deque, Optional

from .outcome import OutcomeKind

logger = logging.getLogger(__name__)


@dataclass
class PageTiming:
    """Timing breakdown for a single URL."""
    url: str = ""
    probe_ms: float = 0.0
    load_ms: float = 0.0      # includes the settle delay
    process_ms: float = 0.0   # link extraction or transformation
    total_ms: float = 0.0
    kind: OutcomeKind = OutcomeKind.SUCCESS


@dataclass
class RunMetrics:
    """Snapshot of run metrics at a point in time."""
    pages_processed: int = 0
    pages_succeeded: int = 0
    pages_redirected: int = 0
    pages_invalid: int = 0
    pages_failed: int = 0
    links_enqueued: int = 0
    frontier_peak: int = 0
    pages_per_sec: float = 0.0
    avg_page_ms: float = 0.0
    avg_load_ms: float = 0.0
    p95_page_ms: float = 0.0
    elapsed_sec: float = 0.0
    stop_reason: str = ""


class RunMonitor:
    """
    Per-run metrics collector.

    Usage::

        monitor = RunMonitor()
        monitor.start()
        monitor.record_page(timing)
        monitor.stop("completed")
        logger.info(monitor.format_summary(monitor.snapshot()))
    """

    def __init__(self):
        self._reset()

    def _reset(self) -> None:
        self._start_time: float = 0.0
        self._end_time: Optional[float] = None
        self._counts = {kind: 0 for kind in OutcomeKind}
        self._links_enqueued = 0
        self._frontier_peak = 0
        # Keep the last 1000 timings for averages/percentiles
        self._timings: Deque[PageTiming] = deque(maxlen=1000)
        self._stop_reason = ""

    def start(self) -> None:
        self._reset()
        self._start_time = time.monotonic()

    def stop(self, reason: str = "completed") -> None:
        self._end_time = time.monotonic()
        self._stop_reason = reason

    def record_page(self, timing: PageTiming) -> None:
        self._counts[timing.kind] += 1
        self._timings.append(timing)

    def record_enqueue(self, count: int, frontier_size: int) -> None:
        self._links_enqueued += count
        self.update_frontier_size(frontier_size)

    def update_frontier_size(self, size: int) -> None:
        if size > self._frontier_peak:
            self._frontier_peak = size

    def snapshot(self) -> RunMetrics:
        end = self._end_time if self._end_time is not None else time.monotonic()
        elapsed = end - self._start_time if self._start_time else 0.0
        processed = sum(self._counts.values())

        totals = [t.total_ms for t in self._timings if t.total_ms > 0]
        loads = [t.load_ms for t in self._timings if t.load_ms > 0]
        avg_page = sum(totals) / len(totals) if totals else 0.0
        avg_load = sum(loads) / len(loads) if loads else 0.0
        p95 = 0.0
        if totals:
            ordered = sorted(totals)
            p95 = ordered[min(int(len(ordered) * 0.95), len(ordered) - 1)]

        return RunMetrics(
            pages_processed=processed,
            pages_succeeded=self._counts[OutcomeKind.SUCCESS],
            pages_redirected=self._counts[OutcomeKind.REDIRECT],
            pages_invalid=self._counts[OutcomeKind.INVALID],
            pages_failed=self._counts[OutcomeKind.ERROR],
            links_enqueued=self._links_enqueued,
            frontier_peak=self._frontier_peak,
            pages_per_sec=round(processed / elapsed, 2) if elapsed > 0 else 0.0,
            avg_page_ms=round(avg_page, 1),
            avg_load_ms=round(avg_load, 1),
            p95_page_ms=round(p95, 1),
            elapsed_sec=round(elapsed, 2),
            stop_reason=self._stop_reason,
        )

    def format_summary(self, metrics: RunMetrics) -> str:
        """Format a human-readable summary string."""
        lines = [
            "=" * 65,
            "  IMPORT RUN SUMMARY",
            "=" * 65,
            f"  Pages processed:     {metrics.pages_processed}",
            f"  Success:             {metrics.pages_succeeded}",
            f"  Redirect:            {metrics.pages_redirected}",
            f"  Invalid:             {metrics.pages_invalid}",
            f"  Error:               {metrics.pages_failed}",
            "-" * 65,
            f"  Links enqueued:      {metrics.links_enqueued}",
            f"  Frontier peak:       {metrics.frontier_peak}",
            "-" * 65,
            f"  Speed:               {metrics.pages_per_sec:.2f} pages/sec",
            f"  Avg page time:       {metrics.avg_page_ms:.0f} ms",
            f"  Avg load+settle:     {metrics.avg_load_ms:.0f} ms",
            f"  P95 page time:       {metrics.p95_page_ms:.0f} ms",
            f"  Elapsed time:        {metrics.elapsed_sec:.1f} s",
            f"  Stop reason:         {metrics.stop_reason}",
            "=" * 65,
        ]
        return "\n".join(lines)
