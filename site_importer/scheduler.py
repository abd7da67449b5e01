"""
Sequential Import Scheduler
===========================
Drives one URL at a time through probe → load → settle → classify →
(extract | transform) → record, until the frontier is exhausted.

State machine::

    IDLE → DISPATCHING → AWAITING_LOAD → SETTLING → CLASSIFYING
         → (EXTRACTING | TRANSFORMING) → RECORDING → DISPATCHING … → IDLE

Guarantees:
- Single-flight: at most one URL is between AWAITING_LOAD and RECORDING,
  and at most one page load is outstanding (``PageSession``)
- Exactly one report row per popped URL, appended in pop order
- Every per-URL failure becomes a row; only ``ConfigurationError`` and
  ``RunInProgressError`` escape a run, and both are raised before the
  first URL is processed

Usage::

    scheduler = ImportScheduler(renderer, ImporterRunConfig(mode="crawl"))
    scheduler.set_progress_callback(lambda n, url, row: print(n, row.status))
    report = await scheduler.run(["https://example.com/"])

    # Or consume rows as they are recorded:
    async for row in scheduler.stream(urls):
        ...
"""

from __future__ import annotations

import dataclasses
import logging
import time
from enum import Enum
from typing import AsyncIterator, Callable, Iterable, List, Optional, Tuple, Union

from .errors import (
    ImporterError,
    MalformedURLError,
    RunInProgressError,
    StaleLoadError,
)
from .frontier import Frontier
from .links import LinkExtraction, extract_links
from .monitor import PageTiming, RunMonitor
from .outcome import (
    Error,
    PageOutcome,
    Redirect,
    Success,
    classify_failure,
    classify_probe,
    error_message,
)
from .proxy import ProxyTarget, build_proxy_target
from .renderer import PageRenderer, ProbeResult
from .report import CrawlRow, ImportReport, ImportRow, ReportRow
from .run_config import ImporterRunConfig, RunMode
from .session import PageSession
from .storage import ArtifactStore
from .transform import MarkdownTransformer, TransformationAdapter, TransformResult

logger = logging.getLogger(__name__)

Payload = Union[LinkExtraction, TransformResult, None]


class SchedulerState(str, Enum):
    IDLE = "idle"
    DISPATCHING = "dispatching"
    AWAITING_LOAD = "awaiting_load"
    SETTLING = "settling"
    CLASSIFYING = "classifying"
    EXTRACTING = "extracting"
    TRANSFORMING = "transforming"
    RECORDING = "recording"


def _ms_since(start: float) -> float:
    return (time.monotonic() - start) * 1000


class ImportScheduler:
    """
    Sequential crawl/import orchestrator.

    Args:
        renderer:    ``PageRenderer`` backend (e.g. ``PlaywrightRenderer``)
        config:      Run configuration (defaults to ``ImporterRunConfig()``)
        transformer: Import-mode adapter (defaults to ``MarkdownTransformer``)
        store:       Artifact store (defaults to ``config.output_dir`` if set)
    """

    def __init__(
        self,
        renderer: PageRenderer,
        config: Optional[ImporterRunConfig] = None,
        *,
        transformer: Optional[TransformationAdapter] = None,
        store: Optional[ArtifactStore] = None,
    ):
        self.config = config or ImporterRunConfig()
        self.renderer = renderer
        self.transformer = transformer or MarkdownTransformer(include_docx=self.config.save_docx)
        if store is None and self.config.output_dir:
            store = ArtifactStore(self.config.output_dir)
        self.store = store

        self.session = PageSession(renderer, settle_delay=self.config.settle_delay)
        self.monitor = RunMonitor()
        self.frontier = Frontier(self.config.frontier_order)
        self.last_report: Optional[ImportReport] = None

        # State (reset per run)
        self._state = SchedulerState.IDLE
        self._running = False
        self._stop_requested = False
        self._run_config = self.config

        # Progress
        self._progress_callback: Optional[Callable] = None

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def running(self) -> bool:
        return self._running

    def set_progress_callback(self, callback: Callable) -> None:
        """Set callback: callback(rows_done, current_url, row)"""
        self._progress_callback = callback

    def stop(self) -> None:
        """Request a stop; the run finalizes after the current URL."""
        self._stop_requested = True
        self.session.invalidate()
        logger.info("Stop requested")

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def run(
        self,
        urls: Iterable[str],
        mode: Union[RunMode, str, None] = None,
        origin: Optional[str] = None,
    ) -> ImportReport:
        """Process every URL and return the finalized report."""
        async for _ in self.stream(urls, mode=mode, origin=origin):
            pass
        return self.last_report

    async def stream(
        self,
        urls: Iterable[str],
        mode: Union[RunMode, str, None] = None,
        origin: Optional[str] = None,
    ) -> AsyncIterator[ReportRow]:
        """
        Process every URL, yielding each report row as it is recorded.

        Raises (before any URL is processed):
            ConfigurationError: empty URL list, bad origin or mode.
            RunInProgressError: another run of this scheduler is active.
        """
        if self._running:
            raise RunInProgressError("A run is already in progress")

        overrides = {}
        if mode is not None:
            overrides["mode"] = mode
        if origin is not None:
            overrides["origin"] = origin
        config = dataclasses.replace(self.config, **overrides) if overrides else self.config
        config.validate()
        seeds = ImporterRunConfig.validate_urls(urls)

        # Reset state
        self._running = True
        self._stop_requested = False
        self._run_config = config
        self.session.settle_delay = config.settle_delay
        self.frontier = Frontier(config.frontier_order)
        report = ImportReport(config.mode)
        self.last_report = report

        config.log_summary(url_count=len(seeds))
        seeded = self.frontier.seed(seeds)
        if seeded < len(seeds):
            logger.info(f"[SEED] {len(seeds) - seeded} duplicate seed URLs dropped")

        self.monitor.start()
        self.monitor.update_frontier_size(len(self.frontier))
        stop_reason = "completed"

        try:
            while True:
                if self._stop_requested:
                    stop_reason = "User requested stop"
                    break

                self._state = SchedulerState.DISPATCHING
                url = self.frontier.pop_next()
                if url is None:
                    break

                logger.info(f"[{len(report) + 1}] Processing: {url}")
                timing = PageTiming(url=url)
                started = time.monotonic()
                outcome, payload = await self._process(url, timing)
                timing.total_ms = _ms_since(started)
                timing.kind = outcome.kind

                row = self._record(url, outcome, payload, report)
                self.monitor.record_page(timing)

                logger.info(f"[{len(report)}] {row.status:<10} {url}")
                if self._progress_callback:
                    try:
                        self._progress_callback(len(report), url, row)
                    except Exception:
                        logger.warning(f"[PROGRESS] Callback failed for {url}", exc_info=True)
                yield row
        finally:
            await self.session.release()
            report.finalize()
            self.monitor.stop(stop_reason)
            logger.info(self.monitor.format_summary(self.monitor.snapshot()))
            self._state = SchedulerState.IDLE
            self._running = False

    # ------------------------------------------------------------------
    # One URL
    # ------------------------------------------------------------------

    async def _process(self, url: str, timing: PageTiming) -> Tuple[PageOutcome, Payload]:
        """Drive *url* to exactly one outcome (plus the mode's payload on Success)."""
        config = self._run_config

        try:
            target = build_proxy_target(url, config.origin, origin_param=config.origin_param)
        except MalformedURLError as exc:
            logger.warning(f"[SKIP] {exc}")
            return Error(error_message(exc)), None

        # ── Existence probe ────────────────────────────────────────────
        self._state = SchedulerState.AWAITING_LOAD
        started = time.monotonic()
        try:
            probe = await self.renderer.probe(target.proxy_url)
        except Exception as exc:
            logger.warning(f"[PROBE] {target.remote_url} failed: {error_message(exc)}")
            return Error(error_message(exc)), None
        timing.probe_ms = _ms_since(started)

        outcome = classify_probe(probe, target, config.origin_param)
        if outcome is not None:
            return outcome, None

        # ── Full render ────────────────────────────────────────────────
        try:
            started = time.monotonic()
            token = await self.session.open(target.proxy_url)
            self._state = SchedulerState.SETTLING
            await self.session.settle(token)
            document = await self.session.read(token)
            timing.load_ms = _ms_since(started)

            self._state = SchedulerState.CLASSIFYING
            started = time.monotonic()
            if config.mode is RunMode.CRAWL:
                self._state = SchedulerState.EXTRACTING
                payload = extract_links(
                    document, target.remote_url, target.proxy_url, self.frontier,
                    origin_param=config.origin_param,
                )
            else:
                self._state = SchedulerState.TRANSFORMING
                payload = await self.transformer.transform(document, target.remote_url)
            timing.process_ms = _ms_since(started)
            return Success(document), payload

        except StaleLoadError as exc:
            logger.info(f"[STALE] {target.remote_url}: load abandoned")
            return Error(error_message(exc)), None

        except Exception as exc:
            logger.warning(f"[FAIL] {target.remote_url}: {error_message(exc)}")
            logger.debug(f"[FAIL] {target.remote_url} traceback", exc_info=True)
            reprobe = await self._reprobe(target)
            return classify_failure(exc, reprobe, target, config.origin_param), None

    async def _reprobe(self, target: ProxyTarget) -> Optional[ProbeResult]:
        """Secondary probe used to tell Redirect / Invalid apart from Error."""
        try:
            return await self.renderer.probe(target.proxy_url)
        except Exception as exc:
            logger.debug(f"[PROBE] Re-probe of {target.remote_url} failed: {exc}")
            return None

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def _record(
        self,
        url: str,
        outcome: PageOutcome,
        payload: Payload,
        report: ImportReport,
    ) -> ReportRow:
        self._state = SchedulerState.RECORDING
        redirect = outcome.final_url if isinstance(outcome, Redirect) else None

        if report.mode is RunMode.CRAWL:
            if isinstance(outcome, Success) and isinstance(payload, LinkExtraction):
                added = self.frontier.enqueue_all(payload.links)
                self.monitor.record_enqueue(added, len(self.frontier))
                row = CrawlRow(
                    url=url,
                    status=outcome.status_text,
                    link_count=payload.link_count,
                    already_processed_count=payload.already_processed_count,
                    external_host_count=payload.external_host_count,
                    links_to_follow=tuple(payload.links),
                )
            else:
                row = CrawlRow(url=url, status=outcome.status_text, redirect=redirect)
        else:
            if isinstance(outcome, Success) and isinstance(payload, TransformResult):
                self._save_artifacts(payload)
                row = ImportRow(
                    url=url,
                    status=outcome.status_text,
                    path=payload.path,
                    docx_filename=payload.docx_filename if payload.docx is not None else None,
                )
            else:
                row = ImportRow(url=url, status=outcome.status_text, redirect=redirect)

        report.append(row)
        return row

    def _save_artifacts(self, result: TransformResult) -> None:
        """Persist the artifacts of a Success row; failures are logged only."""
        if self.store is None:
            return
        artifacts: List[Tuple[str, Union[bytes, str]]] = []
        if result.docx is not None:
            artifacts.append((result.docx_filename, result.docx))
        if self._run_config.save_markdown:
            artifacts.append((result.markdown_filename, result.markdown))
        for filename, data in artifacts:
            try:
                self.store.save_artifact(filename, data)
            except (OSError, ImporterError) as e:
                logger.error(f"[SAVE] Could not save {filename}: {e}")
