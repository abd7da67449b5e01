"""
Unified Run Configuration
=========================
Single source of truth for ALL importer defaults and runtime limits.

The CLI, the Streamlit front end and the scheduler all read from this
object.  CLI flags and ``IMPORTER_*`` environment variables populate it;
``validate()`` rejects anything that would make a run meaningless before
a single URL is processed.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional
from urllib.parse import urlparse

from .errors import ConfigurationError

logger = logging.getLogger(__name__)


class RunMode(str, Enum):
    IMPORT = "import"   # convert every page to Markdown/DOCX
    CRAWL = "crawl"     # follow same-host links, report what was found


class FrontierOrder(str, Enum):
    LIFO = "lifo"       # depth-first traversal of discovered links
    FIFO = "fifo"       # breadth-first traversal of discovered links


# ---------------------------------------------------------------------------
# Canonical defaults: the ONLY place these numbers live
# ---------------------------------------------------------------------------
_DEFAULTS = {
    "mode": RunMode.IMPORT,
    "origin": "http://localhost:3001",
    "origin_param": "host",
    "settle_delay": 1.0,             # seconds between load signal and first read
    "page_timeout_seconds": 30,
    "probe_timeout_seconds": 15,
    "frontier_order": FrontierOrder.LIFO,
    "headless": True,
    "block_resources": True,
    "user_agent": (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
        "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36"
    ),
    "output_dir": None,
    "save_docx": True,
    "save_markdown": False,
    "report_csv": None,
    "report_json": None,
}

# Environment variable → (field, converter)
_ENV_FIELDS = {
    "IMPORTER_MODE": ("mode", str),
    "IMPORTER_ORIGIN": ("origin", str),
    "IMPORTER_ORIGIN_PARAM": ("origin_param", str),
    "IMPORTER_SETTLE_DELAY": ("settle_delay", float),
    "IMPORTER_PAGE_TIMEOUT": ("page_timeout_seconds", int),
    "IMPORTER_PROBE_TIMEOUT": ("probe_timeout_seconds", int),
    "IMPORTER_FRONTIER_ORDER": ("frontier_order", str),
    "IMPORTER_OUTPUT_DIR": ("output_dir", str),
}


def _as_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class ImporterRunConfig:
    """
    Configuration consumed by every importer subsystem.

    Populate via:
      - ``ImporterRunConfig()``                 → all defaults
      - ``ImporterRunConfig(mode="crawl")``     → override one value
      - ``ImporterRunConfig.from_env()``        → ``IMPORTER_*`` variables
      - ``ImporterRunConfig.from_cli_args(ns)`` → argparse namespace
    """

    # ---- Run ----
    mode: RunMode = _DEFAULTS["mode"]
    origin: str = _DEFAULTS["origin"]
    origin_param: str = _DEFAULTS["origin_param"]
    frontier_order: FrontierOrder = _DEFAULTS["frontier_order"]

    # ---- Timing ----
    settle_delay: float = _DEFAULTS["settle_delay"]
    page_timeout_seconds: int = _DEFAULTS["page_timeout_seconds"]
    probe_timeout_seconds: int = _DEFAULTS["probe_timeout_seconds"]

    # ---- Browser ----
    headless: bool = _DEFAULTS["headless"]
    block_resources: bool = _DEFAULTS["block_resources"]
    user_agent: str = _DEFAULTS["user_agent"]

    # ---- Artifacts (None = do not save) ----
    output_dir: Optional[str] = _DEFAULTS["output_dir"]
    save_docx: bool = _DEFAULTS["save_docx"]
    save_markdown: bool = _DEFAULTS["save_markdown"]

    # ---- Report exports (None = skip) ----
    report_csv: Optional[str] = _DEFAULTS["report_csv"]
    report_json: Optional[str] = _DEFAULTS["report_json"]

    def __post_init__(self):
        # Accept plain strings for the enum fields; bad values surface in validate()
        if isinstance(self.mode, str) and not isinstance(self.mode, RunMode):
            try:
                self.mode = RunMode(self.mode.strip().lower())
            except ValueError:
                pass
        if isinstance(self.frontier_order, str) and not isinstance(self.frontier_order, FrontierOrder):
            try:
                self.frontier_order = FrontierOrder(self.frontier_order.strip().lower())
            except ValueError:
                pass

    # -----------------------------------------------------------------------
    # Factory helpers
    # -----------------------------------------------------------------------
    @classmethod
    def from_env(cls, environ=None, **overrides) -> "ImporterRunConfig":
        """Build config from ``IMPORTER_*`` environment variables."""
        environ = os.environ if environ is None else environ
        values = {}
        for var, (name, convert) in _ENV_FIELDS.items():
            raw = environ.get(var)
            if raw is None or raw == "":
                continue
            try:
                values[name] = convert(raw)
            except ValueError as exc:
                raise ConfigurationError(f"{var}={raw!r}: {exc}") from exc
        if environ.get("IMPORTER_HEADLESS"):
            values["headless"] = _as_bool(environ["IMPORTER_HEADLESS"])
        if environ.get("IMPORTER_SAVE_MARKDOWN"):
            values["save_markdown"] = _as_bool(environ["IMPORTER_SAVE_MARKDOWN"])
        values.update(overrides)
        return cls(**values)

    @classmethod
    def from_cli_args(cls, args, base: Optional["ImporterRunConfig"] = None) -> "ImporterRunConfig":
        """Build config from an argparse Namespace (``__main__.py``).

        Flags left at ``None`` keep the value from *base* (typically the
        environment-derived config).
        """
        base = base or cls()

        def pick(attr: str, current):
            value = getattr(args, attr, None)
            return current if value is None else value

        return cls(
            mode=pick("mode", base.mode),
            origin=pick("origin", base.origin),
            origin_param=base.origin_param,
            frontier_order=FrontierOrder.FIFO if getattr(args, "fifo", False) else base.frontier_order,
            settle_delay=pick("settle_delay", base.settle_delay),
            page_timeout_seconds=pick("timeout", base.page_timeout_seconds),
            probe_timeout_seconds=base.probe_timeout_seconds,
            headless=False if getattr(args, "headed", False) else base.headless,
            block_resources=base.block_resources,
            user_agent=base.user_agent,
            output_dir=pick("output_dir", base.output_dir),
            save_docx=False if getattr(args, "no_docx", False) else base.save_docx,
            save_markdown=True if getattr(args, "markdown", False) else base.save_markdown,
            report_csv=pick("report_csv", base.report_csv),
            report_json=pick("report_json", base.report_json),
        )

    # -----------------------------------------------------------------------
    # Validation
    # -----------------------------------------------------------------------
    def validate(self) -> "ImporterRunConfig":
        """Raise ``ConfigurationError`` if this config cannot drive a run."""
        if not isinstance(self.mode, RunMode):
            raise ConfigurationError(
                f"Unknown mode {self.mode!r} (expected 'import' or 'crawl')"
            )
        if not isinstance(self.frontier_order, FrontierOrder):
            raise ConfigurationError(
                f"Unknown frontier order {self.frontier_order!r} (expected 'lifo' or 'fifo')"
            )
        parsed = urlparse(self.origin or "")
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ConfigurationError(f"Origin must be an absolute http(s) URL, got {self.origin!r}")
        if not self.origin_param:
            raise ConfigurationError("origin_param must not be empty")
        if self.settle_delay < 0:
            raise ConfigurationError(f"settle_delay must be >= 0, got {self.settle_delay}")
        if self.page_timeout_seconds <= 0 or self.probe_timeout_seconds <= 0:
            raise ConfigurationError("Timeouts must be positive")
        return self

    @staticmethod
    def validate_urls(urls: Iterable[str]) -> List[str]:
        """Strip blanks; raise ``ConfigurationError`` if nothing is left."""
        cleaned = [u.strip() for u in (urls or []) if u and u.strip()]
        if not cleaned:
            raise ConfigurationError("No URLs to process")
        return cleaned

    # -----------------------------------------------------------------------
    # Logging helper
    # -----------------------------------------------------------------------
    def log_summary(self, url_count: Optional[int] = None) -> None:
        """Emit a structured summary to the logger."""
        mode = self.mode.value if isinstance(self.mode, RunMode) else self.mode
        order = self.frontier_order.value if isinstance(self.frontier_order, FrontierOrder) else self.frontier_order
        logger.info("=" * 60)
        logger.info("IMPORT RUN CONFIG")
        logger.info("=" * 60)
        if url_count is not None:
            logger.info(f"  Seed URLs:        {url_count}")
        logger.info(f"  Mode:             {mode}")
        logger.info(f"  Proxy Origin:     {self.origin} (?{self.origin_param}=)")
        logger.info(f"  Frontier Order:   {order}")
        logger.info(f"  Settle Delay:     {self.settle_delay}s")
        logger.info(f"  Page Timeout:     {self.page_timeout_seconds}s")
        logger.info(f"  Headless:         {self.headless}")
        if self.output_dir:
            kinds = [k for k, on in (("docx", self.save_docx), ("md", self.save_markdown)) if on]
            logger.info(f"  Artifacts:        {self.output_dir} ({', '.join(kinds) or 'none'})")
        if self.report_csv:
            logger.info(f"  Report CSV:       {self.report_csv}")
        if self.report_json:
            logger.info(f"  Report JSON:      {self.report_json}")
        logger.info("=" * 60)
