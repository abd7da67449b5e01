"""
Site Importer Package
Sequential crawl/import orchestrator: renders pages through a proxy origin
and either converts them to Markdown/DOCX or inventories their links.

CLI Usage:
    python -m site_importer <url> [url ...] [options]

    Options:
        --mode          import (default) or crawl
        --origin        Proxy origin serving the pages (default: http://localhost:3001)
        --urls-file     Read seed URLs from a file (one per line)
        --sitemap       Seed from a sitemap (indexes followed recursively)
        --settle-delay  Seconds to wait after the load signal (default: 1.0)
        --output-dir    Save DOCX (and --markdown) artifacts here
        --report-csv    Export the report to CSV
        --report-json   Export the report to JSON

The Playwright backend lives in ``site_importer.playwright_renderer`` and
is imported on demand.
"""

from .errors import (
    ImporterError,
    ConfigurationError,
    RunInProgressError,
    MalformedURLError,
    NetworkOrRenderFailure,
    TransformFailure,
    StaleLoadError,
)
from .proxy import ProxyTarget, build_proxy_target, normalize_url
from .renderer import PageRenderer, LoadedPage, ProbeResult, RenderedDocument
from .outcome import OutcomeKind, Success, Redirect, Invalid, Error, PageOutcome
from .frontier import Frontier
from .links import LinkExtraction, extract_links
from .report import ImportReport, ImportRow, CrawlRow, IMPORT_COLUMNS, CRAWL_COLUMNS
from .run_config import ImporterRunConfig, RunMode, FrontierOrder
from .transform import TransformationAdapter, TransformResult, MarkdownTransformer
from .storage import ArtifactStore
from .scheduler import ImportScheduler, SchedulerState

__all__ = [
    # Errors
    'ImporterError',
    'ConfigurationError',
    'RunInProgressError',
    'MalformedURLError',
    'NetworkOrRenderFailure',
    'TransformFailure',
    'StaleLoadError',
    # Proxy
    'ProxyTarget',
    'build_proxy_target',
    'normalize_url',
    # Rendering contract
    'PageRenderer',
    'LoadedPage',
    'ProbeResult',
    'RenderedDocument',
    # Outcomes
    'OutcomeKind',
    'Success',
    'Redirect',
    'Invalid',
    'Error',
    'PageOutcome',
    # Frontier / links
    'Frontier',
    'LinkExtraction',
    'extract_links',
    # Report
    'ImportReport',
    'ImportRow',
    'CrawlRow',
    'IMPORT_COLUMNS',
    'CRAWL_COLUMNS',
    # Config
    'ImporterRunConfig',
    'RunMode',
    'FrontierOrder',
    # Transformation / storage
    'TransformationAdapter',
    'TransformResult',
    'MarkdownTransformer',
    'ArtifactStore',
    # Scheduler
    'ImportScheduler',
    'SchedulerState',
]

__version__ = '1.0.0'
