#!/usr/bin/env python3
"""
Interactive CLI for the Site Importer
=====================================
Renders every URL through the proxy origin and either converts it to
DOCX/Markdown (import mode) or reports the links it contains (crawl mode).

Seed URLs come from positional arguments, ``--urls-file``, ``--sitemap``
or ``--robots``; with none of these the CLI prompts interactively.

All configuration flows through ``ImporterRunConfig``: ``IMPORTER_*``
environment variables (a ``.env`` file is honoured) provide the base,
flags override it.

Run with: python -m site_importer
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List

from dotenv import load_dotenv

from .errors import ConfigurationError
from .run_config import ImporterRunConfig, RunMode
from .sitemap import load_sitemap, load_urls_from_robots, read_url_list

# Load .env file before anything reads the environment
_env_path = Path(__file__).resolve().parent.parent / '.env'
if _env_path.exists():
    load_dotenv(_env_path)
else:
    load_dotenv()  # tries CWD

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s | %(levelname)s | %(message)s',
    datefmt='%H:%M:%S'
)
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Prompt helpers
# ---------------------------------------------------------------------------

def get_user_input(prompt: str, default: str = None) -> str:
    """Get user input with optional default value."""
    if default:
        full_prompt = f"{prompt} [{default}]: "
    else:
        full_prompt = f"{prompt}: "
    response = input(full_prompt).strip()
    return response if response else default


def get_choice(prompt: str, options: list, default: int = 1) -> int:
    """Get user choice from numbered options."""
    print(f"\n{prompt}")
    for i, option in enumerate(options, 1):
        marker = " (default)" if i == default else ""
        print(f"  {i}) {option}{marker}")
    while True:
        response = input(f"Enter choice [1-{len(options)}]: ").strip()
        if not response:
            return default
        try:
            choice = int(response)
            if 1 <= choice <= len(options):
                return choice
        except ValueError:
            pass
        print(f"Please enter a number between 1 and {len(options)}")


# ---------------------------------------------------------------------------
# Interactive flow → builds ImporterRunConfig
# ---------------------------------------------------------------------------

def run_interactive_cli(base: ImporterRunConfig):
    """Prompt the user and build an ImporterRunConfig plus seed URLs."""
    print("\n" + "=" * 60)
    print("  SITE IMPORTER - Interactive Mode")
    print("=" * 60)

    print("\nEnter URLs to process, one per line (empty line to finish):")
    lines = []
    while True:
        line = input("  > ").strip()
        if not line:
            break
        lines.append(line)
    urls = read_url_list("\n".join(lines))
    if not urls:
        print("Error: at least one URL is required")
        sys.exit(1)

    mode_choice = get_choice(
        "Select Mode:",
        ["Import (convert pages to DOCX)", "Crawl (inventory same-site links)"],
        default=1,
    )

    print("\n--- Optional Configuration (press Enter for defaults) ---")
    origin = get_user_input("Proxy origin", base.origin)
    settle_delay = float(get_user_input("Settle delay (seconds)", str(base.settle_delay)) or base.settle_delay)
    output_dir = base.output_dir
    if mode_choice == 1:
        output_dir = get_user_input("Output directory for DOCX files", base.output_dir or "import")

    cfg = ImporterRunConfig(
        mode=RunMode.IMPORT if mode_choice == 1 else RunMode.CRAWL,
        origin=origin,
        origin_param=base.origin_param,
        frontier_order=base.frontier_order,
        settle_delay=settle_delay,
        page_timeout_seconds=base.page_timeout_seconds,
        probe_timeout_seconds=base.probe_timeout_seconds,
        headless=base.headless,
        output_dir=output_dir,
        save_docx=base.save_docx,
        save_markdown=base.save_markdown,
        report_csv=base.report_csv or "report.csv",
        report_json=base.report_json,
    )

    confirm = input(f"\nProcess {len(urls)} URL(s)? [Y/n]: ").strip().lower()
    if confirm and confirm != 'y':
        print("Run cancelled.")
        sys.exit(0)

    return cfg, urls


# ---------------------------------------------------------------------------
# Unified execution: both interactive & flag paths land here
# ---------------------------------------------------------------------------

async def _run_import(urls: List[str], cfg: ImporterRunConfig):
    from .playwright_renderer import PlaywrightRenderer
    from .scheduler import ImportScheduler

    async with PlaywrightRenderer(cfg) as renderer:
        scheduler = ImportScheduler(renderer, cfg)

        def progress_cb(rows_done, current_url, row):
            print(f"[{rows_done}] {row.status[:40]:<40} {current_url[:70]}")

        scheduler.set_progress_callback(progress_cb)
        report = await scheduler.run(urls)
        return report, scheduler.monitor.snapshot()


def _export(report, cfg: ImporterRunConfig):
    """Export the report to the configured formats."""
    exported = []
    if cfg.report_csv:
        exported.append(report.export_csv(cfg.report_csv))
    if cfg.report_json:
        exported.append(report.export_json(cfg.report_json))
    if exported:
        print("\n" + "-" * 40)
        for path in exported:
            print(f"  Exported: {path}")
        print("-" * 40)
    else:
        logger.warning("No report format was configured; nothing exported")


def print_summary(report, metrics):
    """Print run summary."""
    summary = report.summary()
    print("\n" + "=" * 65)
    print(f"{report.mode.value.upper()} COMPLETE")
    print("=" * 65)
    print(f"  URLs processed:      {len(report)}")
    for kind, count in summary.items():
        if count:
            print(f"  {kind + ':':<21}{count}")
    if report.mode is RunMode.CRAWL:
        print(f"  Links discovered:    {metrics.links_enqueued}")
    print(f"  Total time:          {metrics.elapsed_sec:.1f}s")
    print(f"  Avg page time:       {metrics.avg_page_ms:.0f} ms")
    print(f"  Stop reason:         {metrics.stop_reason or 'completed'}")
    print("=" * 65)


def execute(urls: List[str], cfg: ImporterRunConfig) -> int:
    """Validate, run, export. Returns the process exit code."""
    try:
        cfg.validate()
        urls = ImporterRunConfig.validate_urls(urls)
    except ConfigurationError as exc:
        logger.error(f"Configuration error: {exc}")
        return 2

    try:
        report, metrics = asyncio.run(_run_import(urls, cfg))
    except ConfigurationError as exc:
        logger.error(f"Configuration error: {exc}")
        return 2
    except KeyboardInterrupt:
        print("\nInterrupted.")
        return 130

    _export(report, cfg)
    print_summary(report, metrics)
    return 0


# ---------------------------------------------------------------------------
# Flag-driven entry point
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='python -m site_importer',
        description='Site Importer - render pages through a proxy and import or crawl them',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m site_importer                                         # Interactive mode
  python -m site_importer https://example.com/ --output-dir out   # Import one page
  python -m site_importer https://example.com/ --mode crawl --report-csv crawl.csv
  python -m site_importer --sitemap https://example.com/sitemap.xml --output-dir out
        """
    )

    parser.add_argument('urls', nargs='*', metavar='URL', help='URLs to process (omit for interactive mode)')
    parser.add_argument('--mode', choices=['import', 'crawl'], help='Run mode (default: import)')
    parser.add_argument('--origin', type=str, help='Proxy origin (default: http://localhost:3001)')

    seeds = parser.add_argument_group('Seed sources')
    seeds.add_argument('--urls-file', type=str, metavar='FILE', help='File with one URL per line')
    seeds.add_argument('--sitemap', type=str, metavar='URL', help='Sitemap or sitemap index URL')
    seeds.add_argument('--robots', type=str, metavar='URL', help='robots.txt whose Sitemap: entries are loaded')

    timing = parser.add_argument_group('Timing')
    timing.add_argument('--settle-delay', type=float, help='Seconds to wait after the load signal (default: 1.0)')
    timing.add_argument('--timeout', type=int, help='Page load timeout in seconds (default: 30)')
    timing.add_argument('--fifo', action='store_true', help='Breadth-first frontier instead of depth-first')
    timing.add_argument('--headed', action='store_true', help='Show the browser window')

    output = parser.add_argument_group('Output')
    output.add_argument('--output-dir', type=str, metavar='DIR', help='Directory for DOCX/Markdown artifacts')
    output.add_argument('--no-docx', action='store_true', help='Do not render DOCX artifacts')
    output.add_argument('--markdown', action='store_true', help='Also save Markdown artifacts')
    output.add_argument('--report-csv', type=str, metavar='FILE', help='Report CSV output file path')
    output.add_argument('--report-json', type=str, metavar='FILE', help='Report JSON output file path')
    return parser


def collect_seed_urls(args, cfg: ImporterRunConfig) -> List[str]:
    """Positional URLs, then the file, sitemap and robots.txt sources."""
    urls = list(args.urls or [])
    if args.urls_file:
        urls.extend(read_url_list(Path(args.urls_file).read_text(encoding='utf-8')))
    if args.sitemap:
        urls.extend(load_sitemap(args.sitemap, timeout=cfg.probe_timeout_seconds))
    if args.robots:
        urls.extend(load_urls_from_robots(args.robots, timeout=cfg.probe_timeout_seconds))
    return urls


def run_cli_with_args(argv=None) -> int:
    """Parse argv, build ImporterRunConfig, run."""
    args = build_parser().parse_args(argv)

    try:
        base = ImporterRunConfig.from_env()
    except ConfigurationError as exc:
        logger.error(f"Configuration error: {exc}")
        return 2

    has_source = args.urls or args.urls_file or args.sitemap or args.robots
    if not has_source:
        cfg, urls = run_interactive_cli(base)
    else:
        cfg = ImporterRunConfig.from_cli_args(args, base=base)
        try:
            urls = collect_seed_urls(args, cfg)
        except OSError as exc:
            logger.error(f"Cannot read URL list: {exc}")
            return 2

    return execute(urls, cfg)


def main():
    sys.exit(run_cli_with_args())


if __name__ == '__main__':
    main()
