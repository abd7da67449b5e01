"""
Tests for the sequential scheduler.

Covers:
  1. One row per URL, in processing order
  2. Probe-decided outcomes (Invalid / Redirect) never render or transform
  3. Per-URL failures become rows and never stop the run
  4. Crawl mode: link accounting and frontier growth
  5. Single-flight, run exclusivity and stop()
"""

import asyncio

import pytest

from conftest import FakePage, FakeRenderer, FakeTransformer, page_with_links, remote_of
from site_importer.errors import ConfigurationError, NetworkOrRenderFailure, RunInProgressError
from site_importer.report import CrawlRow, ImportRow
from site_importer.run_config import ImporterRunConfig
from site_importer.scheduler import ImportScheduler, SchedulerState
from site_importer.storage import ArtifactStore


def _run(scheduler, urls, **kwargs):
    return asyncio.run(scheduler.run(urls, **kwargs))


def _statuses(report):
    return [row.status for row in report.rows]


class StallingRenderer(FakeRenderer):
    """Holds the load of *stall_url* until ``resume`` is set."""

    def __init__(self, pages, stall_url):
        super().__init__(pages)
        self.stall_url = stall_url
        self.stalled = asyncio.Event()
        self.resume = asyncio.Event()

    async def load(self, url):
        if remote_of(url) == self.stall_url and not self.resume.is_set():
            self.stalled.set()
            await self.resume.wait()
        return await super().load(url)


# ====================================================================
# 1. Import mode basics
# ====================================================================

class TestImportMode:

    def test_one_row_per_url_in_input_order(self, fast_config):
        renderer = FakeRenderer({
            "https://example.com/a": FakePage(),
            "https://example.com/b": FakePage(),
            "https://example.com/c": FakePage(),
        })
        transformer = FakeTransformer()
        scheduler = ImportScheduler(renderer, fast_config, transformer=transformer)

        report = _run(scheduler, [
            "https://example.com/a", "https://example.com/b", "https://example.com/c",
        ])

        assert [row.url for row in report.rows] == [
            "https://example.com/a", "https://example.com/b", "https://example.com/c",
        ]
        assert _statuses(report) == ["Success"] * 3
        assert report.finalized
        assert all(isinstance(row, ImportRow) for row in report.rows)

    def test_success_row_carries_path_and_docx(self, fast_config):
        renderer = FakeRenderer({"https://example.com/blog/Post.html": FakePage()})
        scheduler = ImportScheduler(renderer, fast_config, transformer=FakeTransformer())

        row = _run(scheduler, ["https://example.com/blog/Post.html"]).rows[0]

        assert row.path == "/blog/post"
        assert row.docx_filename == "blog/post.docx"
        assert row.redirect is None

    def test_no_docx_leaves_column_empty(self, fast_config):
        renderer = FakeRenderer({"https://example.com/a": FakePage()})
        scheduler = ImportScheduler(renderer, fast_config, transformer=FakeTransformer(docx=None))

        report = _run(scheduler, ["https://example.com/a"])

        assert report.rows[0].docx_filename is None
        assert report.to_table()[1] == ["https://example.com/a", "/a", "", "Success", ""]

    def test_duplicate_seeds_processed_once(self, fast_config):
        renderer = FakeRenderer({"https://example.com/a": FakePage()})
        scheduler = ImportScheduler(renderer, fast_config, transformer=FakeTransformer())

        report = _run(scheduler, ["https://example.com/a", "https://example.com/a#top"])

        assert len(report) == 1
        assert len(renderer.loads) == 1

    def test_transformer_receives_remote_url(self, fast_config):
        renderer = FakeRenderer({"https://example.com/a?x=1": FakePage()})
        transformer = FakeTransformer()
        scheduler = ImportScheduler(renderer, fast_config, transformer=transformer)

        _run(scheduler, ["https://example.com/a?x=1"])

        assert transformer.calls == ["https://example.com/a?x=1"]
        assert renderer.loads[0].startswith("http://localhost:3001/a?x=1&host=")

    def test_artifacts_saved_to_store(self, tmp_path):
        config = ImporterRunConfig(settle_delay=0, save_markdown=True)
        renderer = FakeRenderer({"https://example.com/docs/intro": FakePage()})
        scheduler = ImportScheduler(
            renderer, config, transformer=FakeTransformer(), store=ArtifactStore(tmp_path),
        )

        _run(scheduler, ["https://example.com/docs/intro"])

        assert (tmp_path / "docs" / "intro.docx").read_bytes() == b"DOCX"
        assert (tmp_path / "docs" / "intro.md").read_text(encoding="utf-8").startswith("# ")

    def test_store_failure_does_not_change_status(self, fast_config):
        class BrokenStore:
            def save_artifact(self, filename, data):
                raise OSError("disk full")

        renderer = FakeRenderer({"https://example.com/a": FakePage()})
        scheduler = ImportScheduler(
            renderer, fast_config, transformer=FakeTransformer(), store=BrokenStore(),
        )

        report = _run(scheduler, ["https://example.com/a"])

        assert _statuses(report) == ["Success"]


# ====================================================================
# 2. Probe-decided outcomes
# ====================================================================

class TestProbeOutcomes:

    def test_missing_page_is_invalid_404(self, fast_config):
        renderer = FakeRenderer({})
        transformer = FakeTransformer()
        scheduler = ImportScheduler(renderer, fast_config, transformer=transformer)

        report = _run(scheduler, ["https://example.com/missing"])

        assert _statuses(report) == ["Invalid: 404"]
        assert renderer.loads == []
        assert transformer.calls == []
        assert scheduler.frontier.is_exhausted()

    def test_server_error_is_invalid_not_error(self, fast_config):
        renderer = FakeRenderer({"https://example.com/a": FakePage(status=503)})
        scheduler = ImportScheduler(renderer, fast_config, transformer=FakeTransformer())

        report = _run(scheduler, ["https://example.com/a"])

        assert _statuses(report) == ["Invalid: 503"]

    def test_redirect_never_transforms(self, fast_config):
        renderer = FakeRenderer({
            "https://example.com/old": FakePage(redirect_to="https://elsewhere.com/new"),
        })
        transformer = FakeTransformer()
        scheduler = ImportScheduler(renderer, fast_config, transformer=transformer)

        row = _run(scheduler, ["https://example.com/old"]).rows[0]

        assert row.status == "Redirect"
        assert row.redirect == "https://elsewhere.com/new"
        assert row.path is None
        assert renderer.loads == []
        assert transformer.calls == []

    def test_redirect_on_proxy_origin_rewritten_to_remote(self, fast_config):
        renderer = FakeRenderer({
            "https://example.com/old": FakePage(
                redirect_to="http://localhost:3001/new?host=https%3A%2F%2Fexample.com",
            ),
        })
        scheduler = ImportScheduler(renderer, fast_config, transformer=FakeTransformer())

        row = _run(scheduler, ["https://example.com/old"]).rows[0]

        assert row.redirect == "https://example.com/new"

    def test_crawl_redirect_has_no_links(self, crawl_config):
        renderer = FakeRenderer({
            "https://example.com/old": FakePage(redirect_to="https://example.com/new"),
        })
        scheduler = ImportScheduler(renderer, crawl_config)

        report = _run(scheduler, ["https://example.com/old"])

        row = report.rows[0]
        assert isinstance(row, CrawlRow)
        assert row.status == "Redirect"
        assert row.link_count == 0
        assert row.links_to_follow == ()
        assert len(report) == 1


# ====================================================================
# 3. Failures
# ====================================================================

class TestFailures:

    def test_transform_error_does_not_stop_run(self, fast_config):
        renderer = FakeRenderer({
            "https://example.com/a": FakePage(),
            "https://example.com/b": FakePage(),
        })
        transformer = FakeTransformer(fail_on={"https://example.com/a"})
        scheduler = ImportScheduler(renderer, fast_config, transformer=transformer)

        report = _run(scheduler, ["https://example.com/a", "https://example.com/b"])

        first, second = report.rows
        assert first.status.startswith("Error:")
        assert "boom on https://example.com/a" in first.status
        assert second.status == "Success"

    def test_failure_reprobes_before_recording_error(self, fast_config):
        renderer = FakeRenderer({"https://example.com/a": FakePage()})
        transformer = FakeTransformer(fail_on={"https://example.com/a"})
        scheduler = ImportScheduler(renderer, fast_config, transformer=transformer)

        _run(scheduler, ["https://example.com/a"])

        assert len(renderer.probes) == 2

    def test_reprobe_reclassifies_vanished_page(self, fast_config):
        renderer = FakeRenderer({"https://example.com/a": FakePage()})

        class VanishingTransformer(FakeTransformer):
            async def transform(self, document, url):
                renderer.pages.clear()
                raise RuntimeError("page went away")

        scheduler = ImportScheduler(renderer, fast_config, transformer=VanishingTransformer())

        report = _run(scheduler, ["https://example.com/a"])

        assert _statuses(report) == ["Invalid: 404"]

    def test_load_failure_is_error(self, fast_config):
        renderer = FakeRenderer({
            "https://example.com/a": FakePage(load_error=NetworkOrRenderFailure("net::ERR_FAILED")),
        })
        scheduler = ImportScheduler(renderer, fast_config, transformer=FakeTransformer())

        report = _run(scheduler, ["https://example.com/a"])

        assert _statuses(report) == ["Error: net::ERR_FAILED"]

    def test_probe_exception_is_error(self, fast_config):
        class DeadRenderer(FakeRenderer):
            async def probe(self, url):
                raise NetworkOrRenderFailure("connection refused")

        scheduler = ImportScheduler(DeadRenderer(), fast_config, transformer=FakeTransformer())

        report = _run(scheduler, ["https://example.com/a", "https://example.com/b"])

        assert _statuses(report) == ["Error: connection refused"] * 2

    def test_malformed_url_is_error_row(self, fast_config):
        renderer = FakeRenderer({"https://example.com/a": FakePage()})
        scheduler = ImportScheduler(renderer, fast_config, transformer=FakeTransformer())

        report = _run(scheduler, ["not a url", "https://example.com/a"])

        assert report.rows[0].url == "not a url"
        assert report.rows[0].status.startswith("Error: Malformed URL")
        assert report.rows[1].status == "Success"


# ====================================================================
# 4. Crawl mode
# ====================================================================

class TestCrawlMode:

    def test_links_followed_and_counted(self, crawl_config):
        renderer = FakeRenderer({
            "https://example.com/a": page_with_links("/b", "/c", "https://other.com/x"),
            "https://example.com/b": page_with_links("/a"),
            "https://example.com/c": page_with_links("/b", "/c"),
        })
        scheduler = ImportScheduler(renderer, crawl_config)

        report = _run(scheduler, ["https://example.com/a"])

        first = report.rows[0]
        assert first.link_count == 3
        assert first.to_follow_count == 2
        assert first.external_host_count == 1
        assert first.already_processed_count == 0
        assert first.links_to_follow == ("https://example.com/b", "https://example.com/c")
        # LIFO: the last discovered link is processed next
        assert [row.url for row in report.rows] == [
            "https://example.com/a", "https://example.com/c", "https://example.com/b",
        ]

    def test_fifo_walks_breadth_first(self):
        config = ImporterRunConfig(mode="crawl", settle_delay=0, frontier_order="fifo")
        renderer = FakeRenderer({
            "https://example.com/a": page_with_links("/b", "/c"),
            "https://example.com/b": page_with_links("/d"),
            "https://example.com/c": FakePage(),
            "https://example.com/d": FakePage(),
        })
        scheduler = ImportScheduler(renderer, config)

        report = _run(scheduler, ["https://example.com/a"])

        assert [row.url.rsplit("/", 1)[1] for row in report.rows] == ["a", "b", "c", "d"]

    def test_link_identity_holds_for_every_row(self, crawl_config):
        renderer = FakeRenderer({
            "https://example.com/": page_with_links("/a", "/a#x", "mailto:x@y.z", "/b"),
            "https://example.com/a": page_with_links("/", "/b", "https://example.com/c"),
            "https://example.com/b": page_with_links("/a", "http://cdn.other.net/y"),
            "https://example.com/c": page_with_links(),
        })
        scheduler = ImportScheduler(renderer, crawl_config)

        report = _run(scheduler, ["https://example.com/"])

        assert len(report) == 4
        for row in report.rows:
            assert row.link_count == (
                row.already_processed_count + row.external_host_count + row.to_follow_count
            )

    def test_crawl_never_transforms(self, crawl_config):
        renderer = FakeRenderer({"https://example.com/a": page_with_links()})
        transformer = FakeTransformer()
        scheduler = ImportScheduler(renderer, crawl_config, transformer=transformer)

        _run(scheduler, ["https://example.com/a"])

        assert transformer.calls == []

    def test_mode_override_per_run(self, fast_config):
        renderer = FakeRenderer({"https://example.com/a": page_with_links()})
        scheduler = ImportScheduler(renderer, fast_config, transformer=FakeTransformer())

        report = _run(scheduler, ["https://example.com/a"], mode="crawl")

        assert isinstance(report.rows[0], CrawlRow)
        assert report.headers[3] == "linkCount"


# ====================================================================
# 5. Run control
# ====================================================================

class TestRunControl:

    def test_single_page_open_at_a_time(self, crawl_config):
        renderer = FakeRenderer({
            f"https://example.com/{i}": page_with_links(f"/{i + 1}") for i in range(5)
        })
        scheduler = ImportScheduler(renderer, crawl_config)

        _run(scheduler, ["https://example.com/0"])

        assert renderer.max_open_pages == 1
        assert renderer.open_pages == 0

    def test_transforms_never_overlap(self, fast_config):
        urls = [f"https://example.com/{i}" for i in range(4)]
        renderer = FakeRenderer({u: FakePage() for u in urls})
        transformer = FakeTransformer()
        scheduler = ImportScheduler(renderer, fast_config, transformer=transformer)

        _run(scheduler, urls)

        assert transformer.max_active == 1

    def test_empty_url_list_is_configuration_error(self, fast_config):
        scheduler = ImportScheduler(FakeRenderer(), fast_config)

        with pytest.raises(ConfigurationError):
            _run(scheduler, ["", "   "])
        assert scheduler.state is SchedulerState.IDLE

    def test_bad_origin_is_configuration_error(self, fast_config):
        renderer = FakeRenderer({"https://example.com/a": FakePage()})
        scheduler = ImportScheduler(renderer, fast_config)

        with pytest.raises(ConfigurationError):
            _run(scheduler, ["https://example.com/a"], origin="localhost:3001")
        assert renderer.probes == []

    def test_second_run_while_active_is_rejected(self, fast_config):
        renderer = FakeRenderer({
            "https://example.com/a": FakePage(),
            "https://example.com/b": FakePage(),
        })
        scheduler = ImportScheduler(renderer, fast_config, transformer=FakeTransformer())

        async def scenario():
            rows = scheduler.stream(["https://example.com/a", "https://example.com/b"])
            await rows.__anext__()
            assert scheduler.running
            with pytest.raises(RunInProgressError):
                await scheduler.run(["https://example.com/a"])
            await rows.aclose()

        asyncio.run(scenario())
        assert not scheduler.running
        assert scheduler.state is SchedulerState.IDLE

    def test_stop_finalizes_after_current_url(self, fast_config):
        urls = [f"https://example.com/{i}" for i in range(3)]
        renderer = FakeRenderer({u: FakePage() for u in urls})
        scheduler = ImportScheduler(renderer, fast_config, transformer=FakeTransformer())
        scheduler.set_progress_callback(lambda done, url, row: scheduler.stop())

        report = _run(scheduler, urls)

        assert len(report) == 1
        assert report.finalized
        assert scheduler.monitor.snapshot().stop_reason == "User requested stop"

    def test_progress_callback_sees_every_row(self, fast_config):
        urls = ["https://example.com/a", "https://example.com/missing"]
        renderer = FakeRenderer({"https://example.com/a": FakePage()})
        scheduler = ImportScheduler(renderer, fast_config, transformer=FakeTransformer())
        seen = []
        scheduler.set_progress_callback(lambda done, url, row: seen.append((done, url, row.status)))

        _run(scheduler, urls)

        assert seen == [
            (1, "https://example.com/a", "Success"),
            (2, "https://example.com/missing", "Invalid: 404"),
        ]

    def test_scheduler_reusable_after_run(self, fast_config):
        renderer = FakeRenderer({"https://example.com/a": FakePage()})
        scheduler = ImportScheduler(renderer, fast_config, transformer=FakeTransformer())

        first = _run(scheduler, ["https://example.com/a"])
        second = _run(scheduler, ["https://example.com/a"])

        assert len(first) == 1
        assert len(second) == 1
        assert first is not second

    def test_failing_progress_callback_does_not_halt_run(self, fast_config):
        urls = ["https://example.com/a", "https://example.com/b"]
        renderer = FakeRenderer({u: FakePage() for u in urls})
        scheduler = ImportScheduler(renderer, fast_config, transformer=FakeTransformer())

        def callback(done, url, row):
            raise RuntimeError("ui gone")

        scheduler.set_progress_callback(callback)
        report = _run(scheduler, urls)

        assert _statuses(report) == ["Success", "Success"]
        assert report.finalized

    def test_stop_while_load_pending(self, fast_config):
        urls = ["https://example.com/a", "https://example.com/b"]
        pages = {u: FakePage() for u in urls}

        async def scenario():
            renderer = StallingRenderer(pages, "https://example.com/a")
            scheduler = ImportScheduler(renderer, fast_config, transformer=FakeTransformer())
            running = asyncio.create_task(scheduler.run(urls))
            await renderer.stalled.wait()
            scheduler.stop()
            renderer.resume.set()
            first = await running
            open_after_stop = renderer.open_pages
            second = await scheduler.run(["https://example.com/b"])
            return renderer, first, open_after_stop, second

        renderer, first, open_after_stop, second = asyncio.run(scenario())

        assert len(first) == 1
        assert first.rows[0].status.startswith("Error: ")
        assert open_after_stop == 0
        assert _statuses(second) == ["Success"]
        assert renderer.open_pages == 0

    def test_stop_while_settling(self):
        config = ImporterRunConfig(settle_delay=0.2)
        urls = ["https://example.com/a", "https://example.com/b"]
        renderer = FakeRenderer({u: FakePage() for u in urls})
        transformer = FakeTransformer()
        scheduler = ImportScheduler(renderer, config, transformer=transformer)

        async def scenario():
            running = asyncio.create_task(scheduler.run(urls))
            while scheduler.state is not SchedulerState.SETTLING:
                await asyncio.sleep(0)
            assert renderer.open_pages == 1
            scheduler.stop()
            first = await running
            open_after_stop = renderer.open_pages
            second = await scheduler.run(["https://example.com/b"])
            return first, open_after_stop, second

        first, open_after_stop, second = asyncio.run(scenario())

        assert len(first) == 1
        assert first.rows[0].status.startswith("Error: ")
        assert open_after_stop == 0
        assert transformer.calls == ["https://example.com/b"]
        assert _statuses(second) == ["Success"]
