"""
Site Importer - Streamlit Frontend
Paste a list of URLs, render them through the proxy origin and either
import them as Markdown/DOCX or crawl them for same-site links.
"""

import streamlit as st
import asyncio
import logging
import io
import zipfile
from datetime import datetime

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

from site_importer import (
    ConfigurationError,
    ImporterRunConfig,
    ImportReport,
    ImportScheduler,
    MarkdownTransformer,
    RunMode,
)
from site_importer.sitemap import load_sitemap, read_url_list

# Page configuration
st.set_page_config(
    page_title="Site Importer",
    page_icon="📥",
    layout="wide",
    initial_sidebar_state="expanded"
)

# Custom CSS – light / white theme
st.markdown("""
<style>
    .stApp {
        background-color: #FFFFFF;
    }
    .main-header {
        font-size: 2.5rem;
        font-weight: 700;
        color: #1E293B;
        margin-bottom: 0.5rem;
    }
    .sub-header {
        font-size: 1rem;
        color: #64748B;
        margin-bottom: 2rem;
    }
    section[data-testid="stSidebar"] {
        background-color: #F8F9FB;
    }
    [data-testid="stMetric"] {
        background-color: #F8F9FB;
        border: 1px solid #E2E8F0;
        border-radius: 10px;
        padding: 0.75rem;
    }
    [data-testid="stMetricValue"] {
        color: #2563EB;
    }
    .stButton > button[kind="primary"] {
        background-color: #2563EB;
        color: #FFFFFF;
        border: none;
    }
</style>
""", unsafe_allow_html=True)


class PreviewTransformer(MarkdownTransformer):
    """MarkdownTransformer that keeps every result for the preview pane."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.results = {}

    async def transform(self, document, url):
        result = await super().transform(document, url)
        self.results[url] = result
        return result


def init_session_state():
    """Initialize session state variables."""
    if 'import_report' not in st.session_state:
        st.session_state.import_report = None
    if 'import_results' not in st.session_state:
        st.session_state.import_results = {}
    if 'import_logs' not in st.session_state:
        st.session_state.import_logs = []


def add_log(message: str):
    """Add a log message."""
    timestamp = datetime.now().strftime("%H:%M:%S")
    st.session_state.import_logs.append(f"[{timestamp}] {message}")
    # Keep only last 200 logs
    if len(st.session_state.import_logs) > 200:
        st.session_state.import_logs = st.session_state.import_logs[-200:]


def run_importer(urls, config: ImporterRunConfig, progress_bar, status_placeholder):
    """Run one import/crawl and return (report, transform results)."""
    from site_importer.playwright_renderer import PlaywrightRenderer

    transformer = PreviewTransformer(include_docx=config.save_docx)

    async def _run():
        async with PlaywrightRenderer(config) as renderer:
            scheduler = ImportScheduler(renderer, config, transformer=transformer)

            def progress_cb(rows_done, current_url, row):
                pending = len(scheduler.frontier)
                progress_bar.progress(min(rows_done / max(rows_done + pending, 1), 1.0))
                status_placeholder.write(f"**[{rows_done}]** {row.status} | {current_url}")
                add_log(f"{row.status}: {current_url}")

            scheduler.set_progress_callback(progress_cb)
            return await scheduler.run(urls)

    report = asyncio.run(_run())
    return report, transformer.results


def docx_archive(results) -> bytes:
    """Zip every DOCX artifact of the run."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
        for result in results.values():
            if result.docx is not None:
                archive.writestr(result.docx_filename, result.docx)
    return buffer.getvalue()


def render_sidebar():
    """Render the sidebar with configuration options."""
    st.sidebar.markdown("## ⚙️ Importer Settings")

    mode = st.sidebar.radio(
        "Mode",
        options=["import", "crawl"],
        format_func=lambda m: "Import (Markdown / DOCX)" if m == "import" else "Crawl (find links)",
        help="Import converts every page; crawl follows same-site links and reports them",
    )
    origin = st.sidebar.text_input(
        "Proxy origin",
        value=ImporterRunConfig().origin,
        help="Origin of the proxy that serves the remote pages",
    )
    settle_delay = st.sidebar.slider(
        "Settle delay (seconds)",
        min_value=0.0,
        max_value=10.0,
        value=ImporterRunConfig().settle_delay,
        step=0.5,
        help="Wait after the load event before reading the page",
    )
    frontier_order = st.sidebar.selectbox(
        "Frontier order",
        options=["lifo", "fifo"],
        format_func=lambda o: "Depth-first (LIFO)" if o == "lifo" else "Breadth-first (FIFO)",
    )

    st.sidebar.markdown("---")
    st.sidebar.markdown("## 📤 Output")
    save_docx = st.sidebar.checkbox("Render DOCX", value=True, disabled=mode == "crawl")

    return {
        'mode': mode,
        'origin': origin,
        'settle_delay': settle_delay,
        'frontier_order': frontier_order,
        'save_docx': save_docx,
    }


def render_metrics(report: ImportReport):
    """Render outcome counts."""
    summary = report.summary()
    cols = st.columns(5)
    with cols[0]:
        st.metric("Processed", len(report))
    for col, (kind, count) in zip(cols[1:], summary.items()):
        with col:
            st.metric(kind, count)


def render_results(report: ImportReport, results):
    """Render the report table and download buttons."""
    st.markdown("---")
    st.markdown("## 📊 Report")
    render_metrics(report)

    df = report.to_dataframe()
    st.dataframe(df, width="stretch")

    st.markdown("### 📥 Download")
    stamp = datetime.now().strftime('%Y%m%d_%H%M%S')
    col1, col2, col3 = st.columns([1, 1, 1])

    with col1:
        st.download_button(
            label="📥 Download CSV",
            data=df.to_csv(index=False),
            file_name=f"{report.mode.value}_report_{stamp}.csv",
            mime="text/csv"
        )
    with col2:
        st.download_button(
            label="📥 Download JSON",
            data=df.to_json(orient="records", indent=2),
            file_name=f"{report.mode.value}_report_{stamp}.json",
            mime="application/json"
        )
    with col3:
        if any(r.docx is not None for r in results.values()):
            st.download_button(
                label="📥 Download DOCX (zip)",
                data=docx_archive(results),
                file_name=f"import_{stamp}.zip",
                mime="application/zip"
            )


def render_preview(results):
    """Markdown preview of one imported page."""
    if not results:
        return
    st.markdown("---")
    st.markdown("## 🔍 Preview")
    selected_url = st.selectbox("Select a page:", list(results))
    result = results.get(selected_url)
    if result:
        st.caption(f"Path: `{result.path}`")
        tab_rendered, tab_source = st.tabs(["Rendered", "Markdown"])
        with tab_rendered:
            st.markdown(result.markdown)
        with tab_source:
            st.code(result.markdown, language="markdown")


def main():
    """Main application."""
    init_session_state()

    st.markdown('<p class="main-header">📥 Site Importer</p>', unsafe_allow_html=True)
    st.markdown(
        '<p class="sub-header">Render pages through a proxy, then import or crawl them one at a time</p>',
        unsafe_allow_html=True
    )

    settings = render_sidebar()

    st.markdown("## 🌐 URLs")
    url_text = st.text_area(
        "URLs (one per line)",
        height=160,
        placeholder="https://example.com/\nhttps://example.com/about",
    )
    sitemap_url = st.text_input(
        "…or load a sitemap",
        placeholder="https://example.com/sitemap.xml",
    )

    start = st.button("🚀 Start", type="primary")

    if start:
        urls = read_url_list(url_text or "")
        if sitemap_url:
            urls.extend(load_sitemap(sitemap_url))
            add_log(f"Loaded sitemap {sitemap_url}")

        config = ImporterRunConfig(
            mode=RunMode(settings['mode']),
            origin=settings['origin'],
            settle_delay=settings['settle_delay'],
            frontier_order=settings['frontier_order'],
            save_docx=settings['save_docx'],
        )

        st.session_state.import_report = None
        st.session_state.import_results = {}
        st.session_state.import_logs = []
        add_log(f"Starting {config.mode.value} of {len(urls)} URL(s)")

        progress_bar = st.progress(0)
        status_placeholder = st.empty()
        try:
            with st.spinner("Processing..."):
                report, results = run_importer(urls, config, progress_bar, status_placeholder)
            st.session_state.import_report = report
            st.session_state.import_results = results
            add_log(f"Done: {len(report)} row(s)")
        except ConfigurationError as e:
            st.error(f"Configuration error: {e}")
            add_log(f"Error: {e}")
        except Exception as e:
            st.error(f"Run failed: {e}")
            add_log(f"Error: {e}")
            logger.exception("Run failed")
        finally:
            progress_bar.empty()
            status_placeholder.empty()

    if st.session_state.import_report is not None:
        render_results(st.session_state.import_report, st.session_state.import_results)
        render_preview(st.session_state.import_results)

    if st.session_state.import_logs:
        with st.expander("📋 Logs", expanded=False):
            st.code("\n".join(st.session_state.import_logs[-50:]), language=None)

    st.markdown("---")
    st.markdown(
        """
        <div style='text-align: center; color: #666; font-size: 0.8rem;'>
            <p>📥 Site Importer | Built with Streamlit</p>
        </div>
        """,
        unsafe_allow_html=True
    )


if __name__ == "__main__":
    main()
