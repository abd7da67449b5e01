"""
Report Builder
==============
Append-only log of one row per processed URL, in processing order.

A URL that redirects is logged once, under the form it was popped from
the frontier; the redirect target goes in the ``redirect`` column.

Exports:
- ``to_table()``      — header row + one list per row (missing → "")
- ``to_dataframe()``  — pandas DataFrame with the same columns
- ``export_csv()`` / ``export_json()``
"""

from __future__ import annotations

import csv
import json
import logging
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

from .errors import ImporterError
from .outcome import OutcomeKind, status_kind
from .run_config import RunMode

logger = logging.getLogger(__name__)

IMPORT_COLUMNS = ["URL", "path", "docx", "status", "redirect"]
CRAWL_COLUMNS = [
    "URL", "status", "redirect",
    "linkCount", "alreadyProcessedCount", "externalHostCount", "toFollowCount",
    "linksToFollow",
]


@dataclass(frozen=True)
class ImportRow:
    """Report row for import mode."""
    url: str
    status: str
    path: Optional[str] = None
    docx_filename: Optional[str] = None
    redirect: Optional[str] = None

    def to_record(self) -> Dict[str, Any]:
        return {
            "URL": self.url,
            "path": self.path,
            "docx": self.docx_filename,
            "status": self.status,
            "redirect": self.redirect,
        }


@dataclass(frozen=True)
class CrawlRow:
    """Report row for crawl mode."""
    url: str
    status: str
    redirect: Optional[str] = None
    link_count: int = 0
    already_processed_count: int = 0
    external_host_count: int = 0
    links_to_follow: Tuple[str, ...] = ()

    @property
    def to_follow_count(self) -> int:
        return len(self.links_to_follow)

    def to_record(self) -> Dict[str, Any]:
        return {
            "URL": self.url,
            "status": self.status,
            "redirect": self.redirect,
            "linkCount": self.link_count,
            "alreadyProcessedCount": self.already_processed_count,
            "externalHostCount": self.external_host_count,
            "toFollowCount": self.to_follow_count,
            "linksToFollow": list(self.links_to_follow),
        }


ReportRow = Union[ImportRow, CrawlRow]


def _cell(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return "\n".join(value)
    return value


class ImportReport:
    """Rows of one run, plus start/finish timestamps."""

    def __init__(self, mode: RunMode):
        self.mode = RunMode(mode)
        self._rows: List[ReportRow] = []
        self.started_at = datetime.now(timezone.utc)
        self.finished_at: Optional[datetime] = None

    # ------------------------------------------------------------------
    # Building
    # ------------------------------------------------------------------

    def append(self, row: ReportRow) -> None:
        if self.finalized:
            raise ImporterError("Report is finalized; no more rows can be added")
        expected = CrawlRow if self.mode is RunMode.CRAWL else ImportRow
        if not isinstance(row, expected):
            raise TypeError(f"{self.mode.value} report expects {expected.__name__}, got {type(row).__name__}")
        self._rows.append(row)

    def finalize(self) -> None:
        if self.finished_at is None:
            self.finished_at = datetime.now(timezone.utc)

    @property
    def finalized(self) -> bool:
        return self.finished_at is not None

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    @property
    def rows(self) -> List[ReportRow]:
        return list(self._rows)

    def __len__(self) -> int:
        return len(self._rows)

    def __iter__(self) -> Iterator[ReportRow]:
        return iter(list(self._rows))

    @property
    def headers(self) -> List[str]:
        return list(CRAWL_COLUMNS if self.mode is RunMode.CRAWL else IMPORT_COLUMNS)

    def summary(self) -> Dict[str, int]:
        """Row count per outcome kind (``Success``, ``Redirect``, ...)."""
        counts = Counter(status_kind(row.status).value for row in self._rows)
        return {kind.value: counts.get(kind.value, 0) for kind in OutcomeKind}

    def to_records(self) -> List[Dict[str, Any]]:
        return [row.to_record() for row in self._rows]

    def to_table(self) -> List[List[Any]]:
        """Header row followed by one row per processed URL."""
        headers = self.headers
        table: List[List[Any]] = [headers]
        for record in self.to_records():
            table.append([_cell(record.get(h)) for h in headers])
        return table

    def to_dataframe(self):
        """pandas DataFrame of ``to_table()`` (header row as columns)."""
        import pandas as pd
        table = self.to_table()
        return pd.DataFrame(table[1:], columns=table[0])

    # ------------------------------------------------------------------
    # Export helpers
    # ------------------------------------------------------------------

    def export_csv(self, filepath: str) -> str:
        """Export rows to CSV."""
        path = Path(filepath)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", newline="", encoding="utf-8") as f:
            writer = csv.writer(f)
            writer.writerows(self.to_table())
        logger.info(f"Exported report CSV to {path.absolute()}")
        return str(path.absolute())

    def export_json(self, filepath: str) -> str:
        """Export rows (with run metadata) to JSON."""
        path = Path(filepath)
        path.parent.mkdir(parents=True, exist_ok=True)
        data = {
            "mode": self.mode.value,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "summary": self.summary(),
            "rows": self.to_records(),
        }
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        logger.info(f"Exported report JSON to {path.absolute()}")
        return str(path.absolute())
