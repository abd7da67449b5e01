"""
Artifact Store
==============
Saves converted artifacts (DOCX, Markdown) below one output directory.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Union

from .errors import ImporterError

logger = logging.getLogger(__name__)


class ArtifactStore:
    """Writes files under *root*, creating parent directories as needed."""

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root).resolve()

    def resolve(self, filename: str) -> Path:
        """Absolute path for *filename*; refuses paths escaping the root."""
        target = (self.root / filename.lstrip("/")).resolve()
        if target != self.root and self.root not in target.parents:
            raise ImporterError(f"Refusing to write outside {self.root}: {filename}")
        return target

    def save_artifact(self, filename: str, data: Union[bytes, str]) -> Path:
        """Write *data* to *filename* (relative to the root)."""
        target = self.resolve(filename)
        target.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(data, str):
            target.write_text(data, encoding="utf-8")
        else:
            target.write_bytes(data)
        logger.info(f"[SAVE] {target} ({len(data):,} bytes)")
        return target
