"""Utilities for report persistence."""

import json
import logging
import re
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .research.models import ResearchContext

logger = logging.getLogger(__name__)


def unique_report_path(directory: Path, prefix: str) -> Path:
    """Allocate a timestamped, collision-free markdown path in ``directory``."""
    # Microseconds avoid collisions when called multiple times per second.
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")

    # Sanitize prefix for filesystem
    safe_prefix = re.sub(r"[^\w\-]", "_", prefix)[:30]
    base = f"{timestamp}_{safe_prefix}"
    file_path = directory / f"{base}.md"
    if file_path.exists():
        for i in range(1, 10_000):
            candidate = directory / f"{base}_{i}.md"
            if not candidate.exists():
                return candidate
        raise RuntimeError("Failed to allocate a unique report filename after 10,000 attempts")
    return file_path


def save_research_report(context: "ResearchContext", path: Path | None = None, directory: Path | None = None) -> Path:
    """Save a research result as markdown with a JSON sidecar.

    Args:
        context: The result to save.
        path: Exact file to write. Takes precedence over ``directory``.
        directory: Directory to allocate a unique timestamped file in.
            Defaults to the configured reports directory.

    Returns:
        Path to the saved markdown file.
    """
    if path is None:
        if directory is None:
            from .config import settings

            directory = settings.get_reports_dir()
        directory.mkdir(parents=True, exist_ok=True)
        path = unique_report_path(directory, f"research_{context.query[:20]}")
    else:
        path.parent.mkdir(parents=True, exist_ok=True)

    path.write_text(context.to_markdown(), encoding="utf-8")

    meta_path = path.with_suffix(".json")
    metadata = {
        "timestamp": datetime.now().isoformat(),
        "file": path.name,
        "query": context.query,
        "sources": list(context.sources),
        "confidence": context.confidence,
    }
    meta_path.write_text(json.dumps(metadata, indent=2), encoding="utf-8")

    logger.info(f"Saved report to {path}")
    return path
