"""Report persistence helpers."""

import json
import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Any

from .config import AppSettings

logger = logging.getLogger(__name__)


def slugify(text: str, max_len: int = 50) -> str:
    """Filesystem-safe slug of ``text`` ("research" when nothing usable remains)."""
    slug = re.sub(r"[^\w\s-]", "", text[:max_len]).strip()
    slug = re.sub(r"[\s-]+", "_", slug)
    return slug or "research"


def default_report_path(query: str, app_settings: AppSettings) -> str | None:
    """Report path under ``research.save_directory``, or None when not configured."""
    if not app_settings.research.save_directory:
        return None
    return str(Path(app_settings.research.save_directory).expanduser() / f"{slugify(query)}.md")


def save_report_copy(report: str, query: str, app_settings: AppSettings, metadata: dict[str, Any] | None = None) -> Path:
    """Save a timestamped copy of a report to the results directory.

    A ``.json`` sidecar with the given metadata is written next to it.

    Returns:
        Path to the saved markdown file.
    """
    results_dir = app_settings.get_results_dir()
    # Microseconds keep repeated saves within one second apart.
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
    file_path = results_dir / f"{timestamp}_{slugify(query, 30)}.md"
    file_path.write_text(report, encoding="utf-8")

    if metadata:
        sidecar = {"timestamp": datetime.now().isoformat(), "file": file_path.name, **metadata}
        file_path.with_suffix(".json").write_text(json.dumps(sidecar, indent=2), encoding="utf-8")

    logger.info(f"Saved report to {file_path}")
    return file_path
