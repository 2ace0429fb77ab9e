"""
Report Writer — PR Agent

PURPOSE:
    Persist Markdown reports to OUTPUT_DIR. Every report is written twice:
    once under its timestamped name and once with the timestamp replaced by
    "latest", so tooling can always open e.g. pr-consolidation-latest.md.

TIMESTAMPS:
    MM-DD-YYYY_HH-MM-SS in America/Chicago, regardless of the machine's
    local timezone.
"""

import logging
import os
import re
from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from _pr_agent import config

logger = logging.getLogger(__name__)

TIMESTAMP_PATTERN = re.compile(r"\d{2}-\d{2}-\d{4}_\d{2}-\d{2}-\d{2}")


def format_date_cst(now: Optional[datetime] = None) -> str:
    """Format a moment as MM-DD-YYYY_HH-MM-SS in US Central time."""
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(ZoneInfo(config.REPORT_TIMEZONE)).strftime("%m-%d-%Y_%H-%M-%S")


def ensure_output_dir(dir_path: Optional[str] = None) -> str:
    """
    Create the output directory if needed and return its absolute path.

    Falls back to the current directory when it cannot be created.
    """
    directory = os.path.abspath(dir_path or config.get_output_config()["dir_path"])
    try:
        if not os.path.isdir(directory):
            os.makedirs(directory, exist_ok=True)
            logger.info("Created output directory: %s", directory)
    except OSError as e:
        logger.error("Error creating output directory %s: %s", directory, e)
        return os.path.abspath(".")
    return directory


def save_report(content: str, filename: str, dir_path: Optional[str] = None) -> str:
    """
    Write a report and its "latest" copy.

    Args:
        content: Markdown body
        filename: Name containing a format_date_cst() timestamp, e.g.
                  "pr-auto-review-42-10-16-2026_09-30-00.md"
        dir_path: Override for OUTPUT_DIR

    Returns:
        The path of the timestamped report, or "" when writing failed.
    """
    output_dir = ensure_output_dir(dir_path)
    file_path = os.path.join(output_dir, filename)

    try:
        with open(file_path, "w", encoding="utf-8") as f:
            f.write(content)

        latest_name = TIMESTAMP_PATTERN.sub("latest", filename, count=1)
        if latest_name != filename:
            with open(os.path.join(output_dir, latest_name), "w", encoding="utf-8") as f:
                f.write(content)
    except OSError as e:
        logger.error("Error saving report %s: %s", file_path, e)
        return ""

    logger.info("Report saved to: %s", file_path)
    return file_path
