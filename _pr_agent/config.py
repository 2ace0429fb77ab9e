"""
Configuration — PR Agent

PURPOSE:
    Single place where every tunable of the pipeline is read from the
    environment. A local .env file is loaded once (python-dotenv) so the
    tools behave the same whether they run from a developer shell or CI.

CALLED BY:
    Every stage and analyzer that needs repository coordinates, directory
    rules, strategy thresholds, or the report output directory.

DESIGN DECISIONS:
    - Values are plain module constants, resolved at import time. Functions
      that use them take explicit overrides so tests never touch os.environ.
    - Comma-separated lists are split and stripped; empty entries dropped.
"""

import os

from dotenv import load_dotenv

load_dotenv()


def _split_list(value: str) -> list:
    """Split a comma-separated env value into a clean list."""
    return [item.strip() for item in value.split(",") if item.strip()]


# -----------------------------------------------------------------------
# REPOSITORY
# -----------------------------------------------------------------------

GITHUB_TOKEN = os.environ.get("GITHUB_TOKEN")
GITHUB_ORG = os.environ.get("GITHUB_ORG", "THE-AI-REAL-ESTATE-INVESTOR")
GITHUB_REPO = os.environ.get("GITHUB_REPO", "AIrie-teachings-dev")

# -----------------------------------------------------------------------
# PROJECT RULES
# -----------------------------------------------------------------------
# CRITICAL_DIRECTORIES: path prefixes whose changes need senior review
# TEST_REQUIRED_DIRS: impact areas that must ship with test changes
# AUTOMERGE_PATTERNS: files that are safe to merge without review
# -----------------------------------------------------------------------

CRITICAL_DIRECTORIES = _split_list(
    os.environ.get(
        "CRITICAL_DIRECTORIES",
        "app/lib/services,app/components/auth,app/api,middleware",
    )
)
TEST_REQUIRED_DIRS = _split_list(os.environ.get("TEST_REQUIRED_DIRS", "services,utils,api"))
AUTOMERGE_PATTERNS = _split_list(os.environ.get("AUTOMERGE_PATTERNS", "docs/,README.md,*.md"))
DEFAULT_REVIEWERS = _split_list(os.environ.get("DEFAULT_REVIEWERS", "aire-team"))

# -----------------------------------------------------------------------
# STRATEGY SELECTION & CONSOLIDATION MAP
# -----------------------------------------------------------------------

MAX_PRS_FOR_KEEP_LATEST = int(os.environ.get("MAX_PRS_FOR_KEEP_LATEST", "5"))
CONFLICT_PROBABILITY_THRESHOLD = float(os.environ.get("CONFLICT_PROBABILITY_THRESHOLD", "0.4"))
DEFAULT_STRATEGY = os.environ.get("DEFAULT_STRATEGY", "auto")
MIN_INTEGRATION_POINT_SIZE = int(os.environ.get("MIN_INTEGRATION_POINT_SIZE", "2"))
MAX_INTEGRATION_POINT_SIZE = int(os.environ.get("MAX_INTEGRATION_POINT_SIZE", "5"))

# -----------------------------------------------------------------------
# REPORTS
# -----------------------------------------------------------------------

OUTPUT_DIR = os.environ.get("OUTPUT_DIR", "./OUTPUT_DIR/REPORTS/")
TIMESTAMP_FORMAT = "MM-DD-YYYY_HH-MM-SS"
REPORT_TIMEZONE = "America/Chicago"


def load_project_config() -> dict:
    """
    Return the directory rules used by the PR analyzer.

    Returns:
        dict with keys 'critical_directories', 'test_required',
        'automerge_patterns' (each a list of strings).
    """
    return {
        "critical_directories": list(CRITICAL_DIRECTORIES),
        "test_required": list(TEST_REQUIRED_DIRS),
        "automerge_patterns": list(AUTOMERGE_PATTERNS),
    }


def get_output_config() -> dict:
    """Return where reports go and how their timestamps look."""
    return {
        "dir_path": OUTPUT_DIR,
        "timestamp_format": TIMESTAMP_FORMAT,
    }
