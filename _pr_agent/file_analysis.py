"""
File Change Classifier — PR Agent

PURPOSE:
    Path-based classification of the files a PR touches. These are cheap
    string checks shared by the analyzers, the auto reviewer, and the
    consolidation tools.

HIGH-RISK PATTERNS:
    A file is high risk when its path contains any of HIGH_RISK_PATTERNS.
    The list mirrors the directories where regressions have historically
    hurt the main branch (services, middleware, API routes, auth UI) plus
    the two files that change the whole build (package.json, next.config).
"""

import fnmatch
import os

HIGH_RISK_PATTERNS = [
    "app/lib/services",
    "middleware",
    "app/api",
    "app/components/auth",
    "package.json",
    "next.config",
]


def is_high_risk_file(file_path: str) -> bool:
    """Determine if a file is high risk based on its path."""
    return any(pattern in file_path for pattern in HIGH_RISK_PATTERNS)


def analyze_file_changes(files: list) -> dict:
    """
    Sort a PR's changed files into review-relevant buckets.

    Args:
        files: PR file dicts (only 'path' is read)

    Returns:
        dict with keys 'critical_files', 'setup_files', 'form_components',
        'api_endpoints', 'database_operations', 'test_files'. A file can
        land in more than one bucket.
    """
    analysis = {
        "critical_files": [],
        "setup_files": [],
        "form_components": [],
        "api_endpoints": [],
        "database_operations": [],
        "test_files": [],
    }

    for file in files:
        path = file["path"]

        if is_high_risk_file(path):
            analysis["critical_files"].append(path)

        if (
            path.endswith("package.json")
            or path.endswith("tsconfig.json")
            or path.endswith(".env.example")
            or "config" in path
        ):
            analysis["setup_files"].append(path)

        if ("components/forms" in path or "components/form" in path) and path.endswith(
            (".tsx", ".jsx")
        ):
            analysis["form_components"].append(path)

        if "app/api" in path or "pages/api" in path:
            analysis["api_endpoints"].append(path)

        if "services" in path and ("database" in path or "db" in path or "appwrite" in path):
            analysis["database_operations"].append(path)

        if "test" in path or "spec" in path or path.endswith(".test.ts"):
            analysis["test_files"].append(path)

    return analysis


def detect_critical_changes(file_analysis: dict) -> bool:
    """True when any critical, setup, API, or database file changed."""
    return bool(
        file_analysis["critical_files"]
        or file_analysis["setup_files"]
        or file_analysis["api_endpoints"]
        or file_analysis["database_operations"]
    )


def matches_automerge_patterns(files: list, patterns: list) -> bool:
    """
    True when every changed file matches an auto-merge pattern.

    Pattern forms: 'docs/' matches a directory prefix, '*.md' is a glob
    against the path, anything else matches the file name or a path suffix.
    """
    if not files or not patterns:
        return False

    def _matches(path: str, pattern: str) -> bool:
        if pattern.endswith("/"):
            return path.startswith(pattern) or f"/{pattern}" in f"/{path}"
        if "*" in pattern or "?" in pattern:
            return fnmatch.fnmatch(path, pattern) or fnmatch.fnmatch(os.path.basename(path), pattern)
        return os.path.basename(path) == pattern or path.endswith(f"/{pattern}") or path == pattern

    return all(any(_matches(f["path"], p) for p in patterns) for f in files)
