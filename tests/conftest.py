"""Shared fixtures: PR and PR-file dicts shaped like github_api.get_pr_details output."""

from datetime import datetime, timezone

import pytest

NOW = datetime(2026, 10, 16, 15, 0, 0, tzinfo=timezone.utc)


def build_file(path, patch=None, additions=5, deletions=1, status="modified"):
    return {
        "path": path,
        "status": status,
        "additions": additions,
        "deletions": deletions,
        "changes": additions + deletions,
        "patch": patch,
    }


def build_pr(number, title="feat: add widget", files=None, created_at="2026-10-15T12:00:00Z", **overrides):
    files = files or []
    pr = {
        "number": number,
        "title": title,
        "body": "",
        "state": "open",
        "author": "alice",
        "head_ref": f"feature-{number}",
        "base_ref": "main",
        "created_at": created_at,
        "updated_at": created_at,
        "is_draft": False,
        "mergeable": True,
        "labels": [],
        "linked_issues": [],
        "files": files,
        "commits": [],
        "additions": sum(f["additions"] for f in files),
        "deletions": sum(f["deletions"] for f in files),
        "changed_files": len(files),
    }
    pr.update(overrides)
    return pr


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def make_pr():
    return build_pr


@pytest.fixture
def make_file():
    return build_file


@pytest.fixture
def simple_pr():
    """A small, low-risk PR touching one component and its test."""
    return build_pr(
        10,
        files=[
            build_file("app/components/Widget.tsx", "@@ -1,3 +1,4 @@\n+const a = 1;"),
            build_file("app/components/Widget.test.tsx", "@@ -1,2 +1,3 @@\n+it('works', () => {});"),
        ],
    )


@pytest.fixture
def mock_gh():
    """GitHubAPI stand-in; every method is a MagicMock."""
    from unittest.mock import MagicMock

    from _pr_agent.github_api import GitHubAPI

    gh = MagicMock(spec=GitHubAPI)
    gh.full_name = "acme/web"
    return gh
