"""
GitHub API Access — PR Agent

PURPOSE:
    Everything that talks to the GitHub REST API lives here: token lookup,
    the thin GitHubAPI wrapper, and the conversion of raw API payloads into
    the PR dicts that flow through the pipeline.

CALLED BY:
    stage_1_fetch_pull_requests.py, pr_auto_reviewer.py,
    stage_6_execute_consolidation.py, and cli.py.

DEPENDS ON:
    - The `requests` library for all REST calls
    - GITHUB_TOKEN, or an authenticated `gh` CLI as a fallback token source

PR DICT SHAPE:
    number, title, body, state, author, head_ref, base_ref, created_at,
    updated_at, is_draft, mergeable, labels (list[str]), linked_issues
    (list[int]), files (list of {path, status, additions, deletions,
    changes, patch}), commits (list of {sha, message}), additions,
    deletions, changed_files.

COST:
    Free within the 5,000 req/hr authenticated rate limit. A detailed PR
    fetch is 2 calls (3 with commits) plus one per extra page of files.
"""

import logging
import re
from datetime import datetime, timezone
from typing import Optional

import requests

from _pr_agent import config
from _pr_agent.git_commands import run_command

logger = logging.getLogger(__name__)

LINKED_ISSUE_PATTERN = re.compile(
    r"(fixes|closes|resolves|related to|addresses)\s*#(\d+)", re.IGNORECASE
)
PER_PAGE = 100


class GitHubTokenError(RuntimeError):
    """Raised when no GitHub token is available from env or the gh CLI."""


def get_github_token() -> Optional[str]:
    """
    Return a GitHub token: GITHUB_TOKEN first, then `gh auth token`.

    Returns None when neither source yields a token.
    """
    if config.GITHUB_TOKEN:
        return config.GITHUB_TOKEN

    result = run_command("gh", ["auth", "token"], timeout=30)
    token = result["stdout"].strip()
    if result["success"] and token:
        return token

    logger.warning("Could not retrieve GitHub token from gh CLI")
    return None


def create_github_api(
    owner: Optional[str] = None,
    repo: Optional[str] = None,
    token: Optional[str] = None,
) -> "GitHubAPI":
    """Build a GitHubAPI for the configured repo, raising if no token exists."""
    token = token or get_github_token()
    if not token:
        raise GitHubTokenError(
            "GitHub token not found. Set GITHUB_TOKEN in .env or run `gh auth login`."
        )
    return GitHubAPI(owner or config.GITHUB_ORG, repo or config.GITHUB_REPO, token)


# ---------------------------------------------------------------------------
# GITHUB API HELPER CLASS
# ---------------------------------------------------------------------------
# Wraps the GitHub REST API calls the pipeline needs. The token needs
# pull-requests:write and issues:write for the execution stage; read-only
# tokens are enough for analysis and reporting.
# ---------------------------------------------------------------------------


class GitHubAPI:
    """
    Thin wrapper around GitHub REST API for the operations we need.

    Every method raises requests.HTTPError on a non-2xx response.
    """

    def __init__(self, owner: str, repo: str, token: str):
        self.owner = owner
        self.repo = repo
        self.base_url = f"https://api.github.com/repos/{owner}/{repo}"
        self.headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"

    def _get(self, path: str, params: Optional[dict] = None):
        resp = requests.get(f"{self.base_url}{path}", headers=self.headers, params=params, timeout=30)
        resp.raise_for_status()
        return resp.json()

    def _get_paginated(self, path: str, params: Optional[dict] = None) -> list:
        """Collect every page of a list endpoint."""
        items = []
        page = 1
        while True:
            page_params = dict(params or {})
            page_params.update({"per_page": PER_PAGE, "page": page})
            page_items = self._get(path, page_params)
            if not page_items:
                break
            items.extend(page_items)
            if len(page_items) < PER_PAGE:
                break
            page += 1
        return items

    def get_pull_request(self, pr_number: int) -> dict:
        """Get the raw pull request payload."""
        return self._get(f"/pulls/{pr_number}")

    def list_pull_request_files(self, pr_number: int) -> list:
        """List the files changed by a Pull Request (all pages)."""
        return self._get_paginated(f"/pulls/{pr_number}/files")

    def list_pull_request_commits(self, pr_number: int) -> list:
        """List the commits of a Pull Request (all pages)."""
        return self._get_paginated(f"/pulls/{pr_number}/commits")

    def list_open_pull_requests(self, sort: str = "created", direction: str = "desc") -> list:
        """List open Pull Requests, newest first by default."""
        return self._get_paginated(
            "/pulls", {"state": "open", "sort": sort, "direction": direction}
        )

    def post_comment(self, issue_number: int, body: str):
        """Post a comment on a Pull Request conversation."""
        url = f"{self.base_url}/issues/{issue_number}/comments"
        resp = requests.post(url, headers=self.headers, json={"body": body}, timeout=30)
        resp.raise_for_status()
        return resp.json()

    def close_pull_request(self, pr_number: int):
        """Close a Pull Request without merging."""
        url = f"{self.base_url}/pulls/{pr_number}"
        resp = requests.patch(url, headers=self.headers, json={"state": "closed"}, timeout=30)
        resp.raise_for_status()
        return resp.json()

    def create_review(self, pr_number: int, event: str = "APPROVE", body: str = ""):
        """Submit a review (APPROVE, REQUEST_CHANGES, or COMMENT)."""
        url = f"{self.base_url}/pulls/{pr_number}/reviews"
        resp = requests.post(
            url, headers=self.headers, json={"event": event, "body": body}, timeout=30
        )
        resp.raise_for_status()
        return resp.json()

    def request_reviewers(self, pr_number: int, reviewers: list):
        """Request reviews from users on a Pull Request."""
        url = f"{self.base_url}/pulls/{pr_number}/requested_reviewers"
        resp = requests.post(url, headers=self.headers, json={"reviewers": reviewers}, timeout=30)
        resp.raise_for_status()
        return resp.json()

    def create_pull_request(self, title: str, body: str, head: str, base: str = "main") -> int:
        """Create a Pull Request. Returns the PR number."""
        url = f"{self.base_url}/pulls"
        data = {"title": title, "body": body, "head": head, "base": base}
        resp = requests.post(url, headers=self.headers, json=data, timeout=30)
        resp.raise_for_status()
        return resp.json()["number"]

    def merge_pull_request(self, pr_number: int, merge_method: str = "merge"):
        """Merge a Pull Request."""
        url = f"{self.base_url}/pulls/{pr_number}/merge"
        data = {"merge_method": merge_method}
        resp = requests.put(url, headers=self.headers, json=data, timeout=30)
        resp.raise_for_status()
        return resp.json()


# ---------------------------------------------------------------------------
# PR DETAIL HELPERS
# ---------------------------------------------------------------------------


def get_pr_details(gh: GitHubAPI, pr_number: int, include_commits: bool = False) -> Optional[dict]:
    """
    Fetch a PR with its changed files (and optionally commits) as a PR dict.

    Returns None when any of the underlying API calls fails; the error is
    logged so a batch fetch can keep going.
    """
    try:
        raw_pr = gh.get_pull_request(pr_number)
        raw_files = gh.list_pull_request_files(pr_number)
        raw_commits = gh.list_pull_request_commits(pr_number) if include_commits else []
    except requests.RequestException as e:
        logger.error("Error fetching PR #%s: %s", pr_number, e)
        return None

    pr = pull_request_from_api(raw_pr)
    pr["files"] = [file_from_api(f) for f in raw_files]
    pr["commits"] = [commit_from_api(c) for c in raw_commits]
    pr["additions"] = sum(f["additions"] for f in pr["files"])
    pr["deletions"] = sum(f["deletions"] for f in pr["files"])
    pr["changed_files"] = len(pr["files"])
    return pr


def list_open_prs(gh: GitHubAPI, direction: str = "desc") -> list:
    """
    List open PRs as PR dicts (without files).

    Raises:
        requests.RequestException: GitHub refused the listing (bad token,
            rate limit, server error)
    """
    raw_prs = gh.list_open_pull_requests(direction=direction)
    return [pull_request_from_api(pr) for pr in raw_prs]


def request_reviews(gh: GitHubAPI, pr_number: int, reviewers: list) -> bool:
    """Request reviews, logging (not raising) when GitHub refuses."""
    if not reviewers:
        logger.warning("No reviewers specified for PR #%s", pr_number)
        return False

    try:
        gh.request_reviewers(pr_number, reviewers)
    except requests.RequestException as e:
        logger.error("Error requesting reviews for PR #%s: %s", pr_number, e)
        return False

    logger.info("Requested reviews from %s for PR #%s", ", ".join(reviewers), pr_number)
    return True


def extract_linked_issues(body: Optional[str]) -> list:
    """Issue numbers referenced as 'Fixes #12', 'Closes #34', etc."""
    if not body:
        return []
    return [int(match.group(2)) for match in LINKED_ISSUE_PATTERN.finditer(body)]


def pull_request_from_api(raw: dict) -> dict:
    """Convert a REST pull request payload into a PR dict (no files yet)."""
    body = raw.get("body") or ""
    user = raw.get("user") or {}
    return {
        "number": raw["number"],
        "title": raw.get("title", ""),
        "body": body,
        "state": raw.get("state", "open"),
        "author": user.get("login") or "unknown",
        "head_ref": (raw.get("head") or {}).get("ref", ""),
        "base_ref": (raw.get("base") or {}).get("ref", ""),
        "created_at": raw.get("created_at", ""),
        "updated_at": raw.get("updated_at") or raw.get("created_at", ""),
        "is_draft": bool(raw.get("draft", False)),
        "mergeable": raw.get("mergeable"),
        "labels": [label.get("name", "") for label in raw.get("labels") or []],
        "linked_issues": extract_linked_issues(body),
        "files": [],
        "commits": [],
        "additions": raw.get("additions", 0),
        "deletions": raw.get("deletions", 0),
        "changed_files": raw.get("changed_files", 0),
    }


def file_from_api(raw: dict) -> dict:
    """Convert a REST PR file entry into a PR file dict."""
    return {
        "path": raw["filename"],
        "status": raw.get("status", "modified"),
        "additions": raw.get("additions", 0),
        "deletions": raw.get("deletions", 0),
        "changes": raw.get("changes", 0),
        "patch": raw.get("patch"),
    }


def commit_from_api(raw: dict) -> dict:
    return {
        "sha": raw.get("sha", ""),
        "message": (raw.get("commit") or {}).get("message", ""),
    }


# ---------------------------------------------------------------------------
# DATE HELPERS
# ---------------------------------------------------------------------------

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def parse_github_timestamp(value: str) -> datetime:
    """Parse '2024-01-15T10:00:00Z' into an aware UTC datetime."""
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def created_time(pr: dict) -> datetime:
    """When the PR was opened; PRs without a creation time sort as the oldest."""
    value = pr.get("created_at")
    return parse_github_timestamp(value) if value else EPOCH


def days_old(created_at: str, now: Optional[datetime] = None) -> float:
    """Fractional days between created_at and now."""
    if not created_at:
        return 0.0
    now = now or datetime.now(timezone.utc)
    return (now - parse_github_timestamp(created_at)).total_seconds() / 86400
