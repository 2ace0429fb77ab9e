"""
Stage 1: Fetch Pull Requests — PR Agent

PURPOSE:
    Turn a user's selection into fully populated PR dicts (metadata, files
    with patches, optionally commits), and group open PRs that look like
    duplicates of each other. Every later stage works on the dicts this
    stage returns and never calls GitHub for PR data itself.

CALLED BY:
    cli.py — `analyze`, `consolidate`, `compare`, and `duplicates`.

SELECTION SYNTAX:
    "1,3,5-7" means items 1, 3, 5, 6, 7. The CLI uses it both for explicit
    PR numbers (--prs) and for 1-based positions in the displayed list of
    open PRs. Malformed parts are skipped.

DESIGN DECISIONS:
    - One PR failing to fetch is recorded in `errors` and the rest are
      still fetched, so a consolidation of 5 PRs with 1 deleted PR still
      produces a report.
    - Duplicate grouping uses a normalized title (letters only, collapsed
      whitespace, lowercase) so "Fix: login bug" and "fix login bug!"
      land in the same group.
"""

import logging
import re

from _pr_agent.github_api import GitHubAPI, get_pr_details

logger = logging.getLogger(__name__)

NON_LETTERS = re.compile(r"[^a-zA-Z\s]")
WHITESPACE = re.compile(r"\s+")


def fetch_pull_requests(numbers: list, gh: GitHubAPI, include_commits: bool = True) -> dict:
    """
    Fetch full details for each requested PR.

    Args:
        numbers: PR numbers, in the order they should be returned
        gh: Authenticated GitHubAPI
        include_commits: Also fetch commit messages (needed by the
                         consolidation map and change-intent analysis)

    Returns:
        dict with keys:
            - 'success' (bool): At least one PR was fetched
            - 'pull_requests' (list[dict])
            - 'errors' (list[str]): One entry per PR that failed
    """
    pull_requests = []
    errors = []

    for number in numbers:
        logger.info("Fetching PR #%s", number)
        pr = get_pr_details(gh, number, include_commits=include_commits)
        if pr is None:
            errors.append(f"Error fetching PR #{number}")
            continue
        pull_requests.append(pr)

    return {
        "success": bool(pull_requests),
        "pull_requests": pull_requests,
        "errors": errors,
    }


def parse_number_ranges(text: str) -> list:
    """Parse "1,3,5-7" into [1, 3, 5, 6, 7]. Malformed parts are skipped."""
    result = []

    for part in (text or "").split(","):
        part = part.strip()
        if not part:
            continue

        if "-" in part:
            start, _, end = part.partition("-")
            try:
                first, last = int(start.strip()), int(end.strip())
            except ValueError:
                continue
            result.extend(range(first, last + 1))
        else:
            try:
                result.append(int(part))
            except ValueError:
                continue

    return result


def select_pull_requests(open_prs: list, selection: str) -> list:
    """
    Map a 1-based index selection over the displayed open PRs to PR numbers.

    Indexes outside the list are ignored.
    """
    numbers = []
    for index in parse_number_ranges(selection):
        if 1 <= index <= len(open_prs):
            numbers.append(open_prs[index - 1]["number"])
    return numbers


def normalize_title(title: str) -> str:
    """Letters only, whitespace collapsed, lowercase."""
    letters = NON_LETTERS.sub("", title or "")
    return WHITESPACE.sub(" ", letters).strip().lower()


def group_by_title(prs: list, normalize: bool = True) -> dict:
    """
    Group PRs that share a title.

    Args:
        prs: PR dicts
        normalize: Compare normalized titles; with False titles must match
                   exactly

    Returns:
        dict mapping title (normalized or exact) to the list of PRs with
        that title, only for titles shared by more than one PR. Groups keep
        the order of `prs`.
    """
    groups = {}
    for pr in prs:
        key = normalize_title(pr["title"]) if normalize else pr["title"]
        groups.setdefault(key, []).append(pr)

    return {title: members for title, members in groups.items() if len(members) > 1}
