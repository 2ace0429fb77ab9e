"""
Stage 6: Execute Consolidation — PR Agent

PURPOSE:
    Carry out a consolidation on GitHub. Two entry points:

    1. execute_consolidation(plan, gh)
       For "keep one PR" plans (keep-latest, keep-oldest, keep-newest):
       comment on and close every other PR, approve the kept PR when the
       plan says so, and optionally merge it. Rolling-up and
       consolidation-map plans are reported as manual and nothing runs.

    2. consolidate_into_new_branch(prs, gh, ...)
       For duplicate groups: create a fresh branch from the base branch,
       merge every PR head into it, push, open one consolidated PR, and
       optionally close the originals.

CALLED BY:
    cli.py `consolidate --execute`, `compare`, and `duplicates`.

ERROR HANDLING:
    - A PR that fails to close or approve is recorded in `errors` and the
      remaining PRs are still processed.
    - A kept PR whose approval failed is not merged.
    - In the new-branch flow, a PR whose head cannot be fetched or merged
      cleanly is skipped (merge aborted) and listed in 'skipped_prs'.
      Failing to fetch the base, create the branch, push, or open the PR
      stops the flow. The previously checked-out ref is restored either
      way.
"""

import logging
from typing import Optional

import requests

from _pr_agent.git_commands import execute_git_command
from _pr_agent.github_api import GitHubAPI
from _pr_agent.stage_4_build_consolidation_plan import is_manual_strategy

logger = logging.getLogger(__name__)

NEW_BRANCH_CLOSE_COMMENT = "This PR has been consolidated into the new PR. Original changes preserved."


def execute_consolidation(plan: dict, gh: GitHubAPI, merge: bool = False) -> dict:
    """
    Execute a keep-one-PR plan.

    Args:
        plan: Plan dict from Stage 4
        gh: Authenticated GitHubAPI
        merge: Also merge the kept PR after approving it

    Returns:
        dict with keys:
            - 'success' (bool): No errors occurred
            - 'manual' (bool): The strategy needs manual execution
            - 'closed_prs' (list[int])
            - 'approved' (bool)
            - 'merged' (bool)
            - 'errors' (list[str])
    """
    result = {
        "success": True,
        "manual": False,
        "closed_prs": [],
        "approved": False,
        "merged": False,
        "errors": [],
    }

    if is_manual_strategy(plan["strategy"]):
        logger.warning(
            "%s strategy requires manual execution. Please follow the implementation plan.",
            plan["strategy"],
        )
        result["manual"] = True
        return result

    keep_pr = plan["keep_pr"]

    # -----------------------------------------------------------------------
    # STEP 1: Comment on and close the other PRs
    # -----------------------------------------------------------------------

    for number in plan["close_prs"]:
        logger.info("Closing PR #%s", number)
        try:
            gh.post_comment(number, plan["close_comment"])
            gh.close_pull_request(number)
        except requests.RequestException as e:
            result["errors"].append(f"Error closing PR #{number}: {e}")
            continue
        result["closed_prs"].append(number)

    # -----------------------------------------------------------------------
    # STEP 2: Approve, then optionally merge, the kept PR
    # -----------------------------------------------------------------------

    if plan.get("approve_body"):
        logger.info("Approving PR #%s", keep_pr)
        try:
            gh.create_review(keep_pr, event="APPROVE", body=plan["approve_body"])
            result["approved"] = True
        except requests.RequestException as e:
            result["errors"].append(f"Error approving PR #{keep_pr}: {e}")

    if merge and plan.get("approve_body") and not result["approved"]:
        result["errors"].append(f"Skipped merging PR #{keep_pr} because it was not approved")
    elif merge:
        logger.info("Merging PR #%s", keep_pr)
        try:
            gh.merge_pull_request(keep_pr)
            result["merged"] = True
        except requests.RequestException as e:
            result["errors"].append(f"Error merging PR #{keep_pr}: {e}")

    result["success"] = not result["errors"]
    return result


def consolidate_into_new_branch(
    prs: list,
    gh: GitHubAPI,
    branch_name: Optional[str] = None,
    title: Optional[str] = None,
    close_originals: bool = True,
    cwd: Optional[str] = None,
) -> dict:
    """
    Merge every PR of a group into one new branch and open a PR for it.

    The branch that was checked out before (or the commit, on a detached
    HEAD) is checked out again once the new branch has been created,
    whether or not the rest of the flow succeeds.

    Args:
        prs: PR dicts of the group; merged in this order
        gh: Authenticated GitHubAPI
        branch_name: New branch (default "consolidated-{first PR head}")
        title: Title of the new PR (default: first PR's title)
        close_originals: Close the original PRs once the new PR exists
        cwd: Git checkout to work in

    Returns:
        dict with keys 'success', 'branch', 'merged_prs', 'skipped_prs',
        'new_pr' (int or None), 'closed_prs', 'errors'.
    """
    result = {
        "success": False,
        "branch": branch_name,
        "merged_prs": [],
        "skipped_prs": [],
        "new_pr": None,
        "closed_prs": [],
        "errors": [],
    }
    if not prs:
        result["errors"].append("No PRs to consolidate")
        return result

    first = prs[0]
    branch = branch_name or f"consolidated-{first['head_ref']}"
    base_branch = first.get("base_ref") or "main"
    result["branch"] = branch

    # -----------------------------------------------------------------------
    # STEP 1: Create the branch from the base branch
    # -----------------------------------------------------------------------

    original_ref = _current_ref(cwd)
    if original_ref is None:
        result["errors"].append("Could not determine the current branch")
        return result

    fetch = execute_git_command(["fetch", "origin", base_branch], cwd=cwd)
    if not fetch["success"]:
        result["errors"].append(f"Failed to fetch base branch '{base_branch}': {fetch['stderr'].strip()}")
        return result

    checkout = execute_git_command(["checkout", "-b", branch, f"origin/{base_branch}"], cwd=cwd)
    if not checkout["success"]:
        result["errors"].append(f"Failed to create new branch '{branch}': {checkout['stderr'].strip()}")
        return result

    try:
        _merge_push_and_open(prs, gh, branch, base_branch, title or first["title"], close_originals, cwd, result)
    finally:
        execute_git_command(["checkout", original_ref], cwd=cwd)

    return result


def build_consolidated_body(prs: list) -> str:
    """Description of the consolidated PR, carrying the original descriptions."""
    lines = ["# Consolidated PR", "", "This PR consolidates the following PRs:", ""]
    lines.extend(f"- #{pr['number']}: {pr['title']}" for pr in prs)
    lines.extend(["", "## Original PR Descriptions", ""])
    for pr in prs:
        lines.extend([f"### PR #{pr['number']}", "", pr.get("body") or "", "", "---", ""])
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# PRIVATE HELPER FUNCTIONS
# ---------------------------------------------------------------------------


def _current_ref(cwd: Optional[str]) -> Optional[str]:
    """Checked-out branch name, or the commit sha on a detached HEAD."""
    current = execute_git_command(["rev-parse", "--abbrev-ref", "HEAD"], cwd=cwd)
    if not current["success"]:
        return None
    ref = current["stdout"].strip()
    if ref != "HEAD":
        return ref

    commit = execute_git_command(["rev-parse", "HEAD"], cwd=cwd)
    return commit["stdout"].strip() if commit["success"] else None


def _merge_push_and_open(
    prs: list,
    gh: GitHubAPI,
    branch: str,
    base_branch: str,
    title: str,
    close_originals: bool,
    cwd: Optional[str],
    result: dict,
) -> None:
    """Steps 2-4 of consolidate_into_new_branch; fills in `result`."""

    # -----------------------------------------------------------------------
    # STEP 2: Merge every PR head, skipping the ones that conflict
    # -----------------------------------------------------------------------

    for pr in prs:
        head = pr["head_ref"]
        logger.info("Merging changes from PR #%s (%s)", pr["number"], head)

        fetch = execute_git_command(["fetch", "origin", head], cwd=cwd)
        if not fetch["success"]:
            result["errors"].append(f"Failed to fetch branch '{head}'")
            result["skipped_prs"].append(pr["number"])
            continue

        merge = execute_git_command(
            ["merge", "--no-ff", f"origin/{head}", "-m", f"Merge PR #{pr['number']}: {pr['title']}"],
            cwd=cwd,
        )
        if not merge["success"]:
            logger.warning("Merge conflict when merging '%s', skipping PR #%s", head, pr["number"])
            execute_git_command(["merge", "--abort"], cwd=cwd)
            result["skipped_prs"].append(pr["number"])
            continue

        result["merged_prs"].append(pr["number"])

    if not result["merged_prs"]:
        result["errors"].append("No PRs could be merged into the consolidated branch")
        return

    # -----------------------------------------------------------------------
    # STEP 3: Push and open the consolidated PR
    # -----------------------------------------------------------------------

    push = execute_git_command(["push", "-u", "origin", branch], cwd=cwd)
    if not push["success"]:
        result["errors"].append(f"Failed to push the consolidated branch: {push['stderr'].strip()}")
        return

    merged = [pr for pr in prs if pr["number"] in result["merged_prs"]]
    try:
        result["new_pr"] = gh.create_pull_request(
            title=title,
            body=build_consolidated_body(merged),
            head=branch,
            base=base_branch,
        )
    except requests.RequestException as e:
        result["errors"].append(f"Failed to create the consolidated PR: {e}")
        return

    logger.info("Consolidated PR #%s created from branch %s", result["new_pr"], branch)

    # -----------------------------------------------------------------------
    # STEP 4: Close the merged originals
    # -----------------------------------------------------------------------

    if close_originals:
        for pr in merged:
            try:
                gh.post_comment(pr["number"], NEW_BRANCH_CLOSE_COMMENT)
                gh.close_pull_request(pr["number"])
            except requests.RequestException as e:
                result["errors"].append(f"Failed to close PR #{pr['number']}: {e}")
                continue
            result["closed_prs"].append(pr["number"])

    result["success"] = True
