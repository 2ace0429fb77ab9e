"""
Main Branch Risk Analyzer — PR Agent

PURPOSE:
    Estimate how risky it is to merge a PR into its base branch. Looks at
    five signals: critical file changes, merge conflicts against the base,
    setup/tooling file changes, potentially breaking API edits, and
    database schema edits.

CALLED BY:
    pr_auto_reviewer.py — once per reviewed PR.

DEPENDS ON:
    - A PR dict with files and patches (github_api.get_pr_details)
    - A local git checkout of the repository for the merge simulation.
      Without one the simulation fails quietly and the overlap fallback
      (recent base-branch commits) is used instead.

RISK FORMULA:
    factors = critical(+1) + setup(+1) + api(+2) + schema(+2)
    High   if factors >= 3 or total changed lines > 500
    Medium if factors >= 1 or total changed lines > 200
    Low    otherwise
"""

import logging

from _pr_agent.file_analysis import is_high_risk_file
from _pr_agent.git_commands import execute_git_command

logger = logging.getLogger(__name__)

SETUP_FILE_PATTERNS = [
    "package.json",
    "package-lock.json",
    "yarn.lock",
    "tsconfig.json",
    "next.config",
    ".eslintrc",
    ".babelrc",
    ".env.example",
    "docker",
]

API_SIGNATURE_REMOVALS = ["-export", "-async function", "-function", "-interface", "-type "]
API_RESPONSE_REMOVALS = ["-return {", "-res.json({", "-res.status("]

SCHEMA_PATH_MARKERS = ["schema", "migration", "database", "model", "collection"]
SCHEMA_OPERATIONS = [
    "createCollection",
    "createDatabase",
    "createAttribute",
    "updateCollection",
    "addField",
    "removeField",
    "alterTable",
    "createTable",
]


def analyze_main_branch_risks(pr: dict, check_merge: bool = True) -> dict:
    """
    Analyze the risks a PR poses to its base branch.

    Args:
        pr: PR dict with 'files', 'base_ref', 'head_ref'
        check_merge: Run the local git merge simulation. Disable when the
                     working directory is not a checkout of the repo.

    Returns:
        dict with keys 'critical_file_changes', 'potential_merge_conflicts',
        'setup_file_changes', 'api_breaking_changes',
        'database_schema_changes' (lists of paths) and 'overall_risk'.
    """
    logger.info("Analyzing main branch risks for PR #%s", pr["number"])

    return {
        "critical_file_changes": detect_critical_file_changes(pr),
        "potential_merge_conflicts": detect_potential_merge_conflicts(pr) if check_merge else [],
        "setup_file_changes": detect_setup_file_changes(pr),
        "api_breaking_changes": detect_api_breaking_changes(pr),
        "database_schema_changes": detect_database_schema_changes(pr),
        "overall_risk": calculate_overall_risk(pr),
    }


def detect_critical_file_changes(pr: dict) -> list:
    return [f["path"] for f in pr.get("files") or [] if is_high_risk_file(f["path"])]


def detect_potential_merge_conflicts(pr: dict) -> list:
    """
    Find files likely to conflict with the base branch.

    First simulates the merge locally. If that yields nothing (clean merge
    or no usable checkout), falls back to PR files that were also touched
    by the last 10 commits on the base branch.
    """
    base_branch = pr.get("base_ref") or "main"
    head_branch = pr.get("head_ref") or ""
    conflicts = _simulate_merge(base_branch, head_branch) if head_branch else []

    if conflicts:
        return conflicts

    base_changes = execute_git_command(
        ["log", "-n", "10", "--name-only", "--pretty=format:", base_branch]
    )
    if not base_changes["success"]:
        return []

    base_files = {line.strip() for line in base_changes["stdout"].splitlines() if line.strip()}
    return [f["path"] for f in pr.get("files") or [] if f["path"] in base_files]


def detect_setup_file_changes(pr: dict) -> list:
    return [
        f["path"]
        for f in pr.get("files") or []
        if any(pattern in f["path"] for pattern in SETUP_FILE_PATTERNS)
    ]


def detect_api_breaking_changes(pr: dict) -> list:
    """API/service files whose patch removes exports, signatures, or response shapes."""
    api_changes = []

    for file in pr.get("files") or []:
        path = file["path"]
        if not (("/api/" in path or "services/" in path) and path.endswith((".ts", ".js"))):
            continue

        patch = file.get("patch")
        if not patch:
            continue

        if any(marker in patch for marker in API_SIGNATURE_REMOVALS + API_RESPONSE_REMOVALS):
            api_changes.append(path)

    return api_changes


def detect_database_schema_changes(pr: dict) -> list:
    """Database-looking files whose patch calls a schema-altering operation."""
    schema_changes = []

    for file in pr.get("files") or []:
        path = file["path"]
        if not any(marker in path for marker in SCHEMA_PATH_MARKERS):
            continue

        patch = file.get("patch")
        if patch and any(op in patch for op in SCHEMA_OPERATIONS):
            schema_changes.append(path)

    return schema_changes


def calculate_overall_risk(pr: dict) -> str:
    files = pr.get("files") or []
    if not files:
        return "Low"

    critical_factors = 0
    if detect_critical_file_changes(pr):
        critical_factors += 1
    if detect_setup_file_changes(pr):
        critical_factors += 1
    if detect_api_breaking_changes(pr):
        critical_factors += 2
    if detect_database_schema_changes(pr):
        critical_factors += 2

    total_changes = sum(f.get("changes", 0) for f in files)

    if critical_factors >= 3 or total_changes > 500:
        return "High"
    if critical_factors >= 1 or total_changes > 200:
        return "Medium"
    return "Low"


# ---------------------------------------------------------------------------
# PRIVATE HELPER FUNCTIONS
# ---------------------------------------------------------------------------


def _simulate_merge(base_branch: str, head_branch: str) -> list:
    """
    Try merging origin/head into origin/base on a detached HEAD.

    The working tree is always restored: the merge is aborted and the
    previously checked-out branch (or commit, when HEAD was detached) is
    checked out again.
    """
    current = execute_git_command(["rev-parse", "--abbrev-ref", "HEAD"])
    if not current["success"]:
        return []
    original_ref = current["stdout"].strip()

    if original_ref == "HEAD":
        # Detached HEAD: restore by commit sha
        commit = execute_git_command(["rev-parse", "HEAD"])
        if not commit["success"]:
            return []
        original_ref = commit["stdout"].strip()

    fetch = execute_git_command(["fetch", "origin", base_branch, head_branch])
    if not fetch["success"]:
        logger.warning("Could not fetch %s/%s for merge test", base_branch, head_branch)
        return []

    checkout = execute_git_command(["checkout", "--detach", f"origin/{base_branch}"])
    if not checkout["success"]:
        return []

    conflicts = []
    try:
        merge = execute_git_command(["merge", "--no-commit", "--no-ff", f"origin/{head_branch}"])
        if not merge["success"]:
            unmerged = execute_git_command(["diff", "--name-only", "--diff-filter=U"])
            if unmerged["success"]:
                conflicts = [line for line in unmerged["stdout"].splitlines() if line.strip()]
    finally:
        execute_git_command(["merge", "--abort"])
        execute_git_command(["checkout", original_ref])
    return conflicts
