"""
Stage 4: Build Consolidation Plan — PR Agent

PURPOSE:
    Turn the chosen strategy into something a person (or Stage 6) can act
    on: a Markdown implementation plan, the copy-paste shell commands, and
    for the "keep one PR" strategies which PR is kept and which are closed.

CALLED BY:
    cli.py `consolidate` (strategies from Stage 3) and `duplicates`
    (keep-oldest / keep-newest).

PLAN SHAPES:
    keep-latest        newest PR is kept; older PRs are closed with a
                       comment; the kept PR is approved (and merged when
                       requested). Stage 6 can execute this.
    keep-oldest /      same, keeping the oldest or newest PR of a duplicate
    keep-newest        group, without an approval.
    rolling-up         integration branch built from `pull/N/head` refs,
                       oldest first, ending in a new consolidated PR.
                       Manual only.
    consolidation-map  plan and Mermaid map from consolidation_map.py.
                       Manual only.

PLAN DICT:
    strategy, implementation_plan (str), visual_map (str), commands
    (list[str]), keep_pr (int or None), close_prs (list[int]),
    close_comment (str), approve_body (str or None), consolidation_map
    (dict or None).
"""

import logging

from _pr_agent.consolidation_map import create_consolidation_map
from _pr_agent.github_api import created_time

logger = logging.getLogger(__name__)

APPROVE_BODY = "Approved after consolidation analysis"
MANUAL_STRATEGIES = ("rolling-up", "consolidation-map", "manual-review")


def build_consolidation_plan(prs: list, strategy: str) -> dict:
    """
    Build the plan for a consolidation strategy.

    Args:
        prs: PR dicts (with files; commits improve the consolidation map)
        strategy: 'keep-latest', 'rolling-up', or 'consolidation-map'

    Returns:
        The plan dict described in the module docstring.

    Raises:
        ValueError: Unknown strategy or no PRs
    """
    if not prs:
        raise ValueError("Cannot build a consolidation plan without PRs")

    logger.info("Building %s plan for %d PRs", strategy, len(prs))

    if strategy == "keep-latest":
        return _build_keep_latest_plan(prs)
    if strategy == "rolling-up":
        return _build_rolling_up_plan(prs)
    if strategy == "consolidation-map":
        return _build_consolidation_map_plan(prs)

    raise ValueError(f"Unknown consolidation strategy: {strategy}")


def build_keep_plan(prs: list, keep: str = "newest") -> dict:
    """
    Plan for a group of duplicate PRs: keep one, close the rest.

    Args:
        prs: The duplicate group
        keep: 'oldest' or 'newest'
    """
    if keep not in ("oldest", "newest"):
        raise ValueError(f"keep must be 'oldest' or 'newest', not {keep!r}")

    ordered = sorted(prs, key=created_time, reverse=(keep == "newest"))
    kept = ordered[0]
    closed = [pr["number"] for pr in ordered[1:]]
    close_comment = (
        f"This PR has been consolidated with #{kept['number']}. "
        "Please refer to that PR for further discussion."
    )

    lines = [f"# Implementation Plan for Keep-{keep.capitalize()} Strategy", "", "## Actions", ""]
    lines.extend(
        f"{n}. Close PR #{number}" for n, number in enumerate(closed, start=1)
    )
    lines.append(f"{len(closed) + 1}. Keep PR #{kept['number']} open for review")
    lines.append("")

    commands = [f'gh pr close {number} --comment "{close_comment}"' for number in closed]

    return {
        "strategy": f"keep-{keep}",
        "implementation_plan": "\n".join(lines),
        "visual_map": "",
        "commands": commands,
        "keep_pr": kept["number"],
        "close_prs": closed,
        "close_comment": close_comment,
        "approve_body": None,
        "consolidation_map": None,
    }


def is_manual_strategy(strategy: str) -> bool:
    return strategy in MANUAL_STRATEGIES


# ---------------------------------------------------------------------------
# PRIVATE HELPER FUNCTIONS
# ---------------------------------------------------------------------------


def _build_keep_latest_plan(prs: list) -> dict:
    newest_first = sorted(prs, key=created_time, reverse=True)
    latest = newest_first[0]["number"]
    older = [pr["number"] for pr in newest_first[1:]]

    lines = ["# Implementation Plan for Keep-Latest Strategy", "", "## Actions", ""]
    steps = [f'Close PR #{number} with comment "Consolidated into PR #{latest}"' for number in older]
    steps.append(f"Review and approve PR #{latest}")
    steps.append(f"Merge PR #{latest}")
    lines.extend(f"{n}. {step}" for n, step in enumerate(steps, start=1))

    commands = [f'gh pr close {number} -c "Consolidated into PR #{latest}"' for number in older]
    commands.append(f'gh pr review {latest} --approve -b "{APPROVE_BODY}"')
    commands.append(f"gh pr merge {latest} --merge --delete-branch")

    lines.extend(["", "## Implementation", "", "```bash"])
    lines.extend(commands[:-1])
    lines.extend(["```", ""])

    return {
        "strategy": "keep-latest",
        "implementation_plan": "\n".join(lines),
        "visual_map": "",
        "commands": commands,
        "keep_pr": latest,
        "close_prs": older,
        "close_comment": f"Closing in favor of PR #{latest}, which contains all these changes.",
        "approve_body": APPROVE_BODY,
        "consolidation_map": None,
    }


def _build_rolling_up_plan(prs: list) -> dict:
    oldest_first = sorted(prs, key=created_time)
    base = oldest_first[0]["number"]
    numbers = [pr["number"] for pr in oldest_first]
    base_branch = oldest_first[0].get("base_ref") or "main"

    lines = ["# Implementation Plan for Rolling-Up Strategy", "", "## Actions", ""]
    steps = [f"Start with PR #{base} as base"]
    steps.extend(f"Add changes from PR #{number}" for number in numbers[1:])
    steps.append("Create consolidated PR")
    lines.extend(f"{n}. {step}" for n, step in enumerate(steps, start=1))

    commands = [
        "# Create integration branch from base PR",
        f"git fetch origin pull/{base}/head:integration-branch",
        "git checkout integration-branch",
        "",
    ]
    for number in numbers[1:]:
        commands.extend([
            f"# Add changes from PR #{number}",
            f"git fetch origin pull/{number}/head:pr-{number}",
            f"git merge pr-{number} --no-commit",
            "# Resolve conflicts if any",
            f'git commit -m "Integrate changes from PR #{number}"',
            "",
        ])
    pr_list = ", ".join(f"#{number}" for number in numbers)
    commands.extend([
        "# Create consolidated PR",
        "git push origin integration-branch",
        f'gh pr create --base {base_branch} --head integration-branch --title "Consolidated PR" '
        f'--body "This PR consolidates changes from PRs: {pr_list}"',
    ])

    lines.extend(["", "## Implementation", "", "```bash"])
    lines.extend(commands)
    lines.extend(["```", ""])

    return {
        "strategy": "rolling-up",
        "implementation_plan": "\n".join(lines),
        "visual_map": "",
        "commands": commands,
        "keep_pr": None,
        "close_prs": [],
        "close_comment": "",
        "approve_body": None,
        "consolidation_map": None,
    }


def _build_consolidation_map_plan(prs: list) -> dict:
    consolidation_map = create_consolidation_map(prs)

    return {
        "strategy": "consolidation-map",
        "implementation_plan": consolidation_map["implementation_plan"],
        "visual_map": consolidation_map["visual_map"],
        "commands": [
            "# Follow the consolidation map steps as outlined above",
            "# This strategy requires careful manual execution",
        ],
        "keep_pr": consolidation_map["final_pr"],
        "close_prs": [],
        "close_comment": "",
        "approve_body": None,
        "consolidation_map": consolidation_map,
    }
