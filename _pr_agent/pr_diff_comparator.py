"""
PR Diff Comparator — PR Agent

PURPOSE:
    Compare PRs that look like versions of the same change, pair by pair,
    and recommend which one to keep. Used for groups of near-duplicate PRs
    (same normalized title) where a full strategy selection is overkill.

CALLED BY:
    cli.py `compare`

HOW PAIRS ARE COMPARED:
    For each pair (earlier, later) in input order the analysis is written
    from the later PR's point of view:
      - unique files: files only the later PR touches
      - common files: files both touch
      - conflicts: common files whose hunks overlap on the new side,
        using the `@@ -a,b +c,d @@` headers of both patches
      - diff patterns: className / import / export / JSX edits in the
        later PR's version of each common file

RISK:
    High   if any conflict
    Medium if > 10 unique files, > 20 common files, or a unique file is
           high risk (file_analysis.HIGH_RISK_PATTERNS)
    Low    otherwise
"""

import logging
import re
from typing import Optional

from _pr_agent.file_analysis import is_high_risk_file
from _pr_agent.github_api import created_time

logger = logging.getLogger(__name__)

HUNK_HEADER = re.compile(r"^@@ -\d+(?:,\d+)? \+(\d+)(?:,(\d+))? @@", re.MULTILINE)
JSX_ELEMENT = re.compile(r"<[a-zA-Z]+")
MAX_PATTERN_EXAMPLES = 3


def compare_prs(pr1: dict, pr2: dict) -> dict:
    """
    Compare two PRs.

    Returns:
        dict with keys 'pr_number' (pr2's number), 'unique_files',
        'changed_files', 'common_files', 'diff_patterns' (path -> list of
        pattern names), 'risk_level', 'conflicts' (list of
        "path (lines: ...)").
    """
    pr1_files = {f["path"]: f for f in pr1.get("files") or []}
    pr2_files = {f["path"]: f for f in pr2.get("files") or []}

    unique_files = [path for path in pr2_files if path not in pr1_files]
    common_files = [path for path in pr2_files if path in pr1_files]

    conflicts = []
    diff_patterns = {}
    for path in common_files:
        patch1 = pr1_files[path].get("patch")
        patch2 = pr2_files[path].get("patch")
        if not (patch1 and patch2):
            continue

        overlapping = sorted(
            set(extract_changed_line_numbers(patch1)) & set(extract_changed_line_numbers(patch2))
        )
        if overlapping:
            conflicts.append(f"{path} (lines: {_format_line_ranges(overlapping)})")

        patterns = extract_diff_patterns(patch2)
        if patterns:
            diff_patterns[path] = patterns

    if conflicts:
        risk_level = "High"
    elif len(unique_files) > 10 or len(common_files) > 20:
        risk_level = "Medium"
    elif any(is_high_risk_file(path) for path in unique_files):
        risk_level = "Medium"
    else:
        risk_level = "Low"

    return {
        "pr_number": pr2["number"],
        "unique_files": unique_files,
        "changed_files": list(pr2_files),
        "common_files": common_files,
        "diff_patterns": diff_patterns,
        "risk_level": risk_level,
        "conflicts": conflicts,
    }


def compare_all_pairs(prs: list) -> list:
    """compare_prs for every (earlier, later) pair in input order."""
    analyses = []
    for i, pr1 in enumerate(prs):
        for pr2 in prs[i + 1:]:
            logger.info("Comparing PR #%s with PR #%s", pr1["number"], pr2["number"])
            analyses.append(compare_prs(pr1, pr2))
    return analyses


def extract_changed_line_numbers(patch: str) -> list:
    """New-side line numbers covered by each hunk of a unified diff."""
    line_numbers = []
    for match in HUNK_HEADER.finditer(patch or ""):
        start = int(match.group(1))
        count = int(match.group(2)) if match.group(2) is not None else 1
        line_numbers.extend(range(start, start + count))
    return line_numbers


def extract_diff_patterns(patch: str) -> list:
    patterns = []

    for line in (patch or "").split("\n"):
        if not line.startswith(("+", "-")) or line.startswith(("+++", "---")):
            continue
        clean = line[1:].strip()

        if "className=" in clean:
            pattern = "className changes"
        elif "import " in clean:
            pattern = "import changes"
        elif "export " in clean:
            pattern = "export changes"
        elif JSX_ELEMENT.search(clean):
            pattern = "JSX element changes"
        else:
            continue

        if pattern not in patterns:
            patterns.append(pattern)

    return patterns


def generate_recommendation(prs: list, analyses: list) -> dict:
    """
    Decide which PR to keep.

    Returns:
        dict with keys 'recommended_pr', 'other_prs', 'strategy'
        ('keep-latest' or 'manual-review'), 'justification', 'risks',
        'steps'.
    """
    newest_first = sorted(prs, key=created_time, reverse=True)
    latest = newest_first[0]
    others = [pr["number"] for pr in newest_first[1:]]

    recommendation = {
        "recommended_pr": latest["number"],
        "other_prs": others,
        "strategy": "keep-latest",
        "justification": "Latest PR is the most recent update",
        "risks": [],
        "steps": _keep_steps(latest["number"], others),
    }

    if any(a["risk_level"] == "High" for a in analyses):
        recommendation["strategy"] = "manual-review"
        recommendation["justification"] = "High-risk changes detected"
        recommendation["risks"].append("Potential conflicts in changed files")
        recommendation["steps"] = ["Manual review required due to high-risk changes"]

    if any(a["conflicts"] for a in analyses):
        recommendation["strategy"] = "manual-review"
        recommendation["justification"] = "Conflicts detected between PRs"
        recommendation["risks"].append("File conflicts need manual resolution")
        recommendation["steps"] = ["Manual conflict resolution required"]
        return recommendation

    if any(not a["unique_files"] and a["common_files"] for a in analyses):
        most_comprehensive = max(prs, key=lambda pr: len(pr.get("files") or []))
        others = [pr["number"] for pr in prs if pr["number"] != most_comprehensive["number"]]
        recommendation.update({
            "recommended_pr": most_comprehensive["number"],
            "other_prs": others,
            "strategy": "keep-latest",
            "justification": "One PR contains all changes from others",
            "steps": _keep_steps(most_comprehensive["number"], others),
        })

    return recommendation


def recommendation_to_plan(recommendation: dict) -> dict:
    """Executable keep-latest plan for a comparison recommendation."""
    keep = recommendation["recommended_pr"]
    return {
        "strategy": recommendation["strategy"],
        "implementation_plan": "",
        "visual_map": "",
        "commands": [],
        "keep_pr": keep,
        "close_prs": list(recommendation["other_prs"]),
        "close_comment": f"Closed in favor of PR #{keep} as part of PR consolidation.",
        "approve_body": "Approved after PR consolidation analysis",
        "consolidation_map": None,
    }


def build_diff_report(
    prs: list,
    analyses: list,
    recommendation: dict,
    generated_at: Optional[str] = None,
) -> str:
    """Render the comparison as Markdown."""
    risk_by_pr = {a["pr_number"]: a["risk_level"] for a in analyses}

    lines = ["# PR Comparison Analysis"]
    if generated_at:
        lines.append(f"Generated: {generated_at} (CST)")
    lines.extend([
        "",
        "## PR Summary",
        "",
        "| PR | Title | Branch | Files | Created | Risk |",
        "|---|---|---|---|---|---|",
    ])
    for pr in prs:
        lines.append(
            f"| #{pr['number']} | {pr['title']} | {pr['head_ref']} | {len(pr.get('files') or [])} "
            f"| {pr['created_at'][:10]} | {risk_by_pr.get(pr['number'], 'N/A')} |"
        )
    lines.append("")

    lines.append("## Diff Analysis")
    lines.append("")
    for analysis in analyses:
        lines.append(f"### PR #{analysis['pr_number']}")
        lines.append("")

        if analysis["unique_files"]:
            lines.append(f"#### Unique Files ({len(analysis['unique_files'])})")
            lines.extend(f"- `{path}`" for path in analysis["unique_files"])
            lines.append("")

        if analysis["conflicts"]:
            lines.append(f"#### Conflicts ({len(analysis['conflicts'])})")
            lines.extend(f"- {conflict}" for conflict in analysis["conflicts"])
            lines.append("")

        patterns = list(analysis["diff_patterns"].items())
        if patterns:
            lines.append("#### Diff Patterns")
            for path, names in patterns[:MAX_PATTERN_EXAMPLES]:
                lines.append(f"- `{path}`: {', '.join(names)}")
            if len(patterns) > MAX_PATTERN_EXAMPLES:
                lines.append(f"- ...({len(patterns) - MAX_PATTERN_EXAMPLES} more files)")
            lines.append("")

    lines.extend([
        "## Recommendation",
        "",
        f"**Strategy:** {recommendation['strategy']}",
        "",
        f"**Justification:** {recommendation['justification']}",
        "",
    ])

    if recommendation["risks"]:
        lines.append("### Risks")
        lines.append("")
        lines.extend(f"- {risk}" for risk in recommendation["risks"])
        lines.append("")

    lines.append("### Steps")
    lines.append("")
    lines.extend(f"{n}. {step}" for n, step in enumerate(recommendation["steps"], start=1))
    lines.append("")

    if recommendation["strategy"] == "keep-latest":
        keep = recommendation["recommended_pr"]
        lines.append("### Implementation")
        lines.append("")
        lines.append("```bash")
        lines.extend(
            f'gh pr close {number} -c "Consolidated into PR #{keep}"'
            for number in recommendation["other_prs"]
        )
        lines.append(f'gh pr review {keep} --approve -b "Approved after consolidation analysis"')
        lines.append("```")
        lines.append("")

    return "\n".join(lines)


# ---------------------------------------------------------------------------
# PRIVATE HELPER FUNCTIONS
# ---------------------------------------------------------------------------


def _keep_steps(keep: int, others: list) -> list:
    steps = []
    if others:
        steps.append("Close PRs " + ", ".join(f"#{n}" for n in others))
    steps.append(f"Review and merge PR #{keep}")
    return steps


def _format_line_ranges(numbers: list) -> str:
    """[3, 4, 5, 9] -> '3-5, 9'. Expects sorted, unique numbers."""
    ranges = []
    start = previous = numbers[0]
    for number in numbers[1:]:
        if number == previous + 1:
            previous = number
            continue
        ranges.append(f"{start}-{previous}" if start != previous else str(start))
        start = previous = number
    ranges.append(f"{start}-{previous}" if start != previous else str(start))
    return ", ".join(ranges)
