"""
Stage 2: Analyze Pull Requests — PR Agent

PURPOSE:
    Score every open PR for review triage. For each PR this stage works out:

      - impact areas (the directories it touches)
      - a risk level and review recommendations
      - whether tests are expected but missing
      - merge benefits and risks
      - whether it is eligible for auto-merge (docs-only etc.)
      - a 1-100 priority score
      - a "change intent" summary of what the PR is trying to do

    It also renders the pr-analysis-report Markdown and the numbers behind
    the terminal distribution summary.

CALLED BY:
    cli.py `analyze` — after Stage 1 has fetched the PRs with files and
    commits.

PRIORITY FORMULA:
    score = 50
            - 20 if risk is High, + 10 if risk is Low
            + 15 if older than 14 days, - 5 if younger than 2 days
            + 10 for "fix:", + 5 for "feat:", - 10 for "docs:" titles
    clamped to [1, 100]

RISK RULES:
    High if a file is under a critical directory, Medium if more than 10
    files changed, otherwise Low. A PR touching test-required areas with no
    test file changes is escalated one level (Low -> Medium, else High).
"""

import logging
import os
import re
from datetime import datetime, timezone
from typing import Optional

from _pr_agent import config as agent_config
from _pr_agent.file_analysis import matches_automerge_patterns
from _pr_agent.github_api import days_old
from _pr_agent.report_writer import format_date_cst

logger = logging.getLogger(__name__)

CONVENTIONAL_TITLE = re.compile(r"^(feat|fix|docs|style|refactor|perf|test|build|ci|chore)(\(.+\))?:")
KEYWORD_TRIGGERS = ["add", "fix", "implement", "update", "remove", "refactor", "improve"]
KEYWORD_STOP_WORDS = ["and", "or", ".", ",", ";"]
FEATURE_WORDS = ["add", "implement", "create", "new", "feature"]
FIX_WORDS = ["fix", "bug", "issue", "resolve", "patch"]

TITLE_INTENTS = [
    (["fix", "bug", "issue"], "Bug fix"),
    (["feature", "add", "new"], "New feature"),
    (["refactor", "cleanup"], "Code refactoring"),
    (["docs", "documentation"], "Documentation update"),
    (["test"], "Test improvement"),
    (["perf", "performance"], "Performance improvement"),
]

DISTRIBUTION_TYPES = [
    ("fix", "Bug Fixes"),
    ("feat", "Features"),
    ("docs", "Documentation"),
    ("refactor", "Refactoring"),
    ("perf", "Performance"),
    ("test", "Tests"),
]


def analyze_pull_requests(
    prs: list,
    project_config: Optional[dict] = None,
    now: Optional[datetime] = None,
) -> dict:
    """
    Analyze every PR and sort the results by priority.

    Returns:
        dict with keys:
            - 'success' (bool)
            - 'analyses' (list[dict]): highest priority first
            - 'errors' (list[str])
    """
    project_config = project_config or agent_config.load_project_config()
    now = now or datetime.now(timezone.utc)

    analyses = []
    errors = []
    for pr in prs:
        try:
            analyses.append(analyze_pull_request(pr, project_config, now))
        except (KeyError, ValueError) as e:
            errors.append(f"Could not analyze PR #{pr.get('number')}: {e}")

    analyses.sort(key=lambda a: a["priority_score"], reverse=True)
    return {"success": bool(analyses) or not prs, "analyses": analyses, "errors": errors}


def analyze_pull_request(pr: dict, project_config: dict, now: Optional[datetime] = None) -> dict:
    """
    Analyze one PR.

    Args:
        pr: PR dict with files (and commits for a richer change intent)
        project_config: dict from config.load_project_config()
        now: Clock override for the age-based priority adjustments

    Returns:
        dict with keys 'pr', 'risk_level', 'impact_areas',
        'review_recommendations', 'merge_impact' ({'benefits', 'risks'}),
        'automerge_eligible', 'priority_score', 'change_intent'.
    """
    now = now or datetime.now(timezone.utc)
    files = pr.get("files") or []
    title = pr["title"]
    recommendations = []

    # -----------------------------------------------------------------------
    # STEP 1: File changes
    # -----------------------------------------------------------------------

    impact_areas = []
    has_critical_changes = False
    test_files_changed = False

    for file in files:
        path = file["path"]
        area = os.path.dirname(path) or "."
        if area not in impact_areas:
            impact_areas.append(area)

        if any(path.startswith(d) for d in project_config["critical_directories"]):
            has_critical_changes = True
            recommendations.append(f"Critical file changed: {path} - Requires senior developer review")

        if "test" in path or "spec" in path:
            test_files_changed = True

        if file.get("additions", 0) > 100:
            recommendations.append(
                f"Large addition in {path} ({file['additions']} lines) - Review thoroughly"
            )

    # -----------------------------------------------------------------------
    # STEP 2: Risk level and test coverage
    # -----------------------------------------------------------------------

    changed_files = pr.get("changed_files") or len(files)
    if has_critical_changes:
        risk_level = "High"
    elif changed_files > 10:
        risk_level = "Medium"
    else:
        risk_level = "Low"

    needs_tests = any(
        pattern in area for pattern in project_config["test_required"] for area in impact_areas
    )
    missing_tests = needs_tests and not test_files_changed
    if missing_tests:
        recommendations.append("Changes in areas requiring tests, but no test files updated")
        risk_level = "Medium" if risk_level == "Low" else "High"

    # -----------------------------------------------------------------------
    # STEP 3: Title and description hygiene
    # -----------------------------------------------------------------------

    if not CONVENTIONAL_TITLE.match(title):
        recommendations.append("PR title does not follow conventional commit format")

    if len(pr.get("body") or "") < 50:
        recommendations.append("PR description is missing or too brief - request more details")

    # -----------------------------------------------------------------------
    # STEP 4: Merge impact and auto-merge eligibility
    # -----------------------------------------------------------------------

    benefits = []
    if title.startswith("fix:"):
        benefits.append("Fixes a bug in the codebase")
    elif title.startswith("feat:"):
        benefits.append("Adds new functionality to the application")
    elif title.startswith("perf:"):
        benefits.append("Improves performance")

    risks = []
    if has_critical_changes:
        risks.append("Changes to critical system components may affect stability")
    if changed_files > 20:
        risks.append("Large number of files changed increases risk of unintended side effects")
    if missing_tests:
        risks.append("Lack of tests increases risk of undetected issues")

    automerge_eligible = matches_automerge_patterns(files, project_config["automerge_patterns"])
    if automerge_eligible:
        recommendations.append("All changed files match auto-merge patterns - eligible for auto-merge")

    return {
        "pr": pr,
        "risk_level": risk_level,
        "impact_areas": impact_areas,
        "review_recommendations": recommendations,
        "merge_impact": {"benefits": benefits, "risks": risks},
        "automerge_eligible": automerge_eligible,
        "priority_score": calculate_priority_score(pr, risk_level, now),
        "change_intent": analyze_change_intent(pr),
    }


def calculate_priority_score(pr: dict, risk_level: str, now: Optional[datetime] = None) -> int:
    score = 50

    if risk_level == "High":
        score -= 20
    elif risk_level == "Low":
        score += 10

    age = days_old(pr["created_at"], now)
    if age > 14:
        score += 15
    if age < 2:
        score -= 5

    title = pr["title"]
    if title.startswith("fix:"):
        score += 10
    if title.startswith("feat:"):
        score += 5
    if title.startswith("docs:"):
        score -= 10

    return min(max(score, 1), 100)


def analyze_change_intent(pr: dict) -> dict:
    """
    Summarize what a PR is trying to do from its title, body, commits, and
    files.

    Returns:
        dict with keys 'intent', 'change_types', 'components',
        'suggested_features', 'suggested_fixes', 'area_of_impact',
        'complexity', 'implementation'.
    """
    files = pr.get("files") or []

    components = []
    change_types = []

    def _add(items, value):
        if value not in items:
            items.append(value)

    for file in files:
        parts = file["path"].split("/")
        if len(parts) > 1:
            _add(components, parts[0])
            if len(parts) > 2:
                _add(components, f"{parts[0]}/{parts[1]}")

        status = file.get("status")
        patch = file.get("patch") or ""
        if status == "added":
            _add(change_types, "New Feature")
        elif status == "modified":
            _add(change_types, "Bug Fix" if "fix" in patch or "bug" in patch else "Enhancement")
        elif status == "removed":
            _add(change_types, "Removal")

    title_lower = pr["title"].lower()
    intent = "Code change"
    for words, label in TITLE_INTENTS:
        if any(word in title_lower for word in words):
            intent = label
            break

    keywords = []
    for text in [pr.get("body") or ""] + [c.get("message") or "" for c in pr.get("commits") or []]:
        for keyword in extract_keywords(text):
            _add(keywords, keyword)

    suggested_features = []
    suggested_fixes = []
    for keyword in keywords:
        if any(word in keyword for word in FEATURE_WORDS):
            suggested_features.append(keyword)
        elif any(word in keyword for word in FIX_WORDS):
            suggested_fixes.append(keyword)

    total_lines = (pr.get("additions") or 0) + (pr.get("deletions") or 0)
    if total_lines > 500:
        complexity = "High"
    elif total_lines > 100:
        complexity = "Medium"
    else:
        complexity = "Low"

    implementation = ""
    if files:
        extensions = []
        for file in files:
            _add(extensions, file["path"].rsplit(".", 1)[-1])
        additions = sum(f.get("additions", 0) for f in files)
        deletions = sum(f.get("deletions", 0) for f in files)
        implementation = (
            f"Changes involve {', '.join(extensions)} files "
            f"with {additions} additions and {deletions} deletions"
        )

    return {
        "intent": intent,
        "change_types": change_types,
        "components": components,
        "suggested_features": suggested_features,
        "suggested_fixes": suggested_fixes,
        "area_of_impact": ", ".join(components) if components else "Unknown",
        "complexity": complexity,
        "implementation": implementation,
    }


def extract_keywords(text: str) -> list:
    """
    Change phrases such as "add dark mode toggle".

    A phrase starts at a trigger word and runs for up to four more words,
    stopping at a conjunction or punctuation token.
    """
    if not text:
        return []

    words = text.lower().split()
    phrases = []
    for i, word in enumerate(words[:-1]):
        if word not in KEYWORD_TRIGGERS:
            continue
        phrase = [word]
        j = i + 1
        while j < len(words) and j < i + 5 and words[j] not in KEYWORD_STOP_WORDS:
            phrase.append(words[j])
            j += 1
        phrases.append(" ".join(phrase))

    return phrases


def conventional_type(title: str) -> Optional[str]:
    """The conventional-commit type of a title ("fix", "feat", ...), if any."""
    match = CONVENTIONAL_TITLE.match(title or "")
    return match.group(1) if match else None


def summarize_distribution(prs: list, now: Optional[datetime] = None) -> dict:
    """
    Counts behind the terminal summary.

    Returns:
        dict with keys 'types' (label -> count, including "Other"),
        'ages' ({'recent', 'active', 'aging', 'stale'}) and 'total'.
    """
    now = now or datetime.now(timezone.utc)

    types = {label: 0 for _, label in DISTRIBUTION_TYPES}
    types["Other"] = 0
    labels = dict(DISTRIBUTION_TYPES)
    for pr in prs:
        types[labels.get(conventional_type(pr["title"]), "Other")] += 1

    ages = {"recent": 0, "active": 0, "aging": 0, "stale": 0}
    for pr in prs:
        age = days_old(pr["created_at"], now)
        if age < 3:
            ages["recent"] += 1
        elif age < 8:
            ages["active"] += 1
        elif age < 15:
            ages["aging"] += 1
        else:
            ages["stale"] += 1

    return {"types": types, "ages": ages, "total": len(prs)}


# ---------------------------------------------------------------------------
# REPORT FORMATTING
# ---------------------------------------------------------------------------


def build_analysis_report(analyses: list, now: Optional[datetime] = None) -> str:
    """Render the pr-analysis-report Markdown. `analyses` in any order."""
    now = now or datetime.now(timezone.utc)
    ordered = sorted(analyses, key=lambda a: a["priority_score"], reverse=True)

    lines = [
        "# PR Analysis Report",
        "",
        f"Generated: {format_date_cst(now)} (CST)",
        "",
        "## PR Summary",
        "",
    ]

    for analysis in ordered:
        pr = analysis["pr"]
        intent = analysis["change_intent"]
        lines.extend([
            f"### [#{pr['number']}] {pr['title']}",
            "",
            f"**Author:** {pr['author']}",
            f"**Created:** {pr['created_at'][:10]}",
            f"**Status:** {pr['state']}",
            f"**Risk Level:** {analysis['risk_level']}",
            f"**Priority Score:** {analysis['priority_score']}/100",
            f"**Auto-merge Eligible:** {'Yes' if analysis['automerge_eligible'] else 'No'}",
            "",
            "#### Change Intent Analysis",
            "",
            f"**Intent:** {intent['intent']}",
            f"**Change Types:** {', '.join(intent['change_types']) or 'None detected'}",
            f"**Components Affected:** {', '.join(intent['components']) or 'None detected'}",
            f"**Area of Impact:** {intent['area_of_impact']}",
            f"**Complexity:** {intent['complexity']}",
        ])

        if intent["suggested_features"]:
            lines.append("**Suggested Features:**")
            lines.extend(f"- {feature}" for feature in intent["suggested_features"])
            lines.append("")
        if intent["suggested_fixes"]:
            lines.append("**Suggested Fixes:**")
            lines.extend(f"- {fix}" for fix in intent["suggested_fixes"])
            lines.append("")

        lines.append(f"**Implementation Details:** {intent['implementation'] or 'No file changes'}")
        lines.append("")

        if analysis["review_recommendations"]:
            lines.append("#### Review Recommendations")
            lines.append("")
            lines.extend(f"- {rec}" for rec in analysis["review_recommendations"])
            lines.append("")

        impact = analysis["merge_impact"]
        if impact["benefits"] or impact["risks"]:
            lines.append("#### Merge Impact")
            lines.append("")
            lines.extend(f"- Benefit: {benefit}" for benefit in impact["benefits"])
            lines.extend(f"- Risk: {risk}" for risk in impact["risks"])
            lines.append("")

        lines.append("---")
        lines.append("")

    lines.append("## Recommendations")
    lines.append("")

    if ordered:
        lines.append("### Priority PRs")
        lines.append("")
        for rank, analysis in enumerate(ordered[:3], start=1):
            pr = analysis["pr"]
            top_recommendation = (
                analysis["review_recommendations"][0]
                if analysis["review_recommendations"]
                else "No specific review concerns"
            )
            lines.extend([
                f"{rank}. **[#{pr['number']}] {pr['title']}** - Priority: {analysis['priority_score']}/100",
                f"   - {analysis['risk_level']} Risk, {int(days_old(pr['created_at'], now))} days old",
                f"   - {top_recommendation}",
                "",
            ])

    lines.extend([
        "### General Advice",
        "",
        "1. **Prioritize older PRs**: Focus on PRs that have been open the longest to reduce stagnation.",
        "",
        "2. **Address high-risk areas first**: PRs affecting critical directories should be reviewed promptly.",
        "",
        "3. **Clean up stale PRs**: Close or update PRs that have been inactive for more than 2 weeks.",
        "",
        "4. **Improve PR descriptions**: Ensure all PRs have adequate descriptions of changes and test procedures.",
        "",
    ])

    return "\n".join(lines)
