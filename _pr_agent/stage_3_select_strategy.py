"""
Stage 3: Select Consolidation Strategy — PR Agent

PURPOSE:
    Choose how a group of related PRs should be consolidated:

      keep-latest        merge the newest PR, close the others
      rolling-up         merge every PR in order into one integration branch
      consolidation-map  group PRs into integration points first (see
                         consolidation_map.py)

    The choice is made from eight factors measured over the PR set, scored
    against a fixed table. The same table also produces the pros, cons, and
    reasoning shown in the consolidation report.

CALLED BY:
    cli.py `consolidate` — after Stage 1 (fetch), before Stage 4 (plan).

SCORING TABLE (keep-latest / rolling-up / consolidation-map):
    PR count         <= 3: 20/15/5    <= MAX_PRS_FOR_KEEP_LATEST: 15/20/15
                     else: 5/10/25
    Complexity       Low: 25/10/5     Medium: 15/20/20    High: 5/25/20
    Critical paths   yes: 0/25/20     no: 15/10/10
    Developers       <= 1: 20/15/10   <= 3: 10/20/15      else: 5/15/25
    Conflict prob.   < 0.2: 20/10/10  < threshold: 10/15/20
                     else: 0/25/20
    Time span days   < 3: 15/10/10    < 14: 10/15/15      else: 5/10/20

    Ties go to keep-latest, then rolling-up. A DEFAULT_STRATEGY other than
    "auto" overrides the choice but keeps its score as the confidence.
"""

import logging
import re
from typing import Optional

from _pr_agent import config
from _pr_agent.github_api import parse_github_timestamp

logger = logging.getLogger(__name__)

STRATEGIES = ["keep-latest", "rolling-up", "consolidation-map"]

COMPLEX_FILE_PATTERNS = [
    re.compile(r"\.tsx?$"),
    re.compile(r"\.jsx?$"),
    re.compile(r"\.service\."),
    re.compile(r"middleware"),
    re.compile(r"api/"),
]


def analyze_prs_for_strategy_factors(prs: list, critical_directories: Optional[list] = None) -> dict:
    """
    Measure the factors the strategy table scores.

    Args:
        prs: PR dicts with files
        critical_directories: Path prefixes treated as critical
                              (defaults to CRITICAL_DIRECTORIES)

    Returns:
        dict with keys 'pr_count', 'files_changed', 'critical_path_changes',
        'test_requirements', 'change_complexity', 'developer_count',
        'time_span' (rounded days between first and last PR) and
        'conflict_probability' (share of files touched by more than one PR).
    """
    critical_directories = (
        critical_directories if critical_directories is not None else config.CRITICAL_DIRECTORIES
    )

    # ----- Unique files, authors, and per-file modification counts
    modification_counts = {}
    developers = set()
    for pr in prs:
        for file in pr.get("files") or []:
            modification_counts[file["path"]] = modification_counts.get(file["path"], 0) + 1
        if pr.get("author") and pr["author"] != "unknown":
            developers.add(pr["author"])

    all_files = list(modification_counts)
    has_critical_changes = any(
        path.startswith(critical) for path in all_files for critical in critical_directories
    )

    # ----- Time span
    time_span = 0
    created = [parse_github_timestamp(pr["created_at"]) for pr in prs if pr.get("created_at")]
    if created:
        span_days = (max(created) - min(created)).total_seconds() / 86400
        time_span = int(span_days + 0.5)

    # ----- Conflict probability
    conflict_probability = 0.0
    if len(prs) > 1 and modification_counts:
        shared = sum(1 for count in modification_counts.values() if count > 1)
        conflict_probability = shared / len(modification_counts)

    # ----- Complexity
    complex_count = sum(
        1 for path in all_files if any(p.search(path) for p in COMPLEX_FILE_PATTERNS)
    )
    complexity_ratio = complex_count / len(all_files) if all_files else 0

    if complexity_ratio > 0.7 or len(all_files) > 20:
        change_complexity = "High"
    elif complexity_ratio > 0.3 or len(all_files) > 10:
        change_complexity = "Medium"
    else:
        change_complexity = "Low"

    # ----- Test requirements
    test_requirements = []
    if has_critical_changes:
        test_requirements.append("critical-path")
    if len(all_files) > 15:
        test_requirements.append("integration")
    if any("api/" in path for path in all_files):
        test_requirements.append("api")
    if any("components/" in path for path in all_files):
        test_requirements.append("ui")

    return {
        "pr_count": len(prs),
        "files_changed": len(all_files),
        "critical_path_changes": has_critical_changes,
        "test_requirements": test_requirements,
        "change_complexity": change_complexity,
        "developer_count": len(developers),
        "time_span": time_span,
        "conflict_probability": conflict_probability,
    }


def determine_strategy(
    factors: dict,
    default_strategy: Optional[str] = None,
    max_prs_for_keep_latest: Optional[int] = None,
    conflict_threshold: Optional[float] = None,
) -> dict:
    """
    Score the three strategies and pick one.

    Returns:
        dict with keys:
            - 'recommended_strategy' (str)
            - 'confidence' (int): the recommended strategy's score, capped at 100
            - 'reasoning' (list[str])
            - 'strategy_scores' (list[dict]): strategy, score, pros, cons
              for all three strategies
            - 'alternative_strategies' (list[dict]): strategy_scores without
              the recommended one
    """
    default_strategy = default_strategy or config.DEFAULT_STRATEGY
    max_prs = max_prs_for_keep_latest or config.MAX_PRS_FOR_KEEP_LATEST
    threshold = conflict_threshold if conflict_threshold is not None else config.CONFLICT_PROBABILITY_THRESHOLD

    scores = {strategy: 0 for strategy in STRATEGIES}
    pros = {strategy: [] for strategy in STRATEGIES}
    cons = {strategy: [] for strategy in STRATEGIES}
    reasoning = []

    def award(keep_latest, rolling_up, consolidation_map, reason):
        scores["keep-latest"] += keep_latest
        scores["rolling-up"] += rolling_up
        scores["consolidation-map"] += consolidation_map
        reasoning.append(reason)

    # -----------------------------------------------------------------------
    # FACTOR 1: PR count
    # -----------------------------------------------------------------------

    pr_count = factors["pr_count"]
    if pr_count <= 3:
        award(20, 15, 5, f"Small number of PRs ({pr_count}) favors simpler approaches")
        pros["keep-latest"].append("Efficient for small PR sets")
        cons["consolidation-map"].append("May be overhead for just a few PRs")
    elif pr_count <= max_prs:
        award(15, 20, 15, f"Moderate number of PRs ({pr_count}) works with any strategy")
    else:
        award(5, 10, 25, f"Large number of PRs ({pr_count}) benefits from structured approach")
        cons["keep-latest"].append("Risk of missing changes increases with PR count")
        pros["consolidation-map"].append("Scales well to many PRs")

    # -----------------------------------------------------------------------
    # FACTOR 2: Change complexity
    # -----------------------------------------------------------------------

    if factors["change_complexity"] == "Low":
        award(25, 10, 5, "Low complexity changes are suitable for simple consolidation")
        pros["keep-latest"].append("Efficient for simple changes")
        cons["rolling-up"].append("Excessive process for simple changes")
    elif factors["change_complexity"] == "Medium":
        award(15, 20, 20, "Medium complexity changes benefit from some structure")
    else:
        award(5, 25, 20, "High complexity changes require careful integration")
        cons["keep-latest"].append("High risk for complex changes")
        pros["rolling-up"].append("Methodical approach suits complex changes")

    # -----------------------------------------------------------------------
    # FACTOR 3: Critical path changes
    # -----------------------------------------------------------------------

    if factors["critical_path_changes"]:
        award(0, 25, 20, "Critical path changes require careful integration")
        cons["keep-latest"].append("Too risky for critical path changes")
        pros["rolling-up"].append("Careful verification of each integration step")
    else:
        award(15, 10, 10, "Non-critical changes allow for simpler approaches")

    # -----------------------------------------------------------------------
    # FACTOR 4: Developer count
    # -----------------------------------------------------------------------

    developer_count = factors["developer_count"]
    if developer_count <= 1:
        award(20, 15, 10, "Single developer changes are more predictable")
        pros["keep-latest"].append("Efficient for single-developer changes")
    elif developer_count <= 3:
        award(10, 20, 15, "Small team changes benefit from some coordination")
    else:
        award(5, 15, 25, "Multi-developer changes require structured coordination")
        pros["consolidation-map"].append("Better visibility across multiple developers")
        cons["keep-latest"].append("May lose individual developer context")

    # -----------------------------------------------------------------------
    # FACTOR 5: Conflict probability
    # -----------------------------------------------------------------------

    conflict_probability = factors["conflict_probability"]
    if conflict_probability < 0.2:
        award(20, 10, 10, "Low conflict probability allows for simpler approaches")
        pros["keep-latest"].append("Efficient when conflicts unlikely")
    elif conflict_probability < threshold:
        award(10, 15, 20, "Moderate conflict risk benefits from some structure")
    else:
        award(0, 25, 20, "High conflict probability requires careful integration")
        cons["keep-latest"].append("High risk with likely conflicts")
        pros["rolling-up"].append("Best for handling complex conflicts step by step")

    # -----------------------------------------------------------------------
    # FACTOR 6: Time span
    # -----------------------------------------------------------------------

    time_span = factors["time_span"]
    if time_span < 3:
        award(15, 10, 10, "Short time span indicates closely related changes")
    elif time_span < 14:
        award(10, 15, 15, "Moderate time span suggests evolving changes")
    else:
        award(5, 10, 20, "Long time span indicates potentially divergent changes")
        pros["consolidation-map"].append("Better for tracking changes over time")
        cons["keep-latest"].append("May miss important historical context")

    # -----------------------------------------------------------------------
    # PICK
    # -----------------------------------------------------------------------

    if default_strategy != "auto" and default_strategy in STRATEGIES:
        recommended = default_strategy
        reasoning.insert(0, f"Using configured default strategy: {recommended}")
    else:
        if default_strategy != "auto":
            logger.warning("Unknown DEFAULT_STRATEGY %r, selecting automatically", default_strategy)
        recommended = max(STRATEGIES, key=lambda s: scores[s])

    strategy_scores = [
        {"strategy": s, "score": scores[s], "pros": pros[s], "cons": cons[s]}
        for s in STRATEGIES
    ]

    logger.info("Recommended strategy: %s (%d)", recommended, scores[recommended])

    return {
        "recommended_strategy": recommended,
        "confidence": min(scores[recommended], 100),
        "reasoning": reasoning,
        "strategy_scores": strategy_scores,
        "alternative_strategies": [s for s in strategy_scores if s["strategy"] != recommended],
    }


def generate_strategy_visualization(recommendation: dict) -> str:
    """Markdown section: recommendation, reasoning, and a score table."""
    recommended = recommendation["recommended_strategy"]
    rows = sorted(recommendation["strategy_scores"], key=lambda s: s["score"], reverse=True)

    lines = [
        "## Strategy Recommendation",
        "",
        f"**Recommended Strategy:** {recommended}",
        "",
        f"**Confidence:** {recommendation['confidence']}%",
        "",
        "### Reasoning",
        "",
    ]
    lines.extend(f"- {reason}" for reason in recommendation["reasoning"])
    lines.extend([
        "",
        "### Strategy Comparison",
        "",
        "| Strategy | Score | Pros | Cons |",
        "|----------|-------|------|------|",
    ])

    for row in rows:
        row_pros = "<br>".join(f"- {p}" for p in row["pros"]) or "-"
        row_cons = "<br>".join(f"- {c}" for c in row["cons"]) or "-"
        name = f"**{row['strategy']} (Recommended)**" if row["strategy"] == recommended else row["strategy"]
        lines.append(f"| {name} | {row['score']}/100 | {row_pros} | {row_cons} |")

    lines.append("")
    return "\n".join(lines)
