"""
PR Auto Reviewer — PR Agent

PURPOSE:
    Decide whether a single PR is ready for human review, and who should
    review it. Runs the three analyzers (main branch risk, race conditions,
    dependency conflicts) on one fetched copy of the PR, then:

      1. Determines review readiness
      2. Picks reviewers based on what the PR touches
      3. Recommends Approve / Request Changes / Needs Discussion
      4. Lists concrete action items for the author
      5. Writes pr-auto-review-{number}-{timestamp}.md
      6. Requests reviews on GitHub when the PR is ready

CALLED BY:
    cli.py `review` command.

DEPENDS ON:
    - github_api.GitHubAPI for the PR fetch and reviewer requests
    - main_branch_analyzer, race_condition_detector, dependency_analyzer
    - report_writer.save_report

READINESS RULES:
    Not ready if any analyzer rates the PR High, if there are dependency
    version conflicts or missing peer dependencies, or if a merge conflict
    with the base branch was detected.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from _pr_agent import config
from _pr_agent.dependency_analyzer import check_dependency_conflicts
from _pr_agent.github_api import GitHubAPI, get_pr_details, request_reviews
from _pr_agent.main_branch_analyzer import analyze_main_branch_risks
from _pr_agent.race_condition_detector import detect_race_conditions
from _pr_agent.report_writer import format_date_cst, save_report

logger = logging.getLogger(__name__)

RISK_EMOJI = {"Low": "🟢", "Medium": "🟠", "High": "🔴"}
RECOMMENDATION_EMOJI = {"Approve": "✅", "Request Changes": "❌", "Needs Discussion": "⚠️"}


def auto_review_pull_request(
    pr_number: int,
    gh: GitHubAPI,
    request_reviews_when_ready: bool = True,
    check_merge: bool = True,
    output_dir: Optional[str] = None,
    now: Optional[datetime] = None,
) -> dict:
    """
    Run the full auto review for one PR.

    Args:
        pr_number: PR to review
        gh: Authenticated GitHubAPI for the repository
        request_reviews_when_ready: Request the recommended reviewers on
                                    GitHub when the PR is ready
        check_merge: Run the local git merge simulation
        output_dir: Override for OUTPUT_DIR
        now: Clock override for report timestamps

    Returns:
        dict with keys:
            - 'success' (bool)
            - 'review' (dict or None): pr_number, title, ready_for_review,
              main_branch_analysis, race_condition_analysis,
              dependency_analysis, recommended_reviewers,
              merge_recommendation, action_items
            - 'report_path' (str)
            - 'reviews_requested' (bool)
            - 'errors' (list[str])
    """
    now = now or datetime.now(timezone.utc)

    # -----------------------------------------------------------------------
    # STEP 1: Fetch the PR once and run every analyzer on it
    # -----------------------------------------------------------------------

    pr = get_pr_details(gh, pr_number)
    if pr is None:
        return {
            "success": False,
            "review": None,
            "report_path": "",
            "reviews_requested": False,
            "errors": [f"Could not fetch PR #{pr_number}"],
        }

    logger.info('Analyzing PR #%s: "%s"', pr_number, pr["title"])
    main_branch = analyze_main_branch_risks(pr, check_merge=check_merge)
    race_conditions = detect_race_conditions(pr)
    dependencies = check_dependency_conflicts(pr)

    # -----------------------------------------------------------------------
    # STEP 2: Derive readiness, reviewers, recommendation, action items
    # -----------------------------------------------------------------------

    ready = determine_review_readiness(main_branch, race_conditions, dependencies)
    recommendation = determine_merge_recommendation(main_branch, race_conditions, dependencies)

    review = {
        "pr_number": pr["number"],
        "title": pr["title"],
        "ready_for_review": ready,
        "main_branch_analysis": main_branch,
        "race_condition_analysis": race_conditions,
        "dependency_analysis": dependencies,
        "recommended_reviewers": get_recommended_reviewers(
            pr, main_branch, race_conditions, dependencies
        ),
        "merge_recommendation": recommendation,
        "action_items": generate_action_items(
            main_branch, race_conditions, dependencies, recommendation
        ),
    }

    # -----------------------------------------------------------------------
    # STEP 3: Write the report, then request reviews if ready
    # -----------------------------------------------------------------------

    timestamp = format_date_cst(now)
    report = generate_auto_review_report(review, now)
    report_path = save_report(report, f"pr-auto-review-{pr_number}-{timestamp}.md", output_dir)

    errors = []
    if not report_path:
        errors.append("Failed to save auto review report")

    reviews_requested = False
    if request_reviews_when_ready and ready and review["recommended_reviewers"]:
        reviews_requested = request_reviews(gh, pr_number, review["recommended_reviewers"])
        if not reviews_requested:
            errors.append(f"Could not request reviews for PR #{pr_number}")

    return {
        "success": True,
        "review": review,
        "report_path": report_path,
        "reviews_requested": reviews_requested,
        "errors": errors,
    }


def determine_review_readiness(main_branch: dict, race_conditions: dict, dependencies: dict) -> bool:
    if (
        main_branch["overall_risk"] == "High"
        or race_conditions["overall_risk"] == "High"
        or dependencies["overall_risk"] == "High"
        or dependencies["version_conflicts"]
        or dependencies["missing_peer_dependencies"]
    ):
        return False

    return not main_branch["potential_merge_conflicts"]


def get_recommended_reviewers(
    pr: dict,
    main_branch: dict,
    race_conditions: dict,
    dependencies: dict,
    default_reviewers: Optional[list] = None,
) -> list:
    """Default reviewers plus teams matching what the PR touches."""
    reviewers = list(default_reviewers if default_reviewers is not None else config.DEFAULT_REVIEWERS)

    def _add(name):
        if name not in reviewers:
            reviewers.append(name)

    files = pr.get("files") or []
    if not files:
        return reviewers

    paths = [f["path"] for f in files]
    if any("/api/" in p or "/services/" in p or "/server/" in p for p in paths):
        _add("backend-team")

    if any(
        "/components/" in p or "/pages/" in p or ("/app/" in p and p.endswith((".tsx", ".jsx")))
        for p in paths
    ):
        _add("frontend-team")

    if main_branch["database_schema_changes"]:
        _add("data-team")

    if race_conditions["overall_risk"] != "Low":
        _add("senior-dev")

    if dependencies["overall_risk"] != "Low":
        _add("devops-team")

    return reviewers


def determine_merge_recommendation(main_branch: dict, race_conditions: dict, dependencies: dict) -> str:
    risks = [
        main_branch["overall_risk"],
        race_conditions["overall_risk"],
        dependencies["overall_risk"],
    ]

    if (
        "High" in risks
        or main_branch["potential_merge_conflicts"]
        or dependencies["version_conflicts"]
        or dependencies["missing_peer_dependencies"]
    ):
        return "Request Changes"

    if (
        "Medium" in risks
        or main_branch["api_breaking_changes"]
        or main_branch["database_schema_changes"]
    ):
        return "Needs Discussion"

    return "Approve"


def generate_action_items(
    main_branch: dict,
    race_conditions: dict,
    dependencies: dict,
    merge_recommendation: str,
) -> list:
    items = []

    if main_branch["potential_merge_conflicts"]:
        items.append(
            "Resolve merge conflicts with files: "
            + ", ".join(main_branch["potential_merge_conflicts"])
        )
    if main_branch["api_breaking_changes"]:
        items.append("Review API breaking changes in: " + ", ".join(main_branch["api_breaking_changes"]))
    if main_branch["database_schema_changes"]:
        items.append(
            "Create database migration plan for: "
            + ", ".join(main_branch["database_schema_changes"])
        )

    race_labels = [
        ("form_submission_issues", "Fix form submission race conditions"),
        ("state_management_issues", "Fix state management race conditions"),
        ("async_operation_issues", "Fix async operation race conditions"),
        ("database_transaction_issues", "Fix database transaction issues"),
    ]
    for key, label in race_labels:
        if race_conditions[key]:
            items.append(f"{label}: " + "; ".join(race_conditions[key]))

    dependency_labels = [
        ("version_conflicts", "Resolve dependency version conflicts"),
        ("duplicate_libraries", "Resolve duplicate libraries"),
        ("missing_peer_dependencies", "Add missing peer dependencies"),
    ]
    for key, label in dependency_labels:
        if dependencies[key]:
            items.append(f"{label}: " + "; ".join(dependencies[key]))

    if merge_recommendation == "Request Changes":
        items.append("Address all issues before requesting review again")
    elif merge_recommendation == "Needs Discussion":
        items.append("Discuss identified issues with the team before proceeding")
    else:
        items.append("Write tests for new functionality")
        items.append("Update documentation if needed")

    return items


# ---------------------------------------------------------------------------
# REPORT FORMATTING
# ---------------------------------------------------------------------------


def generate_auto_review_report(review: dict, now: Optional[datetime] = None) -> str:
    """Render the auto review as a Markdown report."""
    now = now or datetime.now(timezone.utc)
    main_branch = review["main_branch_analysis"]
    race_conditions = review["race_condition_analysis"]
    dependencies = review["dependency_analysis"]
    recommendation = review["merge_recommendation"]

    lines = [
        "# PR Auto Review Report",
        f"Generated: {format_date_cst(now)} (CST)",
        "",
        "## PR Summary",
        "",
        "| Field | Value |",
        "|-------|-------|",
        f"| PR Number | #{review['pr_number']} |",
        f"| Title | {review['title']} |",
        f"| Ready for Review | {'✅ Yes' if review['ready_for_review'] else '❌ No'} |",
        f"| Merge Recommendation | {RECOMMENDATION_EMOJI.get(recommendation, '')} {recommendation} |",
        "",
        "## Risk Analysis",
        "",
        "| Risk Category | Level | Details |",
        "|---------------|-------|---------|",
        _risk_row("Main Branch Risk", main_branch["overall_risk"], _main_branch_summary(main_branch)),
        _risk_row(
            "Race Condition Risk", race_conditions["overall_risk"], _race_condition_summary(race_conditions)
        ),
        _risk_row("Dependency Risk", dependencies["overall_risk"], _dependency_summary(dependencies)),
        "",
    ]

    file_sections = [
        ("Critical Files Changed", "critical_file_changes", "No critical files changed"),
        ("Setup Files Changed", "setup_file_changes", "No setup files changed"),
        ("Potential Merge Conflicts", "potential_merge_conflicts", "No potential merge conflicts detected"),
        ("API Breaking Changes", "api_breaking_changes", "No API breaking changes detected"),
        ("Database Schema Changes", "database_schema_changes", "No database schema changes detected"),
    ]
    for heading, key, empty_text in file_sections:
        lines.append(f"## {heading}")
        lines.append("")
        lines.append("\n".join(f"- `{path}`" for path in main_branch[key]) or empty_text)
        lines.append("")

    lines.extend([
        "## Race Condition Issues",
        "",
        _detail_sections(
            race_conditions,
            [
                ("Form Submission Issues", "form_submission_issues"),
                ("State Management Issues", "state_management_issues"),
                ("Async Operation Issues", "async_operation_issues"),
                ("Database Transaction Issues", "database_transaction_issues"),
            ],
            "No race condition issues detected",
        ),
        "",
        "## Dependency Issues",
        "",
        _detail_sections(
            dependencies,
            [
                ("Package.json Changes", "package_json_changes"),
                ("Version Conflicts", "version_conflicts"),
                ("Duplicate Libraries", "duplicate_libraries"),
                ("Missing Peer Dependencies", "missing_peer_dependencies"),
            ],
            "No dependency issues detected",
        ),
        "",
        "## Recommended Reviewers",
        "",
        "\n".join(f"- @{r}" for r in review["recommended_reviewers"]) or "No specific reviewers recommended",
        "",
        "## Action Items",
        "",
        "\n".join(f"- {item}" for item in review["action_items"]) or "No action items",
        "",
        "---",
        f"Generated by PR Agent auto reviewer on {format_date_cst(now)}",
        "",
    ])

    return "\n".join(lines)


def _risk_row(label: str, risk: str, details: str) -> str:
    return f"| {label} | {RISK_EMOJI.get(risk, '')} {risk} | {details} |"


def _count_summary(analysis: dict, labels: list, empty_text: str) -> str:
    parts = [f"{len(analysis[key])} {label}" for key, label in labels if analysis[key]]
    return ", ".join(parts) if parts else empty_text


def _main_branch_summary(analysis: dict) -> str:
    return _count_summary(
        analysis,
        [
            ("critical_file_changes", "critical files"),
            ("potential_merge_conflicts", "merge conflicts"),
            ("setup_file_changes", "setup files"),
            ("api_breaking_changes", "API changes"),
            ("database_schema_changes", "DB schema changes"),
        ],
        "No significant risks detected",
    )


def _race_condition_summary(analysis: dict) -> str:
    return _count_summary(
        analysis,
        [
            ("form_submission_issues", "form issues"),
            ("state_management_issues", "state issues"),
            ("async_operation_issues", "async issues"),
            ("database_transaction_issues", "DB transaction issues"),
        ],
        "No race conditions detected",
    )


def _dependency_summary(analysis: dict) -> str:
    return _count_summary(
        analysis,
        [
            ("package_json_changes", "package.json changes"),
            ("version_conflicts", "version conflicts"),
            ("duplicate_libraries", "duplicate libraries"),
            ("missing_peer_dependencies", "missing peer deps"),
        ],
        "No dependency issues detected",
    )


def _detail_sections(analysis: dict, sections: list, empty_text: str) -> str:
    blocks = [
        f"### {heading}\n\n" + "\n".join(f"- {item}" for item in analysis[key])
        for heading, key in sections
        if analysis[key]
    ]
    return "\n\n".join(blocks) if blocks else empty_text
