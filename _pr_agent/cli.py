#!/usr/bin/env python3
"""
PR Agent CLI

Analyze, review, compare, and consolidate the open pull requests of a
GitHub repository (GITHUB_ORG/GITHUB_REPO).

Commands:
    analyze       Triage open PRs: risk, priority, change intent
    review        Auto review one PR and request reviewers when ready
    consolidate   Pick a consolidation strategy for a set of PRs
    compare       Pairwise diff comparison of related PRs
    duplicates    Consolidate PRs that share an identical title
"""

import logging
from typing import List, Optional

import requests
import typer
from rich import box
from rich.console import Console
from rich.table import Table

from _pr_agent import config
from _pr_agent.github_api import GitHubAPI, GitHubTokenError, create_github_api, days_old, list_open_prs
from _pr_agent.pr_auto_reviewer import auto_review_pull_request
from _pr_agent.pr_diff_comparator import (
    build_diff_report,
    compare_all_pairs,
    generate_recommendation,
    recommendation_to_plan,
)
from _pr_agent.report_writer import format_date_cst, save_report
from _pr_agent.stage_1_fetch_pull_requests import (
    fetch_pull_requests,
    group_by_title,
    parse_number_ranges,
    select_pull_requests,
)
from _pr_agent.stage_2_analyze_pull_requests import (
    analyze_pull_requests,
    build_analysis_report,
    summarize_distribution,
)
from _pr_agent.stage_3_select_strategy import (
    STRATEGIES,
    analyze_prs_for_strategy_factors,
    determine_strategy,
)
from _pr_agent.stage_4_build_consolidation_plan import (
    build_consolidation_plan,
    build_keep_plan,
    is_manual_strategy,
)
from _pr_agent.stage_5_write_report import write_consolidation_report
from _pr_agent.stage_6_execute_consolidation import consolidate_into_new_branch, execute_consolidation

app = typer.Typer(
    name="pr-agent",
    help="Analyze, review, and consolidate GitHub pull requests",
    add_completion=False,
)
console = Console()
logger = logging.getLogger(__name__)

DUPLICATE_STRATEGIES = ["keep-oldest", "keep-newest", "new-branch"]


def log_info(message: str) -> None:
    """Log info message with emoji."""
    console.print(f"ℹ️  {message}", style="blue")


def log_success(message: str) -> None:
    """Log success message with emoji."""
    console.print(f"✅ {message}", style="green")


def log_warning(message: str) -> None:
    """Log warning message with emoji."""
    console.print(f"⚠️  {message}", style="yellow")


def log_error(message: str) -> None:
    """Log error message with emoji."""
    console.print(f"❌ {message}", style="red")


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(asctime)s - %(levelname)s - %(message)s",
        force=True,
    )


def connect() -> GitHubAPI:
    """GitHubAPI for the configured repository, or exit 1 without a token."""
    try:
        gh = create_github_api()
    except GitHubTokenError as e:
        log_error(str(e))
        raise typer.Exit(1)
    log_info(f"Using repository {gh.full_name}")
    return gh


def report_errors(errors: list) -> None:
    for error in errors:
        log_warning(error)


def fetch_open_prs(gh: GitHubAPI, direction: str = "desc") -> list:
    """Open PRs, or exit 1 when GitHub refuses the listing."""
    try:
        return list_open_prs(gh, direction=direction)
    except requests.RequestException as e:
        log_error(f"Could not list open PRs: {e}")
        raise typer.Exit(1)


# ---------------------------------------------------------------------------
# RENDERING
# ---------------------------------------------------------------------------


def print_open_prs(prs: list, title: str = "Open PRs") -> None:
    table = Table(title=title, box=box.ROUNDED, show_header=True, header_style="bold cyan")
    table.add_column("#", justify="right", style="dim")
    table.add_column("PR", justify="right")
    table.add_column("Title", style="white")
    table.add_column("Author")
    table.add_column("Branch", style="dim")
    table.add_column("Created")

    for index, pr in enumerate(prs, start=1):
        table.add_row(
            str(index),
            f"#{pr['number']}",
            pr["title"],
            pr["author"],
            f"{pr['head_ref']} → {pr['base_ref']}",
            pr["created_at"][:10],
        )
    console.print(table)


def print_distribution(prs: list, analyses: list) -> None:
    distribution = summarize_distribution(prs)

    table = Table(title="PR Distribution", box=box.ROUNDED, show_header=True, header_style="bold cyan")
    table.add_column("Type")
    table.add_column("PRs", justify="right")
    for label, count in distribution["types"].items():
        table.add_row(label, str(count))
    table.add_row("[bold]Total[/bold]", f"[bold]{distribution['total']}[/bold]")
    console.print(table)

    ages = distribution["ages"]
    table = Table(title="PR Age Distribution", box=box.ROUNDED, show_header=True, header_style="bold cyan")
    table.add_column("Age")
    table.add_column("PRs", justify="right")
    table.add_row("[green]Recent (0-2 days)[/green]", str(ages["recent"]))
    table.add_row("[yellow]Active (3-7 days)[/yellow]", str(ages["active"]))
    table.add_row("[red]Aging (8-14 days)[/red]", str(ages["aging"]))
    table.add_row("[dim]Stale (15+ days)[/dim]", str(ages["stale"]))
    console.print(table)

    table = Table(title="Top Priority PRs", box=box.ROUNDED, show_header=True, header_style="bold cyan")
    table.add_column("PR", justify="right")
    table.add_column("Title")
    table.add_column("Risk")
    table.add_column("Priority", justify="right")
    table.add_column("Age (days)", justify="right")
    for analysis in analyses[:5]:
        pr = analysis["pr"]
        table.add_row(
            f"#{pr['number']}",
            pr["title"],
            analysis["risk_level"],
            str(analysis["priority_score"]),
            str(int(days_old(pr["created_at"]))),
        )
    console.print(table)


# ---------------------------------------------------------------------------
# COMMANDS
# ---------------------------------------------------------------------------


@app.command()
def analyze(
    prs: Optional[str] = typer.Option(None, "--prs", "-p", help="PR numbers, e.g. 12,15,20-22"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show progress logs"),
) -> None:
    """
    Triage open PRs.

    Scores every PR for risk and priority, summarizes its change intent,
    and writes pr-analysis-report-{timestamp}.md to OUTPUT_DIR.
    """
    configure_logging(verbose)
    gh = connect()

    if prs:
        numbers = parse_number_ranges(prs)
    else:
        numbers = [pr["number"] for pr in fetch_open_prs(gh)]
    if not numbers:
        log_warning("No open PRs found")
        raise typer.Exit(0)

    log_info(f"Fetching {len(numbers)} PRs...")
    fetched = fetch_pull_requests(numbers, gh, include_commits=True)
    report_errors(fetched["errors"])
    if not fetched["success"]:
        log_error("Could not fetch any PRs")
        raise typer.Exit(1)

    analyzed = analyze_pull_requests(fetched["pull_requests"])
    report_errors(analyzed["errors"])

    print_distribution(fetched["pull_requests"], analyzed["analyses"])

    report = build_analysis_report(analyzed["analyses"])
    report_path = save_report(report, f"pr-analysis-report-{format_date_cst()}.md")
    if not report_path:
        log_error("Failed to save analysis report")
        raise typer.Exit(1)
    log_success(f"Full report saved to {report_path}")


@app.command()
def review(
    pr_number: int = typer.Argument(..., help="PR number to review"),
    no_request_reviews: bool = typer.Option(
        False, "--no-request-reviews", help="Do not request reviewers on GitHub"
    ),
    skip_merge_test: bool = typer.Option(
        False, "--skip-merge-test", help="Skip the local git merge simulation"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show progress logs"),
) -> None:
    """
    Auto review a single PR.

    Runs the main branch, race condition, and dependency analyzers, writes
    pr-auto-review-{number}-{timestamp}.md, and requests the recommended
    reviewers when the PR is ready for review.
    """
    configure_logging(verbose)
    gh = connect()

    result = auto_review_pull_request(
        pr_number,
        gh,
        request_reviews_when_ready=not no_request_reviews,
        check_merge=not skip_merge_test,
    )
    report_errors(result["errors"])
    if not result["success"]:
        log_error(f"Auto review of PR #{pr_number} failed")
        raise typer.Exit(1)

    review_result = result["review"]
    if review_result["ready_for_review"]:
        log_success(f"PR #{pr_number} is ready for review")
    else:
        log_warning(f"PR #{pr_number} is not ready for review")
    log_info(f"Merge recommendation: {review_result['merge_recommendation']}")
    log_info(f"Recommended reviewers: {', '.join(review_result['recommended_reviewers'])}")
    if result["reviews_requested"]:
        log_success("Review requests sent")
    if result["report_path"]:
        log_success(f"Report saved to {result['report_path']}")


@app.command()
def consolidate(
    prs: Optional[str] = typer.Option(None, "--prs", "-p", help="PR numbers, e.g. 12,15,20-22"),
    strategy: str = typer.Option(
        "auto", "--strategy", "-s", help="auto, keep-latest, rolling-up, or consolidation-map"
    ),
    execute: bool = typer.Option(
        False, "--execute", "-e", help="Execute the consolidation without asking"
    ),
    merge: bool = typer.Option(False, "--merge", help="Also merge the kept PR"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show progress logs"),
) -> None:
    """
    Select a consolidation strategy for a set of related PRs.

    Without --prs, lists the open PRs and asks which ones to consolidate
    (1-based positions, ranges like 1-3 allowed). Writes
    pr-consolidation-{timestamp}.md and optionally executes the plan.
    """
    configure_logging(verbose)
    if strategy != "auto" and strategy not in STRATEGIES:
        log_error(f"Unknown strategy '{strategy}'. Choose auto or one of: {', '.join(STRATEGIES)}")
        raise typer.Exit(1)

    gh = connect()

    # ----- STEP 1: Which PRs
    if prs:
        numbers = parse_number_ranges(prs)
    else:
        open_prs = fetch_open_prs(gh, direction="asc")
        if not open_prs:
            log_warning("No open PRs found")
            raise typer.Exit(0)
        print_open_prs(open_prs)
        selection = typer.prompt("Enter PRs to consolidate (comma-separated, ranges like 1-3 allowed)")
        numbers = select_pull_requests(open_prs, selection)

    if not numbers:
        log_error("No PRs to consolidate")
        raise typer.Exit(1)

    log_info(f"Fetching data for {len(numbers)} PRs...")
    fetched = fetch_pull_requests(numbers, gh, include_commits=True)
    report_errors(fetched["errors"])
    if not fetched["success"]:
        log_error("Could not fetch any PRs")
        raise typer.Exit(1)
    pull_requests = fetched["pull_requests"]

    # ----- STEP 2: Strategy
    factors = analyze_prs_for_strategy_factors(pull_requests)
    recommendation = determine_strategy(
        factors, default_strategy=strategy if strategy != "auto" else config.DEFAULT_STRATEGY
    )
    chosen = recommendation["recommended_strategy"]

    console.print(
        f"\n[green]Recommended Strategy: [bold]{chosen}[/bold] "
        f"({recommendation['confidence']}% confidence)[/green]"
    )
    for reason in recommendation["reasoning"]:
        console.print(f"  - {reason}")

    # ----- STEP 3: Plan and report
    plan = build_consolidation_plan(pull_requests, chosen)
    written = write_consolidation_report(pull_requests, recommendation, plan)
    report_errors(written["errors"])
    if written["success"]:
        log_success(f"PR Consolidation Analysis saved to {written['report_path']}")

    # ----- STEP 4: Execute
    if is_manual_strategy(chosen):
        log_warning(f"The {chosen} strategy requires manual execution. Follow the implementation plan.")
        return

    if not execute:
        log_info(f"This will close {len(plan['close_prs'])} PRs and approve PR #{plan['keep_pr']}")
        if not typer.confirm("Do you want to execute these actions now?", default=False):
            log_info("No actions executed. See the \"Executable Commands\" section of the report.")
            return

    executed = execute_consolidation(plan, gh, merge=merge)
    report_errors(executed["errors"])
    if not executed["success"]:
        log_error("Some consolidation actions failed. See the report to finish them manually.")
        raise typer.Exit(1)
    log_success("Consolidation actions completed. Please verify the changes on GitHub.")


@app.command()
def compare(
    pr_numbers: Optional[List[int]] = typer.Argument(None, help="PR numbers to compare"),
    execute: bool = typer.Option(
        False, "--execute", "-e", help="Execute a keep-latest recommendation without asking"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show progress logs"),
) -> None:
    """
    Compare related PRs pair by pair and recommend which one to keep.

    Without PR numbers, groups open PRs by normalized title and asks which
    group to compare.
    """
    configure_logging(verbose)
    gh = connect()

    numbers = list(pr_numbers or [])
    if not numbers:
        groups = list(group_by_title(fetch_open_prs(gh)).items())
        if not groups:
            log_warning("No groups of related PRs found")
            raise typer.Exit(0)

        log_info(f"Found {len(groups)} groups of related PRs")
        for index, (title, members) in enumerate(groups, start=1):
            console.print(f"{index}. {title} ({len(members)} PRs)")
        choice = typer.prompt("Which group would you like to compare?", type=int, default=1)
        if not 1 <= choice <= len(groups):
            log_error("Invalid group selection")
            raise typer.Exit(1)
        numbers = [pr["number"] for pr in groups[choice - 1][1]]

    fetched = fetch_pull_requests(numbers, gh, include_commits=False)
    report_errors(fetched["errors"])
    pull_requests = fetched["pull_requests"]
    if len(pull_requests) < 2:
        log_warning("Need at least 2 PRs to compare")
        raise typer.Exit(0)

    analyses = compare_all_pairs(pull_requests)
    recommendation = generate_recommendation(pull_requests, analyses)

    timestamp = format_date_cst()
    report = build_diff_report(pull_requests, analyses, recommendation, generated_at=timestamp)
    report_path = save_report(report, f"pr-comparison-{timestamp}.md")
    if report_path:
        log_success(f"Report generated: {report_path}")

    log_info(f"Strategy: {recommendation['strategy']} ({recommendation['justification']})")
    plan = recommendation_to_plan(recommendation)
    if is_manual_strategy(plan["strategy"]):
        log_warning("The recommended strategy requires manual intervention")
        return

    if not execute and not typer.confirm(
        f"Close PRs {', '.join(f'#{n}' for n in plan['close_prs'])} "
        f"and approve PR #{plan['keep_pr']}?",
        default=False,
    ):
        return

    executed = execute_consolidation(plan, gh)
    report_errors(executed["errors"])
    if not executed["success"]:
        raise typer.Exit(1)
    log_success("Recommendation executed")


@app.command()
def duplicates(
    strategy: str = typer.Option(
        "keep-newest", "--strategy", "-s", help="keep-oldest, keep-newest, or new-branch"
    ),
    branch: Optional[str] = typer.Option(None, "--branch", "-b", help="Name of the consolidated branch"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompts"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show progress logs"),
) -> None:
    """
    Consolidate open PRs that have identical titles.

    keep-oldest / keep-newest close every other PR of the group with a
    comment. new-branch merges all of them into one new branch and opens a
    consolidated PR (requires a local checkout of the repository).
    """
    configure_logging(verbose)
    if strategy not in DUPLICATE_STRATEGIES:
        log_error(f"Unknown strategy '{strategy}'. Choose one of: {', '.join(DUPLICATE_STRATEGIES)}")
        raise typer.Exit(1)

    gh = connect()

    groups = list(group_by_title(fetch_open_prs(gh), normalize=False).items())
    if not groups:
        log_warning("No groups of duplicate PRs found")
        raise typer.Exit(0)

    log_warning(f"Found {len(groups)} groups of PRs with identical titles")
    for index, (title, members) in enumerate(groups, start=1):
        print_open_prs(members, title=f"{index}. {title}")

    choice = 1
    if len(groups) > 1:
        choice = typer.prompt("Which group would you like to consolidate?", type=int, default=1)
        if not 1 <= choice <= len(groups):
            log_error("Invalid group selection")
            raise typer.Exit(1)
    title, members = groups[choice - 1]

    if strategy == "new-branch":
        close_originals = yes or typer.confirm("Close the original PRs afterwards?", default=True)
        result = consolidate_into_new_branch(members, gh, branch_name=branch, title=title,
                                             close_originals=close_originals)
        report_errors(result["errors"])
        if not result["success"]:
            log_error("Consolidation into a new branch failed")
            raise typer.Exit(1)
        if result["skipped_prs"]:
            log_warning(f"Skipped PRs: {', '.join(f'#{n}' for n in result['skipped_prs'])}")
        log_success(f"Consolidated PR #{result['new_pr']} created from branch {result['branch']}")
        return

    plan = build_keep_plan(members, keep=strategy.split("-", 1)[1])
    log_success(f"Keeping PR #{plan['keep_pr']}")
    log_warning(f"The following PRs will be closed: {', '.join(f'#{n}' for n in plan['close_prs'])}")
    if not yes and not typer.confirm("Do you want to proceed with this action?", default=False):
        log_info("Operation cancelled")
        raise typer.Exit(0)

    executed = execute_consolidation(plan, gh)
    report_errors(executed["errors"])
    if not executed["success"]:
        raise typer.Exit(1)
    log_success(f"Closed {len(executed['closed_prs'])} PRs")


if __name__ == "__main__":
    app()
