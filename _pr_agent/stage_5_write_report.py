"""
Stage 5: Write Consolidation Report — PR Agent

PURPOSE:
    Render the consolidation analysis (PR summary, strategy comparison,
    consolidation map, implementation plan, executable commands) and save
    it as pr-consolidation-{timestamp}.md plus pr-consolidation-latest.md.

CALLED BY:
    cli.py `consolidate` — after Stage 4, before the optional Stage 6.

DEPENDS ON:
    - stage_3_select_strategy.generate_strategy_visualization
    - main_branch_analyzer.calculate_overall_risk for the Risk column
      (file-based only, no git access)
    - report_writer for timestamps and saving
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from _pr_agent.main_branch_analyzer import calculate_overall_risk
from _pr_agent.report_writer import format_date_cst, save_report
from _pr_agent.stage_3_select_strategy import generate_strategy_visualization

logger = logging.getLogger(__name__)


def write_consolidation_report(
    prs: list,
    recommendation: dict,
    plan: dict,
    output_dir: Optional[str] = None,
    now: Optional[datetime] = None,
) -> dict:
    """
    Build and save the consolidation report.

    Returns:
        dict with keys 'success' (bool), 'report_path' (str), 'content'
        (str), 'errors' (list[str]).
    """
    now = now or datetime.now(timezone.utc)
    content = build_consolidation_report(prs, recommendation, plan, now)
    report_path = save_report(content, f"pr-consolidation-{format_date_cst(now)}.md", output_dir)

    if not report_path:
        return {
            "success": False,
            "report_path": "",
            "content": content,
            "errors": ["Failed to save consolidation report"],
        }

    return {"success": True, "report_path": report_path, "content": content, "errors": []}


def build_consolidation_report(
    prs: list,
    recommendation: dict,
    plan: dict,
    now: Optional[datetime] = None,
) -> str:
    """Render the consolidation report Markdown."""
    now = now or datetime.now(timezone.utc)

    lines = [
        "# PR Consolidation Analysis",
        f"Generated: {format_date_cst(now)} (CST)",
        "",
        "## PR Summary",
        "",
        "| PR | Title | Branch | Files | Created | Risk |",
        "|---|---|---|---|---|---|",
    ]
    for pr in prs:
        files = pr.get("files") or []
        lines.append(
            f"| #{pr['number']} | {pr['title']} | {pr['head_ref']} | {len(files) or 'N/A'} "
            f"| {pr['created_at'][:10]} | {calculate_overall_risk(pr)} |"
        )
    lines.append("")

    lines.append(generate_strategy_visualization(recommendation))

    if plan.get("visual_map"):
        lines.extend(["## Consolidation Map", "", plan["visual_map"], ""])

    lines.append(plan["implementation_plan"])
    lines.append("")

    # ----- Executable commands
    lines.extend([
        "## Executable Commands",
        "",
        "To execute this consolidation plan manually, you can run these commands:",
        "",
        "```bash",
    ])
    lines.extend(plan["commands"])
    lines.extend([
        "```",
        "",
        "You can also run `pr-agent consolidate` with the `--execute` flag to "
        "automatically perform these actions.",
        "",
    ])

    return "\n".join(lines)
