"""Tests for Stage 5: the consolidation report."""

import os
from unittest.mock import patch

import pytest

from _pr_agent.stage_3_select_strategy import determine_strategy
from _pr_agent.stage_4_build_consolidation_plan import build_consolidation_plan
from _pr_agent.stage_5_write_report import build_consolidation_report, write_consolidation_report


@pytest.fixture
def two_prs(make_pr, make_file):
    return [
        make_pr(1, created_at="2026-10-01T10:00:00Z", files=[make_file("app/a.ts")]),
        make_pr(2, created_at="2026-10-02T10:00:00Z"),
    ]


@pytest.fixture
def recommendation():
    return determine_strategy(
        {
            "pr_count": 2,
            "files_changed": 1,
            "critical_path_changes": False,
            "test_requirements": [],
            "change_complexity": "Low",
            "developer_count": 1,
            "time_span": 1,
            "conflict_probability": 0.0,
        },
        default_strategy="auto",
        max_prs_for_keep_latest=5,
        conflict_threshold=0.4,
    )


class TestBuildConsolidationReport:
    """Test suite for the report Markdown."""

    def test_sections(self, two_prs, recommendation, now):
        plan = build_consolidation_plan(two_prs, "keep-latest")

        report = build_consolidation_report(two_prs, recommendation, plan, now)

        assert report.startswith("# PR Consolidation Analysis\nGenerated: 10-16-2026_10-00-00 (CST)")
        assert "## PR Summary" in report
        assert "| #1 | feat: add widget | feature-1 | 1 | 2026-10-01 | Low |" in report
        assert "| #2 | feat: add widget | feature-2 | N/A | 2026-10-02 | Low |" in report
        assert "## Strategy Recommendation" in report
        assert "## Consolidation Map" not in report
        assert "## Executable Commands" in report
        assert 'gh pr close 1 -c "Consolidated into PR #2"' in report

    def test_map_section_for_consolidation_map(self, two_prs, recommendation, now):
        plan = build_consolidation_plan(two_prs, "consolidation-map")

        report = build_consolidation_report(two_prs, recommendation, plan, now)

        assert "## Consolidation Map\n\n```mermaid" in report


class TestWriteConsolidationReport:
    """Test suite for saving the report."""

    def test_saves_timestamped_and_latest(self, two_prs, recommendation, now, tmp_path):
        plan = build_consolidation_plan(two_prs, "keep-latest")

        result = write_consolidation_report(two_prs, recommendation, plan, output_dir=str(tmp_path), now=now)

        assert result["success"] is True
        assert result["errors"] == []
        assert os.path.basename(result["report_path"]) == "pr-consolidation-10-16-2026_10-00-00.md"
        assert (tmp_path / "pr-consolidation-latest.md").read_text(encoding="utf-8") == result["content"]

    def test_save_failure(self, two_prs, recommendation, now):
        plan = build_consolidation_plan(two_prs, "keep-latest")

        with patch("_pr_agent.stage_5_write_report.save_report", return_value=""):
            result = write_consolidation_report(two_prs, recommendation, plan, now=now)

        assert result["success"] is False
        assert result["errors"] == ["Failed to save consolidation report"]
        assert result["content"].startswith("# PR Consolidation Analysis")
