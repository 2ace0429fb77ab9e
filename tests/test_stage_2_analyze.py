"""Tests for Stage 2: per-PR risk, priority, and change intent."""

from datetime import timedelta

import pytest

from _pr_agent.stage_2_analyze_pull_requests import (
    analyze_change_intent,
    analyze_pull_request,
    analyze_pull_requests,
    build_analysis_report,
    calculate_priority_score,
    conventional_type,
    extract_keywords,
    summarize_distribution,
)

PROJECT_CONFIG = {
    "critical_directories": ["app/lib/services", "app/api"],
    "test_required": ["services"],
    "automerge_patterns": ["docs/", "*.md"],
}


@pytest.fixture
def docs_pr(make_pr, make_file):
    return make_pr(
        20,
        title="docs: update setup guide",
        files=[make_file("docs/setup.md")],
        created_at="2026-10-15T12:00:00Z",
    )


@pytest.fixture
def critical_fix_pr(make_pr, make_file):
    return make_pr(
        21,
        title="fix: auth token refresh",
        files=[make_file("app/lib/services/auth.ts", additions=120, deletions=4)],
        created_at="2026-09-20T12:00:00Z",
    )


class TestAnalyzePullRequest:
    """Test suite for a single PR analysis."""

    def test_docs_only_pr(self, docs_pr, now):
        analysis = analyze_pull_request(docs_pr, PROJECT_CONFIG, now)

        assert analysis["risk_level"] == "Low"
        assert analysis["impact_areas"] == ["docs"]
        assert analysis["automerge_eligible"] is True
        assert analysis["priority_score"] == 45
        assert analysis["review_recommendations"] == [
            "PR description is missing or too brief - request more details",
            "All changed files match auto-merge patterns - eligible for auto-merge",
        ]
        assert analysis["merge_impact"] == {"benefits": [], "risks": []}

    def test_critical_fix_without_tests(self, critical_fix_pr, now):
        analysis = analyze_pull_request(critical_fix_pr, PROJECT_CONFIG, now)

        assert analysis["risk_level"] == "High"
        assert analysis["priority_score"] == 55
        assert analysis["automerge_eligible"] is False
        recommendations = analysis["review_recommendations"]
        assert recommendations[0] == (
            "Critical file changed: app/lib/services/auth.ts - Requires senior developer review"
        )
        assert "Large addition in app/lib/services/auth.ts (120 lines) - Review thoroughly" in recommendations
        assert "Changes in areas requiring tests, but no test files updated" in recommendations
        assert analysis["merge_impact"]["benefits"] == ["Fixes a bug in the codebase"]
        assert analysis["merge_impact"]["risks"] == [
            "Changes to critical system components may affect stability",
            "Lack of tests increases risk of undetected issues",
        ]

    def test_missing_tests_escalates_low_to_medium(self, make_pr, make_file, now):
        pr = make_pr(22, title="refactor: tidy helpers", files=[make_file("lib/services/format.ts")])

        assert analyze_pull_request(pr, PROJECT_CONFIG, now)["risk_level"] == "Medium"

    def test_test_file_satisfies_requirement(self, make_pr, make_file, now):
        pr = make_pr(22, title="refactor: tidy helpers", files=[
            make_file("lib/services/format.ts"),
            make_file("lib/services/format.test.ts"),
        ])

        assert analyze_pull_request(pr, PROJECT_CONFIG, now)["risk_level"] == "Low"

    def test_non_conventional_title_is_flagged(self, make_pr, now):
        pr = make_pr(23, title="Update stuff", body="x" * 60)

        assert analyze_pull_request(pr, PROJECT_CONFIG, now)["review_recommendations"] == [
            "PR title does not follow conventional commit format"
        ]

    def test_top_level_file_impact_area(self, make_pr, make_file, now):
        pr = make_pr(24, files=[make_file("README.md")])

        assert analyze_pull_request(pr, PROJECT_CONFIG, now)["impact_areas"] == ["."]


class TestCalculatePriorityScore:
    """Test suite for the priority formula."""

    def test_new_high_risk_docs_change(self, make_pr, now):
        created = (now - timedelta(days=1)).strftime("%Y-%m-%dT%H:%M:%SZ")
        pr = make_pr(1, title="docs: typo", created_at=created)

        assert calculate_priority_score(pr, "High", now) == 15

    def test_old_low_risk_fix(self, make_pr, now):
        created = (now - timedelta(days=30)).strftime("%Y-%m-%dT%H:%M:%SZ")
        pr = make_pr(1, title="fix: crash", created_at=created)

        assert calculate_priority_score(pr, "Low", now) == 85

    def test_medium_risk_mid_age_is_neutral(self, make_pr, now):
        created = (now - timedelta(days=5)).strftime("%Y-%m-%dT%H:%M:%SZ")
        pr = make_pr(1, title="chore: bump", created_at=created)

        assert calculate_priority_score(pr, "Medium", now) == 50


class TestChangeIntent:
    """Test suite for change intent extraction."""

    def test_full_intent(self, make_pr, make_file):
        pr = make_pr(
            30,
            title="Add button",
            body="This PR will add dark mode toggle and fix the header overlap.",
            files=[
                make_file("app/components/Button.tsx", status="added"),
                make_file("app/lib/utils.ts", "+// fix rounding bug"),
            ],
        )

        intent = analyze_change_intent(pr)

        assert intent["intent"] == "New feature"
        assert intent["components"] == ["app", "app/components", "app/lib"]
        assert intent["change_types"] == ["New Feature", "Bug Fix"]
        assert intent["suggested_features"] == ["add dark mode toggle"]
        assert intent["suggested_fixes"] == ["fix the header overlap."]
        assert intent["complexity"] == "Low"
        assert intent["area_of_impact"] == "app, app/components, app/lib"
        assert intent["implementation"] == "Changes involve tsx, ts files with 10 additions and 2 deletions"

    def test_commit_messages_feed_keywords(self, make_pr):
        pr = make_pr(31, title="chore: misc", commits=[{"sha": "a", "message": "implement retry logic"}])

        intent = analyze_change_intent(pr)

        assert intent["intent"] == "Code change"
        assert intent["suggested_features"] == ["implement retry logic"]
        assert intent["area_of_impact"] == "Unknown"
        assert intent["implementation"] == ""

    def test_complexity_from_line_counts(self, make_pr):
        assert analyze_change_intent(make_pr(1, additions=400, deletions=200))["complexity"] == "High"
        assert analyze_change_intent(make_pr(1, additions=90, deletions=20))["complexity"] == "Medium"


class TestKeywordsAndTypes:
    """Test suite for small parsing helpers."""

    def test_trigger_as_last_word_is_ignored(self):
        assert extract_keywords("please add") == []
        assert extract_keywords("") == []

    def test_phrase_is_capped_at_five_words(self):
        assert extract_keywords("update the very long list of things") == ["update the very long list"]

    @pytest.mark.parametrize("title,expected", [
        ("fix: crash", "fix"),
        ("feat(ui): dark mode", "feat"),
        ("Feat: dark mode", None),
        ("dark mode", None),
    ])
    def test_conventional_type(self, title, expected):
        assert conventional_type(title) == expected


class TestSummaryAndReport:
    """Test suite for the distribution summary and Markdown report."""

    def test_distribution(self, make_pr, now):
        def created(days):
            return (now - timedelta(days=days)).strftime("%Y-%m-%dT%H:%M:%SZ")

        prs = [
            make_pr(1, title="fix: a", created_at=created(1)),
            make_pr(2, title="feat(ui): b", created_at=created(5)),
            make_pr(3, title="chore: c", created_at=created(10)),
            make_pr(4, title="random", created_at=created(20)),
        ]

        summary = summarize_distribution(prs, now)

        assert summary["total"] == 4
        assert summary["types"]["Bug Fixes"] == 1
        assert summary["types"]["Features"] == 1
        assert summary["types"]["Other"] == 2
        assert summary["types"]["Documentation"] == 0
        assert summary["ages"] == {"recent": 1, "active": 1, "aging": 1, "stale": 1}

    def test_analyze_all_sorts_by_priority(self, docs_pr, critical_fix_pr, now):
        result = analyze_pull_requests([docs_pr, critical_fix_pr], PROJECT_CONFIG, now)

        assert result["success"] is True
        assert [a["pr"]["number"] for a in result["analyses"]] == [21, 20]

    def test_bad_pr_is_reported_not_raised(self, docs_pr, now):
        broken = {"number": 99}

        result = analyze_pull_requests([broken, docs_pr], PROJECT_CONFIG, now)

        assert result["success"] is True
        assert len(result["analyses"]) == 1
        assert result["errors"][0].startswith("Could not analyze PR #99")

    def test_report(self, docs_pr, critical_fix_pr, now):
        analyses = analyze_pull_requests([docs_pr, critical_fix_pr], PROJECT_CONFIG, now)["analyses"]

        report = build_analysis_report(analyses, now)

        assert report.startswith("# PR Analysis Report")
        assert "Generated: 10-16-2026_10-00-00 (CST)" in report
        assert report.index("### [#21]") < report.index("### [#20]")
        assert "**Auto-merge Eligible:** Yes" in report
        assert "1. **[#21] fix: auth token refresh** - Priority: 55/100" in report
        assert "   - High Risk, 26 days old" in report
        assert "### General Advice" in report
