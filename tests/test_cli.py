"""Tests for the typer CLI wiring."""

from unittest.mock import patch

import pytest
import requests
from typer.testing import CliRunner

from _pr_agent.cli import app
from _pr_agent.github_api import GitHubTokenError

runner = CliRunner()


@pytest.fixture
def connected(mock_gh):
    with patch("_pr_agent.cli.create_github_api", return_value=mock_gh):
        yield mock_gh


class TestConnect:
    """Test suite for token handling at startup."""

    def test_missing_token_exits_1(self):
        with patch("_pr_agent.cli.create_github_api", side_effect=GitHubTokenError("No GitHub token")):
            result = runner.invoke(app, ["analyze"])

        assert result.exit_code == 1
        assert "No GitHub token" in result.stdout


class TestAnalyzeCommand:
    """Test suite for `pr-agent analyze`."""

    def test_no_open_prs(self, connected):
        with patch("_pr_agent.cli.list_open_prs", return_value=[]):
            result = runner.invoke(app, ["analyze"])

        assert result.exit_code == 0
        assert "No open PRs found" in result.stdout

    @patch("_pr_agent.cli.save_report", return_value="/tmp/pr-analysis-report.md")
    @patch("_pr_agent.cli.print_distribution")
    @patch("_pr_agent.cli.analyze_pull_requests")
    @patch("_pr_agent.cli.fetch_pull_requests")
    def test_writes_report(self, mock_fetch, mock_analyze, mock_print, mock_save, connected, simple_pr):
        mock_fetch.return_value = {"success": True, "pull_requests": [simple_pr], "errors": []}
        mock_analyze.return_value = {"success": True, "analyses": [], "errors": []}

        with patch("_pr_agent.cli.build_analysis_report", return_value="# report"):
            result = runner.invoke(app, ["analyze", "--prs", "10"])

        assert result.exit_code == 0
        mock_fetch.assert_called_once_with([10], connected, include_commits=True)
        assert mock_save.call_args.args[1].startswith("pr-analysis-report-")
        assert "Full report saved" in result.stdout

    @patch("_pr_agent.cli.fetch_pull_requests")
    def test_nothing_fetched_exits_1(self, mock_fetch, connected):
        mock_fetch.return_value = {"success": False, "pull_requests": [], "errors": ["Error fetching PR #10"]}

        result = runner.invoke(app, ["analyze", "--prs", "10"])

        assert result.exit_code == 1
        assert "Error fetching PR #10" in result.stdout


class TestConsolidateCommand:
    """Test suite for `pr-agent consolidate`."""

    def test_invalid_strategy(self):
        result = runner.invoke(app, ["consolidate", "--strategy", "squash"])

        assert result.exit_code == 1
        assert "Unknown strategy" in result.stdout

    @patch("_pr_agent.cli.execute_consolidation")
    @patch("_pr_agent.cli.write_consolidation_report")
    @patch("_pr_agent.cli.fetch_pull_requests")
    def test_manual_strategy_is_not_executed(self, mock_fetch, mock_write, mock_execute, connected, make_pr):
        prs = [make_pr(1, created_at="2026-10-01T10:00:00Z"), make_pr(2, created_at="2026-10-02T10:00:00Z")]
        mock_fetch.return_value = {"success": True, "pull_requests": prs, "errors": []}
        mock_write.return_value = {"success": True, "report_path": "/tmp/r.md", "content": "", "errors": []}

        result = runner.invoke(app, ["consolidate", "--prs", "1,2", "--strategy", "rolling-up", "--execute"])

        assert result.exit_code == 0
        assert "requires manual execution" in result.stdout
        mock_execute.assert_not_called()

    @patch("_pr_agent.cli.execute_consolidation")
    @patch("_pr_agent.cli.write_consolidation_report")
    @patch("_pr_agent.cli.fetch_pull_requests")
    def test_keep_latest_executes(self, mock_fetch, mock_write, mock_execute, connected, make_pr):
        prs = [make_pr(1, created_at="2026-10-01T10:00:00Z"), make_pr(2, created_at="2026-10-02T10:00:00Z")]
        mock_fetch.return_value = {"success": True, "pull_requests": prs, "errors": []}
        mock_write.return_value = {"success": True, "report_path": "/tmp/r.md", "content": "", "errors": []}
        mock_execute.return_value = {"success": True, "manual": False, "closed_prs": [1],
                                     "approved": True, "merged": False, "errors": []}

        result = runner.invoke(app, ["consolidate", "--prs", "1-2", "--strategy", "keep-latest", "--execute"])

        assert result.exit_code == 0
        plan = mock_execute.call_args.args[0]
        assert plan["keep_pr"] == 2
        assert plan["close_prs"] == [1]
        assert mock_execute.call_args.kwargs == {"merge": False}


class TestDuplicatesCommand:
    """Test suite for `pr-agent duplicates`."""

    def test_invalid_strategy(self):
        result = runner.invoke(app, ["duplicates", "--strategy", "keep-middle"])

        assert result.exit_code == 1

    def test_no_duplicates(self, connected, make_pr):
        with patch("_pr_agent.cli.list_open_prs", return_value=[make_pr(1, title="a"), make_pr(2, title="b")]):
            result = runner.invoke(app, ["duplicates"])

        assert result.exit_code == 0
        assert "No groups of duplicate PRs found" in result.stdout

    @patch("_pr_agent.cli.execute_consolidation")
    def test_keep_oldest_with_yes(self, mock_execute, connected, make_pr):
        prs = [make_pr(1, created_at="2026-10-01T10:00:00Z"), make_pr(2, created_at="2026-10-02T10:00:00Z")]
        mock_execute.return_value = {"success": True, "manual": False, "closed_prs": [2],
                                     "approved": False, "merged": False, "errors": []}

        with patch("_pr_agent.cli.list_open_prs", return_value=prs):
            result = runner.invoke(app, ["duplicates", "--strategy", "keep-oldest", "--yes"])

        assert result.exit_code == 0
        plan = mock_execute.call_args.args[0]
        assert plan["keep_pr"] == 1
        assert plan["close_prs"] == [2]
        assert "Closed 1 PRs" in result.stdout

    @patch("_pr_agent.cli.execute_consolidation")
    def test_declined_confirmation(self, mock_execute, connected, make_pr):
        prs = [make_pr(1), make_pr(2)]

        with patch("_pr_agent.cli.list_open_prs", return_value=prs):
            result = runner.invoke(app, ["duplicates"], input="n\n")

        assert result.exit_code == 0
        assert "Operation cancelled" in result.stdout
        mock_execute.assert_not_called()


class TestOpenPrListingFailures:
    """Test suite for GitHub refusing to list open PRs."""

    @pytest.mark.parametrize("args", [
        ["analyze"],
        ["consolidate"],
        ["compare"],
        ["duplicates"],
    ])
    def test_http_error_exits_1(self, args, connected):
        connected.list_open_pull_requests.side_effect = requests.HTTPError("401 Unauthorized")

        result = runner.invoke(app, args)

        assert result.exit_code == 1
        assert "Could not list open PRs: 401 Unauthorized" in result.stdout
        assert "No open PRs found" not in result.stdout
