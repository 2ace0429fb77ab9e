"""Tests for dependency detection, integration points, and map rendering."""

import logging

import pytest

from _pr_agent.consolidation_map import (
    create_consolidation_map,
    detect_dependencies,
    generate_implementation_plan,
    generate_visual_map,
    identify_integration_points,
)


def edge(from_pr, to_pr, dependency_type="builds-on", confidence=0.7):
    return {
        "from_pr": from_pr,
        "to_pr": to_pr,
        "dependency_type": dependency_type,
        "files": [],
        "confidence": confidence,
        "reason": "test",
    }


@pytest.fixture
def auth_prs(make_pr, make_file):
    """#2 builds on #1: same file, later, commit and branch both point at #1."""
    first = make_pr(
        1,
        title="feat: auth login",
        head_ref="feature-auth",
        created_at="2026-10-01T10:00:00Z",
        files=[make_file("app/auth.ts")],
    )
    second = make_pr(
        2,
        title="fix: auth logout",
        head_ref="feature-auth-ui",
        body="Depends on #1 and #99",
        created_at="2026-10-02T10:00:00Z",
        files=[make_file("app/auth.ts"), make_file("app/ui.tsx")],
        commits=[{"sha": "abc", "message": "Follow-up to #1"}],
    )
    return [first, second]


class TestDetectDependencies:
    """Test suite for dependency heuristics."""

    def test_edges_and_deduplication(self, auth_prs):
        deps = detect_dependencies(auth_prs)

        by_key = {(d["from_pr"], d["to_pr"], d["dependency_type"]): d for d in deps}
        assert set(by_key) == {
            (2, 1, "builds-on"),
            (2, 1, "depends-on"),
            (1, 2, "conflicts-with"),
            (2, 1, "conflicts-with"),
        }

        builds_on = by_key[(2, 1, "builds-on")]
        assert builds_on["confidence"] == 0.7
        assert builds_on["files"] == ["app/auth.ts"]
        assert builds_on["reason"] == "Sequential modification to app/auth.ts"

        depends_on = by_key[(2, 1, "depends-on")]
        assert depends_on["confidence"] == 0.9
        assert depends_on["reason"] == "Commit message references PR #1"

        assert by_key[(1, 2, "conflicts-with")]["reason"] == "Modified same files: app/auth.ts"

    def test_description_reference_and_no_self_edges(self, make_pr):
        prs = [
            make_pr(5, body="Part of #5", created_at="2026-10-01T10:00:00Z"),
            make_pr(6, body="Needs #5 first", head_ref="misc", created_at="2026-10-02T10:00:00Z"),
        ]

        deps = detect_dependencies(prs)

        assert deps == [{
            "from_pr": 6,
            "to_pr": 5,
            "dependency_type": "depends-on",
            "files": [],
            "confidence": 0.8,
            "reason": "PR description references PR #5",
        }]

    def test_branch_name_with_pr_number(self, make_pr):
        prs = [
            make_pr(7, head_ref="base-work", created_at="2026-10-01T10:00:00Z"),
            make_pr(8, head_ref="followup-to-7", created_at="2026-10-02T10:00:00Z"),
        ]

        deps = detect_dependencies(prs)

        assert [(d["from_pr"], d["to_pr"], d["confidence"]) for d in deps] == [(8, 7, 0.6)]

    def test_long_overlap_reason_is_truncated(self, make_pr, make_file):
        paths = ["a.ts", "b.ts", "c.ts", "d.ts"]
        prs = [
            make_pr(1, head_ref="x", files=[make_file(p) for p in paths]),
            make_pr(2, head_ref="y", files=[make_file(p) for p in paths]),
        ]

        deps = detect_dependencies(prs)

        conflict = next(d for d in deps if d["dependency_type"] == "conflicts-with")
        assert conflict["reason"] == "Modified same files: a.ts, b.ts, c.ts, ..."
        assert conflict["files"] == paths


class TestIdentifyIntegrationPoints:
    """Test suite for grouping and ordering integration points."""

    def test_cluster_then_chunk(self, make_pr):
        prs = [make_pr(n, title=f"feat: change {n}") for n in range(1, 6)]

        points = identify_integration_points(prs, [edge(2, 1)], min_size=2, max_size=5)

        assert [p["prs"] for p in points] == [[1, 2], [3, 4, 5]]
        assert [p["id"] for p in points] == ["integration-point-1", "integration-point-2"]

    def test_small_remainder_becomes_final_point(self, make_pr):
        prs = [make_pr(n) for n in range(1, 4)]

        points = identify_integration_points(prs, [edge(2, 1), edge(3, 2)], min_size=2, max_size=2)

        assert [p["prs"] for p in points] == [[1, 2], [3]]
        assert points[1]["description"] == "Final integration point for remaining PRs"

    def test_weak_edges_do_not_cluster(self, make_pr):
        prs = [make_pr(1), make_pr(2)]

        points = identify_integration_points(
            prs, [edge(2, 1, confidence=0.6), edge(2, 1, "conflicts-with", 0.5)], min_size=3, max_size=5
        )

        assert [p["prs"] for p in points] == [[1, 2]]
        assert points[0]["description"] == "Final integration point for remaining PRs"

    def test_required_points_come_first(self, make_pr):
        prs = [make_pr(n) for n in range(1, 5)]
        deps = [edge(1, 2), edge(3, 4), edge(1, 3, "depends-on", 0.6)]

        points = identify_integration_points(prs, deps, min_size=2, max_size=5)

        assert [p["prs"] for p in points] == [[3, 4], [1, 2]]
        assert points[1]["required_before"] == ["integration-point-2"]

    def test_cycle_keeps_creation_order(self, make_pr, caplog):
        prs = [make_pr(n) for n in range(1, 5)]
        deps = [
            edge(1, 2),
            edge(3, 4),
            edge(1, 3, "depends-on", 0.6),
            edge(4, 2, "depends-on", 0.6),
        ]

        with caplog.at_level(logging.WARNING):
            points = identify_integration_points(prs, deps, min_size=2, max_size=5)

        assert [p["id"] for p in points] == ["integration-point-1", "integration-point-2"]
        assert "Cycle detected" in caplog.text

    def test_description_and_test_requirements(self, make_pr, make_file):
        prs = [
            make_pr(1, title="feat: auth login", files=[make_file("app/api/login.ts")]),
            make_pr(2, title="fix: auth logout", files=[make_file("app/components/Logout.tsx")]),
        ]

        points = identify_integration_points(prs, [edge(2, 1)], min_size=2, max_size=5)

        assert points[0]["description"] == "Integration point for auth, feat, login changes"
        assert points[0]["test_requirements"] == ["api", "ui"]


class TestRendering:
    """Test suite for the Mermaid map and implementation plan."""

    def test_create_consolidation_map(self, auth_prs):
        result = create_consolidation_map(list(reversed(auth_prs)))

        assert result["final_pr"] == 2
        assert [p["prs"] for p in result["integration_points"]] == [[1, 2]]

        visual = result["visual_map"]
        assert visual.startswith("```mermaid\ngraph TD")
        assert "    PR1[PR #1: feat: auth login]" in visual
        assert "    PR2 --> integration-point-1" in visual
        assert "    integration-point-1 --> Final" in visual
        assert "    class Final final" in visual

        plan = result["implementation_plan"]
        assert "1. Start with PR #1 as base\n2. Add changes from PR #2\n3. Create integration branch" in plan
        assert "## Final Consolidation" in plan
        assert "1. Start with branch `integration-point-1`\n2. Add remaining changes from PR #2" in plan

    def test_missing_creation_time_sorts_first(self, make_pr):
        prs = [make_pr(2, created_at="2026-10-02T10:00:00Z"), make_pr(1, created_at="")]

        result = create_consolidation_map(prs)

        assert result["final_pr"] == 2
        assert "1. Start with PR #1 as base" in result["implementation_plan"]

    def test_empty_map(self):
        result = create_consolidation_map([])

        assert result["final_pr"] is None
        assert result["integration_points"] == []
        assert "Final" not in result["visual_map"]

    def test_required_edge_direction_and_long_titles(self, make_pr):
        prs = [make_pr(1, title="x" * 40), make_pr(2)]
        points = [
            {"id": "integration-point-2", "prs": [2], "required_before": [], "description": "B", "test_requirements": []},
            {"id": "integration-point-1", "prs": [1], "required_before": ["integration-point-2"],
             "description": "A", "test_requirements": []},
        ]

        visual = generate_visual_map(prs, [], points, 2)

        assert f"PR1[PR #1: {'x' * 27}...]" in visual
        assert "    integration-point-2 --> integration-point-1" in visual

    def test_later_points_start_from_previous_branch(self, make_pr):
        prs = [make_pr(n) for n in range(1, 5)]
        points = [
            {"id": "integration-point-1", "prs": [1, 2], "required_before": [],
             "description": "First", "test_requirements": ["api"]},
            {"id": "integration-point-2", "prs": [3, 4], "required_before": [],
             "description": "Second", "test_requirements": []},
        ]

        plan = generate_implementation_plan(prs, points, 4)

        assert "3. Run api tests\n4. Create integration branch `integration-point-1`" in plan
        assert "## Second\n\n1. Start with branch `integration-point-1`\n2. Add changes from PR #3" in plan
