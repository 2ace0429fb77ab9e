"""Tests for package.json dependency analysis."""

from _pr_agent.dependency_analyzer import (
    analyze_package_json_changes,
    check_dependency_conflicts,
    check_missing_peer_dependencies,
    detect_version_conflicts,
    extract_added_dependencies,
    extract_removed_dependencies,
    extract_version_changes,
    find_duplicate_libraries,
)

VERSION_BUMP = (
    '@@ -10,7 +10,8 @@\n'
    '   "dependencies": {\n'
    '-    "next": "14.0.0",\n'
    '+    "next": "14.1.0",\n'
    '+    "zod": "^3.22.0",\n'
    '     "react": "18.2.0"\n'
)


class TestPatchExtraction:
    """Test suite for the +/- line extractors."""

    def test_added_and_removed(self):
        assert extract_added_dependencies(VERSION_BUMP) == ["next@14.1.0", "zod@^3.22.0"]
        assert extract_removed_dependencies(VERSION_BUMP) == ["next@14.0.0"]

    def test_version_change_needs_adjacent_lines(self):
        assert extract_version_changes(VERSION_BUMP) == ["next: 14.0.0 → 14.1.0"]

    def test_version_change_ignores_different_names(self):
        patch = '-    "moment": "2.29.0",\n+    "dayjs": "1.11.0",'

        assert extract_version_changes(patch) == []


class TestAnalyzePackageJsonChanges:
    """Test suite for the per-file change summary."""

    def test_summary_lines(self, make_pr, make_file):
        patch = VERSION_BUMP + '   "scripts": {\n'
        pr = make_pr(1, files=[make_file("package.json", patch), make_file("app/page.tsx", "+x")])

        assert analyze_package_json_changes(pr) == [
            "package.json: Added dependencies: next@14.1.0, zod@^3.22.0",
            "package.json: Removed dependencies: next@14.0.0",
            "package.json: Changed versions: next: 14.0.0 → 14.1.0",
            "package.json: Modified npm scripts",
        ]

    def test_package_json_without_patch_is_skipped(self, make_pr, make_file):
        pr = make_pr(1, files=[make_file("package.json", None)])

        assert analyze_package_json_changes(pr) == []


class TestConflictsDuplicatesPeers:
    """Test suite for version conflicts, duplicate libraries, and peers."""

    def test_version_bump_reports_multiple_versions(self, make_pr, make_file):
        pr = make_pr(1, files=[make_file("package.json", VERSION_BUMP)])

        assert detect_version_conflicts(pr) == ["next: Multiple versions specified (14.0.0, 14.1.0)"]

    def test_duplicate_date_libraries(self, make_pr, make_file):
        patch = '+    "moment": "2.29.0",\n+    "date-fns": "3.0.0",'
        pr = make_pr(1, files=[make_file("package.json", patch)])

        assert find_duplicate_libraries(pr) == ["Duplicate libraries: moment, date-fns"]

    def test_scoped_prefix_counts_as_member(self, make_pr, make_file):
        patch = '+    "@stitches/react": "1.2.8",\n+    "styled-components": "6.0.0",'
        pr = make_pr(1, files=[make_file("package.json", patch)])

        assert find_duplicate_libraries(pr) == [
            "Duplicate libraries: styled-components, @stitches"
        ]

    def test_missing_peer(self, make_pr, make_file):
        patch = '+    "react-redux": "9.0.0",'
        pr = make_pr(1, files=[make_file("package.json", patch)])

        assert check_missing_peer_dependencies(pr) == ["react-redux requires peer dependency redux"]

    def test_peer_added_together(self, make_pr, make_file):
        patch = '+    "react-redux": "9.0.0",\n+    "redux": "5.0.0",'
        pr = make_pr(1, files=[make_file("package.json", patch)])

        assert check_missing_peer_dependencies(pr) == []


class TestCheckDependencyConflicts:
    """Test suite for the overall dependency risk."""

    def test_no_package_changes_is_low(self, simple_pr):
        result = check_dependency_conflicts(simple_pr)

        assert result["overall_risk"] == "Low"
        assert result["package_json_changes"] == []

    def test_missing_peer_is_high(self, make_pr, make_file):
        pr = make_pr(1, files=[make_file("package.json", '+    "react-redux": "9.0.0",')])

        assert check_dependency_conflicts(pr)["overall_risk"] == "High"

    def test_duplicates_are_medium(self, make_pr, make_file):
        patch = '+    "moment": "2.29.0",\n+    "dayjs": "1.11.0",'
        pr = make_pr(1, files=[make_file("package.json", patch)])

        result = check_dependency_conflicts(pr)

        assert result["version_conflicts"] == []
        assert result["overall_risk"] == "Medium"
