"""Tests for the settings helpers."""

from unittest.mock import patch

from _pr_agent import config


class TestConfig:
    """Test suite for the config dict builders."""

    def test_split_list_drops_blanks(self):
        assert config._split_list(" docs/ , ,*.md,") == ["docs/", "*.md"]

    def test_load_project_config_returns_copies(self):
        with patch.object(config, "CRITICAL_DIRECTORIES", ["app/api"]):
            project = config.load_project_config()

        assert project["critical_directories"] == ["app/api"]
        assert set(project) == {"critical_directories", "test_required", "automerge_patterns"}
        project["test_required"].append("extra")
        assert "extra" not in config.TEST_REQUIRED_DIRS

    def test_output_config(self):
        with patch.object(config, "OUTPUT_DIR", "/tmp/reports"):
            assert config.get_output_config() == {
                "dir_path": "/tmp/reports",
                "timestamp_format": "MM-DD-YYYY_HH-MM-SS",
            }
