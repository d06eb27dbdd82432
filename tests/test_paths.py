"""
Tests for the paths module.

Verify that project root detection and canonical paths work correctly.
"""

import pytest

from shooting_report.paths import (
    CONFIG_DIR,
    FIGURES_DIR,
    LOGS_DIR,
    METADATA_DIR,
    PROCESSED_DIR,
    PROJECT_ROOT,
    RAW_DIR,
    SCRIPTS_DIR,
    SRC_DIR,
    TABLES_DIR,
    TESTS_DIR,
    find_project_root,
)


class TestProjectRoot:
    """Tests for project root detection."""

    def test_project_root_exists(self):
        """PROJECT_ROOT should be a valid directory."""
        assert PROJECT_ROOT.exists()
        assert PROJECT_ROOT.is_dir()

    def test_project_root_marker_exists(self):
        """The .project-root marker file should exist."""
        marker = PROJECT_ROOT / ".project-root"
        assert marker.exists(), "Missing .project-root marker file"

    def test_find_project_root_from_subdir(self):
        """find_project_root should work from any subdirectory."""
        subdir = PROJECT_ROOT / "src" / "shooting_report"
        assert find_project_root(subdir) == PROJECT_ROOT

    def test_find_project_root_raises_on_invalid_path(self, tmp_path):
        """find_project_root should raise if no marker found."""
        with pytest.raises(FileNotFoundError):
            find_project_root(tmp_path)

    def test_find_project_root_from_marker_dir(self, tmp_path):
        (tmp_path / ".project-root").touch()
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        assert find_project_root(nested) == tmp_path.resolve()


class TestCanonicalPaths:
    """Tests for canonical path definitions."""

    def test_data_layout(self):
        assert RAW_DIR.parent == PROCESSED_DIR.parent
        assert RAW_DIR.name == "raw"
        assert PROCESSED_DIR.name == "processed"
        assert METADATA_DIR.parent == PROCESSED_DIR

    def test_report_layout(self):
        assert FIGURES_DIR.parent == TABLES_DIR.parent
        assert FIGURES_DIR.name == "figures"
        assert TABLES_DIR.name == "tables"

    def test_config_file_present(self):
        """configs/params.yml ships with the project."""
        assert (CONFIG_DIR / "params.yml").exists()

    def test_all_paths_absolute(self):
        """All canonical paths should be absolute and free of '..'."""
        for p in [PROJECT_ROOT, RAW_DIR, PROCESSED_DIR, METADATA_DIR, CONFIG_DIR,
                  LOGS_DIR, FIGURES_DIR, TABLES_DIR, SRC_DIR, SCRIPTS_DIR, TESTS_DIR]:
            assert p.is_absolute(), f"Path not absolute: {p}"
            assert ".." not in str(p), f"Path contains '..': {p}"
