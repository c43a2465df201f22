"""Tests for environment-driven configuration."""

import pytest

from stat3_deg.core.config import (
    get_de_config,
    get_env,
    get_file_path,
    get_overlap_config,
    get_path,
    get_visualization_config,
    setup_directories,
)


class TestGetEnv:

    @pytest.mark.parametrize(
        ("raw", "default", "expected"),
        [
            ("yes", False, True),
            ("0", True, False),
            ("12", 5, 12),
            ("0.01", 0.05, 0.01),
            ("STAT3KO:WT, Cas9:WT", ["x"], ["STAT3KO:WT", "Cas9:WT"]),
            ("", ["x"], []),
        ],
    )
    def test_converts_by_default_type(self, monkeypatch, raw, default, expected):
        monkeypatch.setenv("STAT3_DEG_TEST_VALUE", raw)
        assert get_env("STAT3_DEG_TEST_VALUE", default) == expected

    def test_unset_returns_default(self, monkeypatch):
        monkeypatch.delenv("STAT3_DEG_TEST_VALUE", raising=False)
        assert get_env("STAT3_DEG_TEST_VALUE", 4) == 4

    def test_bad_int_falls_back(self, monkeypatch):
        monkeypatch.setenv("STAT3_DEG_TEST_VALUE", "four")
        assert get_env("STAT3_DEG_TEST_VALUE", 4) == 0


class TestSections:

    def test_de_defaults(self, monkeypatch):
        monkeypatch.delenv("STAT3_DEG_DE_CONTRASTS", raising=False)
        de_cfg = get_de_config()
        assert de_cfg["contrasts"] == ["STAT3KO:WT", "STAT3KO:Cas9", "Cas9:WT"]
        assert de_cfg["lfc_threshold"] == 1.0
        assert de_cfg["alt_hypothesis"] == "greaterAbs"

    def test_contrasts_override(self, monkeypatch):
        monkeypatch.setenv("STAT3_DEG_DE_CONTRASTS", "STAT3KO:WT")
        assert get_de_config()["contrasts"] == ["STAT3KO:WT"]

    def test_invalid_figsize(self, monkeypatch):
        monkeypatch.setenv("STAT3_DEG_VISUALIZATION_DEFAULT_FIGSIZE", "10")
        assert get_visualization_config()["default_figsize"] == (10, 6)

    def test_overlap_background_sizes(self, monkeypatch):
        monkeypatch.delenv("STAT3_DEG_OVERLAP_REFERENCE_BACKGROUND", raising=False)
        monkeypatch.setenv("STAT3_DEG_OVERLAP_LITERATURE_BACKGROUND", "11500")
        overlap_cfg = get_overlap_config()
        assert overlap_cfg["reference_background"] == 0
        assert overlap_cfg["literature_background"] == 11500


class TestPaths:

    def test_paths_follow_environment(self, monkeypatch, tmp_path):
        monkeypatch.setenv("STAT3_DEG_PATHS_DATA_DIR", str(tmp_path / "in"))
        monkeypatch.setenv("STAT3_DEG_PATHS_RESULTS_DIR", str(tmp_path / "out"))
        assert get_path("counts_dir") == (tmp_path / "in" / "counts").resolve()
        assert get_path("experimental_tables_dir") == (
            tmp_path / "out" / "tables" / "experimental"
        ).resolve()
        assert get_file_path("sample_sheet") == (tmp_path / "in" / "samples.tsv").resolve()

    def test_unknown_keys(self):
        with pytest.raises(KeyError):
            get_path("nowhere")
        with pytest.raises(KeyError):
            get_file_path("nothing")

    def test_file_path_under_given_data_dir(self, monkeypatch, tmp_path):
        monkeypatch.setenv("STAT3_DEG_PATHS_DATA_DIR", str(tmp_path / "configured"))
        path = get_file_path("reference_universe", tmp_path / "other")
        assert path.parent == (tmp_path / "other" / "annotation").resolve()

    def test_setup_directories(self, monkeypatch, tmp_path):
        monkeypatch.setenv("STAT3_DEG_PATHS_RESULTS_DIR", str(tmp_path / "out"))
        monkeypatch.setenv("STAT3_DEG_PATHS_LOGS_DIR", str(tmp_path / "logs"))
        setup_directories(include_experimental=True)
        assert (tmp_path / "out" / "figures" / "experimental").is_dir()
        assert (tmp_path / "out" / "tables").is_dir()
        assert (tmp_path / "logs").is_dir()
