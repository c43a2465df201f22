# stat3_deg/core/config.py
"""Configuration management for the STAT3 DEG analysis pipeline."""

import logging
import os
from pathlib import Path
from typing import Any, Union

from stat3_deg.core.visualization_utils import DEFAULT_STYLE, SAVE_DPI

logger = logging.getLogger(__name__)

ENV_PREFIX = "STAT3_DEG"

# ===================================================
#  === Experiment Constants ===
# ===================================================
# Trailing pseudo-gene rows written by the read counter (no_feature, ambiguous,
# multimapped, unmapped).
SUMMARY_ROW_COUNT: int = 4
SUMMARY_ROW_PREFIXES: tuple[str, ...] = ("__", "N_")

# Contrasts as "test:reference" on the treatment factor.
DEFAULT_CONTRASTS: list[str] = ["STAT3KO:WT", "STAT3KO:Cas9", "Cas9:WT"]

# STAT3, labelled on every MA plot.
DEFAULT_GENES_OF_INTEREST: list[str] = ["ENSG00000168610"]

# ===================================================
#  === Environment Overrides ===
# ===================================================
ConfigValueType = Union[bool, int, float, str, list[str]]

_TRUE_STRINGS = frozenset({"1", "true", "t", "yes", "y", "on"})


def _convert_value(value: str, target_type: type) -> ConfigValueType:
    """Parse an environment string as ``target_type``.

    Lists are comma-separated; booleans accept 1/true/yes/on. A value that
    cannot be parsed as a number logs a warning and becomes 0.
    """
    text = value.strip()
    if target_type is bool:
        return text.lower() in _TRUE_STRINGS
    if target_type is list:
        return [item.strip() for item in text.split(",") if item.strip()]
    if target_type in (int, float):
        try:
            return target_type(text)
        except ValueError:
            logger.warning(f"Cannot read '{value}' as {target_type.__name__}; using 0.")
            return target_type(0)
    return value


def get_env(key: str, default: ConfigValueType) -> ConfigValueType:
    """Value of environment variable ``key`` converted to the type of ``default``.

    Args:
        key: Full variable name, e.g. ``STAT3_DEG_DE_ALPHA``.
        default: Returned unchanged when the variable is unset.
    """
    value = os.environ.get(key)
    return default if value is None else _convert_value(value, type(default))


def get_paths_config() -> dict[str, Any]:
    """Get the paths configuration."""
    return {
        "data_dir": get_env(f"{ENV_PREFIX}_PATHS_DATA_DIR", "data"),
        "results_dir": get_env(f"{ENV_PREFIX}_PATHS_RESULTS_DIR", "results"),
        "counts_dir_name": get_env(f"{ENV_PREFIX}_PATHS_COUNTS_DIR_NAME", "counts"),
        "annotation_dir_name": get_env(f"{ENV_PREFIX}_PATHS_ANNOTATION_DIR_NAME", "annotation"),
        "figures_dir_name": get_env(f"{ENV_PREFIX}_PATHS_FIGURES_DIR_NAME", "figures"),
        "tables_dir_name": get_env(f"{ENV_PREFIX}_PATHS_TABLES_DIR_NAME", "tables"),
        "experimental_dir_name": get_env(
            f"{ENV_PREFIX}_PATHS_EXPERIMENTAL_DIR_NAME", "experimental"
        ),
        "logs_dir": get_env(f"{ENV_PREFIX}_PATHS_LOGS_DIR", "logs"),
    }


def get_files_config() -> dict[str, Any]:
    """Get the files configuration."""
    return {
        "count_file_pattern": get_env(f"{ENV_PREFIX}_FILES_COUNT_FILE_PATTERN", "*.counts.txt"),
        "sample_sheet_file": get_env(f"{ENV_PREFIX}_FILES_SAMPLE_SHEET_FILE", "samples.tsv"),
        "protein_coding_file": get_env(
            f"{ENV_PREFIX}_FILES_PROTEIN_CODING_FILE", "protein_coding_genes.txt"
        ),
        "housekeeping_file": get_env(
            f"{ENV_PREFIX}_FILES_HOUSEKEEPING_FILE", "housekeeping_genes.txt"
        ),
        "reference_deg_file": get_env(f"{ENV_PREFIX}_FILES_REFERENCE_DEG_FILE", "reference_degs.txt"),
        "reference_universe_file": get_env(
            f"{ENV_PREFIX}_FILES_REFERENCE_UNIVERSE_FILE", "reference_expressed_genes.txt"
        ),
        "literature_deg_file": get_env(
            f"{ENV_PREFIX}_FILES_LITERATURE_DEG_FILE", "literature_degs.tsv"
        ),
        "literature_universe_file": get_env(
            f"{ENV_PREFIX}_FILES_LITERATURE_UNIVERSE_FILE", "literature_expressed_genes.txt"
        ),
    }


def get_loader_config() -> dict[str, Any]:
    """Get the count loader configuration."""
    return {
        "summary_rows": get_env(f"{ENV_PREFIX}_LOADER_SUMMARY_ROWS", SUMMARY_ROW_COUNT),
        "strip_versions": get_env(f"{ENV_PREFIX}_LOADER_STRIP_VERSIONS", True),
    }


def get_filter_config() -> dict[str, Any]:
    """Get the expression / biotype filter configuration."""
    return {
        "min_count": get_env(f"{ENV_PREFIX}_FILTER_MIN_COUNT", 5),
        "min_samples": get_env(f"{ENV_PREFIX}_FILTER_MIN_SAMPLES", 4),
        "protein_coding_only": get_env(f"{ENV_PREFIX}_FILTER_PROTEIN_CODING_ONLY", True),
    }


def get_exploratory_config() -> dict[str, Any]:
    """Get the exploratory (PCA / RLE) configuration."""
    return {
        "group_keys": get_env(f"{ENV_PREFIX}_EXPLORATORY_GROUP_KEYS", ["treatment", "batch"]),
        "pca_components": get_env(f"{ENV_PREFIX}_EXPLORATORY_PCA_COMPONENTS", 3),
        "pca_top_genes": get_env(f"{ENV_PREFIX}_EXPLORATORY_PCA_TOP_GENES", 500),
    }


def get_normalization_config() -> dict[str, Any]:
    """Get the housekeeping (RUVg) normalization configuration."""
    return {
        "run_ruv": get_env(f"{ENV_PREFIX}_NORMALIZATION_RUN_RUV", False),
        "housekeeping_top_n": get_env(f"{ENV_PREFIX}_NORMALIZATION_HOUSEKEEPING_TOP_N", 1000),
        "ruv_k": get_env(f"{ENV_PREFIX}_NORMALIZATION_RUV_K", 1),
    }


def get_de_config() -> dict[str, Any]:
    """Get the differential expression configuration."""
    return {
        "contrasts": get_env(f"{ENV_PREFIX}_DE_CONTRASTS", list(DEFAULT_CONTRASTS)),
        "factor": get_env(f"{ENV_PREFIX}_DE_FACTOR", "treatment"),
        "lfc_threshold": get_env(f"{ENV_PREFIX}_DE_LFC_THRESHOLD", 1.0),
        "alt_hypothesis": get_env(f"{ENV_PREFIX}_DE_ALT_HYPOTHESIS", "greaterAbs"),
        "alpha": get_env(f"{ENV_PREFIX}_DE_ALPHA", 0.05),
        "refit_cooks": get_env(f"{ENV_PREFIX}_DE_REFIT_COOKS", True),
        "n_cpus": get_env(f"{ENV_PREFIX}_DE_N_CPUS", 1),
    }


def get_overlap_config() -> dict[str, Any]:
    """Get the comparative / overlap configuration."""
    return {
        "reference_contrast": get_env(f"{ENV_PREFIX}_OVERLAP_REFERENCE_CONTRAST", "WT_vs_Cas9"),
        "literature_contrast": get_env(
            f"{ENV_PREFIX}_OVERLAP_LITERATURE_CONTRAST", "WT_vs_STAT3KO"
        ),
        "genes_of_interest": get_env(
            f"{ENV_PREFIX}_OVERLAP_GENES_OF_INTEREST", list(DEFAULT_GENES_OF_INTEREST)
        ),
        # Shared-background sizes used when a study ships no expressed-gene universe; 0 = unset
        "reference_background": get_env(f"{ENV_PREFIX}_OVERLAP_REFERENCE_BACKGROUND", 0),
        "literature_background": get_env(f"{ENV_PREFIX}_OVERLAP_LITERATURE_BACKGROUND", 0),
    }


def get_visualization_config() -> dict[str, Any]:
    """Get the plotting configuration. ``default_figsize`` is read as 'width,height'."""
    raw_figsize = get_env(f"{ENV_PREFIX}_VISUALIZATION_DEFAULT_FIGSIZE", [])
    if len(raw_figsize) == 2 and all(x.isdigit() for x in raw_figsize):
        figsize = (int(raw_figsize[0]), int(raw_figsize[1]))
    else:
        if raw_figsize:
            logger.warning(f"Ignoring figure size {raw_figsize}; expected 'width,height'.")
        figsize = (10, 6)
    return {
        "style": get_env(f"{ENV_PREFIX}_VISUALIZATION_STYLE", DEFAULT_STYLE),
        "default_figsize": figsize,
        "save_dpi": get_env(f"{ENV_PREFIX}_VISUALIZATION_SAVE_DPI", SAVE_DPI),
        "save_figures": get_env(f"{ENV_PREFIX}_VISUALIZATION_SAVE_FIGURES", True),
    }


def get_logging_config() -> dict[str, Any]:
    """Returns config for logging setup."""
    return {
        "level": get_env(f"{ENV_PREFIX}_LOGGING_LEVEL", "INFO"),
        "file_logging": get_env(f"{ENV_PREFIX}_LOGGING_FILE_LOGGING", True),
        "console_logging": get_env(f"{ENV_PREFIX}_LOGGING_CONSOLE_LOGGING", True),
        "log_format": get_env(
            f"{ENV_PREFIX}_LOGGING_FORMAT", "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        ),
        "root_logger_name": get_env(f"{ENV_PREFIX}_LOGGING_ROOT_LOGGER_NAME", "stat3_deg"),
    }


# ===================================================
#  === Path Construction Logic ===
# ===================================================
def get_path(key: str) -> Path:
    """Constructs and returns an absolute path for a given config key."""
    paths_cfg = get_paths_config()
    base_data_dir = Path(paths_cfg["data_dir"]).resolve()
    base_results_dir = Path(paths_cfg["results_dir"]).resolve()
    figures_dir = base_results_dir / paths_cfg["figures_dir_name"]
    tables_dir = base_results_dir / paths_cfg["tables_dir_name"]

    path_map: dict[str, Path] = {
        "data_dir": base_data_dir,
        "results_dir": base_results_dir,
        "counts_dir": base_data_dir / paths_cfg["counts_dir_name"],
        "annotation_dir": base_data_dir / paths_cfg["annotation_dir_name"],
        "figures_dir": figures_dir,
        "tables_dir": tables_dir,
        "experimental_figures_dir": figures_dir / paths_cfg["experimental_dir_name"],
        "experimental_tables_dir": tables_dir / paths_cfg["experimental_dir_name"],
        "logs_dir": Path(paths_cfg["logs_dir"]).resolve(),
    }
    if key in path_map:
        return path_map[key]
    msg = f"Unknown path key: '{key}'. Available: {list(path_map.keys())}"
    logger.error(msg)
    raise KeyError(msg)


# ===================================================
#  === File Path Construction Logic ===
# ===================================================
def get_file_path(file_key: str, data_dir: Path | str | None = None) -> Path:
    """Constructs the full, absolute path to a specific input file.

    ``data_dir`` replaces the configured data directory when given.
    """
    files_cfg = get_files_config()
    if data_dir is None:
        data_dir = get_path("data_dir")
        annotation_dir = get_path("annotation_dir")
    else:
        data_dir = Path(data_dir).resolve()
        annotation_dir = data_dir / get_paths_config()["annotation_dir_name"]
    file_map: dict[str, Path] = {
        "sample_sheet": data_dir / files_cfg["sample_sheet_file"],
        "protein_coding": annotation_dir / files_cfg["protein_coding_file"],
        "housekeeping": annotation_dir / files_cfg["housekeeping_file"],
        "reference_degs": annotation_dir / files_cfg["reference_deg_file"],
        "reference_universe": annotation_dir / files_cfg["reference_universe_file"],
        "literature_degs": annotation_dir / files_cfg["literature_deg_file"],
        "literature_universe": annotation_dir / files_cfg["literature_universe_file"],
    }
    if file_key in file_map:
        return file_map[file_key]
    msg = f"Unknown file key: '{file_key}'. Available: {list(file_map.keys())}"
    logger.error(msg)
    raise KeyError(msg)


# ===================================================
#  === Directory Initialization ===
# ===================================================
def setup_directories(include_experimental: bool = False) -> None:
    """Creates the output directories (results, figures, tables, logs)."""
    logger.info("Setting up output directories...")
    dir_keys = ["results_dir", "figures_dir", "tables_dir", "logs_dir"]
    if include_experimental:
        dir_keys += ["experimental_figures_dir", "experimental_tables_dir"]

    for key in dir_keys:
        dir_path = get_path(key)
        try:
            logger.debug(f"Ensuring directory exists: {dir_path}")
            dir_path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.critical(f"Could not create or access directory {dir_path}: {e!s}")
            msg = f"Fatal: Cannot access/create {dir_path}"
            raise SystemExit(msg) from e
    logger.info("Directory setup process completed successfully.")
