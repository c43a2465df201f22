#!/usr/bin/env python
# scripts/run_analysis.py

"""Main entry point for the STAT3 knockout differential expression pipeline."""

import argparse
import functools
import logging
import os
import sys
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

import tomllib

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt
import pandas as pd
from matplotlib.figure import Figure
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from stat3_deg.core.config import (
    ENV_PREFIX,
    get_de_config,
    get_exploratory_config,
    get_filter_config,
    get_normalization_config,
    get_overlap_config,
    get_path,
    get_visualization_config,
    setup_directories,
)
from stat3_deg.core.data_loader import DataLoader
from stat3_deg.core.logging import setup_logging
from stat3_deg.core.utils import ensure_directory
from stat3_deg.differential.expression import DEResult, DifferentialExpression, parse_contrasts
from stat3_deg.differential.overlap import OverlapAnalysis, intersection_counts
from stat3_deg.differential.visualization import DEVisualization
from stat3_deg.preprocessing.exploratory import ExploratoryVisualization, group_silhouette, run_pca
from stat3_deg.preprocessing.filtering import ExpressionFilter
from stat3_deg.preprocessing.normalization import HousekeepingNormalization

# --- Global Setup ---
setup_logging()
logger = setup_logging(__name__)
console = Console()

# ===================================================
#  === Utility Functions ===
# ===================================================


def print_header(title: str) -> None:
    """Prints a title header using Rich Panel."""
    console.print(
        Panel(f"[bold cyan]{title}[/]", border_style="bold cyan", expand=False, padding=(0, 5))
    )


def save_dataframe(
    df: pd.DataFrame | None,
    filename: str,
    output_dir: Path,
    index: bool = False,
    sep: str = ",",
) -> None:
    """Saves a DataFrame, ensuring the parent directory exists."""
    if df is None:
        logger.debug(f"Skipping save '{filename}': DataFrame is None.")
        return
    if df.empty:
        logger.info(f":cross_mark: Skipping save '{filename}': DataFrame is empty.")
        return

    filepath = output_dir / filename
    try:
        ensure_directory(filepath.parent)
        df.to_csv(filepath, index=index, sep=sep)
        logger.info(f":floppy_disk: [green]Saved table:[/green] {filepath.resolve()}")
    except OSError as e:
        logger.exception(f":cross_mark: [bold red]Failed to save table '{filename}':[/] {e!s}")


def save_visualization(
    fig: Figure | None, filename: str, output_dir: Path, dpi: int | None = None
) -> None:
    """Saves a Matplotlib Figure at the configured DPI, ensuring the parent directory exists."""
    dpi = dpi or get_visualization_config()["save_dpi"]
    if fig is None:
        logger.warning(f":cross_mark: Skipping save '{filename}': Figure object is None.")
        return

    filepath = output_dir / filename
    try:
        ensure_directory(filepath.parent)
        fig.savefig(filepath, dpi=dpi, bbox_inches="tight")
        logger.info(f":chart_increasing: [green]Saved visualization:[/green] {filepath.resolve()}")
    except OSError as e:
        logger.exception(
            f":cross_mark: [bold red]Failed to save visualization '{filename}':[/] {e!s}"
        )
    finally:
        plt.close(fig)


def try_plot(
    plot_func: Callable[..., Figure | None], filename: str, output_dir: Path, *args: Any, **kwargs: Any
) -> bool:
    """Draw and save one figure; plotting failures are logged, never fatal."""
    plot_func_name = getattr(plot_func, "__name__", "unnamed_plot_func")
    logger.info(f":bar_chart: Generating '{filename}' using {plot_func_name}...")
    try:
        fig = plot_func(*args, **kwargs)
    except Exception as e:
        logger.exception(f"Failed to generate plot '{filename}': {e}")
        return False
    save_visualization(fig, filename, output_dir)
    return fig is not None


def analysis_step(section_title: str) -> Callable[..., Any]:
    """Decorator using Rich for section headers and status.

    Exceptions are logged and turned into a ``None`` return, which the caller
    treats as a failed (terminal) step.
    """

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            console.rule(f"[bold blue]:play_button: {section_title} [/]", style="blue")
            start_time = time.time()
            result = None
            success = True
            try:
                result = func(*args, **kwargs)
            except Exception:
                logger.exception(f"Step '{section_title}' encountered a critical error")
                success = False
            finally:
                elapsed = time.time() - start_time
                status_icon = ":white_check_mark:" if success else ":cross_mark:"
                status_color = "green" if success else "red"
                logger.info(
                    f"{status_icon} [{status_color}]Step '{section_title}' {'finished' if success else 'failed'} in {elapsed:.2f}s.[/{status_color}]"
                )
            return result if success else None

        return wrapper

    return decorator


# ===================================================
#  === Pipeline Steps ===
# ===================================================
@analysis_step("1. Loading Counts and Annotation")
def load_data(data_dir: Path | None) -> DataLoader:
    loader = DataLoader(data_dir=data_dir)
    loader.load_all_data()
    stats = loader.get_basic_stats()
    table = Table(title="Input Summary", show_header=False, box=None)
    table.add_column("Item", style="dim")
    table.add_column("Value")
    table.add_row("Genes x samples", f"{stats['num_genes']} x {stats['num_samples']}")
    table.add_row("Library sizes", f"{stats['min_library_size']:,} - {stats['max_library_size']:,}")
    table.add_row("Samples per treatment", str(stats.get("samples_per_treatment", {})))
    table.add_row("Samples per batch", str(stats.get("samples_per_batch", {})))
    console.print(table)
    return loader


@analysis_step("2. Expression and Biotype Filtering")
def filter_counts(loader: DataLoader, tables_dir: Path) -> pd.DataFrame:
    filter_cfg = get_filter_config()
    gene_filter = ExpressionFilter(filter_cfg["min_count"], filter_cfg["min_samples"])
    protein_coding = loader.protein_coding if filter_cfg["protein_coding_only"] else None
    filtered = gene_filter.apply(loader.counts, protein_coding)
    if filtered.empty:
        msg = "No genes left after filtering"
        raise ValueError(msg)
    save_dataframe(filtered, "filtered_counts.tsv", tables_dir, index=True, sep="\t")
    return filtered


@analysis_step("3. Exploratory PCA / RLE")
def run_exploration(
    counts: pd.DataFrame,
    samples: pd.DataFrame,
    figures_dir: Path,
    tables_dir: Path,
    make_plots: bool = True,
) -> bool:
    exp_cfg = get_exploratory_config()
    pca_result = run_pca(counts, exp_cfg["pca_components"], exp_cfg["pca_top_genes"])
    save_dataframe(
        pca_result.scores.join(samples), "pca_scores.tsv", tables_dir, index=True, sep="\t"
    )
    viz = ExploratoryVisualization()
    for key in exp_cfg["group_keys"]:
        if key not in samples.columns:
            logger.warning(f"Grouping key '{key}' not in sample sheet; skipping its plots.")
            continue
        silhouette = group_silhouette(pca_result, samples[key].astype(str))
        if silhouette is not None:
            logger.info(f"Silhouette of {key} groups in PC space: {silhouette:.3f}")
        if make_plots:
            try_plot(viz.plot_rle, f"rle_{key}.png", figures_dir, counts, samples, key)
            try_plot(viz.plot_pca, f"pca_{key}.png", figures_dir, pca_result, samples, key)
    return True


@analysis_step("4. [Experimental] Housekeeping-Gene Normalization")
def run_experimental_normalization(
    counts: pd.DataFrame, samples: pd.DataFrame, housekeeping: frozenset[str] | None
) -> bool:
    """Evaluate RUVg for manual inspection. Nothing computed here feeds later steps."""
    if not housekeeping:
        logger.warning("No housekeeping gene list available; experimental normalization skipped.")
        return True
    norm_cfg = get_normalization_config()
    exp_cfg = get_exploratory_config()
    figures_dir = get_path("experimental_figures_dir")
    tables_dir = get_path("experimental_tables_dir")

    normalizer = HousekeepingNormalization(norm_cfg["housekeeping_top_n"], norm_cfg["ruv_k"])
    ruv_result, pca_result = normalizer.evaluate(
        counts, housekeeping, exp_cfg["pca_components"], exp_cfg["pca_top_genes"]
    )
    save_dataframe(ruv_result.factors, "ruvg_factors.tsv", tables_dir, index=True, sep="\t")
    save_dataframe(
        ruv_result.normalized_counts, "ruvg_normalized_counts.tsv", tables_dir, index=True, sep="\t"
    )
    viz = ExploratoryVisualization()
    for key in exp_cfg["group_keys"]:
        if key not in samples.columns:
            continue
        try_plot(viz.plot_rle, f"ruvg_rle_{key}.png", figures_dir, ruv_result.normalized_counts,
                 samples, key, title="RUVg RLE")
        try_plot(viz.plot_pca, f"ruvg_pca_{key}.png", figures_dir, pca_result, samples, key,
                 title="RUVg PCA")
    logger.info(
        "[yellow]RUVg output written to the experimental folders only; "
        "compare its PCA with the raw-count PCA before adopting it.[/]"
    )
    return True


@analysis_step("5. Differential Expression")
def run_differential_expression(
    counts: pd.DataFrame, samples: pd.DataFrame, tables_dir: Path
) -> dict[str, DEResult]:
    de_cfg = get_de_config()
    contrasts = parse_contrasts(de_cfg["contrasts"], factor=de_cfg["factor"])
    runner = DifferentialExpression(
        lfc_threshold=de_cfg["lfc_threshold"],
        alpha=de_cfg["alpha"],
        alt_hypothesis=de_cfg["alt_hypothesis"],
        refit_cooks=de_cfg["refit_cooks"],
        n_cpus=de_cfg["n_cpus"],
    )
    results = runner.run_all(counts, samples, contrasts)

    for name, result in results.items():
        save_dataframe(result.table, f"de_{name}.tsv", tables_dir, index=True, sep="\t")
        save_dataframe(result.significant(), f"de_{name}_significant.tsv", tables_dir, index=True, sep="\t")

    summary = runner.summary_table()
    save_dataframe(summary, "de_summary.tsv", tables_dir, sep="\t")

    table = Table(
        title=f"DE Summary (padj < {runner.alpha}, |log2FC| > {runner.lfc_threshold})",
        show_header=True,
        header_style="bold magenta",
    )
    for column in ["Contrast", "Tested", "Significant", "Up", "Down"]:
        table.add_column(column, justify="left" if column == "Contrast" else "right")
    for row in summary.itertuples(index=False):
        table.add_row(row.contrast, str(row.tested), str(row.significant), str(row.up), str(row.down))
    console.print(table)
    return results


@analysis_step("6. Overlap with Contrasts and Reference Gene Lists")
def run_overlap(
    de_results: dict[str, DEResult],
    loader: DataLoader,
    universe: pd.Index,
    figures_dir: Path,
    tables_dir: Path,
    make_plots: bool = True,
) -> OverlapAnalysis:
    overlap_cfg = get_overlap_config()
    analysis = OverlapAnalysis(de_results, universe)
    viz = DEVisualization()
    sig_sets = analysis.significant_sets()

    # --- Contrast vs contrast ---
    analysis.contrast_overlaps()
    save_dataframe(intersection_counts(sig_sets), "contrast_intersections.tsv", tables_dir, sep="\t")
    shared = analysis.shared_significant()
    logger.info(f"{len(shared)} genes significant in all {len(sig_sets)} contrasts")
    save_dataframe(
        analysis.intersection_table(shared), "shared_significant_genes.tsv", tables_dir,
        index=True, sep="\t",
    )
    if make_plots and 2 <= len(sig_sets) <= 3:
        try_plot(viz.plot_venn, "venn_contrasts.png", figures_dir, sig_sets,
                 title="Significant genes per contrast")
    if make_plots and len(sig_sets) >= 2:
        try_plot(viz.plot_upset, "upset_contrasts.png", figures_dir, sig_sets,
                 title="Significant genes per contrast")

    symbols = None
    if loader.literature_degs is not None:
        symbols = loader.literature_degs["symbol"]

    # --- Contrast vs external reference lists ---
    references = []
    if loader.reference_degs is not None:
        references.append(
            ("reference_degs", overlap_cfg["reference_contrast"], loader.reference_degs,
             loader.reference_universe, overlap_cfg["reference_background"])
        )
    if loader.literature_degs is not None:
        references.append(
            ("literature_degs", overlap_cfg["literature_contrast"],
             frozenset(loader.literature_degs.index), loader.literature_universe,
             overlap_cfg["literature_background"])
        )
    for ref_name, contrast_name, ref_genes, ref_universe, ref_background in references:
        if contrast_name not in de_results:
            logger.warning(f"Contrast '{contrast_name}' not run; skipping overlap with {ref_name}.")
            continue
        try:
            result = analysis.reference_overlap(
                contrast_name, ref_genes, ref_name, ref_universe, background_size=ref_background
            )
        except ValueError as e:
            logger.error(f"[red]Skipping overlap with {ref_name}:[/red] {e}")
            continue
        save_dataframe(
            analysis.intersection_table(result.genes, [contrast_name], symbols=symbols),
            f"overlap_{contrast_name}_{ref_name}.tsv", tables_dir, index=True, sep="\t",
        )
        if make_plots:
            try_plot(viz.plot_venn, f"venn_{contrast_name}_{ref_name}.png", figures_dir,
                     result.venn_sets())

    overlap_summary = analysis.summary_table()
    save_dataframe(overlap_summary, "overlap_statistics.tsv", tables_dir, sep="\t")
    if not overlap_summary.empty:
        table = Table(title="Gene Set Overlaps", show_header=True, header_style="bold magenta")
        for column in ["A", "B", "|A|", "|B|", "Shared", "Background", "Odds ratio", "p (adj)"]:
            table.add_column(column, justify="right")
        for row in overlap_summary.itertuples(index=False):
            table.add_row(
                row.set_a, row.set_b, str(row.size_a), str(row.size_b), str(row.intersection),
                str(row.background), f"{row.odds_ratio:.2f}", f"{row.p_value_adj:.2e}",
            )
        console.print(table)

    # --- MA plots, one per gene of interest and contrast ---
    if make_plots:
        symbol_map = symbols.to_dict() if symbols is not None else None
        for gene in overlap_cfg["genes_of_interest"]:
            for name, result in de_results.items():
                if gene not in result.table.index:
                    logger.warning(f"Gene of interest {gene} not tested in {name}; no MA plot.")
                    continue
                try_plot(viz.plot_ma, f"ma_{name}_{gene}.png", figures_dir, result, [gene],
                         symbols=symbol_map)
    return analysis


# ===================================================
#  === Experiment Presets ===
# ===================================================
def apply_experiment_config(exp_number: int, config_path: Path = Path("experiments.toml")) -> bool:
    """Sets the STAT3_DEG_* environment overrides of one experiment preset."""
    if not config_path.exists():
        logger.error(f"Experiment config file not found: {config_path}")
        return False
    with open(config_path, "rb") as f:
        experiment_table = tomllib.load(f).get("experiment", {})

    exp_config = experiment_table.get(str(exp_number))
    if exp_config is None:
        logger.error(f"Experiment '{exp_number}' not defined under [experiment] in {config_path}")
        return False

    logger.info(f"Experiment {exp_number}: {exp_config.get('description', 'N/A')}")
    for key, value in exp_config.items():
        if key.upper().startswith(ENV_PREFIX):
            value_str = ",".join(map(str, value)) if isinstance(value, list) else str(value)
            os.environ[key.upper()] = value_str
            logger.debug(f"  Override via experiment: {key.upper()}='{value_str}'")
    return True


def list_experiments(config_path: Path = Path("experiments.toml")) -> None:
    """Lists all experiment presets from experiments.toml."""
    if not config_path.exists():
        logger.error(f"Experiment config file not found: {config_path}")
        sys.exit(1)
    with open(config_path, "rb") as f:
        experiment_table = tomllib.load(f).get("experiment", {})

    table = Table(title="Available Experiments", show_header=True, header_style="bold")
    table.add_column("ID", style="cyan", justify="right")
    table.add_column("Description", style="white")
    for exp_id in sorted(experiment_table, key=lambda x: int(x) if x.isdigit() else float("inf")):
        table.add_row(exp_id, experiment_table[exp_id].get("description", "No description"))
    console.print(table)


# ===================================================
#  === Main Execution ===
# ===================================================
def run_pipeline(args: argparse.Namespace) -> bool:
    """Runs all steps in order; returns False as soon as a data step fails."""
    print_header("STAT3 KNOCKOUT RNA-SEQ: DIFFERENTIAL EXPRESSION")
    run_ruv = args.experimental_ruv or get_normalization_config()["run_ruv"]
    setup_directories(include_experimental=run_ruv)
    figures_dir = get_path("figures_dir")
    tables_dir = get_path("tables_dir")
    make_plots = not args.skip_plots and get_visualization_config()["save_figures"]

    loader = load_data(args.data_dir)
    if loader is None:
        return False

    filtered = filter_counts(loader, tables_dir)
    if filtered is None:
        return False
    samples = loader.samples

    if run_exploration(filtered, samples, figures_dir, tables_dir, make_plots) is None:
        return False

    if run_ruv and run_experimental_normalization(filtered, samples, loader.housekeeping) is None:
        return False

    de_results = run_differential_expression(filtered, samples, tables_dir)
    if de_results is None:
        return False

    overlap = run_overlap(de_results, loader, filtered.index, figures_dir, tables_dir, make_plots)
    return overlap is not None


def main() -> None:
    logging.captureWarnings(True)
    parser = argparse.ArgumentParser(
        description="STAT3 knockout RNA-seq differential expression pipeline.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "--data-dir", type=Path, default=None,
        help=f"Input directory (counts/, annotation/, samples.tsv). Default: ${ENV_PREFIX}_PATHS_DATA_DIR or ./data.",
    )
    parser.add_argument("--results-dir", type=Path, default=None, help="Output directory.")
    parser.add_argument(
        "--experimental-ruv", action="store_true",
        help="Also evaluate housekeeping-gene (RUVg) normalization. Its output is not used for DE.",
    )
    parser.add_argument("--skip-plots", action="store_true", help="Only write tables.")
    parser.add_argument(
        "--experiment", type=int, metavar="N", default=None,
        help="Apply preset N from experiments.toml (sets STAT3_DEG_* env vars).",
    )
    parser.add_argument(
        "--list-experiments", action="store_true", help="List presets in experiments.toml and exit."
    )
    parser.add_argument("--verbose", action="store_true", help="Enable DEBUG level logging.")
    args = parser.parse_args()

    if args.list_experiments:
        list_experiments()
        sys.exit(0)

    if args.experiment is not None and not apply_experiment_config(args.experiment):
        logger.error(f"Failed to load or apply experiment {args.experiment}. Exiting.")
        sys.exit(1)

    if args.data_dir is not None:
        os.environ[f"{ENV_PREFIX}_PATHS_DATA_DIR"] = str(args.data_dir)
    if args.results_dir is not None:
        os.environ[f"{ENV_PREFIX}_PATHS_RESULTS_DIR"] = str(args.results_dir)

    if args.verbose:
        os.environ[f"{ENV_PREFIX}_LOGGING_LEVEL"] = "DEBUG"
        # Handlers carry their own level, so rebuild them
        setup_logging()
        setup_logging(__name__)
        logger.debug("Verbose logging enabled.")

    start_time = time.time()
    success = False
    try:
        success = run_pipeline(args)
    except Exception as e:
        logger.critical(f":skull: Pipeline orchestration failed critically: {e}", exc_info=True)
    finally:
        elapsed = time.time() - start_time
        status = (
            "[bold green]Pipeline finished successfully[/]"
            if success
            else "[bold red]Pipeline stopped after a failed step[/]"
        )
        console.print(
            Panel(
                f"{status}\nTotal execution time: {elapsed:.2f} seconds.",
                title="[bold]Pipeline Summary[/]",
                border_style="bold green" if success else "bold red",
            )
        )
    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
