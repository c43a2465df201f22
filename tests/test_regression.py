"""Regression anchors on the real STAT3 knockout data set.

Runs only when ``STAT3_DEG_PATHS_DATA_DIR`` points at the real input directory.
"""

import os
from pathlib import Path

import pytest

from stat3_deg.core.data_loader import DataLoader
from stat3_deg.differential.expression import DifferentialExpression, parse_contrasts
from stat3_deg.preprocessing.filtering import ExpressionFilter

DATA_DIR = os.environ.get("STAT3_DEG_PATHS_DATA_DIR")

pytestmark = pytest.mark.skipif(
    not DATA_DIR or not (Path(DATA_DIR) / "counts").is_dir(),
    reason="real data directory not available",
)


@pytest.fixture(scope="module")
def real_run():
    loader = DataLoader(data_dir=DATA_DIR)
    loader.load_all_data()
    filtered = ExpressionFilter(min_count=5, min_samples=4).apply(
        loader.counts, loader.protein_coding
    )
    runner = DifferentialExpression(lfc_threshold=1.0, alpha=0.05)
    results = runner.run_all(
        filtered, loader.samples, parse_contrasts(["STAT3KO:WT", "Cas9:WT"])
    )
    return loader, filtered, results


def test_filtered_gene_count(real_run):
    _, filtered, _ = real_run
    assert len(filtered) == 13721


@pytest.mark.parametrize(
    ("contrast", "significant", "up", "down"),
    [("WT_vs_STAT3KO", 3417, 1921, 1496), ("WT_vs_Cas9", 1709, 415, 1294)],
)
def test_significant_counts(real_run, contrast, significant, up, down):
    _, _, results = real_run
    summary = results[contrast].summary()
    assert (summary["significant"], summary["up"], summary["down"]) == (significant, up, down)


def test_shared_with_reference_list(real_run):
    loader, _, results = real_run
    if loader.reference_degs is None:
        pytest.skip("reference DEG list not available")
    assert len(loader.reference_degs) == 97
    assert len(results["WT_vs_Cas9"].significant_genes() & loader.reference_degs) == 13
