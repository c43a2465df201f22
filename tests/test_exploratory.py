"""Tests for RLE, PCA and the exploratory plots."""

import numpy as np
import pandas as pd
import pytest
from matplotlib.figure import Figure

from stat3_deg.core.utils import log_transform, relative_std
from stat3_deg.preprocessing.exploratory import (
    ExploratoryVisualization,
    group_colors,
    group_silhouette,
    relative_log_expression,
    run_pca,
    size_factor_normalize,
)


class TestNormalizationHelpers:

    def test_size_factors_scale_with_depth(self, synthetic_counts):
        doubled = synthetic_counts.copy()
        doubled["WT_1"] = doubled["WT_1"] * 2
        _, factors = size_factor_normalize(doubled)
        _, base = size_factor_normalize(synthetic_counts)
        assert factors["WT_1"] / factors["WT_2"] == pytest.approx(
            2 * base["WT_1"] / base["WT_2"], rel=0.05
        )

    def test_normalized_shape(self, synthetic_counts):
        normed, factors = size_factor_normalize(synthetic_counts)
        assert normed.shape == synthetic_counts.shape
        assert list(factors.index) == list(synthetic_counts.columns)

    def test_rle_gene_medians_are_zero(self, synthetic_counts):
        rle = relative_log_expression(synthetic_counts)
        assert np.allclose(rle.median(axis=1), 0.0)

    def test_log_transform_rejects_base_one(self):
        with pytest.raises(ValueError):
            log_transform(pd.DataFrame({"a": [1, 2]}), base=1)

    def test_relative_std_zero_mean(self):
        rsd = relative_std(pd.DataFrame({"a": [0, 2], "b": [0, 4]}, index=["z", "g"]))
        assert np.isnan(rsd["z"])
        assert rsd["g"] > 0


class TestPCA:

    def test_shapes(self, synthetic_counts):
        result = run_pca(synthetic_counts, n_components=3, top_n_genes=50)
        assert result.scores.shape == (synthetic_counts.shape[1], 3)
        assert list(result.scores.columns) == ["PC1", "PC2", "PC3"]
        assert result.n_genes_used == 50
        assert result.explained_variance_ratio.is_monotonic_decreasing

    def test_components_capped_by_samples(self, synthetic_counts):
        result = run_pca(synthetic_counts.iloc[:, :3], n_components=10)
        assert result.scores.shape[1] == 3

    def test_knockout_separates_on_first_component(self, synthetic_counts, synthetic_samples):
        result = run_pca(synthetic_counts, top_n_genes=100)
        pc1 = result.scores["PC1"]
        is_ko = synthetic_samples.loc[pc1.index, "treatment"] == "STAT3KO"
        ko, others = pc1[is_ko], pc1[~is_ko]
        assert ko.min() > others.max() or ko.max() < others.min()

    def test_silhouette(self, synthetic_counts, synthetic_samples):
        result = run_pca(synthetic_counts, top_n_genes=100)
        knockout = (synthetic_samples["treatment"] == "STAT3KO").map({True: "KO", False: "ctrl"})
        assert group_silhouette(result, knockout) > 0.5
        single = pd.Series("one", index=synthetic_samples.index)
        assert group_silhouette(result, single) is None


class TestExploratoryPlots:

    def test_group_colors_stable(self, synthetic_samples):
        colors = group_colors(synthetic_samples, "treatment")
        assert list(colors) == ["WT", "Cas9", "STAT3KO"]

    def test_plots_return_figures(self, synthetic_counts, synthetic_samples):
        viz = ExploratoryVisualization()
        rle_fig = viz.plot_rle(synthetic_counts, synthetic_samples, key="batch")
        pca_fig = viz.plot_pca(run_pca(synthetic_counts), synthetic_samples, key="treatment")
        assert isinstance(rle_fig, Figure)
        assert isinstance(pca_fig, Figure)
        assert set(viz.figures) == {"rle_batch", "pca_treatment"}
        assert len(pca_fig.axes) == 2
