"""Tests for contrasts, DE result summaries and the pydeseq2 fit."""

import numpy as np
import pandas as pd
import pytest

from conftest import N_DOWN, N_UP
from stat3_deg.differential.expression import (
    RESULT_COLUMNS,
    Contrast,
    DEResult,
    DifferentialExpression,
    parse_contrasts,
)


def _result_table():
    return pd.DataFrame(
        {
            "baseMean": [100.0, 50.0, 20.0, 10.0, 5.0],
            "log2FoldChange": [2.5, -3.0, 1.5, -1.2, 0.1],
            "pvalue": [1e-8, 1e-6, 0.001, 0.2, np.nan],
            "padj": [1e-7, 1e-5, 0.049, 0.5, np.nan],
        },
        index=pd.Index(["g1", "g2", "g3", "g4", "g5"], name="gene_id"),
    )


class TestContrast:

    def test_parse_and_name(self):
        contrast = Contrast.parse("STAT3KO:WT")
        assert contrast.test == "STAT3KO"
        assert contrast.reference == "WT"
        assert contrast.factor == "treatment"
        assert contrast.name == "WT_vs_STAT3KO"

    @pytest.mark.parametrize("text", ["STAT3KO", "STAT3KO:WT:Cas9", ":WT", "WT:WT"])
    def test_parse_invalid(self, text):
        with pytest.raises(ValueError):
            Contrast.parse(text)

    def test_parse_contrasts_rejects_duplicates(self):
        with pytest.raises(ValueError, match="Duplicate"):
            parse_contrasts(["STAT3KO:WT", " STAT3KO : WT "])

    def test_default_contrast_names(self):
        names = [c.name for c in parse_contrasts(["STAT3KO:WT", "STAT3KO:Cas9", "Cas9:WT"])]
        assert names == ["WT_vs_STAT3KO", "Cas9_vs_STAT3KO", "WT_vs_Cas9"]


class TestDEResult:

    def test_counts(self):
        result = DEResult(Contrast("KO", "WT"), _result_table(), alpha=0.05)
        assert result.summary() == {
            "contrast": "WT_vs_KO",
            "test": "KO",
            "reference": "WT",
            "genes": 5,
            "tested": 4,
            "significant": 3,
            "up": 2,
            "down": 1,
        }
        assert result.significant_genes() == frozenset({"g1", "g2", "g3"})

    def test_up_and_down_partition_significant(self):
        result = DEResult(Contrast("KO", "WT"), _result_table())
        up, down = set(result.upregulated().index), set(result.downregulated().index)
        assert up.isdisjoint(down)
        assert up | down == result.significant_genes()

    def test_alpha_is_strict(self):
        table = _result_table()
        table.loc["g3", "padj"] = 0.05
        result = DEResult(Contrast("KO", "WT"), table, alpha=0.05)
        assert "g3" not in result.significant_genes()


class TestDifferentialExpression:

    @pytest.fixture(scope="class")
    def fitted(self, synthetic_counts, synthetic_samples):
        runner = DifferentialExpression(lfc_threshold=1.0, alpha=0.05, n_cpus=1)
        results = runner.run_all(
            synthetic_counts, synthetic_samples, parse_contrasts(["STAT3KO:WT", "Cas9:WT"])
        )
        return runner, results

    def test_result_layout(self, fitted, synthetic_counts):
        _, results = fitted
        result = results["WT_vs_STAT3KO"]
        assert list(result.table.columns) == RESULT_COLUMNS
        assert result.table.index.name == "gene_id"
        assert set(result.table.index) == set(synthetic_counts.index)

    def test_recovers_knockout_genes(self, fitted, synthetic_counts):
        _, results = fitted
        result = results["WT_vs_STAT3KO"]
        up_genes = set(synthetic_counts.index[:N_UP])
        down_genes = set(synthetic_counts.index[N_UP : N_UP + N_DOWN])

        assert len(up_genes & set(result.upregulated().index)) >= N_UP - 2
        assert len(down_genes & set(result.downregulated().index)) >= N_DOWN - 2
        false_positives = result.significant_genes() - up_genes - down_genes
        assert len(false_positives) <= 3

    def test_null_contrast_has_few_hits(self, fitted):
        # Cas9 and WT are drawn from the same means; |log2FC| > 1 is never true
        _, results = fitted
        assert results["WT_vs_Cas9"].summary()["significant"] <= 2

    def test_summary_table(self, fitted):
        runner, _ = fitted
        summary = runner.summary_table()
        assert list(summary["contrast"]) == ["WT_vs_STAT3KO", "WT_vs_Cas9"]
        assert (summary["up"] + summary["down"] == summary["significant"]).all()

    def test_row_order_does_not_change_calls(self, fitted, synthetic_counts, synthetic_samples):
        _, results = fitted
        reversed_counts = synthetic_counts.iloc[::-1]
        result = DifferentialExpression(lfc_threshold=1.0, alpha=0.05).run_contrast(
            reversed_counts, synthetic_samples, Contrast("STAT3KO", "WT")
        )
        assert result.significant_genes() == results["WT_vs_STAT3KO"].significant_genes()

    def test_only_contrasted_samples_used(self, synthetic_counts, synthetic_samples):
        runner = DifferentialExpression()
        counts, metadata = runner._contrast_subset(
            synthetic_counts, synthetic_samples, Contrast("STAT3KO", "WT")
        )
        assert counts.shape == (8, synthetic_counts.shape[0])
        assert set(metadata["treatment"]) == {"STAT3KO", "WT"}
        assert list(counts.index) == list(metadata.index)

    def test_unknown_level(self, synthetic_counts, synthetic_samples):
        with pytest.raises(ValueError, match="No samples"):
            DifferentialExpression().run_contrast(
                synthetic_counts, synthetic_samples, Contrast("JAK1KO", "WT")
            )

    def test_unknown_factor(self, synthetic_counts, synthetic_samples):
        with pytest.raises(KeyError):
            DifferentialExpression().run_contrast(
                synthetic_counts, synthetic_samples, Contrast("STAT3KO", "WT", factor="genotype")
            )
