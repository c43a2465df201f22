# stat3_deg/differential/expression.py
"""Differential expression between pairs of treatment groups.

Each contrast is fitted separately on the samples of its two groups with the
DESeq2 negative-binomial GLM (pydeseq2) and tested against a fold-change
threshold: H0 |log2FC| <= 1, H1 |log2FC| > 1. A gene is significant when its
adjusted p-value is below alpha; the fold-change threshold is already part of
the test, so no separate fold-change cut is applied.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

import pandas as pd
from pydeseq2.dds import DeseqDataSet
from pydeseq2.default_inference import DefaultInference
from pydeseq2.ds import DeseqStats

from stat3_deg.core.config import get_de_config

logger = logging.getLogger(__name__)

RESULT_COLUMNS = ["baseMean", "log2FoldChange", "pvalue", "padj"]


@dataclass(frozen=True)
class Contrast:
    """``test`` vs ``reference`` levels of a sample factor."""

    test: str
    reference: str
    factor: str = "treatment"

    @property
    def name(self) -> str:
        return f"{self.reference}_vs_{self.test}"

    @classmethod
    def parse(cls, text: str, factor: str = "treatment") -> "Contrast":
        """Build a contrast from ``"test:reference"``."""
        parts = [p.strip() for p in text.split(":")]
        if len(parts) != 2 or not all(parts):
            msg = f"Invalid contrast '{text}'. Expected 'test:reference'."
            raise ValueError(msg)
        if parts[0] == parts[1]:
            msg = f"Contrast '{text}' compares a level with itself."
            raise ValueError(msg)
        return cls(test=parts[0], reference=parts[1], factor=factor)


def parse_contrasts(texts: Iterable[str], factor: str = "treatment") -> list[Contrast]:
    """Parse several ``"test:reference"`` strings, rejecting duplicates."""
    contrasts = [Contrast.parse(t, factor=factor) for t in texts]
    names = [c.name for c in contrasts]
    if len(set(names)) != len(names):
        msg = f"Duplicate contrasts: {names}"
        raise ValueError(msg)
    return contrasts


@dataclass
class DEResult:
    """Per-gene statistics of one contrast."""

    contrast: Contrast
    table: pd.DataFrame  # index gene_id, RESULT_COLUMNS
    alpha: float = 0.05
    lfc_threshold: float = 1.0

    @property
    def name(self) -> str:
        return self.contrast.name

    def tested(self) -> pd.DataFrame:
        """Genes with a defined adjusted p-value."""
        return self.table.dropna(subset=["padj"])

    def significant(self) -> pd.DataFrame:
        tested = self.tested()
        return tested.loc[tested["padj"] < self.alpha]

    def upregulated(self) -> pd.DataFrame:
        sig = self.significant()
        return sig.loc[sig["log2FoldChange"] > 0]

    def downregulated(self) -> pd.DataFrame:
        sig = self.significant()
        return sig.loc[sig["log2FoldChange"] < 0]

    def significant_genes(self) -> frozenset[str]:
        return frozenset(self.significant().index)

    def summary(self) -> dict[str, Any]:
        return {
            "contrast": self.name,
            "test": self.contrast.test,
            "reference": self.contrast.reference,
            "genes": len(self.table),
            "tested": len(self.tested()),
            "significant": len(self.significant()),
            "up": len(self.upregulated()),
            "down": len(self.downregulated()),
        }


class DifferentialExpression:
    """Fits one DESeq2 model per contrast and extracts thresholded Wald tests."""

    def __init__(
        self,
        lfc_threshold: float | None = None,
        alpha: float | None = None,
        alt_hypothesis: str | None = None,
        refit_cooks: bool | None = None,
        n_cpus: int | None = None,
    ):
        de_cfg = get_de_config()
        self.lfc_threshold = de_cfg["lfc_threshold"] if lfc_threshold is None else lfc_threshold
        self.alpha = de_cfg["alpha"] if alpha is None else alpha
        self.alt_hypothesis = (
            de_cfg["alt_hypothesis"] if alt_hypothesis is None else alt_hypothesis
        )
        self.refit_cooks = de_cfg["refit_cooks"] if refit_cooks is None else refit_cooks
        self.inference = DefaultInference(n_cpus=de_cfg["n_cpus"] if n_cpus is None else n_cpus)
        self.results: dict[str, DEResult] = {}

    def _contrast_subset(
        self, counts: pd.DataFrame, samples: pd.DataFrame, contrast: Contrast
    ) -> tuple[pd.DataFrame, pd.DataFrame]:
        """Counts (samples x genes) and metadata restricted to the two contrasted groups."""
        if contrast.factor not in samples.columns:
            msg = f"Sample metadata has no '{contrast.factor}' column"
            raise KeyError(msg)
        levels = samples[contrast.factor].astype(str)
        for level in (contrast.test, contrast.reference):
            if not (levels == level).any():
                msg = f"No samples with {contrast.factor}='{level}' for contrast {contrast.name}"
                raise ValueError(msg)

        keep = [s for s in counts.columns if levels.get(s) in (contrast.test, contrast.reference)]
        metadata = samples.loc[keep, [contrast.factor]].astype(str)
        return counts[keep].T.astype("int64"), metadata

    def run_contrast(
        self, counts: pd.DataFrame, samples: pd.DataFrame, contrast: Contrast
    ) -> DEResult:
        """Fit and test one contrast.

        Args:
            counts: Gene x sample filtered counts.
            samples: Sample metadata indexed by sample name.
            contrast: Groups to compare.

        Returns:
            DEResult with baseMean, log2FoldChange, pvalue and padj per gene.
        """
        sample_counts, metadata = self._contrast_subset(counts, samples, contrast)
        logger.info(
            f"Fitting {contrast.name}: {contrast.test} vs {contrast.reference} "
            f"({len(metadata)} samples, {sample_counts.shape[1]} genes)"
        )

        dds = DeseqDataSet(
            counts=sample_counts,
            metadata=metadata,
            design=f"~{contrast.factor}",
            refit_cooks=self.refit_cooks,
            inference=self.inference,
            quiet=True,
        )
        dds.deseq2()

        stats = DeseqStats(
            dds,
            contrast=[contrast.factor, contrast.test, contrast.reference],
            alpha=self.alpha,
            lfc_null=self.lfc_threshold,
            alt_hypothesis=self.alt_hypothesis,
            inference=self.inference,
            quiet=True,
        )
        stats.summary()

        table = stats.results_df[RESULT_COLUMNS].copy()
        table.index.name = "gene_id"
        result = DEResult(
            contrast=contrast, table=table, alpha=self.alpha, lfc_threshold=self.lfc_threshold
        )
        summary = result.summary()
        logger.info(
            f"{contrast.name}: {summary['significant']} significant of {summary['tested']} tested "
            f"({summary['up']} up, {summary['down']} down; padj < {self.alpha}, "
            f"|log2FC| > {self.lfc_threshold})"
        )
        self.results[contrast.name] = result
        return result

    def run_all(
        self, counts: pd.DataFrame, samples: pd.DataFrame, contrasts: Iterable[Contrast]
    ) -> dict[str, DEResult]:
        """Run every contrast in order. A failing contrast aborts the run."""
        return {c.name: self.run_contrast(counts, samples, c) for c in contrasts}

    def summary_table(self) -> pd.DataFrame:
        """One row per fitted contrast."""
        return pd.DataFrame([r.summary() for r in self.results.values()])
