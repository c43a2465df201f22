# stat3_deg/preprocessing/filtering.py
"""Expression-level and biotype filters for the count matrix.

Both filters are pure row predicates: they never reorder rows or columns, so
sample metadata aligned to the matrix stays aligned afterwards.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass

import pandas as pd

from stat3_deg.core.config import get_filter_config

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FilterSummary:
    """Gene counts before and after each filter."""

    genes_in: int
    after_expression: int
    after_gene_set: int

    @property
    def removed_by_expression(self) -> int:
        return self.genes_in - self.after_expression

    @property
    def removed_by_gene_set(self) -> int:
        return self.after_expression - self.after_gene_set


def expression_mask(counts: pd.DataFrame, min_count: int = 5, min_samples: int = 4) -> pd.Series:
    """True for genes whose count exceeds ``min_count`` in at least ``min_samples`` samples.

    A small ``min_samples`` (one treatment group's worth of replicates plus one)
    keeps genes switched on in a single group while dropping sporadic noise.
    """
    if min_samples > counts.shape[1]:
        logger.warning(
            f"min_samples={min_samples} exceeds the number of samples ({counts.shape[1]}); "
            "no gene can pass the expression filter."
        )
    return (counts > min_count).sum(axis=1) >= min_samples


def filter_by_expression(
    counts: pd.DataFrame, min_count: int = 5, min_samples: int = 4
) -> pd.DataFrame:
    """Keep genes passing :func:`expression_mask`, preserving order."""
    kept = counts.loc[expression_mask(counts, min_count, min_samples)]
    logger.info(
        f"Expression filter (>{min_count} counts in >={min_samples} samples): "
        f"{len(kept)}/{len(counts)} genes kept"
    )
    return kept


def filter_by_gene_set(counts: pd.DataFrame, gene_ids: Iterable[str]) -> pd.DataFrame:
    """Keep genes whose identifier is in ``gene_ids``; others are silently dropped."""
    gene_ids = gene_ids if isinstance(gene_ids, (set, frozenset)) else set(gene_ids)
    kept = counts.loc[counts.index.isin(gene_ids)]
    logger.info(f"Gene set filter: {len(kept)}/{len(counts)} genes kept")
    return kept


class ExpressionFilter:
    """Runs the expression filter followed by the protein-coding filter."""

    def __init__(self, min_count: int | None = None, min_samples: int | None = None):
        filter_cfg = get_filter_config()
        self.min_count = filter_cfg["min_count"] if min_count is None else min_count
        self.min_samples = filter_cfg["min_samples"] if min_samples is None else min_samples
        self.summary: FilterSummary | None = None

    def apply(
        self, counts: pd.DataFrame, protein_coding: Iterable[str] | None = None
    ) -> pd.DataFrame:
        """Filter ``counts``; the biotype step is skipped when ``protein_coding`` is None."""
        expressed = filter_by_expression(counts, self.min_count, self.min_samples)
        if protein_coding is None:
            logger.warning("No protein-coding gene list supplied; biotype filter skipped.")
            filtered = expressed
        else:
            filtered = filter_by_gene_set(expressed, protein_coding)

        self.summary = FilterSummary(
            genes_in=len(counts), after_expression=len(expressed), after_gene_set=len(filtered)
        )
        logger.info(
            f"Filtering complete: {self.summary.genes_in} -> {self.summary.after_expression} "
            f"(expressed) -> {self.summary.after_gene_set} (protein coding)"
        )
        return filtered
