# stat3_deg/preprocessing/normalization.py
"""Housekeeping-gene normalization (RUVg), kept as an experimental branch.

The correction estimates unwanted variation from stably expressed housekeeping
genes and regresses it out of every gene. On this data set it degraded the
separation of treatment groups, so its output is only inspected (RLE/PCA) and
never used for differential expression. Run it explicitly to re-evaluate.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass

import numpy as np
import pandas as pd

from stat3_deg.core.config import get_normalization_config
from stat3_deg.core.utils import relative_std
from stat3_deg.preprocessing.exploratory import PCAResult, run_pca, size_factor_normalize

logger = logging.getLogger(__name__)


@dataclass
class RUVResult:
    """Unwanted-variation factors and the corrected counts."""

    factors: pd.DataFrame  # samples x k (W)
    normalized_counts: pd.DataFrame  # genes x samples
    control_genes: list[str]


def select_stable_housekeeping(
    counts: pd.DataFrame, housekeeping: Iterable[str], top_n: int = 1000
) -> list[str]:
    """Housekeeping genes present in ``counts`` with the lowest relative standard deviation.

    RSD is computed on size-factor normalised counts; ties keep matrix order.
    """
    housekeeping = set(housekeeping)
    present = [g for g in counts.index if g in housekeeping]
    if not present:
        logger.warning("No housekeeping genes found in the filtered count matrix.")
        return []

    normed, _ = size_factor_normalize(counts)
    rsd = relative_std(normed.loc[present]).dropna()
    stable = rsd.sort_values(kind="mergesort").index[:top_n].tolist()
    logger.info(
        f"Selected {len(stable)} stable housekeeping genes out of {len(present)} present "
        f"(max RSD {rsd.loc[stable].max():.3f})"
    )
    return stable


def ruvg(
    counts: pd.DataFrame,
    control_genes: Iterable[str],
    k: int = 1,
    offset: float = 1.0,
    tolerance: float = 1e-8,
) -> RUVResult:
    """Remove unwanted variation estimated from negative-control genes.

    Log counts are centred per gene; the first ``k`` left singular vectors of
    the control-gene block form the factors ``W``, which are regressed out of
    the uncentred log counts of all genes. Corrected counts are rounded back to
    the count scale and clipped at zero.

    Raises:
        ValueError: If there are fewer control genes than requested factors, or
            the control block has fewer than ``k`` singular values above ``tolerance``.
    """
    control_genes = [g for g in control_genes if g in counts.index]
    if len(control_genes) < k:
        msg = f"RUVg needs at least k={k} control genes, got {len(control_genes)}"
        logger.error(msg)
        raise ValueError(msg)
    if k >= counts.shape[1]:
        msg = f"RUVg needs k={k} smaller than the number of samples ({counts.shape[1]})"
        logger.error(msg)
        raise ValueError(msg)

    y = np.log(counts.T.to_numpy(dtype=float) + offset)  # samples x genes
    y_centered = y - y.mean(axis=0)
    control_idx = counts.index.get_indexer(control_genes)

    u, singular_values, _ = np.linalg.svd(y_centered[:, control_idx], full_matrices=False)
    if np.sum(singular_values > tolerance) < k:
        msg = f"Control genes carry fewer than k={k} non-degenerate factors of variation"
        logger.error(msg)
        raise ValueError(msg)
    w = u[:, :k]
    alpha = np.linalg.solve(w.T @ w, w.T @ y)
    corrected = y - w @ alpha

    normalized = np.clip(np.round(np.exp(corrected) - offset), 0, None)
    factors = pd.DataFrame(w, index=counts.columns, columns=[f"W_{i + 1}" for i in range(k)])
    logger.info(f"RUVg estimated {k} factor(s) from {len(control_genes)} control genes")
    return RUVResult(
        factors=factors,
        normalized_counts=pd.DataFrame(
            normalized.T.astype("int64"), index=counts.index, columns=counts.columns
        ),
        control_genes=control_genes,
    )


class HousekeepingNormalization:
    """Evaluates RUVg on the filtered matrix so it can be compared with the raw counts."""

    def __init__(self, top_n: int | None = None, k: int | None = None):
        norm_cfg = get_normalization_config()
        self.top_n = norm_cfg["housekeeping_top_n"] if top_n is None else top_n
        self.k = norm_cfg["ruv_k"] if k is None else k
        self.result: RUVResult | None = None

    def evaluate(
        self,
        counts: pd.DataFrame,
        housekeeping: Iterable[str],
        n_components: int = 3,
        top_n_genes: int = 500,
    ) -> tuple[RUVResult, PCAResult]:
        """Run RUVg and a PCA of the corrected counts."""
        logger.info("[bold yellow]Experimental:[/] evaluating housekeeping-gene normalization")
        controls = select_stable_housekeeping(counts, housekeeping, self.top_n)
        self.result = ruvg(counts, controls, k=self.k)
        pca_result = run_pca(
            self.result.normalized_counts, n_components=n_components, top_n_genes=top_n_genes
        )
        return self.result, pca_result
