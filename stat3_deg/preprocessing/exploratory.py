# stat3_deg/preprocessing/exploratory.py
"""Exploratory diagnostics: relative log expression and PCA of samples.

Outputs are for visual inspection only; nothing here gates the pipeline.
"""

import logging
from dataclasses import dataclass

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns
from matplotlib.figure import Figure
from matplotlib.patches import Patch
from pydeseq2.preprocessing import deseq2_norm
from sklearn.decomposition import PCA
from sklearn.metrics import silhouette_score

from stat3_deg.core.config import get_exploratory_config, get_visualization_config
from stat3_deg.core.utils import log_transform
from stat3_deg.core.visualization_utils import (
    BASE_RC_PARAMS,
    DEFAULT_STYLE,
    FONT_SIZE_ANNOTATION,
    FONT_SIZE_FIGURE_TITLE,
    PALETTE_QUALITATIVE,
)

logger = logging.getLogger(__name__)


@dataclass
class PCAResult:
    """Sample scores and explained variance of a PCA run."""

    scores: pd.DataFrame  # samples x PCs
    explained_variance_ratio: pd.Series
    n_genes_used: int


# ===================================================
#  === Computations ===
# ===================================================
def size_factor_normalize(counts: pd.DataFrame) -> tuple[pd.DataFrame, pd.Series]:
    """Median-of-ratios normalised counts and per-sample size factors.

    Args:
        counts: Gene x sample raw counts.

    Returns:
        (normalised gene x sample counts, size factors indexed by sample)
    """
    normed, size_factors = deseq2_norm(counts.T.to_numpy(dtype=float))
    normed_df = pd.DataFrame(np.asarray(normed).T, index=counts.index, columns=counts.columns)
    return normed_df, pd.Series(np.asarray(size_factors), index=counts.columns, name="size_factor")


def relative_log_expression(counts: pd.DataFrame) -> pd.DataFrame:
    """log(count + 1) minus each gene's median across samples."""
    logged = log_transform(counts, base=np.e)
    return logged.sub(logged.median(axis=1), axis=0)


def run_pca(counts: pd.DataFrame, n_components: int = 3, top_n_genes: int = 500) -> PCAResult:
    """PCA of samples on log2 normalised counts of the most variable genes."""
    normed, _ = size_factor_normalize(counts)
    logged = log_transform(normed, base=2.0)
    variances = logged.var(axis=1)
    top_genes = variances.sort_values(ascending=False, kind="mergesort").index[:top_n_genes]
    data = logged.loc[top_genes].T

    n_components = min(n_components, data.shape[0], data.shape[1])
    pca = PCA(n_components=n_components)
    scores = pca.fit_transform(data.to_numpy())
    pc_names = [f"PC{i + 1}" for i in range(n_components)]

    result = PCAResult(
        scores=pd.DataFrame(scores, index=data.index, columns=pc_names),
        explained_variance_ratio=pd.Series(pca.explained_variance_ratio_, index=pc_names),
        n_genes_used=len(top_genes),
    )
    logger.info(
        "PCA on %d genes: %s",
        result.n_genes_used,
        ", ".join(f"{pc} {v:.1%}" for pc, v in result.explained_variance_ratio.items()),
    )
    return result


def group_silhouette(pca_result: PCAResult, labels: pd.Series) -> float | None:
    """Silhouette score of a sample grouping in PC space (None when undefined)."""
    labels = labels.reindex(pca_result.scores.index)
    n_labels = labels.nunique()
    if n_labels < 2 or n_labels >= len(labels):
        return None
    return float(silhouette_score(pca_result.scores.to_numpy(), labels.to_numpy()))


def group_colors(samples: pd.DataFrame, key: str) -> dict[str, tuple[float, float, float]]:
    """Stable colour per level of ``samples[key]`` (levels in first-seen order)."""
    levels = list(dict.fromkeys(samples[key].astype(str)))
    palette = sns.color_palette(PALETTE_QUALITATIVE, n_colors=max(len(levels), 1))
    return dict(zip(levels, palette, strict=False))


# ===================================================
#  === Plots ===
# ===================================================
class ExploratoryVisualization:
    """RLE and PCA plots coloured by a sample grouping factor."""

    def __init__(self):
        self.figures: dict[str, Figure] = {}
        self.viz_config = get_visualization_config()
        self.exploratory_config = get_exploratory_config()
        plt.style.use(self.viz_config.get("style", DEFAULT_STYLE))
        plt.rcParams.update(BASE_RC_PARAMS)

    def plot_rle(
        self, counts: pd.DataFrame, samples: pd.DataFrame, key: str = "treatment", title: str = "RLE"
    ) -> Figure:
        """Per-sample boxplots of relative log expression."""
        rle = relative_log_expression(counts)
        colors = group_colors(samples, key)
        sample_colors = [colors[str(samples.loc[s, key])] for s in rle.columns]

        fig, ax = plt.subplots(figsize=(max(8, 0.6 * rle.shape[1] + 3), 6))
        box = ax.boxplot(
            [rle[s].to_numpy() for s in rle.columns],
            patch_artist=True,
            showfliers=False,
            medianprops={"color": "black"},
        )
        for patch, color in zip(box["boxes"], sample_colors, strict=False):
            patch.set_facecolor(color)
            patch.set_alpha(0.8)
        ax.axhline(0, color="black", linestyle="--", linewidth=0.8)
        ax.set_xticks(range(1, rle.shape[1] + 1))
        ax.set_xticklabels(rle.columns, rotation=45, ha="right")
        ax.set_ylabel("Relative log expression")
        ax.set_title(f"{title} (colored by {key})")
        handles = [Patch(facecolor=c, label=level) for level, c in colors.items()]
        ax.legend(handles=handles, title=key, bbox_to_anchor=(1.02, 1), loc="upper left")
        fig.tight_layout()

        self.figures[f"rle_{key}"] = fig
        return fig

    def plot_pca(
        self,
        pca_result: PCAResult,
        samples: pd.DataFrame,
        key: str = "treatment",
        title: str = "PCA",
        label_samples: bool = True,
    ) -> Figure:
        """PC1/PC2 scatter, plus PC1/PC3 when a third component exists."""
        scores = pca_result.scores
        ratios = pca_result.explained_variance_ratio
        pairs = [("PC1", "PC2")] if "PC2" in scores else [("PC1", "PC1")]
        if "PC3" in scores:
            pairs.append(("PC1", "PC3"))

        colors = group_colors(samples, key)
        labels = samples.reindex(scores.index)[key].astype(str)

        fig, axes = plt.subplots(1, len(pairs), figsize=(7 * len(pairs), 6), squeeze=False)
        for ax, (x_pc, y_pc) in zip(axes[0], pairs, strict=False):
            for level, color in colors.items():
                members = labels.index[labels == level]
                ax.scatter(
                    scores.loc[members, x_pc],
                    scores.loc[members, y_pc],
                    label=level,
                    color=color,
                    s=80,
                    alpha=0.8,
                    edgecolor="black",
                    linewidth=0.5,
                )
            if label_samples:
                for sample in scores.index:
                    ax.annotate(
                        sample,
                        (scores.loc[sample, x_pc], scores.loc[sample, y_pc]),
                        fontsize=FONT_SIZE_ANNOTATION,
                        xytext=(4, 4),
                        textcoords="offset points",
                    )
            ax.set_xlabel(f"{x_pc} ({ratios[x_pc]:.1%} variance)")
            ax.set_ylabel(f"{y_pc} ({ratios[y_pc]:.1%} variance)")
            ax.grid(True, linestyle="--", alpha=0.6)
            ax.legend(title=key)

        silhouette = group_silhouette(pca_result, samples[key].astype(str))
        subtitle = f" | silhouette ({key}): {silhouette:.3f}" if silhouette is not None else ""
        fig.suptitle(
            f"{title}: top {pca_result.n_genes_used} variable genes{subtitle}",
            fontsize=FONT_SIZE_FIGURE_TITLE,
        )
        fig.tight_layout()

        self.figures[f"pca_{key}"] = fig
        return fig
