# stat3_deg/differential/visualization.py
"""Plots for differential expression results: MA plots, Venn and UpSet diagrams."""

import logging
from collections.abc import Iterable, Mapping

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
from matplotlib.figure import Figure
from matplotlib.lines import Line2D
from matplotlib_venn import venn2, venn3
from upsetplot import UpSet, from_memberships

from stat3_deg.core.config import get_visualization_config
from stat3_deg.core.visualization_utils import (
    ALPHA_NOT_SIGNIFICANT,
    ALPHA_SIGNIFICANT,
    BASE_RC_PARAMS,
    COLOR_DOWN,
    COLOR_HIGHLIGHT,
    COLOR_NOT_SIGNIFICANT,
    COLOR_UP,
    DEFAULT_STYLE,
    FONT_SIZE_ANNOTATION,
    FONT_SIZE_LABEL,
    PALETTE_VENN,
    SIZE_DEFAULT,
    SIZE_HIGHLIGHT,
)
from stat3_deg.differential.expression import DEResult
from stat3_deg.differential.overlap import exclusive_memberships

logger = logging.getLogger(__name__)


def annotate_for_plot(result: DEResult, highlight: Iterable[str] = ()) -> pd.DataFrame:
    """Copy of the result table with ``color``, ``alpha`` and ``size`` styling columns.

    Significant genes are coloured by direction; genes in ``highlight`` are drawn
    large and in the highlight colour. Genes without an adjusted p-value count as
    not significant.
    """
    table = result.table.copy()
    significant = table["padj"].lt(result.alpha).fillna(False)
    up = significant & (table["log2FoldChange"] > 0)
    down = significant & (table["log2FoldChange"] < 0)

    table["color"] = np.select([up, down], [COLOR_UP, COLOR_DOWN], default=COLOR_NOT_SIGNIFICANT)
    table["alpha"] = np.where(significant, ALPHA_SIGNIFICANT, ALPHA_NOT_SIGNIFICANT)
    table["size"] = SIZE_DEFAULT

    highlighted = table.index.isin(list(highlight))
    table.loc[highlighted, "color"] = COLOR_HIGHLIGHT
    table.loc[highlighted, "alpha"] = 1.0
    table.loc[highlighted, "size"] = SIZE_HIGHLIGHT
    return table


class DEVisualization:
    """Generates figures for DE results and gene set overlaps."""

    def __init__(self):
        self.figures: dict[str, Figure] = {}
        self.viz_config = get_visualization_config()
        plt.style.use(self.viz_config.get("style", DEFAULT_STYLE))
        plt.rcParams.update(BASE_RC_PARAMS)

    def plot_ma(
        self,
        result: DEResult,
        highlight: Iterable[str] = (),
        symbols: Mapping[str, str] | None = None,
        title: str | None = None,
    ) -> Figure:
        """MA plot (mean expression vs log2 fold change) with labelled genes of interest."""
        highlight = [g for g in highlight if g in result.table.index]
        table = annotate_for_plot(result, highlight).dropna(subset=["baseMean", "log2FoldChange"])
        table = table.loc[table["baseMean"] > 0]
        # Highlighted points last so they sit on top
        table = pd.concat([table.loc[~table.index.isin(highlight)], table.loc[table.index.isin(highlight)]])

        fig, ax = plt.subplots(figsize=self.viz_config.get("default_figsize", (10, 6)))
        ax.scatter(
            table["baseMean"],
            table["log2FoldChange"],
            c=table["color"].tolist(),
            alpha=table["alpha"].to_numpy(),
            s=table["size"].to_numpy(),
            linewidths=0,
            rasterized=True,
        )
        ax.set_xscale("log")
        ax.axhline(0, color="black", linewidth=0.8)
        for y in (result.lfc_threshold, -result.lfc_threshold):
            ax.axhline(y, color="black", linestyle="--", linewidth=0.6, alpha=0.6)

        for gene in highlight:
            if gene not in table.index:
                continue
            label = (symbols or {}).get(gene, gene)
            ax.annotate(
                label,
                (table.loc[gene, "baseMean"], table.loc[gene, "log2FoldChange"]),
                xytext=(8, 8),
                textcoords="offset points",
                fontsize=FONT_SIZE_ANNOTATION,
                fontweight="bold",
                arrowprops={"arrowstyle": "-", "color": COLOR_HIGHLIGHT},
            )

        summary = result.summary()
        ax.set_xlabel("Mean of normalized counts")
        ax.set_ylabel(f"log2 fold change ({result.contrast.test} / {result.contrast.reference})")
        ax.set_title(
            title or f"{result.name}: {summary['up']} up, {summary['down']} down (padj < {result.alpha})"
        )
        legend_handles = [
            Line2D([0], [0], marker="o", linestyle="", color=COLOR_UP, label="Up"),
            Line2D([0], [0], marker="o", linestyle="", color=COLOR_DOWN, label="Down"),
            Line2D([0], [0], marker="o", linestyle="", color=COLOR_NOT_SIGNIFICANT, label="n.s."),
        ]
        if highlight:
            legend_handles.append(
                Line2D([0], [0], marker="o", linestyle="", color=COLOR_HIGHLIGHT, label="Highlighted")
            )
        ax.legend(handles=legend_handles, loc="upper right")
        fig.tight_layout()

        key = f"ma_{result.name}" + (f"_{'_'.join(highlight)}" if highlight else "")
        self.figures[key] = fig
        return fig

    def plot_venn(self, sets: Mapping[str, Iterable[str]], title: str = "") -> Figure:
        """Venn diagram of two or three named gene sets.

        Raises:
            ValueError: For fewer than two or more than three sets.
        """
        named = {name: set(genes) for name, genes in sets.items()}
        if len(named) not in (2, 3):
            msg = f"Venn diagrams need 2 or 3 sets, got {len(named)}"
            raise ValueError(msg)

        fig, ax = plt.subplots(figsize=(7, 7))
        labels = tuple(f"{name}\n(n={len(genes)})" for name, genes in named.items())
        colors = tuple(PALETTE_VENN[: len(named)])
        if len(named) == 2:
            venn2(list(named.values()), set_labels=labels, set_colors=colors, ax=ax)
        else:
            venn3(list(named.values()), set_labels=labels, set_colors=colors, ax=ax)
        ax.set_title(title or " vs ".join(named), fontsize=FONT_SIZE_LABEL)
        fig.tight_layout()

        self.figures["venn_" + "_".join(named)] = fig
        return fig

    def plot_upset(self, sets: Mapping[str, Iterable[str]], title: str = "") -> Figure:
        """UpSet plot of any number of named gene sets.

        Raises:
            ValueError: If every set is empty.
        """
        memberships = exclusive_memberships(sets)
        if memberships.empty:
            msg = "Cannot draw an UpSet plot of empty sets"
            raise ValueError(msg)

        # one row per gene, indexed by the combination of sets holding it
        data = from_memberships(memberships.tolist())
        fig = plt.figure(figsize=(max(9.0, 3.2 + len(sets) * 1.4), 6))
        UpSet(data, subset_size="count", show_counts=True, sort_by="cardinality").plot(fig=fig)
        if title:
            fig.suptitle(title)

        self.figures["upset_" + "_".join(sets)] = fig
        return fig
