# stat3_deg/differential/overlap.py
"""Overlap of significant gene sets between contrasts and reference studies.

Overlap significance is a one-sided hypergeometric test. When one of the sets
comes from another study, the background is the set of genes that passed the
expression filter in both studies, not the whole annotation.
"""

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from itertools import combinations
from typing import Any

import pandas as pd
from scipy import stats
from statsmodels.stats.multitest import multipletests

from stat3_deg.differential.expression import RESULT_COLUMNS, DEResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OverlapResult:
    """Hypergeometric overlap test of two gene sets."""

    name_a: str
    name_b: str
    size_a: int
    size_b: int
    intersection: int
    background: int
    expected: float
    p_value: float
    odds_ratio: float
    jaccard: float
    genes: frozenset[str] = field(default_factory=frozenset, repr=False)
    members_a: frozenset[str] = field(default_factory=frozenset, repr=False)
    members_b: frozenset[str] = field(default_factory=frozenset, repr=False)

    @property
    def fold_enrichment(self) -> float:
        return self.intersection / self.expected if self.expected > 0 else 0.0

    def venn_sets(self) -> dict[str, frozenset[str]]:
        """The two sets exactly as tested, keyed by name."""
        return {self.name_a: self.members_a, self.name_b: self.members_b}

    def as_dict(self) -> dict[str, Any]:
        return {
            "set_a": self.name_a,
            "set_b": self.name_b,
            "size_a": self.size_a,
            "size_b": self.size_b,
            "intersection": self.intersection,
            "background": self.background,
            "expected": self.expected,
            "fold_enrichment": self.fold_enrichment,
            "odds_ratio": self.odds_ratio,
            "jaccard": self.jaccard,
            "p_value": self.p_value,
        }


# ===================================================
#  === Set Arithmetic ===
# ===================================================
def intersection_counts(sets: Mapping[str, Iterable[str]]) -> pd.DataFrame:
    """Intersection size of every combination of two or more named sets.

    Returns:
        DataFrame with ``sets`` (names joined by ' & '), ``n_sets`` and ``size``.
    """
    named = {name: set(genes) for name, genes in sets.items()}
    rows = []
    for r in range(2, len(named) + 1):
        for combo in combinations(named, r):
            common = set.intersection(*(named[n] for n in combo))
            rows.append({"sets": " & ".join(combo), "n_sets": r, "size": len(common)})
    return pd.DataFrame(rows, columns=["sets", "n_sets", "size"])


def exclusive_memberships(sets: Mapping[str, Iterable[str]]) -> pd.Series:
    """For every gene in any set, the tuple of set names that contain it."""
    named = {name: set(genes) for name, genes in sets.items()}
    all_genes = sorted(set().union(*named.values())) if named else []
    return pd.Series(
        {g: tuple(n for n in named if g in named[n]) for g in all_genes}, dtype=object
    )


def shared_background(our_universe: Iterable[str], their_universe: Iterable[str]) -> frozenset[str]:
    """Genes that passed the expression filter in both studies."""
    return frozenset(our_universe) & frozenset(their_universe)


# ===================================================
#  === Hypergeometric Test ===
# ===================================================
def hypergeometric_overlap(
    set_a: Iterable[str],
    set_b: Iterable[str],
    background: int,
    name_a: str = "A",
    name_b: str = "B",
) -> OverlapResult:
    """One-sided test that ``set_a`` and ``set_b`` share more genes than chance.

    p = P(X >= k) for X ~ Hypergeom(M=background, n=|A|, N=|B|). An empty set or
    an empty intersection gives p = 1 and odds ratio 0.

    Raises:
        ValueError: If the background is smaller than the union of the two sets.
    """
    set_a, set_b = frozenset(set_a), frozenset(set_b)
    common = set_a & set_b
    n_a, n_b, k = len(set_a), len(set_b), len(common)
    union = len(set_a | set_b)
    if background < union:
        msg = f"Background ({background}) is smaller than the union of {name_a} and {name_b} ({union})"
        raise ValueError(msg)

    expected = n_a * n_b / background if background > 0 else 0.0
    jaccard = k / union if union else 0.0

    if k == 0:
        p_value, odds_ratio = 1.0, 0.0
    else:
        p_value = float(stats.hypergeom.sf(k - 1, background, n_a, n_b))
        table = [[k, n_a - k], [n_b - k, background - n_a - n_b + k]]
        # NaN when the table has no off-diagonal or non-member cells (sets == background)
        odds_ratio, _ = stats.fisher_exact(table, alternative="greater")
        odds_ratio = float(odds_ratio)

    return OverlapResult(
        name_a=name_a,
        name_b=name_b,
        size_a=n_a,
        size_b=n_b,
        intersection=k,
        background=background,
        expected=expected,
        p_value=min(p_value, 1.0),
        odds_ratio=odds_ratio,
        jaccard=jaccard,
        genes=frozenset(common),
        members_a=set_a,
        members_b=set_b,
    )


def overlap_table(results: Iterable[OverlapResult], method: str = "fdr_bh") -> pd.DataFrame:
    """Tabulate overlap results with multiple-testing adjusted p-values."""
    rows = [r.as_dict() for r in results]
    df = pd.DataFrame(rows)
    if df.empty:
        return df
    _, adjusted, _, _ = multipletests(df["p_value"].to_numpy(), method=method)
    df["p_value_adj"] = adjusted
    return df


# ===================================================
#  === Analysis Class ===
# ===================================================
class OverlapAnalysis:
    """Cross-references significant genes between contrasts and reference gene lists."""

    def __init__(self, de_results: Mapping[str, DEResult], universe: Iterable[str]):
        """Initialize the overlap analysis.

        Args:
            de_results: DE results keyed by contrast name.
            universe: Genes tested by this pipeline (the filtered count matrix index).
        """
        self.de_results = dict(de_results)
        self.universe = frozenset(universe)
        self.overlaps: list[OverlapResult] = []

    def significant_sets(self) -> dict[str, frozenset[str]]:
        return {name: res.significant_genes() for name, res in self.de_results.items()}

    def contrast_overlaps(self) -> list[OverlapResult]:
        """Pairwise tests between contrasts; background = genes tested in both."""
        results = []
        for name_a, name_b in combinations(self.de_results, 2):
            tested = set(self.de_results[name_a].tested().index) & set(
                self.de_results[name_b].tested().index
            )
            sig_a = self.de_results[name_a].significant_genes() & tested
            sig_b = self.de_results[name_b].significant_genes() & tested
            results.append(hypergeometric_overlap(sig_a, sig_b, len(tested), name_a, name_b))
        self.overlaps.extend(results)
        return results

    def reference_overlap(
        self,
        contrast_name: str,
        reference: Iterable[str],
        reference_name: str,
        reference_universe: Iterable[str] | None = None,
        background_size: int | None = None,
    ) -> OverlapResult:
        """Test a contrast's significant genes against an external gene list.

        With ``reference_universe`` the background is the genes expressed in both
        studies and both sets are restricted to it. Without it, ``background_size``
        must give the size of that shared background (for instance as published
        with the reference list); our significant genes are then restricted to our
        universe and the reference list is used as given.

        Raises:
            KeyError: If the contrast was not run.
            ValueError: If neither a reference universe nor a background size is given.
        """
        if contrast_name not in self.de_results:
            msg = f"Unknown contrast '{contrast_name}'. Available: {list(self.de_results)}"
            raise KeyError(msg)
        if reference_universe is not None:
            background = shared_background(self.universe, reference_universe)
            n_background = len(background)
            ref = frozenset(reference) & background
        elif background_size:
            background = self.universe
            n_background = int(background_size)
            ref = frozenset(reference)
        else:
            msg = (
                f"No expressed-gene universe or background size for '{reference_name}'; "
                "the overlap background must be the genes expressed in both studies"
            )
            raise ValueError(msg)
        sig = self.de_results[contrast_name].significant_genes() & background
        result = hypergeometric_overlap(sig, ref, n_background, contrast_name, reference_name)
        logger.info(
            f"{contrast_name} vs {reference_name}: {result.intersection} shared genes "
            f"(|A|={result.size_a}, |B|={result.size_b}, background={result.background}, "
            f"p={result.p_value:.3g})"
        )
        self.overlaps.append(result)
        return result

    def shared_significant(self, names: Iterable[str] | None = None) -> frozenset[str]:
        """Genes significant in every named contrast (all contrasts by default)."""
        sets = self.significant_sets()
        names = list(names) if names is not None else list(sets)
        if not names:
            return frozenset()
        return frozenset.intersection(*(sets[n] for n in names))

    def intersection_table(
        self,
        genes: Iterable[str],
        contrast_names: Iterable[str] | None = None,
        symbols: pd.Series | None = None,
    ) -> pd.DataFrame:
        """DE columns of ``genes`` indexed by gene identifier.

        With one contrast the columns are the plain DE columns; with several they
        are prefixed by contrast name. ``symbols`` (gene_id -> symbol) adds a
        ``symbol`` column when given.
        """
        contrast_names = list(contrast_names) if contrast_names is not None else list(self.de_results)
        genes = sorted(genes)
        frames = []
        for name in contrast_names:
            table = self.de_results[name].table.reindex(genes)[RESULT_COLUMNS]
            if len(contrast_names) > 1:
                table = table.add_prefix(f"{name}_")
            frames.append(table)
        combined = pd.concat(frames, axis=1) if frames else pd.DataFrame(index=genes)
        combined.index.name = "gene_id"
        if symbols is not None:
            combined.insert(0, "symbol", symbols.reindex(combined.index))
        return combined

    def summary_table(self) -> pd.DataFrame:
        return overlap_table(self.overlaps)
