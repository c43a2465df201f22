# stat3_deg/core/utils.py
"""Utility functions for the STAT3 DEG analysis."""

import re
from collections.abc import Iterable
from pathlib import Path

import numpy as np
import pandas as pd

_ENSEMBL_VERSION = re.compile(r"^(ENS[A-Z]*G\d+)\.\d+$")


def ensure_directory(directory_path: Path) -> Path:
    """Ensure a directory exists, creating it if necessary.

    Args:
        directory_path: Path to the directory.

    Returns:
        The directory path.
    """
    Path(directory_path).mkdir(parents=True, exist_ok=True)
    return directory_path


def strip_gene_version(gene_id: str) -> str:
    """Drop an Ensembl version suffix (ENSG00000168610.15 -> ENSG00000168610).

    Identifiers that are not versioned Ensembl gene IDs are returned unchanged.
    """
    match = _ENSEMBL_VERSION.match(gene_id)
    return match.group(1) if match else gene_id


def as_gene_set(gene_ids: Iterable[str]) -> frozenset[str]:
    """Normalise any iterable of identifiers into an immutable set of stripped strings."""
    return frozenset(str(g).strip() for g in gene_ids if str(g).strip())


def log_transform(df: pd.DataFrame, base: float = 2.0, pseudocount: float = 1.0) -> pd.DataFrame:
    """Log-transform a count-like DataFrame with a pseudocount.

    Args:
        df: Gene x sample DataFrame of non-negative values.
        base: Logarithm base (2 or e are the usual choices).
        pseudocount: Value added before taking the log.

    Returns:
        Transformed DataFrame with the same index and columns.

    Raises:
        ValueError: If the base is not positive or equals 1.
    """
    if base <= 0 or base == 1:
        msg = f"Invalid logarithm base: {base}"
        raise ValueError(msg)
    return np.log(df + pseudocount) / np.log(base)


def relative_std(df: pd.DataFrame) -> pd.Series:
    """Per-row relative standard deviation (std / mean); rows with zero mean give NaN."""
    means = df.mean(axis=1)
    stds = df.std(axis=1)
    return stds / means.replace(0, np.nan)
