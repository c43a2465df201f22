"""Shared fixtures: a small synthetic STAT3 experiment written to disk."""

import os

# No log files from tests
os.environ.setdefault("STAT3_DEG_LOGGING_FILE_LOGGING", "false")

import matplotlib

matplotlib.use("Agg")

from pathlib import Path

import numpy as np
import pandas as pd
import pytest

TREATMENTS = ["WT", "Cas9", "STAT3KO"]
REPLICATES = 4
N_GENES = 200
N_UP = 20
N_DOWN = 20
NON_CODING = 10
SUMMARY_LINES = [
    ("__no_feature", 1200),
    ("__ambiguous", 340),
    ("__too_low_aQual", 90),
    ("__not_aligned", 560),
]


def gene_id(i: int) -> str:
    return f"ENSG{i:011d}"


def _make_counts(seed: int = 7) -> pd.DataFrame:
    """Negative binomial counts; the first genes respond strongly to the knockout."""
    rng = np.random.default_rng(seed)
    genes = [gene_id(i) for i in range(1, N_GENES + 1)]
    samples = [f"{t}_{r}" for t in TREATMENTS for r in range(1, REPLICATES + 1)]
    base_mean = rng.uniform(100, 2000, size=N_GENES)

    data = np.empty((N_GENES, len(samples)), dtype=np.int64)
    for j, sample in enumerate(samples):
        mu = base_mean.copy()
        if sample.startswith("STAT3KO"):
            mu[:N_UP] *= 8.0
            mu[N_UP : N_UP + N_DOWN] /= 8.0
        dispersion_n = 50.0
        data[:, j] = rng.negative_binomial(dispersion_n, dispersion_n / (dispersion_n + mu))

    # A handful of genes that never pass the expression filter
    data[-5:, :] = rng.integers(0, 3, size=(5, len(samples)))
    return pd.DataFrame(data, index=pd.Index(genes, name="gene_id"), columns=samples)


def write_count_file(path: Path, counts: pd.Series, version: int = 3) -> None:
    lines = [f"{g}.{version}\t{c}" for g, c in counts.items()]
    lines += [f"{name}\t{value}" for name, value in SUMMARY_LINES]
    path.write_text("\n".join(lines) + "\n")


@pytest.fixture(scope="session")
def synthetic_counts() -> pd.DataFrame:
    """Gene x sample matrix with 4 replicates of WT, Cas9 and STAT3KO."""
    return _make_counts()


@pytest.fixture(scope="session")
def synthetic_samples(synthetic_counts) -> pd.DataFrame:
    samples = pd.DataFrame(
        {
            "sample": synthetic_counts.columns,
            "treatment": [s.split("_")[0] for s in synthetic_counts.columns],
            "batch": [f"B{1 + (int(s.split('_')[1]) - 1) % 2}" for s in synthetic_counts.columns],
        }
    )
    return samples.set_index("sample")


@pytest.fixture
def data_dir(tmp_path, synthetic_counts, synthetic_samples) -> Path:
    """Complete input directory: counts/, annotation/ and samples.tsv."""
    root = tmp_path / "data"
    counts_dir = root / "counts"
    annotation_dir = root / "annotation"
    counts_dir.mkdir(parents=True)
    annotation_dir.mkdir()

    for sample in synthetic_counts.columns:
        write_count_file(counts_dir / f"{sample}.counts.txt", synthetic_counts[sample])
    synthetic_samples.reset_index().to_csv(root / "samples.tsv", sep="\t", index=False)

    genes = list(synthetic_counts.index)
    coding = genes[: N_GENES - NON_CODING]
    (annotation_dir / "protein_coding_genes.txt").write_text("x\n" + "\n".join(coding) + "\n")
    (annotation_dir / "housekeeping_genes.txt").write_text(
        "\n".join(genes[N_UP + N_DOWN : N_UP + N_DOWN + 60]) + "\n"
    )
    (annotation_dir / "reference_degs.txt").write_text(
        "gene_id\n" + "\n".join(genes[:10] + genes[150:160]) + "\n"
    )
    literature = pd.DataFrame(
        {"gene_id": genes[:N_UP] + genes[100:105], "symbol": [f"SYM{i}" for i in range(N_UP + 5)]}
    )
    literature.to_csv(annotation_dir / "literature_degs.tsv", sep="\t", index=False, header=False)
    return root


@pytest.fixture
def gene_list_file(tmp_path):
    """Factory writing a gene list with arbitrary content."""

    def _write(content: str, name: str = "genes.txt") -> Path:
        path = tmp_path / name
        path.write_text(content)
        return path

    return _write


@pytest.fixture
def sample_sheet_file(tmp_path, synthetic_samples):
    path = tmp_path / "samples.tsv"
    synthetic_samples.reset_index().to_csv(path, sep="\t", index=False)
    return path
