# stat3_deg/core/data_loader.py
"""Data loading utilities for the STAT3 knockout RNA-seq analysis.

Per-sample count files are two-column tab-delimited tables (gene identifier,
read count) as written by the read counter, ending with a fixed block of
alignment-summary pseudo-genes. Annotation inputs are plain gene-identifier
lists, plus one identifier/symbol table for literature DEGs.
"""

import logging
from pathlib import Path
from typing import Any

import numpy as np
import pandas as pd

from stat3_deg.core.config import (
    SUMMARY_ROW_COUNT,
    SUMMARY_ROW_PREFIXES,
    get_file_path,
    get_files_config,
    get_loader_config,
    get_paths_config,
)
from stat3_deg.core.utils import as_gene_set, strip_gene_version

logger = logging.getLogger(__name__)

REQUIRED_SAMPLE_COLUMNS = ["sample", "treatment", "batch"]
KNOWN_HEADER_WORDS = frozenset(
    {"x", "id", "gene", "genes", "gene_id", "geneid", "ensembl", "ensembl_id", "ensembl_gene_id"}
)


# ===================================================
#  === Count Files ===
# ===================================================
def read_count_file(
    path: Path | str,
    summary_rows: int = SUMMARY_ROW_COUNT,
    strip_versions: bool = True,
) -> pd.Series:
    """Read one per-sample count file into a Series indexed by gene identifier.

    Args:
        path: Two-column tab-delimited count file without header.
        summary_rows: Number of trailing alignment-summary rows to drop.
        strip_versions: Drop Ensembl version suffixes from identifiers.

    Returns:
        Integer counts indexed by ``gene_id``, named after the file.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the file is not a well-formed two-column count table.
    """
    path = Path(path)
    if not path.is_file():
        msg = f"Count file not found: {path}"
        logger.error(msg)
        raise FileNotFoundError(msg)

    try:
        raw = pd.read_csv(path, sep="\t", header=None, dtype={0: str})
    except pd.errors.EmptyDataError as e:
        msg = f"Count file is empty: {path}"
        logger.error(msg)
        raise ValueError(msg) from e
    except pd.errors.ParserError as e:
        msg = f"Error parsing count file: {path}. Error: {e!s}"
        logger.error(msg)
        raise ValueError(msg) from e

    if raw.shape[1] != 2:
        msg = f"Count file {path} must have exactly 2 columns, found {raw.shape[1]}"
        logger.error(msg)
        raise ValueError(msg)
    if raw.isna().any().any():
        bad_lines = (raw.index[raw.isna().any(axis=1)] + 1).tolist()
        msg = f"Count file {path} has incomplete rows (lines {bad_lines[:5]})"
        logger.error(msg)
        raise ValueError(msg)

    if summary_rows:
        if summary_rows >= len(raw):
            msg = f"Count file {path} has {len(raw)} rows, fewer than the {summary_rows} summary rows"
            logger.error(msg)
            raise ValueError(msg)
        trailing = raw.iloc[-summary_rows:, 0]
        unexpected = [g for g in trailing if not str(g).startswith(SUMMARY_ROW_PREFIXES)]
        if unexpected:
            logger.warning(f"Dropping trailing rows of {path.name} that do not look like summary rows: {unexpected}")
        raw = raw.iloc[:-summary_rows]

    counts = pd.to_numeric(raw[1], errors="coerce")
    if counts.isna().any() or (counts < 0).any() or not np.all(np.mod(counts, 1) == 0):
        msg = f"Count file {path} contains non-integer or negative counts"
        logger.error(msg)
        raise ValueError(msg)

    gene_ids = raw[0].astype(str).str.strip()
    if strip_versions:
        gene_ids = gene_ids.map(strip_gene_version)
    if gene_ids.duplicated().any():
        dups = gene_ids[gene_ids.duplicated()].unique().tolist()
        msg = f"Count file {path} has duplicated gene identifiers: {dups[:5]}"
        logger.error(msg)
        raise ValueError(msg)

    return pd.Series(
        counts.astype("int64").to_numpy(),
        index=pd.Index(gene_ids.to_numpy(), name="gene_id"),
        name=path.name,
    )


def sample_name_from_file(path: Path, pattern: str) -> str:
    """Derive a sample name by removing the literal suffix of the glob pattern."""
    suffix = pattern.rsplit("*", 1)[-1]
    name = path.name
    if suffix and name.endswith(suffix) and len(name) > len(suffix):
        return name[: -len(suffix)]
    return path.stem


def load_count_matrix(
    counts_dir: Path | str,
    pattern: str = "*.counts.txt",
    sample_sheet: pd.DataFrame | None = None,
    summary_rows: int = SUMMARY_ROW_COUNT,
    strip_versions: bool = True,
) -> pd.DataFrame:
    """Merge all per-sample count files into one gene x sample matrix.

    Files are merged on gene identifier, so the result does not depend on the
    order in which files are enumerated. Rows are sorted by gene identifier;
    columns follow the sample sheet when one with a ``file`` column is given,
    otherwise sorted sample names.

    Raises:
        FileNotFoundError: If no file matches, or a sheet-listed file is missing.
        ValueError: If any file is malformed or sample names collide.
    """
    counts_dir = Path(counts_dir)
    files = sorted(counts_dir.glob(pattern))

    if sample_sheet is not None and "file" in sample_sheet.columns:
        listed = {str(f): sample for sample, f in sample_sheet["file"].items()}
        found = {f.name: f for f in files}
        missing = [f for f in listed if f not in found]
        if missing:
            msg = f"Count files listed in the sample sheet are missing from {counts_dir}: {missing}"
            logger.error(msg)
            raise FileNotFoundError(msg)
        extra = [name for name in found if name not in listed]
        if extra:
            logger.warning(f"Ignoring count files not listed in the sample sheet: {extra}")
        named_files = [(listed[name], found[name]) for name in listed]
    else:
        named_files = [(sample_name_from_file(f, pattern), f) for f in files]

    if not named_files:
        msg = f"No count files matching '{pattern}' in {counts_dir}"
        logger.error(msg)
        raise FileNotFoundError(msg)

    sample_names = [name for name, _ in named_files]
    if len(set(sample_names)) != len(sample_names):
        msg = f"Duplicate sample names derived from count files: {sample_names}"
        logger.error(msg)
        raise ValueError(msg)

    columns = [
        read_count_file(path, summary_rows=summary_rows, strip_versions=strip_versions).rename(name)
        for name, path in named_files
    ]
    matrix = pd.concat(columns, axis=1, join="outer").sort_index()
    matrix.index.name = "gene_id"

    n_missing = int(matrix.isna().sum().sum())
    if n_missing:
        logger.warning(f"{n_missing} gene/sample entries absent from their count file, set to 0")
    matrix = matrix.fillna(0).astype("int64")

    if sample_sheet is not None:
        ordered = [s for s in sample_sheet.index if s in matrix.columns]
        ordered += [s for s in matrix.columns if s not in ordered]
    else:
        ordered = sorted(matrix.columns)
    matrix = matrix[ordered]
    matrix.columns.name = "sample"

    logger.info(f"Loaded count matrix: {matrix.shape[0]} genes x {matrix.shape[1]} samples")
    return matrix


# ===================================================
#  === Sample Metadata ===
# ===================================================
def load_sample_sheet(path: Path | str) -> pd.DataFrame:
    """Load the tab-delimited sample sheet, indexed by sample name.

    Raises:
        FileNotFoundError: If the sheet does not exist.
        ValueError: If required columns are missing or sample names repeat.
    """
    path = Path(path)
    if not path.is_file():
        msg = f"Sample sheet not found: {path}"
        logger.error(msg)
        raise FileNotFoundError(msg)
    try:
        sheet = pd.read_csv(path, sep="\t", dtype=str)
    except (pd.errors.EmptyDataError, pd.errors.ParserError) as e:
        msg = f"Sample sheet is empty or invalid: {path}. Error: {e!s}"
        logger.error(msg)
        raise ValueError(msg) from e

    sheet.columns = [c.strip() for c in sheet.columns]
    missing_cols = [c for c in REQUIRED_SAMPLE_COLUMNS if c not in sheet.columns]
    if missing_cols:
        msg = f"Sample sheet {path} missing required columns: {missing_cols}"
        logger.error(msg)
        raise ValueError(msg)
    sheet = sheet.apply(lambda col: col.str.strip())
    if sheet["sample"].duplicated().any():
        msg = f"Sample sheet {path} has duplicated sample names"
        logger.error(msg)
        raise ValueError(msg)

    sheet = sheet.set_index("sample")
    logger.info(
        f"Loaded sample sheet: {len(sheet)} samples, treatments {sorted(sheet['treatment'].unique())}"
    )
    return sheet


def align_sample_metadata(counts: pd.DataFrame, samples: pd.DataFrame) -> pd.DataFrame:
    """Return the sample metadata reordered to match the count matrix columns.

    Binding is by sample name; a column without a metadata record is an error.
    """
    missing = [c for c in counts.columns if c not in samples.index]
    if missing:
        msg = f"Samples without metadata records: {missing}"
        logger.error(msg)
        raise ValueError(msg)
    return samples.loc[list(counts.columns)].copy()


# ===================================================
#  === Gene Lists ===
# ===================================================
def _strip_token(token: str) -> str:
    return token.strip().strip('"').strip("'")


def load_gene_list(
    path: Path | str, header: bool | str = "infer", strip_versions: bool = True
) -> frozenset[str]:
    """Load a single-column gene identifier list.

    Args:
        path: Text file, one identifier per line (extra columns are ignored).
        header: True/False, or "infer" to drop the first line when it is a
            known header word such as ``gene_id`` or ``x``.
        strip_versions: Drop Ensembl version suffixes.

    Raises:
        FileNotFoundError: If the file does not exist.
    """
    path = Path(path)
    if not path.is_file():
        msg = f"Gene list not found: {path}"
        logger.error(msg)
        raise FileNotFoundError(msg)

    with open(path, encoding="utf-8") as handle:
        tokens = [_strip_token(line.split("\t")[0].split(",")[0]) for line in handle]
    tokens = [t for t in tokens if t]

    if tokens and (header is True or (header == "infer" and tokens[0].lower() in KNOWN_HEADER_WORDS)):
        tokens = tokens[1:]
    if strip_versions:
        tokens = [strip_gene_version(t) for t in tokens]

    gene_set = as_gene_set(tokens)
    logger.info(f"Loaded {len(gene_set)} gene identifiers from {path.name}")
    return gene_set


def load_reference_degs(path: Path | str, strip_versions: bool = True) -> pd.DataFrame:
    """Load a literature DEG table (gene identifier, gene symbol) indexed by ``gene_id``.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the table has fewer than two columns.
    """
    path = Path(path)
    if not path.is_file():
        msg = f"Reference DEG table not found: {path}"
        logger.error(msg)
        raise FileNotFoundError(msg)
    try:
        raw = pd.read_csv(path, sep="\t", header=None, dtype=str)
    except (pd.errors.EmptyDataError, pd.errors.ParserError) as e:
        msg = f"Reference DEG table is empty or invalid: {path}. Error: {e!s}"
        logger.error(msg)
        raise ValueError(msg) from e
    if raw.shape[1] < 2:
        msg = f"Reference DEG table {path} needs gene identifier and symbol columns"
        logger.error(msg)
        raise ValueError(msg)

    table = raw.iloc[:, :2].copy()
    table.columns = ["gene_id", "symbol"]
    table = table.dropna(subset=["gene_id"])
    table["gene_id"] = table["gene_id"].map(_strip_token)
    if not table.empty and table["gene_id"].iloc[0].lower() in KNOWN_HEADER_WORDS:
        table = table.iloc[1:]
    if strip_versions:
        table["gene_id"] = table["gene_id"].map(strip_gene_version)
    table = table.drop_duplicates(subset="gene_id").set_index("gene_id")
    logger.info(f"Loaded {len(table)} literature reference genes from {path.name}")
    return table


# ===================================================
#  === Loader Class ===
# ===================================================
class DataLoader:
    """Loads the count matrix, sample sheet and annotation sets for one experiment."""

    def __init__(self, data_dir: Path | str | None = None):
        """Initialize DataLoader.

        Args:
            data_dir: Input directory; defaults to the configured data directory.
        """
        paths_cfg = get_paths_config()
        self.data_dir = Path(data_dir or paths_cfg["data_dir"]).resolve()
        self.counts_dir = self.data_dir / paths_cfg["counts_dir_name"]
        self.files_cfg = get_files_config()
        self.loader_cfg = get_loader_config()

        self.counts: pd.DataFrame | None = None
        self.samples: pd.DataFrame | None = None
        self.protein_coding: frozenset[str] | None = None
        self.housekeeping: frozenset[str] | None = None
        self.reference_degs: frozenset[str] | None = None
        self.reference_universe: frozenset[str] | None = None
        self.literature_degs: pd.DataFrame | None = None
        self.literature_universe: frozenset[str] | None = None

    def _input_path(self, key: str) -> Path:
        return get_file_path(key, self.data_dir)

    def load_samples(self) -> pd.DataFrame:
        """Load the sample sheet."""
        self.samples = load_sample_sheet(self._input_path("sample_sheet"))
        return self.samples

    def load_counts(self) -> pd.DataFrame:
        """Load and merge the per-sample count files, aligned to the sample sheet."""
        if self.samples is None:
            self.load_samples()
        self.counts = load_count_matrix(
            self.counts_dir,
            pattern=self.files_cfg["count_file_pattern"],
            sample_sheet=self.samples,
            summary_rows=self.loader_cfg["summary_rows"],
            strip_versions=self.loader_cfg["strip_versions"],
        )
        self.samples = align_sample_metadata(self.counts, self.samples)
        return self.counts

    def _load_optional_list(self, key: str) -> frozenset[str] | None:
        path = self._input_path(key)
        if not path.is_file():
            logger.warning(f"Optional gene list '{key}' not found at {path}; skipping.")
            return None
        return load_gene_list(path, strip_versions=self.loader_cfg["strip_versions"])

    def load_annotation_sets(self) -> None:
        """Load the gene lists. The protein-coding list is required, the others optional."""
        self.protein_coding = load_gene_list(
            self._input_path("protein_coding"),
            strip_versions=self.loader_cfg["strip_versions"],
        )
        self.housekeeping = self._load_optional_list("housekeeping")
        self.reference_degs = self._load_optional_list("reference_degs")
        self.reference_universe = self._load_optional_list("reference_universe")
        self.literature_universe = self._load_optional_list("literature_universe")

        literature_path = self._input_path("literature_degs")
        if literature_path.is_file():
            self.literature_degs = load_reference_degs(
                literature_path, strip_versions=self.loader_cfg["strip_versions"]
            )
        else:
            logger.warning(f"Literature DEG table not found at {literature_path}; skipping.")

    def load_all_data(self) -> tuple[pd.DataFrame, pd.DataFrame]:
        """Load sample sheet, counts and annotation sets. Any failure propagates."""
        logger.info(f"Loading all input data from {self.data_dir}...")
        self.load_samples()
        self.load_counts()
        self.load_annotation_sets()
        return self.counts, self.samples

    def get_basic_stats(self) -> dict[str, Any]:
        """Get basic statistics about the loaded data."""
        if self.counts is None:
            msg = "Cannot calculate stats: counts have not been loaded."
            raise RuntimeError(msg)
        library_sizes = self.counts.sum(axis=0)
        stats: dict[str, Any] = {
            "num_genes": int(self.counts.shape[0]),
            "num_samples": int(self.counts.shape[1]),
            "total_reads": int(library_sizes.sum()),
            "min_library_size": int(library_sizes.min()),
            "max_library_size": int(library_sizes.max()),
            "zero_count_genes": int((self.counts.sum(axis=1) == 0).sum()),
        }
        if self.samples is not None:
            stats["samples_per_treatment"] = self.samples["treatment"].value_counts().to_dict()
            stats["samples_per_batch"] = self.samples["batch"].value_counts().to_dict()
        logger.debug(f"Basic stats calculated: {stats}")
        return stats
