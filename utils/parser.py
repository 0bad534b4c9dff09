"""
Parser / preprocessing utilities for the CSV explorer.

This module handles all data loading and preprocessing before clustering:
reading a CSV into row records, deciding which columns are numeric, coercing
those columns to numbers, and optionally min-max normalising them so that
features with different ranges weigh the same in the distance computation.

Rows are plain dictionaries (column name -> value). Raw CSV cells are strings;
after coercion numeric cells are floats or None.
"""

import csv
import logging
import math
import numbers
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from sklearn.preprocessing import MinMaxScaler

logger = logging.getLogger(__name__)

DEFAULT_MAX_ROWS = 5000
NUMERIC_THRESHOLD = 0.85
MISSING_MARKERS = ("", "na", "null")
ZERO_RANGE_VALUE = 0.5


class DatasetError(ValueError):
    """The CSV cannot be turned into a usable dataset."""


@dataclass(frozen=True)
class Dataset:
    """
    Ordered column names plus row records.

    Attributes
    ----------
    columns : List[str]
        Unique column names, in file order.
    rows : List[Dict[str, Any]]
        One mapping per data row.
    truncated : bool
        True when the file had more rows than were read.
    """

    columns: List[str]
    rows: List[Dict[str, Any]]
    truncated: bool = False

    def __len__(self) -> int:
        return len(self.rows)

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(self.rows, columns=self.columns)

    def with_rows(self, rows: List[Dict[str, Any]]) -> "Dataset":
        return Dataset(columns=list(self.columns), rows=rows, truncated=self.truncated)


@dataclass(frozen=True)
class Schema:
    """Partition of the dataset columns into numeric and categorical."""

    numeric: List[str] = field(default_factory=list)
    categorical: List[str] = field(default_factory=list)

    def is_numeric(self, column: str) -> bool:
        return column in self.numeric


# ---------------------------------------------------------------------
# Basic helpers
# ---------------------------------------------------------------------

def is_finite_number(value: Any) -> bool:
    """True for finite real numbers (ints, floats, numpy scalars). Bools do not count."""
    if isinstance(value, (bool, np.bool_)):
        return False
    if not isinstance(value, numbers.Real):
        return False
    try:
        return math.isfinite(value)
    except OverflowError:
        # ints too large for a float
        return False


def to_number_or_none(value: Any) -> Optional[float]:
    """
    Converts a raw cell to a finite float, or None.

    Empty cells and the markers 'NA' / 'null' (any case) are missing. Anything
    that does not parse to a finite number is also None.
    """
    if value is None or isinstance(value, (bool, np.bool_)):
        return None
    if isinstance(value, numbers.Real):
        return float(value) if is_finite_number(value) else None

    text = str(value).strip()
    if text.lower() in MISSING_MARKERS:
        return None
    try:
        number = float(text)
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def _clean_header(raw: Sequence[Any]) -> List[str]:
    columns: List[str] = []
    seen: Dict[str, int] = {}
    for i, name in enumerate(raw):
        name = "" if name is None or (isinstance(name, float) and math.isnan(name)) else str(name).strip()
        if not name:
            name = f"col_{i}"
        # keep names unique; later duplicates get a numeric suffix
        if name in seen:
            seen[name] += 1
            name = f"{name}_{seen[name]}"
        seen.setdefault(name, 0)
        columns.append(name)
    return columns


# ---------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------

def _split_line(line: str) -> List[str]:
    # one physical line is one record; an unclosed quote ends with its line
    try:
        return next(csv.reader([line], skipinitialspace=True), [])
    except csv.Error as e:
        raise DatasetError(f"Could not parse CSV line {line!r}: {e}") from e


def parse_csv(text: str, max_rows: int = DEFAULT_MAX_ROWS) -> Dataset:
    """
    Parses CSV text into a Dataset of raw string cells.

    Every non-blank line is parsed as one record, so a stray quote only
    affects the line it appears on.

    Parameters
    ----------
    text : str
        The CSV content. The first non-blank line is the header.
    max_rows : int, default=5000
        Maximum number of data rows kept; the rest is dropped and the dataset
        is flagged as truncated.

    Returns
    -------
    Dataset
        Columns and rows; every cell is a trimmed string ('' when absent).

    Raises
    ------
    DatasetError
        If there is no data row, fewer than two columns, or a line cannot be
        split into cells.
    """
    # Blank and whitespace-only lines never count as rows
    lines = text.replace("\r\n", "\n").replace("\r", "\n").split("\n")
    lines = [line for line in lines if line.strip()]
    if len(lines) < 2:
        raise DatasetError("CSV must have a header row and at least 1 data row.")

    header = _clean_header(_split_line(lines[0]))
    n_header_fields = len(header)
    if n_header_fields < 2:
        raise DatasetError("CSV must contain at least 2 columns.")

    body = lines[1:]
    truncated = len(body) > max_rows
    records = []
    for line in body[:max_rows]:
        # short rows are padded, long rows keep only the header's width
        cells = _split_line(line)[:n_header_fields]
        records.append(cells + [""] * (n_header_fields - len(cells)))

    frame = pd.DataFrame.from_records(records, columns=header)
    for col in header:
        frame[col] = frame[col].astype(str).str.strip()

    rows = frame.to_dict(orient="records")
    if truncated:
        logger.warning("CSV truncated to the first %d rows", max_rows)

    return Dataset(columns=header, rows=rows, truncated=truncated)


def load_csv(filepath: str, max_rows: int = DEFAULT_MAX_ROWS, encoding: str = "utf-8") -> Dataset:
    """Reads a CSV file from disk and parses it with ``parse_csv``."""
    with open(filepath, "r", encoding=encoding, newline="") as f:
        text = f.read()
    return parse_csv(text, max_rows=max_rows)


# ---------------------------------------------------------------------
# Schema and coercion
# ---------------------------------------------------------------------

def detect_schema(dataset: Dataset, numeric_threshold: float = NUMERIC_THRESHOLD) -> Schema:
    """
    Separates columns into numeric and categorical lists.

    A column is numeric when at least ``numeric_threshold`` of its non-empty
    cells parse as finite numbers. Columns with no non-empty cell are
    categorical.

    Parameters
    ----------
    dataset : Dataset
        The parsed dataset.
    numeric_threshold : float, default=0.85
        Minimum numeric fraction, in [0, 1].

    Returns
    -------
    Schema
        Every column appears in exactly one of the two lists.
    """
    frame = dataset.to_frame()
    numeric: List[str] = []
    categorical: List[str] = []

    for col in dataset.columns:
        values = frame[col]
        present = values.notna() & (values.astype(str).str.strip() != "")
        n_present = int(present.sum())

        numeric_count = int(values[present].map(to_number_or_none).notna().sum())
        ratio = numeric_count / n_present if n_present else 0.0

        if ratio >= numeric_threshold:
            numeric.append(col)
        else:
            categorical.append(col)

    return Schema(numeric=numeric, categorical=categorical)


def coerce_numeric_rows(dataset: Dataset, numeric_cols: Sequence[str]) -> Dataset:
    """Returns a copy of the dataset whose numeric columns hold floats or None."""
    rows = []
    for row in dataset.rows:
        out = dict(row)
        for col in numeric_cols:
            out[col] = to_number_or_none(row.get(col))
        rows.append(out)
    return dataset.with_rows(rows)


# ---------------------------------------------------------------------
# Normalisation
# ---------------------------------------------------------------------

def min_max_normalise(dataset: Dataset, numeric_cols: Sequence[str]) -> Dataset:
    """
    Rescales numeric columns to [0, 1] per column.

    Minimum and maximum are taken over the finite values only. Cells that are
    not finite numbers are left untouched. A column whose finite values are all
    equal maps every one of them to 0.5.

    Parameters
    ----------
    dataset : Dataset
        Dataset whose numeric columns have already been coerced.
    numeric_cols : Sequence[str]
        Columns to rescale.

    Returns
    -------
    Dataset
        A new dataset; the input is not modified.
    """
    frame = pd.DataFrame(
        {col: [float(r.get(col)) if is_finite_number(r.get(col)) else np.nan for r in dataset.rows]
         for col in numeric_cols},
        index=range(len(dataset.rows)),
    )
    scalable = [col for col in numeric_cols if frame[col].notna().any()]

    scaled = frame.copy()
    if scalable:
        # MinMaxScaler ignores NaNs when fitting and keeps them when transforming
        scaler = MinMaxScaler(feature_range=(0, 1))
        scaled[scalable] = scaler.fit_transform(frame[scalable])
        for col, data_range in zip(scalable, scaler.data_range_):
            if data_range == 0:
                scaled.loc[frame[col].notna(), col] = ZERO_RANGE_VALUE

    rows = []
    for i, row in enumerate(dataset.rows):
        out = dict(row)
        for col in scalable:
            if is_finite_number(row.get(col)):
                out[col] = float(scaled.at[i, col])
        rows.append(out)
    return dataset.with_rows(rows)


# ---------------------------------------------------------------------
# Single-file preprocessing
# ---------------------------------------------------------------------

def preprocess_single_csv(
        filepath: str,
        numeric_threshold: float = NUMERIC_THRESHOLD,
        max_rows: int = DEFAULT_MAX_ROWS,
        normalise: bool = False,
) -> Tuple[Dataset, Schema, Dict[str, Any]]:
    """
    Loads and prepares a SINGLE CSV file for exploration and clustering.

    Parameters
    ----------
    filepath : str
        Path to the CSV file.
    numeric_threshold : float, default=0.85
        Passed to ``detect_schema``.
    max_rows : int, default=5000
        Passed to ``parse_csv``.
    normalise : bool, default=False
        If True, numeric columns are min-max scaled to [0, 1].

    Returns
    -------
    dataset : Dataset
        Numeric columns coerced (and optionally normalised).
    schema : Schema
        Numeric / categorical partition.
    info : Dict[str, Any]
        Metadata about the preprocessing steps.
    """
    raw = load_csv(filepath, max_rows=max_rows)
    schema = detect_schema(raw, numeric_threshold=numeric_threshold)
    dataset = coerce_numeric_rows(raw, schema.numeric)
    if normalise:
        dataset = min_max_normalise(dataset, schema.numeric)

    info: Dict[str, Any] = {
        "source": filepath,
        "n_rows": len(dataset),
        "n_columns": len(dataset.columns),
        "truncated": dataset.truncated,
        "numeric_cols": list(schema.numeric),
        "categorical_cols": list(schema.categorical),
        "normalised": normalise,
    }
    logger.info(
        "loaded %s: %d rows, %d numeric / %d categorical columns",
        filepath, len(dataset), len(schema.numeric), len(schema.categorical),
    )
    return dataset, schema, info
