# src/rnaseq_deconv/s1/matrix.py
from __future__ import annotations
import logging
from typing import Optional, Sequence, Tuple

import pandas as pd

from ..errors import MalformedInputError, OrderMismatchError, ShapeMismatchError

logger = logging.getLogger(__name__)

COLLAPSE_HOW = ("sum", "max", "first")


def build(
    vectors: Sequence[Tuple[str, pd.Series]],
    row_labels: Optional[Sequence[str]] = None,
) -> pd.DataFrame:
    """
    Assemble (sample_id, AbundanceVector) pairs into a genes × samples matrix.

    All vectors must share the same gene keys in the same order; row labels
    (usually the reconciled symbols) replace the keys position by position.
    """
    if not vectors:
        raise ShapeMismatchError("build() received no vectors")

    sample_ids = [str(s) for s, _ in vectors]
    if len(set(sample_ids)) != len(sample_ids):
        raise MalformedInputError(f"Duplicate sample ids: {sample_ids}")

    lengths = {s: len(v) for s, v in vectors}
    if len(set(lengths.values())) != 1:
        raise ShapeMismatchError(f"Vectors differ in length: {lengths}")

    keys = list(vectors[0][1].index)
    for s, v in vectors[1:]:
        if list(v.index) != keys:
            raise OrderMismatchError(f"Sample '{s}' does not share gene order with '{sample_ids[0]}'")

    if row_labels is not None and len(row_labels) != len(keys):
        raise ShapeMismatchError(f"{len(row_labels)} row labels for {len(keys)} genes")

    mat = pd.DataFrame(
        {s: pd.to_numeric(v, errors="coerce").to_numpy(dtype=float) for s, (_, v) in zip(sample_ids, vectors)},
        columns=sample_ids,
    )
    if mat.isna().any().any():
        raise MalformedInputError("Expression vectors contain non-numeric values")
    if (mat < 0).any().any():
        raise MalformedInputError("Expression vectors contain negative values")

    mat.index = pd.Index([str(x) for x in (row_labels if row_labels is not None else keys)], name="gene")
    return mat


def collapse_duplicate_rows(matrix: pd.DataFrame, how: str = "sum") -> pd.DataFrame:
    """Merge rows sharing a label (sum | max | first), keeping first-occurrence order."""
    if how not in COLLAPSE_HOW:
        raise ValueError(f"how must be one of {COLLAPSE_HOW}, got {how!r}")
    if not matrix.index.duplicated().any():
        return matrix
    n_dup = int(matrix.index.duplicated().sum())
    logger.info(f"[S1] Duplicate gene labels detected ({n_dup:,}); collapsing by {how}.")
    out = matrix.groupby(level=0, sort=False).agg(how)
    out.index.name = matrix.index.name
    return out


__all__ = ["build", "collapse_duplicate_rows", "COLLAPSE_HOW"]
