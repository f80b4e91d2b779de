#!/usr/bin/env python3
"""
S1 (prep) — Gene ID → symbol reconciliation
load_symbol_table, reconcile
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Mapping, Sequence, Union

import pandas as pd

from ..adata_utils import read_var_annotation
from ..errors import MalformedInputError, OrderMismatchError
from ..utils import strip_version_series
from .io import load_table_auto

logger = logging.getLogger(__name__)

SymbolSource = Union[Mapping[str, str], pd.Series, pd.DataFrame]


def load_symbol_table(path: str, id_col: str = "gene_ids", symbol_col: str = "gene_symbols") -> pd.DataFrame:
    """
    Read a gene annotation table with (gene_id, gene_symbol) columns.

    `.h5ad` files are read through anndata and their `.var` frame is used
    (the var index stands in for `id_col` when that column is absent).
    Anything else goes through the delimited-table loader.
    """
    if Path(path).suffix.lower() == ".h5ad":
        return read_var_annotation(path, id_col=id_col, symbol_col=symbol_col)

    df = load_table_auto(path, dtype=str)
    missing = [c for c in (id_col, symbol_col) if c not in df.columns]
    if missing:
        raise MalformedInputError(f"Annotation table {path} lacks columns {missing}; has {list(df.columns)}")
    out = df[[id_col, symbol_col]].rename(columns={id_col: "gene_id", symbol_col: "gene_symbol"})
    return out.reset_index(drop=True)


def _as_annotation_frame(symbol_source: SymbolSource) -> pd.DataFrame:
    """Normalise any accepted symbol source to a (gene_id, gene_symbol) frame."""
    if isinstance(symbol_source, pd.DataFrame):
        if {"gene_id", "gene_symbol"}.issubset(symbol_source.columns):
            ann = symbol_source[["gene_id", "gene_symbol"]]
        elif symbol_source.shape[1] == 1:
            ann = pd.DataFrame({"gene_id": symbol_source.index, "gene_symbol": symbol_source.iloc[:, 0].values})
        else:
            raise MalformedInputError(
                "Annotation frame needs 'gene_id' and 'gene_symbol' columns "
                f"(got {list(symbol_source.columns)})"
            )
    elif isinstance(symbol_source, pd.Series):
        ann = pd.DataFrame({"gene_id": symbol_source.index, "gene_symbol": symbol_source.values})
    else:
        ann = pd.DataFrame(list(symbol_source.items()), columns=["gene_id", "gene_symbol"])
    ann = ann.copy()
    ann["gene_id"] = ann["gene_id"].astype(str)
    return ann


def reconcile(
    gene_ids: Sequence[str],
    symbol_source: SymbolSource,
    *,
    strip_version: bool = False,
) -> list:
    """
    Map gene ids to symbols, keeping the input order and length exactly.

    For each id, emit its symbol when the annotation has a non-blank one,
    otherwise emit the id itself (no data loss on a lookup miss).

    The lookup is a left join; afterwards the joined id column is compared
    with the input sequence and any difference raises OrderMismatchError.
    A gene id annotated with two different symbols would duplicate rows and
    is reported the same way.

    Parameters
    ----------
    gene_ids : sequence of str
        Ordered gene identifiers (e.g. the index of an AbundanceVector).
    symbol_source : mapping | Series | DataFrame
        gene_id → gene_symbol lookup.
    strip_version : bool
        Match on ids with any '.N' suffix removed (output still falls back
        to the original, versioned id).
    """
    ids = [str(g) for g in gene_ids]
    ann = _as_annotation_frame(symbol_source)
    if strip_version:
        ann["gene_id"] = strip_version_series(ann["gene_id"])
    ann = ann.drop_duplicates()

    left = pd.DataFrame({"gene_id_orig": ids})
    left["gene_id"] = strip_version_series(left["gene_id_orig"]) if strip_version else left["gene_id_orig"]
    merged = left.merge(ann, on="gene_id", how="left", sort=False)

    # Safety check: the join must not reorder, drop or duplicate rows
    if len(merged) != len(ids) or merged["gene_id_orig"].tolist() != ids:
        raise OrderMismatchError(
            f"Identifier order changed during symbol lookup ({len(ids)} in, {len(merged)} out); "
            "check the annotation for gene ids with more than one symbol"
        )

    sym = merged["gene_symbol"].astype("string").str.strip()
    found = sym.notna() & (sym != "")
    out = sym.where(found, merged["gene_id_orig"]).astype(str).tolist()

    n_miss = int((~found).sum())
    if n_miss:
        logger.info(f"[S1] {n_miss:,} of {len(ids):,} gene ids had no symbol; kept the id")
    return out


__all__ = ["load_symbol_table", "reconcile"]
