# src/rnaseq_deconv/adata_utils.py
from __future__ import annotations
from pathlib import Path

import pandas as pd

from .errors import MalformedInputError


def read_h5ad(path: str):
    """Read a single .h5ad (backed, read-only) and return an AnnData."""
    try:
        import anndata as ad
    except ImportError:
        raise RuntimeError("anndata is required. Install with: pip install anndata")
    if not Path(path).is_file():
        raise FileNotFoundError(f"Not a file or missing: {path}")
    return ad.read_h5ad(path, backed="r")


def read_var_annotation(path: str, id_col: str = "gene_ids", symbol_col: str = "gene_symbols") -> pd.DataFrame:
    """
    Pull a (gene_id, gene_symbol) table out of a previously computed AnnData.

    10x-style objects keep Ensembl ids in `var['gene_ids']` with symbols as
    var_names; others keep ids as var_names and symbols in a column. Either
    layout works: a missing `id_col` / `symbol_col` falls back to var_names.
    """
    adata = read_h5ad(path)
    try:
        var = adata.var.copy()
        names = pd.Series(adata.var_names.astype(str), index=var.index)
    finally:
        if adata.isbacked:
            adata.file.close()

    if id_col not in var.columns and symbol_col not in var.columns:
        raise MalformedInputError(
            f"{path}: var has neither '{id_col}' nor '{symbol_col}' (columns: {list(var.columns)})"
        )
    ids = var[id_col].astype(str) if id_col in var.columns else names
    syms = var[symbol_col] if symbol_col in var.columns else names
    return pd.DataFrame({"gene_id": ids.values, "gene_symbol": syms.values})
