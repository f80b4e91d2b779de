# src/rnaseq_deconv/s1/run.py
#!/usr/bin/env python3
"""
S1 (prep) — Entrypoint
s1_prepare_expression
"""
from __future__ import annotations
import json
import logging
import os
from typing import Any, Dict, Optional, Tuple, Union

import pandas as pd

from .aggregate import aggregate
from .io import load_tx2gene, read_quant
from .mapping import load_symbol_table, reconcile
from .matrix import build, collapse_duplicate_rows
from .reference import ReferenceProfile, harmonize_profile, load_reference

logger = logging.getLogger(__name__)

# -------------------- Defaults --------------------
DEF_ID_COL = "gene_ids"
DEF_SYMBOL_COL = "gene_symbols"
DEF_COLLAPSE = "sum"
DEF_UNKNOWN_LABEL = "unknown"


def s1_prepare_expression(
    quant: str,
    tx2gene: Union[str, pd.Series],
    outdir: Optional[str] = None,
    *,
    sample_id: str,
    unmapped: str,
    annotation: Union[None, str, pd.DataFrame, pd.Series, dict] = None,
    id_col: str = DEF_ID_COL,
    symbol_col: str = DEF_SYMBOL_COL,
    strip_id_version: bool = False,
    reference: Union[None, str, pd.DataFrame, ReferenceProfile] = None,
    collapse: Optional[str] = DEF_COLLAPSE,
    quant_tool: str = "auto",
    tx2gene_header: bool = False,
    ignore_tx_version: bool = False,
    unknown_label: str = DEF_UNKNOWN_LABEL,
) -> Tuple[Dict[str, str], Dict[str, Any], pd.DataFrame, Optional[ReferenceProfile]]:
    """
    Quantification → gene TPM → symbol-labelled matrix → harmonized reference.

    Returns (paths, summary, matrix, reference_profile). `paths` is empty
    when `outdir` is None; `reference_profile` is None without a reference.
    """
    # 1) Transcript → gene map
    if isinstance(tx2gene, pd.Series):
        t2g = tx2gene
    else:
        t2g = load_tx2gene(tx2gene, header=tx2gene_header)
        logger.info(f"[S1] Loaded {len(t2g):,} transcript→gene pairs from {tx2gene}")

    # 2) Per-transcript quantification → gene TPM
    q, tool = read_quant(quant, tool=quant_tool)
    tpm = aggregate(
        q, t2g,
        unmapped=unmapped,
        sample_id=sample_id,
        ignore_tx_version=ignore_tx_version,
        unknown_label=unknown_label,
    )
    logger.info(f"[S1] {len(q):,} transcripts ({tool}) → {len(tpm):,} genes; TPM total {tpm.sum():,.1f}")

    # 3) Gene ids → symbols (order-checked)
    gene_ids = list(tpm.index)
    if annotation is None:
        symbols = gene_ids
        n_symbols = 0
    else:
        source = load_symbol_table(annotation, id_col, symbol_col) if isinstance(annotation, (str, os.PathLike)) else annotation
        symbols = reconcile(gene_ids, source, strip_version=strip_id_version)
        n_symbols = sum(1 for g, s in zip(gene_ids, symbols) if g != s)

    # 4) Matrix, then optional collapse of repeated symbols
    matrix = build([(sample_id, tpm)], row_labels=symbols)
    n_rows_built = int(matrix.shape[0])
    if collapse and collapse != "none":
        matrix = collapse_duplicate_rows(matrix, how=collapse)

    # 5) Reference harmonization
    profile: Optional[ReferenceProfile] = None
    if reference is not None:
        if isinstance(reference, ReferenceProfile):
            base = reference
        elif isinstance(reference, pd.DataFrame):
            base = ReferenceProfile(profiles=reference)
        else:
            base = ReferenceProfile(profiles=load_reference(reference))
        profile = harmonize_profile(base, matrix.index)

    summary: Dict[str, Any] = {
        "sample_id": sample_id,
        "quant_file": str(quant),
        "quant_tool": tool,
        "n_transcripts": int(len(q)),
        "n_genes": int(len(tpm)),
        "unmapped_policy": unmapped,
        "n_symbols_resolved": int(n_symbols),
        "n_rows_built": n_rows_built,
        "n_rows_final": int(matrix.shape[0]),
        "collapse": collapse,
    }
    if profile is not None:
        summary["reference"] = {
            "cell_types": profile.cell_types,
            "n_signature_genes": len(profile.signature_genes),
            "n_rows_harmonized": int(profile.profiles.shape[0]),
        }

    paths: Dict[str, str] = {}
    if outdir:
        os.makedirs(outdir, exist_ok=True)
        paths["expression_matrix"] = os.path.join(outdir, "expression_matrix.tsv")
        matrix.to_csv(paths["expression_matrix"], sep="\t", encoding="utf-8")
        if profile is not None:
            paths["reference_harmonized"] = os.path.join(outdir, "reference_harmonized.tsv")
            paths["signature_genes"] = os.path.join(outdir, "signature_genes.txt")
            profile.profiles.to_csv(paths["reference_harmonized"], sep="\t", encoding="utf-8")
            with open(paths["signature_genes"], "w", encoding="utf-8") as f:
                f.write("\n".join(sorted(profile.signature_genes)) + "\n")
        paths["prep_summary"] = os.path.join(outdir, "prep_summary.json")
        with open(paths["prep_summary"], "w", encoding="utf-8") as f:
            json.dump(summary, f, indent=2, ensure_ascii=False)
        logger.info(f"[S1] Outputs written to: {outdir}")

    return paths, summary, matrix, profile
