#!/usr/bin/env python3
"""
S1 (prep) — Transcript → gene aggregation
aggregate

Sums transcript-level abundances per gene, the rule tximport applies to
abundances (TPM of a gene = sum of its transcripts' TPM).
"""

from __future__ import annotations

import logging
from typing import Optional, Union

import pandas as pd

from ..errors import MalformedInputError, UnmappedTranscriptError
from ..utils import strip_version_series
from .io import read_quant

logger = logging.getLogger(__name__)

UNMAPPED_POLICIES = ("drop", "bucket", "error")


def aggregate(
    quant: Union[str, pd.DataFrame],
    tx2gene: pd.Series,
    *,
    unmapped: str,
    sample_id: Optional[str] = None,
    value: str = "tpm",
    ignore_tx_version: bool = False,
    unknown_label: str = "unknown",
    tool: str = "auto",
) -> pd.Series:
    """
    Aggregate per-transcript values to per-gene values.

    Parameters
    ----------
    quant : str | DataFrame
        Quantification file path, or the frame returned by `read_quant`.
    tx2gene : Series
        transcript_id → gene_id, as returned by `load_tx2gene`.
    unmapped : {"drop", "bucket", "error"}
        What to do with transcripts absent from `tx2gene`. Required on purpose.
    sample_id : str | None
        Name given to the returned Series.
    value : {"tpm", "counts"}
        Which per-transcript column to sum.
    ignore_tx_version : bool
        Strip '.N' version suffixes from quantified transcript ids before lookup.
    unknown_label : str
        Gene id used for the unmapped bucket.

    Returns
    -------
    Series indexed by gene_id in first-appearance order of the map, with the
    unmapped bucket (if any) last.
    """
    if unmapped not in UNMAPPED_POLICIES:
        raise ValueError(f"unmapped must be one of {UNMAPPED_POLICIES}, got {unmapped!r}")

    if isinstance(quant, pd.DataFrame):
        q = quant
    else:
        q, tool = read_quant(quant, tool=tool)
        logger.info(f"[S1] Read {len(q):,} transcripts ({tool}) from {quant}")

    if value not in q.columns:
        raise MalformedInputError(f"Quantification has no '{value}' column; columns: {list(q.columns)}")

    tx_ids = q["transcript_id"].astype(str)
    if ignore_tx_version:
        tx_ids = strip_version_series(tx_ids)

    genes = tx_ids.map(tx2gene)
    is_unmapped = genes.isna()
    n_unmapped = int(is_unmapped.sum())

    if n_unmapped and unmapped == "error":
        ex = tx_ids[is_unmapped].head(10).tolist()
        raise UnmappedTranscriptError(
            f"{n_unmapped} transcript(s) not in the transcript-gene map, e.g. {ex}"
        )

    vals = q[value].astype(float)
    mapped = pd.DataFrame({"gene_id": genes[~is_unmapped].values, "v": vals[~is_unmapped].values})
    summed = mapped.groupby("gene_id", sort=False)["v"].sum()

    # Stable order: genes as they first appear in the map
    order = pd.Index(tx2gene.values).unique()
    out = summed.reindex(order[order.isin(summed.index)])

    if n_unmapped:
        unmapped_total = float(vals[is_unmapped].sum())
        if unmapped == "drop":
            logger.warning(
                f"[S1] Dropped {n_unmapped:,} unmapped transcript(s) carrying {unmapped_total:.2f} {value}"
            )
        else:
            if unknown_label in out.index:
                raise MalformedInputError(f"Bucket label '{unknown_label}' collides with a real gene id")
            logger.warning(
                f"[S1] {n_unmapped:,} unmapped transcript(s) pooled into '{unknown_label}' "
                f"({unmapped_total:.2f} {value})"
            )
            out = pd.concat([out, pd.Series({unknown_label: unmapped_total})])

    out.index.name = "gene_id"
    out.name = sample_id
    return out.astype(float)


__all__ = ["aggregate", "UNMAPPED_POLICIES"]
