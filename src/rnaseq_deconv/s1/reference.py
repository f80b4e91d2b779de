#!/usr/bin/env python3
"""
S1 (prep) — Reference profile loading and harmonization
load_reference, harmonize, harmonize_profile

EPIC-style methods expect a reference covering every gene of the bulk
matrix but only weight the signature subset. Harmonization pads the
reference with zero rows for the bulk genes it lacks and records the
pre-padding gene set as the signature.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, Optional, Tuple

import numpy as np
import pandas as pd

from ..errors import MalformedInputError, ShapeMismatchError
from .io import load_table_auto

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class ReferenceProfile:
    """genes × cell types reference plus the genes the method should weight."""
    profiles: pd.DataFrame
    signature_genes: FrozenSet[str] = field(default_factory=frozenset)
    variability: Optional[pd.DataFrame] = None

    def __post_init__(self):
        if self.variability is not None:
            if list(self.variability.columns) != list(self.profiles.columns):
                raise ShapeMismatchError("variability columns must match profile columns")
            if not self.variability.index.equals(self.profiles.index):
                raise ShapeMismatchError("variability rows must match profile rows")
        unknown = set(self.signature_genes) - set(self.profiles.index)
        if unknown:
            raise MalformedInputError(f"{len(unknown)} signature gene(s) absent from the profiles")

    @property
    def genes(self) -> pd.Index:
        return self.profiles.index

    @property
    def cell_types(self) -> list:
        return list(self.profiles.columns)


def load_reference(path: str) -> pd.DataFrame:
    """
    Read a reference table: first column gene id, remaining columns numeric
    per-cell-type values.
    """
    df = load_table_auto(path, index_col=0)
    if df.shape[1] == 0:
        raise MalformedInputError(f"Reference {path} has no cell-type columns")
    num = df.apply(pd.to_numeric, errors="coerce")
    if num.isna().any().any():
        cols = num.columns[num.isna().any()].tolist()
        raise MalformedInputError(f"Reference {path} has non-numeric or blank cells in columns {cols}")
    num.index = num.index.astype(str).str.strip()
    if num.index.duplicated().any():
        dups = num.index[num.index.duplicated()].unique()[:5].tolist()
        raise MalformedInputError(f"Reference {path} repeats genes {dups}")
    num.index.name = "gene"
    return num.astype(float)


def _pad(frame: pd.DataFrame, missing: list) -> pd.DataFrame:
    if not missing:
        return frame.copy()
    zeros = pd.DataFrame(
        np.zeros((len(missing), frame.shape[1])),
        index=pd.Index(missing, name=frame.index.name),
        columns=frame.columns,
    )
    return pd.concat([frame, zeros], axis=0)


def harmonize(reference: pd.DataFrame, target_genes: Iterable[str]) -> Tuple[pd.DataFrame, FrozenSet[str]]:
    """
    Pad `reference` with all-zero rows for target genes it lacks.

    Returns (full_reference, signature_genes) where signature_genes is the
    reference's gene set captured before padding. Original rows come first,
    padded rows follow in sorted order; column order is unchanged.
    """
    signature_genes = frozenset(map(str, reference.index))
    missing = sorted(set(map(str, target_genes)) - signature_genes)
    full = _pad(reference, missing)
    logger.info(
        f"[S1] Reference harmonized: {len(signature_genes):,} signature genes, "
        f"{len(missing):,} zero rows added, {full.shape[0]:,} total"
    )
    return full, signature_genes


def harmonize_profile(profile: ReferenceProfile, target_genes: Iterable[str]) -> ReferenceProfile:
    """
    Apply `harmonize` to a ReferenceProfile (profiles and variability alike).

    An explicit, narrower signature on the input profile is kept; otherwise
    the signature is every pre-padding row.
    """
    target_genes = list(target_genes)
    full, signature = harmonize(profile.profiles, target_genes)
    if profile.signature_genes:
        signature = frozenset(profile.signature_genes)
    var = None
    if profile.variability is not None:
        var, _ = harmonize(profile.variability, target_genes)
    return ReferenceProfile(profiles=full, signature_genes=signature, variability=var)


__all__ = ["ReferenceProfile", "load_reference", "harmonize", "harmonize_profile"]
