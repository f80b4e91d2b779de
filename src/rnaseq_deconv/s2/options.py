#!/usr/bin/env python3
"""
S2 (deconvolution) — Method options
DeconvConfig, validate_config

Two methods are supported through their R packages:

- "quantiseq": signature-matrix based (quantiseqr). Built-in signature
  TIL10; `tumor_mode` drops the package's list of genes known to be
  overexpressed in tumors, `array_platform` switches to microarray input
  assumptions, `mrna_scaling` corrects for cell-type mRNA content.
- "epic": expression-reference based (EPIC). Built-in references TRef /
  BRef or a custom ReferenceProfile; `mrna_scaling=False` runs EPIC with a
  uniform mRNA content so cell fractions equal mRNA proportions.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional, Tuple, Union

import pandas as pd

from ..errors import ConfigurationIncompatibilityError
from ..s1.reference import ReferenceProfile

logger = logging.getLogger(__name__)

METHODS = ("quantiseq", "epic")
BUILTIN_REFERENCES = {
    "quantiseq": ("TIL10",),
    "epic": ("TRef", "BRef"),
}
DEFAULT_REFERENCE = {"quantiseq": "TIL10", "epic": "TRef"}


@dataclass(frozen=True, eq=False)
class DeconvConfig:
    method: str
    tumor_mode: bool = False
    array_platform: bool = False
    mrna_scaling: bool = True
    reference: Union[None, str, ReferenceProfile] = None
    exclude_genes: Tuple[str, ...] = field(default_factory=tuple)
    label: Optional[str] = None

    @property
    def reference_name(self) -> str:
        if isinstance(self.reference, ReferenceProfile):
            return "custom"
        return self.reference or DEFAULT_REFERENCE.get(self.method, "")

    @property
    def display_label(self) -> str:
        """Label used to key results; derived from the options when not set."""
        if self.label:
            return self.label
        parts = [self.method, self.reference_name]
        if self.tumor_mode:
            parts.append("tumor")
        if self.array_platform:
            parts.append("array")
        parts.append("scaled" if self.mrna_scaling else "unscaled")
        return "_".join(parts)

    def as_dict(self) -> dict:
        return {
            "method": self.method,
            "tumor_mode": self.tumor_mode,
            "array_platform": self.array_platform,
            "mrna_scaling": self.mrna_scaling,
            "reference": self.reference_name,
            "n_exclude_genes": len(self.exclude_genes),
            "label": self.display_label,
        }


def validate_config(config: DeconvConfig, matrix: Optional[pd.DataFrame] = None) -> None:
    """
    Raise ConfigurationIncompatibilityError for option combinations the
    method cannot honour; log known caveats as warnings.
    """
    m = config.method
    if m not in METHODS:
        raise ConfigurationIncompatibilityError(f"Unknown method '{m}'; expected one of {METHODS}")

    ref = config.reference
    if isinstance(ref, str) and ref not in BUILTIN_REFERENCES[m]:
        raise ConfigurationIncompatibilityError(
            f"'{ref}' is not a built-in {m} reference; choose {BUILTIN_REFERENCES[m]} or pass a ReferenceProfile"
        )

    if m == "epic":
        if config.tumor_mode:
            raise ConfigurationIncompatibilityError("EPIC has no tumor-gene filter (tumor_mode)")
        if config.array_platform:
            raise ConfigurationIncompatibilityError("EPIC has no microarray mode (array_platform)")
        if config.exclude_genes:
            raise ConfigurationIncompatibilityError("EPIC does not take a gene exclusion list")

    if m == "quantiseq" and isinstance(ref, ReferenceProfile) and config.mrna_scaling:
        raise ConfigurationIncompatibilityError(
            "A custom quanTIseq signature carries no mRNA-content factors; set mrna_scaling=False"
        )

    # Caveats only: the R package may or may not reject these
    if m == "epic" and isinstance(ref, ReferenceProfile):
        sig = ref.signature_genes
        if not sig:
            logger.warning("[S2] Custom EPIC reference has no signature genes; EPIC will weight every row.")
        elif len(sig) == ref.profiles.shape[0]:
            logger.warning(
                "[S2] Custom EPIC reference was not zero-padded (signature covers every row); "
                "mRNA renormalization may be under-determined."
            )
        if matrix is not None:
            absent = matrix.index.difference(ref.profiles.index)
            if len(absent):
                logger.warning(
                    f"[S2] {len(absent):,} bulk genes are absent from the custom reference; "
                    "harmonize the reference first."
                )


__all__ = ["DeconvConfig", "validate_config", "METHODS", "BUILTIN_REFERENCES", "DEFAULT_REFERENCE"]
