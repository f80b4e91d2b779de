#!/usr/bin/env python3
"""
rnaseq_deconv.config

Contains:
- DEFAULTS: baseline option values read by the drivers (never by the stages)
- resolve_paths(args): expand user paths, normalize relative ones
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional


# -------------------------------------------------------------
# Default option values (drivers fall back to these; no paths here)
# -------------------------------------------------------------
DEFAULTS = {
    # S1: quantification → gene TPM
    "quant_tool": "auto",              # auto | salmon | kallisto | generic
    "unmapped_policy": "drop",         # drop | bucket | error
    "unknown_label": "unknown",
    "ignore_tx_version": False,
    "tx2gene_header": False,

    # S1: identifiers
    "id_col": "gene_ids",
    "symbol_col": "gene_symbols",
    "strip_id_version": False,
    "collapse_duplicates": "sum",      # sum | max | first | none

    # S2: deconvolution
    "quantiseq_signature": "TIL10",
    "epic_reference": "TRef",
    "tumor_mode": False,
    "array_platform": False,
    "mrna_scaling": True,
    "rscript": "Rscript",
    "auto_install": False,             # let the R scripts install missing packages
    "seed": 123,

    # S3: comparison
    "sum_atol": 1e-6,
    "plots": True,
}

PATH_KEYS = ["quant", "tx2gene", "annotation", "reference", "outdir", "s2_outdir", "s3_outdir"]


# -------------------------------------------------------------
# Helper: normalize and expand paths
# -------------------------------------------------------------
def _expand_path(p: Optional[str]) -> Optional[str]:
    """Expand ~ and make absolute, or None if blank."""
    if p is None:
        return None
    p = str(p).strip()
    if not p:
        return None
    path = Path(p).expanduser()
    return str(path if path.is_absolute() else path.resolve())


def resolve_paths(args: Any) -> Dict[str, Optional[str]]:
    """
    Normalize all input/output paths in a namespace or dict.

    Works with argparse.Namespace, SimpleNamespace or plain dict.
    Keys that are absent come back as None.

    Examples
    --------
    >>> resolve_paths({"quant": "~/s1/quant.sf", "outdir": ""})["outdir"] is None
    True
    """
    if isinstance(args, dict):
        items = args
    elif hasattr(args, "__dict__"):
        items = vars(args)
    else:
        raise TypeError("resolve_paths() expects dict or namespace")

    return {k: _expand_path(items.get(k)) for k in PATH_KEYS}


# -------------------------------------------------------------
# Optional: run as script to print defaults
# -------------------------------------------------------------
if __name__ == "__main__":
    import json
    print(json.dumps(DEFAULTS, indent=2))
