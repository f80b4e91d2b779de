# src/rnaseq_deconv/utils.py
from __future__ import annotations
import logging
from pathlib import Path
from datetime import datetime
from typing import Optional, Union

import pandas as pd

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"


def timestamped_run_root(root_name: str = "rnaseq_deconv_runs", seed: Optional[int] = None) -> str:
    """~/rnaseq_deconv_runs/2025-10-27_153012 (suffix _seedN when a seed is given)"""
    stamp = datetime.now().strftime("%Y-%m-%d_%H%M%S")
    if seed is not None:
        stamp = f"{stamp}_seed{seed}"
    root = Path.home() / root_name / stamp
    root.mkdir(parents=True, exist_ok=True)
    return str(root)


def configure_logging(level: Union[int, str] = logging.INFO) -> None:
    """Install one console handler for ad hoc script use; no-op if already configured."""
    if isinstance(level, str):
        level = getattr(logging, level.upper())
    logging.basicConfig(level=level, format=LOG_FORMAT)


def strip_version_series(s: pd.Series) -> pd.Series:
    """Remove Ensembl version suffixes like 'ENSG000001.12' → 'ENSG000001'."""
    return s.astype(str).str.strip().str.replace(r"\.\d+$", "", regex=True)


__all__ = ["timestamped_run_root", "configure_logging", "strip_version_series"]
