# src/rnaseq_deconv/s1/io.py
from __future__ import annotations
import csv
import os
from pathlib import Path
from typing import Optional, Sequence, Tuple

import pandas as pd

from ..errors import MalformedInputError
from ..utils import strip_version_series

# Column layouts of the quantifiers we read: tool -> (id, tpm, counts, length)
QUANT_LAYOUTS = {
    "salmon": ("Name", "TPM", "NumReads", "EffectiveLength"),
    "kallisto": ("target_id", "tpm", "est_counts", "eff_length"),
    "rsem": ("transcript_id", "TPM", "expected_count", "effective_length"),
}


def _sep_for(path: str) -> str:
    """Pick a delimiter from the extension (ignoring .gz); sniff otherwise."""
    p = Path(path)
    suffixes = [s.lower() for s in p.suffixes if s.lower() != ".gz"]
    ext = suffixes[-1] if suffixes else ""
    if ext == ".csv":
        return ","
    if ext in {".tsv", ".txt", ".sf", ".tab"}:
        return "\t"
    if p.suffix.lower() == ".gz":
        return "\t"
    with p.open("r", encoding="utf-8", errors="ignore", newline="") as f:
        sample = f.read(8192)
    try:
        return csv.Sniffer().sniff(sample, delimiters=[",", "\t", ";", "|"]).delimiter
    except csv.Error:
        return "\t"


def load_table_auto(path: str, index_col: Optional[int] = None, header: Optional[int] = 0,
                    dtype=None) -> pd.DataFrame:
    """
    Load a delimited table with delimiter detection and light robustness.

    - .csv → comma; .tsv / .txt / .sf → tab; gzip handled by pandas
    - other extensions → sniff between [',', '\\t', ';', '|']
    - UTF-8 by default; falls back to latin-1 if needed
    - inconsistent row arity raises MalformedInputError
    """
    if not os.path.isfile(path):
        raise FileNotFoundError(f"Table not found: {path}")

    sep = _sep_for(path)
    kwargs = dict(sep=sep, index_col=index_col, header=header, dtype=dtype, comment="#", low_memory=False)
    try:
        try:
            df = pd.read_csv(path, **kwargs)
        except UnicodeDecodeError:
            df = pd.read_csv(path, encoding="latin-1", **kwargs)
    except pd.errors.EmptyDataError:
        raise MalformedInputError(f"Table is empty: {path}")
    except pd.errors.ParserError as e:
        raise MalformedInputError(f"Could not parse {path}: {e}")
    return df


def load_tx2gene(
    path: str,
    columns: Sequence[str] = ("transcript_id", "gene_id"),
    header: bool = False,
    strip_version: bool = False,
) -> pd.Series:
    """
    Load a two-column transcript → gene table as a Series indexed by transcript id.

    Rows with a field count other than two, blank ids, or a transcript listed
    with two different genes raise MalformedInputError. Identical duplicate
    rows are collapsed.
    """
    if len(columns) != 2:
        raise ValueError("columns must name exactly two fields (transcript, gene)")

    df = load_table_auto(path, header=0 if header else None, dtype=str)
    if df.shape[1] != 2:
        raise MalformedInputError(
            f"Transcript-gene map must have exactly 2 columns; found {df.shape[1]} in {path}"
        )
    df.columns = list(columns)
    tx_col, gene_col = columns

    blank = df[tx_col].isna() | df[gene_col].isna()
    blank |= (df[tx_col].str.strip() == "") | (df[gene_col].str.strip() == "")
    if blank.any():
        first = [int(i) + (2 if header else 1) for i in df.index[blank][:5]]
        raise MalformedInputError(f"Transcript-gene map has short/blank rows at lines {first} in {path}")

    df[tx_col] = df[tx_col].str.strip()
    df[gene_col] = df[gene_col].str.strip()
    if strip_version:
        df[tx_col] = strip_version_series(df[tx_col])

    df = df.drop_duplicates()
    dup = df[tx_col].duplicated(keep=False)
    if dup.any():
        ex = df.loc[dup, tx_col].unique()[:5].tolist()
        raise MalformedInputError(f"Transcripts mapped to more than one gene: {ex}")

    tx2gene = pd.Series(df[gene_col].values, index=pd.Index(df[tx_col].values, name=tx_col), name=gene_col)
    return tx2gene


def _detect_quant_tool(cols: Sequence[str]) -> str:
    cols = set(cols)
    for tool, (id_col, tpm_col, _, _) in QUANT_LAYOUTS.items():
        if id_col in cols and tpm_col in cols:
            return tool
    return "generic"


def read_quant(path: str, tool: str = "auto") -> Tuple[pd.DataFrame, str]:
    """
    Read a per-transcript quantification file and normalise its columns.

    Returns (dataframe, tool) where the dataframe has `transcript_id`, `tpm`
    and, when the tool reports them, `counts` and `length`.
    """
    df = load_table_auto(path)
    if df.empty:
        raise MalformedInputError(f"Quantification file has no records: {path}")

    if tool == "auto":
        tool = _detect_quant_tool(df.columns)

    if tool == "generic":
        tpm_col = next((c for c in df.columns if str(c).lower() == "tpm"), None)
        if tpm_col is None and df.shape[1] == 2:
            tpm_col = df.columns[1]
        if tpm_col is None:
            raise MalformedInputError(f"No TPM column found in {path}; columns: {list(df.columns)}")
        out = pd.DataFrame({"transcript_id": df.iloc[:, 0].astype(str).str.strip(), "tpm": df[tpm_col]})
    elif tool in QUANT_LAYOUTS:
        id_col, tpm_col, cnt_col, len_col = QUANT_LAYOUTS[tool]
        missing = [c for c in (id_col, tpm_col) if c not in df.columns]
        if missing:
            raise MalformedInputError(f"{tool} quantification {path} lacks columns {missing}")
        out = pd.DataFrame({"transcript_id": df[id_col].astype(str).str.strip(), "tpm": df[tpm_col]})
        if cnt_col in df.columns:
            out["counts"] = pd.to_numeric(df[cnt_col], errors="coerce")
        if len_col in df.columns:
            out["length"] = pd.to_numeric(df[len_col], errors="coerce")
    else:
        raise ValueError(f"Unknown quantification tool: {tool}")

    out["tpm"] = pd.to_numeric(out["tpm"], errors="coerce")
    if out["tpm"].isna().any():
        bad = out.loc[out["tpm"].isna(), "transcript_id"].head(5).tolist()
        raise MalformedInputError(f"Non-numeric TPM values for transcripts {bad} in {path}")
    if (out["tpm"] < 0).any():
        raise MalformedInputError(f"Negative TPM values in {path}")
    if out["transcript_id"].duplicated().any():
        raise MalformedInputError(f"Duplicate transcript ids in {path}")
    return out, tool


__all__ = ["load_table_auto", "load_tx2gene", "read_quant", "QUANT_LAYOUTS"]
