#!/usr/bin/env python3
"""
S3 (analysis) — Comparing deconvolution results across configurations
check_fraction_sums, fractions_sum_to_one, compare_results,
pairwise_differences, ComparisonAnalyzer
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from itertools import combinations
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import numpy as np
import pandas as pd

# Headless-safe plotting
import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt

# seaborn is optional; we guard usage
try:
    import seaborn as sns
    _HAVE_SEABORN = True
except ImportError:
    _HAVE_SEABORN = False

from .. import __version__
from ..s2.deconv import DeconvolutionResult

logger = logging.getLogger(__name__)

FractionsLike = Union[DeconvolutionResult, pd.DataFrame]


def _fractions(x: FractionsLike) -> pd.DataFrame:
    return x.fractions if isinstance(x, DeconvolutionResult) else x


def check_fraction_sums(fractions: FractionsLike, atol: float = 1e-6) -> pd.Series:
    """Per-sample column sums; logs a warning for each sample not summing to 1."""
    sums = _fractions(fractions).sum(axis=0, skipna=True)
    for sample, s in sums.items():
        if not np.isclose(s, 1.0, atol=atol):
            logger.warning(f"[S3] Sample {sample}: fractions sum to {s:.6f}, not 1")
    return sums


def fractions_sum_to_one(fractions: FractionsLike, atol: float = 1e-6) -> bool:
    sums = _fractions(fractions).sum(axis=0, skipna=True)
    return bool(len(sums)) and bool(np.allclose(sums.values, 1.0, atol=atol))


def compare_results(
    results: Mapping[str, FractionsLike],
    sample: Optional[str] = None,
    aliases: Optional[Mapping[str, str]] = None,
) -> pd.DataFrame:
    """
    Side-by-side table (cell type × result label) for one sample.

    `aliases` renames method-specific cell-type labels onto shared names
    (e.g. {"B.cells": "B cells", "Bcells": "B cells"}); labels mapped to the
    same name within one result are summed. Cell types a result does not
    report are NaN.
    """
    if not results:
        raise ValueError("compare_results() received no results")
    cols = {}
    for label, res in results.items():
        frac = _fractions(res)
        s = sample if sample is not None else frac.columns[0]
        if s not in frac.columns:
            raise KeyError(f"Sample '{s}' not in result '{label}' (has {list(frac.columns)})")
        col = frac[s]
        if aliases:
            col = col.groupby(lambda ct: aliases.get(ct, ct), sort=False).sum()
        cols[label] = col
    table = pd.concat(cols, axis=1, join="outer", sort=False)
    table.index.name = "cell_type"
    return table


def pairwise_differences(table: pd.DataFrame) -> pd.DataFrame:
    """Long table of per-cell-type differences for every pair of result labels."""
    rows = []
    for a, b in combinations(table.columns, 2):
        both = table[[a, b]].dropna()
        for ct, (va, vb) in both.iterrows():
            rows.append({"cell_type": ct, "label_a": a, "label_b": b,
                         "value_a": va, "value_b": vb, "difference": va - vb})
    out = pd.DataFrame(rows, columns=["cell_type", "label_a", "label_b", "value_a", "value_b", "difference"])
    if not out.empty:
        out = out.reindex(out["difference"].abs().sort_values(ascending=False).index).reset_index(drop=True)
    return out


@dataclass
class ComparisonAnalyzer:
    """Compare cell fractions from several configurations of one sample; write tables, plot, summary."""
    output_dir: str = "deconvolution_comparison"
    plots_enabled: bool = True
    atol: float = 1e-6
    aliases: Optional[Mapping[str, str]] = None
    results: Dict[str, Any] = field(default_factory=dict)

    _meta: Dict[str, Any] = field(default_factory=dict, init=False, repr=False)

    def __post_init__(self):
        self.out = Path(self.output_dir)
        (self.out / "data").mkdir(parents=True, exist_ok=True)
        (self.out / "reports").mkdir(exist_ok=True)
        if self.plots_enabled:
            (self.out / "plots").mkdir(exist_ok=True)
        self._meta = {
            "analysis_date": datetime.now().isoformat(),
            "version": __version__,
            "analyzer": "rnaseq_deconv ComparisonAnalyzer",
        }

    # ---------------- Stats ----------------
    def correlations(self, table: pd.DataFrame) -> pd.DataFrame:
        """Spearman correlation between result labels over shared cell types."""
        from scipy import stats  # import lazily

        labels = list(table.columns)
        corr = pd.DataFrame(np.nan, index=labels, columns=labels)
        for a in labels:
            corr.loc[a, a] = 1.0
        for a, b in combinations(labels, 2):
            both = table[[a, b]].dropna()
            if len(both) < 3 or both[a].nunique() < 2 or both[b].nunique() < 2:
                continue
            rho, _ = stats.spearmanr(both[a], both[b])
            corr.loc[a, b] = corr.loc[b, a] = float(rho)
        return corr

    def generate_summary(
        self,
        sums: Dict[str, float],
        table: pd.DataFrame,
        diffs: pd.DataFrame,
        diagnostics: Dict[str, Any],
    ) -> Dict[str, Any]:
        top = diffs.head(5)
        return {
            "overview": {
                "n_results": int(table.shape[1]),
                "labels": list(map(str, table.columns)),
                "n_cell_types": int(table.shape[0]),
            },
            "fraction_sums": sums,
            "all_sum_to_one": bool(np.allclose(list(sums.values()), 1.0, atol=self.atol)) if sums else False,
            "largest_differences": top.to_dict(orient="records"),
            "diagnostics": diagnostics,
        }

    # ---------------- Plot ----------------
    def _create_grouped_barplot(self, table: pd.DataFrame, out_path: Path) -> str:
        if table.empty:
            return ""
        long = table.reset_index().melt(id_vars="cell_type", var_name="configuration", value_name="fraction")
        plt.figure(figsize=(max(8, 0.8 * table.shape[0] + 4), 6))
        if _HAVE_SEABORN:
            sns.barplot(data=long, x="cell_type", y="fraction", hue="configuration")
        else:
            x = np.arange(table.shape[0])
            w = 0.8 / max(1, table.shape[1])
            for i, col in enumerate(table.columns):
                plt.bar(x + i * w, table[col].fillna(0).values, w, label=str(col), alpha=0.8)
            plt.xticks(x + 0.4 - w / 2, table.index)
            plt.legend()
        plt.xlabel("Cell Types"); plt.ylabel("Fraction")
        plt.title("Cell Fractions by Configuration", fontweight="bold")
        plt.xticks(rotation=45, ha="right"); plt.grid(axis="y", alpha=0.3)
        plt.tight_layout()
        plt.savefig(out_path, dpi=300, bbox_inches="tight"); plt.close()
        return str(out_path)

    # ---------------- Save artifacts ----------------
    def save_data_outputs(
        self,
        table: pd.DataFrame,
        diffs: pd.DataFrame,
        corr: pd.DataFrame,
        summary: Dict[str, Any],
    ) -> Dict[str, str]:
        data_dir = self.out / "data"
        reports_dir = self.out / "reports"
        files: Dict[str, str] = {}

        for key, df, name in (
            ("fractions_tsv", table, "fractions_by_configuration.tsv"),
            ("differences_tsv", diffs, "pairwise_differences.tsv"),
            ("correlation_tsv", corr, "spearman_correlation.tsv"),
        ):
            p = data_dir / name
            df.to_csv(p, sep="\t", index=(key != "differences_tsv"))
            files[key] = str(p)

        s_json = reports_dir / "comparison_summary.json"
        with open(s_json, "w", encoding="utf-8") as f:
            json.dump(summary, f, indent=2, default=str)
        files["summary_json"] = str(s_json)

        m_json = reports_dir / "analysis_metadata.json"
        with open(m_json, "w", encoding="utf-8") as f:
            json.dump(self._meta, f, indent=2, default=str)
        files["metadata_json"] = str(m_json)
        return files

    def analyze(self, results: Mapping[str, FractionsLike], sample: Optional[str] = None) -> Dict[str, Any]:
        """High-level API: sums → side-by-side table → differences → correlations → plot → save."""
        logger.info(f"[S3] Comparing {len(results)} result(s); output directory: {self.out}")
        sums: Dict[str, float] = {}
        diagnostics: Dict[str, Any] = {}
        for label, res in results.items():
            s = check_fraction_sums(res, atol=self.atol)
            key = sample if sample is not None else s.index[0]
            sums[label] = float(s[key])
            if isinstance(res, DeconvolutionResult):
                self._meta.setdefault("configs", {})[label] = res.config.as_dict()
                if res.diagnostics is not None:
                    diagnostics[label] = {"converged": res.converged,
                                          "fit": res.diagnostics.to_dict(orient="index")}

        table = compare_results(results, sample=sample, aliases=self.aliases)
        diffs = pairwise_differences(table)
        corr = self.correlations(table)
        summary = self.generate_summary(sums, table, diffs, diagnostics)

        plot_files: Dict[str, str] = {}
        if self.plots_enabled:
            try:
                p = self._create_grouped_barplot(table, self.out / "plots" / "01_fractions_by_configuration.png")
                if p:
                    plot_files["fractions_barplot"] = p
            except (ValueError, RuntimeError) as e:
                logger.warning(f"[S3] Plotting failed ({e}); tables are still written.")

        data_files = self.save_data_outputs(table, diffs, corr, summary)
        self.results = {
            "analysis_successful": True,
            "output_directory": str(self.out),
            "summary": summary,
            "table": table,
            "differences": diffs,
            "correlation": corr,
            "data_files": data_files,
            "plot_files": plot_files,
            "metadata": self._meta,
        }
        logger.info(f"[S3] Analysis outputs in: {self.out}")
        return self.results


__all__ = [
    "check_fraction_sums",
    "fractions_sum_to_one",
    "compare_results",
    "pairwise_differences",
    "ComparisonAnalyzer",
]
