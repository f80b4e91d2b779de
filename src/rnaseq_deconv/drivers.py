from __future__ import annotations

import logging
import os
from typing import Any, Dict, Iterable, Mapping, Optional

from .config import DEFAULTS

logger = logging.getLogger(__name__)


def _D(key: str, value=None):
    """explicit value if given, else DEFAULTS[key]"""
    return DEFAULTS[key] if value is None else value


def run_prepare(*, quant, tx2gene, sample_id, outdir=None, annotation=None, reference=None,
                unmapped=None, id_col=None, symbol_col=None, strip_id_version=None,
                collapse=None, quant_tool=None, tx2gene_header=None, ignore_tx_version=None):
    from .s1.run import s1_prepare_expression  # import late
    collapse = _D("collapse_duplicates", collapse)
    return s1_prepare_expression(
        quant,
        tx2gene,
        outdir,
        sample_id=sample_id,
        unmapped=_D("unmapped_policy", unmapped),
        annotation=annotation,
        id_col=_D("id_col", id_col),
        symbol_col=_D("symbol_col", symbol_col),
        strip_id_version=_D("strip_id_version", strip_id_version),
        reference=reference,
        collapse=None if str(collapse).lower() in {"", "none"} else collapse,
        quant_tool=_D("quant_tool", quant_tool),
        tx2gene_header=_D("tx2gene_header", tx2gene_header),
        ignore_tx_version=_D("ignore_tx_version", ignore_tx_version),
        unknown_label=DEFAULTS["unknown_label"],
    )


def run_deconvolution(*, matrix, configs: Iterable, runner=None, log_dir: Optional[str] = None,
                      seed: Optional[int] = None, rscript: Optional[str] = None,
                      auto_install: Optional[bool] = None) -> Dict[str, Any]:
    """One result per config, keyed by the config's label (labels must be unique)."""
    from .s2.deconv import RscriptRunner, invoke  # import late
    if runner is None:
        runner = RscriptRunner(rscript=_D("rscript", rscript), log_dir=log_dir, seed=_D("seed", seed),
                               auto_install=bool(_D("auto_install", auto_install)))
    results: Dict[str, Any] = {}
    for cfg in configs:
        label = cfg.display_label
        if label in results:
            raise ValueError(f"Duplicate configuration label: {label}")
        results[label] = invoke(matrix, cfg, runner=runner, atol=DEFAULTS["sum_atol"])
    return results


def run_compare(*, results: Mapping[str, Any], out_dir: str, sample: Optional[str] = None,
                aliases: Optional[Mapping[str, str]] = None, plots: Optional[bool] = None):
    from .s3.compare import ComparisonAnalyzer  # import late
    analyzer = ComparisonAnalyzer(
        output_dir=out_dir,
        plots_enabled=_D("plots", plots),
        atol=DEFAULTS["sum_atol"],
        aliases=aliases,
    )
    return analyzer.analyze(results, sample=sample)


def run_all(*, quant, tx2gene, sample_id, configs: Iterable, annotation=None, reference=None,
            outdir=None, s2_outdir=None, s3_outdir=None, runner=None, unmapped=None,
            seed: Optional[int] = None, aliases: Optional[Mapping[str, str]] = None,
            auto_install: Optional[bool] = None):
    """
    S1 → S2 → S3 for one sample. Missing output dirs go under a timestamped
    run root. A config whose reference is the string "harmonized" gets the
    custom reference built in S1.
    """
    from dataclasses import replace

    from .config import resolve_paths
    from .utils import timestamped_run_root

    p = resolve_paths({"quant": quant, "tx2gene": tx2gene, "outdir": outdir,
                       "s2_outdir": s2_outdir, "s3_outdir": s3_outdir,
                       "annotation": annotation if isinstance(annotation, (str, os.PathLike)) else None,
                       "reference": reference if isinstance(reference, (str, os.PathLike)) else None})
    out_s1, out_s2, out_s3 = p["outdir"], p["s2_outdir"], p["s3_outdir"]
    if not (out_s1 and out_s2 and out_s3):
        rr = timestamped_run_root(seed=_D("seed", seed))
        out_s1 = out_s1 or f"{rr}/s1"
        out_s2 = out_s2 or f"{rr}/s2"
        out_s3 = out_s3 or f"{rr}/s3"
    logger.info(f"[RUN] Outputs: S1={out_s1} S2={out_s2} S3={out_s3}")

    paths, summary, matrix, profile = run_prepare(
        quant=p["quant"], tx2gene=p["tx2gene"], sample_id=sample_id, outdir=out_s1,
        annotation=p["annotation"] or annotation, reference=p["reference"] or reference,
        unmapped=unmapped,
    )

    resolved = []
    for cfg in configs:
        if cfg.reference == "harmonized":
            if profile is None:
                raise ValueError(f"Config {cfg.display_label} asks for the harmonized reference but none was given")
            cfg = replace(cfg, reference=profile, label=cfg.label or f"{cfg.method}_custom")
        resolved.append(cfg)

    os.makedirs(out_s2, exist_ok=True)
    results = run_deconvolution(matrix=matrix, configs=resolved, runner=runner, log_dir=out_s2, seed=seed,
                                auto_install=auto_install)
    for label, res in results.items():
        res.fractions.to_csv(f"{out_s2}/fractions_{label}.tsv", sep="\t")
        if res.diagnostics is not None:
            res.diagnostics.to_csv(f"{out_s2}/diagnostics_{label}.tsv", sep="\t")

    comparison = run_compare(results=results, out_dir=out_s3, sample=sample_id, aliases=aliases)
    return {"s1": {"paths": paths, "summary": summary}, "results": results, "comparison": comparison}
