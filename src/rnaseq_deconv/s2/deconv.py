# src/rnaseq_deconv/s2/deconv.py
from __future__ import annotations

import logging
import os
import subprocess
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import numpy as np
import pandas as pd

from ..errors import CollaboratorError, MalformedInputError
from ..s1.reference import ReferenceProfile
from .options import DeconvConfig, validate_config

logger = logging.getLogger(__name__)

R_SCRIPTS = {"quantiseq": "quantiseq.R", "epic": "epic.R"}

# runner(matrix, config) -> {"fractions": df, "mrna_proportions": df?, "diagnostics": df?}
Runner = Callable[[pd.DataFrame, DeconvConfig], Dict[str, pd.DataFrame]]


@dataclass(eq=False)
class DeconvolutionResult:
    """Cell fractions (cell types × samples) plus whatever the method reports alongside."""
    method: str
    label: str
    fractions: pd.DataFrame
    config: DeconvConfig
    mrna_proportions: Optional[pd.DataFrame] = None
    diagnostics: Optional[pd.DataFrame] = None
    meta: Dict[str, Any] = field(default_factory=dict)

    @property
    def converged(self) -> Optional[bool]:
        """EPIC convergence (all samples convergeCode == 0); None if not reported."""
        if self.diagnostics is None or "convergeCode" not in self.diagnostics.columns:
            return None
        return bool((pd.to_numeric(self.diagnostics["convergeCode"], errors="coerce") == 0).all())


@dataclass
class RscriptRunner:
    """Run a method's bundled R script through Rscript, exchanging TSVs in a temp dir."""
    rscript: str = "Rscript"
    log_dir: Optional[str] = None
    seed: int = 123
    auto_install: bool = False

    def _env(self, config: DeconvConfig, work: Path, out: Path) -> Dict[str, str]:
        env = os.environ.copy()
        env.update({
            "MIXTURE_PY": str(work / "mixture.tsv"),
            "OUT_DIR_PY": str(out),
            "SEED_PY": str(int(self.seed)),
            "AUTO_INSTALL_PY": "true" if self.auto_install else "false",
            "TUMOR_PY": "true" if config.tumor_mode else "false",
            "ARRAYS_PY": "true" if config.array_platform else "false",
            "SCALE_MRNA_PY": "true" if config.mrna_scaling else "false",
            "REFERENCE_PY": config.reference_name,
        })
        if config.exclude_genes:
            p = work / "exclude_genes.txt"
            p.write_text("\n".join(config.exclude_genes) + "\n", encoding="utf-8")
            env["EXCLUDE_GENES_PY"] = str(p)
        if isinstance(config.reference, ReferenceProfile):
            ref = config.reference
            ref.profiles.to_csv(work / "reference.tsv", sep="\t")
            env["REFERENCE_FILE_PY"] = str(work / "reference.tsv")
            # no file when empty: the R side then uses every reference row
            if ref.signature_genes:
                (work / "signature_genes.txt").write_text(
                    "\n".join(sorted(ref.signature_genes)) + "\n", encoding="utf-8"
                )
                env["SIGGENES_FILE_PY"] = str(work / "signature_genes.txt")
            if ref.variability is not None:
                ref.variability.to_csv(work / "reference_var.tsv", sep="\t")
                env["REFERENCE_VAR_FILE_PY"] = str(work / "reference_var.tsv")
        return env

    def _write_logs(self, label: str, stdout: str, stderr: str) -> None:
        if not self.log_dir:
            return
        d = Path(self.log_dir)
        d.mkdir(parents=True, exist_ok=True)
        (d / f"R_console_{label}.log").write_text(stdout or "", encoding="utf-8")
        (d / f"R_stderr_{label}.log").write_text(stderr or "", encoding="utf-8")

    def __call__(self, matrix: pd.DataFrame, config: DeconvConfig) -> Dict[str, pd.DataFrame]:
        r_script = Path(__file__).with_name(R_SCRIPTS[config.method])
        if not r_script.exists():
            raise FileNotFoundError(f"[S2] Missing R script: {r_script}")

        label = config.display_label
        with tempfile.TemporaryDirectory(prefix="rnaseq_deconv_") as tmp:
            work = Path(tmp)
            out = work / "out"
            out.mkdir()
            matrix.to_csv(work / "mixture.tsv", sep="\t")
            env = self._env(config, work, out)

            cmd = [self.rscript, str(r_script)]
            logger.info(f"[S2] Running: {' '.join(cmd)} ({label})")
            try:
                result = subprocess.run(cmd, check=True, env=env, capture_output=True, text=True)
            except FileNotFoundError:
                raise CollaboratorError(
                    f"{self.rscript} not found on PATH. Install R and ensure 'Rscript' is available."
                )
            except subprocess.CalledProcessError as e:
                self._write_logs(label, e.stdout, e.stderr)
                tail = (e.stderr or "").splitlines()[-20:]
                logger.error("[S2][R stderr tail]\n" + "\n".join(tail))
                raise CollaboratorError(f"S2 R step failed for {label} (exit {e.returncode})")
            self._write_logs(label, result.stdout, result.stderr)

            frac_path = out / "fractions.tsv"
            if not frac_path.exists():
                raise CollaboratorError(f"[S2] Expected R output not found: {frac_path.name}")
            outputs = {"fractions": pd.read_csv(frac_path, sep="\t", index_col=0)}
            for key, name in (("mrna_proportions", "mrna_proportions.tsv"), ("diagnostics", "fit_gof.tsv")):
                p = out / name
                if p.exists():
                    outputs[key] = pd.read_csv(p, sep="\t", index_col=0)
        return outputs


def _orient_fractions(fractions: pd.DataFrame, samples: list) -> pd.DataFrame:
    """Return cell types × samples; collaborators may hand back either orientation."""
    cols = list(map(str, fractions.columns))
    rows = list(map(str, fractions.index))
    if set(samples) <= set(cols):
        out = fractions.copy()
    elif set(samples) <= set(rows):
        out = fractions.T.copy()
    else:
        raise CollaboratorError(f"Fraction matrix does not name the input samples {samples}")
    out.columns = list(map(str, out.columns))
    out = out[samples].apply(pd.to_numeric, errors="coerce")
    out.index.name = "cell_type"
    return out


def invoke(
    matrix: pd.DataFrame,
    config: DeconvConfig,
    runner: Optional[Runner] = None,
    atol: float = 1e-6,
) -> DeconvolutionResult:
    """
    Validate `config`, hand `matrix` (genes × samples, TPM) to the method's
    runner and wrap its output. Non-convergence is reported, not raised.
    """
    if matrix.index.duplicated().any():
        raise MalformedInputError("Expression matrix has duplicate gene labels; collapse them first")
    validate_config(config, matrix)

    runner = runner or RscriptRunner()
    samples = list(map(str, matrix.columns))
    outputs = runner(matrix, config)
    if "fractions" not in outputs:
        raise CollaboratorError(f"Runner returned no fractions for {config.display_label}")

    fractions = _orient_fractions(outputs["fractions"], samples)
    mrna = outputs.get("mrna_proportions")
    if mrna is not None:
        mrna = _orient_fractions(mrna, samples)

    res = DeconvolutionResult(
        method=config.method,
        label=config.display_label,
        fractions=fractions,
        config=config,
        mrna_proportions=mrna,
        diagnostics=outputs.get("diagnostics"),
    )

    sums = fractions.sum(axis=0)
    off = sums[~np.isclose(sums.values, 1.0, atol=atol)]
    if len(off):
        logger.warning(f"[S2] {res.label}: fractions do not sum to 1 for {off.round(4).to_dict()}")
    if res.converged is False:
        logger.warning(
            f"[S2] {res.label}: optimisation did not converge for some samples; "
            "results kept, see diagnostics."
        )
    res.meta = {"config": config.as_dict(), "fraction_sums": sums.round(6).to_dict()}
    logger.info(f"[S2] {res.label}: {fractions.shape[0]} cell types × {fractions.shape[1]} sample(s)")
    return res


__all__ = ["DeconvolutionResult", "RscriptRunner", "invoke", "Runner"]
