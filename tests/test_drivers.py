import json
from pathlib import Path

import pandas as pd
import pytest

from rnaseq_deconv.config import DEFAULTS, resolve_paths
from rnaseq_deconv.drivers import run_all, run_deconvolution, run_prepare
from rnaseq_deconv.s2.options import DeconvConfig


def fake_runner(matrix, config):
    if config.method == "quantiseq":
        frac = {"B.cells": 0.2, "T.cells.CD8": 0.3, "Other": 0.5}
    else:
        cts = list(config.reference.profiles.columns) if config.reference_name == "custom" else ["Bcells"]
        frac = {ct: 0.4 / len(cts) for ct in cts}
        frac["otherCells"] = 0.6
    out = {"fractions": pd.DataFrame({s: frac for s in matrix.columns})}
    if config.method == "epic":
        out["diagnostics"] = pd.DataFrame({"convergeCode": [0]}, index=list(matrix.columns))
    return out


def test_prepare_end_to_end(tmp_path, tx2gene_file, salmon_file, annotation_file, reference_file):
    paths, summary, matrix, profile = run_prepare(
        quant=salmon_file,
        tx2gene=tx2gene_file,
        sample_id="S1",
        outdir=str(tmp_path / "s1"),
        annotation=annotation_file,
        reference=reference_file,
    )
    assert matrix["S1"].to_dict() == {"SYM1": 4.0, "G2": 6.0}
    assert summary["unmapped_policy"] == DEFAULTS["unmapped_policy"]
    assert summary["n_symbols_resolved"] == 1
    assert list(profile.profiles.index) == ["A", "B", "G2", "SYM1"]
    assert profile.signature_genes == frozenset({"A", "B"})
    assert (profile.profiles.loc[["G2", "SYM1"]] == 0).all().all()

    on_disk = pd.read_csv(paths["expression_matrix"], sep="\t", index_col=0)
    assert list(on_disk.index) == ["SYM1", "G2"]
    with open(paths["prep_summary"]) as f:
        assert json.load(f)["n_genes"] == 2
    with open(paths["signature_genes"]) as f:
        assert f.read().split() == ["A", "B"]


def test_prepare_without_outdir_writes_nothing(tx2gene_file, salmon_file):
    paths, _, matrix, profile = run_prepare(quant=salmon_file, tx2gene=tx2gene_file, sample_id="S1")
    assert paths == {}
    assert profile is None
    assert list(matrix.index) == ["G1", "G2"]


def test_run_all(tmp_path, tx2gene_file, salmon_file, annotation_file, reference_file):
    configs = [
        DeconvConfig("quantiseq"),
        DeconvConfig("quantiseq", tumor_mode=True),
        DeconvConfig("epic", reference="harmonized"),
    ]
    out = run_all(
        quant=salmon_file,
        tx2gene=tx2gene_file,
        sample_id="S1",
        configs=configs,
        annotation=annotation_file,
        reference=reference_file,
        outdir=str(tmp_path / "s1"),
        s2_outdir=str(tmp_path / "s2"),
        s3_outdir=str(tmp_path / "s3"),
        runner=fake_runner,
    )
    labels = list(out["results"])
    assert labels == ["quantiseq_TIL10_scaled", "quantiseq_TIL10_tumor_scaled", "epic_custom"]
    epic = out["results"]["epic_custom"]
    assert list(epic.fractions.index) == ["X", "Y", "otherCells"]
    assert epic.converged is True
    assert (tmp_path / "s2" / "fractions_epic_custom.tsv").exists()
    assert (tmp_path / "s2" / "diagnostics_epic_custom.tsv").exists()
    assert out["comparison"]["summary"]["all_sum_to_one"] is True


def test_run_all_harmonized_needs_reference(tmp_path, tx2gene_file, salmon_file):
    with pytest.raises(ValueError):
        run_all(
            quant=salmon_file, tx2gene=tx2gene_file, sample_id="S1",
            configs=[DeconvConfig("epic", reference="harmonized")],
            outdir=str(tmp_path / "a"), s2_outdir=str(tmp_path / "b"), s3_outdir=str(tmp_path / "c"),
            runner=fake_runner,
        )


def test_resolve_paths_blank_and_relative(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    p = resolve_paths({"quant": "quant.sf", "outdir": "  "})
    assert p["quant"] == str(tmp_path / "quant.sf")
    assert p["outdir"] is None
    assert p["reference"] is None


def test_run_deconvolution_passes_auto_install(monkeypatch):
    import rnaseq_deconv.s2.deconv as deconv

    seen = []
    monkeypatch.setattr(deconv, "invoke", lambda matrix, cfg, runner, atol: seen.append(runner))
    matrix = pd.DataFrame({"S1": [1.0]}, index=["G1"])

    run_deconvolution(matrix=matrix, configs=[DeconvConfig("epic")])
    assert seen[-1].auto_install is DEFAULTS["auto_install"]
    run_deconvolution(matrix=matrix, configs=[DeconvConfig("epic")], auto_install=True)
    assert seen[-1].auto_install is True


def test_prepare_accepts_path_annotation(tx2gene_file, salmon_file, annotation_file):
    _, summary, matrix, _ = run_prepare(
        quant=salmon_file, tx2gene=tx2gene_file, sample_id="S1", annotation=Path(annotation_file),
    )
    assert list(matrix.index) == ["SYM1", "G2"]
    assert summary["n_symbols_resolved"] == 1
