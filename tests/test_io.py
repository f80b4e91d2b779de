import pandas as pd
import pytest

from rnaseq_deconv.errors import MalformedInputError
from rnaseq_deconv.s1.io import load_tx2gene, read_quant


def test_tx2gene_lookup_returns_paired_gene(tx2gene_file):
    t2g = load_tx2gene(tx2gene_file)
    assert list(t2g.index) == ["T1", "T2", "T3"]
    for tx, gene in [("T1", "G1"), ("T2", "G1"), ("T3", "G2")]:
        assert t2g[tx] == gene


def test_tx2gene_with_header_and_versions(tmp_path):
    p = tmp_path / "t2g.tsv"
    p.write_text("TXNAME\tGENEID\nENST01.4\tENSG01\nENST02.1\tENSG02\n")
    t2g = load_tx2gene(str(p), header=True, strip_version=True)
    assert t2g.to_dict() == {"ENST01": "ENSG01", "ENST02": "ENSG02"}


def test_tx2gene_inconsistent_arity(tmp_path):
    p = tmp_path / "t2g.tsv"
    p.write_text("T1\tG1\nT2\tG1\textra\n")
    with pytest.raises(MalformedInputError):
        load_tx2gene(str(p))


def test_tx2gene_short_row(tmp_path):
    p = tmp_path / "t2g.tsv"
    p.write_text("T1\tG1\nT2\n")
    with pytest.raises(MalformedInputError):
        load_tx2gene(str(p))


def test_tx2gene_conflicting_transcript(tmp_path):
    p = tmp_path / "t2g.tsv"
    p.write_text("T1\tG1\nT1\tG2\n")
    with pytest.raises(MalformedInputError):
        load_tx2gene(str(p))


def test_tx2gene_identical_duplicates_collapse(tmp_path):
    p = tmp_path / "t2g.tsv"
    p.write_text("T1\tG1\nT1\tG1\nT2\tG2\n")
    assert len(load_tx2gene(str(p))) == 2


def test_tx2gene_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_tx2gene(str(tmp_path / "nope.tsv"))


def test_read_salmon(salmon_file):
    q, tool = read_quant(salmon_file)
    assert tool == "salmon"
    assert list(q.columns) == ["transcript_id", "tpm", "counts", "length"]
    assert q["tpm"].tolist() == [3.0, 1.0, 6.0]


def test_read_kallisto(tmp_path):
    p = tmp_path / "abundance.tsv"
    p.write_text(
        "target_id\tlength\teff_length\test_counts\ttpm\n"
        "T1\t1000\t800\t10\t5.5\n"
        "T2\t500\t300\t2\t4.5\n"
    )
    q, tool = read_quant(str(p))
    assert tool == "kallisto"
    assert q.set_index("transcript_id")["tpm"].to_dict() == {"T1": 5.5, "T2": 4.5}
    assert q["counts"].tolist() == [10, 2]


def test_read_generic_two_columns(tmp_path):
    p = tmp_path / "quant.csv"
    p.write_text("transcript,value\nT1,1.0\nT2,2.0\n")
    q, tool = read_quant(str(p))
    assert tool == "generic"
    assert q["tpm"].sum() == pytest.approx(3.0)


def test_read_quant_rejects_negative(tmp_path):
    p = tmp_path / "quant.sf"
    p.write_text("Name\tLength\tEffectiveLength\tTPM\tNumReads\nT1\t10\t5\t-1\t0\n")
    with pytest.raises(MalformedInputError):
        read_quant(str(p))


def test_read_quant_missing_tpm(tmp_path):
    p = tmp_path / "quant.tsv"
    p.write_text("id\ta\tb\nT1\t1\t2\n")
    with pytest.raises(MalformedInputError):
        read_quant(str(p))
