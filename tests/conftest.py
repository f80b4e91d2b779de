import pandas as pd
import pytest


def _write(path, text):
    path.write_text(text, encoding="utf-8")
    return str(path)


@pytest.fixture
def tx2gene_file(tmp_path):
    return _write(tmp_path / "tx2gene.tsv", "T1\tG1\nT2\tG1\nT3\tG2\n")


@pytest.fixture
def salmon_file(tmp_path):
    return _write(
        tmp_path / "quant.sf",
        "Name\tLength\tEffectiveLength\tTPM\tNumReads\n"
        "T1\t1000\t800\t3.0\t30\n"
        "T2\t1500\t1300\t1.0\t12\n"
        "T3\t900\t700\t6.0\t50\n",
    )


@pytest.fixture
def annotation_file(tmp_path):
    return _write(
        tmp_path / "annotation.tsv",
        "gene_ids\tgene_symbols\nG1\tSYM1\nG3\tSYM3\n",
    )


@pytest.fixture
def reference_file(tmp_path):
    return _write(tmp_path / "reference.tsv", "gene\tX\tY\nA\t1.5\t0.2\nB\t0.3\t2.0\n")


@pytest.fixture
def tx2gene():
    return pd.Series({"T1": "G1", "T2": "G1", "T3": "G2"}, name="gene_id")
