import numpy as np
import pandas as pd
import pytest

from rnaseq_deconv.errors import MalformedInputError, OrderMismatchError
from rnaseq_deconv.s1.mapping import load_symbol_table, reconcile


def test_reconcile_falls_back_to_id():
    out = reconcile(["G1", "G2", "G3"], {"G1": "SYM1", "G3": "SYM3"})
    assert out == ["SYM1", "G2", "SYM3"]


def test_reconcile_keeps_order_and_length():
    ids = [f"G{i}" for i in range(50)][::-1]
    source = {f"G{i}": f"S{i}" for i in range(0, 50, 3)}
    out = reconcile(ids, source)
    assert len(out) == len(ids)
    for gid, sym in zip(ids, out):
        assert sym == source.get(gid, gid)


def test_reconcile_no_matches_is_identity():
    ids = ["ENSG3", "ENSG1", "ENSG2"]
    assert reconcile(ids, {}) == ids


def test_blank_and_missing_symbols_fall_back():
    ann = pd.DataFrame({"gene_id": ["G1", "G2", "G3"], "gene_symbol": ["", np.nan, " SYM3 "]})
    assert reconcile(["G1", "G2", "G3"], ann) == ["G1", "G2", "SYM3"]


def test_series_source():
    src = pd.Series({"G2": "SYM2"})
    assert reconcile(["G1", "G2"], src) == ["G1", "SYM2"]


def test_strip_version_keeps_original_on_miss():
    out = reconcile(["ENSG1.5", "ENSG9.1"], {"ENSG1": "A1"}, strip_version=True)
    assert out == ["A1", "ENSG9.1"]


def test_one_to_many_annotation_is_fatal():
    ann = pd.DataFrame({"gene_id": ["G1", "G1", "G2"], "gene_symbol": ["A", "B", "C"]})
    with pytest.raises(OrderMismatchError):
        reconcile(["G1", "G2"], ann)


def test_identical_duplicate_annotation_rows_are_fine():
    ann = pd.DataFrame({"gene_id": ["G1", "G1"], "gene_symbol": ["A", "A"]})
    assert reconcile(["G1"], ann) == ["A"]


def test_load_symbol_table(annotation_file):
    ann = load_symbol_table(annotation_file, "gene_ids", "gene_symbols")
    assert list(ann.columns) == ["gene_id", "gene_symbol"]
    assert reconcile(["G1", "G2", "G3"], ann) == ["SYM1", "G2", "SYM3"]


def test_load_symbol_table_missing_column(annotation_file):
    with pytest.raises(MalformedInputError):
        load_symbol_table(annotation_file, "gene_ids", "hgnc_symbol")


def test_load_symbol_table_from_h5ad(tmp_path):
    ad = pytest.importorskip("anndata")
    var = pd.DataFrame({"gene_ids": ["G1", "G2", "G3"]}, index=["SYM1", "SYM2", "SYM3"])
    adata = ad.AnnData(X=np.zeros((2, 3), dtype=np.float32), var=var)
    path = tmp_path / "sample.h5ad"
    adata.write_h5ad(path)

    ann = load_symbol_table(str(path), id_col="gene_ids", symbol_col="gene_symbols")
    assert ann.set_index("gene_id")["gene_symbol"].to_dict() == {"G1": "SYM1", "G2": "SYM2", "G3": "SYM3"}
