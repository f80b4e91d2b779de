import logging

import pandas as pd
import pytest

from rnaseq_deconv.errors import UnmappedTranscriptError
from rnaseq_deconv.s1.aggregate import aggregate


def _quant(values):
    return pd.DataFrame({"transcript_id": list(values), "tpm": list(values.values())})


def test_sums_transcripts_per_gene(tx2gene, salmon_file):
    out = aggregate(salmon_file, tx2gene, unmapped="error", sample_id="S1")
    assert out.to_dict() == {"G1": 4.0, "G2": 6.0}
    assert out.name == "S1"
    assert list(out.index) == ["G1", "G2"]


def test_order_follows_map_not_quant(tx2gene):
    q = _quant({"T3": 6.0, "T1": 3.0, "T2": 1.0})
    assert list(aggregate(q, tx2gene, unmapped="error").index) == ["G1", "G2"]


def test_unmapped_drop_warns(tx2gene, caplog):
    q = _quant({"T1": 3.0, "T2": 1.0, "T3": 6.0, "TX": 90.0})
    with caplog.at_level(logging.WARNING):
        out = aggregate(q, tx2gene, unmapped="drop")
    assert out.to_dict() == {"G1": 4.0, "G2": 6.0}
    assert "Dropped 1 unmapped" in caplog.text


def test_unmapped_bucket(tx2gene):
    q = _quant({"T1": 3.0, "TX": 80.0, "TY": 10.0, "T3": 6.0})
    out = aggregate(q, tx2gene, unmapped="bucket", unknown_label="unknown")
    assert list(out.index) == ["G1", "G2", "unknown"]
    assert out["unknown"] == pytest.approx(90.0)
    assert out.sum() == pytest.approx(99.0)


def test_unmapped_error(tx2gene):
    q = _quant({"T1": 3.0, "TX": 1.0})
    with pytest.raises(UnmappedTranscriptError):
        aggregate(q, tx2gene, unmapped="error")


def test_policy_is_validated(tx2gene):
    with pytest.raises(ValueError):
        aggregate(_quant({"T1": 1.0}), tx2gene, unmapped="ignore")


def test_ignore_tx_version(tx2gene):
    q = _quant({"T1.2": 3.0, "T2.1": 1.0, "T3.7": 6.0})
    out = aggregate(q, tx2gene, unmapped="error", ignore_tx_version=True)
    assert out.to_dict() == {"G1": 4.0, "G2": 6.0}


def test_counts_value(tx2gene, salmon_file):
    out = aggregate(salmon_file, tx2gene, unmapped="error", value="counts")
    assert out.to_dict() == {"G1": 42.0, "G2": 50.0}
