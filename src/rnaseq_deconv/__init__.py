"""rnaseq_deconv: single-sample RNA-seq prep for quanTIseq / EPIC deconvolution."""

__version__ = "0.1.0"
