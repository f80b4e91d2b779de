# src/rnaseq_deconv/errors.py
"""
Error kinds raised by the prep pipeline and the deconvolution adapters.
All of them are fatal to the current run.
"""
from __future__ import annotations


class DeconvPrepError(ValueError):
    """Base class for input / invariant failures."""


class MalformedInputError(DeconvPrepError):
    """A table could not be parsed into the expected shape."""


class UnmappedTranscriptError(DeconvPrepError):
    """Transcripts missing from the transcript-to-gene map under the 'error' policy."""


class OrderMismatchError(DeconvPrepError):
    """Row identity changed order (or length) during identifier reconciliation."""


class ShapeMismatchError(DeconvPrepError):
    """Vectors or labels of different lengths were combined."""


class ConfigurationIncompatibilityError(DeconvPrepError):
    """A deconvolution option combination the method cannot honour."""


class CollaboratorError(RuntimeError):
    """The external R process failed or produced no usable output."""


__all__ = [
    "DeconvPrepError",
    "MalformedInputError",
    "UnmappedTranscriptError",
    "OrderMismatchError",
    "ShapeMismatchError",
    "ConfigurationIncompatibilityError",
    "CollaboratorError",
]
