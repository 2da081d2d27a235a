"""Prediction of TPM PCR register values from zero or a snapshot, with explicit extends."""

__version__ = "0.1.0"
__all__ = ["__version__"]