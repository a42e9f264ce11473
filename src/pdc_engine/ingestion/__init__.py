"""Dispense record ingestion."""

from .fill_normalizer import FillNormalizer, normalize_fills

__all__ = ["FillNormalizer", "normalize_fills"]
