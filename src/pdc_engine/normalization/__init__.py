"""Medication to measure normalization."""

from .measures import DEFAULT_VALUE_SETS, MeasureClassifier

__all__ = ["DEFAULT_VALUE_SETS", "MeasureClassifier"]
