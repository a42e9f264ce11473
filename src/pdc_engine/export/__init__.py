"""Tabular export of adherence results."""

from .feature_exporter import export_results, results_to_frame

__all__ = ["export_results", "results_to_frame"]
