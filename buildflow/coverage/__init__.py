"""Coverage merging and reporting."""
from .aggregator import CoverageAggregator, render_text, replace_directory
from .map import CoverageMap, CoverageSummary, FileCoverage, Totals, parse_payload

__all__ = [
    "CoverageAggregator",
    "CoverageMap",
    "CoverageSummary",
    "FileCoverage",
    "Totals",
    "parse_payload",
    "render_text",
    "replace_directory",
]
