"""Reporting utilities for nnkit training runs."""

from .artifacts import write_manifest
from .metrics import CsvSink, JsonlSink
from .plots import PlotAdapter
from .summary import write_summary

__all__ = ["CsvSink", "JsonlSink", "PlotAdapter", "write_manifest", "write_summary"]
