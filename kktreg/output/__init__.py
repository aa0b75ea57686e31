# kktreg/output/__init__.py
"""Output and visualization module for constrained regression results."""
from .plots import singular_value_plot
from .summary import modelsummary, result_summary

__all__ = [
    "modelsummary",
    "result_summary",
    "singular_value_plot",
]
