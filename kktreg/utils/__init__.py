# kktreg/utils/__init__.py
"""Utility functions module."""
from .constraints import (
    RegressionConstraint,
    RegressionConstraintSet,
    build_category_constraint,
    parse_constraint,
    parse_constraints,
)
from .helpers import Memo

__all__ = [
    "Memo",
    "RegressionConstraint",
    "RegressionConstraintSet",
    "build_category_constraint",
    "parse_constraint",
    "parse_constraints",
]
