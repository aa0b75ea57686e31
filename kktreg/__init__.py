"""kktreg: Constrained linear regression via the augmented KKT system.

Coefficients are estimated by weighted least squares subject to linear
equality constraints, solving the Karush-Kuhn-Tucker system with a
thresholded singular value decomposition.
"""
from __future__ import annotations

from importlib import import_module
from typing import Any

__version__ = "0.1.0"

__all__ = [
    "ConstrainedRegressionField",
    "ConstrainedRegressionModel",
    "ConstrainedRegressionResult",
    "ConstrainedRegressionSolver",
    "ConstrainedRegressionSystem",
    "RegressionConstraint",
    "RegressionConstraintSet",
    "SVDSolver",
    "build_category_constraint",
    "modelsummary",
    "parse_constraint",
    "parse_constraints",
    "singular_value_plot",
]

_LAZY_IMPORTS: dict[str, tuple[str, str]] = {
    "ConstrainedRegressionField": ("kktreg.estimators.base", "ConstrainedRegressionField"),
    "ConstrainedRegressionResult": ("kktreg.estimators.base", "ConstrainedRegressionResult"),
    "ConstrainedRegressionModel": ("kktreg.estimators.model", "ConstrainedRegressionModel"),
    "ConstrainedRegressionSolver": ("kktreg.estimators.solver", "ConstrainedRegressionSolver"),
    "ConstrainedRegressionSystem": ("kktreg.estimators.system", "ConstrainedRegressionSystem"),
    "RegressionConstraint": ("kktreg.utils.constraints", "RegressionConstraint"),
    "RegressionConstraintSet": ("kktreg.utils.constraints", "RegressionConstraintSet"),
    "build_category_constraint": ("kktreg.utils.constraints", "build_category_constraint"),
    "parse_constraint": ("kktreg.utils.constraints", "parse_constraint"),
    "parse_constraints": ("kktreg.utils.constraints", "parse_constraints"),
    "SVDSolver": ("kktreg.core.svd", "SVDSolver"),
    "modelsummary": ("kktreg.output.summary", "modelsummary"),
    "singular_value_plot": ("kktreg.output.plots", "singular_value_plot"),
}


def __getattr__(name: str) -> Any:
    """Lazily import public classes and utilities on first access."""
    if name in _LAZY_IMPORTS:
        module_name, attr_name = _LAZY_IMPORTS[name]
        module = import_module(module_name)
        attr = getattr(module, attr_name)
        globals()[name] = attr
        return attr
    raise AttributeError(f"module 'kktreg' has no attribute '{name}'")


def __dir__() -> list[str]:
    """Ensure dir() exposes lazily imported names."""
    return sorted(set(globals()) | set(__all__))
