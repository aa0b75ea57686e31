"""Model, system, solver and result exports with lazy loading.

Uses lazy imports to avoid circular dependencies between the model and the
system it builds.
"""
from __future__ import annotations

from importlib import import_module
from typing import Any

__all__ = [
    "ConstrainedRegressionField",
    "ConstrainedRegressionModel",
    "ConstrainedRegressionResult",
    "ConstrainedRegressionSolver",
    "ConstrainedRegressionSystem",
]

_LAZY_IMPORTS: dict[str, tuple[str, str]] = {
    "ConstrainedRegressionField": ("kktreg.estimators.base", "ConstrainedRegressionField"),
    "ConstrainedRegressionResult": ("kktreg.estimators.base", "ConstrainedRegressionResult"),
    "ConstrainedRegressionModel": ("kktreg.estimators.model", "ConstrainedRegressionModel"),
    "ConstrainedRegressionSolver": ("kktreg.estimators.solver", "ConstrainedRegressionSolver"),
    "ConstrainedRegressionSystem": ("kktreg.estimators.system", "ConstrainedRegressionSystem"),
}


def __getattr__(name: str) -> Any:
    """Lazily import estimator classes and shared containers."""
    if name in _LAZY_IMPORTS:
        module_name, attr_name = _LAZY_IMPORTS[name]
        attr = getattr(import_module(module_name), attr_name)
        globals()[name] = attr
        return attr
    raise AttributeError(f"module 'kktreg.estimators' has no attribute '{name}'")


def __dir__() -> list[str]:
    """Expose lazily loaded attributes to ``dir()``."""
    return sorted(set(globals()) | set(__all__))
