"""Result container for constrained regressions.

:class:`ConstrainedRegressionResult` stores the estimated coefficients, the
constraint dual values, and the fitted values and residuals over the fitting
subset, all as labelled pandas series.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

import numpy as np
import pandas as pd

if TYPE_CHECKING:
    from collections.abc import Hashable

__all__ = [
    "ConstrainedRegressionField",
    "ConstrainedRegressionResult",
]


class ConstrainedRegressionField(Enum):
    """Components of a constrained regression result."""

    BETA = "beta"
    DUAL = "dual"
    FITTED = "fitted"
    RESIDUAL = "residual"


@dataclass(frozen=True, eq=False)
class ConstrainedRegressionResult:
    """Container for constrained regression results.

    Attributes
    ----------
    betas : pd.Series
        Coefficients indexed by regressor key.
    duals : pd.Series
        Lagrange multipliers indexed by constraint name. A dual near zero
        means the constraint is not binding.
    fitted : pd.Series
        ``A @ beta`` indexed by observation key.
    residuals : pd.Series
        ``fitted - regressand`` indexed by observation key.

    """

    betas: pd.Series
    duals: pd.Series
    fitted: pd.Series
    residuals: pd.Series

    def __post_init__(self) -> None:
        if not self.fitted.index.equals(self.residuals.index):
            fk = set(self.fitted.index)
            rk = set(self.residuals.index)
            if fk != rk or len(self.fitted) != len(self.residuals):
                msg = (
                    "Fitted values and residuals must share the same observation keys; "
                    f"fitted-only: {sorted(map(str, fk - rk))}, residual-only: {sorted(map(str, rk - fk))}"
                )
                raise ValueError(msg)
            object.__setattr__(self, "residuals", self.residuals.reindex(self.fitted.index))

    def get_beta_coefficient(self, key: Hashable) -> float:
        try:
            return float(self.betas[key])
        except KeyError:
            msg = f"No regression coefficient for regressor '{key}'"
            raise KeyError(msg) from None

    def get_dual_value(self, name: str) -> float:
        try:
            return float(self.duals[name])
        except KeyError:
            msg = f"No dual value for constraint '{name}'"
            raise KeyError(msg) from None

    def get(self, field: ConstrainedRegressionField) -> pd.Series:
        """Series for one result component."""
        return {
            ConstrainedRegressionField.BETA: self.betas,
            ConstrainedRegressionField.DUAL: self.duals,
            ConstrainedRegressionField.FITTED: self.fitted,
            ConstrainedRegressionField.RESIDUAL: self.residuals,
        }[ConstrainedRegressionField(field)]

    def to_frame(self, field: ConstrainedRegressionField) -> pd.DataFrame:
        """One-row frame indexed by the field, with one column per key."""
        fld = ConstrainedRegressionField(field)
        s = self.get(fld)
        return pd.DataFrame([s.to_numpy(dtype=np.float64)], index=[fld], columns=s.index)

    def rss(self) -> float:
        """Unweighted residual sum of squares."""
        r = self.residuals.to_numpy(dtype=np.float64)
        return float(r @ r)

    def summary(self, digits: int = 4) -> str:
        from kktreg.output.summary import result_summary

        return result_summary(self, digits=digits)

    def __repr__(self) -> str:  # pragma: no cover - convenience only
        return (
            f"ConstrainedRegressionResult(k={len(self.betas)}, p={len(self.duals)}, "
            f"n={len(self.fitted)})"
        )
