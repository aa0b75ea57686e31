"""Solver for constrained linear regressions.

The solver lazily builds the augmented KKT system of a
:class:`~kktreg.estimators.model.ConstrainedRegressionModel`, factors it once
with a thresholded SVD, and reuses the factorisation for every call to
:meth:`ConstrainedRegressionSolver.solve` and for threshold changes. Both
caches are rebuilt automatically after the model is mutated.

Examples
--------
>>> model = ConstrainedRegressionModel.from_frame("y", ["const", "x1", "x2"], df)
>>> model.with_constraint("sum", 1.0, {"x1": 1.0, "x2": 1.0})
>>> res = ConstrainedRegressionSolver.build(model).solve()
>>> res.betas
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import numpy as np
import pandas as pd

from kktreg.core import linalg as la
from kktreg.core.svd import SVDSolver, validate_threshold
from kktreg.estimators.base import ConstrainedRegressionResult
from kktreg.estimators.system import ConstrainedRegressionSystem
from kktreg.utils.helpers import Memo, float_values, require_numeric_columns

if TYPE_CHECKING:
    from kktreg.estimators.model import ConstrainedRegressionModel

LOGGER = logging.getLogger(__name__)

__all__ = ["ConstrainedRegressionSolver"]


class ConstrainedRegressionSolver:
    """Estimate a constrained regression through its augmented system.

    Parameters
    ----------
    model : ConstrainedRegressionModel
        The model to solve. It is referenced, not copied: later mutations of
        the model are picked up by the next call.

    """

    def __init__(self, model: ConstrainedRegressionModel) -> None:
        self._model = model
        self._threshold: float | None = None
        self._system: Memo[ConstrainedRegressionSystem] = Memo()
        self._solver: Memo[SVDSolver] = Memo()

    @classmethod
    def build(cls, model: ConstrainedRegressionModel) -> ConstrainedRegressionSolver:
        return cls(model)

    @property
    def model(self) -> ConstrainedRegressionModel:
        return self._model

    @property
    def singular_value_threshold(self) -> float | None:
        """Explicit threshold, or None when the default rule applies."""
        return self._threshold

    def _build_system(self) -> ConstrainedRegressionSystem:
        return ConstrainedRegressionSystem.build(self._model)

    def _build_solver(self) -> SVDSolver:
        LOGGER.info("Building the constrained regression solver")
        solver = SVDSolver.from_matrix(self.get_augmented_system().augmented_matrix)
        if self._threshold is not None:
            solver.with_threshold(self._threshold)
        LOGGER.debug("%r", solver)
        return solver

    def with_singular_value_threshold(self, threshold: float) -> ConstrainedRegressionSolver:
        """Set the SVD threshold; an existing factorisation is kept and updated in place."""
        self._threshold = validate_threshold(threshold)
        current = self._solver.peek()
        if current is not None and self._solver.tag == self._model.revision:
            current.with_threshold(self._threshold)
        return self

    def get_augmented_system(self) -> ConstrainedRegressionSystem:
        return self._system.get(self._build_system, tag=self._model.revision)

    def get_svd_solver(self) -> SVDSolver:
        return self._solver.get(self._build_solver, tag=self._model.revision)

    def solve(self) -> ConstrainedRegressionResult:
        """Solve the augmented system for coefficients and dual values."""
        system = self.get_augmented_system()
        N = system.count_regressors()
        P = system.count_constraints()
        solution = self.get_svd_solver().solve(system.augmented_vector)
        if solution.shape[0] != N + P:
            msg = f"Augmented solution has length {solution.shape[0]}, expected {N + P}."
            raise RuntimeError(msg)
        beta = solution[:N]
        dual = solution[N:]
        fitted = la.dot(system.design_matrix, beta)
        residual = fitted - system.regressand_vector
        rows = pd.Index(system.observation_keys)
        return ConstrainedRegressionResult(
            betas=pd.Series(beta, index=pd.Index(system.regressor_keys), dtype=np.float64),
            duals=pd.Series(dual, index=pd.Index(system.constraint_names, dtype=object), dtype=np.float64),
            fitted=pd.Series(fitted, index=rows, dtype=np.float64),
            residuals=pd.Series(residual, index=rows, dtype=np.float64),
        )

    def compute_pseudo_inverse(self) -> np.ndarray:
        """Linear map from ``[y; d]`` to ``[beta; lam]``, shape (N + P, M + P).

        Equals ``inv(augmented_matrix) @ R`` with ``R = [[2A'W, 0], [0, I_P]]``,
        so ``beta`` depends linearly on the observations through the first N
        rows and first M columns.
        """
        system = self.get_augmented_system()
        M = system.count_observations()
        N = system.count_regressors()
        P = system.count_constraints()
        block_r = np.zeros((N + P, M + P), dtype=np.float64)
        block_r[:N, :M] = system.two_atw
        block_r[N:, M:] = np.eye(P)
        return la.dot(self.get_svd_solver().invert(), block_r)

    def constraint_violation(self, result: ConstrainedRegressionResult | None = None) -> pd.Series:
        """``C @ beta - d`` by constraint name (zero up to rounding for a solved model)."""
        res = self.solve() if result is None else result
        system = self.get_augmented_system()
        beta = res.betas.reindex(system.regressor_keys).to_numpy(dtype=np.float64)
        gap = la.dot(system.constraint_matrix, beta) - system.constraint_vector
        return pd.Series(gap, index=pd.Index(system.constraint_names, dtype=object), dtype=np.float64)

    def predict(self, frame: pd.DataFrame, result: ConstrainedRegressionResult | None = None) -> pd.Series:
        """Out-of-sample prediction ``X @ beta`` for every row of ``frame``."""
        res = self.solve() if result is None else result
        keys = list(res.betas.index)
        require_numeric_columns(frame, keys)
        X = float_values(frame[keys])
        la.assert_all_finite(X, what="Prediction frame")
        return pd.Series(la.dot(X, res.betas.to_numpy(dtype=np.float64)), index=frame.index, dtype=np.float64)

    def __repr__(self) -> str:
        return f"ConstrainedRegressionSolver(model={self._model!r}, threshold={self._threshold!r})"
