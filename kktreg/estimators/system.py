"""Augmented (KKT) linear system of a constrained regression.

Minimising the weighted residual sum of squares ``(A b - y)' W (A b - y)``
subject to ``C b = d`` gives the first-order conditions::

    +-            -+ +-   -+   +-       -+
    |  2A'WA   C'  | |  b  |   |  2A'Wy  |
    |              | |     | = |         |
    |    C     0   | | lam |   |    d    |
    +-            -+ +-   -+   +-       -+

where ``lam`` holds the Lagrange multipliers (dual values) of the
constraints. :class:`ConstrainedRegressionSystem` assembles every piece once
from a :class:`~kktreg.estimators.model.ConstrainedRegressionModel` snapshot.
"""

from __future__ import annotations

import logging
from collections.abc import Hashable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import numpy as np
import pandas as pd

from kktreg.core import linalg as la
from kktreg.utils.helpers import float_values, require_keys

if TYPE_CHECKING:
    from kktreg.estimators.model import ConstrainedRegressionModel
    from kktreg.utils.constraints import RegressionConstraintSet

LOGGER = logging.getLogger(__name__)

__all__ = ["ConstrainedRegressionSystem", "rescale_weights"]


def _readonly(a: np.ndarray) -> np.ndarray:
    a.setflags(write=False)
    return a


def rescale_weights(weights: pd.Series) -> np.ndarray:
    """Validate observation weights and scale them so the positive ones average one.

    Returns ``w * count(w > 0) / sum(w)``. Negative or non-finite weights are
    rejected with a message naming the offending observation.
    """
    w = float_values(weights)
    for key, wi in zip(weights.index, w):
        if not np.isfinite(wi):
            msg = f"Regression weight for observation [{key}] is not finite."
            raise ValueError(msg)
        if wi < 0.0:
            msg = f"Regression weight for observation [{key}] is negative."
            raise ValueError(msg)
    n_pos = int(np.count_nonzero(w > 0.0))
    if n_pos == 0:
        msg = "Regression weights must include at least one positive observation weight."
        raise ValueError(msg)
    return w * (n_pos / float(np.sum(w)))


@dataclass(frozen=True)
class ConstrainedRegressionSystem:
    """Immutable snapshot of the arrays that define a constrained regression.

    Attributes
    ----------
    regressor_keys, observation_keys, constraint_names : list
        Labels of the columns of ``design_matrix``, its rows, and the rows of
        ``constraint_matrix`` respectively.
    design_matrix : ndarray, shape (M, N)
    regressand_vector : ndarray, shape (M,)
    weight_vector : ndarray, shape (M,)
        Rescaled weights (positive weights sum to their count).
    constraint_matrix : ndarray, shape (P, N)
    constraint_vector : ndarray, shape (P,)
    two_atw : ndarray, shape (N, M)
        ``2 A' W``.
    augmented_matrix : ndarray, shape (N + P, N + P)
    augmented_vector : ndarray, shape (N + P,)

    All arrays are read-only.
    """

    regressor_keys: list[Hashable]
    observation_keys: list[Hashable]
    constraint_names: list[str]
    design_matrix: np.ndarray = field(repr=False)
    regressand_vector: np.ndarray = field(repr=False)
    weight_vector: np.ndarray = field(repr=False)
    constraint_matrix: np.ndarray = field(repr=False)
    constraint_vector: np.ndarray = field(repr=False)
    two_atw: np.ndarray = field(repr=False)
    augmented_matrix: np.ndarray = field(repr=False)
    augmented_vector: np.ndarray = field(repr=False)

    @classmethod
    def build(cls, model: ConstrainedRegressionModel) -> ConstrainedRegressionSystem:
        """Assemble the system from the model's active regressors, observations and constraints."""
        LOGGER.info("Building the augmented linear system")
        regressors = model.regressor_keys
        rows = model.observation_keys
        cset = model.get_constraint_set()
        _require_constraint_regressors(cset, regressors)

        A = float_values(model.regressor_frame.loc[rows, regressors])
        la.assert_all_finite(A, what="Design matrix")
        w = rescale_weights(model.observation_weights.loc[rows])
        b = float_values(model.regressand_series.loc[rows])
        la.assert_all_finite(b, what="Regressand")

        C = cset.get_constraint_matrix(regressors)
        d = cset.get_constraint_values()
        two_atw = A.T * (2.0 * w)

        N = A.shape[1]
        P = C.shape[0]
        augmat = np.zeros((N + P, N + P), dtype=np.float64)
        augmat[:N, :N] = la.dot(two_atw, A)
        augmat[:N, N:] = C.T
        augmat[N:, :N] = C

        augvec = np.zeros(N + P, dtype=np.float64)
        augvec[:N] = la.dot(two_atw, b)
        augvec[N:] = d

        LOGGER.debug(
            "Augmented system: %d observations, %d regressors, %d constraints", A.shape[0], N, P,
        )
        return cls(
            regressor_keys=list(regressors),
            observation_keys=list(rows),
            constraint_names=cset.get_constraint_names(),
            design_matrix=_readonly(A),
            regressand_vector=_readonly(b),
            weight_vector=_readonly(w),
            constraint_matrix=_readonly(C),
            constraint_vector=_readonly(d),
            two_atw=_readonly(two_atw),
            augmented_matrix=_readonly(augmat),
            augmented_vector=_readonly(augvec),
        )

    def count_regressors(self) -> int:
        return self.design_matrix.shape[1]

    def count_observations(self) -> int:
        return self.design_matrix.shape[0]

    def count_constraints(self) -> int:
        return self.constraint_matrix.shape[0]

    def augmented_frame(self) -> pd.DataFrame:
        """Augmented matrix labelled by regressor keys followed by constraint names."""
        labels = [*self.regressor_keys, *self.constraint_names]
        return pd.DataFrame(self.augmented_matrix, index=labels, columns=labels)


def _require_constraint_regressors(cset: RegressionConstraintSet, regressors: list[Hashable]) -> None:
    require_keys(
        cset.list_regressors(), regressors, what="constrained regressors among the active regressors",
    )
