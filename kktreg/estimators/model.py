"""Specification of a constrained linear regression.

The model owns the data (regressor frame, regressand series, observation
weights), the active subsets of regressors and observations, and the list of
equality constraints. It is configured through ``with_*`` mutators and turned
into an immutable :class:`~kktreg.estimators.system.ConstrainedRegressionSystem`
by :meth:`ConstrainedRegressionModel.build`.

No intercept is added; include a column of ones in the frame if one is wanted.
"""

from __future__ import annotations

import logging
from collections.abc import Hashable, Iterable, Mapping, Sequence
from typing import TYPE_CHECKING

import numpy as np
import pandas as pd

from kktreg.utils.constraints import (
    RegressionConstraint,
    RegressionConstraintSet,
    build_category_constraint,
)
from kktreg.utils.helpers import (
    Memo,
    as_key_list,
    require_columns,
    require_numeric_columns,
    require_rows,
)

if TYPE_CHECKING:
    from kktreg.estimators.system import ConstrainedRegressionSystem

LOGGER = logging.getLogger(__name__)

__all__ = ["ConstrainedRegressionModel"]


class ConstrainedRegressionModel:
    """Constrained (weighted) least-squares regression model.

    Parameters
    ----------
    regressor_frame : pd.DataFrame
        Observations in rows, candidate regressors in columns.
    regressand_series : pd.Series
        Dependent variable indexed like the frame rows.

    Notes
    -----
    By default every frame column is a regressor, every frame row is an
    observation, and every observation has unit weight.

    """

    def __init__(
        self,
        regressor_frame: pd.DataFrame,
        regressand_series: pd.Series,
        regressor_keys: Iterable[Hashable] | None = None,
    ) -> None:
        if not isinstance(regressor_frame, pd.DataFrame):
            msg = "regressor_frame must be a pandas DataFrame."
            raise TypeError(msg)
        if not isinstance(regressand_series, pd.Series):
            msg = "regressand_series must be a pandas Series."
            raise TypeError(msg)
        self._frame = regressor_frame
        self._regressand = regressand_series
        self._regressor_keys: list[Hashable] = as_key_list(
            regressor_frame.columns if regressor_keys is None else regressor_keys, what="regressor",
        )
        self._observation_keys: list[Hashable] = as_key_list(regressor_frame.index, what="observation")
        self._weights = pd.Series(1.0, index=regressor_frame.index, dtype=np.float64)
        self._constraints: list[RegressionConstraint] = []
        self._constraint_set: Memo[RegressionConstraintSet] = Memo()
        self._revision = 0
        if regressor_keys is None and self.regressand_key in self._regressor_keys:
            # Frame holds the regressand too: drop it from the default regressors.
            self._regressor_keys.remove(regressand_series.name)
        self._validate_keys()

    @classmethod
    def from_frame(
        cls,
        regressand_column: Hashable,
        regressor_columns: Sequence[Hashable],
        frame: pd.DataFrame,
    ) -> ConstrainedRegressionModel:
        """Model whose regressand is ``frame[regressand_column]``."""
        require_numeric_columns(frame, [regressand_column])
        return cls(frame, frame[regressand_column].astype(np.float64), regressor_keys=regressor_columns)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------
    def _validate_keys(self) -> None:
        require_rows(self._frame, self._observation_keys, what="observation rows in the regressor frame")
        require_numeric_columns(self._frame, self._regressor_keys)
        require_rows(self._regressand, self._observation_keys, what="observations in the regressand")
        require_rows(self._weights, self._observation_keys, what="observations in the weights")
        if self.regressand_key is not None and self.regressand_key in self._regressor_keys:
            msg = f"The regressand '{self.regressand_key}' cannot also be a regressor."
            raise ValueError(msg)

    def _changed(self) -> None:
        self._constraint_set.reset()
        self._revision += 1
        LOGGER.debug("Regression model changed (revision %d)", self._revision)

    # ------------------------------------------------------------------
    # Mutators
    # ------------------------------------------------------------------
    def with_regressors(self, regressor_keys: Iterable[Hashable]) -> None:
        keys = as_key_list(regressor_keys, what="regressor")
        previous = self._regressor_keys
        self._regressor_keys = keys
        try:
            self._validate_keys()
        except (KeyError, ValueError):
            self._regressor_keys = previous
            raise
        self._changed()

    def with_observations(self, observation_keys: Iterable[Hashable]) -> None:
        keys = as_key_list(observation_keys, what="observation")
        previous = self._observation_keys
        self._observation_keys = keys
        try:
            self._validate_keys()
        except (KeyError, ValueError):
            self._observation_keys = previous
            raise
        self._changed()

    def with_weights(self, weights: Hashable | pd.Series) -> None:
        """Use a frame column (by key) or an explicit series as observation weights.

        Weights are validated for sign when the system is built.
        """
        if isinstance(weights, pd.Series):
            series = weights.astype(np.float64)
        else:
            require_numeric_columns(self._frame, [weights])
            series = self._frame[weights].astype(np.float64)
        previous = self._weights
        self._weights = series
        try:
            self._validate_keys()
        except (KeyError, ValueError):
            self._weights = previous
            raise
        self._changed()

    def with_constraint(
        self,
        constraint: RegressionConstraint | str,
        value: float | None = None,
        terms: pd.Series | Mapping[Hashable, float] | None = None,
    ) -> None:
        """Add a constraint object, or build one from ``(name, value, terms)``."""
        if not isinstance(constraint, RegressionConstraint):
            if value is None or terms is None:
                msg = "with_constraint(name, value, terms) requires both value and terms."
                raise ValueError(msg)
            constraint = RegressionConstraint(name=constraint, value=value, terms=terms)
        require_columns(
            self._frame, constraint.list_regressors(), what=f"regressors of constraint '{constraint.name}'",
        )
        require_numeric_columns(self._frame, constraint.list_regressors())
        self._constraints.append(constraint)
        self._changed()

    def with_category(
        self,
        category_name: str,
        regressor_keys: Iterable[Hashable],
        observation_weights: pd.Series | None = None,
    ) -> None:
        """Add a category constraint computed over the active observations.

        Uses the model's weights unless ``observation_weights`` is given.
        """
        weights = self._weights if observation_weights is None else observation_weights
        frame = self._frame.loc[self._observation_keys]
        self.with_constraint(build_category_constraint(category_name, regressor_keys, frame, weights))

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------
    @property
    def regressor_frame(self) -> pd.DataFrame:
        return self._frame

    @property
    def regressand_series(self) -> pd.Series:
        return self._regressand

    @property
    def regressand_key(self) -> Hashable | None:
        """Name of the regressand series when it names a frame column, else None."""
        name = self._regressand.name
        return name if name is not None and name in self._frame.columns else None

    @property
    def regressor_keys(self) -> list[Hashable]:
        return list(self._regressor_keys)

    @property
    def observation_keys(self) -> list[Hashable]:
        return list(self._observation_keys)

    @property
    def observation_weights(self) -> pd.Series:
        return self._weights

    @property
    def revision(self) -> int:
        """Counter bumped by every mutator; used to detect stale caches."""
        return self._revision

    def count_regressors(self) -> int:
        return len(self._regressor_keys)

    def count_observations(self) -> int:
        return len(self._observation_keys)

    def count_constraints(self) -> int:
        return self.get_constraint_set().count_constraints()

    def get_constraint_keys(self) -> list[str]:
        return self.get_constraint_set().get_constraint_names()

    def get_constraint_set(self) -> RegressionConstraintSet:
        return self._constraint_set.get(lambda: RegressionConstraintSet.create(self._constraints))

    def build(self) -> ConstrainedRegressionSystem:
        from kktreg.estimators.system import ConstrainedRegressionSystem

        return ConstrainedRegressionSystem.build(self)

    def __repr__(self) -> str:
        return (
            f"ConstrainedRegressionModel(regressand={self._regressand.name!r}, "
            f"regressors={len(self._regressor_keys)}, observations={len(self._observation_keys)}, "
            f"constraints={len(self._constraints)})"
        )
