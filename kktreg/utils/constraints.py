"""Linear equality constraints on regression coefficients.

A constraint ``sum_k a_k * beta_k = c`` is stored by name with its terms keyed
by regressor. Constraints are collected into a :class:`RegressionConstraintSet`
which rejects duplicate names and linearly dependent rows, so that the KKT
system built from it is well posed.

Constraints can be written by hand, parsed from text
(``"x1 + 2*x2 = 3"``, ``"_b[x1] = _b[x2]"``), taken from a labelled frame row,
or built as a weighted category constraint from observation exposures.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Hashable, Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field

import numpy as np
import pandas as pd

from kktreg.core import linalg as la
from kktreg.utils.helpers import (
    as_key_list,
    float_values,
    require_numeric_columns,
    require_rows,
)

LOGGER = logging.getLogger(__name__)

__all__ = [
    "RegressionConstraint",
    "RegressionConstraintSet",
    "build_category_constraint",
    "parse_constraint",
    "parse_constraints",
]


@dataclass(frozen=True, eq=False)
class RegressionConstraint:
    """Single equality ``terms @ beta = value``.

    Attributes
    ----------
    name : str
        Unique label of the constraint (becomes the dual-value key).
    value : float
        Right-hand side.
    terms : pd.Series
        Coefficient of each referenced regressor, indexed by regressor key.
        Regressors that are not listed have a zero coefficient.

    """

    name: str
    value: float
    terms: pd.Series = field(repr=False)

    def __post_init__(self) -> None:
        if isinstance(self.terms, pd.Series):
            terms = self.terms.astype(np.float64).copy()
        elif isinstance(self.terms, Mapping):
            terms = pd.Series(dict(self.terms), dtype=np.float64)
        else:
            msg = f"Constraint terms must be a Series or a mapping, got {type(self.terms).__name__}."
            raise TypeError(msg)
        if terms.index.has_duplicates:
            dups = list(terms.index[terms.index.duplicated()])
            msg = f"Constraint '{self.name}' lists regressors more than once: {dups}"
            raise ValueError(msg)
        value = float(self.value)
        la.assert_all_finite(terms.to_numpy(), np.asarray(value), what=f"Constraint '{self.name}'")
        terms.name = self.name
        object.__setattr__(self, "terms", terms)
        object.__setattr__(self, "value", value)

    @classmethod
    def from_frame(cls, frame: pd.DataFrame, value: float) -> RegressionConstraint:
        """Constraint from a one-row frame: the row key names it, the row holds the terms."""
        if frame.shape[0] != 1:
            msg = f"Expected a single-row frame to describe a constraint, got {frame.shape[0]} rows."
            raise ValueError(msg)
        require_numeric_columns(frame, list(frame.columns))
        row = frame.iloc[0]
        return cls(name=str(frame.index[0]), value=value, terms=row)

    def list_regressors(self) -> list[Hashable]:
        return list(self.terms.index)

    def get_term(self, key: Hashable) -> float:
        """Coefficient of ``key`` (0.0 when the constraint does not reference it)."""
        return float(self.terms.get(key, 0.0))

    def evaluate(self, betas: pd.Series) -> float:
        """Left-hand side ``terms @ beta`` for labelled coefficients."""
        return float(self.terms @ betas.reindex(self.terms.index, fill_value=0.0))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RegressionConstraint):
            return NotImplemented
        return (
            self.name == other.name
            and self.value == other.value
            and self.terms.equals(other.terms)
        )

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        body = " + ".join(f"{v:g}*{k}" for k, v in self.terms.items()) or "0"
        return f"RegressionConstraint({self.name!r}: {body} = {self.value:g})"


class RegressionConstraintSet:
    """Ordered, validated collection of constraints.

    Names must be unique and the constraint matrix over the referenced
    regressors must have full row rank.
    """

    def __init__(self, constraints: Iterable[RegressionConstraint] = ()) -> None:
        self._constraints: dict[str, RegressionConstraint] = {}
        self._regressors: list[Hashable] = []
        seen: set[Hashable] = set()
        for con in constraints:
            if con.name in self._constraints:
                msg = f"Duplicate regression constraint: '{con.name}'"
                raise ValueError(msg)
            self._constraints[con.name] = con
            for key in con.list_regressors():
                if key not in seen:
                    seen.add(key)
                    self._regressors.append(key)
        self._validate_rank()

    @classmethod
    def create(cls, constraints: Iterable[RegressionConstraint]) -> RegressionConstraintSet:
        return cls(constraints)

    def _validate_rank(self) -> None:
        P = self.count_constraints()
        if P == 0:
            return
        rank = la.matrix_rank(self.get_constraint_matrix())
        LOGGER.debug("Constraint matrix %dx%d has rank %d", P, self.count_regressors(), rank)
        if rank != P:
            msg = (
                f"The regression constraints are rank-deficient: {P} constraints "
                f"but the constraint matrix has rank {rank}."
            )
            raise ValueError(msg)

    def count_constraints(self) -> int:
        return len(self._constraints)

    def count_regressors(self) -> int:
        return len(self._regressors)

    def contains_constraint(self, name: str) -> bool:
        return name in self._constraints

    def contains_regressor(self, key: Hashable) -> bool:
        return key in self._regressors

    def list_regressors(self) -> list[Hashable]:
        """Every regressor referenced by any constraint, in first-seen order."""
        return list(self._regressors)

    def get_constraint_names(self) -> list[str]:
        return list(self._constraints)

    def get_constraint(self, name: str) -> RegressionConstraint:
        try:
            return self._constraints[name]
        except KeyError:
            msg = f"No regression constraint named '{name}'"
            raise KeyError(msg) from None

    def get_constraint_matrix(self, column_keys: Sequence[Hashable] | None = None) -> np.ndarray:
        """P x K matrix of constraint terms over ``column_keys`` (default: referenced regressors).

        Entries are zero where a constraint does not reference a column key.
        """
        keys = self._regressors if column_keys is None else list(column_keys)
        C = np.zeros((self.count_constraints(), len(keys)), dtype=np.float64)
        for i, con in enumerate(self._constraints.values()):
            C[i, :] = con.terms.reindex(keys, fill_value=0.0).to_numpy(dtype=np.float64)
        return C

    def get_constraint_values(self) -> np.ndarray:
        """Right-hand sides in :meth:`get_constraint_names` order."""
        return np.array([con.value for con in self._constraints.values()], dtype=np.float64)

    def get_constraint_frame(self, column_keys: Sequence[Hashable] | None = None) -> pd.DataFrame:
        """Labelled view of the constraint matrix (rows: names, columns: regressors)."""
        keys = self._regressors if column_keys is None else list(column_keys)
        return pd.DataFrame(
            self.get_constraint_matrix(keys), index=self.get_constraint_names(), columns=keys,
        )

    def __iter__(self) -> Iterator[RegressionConstraint]:
        return iter(self._constraints.values())

    def __len__(self) -> int:
        return len(self._constraints)

    def __contains__(self, name: object) -> bool:
        return name in self._constraints

    def __repr__(self) -> str:
        return (
            f"RegressionConstraintSet(constraints={self.get_constraint_names()}, "
            f"regressors={self._regressors})"
        )


def build_category_constraint(
    category_name: str,
    regressor_keys: Iterable[Hashable],
    observation_frame: pd.DataFrame,
    observation_weights: pd.Series,
) -> RegressionConstraint:
    """Weighted exposure constraint for a group of category regressors.

    The term for category ``k`` is ``sum_i w_i * X[i, k]`` where the weights are
    taken over the rows of ``observation_frame`` and normalised to sum to one.
    The right-hand side is zero, so the weighted average category effect is
    pinned to zero.

    Parameters
    ----------
    category_name : str
        Name of the resulting constraint.
    regressor_keys : iterable
        Category columns of ``observation_frame``.
    observation_frame : pd.DataFrame
        Exposures, one row per observation.
    observation_weights : pd.Series
        Weight of every row of ``observation_frame`` (extra keys are ignored).

    Raises
    ------
    KeyError
        If a category column or a row weight is missing.
    ValueError
        If a category column is not numeric or the weights are negative,
        non-finite, or sum to zero.

    """
    keys = as_key_list(regressor_keys, what="category regressor")
    require_numeric_columns(observation_frame, keys)
    require_rows(observation_weights, list(observation_frame.index), what="observation weights")
    w = float_values(observation_weights.reindex(observation_frame.index))
    la.assert_all_finite(w, what="Category weights")
    if np.any(w < 0.0):
        msg = f"Category weights for '{category_name}' must be nonnegative."
        raise ValueError(msg)
    total = float(np.sum(w))
    if total <= 0.0:
        msg = f"Category weights for '{category_name}' must sum to a positive value."
        raise ValueError(msg)
    X = float_values(observation_frame[keys])
    terms = pd.Series((w / total) @ X, index=keys, dtype=np.float64)
    return RegressionConstraint(name=category_name, value=0.0, terms=terms)


# ---------- parse linear equalities from text ----------
_NUM = r"(?:[+-]?\d+(?:\.\d+)?(?:[eE][+-]?\d+)?)"


def _split_constraints_items(body: str) -> list[str]:
    """Split a constraints body by ';' or ',' but not inside brackets or quotes."""
    items, buf, depth, in_s, in_d = [], [], 0, False, False
    for ch in body:
        if ch == "'" and not in_d:
            in_s = not in_s
        elif ch == '"' and not in_s:
            in_d = not in_d
        elif not (in_s or in_d):
            if ch == "[":
                depth += 1
            elif ch == "]":
                depth = max(0, depth - 1)
            elif ch in ",;" and depth == 0:
                s = "".join(buf).strip()
                if not s:
                    raise ValueError(
                        "Empty/trailing constraint separator detected; check for extra ',' or ';'.",
                    )
                items.append(s)
                buf = []
                continue
        buf.append(ch)
    s = "".join(buf).strip()
    if s:
        items.append(s)
    return items


_TERM = re.compile(
    rf"(?P<sign>[+-])\s*(?:(?P<c>{_NUM})\s*\*?\s*)?"
    rf"(?:_b\[(?P<bv>.+?)\]|(?P<id>[A-Za-z_][A-Za-z0-9_.]*)|(?P<num>{_NUM}))",
)


def _parse_side(side: str, var_names: Sequence[Hashable] | None) -> tuple[dict[Hashable, float], float]:
    """Parse one side of an equality into (coefficients, constant).

    Accepts ``_b[name]`` (any name, including spaces), bare identifiers,
    numeric constants and an optional numeric multiplier (``2*x``, ``2 x``).
    When ``var_names`` is given, every referenced regressor must be in it.
    """
    s = side.strip().replace("−", "-")
    if not s:
        raise ValueError("Empty side in constraint equation.")
    if s[0] not in "+-":
        s = "+" + s
    coeffs: dict[Hashable, float] = {}
    const_val = 0.0
    pos = 0
    for m in _TERM.finditer(s):
        frag = s[pos : m.start()].strip()
        if frag:
            raise ValueError(f"Unrecognized token in constraint: '{frag}'")
        pos = m.end()
        sign = -1.0 if m.group("sign") == "-" else 1.0
        c = float(m.group("c")) if m.group("c") is not None else 1.0
        name = m.group("bv") if m.group("bv") is not None else m.group("id")
        if name is None:
            const_val += sign * float(m.group("num"))
            continue
        if var_names is not None and name not in var_names:
            raise KeyError(f"Regressor '{name}' not found among {list(var_names)}.")
        coeffs[name] = coeffs.get(name, 0.0) + sign * c
    tail = s[pos:].strip()
    if tail:
        raise ValueError(f"Unparsed tail in constraint: '{tail}'")
    return coeffs, const_val


def parse_constraint(
    text: str,
    name: str | None = None,
    var_names: Sequence[Hashable] | None = None,
) -> RegressionConstraint:
    """Parse ``"lhs = rhs"`` into a constraint.

    Terms are collected on the left and constants on the right, so
    ``"x1 + 1 = 2*x2"`` becomes ``x1 - 2*x2 = -1``. The constraint is named
    ``name`` or, by default, after the normalised equation text.

    Examples
    --------
    >>> parse_constraint("x1 + 2*x2 = 3").terms.to_dict()
    {'x1': 1.0, 'x2': 2.0}

    """
    eq = text.strip().replace("==", "=")
    parts = eq.split("=")
    if len(parts) != 2:
        raise ValueError(f"Constraint must contain one '=' : '{eq}'")
    cl, al = _parse_side(parts[0], var_names)
    cr, ar = _parse_side(parts[1], var_names)
    terms = dict(cl)
    for key, val in cr.items():
        terms[key] = terms.get(key, 0.0) - val
    terms = {k: v for k, v in terms.items() if v != 0.0}
    rhs = float(ar - al)
    if not terms:
        raise ValueError(f"Constraint '{eq}' does not reference any regressor.")
    return RegressionConstraint(name=eq if name is None else name, value=rhs, terms=terms)


def parse_constraints(
    spec_raw: str,
    var_names: Sequence[Hashable] | None = None,
) -> list[RegressionConstraint]:
    """Parse ';'/','-separated equalities, e.g. ``"_b[x1] = 0; x2 + x3 = 1"``."""
    items = _split_constraints_items(spec_raw)
    if not items:
        raise ValueError("Constraint specification is empty.")
    return [parse_constraint(item, var_names=var_names) for item in items]
