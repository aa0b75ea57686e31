"""Thresholded singular value decomposition solver.

The solver factors a coefficient matrix once and then applies the
Moore-Penrose style inverse ``V @ diag(1/s) @ U.T``, zeroing the reciprocal of
every singular value at or below a threshold. The threshold can be changed
at any time without recomputing the decomposition.

The default threshold follows Numerical Recipes (3rd ed., section 2.6)::

    0.5 * sqrt(M + N + 1) * s_max * eps
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import numpy as np

from .linalg import assert_all_finite, machine_epsilon, svd, to_dense

if TYPE_CHECKING:
    from numpy.typing import NDArray
else:
    NDArray = np.ndarray  # type: ignore[misc,assignment]

LOGGER = logging.getLogger(__name__)

__all__ = [
    "SVD",
    "SVDSolver",
    "compute_fitted_values",
    "compute_residual",
    "compute_rss",
    "decompose",
    "default_threshold",
    "is_exact_solution",
    "is_least_squares_solution",
    "validate_threshold",
]


@dataclass(frozen=True)
class SVD:
    """Thin decomposition ``A = U @ diag(singular_values) @ V.T``."""

    U: NDArray[np.float64]
    V: NDArray[np.float64]
    singular_values: NDArray[np.float64]
    row_dimension: int
    column_dimension: int

    @property
    def UT(self) -> NDArray[np.float64]:
        return self.U.T

    @property
    def max_singular_value(self) -> float:
        return float(self.singular_values[0]) if self.singular_values.size else 0.0


def decompose(A: Any) -> SVD:
    """Factor ``A``; non-finite entries are rejected."""
    Ad = to_dense(A)
    if Ad.ndim != 2:
        msg = f"SVD requires a 2-D matrix, got shape {Ad.shape}."
        raise ValueError(msg)
    assert_all_finite(Ad, what="Matrix passed to the SVD")
    U, s, Vt = svd(Ad)
    for arr in (U, s, Vt):
        arr.setflags(write=False)
    return SVD(
        U=U,
        V=Vt.T,
        singular_values=s,
        row_dimension=int(Ad.shape[0]),
        column_dimension=int(Ad.shape[1]),
    )


def default_threshold(decomp: SVD) -> float:
    """Numerical Recipes threshold, floored at machine epsilon."""
    M = decomp.row_dimension
    N = decomp.column_dimension
    eps = machine_epsilon()
    thr = 0.5 * np.sqrt(M + N + 1.0) * decomp.max_singular_value * eps
    return float(max(thr, eps))


def validate_threshold(threshold: float) -> float:
    """Return ``threshold`` as a float if it is finite and at least machine epsilon."""
    thr = float(threshold)
    if not np.isfinite(thr):
        msg = f"The singular value threshold must be finite, got {threshold!r}."
        raise ValueError(msg)
    if thr < machine_epsilon():
        msg = (
            "The singular value threshold must not be smaller than the machine "
            f"tolerance ({machine_epsilon():.3e}), got {thr:.3e}."
        )
        raise ValueError(msg)
    return thr


class SVDSolver:
    """Solve ``A x = b`` (or least squares) through a thresholded SVD.

    Parameters
    ----------
    decomp : SVD
        Decomposition of the coefficient matrix.
    threshold : float, optional
        Singular values at or below this value are treated as exactly zero.
        Defaults to :func:`default_threshold`.

    Examples
    --------
    >>> solver = SVDSolver.from_matrix(A).with_threshold(1e-10)
    >>> x = solver.solve(b)

    """

    def __init__(self, decomp: SVD, threshold: float | None = None) -> None:
        self._svd = decomp
        self._threshold = validate_threshold(
            default_threshold(decomp) if threshold is None else threshold,
        )

    @classmethod
    def from_matrix(cls, A: Any, threshold: float | None = None) -> SVDSolver:
        return cls(decompose(A), threshold=threshold)

    @property
    def svd(self) -> SVD:
        return self._svd

    @property
    def threshold(self) -> float:
        return self._threshold

    @property
    def row_dimension(self) -> int:
        return self._svd.row_dimension

    @property
    def column_dimension(self) -> int:
        return self._svd.column_dimension

    def with_threshold(self, threshold: float) -> SVDSolver:
        """Replace the threshold in place; the decomposition is reused."""
        self._threshold = validate_threshold(threshold)
        LOGGER.debug(
            "SVD threshold set to %.3e (%d of %d singular values truncated)",
            self._threshold,
            self.count_truncated(),
            self._svd.singular_values.size,
        )
        return self

    def rank(self) -> int:
        """Number of singular values strictly above the threshold."""
        return int(np.count_nonzero(self._svd.singular_values > self._threshold))

    def count_truncated(self) -> int:
        """Number of singular values treated as zero."""
        return int(self._svd.singular_values.size - self.rank())

    def _inverse_values(self) -> NDArray[np.float64]:
        s = self._svd.singular_values
        keep = s > self._threshold
        out = np.zeros_like(s)
        out[keep] = 1.0 / s[keep]
        return out

    def invert_singular_values(self) -> NDArray[np.float64]:
        """Diagonal matrix of ``1/s_k`` for retained values and 0 otherwise."""
        return np.diag(self._inverse_values())

    def invert(self) -> NDArray[np.float64]:
        """Pseudo-inverse ``V @ diag(1/s) @ U.T`` of shape (N, M)."""
        return (self._svd.V * self._inverse_values()) @ self._svd.UT

    def solve(self, b: Any) -> NDArray[np.float64]:
        """Solve for a vector (1-D) or a batch of right-hand sides (2-D, one per column)."""
        bd = to_dense(b)
        if bd.ndim not in (1, 2):
            msg = f"Right-hand side must be 1-D or 2-D, got shape {bd.shape}."
            raise ValueError(msg)
        if bd.shape[0] != self.row_dimension:
            msg = (
                f"Right-hand side has {bd.shape[0]} rows but the coefficient matrix "
                f"has {self.row_dimension}."
            )
            raise ValueError(msg)
        inv = self._inverse_values()
        utb = self._svd.UT @ bd
        if bd.ndim == 1:
            return self._svd.V @ (inv * utb)
        return self._svd.V @ (inv[:, None] * utb)

    def __repr__(self) -> str:
        return (
            f"SVDSolver(shape=({self.row_dimension}, {self.column_dimension}), "
            f"threshold={self._threshold:.3e}, rank={self.rank()})"
        )


# ---------------------------------------------------------------------------
# Solution diagnostics
# ---------------------------------------------------------------------------


def compute_fitted_values(A: Any, x: Any) -> NDArray[np.float64]:
    return to_dense(A) @ to_dense(x)


def compute_residual(A: Any, x: Any, b: Any) -> NDArray[np.float64]:
    """Error vector ``A @ x - b``."""
    return compute_fitted_values(A, x) - to_dense(b)


def compute_rss(A: Any, x: Any, b: Any) -> float:
    """Residual sum of squares of ``A @ x - b``."""
    r = compute_residual(A, x, b)
    return float(r @ r)


def is_exact_solution(
    A: Any, x: Any, b: Any, *, rtol: float = 1e-8, atol: float = 1e-8,
) -> bool:
    """True if ``A`` is square and ``A @ x`` reproduces ``b``."""
    Ad = to_dense(A)
    if Ad.ndim != 2 or Ad.shape[0] != Ad.shape[1]:
        return False
    return bool(np.allclose(Ad @ to_dense(x), to_dense(b), rtol=rtol, atol=atol))


def is_least_squares_solution(A: Any, x: Any, b: Any) -> bool:
    """Check that no coordinate moved by +/-1% lowers the residual sum of squares.

    A brute-force oracle for overdetermined systems, meant for tests.
    """
    xd = np.array(to_dense(x), dtype=np.float64)
    min_rss = compute_rss(A, xd, b)
    trial = xd.copy()
    for k, xk in enumerate(xd):
        dx = 0.01 * xk
        for candidate in (xk + dx, xk - dx):
            trial[k] = candidate
            if compute_rss(A, trial, b) < min_rss:
                return False
        trial[k] = xk
    return True
