"""Dense linear algebra routines shared by the regression engine.

Everything here operates on dense float64 arrays. Products and the SVD go
through :mod:`kktreg.core.backend` so that the optional GPU path is picked up
transparently.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import numpy as np

from . import backend as _bk

if TYPE_CHECKING:
    from numpy.typing import NDArray
else:
    NDArray = np.ndarray  # type: ignore[misc,assignment]

Matrix = Any

__all__ = [
    "assert_all_finite",
    "dot",
    "machine_epsilon",
    "matrix_rank",
    "svd",
    "to_dense",
]


def machine_epsilon() -> float:
    """Double precision machine epsilon (about 2.22e-16)."""
    return float(np.finfo(np.float64).eps)


def assert_all_finite(*arrays: NDArray[np.float64], what: str = "Input") -> None:
    """Raise ValueError if any input contains NaN or Inf."""
    for a in arrays:
        if a is None:
            continue
        if not np.all(np.isfinite(np.asarray(a))):
            msg = f"{what} contains NaN/Inf; please drop or fill the offending entries."
            raise ValueError(msg)


def to_dense(A: Matrix) -> NDArray[np.float64]:
    """Convert a matrix-like object (array, DataFrame, Series) to a float64 array."""
    if hasattr(A, "to_numpy"):
        return np.asarray(A.to_numpy(dtype=np.float64), dtype=np.float64)
    return np.asarray(A, dtype=np.float64)


def dot(A: Matrix, B: Matrix) -> NDArray[np.float64]:
    """Matrix multiplication, routed to the GPU when it is enabled."""
    Ad = to_dense(A)
    Bd = to_dense(B)
    if _bk.gpu_enabled():
        return _bk.dot(Ad, Bd)
    return Ad @ Bd


def svd(
    A: Matrix,
) -> tuple[NDArray[np.float64], NDArray[np.float64], NDArray[np.float64]]:
    """Thin singular value decomposition.

    Returns U, s, Vt such that ``A = U @ np.diag(s) @ Vt`` with ``s`` sorted in
    descending order and of length ``min(A.shape)``.
    """
    Ad = to_dense(A)
    if Ad.ndim != 2:
        msg = f"svd expects a 2-D matrix, got an array with {Ad.ndim} dimension(s)."
        raise ValueError(msg)
    if 0 in Ad.shape:
        k = min(Ad.shape)
        return (
            np.zeros((Ad.shape[0], k)),
            np.zeros(k),
            np.zeros((k, Ad.shape[1])),
        )
    U, s, Vt = _bk.svd(Ad)
    return (
        np.asarray(U, dtype=np.float64),
        np.asarray(s, dtype=np.float64),
        np.asarray(Vt, dtype=np.float64),
    )


def matrix_rank(A: Matrix, *, tol: float | None = None) -> int:
    """Numerical rank via the SVD.

    With ``tol=None`` the MATLAB/NumPy convention ``max(A.shape) * s_max * eps``
    is used; singular values strictly above the tolerance are counted.
    """
    Ad = to_dense(A)
    if Ad.size == 0:
        return 0
    assert_all_finite(Ad, what="Matrix")
    s = svd(Ad)[1]
    if tol is None:
        tol = max(Ad.shape) * (float(s[0]) if s.size else 0.0) * machine_epsilon()
    return int(np.count_nonzero(s > tol))
