"""Plot utilities.

Visualizes the singular value spectrum of an SVD solver against its
truncation threshold.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import matplotlib.pyplot as plt
import numpy as np

if TYPE_CHECKING:
    from kktreg.core.svd import SVDSolver
    from kktreg.estimators.solver import ConstrainedRegressionSolver

__all__ = ["singular_value_plot"]


def singular_value_plot(
    solver: SVDSolver | ConstrainedRegressionSolver,
    *,
    ax: plt.Axes | None = None,
    logscale: bool = True,
):
    """Scatter the singular values (descending) with the active threshold as a line.

    Accepts an ``SVDSolver`` or a ``ConstrainedRegressionSolver`` (whose
    augmented-system solver is used). Values at or below the threshold,
    which the solver treats as zero, are drawn hollow.
    """
    svd_solver = solver.get_svd_solver() if hasattr(solver, "get_svd_solver") else solver
    s = np.asarray(svd_solver.svd.singular_values, dtype=float)
    thr = float(svd_solver.threshold)
    idx = np.arange(1, s.size + 1)
    kept = s > thr
    ax = ax or plt.gca()
    ax.scatter(idx[kept], s[kept], marker="o", label="Retained", zorder=3)
    if np.any(~kept):
        # exact zeros cannot be drawn on a log axis
        trunc = np.where(s[~kept] > 0, s[~kept], thr * 1e-3) if logscale else s[~kept]
        ax.scatter(idx[~kept], trunc, marker="o", facecolors="none", edgecolors="C3", label="Truncated", zorder=3)
    ax.axhline(thr, color="0.5", lw=1, ls="--", label=f"Threshold = {thr:.2e}")
    if logscale:
        ax.set_yscale("log")
    ax.set_xlabel("Index")
    ax.set_ylabel("Singular value")
    ax.legend(frameon=False)
    return ax
