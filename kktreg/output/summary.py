"""Summary tables for constrained regression results.

Tables are rendered with ``tabulate`` as plain text or LaTeX.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Literal, cast

import numpy as np
from tabulate import tabulate

if TYPE_CHECKING:
    from kktreg.estimators.base import ConstrainedRegressionResult

__all__ = ["modelsummary", "result_summary"]


def _fmt(x: float, digits: int) -> str:
    return "" if x is None or not np.isfinite(x) else f"{x:.{digits}f}"


def _render(rows: list[list[str]], headers: list[str], output: str, latex_booktabs: bool) -> str:
    if output == "latex":
        tablefmt = "latex_booktabs" if latex_booktabs else "latex"
        return cast("str", tabulate(rows, headers=headers, stralign="center", tablefmt=tablefmt, disable_numparse=True))
    return cast("str", tabulate(rows, headers=headers, stralign="center", disable_numparse=True))


def result_summary(
    result: ConstrainedRegressionResult,
    *,
    digits: int = 4,
    output: Literal["text", "latex"] = "text",
    latex_booktabs: bool = True,
) -> str:
    """Coefficient table, dual values and fit statistics of one result."""
    rows = [[str(k), _fmt(float(v), digits)] for k, v in result.betas.items()]
    parts = [_render(rows, ["Regressor", "Beta"], output, latex_booktabs)]
    if len(result.duals):
        drows = [[str(k), _fmt(float(v), digits)] for k, v in result.duals.items()]
        parts.append(_render(drows, ["Constraint", "Dual"], output, latex_booktabs))
    stats = [
        ["Observations", str(len(result.fitted))],
        ["Regressors", str(len(result.betas))],
        ["Constraints", str(len(result.duals))],
        ["RSS", _fmt(result.rss(), digits)],
    ]
    parts.append(_render(stats, ["Statistic", "Value"], output, latex_booktabs))
    return "\n\n".join(parts)


def modelsummary(
    results: Sequence[ConstrainedRegressionResult],
    *,
    model_names: Sequence[str] | None = None,
    digits: int = 4,
    output: Literal["text", "latex"] = "text",
    latex_booktabs: bool = True,
) -> str:
    """Side-by-side coefficients of several results (e.g. a threshold sweep).

    Rows follow the order in which regressors and constraints first appear;
    cells are blank where a result lacks the entry.
    """
    if not results:
        msg = "modelsummary requires at least one result."
        raise ValueError(msg)
    names = list(model_names) if model_names is not None else [f"({i + 1})" for i in range(len(results))]
    if len(names) != len(results):
        msg = "model_names length must match the number of results."
        raise ValueError(msg)

    def _ordered(attr: str) -> list:
        keys: list = []
        for res in results:
            for k in getattr(res, attr).index:
                if k not in keys:
                    keys.append(k)
        return keys

    rows: list[list[str]] = []
    for key in _ordered("betas"):
        rows.append([str(key)] + [
            _fmt(float(res.betas[key]), digits) if key in res.betas.index else "" for res in results
        ])
    for key in _ordered("duals"):
        rows.append([f"dual: {key}"] + [
            _fmt(float(res.duals[key]), digits) if key in res.duals.index else "" for res in results
        ])
    rows.append(["Observations"] + [str(len(res.fitted)) for res in results])
    rows.append(["RSS"] + [_fmt(res.rss(), digits) for res in results])
    return _render(rows, ["", *names], output, latex_booktabs)
