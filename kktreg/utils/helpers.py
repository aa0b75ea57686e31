"""Shared helper utilities.

Memoisation cells and key-coverage checks for pandas containers used by the
model, system and solver modules.
"""
from __future__ import annotations

from collections.abc import Callable, Hashable, Iterable, Sequence
from typing import Any, Generic, TypeVar

import numpy as np
import pandas as pd

__all__ = [
    "Memo",
    "as_key_list",
    "float_values",
    "require_columns",
    "require_keys",
    "require_numeric_columns",
    "require_rows",
]

T = TypeVar("T")

_UNSET = object()


class Memo(Generic[T]):
    """Lazily computed value that can be reset.

    ``get(factory)`` computes and caches the value on first access; ``reset()``
    forgets it so the next ``get`` recomputes. An optional ``tag`` records
    the state the value was computed from (e.g. a model revision) so callers
    can tell when a cached value has gone stale.
    """

    __slots__ = ("_tag", "_value")

    def __init__(self) -> None:
        self._value: Any = _UNSET
        self._tag: Any = None

    @property
    def is_set(self) -> bool:
        return self._value is not _UNSET

    @property
    def tag(self) -> Any:
        return self._tag

    def get(self, factory: Callable[[], T], tag: Any = None) -> T:
        if self._value is _UNSET or self._tag != tag:
            self._value = factory()
            self._tag = tag
        return self._value

    def peek(self) -> T | None:
        """Cached value without computing it (None when unset)."""
        return None if self._value is _UNSET else self._value

    def reset(self) -> None:
        self._value = _UNSET
        self._tag = None

    def __repr__(self) -> str:
        state = "unset" if self._value is _UNSET else f"cached, tag={self._tag!r}"
        return f"Memo({state})"


def as_key_list(keys: Hashable | Iterable[Hashable], *, what: str) -> list[Hashable]:
    """Normalise a key or an iterable of keys to a duplicate-free list."""
    if isinstance(keys, (str, bytes)) or not isinstance(keys, Iterable):
        out = [keys]
    else:
        out = list(keys)
    seen: set[Hashable] = set()
    dups: list[Hashable] = []
    for k in out:
        if k in seen:
            dups.append(k)
        seen.add(k)
    if dups:
        msg = f"Duplicate {what} keys: {dups}"
        raise ValueError(msg)
    return out


def require_keys(keys: Sequence[Hashable], available: Iterable[Hashable], *, what: str) -> None:
    """Raise KeyError listing every key in ``keys`` that is not ``available``."""
    pool = set(available)
    missing = [k for k in keys if k not in pool]
    if missing:
        msg = f"Missing {what}: {missing}"
        raise KeyError(msg)


def require_rows(frame: pd.DataFrame | pd.Series, keys: Sequence[Hashable], *, what: str = "rows") -> None:
    require_keys(keys, frame.index, what=what)


def require_columns(frame: pd.DataFrame, keys: Sequence[Hashable], *, what: str = "columns") -> None:
    require_keys(keys, frame.columns, what=what)


def require_numeric_columns(frame: pd.DataFrame, keys: Sequence[Hashable]) -> None:
    """Columns must exist and hold numeric (non-boolean-object) data."""
    require_columns(frame, keys)
    bad = [k for k in keys if not pd.api.types.is_numeric_dtype(frame[k])]
    if bad:
        msg = f"Non-numeric columns cannot be used as regressors: {bad}"
        raise ValueError(msg)


def float_values(obj: pd.DataFrame | pd.Series) -> np.ndarray:
    """Dense float64 copy of the values of a pandas container."""
    return np.array(obj.to_numpy(dtype=np.float64), dtype=np.float64, copy=True)
