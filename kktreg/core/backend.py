"""Optional GPU acceleration via CuPy.

Dense products and the singular value decomposition can be routed to CuPy
when it is installed and requested through the environment:

- ``KKTREG_DEVICE=gpu`` (or ``cuda``) selects the GPU.
- ``KKTREG_USE_GPU=1`` (``true``/``yes``/``on``) does the same.

Results are always returned as NumPy arrays so callers never see device
arrays.
"""
from __future__ import annotations

import logging
import os
from functools import lru_cache
from typing import TYPE_CHECKING, Any

import numpy as np
import scipy.linalg as sla

try:  # pragma: no cover - optional dependency
    import cupy as _cp  # type: ignore
    _CUPY_OK = True
except ImportError:  # pragma: no cover - optional dependency
    _cp = None  # type: ignore
    _CUPY_OK = False


if TYPE_CHECKING:
    from collections.abc import Iterable


_LOGGER = logging.getLogger(__name__)

DEVICE_ENV = "KKTREG_DEVICE"
USE_GPU_ENV = "KKTREG_USE_GPU"


def _env_wants_gpu() -> bool:
    dev = str(os.environ.get(DEVICE_ENV, "")).strip().lower()
    flag = str(os.environ.get(USE_GPU_ENV, "")).strip().lower()
    if dev in {"gpu", "cuda"}:
        return True
    if dev == "cpu":
        return False
    return flag in {"1", "true", "yes", "on"}


@lru_cache(maxsize=1)
def gpu_available() -> bool:
    """Return True if CuPy is importable and at least one CUDA device is available."""
    if not _CUPY_OK:
        return False
    try:  # pragma: no cover - environment-specific
        n = _cp.cuda.runtime.getDeviceCount()  # type: ignore[attr-defined]
        return int(n) > 0
    except (AttributeError, RuntimeError) as exc:  # pragma: no cover - environment-specific
        _LOGGER.debug("GPU detection failed; assuming CPU. Error: %s", exc)
        return False


def gpu_enabled() -> bool:
    """Return True when the environment requests the GPU and one is available."""
    return _env_wants_gpu() and gpu_available()


def xp_for(arrays: Iterable[Any] | None = None, prefer_gpu: bool | None = None):
    """Return the array module (numpy or cupy) to use.

    If any input array already lives on the GPU, cupy is returned. Otherwise
    cupy is returned only when requested (argument or environment) and a
    device is present.
    """
    if _CUPY_OK and arrays is not None:
        for a in arrays:
            if isinstance(a, _cp.ndarray):  # type: ignore[attr-defined]
                return _cp
    use_gpu = _env_wants_gpu() if prefer_gpu is None else bool(prefer_gpu)
    if use_gpu and gpu_available():
        return _cp
    return np


def asarray(x: Any, xp=None, dtype=np.float64):
    """Convert to a float64 array on the selected backend."""
    mod = np if xp is None else xp
    if mod is np:
        return np.asarray(x, dtype=dtype)
    try:
        return mod.asarray(x, dtype=dtype)
    except (AttributeError, TypeError, ValueError) as exc:
        _LOGGER.debug("Falling back to NumPy.asarray; %s.asarray failed: %s", mod.__name__, exc)
        return np.asarray(x, dtype=dtype)


def to_cpu(x: Any, dtype=np.float64):
    """Ensure array is on CPU (NumPy)."""
    if _CUPY_OK and isinstance(x, _cp.ndarray):  # type: ignore[attr-defined]
        return _cp.asnumpy(x).astype(dtype, copy=False)  # type: ignore[attr-defined]
    return np.asarray(x, dtype=dtype)


def dot(A: Any, B: Any, prefer_gpu: bool | None = None):
    """Backend-aware matrix multiply; returns a NumPy array."""
    xp = xp_for([A, B], prefer_gpu=prefer_gpu)
    if xp is np:
        return np.asarray(A, dtype=np.float64) @ np.asarray(B, dtype=np.float64)
    try:
        return to_cpu(asarray(A, xp=xp) @ asarray(B, xp=xp))
    finally:
        free_gpu_cache()


def svd(A: Any, prefer_gpu: bool | None = None):
    """Thin SVD ``A = U @ diag(s) @ Vt`` with singular values in descending order.

    The CPU path uses LAPACK ``gesdd`` and retries with ``gesvd`` when the
    divide-and-conquer driver fails to converge.
    """
    xp = xp_for([A], prefer_gpu=prefer_gpu)
    if xp is not np:
        try:
            U, s, Vt = xp.linalg.svd(asarray(A, xp=xp), full_matrices=False)
            return to_cpu(U), to_cpu(s), to_cpu(Vt)
        finally:
            free_gpu_cache()
    Ad = np.asarray(A, dtype=np.float64)
    try:
        return sla.svd(Ad, full_matrices=False, lapack_driver="gesdd")
    except np.linalg.LinAlgError as exc:
        _LOGGER.debug("gesdd did not converge (%s); retrying with gesvd", exc)
        return sla.svd(Ad, full_matrices=False, lapack_driver="gesvd")


class DeviceGuard:
    """Context manager to temporarily force a device preference."""

    def __init__(self, device: str):
        self.device = str(device).lower()
        self._prev_env = None

    def __enter__(self):
        self._prev_env = os.environ.get(DEVICE_ENV)
        os.environ[DEVICE_ENV] = ("gpu" if self.device in {"gpu", "cuda"} else "cpu")
        return self

    def __exit__(self, exc_type, exc, tb):
        if self._prev_env is None:
            os.environ.pop(DEVICE_ENV, None)
        else:
            os.environ[DEVICE_ENV] = self._prev_env
        free_gpu_cache()
        return False


def free_gpu_cache() -> None:
    """Release cached GPU memory if CuPy is active."""
    if not _CUPY_OK:
        return
    try:  # pragma: no cover - environment-specific
        _cp.get_default_memory_pool().free_all_blocks()  # type: ignore[attr-defined]
        _cp.get_default_pinned_memory_pool().free_all_blocks()  # type: ignore[attr-defined]
    except (AttributeError, RuntimeError) as exc:  # pragma: no cover - environment-specific
        _LOGGER.debug("GPU cache cleanup failed: %s", exc)
