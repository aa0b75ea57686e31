# kktreg/core/__init__.py
"""Core numerical modules for kktreg."""
from . import backend, linalg, svd

__all__ = ["backend", "linalg", "svd"]
