"""Subsystem engines for qsplit."""

from .base import Backend
from .statevector import DenseUnit

__all__ = [
    "Backend",
    "DenseUnit",
]
