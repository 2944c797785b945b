import os
from dataclasses import dataclass

import psutil

REORDER_STRATEGIES = ("quicksort", "cycles")

BYTES_PER_AMPLITUDE = 16
"""Size of one ``complex128`` amplitude."""


def _int_from_env(name: str, default: int | None) -> int | None:
    val = os.getenv(name)
    if val is None:
        return default
    if val.lower() == "none":
        return None
    try:
        return int(val)
    except ValueError:
        return default


def _float_from_env(name: str, default: float) -> float:
    """Return a floating-point value parsed from the environment."""

    val = os.getenv(name)
    if val is None or not val.strip():
        return default
    try:
        return float(val)
    except ValueError:
        return default


def _bool_from_env(name: str, default: bool) -> bool:
    """Return a boolean value parsed from the environment."""

    val = os.getenv(name)
    if val is None or not val.strip():
        return default
    val = val.strip().lower()
    if val in {"1", "true", "yes", "on"}:
        return True
    if val in {"0", "false", "no", "off"}:
        return False
    return default


def _strategy_from_env(name: str, default: str) -> str:
    val = os.getenv(name)
    if val is None or not val.strip():
        return default
    val = val.strip().lower()
    return val if val in REORDER_STRATEGIES else default


@dataclass
class Config:
    """Runtime configuration defaults for qsplit.

    Values may be overridden via environment variables or by passing an
    explicit instance to :class:`~qsplit.separated.SeparatedUnit`.
    """

    max_subsystem_qubits: int | None = _int_from_env(
        "QSPLIT_MAX_SUBSYSTEM_QUBITS", 28
    )
    max_memory_bytes: int | None = _int_from_env("QSPLIT_MAX_MEMORY_BYTES", None)
    reorder_strategy: str = _strategy_from_env("QSPLIT_REORDER_STRATEGY", "quicksort")
    check_invariants: bool = _bool_from_env("QSPLIT_CHECK_INVARIANTS", False)
    seed: int | None = _int_from_env("QSPLIT_SEED", None)
    normalization_tolerance: float = _float_from_env("QSPLIT_NORM_TOLERANCE", 1e-9)

    def __post_init__(self) -> None:
        if self.reorder_strategy not in REORDER_STRATEGIES:
            raise ValueError(
                f"Unknown reorder strategy '{self.reorder_strategy}'. "
                f"Available: {REORDER_STRATEGIES}"
            )

    def memory_ceiling(self) -> int:
        """Return the largest amplitude block, in bytes, a merge may allocate.

        An explicit ``max_memory_bytes`` wins; otherwise the currently
        available system memory reported by :mod:`psutil` is used.
        """

        if self.max_memory_bytes is not None and self.max_memory_bytes > 0:
            return int(self.max_memory_bytes)
        return int(psutil.virtual_memory().available)

    def admits(self, num_qubits: int) -> bool:
        """Return ``True`` if a subsystem of ``num_qubits`` may be allocated."""

        if self.max_subsystem_qubits is not None and num_qubits > self.max_subsystem_qubits:
            return False
        return BYTES_PER_AMPLITUDE * (1 << num_qubits) <= self.memory_ceiling()


# Global configuration instance used when modules import ``qsplit.config``.
DEFAULT = Config()
