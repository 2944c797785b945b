"""Exception hierarchy shared by the partition layer."""


class QsplitError(Exception):
    """Base class for errors raised by qsplit."""


class InvalidQubitError(QsplitError, IndexError):
    """Raised when a qubit id or range falls outside the live register."""


class StaleHandleError(QsplitError, LookupError):
    """Raised when a subsystem handle refers to a freed or reused slot."""


class SubsystemAllocationError(QsplitError, MemoryError):
    """Raised when a merge would exceed the configured resource limits.

    The check happens before any table is mutated, so the register is left
    exactly as it was before the failing operation.
    """

    def __init__(self, num_qubits: int, limit: str) -> None:
        super().__init__(
            f"Merged subsystem of {num_qubits} qubits exceeds {limit}"
        )
        self.num_qubits = num_qubits


class PartitionInvariantError(QsplitError, RuntimeError):
    """Raised when the index tables no longer describe a partition."""
