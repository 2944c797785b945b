from __future__ import annotations

"""Bidirectional index between global qubit ids and subsystem positions."""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Tuple

from .arena import SubsystemArena, SubsystemHandle
from .errors import InvalidQubitError, PartitionInvariantError


@dataclass(frozen=True)
class QubitLookup:
    """Current home of one global qubit id."""

    handle: SubsystemHandle
    local: int


class IndexTable:
    """Forward and reverse qubit index of a partitioned register.

    The forward table maps a global id to its :class:`QubitLookup`; the
    reverse table maps a subsystem handle to the global ids resident at each
    of its local positions.  Both are updated together, and they are the
    only record of where a qubit lives.

    Retired ids (removed by ``decohere``/``dispose``) keep their slot in the
    forward table as ``None`` so that ids are never reused.
    """

    def __init__(self, num_qubits: int = 0) -> None:
        self._forward: List[QubitLookup | None] = [None] * num_qubits
        self._reverse: Dict[SubsystemHandle, List[int]] = {}

    # ------------------------------------------------------------------
    @property
    def capacity(self) -> int:
        """Number of ids ever allocated, live or retired."""
        return len(self._forward)

    def __len__(self) -> int:
        return sum(1 for entry in self._forward if entry is not None)

    def live_ids(self) -> List[int]:
        return [qubit for qubit, entry in enumerate(self._forward) if entry is not None]

    def is_live(self, qubit: int) -> bool:
        return 0 <= qubit < len(self._forward) and self._forward[qubit] is not None

    def locate(self, qubit: int) -> QubitLookup:
        """Return the subsystem and local position holding ``qubit``.

        Raises
        ------
        InvalidQubitError
            If ``qubit`` was never allocated or has been retired.
        """

        if not 0 <= qubit < len(self._forward):
            raise InvalidQubitError(
                f"Qubit {qubit} outside register of {len(self._forward)} ids"
            )
        entry = self._forward[qubit]
        if entry is None:
            raise InvalidQubitError(f"Qubit {qubit} has been removed from the register")
        return entry

    def validate_range(self, start: int, length: int) -> None:
        """Ensure every id of ``[start, start + length)`` is live."""

        if length < 1:
            raise ValueError(f"Register length must be positive, got {length}")
        for qubit in range(start, start + length):
            self.locate(qubit)

    def validate_distinct(self, qubits: Iterable[int]) -> List[int]:
        """Ensure ``qubits`` are live and pairwise distinct."""

        qubits = list(qubits)
        for qubit in qubits:
            self.locate(qubit)
        if len(set(qubits)) != len(qubits):
            raise ValueError(f"Qubits {qubits} must be distinct")
        return qubits

    # ------------------------------------------------------------------
    def record(self, qubit: int, handle: SubsystemHandle, local: int) -> None:
        """Place ``qubit`` at ``local`` inside the subsystem ``handle``."""

        if not 0 <= qubit < len(self._forward):
            raise InvalidQubitError(
                f"Qubit {qubit} outside register of {len(self._forward)} ids"
            )
        residents = self._reverse.setdefault(handle, [])
        if local >= len(residents):
            residents.extend([-1] * (local + 1 - len(residents)))
        residents[local] = qubit
        self._forward[qubit] = QubitLookup(handle, local)

    def attach(self, handle: SubsystemHandle, qubits: Iterable[int]) -> None:
        """Record ``qubits`` at local positions ``0, 1, ...`` of ``handle``."""

        self._reverse[handle] = []
        for local, qubit in enumerate(qubits):
            self.record(qubit, handle, local)

    def release(self, handle: SubsystemHandle) -> List[int]:
        """Forget the reverse entry of ``handle`` and return its residents.

        Forward entries are left untouched; the caller re-records or retires
        every returned id.
        """

        return self._reverse.pop(handle)

    def retire(self, qubit: int) -> None:
        self.locate(qubit)
        self._forward[qubit] = None

    def extend(self, count: int) -> int:
        """Allocate ``count`` fresh ids and return the first one."""

        start = len(self._forward)
        self._forward.extend([None] * count)
        return start

    def reset(self) -> None:
        """Drop every record while keeping the id space."""

        self._forward = [None] * len(self._forward)
        self._reverse.clear()

    # ------------------------------------------------------------------
    def residents(self, handle: SubsystemHandle) -> Tuple[int, ...]:
        return tuple(self._reverse[handle])

    def resident_at(self, handle: SubsystemHandle, local: int) -> int:
        return self._reverse[handle][local]

    def size(self, handle: SubsystemHandle) -> int:
        return len(self._reverse[handle])

    def handles(self) -> List[SubsystemHandle]:
        return list(self._reverse)

    def swap_local(self, handle: SubsystemHandle, local1: int, local2: int) -> None:
        """Exchange the ids resident at two local positions of ``handle``."""

        residents = self._reverse[handle]
        qubit1, qubit2 = residents[local1], residents[local2]
        residents[local1], residents[local2] = qubit2, qubit1
        self._forward[qubit1] = QubitLookup(handle, local2)
        self._forward[qubit2] = QubitLookup(handle, local1)

    def swap_ids(self, qubit1: int, qubit2: int) -> None:
        """Exchange the homes of two global ids without touching amplitudes."""

        entry1 = self.locate(qubit1)
        entry2 = self.locate(qubit2)
        self._forward[qubit1], self._forward[qubit2] = entry2, entry1
        self._reverse[entry1.handle][entry1.local] = qubit2
        self._reverse[entry2.handle][entry2.local] = qubit1

    # ------------------------------------------------------------------
    def check(self, arena: SubsystemArena) -> None:
        """Verify that the tables describe a partition of ``arena``.

        Raises
        ------
        PartitionInvariantError
            If any live id is unplaced or placed twice, any local position
            of a live subsystem is unoccupied, or the reverse table names a
            freed subsystem.
        """

        live = set(arena.handles())
        stale = [handle for handle in self._reverse if handle not in live]
        if stale:
            raise PartitionInvariantError(f"Index names freed subsystems {stale}")
        seen: set[int] = set()
        for handle in live:
            residents = self._reverse.get(handle)
            if residents is None:
                raise PartitionInvariantError(f"Subsystem {handle} has no index entry")
            width = arena.get(handle).num_qubits
            if len(residents) != width:
                raise PartitionInvariantError(
                    f"Subsystem {handle} holds {width} qubits but indexes {len(residents)}"
                )
            for local, qubit in enumerate(residents):
                if not 0 <= qubit < len(self._forward):
                    raise PartitionInvariantError(
                        f"Local position {local} of {handle} is unoccupied"
                    )
                if qubit in seen:
                    raise PartitionInvariantError(f"Qubit {qubit} is placed twice")
                if self._forward[qubit] != QubitLookup(handle, local):
                    raise PartitionInvariantError(
                        f"Forward entry of qubit {qubit} disagrees with {handle}[{local}]"
                    )
                seen.add(qubit)
        missing = set(self.live_ids()) - seen
        if missing:
            raise PartitionInvariantError(f"Qubits {sorted(missing)} are not placed")
