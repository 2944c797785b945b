from __future__ import annotations

"""Slot arena holding the live subsystem engines.

Subsystems are addressed through :class:`SubsystemHandle` values instead of
object references.  A handle carries the generation of its slot at
allocation time; freeing the slot bumps the generation, so every
outstanding handle to it becomes stale even if the slot is reused later.
"""

from dataclasses import dataclass
from typing import Iterator, List

from .backends.base import Backend
from .errors import StaleHandleError


@dataclass(frozen=True)
class SubsystemHandle:
    """Non-owning reference to one arena slot."""

    slot: int
    generation: int

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"#{self.slot}.{self.generation}"


@dataclass
class _Slot:
    unit: Backend | None = None
    generation: int = 0


class SubsystemArena:
    """Owner of every live subsystem engine of one register."""

    def __init__(self) -> None:
        self._slots: List[_Slot] = []
        self._free: List[int] = []

    def allocate(self, unit: Backend) -> SubsystemHandle:
        """Store ``unit`` in a free slot and return its handle."""

        if self._free:
            index = self._free.pop()
            slot = self._slots[index]
        else:
            index = len(self._slots)
            slot = _Slot()
            self._slots.append(slot)
        slot.unit = unit
        return SubsystemHandle(index, slot.generation)

    def _slot(self, handle: SubsystemHandle) -> _Slot:
        if not 0 <= handle.slot < len(self._slots):
            raise StaleHandleError(f"Unknown subsystem handle {handle}")
        slot = self._slots[handle.slot]
        if slot.unit is None or slot.generation != handle.generation:
            raise StaleHandleError(f"Subsystem handle {handle} is stale")
        return slot

    def get(self, handle: SubsystemHandle) -> Backend:
        return self._slot(handle).unit  # type: ignore[return-value]

    def free(self, handle: SubsystemHandle) -> Backend:
        """Release the slot behind ``handle`` and return its engine."""

        slot = self._slot(handle)
        unit = slot.unit
        slot.unit = None
        slot.generation += 1
        self._free.append(handle.slot)
        return unit  # type: ignore[return-value]

    def clear(self) -> None:
        for index, slot in enumerate(self._slots):
            if slot.unit is not None:
                slot.unit = None
                slot.generation += 1
                self._free.append(index)

    def handles(self) -> List[SubsystemHandle]:
        """Return handles of all live slots in slot order."""

        return [
            SubsystemHandle(index, slot.generation)
            for index, slot in enumerate(self._slots)
            if slot.unit is not None
        ]

    def __contains__(self, handle: object) -> bool:
        if not isinstance(handle, SubsystemHandle):
            return False
        try:
            self._slot(handle)
        except StaleHandleError:
            return False
        return True

    def __iter__(self) -> Iterator[SubsystemHandle]:
        return iter(self.handles())

    def __len__(self) -> int:
        return sum(1 for slot in self._slots if slot.unit is not None)
