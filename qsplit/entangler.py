from __future__ import annotations

"""Merging of the subsystems referenced by a compiled bit list."""

import logging
from typing import Iterable, List, Sequence, Tuple

from . import config as config_module
from .arena import SubsystemArena, SubsystemHandle
from .bitlist import (
    BitListEntry,
    optimize_parallel_bit_list,
    ordered_bit_list,
    parallel_bit_list,
    referenced_subsystems,
)
from .config import BYTES_PER_AMPLITUDE, Config
from .errors import SubsystemAllocationError
from .lookup import IndexTable
from .reorder import sort_subsystem

LOGGER = logging.getLogger(__name__)


class Entangler:
    """Combine subsystems into one and restore global local ordering.

    Parameters
    ----------
    table:
        Index table of the register.
    arena:
        Arena owning the register's subsystems.
    config:
        Resource limits and reorder strategy.  Defaults to
        :data:`qsplit.config.DEFAULT`.
    """

    def __init__(
        self,
        table: IndexTable,
        arena: SubsystemArena,
        config: Config | None = None,
    ) -> None:
        self.table = table
        self.arena = arena
        self.config = config or config_module.DEFAULT

    # ------------------------------------------------------------------
    def check_capacity(self, handles: Iterable[SubsystemHandle]) -> int:
        """Return the width of the merged subsystem or raise if it cannot exist.

        Raises
        ------
        SubsystemAllocationError
            If the merged subsystem exceeds ``max_subsystem_qubits`` or its
            amplitude block exceeds the memory ceiling.
        """

        width = sum(self.arena.get(handle).num_qubits for handle in handles)
        self.check_width(width)
        return width

    def check_width(self, width: int) -> None:
        """Raise :class:`SubsystemAllocationError` if ``width`` qubits cannot be held densely."""

        if self.config.admits(width):
            return
        limit = self.config.max_subsystem_qubits
        if limit is not None and width > limit:
            raise SubsystemAllocationError(width, f"the limit of {limit} qubits")
        raise SubsystemAllocationError(
            width,
            f"the memory ceiling of {self.config.memory_ceiling()} bytes "
            f"({BYTES_PER_AMPLITUDE * (1 << width)} bytes needed)",
        )

    def merge(self, first: SubsystemHandle, second: SubsystemHandle) -> SubsystemHandle:
        """Tensor ``second`` onto ``first`` and return the merged handle.

        Both input handles are stale afterwards.  Residents of ``second``
        follow those of ``first`` in the merged subsystem.
        """

        merged = self.arena.get(first).cohere(self.arena.get(second))
        residents = self.table.release(first) + self.table.release(second)
        self.arena.free(first)
        self.arena.free(second)
        handle = self.arena.allocate(merged)
        self.table.attach(handle, residents)
        LOGGER.debug(
            "Merged subsystems %s and %s into %s (%d qubits)",
            first,
            second,
            handle,
            merged.num_qubits,
        )
        return handle

    def entangle(self, entries: Sequence[BitListEntry]) -> SubsystemHandle:
        """Bring every run of ``entries`` into one sorted subsystem.

        A list with a single run is returned untouched.  Otherwise all
        referenced subsystems are merged in order of first appearance and
        the result is sorted by global id, which makes every contiguous
        global range inside it locally contiguous and in order.
        """

        handles = referenced_subsystems(entries)
        if not handles:
            raise ValueError("Cannot entangle an empty bit list")
        if len(entries) == 1:
            return handles[0]
        if len(handles) > 1:
            self.check_capacity(handles)
        handle = handles[0]
        for other in handles[1:]:
            handle = self.merge(handle, other)
        sort_subsystem(self.table, self.arena, handle, self.config.reorder_strategy)
        if self.config.check_invariants:
            self.table.check(self.arena)
        return handle

    def entangle_indices(self, qubits: Iterable[int]) -> SubsystemHandle:
        """Merge the subsystems holding ``qubits`` into one.

        Used by two- and three-qubit gates whose targets are addressed by
        explicit local positions, so no reordering happens when the qubits
        already share a subsystem.
        """

        qubits = self.table.validate_distinct(qubits)
        entries: List[BitListEntry] = [
            BitListEntry(lookup.handle, lookup.local, 1)
            for lookup in map(self.table.locate, qubits)
        ]
        entries = optimize_parallel_bit_list(entries)
        handles = referenced_subsystems(entries)
        if len(handles) == 1:
            return handles[0]
        return self.entangle(entries)

    def entangle_ranges(
        self,
        ranges: Sequence[Tuple[int, int]],
        *,
        ordered: bool = True,
    ) -> SubsystemHandle:
        """Merge every ``(start, length)`` range into one subsystem.

        On return each range is locally contiguous and ascending, so a
        single register-wise engine call can address it by the local
        position of its first id.

        Parameters
        ----------
        ranges:
            Global ranges taking part in one operation.
        ordered:
            Compile with :func:`~qsplit.bitlist.ordered_bit_list` when the
            operation depends on bit significance; otherwise use parallel
            compilation followed by the optimisation pass, which names each
            subsystem's runs minimally.
        """

        entries: List[BitListEntry] = []
        for start, length in ranges:
            if ordered:
                entries.extend(ordered_bit_list(self.table, start, length))
            else:
                entries.extend(parallel_bit_list(self.table, start, length))
        if not ordered:
            entries = optimize_parallel_bit_list(entries)
        handle = self.entangle(entries)
        if any(len(ordered_bit_list(self.table, start, length)) != 1 for start, length in ranges):
            sort_subsystem(self.table, self.arena, handle, self.config.reorder_strategy)
        return handle
