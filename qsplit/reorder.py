from __future__ import annotations

"""In-place reordering of a subsystem's local qubit positions.

After a merge the incoming qubits sit at the end of the merged subsystem in
arrival order.  The helpers here permute local positions until residents
are ascending by global id.  Every exchange is a physical amplitude swap
through the engine followed by an index update, so the number of swaps is
the cost that matters.
"""

import logging
from typing import Callable

from .arena import SubsystemArena, SubsystemHandle
from .lookup import IndexTable

LOGGER = logging.getLogger(__name__)

Exchange = Callable[[int, int], None]
Key = Callable[[int], int]


def _quick_sort(key: Key, exchange: Exchange, low: int, high: int) -> None:
    if low >= high:
        return
    pivot = key((low + high) // 2)
    i, j = low, high
    while i <= j:
        while key(i) < pivot:
            i += 1
        while key(j) > pivot:
            j -= 1
        if i <= j:
            if i != j:
                exchange(i, j)
            i += 1
            j -= 1
    _quick_sort(key, exchange, low, j)
    _quick_sort(key, exchange, i, high)


def _cycle_sort(key: Key, exchange: Exchange, size: int) -> None:
    order = sorted(key(local) for local in range(size))
    rank = {qubit: index for index, qubit in enumerate(order)}
    for local in range(size):
        while rank[key(local)] != local:
            exchange(local, rank[key(local)])


def sort_subsystem(
    table: IndexTable,
    arena: SubsystemArena,
    handle: SubsystemHandle,
    strategy: str = "quicksort",
) -> int:
    """Sort the residents of ``handle`` by ascending global id.

    Parameters
    ----------
    table:
        Index table; the only record of current placement.
    arena:
        Arena owning the subsystem.  ``handle`` is resolved on every swap,
        so a stale handle fails instead of touching a reused slot.
    handle:
        Subsystem to reorder.
    strategy:
        ``"quicksort"`` (middle pivot, Hoare partition) or ``"cycles"``
        (cycle decomposition with the minimal number of swaps).

    Returns
    -------
    int
        Number of physical swaps performed.
    """

    swaps = 0

    def key(local: int) -> int:
        return table.resident_at(handle, local)

    def exchange(local1: int, local2: int) -> None:
        nonlocal swaps
        arena.get(handle).swap(local1, local2)
        table.swap_local(handle, local1, local2)
        swaps += 1

    size = table.size(handle)
    if strategy == "quicksort":
        _quick_sort(key, exchange, 0, size - 1)
    elif strategy == "cycles":
        _cycle_sort(key, exchange, size)
    else:
        raise ValueError(f"Unknown reorder strategy '{strategy}'")
    LOGGER.debug("Reordered %d-qubit subsystem %s with %d swaps", size, handle, swaps)
    return swaps
