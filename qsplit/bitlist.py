from __future__ import annotations

"""Compilation of global qubit ranges into per-subsystem local runs.

Entangled qubits live together in one subsystem, but the mapping of global
ids to local positions is in general arbitrary.  Register-wise operations
therefore first compile their target range into a list of
:class:`BitListEntry` runs.  Operations whose result depends on bit
significance use :func:`ordered_bit_list`; bitwise-independent operations
use :func:`parallel_bit_list`, which groups by subsystem and ignores the
relative order of the runs.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Sequence

from .arena import SubsystemHandle
from .lookup import IndexTable


@dataclass(frozen=True)
class BitListEntry:
    """Contiguous local run ``[start, start + length)`` of one subsystem."""

    handle: SubsystemHandle
    start: int
    length: int

    @property
    def end(self) -> int:
        return self.start + self.length


def ordered_bit_list(table: IndexTable, start: int, length: int) -> List[BitListEntry]:
    """Compile ``[start, start + length)`` preserving bit significance.

    Global ids are walked in increasing order; consecutive ids that land on
    consecutive ascending local positions of the same subsystem share one
    run.  Reading the runs in order and concatenating their bits therefore
    reproduces the register from least to most significant bit.
    """

    table.validate_range(start, length)
    entries: List[BitListEntry] = []
    first = table.locate(start)
    handle, run_start, run_length = first.handle, first.local, 1
    for qubit in range(start + 1, start + length):
        entry = table.locate(qubit)
        if entry.handle == handle and entry.local == run_start + run_length:
            run_length += 1
            continue
        entries.append(BitListEntry(handle, run_start, run_length))
        handle, run_start, run_length = entry.handle, entry.local, 1
    entries.append(BitListEntry(handle, run_start, run_length))
    return entries


def _runs(handle: SubsystemHandle, positions: Iterable[int]) -> List[BitListEntry]:
    """Return maximal contiguous runs covering the sorted ``positions``."""

    runs: List[BitListEntry] = []
    run_start = run_end = None
    for local in sorted(set(positions)):
        if run_end is not None and local == run_end:
            run_end += 1
            continue
        if run_start is not None:
            runs.append(BitListEntry(handle, run_start, run_end - run_start))
        run_start, run_end = local, local + 1
    if run_start is not None:
        runs.append(BitListEntry(handle, run_start, run_end - run_start))
    return runs


def parallel_bit_list(table: IndexTable, start: int, length: int) -> List[BitListEntry]:
    """Compile ``[start, start + length)`` for a bitwise-parallel operation.

    Runs are grouped by subsystem in order of first appearance; within a
    subsystem local positions are sorted and coalesced regardless of which
    global ids they belong to.
    """

    table.validate_range(start, length)
    grouped: Dict[SubsystemHandle, List[int]] = {}
    for qubit in range(start, start + length):
        entry = table.locate(qubit)
        grouped.setdefault(entry.handle, []).append(entry.local)
    entries: List[BitListEntry] = []
    for handle, positions in grouped.items():
        entries.extend(_runs(handle, positions))
    return entries


def optimize_parallel_bit_list(entries: Sequence[BitListEntry]) -> List[BitListEntry]:
    """Collapse a combined parallel list to minimal runs per subsystem.

    Overlapping or adjacent runs of the same subsystem are merged and runs
    already covered by another are dropped, so the result names every
    referenced local position exactly once.
    """

    grouped: Dict[SubsystemHandle, List[int]] = {}
    for entry in entries:
        grouped.setdefault(entry.handle, []).extend(range(entry.start, entry.end))
    optimized: List[BitListEntry] = []
    for handle, positions in grouped.items():
        optimized.extend(_runs(handle, positions))
    return optimized


def referenced_subsystems(entries: Iterable[BitListEntry]) -> List[SubsystemHandle]:
    """Return the distinct subsystems named by ``entries``, first seen first."""

    return list(dict.fromkeys(entry.handle for entry in entries))
