from __future__ import annotations

"""Partitioned quantum register.

:class:`SeparatedUnit` keeps qubits in independent dense subsystems until an
operation couples them.  Every public operation takes *global* qubit ids,
compiles them against the :class:`~qsplit.lookup.IndexTable`, merges the
affected subsystems through the :class:`~qsplit.entangler.Entangler` when
more than one is involved, and delegates the actual linear algebra to the
subsystem engine with local positions.
"""

import logging
from typing import Any, Dict, List, Sequence, Tuple

import numpy as np

from . import config as config_module
from . import gates
from .arena import SubsystemArena, SubsystemHandle
from .backends import Backend, DenseUnit
from .backends.statevector import as_amplitudes
from .bitlist import ordered_bit_list, parallel_bit_list
from .config import Config
from .entangler import Entangler
from .lookup import IndexTable

LOGGER = logging.getLogger(__name__)


def _overlaps(start1: int, length1: int, start2: int, length2: int) -> bool:
    return start1 < start2 + length2 and start2 < start1 + length1


class SeparatedUnit:
    """Register of qubits kept separated until explicitly entangled.

    Parameters
    ----------
    num_qubits:
        Number of qubits, at least one.  Ids ``0 .. num_qubits - 1`` are
        allocated; :meth:`cohere` appends further ids.
    init_state:
        Initial basis state read as an unsigned integer, qubit ``k`` taking
        bit ``k``.  Every qubit starts in its own one-qubit subsystem.
    config:
        Resource limits, reorder strategy and debugging switches.  Defaults
        to :data:`qsplit.config.DEFAULT`.
    rng:
        Random generator shared by every subsystem for measurement.  When
        omitted a generator seeded with ``config.seed`` is created.

    Notes
    -----
    Qubit ids are never renumbered.  :meth:`decohere` and :meth:`dispose`
    retire the ids they remove; using a retired id raises
    :class:`~qsplit.errors.InvalidQubitError`.  Whole-register amplitude
    access (:meth:`clone_raw_state`, :meth:`set_quantum_state`) orders bits by
    ascending live id.

    Splitting a range that is entangled with the rest of its subsystem is
    not detected: the result is a rank-one approximation without physical
    meaning, and a warning is logged.
    """

    def __init__(
        self,
        num_qubits: int,
        init_state: int = 0,
        *,
        config: Config | None = None,
        rng: np.random.Generator | None = None,
    ) -> None:
        if num_qubits < 1:
            raise ValueError("A register needs at least one qubit")
        if not 0 <= init_state < (1 << num_qubits):
            raise ValueError(f"Initial state {init_state} does not fit in {num_qubits} qubits")
        self._setup(num_qubits, config, rng)
        self._populate(range(num_qubits), init_state)

    def _setup(
        self,
        capacity: int,
        config: Config | None,
        rng: np.random.Generator | None,
    ) -> None:
        self.config = config or config_module.DEFAULT
        self.rng = rng if rng is not None else np.random.default_rng(self.config.seed)
        self._arena = SubsystemArena()
        self._table = IndexTable(capacity)
        self._entangler = Entangler(self._table, self._arena, self.config)

    def _populate(self, qubits: Sequence[int], value: int) -> None:
        for offset, qubit in enumerate(qubits):
            unit = DenseUnit(1, (value >> offset) & 1, rng=self.rng)
            self._table.attach(self._arena.allocate(unit), [qubit])

    def __repr__(self) -> str:  # pragma: no cover - trivial
        return (
            f"SeparatedUnit(num_qubits={self.num_qubits}, "
            f"subsystems={self.subsystem_sizes()})"
        )

    # Introspection ----------------------------------------------------
    @property
    def num_qubits(self) -> int:
        """Number of live qubits."""
        return len(self._table)

    @property
    def subsystem_count(self) -> int:
        return len(self._arena)

    def qubit_ids(self) -> List[int]:
        return self._table.live_ids()

    def subsystem_sizes(self) -> List[int]:
        return [self._arena.get(handle).num_qubits for handle in self._arena]

    def subsystem_of(self, qubit: int) -> Tuple[int, ...]:
        """Return the ids sharing ``qubit``'s subsystem, in local order."""
        return self._table.residents(self._table.locate(qubit).handle)

    def check_consistency(self) -> None:
        """Raise :class:`~qsplit.errors.PartitionInvariantError` if the index is corrupt."""
        self._table.check(self._arena)

    # Internal helpers -------------------------------------------------
    def _unit(self, handle: SubsystemHandle) -> Backend:
        return self._arena.get(handle)

    def _locate(self, qubit: int) -> Tuple[Backend, int]:
        lookup = self._table.locate(qubit)
        return self._arena.get(lookup.handle), lookup.local

    def _entangled(self, *qubits: int) -> Tuple[Backend, List[int]]:
        handle = self._entangler.entangle_indices(qubits)
        return self._arena.get(handle), [self._table.locate(q).local for q in qubits]

    def _entangled_ranges(
        self, ranges: Sequence[Tuple[int, int]], *, ordered: bool = True
    ) -> Tuple[Backend, List[int]]:
        handle = self._entangler.entangle_ranges(ranges, ordered=ordered)
        return self._arena.get(handle), [self._table.locate(start).local for start, _ in ranges]

    def _after_split(self) -> None:
        if self.config.check_invariants:
            self._table.check(self._arena)

    # Whole-register state ---------------------------------------------
    def clone(self) -> "SeparatedUnit":
        """Return a register with exactly the same state and partition.

        .. warning::
            PSEUDO-QUANTUM.  Copying an unknown state is impossible on
            hardware; use this for debugging and tests only.  The clone draws
            measurement outcomes from a generator spawned off this one, so
            the parent's own outcomes are unaffected.
        """

        copy = SeparatedUnit.__new__(SeparatedUnit)
        copy._setup(
            self._table.capacity,
            self.config,
            self.rng.spawn(1)[0],
        )
        for handle in self._arena:
            unit = self._arena.get(handle).clone(rng=copy.rng)
            copy._table.attach(copy._arena.allocate(unit), self._table.residents(handle))
        return copy

    def clone_raw_state(self) -> np.ndarray:
        """Return the full statevector, bit ``k`` being the ``k``-th live id.

        .. warning::
            PSEUDO-QUANTUM.  Materialises the tensor product of every
            subsystem; the register is not modified.
        """

        order = self._table.live_ids()
        self._entangler.check_width(len(order))
        tensor = np.ones((), dtype=complex)
        axes: List[int] = []
        for handle in self._arena:
            residents = self._table.residents(handle)
            state = self._arena.get(handle).statevector().reshape([2] * len(residents))
            tensor = np.multiply.outer(tensor, state)
            # C-order reshape puts the most significant local bit first
            axes.extend(reversed(residents))
        permutation = [axes.index(qubit) for qubit in reversed(order)]
        return tensor.transpose(permutation).reshape(-1)

    def set_quantum_state(self, state: Any) -> None:
        """Replace the whole register by ``state`` held in one subsystem.

        ``state`` may be a sequence, an array or a
        :class:`qiskit.quantum_info.Statevector` with ``2**num_qubits``
        amplitudes of unit norm.
        """

        data = as_amplitudes(state)
        order = self._table.live_ids()
        if data.size != 1 << len(order):
            raise ValueError(
                f"State of {data.size} amplitudes does not match {len(order)} qubits"
            )
        norm = float(np.linalg.norm(data))
        if abs(norm - 1.0) > self.config.normalization_tolerance:
            raise ValueError(f"State is not normalised (norm {norm:.6g})")
        self._entangler.check_width(len(order))
        self._arena.clear()
        self._table.reset()
        unit = DenseUnit.from_amplitudes(data, rng=self.rng)
        self._table.attach(self._arena.allocate(unit), order)

    def set_permutation(self, value: int) -> None:
        """Reset the register to basis state ``value`` with every qubit separated."""

        order = self._table.live_ids()
        if not 0 <= value < (1 << len(order)):
            raise ValueError(f"Permutation {value} does not fit in {len(order)} qubits")
        self._arena.clear()
        self._table.reset()
        self._populate(order, value)

    # Composition ------------------------------------------------------
    def cohere(self, other: "SeparatedUnit" | Backend) -> int:
        """Append a copy of ``other`` to the register and return its first id.

        A :class:`SeparatedUnit` brings its partition along, one subsystem
        per source subsystem; an engine becomes one subsystem.  Nothing is
        merged or reordered until an operation requires it.
        """

        if isinstance(other, SeparatedUnit):
            source_ids = other._table.live_ids()
            start = self._table.extend(len(source_ids))
            renumber: Dict[int, int] = {
                qubit: start + offset for offset, qubit in enumerate(source_ids)
            }
            for handle in other._arena:
                unit = other._arena.get(handle).clone(rng=self.rng)
                residents = [renumber[qubit] for qubit in other._table.residents(handle)]
                self._table.attach(self._arena.allocate(unit), residents)
        elif isinstance(other, Backend):
            unit = other.clone(rng=self.rng)
            start = self._table.extend(unit.num_qubits)
            self._table.attach(
                self._arena.allocate(unit), range(start, start + unit.num_qubits)
            )
        else:
            raise TypeError(f"Cannot cohere with {type(other).__name__}")
        LOGGER.debug("Cohered %d qubits at id %d", self._table.capacity - start, start)
        return start

    def _split(
        self, start: int, length: int
    ) -> Tuple[SubsystemHandle, int, Backend | None, Backend]:
        """Compute the split of ``[start, start + length)`` without committing it.

        The range is brought into one locally sorted subsystem, which keeps
        the register's state; the tables still describe it as a whole.
        """

        handle = self._entangler.entangle_ranges([(start, length)])
        unit = self._arena.get(handle)
        local = self._table.locate(start).local
        if length == unit.num_qubits:
            return handle, local, None, unit
        remaining, extracted = unit.decohere(local, length)
        return handle, local, remaining, extracted

    def _commit_split(
        self,
        start: int,
        length: int,
        handle: SubsystemHandle,
        local: int,
        remaining: Backend | None,
    ) -> None:
        residents = list(self._table.release(handle))
        self._arena.free(handle)
        if remaining is not None:
            kept = residents[:local] + residents[local + length :]
            self._table.attach(self._arena.allocate(remaining), kept)
        for qubit in residents[local : local + length]:
            self._table.retire(qubit)
        LOGGER.debug(
            "Split ids [%d, %d) out of a %d-qubit subsystem",
            start,
            start + length,
            len(residents),
        )
        self._after_split()

    def decohere(
        self, start: int, length: int, destination: "SeparatedUnit" | Backend
    ) -> None:
        """Move ids ``[start, start + length)`` into ``destination``.

        ``destination`` must hold exactly ``length`` qubits; its state is
        overwritten.  The range must be separable from the rest of the
        register; this is not checked.

        The ids are retired only once ``destination`` has accepted the
        state.  If it rejects it, both registers keep their state.
        """

        if destination is self:
            raise ValueError("Cannot decohere a register into itself")
        if destination.num_qubits != length:
            raise ValueError(
                f"Destination holds {destination.num_qubits} qubits, expected {length}"
            )
        self._table.validate_range(start, length)
        if isinstance(destination, SeparatedUnit):
            destination._entangler.check_width(length)
        handle, local, remaining, extracted = self._split(start, length)
        destination.set_quantum_state(extracted.statevector())
        self._commit_split(start, length, handle, local, remaining)

    def dispose(self, start: int, length: int) -> None:
        """Discard ids ``[start, start + length)``, assuming they are separable."""

        handle, local, remaining, _ = self._split(start, length)
        self._commit_split(start, length, handle, local, remaining)

    # Measurement ------------------------------------------------------
    def prob(self, qubit: int) -> float:
        """Probability that ``qubit`` measures ``1``."""
        unit, local = self._locate(qubit)
        return unit.prob(local)

    def prob_reg(self, start: int, length: int, value: int) -> float:
        """Probability that the register ``[start, start + length)`` reads ``value``."""

        if not 0 <= value < (1 << length):
            raise ValueError(f"Value {value} does not fit in {length} qubits")
        masks: Dict[SubsystemHandle, List[int]] = {}
        offset = 0
        for entry in ordered_bit_list(self._table, start, length):
            bits = (value >> offset) & ((1 << entry.length) - 1)
            run_mask = ((1 << entry.length) - 1) << entry.start
            masked = masks.setdefault(entry.handle, [0, 0])
            masked[0] |= run_mask
            masked[1] |= bits << entry.start
            offset += entry.length
        probability = 1.0
        for handle, (mask, expected) in masks.items():
            probability *= self._arena.get(handle).prob_mask(mask, expected)
        return probability

    def m(self, qubit: int) -> bool:
        """Measure ``qubit``, collapsing its subsystem."""
        unit, local = self._locate(qubit)
        return unit.m(local)

    def m_reg(self, start: int, length: int) -> int:
        """Measure ``[start, start + length)`` as an unsigned integer."""

        result = 0
        offset = 0
        for entry in ordered_bit_list(self._table, start, length):
            result |= self._unit(entry.handle).m_reg(entry.start, entry.length) << offset
            offset += entry.length
        return result

    # Assignment -------------------------------------------------------
    def set_bit(self, qubit: int, value: bool) -> None:
        unit, local = self._locate(qubit)
        unit.set_bit(local, value)

    def set_reg(self, start: int, length: int, value: int) -> None:
        """Measure ``[start, start + length)`` and force it to ``value``."""

        if not 0 <= value < (1 << length):
            raise ValueError(f"Value {value} does not fit in {length} qubits")
        offset = 0
        for entry in ordered_bit_list(self._table, start, length):
            bits = (value >> offset) & ((1 << entry.length) - 1)
            self._unit(entry.handle).set_reg(entry.start, entry.length, bits)
            offset += entry.length

    # 8-bit table lookups ---------------------------------------------
    def _reg8_ranges(self, input_start: int, output_start: int, *carry: int):
        ranges = [(input_start, 8), (output_start, 8)] + [(bit, 1) for bit in carry]
        for index, (start, length) in enumerate(ranges):
            for other_start, other_length in ranges[index + 1 :]:
                if _overlaps(start, length, other_start, other_length):
                    raise ValueError("Input, output and carry registers must not overlap")
        return ranges

    def superpose_reg8(self, input_start: int, output_start: int, values: Any) -> int:
        """Load ``values[input]`` into the 8-bit output register in superposition.

        The output register is reset to zero first.  Returns the rounded
        expectation value of the output register.
        """

        gates.lookup_table(values)
        ranges = self._reg8_ranges(input_start, output_start)
        unit, (local_in, local_out) = self._entangled_ranges(ranges)
        return unit.superpose_reg8(local_in, local_out, values)

    def adc_superpose_reg8(
        self, input_start: int, output_start: int, carry: int, values: Any
    ) -> int:
        """Add ``values[input]`` with carry to the 8-bit output register."""

        gates.lookup_table(values)
        ranges = self._reg8_ranges(input_start, output_start, carry)
        unit, (local_in, local_out, local_carry) = self._entangled_ranges(ranges)
        return unit.adc_superpose_reg8(local_in, local_out, local_carry, values)

    def sbc_superpose_reg8(
        self, input_start: int, output_start: int, carry: int, values: Any
    ) -> int:
        """Subtract ``values[input]`` with borrow from the 8-bit output register."""

        gates.lookup_table(values)
        ranges = self._reg8_ranges(input_start, output_start, carry)
        unit, (local_in, local_out, local_carry) = self._entangled_ranges(ranges)
        return unit.sbc_superpose_reg8(local_in, local_out, local_carry, values)

    # Swaps ------------------------------------------------------------
    def swap(self, qubit1: int, qubit2: int, length: int = 1) -> None:
        """Swap ``length`` qubits starting at ``qubit1`` with those at ``qubit2``.

        Swapping is a relabelling of the index; no subsystem is merged and no
        amplitude moves.
        """

        self._table.validate_range(qubit1, length)
        self._table.validate_range(qubit2, length)
        if qubit1 == qubit2:
            return
        if _overlaps(qubit1, length, qubit2, length):
            raise ValueError("Swapped registers must not overlap")
        for offset in range(length):
            self._table.swap_ids(qubit1 + offset, qubit2 + offset)

    # Boolean logic ----------------------------------------------------
    def _check_output(
        self,
        output: int,
        length: int,
        inputs: Sequence[int],
        *,
        in_place: bool = False,
    ) -> None:
        for start in inputs:
            if in_place and start == output:
                continue
            if _overlaps(start, length, output, length):
                raise ValueError("Output register must not overlap an input register")

    def _logic(
        self,
        operation: str,
        inputs: Sequence[int],
        output: int,
        length: int,
        *args: Any,
    ) -> None:
        if length == 1:
            qubits = list(dict.fromkeys([*inputs, output]))
            unit, _ = self._entangled(*qubits)
            locals_ = [self._table.locate(qubit).local for qubit in (*inputs, output)]
        else:
            ranges = [(start, length) for start in dict.fromkeys([*inputs, output])]
            unit, _ = self._entangled_ranges(ranges, ordered=False)
            locals_ = [self._table.locate(start).local for start in (*inputs, output)]
        getattr(unit, operation)(*locals_[:-1], *args, locals_[-1], length)

    def and_(self, input1: int, input2: int, output: int, length: int = 1) -> None:
        self._check_output(output, length, (input1, input2))
        self._logic("and_", (input1, input2), output, length)

    def or_(self, input1: int, input2: int, output: int, length: int = 1) -> None:
        self._check_output(output, length, (input1, input2))
        self._logic("or_", (input1, input2), output, length)

    def xor(self, input1: int, input2: int, output: int, length: int = 1) -> None:
        self._check_output(output, length, (input1, input2), in_place=True)
        self._logic("xor", (input1, input2), output, length)

    def cland(self, qinput: int, cinput: bool, output: int, length: int = 1) -> None:
        self._check_output(output, length, (qinput,))
        self._logic("cland", (qinput,), output, length, bool(cinput))

    def clor(self, qinput: int, cinput: bool, output: int, length: int = 1) -> None:
        self._check_output(output, length, (qinput,))
        self._logic("clor", (qinput,), output, length, bool(cinput))

    def clxor(self, qinput: int, cinput: bool, output: int, length: int = 1) -> None:
        self._check_output(output, length, (qinput,), in_place=True)
        self._logic("clxor", (qinput,), output, length, bool(cinput))

    # Multi-qubit gates ------------------------------------------------
    def ccnot(self, control1: int, control2: int, target: int) -> None:
        """Doubly controlled NOT."""
        unit, locals_ = self._entangled(control1, control2, target)
        unit.ccnot(*locals_)

    def anti_ccnot(self, control1: int, control2: int, target: int) -> None:
        """Flip ``target`` when both controls are ``|0>``."""
        unit, locals_ = self._entangled(control1, control2, target)
        unit.anti_ccnot(*locals_)

    def cnot(self, control: int, target: int) -> None:
        unit, locals_ = self._entangled(control, target)
        unit.cnot(*locals_)

    def anti_cnot(self, control: int, target: int) -> None:
        unit, locals_ = self._entangled(control, target)
        unit.anti_cnot(*locals_)

    def cy(self, control: int, target: int) -> None:
        unit, locals_ = self._entangled(control, target)
        unit.cy(*locals_)

    def cz(self, control: int, target: int) -> None:
        unit, locals_ = self._entangled(control, target)
        unit.cz(*locals_)

    def crt(self, radians: float, control: int, target: int) -> None:
        unit, locals_ = self._entangled(control, target)
        unit.crt(radians, *locals_)

    def crt_dyad(self, numerator: int, denominator: int, control: int, target: int) -> None:
        self.crt(gates.dyad_angle(numerator, denominator), control, target)

    def crx(self, radians: float, control: int, target: int) -> None:
        unit, locals_ = self._entangled(control, target)
        unit.crx(radians, *locals_)

    def crx_dyad(self, numerator: int, denominator: int, control: int, target: int) -> None:
        self.crx(gates.dyad_angle(numerator, denominator), control, target)

    def cry(self, radians: float, control: int, target: int) -> None:
        unit, locals_ = self._entangled(control, target)
        unit.cry(radians, *locals_)

    def cry_dyad(self, numerator: int, denominator: int, control: int, target: int) -> None:
        self.cry(gates.dyad_angle(numerator, denominator), control, target)

    def crz(self, radians: float, control: int, target: int) -> None:
        unit, locals_ = self._entangled(control, target)
        unit.crz(radians, *locals_)

    def crz_dyad(self, numerator: int, denominator: int, control: int, target: int) -> None:
        self.crz(gates.dyad_angle(numerator, denominator), control, target)

    # Single-qubit gates -----------------------------------------------
    def h(self, qubit: int) -> None:
        unit, local = self._locate(qubit)
        unit.h(local)

    def x(self, qubit: int, length: int = 1) -> None:
        """Pauli X on ``qubit`` or on every id of ``[qubit, qubit + length)``.

        Bitwise-parallel: each subsystem receives one register-wide call per
        run and nothing is merged.
        """

        for entry in parallel_bit_list(self._table, qubit, length):
            self._unit(entry.handle).x_range(entry.start, entry.length)

    def y(self, qubit: int) -> None:
        unit, local = self._locate(qubit)
        unit.y(local)

    def z(self, qubit: int) -> None:
        unit, local = self._locate(qubit)
        unit.z(local)

    def rt(self, radians: float, qubit: int) -> None:
        unit, local = self._locate(qubit)
        unit.rt(radians, local)

    def rt_dyad(self, numerator: int, denominator: int, qubit: int) -> None:
        self.rt(gates.dyad_angle(numerator, denominator), qubit)

    def rx(self, radians: float, qubit: int) -> None:
        unit, local = self._locate(qubit)
        unit.rx(radians, local)

    def rx_dyad(self, numerator: int, denominator: int, qubit: int) -> None:
        self.rx(gates.dyad_angle(numerator, denominator), qubit)

    def ry(self, radians: float, qubit: int) -> None:
        unit, local = self._locate(qubit)
        unit.ry(radians, local)

    def ry_dyad(self, numerator: int, denominator: int, qubit: int) -> None:
        self.ry(gates.dyad_angle(numerator, denominator), qubit)

    def rz(self, radians: float, qubit: int) -> None:
        unit, local = self._locate(qubit)
        unit.rz(radians, local)

    def rz_dyad(self, numerator: int, denominator: int, qubit: int) -> None:
        self.rz(gates.dyad_angle(numerator, denominator), qubit)
