from __future__ import annotations

"""Dense statevector subsystem engine built on numpy."""

from dataclasses import dataclass, field
import logging
import math
from typing import Any, Sequence, Tuple

import numpy as np
from qiskit.quantum_info import Statevector

from .. import gates
from .base import Backend

LOGGER = logging.getLogger(__name__)

SEPARABILITY_TOLERANCE = 1e-9
"""Residual weight above which a split is reported as non-separable."""

_BYTE_MASK = 0xFF


def as_amplitudes(state: Sequence[complex] | np.ndarray | Statevector) -> np.ndarray:
    """Return a fresh ``complex128`` copy of ``state``.

    Raises
    ------
    TypeError
        If the length of ``state`` is not a power of two.
    """

    if isinstance(state, Statevector):
        data = np.array(state.data, dtype=complex)
    else:
        data = np.array(state, dtype=complex).reshape(-1)
    if data.size == 0 or data.size & (data.size - 1):
        raise TypeError("Statevector length is not a power of two")
    return data


@dataclass(eq=False)
class DenseUnit(Backend):
    """Subsystem engine storing ``2**num_qubits`` amplitudes in one array.

    Amplitudes are little endian: local position ``k`` is bit ``k`` of the
    basis index, which matches :class:`qiskit.quantum_info.Statevector`.

    Parameters
    ----------
    num_qubits:
        Number of local qubits, at least one.
    init_state:
        Basis state the engine starts in.
    rng:
        Random generator used for measurement.
    """

    num_qubits: int
    init_state: int = 0
    rng: np.random.Generator = field(default_factory=np.random.default_rng, repr=False)
    amplitudes: np.ndarray = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if self.num_qubits < 1:
            raise ValueError("A subsystem needs at least one qubit")
        if not 0 <= self.init_state < (1 << self.num_qubits):
            raise ValueError(
                f"Initial state {self.init_state} does not fit in {self.num_qubits} qubits"
            )
        self.amplitudes = np.zeros(1 << self.num_qubits, dtype=complex)
        self.amplitudes[self.init_state] = 1.0

    @classmethod
    def from_amplitudes(
        cls,
        state: Sequence[complex] | np.ndarray | Statevector,
        *,
        rng: np.random.Generator | None = None,
    ) -> "DenseUnit":
        """Create an engine holding a copy of ``state``."""

        data = as_amplitudes(state)
        unit = cls(data.size.bit_length() - 1, rng=rng or np.random.default_rng())
        unit.amplitudes = data
        return unit

    # ------------------------------------------------------------------
    @property
    def dim(self) -> int:
        return 1 << self.num_qubits

    def _basis(self) -> np.ndarray:
        return np.arange(self.dim, dtype=np.int64)

    def _check_qubits(self, *qubits: int) -> None:
        for qubit in qubits:
            if not 0 <= qubit < self.num_qubits:
                raise IndexError(
                    f"Local position {qubit} outside subsystem of {self.num_qubits} qubits"
                )

    def _check_range(self, start: int, length: int) -> None:
        if length < 1 or start < 0 or start + length > self.num_qubits:
            raise IndexError(
                f"Local range [{start}, {start + length}) outside subsystem of "
                f"{self.num_qubits} qubits"
            )

    def _register(self, start: int, length: int) -> np.ndarray:
        return (self._basis() >> start) & ((1 << length) - 1)

    def _collapse(self, keep: np.ndarray, probability: float) -> None:
        self.amplitudes[~keep] = 0.0
        if probability > 0.0:
            self.amplitudes /= math.sqrt(probability)

    def _permute(self, target: np.ndarray, keep: np.ndarray) -> None:
        """Move amplitude ``i`` to ``target[i]`` for every kept ``i``."""

        permuted = np.zeros_like(self.amplitudes)
        permuted[target[keep]] = self.amplitudes[keep]
        self.amplitudes = permuted

    # Composition ------------------------------------------------------
    def cohere(self, other: Backend) -> "DenseUnit":
        merged = np.kron(np.asarray(other.statevector(), dtype=complex), self.amplitudes)
        return DenseUnit.from_amplitudes(merged, rng=self.rng)

    def decohere(self, start: int, length: int) -> Tuple["DenseUnit" | None, "DenseUnit"]:
        self._check_range(start, length)
        if length == self.num_qubits:
            return None, self.clone()
        n = self.num_qubits
        high = n - start - length
        # rows index the remaining qubits (high bits above low bits), columns
        # index the extracted range
        matrix = (
            self.amplitudes.reshape(1 << high, 1 << length, 1 << start)
            .transpose(0, 2, 1)
            .reshape(1 << (n - length), 1 << length)
        )
        left, singular, right = np.linalg.svd(matrix, full_matrices=False)
        weight = float(np.sum(singular**2))
        residual = 1.0 - float(singular[0] ** 2) / weight if weight > 0.0 else 0.0
        if residual > SEPARABILITY_TOLERANCE:
            LOGGER.warning(
                "Splitting local range [%d, %d) of a %d-qubit subsystem discards "
                "%.3g of the state weight; the range is not separable",
                start,
                start + length,
                n,
                residual,
            )
        remaining = left[:, 0] * singular[0]
        norm = np.linalg.norm(remaining)
        if norm > 0.0:
            remaining = remaining / norm
        return (
            DenseUnit.from_amplitudes(remaining, rng=self.rng),
            DenseUnit.from_amplitudes(right[0], rng=self.rng),
        )

    def swap(self, qubit1: int, qubit2: int) -> None:
        self._check_qubits(qubit1, qubit2)
        if qubit1 == qubit2:
            return
        basis = self._basis()
        differ = ((basis >> qubit1) ^ (basis >> qubit2)) & 1
        source = basis ^ (differ * ((1 << qubit1) | (1 << qubit2)))
        self.amplitudes = self.amplitudes[source]

    # Gates ------------------------------------------------------------
    def apply_matrix(
        self,
        matrix: np.ndarray,
        target: int,
        controls: Sequence[int] = (),
        *,
        anti: bool = False,
    ) -> None:
        self._check_qubits(target, *controls)
        if target in controls or len(set(controls)) != len(controls):
            raise ValueError("Gate qubits must be distinct")
        basis = self._basis()
        selected = ((basis >> target) & 1) == 0
        wanted = 0 if anti else 1
        for control in controls:
            selected &= ((basis >> control) & 1) == wanted
        low = basis[selected]
        high = low | (1 << target)
        a = self.amplitudes[low]
        b = self.amplitudes[high]
        self.amplitudes[low] = matrix[0, 0] * a + matrix[0, 1] * b
        self.amplitudes[high] = matrix[1, 0] * a + matrix[1, 1] * b

    def x_range(self, start: int, length: int) -> None:
        self._check_range(start, length)
        mask = ((1 << length) - 1) << start
        self.amplitudes = self.amplitudes[self._basis() ^ mask]

    # Measurement ------------------------------------------------------
    def prob(self, qubit: int) -> float:
        self._check_qubits(qubit)
        ones = ((self._basis() >> qubit) & 1) == 1
        return float(np.sum(np.abs(self.amplitudes[ones]) ** 2))

    def prob_reg(self, start: int, length: int, value: int) -> float:
        self._check_range(start, length)
        return super().prob_reg(start, length, value)

    def prob_mask(self, mask: int, value: int) -> float:
        hits = (self._basis() & mask) == value
        return float(np.sum(np.abs(self.amplitudes[hits]) ** 2))

    def m(self, qubit: int) -> bool:
        one_probability = min(1.0, max(0.0, self.prob(qubit)))
        result = bool(self.rng.random() < one_probability)
        keep = ((self._basis() >> qubit) & 1) == int(result)
        self._collapse(keep, one_probability if result else 1.0 - one_probability)
        return result

    def m_reg(self, start: int, length: int) -> int:
        self._check_range(start, length)
        register = self._register(start, length)
        weights = np.bincount(
            register, weights=np.abs(self.amplitudes) ** 2, minlength=1 << length
        )
        total = float(weights.sum())
        result = int(self.rng.choice(weights.size, p=weights / total))
        self._collapse(register == result, float(weights[result]))
        return result

    def set_reg(self, start: int, length: int, value: int) -> None:
        current = self.m_reg(start, length)
        diff = (current ^ value) & ((1 << length) - 1)
        if diff:
            self.amplitudes = self.amplitudes[self._basis() ^ (diff << start)]

    # Amplitude access -------------------------------------------------
    def statevector(self) -> np.ndarray:
        return self.amplitudes.copy()

    def set_quantum_state(self, state: Any) -> None:
        data = as_amplitudes(state)
        if data.size != self.dim:
            raise ValueError(
                f"State of {data.size} amplitudes does not match {self.num_qubits} qubits"
            )
        self.amplitudes = data

    def set_permutation(self, value: int) -> None:
        if not 0 <= value < self.dim:
            raise ValueError(f"Permutation {value} does not fit in {self.num_qubits} qubits")
        self.amplitudes = np.zeros(self.dim, dtype=complex)
        self.amplitudes[value] = 1.0

    def clone(self, rng: np.random.Generator | None = None) -> "DenseUnit":
        return DenseUnit.from_amplitudes(self.amplitudes, rng=rng or self.rng)

    # 8-bit table lookups ---------------------------------------------
    def _check_reg8(self, input_start: int, output_start: int, *extra: int) -> None:
        self._check_range(input_start, 8)
        self._check_range(output_start, 8)
        self._check_qubits(*extra)
        touched = list(range(input_start, input_start + 8))
        touched += range(output_start, output_start + 8)
        touched += extra
        if len(set(touched)) != len(touched):
            raise ValueError("Input, output and carry registers must not overlap")

    def _expected_output(self, output_start: int) -> int:
        register = self._register(output_start, 8)
        average = float(np.sum(np.abs(self.amplitudes) ** 2 * register))
        return int(average + 0.5)

    def superpose_reg8(self, input_start: int, output_start: int, values: Any) -> int:
        """Load ``values[input]`` into the output register for every input branch.

        The output register is reset to ``0`` first.  Returns the rounded
        expectation value of the output register.
        """

        table = gates.lookup_table(values)
        self._check_reg8(input_start, output_start)
        self.set_reg(output_start, 8, 0)
        basis = self._basis()
        loaded = table[(basis >> input_start) & _BYTE_MASK]
        keep = ((basis >> output_start) & _BYTE_MASK) == 0
        self._permute(basis | (loaded << output_start), keep)
        return self._expected_output(output_start)

    def _carry_lookup(
        self,
        input_start: int,
        output_start: int,
        carry: int,
        values: Any,
        *,
        subtract: bool,
    ) -> int:
        table = gates.lookup_table(values)
        self._check_reg8(input_start, output_start, carry)
        carry_in = self.m(carry)
        if carry_in:
            self.x(carry)
        basis = self._basis()
        operand = table[(basis >> input_start) & _BYTE_MASK]
        accumulator = (basis >> output_start) & _BYTE_MASK
        if subtract:
            total = accumulator - operand - (0 if carry_in else 1)
            carry_out = total >= 0
        else:
            total = accumulator + operand + int(carry_in)
            carry_out = total > _BYTE_MASK
        result = total & _BYTE_MASK
        target = (
            (basis & ~(_BYTE_MASK << output_start))
            | (result << output_start)
            | (carry_out.astype(np.int64) << carry)
        )
        keep = ((basis >> carry) & 1) == 0
        self._permute(target, keep)
        return self._expected_output(output_start)

    def adc_superpose_reg8(
        self, input_start: int, output_start: int, carry: int, values: Any
    ) -> int:
        """Add ``values[input]`` plus carry-in to the output register.

        The carry qubit is measured as carry-in and replaced by the carry-out
        (set on overflow past ``255``).
        """

        return self._carry_lookup(input_start, output_start, carry, values, subtract=False)

    def sbc_superpose_reg8(
        self, input_start: int, output_start: int, carry: int, values: Any
    ) -> int:
        """Subtract ``values[input]`` from the output register with borrow.

        A clear carry-in borrows one extra; the carry-out is set when no
        borrow occurred.
        """

        return self._carry_lookup(input_start, output_start, carry, values, subtract=True)
