from __future__ import annotations

"""Common interface for subsystem engines."""

from typing import Any, Sequence, Tuple

import numpy as np

from .. import gates


class Backend:
    """Abstract subsystem engine.

    An engine owns the joint amplitudes of ``num_qubits`` locally numbered
    qubits.  All positions passed to an engine are *local* positions; the
    partition layer translates global qubit ids before calling in.

    Concrete engines need to implement the primitives:

    ``cohere`` / ``decohere``
        Tensor-product merge with another engine and the inverse split of
        a contiguous local range.
    ``swap``
        Exchange two local positions in the amplitude layout.
    ``apply_matrix``
        Apply a (multiply) controlled single-qubit matrix.
    ``prob`` / ``prob_reg`` / ``m`` / ``m_reg``
        Probability queries and collapsing measurement.
    ``statevector`` / ``set_quantum_state`` / ``set_permutation``
        Direct amplitude access.
    ``clone``
        Exact-state duplicate.

    The gate library below is expressed in terms of those primitives;
    engines may override any gate with a faster kernel.
    """

    #: Number of qubits held by the engine.
    num_qubits: int = 0

    # ------------------------------------------------------------------
    def cohere(self, other: "Backend") -> "Backend":
        """Return a new engine holding ``self`` followed by ``other``.

        ``other``'s qubits occupy local positions ``num_qubits`` and up, in
        their existing relative order.  Neither input is modified.
        """
        raise NotImplementedError

    def decohere(self, start: int, length: int) -> Tuple["Backend" | None, "Backend"]:
        """Split ``[start, start + length)`` into an independent engine.

        Returns ``(remaining, extracted)``; ``remaining`` is ``None`` when
        the range covers the whole engine.  The range is assumed to be
        separable from the rest; otherwise the result is a best rank-one
        approximation without physical meaning.
        """
        raise NotImplementedError

    def dispose(self, start: int, length: int) -> "Backend" | None:
        """Discard ``[start, start + length)`` and return the remainder."""
        remaining, _ = self.decohere(start, length)
        return remaining

    def swap(self, qubit1: int, qubit2: int) -> None:
        raise NotImplementedError

    def apply_matrix(
        self,
        matrix: np.ndarray,
        target: int,
        controls: Sequence[int] = (),
        *,
        anti: bool = False,
    ) -> None:
        """Apply ``matrix`` to ``target``.

        Parameters
        ----------
        matrix:
            ``2x2`` unitary.
        target:
            Local target position.
        controls:
            Local control positions.  The matrix acts on the subspace where
            every control is ``|1>`` (``|0>`` when ``anti`` is set).
        """
        raise NotImplementedError

    def prob(self, qubit: int) -> float:
        raise NotImplementedError

    def prob_reg(self, start: int, length: int, value: int) -> float:
        mask = ((1 << length) - 1) << start
        return self.prob_mask(mask, (value << start) & mask)

    def prob_mask(self, mask: int, value: int) -> float:
        """Return the probability that the basis index masked by ``mask`` equals ``value``."""
        raise NotImplementedError

    def m(self, qubit: int) -> bool:
        raise NotImplementedError

    def m_reg(self, start: int, length: int) -> int:
        raise NotImplementedError

    def statevector(self) -> np.ndarray:
        raise NotImplementedError

    def set_quantum_state(self, state: Any) -> None:
        raise NotImplementedError

    def set_permutation(self, value: int) -> None:
        raise NotImplementedError

    def clone(self, rng: np.random.Generator | None = None) -> "Backend":
        raise NotImplementedError

    # ------------------------------------------------------------------
    def x(self, qubit: int) -> None:
        self.apply_matrix(gates.PAULI_X, qubit)

    def y(self, qubit: int) -> None:
        self.apply_matrix(gates.PAULI_Y, qubit)

    def z(self, qubit: int) -> None:
        self.apply_matrix(gates.PAULI_Z, qubit)

    def h(self, qubit: int) -> None:
        self.apply_matrix(gates.HADAMARD, qubit)

    def x_range(self, start: int, length: int) -> None:
        for qubit in range(start, start + length):
            self.x(qubit)

    def rt(self, radians: float, qubit: int) -> None:
        self.apply_matrix(gates.rt_matrix(radians), qubit)

    def rx(self, radians: float, qubit: int) -> None:
        self.apply_matrix(gates.rx_matrix(radians), qubit)

    def ry(self, radians: float, qubit: int) -> None:
        self.apply_matrix(gates.ry_matrix(radians), qubit)

    def rz(self, radians: float, qubit: int) -> None:
        self.apply_matrix(gates.rz_matrix(radians), qubit)

    def cnot(self, control: int, target: int) -> None:
        self.apply_matrix(gates.PAULI_X, target, (control,))

    def anti_cnot(self, control: int, target: int) -> None:
        self.apply_matrix(gates.PAULI_X, target, (control,), anti=True)

    def cy(self, control: int, target: int) -> None:
        self.apply_matrix(gates.PAULI_Y, target, (control,))

    def cz(self, control: int, target: int) -> None:
        self.apply_matrix(gates.PAULI_Z, target, (control,))

    def ccnot(self, control1: int, control2: int, target: int) -> None:
        self.apply_matrix(gates.PAULI_X, target, (control1, control2))

    def anti_ccnot(self, control1: int, control2: int, target: int) -> None:
        self.apply_matrix(gates.PAULI_X, target, (control1, control2), anti=True)

    def crt(self, radians: float, control: int, target: int) -> None:
        self.apply_matrix(gates.rt_matrix(radians), target, (control,))

    def crx(self, radians: float, control: int, target: int) -> None:
        self.apply_matrix(gates.rx_matrix(radians), target, (control,))

    def cry(self, radians: float, control: int, target: int) -> None:
        self.apply_matrix(gates.ry_matrix(radians), target, (control,))

    def crz(self, radians: float, control: int, target: int) -> None:
        self.apply_matrix(gates.rz_matrix(radians), target, (control,))

    # ------------------------------------------------------------------
    def set_bit(self, qubit: int, value: bool) -> None:
        """Measure ``qubit`` and flip it if the outcome differs from ``value``."""
        if self.m(qubit) != bool(value):
            self.x(qubit)

    def set_reg(self, start: int, length: int, value: int) -> None:
        """Measure the register and flip every bit that differs from ``value``."""
        current = self.m_reg(start, length)
        diff = current ^ value
        for offset in range(length):
            if (diff >> offset) & 1:
                self.x(start + offset)

    # Boolean logic -----------------------------------------------------
    def and_(self, input1: int, input2: int, output: int, length: int = 1) -> None:
        for offset in range(length):
            a, b, out = input1 + offset, input2 + offset, output + offset
            if out in (a, b):
                raise ValueError("AND output may not alias an input bit")
            self.set_bit(out, False)
            if a == b:
                self.cnot(a, out)
            else:
                self.ccnot(a, b, out)

    def or_(self, input1: int, input2: int, output: int, length: int = 1) -> None:
        for offset in range(length):
            a, b, out = input1 + offset, input2 + offset, output + offset
            if out in (a, b):
                raise ValueError("OR output may not alias an input bit")
            self.set_bit(out, True)
            if a == b:
                self.anti_cnot(a, out)
            else:
                self.anti_ccnot(a, b, out)

    def xor(self, input1: int, input2: int, output: int, length: int = 1) -> None:
        for offset in range(length):
            a, b, out = input1 + offset, input2 + offset, output + offset
            if a == b:
                self.set_bit(out, False)
            elif out == a:
                self.cnot(b, out)
            elif out == b:
                self.cnot(a, out)
            else:
                self.set_bit(out, False)
                self.cnot(a, out)
                self.cnot(b, out)

    def cland(self, qinput: int, cinput: bool, output: int, length: int = 1) -> None:
        for offset in range(length):
            q, out = qinput + offset, output + offset
            if q == out:
                raise ValueError("CLAND output may not alias its quantum input")
            self.set_bit(out, False)
            if cinput:
                self.cnot(q, out)

    def clor(self, qinput: int, cinput: bool, output: int, length: int = 1) -> None:
        for offset in range(length):
            q, out = qinput + offset, output + offset
            if q == out:
                raise ValueError("CLOR output may not alias its quantum input")
            if cinput:
                self.set_bit(out, True)
            else:
                self.set_bit(out, False)
                self.cnot(q, out)

    def clxor(self, qinput: int, cinput: bool, output: int, length: int = 1) -> None:
        for offset in range(length):
            q, out = qinput + offset, output + offset
            if q != out:
                self.set_bit(out, False)
                self.cnot(q, out)
            if cinput:
                self.x(out)

    # 8-bit table lookups ---------------------------------------------
    def superpose_reg8(self, input_start: int, output_start: int, values: Any) -> int:
        raise NotImplementedError

    def adc_superpose_reg8(
        self, input_start: int, output_start: int, carry: int, values: Any
    ) -> int:
        raise NotImplementedError

    def sbc_superpose_reg8(
        self, input_start: int, output_start: int, carry: int, values: Any
    ) -> int:
        raise NotImplementedError
