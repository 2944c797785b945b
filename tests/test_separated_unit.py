from __future__ import annotations

import math

import numpy as np
import pytest
from qiskit import QuantumCircuit
from qiskit.quantum_info import Statevector

from qsplit import (
    Config,
    DenseUnit,
    InvalidQubitError,
    PartitionInvariantError,
    SeparatedUnit,
    SubsystemAllocationError,
)


def _config(**kwargs):
    kwargs.setdefault("check_invariants", True)
    return Config(**kwargs)


def _random_state(num_qubits, seed):
    rng = np.random.default_rng(seed)
    state = rng.normal(size=1 << num_qubits) + 1j * rng.normal(size=1 << num_qubits)
    return state / np.linalg.norm(state)


def _unit(num_qubits, init_state=0, **kwargs):
    return SeparatedUnit(num_qubits, init_state, config=_config(**kwargs))


def _overlap(a, b):
    return abs(np.vdot(a, b))


def test_constructor_separates_every_qubit():
    su = _unit(4, 0b1010)
    assert su.num_qubits == 4
    assert su.subsystem_count == 4
    assert su.subsystem_sizes() == [1, 1, 1, 1]
    assert su.qubit_ids() == [0, 1, 2, 3]
    np.testing.assert_allclose(su.clone_raw_state(), Statevector.from_int(10, 16).data)
    with pytest.raises(ValueError):
        SeparatedUnit(0)
    with pytest.raises(ValueError):
        SeparatedUnit(2, 4)


def test_hadamards_and_toffoli_merge_three_qubits():
    su = _unit(3)
    su.h(0)
    su.h(1)
    assert su.subsystem_count == 3
    su.ccnot(0, 1, 2)
    assert su.subsystem_count == 1
    assert su.subsystem_of(2) == (0, 1, 2)
    circuit = QuantumCircuit(3)
    circuit.h([0, 1])
    circuit.ccx(0, 1, 2)
    np.testing.assert_allclose(
        su.clone_raw_state(), Statevector(circuit).data, atol=1e-12
    )
    su.check_consistency()


@pytest.mark.parametrize("strategy", ["quicksort", "cycles"])
def test_gate_sequence_matches_qiskit(strategy):
    su = _unit(5, reorder_strategy=strategy)
    circuit = QuantumCircuit(5)

    su.h(4)
    circuit.h(4)
    su.cnot(4, 1)
    circuit.cx(4, 1)
    su.ry(0.4, 3)
    circuit.ry(0.4, 3)
    su.cy(3, 0)
    circuit.cy(3, 0)
    su.swap(1, 2)
    circuit.swap(1, 2)
    su.crx(0.9, 2, 0)
    circuit.crx(0.9, 2, 0)
    su.x(1, 3)
    circuit.x([1, 2, 3])
    su.ccnot(0, 4, 1)
    circuit.ccx(0, 4, 1)
    su.rt(1.3, 2)
    circuit.p(0.65, 2)
    su.cz(1, 3)
    circuit.cz(1, 3)
    su.crz(-0.3, 4, 0)
    circuit.crz(-0.3, 4, 0)
    su.cry(0.2, 0, 3)
    circuit.cry(0.2, 0, 3)
    su.crt(0.5, 3, 4)
    circuit.cp(0.25, 3, 4)
    su.rx(2.1, 0)
    circuit.rx(2.1, 0)
    su.rz(0.6, 1)
    circuit.rz(0.6, 1)
    su.y(2)
    circuit.y(2)
    su.z(3)
    circuit.z(3)
    su.anti_cnot(2, 4)
    circuit.x(2)
    circuit.cx(2, 4)
    circuit.x(2)

    np.testing.assert_allclose(
        su.clone_raw_state(), Statevector(circuit).data, atol=1e-10
    )
    su.check_consistency()


def test_dyadic_rotations():
    reference = _unit(1)
    dyadic = _unit(1)
    for su in (reference, dyadic):
        su.h(0)
    reference.rt(-math.pi, 0)
    dyadic.rt_dyad(1, 2, 0)
    np.testing.assert_allclose(dyadic.clone_raw_state(), reference.clone_raw_state())
    reference.rx(-math.pi / 2, 0)
    dyadic.rx_dyad(1, 4, 0)
    np.testing.assert_allclose(dyadic.clone_raw_state(), reference.clone_raw_state())
    with pytest.raises(ValueError):
        dyadic.rz_dyad(1, 0, 0)


def test_single_qubit_gates_never_merge():
    su = _unit(4)
    su.h(0)
    su.rx(0.1, 1)
    su.x(0, 4)
    assert su.subsystem_count == 4


def test_swap_is_a_relabel():
    su = _unit(3, 0b001)
    su.swap(0, 2)
    assert su.subsystem_count == 3
    assert su.m_reg(0, 3) == 0b100

    su = _unit(3)
    su.h(0)
    su.cnot(0, 1)
    su.swap(1, 2)
    assert su.subsystem_of(0) == (0, 2)
    assert su.subsystem_of(1) == (1,)
    circuit = QuantumCircuit(3)
    circuit.h(0)
    circuit.cx(0, 1)
    circuit.swap(1, 2)
    np.testing.assert_allclose(su.clone_raw_state(), Statevector(circuit).data)


def test_register_swap():
    su = _unit(6, 0b000011)
    su.swap(0, 4, 2)
    assert su.m_reg(0, 6) == 0b110000
    su.swap(2, 2, 2)
    with pytest.raises(ValueError):
        su.swap(0, 1, 2)


def test_registers_preserve_bit_significance():
    value = 0b1011
    su = _unit(4, value)
    su.cz(3, 0)
    su.cz(2, 1)
    assert su.subsystem_of(0) == (0, 3)
    assert su.prob_reg(0, 4, value) == pytest.approx(1.0)
    assert su.prob_reg(1, 2, (value >> 1) & 0b11) == pytest.approx(1.0)
    assert su.prob_reg(0, 4, value ^ 1) == pytest.approx(0.0)
    assert su.m_reg(0, 4) == value
    assert su.m_reg(1, 3) == value >> 1


def test_prob_reg_multiplies_independent_subsystems():
    su = _unit(4)
    su.h(0)
    su.h(2)
    su.cnot(2, 3)
    assert su.prob_reg(0, 4, 0b1101) == pytest.approx(0.25)
    assert su.prob_reg(0, 4, 0b0101) == pytest.approx(0.0)
    assert su.prob(3) == pytest.approx(0.5)
    with pytest.raises(ValueError):
        su.prob_reg(0, 2, 4)


def test_set_reg_and_set_bit():
    su = _unit(4)
    su.h(2)
    su.set_reg(1, 3, 0b110)
    assert su.m_reg(0, 4) == 0b1100
    su.set_bit(0, True)
    assert su.m(0)
    with pytest.raises(ValueError):
        su.set_reg(0, 2, 5)


def test_measurement_collapses_and_is_reproducible():
    first = SeparatedUnit(4, config=_config(seed=7))
    second = SeparatedUnit(4, config=_config(seed=7))
    for su in (first, second):
        for qubit in range(4):
            su.h(qubit)
    assert first.m_reg(0, 4) == second.m_reg(0, 4)

    su = _unit(2)
    su.h(0)
    su.cnot(0, 1)
    result = su.m(0)
    assert su.prob(1) == pytest.approx(float(result))


@pytest.mark.parametrize("a,b", [(0b101, 0b011), (0b111, 0b000)])
def test_register_boolean_logic(a, b):
    for op, expected in (("and_", a & b), ("or_", a | b), ("xor", a ^ b)):
        su = _unit(9, a | (b << 3) | (0b010 << 6))
        getattr(su, op)(0, 3, 6, 3)
        assert su.m_reg(6, 3) == expected
        assert su.m_reg(0, 6) == a | (b << 3)
        su.check_consistency()


def test_xor_in_place_and_overlap_rules():
    su = _unit(6, 0b011101)
    su.xor(0, 3, 0, 3)
    assert su.m_reg(0, 3) == 0b101 ^ 0b011
    su.xor(1, 2, 1)
    with pytest.raises(ValueError):
        su.and_(0, 3, 2, 3)
    with pytest.raises(ValueError):
        su.or_(0, 1, 0)


def test_single_bit_boolean_logic():
    su = _unit(3, 0b011)
    su.and_(0, 1, 2)
    assert su.m(2)
    su.or_(0, 0, 2)
    assert su.m(2)


def test_classical_boolean_logic():
    su = _unit(6, 0b000101)
    su.cland(0, True, 3, 3)
    assert su.m_reg(3, 3) == 0b101
    su.clor(0, False, 3, 3)
    assert su.m_reg(3, 3) == 0b101
    su.clor(0, True, 3, 2)
    assert su.m_reg(3, 2) == 0b11
    su.clxor(0, True, 0, 3)
    assert su.m_reg(0, 3) == 0b010
    with pytest.raises(ValueError):
        su.cland(0, True, 2, 3)


def test_clone_raw_state_round_trip():
    state = _random_state(3, seed=4)
    su = _unit(3)
    su.set_quantum_state(state)
    assert su.subsystem_count == 1
    np.testing.assert_allclose(su.clone_raw_state(), state)
    su.set_quantum_state(Statevector(state))
    np.testing.assert_allclose(su.clone_raw_state(), state)


def test_set_quantum_state_validates():
    su = _unit(2)
    with pytest.raises(ValueError):
        su.set_quantum_state([1, 0])
    with pytest.raises(ValueError):
        su.set_quantum_state([1, 1, 0, 0])
    with pytest.raises(TypeError):
        su.set_quantum_state([1, 0, 0])
    assert su.subsystem_count == 2


def test_set_permutation_separates_again():
    su = _unit(3)
    su.h(0)
    su.cnot(0, 1)
    su.set_permutation(0b110)
    assert su.subsystem_count == 3
    assert su.m_reg(0, 3) == 0b110


def test_clone_is_an_independent_copy():
    su = _unit(3)
    su.h(0)
    su.cnot(0, 2)
    copy = su.clone()
    assert copy.subsystem_sizes() == su.subsystem_sizes()
    np.testing.assert_allclose(copy.clone_raw_state(), su.clone_raw_state())
    copy.x(1)
    assert su.prob(1) == pytest.approx(0.0)
    assert copy.prob(1) == pytest.approx(1.0)


def test_cohere_appends_ids():
    su = _unit(2, 0b01)
    other = _unit(2, 0b10)
    other.h(0)
    other.cnot(0, 1)
    start = su.cohere(other)
    assert start == 2
    assert su.num_qubits == 4
    assert su.subsystem_count == 3
    assert su.subsystem_of(3) == (2, 3)
    assert su.m_reg(0, 2) == 0b01

    assert su.cohere(DenseUnit(2, 0b11)) == 4
    assert su.m_reg(4, 2) == 0b11
    with pytest.raises(TypeError):
        su.cohere([0, 1])


def test_cohere_is_associative():
    states = [_random_state(n, seed) for n, seed in ((1, 1), (2, 2), (2, 3))]
    a, b, c = (_unit(int(math.log2(state.size))) for state in states)
    for su, state in zip((a, b, c), states):
        su.set_quantum_state(state)

    left = a.clone()
    left.cohere(b)
    left.cohere(c)

    tail = b.clone()
    tail.cohere(c)
    right = a.clone()
    right.cohere(tail)

    np.testing.assert_allclose(left.clone_raw_state(), right.clone_raw_state())
    np.testing.assert_allclose(
        left.clone_raw_state(), np.kron(states[2], np.kron(states[1], states[0]))
    )


def test_cohere_then_decohere_round_trip():
    host_state = _random_state(3, seed=5)
    guest_state = _random_state(2, seed=6)
    host = _unit(3)
    host.set_quantum_state(host_state)
    guest = _unit(2)
    guest.set_quantum_state(guest_state)

    start = host.cohere(guest)
    host.cnot(0, start)
    host.cnot(0, start)
    assert host.subsystem_count == 1

    destination = _unit(2)
    host.decohere(start, 2, destination)
    assert host.qubit_ids() == [0, 1, 2]
    assert _overlap(destination.clone_raw_state(), guest_state) == pytest.approx(1.0)
    assert _overlap(host.clone_raw_state(), host_state) == pytest.approx(1.0)
    with pytest.raises(InvalidQubitError):
        host.h(start)


def test_decohere_middle_range():
    low, middle, high = _random_state(1, 7), _random_state(2, 8), _random_state(1, 9)
    su = _unit(4)
    su.set_quantum_state(np.kron(high, np.kron(middle, low)))
    destination = DenseUnit(2)
    su.decohere(1, 2, destination)
    assert su.qubit_ids() == [0, 3]
    assert _overlap(destination.statevector(), middle) == pytest.approx(1.0)
    assert _overlap(su.clone_raw_state(), np.kron(high, low)) == pytest.approx(1.0)
    su.check_consistency()


def test_decohere_validates_destination():
    su = _unit(3)
    with pytest.raises(ValueError):
        su.decohere(0, 2, _unit(3))
    with pytest.raises(ValueError):
        su.decohere(0, 3, su)
    with pytest.raises(InvalidQubitError):
        su.decohere(2, 2, _unit(2))


def test_dispose_shrinks_register():
    su = _unit(4, 0b1001)
    su.cnot(1, 2)
    su.dispose(1, 2)
    assert su.num_qubits == 2
    assert su.qubit_ids() == [0, 3]
    assert su.subsystem_count == 2
    np.testing.assert_allclose(su.clone_raw_state(), [0, 0, 0, 1])
    assert su.cohere(_unit(1)) == 4


def test_allocation_limit_leaves_register_untouched():
    su = SeparatedUnit(3, config=_config(max_subsystem_qubits=2))
    su.h(0)
    su.cnot(0, 1)
    sizes = su.subsystem_sizes()
    with pytest.raises(SubsystemAllocationError):
        su.ccnot(0, 1, 2)
    assert su.subsystem_sizes() == sizes
    assert su.subsystem_of(2) == (2,)
    assert su.prob(1) == pytest.approx(0.5)
    su.check_consistency()


def test_superpose_reg8_through_register():
    table = bytes(255 - value for value in range(256))
    su = _unit(16)
    for qubit in range(8):
        su.h(qubit)
    su.superpose_reg8(0, 8, table)
    assert su.subsystem_count == 1
    value = su.m_reg(0, 8)
    assert su.m_reg(8, 8) == 255 - value
    with pytest.raises(ValueError):
        su.superpose_reg8(0, 4, table)


def test_adc_and_sbc_through_register():
    su = _unit(17)
    su.set_reg(0, 8, 7)
    su.set_reg(8, 8, 250)
    assert su.adc_superpose_reg8(0, 8, 16, list(range(256))) == (250 + 7) & 0xFF
    assert su.m(16)
    # carry-in set, 1 - 7 borrows and clears the carry
    assert su.sbc_superpose_reg8(0, 8, 16, list(range(256))) == 250
    assert not su.m(16)
    with pytest.raises(ValueError):
        su.adc_superpose_reg8(0, 8, 3, list(range(256)))


def test_invalid_qubits_are_rejected():
    su = _unit(2)
    with pytest.raises(InvalidQubitError):
        su.h(2)
    with pytest.raises(ValueError):
        su.cnot(1, 1)
    with pytest.raises(InvalidQubitError):
        su.m_reg(1, 2)


def test_check_consistency_detects_corruption():
    su = _unit(2)
    su.check_consistency()
    su._table._forward[0] = None
    with pytest.raises(PartitionInvariantError):
        su.check_consistency()


def test_self_inverse_gates_restore_distribution():
    su = _unit(4)
    for qubit in range(4):
        su.ry(0.3 + qubit, qubit)
    su.cnot(0, 3)
    before = su.clone_raw_state()
    for _ in range(2):
        su.x(1)
    for _ in range(2):
        su.z(2)
    for _ in range(2):
        su.ccnot(3, 1, 2)
    np.testing.assert_allclose(su.clone_raw_state(), before, atol=1e-12)
    su.check_consistency()


def test_set_reg_then_m_reg_regardless_of_layout():
    su = SeparatedUnit(6, config=_config(seed=3))
    for qubit in range(6):
        su.h(qubit)
    su.cnot(4, 1)
    su.swap(2, 5)
    su.cnot(3, 0)
    su.set_reg(1, 3, 5)
    assert su.m_reg(1, 3) == 5
    assert su.prob_reg(1, 3, 5) == pytest.approx(1.0)


def test_toffoli_with_idle_control_across_clones():
    su = SeparatedUnit(4, config=_config(seed=21))
    su.h(0)
    su.ccnot(0, 1, 2)
    assert su.prob(2) == pytest.approx(0.0)
    outcomes = [su.clone().m(0) for _ in range(200)]
    assert all(not su.clone().m(2) for _ in range(10))
    assert 60 < sum(outcomes) < 140


def test_decohere_rejected_by_destination_keeps_source():
    su = _unit(4, 0b1100)
    destination = SeparatedUnit(2, config=_config(max_subsystem_qubits=1))
    with pytest.raises(SubsystemAllocationError):
        su.decohere(2, 2, destination)
    assert su.qubit_ids() == [0, 1, 2, 3]
    assert su.m_reg(0, 4) == 0b1100
    assert destination.subsystem_sizes() == [1, 1]
    su.check_consistency()


def test_failed_state_transfer_leaves_register_whole(monkeypatch):
    low, middle, high = _random_state(1, 10), _random_state(2, 11), _random_state(1, 12)
    state = np.kron(high, np.kron(middle, low))
    su = _unit(4)
    su.set_quantum_state(state)
    destination = DenseUnit(2)

    def _reject(_state):
        raise ValueError("destination refused the state")

    monkeypatch.setattr(destination, "set_quantum_state", _reject)
    with pytest.raises(ValueError, match="refused"):
        su.decohere(1, 2, destination)
    assert su.qubit_ids() == [0, 1, 2, 3]
    np.testing.assert_allclose(su.clone_raw_state(), state, atol=1e-12)
    su.check_consistency()


def test_merge_order_does_not_change_outcome():
    def _run(first_pair):
        su = _unit(3)
        for qubit in range(3):
            su.ry(0.5 + 0.4 * qubit, qubit)
        # a self-cancelling pair only decides which subsystems merge first
        su.cnot(*first_pair)
        su.cnot(*first_pair)
        su.ccnot(0, 1, 2)
        su.h(1)
        su.crz(0.7, 2, 0)
        su.cy(0, 2)
        return su

    left = _run((0, 1))
    right = _run((1, 2))
    assert left.subsystem_of(0) == right.subsystem_of(0) == (0, 1, 2)
    for value in range(8):
        assert left.prob_reg(0, 3, value) == pytest.approx(right.prob_reg(0, 3, value))
    np.testing.assert_allclose(left.clone_raw_state(), right.clone_raw_state(), atol=1e-12)


def test_clone_leaves_parent_random_stream_alone():
    cloned = SeparatedUnit(4, config=_config(seed=13))
    untouched = SeparatedUnit(4, config=_config(seed=13))
    for su in (cloned, untouched):
        for qubit in range(4):
            su.h(qubit)
    copy = cloned.clone()
    copy.m_reg(0, 4)
    assert [cloned.m(q) for q in range(4)] == [untouched.m(q) for q in range(4)]
