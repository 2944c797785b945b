"""Single-qubit gate matrices used by the dense subsystem engines."""

from __future__ import annotations

import math

import numpy as np

_SQRT1_2 = 1.0 / math.sqrt(2.0)

IDENTITY = np.eye(2, dtype=complex)
PAULI_X = np.array([[0, 1], [1, 0]], dtype=complex)
PAULI_Y = np.array([[0, -1j], [1j, 0]], dtype=complex)
PAULI_Z = np.array([[1, 0], [0, -1]], dtype=complex)
HADAMARD = np.array([[_SQRT1_2, _SQRT1_2], [_SQRT1_2, -_SQRT1_2]], dtype=complex)


def rt_matrix(radians: float) -> np.ndarray:
    """Phase shift rotating the ``|1>`` amplitude by ``e^{i*radians/2}``."""

    half = radians / 2.0
    return np.array([[1, 0], [0, complex(math.cos(half), math.sin(half))]], dtype=complex)


def rx_matrix(radians: float) -> np.ndarray:
    cosine = math.cos(radians / 2.0)
    sine = math.sin(radians / 2.0)
    return np.array([[cosine, -1j * sine], [-1j * sine, cosine]], dtype=complex)


def ry_matrix(radians: float) -> np.ndarray:
    cosine = math.cos(radians / 2.0)
    sine = math.sin(radians / 2.0)
    return np.array([[cosine, -sine], [sine, cosine]], dtype=complex)


def rz_matrix(radians: float) -> np.ndarray:
    cosine = math.cos(radians / 2.0)
    sine = math.sin(radians / 2.0)
    return np.array(
        [[complex(cosine, -sine), 0], [0, complex(cosine, sine)]], dtype=complex
    )


def dyad_angle(numerator: int, denominator: int) -> float:
    """Return the rotation angle for the dyadic fraction ``numerator/denominator``.

    Dyadic rotations turn by ``numerator/denominator`` of a full period in the
    negative sense, so ``rt_dyad(1, 2)`` equals ``rt(-pi)``.

    Raises
    ------
    ValueError
        If ``denominator`` is zero.
    """

    if denominator == 0:
        raise ValueError("Dyadic rotation denominator must be non-zero")
    return (-2.0 * math.pi * numerator) / denominator


def lookup_table(values) -> np.ndarray:
    """Return ``values`` as a 256-entry integer table for 8-bit superposition.

    ``values`` may be ``bytes``/``bytearray`` or any integer sequence with
    entries in ``[0, 255]``.
    """

    if isinstance(values, (bytes, bytearray, memoryview)):
        table = np.frombuffer(bytes(values), dtype=np.uint8).astype(np.int64)
    else:
        table = np.asarray(values, dtype=np.int64).reshape(-1)
    if table.shape != (256,):
        raise ValueError(
            f"8-bit lookup table must hold 256 entries, got {table.size}"
        )
    if table.min() < 0 or table.max() > 0xFF:
        raise ValueError("8-bit lookup table entries must lie in [0, 255]")
    return table
