"""Canonical gate matrices.

Convention:
  1-qubit gates: 2×2 complex128 ndarray.
  k-qubit gates: 2^k × 2^k complex128 ndarray in *little-endian* register
      order: row/col r is the register value, the gate's first (top) wire
      being the least significant bit.
"""
from __future__ import annotations

import math

import numpy as np

TAU = 2 * math.pi
_S2 = 1.0 / np.sqrt(2.0)


def _mat(*rows):
    return np.array(rows, dtype=np.complex128)


# ── 1-qubit fixed ───────────────────────────────────────────────────
def identity(dim: int = 2):
    return np.eye(dim, dtype=np.complex128)

def H():
    return _mat([_S2, _S2], [_S2, -_S2])

def X():
    return _mat([0, 1], [1, 0])

def Y():
    return _mat([0, -1j], [1j, 0])

def Z():
    return _mat([1, 0], [0, -1])


# ── 1-qubit parameterised ──────────────────────────────────────────
def from_pauli_rotation(x: float, y: float, z: float) -> np.ndarray:
    """Rotation around the Bloch axis (x, y, z), by |(x, y, z)| turns.

    Half a turn around X is exactly X, a quarter turn is the principal
    square root of X, and so on.  The axis is normalised so its first
    non-zero component is positive; a negative length then rotates
    backwards, which makes from_pauli_rotation(-v) the exact adjoint of
    from_pauli_rotation(v).
    """
    v = np.array([x, y, z], dtype=np.float64)
    turns = float(np.linalg.norm(v))
    if turns < 1e-12:
        return identity()
    axis = v / turns
    lead = axis[np.flatnonzero(np.abs(axis) > 1e-12)[0]]
    if lead < 0:
        axis, turns = -axis, -turns
    sigma = axis[0] * X() + axis[1] * Y() + axis[2] * Z()
    plus = (identity() + sigma) / 2
    minus = (identity() - sigma) / 2
    return plus + np.exp(1j * TAU * turns) * minus


def exp_pauli(x: float, y: float, z: float) -> np.ndarray:
    """exp(i τ (x X + y Y + z Z))."""
    v = np.array([x, y, z], dtype=np.float64)
    theta = float(np.linalg.norm(v))
    if theta < 1e-12:
        return identity()
    sigma = (v[0] * X() + v[1] * Y() + v[2] * Z()) / theta
    return np.cos(TAU * theta) * identity() + 1j * np.sin(TAU * theta) * sigma


def closest_unitary(m: np.ndarray) -> np.ndarray:
    """Unitary nearest to `m` in Frobenius norm (polar factor via SVD)."""
    u, _, vh = np.linalg.svd(np.asarray(m, dtype=np.complex128))
    return u @ vh


# ── k-qubit families ───────────────────────────────────────────────
def fourier(span: int) -> np.ndarray:
    N = 1 << span
    r = np.arange(N)
    return np.exp(1j * TAU * np.outer(r, r) / N) / np.sqrt(N)


def cycle_bits(span: int, shift: int = 1) -> np.ndarray:
    """Permutation sending register value c to rotl(c, shift)."""
    N = 1 << span
    m = np.zeros((N, N), dtype=np.complex128)
    s = shift % span
    for c in range(N):
        r = ((c << s) | (c >> (span - s))) & (N - 1)
        m[r, c] = 1
    return m


def offset(span: int, delta: int) -> np.ndarray:
    """Permutation sending c to c + delta (mod 2^span)."""
    N = 1 << span
    m = np.zeros((N, N), dtype=np.complex128)
    for c in range(N):
        m[(c + delta) % N, c] = 1
    return m


def addition(input_span: int, target_span: int, factor: int = 1) -> np.ndarray:
    """Register (input, target) -> (input, target + factor*input), input in the low bits."""
    N = 1 << (input_span + target_span)
    in_mask = (1 << input_span) - 1
    t_mask = (1 << target_span) - 1
    m = np.zeros((N, N), dtype=np.complex128)
    for c in range(N):
        x = c & in_mask
        y = c >> input_span
        m[x | (((y + factor * x) & t_mask) << input_span), c] = 1
    return m


def phase_gradient(span: int, factor: float = 1.0) -> np.ndarray:
    x = np.arange(1 << span)
    return np.diag(np.exp(1j * np.pi * factor * x / (1 << span)))


def is_unitary(m: np.ndarray, atol: float = 1e-9) -> bool:
    m = np.asarray(m)
    return m.shape[0] == m.shape[1] and np.allclose(m.conj().T @ m, np.eye(m.shape[0]), atol=atol)
