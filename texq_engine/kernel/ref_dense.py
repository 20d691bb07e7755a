"""In-memory reference simulator (practical up to n ≈ 20, oracle for correctness).

Applies each gate's matrix directly to a complex128 state vector, with no
textures, no pixel encoding and no shader passes.
Endianness: little-endian (qubit 0 = bit 0 = LSB).
"""
from __future__ import annotations

import numpy as np

from texq_engine.circuit.io import Circuit


def apply_matrix(psi: np.ndarray, bit: int, U: np.ndarray,
                 mask: int = 0, desired: int = 0) -> None:
    """In place: U on wires [bit, bit+k), only where index & mask == desired."""
    dim = U.shape[0]
    k = dim.bit_length() - 1
    operands = (dim - 1) << bit
    idx = np.arange(len(psi))
    bases = idx[((idx & operands) == 0) & ((idx & mask) == desired)]
    cols = bases[:, None] | (np.arange(dim)[None, :] << bit)  # (M, dim)
    v = psi[cols]
    psi[cols] = v @ U.T


def _swap(psi: np.ndarray, a: int, b: int, mask: int, desired: int) -> None:
    idx = np.arange(len(psi))
    pick = (((idx >> a) & 1) == 1) & (((idx >> b) & 1) == 0) & ((idx & mask) == desired)
    lo = idx[pick]
    hi = lo ^ (1 << a) ^ (1 << b)
    psi[lo], psi[hi] = psi[hi].copy(), psi[lo].copy()


def simulate(circuit: Circuit, time: float = 0.0,
             initial: np.ndarray | None = None) -> np.ndarray:
    """Run circuit at `time`, return final state vector (complex128)."""
    n = circuit.wire_count
    if initial is None:
        psi = np.zeros(1 << n, dtype=np.complex128)
        psi[0] = 1.0  # |0...0>
    else:
        psi = np.array(initial, dtype=np.complex128)

    for col in circuit.columns:
        mask = desired = 0
        for w, g in enumerate(col):
            if g is not None and g.is_control():
                mask |= 1 << w
                desired |= int(g.control_value) << w

        swaps = [w for w, g in enumerate(col) if g is not None and g.is_swap_half]
        if len(swaps) == 2:
            _swap(psi, swaps[0], swaps[1], mask, desired)

        for w, g in enumerate(col):
            if g is None or g.is_control() or g.is_swap_half or g.no_net_effect:
                continue
            U = g.matrix_at(time)
            if U is None:
                raise ValueError(f"{g.serialized_id} has no reference matrix")
            apply_matrix(psi, w, U, mask, desired)
    return psi
