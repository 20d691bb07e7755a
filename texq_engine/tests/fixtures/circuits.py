"""Canonical test circuits (wire format dicts)."""
from __future__ import annotations


def hadamard_1q() -> dict:
    """H on one qubit.  Expected: (|0>+|1>)/√2."""
    return {"cols": [["H"]]}


def bell_2q() -> dict:
    """H(0) → CNOT(0,1).  Expected: (|00>+|11>)/√2."""
    return {"cols": [["H"], ["•", "X"]]}


def x_on_q0_3q() -> dict:
    """X on qubit 0, 3 qubits.  |000> → |001>.  Amplitude at index 1."""
    return {"cols": [["X"]], "number_of_qubits": 3}


def ghz(n: int) -> dict:
    cols = [["H"]]
    for q in range(1, n):
        cols.append([1] * (q - 1) + ["•", "X"])
    return {"cols": cols}


def qft_roundtrip(n: int) -> dict:
    """Prepare a non-trivial state, then QFT followed by its inverse."""
    prep = [["H", "X^½", "Y^¼", "Z^⅛"][: n]] + [["X"] + [1] * (n - 1)]
    return {"cols": prep + [[f"QFT{n}"], [f"QFT†{n}"]]}


def swap_3q() -> dict:
    """X(0) then Swap(0,2).  |000> → |001> → |100>."""
    return {"cols": [["X"], ["Swap", 1, "Swap"]]}


def anti_controlled_inc() -> dict:
    """Increment wires 1..2 only when wire 0 is OFF."""
    return {"cols": [["◦", "inc2"]]}


def adder_4q() -> dict:
    """a = 3 on wires 0..1, b = 1 on wires 2..3, then b += a."""
    return {"cols": [["X", "X", "X"], ["add4"]]}


def mixed_toolbox() -> dict:
    """A bit of everything with a known matrix, on 4 wires."""
    return {"cols": [
        ["H", "H", "H", "H"],
        ["Z^½", "•", "Y^-½", 1],
        ["PhaseGradient3", 1, 1, "◦"],
        ["Measure", "…", "__unstable__cycle2"],
        ["QFT2", 1, "X^⅓", "•"],
        ["Swap", "Swap", "•", 1],
        ["dec2", 1, "sub2"],
    ]}


def error_injection() -> dict:
    return {"cols": [["H"], ["__debug__ErrorInjection"], ["X"]]}


def clock_pulse() -> dict:
    return {"cols": [["X^⌈t⌉", "X^⌈t-¼⌉"]]}


def counting_3q() -> dict:
    return {"cols": [["Counting3"]]}


def adder_3q() -> dict:
    """a = 1 on wire 0, b = 1 on wires 1..2, then b += a.  |011> → |101>."""
    return {"cols": [["X", "X"], ["add3"]]}


def post_selected_plus() -> dict:
    """H then keep only the |0> branch.  Amplitudes (1/√2, 0)."""
    return {"cols": [["H"], ["|0⟩⟨0|"]]}
