"""Circuit dict validation, loading and saving.

Wire format (JSON):

    {"cols": [[entry, ...], ...], "number_of_qubits": n}   # number_of_qubits optional

Column position is the wire index.  An entry is
  - a gate serialization id (str)
  - 1 or None for an empty slot
  - {"id": "?", "matrix": [[[re, im], ...], ...]} for a mystery gate

Endianness convention: LITTLE-ENDIAN.  Wire 0 = bit 0 (LSB) of the
amplitude index; a multi-wire gate at wire w covers wires w..w+height-1
and its top wire is the least significant bit of its register.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

import numpy as np

from texq_engine.errors import CircuitError, UnknownGateError
from texq_engine.gates.all_gates import MYSTERY_GATE_SYMBOL, mystery_gate_with_matrix
from texq_engine.gates.catalog import GateCatalog, default_catalog, placeholder_gate
from texq_engine.gates.gate import GateDefinition
from texq_engine.kernel import matrices

log = logging.getLogger(__name__)

ENDIANNESS = "little"
EMPTY_ENTRIES = (1, None)

Column = list[Optional[GateDefinition]]


@dataclass
class Circuit:
    """Columns of gates, each column indexed by wire."""

    columns: list[Column] = field(default_factory=list)
    number_of_qubits: Optional[int] = None

    @property
    def wire_count(self) -> int:
        """Declared qubit count, else the lowest wire count covering every gate."""
        if self.number_of_qubits is not None:
            return self.number_of_qubits
        needed = 0
        for col in self.columns:
            for wire, gate in enumerate(col):
                if gate is not None:
                    needed = max(needed, wire + gate.height)
        return max(needed, 1)

    def gates(self):
        """(column index, wire, gate) for every placed gate."""
        for c, col in enumerate(self.columns):
            for wire, gate in enumerate(col):
                if gate is not None:
                    yield c, wire, gate

    def is_stable(self) -> bool:
        return all(gate.is_stable() for _, _, gate in self.gates())


# ── validation ──────────────────────────────────────────────────────
def validate_circuit_dict(d: dict[str, Any]) -> dict:
    """Check the shape of a circuit dict.  Raises CircuitError on bad input."""
    if not isinstance(d, dict):
        raise CircuitError("circuit must be a dict")
    if "cols" not in d:
        raise CircuitError("missing required key: 'cols'")
    extra = set(d) - {"cols", "number_of_qubits"}
    if extra:
        raise CircuitError(f"unknown top-level keys: {extra}")

    n = d.get("number_of_qubits")
    if n is not None and (not isinstance(n, int) or isinstance(n, bool) or n < 1):
        raise CircuitError(f"number_of_qubits must be positive int, got {n!r}")

    cols = d["cols"]
    if not isinstance(cols, list):
        raise CircuitError("cols must be a list")
    for c, col in enumerate(cols):
        if not isinstance(col, list):
            raise CircuitError(f"col[{c}]: must be a list")
        for w, entry in enumerate(col):
            _validate_entry(entry, f"col[{c}][{w}]")
    return d


def _validate_entry(entry: Any, tag: str) -> None:
    if entry is None or isinstance(entry, str):
        return
    if entry == 1 and not isinstance(entry, bool):
        return
    if isinstance(entry, dict):
        if set(entry) != {"id", "matrix"}:
            raise CircuitError(f"{tag}: gate dict needs exactly 'id' and 'matrix'")
        if entry["id"] != MYSTERY_GATE_SYMBOL:
            raise CircuitError(f"{tag}: only {MYSTERY_GATE_SYMBOL!r} gates carry a matrix")
        return
    raise CircuitError(f"{tag}: unsupported entry {entry!r}")


def _parse_matrix(raw: Any, tag: str) -> np.ndarray:
    def cell(v):
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return complex(v)
        if isinstance(v, list) and len(v) == 2 and all(
                isinstance(p, (int, float)) and not isinstance(p, bool) for p in v):
            return complex(v[0], v[1])
        raise CircuitError(f"{tag}: matrix entries must be numbers or [re, im], got {v!r}")

    if not isinstance(raw, list) or not all(isinstance(row, list) for row in raw):
        raise CircuitError(f"{tag}: matrix must be a list of rows")
    m = np.array([[cell(v) for v in row] for row in raw], dtype=np.complex128)
    if m.shape != (2, 2):
        raise CircuitError(f"{tag}: mystery gate matrix must be 2x2, got {m.shape}")
    if not matrices.is_unitary(m, atol=1e-6):
        raise CircuitError(f"{tag}: mystery gate matrix is not unitary")
    return m


# ── loading ─────────────────────────────────────────────────────────
def _resolve(entry: Any, catalog: GateCatalog, tag: str) -> Optional[GateDefinition]:
    if entry in EMPTY_ENTRIES and not isinstance(entry, bool):
        return None
    if isinstance(entry, dict):
        return mystery_gate_with_matrix(_parse_matrix(entry["matrix"], tag))
    try:
        return catalog.lookup(entry)
    except UnknownGateError:
        log.warning("%s: unknown gate id %r, loading a placeholder", tag, entry)
        return placeholder_gate(entry)


def circuit_from_dict(d: dict[str, Any], catalog: Optional[GateCatalog] = None) -> Circuit:
    """Validate `d` and resolve every entry against `catalog`."""
    validate_circuit_dict(d)
    catalog = catalog if catalog is not None else default_catalog()
    n = d.get("number_of_qubits")

    columns = []
    for c, raw_col in enumerate(d["cols"]):
        col: Column = [_resolve(e, catalog, f"col[{c}][{w}]") for w, e in enumerate(raw_col)]
        _check_column(col, n, c)
        if n is not None:
            col = col[:n] + [None] * (n - len(col))
        columns.append(col)
    return Circuit(columns=columns, number_of_qubits=n)


def _check_column(col: Column, n: Optional[int], c: int) -> None:
    covered_until = 0
    for w, gate in enumerate(col):
        if gate is None:
            continue
        if w < covered_until:
            raise CircuitError(f"col[{c}][{w}]: {gate.serialized_id} overlaps the gate above it")
        covered_until = w + gate.height
        if n is not None and covered_until > n:
            raise CircuitError(
                f"col[{c}][{w}]: {gate.serialized_id} needs wires up to {covered_until - 1}, "
                f"circuit has {n}")


def load_circuit(text: str, catalog: Optional[GateCatalog] = None) -> Circuit:
    """Parse a JSON circuit.  Raises CircuitError on malformed input."""
    try:
        d = json.loads(text)
    except json.JSONDecodeError as e:
        raise CircuitError(f"circuit is not valid JSON: {e}") from e
    return circuit_from_dict(d, catalog)


# ── saving ──────────────────────────────────────────────────────────
def _entry_for(gate: Optional[GateDefinition]) -> Any:
    if gate is None:
        return 1
    if gate.serialized_id == MYSTERY_GATE_SYMBOL:
        m = gate.known_matrix
        return {
            "id": MYSTERY_GATE_SYMBOL,
            "matrix": [[[float(v.real), float(v.imag)] for v in row] for row in m],
        }
    return gate.serialized_id


def circuit_to_dict(circuit: Circuit) -> dict:
    cols = []
    for col in circuit.columns:
        entries = [_entry_for(g) for g in col]
        while entries and entries[-1] == 1:
            entries.pop()
        cols.append(entries)
    d: dict[str, Any] = {"cols": cols}
    if circuit.number_of_qubits is not None:
        d["number_of_qubits"] = circuit.number_of_qubits
    return d


def dump_circuit(circuit: Circuit) -> str:
    return json.dumps(circuit_to_dict(circuit), ensure_ascii=False)
