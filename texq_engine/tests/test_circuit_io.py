"""Tests for circuit dict validation, loading and saving."""
import json
import logging

import numpy as np
import pytest

from texq_engine.circuit.io import (
    Circuit, circuit_from_dict, circuit_to_dict, dump_circuit, load_circuit,
    validate_circuit_dict,
)
from texq_engine.errors import CircuitError
from texq_engine.gates import all_gates
from texq_engine.tests.fixtures.circuits import bell_2q, mixed_toolbox, x_on_q0_3q


def test_valid_bell():
    c = circuit_from_dict(bell_2q())
    assert c.wire_count == 2
    assert len(c.columns) == 2
    assert c.columns[0][0] is all_gates.HalfTurns.H
    assert c.columns[1][0] is all_gates.Special.Control
    assert c.columns[1][1] is all_gates.HalfTurns.X


def test_number_of_qubits_pads_columns():
    c = circuit_from_dict(x_on_q0_3q())
    assert c.wire_count == 3
    assert c.columns[0] == [all_gates.HalfTurns.X, None, None]


def test_wire_count_covers_multi_wire_gates():
    c = circuit_from_dict({"cols": [[1, "QFT3"]]})
    assert c.wire_count == 4


def test_missing_cols():
    with pytest.raises(CircuitError, match="missing required key"):
        validate_circuit_dict({"number_of_qubits": 2})


def test_unknown_top_level_key():
    with pytest.raises(CircuitError, match="unknown top-level keys"):
        validate_circuit_dict({"cols": [], "gates": []})


@pytest.mark.parametrize("n", [0, -1, 2.5, True, "3"])
def test_bad_number_of_qubits(n):
    with pytest.raises(CircuitError, match="number_of_qubits"):
        validate_circuit_dict({"cols": [], "number_of_qubits": n})


@pytest.mark.parametrize("entry", [2, True, 0.5, ["H"], {"id": "H", "matrix": [[1]]}])
def test_bad_entries(entry):
    with pytest.raises(CircuitError, match=r"col\[0\]\[0\]"):
        validate_circuit_dict({"cols": [[entry]]})


def test_circuit_error_is_value_error():
    with pytest.raises(ValueError):
        validate_circuit_dict([])


def test_overlapping_gates():
    with pytest.raises(CircuitError, match="overlaps"):
        circuit_from_dict({"cols": [["QFT2", "H"]]})


def test_gate_past_last_wire():
    with pytest.raises(CircuitError, match="needs wires up to 2"):
        circuit_from_dict({"cols": [[1, "QFT2"]], "number_of_qubits": 2})


def test_unknown_id_round_trips_as_placeholder(caplog):
    d = {"cols": [["H", "FutureGate7"], ["•", "X"]]}
    with caplog.at_level(logging.WARNING, logger="texq_engine"):
        c = circuit_from_dict(d)
    placeholder = c.columns[0][1]
    assert placeholder.serialized_id == "FutureGate7"
    assert placeholder.no_net_effect
    assert "FutureGate7" in caplog.text
    assert circuit_to_dict(c) == d


def test_mystery_gate_round_trip():
    gate = all_gates.mystery_gate_maker(np.random.default_rng(5))
    text = dump_circuit(Circuit(columns=[[gate]]))
    raw = json.loads(text)
    entry = raw["cols"][0][0]
    assert entry["id"] == "?"
    assert np.array(entry["matrix"]).shape == (2, 2, 2)

    loaded = load_circuit(text).columns[0][0]
    assert loaded is not gate
    np.testing.assert_allclose(loaded.known_matrix, gate.known_matrix, atol=1e-12)


def test_mystery_matrix_must_be_unitary():
    with pytest.raises(CircuitError, match="not unitary"):
        circuit_from_dict({"cols": [[{"id": "?", "matrix": [[1, 1], [0, 1]]}]]})


def test_mystery_matrix_accepts_plain_numbers():
    c = circuit_from_dict({"cols": [[{"id": "?", "matrix": [[0, 1], [1, 0]]}]]})
    np.testing.assert_allclose(c.columns[0][0].known_matrix, [[0, 1], [1, 0]])


def test_save_trims_trailing_empty_slots():
    c = circuit_from_dict({"cols": [["H", 1, None, 1]], "number_of_qubits": 4})
    assert circuit_to_dict(c) == {"cols": [["H"]], "number_of_qubits": 4}


def test_mixed_toolbox_round_trip():
    c = circuit_from_dict(mixed_toolbox())
    again = load_circuit(dump_circuit(c))
    assert [[g and g.serialized_id for g in col] for col in again.columns] == \
        [[g and g.serialized_id for g in col] for col in c.columns]


def test_bad_json():
    with pytest.raises(CircuitError, match="not valid JSON"):
        load_circuit("{cols: ")
