"""Command line runner and kernel benchmark smoke tests."""
import json
import logging

import pytest

from texq_engine.bench import kernel as kernel_bench
from texq_engine.bench import run_circuit
from texq_engine.tests.fixtures.circuits import bell_2q, error_injection, post_selected_plus
from texq_engine.tests.fixtures.gpu import requires_gpu
from texq_engine.utils.logging_config import ROOT_LOGGER


@pytest.fixture(autouse=True)
def _reset_logging():
    yield
    logger = logging.getLogger(ROOT_LOGGER)
    for h in list(logger.handlers):
        h.close()
        logger.removeHandler(h)
    logger.setLevel(logging.NOTSET)


def _write(tmp_path, d):
    path = tmp_path / "circuit.json"
    path.write_text(json.dumps(d, ensure_ascii=False), encoding="utf-8")
    return path


@requires_gpu
def test_run_circuit_prints_probabilities(tmp_path, capsys):
    assert run_circuit.main([str(_write(tmp_path, bell_2q()))]) == 0
    out = capsys.readouterr().out
    assert "     00     0.500000" in out
    assert "     11     0.500000" in out
    assert "     01 " not in out


@requires_gpu
def test_run_circuit_byte_pixels(tmp_path, capsys):
    path = _write(tmp_path, {"cols": [["X"]]})
    assert run_circuit.main([str(path), "--pixel-type", "unsigned_byte"]) == 0
    assert "1.000000" in capsys.readouterr().out


@requires_gpu
def test_run_circuit_reports_failure(tmp_path, capsys):
    assert run_circuit.main([str(_write(tmp_path, error_injection()))]) == 1
    assert "FAILED" in capsys.readouterr().out


def test_run_circuit_bad_file(tmp_path):
    path = tmp_path / "bad.json"
    path.write_text("{not json", encoding="utf-8")
    assert run_circuit.main([str(path)]) == 2


@requires_gpu
def test_kernel_bench(capsys):
    kernel_bench.bench_kernel(n_qubits=4, reps=1)
    out = capsys.readouterr().out
    for name in kernel_bench.KERNELS:
        assert name in out


@requires_gpu
def test_run_circuit_reports_post_selection_survival(tmp_path, capsys):
    assert run_circuit.main([str(_write(tmp_path, post_selected_plus()))]) == 0
    out = capsys.readouterr().out
    assert "      0     0.500000" in out
    assert "(post-selection survival rate 0.500000)" in out


@requires_gpu
def test_run_circuit_survival_line_only_after_post_selection(tmp_path, capsys):
    assert run_circuit.main([str(_write(tmp_path, bell_2q()))]) == 0
    assert "survival" not in capsys.readouterr().out
