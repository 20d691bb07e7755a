"""Evaluate a JSON circuit file and print its output probabilities.

    python -m texq_engine.bench.run_circuit circuit.json [--time T] [--pixel-type unsigned_byte]
"""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from texq_engine.circuit.io import load_circuit
from texq_engine.config import EngineConfig
from texq_engine.errors import CircuitError, GpuFault
from texq_engine.gpu.resources import ResourceManager
from texq_engine.gpu.texture import PixelType
from texq_engine.runner.evaluator import CircuitEvaluator
from texq_engine.utils.logging_config import get_logger, setup_logging

# under the package logger even when run as __main__
log = get_logger(__name__)


def _parse_args(argv):
    p = argparse.ArgumentParser(prog="texq_engine.bench.run_circuit",
                                description=__doc__.splitlines()[0])
    p.add_argument("circuit", type=Path, help="circuit JSON file")
    p.add_argument("--time", type=float, default=None, help="time fed to varying gates")
    p.add_argument("--pixel-type", choices=[t.value for t in PixelType], default=None)
    p.add_argument("--threshold", type=float, default=1e-9,
                   help="hide outcomes below this probability")
    p.add_argument("--log-file", type=Path, default=None)
    p.add_argument("-v", "--verbose", action="store_true")
    return p.parse_args(argv)


def main(argv=None) -> int:
    args = _parse_args(argv)
    config = EngineConfig.from_env()
    if args.pixel_type:
        config.pixel_type = PixelType(args.pixel_type)
    if args.verbose:
        config.log_level = logging.DEBUG
    if args.log_file:
        config.log_file = args.log_file
    setup_logging(level=config.log_level, log_file=config.log_file)

    try:
        circuit = load_circuit(args.circuit.read_text(encoding="utf-8"))
        evaluator = CircuitEvaluator(ResourceManager(config))
        result = evaluator.evaluate(circuit, time=args.time)
    except CircuitError as e:
        log.error("%s: %s", args.circuit, e)
        return 2
    except GpuFault as e:
        log.error("GPU failure: %s", e)
        return 3
    if not result.ok:
        print(f"FAILED: {result.failure}")
        return 1

    n = result.n_qubits
    print(f"{'outcome':>{max(n, 7)}} {'probability':>12}")
    for i, p in enumerate(result.probabilities()):
        if p >= args.threshold:
            # little-endian: wire 0 is the rightmost character
            print(f"{i:0{n}b}".rjust(max(n, 7)) + f" {p:>12.6f}")
    if result.survival_rate < 1 - 1e-6:
        print(f"(post-selection survival rate {result.survival_rate:.6f})")
    print(f"({result.passes_run} passes at t={result.time})")
    return 0


if __name__ == "__main__":
    sys.exit(main())
