"""Benchmark: per-kernel pass throughput on the texture pipeline."""
from __future__ import annotations

import time

import numpy as np

from texq_engine.gpu.resources import ResourceManager
from texq_engine.kernel import gate_shaders, matrices
from texq_engine.runner.pipeline import AmplitudeState, PipelineExecutor

KERNELS = {
    "matrix(H)": lambda val, con, bit: gate_shaders.matrix_operation(val, con, bit, matrices.H()),
    "swap": lambda val, con, bit: gate_shaders.swap(val, con, bit, bit + 1),
    "cycle_bits(4)": lambda val, con, bit: gate_shaders.cycle_bits(val, con, bit, 4),
    "offset(+1, 4)": lambda val, con, bit: gate_shaders.offset_by_constant(val, con, bit, 4, 1),
    "qft_step(4, 0)": lambda val, con, bit: gate_shaders.fourier_transform_step(val, con, bit, 4, 0),
    "phase_gradient(4)": lambda val, con, bit: gate_shaders.phase_gradient(val, con, bit, 4),
}


def _bench(executor, state, make_pass, reps):
    # warm up
    executor.execute(state, [make_pass]).release()
    t0 = time.perf_counter()
    for _ in range(reps - 1):
        executor.execute(state, [make_pass]).release()
    with executor.execute(state, [make_pass]) as out:
        out.pixels()  # readback waits for the queued passes
    dt = time.perf_counter() - t0
    return reps * (1 << state.n_qubits) / dt / 1e6  # Mamp/s


def bench_kernel(n_qubits: int = 16, reps: int = 10):
    resources = ResourceManager()
    context = resources.create_context("bench")
    executor = PipelineExecutor(resources, context)
    rng = np.random.default_rng(7)
    amps = rng.normal(size=1 << n_qubits) + 1j * rng.normal(size=1 << n_qubits)
    amps /= np.linalg.norm(amps)

    print(f"n_qubits = {n_qubits}  ({1 << n_qubits} amplitudes)")
    print(f"{'kernel':<20} {'Mamp/s':>8}")
    print("-" * 30)
    with AmplitudeState.from_amplitudes(amps, resources, context) as state:
        for name, make_pass in KERNELS.items():
            tp = _bench(executor, state, make_pass, reps)
            print(f"{name:<20} {tp:>8.2f}")
    print()
    resources.release_all(context)


if __name__ == "__main__":
    for n in [12, 14, 16]:
        bench_kernel(n)
