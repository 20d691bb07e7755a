"""Circuit evaluator: columns of gates -> shader passes -> amplitudes.

Per column:
  - control (•) and anti-control (◦) gates build the column's ControlMask
  - exactly two swap halves form a swap; any other count is ignored
  - every other gate contributes its passes at time t, run with
    PassArgs(controls, bit=wire, time=t)
  - gates with no net effect (measurement, spacer, placeholders) are skipped

Evaluation faults (error injection) end the evaluation early and are
reported in EvaluationResult.failure.  GpuFault propagates, except a
recovered context loss, which restarts the evaluation once.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

from texq_engine.circuit.io import Circuit
from texq_engine.config import EngineConfig
from texq_engine.errors import CircuitError, ContextLostFault, EvaluationFault
from texq_engine.gpu.context import RenderContext
from texq_engine.gpu.resources import ResourceManager
from texq_engine.kernel import gate_shaders
from texq_engine.kernel.shaders import ControlMask
from texq_engine.runner.pipeline import AmplitudeState, PassArgs, PipelineExecutor

log = logging.getLogger(__name__)


@dataclass
class EvaluationResult:
    n_qubits: int
    time: float
    amplitudes: Optional[np.ndarray] = None
    passes_run: int = 0
    failure: Optional[EvaluationFault] = None
    restarts: int = 0

    @property
    def ok(self) -> bool:
        return self.failure is None

    def probabilities(self) -> np.ndarray:
        if self.amplitudes is None:
            raise ValueError(f"evaluation failed: {self.failure}")
        return np.abs(self.amplitudes) ** 2

    @property
    def survival_rate(self) -> float:
        """Squared norm of the final state; below 1 after post-selection."""
        return float(self.probabilities().sum())


def column_controls(col) -> ControlMask:
    controls = ControlMask.none()
    for wire, gate in enumerate(col):
        if gate is not None and gate.is_control():
            controls = controls.and_bit(wire, gate.control_value)
    return controls


def column_steps(col, time: float, c: int = 0) -> list:
    """(passes, PassArgs) steps for one column at `time`."""
    controls = column_controls(col)
    steps = []

    swap_wires = [w for w, g in enumerate(col) if g is not None and g.is_swap_half]
    if len(swap_wires) == 2:
        a, b = swap_wires

        def swap_pass(val, con, bit):
            return gate_shaders.swap(val, con, a, b)

        steps.append(((swap_pass,), PassArgs(controls, a, time)))
    elif swap_wires:
        log.warning("col %d: %d swap half(s) do not pair up, ignoring them",
                    c, len(swap_wires))

    for wire, gate in enumerate(col):
        if gate is None or gate.is_control() or gate.is_swap_half or gate.no_net_effect:
            continue
        passes = gate.passes_at(time)
        if passes:
            steps.append((passes, PassArgs(controls, wire, time)))
    return steps


class CircuitEvaluator:
    """Runs circuits on one rendering context."""

    def __init__(self, resources: Optional[ResourceManager] = None,
                 context: Optional[RenderContext] = None,
                 config: Optional[EngineConfig] = None):
        if resources is None:
            resources = ResourceManager(config) if config is not None else ResourceManager()
        self.resources = resources
        self.config = resources.config
        self.context = context if context is not None else resources.create_context("evaluator")
        self.executor = PipelineExecutor(self.resources, self.context)

    def _check_fits(self, circuit: Circuit) -> int:
        n = circuit.wire_count
        if n > self.config.qubit_capacity:
            raise CircuitError(
                f"{n} qubits exceed the texture capacity of {self.config.qubit_capacity}")
        for c, wire, gate in circuit.gates():
            if wire + gate.height > n:
                raise CircuitError(
                    f"col[{c}][{wire}]: {gate.serialized_id} runs past wire {n - 1}")
        return n

    def evaluate(self, circuit: Circuit, time: Optional[float] = None,
                 initial: Optional[np.ndarray] = None) -> EvaluationResult:
        """Evaluate `circuit` at `time` starting from |0…0⟩ (or `initial`).

        A context loss that was already recovered from (the context is usable
        again) restarts the evaluation once from the initial state; a second
        loss, or a context that stays lost, raises ContextLostFault.
        """
        t = self.config.default_time if time is None else time
        n = self._check_fits(circuit)
        if initial is not None and len(initial) != 1 << n:
            raise CircuitError(f"initial state has {len(initial)} amplitudes, need {1 << n}")
        result = EvaluationResult(n_qubits=n, time=t)
        before = self.executor.passes_run

        for attempt in range(2):
            try:
                result.amplitudes = self._run(circuit, n, t, initial)
            except ContextLostFault as e:
                if attempt or self.context.is_context_lost():
                    raise
                log.warning("evaluation at t=%s lost its textures (%s), restarting", t, e)
                result.restarts += 1
                continue
            except EvaluationFault as e:
                log.error("evaluation at t=%s failed: %s", t, e)
                result.failure = e
            break
        result.passes_run = self.executor.passes_run - before
        log.debug("evaluated %d columns on %d qubits in %d passes",
                  len(circuit.columns), n, result.passes_run)
        return result

    def _run(self, circuit: Circuit, n: int, t: float,
             initial: Optional[np.ndarray]) -> np.ndarray:
        if initial is None:
            state = AmplitudeState.zero(n, self.resources, self.context)
        else:
            state = AmplitudeState.from_amplitudes(initial, self.resources, self.context)

        current = state
        try:
            for c, col in enumerate(circuit.columns):
                steps = column_steps(col, t, c)
                if steps:
                    nxt = self.executor.run(current, steps)
                    if nxt is not current:
                        current.release()
                    current = nxt
            return current.amplitudes()
        finally:
            current.release()
            state.release()
