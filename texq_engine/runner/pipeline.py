"""Pipeline executor: ordered shader passes over ping-pong textures.

Architecture:  state --pass 0--> tex A --pass 1--> tex B --pass 2--> tex A ...

  - Pass i+1 reads only pass i's output.
  - Intermediates come from the context's TexturePool and go back as soon
    as they are superseded, so a pass list never holds more than two pool
    textures at once.
  - The caller's input state is never written or released.
  - A state belongs to the context generation it was rendered in; after a
    context loss it can be released but not read or executed on.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Sequence

import numpy as np

from texq_engine.errors import ContextLostFault
from texq_engine.gpu.context import RenderContext
from texq_engine.gpu.resources import ResourceManager
from texq_engine.gpu.texture import (
    GpuTexture, PixelType, decode_pixels, encode_amplitudes, shape_for_qubits,
)
from texq_engine.kernel.shaders import ControlMask, ShaderPass

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class PassArgs:
    """Uniforms handed to every pass of one gate."""

    controls: ControlMask = field(default_factory=ControlMask.none)
    bit: int = 0
    time: float = 0.0


class AmplitudeState:
    """2^n amplitudes held in one texture of a rendering context."""

    def __init__(self, n_qubits: int, texture: GpuTexture,
                 resources: ResourceManager, context: RenderContext, pooled: bool = True):
        self.n_qubits = n_qubits
        self.texture = texture
        self.resources = resources
        self.context = context
        self.generation = context.generation
        self._pooled = pooled
        self._released = False

    # ── construction ─────────────────────────────────────────────────

    @classmethod
    def from_amplitudes(cls, amps: np.ndarray, resources: ResourceManager,
                        context: RenderContext,
                        pixel_type: PixelType | None = None) -> "AmplitudeState":
        amps = np.asarray(amps, dtype=np.complex128).ravel()
        n = len(amps).bit_length() - 1
        if len(amps) != 1 << n:
            raise ValueError(f"amplitude count {len(amps)} is not a power of two")
        pixel_type = pixel_type or resources.config.pixel_type
        w, h = shape_for_qubits(n)
        texture = resources.pool_for(context).take(w, h, pixel_type)
        resources.write_pixels(texture, encode_amplitudes(amps, pixel_type), context)
        return cls(n, texture, resources, context)

    @classmethod
    def zero(cls, n_qubits: int, resources: ResourceManager, context: RenderContext,
             pixel_type: PixelType | None = None) -> "AmplitudeState":
        """|0…0⟩."""
        amps = np.zeros(1 << n_qubits, dtype=np.complex128)
        amps[0] = 1.0
        return cls.from_amplitudes(amps, resources, context, pixel_type)

    # ── readback ─────────────────────────────────────────────────────

    def pixels(self) -> np.ndarray:
        self._check_live()
        return self.resources.read_pixels(self.texture, self.context)

    def amplitudes(self) -> np.ndarray:
        return decode_pixels(self.pixels(), self.texture.pixel_type)

    def probabilities(self) -> np.ndarray:
        return np.abs(self.amplitudes()) ** 2

    def norm(self) -> float:
        return float(np.sqrt(self.probabilities().sum()))

    # ── ownership ────────────────────────────────────────────────────

    @property
    def released(self) -> bool:
        return self._released

    @property
    def stale(self) -> bool:
        """True once the context was lost after this state was rendered."""
        return self.context.is_context_lost() or self.context.generation != self.generation

    def _check_live(self) -> None:
        if self._released:
            raise ValueError("amplitude state was already released")
        if self.stale:
            raise ContextLostFault("amplitude state was lost with its rendering context", {
                "n_qubits": self.n_qubits,
                "generation": self.generation,
                "context_generation": self.context.generation,
                "context": self.context.label,
            })

    def release(self) -> None:
        """Hand the texture back to the pool.  Idempotent."""
        if self._released:
            return
        self._released = True
        if self._pooled:
            self.resources.pool_for(self.context).give_back(self.texture)
        else:
            self.resources.release(self.texture, self.context)

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.release()

    def __repr__(self) -> str:
        return f"AmplitudeState(n_qubits={self.n_qubits}, texture={self.texture!r})"


class PipelineExecutor:
    """Runs ordered shader passes against amplitude states of one context."""

    def __init__(self, resources: ResourceManager, context: RenderContext):
        self.resources = resources
        self.context = context
        self.pool = resources.pool_for(context)
        self.passes_run = 0

    def execute(self, state: AmplitudeState, passes: Sequence[ShaderPass],
                args: PassArgs = PassArgs()) -> AmplitudeState:
        """Apply `passes` in order; returns a new state (or `state` if empty)."""
        state._check_live()
        if not passes:
            return state
        tex = state.texture
        current = state.texture
        try:
            for i, make_shader in enumerate(passes):
                shader = make_shader(current, args.controls, args.bit)
                target = self.pool.take(tex.width, tex.height, tex.pixel_type)
                try:
                    shader.render_to(target, self.resources, self.context)
                except Exception:
                    self.pool.give_back(target)
                    raise
                log.debug("pass %d %s %s -> %r", i, shader.name, shader.uniforms, target)
                if current is not state.texture:
                    self.pool.give_back(current)
                current = target
                self.passes_run += 1
        except Exception:
            if current is not state.texture:
                self.pool.give_back(current)
            raise
        return AmplitudeState(state.n_qubits, current, self.resources, self.context)

    def run(self, state: AmplitudeState,
            steps: Sequence[tuple[Sequence[ShaderPass], PassArgs]]) -> AmplitudeState:
        """Apply a sequence of (passes, args) steps, releasing superseded states."""
        current = state
        try:
            for passes, args in steps:
                nxt = self.execute(current, passes, args)
                if current is not state and nxt is not current:
                    current.release()
                current = nxt
        except Exception:
            if current is not state:
                current.release()
            raise
        return current
