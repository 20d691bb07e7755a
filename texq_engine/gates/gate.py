"""Gate definitions, the builder that assembles them, and span-indexed families.

A GateDefinition's effect comes from exactly one of:
  - a known (static) matrix
  - a matrix function of time
  - an ordered tuple of shader passes, or a function of time returning one
or from none of them when the gate promises to have no net effect
(controls, measurement, spacer, swap halves).
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np

from texq_engine.kernel import gate_shaders
from texq_engine.kernel.shaders import ShaderPass

MatrixFunction = Callable[[float], np.ndarray]
PassesFunction = Callable[[float], tuple]

DEFAULT_DRAWER = "default"


def _frozen(matrix) -> np.ndarray:
    m = np.array(matrix, dtype=np.complex128, copy=True)
    m.setflags(write=False)
    return m


def matrix_pass(matrix: np.ndarray) -> ShaderPass:
    """A pass applying `matrix` to the wires starting at the gate's first bit."""
    frozen = _frozen(matrix)

    def make(val, controls, bit):
        return gate_shaders.matrix_operation(val, controls, bit, frozen)

    return make


@dataclass(frozen=True, eq=False)
class GateDefinition:
    symbol: str
    title: str
    blurb: str
    serialized_id: str
    height: int = 1
    known_matrix: Optional[np.ndarray] = None
    matrix_function: Optional[MatrixFunction] = None
    custom_passes: Optional[tuple] = None
    custom_passes_function: Optional[PassesFunction] = None
    stable_duration: float = math.inf
    no_net_effect: bool = False
    only_permutes_and_phases: bool = False
    is_swap_half: bool = False
    control_value: Optional[bool] = None
    drawer_id: str = DEFAULT_DRAWER
    adjoint_id: Optional[str] = None

    def __repr__(self) -> str:
        return f"GateDefinition({self.serialized_id!r}, height={self.height})"

    # ── effect ───────────────────────────────────────────────────────

    def is_stable(self) -> bool:
        """True when the gate's effect does not depend on time."""
        return math.isinf(self.stable_duration)

    def is_control(self) -> bool:
        return self.control_value is not None

    def has_known_matrix(self) -> bool:
        return self.known_matrix is not None or self.matrix_function is not None

    def matrix_at(self, time: float = 0.0) -> Optional[np.ndarray]:
        if self.known_matrix is not None:
            return self.known_matrix
        if self.matrix_function is not None:
            return _frozen(self.matrix_function(time))
        return None

    def passes_at(self, time: float = 0.0) -> tuple:
        """The shader passes implementing this gate at `time`."""
        if self.custom_passes is not None:
            return self.custom_passes
        if self.custom_passes_function is not None:
            return tuple(self.custom_passes_function(time))
        if self.no_net_effect or self.is_swap_half:
            return ()
        return (matrix_pass(self.matrix_at(time)),)


class GateBuilder:
    """Accumulates gate properties; `.gate` validates and freezes them."""

    def __init__(self):
        self._fields: dict = {"blurb": "", "title": ""}

    def set_serialized_id(self, serialized_id: str) -> "GateBuilder":
        self._fields["serialized_id"] = serialized_id
        return self

    def set_symbol(self, symbol: str) -> "GateBuilder":
        self._fields["symbol"] = symbol
        return self

    def set_serialized_id_and_symbol(self, text: str) -> "GateBuilder":
        return self.set_serialized_id(text).set_symbol(text)

    def set_title(self, title: str) -> "GateBuilder":
        self._fields["title"] = title
        return self

    def set_blurb(self, blurb: str) -> "GateBuilder":
        self._fields["blurb"] = blurb
        return self

    def set_height(self, height: int) -> "GateBuilder":
        self._fields["height"] = height
        return self

    def set_known_matrix(self, matrix: Optional[np.ndarray]) -> "GateBuilder":
        if matrix is None:
            self._fields.pop("known_matrix", None)
        else:
            self._fields["known_matrix"] = _frozen(matrix)
        return self

    def set_matrix_function(self, fn: MatrixFunction) -> "GateBuilder":
        self._fields["matrix_function"] = fn
        return self

    def set_custom_passes(self, passes) -> "GateBuilder":
        self._fields["custom_passes"] = tuple(passes)
        return self

    def set_custom_passes_function(self, fn: PassesFunction) -> "GateBuilder":
        self._fields["custom_passes_function"] = fn
        return self

    def set_stable_duration(self, duration: float) -> "GateBuilder":
        self._fields["stable_duration"] = duration
        return self

    def mark_as_stable(self) -> "GateBuilder":
        return self.set_stable_duration(math.inf)

    def promise_has_no_net_effect(self) -> "GateBuilder":
        self._fields["no_net_effect"] = True
        return self

    def mark_as_only_permuting_and_phasing(self) -> "GateBuilder":
        self._fields["only_permutes_and_phases"] = True
        return self

    def mark_as_swap_half(self) -> "GateBuilder":
        self._fields["is_swap_half"] = True
        return self

    def set_control_value(self, value: bool) -> "GateBuilder":
        self._fields["control_value"] = value
        return self.promise_has_no_net_effect()

    def set_drawer_id(self, drawer_id: str) -> "GateBuilder":
        self._fields["drawer_id"] = drawer_id
        return self

    def set_adjoint_id(self, adjoint_id: str) -> "GateBuilder":
        self._fields["adjoint_id"] = adjoint_id
        return self

    @property
    def gate(self) -> GateDefinition:
        f = dict(self._fields)
        if not f.get("serialized_id"):
            raise ValueError("gate needs a serialized id")
        f.setdefault("symbol", f["serialized_id"])
        height = f.setdefault("height", 1)
        if height < 1:
            raise ValueError(f"{f['serialized_id']}: height must be positive, got {height}")

        # At most one matrix source and one pass source. With both, the
        # passes implement the gate and the matrix describes it.
        for pair in (("known_matrix", "matrix_function"),
                     ("custom_passes", "custom_passes_function")):
            if all(f.get(k) is not None for k in pair):
                raise ValueError(f"{f['serialized_id']}: conflicting effect sources {pair}")
        sources = [k for k in ("known_matrix", "matrix_function", "custom_passes",
                               "custom_passes_function") if f.get(k) is not None]
        if not sources and not f.get("no_net_effect") and not f.get("is_swap_half"):
            raise ValueError(f"{f['serialized_id']}: gate has no effect")

        m = f.get("known_matrix")
        if m is not None and not f.get("is_swap_half"):
            expected = 1 << height
            if m.shape != (expected, expected):
                raise ValueError(
                    f"{f['serialized_id']}: matrix shape {m.shape} does not fit height {height}")
        if f.get("matrix_function") is not None or f.get("custom_passes_function") is not None:
            f.setdefault("stable_duration", 0.0)
        return GateDefinition(**f)


class GateFamily:
    """span -> GateDefinition over an inclusive span range, memoised per span."""

    def __init__(self, min_span: int, max_span: int,
                 maker: Callable[[int], GateDefinition]):
        if not 1 <= min_span <= max_span:
            raise ValueError(f"bad span range {min_span}..{max_span}")
        self.min_span = min_span
        self.max_span = max_span
        self._maker = maker
        self._cache: dict[int, GateDefinition] = {}

    @property
    def spans(self) -> range:
        return range(self.min_span, self.max_span + 1)

    def of_size(self, span: int) -> GateDefinition:
        gate = self._cache.get(span)
        if gate is not None:
            return gate
        if span not in self.spans:
            raise ValueError(f"span {span} outside {self.min_span}..{self.max_span}")
        gate = self._maker(span)
        for other in self._cache.values():
            if other.serialized_id == gate.serialized_id:
                raise ValueError(
                    f"span {span} reuses serialized id {gate.serialized_id!r}")
        self._cache[span] = gate
        return gate

    @property
    def all(self) -> list[GateDefinition]:
        return [self.of_size(span) for span in self.spans]


def generate_family(min_span: int, max_span: int,
                    maker: Callable[[int], GateDefinition]) -> GateFamily:
    return GateFamily(min_span, max_span, maker)
