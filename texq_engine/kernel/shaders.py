"""Shader plumbing shared by every kernel.

Every kernel is a WGSL fragment program drawn over the whole destination
texture, one invocation per pixel (pixel index i = amplitude index i).  A
ShaderProgram supplies only its kernel function; the shared prelude adds the
uniform block, pixel addressing, the byte codec and the control mask test:

  - pixels whose index fails the control mask are copied raw from the source
  - "gather" kernels define  fn source_index(i: u32) -> u32  and copy the raw
    source pixel from there, so permutations move bytes without arithmetic
  - "amplitude" kernels define  fn new_amp(i: u32) -> vec2<f32>  over decoded
    amplitudes (read_amp) and the result is encoded for the destination

Phase factors are precomputed on the host and passed in the uniform `table`
(complex entries, two per vec4), so the shaders need no trigonometry.
"""
from __future__ import annotations

import struct
from dataclasses import dataclass, field
from typing import Any, Callable

import numpy as np

from texq_engine.gpu.texture import GpuTexture, PixelType

GATHER = "gather"
AMPLITUDE = "amplitude"

# complex entries in the uniform table
TABLE_SIZE = 64

_FIELD_FORMATS = {"u32": "I", "i32": "i", "f32": "f"}

_PRELUDE = """
@group(0) @binding(0) var val: texture_2d<f32>;
@group(0) @binding(1) var<uniform> params: Params;

const S2: f32 = 0.7071067811865476;

@vertex
fn vs_main(@builtin(vertex_index) v: u32) -> @builtin(position) vec4<f32> {
    let xy = vec2<f32>(f32((v << 1u) & 2u), f32(v & 2u));
    return vec4<f32>(xy * 2.0 - 1.0, 0.0, 1.0);
}

fn read_pixel(i: u32) -> vec4<f32> {
    return textureLoad(val, vec2<i32>(i32(i % params.width), i32(i / params.width)), 0);
}

fn read_amp(i: u32) -> vec2<f32> {
    let p = read_pixel(i);
    if (params.byte_pixels != 0u) {
        return (round(p.xy * 255.0) - 128.0) / 127.0;
    }
    return p.xy;
}

fn encode_amp(a: vec2<f32>) -> vec4<f32> {
    if (params.byte_pixels != 0u) {
        let b = round(clamp(a, vec2<f32>(-1.0), vec2<f32>(1.0)) * 127.0) + 128.0;
        return vec4<f32>(b / 255.0, 0.0, 0.0);
    }
    return vec4<f32>(a, 0.0, 0.0);
}

fn cmul(a: vec2<f32>, b: vec2<f32>) -> vec2<f32> {
    return vec2<f32>(a.x * b.x - a.y * b.y, a.x * b.y + a.y * b.x);
}

fn span_mask(span: u32) -> u32 {
    return (1u << span) - 1u;
}

fn sub_value(i: u32, bit: u32, span: u32) -> u32 {
    return (i >> bit) & span_mask(span);
}

fn with_sub_value(i: u32, bit: u32, span: u32, value: u32) -> u32 {
    let m = span_mask(span);
    return (i & ~(m << bit)) | ((value & m) << bit);
}
"""

_TABLE_ENTRY = """
fn table_entry(k: u32) -> vec2<f32> {
    let pair = params.table[k / 2u];
    if ((k & 1u) == 0u) {
        return pair.xy;
    }
    return pair.zw;
}
"""

_MAIN = """
@fragment
fn fs_main(@builtin(position) pos: vec4<f32>) -> @location(0) vec4<f32> {
    let i = u32(pos.y) * params.width + u32(pos.x);
    if ((i & params.mask) != params.desired) {
        return read_pixel(i);
    }
    return %s;
}
"""


@dataclass(frozen=True)
class ShaderProgram:
    """One kernel's WGSL: uniform fields plus its kernel function."""

    name: str
    kind: str
    fields: tuple[tuple[str, str], ...]
    body: str
    uses_table: bool = False

    def __post_init__(self):
        if self.kind not in (GATHER, AMPLITUDE):
            raise ValueError(f"unknown shader kind {self.kind!r}")

    @property
    def wgsl(self) -> str:
        members = ["    width: u32,", "    mask: u32,", "    desired: u32,", "    byte_pixels: u32,"]
        members += [f"    {name}: {kind}," for name, kind in self.fields]
        if self.uses_table:
            members.append(f"    table: array<vec4<f32>, {TABLE_SIZE // 2}>,")
        parts = ["struct Params {", *members, "}", _PRELUDE]
        if self.uses_table:
            parts.append(_TABLE_ENTRY)
        parts.append(self.body)
        result = "read_pixel(source_index(i))" if self.kind == GATHER else "encode_amp(new_amp(i))"
        parts.append(_MAIN % result)
        return "\n".join(parts)

    def pack(self, width: int, controls: "ControlMask", pixel_type: PixelType,
             uniforms: dict[str, Any], table: tuple[complex, ...] = ()) -> bytes:
        """Uniform buffer contents matching the Params struct."""
        data = struct.pack("<4I", width, controls.mask, controls.desired,
                           int(pixel_type is PixelType.UNSIGNED_BYTE))
        for name, kind in self.fields:
            data += struct.pack("<" + _FIELD_FORMATS[kind], uniforms[name])
        if self.uses_table:
            if len(table) > TABLE_SIZE:
                raise ValueError(f"{self.name}: table of {len(table)} entries exceeds {TABLE_SIZE}")
            data += bytes(-len(data) % 16)
            entries = np.zeros((TABLE_SIZE, 2), dtype=np.float32)
            values = np.asarray(table, dtype=np.complex128)
            entries[:len(values), 0] = values.real
            entries[:len(values), 1] = values.imag
            data += entries.tobytes()
        return data + bytes(-len(data) % 16)


@dataclass(frozen=True)
class ControlMask:
    """Classical condition on amplitude indices: index & mask == desired."""

    mask: int = 0
    desired: int = 0

    def __post_init__(self):
        if self.mask < 0 or self.desired < 0:
            raise ValueError("control mask bits must be non-negative")
        if self.desired & ~self.mask:
            raise ValueError(
                f"desired bits {self.desired:#b} fall outside mask {self.mask:#b}")

    @classmethod
    def none(cls) -> "ControlMask":
        return cls(0, 0)

    @classmethod
    def from_bits(cls, on: tuple[int, ...] = (), off: tuple[int, ...] = ()) -> "ControlMask":
        """Mask requiring bits in `on` to be 1 and bits in `off` to be 0."""
        overlap = set(on) & set(off)
        if overlap:
            raise ValueError(f"bits {sorted(overlap)} cannot be both on and off")
        mask = desired = 0
        for b in on:
            mask |= 1 << b
            desired |= 1 << b
        for b in off:
            mask |= 1 << b
        return cls(mask, desired)

    def and_bit(self, bit: int, value: bool) -> "ControlMask":
        if self.mask & (1 << bit):
            raise ValueError(f"bit {bit} is already controlled")
        return ControlMask(self.mask | (1 << bit), self.desired | (int(value) << bit))

    def includes(self, bit: int) -> bool:
        return bool(self.mask & (1 << bit))

    def allows(self, index: np.ndarray) -> np.ndarray:
        return (np.asarray(index) & self.mask) == self.desired

    def check_disjoint(self, bit: int, span: int) -> None:
        """Raise if the operand range [bit, bit+span) overlaps a control bit."""
        operands = ((1 << span) - 1) << bit
        if self.mask & operands:
            raise ValueError(
                f"control bits {self.mask:#b} overlap operand bits {operands:#b}")


@dataclass(frozen=True)
class ConfiguredShader:
    """A program bound to its input texture, control mask and uniform values."""

    program: ShaderProgram
    source: GpuTexture
    controls: ControlMask
    uniforms: dict[str, Any] = field(default_factory=dict)
    table: tuple[complex, ...] = ()

    @property
    def name(self) -> str:
        return self.program.name

    def uniform_bytes(self, width: int, pixel_type: PixelType) -> bytes:
        return self.program.pack(width, self.controls, pixel_type, self.uniforms, self.table)

    def render_to(self, destination: GpuTexture, resources, context) -> None:
        if destination is self.source:
            raise ValueError(f"{self.name}: output texture aliases its input {destination!r}")
        if destination.size_key != self.source.size_key:
            raise ValueError(
                f"{self.name}: destination {destination!r} does not match source {self.source!r}")
        resources.render(self, destination, context)


# A shader pass turns (input texture, controls, first target bit) into a
# configured shader.  Gate definitions hold ordered tuples of these.
ShaderPass = Callable[[GpuTexture, ControlMask, int], ConfiguredShader]
