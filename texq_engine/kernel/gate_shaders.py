"""Kernel library: every circuit operation as a WGSL fragment program.

Each function takes (val, controls, bit, ...) and returns a ConfiguredShader;
`val` is the input texture, `bit` the first operand qubit.  Indices follow
the little-endian convention (qubit q = bit q of the amplitude index).

Permutation kernels (swap, cycle_bits, offset_by_constant, add_register) are
gathers: out[i] = in[src(i)], so pixel values move without arithmetic.
Register arithmetic is done in u32 with the inverse shift or offset
precomputed modulo 2^span on the host.
"""
from __future__ import annotations

import cmath
import math

import numpy as np

from texq_engine.errors import ErrorInjectionFault
from texq_engine.gpu.texture import GpuTexture
from texq_engine.kernel.shaders import (
    AMPLITUDE, GATHER, TABLE_SIZE, ConfiguredShader, ControlMask, ShaderProgram,
)

TAU = 2 * math.pi

# largest register a dense matrix pass accepts (the matrix lives in the uniform table)
MAX_MATRIX_QUBITS = 3


def _check_span(bit: int, span: int) -> None:
    if bit < 0 or span < 1:
        raise ValueError(f"bad operand range: bit={bit} span={span}")


# ── permutations ─────────────────────────────────────────────────────

SWAP = ShaderProgram("swap", GATHER, (("bit_a", "u32"), ("bit_b", "u32")), """
fn source_index(i: u32) -> u32 {
    let differ = ((i >> params.bit_a) ^ (i >> params.bit_b)) & 1u;
    return i ^ (differ << params.bit_a) ^ (differ << params.bit_b);
}
""")

CYCLE_BITS = ShaderProgram("cycle_bits", GATHER,
                           (("bit", "u32"), ("span", "u32"), ("shift", "u32")), """
fn source_index(i: u32) -> u32 {
    let r = sub_value(i, params.bit, params.span);
    let s = params.shift;
    let src = (r >> s) | (r << ((params.span - s) & 31u));
    return with_sub_value(i, params.bit, params.span, src);
}
""")

OFFSET_BY_CONSTANT = ShaderProgram("offset_by_constant", GATHER,
                                   (("bit", "u32"), ("span", "u32"), ("back", "u32")), """
fn source_index(i: u32) -> u32 {
    let r = sub_value(i, params.bit, params.span);
    return with_sub_value(i, params.bit, params.span, r + params.back);
}
""")

ADD_REGISTER = ShaderProgram("add_register", GATHER, (
    ("bit", "u32"), ("span", "u32"), ("input_bit", "u32"), ("input_span", "u32"),
    ("back_factor", "u32"),
), """
fn source_index(i: u32) -> u32 {
    let y = sub_value(i, params.bit, params.span);
    let x = sub_value(i, params.input_bit, params.input_span);
    return with_sub_value(i, params.bit, params.span, y + params.back_factor * x);
}
""")


def swap(val: GpuTexture, controls: ControlMask, bit_a: int, bit_b: int) -> ConfiguredShader:
    """Exchange the values of two qubits."""
    if bit_a == bit_b:
        raise ValueError(f"swap needs two distinct bits, got {bit_a} twice")
    controls.check_disjoint(bit_a, 1)
    controls.check_disjoint(bit_b, 1)
    return ConfiguredShader(SWAP, val, controls, {"bit_a": bit_a, "bit_b": bit_b})


def cycle_bits(val: GpuTexture, controls: ControlMask, bit: int, span: int,
               shift: int = 1) -> ConfiguredShader:
    """Rotate the register left by `shift` (negative rotates right)."""
    _check_span(bit, span)
    controls.check_disjoint(bit, span)
    return ConfiguredShader(CYCLE_BITS, val, controls,
                            {"bit": bit, "span": span, "shift": shift % span})


def offset_by_constant(val: GpuTexture, controls: ControlMask, bit: int, span: int,
                       offset: int) -> ConfiguredShader:
    """x -> x + offset (mod 2^span)."""
    _check_span(bit, span)
    controls.check_disjoint(bit, span)
    return ConfiguredShader(OFFSET_BY_CONSTANT, val, controls,
                            {"bit": bit, "span": span, "offset": offset,
                             "back": (-offset) % (1 << span)})


def add_register(val: GpuTexture, controls: ControlMask, bit: int, span: int,
                 input_bit: int, factor: int = 1,
                 input_span: int | None = None) -> ConfiguredShader:
    """target += factor * input (mod 2^span).

    Target register is [bit, bit+span), input register
    [input_bit, input_bit+input_span); input_span defaults to span.
    """
    if input_span is None:
        input_span = span
    _check_span(bit, span)
    _check_span(input_bit, input_span)
    if bit < input_bit + input_span and input_bit < bit + span:
        raise ValueError(
            f"target [{bit}, {bit + span}) overlaps input [{input_bit}, {input_bit + input_span})")
    controls.check_disjoint(bit, span)
    controls.check_disjoint(input_bit, input_span)
    return ConfiguredShader(ADD_REGISTER, val, controls,
                            {"bit": bit, "span": span, "input_bit": input_bit,
                             "input_span": input_span, "factor": factor,
                             "back_factor": (-factor) % (1 << span)})


# ── phases ───────────────────────────────────────────────────────────

PHASE_GRADIENT = ShaderProgram("phase_gradient", AMPLITUDE,
                               (("bit", "u32"), ("span", "u32")), """
fn new_amp(i: u32) -> vec2<f32> {
    let x = sub_value(i, params.bit, params.span);
    var a = read_amp(i);
    for (var j = 0u; j < params.span; j = j + 1u) {
        if (((x >> j) & 1u) != 0u) {
            a = cmul(a, table_entry(j));
        }
    }
    return a;
}
""", uses_table=True)

FOURIER_TRANSFORM_STEP = ShaderProgram("fourier_transform_step", AMPLITUDE, (
    ("bit", "u32"), ("span", "u32"), ("stage", "u32"), ("inverse", "u32"),
), """
fn new_amp(i: u32) -> vec2<f32> {
    let q = params.bit + params.stage;
    var twist = vec2<f32>(1.0, 0.0);
    for (var j = params.stage + 1u; j < params.span; j = j + 1u) {
        if (((i >> (params.bit + j)) & 1u) != 0u) {
            twist = cmul(twist, table_entry(j));
        }
    }
    let i0 = i & ~(1u << q);
    let a = read_amp(i0);
    let b = read_amp(i0 | (1u << q));
    let on = ((i >> q) & 1u) != 0u;
    if (params.inverse != 0u) {
        let t = cmul(twist, b);
        if (on) {
            return (a - t) * S2;
        }
        return (a + t) * S2;
    }
    if (on) {
        return cmul(twist, a - b) * S2;
    }
    return (a + b) * S2;
}
""", uses_table=True)


def _check_table_span(span: int) -> None:
    if span > TABLE_SIZE:
        raise ValueError(f"register of {span} qubits exceeds the {TABLE_SIZE}-entry phase table")


def phase_gradient(val: GpuTexture, controls: ControlMask, bit: int, span: int,
                   factor: float = 1.0) -> ConfiguredShader:
    """Multiply |x> by exp(i*pi*factor*x / 2^span)."""
    _check_span(bit, span)
    _check_table_span(span)
    controls.check_disjoint(bit, span)
    # phase of x is the product of the phases of its set bits
    table = tuple(cmath.exp(1j * math.pi * factor * (1 << j) / (1 << span)) for j in range(span))
    return ConfiguredShader(PHASE_GRADIENT, val, controls,
                            {"bit": bit, "span": span, "factor": factor}, table)


def fourier_transform_step(val: GpuTexture, controls: ControlMask, bit: int, span: int,
                           step: int, inverse: bool = False) -> ConfiguredShader:
    """One stage of the decomposed QFT on register [bit, bit+span).

    Stage `step` acts on qubit q = bit+step: a Hadamard fused with phases
    tau * x_j / 2^(j-step+1) from the untouched higher qubits j > step.
    After the bit-reversal swaps, stages 0..span-1 in order give
    F[r][c] = 2^(-span/2) exp(i tau r c / 2^span).
    `inverse` gives the adjoint stage.
    """
    _check_span(bit, span)
    if not 0 <= step < span:
        raise ValueError(f"step {step} outside span {span}")
    _check_table_span(span)
    controls.check_disjoint(bit, span)
    sign = -1 if inverse else 1
    table = tuple(cmath.exp(sign * 1j * TAU / (1 << (j - step + 1))) if j > step else 1
                  for j in range(span))
    return ConfiguredShader(FOURIER_TRANSFORM_STEP, val, controls,
                            {"bit": bit, "span": span, "step": step, "stage": step,
                             "inverse": int(inverse)}, table)


# ── dense matrices ───────────────────────────────────────────────────

MATRIX_OPERATION = ShaderProgram("matrix_operation", AMPLITUDE,
                                 (("bit", "u32"), ("span", "u32")), """
fn new_amp(i: u32) -> vec2<f32> {
    let dim = 1u << params.span;
    let r = sub_value(i, params.bit, params.span);
    let base = with_sub_value(i, params.bit, params.span, 0u);
    var acc = vec2<f32>(0.0, 0.0);
    for (var c = 0u; c < dim; c = c + 1u) {
        acc = acc + cmul(table_entry(r * dim + c), read_amp(base | (c << params.bit)));
    }
    return acc;
}
""", uses_table=True)


def matrix_operation(val: GpuTexture, controls: ControlMask, bit: int,
                     matrix: np.ndarray) -> ConfiguredShader:
    """Apply a dense 2^k x 2^k matrix (k <= 3) to the k qubits starting at `bit`.

    Row/column r of the matrix is the register value r (qubit `bit` = LSB).
    """
    m = np.asarray(matrix, dtype=np.complex128)
    dim = m.shape[0]
    if m.ndim != 2 or m.shape[1] != dim or dim < 2 or dim & (dim - 1):
        raise ValueError(f"matrix must be square with power-of-two size, got {m.shape}")
    span = dim.bit_length() - 1
    if span > MAX_MATRIX_QUBITS:
        raise ValueError(
            f"matrix_operation takes at most {MAX_MATRIX_QUBITS} qubits, got {span}")
    _check_span(bit, span)
    controls.check_disjoint(bit, span)
    return ConfiguredShader(MATRIX_OPERATION, val, controls,
                            {"bit": bit, "span": span}, tuple(m.reshape(-1)))


# ── non-physical / debugging ─────────────────────────────────────────

UNIVERSAL_NOT = ShaderProgram("universal_not", AMPLITUDE, (("bit", "u32"),), """
fn new_amp(i: u32) -> vec2<f32> {
    let p = read_amp(i ^ (1u << params.bit));
    let partner = vec2<f32>(p.x, -p.y);
    if (((i >> params.bit) & 1u) == 0u) {
        return partner;
    }
    return -partner;
}
""")


def universal_not(val: GpuTexture, controls: ControlMask, bit: int) -> ConfiguredShader:
    """Mirror the qubit through the Bloch sphere origin: (a, b) -> (b*, -a*).

    Anti-unitary; no physical device can do this.
    """
    controls.check_disjoint(bit, 1)
    return ConfiguredShader(UNIVERSAL_NOT, val, controls, {"bit": bit})


def error_injection(val: GpuTexture, controls: ControlMask, bit: int) -> ConfiguredShader:
    raise ErrorInjectionFault("Applied an error injection gate", {"qubit": bit})


PROGRAMS = (SWAP, CYCLE_BITS, OFFSET_BY_CONSTANT, ADD_REGISTER,
            PHASE_GRADIENT, FOURIER_TRANSFORM_STEP, MATRIX_OPERATION, UNIVERSAL_NOT)
