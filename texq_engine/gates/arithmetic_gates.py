"""Modular arithmetic gate families.

Increment/decrement and counting/uncounting act on a single register of
`span` wires.  Addition/subtraction split their `span` wires into an input
register (the lower floor(span/2) wires) and a target register (the rest).
All of them are permutations of the amplitude indices.
"""
from __future__ import annotations

import math

from texq_engine.gates.gate import GateBuilder, generate_family
from texq_engine.kernel import gate_shaders, matrices

# Variants at or above this span carry no matrix; their passes are the only
# description of their effect.
KNOWN_MATRIX_SPAN_LIMIT = 4


def _offset_family(prefix: str, symbol: str, title: str, blurb: str, delta: int,
                   adjoint_prefix: str):
    def make(span: int):
        builder = (GateBuilder()
                   .set_serialized_id(f"{prefix}{span}")
                   .set_symbol(symbol)
                   .set_title(title)
                   .set_blurb(blurb)
                   .set_height(span)
                   .set_adjoint_id(f"{adjoint_prefix}{span}")
                   .mark_as_only_permuting_and_phasing()
                   .set_custom_passes([
                       lambda val, con, bit: gate_shaders.offset_by_constant(
                           val, con, bit, span, delta)]))
        if span < KNOWN_MATRIX_SPAN_LIMIT:
            builder.set_known_matrix(matrices.offset(span, delta))
        return builder.gate

    return generate_family(1, 16, make)


IncrementFamily = _offset_family(
    "inc", "+1", "Increment Gate", "Adds 1 to the little-endian number represented by a block of qubits.",
    +1, "dec")

DecrementFamily = _offset_family(
    "dec", "−1", "Decrement Gate", "Subtracts 1 from the little-endian number represented by a block of qubits.",
    -1, "inc")


def _addition_family(prefix: str, symbol: str, title: str, blurb: str, factor: int,
                     adjoint_prefix: str):
    def make(span: int):
        input_span = span // 2
        target_span = span - input_span

        def add_pass(val, con, bit):
            return gate_shaders.add_register(
                val, con, bit + input_span, target_span, bit, factor, input_span)

        builder = (GateBuilder()
                   .set_serialized_id(f"{prefix}{span}")
                   .set_symbol(symbol)
                   .set_title(title)
                   .set_blurb(blurb)
                   .set_height(span)
                   .set_adjoint_id(f"{adjoint_prefix}{span}")
                   .mark_as_only_permuting_and_phasing()
                   .set_custom_passes([add_pass]))
        if span < KNOWN_MATRIX_SPAN_LIMIT:
            builder.set_known_matrix(matrices.addition(input_span, target_span, factor))
        return builder.gate

    return generate_family(2, 16, make)


AdditionFamily = _addition_family(
    "add", "b+=a", "Addition Gate",
    "Adds the lower half of the block into the upper half.", +1, "sub")

SubtractionFamily = _addition_family(
    "sub", "b-=a", "Subtraction Gate",
    "Subtracts the lower half of the block out of the upper half.", -1, "add")


def counting_offset(span: int, time: float) -> int:
    """How far a counting gate has advanced at `time` (one full cycle per unit time)."""
    return math.floor((time % 1.0) * (1 << span))


def _counting_family(prefix: str, symbol: str, title: str, blurb: str, sign: int,
                     adjoint_prefix: str):
    def make(span: int):
        def passes(t):
            delta = sign * counting_offset(span, t)
            return (lambda val, con, bit: gate_shaders.offset_by_constant(
                val, con, bit, span, delta),)

        builder = (GateBuilder()
                   .set_serialized_id(f"{prefix}{span}")
                   .set_symbol(symbol)
                   .set_title(title)
                   .set_blurb(blurb)
                   .set_height(span)
                   .set_adjoint_id(f"{adjoint_prefix}{span}")
                   .mark_as_only_permuting_and_phasing()
                   .set_custom_passes_function(passes))
        if span < KNOWN_MATRIX_SPAN_LIMIT:
            builder.set_matrix_function(
                lambda t: matrices.offset(span, sign * counting_offset(span, t)))
        return builder.set_stable_duration(1.0 / (1 << span)).gate

    return generate_family(1, 16, make)


CountingFamily = _counting_family(
    "Counting", "+⌈t⌉", "Counting Gate",
    "Adds an increasing little-endian count into a block of qubits.", +1, "Uncounting")

UncountingFamily = _counting_family(
    "Uncounting", "-⌈t⌉", "Down Counting Gate",
    "Subtracts an increasing little-endian count from a block of qubits.", -1, "Counting")


FAMILIES = {
    "inc": IncrementFamily,
    "dec": DecrementFamily,
    "add": AdditionFamily,
    "sub": SubtractionFamily,
    "Counting": CountingFamily,
    "Uncounting": UncountingFamily,
}
