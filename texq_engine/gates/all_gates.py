"""Every gate the engine knows how to serialize, plus toolbox grouping data."""
from __future__ import annotations

from typing import Optional

import numpy as np

from texq_engine.gates import arithmetic_gates, post_selection_gates
from texq_engine.gates.gate import GateBuilder, GateDefinition, generate_family
from texq_engine.kernel import gate_shaders, matrices


MYSTERY_GATE_SYMBOL = "?"
KNOWN_MATRIX_SPAN_LIMIT = arithmetic_gates.KNOWN_MATRIX_SPAN_LIMIT


def _fixed(symbol: str, matrix: np.ndarray, title: str, blurb: str = "",
           adjoint: Optional[str] = None) -> GateDefinition:
    builder = (GateBuilder()
               .set_serialized_id_and_symbol(symbol)
               .set_title(title)
               .set_blurb(blurb)
               .set_known_matrix(matrix))
    if adjoint is not None:
        builder.set_adjoint_id(adjoint)
    return builder.gate


def _no_effect(symbol: str, title: str, blurb: str, drawer_id: str) -> GateBuilder:
    return (GateBuilder()
            .set_serialized_id_and_symbol(symbol)
            .set_title(title)
            .set_blurb(blurb)
            .set_drawer_id(drawer_id)
            .promise_has_no_net_effect())


class Special:
    Control = (_no_effect("•", "Control",
                          "Conditions on a qubit being ON.\n"
                          "Gates in the same column will only apply to states meeting the condition.",
                          "control")
               .set_control_value(True).gate)

    AntiControl = (_no_effect("◦", "Anti-Control",
                              "Conditions on a qubit being OFF.\n"
                              "Gates in the same column will only apply to states meeting the condition.",
                              "anti_control")
                   .set_control_value(False).gate)

    # Measurement is deferred: the simulation never collapses, so the
    # gate leaves the state vector untouched.
    Measurement = _no_effect("Measure", "Measurement Gate",
                             "Measures a wire's qubit along the Z axis.", "measurement").gate

    SwapHalf = (GateBuilder()
                .set_serialized_id_and_symbol("Swap")
                .set_title("Swap Gate [Half]")
                .set_blurb("Swaps the values of two qubits.\n"
                           "Place two swap gate halves in the same column to form a swap gate.")
                .set_known_matrix(np.array([[1, 0, 0, 0],
                                            [0, 0, 1, 0],
                                            [0, 1, 0, 0],
                                            [0, 0, 0, 1]]))
                .mark_as_swap_half()
                .mark_as_only_permuting_and_phasing()
                .set_drawer_id("swap_half")
                .gate)


class HalfTurns:
    H = _fixed("H", matrices.H(), "Hadamard Gate",
               "Creates simple superpositions.\nMaps ON to ON + OFF.\nMaps OFF to ON - OFF.", "H")
    X = _fixed("X", matrices.X(), "Pauli X Gate", "The NOT gate.\nToggles between ON and OFF.", "X")
    Y = _fixed("Y", matrices.Y(), "Pauli Y Gate", "A combination of the X and Z gates.", "Y")
    Z = _fixed("Z", matrices.Z(), "Pauli Z Gate",
               "The phase flip gate.\nNegates phases when the qubit is ON.", "Z")


class QuarterTurns:
    SqrtXForward = _fixed("X^½", matrices.from_pauli_rotation(0.25, 0, 0), "√X Gate",
                          "Principal square root of Not.", "X^-½")
    SqrtXBackward = _fixed("X^-½", matrices.from_pauli_rotation(-0.25, 0, 0), "X^-½ Gate",
                           "Adjoint square root of Not.", "X^½")
    SqrtYForward = _fixed("Y^½", matrices.from_pauli_rotation(0, 0.25, 0), "√Y Gate",
                          "Principal square root of Y.", "Y^-½")
    SqrtYBackward = _fixed("Y^-½", matrices.from_pauli_rotation(0, -0.25, 0), "Y^-½ Gate",
                           "Adjoint square root of Y.", "Y^½")
    SqrtZForward = _fixed("Z^½", matrices.from_pauli_rotation(0, 0, 0.25), "√Z Gate",
                          "Principal square root of Z.\nAlso known as the 'S' gate.", "Z^-½")
    SqrtZBackward = _fixed("Z^-½", matrices.from_pauli_rotation(0, 0, -0.25), "Z^-½ Gate",
                           "Adjoint square root of Z.", "Z^½")


_ROOT_SUFFIXES = {3: "⅓", 4: "¼", 8: "⅛", 16: "⅟₁₆"}
_ROOT_NAMES = {3: "third", 4: "fourth", 8: "eighth", 16: "sixteenth"}


def _roots(axis: str) -> dict[str, GateDefinition]:
    """Principal and adjoint 3rd, 4th, 8th and 16th roots of a Pauli gate."""
    index = "XYZ".index(axis)
    gates = {}
    for root, suffix in _ROOT_SUFFIXES.items():
        for sign, tail in ((1, ""), (-1, "i")):
            v = [0.0, 0.0, 0.0]
            v[index] = sign / (2 * root)
            symbol = f"{axis}^{'-' if sign < 0 else ''}{suffix}"
            partner = f"{axis}^{'' if sign < 0 else '-'}{suffix}"
            kind = "Principal" if sign > 0 else "Adjoint"
            gates[f"{axis}{root}{tail}"] = _fixed(
                symbol, matrices.from_pauli_rotation(*v), f"{symbol} Gate",
                f"{kind} {_ROOT_NAMES[root]} root of {axis}.", partner)
    return gates


OtherX = _roots("X")
OtherY = _roots("Y")
OtherZ = _roots("Z")


def _varying(symbol: str, title: str, blurb: str, fn, adjoint: str,
             stable_duration: float = 0.0) -> GateDefinition:
    return (GateBuilder()
            .set_serialized_id_and_symbol(symbol)
            .set_title(title)
            .set_blurb(blurb)
            .set_matrix_function(fn)
            .set_stable_duration(stable_duration)
            .set_adjoint_id(adjoint)
            .gate)


def _axis(name: str, amount: float) -> tuple[float, float, float]:
    v = [0.0, 0.0, 0.0]
    v["XYZ".index(name)] = amount
    return v[0], v[1], v[2]


class Powering:
    """X^t and friends: a half turn per unit of time, cycling every 2."""

    XForward = _varying("X^t", "X-Raising Gate (forward)", "Rotates around X over time.",
                        lambda t: matrices.from_pauli_rotation(*_axis("X", t / 2)), "X^-t")
    XBackward = _varying("X^-t", "X-Raising Gate (backward)", "Rotates backward around X over time.",
                         lambda t: matrices.from_pauli_rotation(*_axis("X", -t / 2)), "X^t")
    YForward = _varying("Y^t", "Y-Raising Gate (forward)", "Rotates around Y over time.",
                        lambda t: matrices.from_pauli_rotation(*_axis("Y", t / 2)), "Y^-t")
    YBackward = _varying("Y^-t", "Y-Raising Gate (backward)", "Rotates backward around Y over time.",
                         lambda t: matrices.from_pauli_rotation(*_axis("Y", -t / 2)), "Y^t")
    ZForward = _varying("Z^t", "Z-Raising Gate (forward)", "Rotates around Z over time.",
                        lambda t: matrices.from_pauli_rotation(*_axis("Z", t / 2)), "Z^-t")
    ZBackward = _varying("Z^-t", "Z-Raising Gate (backward)", "Rotates backward around Z over time.",
                         lambda t: matrices.from_pauli_rotation(*_axis("Z", -t / 2)), "Z^t")


class Exponentiating:
    """e^(∓iτtP) for the three Pauli operators P."""

    XForward = _varying("e^-iXt", "X-Exponentiating Gate (forward)",
                        "Right-handed exponentiation of X over time.",
                        lambda t: matrices.exp_pauli(*_axis("X", -t)), "e^iXt")
    XBackward = _varying("e^iXt", "X-Exponentiating Gate (backward)",
                         "Left-handed exponentiation of X over time.",
                         lambda t: matrices.exp_pauli(*_axis("X", t)), "e^-iXt")
    YForward = _varying("e^-iYt", "Y-Exponentiating Gate (forward)",
                        "Right-handed exponentiation of Y over time.",
                        lambda t: matrices.exp_pauli(*_axis("Y", -t)), "e^iYt")
    YBackward = _varying("e^iYt", "Y-Exponentiating Gate (backward)",
                         "Left-handed exponentiation of Y over time.",
                         lambda t: matrices.exp_pauli(*_axis("Y", t)), "e^-iYt")
    ZForward = _varying("e^-iZt", "Z-Exponentiating Gate (forward)",
                        "Right-handed exponentiation of Z over time.",
                        lambda t: matrices.exp_pauli(*_axis("Z", -t)), "e^iZt")
    ZBackward = _varying("e^iZt", "Z-Exponentiating Gate (backward)",
                         "Left-handed exponentiation of Z over time.",
                         lambda t: matrices.exp_pauli(*_axis("Z", t)), "e^-iZt")


def mystery_gate_with_matrix(matrix: np.ndarray) -> GateDefinition:
    return (GateBuilder()
            .set_serialized_id_and_symbol(MYSTERY_GATE_SYMBOL)
            .set_title("Mystery Gate")
            .set_blurb("Every time you grab this gate out of the toolbox, it changes.")
            .set_known_matrix(matrix)
            .set_drawer_id("matrix_symbol")
            .gate)


def mystery_gate_maker(rng: Optional[np.random.Generator] = None) -> GateDefinition:
    """A fresh gate whose matrix is the closest unitary to a random 2x2 matrix."""
    rng = rng if rng is not None else np.random.default_rng()
    raw = (rng.random((2, 2)) - 0.5) + 1j * (rng.random((2, 2)) - 0.5)
    return mystery_gate_with_matrix(matrices.closest_unitary(raw))


def _clock(t: float, phase: float) -> np.ndarray:
    return matrices.identity() if ((t + phase) % 1) < 0.5 else matrices.X()


class Misc:
    ClockPulseGate = _varying("X^⌈t⌉", "Clock Pulse Gate",
                              "Xors a square wave into the target wire.",
                              lambda t: _clock(t, 0.0), "X^⌈t⌉", stable_duration=0.5)

    QuarterPhaseClockPulseGate = _varying("X^⌈t-¼⌉", "Clock Pulse Gate (Quarter Phase)",
                                          "Xors a quarter-phased square wave into the target wire.",
                                          lambda t: _clock(t, 0.75), "X^⌈t-¼⌉",
                                          stable_duration=0.25)

    SpacerGate = _no_effect("…", "Spacer", "A gate with no effect.", "spacer").gate


# ── multi-wire families ──────────────────────────────────────────────

def _fourier_swaps(span: int) -> list:
    return [
        (lambda val, con, bit, i=i: gate_shaders.swap(val, con, bit + i, bit + span - i - 1))
        for i in range(span // 2)
    ]


def _fourier_steps(span: int, inverse: bool) -> list:
    return [
        (lambda val, con, bit, i=i: gate_shaders.fourier_transform_step(
            val, con, bit, span, i, inverse=inverse))
        for i in range(span)
    ]


def _fourier_gate(span: int, inverse: bool) -> GateDefinition:
    if inverse:
        serialized_id, adjoint = f"QFT†{span}", f"QFT{span}"
        passes = _fourier_steps(span, True)[::-1] + _fourier_swaps(span)
    else:
        serialized_id, adjoint = f"QFT{span}", f"QFT†{span}"
        passes = _fourier_swaps(span) + _fourier_steps(span, False)

    def matrix(t=0.0):
        m = matrices.fourier(span)
        return m.conj().T if inverse else m

    builder = (GateBuilder()
               .set_serialized_id(serialized_id)
               .set_symbol("QFT^†" if inverse else "QFT")
               .set_title("Inverse Fourier Transform Gate" if inverse else "Fourier Transform Gate")
               .set_blurb("Transforms from phase frequency space." if inverse
                          else "Transforms to/from phase frequency space.")
               .set_height(span)
               .set_adjoint_id(adjoint)
               .set_custom_passes(passes))
    if span < KNOWN_MATRIX_SPAN_LIMIT:
        builder.set_known_matrix(matrix())
    return builder.gate


FourierTransformFamily = generate_family(1, 16, lambda span: _fourier_gate(span, False))
InverseFourierTransformFamily = generate_family(1, 16, lambda span: _fourier_gate(span, True))


def _gradient_gate(span: int, factor: int) -> GateDefinition:
    forward = factor > 0
    serialized_id = f"PhaseGradient{span}" if forward else f"PhaseUngradient{span}"
    adjoint = f"PhaseUngradient{span}" if forward else f"PhaseGradient{span}"
    builder = (GateBuilder()
               .set_serialized_id(serialized_id)
               .set_symbol("Grad^½" if forward else "Grad^-½")
               .set_title("Phase Gradient Gate" if forward else "Phase Degradient Gate")
               .set_blurb("Phases by an amount proportional to the target value." if forward
                          else "Counter-phases by an amount proportional to the target value.")
               .set_height(span)
               .set_adjoint_id(adjoint)
               .mark_as_only_permuting_and_phasing()
               .set_custom_passes([
                   lambda val, con, bit: gate_shaders.phase_gradient(val, con, bit, span, factor)]))
    if span < KNOWN_MATRIX_SPAN_LIMIT:
        builder.set_known_matrix(matrices.phase_gradient(span, factor))
    return builder.gate


PhaseGradientFamily = generate_family(1, 16, lambda span: _gradient_gate(span, +1))
PhaseDegradientFamily = generate_family(1, 16, lambda span: _gradient_gate(span, -1))


def _cycle_gate(span: int) -> GateDefinition:
    builder = (GateBuilder()
               .set_serialized_id(f"__unstable__cycle{span}")
               .set_symbol("<<=1")
               .set_title("Bit Cycle Gate")
               .set_blurb("Swaps bits in a cycle.")
               .set_height(span)
               .mark_as_only_permuting_and_phasing()
               .set_custom_passes([
                   lambda val, con, bit: gate_shaders.cycle_bits(val, con, bit, span, 1)]))
    if span < KNOWN_MATRIX_SPAN_LIMIT:
        builder.set_known_matrix(matrices.cycle_bits(span, 1))
    return builder.gate


class ExperimentalAndImplausible:
    UniversalNot = (GateBuilder()
                    .set_serialized_id("__unstable__UniversalNot")
                    .set_symbol("UniNot")
                    .set_title("Universal Not Gate")
                    .set_blurb("Mirrors a qubit's state through the origin of the Bloch sphere.\n"
                               "Impossible in practice.")
                    .set_custom_passes([gate_shaders.universal_not])
                    .gate)

    ErrorInjection = (GateBuilder()
                      .set_serialized_id("__debug__ErrorInjection")
                      .set_symbol("ERR!")
                      .set_title("Error Injection Gate")
                      .set_blurb("Throws an exception during circuit evaluation, "
                                 "for testing error paths.")
                      .set_custom_passes([gate_shaders.error_injection])
                      .set_drawer_id("highlighted_red")
                      .gate)

    CycleBitsFamily = generate_family(2, 16, _cycle_gate)



# ── grouping ─────────────────────────────────────────────────────────

def _gate_sets(mystery: GateDefinition) -> list[dict]:
    return [
        {"hint": "Probes", "gates": [
            Special.Measurement, post_selection_gates.PostSelection.PostSelectOff, Special.AntiControl,
            None, post_selection_gates.PostSelection.PostSelectOn, Special.Control]},
        {"hint": "Half Turns", "gates": [
            HalfTurns.Z, HalfTurns.Y, HalfTurns.X, Special.SwapHalf, None, HalfTurns.H]},
        {"hint": "Quarter Turns", "gates": [
            QuarterTurns.SqrtZForward, QuarterTurns.SqrtYForward, QuarterTurns.SqrtXForward,
            QuarterTurns.SqrtZBackward, QuarterTurns.SqrtYBackward, QuarterTurns.SqrtXBackward]},
        {"hint": "Eighth Turns", "gates": [
            OtherZ["Z4"], OtherY["Y4"], OtherX["X4"],
            OtherZ["Z4i"], OtherY["Y4i"], OtherX["X4i"]]},
        {"hint": "Misc", "gates": [
            PhaseGradientFamily.of_size(2), None, FourierTransformFamily.of_size(2),
            PhaseDegradientFamily.of_size(2), mystery, Misc.SpacerGate]},
        {"hint": "Arithmetic", "gates": [
            arithmetic_gates.CountingFamily.of_size(2), arithmetic_gates.AdditionFamily.of_size(4),
            arithmetic_gates.IncrementFamily.of_size(2), arithmetic_gates.UncountingFamily.of_size(2),
            arithmetic_gates.SubtractionFamily.of_size(4), arithmetic_gates.DecrementFamily.of_size(2)]},
        {"hint": "Raising", "gates": [
            Powering.ZForward, Powering.YForward, Powering.XForward,
            Powering.ZBackward, Powering.YBackward, Powering.XBackward]},
        {"hint": "Exponentiating", "gates": [
            Exponentiating.ZForward, Exponentiating.YForward, Exponentiating.XForward,
            Exponentiating.ZBackward, Exponentiating.YBackward, Exponentiating.XBackward]},
        {"hint": "Other X", "gates": [
            OtherX["X16"], OtherX["X8"], OtherX["X3"],
            OtherX["X16i"], OtherX["X8i"], OtherX["X3i"]]},
        {"hint": "Other Y", "gates": [
            OtherY["Y16"], OtherY["Y8"], OtherY["Y3"],
            OtherY["Y16i"], OtherY["Y8i"], OtherY["Y3i"]]},
        # Z16 appears twice; Z16i is reachable only through the serializer.
        {"hint": "Other Z", "gates": [
            OtherZ["Z16"], OtherZ["Z8"], OtherZ["Z3"],
            OtherZ["Z16"], OtherZ["Z8i"], OtherZ["Z3i"]]},
    ]


GATE_SETS = _gate_sets(mystery_gate_maker(np.random.default_rng(0)))


def known_to_serializer() -> list[GateDefinition]:
    """Every fixed gate, then every variant of every family."""
    gates = [
        Special.Control, Special.AntiControl, Special.Measurement, Special.SwapHalf,
        *post_selection_gates.ALL,
        Misc.SpacerGate, Misc.ClockPulseGate, Misc.QuarterPhaseClockPulseGate,
        HalfTurns.H, HalfTurns.X, HalfTurns.Y, HalfTurns.Z,
        QuarterTurns.SqrtXForward, QuarterTurns.SqrtYForward, QuarterTurns.SqrtZForward,
        QuarterTurns.SqrtXBackward, QuarterTurns.SqrtYBackward, QuarterTurns.SqrtZBackward,
        Powering.XForward, Powering.YForward, Powering.ZForward,
        Powering.XBackward, Powering.YBackward, Powering.ZBackward,
        Exponentiating.XForward, Exponentiating.YForward, Exponentiating.ZForward,
        Exponentiating.XBackward, Exponentiating.YBackward, Exponentiating.ZBackward,
        *OtherX.values(), *OtherY.values(), *OtherZ.values(),
        ExperimentalAndImplausible.UniversalNot,
        ExperimentalAndImplausible.ErrorInjection,
    ]
    for family in FAMILIES.values():
        gates.extend(family.all)
    return gates


FAMILIES = {
    "QFT": FourierTransformFamily,
    "QFT†": InverseFourierTransformFamily,
    "PhaseGradient": PhaseGradientFamily,
    "PhaseUngradient": PhaseDegradientFamily,
    "__unstable__cycle": ExperimentalAndImplausible.CycleBitsFamily,
    **arithmetic_gates.FAMILIES,
}

KNOWN_TO_SERIALIZER = known_to_serializer()
