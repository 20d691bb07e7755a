"""Gate kernels against direct matrix multiplication (ref_dense.apply_matrix)."""
import numpy as np
import pytest

from texq_engine.errors import ErrorInjectionFault
from texq_engine.gpu.resources import ResourceManager
from texq_engine.gpu.texture import PixelType
from texq_engine.kernel import gate_shaders, matrices
from texq_engine.kernel.ref_dense import apply_matrix
from texq_engine.kernel.shaders import ControlMask
from texq_engine.runner.pipeline import AmplitudeState, PassArgs, PipelineExecutor
from texq_engine.tests.fixtures.gpu import requires_gpu

pytestmark = requires_gpu

ATOL = 1e-6


def _random_state(n, seed=0):
    rng = np.random.default_rng(seed)
    psi = rng.normal(size=1 << n) + 1j * rng.normal(size=1 << n)
    return psi / np.linalg.norm(psi)


def _run(amps, make_pass, controls=ControlMask(), bit=0, pixel_type=None):
    """Run one pass, return (input pixels, output pixels, output amplitudes)."""
    rm = ResourceManager()
    ctx = rm.create_context()
    ex = PipelineExecutor(rm, ctx)
    with AmplitudeState.from_amplitudes(amps, rm, ctx, pixel_type) as state:
        before = state.pixels()
        with ex.execute(state, [make_pass], PassArgs(controls, bit)) as out:
            return before, out.pixels(), out.amplitudes()


def _expected(psi, bit, U, controls=ControlMask()):
    out = psi.copy()
    apply_matrix(out, bit, U, controls.mask, controls.desired)
    return out


# (name, pass maker, matrix on the operand register, span)
KERNEL_CASES = [
    ("swap", lambda v, c, b: gate_shaders.swap(v, c, b, b + 1), matrices.cycle_bits(2, 1), 2),
    ("cycle3", lambda v, c, b: gate_shaders.cycle_bits(v, c, b, 3, 1), matrices.cycle_bits(3, 1), 3),
    ("cycle3_back", lambda v, c, b: gate_shaders.cycle_bits(v, c, b, 3, -1),
     matrices.cycle_bits(3, -1), 3),
    ("inc3", lambda v, c, b: gate_shaders.offset_by_constant(v, c, b, 3, 1), matrices.offset(3, 1), 3),
    ("sub5_3", lambda v, c, b: gate_shaders.offset_by_constant(v, c, b, 3, -5),
     matrices.offset(3, -5), 3),
    ("add2", lambda v, c, b: gate_shaders.add_register(v, c, b + 2, 2, b, 1),
     matrices.addition(2, 2, 1), 4),
    ("sub_uneven", lambda v, c, b: gate_shaders.add_register(v, c, b + 1, 2, b, -1, input_span=1),
     matrices.addition(1, 2, -1), 3),
    ("gradient3", lambda v, c, b: gate_shaders.phase_gradient(v, c, b, 3, 1),
     matrices.phase_gradient(3, 1), 3),
    ("degradient2", lambda v, c, b: gate_shaders.phase_gradient(v, c, b, 2, -1),
     matrices.phase_gradient(2, -1), 2),
    ("matrix_h", lambda v, c, b: gate_shaders.matrix_operation(v, c, b, matrices.H()), matrices.H(), 1),
    ("matrix_2q", lambda v, c, b: gate_shaders.matrix_operation(v, c, b, matrices.fourier(2)),
     matrices.fourier(2), 2),
    ("matrix_3q", lambda v, c, b: gate_shaders.matrix_operation(v, c, b, matrices.fourier(3)),
     matrices.fourier(3), 3),
]


@pytest.mark.parametrize("name,make_pass,U,span", KERNEL_CASES, ids=[c[0] for c in KERNEL_CASES])
@pytest.mark.parametrize("bit", [0, 1])
def test_kernel_matches_matrix(name, make_pass, U, span, bit):
    n = span + 2
    psi = _random_state(n, seed=span + bit)
    _, _, got = _run(psi, make_pass, bit=bit)
    np.testing.assert_allclose(got, _expected(psi, bit, U), atol=ATOL)


@pytest.mark.parametrize("name,make_pass,U,span", KERNEL_CASES, ids=[c[0] for c in KERNEL_CASES])
def test_kernel_honours_controls(name, make_pass, U, span):
    n = span + 2
    controls = ControlMask.from_bits(on=(span,), off=(span + 1,))
    psi = _random_state(n, seed=11)
    before, after, got = _run(psi, make_pass, controls=controls)
    np.testing.assert_allclose(got, _expected(psi, 0, U, controls), atol=ATOL)

    # pixels failing the mask are copied bit for bit
    idx = np.arange(1 << n)
    blocked = ~controls.allows(idx)
    b = before.reshape(-1, 4)[blocked]
    a = after.reshape(-1, 4)[blocked]
    assert a.tobytes() == b.tobytes()


def _pixel_rows(pixels):
    return sorted(bytes(row) for row in pixels.reshape(-1, 4).view(np.uint8).reshape(-1, 16))


@pytest.mark.parametrize("make_pass", [
    lambda v, c, b: gate_shaders.swap(v, c, 0, 3),
    lambda v, c, b: gate_shaders.cycle_bits(v, c, 1, 3, 1),
    lambda v, c, b: gate_shaders.offset_by_constant(v, c, 0, 4, 7),
    lambda v, c, b: gate_shaders.add_register(v, c, 2, 2, 0, 1),
])
def test_permutations_preserve_pixel_multiset(make_pass):
    before, after, _ = _run(_random_state(4, seed=3), make_pass)
    assert _pixel_rows(before) == _pixel_rows(after)


@pytest.mark.parametrize("span", [1, 2, 3, 4])
def test_fourier_decomposition(span):
    """⌊span/2⌋ swaps then span steps equal the closed-form transform."""
    n = span + 1
    psi = _random_state(n, seed=span)
    rm = ResourceManager()
    ctx = rm.create_context()
    ex = PipelineExecutor(rm, ctx)
    passes = [
        (lambda v, c, b, i=i: gate_shaders.swap(v, c, b + i, b + span - i - 1))
        for i in range(span // 2)
    ] + [
        (lambda v, c, b, i=i: gate_shaders.fourier_transform_step(v, c, b, span, i))
        for i in range(span)
    ]
    with AmplitudeState.from_amplitudes(psi, rm, ctx) as state:
        with ex.execute(state, passes) as out:
            got = out.amplitudes()
    np.testing.assert_allclose(got, _expected(psi, 0, matrices.fourier(span)), atol=ATOL)


def test_fourier_step_inverse_undoes_step():
    psi = _random_state(3, seed=5)
    rm = ResourceManager()
    ctx = rm.create_context()
    ex = PipelineExecutor(rm, ctx)
    passes = [
        lambda v, c, b: gate_shaders.fourier_transform_step(v, c, b, 3, 1),
        lambda v, c, b: gate_shaders.fourier_transform_step(v, c, b, 3, 1, inverse=True),
    ]
    with AmplitudeState.from_amplitudes(psi, rm, ctx) as state:
        with ex.execute(state, passes) as out:
            np.testing.assert_allclose(out.amplitudes(), psi, atol=ATOL)


def test_unitary_kernels_preserve_norm():
    psi = _random_state(5, seed=9)
    for _, make_pass, _, _ in KERNEL_CASES:
        _, _, got = _run(psi, make_pass)
        assert abs(np.linalg.norm(got) - 1.0) < ATOL


def test_universal_not_mirrors_bloch_vector():
    a, b = 0.6, 0.8j
    _, _, got = _run(np.array([a, b]), gate_shaders.universal_not)
    np.testing.assert_allclose(got, [np.conj(b), -np.conj(a)], atol=ATOL)


def test_universal_not_is_not_linear():
    """UniNot(i|0>) != i UniNot(|0>)."""
    _, _, got0 = _run(np.array([1, 0]), gate_shaders.universal_not)
    _, _, got1 = _run(np.array([1j, 0]), gate_shaders.universal_not)
    assert not np.allclose(got1, 1j * got0)


def test_error_injection_names_qubit():
    rm = ResourceManager()
    ctx = rm.create_context()
    with AmplitudeState.zero(2, rm, ctx) as state:
        with pytest.raises(ErrorInjectionFault) as e:
            gate_shaders.error_injection(state.texture, ControlMask(), 1)
    assert e.value.details == {"qubit": 1}


def test_byte_textures_round_to_1_over_127():
    psi = np.array([0.6, 0.8, 0, 0], dtype=np.complex128)
    _, _, got = _run(psi, lambda v, c, b: gate_shaders.swap(v, c, 0, 1),
                     pixel_type=PixelType.UNSIGNED_BYTE)
    np.testing.assert_allclose(got, [0.6, 0, 0.8, 0], atol=0.5 / 127)


def test_byte_textures_encode_computed_amplitudes():
    _, after, got = _run(np.array([1, 0]),
                         lambda v, c, b: gate_shaders.matrix_operation(v, c, b, matrices.H()),
                         pixel_type=PixelType.UNSIGNED_BYTE)
    rows = after.reshape(-1, 4)
    np.testing.assert_array_equal(rows[:, 0], [218, 218])  # round(127 / √2) + 128
    np.testing.assert_array_equal(rows[:, 1], [128, 128])
    np.testing.assert_array_equal(rows[:, 2:], 0)
    np.testing.assert_allclose(got, [1 / np.sqrt(2)] * 2, atol=0.5 / 127)
