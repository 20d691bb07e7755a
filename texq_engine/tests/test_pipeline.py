"""Pipeline executor: ping-pong buffering, ownership, failure cleanup."""
import numpy as np
import pytest

from texq_engine.errors import ContextLostFault, ErrorInjectionFault
from texq_engine.gpu.resources import ResourceManager
from texq_engine.kernel import gate_shaders, matrices
from texq_engine.runner.pipeline import AmplitudeState, PassArgs, PipelineExecutor
from texq_engine.tests.fixtures.gpu import requires_gpu

pytestmark = requires_gpu


@pytest.fixture
def env():
    rm = ResourceManager()
    ctx = rm.create_context("pipeline")
    return rm, ctx, PipelineExecutor(rm, ctx)


def _x(bit_offset=0):
    return lambda v, c, b: gate_shaders.matrix_operation(v, c, b + bit_offset, matrices.X())


def test_empty_pass_list_returns_input(env):
    rm, ctx, ex = env
    with AmplitudeState.zero(2, rm, ctx) as state:
        assert ex.execute(state, []) is state
        assert ex.passes_run == 0


def test_input_state_is_never_written(env):
    rm, ctx, ex = env
    with AmplitudeState.zero(3, rm, ctx) as state:
        before = state.pixels()
        with ex.execute(state, [_x(0), _x(1), _x(2)]) as out:
            np.testing.assert_allclose(out.probabilities()[0b111], 1.0, atol=1e-6)
        np.testing.assert_array_equal(state.pixels(), before)


def test_long_pass_list_uses_two_pool_textures(env):
    rm, ctx, ex = env
    pool = rm.pool_for(ctx)
    with AmplitudeState.zero(4, rm, ctx) as state:
        with ex.execute(state, [_x(q % 4) for q in range(16)]) as out:
            assert ex.passes_run == 16
            assert pool.peak_in_use <= 3  # input + ping + pong
            assert pool.in_use == 2
            np.testing.assert_allclose(out.amplitudes()[0], 1.0, atol=1e-6)
    assert pool.in_use == 0
    assert pool.created <= 3


def test_failure_returns_intermediates_to_pool(env):
    rm, ctx, ex = env
    pool = rm.pool_for(ctx)
    with AmplitudeState.zero(2, rm, ctx) as state:
        with pytest.raises(ErrorInjectionFault):
            ex.execute(state, [_x(), _x(1), gate_shaders.error_injection, _x()])
        assert pool.in_use == 1
        assert not state.released


def test_run_releases_superseded_states(env):
    rm, ctx, ex = env
    pool = rm.pool_for(ctx)
    steps = [([_x()], PassArgs(bit=0)), ([_x()], PassArgs(bit=1)), ([], PassArgs())]
    with AmplitudeState.zero(2, rm, ctx) as state:
        with ex.run(state, steps) as out:
            assert pool.in_use == 2
            np.testing.assert_allclose(out.probabilities()[0b11], 1.0, atol=1e-6)
    assert pool.in_use == 0


def test_pass_args_bit_offsets_operands(env):
    rm, ctx, ex = env
    with AmplitudeState.zero(3, rm, ctx) as state:
        with ex.execute(state, [_x()], PassArgs(bit=2)) as out:
            np.testing.assert_allclose(out.probabilities()[0b100], 1.0, atol=1e-6)


def test_released_state_cannot_be_read(env):
    rm, ctx, _ = env
    state = AmplitudeState.zero(1, rm, ctx)
    state.release()
    state.release()
    with pytest.raises(ValueError, match="released"):
        state.amplitudes()


def test_state_from_lost_context_is_unreadable(env):
    rm, ctx, ex = env
    pool = rm.pool_for(ctx)
    state = AmplitudeState.zero(2, rm, ctx)
    ctx.lose_context()
    ctx.restore_context()
    assert state.stale
    with pytest.raises(ContextLostFault, match="lost") as e:
        state.amplitudes()
    assert e.value.details["generation"] == ctx.generation - 1
    with pytest.raises(ContextLostFault):
        ex.execute(state, [_x()])
    state.release()
    assert pool.in_use == 0


def test_context_lost_mid_execute(env):
    rm, ctx, ex = env
    pool = rm.pool_for(ctx)

    def lose(v, c, b):
        ctx.lose_context()
        return _x()(v, c, b)

    with AmplitudeState.zero(2, rm, ctx) as state:
        with pytest.raises(ContextLostFault):
            ex.execute(state, [_x(), lose, _x()])
        assert pool.in_use == 1
        assert ex.passes_run == 1


def test_non_power_of_two_amplitudes(env):
    rm, ctx, _ = env
    with pytest.raises(ValueError, match="power of two"):
        AmplitudeState.from_amplitudes(np.ones(3), rm, ctx)


def test_odd_qubit_count_texture_shape(env):
    rm, ctx, _ = env
    with AmplitudeState.zero(5, rm, ctx) as state:
        assert (state.texture.width, state.texture.height) == (8, 4)
        assert state.pixels().shape == (4, 8, 4)
