"""Kernel configuration without a device: operand checks, WGSL assembly, uniform layout."""
import struct

import numpy as np
import pytest

from texq_engine.gpu.texture import GpuTexture, PixelType
from texq_engine.kernel import gate_shaders, matrices
from texq_engine.kernel.shaders import (
    AMPLITUDE, GATHER, TABLE_SIZE, ControlMask, ShaderProgram,
)


class TestOperandChecks:
    def test_swap_same_bit(self):
        with pytest.raises(ValueError, match="distinct"):
            gate_shaders.swap(None, ControlMask(), 2, 2)

    def test_control_overlaps_operand(self):
        with pytest.raises(ValueError, match="overlap"):
            gate_shaders.cycle_bits(None, ControlMask.from_bits(on=(1,)), 0, 3)

    def test_add_register_overlap(self):
        with pytest.raises(ValueError, match="overlaps input"):
            gate_shaders.add_register(None, ControlMask(), 1, 2, 0, 1)

    def test_matrix_shape(self):
        with pytest.raises(ValueError, match="power-of-two"):
            gate_shaders.matrix_operation(None, ControlMask(), 0, np.eye(3))

    def test_matrix_too_wide_for_uniform_table(self):
        with pytest.raises(ValueError, match="at most 3 qubits"):
            gate_shaders.matrix_operation(None, ControlMask(), 0, matrices.fourier(4))

    def test_fourier_step_range(self):
        with pytest.raises(ValueError, match="outside span"):
            gate_shaders.fourier_transform_step(None, ControlMask(), 0, 2, 2)


class TestWgsl:
    @pytest.mark.parametrize("program", gate_shaders.PROGRAMS, ids=lambda p: p.name)
    def test_entry_points_and_fields(self, program):
        src = program.wgsl
        assert "fn vs_main" in src
        assert "fn fs_main" in src
        for name, kind in program.fields:
            assert f"{name}: {kind}," in src
        assert ("fn table_entry" in src) == program.uses_table
        if program.kind == GATHER:
            assert "fn source_index(i: u32) -> u32" in src
            assert "read_pixel(source_index(i))" in src
        else:
            assert "fn new_amp(i: u32) -> vec2<f32>" in src

    def test_program_names_are_unique(self):
        names = [p.name for p in gate_shaders.PROGRAMS]
        assert len(names) == len(set(names))

    def test_unknown_kind(self):
        with pytest.raises(ValueError, match="kind"):
            ShaderProgram("odd", "scatter", (), "")


class TestUniforms:
    def test_header_and_fields(self):
        shader = gate_shaders.swap(GpuTexture(4, 4), ControlMask.from_bits(on=(3,)), 0, 2)
        data = shader.uniform_bytes(4, PixelType.FLOAT)
        assert len(data) % 16 == 0
        assert struct.unpack_from("<6I", data) == (4, 0b1000, 0b1000, 0, 0, 2)

    def test_byte_flag(self):
        shader = gate_shaders.swap(GpuTexture(2, 2), ControlMask(), 0, 1)
        assert struct.unpack_from("<4I", shader.uniform_bytes(2, PixelType.UNSIGNED_BYTE))[3] == 1

    def test_register_arithmetic_is_inverted_on_host(self):
        tex = GpuTexture(4, 4)
        assert gate_shaders.offset_by_constant(tex, ControlMask(), 0, 3, 1).uniforms["back"] == 7
        assert gate_shaders.offset_by_constant(tex, ControlMask(), 0, 3, -5).uniforms["back"] == 5
        assert gate_shaders.add_register(tex, ControlMask(), 2, 2, 0, -1).uniforms["back_factor"] == 1
        assert gate_shaders.cycle_bits(tex, ControlMask(), 0, 3, -1).uniforms["shift"] == 2

    def test_table_is_aligned_after_fields(self):
        shader = gate_shaders.matrix_operation(GpuTexture(2, 2), ControlMask(), 0, matrices.Y())
        data = shader.uniform_bytes(2, PixelType.FLOAT)
        # 4 header words + bit + span, padded to 32 bytes, then 64 complex float32 pairs
        assert len(data) == 32 + TABLE_SIZE * 8
        table = np.frombuffer(data[32:], dtype=np.float32).reshape(TABLE_SIZE, 2)
        np.testing.assert_array_equal(table[:4], [[0, 0], [0, -1], [0, 1], [0, 0]])
        assert not table[4:].any()

    def test_phase_tables(self):
        tex = GpuTexture(4, 4)
        gradient = gate_shaders.phase_gradient(tex, ControlMask(), 0, 2, 1)
        np.testing.assert_allclose(gradient.table, [np.exp(1j * np.pi / 4), 1j], atol=1e-12)

        forward = gate_shaders.fourier_transform_step(tex, ControlMask(), 0, 3, 0)
        inverse = gate_shaders.fourier_transform_step(tex, ControlMask(), 0, 3, 0, inverse=True)
        np.testing.assert_allclose(forward.table, [1, 1j, np.exp(1j * np.pi / 4)], atol=1e-12)
        np.testing.assert_allclose(inverse.table, np.conj(forward.table), atol=1e-12)
        assert inverse.uniforms["inverse"] == 1

    def test_oversized_table(self):
        program = ShaderProgram("t", AMPLITUDE, (), "", uses_table=True)
        with pytest.raises(ValueError, match="exceeds"):
            program.pack(1, ControlMask(), PixelType.FLOAT, {}, (0,) * (TABLE_SIZE + 1))
