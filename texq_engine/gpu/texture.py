"""Logical textures and the amplitude <-> pixel codec.

Layout:
  amplitude i  <->  pixel i  (row-major: i = y * width + x)
  red   = real part
  green = imaginary part
  blue, alpha unused (0)

PixelType.FLOAT is an rgba32float texture (float32 channels).
PixelType.UNSIGNED_BYTE is an rgba8unorm texture storing v in [-1, 1] as the
byte round(v*127)+128, so 0 and +/-1 are exact and the resolution is 1/127.
Shaders see the byte as byte/255 and decode it the same way.
"""
from __future__ import annotations

import enum
import itertools

import numpy as np


class PixelType(enum.Enum):
    FLOAT = "float"
    UNSIGNED_BYTE = "unsigned_byte"

    @property
    def dtype(self):
        return np.float32 if self is PixelType.FLOAT else np.uint8

    @property
    def bytes_per_pixel(self) -> int:
        return 4 * np.dtype(self.dtype).itemsize

    @property
    def texture_format(self) -> str:
        """wgpu texture format holding this pixel type."""
        return "rgba32float" if self is PixelType.FLOAT else "rgba8unorm"


_BYTE_CENTER = 128
_BYTE_SCALE = 127.0

_ids = itertools.count(1)


class GpuTexture:
    """A logical texture: shape and pixel type, no storage.

    Storage (texture + framebuffer) is materialised per rendering context by
    the ResourceManager.  The object itself is the texture's identity, so two
    textures with the same shape never share storage.
    """

    def __init__(self, width: int, height: int, pixel_type: PixelType = PixelType.FLOAT):
        if width < 1 or height < 1:
            raise ValueError(f"texture shape must be positive, got {width}x{height}")
        self.width = width
        self.height = height
        self.pixel_type = pixel_type
        self.serial = next(_ids)

    @property
    def pixel_count(self) -> int:
        return self.width * self.height

    @property
    def size_key(self) -> tuple[int, int, PixelType]:
        return self.width, self.height, self.pixel_type

    @classmethod
    def for_qubits(cls, n_qubits: int, pixel_type: PixelType = PixelType.FLOAT) -> "GpuTexture":
        w, h = shape_for_qubits(n_qubits)
        return cls(w, h, pixel_type)

    def __repr__(self) -> str:
        return (f"GpuTexture(#{self.serial}, {self.width}x{self.height}, "
                f"{self.pixel_type.value})")


def shape_for_qubits(n_qubits: int) -> tuple[int, int]:
    """(width, height) holding 2^n pixels: width = 2^ceil(n/2), height = 2^floor(n/2)."""
    if n_qubits < 0:
        raise ValueError(f"qubit count must be non-negative, got {n_qubits}")
    return 1 << ((n_qubits + 1) // 2), 1 << (n_qubits // 2)


def encode_amplitudes(amps: np.ndarray, pixel_type: PixelType) -> np.ndarray:
    """Complex vector (N,) -> pixel rows (N, 4)."""
    amps = np.asarray(amps, dtype=np.complex128)
    out = np.zeros((len(amps), 4), dtype=np.float64)
    out[:, 0] = amps.real
    out[:, 1] = amps.imag
    if pixel_type is PixelType.FLOAT:
        return out.astype(np.float32)
    quantised = np.rint(np.clip(out, -1.0, 1.0) * _BYTE_SCALE) + _BYTE_CENTER
    quantised[:, 2:] = 0
    return quantised.astype(np.uint8)


def decode_pixels(pixels: np.ndarray, pixel_type: PixelType) -> np.ndarray:
    """Pixel rows (N, 4) -> complex128 vector (N,)."""
    p = np.asarray(pixels).reshape(-1, 4)
    if pixel_type is PixelType.FLOAT:
        re = p[:, 0].astype(np.float64)
        im = p[:, 1].astype(np.float64)
    else:
        re = (p[:, 0].astype(np.float64) - _BYTE_CENTER) / _BYTE_SCALE
        im = (p[:, 1].astype(np.float64) - _BYTE_CENTER) / _BYTE_SCALE
    return re + 1j * im
