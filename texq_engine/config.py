"""
Configuration for the texture-backed quantum engine.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from texq_engine.gpu.texture import PixelType

POWER_PREFERENCES = ("high-performance", "low-power")
_TRUE = ("1", "true", "yes", "on")


@dataclass
class EngineConfig:
    """Configuration for the GPU device, texture pools and logging."""

    # GPU adapter
    power_preference: str = "high-performance"
    force_fallback_adapter: bool = False  # Software adapter only

    # Texture storage
    pixel_type: PixelType = PixelType.FLOAT
    max_texture_size: int = 4096  # Max width or height of one texture
    max_texture_bytes: Optional[int] = None  # Total storage budget per context

    # Pooling
    pool_limit: int = 4  # Idle textures kept per (width, height, pixel_type)

    # Evaluation
    default_time: float = 0.0  # Time fed to time-varying gates

    # Logging
    log_level: int = logging.INFO
    log_file: Optional[Path] = None

    @property
    def qubit_capacity(self) -> int:
        """Largest register that fits in one texture."""
        side_bits = self.max_texture_size.bit_length() - 1
        return 2 * side_bits

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Build a config, overriding defaults with TEXQ_* environment variables."""
        cfg = cls()
        pixel = os.environ.get("TEXQ_PIXEL_TYPE")
        if pixel:
            cfg.pixel_type = PixelType(pixel.lower())
        size = os.environ.get("TEXQ_MAX_TEXTURE_SIZE")
        if size:
            cfg.max_texture_size = int(size)
        limit = os.environ.get("TEXQ_POOL_LIMIT")
        if limit:
            cfg.pool_limit = int(limit)
        power = os.environ.get("TEXQ_POWER_PREFERENCE")
        if power:
            if power.lower() not in POWER_PREFERENCES:
                raise ValueError(f"TEXQ_POWER_PREFERENCE must be one of {POWER_PREFERENCES}, "
                                 f"got {power!r}")
            cfg.power_preference = power.lower()
        fallback = os.environ.get("TEXQ_FORCE_FALLBACK_ADAPTER")
        if fallback:
            cfg.force_fallback_adapter = fallback.lower() in _TRUE
        level = os.environ.get("TEXQ_LOG_LEVEL")
        if level:
            value = logging.getLevelName(level.upper())
            if not isinstance(value, int):
                raise ValueError(f"TEXQ_LOG_LEVEL: unknown logging level {level!r}")
            cfg.log_level = value
        return cfg


# Default configuration instance
DEFAULT_CONFIG = EngineConfig()
