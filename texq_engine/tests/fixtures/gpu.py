"""Skip marker for tests that render on a wgpu device."""
import pytest

from texq_engine.gpu.device import gpu_available

requires_gpu = pytest.mark.skipif(not gpu_available(), reason="no wgpu adapter available")
