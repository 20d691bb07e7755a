"""wgpu adapter and device discovery.

Every RenderContext owns one device.  A fresh adapter is requested for each
device, since an adapter may hand out only one.  When no hardware adapter
is found the fallback (software) adapter is tried, so headless machines with
a CPU Vulkan driver (lavapipe / llvmpipe) still run the shaders.
"""
from __future__ import annotations

import functools
import logging

import wgpu

from texq_engine.errors import GpuFault

log = logging.getLogger(__name__)


def _request_adapter(power_preference: str, force_fallback_adapter: bool):
    try:
        return wgpu.gpu.request_adapter_sync(
            power_preference=power_preference,
            force_fallback_adapter=force_fallback_adapter,
        )
    except RuntimeError as e:
        log.debug("adapter request (fallback=%s) failed: %s", force_fallback_adapter, e)
        return None


def adapter_summary(adapter) -> str:
    info = getattr(adapter, "info", None) or {}
    parts = [str(info.get(k)) for k in ("device", "adapter_type", "backend_type") if info.get(k)]
    return ", ".join(parts) or "unknown adapter"


def request_adapter(power_preference: str = "high-performance",
                    force_fallback_adapter: bool = False):
    """A wgpu adapter, falling back to the software adapter; GpuFault if none."""
    adapter = None
    if not force_fallback_adapter:
        adapter = _request_adapter(power_preference, False)
        if adapter is None:
            log.warning("no hardware GPU adapter, trying the fallback adapter")
    if adapter is None:
        adapter = _request_adapter(power_preference, True)
    if adapter is None:
        raise GpuFault("request_adapter failed", {
            "power_preference": power_preference,
            "force_fallback_adapter": force_fallback_adapter,
        })
    return adapter


def open_device(label: str, power_preference: str = "high-performance",
                force_fallback_adapter: bool = False):
    """(adapter, device) pair for one rendering context."""
    adapter = request_adapter(power_preference, force_fallback_adapter)
    try:
        device = adapter.request_device_sync(label=label)
    except (RuntimeError, wgpu.GPUError) as e:
        raise GpuFault("request_device failed", {
            "adapter": adapter_summary(adapter), "context": label, "error": str(e),
        }) from e
    log.info("%s: opened device on %s", label, adapter_summary(adapter))
    return adapter, device


def device_limit(device, name: str, default: int) -> int:
    """A device limit by its WebGPU name, e.g. "max-texture-dimension-2d"."""
    limits = getattr(device, "limits", None) or {}
    for key in (name, name.replace("-", "_")):
        if key in limits:
            return int(limits[key])
    return default


@functools.lru_cache(maxsize=None)
def gpu_available() -> bool:
    """True when some adapter (hardware or fallback) can be opened."""
    try:
        request_adapter()
    except GpuFault as e:
        log.warning("%s", e)
        return False
    return True
