"""Rendering context: one wgpu device and the textures created on it.

Textures are rgba32float / rgba8unorm 2D textures usable as render attachment,
shader input and copy source/destination.  A texture's view is its render
target, the framebuffer half of a texture + framebuffer pair.  Every draw is
a full-screen triangle running one kernel's fragment shader with the source
texture at binding 0 and the kernel's uniforms at binding 1.

Context loss:
  lose_context()     destroys the device, bumps `generation`, fires listeners
  restore_context()  opens a new device (objects from before stay gone)
"""
from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass
from typing import Callable

import numpy as np
import wgpu

from texq_engine.errors import ContextLostFault, GpuFault
from texq_engine.gpu.device import device_limit, open_device
from texq_engine.gpu.texture import PixelType

log = logging.getLogger(__name__)

TEXTURE_USAGE = (wgpu.TextureUsage.RENDER_ATTACHMENT | wgpu.TextureUsage.TEXTURE_BINDING
                 | wgpu.TextureUsage.COPY_SRC | wgpu.TextureUsage.COPY_DST)

# values of GpuFault.details["error"]
TEXTURE_TOO_LARGE = "texture-too-large"
OUT_OF_MEMORY = "out-of-memory"
DELETED_TEXTURE = "deleted-texture"
NO_FRAMEBUFFER = "no-framebuffer"
DEVICE_ERROR = "device-error"

_context_ids = itertools.count(1)


@dataclass(eq=False)
class TextureStorage:
    """A device texture plus the view it is rendered through."""

    texture: object
    view: object
    width: int
    height: int
    pixel_type: PixelType
    generation: int
    deleted: bool = False

    @property
    def nbytes(self) -> int:
        return self.width * self.height * self.pixel_type.bytes_per_pixel


class RenderContext:
    """Single-threaded rendering context over one wgpu device.

    max_texture_size:  largest allowed width/height (also capped by the device)
    max_texture_bytes: total storage budget (out-of-memory beyond it)
    """

    def __init__(
        self,
        max_texture_size: int = 4096,
        max_texture_bytes: int | None = None,
        label: str | None = None,
        power_preference: str = "high-performance",
        force_fallback_adapter: bool = False,
    ):
        self.context_id = next(_context_ids)
        self.label = label or f"ctx{self.context_id}"
        self.max_texture_size = max_texture_size
        self.max_texture_bytes = max_texture_bytes
        self._power_preference = power_preference
        self._force_fallback_adapter = force_fallback_adapter
        self.generation = 0
        self._lost = False
        self._lost_listeners: list[Callable[["RenderContext"], None]] = []
        self._allocated = 0
        self._bound: TextureStorage | None = None
        self.draw_calls = 0
        self._open_device()

    def __repr__(self) -> str:
        return f"RenderContext({self.label}, generation={self.generation})"

    def _open_device(self) -> None:
        self.adapter, self._device = open_device(
            self.label, self._power_preference, self._force_fallback_adapter)
        self._modules: dict[str, object] = {}
        self._pipelines: dict[tuple, object] = {}
        self._bind_group_layout = self._device.create_bind_group_layout(entries=[
            {"binding": 0, "visibility": wgpu.ShaderStage.FRAGMENT,
             "texture": {"sample_type": "unfilterable-float", "view_dimension": "2d",
                         "multisampled": False}},
            {"binding": 1, "visibility": wgpu.ShaderStage.FRAGMENT,
             "buffer": {"type": "uniform"}},
        ])
        self._pipeline_layout = self._device.create_pipeline_layout(
            bind_group_layouts=[self._bind_group_layout])

    @property
    def device(self):
        if self._lost:
            raise ContextLostFault("rendering context is lost", {"context": self.label})
        return self._device

    @property
    def texture_size_limit(self) -> int:
        return min(self.max_texture_size,
                   device_limit(self.device, "max-texture-dimension-2d", 8192))

    def _device_fault(self, operation: str, e: Exception, details: dict) -> GpuFault:
        return GpuFault(f"{operation} failed",
                        {"error": DEVICE_ERROR, **details, "message": str(e)})

    # ── loss ─────────────────────────────────────────────────────────

    def is_context_lost(self) -> bool:
        return self._lost

    def add_context_lost_listener(self, listener: Callable[["RenderContext"], None]) -> None:
        if listener not in self._lost_listeners:
            self._lost_listeners.append(listener)

    def lose_context(self) -> None:
        if self._lost:
            return
        log.warning("rendering context %s lost (generation %d)", self.label, self.generation)
        self._lost = True
        self.generation += 1
        self._allocated = 0
        self._bound = None
        device, self._device = self._device, None
        self._modules.clear()
        self._pipelines.clear()
        device.destroy()
        for listener in list(self._lost_listeners):
            listener(self)

    def restore_context(self) -> None:
        if not self._lost:
            return
        self._open_device()
        self._lost = False
        log.info("rendering context %s restored (generation %d)", self.label, self.generation)

    # ── textures ─────────────────────────────────────────────────────

    def _details(self, storage: TextureStorage) -> dict:
        return {"width": storage.width, "height": storage.height,
                "pixel_type": storage.pixel_type.value, "context": self.label}

    def _check_usable(self, storage: TextureStorage, operation: str) -> None:
        if self._lost or storage.generation != self.generation:
            raise ContextLostFault(f"{operation}: texture belongs to a lost context",
                                   self._details(storage))
        if storage.deleted:
            raise GpuFault(f"{operation} failed",
                           {"error": DELETED_TEXTURE, **self._details(storage)})

    def create_texture(self, width: int, height: int, pixel_type: PixelType) -> TextureStorage:
        details = {"width": width, "height": height, "pixel_type": pixel_type.value,
                   "context": self.label}
        device = self.device
        limit = self.texture_size_limit
        if width < 1 or height < 1 or width > limit or height > limit:
            raise GpuFault("create_texture failed",
                           {"error": TEXTURE_TOO_LARGE, **details, "limit": limit})
        needed = width * height * pixel_type.bytes_per_pixel
        if self.max_texture_bytes is not None and self._allocated + needed > self.max_texture_bytes:
            raise GpuFault("create_texture failed",
                           {"error": OUT_OF_MEMORY, **details, "budget": self.max_texture_bytes})

        try:
            texture = device.create_texture(
                label=f"{self.label}.{width}x{height}",
                size=(width, height, 1),
                format=pixel_type.texture_format,
                usage=TEXTURE_USAGE,
                dimension="2d",
                mip_level_count=1,
                sample_count=1,
            )
        except wgpu.GPUError as e:
            raise self._device_fault("create_texture", e, details) from e
        try:
            view = texture.create_view()
        except wgpu.GPUError as e:
            texture.destroy()
            raise self._device_fault("create_view", e, details) from e
        self._allocated += needed
        return TextureStorage(texture, view, width, height, pixel_type, self.generation)

    def delete_texture(self, storage: TextureStorage) -> None:
        if storage.deleted:
            return
        storage.deleted = True
        if self._bound is storage:
            self._bound = None
        if not self._lost and storage.generation == self.generation:
            storage.texture.destroy()
            self._allocated -= storage.nbytes

    def allocated_bytes(self) -> int:
        return self._allocated

    def bind_framebuffer(self, storage: TextureStorage | None) -> None:
        if storage is not None:
            self._check_usable(storage, "bind_framebuffer")
        self._bound = storage

    @property
    def bound_framebuffer(self) -> TextureStorage | None:
        return self._bound

    # ── pixel traffic ────────────────────────────────────────────────

    def _layout(self, storage: TextureStorage):
        copy = {"texture": storage.texture, "mip_level": 0, "origin": (0, 0, 0)}
        layout = {"offset": 0, "bytes_per_row": storage.width * storage.pixel_type.bytes_per_pixel,
                  "rows_per_image": storage.height}
        return copy, layout, (storage.width, storage.height, 1)

    def write_texture(self, storage: TextureStorage, pixels: np.ndarray) -> None:
        """Upload a full frame of pixels, shape (height, width, 4)."""
        self._check_usable(storage, "write_texture")
        data = np.ascontiguousarray(pixels, dtype=storage.pixel_type.dtype)
        data = data.reshape(storage.height, storage.width, 4)
        copy, layout, size = self._layout(storage)
        try:
            self.device.queue.write_texture(copy, data, layout, size)
        except wgpu.GPUError as e:
            raise self._device_fault("write_texture", e, self._details(storage)) from e

    def read_texture(self, storage: TextureStorage) -> np.ndarray:
        """Copy of the texture's pixels, shape (height, width, 4)."""
        self._check_usable(storage, "read_texture")
        copy, layout, size = self._layout(storage)
        try:
            data = self.device.queue.read_texture(copy, layout, size)
        except wgpu.GPUError as e:
            raise self._device_fault("read_texture", e, self._details(storage)) from e
        pixels = np.frombuffer(data, dtype=storage.pixel_type.dtype)
        return pixels.reshape(storage.height, storage.width, 4).copy()

    def _pipeline(self, program, pixel_type: PixelType):
        key = (program.name, pixel_type)
        pipeline = self._pipelines.get(key)
        if pipeline is not None:
            return pipeline
        module = self._modules.get(program.name)
        if module is None:
            module = self._modules[program.name] = self._device.create_shader_module(
                label=program.name, code=program.wgsl)
        pipeline = self._pipelines[key] = self._device.create_render_pipeline(
            label=f"{program.name}/{pixel_type.texture_format}",
            layout=self._pipeline_layout,
            vertex={"module": module, "entry_point": "vs_main", "buffers": []},
            primitive={"topology": "triangle-list"},
            depth_stencil=None,
            fragment={"module": module, "entry_point": "fs_main",
                      "targets": [{"format": pixel_type.texture_format,
                                   "write_mask": wgpu.ColorWrite.ALL}]},
        )
        log.debug("compiled %s for %s on %s", program.name, pixel_type.texture_format, self.label)
        return pipeline

    def draw(self, program, source: TextureStorage, uniforms: bytes) -> None:
        """Render `program` over the bound framebuffer, reading `source`."""
        target = self._bound
        if target is None:
            raise GpuFault("draw failed", {"error": NO_FRAMEBUFFER, "context": self.label})
        self._check_usable(source, "draw")
        self._check_usable(target, "draw")
        if source is target:
            raise GpuFault("draw: source texture is the bound framebuffer", self._details(target))
        device = self.device
        try:
            pipeline = self._pipeline(program, target.pixel_type)
            buffer = device.create_buffer_with_data(data=uniforms, usage=wgpu.BufferUsage.UNIFORM)
            bind_group = device.create_bind_group(layout=self._bind_group_layout, entries=[
                {"binding": 0, "resource": source.view},
                {"binding": 1, "resource": {"buffer": buffer, "offset": 0, "size": buffer.size}},
            ])
            encoder = device.create_command_encoder(label=program.name)
            render_pass = encoder.begin_render_pass(color_attachments=[{
                "view": target.view,
                "resolve_target": None,
                "clear_value": (0, 0, 0, 0),
                "load_op": "clear",
                "store_op": "store",
            }])
            render_pass.set_pipeline(pipeline)
            render_pass.set_bind_group(0, bind_group)
            render_pass.draw(3, 1, 0, 0)
            render_pass.end()
            device.queue.submit([encoder.finish()])
        except wgpu.GPUError as e:
            raise self._device_fault(f"draw {program.name}", e, self._details(target)) from e
        self.draw_calls += 1
