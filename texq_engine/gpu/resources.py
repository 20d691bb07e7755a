"""Resource manager: texture + render target pairs, cached per rendering context.

Each (GpuTexture, RenderContext) pair moves through

    UNINITIALIZED --acquire--> BOUND --context lost--> LOST --acquire--> BOUND

LOST -> BOUND happens on the next acquire and is counted as a
reinitialisation.  The new storage is zero-filled, so a LOST texture can be
rendered into or written, but reading it raises ContextLostFault: its
contents went with the old device.  Allocation and binding failures are
fatal (GpuFault).

This module is the only code that talks to a RenderContext.
"""
from __future__ import annotations

import enum
import logging
from collections import defaultdict
from dataclasses import dataclass

import numpy as np

from texq_engine.config import DEFAULT_CONFIG, EngineConfig
from texq_engine.errors import ContextLostFault
from texq_engine.gpu.context import RenderContext, TextureStorage
from texq_engine.gpu.texture import GpuTexture, PixelType

log = logging.getLogger(__name__)


class TextureState(enum.Enum):
    UNINITIALIZED = "uninitialized"
    BOUND = "bound"
    LOST = "lost"


@dataclass(frozen=True)
class TextureHandle:
    storage: TextureStorage
    generation: int
    width: int
    height: int
    pixel_type: PixelType


class _Slot:
    __slots__ = ("handle", "state", "reinitializations")

    def __init__(self):
        self.handle: TextureHandle | None = None
        self.state = TextureState.UNINITIALIZED
        self.reinitializations = 0


def _details(texture: GpuTexture, context: RenderContext) -> dict:
    return {
        "width": texture.width,
        "height": texture.height,
        "pixel_type": texture.pixel_type.value,
        "context": context.label,
    }


class ResourceManager:
    """Owns every texture/render target pair and the per-context texture pools."""

    def __init__(self, config: EngineConfig = DEFAULT_CONFIG):
        self.config = config
        self._slots: dict[int, dict[GpuTexture, _Slot]] = {}
        self._pools: dict[int, TexturePool] = {}
        self.allocation_count = 0
        self.reinitialization_count = 0

    def create_context(self, label: str | None = None) -> RenderContext:
        """A fresh context sized from the config."""
        return RenderContext(
            max_texture_size=self.config.max_texture_size,
            max_texture_bytes=self.config.max_texture_bytes,
            label=label,
            power_preference=self.config.power_preference,
            force_fallback_adapter=self.config.force_fallback_adapter,
        )

    # ── lifecycle ────────────────────────────────────────────────────

    def _slots_for(self, context: RenderContext) -> dict[GpuTexture, _Slot]:
        slots = self._slots.get(context.context_id)
        if slots is None:
            slots = self._slots[context.context_id] = {}
            context.add_context_lost_listener(self._on_context_lost)
        return slots

    def _on_context_lost(self, context: RenderContext) -> None:
        slots = self._slots.get(context.context_id, {})
        for slot in slots.values():
            if slot.state is TextureState.BOUND:
                slot.state = TextureState.LOST
        log.warning("invalidated %d texture(s) bound to %s", len(slots), context.label)

    def state_of(self, texture: GpuTexture, context: RenderContext) -> TextureState:
        slot = self._slots.get(context.context_id, {}).get(texture)
        if slot is None:
            return TextureState.UNINITIALIZED
        if slot.state is TextureState.BOUND and slot.handle.generation != context.generation:
            return TextureState.LOST
        return slot.state

    def reinitializations_of(self, texture: GpuTexture, context: RenderContext) -> int:
        slot = self._slots.get(context.context_id, {}).get(texture)
        return slot.reinitializations if slot else 0

    def acquire(self, texture: GpuTexture, context: RenderContext) -> TextureHandle:
        """Cached handle for `texture` under `context`, creating it if needed."""
        slots = self._slots_for(context)
        slot = slots.get(texture)
        if slot is not None and slot.state is TextureState.BOUND:
            if slot.handle.generation == context.generation:
                return slot.handle
            slot.state = TextureState.LOST
        if context.is_context_lost():
            raise ContextLostFault("acquire: rendering context is lost", _details(texture, context))

        handle = self._initialize(texture, context)
        if slot is None:
            slot = slots[texture] = _Slot()
        elif slot.state is TextureState.LOST:
            slot.reinitializations += 1
            self.reinitialization_count += 1
            log.info("reinitialised %r on %s after context loss", texture, context.label)
        slot.handle = handle
        slot.state = TextureState.BOUND
        return handle

    def _initialize(self, texture: GpuTexture, context: RenderContext) -> TextureHandle:
        storage = context.create_texture(texture.width, texture.height, texture.pixel_type)
        self.allocation_count += 1
        log.debug("allocated %r on %s (%d bytes)", texture, context.label, storage.nbytes)
        return TextureHandle(
            storage=storage, generation=context.generation,
            width=texture.width, height=texture.height, pixel_type=texture.pixel_type,
        )

    def _readable(self, texture: GpuTexture, context: RenderContext) -> TextureHandle:
        """Handle whose contents are still valid; ContextLostFault if they were lost."""
        if self.state_of(texture, context) is TextureState.LOST:
            raise ContextLostFault(
                f"contents of {texture!r} were lost with the rendering context",
                {**_details(texture, context), "state": TextureState.LOST.value})
        return self.acquire(texture, context)

    def release(self, texture: GpuTexture, context: RenderContext) -> None:
        """Delete the texture's storage in `context` and forget it."""
        slot = self._slots.get(context.context_id, {}).pop(texture, None)
        if slot is None or slot.handle is None:
            return
        context.delete_texture(slot.handle.storage)

    def release_all(self, context: RenderContext) -> None:
        pool = self._pools.pop(context.context_id, None)
        if pool is not None:
            pool.clear()
        for texture in list(self._slots.get(context.context_id, {})):
            self.release(texture, context)
        self._slots.pop(context.context_id, None)

    # ── pixel traffic ────────────────────────────────────────────────

    def read_pixels(self, texture: GpuTexture, context: RenderContext) -> np.ndarray:
        """Copy of the texture's pixels, shape (height, width, 4)."""
        handle = self._readable(texture, context)
        return context.read_texture(handle.storage)

    def write_pixels(self, texture: GpuTexture, pixels: np.ndarray, context: RenderContext) -> None:
        """Upload a full frame of pixels into the texture."""
        handle = self.acquire(texture, context)
        context.write_texture(handle.storage, pixels)

    def bind(self, handle: TextureHandle, context: RenderContext) -> None:
        """Make `handle` the render target of subsequent draws."""
        context.bind_framebuffer(handle.storage)

    def render(self, shader, destination: GpuTexture, context: RenderContext) -> None:
        """Draw a configured shader from its source texture into `destination`."""
        source = self._readable(shader.source, context)
        target = self.acquire(destination, context)
        self.bind(target, context)
        try:
            context.draw(shader.program, source.storage,
                         shader.uniform_bytes(destination.width, destination.pixel_type))
        finally:
            context.bind_framebuffer(None)

    # ── pools ────────────────────────────────────────────────────────

    def pool_for(self, context: RenderContext) -> "TexturePool":
        pool = self._pools.get(context.context_id)
        if pool is None:
            pool = self._pools[context.context_id] = TexturePool(
                self, context, limit=self.config.pool_limit)
        return pool


class TexturePool:
    """Size-keyed pool of intermediate textures for one context."""

    def __init__(self, resources: ResourceManager, context: RenderContext, limit: int = 4):
        self.resources = resources
        self.context = context
        self.limit = limit
        self._idle: dict[tuple, list[GpuTexture]] = defaultdict(list)
        self._in_use: set[GpuTexture] = set()
        self.created = 0
        self.reused = 0
        self.peak_in_use = 0

    @property
    def in_use(self) -> int:
        return len(self._in_use)

    def idle_count(self) -> int:
        return sum(len(v) for v in self._idle.values())

    def take(self, width: int, height: int, pixel_type: PixelType = PixelType.FLOAT) -> GpuTexture:
        idle = self._idle[(width, height, pixel_type)]
        if idle:
            texture = idle.pop()
            self.reused += 1
        else:
            texture = GpuTexture(width, height, pixel_type)
            self.created += 1
        self._in_use.add(texture)
        self.peak_in_use = max(self.peak_in_use, len(self._in_use))
        return texture

    def give_back(self, texture: GpuTexture) -> None:
        if texture not in self._in_use:
            raise ValueError(f"{texture!r} was not taken from this pool")
        self._in_use.discard(texture)
        idle = self._idle[texture.size_key]
        if len(idle) >= self.limit:
            self.resources.release(texture, self.context)
            log.debug("pool over limit, released %r", texture)
        else:
            idle.append(texture)

    def clear(self) -> None:
        for idle in self._idle.values():
            for texture in idle:
                self.resources.release(texture, self.context)
        self._idle.clear()
