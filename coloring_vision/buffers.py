"""
Raster buffers with explicit ownership.

每个流水线阶段拿走输入缓冲区的所有权，产生新的输出缓冲区，
并在不再需要时立即释放输入；一次调用内的所有中间缓冲区由
BufferArena 统一跟踪，异常或取消时也会被全部释放。
"""

from __future__ import annotations

import logging

import numpy as np

from .errors import BufferReleasedError

logger = logging.getLogger(__name__)


class RasterBuffer:
    """A single-channel (H, W) or four-channel (H, W, 4) uint8 raster.

    The buffer owns its array until ``release()`` or ``take()`` is called.
    Accessing ``data`` afterwards raises ``BufferReleasedError``.
    """

    __slots__ = ("_data", "name")

    def __init__(self, data: np.ndarray, name: str = ""):
        if not isinstance(data, np.ndarray):
            raise TypeError(f"expected numpy.ndarray, got {type(data).__name__}")
        if data.ndim == 3 and data.shape[2] != 4:
            raise ValueError(f"expected 1 or 4 channels, got shape {data.shape}")
        if data.ndim not in (2, 3):
            raise ValueError(f"expected a 2D raster, got shape {data.shape}")
        self._data = data
        self.name = name

    @property
    def data(self) -> np.ndarray:
        if self._data is None:
            raise BufferReleasedError(f"buffer '{self.name}' used after release")
        return self._data

    @property
    def released(self) -> bool:
        return self._data is None

    @property
    def shape(self) -> tuple:
        return self.data.shape

    @property
    def height(self) -> int:
        return self.data.shape[0]

    @property
    def width(self) -> int:
        return self.data.shape[1]

    @property
    def channels(self) -> int:
        return 1 if self.data.ndim == 2 else self.data.shape[2]

    def release(self) -> None:
        """Drop the array. Releasing twice is a no-op."""
        self._data = None

    def take(self, name: str | None = None) -> "RasterBuffer":
        """Move the array into a new buffer and release this handle."""
        moved = RasterBuffer(self.data, self.name if name is None else name)
        self.release()
        return moved

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()
        return False

    def __repr__(self) -> str:
        if self.released:
            return f"RasterBuffer({self.name!r}, released)"
        return f"RasterBuffer({self.name!r}, shape={self._data.shape})"


class BufferArena:
    """Tracks every buffer allocated during one pipeline invocation.

    Stages are chained with ``chain()``: the stage reads the input array,
    the output is adopted into the arena and the input is released. The
    final result leaves the arena through ``detach()``; everything else is
    released on ``release_all()`` (also on context exit, whatever the cause).
    """

    def __init__(self, label: str = "pipeline"):
        self.label = label
        self._live: list[RasterBuffer] = []

    @property
    def live_count(self) -> int:
        return sum(1 for buf in self._live if not buf.released)

    def adopt(self, array: np.ndarray, name: str = "") -> RasterBuffer:
        buf = RasterBuffer(array, name)
        self._live.append(buf)
        return buf

    def chain(self, src: RasterBuffer, fn, *args, name: str = "", **kwargs) -> RasterBuffer:
        """Run ``fn(src.data, *args, **kwargs)`` and transfer ownership to its output."""
        out = fn(src.data, *args, **kwargs)
        if out is src.data:
            # identity stage: keep the array, hand over the handle
            moved = src.take(name or src.name)
            self._live.append(moved)
            return moved
        dst = self.adopt(out, name)
        src.release()
        return dst

    def detach(self, buf: RasterBuffer) -> np.ndarray:
        """Hand the buffer's array to the caller and stop tracking it."""
        array = buf.data
        buf.release()
        self._live = [b for b in self._live if b is not buf]
        return array

    def release_all(self) -> int:
        count = 0
        for buf in self._live:
            if not buf.released:
                buf.release()
                count += 1
        self._live.clear()
        if count:
            logger.debug("%s: released %d intermediate buffer(s)", self.label, count)
        return count

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release_all()
        return False
