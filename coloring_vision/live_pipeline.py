"""
实时线稿流水线：灰度 → 可选去噪 → 自适应阈值 → 可选形态学。

run_live_pipeline 处理单帧；LiveLoop 按帧节奏驱动外部帧源，
连续失败达到上限后停止并报告致命错误。
"""

from __future__ import annotations

import logging
import threading
import time

import cv2
import numpy as np

from . import preprocessing
from .buffers import BufferArena, RasterBuffer
from .config import ProcessingParams, default_params
from .errors import (
    BufferReleasedError,
    FrameProcessingError,
    FrameSourceClosed,
    LiveLoopHalted,
)
from .utils import normalize_iterations, normalize_odd

logger = logging.getLogger(__name__)

MAX_CONSECUTIVE_FAILURES = 5
LOG_EVERY_N_FRAMES = 30


def denoise_stage(arena: BufferArena, gray: RasterBuffer, params: ProcessingParams) -> RasterBuffer:
    """Optional smoothing, compounded in the fixed order bilateral → median → gaussian."""
    buf = gray
    if params.use_bilateral_filter:
        buf = arena.chain(
            buf,
            preprocessing.bilateral,
            max(1, int(params.bilateral_d)),
            max(1, params.bilateral_sigma_color),
            max(1, params.bilateral_sigma_space),
            name="bilateral",
        )
    if params.use_median_blur:
        buf = arena.chain(
            buf, preprocessing.median, normalize_odd(params.median_blur_ksize, 3), name="median"
        )
    if params.use_gaussian_blur:
        buf = arena.chain(
            buf,
            preprocessing.gaussian,
            normalize_odd(params.gaussian_blur_ksize, 3),
            max(0.0, float(params.gaussian_sigma)),
            name="gaussian",
        )
    return buf


def morphology_stage(arena: BufferArena, binary: RasterBuffer, params: ProcessingParams) -> RasterBuffer:
    """Optional closing, then erosion, then dilation.

    Erosion and dilation are independent toggles applied in that order; with
    different iteration counts the net line thickness changes.
    """
    ksize = normalize_odd(params.kernel_size, 1)
    buf = binary
    if params.use_morph_close:
        buf = arena.chain(buf, preprocessing.close, ksize, name="closed")
    if params.use_erosion:
        buf = arena.chain(
            buf,
            preprocessing.erode,
            ksize,
            normalize_iterations(params.erosion_iterations),
            name="eroded",
        )
    if params.use_dilation:
        buf = arena.chain(
            buf,
            preprocessing.dilate,
            ksize,
            normalize_iterations(params.dilation_iterations),
            name="dilated",
        )
    return buf


def run_live_pipeline(frame, params: ProcessingParams = default_params) -> np.ndarray:
    """Turn one RGBA frame into binary line art.

    Args:
        frame: RGBA ``numpy.ndarray`` or ``RasterBuffer``. The caller keeps
            ownership; it is never modified.
        params: parameter snapshot for this frame.

    Returns:
        numpy.ndarray: single-channel 0/255 raster of the same size, lines at 0.

    Raises:
        FrameProcessingError: any stage failed; no partial output is produced.
    """
    with BufferArena("live") as arena:
        try:
            src = frame.data if isinstance(frame, RasterBuffer) else frame
            if not isinstance(src, np.ndarray) or src.ndim != 3 or src.shape[2] != 4:
                raise ValueError(f"expected an RGBA frame, got {getattr(src, 'shape', type(src))}")
            if src.shape[0] == 0 or src.shape[1] == 0:
                raise ValueError("empty frame")

            gray = arena.adopt(preprocessing.to_gray(src), "gray")
            smoothed = denoise_stage(arena, gray, params)
            binary = arena.chain(
                smoothed,
                preprocessing.adaptive_threshold,
                normalize_odd(params.threshold_block_size, 3),
                params.threshold_c,
                name="thresh",
            )
            result = morphology_stage(arena, binary, params)
            return arena.detach(result)
        except (cv2.error, ValueError, TypeError, BufferReleasedError) as exc:
            raise FrameProcessingError(f"Processing error: {exc}") from exc


class LiveLoop:
    """Frame-paced loop feeding a frame source through the live pipeline.

    ``sink`` receives ``(line_art, frame)`` for every processed frame. The
    loop is single-threaded; ``stop()`` and ``update_params()`` may be called
    from another thread and take effect before the next frame.
    """

    def __init__(
        self,
        source,
        sink,
        params: ProcessingParams = default_params,
        max_consecutive_failures: int = MAX_CONSECUTIVE_FAILURES,
        frame_interval: float = 0.0,
        idle_interval: float = 0.01,
    ):
        self.source = source
        self.sink = sink
        self.max_consecutive_failures = max_consecutive_failures
        self.frame_interval = frame_interval
        self.idle_interval = idle_interval
        self._params = params
        self._params_lock = threading.Lock()
        self._stop = threading.Event()
        self.frame_size = None
        self.frames_processed = 0
        self.frames_failed = 0
        self.consecutive_failures = 0

    @property
    def params(self) -> ProcessingParams:
        with self._params_lock:
            return self._params

    def update_params(self, params: ProcessingParams) -> None:
        """Swap the parameter snapshot; the frame in flight keeps the old one."""
        with self._params_lock:
            self._params = params

    def stop(self) -> None:
        self._stop.set()

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def step(self) -> bool:
        """Process at most one frame.

        Returns True if a frame was processed, False if the source had
        nothing ready. Raises FrameProcessingError on a transient failure.
        """
        frame = self.source.read()
        if frame is None:
            return False
        size = getattr(frame, "shape", (None, None))[:2]
        if self.frame_size is not None and size != self.frame_size:
            raise FrameProcessingError(
                f"frame size changed from {self.frame_size} to {size}"
            )
        line_art = run_live_pipeline(frame, self.params)
        # 会话尺寸以第一帧成功处理的帧为准
        if self.frame_size is None:
            self.frame_size = size
        self.sink(line_art, frame)
        return True

    def run(self, max_frames: int | None = None) -> int:
        """Run until stopped, the source closes, or ``max_frames`` frames are done.

        Returns the number of frames processed in this run.

        Raises:
            LiveLoopHalted: the consecutive-failure budget was exhausted.
        """
        self._stop.clear()
        self.consecutive_failures = 0
        processed = 0
        logger.info("Starting video processing loop")
        try:
            while not self._stop.is_set():
                if max_frames is not None and processed >= max_frames:
                    break
                started = time.monotonic()
                try:
                    if not self.step():
                        # 帧源尚未就绪：推迟，不计为错误
                        time.sleep(self.idle_interval)
                        continue
                except FrameSourceClosed:
                    logger.info("Frame source closed")
                    break
                except FrameProcessingError as exc:
                    self.frames_failed += 1
                    self.consecutive_failures += 1
                    logger.error("%s", exc)
                    if self.consecutive_failures >= self.max_consecutive_failures:
                        logger.error("Too many errors, stopping processing")
                        raise LiveLoopHalted(
                            f"{self.consecutive_failures} consecutive frame failures", exc
                        ) from exc
                    continue

                self.consecutive_failures = 0
                if self.frames_processed % LOG_EVERY_N_FRAMES == 0:
                    logger.info("Processing frame %d", self.frames_processed)
                self.frames_processed += 1
                processed += 1

                elapsed = time.monotonic() - started
                if self.frame_interval > elapsed:
                    time.sleep(self.frame_interval - elapsed)
        finally:
            self._stop.set()
            logger.info("Stopped video processing loop")
        return processed
