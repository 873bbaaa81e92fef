"""
AI 辅助的静态图像线稿流水线。

视觉模型返回的关键词决定边缘算子、线条加粗程度以及是否连接断线；
可选的背景去除失败时退回未分割的图像，其余阶段的失败都是整个请求的失败。
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time

import cv2
import numpy as np

from . import preprocessing, segmentation
from .buffers import BufferArena
from .config import EnhancementParams
from .errors import (
    BufferReleasedError,
    EnhancementCancelled,
    EnhancementError,
    EnhancementTimeoutError,
    SegmentationError,
)
from .keywords import BOLD_LINES, CONNECT_LINES, EDGE_DETECT, parse_keywords

logger = logging.getLogger(__name__)

DEFAULT_ENHANCEMENT = EnhancementParams()


class CancelToken:
    """Deadline and cancellation flag shared between a caller and a worker.

    The worker calls ``check()`` between stages; it raises once the deadline
    has passed or ``cancel()`` was called.
    """

    def __init__(self, timeout: float | None = None):
        self.timeout = timeout
        self._deadline = None if timeout is None else time.monotonic() + timeout
        self._cancelled = threading.Event()

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def expired(self) -> bool:
        return self._deadline is not None and time.monotonic() >= self._deadline

    def check(self) -> None:
        if self.expired:
            raise EnhancementTimeoutError(
                f"Processing timeout after {self.timeout:g}s - image too large or complex"
            )
        if self.cancelled:
            raise EnhancementCancelled("Processing cancelled")


def _as_keyword_set(keywords) -> frozenset:
    if keywords is None:
        return frozenset()
    if isinstance(keywords, str):
        return parse_keywords(keywords)
    return frozenset(str(k).strip().lower() for k in keywords)


def _remove_background_or_keep(image):
    """背景去除是尽力而为的：失败时记录警告并返回原图"""
    try:
        result = segmentation.remove_background(image)
        logger.info("Background removed with edge detection")
        return result
    except SegmentationError as exc:
        logger.warning("Background removal failed, proceeding without it: %s", exc)
        return image


def _detect_lines(gray, use_canny, params):
    """线条为 255 的边缘图：Canny 或作为后备的反向自适应阈值"""
    if use_canny:
        return preprocessing.canny(gray, params.canny_low, params.canny_high)
    return preprocessing.adaptive_threshold(
        gray, params.threshold_block_size, params.threshold_c, invert=True
    )


def enhance(image, keywords, remove_background=False, params=DEFAULT_ENHANCEMENT, token=None):
    """Run the keyword-driven line-art pipeline synchronously.

    Morphology works on the line mask (lines bright), so dilation thickens
    strokes and opening removes specks; the mask is inverted at the end to
    give dark lines on white paper.

    Args:
        image: RGBA ``numpy.ndarray``, already scaled to at most
            ``params.max_size`` on each side. Not modified.
        keywords: iterable of enhancement keywords, or a suggestion string.
        remove_background: run the segmentation stage first.
        params: fixed pipeline settings.
        token: optional ``CancelToken`` checked between stages.

    Returns:
        numpy.ndarray: single-channel line art, lines 0 and paper 255.

    Raises:
        EnhancementTimeoutError, EnhancementCancelled: the token fired.
        EnhancementError: any other stage failure.
    """
    token = token or CancelToken()
    words = _as_keyword_set(keywords)
    use_canny = EDGE_DETECT in words or BOLD_LINES in words
    iterations = params.bold_iterations if BOLD_LINES in words else params.normal_iterations

    logger.info("Applying advanced processing (keywords: %s)", ", ".join(sorted(words)) or "none")
    with BufferArena("enhancement") as arena:
        try:
            if not isinstance(image, np.ndarray) or image.ndim != 3 or image.shape[2] != 4:
                raise ValueError(
                    f"expected an RGBA image, got {getattr(image, 'shape', None)}"
                )
            token.check()
            source = image
            if remove_background:
                logger.info("Background removal enabled")
                source = _remove_background_or_keep(image)
                token.check()

            gray = arena.adopt(preprocessing.to_gray(source), "gray")
            del source

            buf = arena.chain(
                gray, preprocessing.bilateral,
                params.bilateral_d, params.bilateral_sigma, params.bilateral_sigma,
                name="bilateral",
            )
            logger.debug("Applied bilateral filter")
            token.check()

            buf = arena.chain(buf, _detect_lines, use_canny, params, name="lines")
            logger.debug("Applied %s", "Canny edge detection" if use_canny else "adaptive threshold")
            token.check()

            buf = arena.chain(
                buf, preprocessing.dilate, params.thicken_kernel, iterations, name="thickened"
            )
            logger.debug("Thickened lines (%dx)", iterations)
            token.check()

            if CONNECT_LINES in words:
                buf = arena.chain(buf, preprocessing.close, params.connect_kernel, name="connected")
                logger.debug("Connected lines")
                token.check()

            buf = arena.chain(buf, preprocessing.open_, params.clean_kernel, name="cleaned")
            logger.debug("Removed noise")

            buf = arena.chain(buf, preprocessing.invert, name="line_art")
            token.check()
            result = arena.detach(buf)
        except (EnhancementTimeoutError, EnhancementCancelled):
            logger.error("Processing aborted, %d buffer(s) released", arena.live_count)
            raise
        except (cv2.error, ValueError, TypeError, BufferReleasedError) as exc:
            logger.error("Processing error: %s", exc)
            raise EnhancementError(f"Processing error: {exc}") from exc

    logger.info("Processing complete")
    return result


async def run_adaptive_enhancement(
    image,
    keywords,
    remove_background=False,
    params=DEFAULT_ENHANCEMENT,
    timeout=None,
) -> np.ndarray:
    """Run ``enhance`` in a worker thread, bounded by ``timeout`` seconds.

    On timeout the worker is told to stop at its next stage boundary (which
    releases its buffers) and ``EnhancementTimeoutError`` is raised; no
    partial image is ever returned.
    """
    timeout = params.timeout if timeout is None else timeout
    token = CancelToken(timeout)
    try:
        return await asyncio.wait_for(
            asyncio.to_thread(enhance, image, keywords, remove_background, params, token),
            timeout,
        )
    except asyncio.TimeoutError as exc:
        token.cancel()
        logger.error("Processing timeout after %gs", timeout)
        raise EnhancementTimeoutError(
            f"Processing timeout after {timeout:g}s - image too large or complex"
        ) from exc
    except asyncio.CancelledError:
        token.cancel()
        raise
