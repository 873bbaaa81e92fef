"""
前景分割模块（启发式）
功能：边缘检测 + 外轮廓提取 + 取面积最大的若干轮廓作为主体掩膜，
      掩膜平滑后将背景像素统一设为不透明白色。

没有可用的分割模型，轮廓面积只是"主体"的廉价近似：对单主体、背景
对比度较低的照片效果较好，多主体或主体边缘对比度低时可能失败。
"""

import logging

import cv2
import numpy as np

from . import preprocessing
from .buffers import BufferArena
from .config import SegmentationParams
from .errors import BufferReleasedError, SegmentationError

logger = logging.getLogger(__name__)

DEFAULT_SEGMENTATION = SegmentationParams()


def _largest_contours_mask(edges, shape, max_contours):
    """内部函数：只取外轮廓，按面积降序保留前 max_contours 个并填充为白色"""
    contours, _ = cv2.findContours(edges, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)
    mask = np.zeros(shape, np.uint8)
    if not contours:
        logger.debug("No contours found, whole image treated as background")
        return mask
    ranked = sorted(contours, key=cv2.contourArea, reverse=True)[:max_contours]
    cv2.drawContours(mask, ranked, -1, 255, thickness=cv2.FILLED)
    return mask


def foreground_mask(image, seg=DEFAULT_SEGMENTATION):
    """计算前景置信度掩膜

    Args:
        image (numpy.ndarray): RGBA 图像
        seg (SegmentationParams): 启发式参数

    Returns:
        numpy.ndarray: 与输入同尺寸的单通道掩膜，值越大越可能是前景

    Raises:
        SegmentationError: 输入不是 RGBA 图像或任一步骤失败
    """
    if not isinstance(image, np.ndarray) or image.ndim != 3 or image.shape[2] != 4:
        raise SegmentationError(
            f"expected an RGBA image, got {getattr(image, 'shape', None)}"
        )

    with BufferArena("segmentation") as arena:
        try:
            gray = arena.adopt(preprocessing.to_gray(image), "gray")
            # 1. 保边平滑
            smoothed = arena.chain(
                gray, preprocessing.bilateral,
                seg.bilateral_d, seg.bilateral_sigma, seg.bilateral_sigma,
                name="bilateral",
            )
            # 2. Canny 强边缘
            edges = arena.chain(
                smoothed, preprocessing.canny, seg.canny_low, seg.canny_high, name="edges"
            )
            # 3. 膨胀边缘，弥合小缺口
            edges = arena.chain(
                edges, preprocessing.dilate, seg.edge_kernel, seg.edge_dilate_iterations,
                name="dilated_edges",
            )
            # 4-6. 外轮廓 → 面积前 N 个 → 填充掩膜
            mask = arena.chain(
                edges, _largest_contours_mask, image.shape[:2], seg.max_contours, name="mask"
            )
            # 7. 闭运算填洞，高斯模糊柔化边界
            mask = arena.chain(
                mask, preprocessing.close, seg.close_kernel, seg.close_iterations,
                name="closed_mask",
            )
            mask = arena.chain(
                mask, preprocessing.gaussian, seg.blur_ksize, 0, name="smooth_mask"
            )
            return arena.detach(mask)
        except (cv2.error, ValueError, BufferReleasedError) as exc:
            raise SegmentationError(f"Background removal failed: {exc}") from exc


def remove_background(image, seg=DEFAULT_SEGMENTATION):
    """将背景像素（掩膜 < mask_threshold）设为不透明白色，前景保留原色

    输入图像不会被修改，返回新的 RGBA 图像。
    """
    mask = foreground_mask(image, seg)
    try:
        result = image.copy()
        result[mask < seg.mask_threshold] = 255
    except (IndexError, TypeError, ValueError) as exc:
        raise SegmentationError(f"Background removal failed: {exc}") from exc
    return result


def background_ratio(mask, seg=DEFAULT_SEGMENTATION):
    """掩膜中被判为背景的像素比例"""
    if mask.size == 0:
        return 0.0
    return float(np.count_nonzero(mask < seg.mask_threshold)) / mask.size
