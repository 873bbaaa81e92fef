"""
线稿统计：深色像素数量与平均线宽。

线宽用"深色面积 / 骨架长度"估算，骨架由 skimage 的 skeletonize 给出。
"""

import numpy as np
from skimage.morphology import skeletonize


def dark_mask(lineart, threshold=128):
    if lineart.ndim == 3:
        lineart = lineart[:, :, :3].mean(axis=2)
    return lineart < threshold


def dark_pixel_count(lineart, threshold=128):
    """深色（线条）像素数量"""
    return int(np.count_nonzero(dark_mask(lineart, threshold)))


def stroke_width(lineart, threshold=128):
    """平均线宽（像素），空白页面返回 0.0"""
    mask = dark_mask(lineart, threshold)
    area = np.count_nonzero(mask)
    if area == 0:
        return 0.0
    length = np.count_nonzero(skeletonize(mask))
    return float(area) / max(1, length)


def summarize(lineart, threshold=128):
    h, w = lineart.shape[:2]
    dark = dark_pixel_count(lineart, threshold)
    return {
        "width": w,
        "height": h,
        "dark_pixels": dark,
        "ink_coverage": dark / float(w * h) if w and h else 0.0,
        "stroke_width": stroke_width(lineart, threshold),
    }
