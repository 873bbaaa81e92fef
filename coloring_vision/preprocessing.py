"""
流水线的基本阶段函数。

每个函数只读输入数组并返回新分配的输出数组，从不就地修改输入，
因此可以安全地用 BufferArena.chain 串联。
"""

import cv2
import numpy as np

from .utils import ellipse_kernel


def to_gray(image):
    """将 RGBA 彩色图像转换为灰度图像

    Args:
        image (numpy.ndarray): 输入的 RGBA 图像，单通道图像会被复制后原样返回

    Returns:
        numpy.ndarray: 单通道灰度图像
    """
    if image.ndim == 2:
        return image.copy()
    if image.shape[2] != 4:
        raise ValueError(f"expected an RGBA image, got shape {image.shape}")
    return cv2.cvtColor(image, cv2.COLOR_RGBA2GRAY)


def bilateral(gray, d, sigma_color, sigma_space):
    """双边滤波：去噪的同时保留边缘"""
    return cv2.bilateralFilter(gray, int(d), float(sigma_color), float(sigma_space))


def median(gray, ksize):
    """中值滤波：去除椒盐噪声，ksize 必须为奇数"""
    return cv2.medianBlur(gray, ksize)


def gaussian(gray, ksize, sigma=0):
    """高斯模糊，sigma 为 0 时由核大小推算"""
    return cv2.GaussianBlur(gray, (ksize, ksize), float(sigma))


def adaptive_threshold(gray, block_size, c, invert=False):
    """高斯加权自适应阈值二值化

    像素大于邻域加权均值减 c 时为 255，否则为 0（invert 时相反）。
    对线稿而言，不反转时线条为黑、纸面为白。

    Args:
        gray (numpy.ndarray): 输入灰度图像
        block_size (int): 邻域大小，必须为 >=3 的奇数
        c (int): 从加权均值中减去的常数
        invert (bool): 是否使用 THRESH_BINARY_INV

    Returns:
        numpy.ndarray: 0/255 二值图像
    """
    mode = cv2.THRESH_BINARY_INV if invert else cv2.THRESH_BINARY
    return cv2.adaptiveThreshold(
        gray, 255, cv2.ADAPTIVE_THRESH_GAUSSIAN_C, mode, block_size, c
    )


def canny(gray, low, high):
    """Canny 边缘检测，边缘为 255"""
    return cv2.Canny(gray, low, high)


def invert(binary):
    return cv2.bitwise_not(binary)


def close(binary, ksize, iterations=1):
    """形态学闭运算（先膨胀后腐蚀），连接断开的线条"""
    return cv2.morphologyEx(
        binary, cv2.MORPH_CLOSE, ellipse_kernel(ksize), iterations=iterations
    )


def open_(binary, ksize, iterations=1):
    """形态学开运算（先腐蚀后膨胀），去除孤立小噪点"""
    return cv2.morphologyEx(
        binary, cv2.MORPH_OPEN, ellipse_kernel(ksize), iterations=iterations
    )


def erode(binary, ksize, iterations=1):
    return cv2.erode(binary, ellipse_kernel(ksize), iterations=iterations)


def dilate(binary, ksize, iterations=1):
    return cv2.dilate(binary, ellipse_kernel(ksize), iterations=iterations)


def identity(image):
    return image


def is_binary(image):
    """判断图像是否只包含 0 和 255"""
    values = np.unique(image)
    return bool(np.all(np.isin(values, (0, 255))))
