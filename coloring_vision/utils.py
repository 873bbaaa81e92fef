from __future__ import annotations

import base64

import cv2
import numpy as np


def read_image_any_path(path: str) -> np.ndarray | None:
    """Read image from path supporting non-ASCII characters.

    Returns an RGBA np.ndarray or None if failed.
    """
    try:
        data = np.fromfile(path, dtype=np.uint8)
        img = cv2.imdecode(data, cv2.IMREAD_UNCHANGED)
    except (OSError, cv2.error):
        return None
    if img is None:
        return None
    return to_rgba(img)


def save_image_any_path(path: str, image: np.ndarray) -> bool:
    """Write an RGBA or grayscale image to path supporting non-ASCII characters."""
    try:
        ext = path.split(".")[-1].lower()
        result, encoded = cv2.imencode(f".{ext}", _to_cv_order(image))
        if not result:
            return False
        encoded.tofile(path)
        return True
    except (OSError, cv2.error):
        return False


def to_rgba(image: np.ndarray) -> np.ndarray:
    """Convert an OpenCV-decoded image (GRAY/BGR/BGRA) to RGBA uint8."""
    if image.dtype != np.uint8:
        image = to_uint8_grayscale(image) if image.ndim == 2 else _scale_to_uint8(image)
    if image.ndim == 2:
        return cv2.cvtColor(image, cv2.COLOR_GRAY2RGBA)
    if image.shape[2] == 3:
        return cv2.cvtColor(image, cv2.COLOR_BGR2RGBA)
    return cv2.cvtColor(image, cv2.COLOR_BGRA2RGBA)


def _scale_to_uint8(image: np.ndarray) -> np.ndarray:
    """Map 16-bit or float colour channels onto 0-255 without wrapping."""
    if image.dtype == np.uint16:
        return (image >> 8).astype(np.uint8)
    arr = image.astype(np.float32)
    if np.issubdtype(image.dtype, np.floating) and float(np.max(arr, initial=0.0)) <= 1.0:
        arr = arr * 255.0
    return np.clip(arr, 0, 255).astype(np.uint8)


def _to_cv_order(image: np.ndarray) -> np.ndarray:
    if image.ndim == 3 and image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_RGBA2BGRA)
    return image


def to_uint8_grayscale(image: np.ndarray) -> np.ndarray:
    """Convert input image to uint8 grayscale consistently.

    - Accepts RGBA/GRAY, float or integer arrays
    - Scales/normalizes to 0-255 uint8
    """
    if image is None:
        raise ValueError("image is None")

    arr = image
    if arr.ndim == 3 and arr.shape[2] == 4:
        arr = cv2.cvtColor(arr, cv2.COLOR_RGBA2GRAY)

    if arr.dtype == np.uint8:
        return arr

    arr = arr.astype(np.float32)
    min_v = float(np.min(arr))
    max_v = float(np.max(arr))
    if max_v <= min_v:
        return np.zeros_like(arr, dtype=np.uint8)
    arr = (arr - min_v) / (max_v - min_v) * 255.0
    return np.clip(arr, 0, 255).astype(np.uint8)


def normalize_odd(value: int, minimum: int) -> int:
    """Clamp ``value`` to ``minimum`` and make it odd.

    Kernel and block sizes go through this right before use, so stored
    parameters are never rewritten.
    """
    value = max(int(value), int(minimum))
    if value % 2 == 0:
        value += 1
    return value


def normalize_iterations(value: int) -> int:
    """Iteration count of an enabled morphology stage, at least 1."""
    return max(1, int(value))


def ellipse_kernel(size: int) -> np.ndarray:
    return cv2.getStructuringElement(cv2.MORPH_ELLIPSE, (size, size))


def fit_within(image: np.ndarray, max_size: int = 1024) -> np.ndarray:
    """Downscale so that neither side exceeds ``max_size``, keeping aspect ratio."""
    h, w = image.shape[:2]
    if w <= max_size and h <= max_size:
        return image
    if w > h:
        new_w, new_h = max_size, max(1, round(h / w * max_size))
    else:
        new_w, new_h = max(1, round(w / h * max_size)), max_size
    return cv2.resize(image, (new_w, new_h), interpolation=cv2.INTER_AREA)


def encode_png_base64(image: np.ndarray) -> str:
    """Encode an RGBA or grayscale raster as base64 PNG (no data-URL prefix)."""
    ok, encoded = cv2.imencode(".png", _to_cv_order(image))
    if not ok:
        raise ValueError("PNG encoding failed")
    return base64.b64encode(encoded.tobytes()).decode("ascii")


def decode_image_base64(data: str) -> np.ndarray:
    """Decode base64 image bytes (optionally a data URL) to RGBA."""
    if data.startswith("data:"):
        data = data.split(",", 1)[1]
    raw = np.frombuffer(base64.b64decode(data), dtype=np.uint8)
    img = cv2.imdecode(raw, cv2.IMREAD_UNCHANGED)
    if img is None:
        raise ValueError("could not decode image data")
    return to_rgba(img)
