from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProcessingParams:
    """Parameters of the live line-art pipeline.

    One instance is an immutable snapshot: a running frame only ever sees the
    snapshot it started with. Kernel and block sizes are stored raw and
    normalized when a stage uses them.
    """

    # bilateral filter
    bilateral_d: int = 9
    bilateral_sigma_color: int = 75
    bilateral_sigma_space: int = 75

    # median / gaussian blur
    median_blur_ksize: int = 5
    gaussian_blur_ksize: int = 5
    gaussian_sigma: float = 0  # 0 表示由核大小自动推算

    # adaptive threshold
    threshold_block_size: int = 25
    threshold_c: int = 10

    # morphology
    kernel_size: int = 3
    dilation_iterations: int = 2
    erosion_iterations: int = 1

    # stage toggles, all off by default
    use_bilateral_filter: bool = False
    use_median_blur: bool = False
    use_gaussian_blur: bool = False
    use_morph_close: bool = False
    use_erosion: bool = False
    use_dilation: bool = False

    def updated(self, **changes) -> "ProcessingParams":
        """Return a new snapshot with ``changes`` applied."""
        return replace(self, **changes)

    @classmethod
    def from_mapping(cls, data: dict) -> "ProcessingParams":
        """Build a snapshot from a JSON-style mapping.

        Accepts the snake_case field names as well as the camelCase names used
        by the browser version of the tool. Unknown keys are ignored.
        """
        known = {f.name for f in fields(cls)}
        values = {}
        for key, value in data.items():
            name = _CAMEL_ALIASES.get(key, key)
            if name in known:
                values[name] = value
            else:
                logger.debug("Ignoring unknown parameter: %s", key)
        return cls(**values)


_CAMEL_ALIASES = {
    "bilateralD": "bilateral_d",
    "bilateralSigmaColor": "bilateral_sigma_color",
    "bilateralSigmaSpace": "bilateral_sigma_space",
    "medianBlurKsize": "median_blur_ksize",
    "gaussianBlurKsize": "gaussian_blur_ksize",
    "gaussianSigma": "gaussian_sigma",
    "thresholdBlockSize": "threshold_block_size",
    "thresholdC": "threshold_c",
    "kernelSize": "kernel_size",
    "dilationIterations": "dilation_iterations",
    "erosionIterations": "erosion_iterations",
    "useBilateralFilter": "use_bilateral_filter",
    "useMedianBlur": "use_median_blur",
    "useGaussianBlur": "use_gaussian_blur",
    "useMorphClose": "use_morph_close",
    "useErosion": "use_erosion",
    "useDilation": "use_dilation",
}


def load_params(path: str | Path) -> ProcessingParams:
    """Load a ProcessingParams snapshot from a JSON file, defaults if missing."""
    path = Path(path)
    if not path.exists():
        logger.info("No parameter file at %s, using defaults", path)
        return ProcessingParams()
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"Parameter file must contain a JSON object: {path}")
    return ProcessingParams.from_mapping(data)


@dataclass(frozen=True)
class SegmentationParams:
    """Constants of the contour-area foreground heuristic.

    ``max_contours`` and ``mask_threshold`` have no derivation behind them;
    they reproduce the tool's historical behavior and are open to tuning.
    """

    bilateral_d: int = 9
    bilateral_sigma: int = 75
    canny_low: int = 50
    canny_high: int = 150
    edge_kernel: int = 3
    edge_dilate_iterations: int = 2
    max_contours: int = 3
    close_kernel: int = 15
    close_iterations: int = 3
    blur_ksize: int = 21
    mask_threshold: int = 128


@dataclass(frozen=True)
class EnhancementParams:
    """Fixed settings of the AI-assisted still-image pipeline."""

    bilateral_d: int = 9
    bilateral_sigma: int = 75
    canny_low: int = 30
    canny_high: int = 100
    threshold_block_size: int = 11
    threshold_c: int = 2
    thicken_kernel: int = 2
    bold_iterations: int = 2
    normal_iterations: int = 1
    connect_kernel: int = 3
    clean_kernel: int = 2
    timeout: float = 30.0
    max_size: int = 1024


@dataclass
class ServiceConfig:
    """Connection settings for the Gemini generateContent endpoint."""

    api_key: str = ""
    base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    suggestion_model: str = "gemini-2.0-flash-exp"
    image_model: str = "gemini-2.5-flash-image"
    timeout: float = 60.0

    @classmethod
    def from_env(cls) -> "ServiceConfig":
        api_key = os.getenv("GEMINI_API_KEY") or os.getenv("VITE_GEMINI_API_KEY") or ""
        return cls(api_key=api_key.strip())


# A single shared default instance for simple use-cases
default_params = ProcessingParams()
