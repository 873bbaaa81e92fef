"""Exception types shared by the pipelines, the live loop and the service client."""

from __future__ import annotations


class ColoringVisionError(Exception):
    """Base class for every error raised by coloring_vision."""


class BufferReleasedError(ColoringVisionError):
    """A raster buffer was used after it had been released."""


class FrameProcessingError(ColoringVisionError):
    """One live frame could not be processed. The frame is skipped."""


class FrameSourceClosed(ColoringVisionError):
    """The frame source is permanently unavailable."""


class LiveLoopHalted(ColoringVisionError):
    """The live loop stopped and has to be restarted explicitly."""

    def __init__(self, message: str, cause: BaseException | None = None):
        super().__init__(message)
        self.cause = cause


class SegmentationError(ColoringVisionError):
    """Foreground isolation failed. Callers fall back to the unsegmented image."""


class EnhancementError(ColoringVisionError):
    """The adaptive enhancement pipeline failed for this request."""


class EnhancementTimeoutError(EnhancementError):
    """The adaptive enhancement pipeline exceeded its time budget."""


class EnhancementCancelled(EnhancementError):
    """The adaptive enhancement request was cancelled by the caller."""


class ServiceError(ColoringVisionError):
    """The external vision service failed or returned something unusable."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class MissingApiKeyError(ServiceError):
    """No API key is configured for the vision service."""


class NoImageGeneratedError(ServiceError):
    """The image-generation service replied without an image."""
