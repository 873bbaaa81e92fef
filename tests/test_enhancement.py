"""
测试关键词驱动的线稿增强流水线
"""
import asyncio
import os
import sys
import time

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import cv2
import numpy as np
import pytest

from coloring_vision import analysis, enhancement, segmentation
from coloring_vision.buffers import BufferArena
from coloring_vision.enhancement import CancelToken, enhance, run_adaptive_enhancement
from coloring_vision.errors import (
    EnhancementCancelled,
    EnhancementError,
    EnhancementTimeoutError,
    SegmentationError,
)
from coloring_vision.preprocessing import is_binary


@pytest.fixture
def drawing():
    """白底上用 2 像素黑线画出的简单图形"""
    img = np.full((200, 200, 4), 255, np.uint8)
    black = (0, 0, 0, 255)
    cv2.rectangle(img, (30, 30), (170, 170), black, 2)
    cv2.circle(img, (100, 100), 40, black, 2)
    cv2.line(img, (30, 100), (170, 100), black, 2)
    return img


class TestKeywordEffects:
    def test_output_is_binary_line_art(self, drawing):
        out = enhance(drawing, set())
        assert out.shape == (200, 200)
        assert out.dtype == np.uint8
        assert is_binary(out)
        # 纸面为白，线条为黑
        assert out[5, 5] == 255
        assert analysis.dark_pixel_count(out) > 0

    def test_bold_lines_darker_than_no_keywords(self, drawing):
        bold = analysis.dark_pixel_count(enhance(drawing, {"bold_lines"}))
        plain = analysis.dark_pixel_count(enhance(drawing, set()))
        assert bold > plain

    def test_bold_lines_darker_than_edge_detect(self, drawing):
        bold = analysis.dark_pixel_count(enhance(drawing, {"bold_lines"}))
        edges = analysis.dark_pixel_count(enhance(drawing, {"edge_detect"}))
        assert bold > edges

    def test_connect_lines_never_removes_ink(self, drawing):
        connected = analysis.dark_pixel_count(enhance(drawing, {"connect_lines"}))
        plain = analysis.dark_pixel_count(enhance(drawing, set()))
        assert connected >= plain

    def test_suggestion_string_is_accepted(self, drawing):
        from_text = enhance(drawing, "bold_lines, foobar")
        from_set = enhance(drawing, {"bold_lines"})
        assert np.array_equal(from_text, from_set)

    def test_input_not_modified(self, drawing):
        before = drawing.copy()
        enhance(drawing, {"bold_lines", "connect_lines"}, remove_background=True)
        assert np.array_equal(drawing, before)


def test_segmentation_failure_falls_back_to_unsegmented(drawing, monkeypatch, caplog):
    def broken(image, seg=None):
        raise SegmentationError("no contours today")

    expected = enhance(drawing, {"edge_detect"})
    monkeypatch.setattr(segmentation, "remove_background", broken)
    with caplog.at_level("WARNING"):
        out = enhance(drawing, {"edge_detect"}, remove_background=True)
    assert np.array_equal(out, expected)
    assert "Background removal failed" in caplog.text


def test_other_stage_failure_is_fatal(drawing, monkeypatch):
    def broken(gray, use_canny, params):
        raise ValueError("bad kernel")

    monkeypatch.setattr(enhancement, "_detect_lines", broken)
    with pytest.raises(EnhancementError, match="bad kernel"):
        enhance(drawing, set())


def test_non_rgba_input_fails(drawing):
    with pytest.raises(EnhancementError):
        enhance(drawing[..., :3], set())


def test_non_array_input_fails():
    with pytest.raises(EnhancementError):
        enhance([[0, 0, 0, 255]], set())


def test_mask_mismatch_falls_back_to_unsegmented(drawing, monkeypatch):
    monkeypatch.setattr(segmentation, "foreground_mask", lambda image, seg: np.zeros((3, 3), np.uint8))
    expected = enhance(drawing, {"edge_detect"})
    out = enhance(drawing, {"edge_detect"}, remove_background=True)
    assert np.array_equal(out, expected)


def test_expired_token_raises_timeout(drawing):
    with pytest.raises(EnhancementTimeoutError):
        enhance(drawing, set(), token=CancelToken(timeout=0))


def test_cancelled_token_releases_buffers(drawing, monkeypatch):
    arenas = []

    class RecordingArena(BufferArena):
        def __init__(self, *args, **kwargs):
            super().__init__(*args, **kwargs)
            self.adopted = []
            arenas.append(self)

        def adopt(self, array, name=""):
            buf = super().adopt(array, name)
            self.adopted.append(buf)
            return buf

    class CancelAfter(CancelToken):
        def __init__(self, checks):
            super().__init__()
            self.remaining = checks

        def check(self):
            self.remaining -= 1
            if self.remaining < 0:
                self.cancel()
            super().check()

    monkeypatch.setattr(enhancement, "BufferArena", RecordingArena)
    with pytest.raises(EnhancementCancelled):
        enhance(drawing, {"connect_lines"}, token=CancelAfter(3))
    assert arenas and arenas[0].adopted
    assert all(buf.released for buf in arenas[0].adopted)


# ================ 异步入口 ====================
def test_async_entry_returns_line_art(drawing):
    out = asyncio.run(run_adaptive_enhancement(drawing, {"bold_lines"}))
    assert np.array_equal(out, enhance(drawing, {"bold_lines"}))


def test_slow_stage_times_out_without_partial_result(drawing, monkeypatch):
    original = enhancement._detect_lines

    def slow(gray, use_canny, params):
        time.sleep(1.0)
        return original(gray, use_canny, params)

    monkeypatch.setattr(enhancement, "_detect_lines", slow)
    result = None
    with pytest.raises(EnhancementTimeoutError):
        result = asyncio.run(run_adaptive_enhancement(drawing, set(), timeout=0.2))
    assert result is None


def test_concurrent_requests_are_independent(drawing):
    async def both():
        return await asyncio.gather(
            run_adaptive_enhancement(drawing, {"bold_lines"}),
            run_adaptive_enhancement(drawing, set()),
        )

    bold, plain = asyncio.run(both())
    assert np.array_equal(bold, enhance(drawing, {"bold_lines"}))
    assert np.array_equal(plain, enhance(drawing, set()))
