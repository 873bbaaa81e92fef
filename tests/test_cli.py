import json
import os
import sys

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import cv2
import numpy as np
import pytest

from coloring_vision import cli
from coloring_vision.cli import main as cli_main


@pytest.fixture
def photo(tmp_path):
    """浅色背景上的深色主体，保存为 BGR PNG"""
    img = np.full((120, 160, 3), 210, np.uint8)
    cv2.rectangle(img, (40, 30), (120, 90), (90, 60, 40), -1)
    cv2.circle(img, (80, 60), 15, (250, 250, 250), 2)
    path = tmp_path / "photo.png"
    cv2.imwrite(str(path), img)
    return str(path)


def test_lineart_cli(photo, tmp_path):
    outp = str(tmp_path / "lineart.png")
    code = cli_main(["lineart", "--input", photo, "--output", outp, "--bilateral", "--close", "--block-size", "24"])
    assert code == 0
    img = cv2.imread(outp, cv2.IMREAD_GRAYSCALE)
    assert img is not None
    assert img.shape == (120, 160)
    assert set(np.unique(img)) <= {0, 255}


def test_lineart_cli_with_params_file(photo, tmp_path):
    params = tmp_path / "params.json"
    params.write_text(json.dumps({"useDilation": True, "dilationIterations": 1}))
    outp = str(tmp_path / "lineart.png")
    assert cli_main(["lineart", "--input", photo, "--output", outp, "--params", str(params)]) == 0


def test_segment_cli(photo, tmp_path):
    outp = str(tmp_path / "segmented.png")
    code = cli_main(["segment", "--input", photo, "--output", outp])
    assert code == 0
    img = cv2.imread(outp, cv2.IMREAD_UNCHANGED)
    assert img is not None
    assert img.shape == (120, 160, 4)
    assert np.all(img[0, 0] == 255)


def test_enhance_cli(photo, tmp_path, capsys):
    outp = str(tmp_path / "enhanced.png")
    code = cli_main(
        ["enhance", "--input", photo, "--output", outp, "--keywords", "bold_lines,connect_lines", "--stats"]
    )
    assert code == 0
    img = cv2.imread(outp, cv2.IMREAD_GRAYSCALE)
    assert img is not None
    assert int((img == 0).sum()) > 0
    assert '"dark_pixels"' in capsys.readouterr().out


def test_missing_input_returns_2(tmp_path):
    missing = str(tmp_path / "missing.png")
    for cmd in ("lineart", "segment", "enhance"):
        assert cli_main([cmd, "--input", missing, "--output", str(tmp_path / "x.png")]) == 2


def test_stream_cli_missing_source(tmp_path):
    code = cli_main(["stream", "--source", str(tmp_path / "none.mp4"), "--output", str(tmp_path / "o.mp4")])
    assert code == 2


def test_retouch_cli_uses_client(photo, tmp_path, monkeypatch, capsys):
    class FakeClient:
        def suggest_enhancements(self, image, instruction):
            return "edge_detect"

    monkeypatch.setattr(cli, "_client", lambda: FakeClient())
    outp = str(tmp_path / "retouched.png")
    assert cli_main(["retouch", "--input", photo, "--output", outp]) == 0
    assert cv2.imread(outp, cv2.IMREAD_GRAYSCALE) is not None
    assert "AI suggests: edge_detect" in capsys.readouterr().out


def test_convert_cli_reports_service_failure(photo, tmp_path, monkeypatch):
    from coloring_vision.errors import NoImageGeneratedError

    class FakeClient:
        def generate_coloring_page(self, image, instruction):
            raise NoImageGeneratedError("No image generated from Gemini API")

    monkeypatch.setattr(cli, "_client", lambda: FakeClient())
    assert cli_main(["convert", "--input", photo, "--output", str(tmp_path / "c.png")]) == 4


def test_retouch_cli_reports_unexpected_reply(photo, tmp_path, monkeypatch):
    from unittest.mock import MagicMock

    from coloring_vision.config import ServiceConfig
    from coloring_vision.services import GeminiClient

    response = MagicMock(ok=True, status_code=200)
    response.json.return_value = {"candidates": [{"content": "oops"}]}
    session = MagicMock()
    session.post.return_value = response
    monkeypatch.setattr(cli, "_client", lambda: GeminiClient(ServiceConfig(api_key="k"), session=session))
    assert cli_main(["retouch", "--input", photo, "--output", str(tmp_path / "r.png")]) == 4


def test_convert_cli_wireframe_style(photo, tmp_path, monkeypatch):
    from coloring_vision.prompts import CONVERT_PROMPT

    seen = []

    class FakeClient:
        def generate_coloring_page(self, image, instruction):
            seen.append(instruction)
            return np.full_like(image, 255)

    monkeypatch.setattr(cli, "_client", lambda: FakeClient())
    outp = str(tmp_path / "w.png")
    assert cli_main(["convert", "--input", photo, "--output", outp, "--style", "wireframe"]) == 0
    assert seen == [CONVERT_PROMPT]
    assert cv2.imread(outp) is not None
