import os
import sys

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from coloring_vision.keywords import (
    DEFAULT_KEYWORDS,
    VOCABULARY,
    keywords_or_default,
    normalize_token,
    parse_keywords,
)


def test_comma_separated_keywords():
    assert parse_keywords("denoise, sharpen, connect_lines") == {
        "denoise",
        "sharpen",
        "connect_lines",
    }


def test_unrecognized_text_gives_empty_set():
    assert parse_keywords("foobar") == frozenset()
    assert parse_keywords("") == frozenset()
    assert parse_keywords(None) == frozenset()


def test_noisy_model_reply_is_normalized():
    reply = "`Bold Lines`, connect-lines.\nSMOOTH_EDGES; rm -rf /"
    assert parse_keywords(reply) == {"bold_lines", "connect_lines", "smooth_edges"}


def test_normalize_token():
    assert normalize_token("  Edge Detect. ") == "edge_detect"
    assert normalize_token('"denoise"') == "denoise"


def test_fallback_to_default_keywords():
    assert keywords_or_default("foobar") == DEFAULT_KEYWORDS
    assert keywords_or_default(None) == {"denoise", "sharpen"}
    assert keywords_or_default("bold_lines") == {"bold_lines"}


def test_vocabulary_contains_known_keywords():
    for word in ("edge_detect", "bold_lines", "connect_lines", "denoise", "sharpen", "smooth_edges"):
        assert word in VOCABULARY
