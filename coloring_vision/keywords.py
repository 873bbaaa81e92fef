"""Map the free-text reply of the vision model to known enhancement keywords.

The reply is only ever tested for membership against ``VOCABULARY``.
"""

from __future__ import annotations

import re

EDGE_DETECT = "edge_detect"
BOLD_LINES = "bold_lines"
CONNECT_LINES = "connect_lines"
DENOISE = "denoise"
SHARPEN = "sharpen"
SMOOTH_EDGES = "smooth_edges"

VOCABULARY = frozenset(
    {EDGE_DETECT, BOLD_LINES, CONNECT_LINES, DENOISE, SHARPEN, SMOOTH_EDGES}
)

# Used when the reply is missing or contains nothing recognizable.
DEFAULT_KEYWORDS = frozenset({DENOISE, SHARPEN})
DEFAULT_SUGGESTION = "denoise,sharpen"

_SEPARATORS = re.compile(r"[,;\n]+")
_STRIP_CHARS = " \t\r\"'`*.!:-_()[]{}"


def normalize_token(token: str) -> str:
    token = token.strip(_STRIP_CHARS).lower()
    return re.sub(r"[\s\-]+", "_", token)


def parse_keywords(text: str | None) -> frozenset:
    """Return the recognized keywords in a comma-separated suggestion string.

    >>> sorted(parse_keywords("denoise, sharpen, connect_lines"))
    ['connect_lines', 'denoise', 'sharpen']
    >>> parse_keywords("foobar")
    frozenset()
    """
    if not text:
        return frozenset()
    tokens = (normalize_token(tok) for tok in _SEPARATORS.split(text))
    return frozenset(tok for tok in tokens if tok in VOCABULARY)


def keywords_or_default(text: str | None) -> frozenset:
    """Like parse_keywords, falling back to DEFAULT_KEYWORDS when nothing matches."""
    return parse_keywords(text) or DEFAULT_KEYWORDS
