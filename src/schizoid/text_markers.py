from __future__ import annotations

from typing import Tuple

END_OF_TEXT_MARKER = "\0"
REPLACEMENT_GLYPH = "�"

__all__ = [
    "END_OF_TEXT_MARKER",
    "REPLACEMENT_GLYPH",
    "strip_end_marker",
    "parse_special_tokens",
]


def strip_end_marker(text: str, marker: str = END_OF_TEXT_MARKER) -> Tuple[str, bool]:
    """
    Cut generated text at the first end-of-text marker and return the text plus a flag.
    """
    if not marker:
        return text, False
    marker_index = text.find(marker)
    if marker_index == -1:
        return text, False
    return text[:marker_index], True


def parse_special_tokens(raw: str) -> tuple[str, ...]:
    """
    Parse a comma separated list of special-token display strings.

    The escapes ``\\0`` and ``\\n`` are honoured so .env files can spell the
    default end-of-text marker. An empty list falls back to the NUL marker.
    """
    tokens: list[str] = []
    for piece in raw.split(","):
        piece = piece.strip()
        if not piece:
            continue
        tokens.append(piece.replace("\\0", "\0").replace("\\n", "\n"))
    return tuple(tokens) or (END_OF_TEXT_MARKER,)
