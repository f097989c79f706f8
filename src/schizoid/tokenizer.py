from __future__ import annotations

from typing import Any, Dict, Iterable, List, Protocol, Sequence

from .text_markers import END_OF_TEXT_MARKER, REPLACEMENT_GLYPH

END_OF_TEXT = 0
UNKNOWN_TOKEN = -1
BYTE_VOCAB_SIZE = 256

__all__ = [
    "END_OF_TEXT",
    "UNKNOWN_TOKEN",
    "Tokenizer",
    "CharTokenizer",
    "ByteTokenizer",
    "build_tokenizer",
    "tokenizer_from_state",
]


class Tokenizer(Protocol):
    """Maps text to symbol ids and back. Id 0 is always end-of-text."""

    kind: str
    special_tokens: tuple[str, ...]

    def encode(self, text: str) -> List[int]:
        """Return symbol ids; characters outside the vocabulary map to UNKNOWN_TOKEN."""

    def decode(self, tokens: Iterable[int]) -> str:
        """Render ids back to text; unknown or out-of-range ids become a replacement glyph."""

    def observe(self, text: str) -> None:
        """Grow the vocabulary with every character of ``text`` not seen before."""

    def vocab_size(self) -> int:
        """Size of the sampling domain."""

    def vocabulary(self) -> List[str]:
        """The learned vocabulary in id order (specials excluded)."""

    def to_state(self) -> Dict[str, Any]:
        """JSON friendly description used by the persistence layer."""


class CharTokenizer:
    """Character tokenizer whose vocabulary grows in first-seen order."""

    kind = "char"

    def __init__(
        self,
        special_tokens: Sequence[str] = (END_OF_TEXT_MARKER,),
        vocabulary: Iterable[str] = (),
    ) -> None:
        self.special_tokens = tuple(special_tokens) or (END_OF_TEXT_MARKER,)
        # Text matching a single-character special display string is that special.
        self._special_ids: Dict[str, int] = {
            token: idx for idx, token in enumerate(self.special_tokens) if len(token) == 1
        }
        self._chars: List[str] = []
        self._char_to_id: Dict[str, int] = {}
        for char in vocabulary:
            self._append(char)

    def _append(self, char: str) -> None:
        if char in self._char_to_id or char in self._special_ids:
            return
        self._char_to_id[char] = len(self.special_tokens) + len(self._chars)
        self._chars.append(char)

    def observe(self, text: str) -> None:
        for char in text:
            self._append(char)

    def encode(self, text: str) -> List[int]:
        lookup = self._char_to_id
        specials = self._special_ids
        return [specials[char] if char in specials else lookup.get(char, UNKNOWN_TOKEN) for char in text]

    def decode(self, tokens: Iterable[int]) -> str:
        offset = len(self.special_tokens)
        pieces: List[str] = []
        for token in tokens:
            if 0 <= token < offset:
                pieces.append(self.special_tokens[token])
            elif offset <= token < offset + len(self._chars):
                pieces.append(self._chars[token - offset])
            else:
                pieces.append(REPLACEMENT_GLYPH)
        return "".join(pieces)

    def vocab_size(self) -> int:
        return len(self.special_tokens) + len(self._chars)

    def vocabulary(self) -> List[str]:
        return list(self._chars)

    def to_state(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "special_tokens": list(self.special_tokens),
            "vocabulary": list(self._chars),
        }


class ByteTokenizer:
    """Fixed 256-symbol tokenizer: code points below 256 map to themselves."""

    kind = "byte"
    special_tokens: tuple[str, ...] = (END_OF_TEXT_MARKER,)

    def observe(self, text: str) -> None:
        return None

    def encode(self, text: str) -> List[int]:
        return [ord(char) if ord(char) < BYTE_VOCAB_SIZE else UNKNOWN_TOKEN for char in text]

    def decode(self, tokens: Iterable[int]) -> str:
        return "".join(
            chr(token) if 0 <= token < BYTE_VOCAB_SIZE else REPLACEMENT_GLYPH for token in tokens
        )

    def vocab_size(self) -> int:
        return BYTE_VOCAB_SIZE

    def vocabulary(self) -> List[str]:
        return []

    def to_state(self) -> Dict[str, Any]:
        return {"kind": self.kind, "special_tokens": list(self.special_tokens), "vocabulary": []}


def build_tokenizer(
    kind: str = "char",
    special_tokens: Sequence[str] = (END_OF_TEXT_MARKER,),
    vocabulary: Iterable[str] = (),
) -> Tokenizer:
    normalized = (kind or "char").strip().lower()
    if normalized == "char":
        return CharTokenizer(special_tokens, vocabulary)
    if normalized == "byte":
        return ByteTokenizer()
    raise ValueError(f"Unknown tokenizer kind '{kind}' (expected 'char' or 'byte')")


def tokenizer_from_state(state: Dict[str, Any]) -> Tokenizer:
    return build_tokenizer(
        state.get("kind", "char"),
        state.get("special_tokens") or (END_OF_TEXT_MARKER,),
        state.get("vocabulary") or (),
    )
