from __future__ import annotations

import random
from typing import Any, Dict, Iterator, List, Mapping, Sequence

from .errors import BrainStateError
from .text_markers import END_OF_TEXT_MARKER
from .tokenizer import END_OF_TEXT, CharTokenizer, Tokenizer, build_tokenizer

__all__ = ["NgramModel", "ngrams", "sample"]

ROOT_KEY = ""


def ngrams(tokens: Sequence[int], n: int) -> List[Sequence[int]]:
    """Every contiguous window of length ``n`` (empty when ``n`` is out of range)."""
    if n <= 0 or n > len(tokens):
        return []
    return [tokens[idx : idx + n] for idx in range(len(tokens) - n + 1)]


def sample(distribution: Sequence[float], rng: random.Random | None = None) -> int:
    """
    Weighted draw over symbol ids.

    Zero mass (or an empty vector) resolves to END_OF_TEXT so generation always
    terminates.
    """
    if not distribution:
        return END_OF_TEXT
    total = sum(distribution)
    if total <= 0:
        return END_OF_TEXT
    threshold = (rng or random).random() * total
    cumulative = 0.0
    for index, weight in enumerate(distribution):
        cumulative += weight
        if cumulative > threshold:
            return index
    return END_OF_TEXT


class NgramModel:
    """
    Character n-gram counts across every order 0..N with additive smoothing.

    Counts are keyed by the decoded text of each window. The order-0 key ``""``
    counts one occurrence per trained symbol so the empty context acts as the
    unigram denominator when lookups back off all the way.
    """

    def __init__(
        self,
        tokenizer: Tokenizer | None = None,
        n: int = 5,
        smoothing: float = 0.0,
        counts: Mapping[str, int] | None = None,
    ) -> None:
        self.tokenizer: Tokenizer = tokenizer or CharTokenizer()
        self.n = max(1, int(n))
        self.smoothing = max(0.0, float(smoothing))
        self.counts: Dict[str, int] = {key: max(0, int(value)) for key, value in (counts or {}).items()}

    # ------------------------------------------------------------------ #
    # Counting
    # ------------------------------------------------------------------ #
    def _key(self, tokens: Sequence[int]) -> str | None:
        if any(token < 0 for token in tokens):
            return None
        return self.tokenizer.decode(tokens)

    def _count(self, tokens: Sequence[int]) -> int:
        key = self._key(tokens)
        if key is None:
            return 0
        return self.counts.get(key, 0)

    def _ngram_keys(self, tokens: Sequence[int]) -> Iterator[str]:
        for order in range(self.n + 1):
            if order == 0:
                for token in tokens:
                    if token >= 0:
                        yield ROOT_KEY
                continue
            for window in ngrams(tokens, order):
                key = self._key(window)
                if key is not None:
                    yield key

    def train(self, text: str) -> None:
        if not text:
            return
        self.tokenizer.observe(text)
        tokens = self.tokenizer.encode(text) + [END_OF_TEXT]
        counts = self.counts
        for key in self._ngram_keys(tokens):
            counts[key] = counts.get(key, 0) + 1

    def forget(self, text: str) -> None:
        if not text:
            return
        tokens = self.tokenizer.encode(text) + [END_OF_TEXT]
        counts = self.counts
        for key in self._ngram_keys(tokens):
            current = counts.get(key)
            if current:
                counts[key] = current - 1

    def count_of(self, context: Sequence[int], min_context_len: int = 0) -> int:
        """
        Stupid-backoff lookup: drop the oldest symbol while the count is zero and
        the context is still longer than ``min_context_len``.
        """
        window = list(context)
        while window:
            count = self._count(window)
            if count or len(window) <= min_context_len:
                return count
            window = window[1:]
        return 0

    def backoff_context(self, context: Sequence[int]) -> List[int]:
        """Longest suffix of ``context`` with recorded statistics (possibly empty)."""
        window = list(context)
        while window and self._count(window) == 0:
            window = window[1:]
        return window

    # ------------------------------------------------------------------ #
    # Estimation
    # ------------------------------------------------------------------ #
    def _context_window(self, tokens: Sequence[int]) -> List[int]:
        width = self.n - 1
        if width <= 0:
            return []
        return list(tokens[-width:])

    def next_distribution(self, tokens: Sequence[int]) -> List[float]:
        """
        Probability of every symbol following the last ``n - 1`` tokens.

        The context backs off as a whole to its longest suffix with a nonzero
        count, and that suffix supplies the denominator. This departs from a
        literal ``count(context)`` denominator only when the full context was
        never seen: there the literal form yields all zeros (or the uniform
        vector under smoothing), while this one uses the shorter history.
        """
        vocab_size = self.tokenizer.vocab_size()
        context = self.backoff_context(self._context_window(tokens))
        total = self._count(context) + vocab_size * self.smoothing
        if total <= 0:
            return [0.0] * vocab_size
        continuation_len = len(context) + 1
        return [
            (self.count_of(context + [symbol], continuation_len) + self.smoothing) / total
            for symbol in range(vocab_size)
        ]

    def probs(self, text: str) -> List[float]:
        return self.next_distribution(self.tokenizer.encode(text))

    def generate(self, seed: str, max_length: int, rng: random.Random | None = None) -> str:
        tokens = self.tokenizer.encode(seed)
        if len(tokens) < self.n - 1:
            return ""
        pieces = [seed]
        for _ in range(max(0, max_length)):
            symbol = sample(self.next_distribution(tokens), rng)
            tokens.append(symbol)
            pieces.append(self.tokenizer.decode([symbol]))
            if symbol == END_OF_TEXT:
                break
        return "".join(pieces)

    # ------------------------------------------------------------------ #
    # Introspection + persistence
    # ------------------------------------------------------------------ #
    def key_count(self) -> int:
        return len(self.counts)

    def total_symbols(self) -> int:
        return self.counts.get(ROOT_KEY, 0)

    def to_state(self) -> Dict[str, Any]:
        tokenizer_state = self.tokenizer.to_state()
        return {
            "Counts": dict(self.counts),
            "N": self.n,
            "Smoothing": self.smoothing,
            "Vocabulary": tokenizer_state["vocabulary"],
            "SpecialTokens": tokenizer_state["special_tokens"],
            "Tokenizer": tokenizer_state["kind"],
        }

    @classmethod
    def from_state(cls, state: Mapping[str, Any]) -> "NgramModel":
        try:
            tokenizer = build_tokenizer(
                state.get("Tokenizer", "char"),
                state.get("SpecialTokens") or (END_OF_TEXT_MARKER,),
                state.get("Vocabulary") or (),
            )
            return cls(
                tokenizer,
                n=int(state["N"]),
                smoothing=float(state.get("Smoothing", 0.0)),
                counts=state.get("Counts") or {},
            )
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raise BrainStateError(f"invalid model state: {exc}") from exc
