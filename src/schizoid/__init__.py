"""
Per-guild character n-gram chat brain.

Messages are folded into a character-level n-gram model exactly once per
channel span, can be retracted when deleted, and the model can be sampled to
produce new text. See brain.Brain for the concurrency-safe façade and
registry.BrainRegistry for the guild -> brain lifecycle.
"""

from .brain import Brain
from .messages import Message
from .model import NgramModel
from .registry import BrainRegistry
from .spans import TrainedSpan
from .tokenizer import ByteTokenizer, CharTokenizer

__all__ = [
    "Brain",
    "BrainRegistry",
    "ByteTokenizer",
    "CharTokenizer",
    "Message",
    "NgramModel",
    "TrainedSpan",
]
