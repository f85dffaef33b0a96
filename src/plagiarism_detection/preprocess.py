import re
from dataclasses import dataclass
from typing import FrozenSet, Iterable, List

from .models import DetectionConfig


_WORD_RE = re.compile(r"\w+")
# ASCII letters and digits only: non-Latin text shingles to nothing
_NON_ALNUM_RE = re.compile(r"[^a-z0-9\s]")
_WHITESPACE_RE = re.compile(r"\s+")


class ShingleSet(frozenset):
    """Unique k-word shingles of one text, tagged with the width ``k``."""

    k: int

    def __new__(cls, shingles: Iterable[str] = (), k: int = 1) -> "ShingleSet":
        if k < 1:
            raise ValueError(f"Shingle width must be positive, got {k}")
        instance = super().__new__(cls, shingles)
        instance.k = k
        return instance

    def __repr__(self) -> str:
        return f"ShingleSet(k={self.k}, size={len(self)})"


@dataclass
class TokenizerResult:
    tokens: List[str]
    offsets: List[int]


class Preprocessor:
    def __init__(self, config: DetectionConfig) -> None:
        if config.shingle_size < 1:
            raise ValueError(f"shingle_size must be positive, got {config.shingle_size}")
        self.config = config

    def normalize(self, text: str) -> str:
        normalized = (text or "").lower()
        normalized = _NON_ALNUM_RE.sub("", normalized)
        normalized = _WHITESPACE_RE.sub(" ", normalized)
        return normalized.strip()

    def tokenize(self, text: str) -> List[str]:
        normalized = self.normalize(text)
        if not normalized:
            return []
        return normalized.split(" ")

    def shingles(self, text: str) -> ShingleSet:
        k = self.config.shingle_size
        words = self.tokenize(text)
        return ShingleSet(
            (" ".join(words[i : i + k]) for i in range(len(words) - k + 1)),
            k=k,
        )

    @staticmethod
    def word_set(text: str) -> FrozenSet[str]:
        return frozenset(match.group(0) for match in _WORD_RE.finditer((text or "").lower()))

    @staticmethod
    def word_offsets(text: str) -> TokenizerResult:
        tokens: List[str] = []
        offsets: List[int] = []
        for match in _WORD_RE.finditer(text or ""):
            tokens.append(match.group(0))
            offsets.append(match.start())
        return TokenizerResult(tokens=tokens, offsets=offsets)

    @staticmethod
    def word_count(text: str) -> int:
        return len((text or "").split())
