import re
from typing import AbstractSet, Dict, List

from .preprocess import Preprocessor


_BOUNDARY_RE = re.compile(r"(\W+)")


def overlap_similarity(words_a: AbstractSet[str], words_b: AbstractSet[str]) -> float:
    """Shared words divided by the size of the larger word set.

    If one word set contains the other, the score is the ratio of their
    sizes. Two empty texts are identical (1.0); one empty text matches
    nothing (0.0).
    """
    if not words_a and not words_b:
        return 1.0
    if not words_a or not words_b:
        return 0.0
    return len(words_a & words_b) / max(len(words_a), len(words_b))


def jaccard_index(words_a: AbstractSet[str], words_b: AbstractSet[str]) -> float:
    """Union-normalized Jaccard index.

    Legacy measure: reports are scored with :func:`overlap_similarity`.
    The empty-text conventions match the overlap measure.
    """
    if not words_a and not words_b:
        return 1.0
    if not words_a or not words_b:
        return 0.0
    return len(words_a & words_b) / len(words_a | words_b)


def text_similarity(text_a: str, text_b: str) -> float:
    return overlap_similarity(Preprocessor.word_set(text_a), Preprocessor.word_set(text_b))


def similarity_level(similarity: float) -> str:
    if similarity < 0.5:
        return "Low"
    if similarity < 0.75:
        return "Moderate"
    return "High"


def representative_excerpt(
    matched_text: str, source_words: AbstractSet[str], window: int = 30
) -> str:
    """Slice of ``matched_text`` whose ``window`` words overlap the source most.

    The earliest window wins ties, so the excerpt is stable across runs.
    """
    tokenized = Preprocessor.word_offsets(matched_text)
    tokens = tokenized.tokens
    if not tokens:
        return ""
    window = max(1, min(window, len(tokens)))
    hits = [1 if token.lower() in source_words else 0 for token in tokens]

    current = sum(hits[:window])
    best, best_start = current, 0
    for start in range(1, len(tokens) - window + 1):
        current += hits[start + window - 1] - hits[start - 1]
        if current > best:
            best, best_start = current, start

    end = best_start + window - 1
    start_offset = tokenized.offsets[best_start]
    end_offset = tokenized.offsets[end] + len(tokens[end])
    return matched_text[start_offset:end_offset]


def highlight_matches(text: str, reference: str) -> List[Dict[str, object]]:
    """Split ``text`` on word boundaries, flagging words present in ``reference``."""
    reference_words = Preprocessor.word_set(reference)
    pieces = [piece for piece in _BOUNDARY_RE.split(text or "") if piece]
    return [
        {"text": piece, "highlight": piece.lower() in reference_words}
        for piece in pieces
    ]
