import logging
from abc import ABC, abstractmethod
from typing import AbstractSet, Dict, Type

from .similarity import jaccard_index, overlap_similarity


class SimilarityStrategy(ABC):
    name: str

    @abstractmethod
    def score(self, words_a: AbstractSet[str], words_b: AbstractSet[str]) -> float: ...


class OverlapStrategy(SimilarityStrategy):
    name = "overlap"

    def score(self, words_a: AbstractSet[str], words_b: AbstractSet[str]) -> float:
        return overlap_similarity(words_a, words_b)


class JaccardStrategy(SimilarityStrategy):
    """Union-normalized scoring kept for comparison with older reports."""

    name = "jaccard"

    def __init__(self) -> None:
        logging.warning(
            "Jaccard scoring is a legacy measure; reports normally use the overlap coefficient"
        )

    def score(self, words_a: AbstractSet[str], words_b: AbstractSet[str]) -> float:
        return jaccard_index(words_a, words_b)


_STRATEGIES: Dict[str, Type[SimilarityStrategy]] = {
    OverlapStrategy.name: OverlapStrategy,
    JaccardStrategy.name: JaccardStrategy,
}


def build_strategy(name: str) -> SimilarityStrategy:
    try:
        strategy_cls = _STRATEGIES[name]
    except KeyError:
        raise ValueError(
            f"Unknown similarity measure {name!r}; expected one of {sorted(_STRATEGIES)}"
        ) from None
    return strategy_cls()
