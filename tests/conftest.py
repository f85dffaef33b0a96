"""Shared fixtures and corpus builders."""

import random
from typing import List

import pytest

from plagiarism_detection.models import DetectionConfig, Document
from plagiarism_detection.service import SimilarityChecker


def vocabulary_text(prefix: str, count: int, seed: int = 0) -> str:
    words = [f"{prefix}{i}" for i in range(count)]
    random.Random(seed).shuffle(words)
    return " ".join(words)


def make_document(doc_id: str, text: str, author_id: str = "") -> Document:
    return Document(doc_id=doc_id, author_id=author_id or f"author-{doc_id}", text=text)


@pytest.fixture
def config() -> DetectionConfig:
    return DetectionConfig()


@pytest.fixture
def checker(config: DetectionConfig) -> SimilarityChecker:
    return SimilarityChecker(config)


@pytest.fixture
def shared_pair_corpus() -> List[Document]:
    shared = vocabulary_text("word", 50, seed=1)
    return [
        make_document("a", shared),
        make_document("b", shared),
        make_document("c", vocabulary_text("term", 50, seed=2)),
    ]
