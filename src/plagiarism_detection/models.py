from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional


DEFAULT_HASH_SEED = "a_unique_and_fixed_plagiarism_detection_seed_42"


@dataclass(frozen=True)
class Document:
    doc_id: str
    author_id: str
    text: str
    title: Optional[str] = None
    metadata: Optional[dict] = field(default=None, compare=False, hash=False)


@dataclass(frozen=True, order=True)
class CandidatePair:
    first: str
    second: str

    def __post_init__(self) -> None:
        if self.first == self.second:
            raise ValueError(f"Candidate pair needs two distinct ids, got {self.first!r}")
        if self.first > self.second:
            first, second = self.second, self.first
            object.__setattr__(self, "first", first)
            object.__setattr__(self, "second", second)

    @classmethod
    def of(cls, doc_a: object, doc_b: object) -> "CandidatePair":
        return cls(str(doc_a), str(doc_b))


@dataclass
class MatchResult:
    matched_id: str
    similarity: float
    level: str
    matched_author_id: Optional[str] = None
    matched_excerpt: Optional[str] = None


@dataclass
class DocumentReport:
    document_id: str
    author_id: str
    overall_score: float
    level: str
    word_count: int
    top_matches: List[MatchResult]
    all_matches: List[MatchResult]
    title: Optional[str] = None


@dataclass
class CheckResult:
    run_id: str
    reports: Dict[str, DocumentReport]
    document_count: int
    candidate_count: int
    pair_space: int
    started_at: datetime
    finished_at: datetime


class RunState(str, Enum):
    UNCHECKED = "unchecked"
    RUNNING = "running"
    CHECKED = "checked"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (RunState.CHECKED, RunState.FAILED)


@dataclass
class CheckingRun:
    run_id: str
    state: RunState = RunState.UNCHECKED
    result: Optional[CheckResult] = None
    error: Optional[str] = None


@dataclass
class DetectionConfig:
    shingle_size: int = 3
    num_permutations: int = 128
    num_bands: int = 128
    rows_per_band: int = 1
    hash_seed: str = DEFAULT_HASH_SEED
    hash_version: int = 1
    top_k: int = 3
    excerpt_words: int = 30
    similarity_measure: str = "overlap"
    max_workers: Optional[int] = None
    timeout_seconds: Optional[float] = None
    max_runs: int = 100
