import logging
import threading
import time
import uuid
from collections import OrderedDict
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import (
    AbstractSet,
    Callable,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Sequence,
    Set,
    TypeVar,
)

from .aggregate import MatchAggregator
from .errors import (
    ConfigMismatch,
    DetectionError,
    InsufficientData,
    InvalidRunState,
    RunCancelled,
)
from .lsh import LSHIndex, validate_banding
from .minhash import HashFamily, MinHasher, Signature, ensure_same_family
from .models import (
    CandidatePair,
    CheckingRun,
    CheckResult,
    DetectionConfig,
    Document,
    RunState,
)
from .preprocess import Preprocessor
from .strategies import build_strategy


T = TypeVar("T")
R = TypeVar("R")


@dataclass
class _PreparedDocument:
    document: Document
    signature: Signature
    words: AbstractSet[str]


class _Deadline:
    def __init__(
        self, cancel_event: Optional[threading.Event], timeout: Optional[float]
    ) -> None:
        self.cancel_event = cancel_event
        self.expires_at = time.monotonic() + timeout if timeout is not None else None

    def check(self, phase: str) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise RunCancelled(f"Run cancelled during {phase}")
        if self.expires_at is not None and time.monotonic() >= self.expires_at:
            raise RunCancelled(f"Run exceeded its deadline during {phase}")


class SimilarityChecker:
    """Corpus-wide near-duplicate check: MinHash → LSH → exact overlap."""

    def __init__(self, config: Optional[DetectionConfig] = None) -> None:
        self.config = config or DetectionConfig()
        validate_banding(
            self.config.num_bands,
            self.config.rows_per_band,
            self.config.num_permutations,
        )
        if self.config.top_k < 0:
            raise ValueError(f"top_k must not be negative, got {self.config.top_k}")
        if self.config.excerpt_words < 1:
            raise ValueError(
                f"excerpt_words must be positive, got {self.config.excerpt_words}"
            )
        if self.config.max_runs < 1:
            raise ValueError(f"max_runs must be positive, got {self.config.max_runs}")
        self.family = HashFamily.from_config(self.config)
        self.preprocessor = Preprocessor(self.config)
        self.hasher = MinHasher(self.family, self.preprocessor)
        self.strategy = build_strategy(self.config.similarity_measure)

        self._runs: "OrderedDict[str, CheckingRun]" = OrderedDict()
        self._cancel_events: Dict[str, threading.Event] = {}
        self._lock = threading.Lock()

    # Runs

    def start_run(self) -> CheckingRun:
        run = CheckingRun(run_id=uuid.uuid4().hex)
        with self._lock:
            self._runs[run.run_id] = run
            self._cancel_events[run.run_id] = threading.Event()
            self._evict_finished_runs()
        return run

    def get_run(self, run_id: str) -> CheckingRun:
        with self._lock:
            if run_id not in self._runs:
                raise KeyError(f"Run {run_id} not found")
            return self._runs[run_id]

    def cancel_run(self, run_id: str) -> CheckingRun:
        """Ask a pending or running run to stop at its next checkpoint."""
        with self._lock:
            if run_id not in self._runs:
                raise KeyError(f"Run {run_id} not found")
            run = self._runs[run_id]
            if not run.state.terminal:
                self._cancel_events[run_id].set()
            return run

    def discard_run(self, run_id: str) -> None:
        with self._lock:
            if run_id not in self._runs:
                raise KeyError(f"Run {run_id} not found")
            run = self._runs[run_id]
            if not run.state.terminal:
                raise InvalidRunState(f"Run {run_id} is {run.state.value} and cannot be discarded")
            del self._runs[run_id]
            self._cancel_events.pop(run_id, None)

    def _evict_finished_runs(self) -> None:
        excess = len(self._runs) - self.config.max_runs
        if excess <= 0:
            return
        finished = [run_id for run_id, run in self._runs.items() if run.state.terminal]
        for run_id in finished[:excess]:
            del self._runs[run_id]
            self._cancel_events.pop(run_id, None)
            logging.debug("Evicted finished run %s", run_id)

    def run(
        self,
        run_id: str,
        documents: Sequence[Document],
        cancel_event: Optional[threading.Event] = None,
        timeout: Optional[float] = None,
    ) -> CheckingRun:
        run = self.get_run(run_id)
        with self._lock:
            if run.state is not RunState.UNCHECKED:
                raise InvalidRunState(f"Run {run_id} is {run.state.value}, expected unchecked")
            run.state = RunState.RUNNING
            if cancel_event is None:
                cancel_event = self._cancel_events.get(run_id)

        try:
            result = self.check(
                documents, cancel_event=cancel_event, timeout=timeout, run_id=run_id
            )
        except (DetectionError, ValueError) as exc:
            logging.error("Run %s failed: %s", run_id, exc)
            with self._lock:
                run.state = RunState.FAILED
                run.error = str(exc)
            return run
        except Exception as exc:
            logging.exception("Run %s crashed", run_id)
            with self._lock:
                run.state = RunState.FAILED
                run.error = str(exc)
            raise

        with self._lock:
            run.result = result
            run.state = RunState.CHECKED
        return run

    # Checking

    def validate_documents(self, documents: Sequence[Document]) -> None:
        seen: Set[str] = set()
        for doc in documents:
            if doc.doc_id in seen:
                raise ValueError(f"Duplicate document id {doc.doc_id}")
            seen.add(doc.doc_id)
        # Documents too short to shingle still get reports but do not count
        eligible = sum(1 for doc in documents if self.preprocessor.shingles(doc.text))
        if eligible < 2:
            raise InsufficientData(
                f"At least two documents with {self.config.shingle_size} or more "
                f"words are required, got {eligible}"
            )

    def check(
        self,
        documents: Iterable[Document],
        cancel_event: Optional[threading.Event] = None,
        timeout: Optional[float] = None,
        run_id: Optional[str] = None,
    ) -> CheckResult:
        docs = list(documents)
        self.validate_documents(docs)
        run_id = run_id or uuid.uuid4().hex
        if timeout is None:
            timeout = self.config.timeout_seconds
        deadline = _Deadline(cancel_event, timeout)
        started_at = datetime.now(timezone.utc)

        prepared = self._map(self._prepare, docs, deadline, "signature generation")
        logging.info("Run %s: signed %d documents", run_id, len(prepared))

        signatures = {item.document.doc_id: item.signature for item in prepared}
        deadline.check("banding")
        pairs = sorted(self.candidates_from_signatures(signatures, deadline))
        pair_space = len(docs) * (len(docs) - 1) // 2
        logging.info(
            "Run %s: %d candidate pairs out of %d possible",
            run_id,
            len(pairs),
            pair_space,
        )

        word_sets = {item.document.doc_id: item.words for item in prepared}
        scores = self._map(
            lambda pair: self.strategy.score(word_sets[pair.first], word_sets[pair.second]),
            pairs,
            deadline,
            "refinement",
        )

        deadline.check("aggregation")
        aggregator = MatchAggregator(
            top_k=self.config.top_k, excerpt_words=self.config.excerpt_words
        )
        for pair, score in zip(pairs, scores):
            logging.debug("Run %s: %s <-> %s = %.3f", run_id, pair.first, pair.second, score)
            aggregator.add(pair, score)
        reports = aggregator.reports(docs, word_sets)
        logging.info("Run %s: built %d reports", run_id, len(reports))

        return CheckResult(
            run_id=run_id,
            reports=reports,
            document_count=len(docs),
            candidate_count=len(pairs),
            pair_space=pair_space,
            started_at=started_at,
            finished_at=datetime.now(timezone.utc),
        )

    def candidates_from_signatures(
        self,
        signatures: Mapping[str, Signature],
        deadline: Optional[_Deadline] = None,
    ) -> Set[CandidatePair]:
        family = ensure_same_family(signatures.values())
        if family is not None and family != self.family:
            raise ConfigMismatch(
                f"Signatures use hash family {family}, checker expects {self.family}"
            )
        index = LSHIndex(self.config.num_bands, self.config.rows_per_band, self.family)
        keyed = self._map(
            lambda item: (item[0], index.band_keys(item[1])),
            list(signatures.items()),
            deadline or _Deadline(None, None),
            "banding",
        )
        for doc_id, keys in keyed:
            index.add_keys(doc_id, keys)
        return index.candidate_pairs()

    def _prepare(self, document: Document) -> _PreparedDocument:
        return _PreparedDocument(
            document=document,
            signature=self.hasher.signature_for_text(document.text),
            words=self.preprocessor.word_set(document.text),
        )

    def _map(
        self,
        func: Callable[[T], R],
        items: Sequence[T],
        deadline: _Deadline,
        phase: str,
    ) -> List[R]:
        def guarded(item: T) -> R:
            deadline.check(phase)
            return func(item)

        if not items:
            return []
        with ThreadPoolExecutor(max_workers=self.config.max_workers) as executor:
            return list(executor.map(guarded, items))
