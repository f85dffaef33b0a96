from collections import defaultdict
from typing import AbstractSet, Dict, List, Mapping, Sequence, Set, Tuple

from .models import CandidatePair, Document, DocumentReport, MatchResult
from .preprocess import Preprocessor
from .similarity import representative_excerpt, similarity_level


class MatchAggregator:
    """Collects refined pair scores into per-document match lists.

    Only the thread building reports may call :meth:`add`; the buffers are
    plain dicts with no locking.
    """

    def __init__(self, top_k: int = 3, excerpt_words: int = 30) -> None:
        if top_k < 0:
            raise ValueError(f"top_k must not be negative, got {top_k}")
        self.top_k = top_k
        self.excerpt_words = excerpt_words
        self._matches: Dict[str, List[Tuple[str, float]]] = defaultdict(list)
        self._seen: Set[CandidatePair] = set()

    def add(self, pair: CandidatePair, similarity: float) -> None:
        if pair in self._seen:
            return
        self._seen.add(pair)
        self._matches[pair.first].append((pair.second, similarity))
        self._matches[pair.second].append((pair.first, similarity))

    def matches_for(self, doc_id: str) -> List[Tuple[str, float]]:
        return sorted(self._matches.get(doc_id, []), key=lambda item: (-item[1], item[0]))

    def reports(
        self,
        documents: Sequence[Document],
        word_sets: Mapping[str, AbstractSet[str]],
    ) -> Dict[str, DocumentReport]:
        by_id = {doc.doc_id: doc for doc in documents}
        reports: Dict[str, DocumentReport] = {}
        for doc in documents:
            ranked = self.matches_for(doc.doc_id)
            all_matches = [
                MatchResult(
                    matched_id=matched_id,
                    similarity=similarity,
                    level=similarity_level(similarity),
                    matched_author_id=by_id[matched_id].author_id,
                )
                for matched_id, similarity in ranked
            ]
            top_matches = [
                MatchResult(
                    matched_id=match.matched_id,
                    similarity=match.similarity,
                    level=match.level,
                    matched_author_id=match.matched_author_id,
                    matched_excerpt=representative_excerpt(
                        by_id[match.matched_id].text,
                        word_sets[doc.doc_id],
                        window=self.excerpt_words,
                    ),
                )
                for match in all_matches[: self.top_k]
            ]
            overall = all_matches[0].similarity if all_matches else 0.0
            reports[doc.doc_id] = DocumentReport(
                document_id=doc.doc_id,
                author_id=doc.author_id,
                overall_score=overall,
                level=similarity_level(overall),
                word_count=Preprocessor.word_count(doc.text),
                top_matches=top_matches,
                all_matches=all_matches,
                title=doc.title,
            )
        return reports
