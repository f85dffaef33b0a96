import threading

import pytest

from conftest import make_document, vocabulary_text
from plagiarism_detection.errors import ConfigMismatch, InsufficientData, InvalidRunState, RunCancelled
from plagiarism_detection.minhash import HashFamily, MinHasher
from plagiarism_detection.models import DetectionConfig, RunState
from plagiarism_detection.service import SimilarityChecker
from plagiarism_detection.similarity import text_similarity


class TestScenarios:
    def test_identical_pair_and_unrelated_document(self, checker, shared_pair_corpus) -> None:
        result = checker.check(shared_pair_corpus)
        reports = result.reports

        assert reports["a"].top_matches[0].matched_id == "b"
        assert reports["b"].top_matches[0].matched_id == "a"
        assert reports["a"].overall_score == 1.0
        assert reports["a"].top_matches[0].level == "High"
        assert all(m.similarity < 0.05 for m in reports["c"].all_matches)
        assert text_similarity(shared_pair_corpus[0].text, shared_pair_corpus[2].text) == 0.0

    def test_empty_documents_follow_convention(self, checker) -> None:
        documents = [
            make_document("d", ""),
            make_document("d2", ""),
            make_document("e", vocabulary_text("word", 20, seed=3)),
            make_document("f", vocabulary_text("term", 20, seed=4)),
        ]
        reports = checker.check(documents).reports

        assert reports["d"].top_matches[0].matched_id == "d2"
        assert reports["d"].overall_score == 1.0
        assert reports["d"].word_count == 0
        assert "e" not in [m.matched_id for m in reports["d"].all_matches]
        assert text_similarity(documents[0].text, documents[2].text) == 0.0

    def test_disjoint_vocabularies_yield_few_candidates(self, checker) -> None:
        documents = [
            make_document(str(i), vocabulary_text(f"doc{i}w", 60, seed=i) + " common shared")
            for i in range(100)
        ]
        result = checker.check(documents)

        assert result.pair_space == 100 * 99 // 2
        assert result.candidate_count < 0.05 * result.pair_space
        for report in result.reports.values():
            assert all(match.similarity < 0.05 for match in report.all_matches)


class TestSimilarityProperties:
    def test_contained_document(self, checker) -> None:
        long_text = vocabulary_text("word", 60, seed=5)
        short_text = " ".join(long_text.split()[:30])
        reports = checker.check(
            [make_document("short", short_text), make_document("long", long_text)]
        ).reports

        match = reports["short"].top_matches[0]
        assert match.matched_id == "long"
        assert match.similarity == pytest.approx(30 / 60)
        assert reports["long"].overall_score == pytest.approx(0.5)

    def test_scores_are_bounded(self, checker) -> None:
        base = vocabulary_text("word", 40, seed=6).split()
        documents = [
            make_document(str(i), " ".join(base[: 20 + i * 5]))
            for i in range(5)
        ]
        for report in checker.check(documents).reports.values():
            assert 0.0 <= report.overall_score <= 1.0
            for match in report.all_matches:
                assert 0.0 <= match.similarity <= 1.0

    def test_top_matches_bounded_by_top_k(self) -> None:
        text = vocabulary_text("word", 30, seed=7)
        documents = [make_document(str(i), text) for i in range(6)]
        reports = SimilarityChecker(DetectionConfig(top_k=3)).check(documents).reports
        assert len(reports["0"].all_matches) == 5
        assert len(reports["0"].top_matches) == 3
        assert all(m.matched_excerpt for m in reports["0"].top_matches)

    def test_rerun_is_idempotent(self, checker, shared_pair_corpus) -> None:
        first = checker.check(shared_pair_corpus)
        second = SimilarityChecker(DetectionConfig(max_workers=1)).check(shared_pair_corpus)
        assert first.reports == second.reports
        assert first.candidate_count == second.candidate_count

    def test_legacy_jaccard_measure(self) -> None:
        words = vocabulary_text("word", 60, seed=8).split()
        documents = [
            make_document("head", " ".join(words[:40])),
            make_document("tail", " ".join(words[20:])),
        ]
        overlap = SimilarityChecker().check(documents).reports
        jaccard = SimilarityChecker(DetectionConfig(similarity_measure="jaccard")).check(documents).reports
        assert overlap["head"].overall_score == pytest.approx(20 / 40)
        assert jaccard["head"].overall_score == pytest.approx(20 / 60)


class TestValidation:
    def test_requires_two_documents_with_text(self, checker) -> None:
        with pytest.raises(InsufficientData):
            checker.check([make_document("a", "some words here"), make_document("b", "  ")])
        with pytest.raises(InsufficientData):
            checker.check([])

    def test_texts_too_short_to_shingle_do_not_count(self, checker) -> None:
        with pytest.raises(InsufficientData):
            checker.check([make_document("a", "hello world"), make_document("b", "!!! ???")])

    def test_short_texts_still_reported(self, checker, shared_pair_corpus) -> None:
        documents = shared_pair_corpus + [make_document("tiny", "two words")]
        reports = checker.check(documents).reports
        assert reports["tiny"].overall_score == 0.0
        assert reports["tiny"].word_count == 2

    def test_rejects_duplicate_ids(self, checker) -> None:
        with pytest.raises(ValueError):
            checker.check([make_document("a", "one two three"), make_document("a", "four five six")])

    def test_band_split_checked_at_construction(self) -> None:
        with pytest.raises(ConfigMismatch):
            SimilarityChecker(DetectionConfig(num_permutations=128, num_bands=10, rows_per_band=10))

    def test_invalid_settings(self) -> None:
        with pytest.raises(ValueError):
            SimilarityChecker(DetectionConfig(similarity_measure="cosine"))
        with pytest.raises(ValueError):
            SimilarityChecker(DetectionConfig(excerpt_words=0))

    def test_mixed_signature_families_rejected(self, checker) -> None:
        text = "the same text hashed under two families"
        signatures = {
            "a": MinHasher(HashFamily(version=1)).signature_for_text(text),
            "b": MinHasher(HashFamily(version=2)).signature_for_text(text),
        }
        with pytest.raises(ConfigMismatch):
            checker.candidates_from_signatures(signatures)

    def test_foreign_family_rejected(self, checker) -> None:
        signatures = {
            "a": MinHasher(HashFamily(seed="other")).signature_for_text("one two three four"),
            "b": MinHasher(HashFamily(seed="other")).signature_for_text("five six seven eight"),
        }
        with pytest.raises(ConfigMismatch):
            checker.candidates_from_signatures(signatures)


class TestCancellation:
    def test_cancel_event(self, checker, shared_pair_corpus) -> None:
        event = threading.Event()
        event.set()
        with pytest.raises(RunCancelled):
            checker.check(shared_pair_corpus, cancel_event=event)

    def test_deadline(self, checker, shared_pair_corpus) -> None:
        with pytest.raises(RunCancelled):
            checker.check(shared_pair_corpus, timeout=0)

    def test_configured_deadline(self, shared_pair_corpus) -> None:
        checker = SimilarityChecker(DetectionConfig(timeout_seconds=0))
        with pytest.raises(RunCancelled):
            checker.check(shared_pair_corpus)


class TestRuns:
    def test_successful_run(self, checker, shared_pair_corpus) -> None:
        run = checker.start_run()
        assert run.state is RunState.UNCHECKED

        finished = checker.run(run.run_id, shared_pair_corpus)
        assert finished.state is RunState.CHECKED
        assert finished.state.terminal
        assert finished.result.run_id == run.run_id
        assert set(finished.result.reports) == {"a", "b", "c"}
        assert checker.get_run(run.run_id) is finished

    def test_failed_run_records_error(self, checker) -> None:
        run = checker.start_run()
        finished = checker.run(run.run_id, [make_document("a", "lonely text")])
        assert finished.state is RunState.FAILED
        assert finished.result is None
        assert "two documents" in finished.error

    def test_cancelled_run_fails(self, checker, shared_pair_corpus) -> None:
        event = threading.Event()
        event.set()
        run = checker.start_run()
        assert checker.run(run.run_id, shared_pair_corpus, cancel_event=event).state is RunState.FAILED

    def test_terminal_runs_cannot_restart(self, checker, shared_pair_corpus) -> None:
        run = checker.start_run()
        checker.run(run.run_id, shared_pair_corpus)
        with pytest.raises(InvalidRunState):
            checker.run(run.run_id, shared_pair_corpus)

    def test_unknown_run(self, checker) -> None:
        with pytest.raises(KeyError):
            checker.get_run("missing")

    def test_cancel_run_stops_pending_run(self, checker, shared_pair_corpus) -> None:
        run = checker.start_run()
        assert checker.cancel_run(run.run_id) is run

        finished = checker.run(run.run_id, shared_pair_corpus)
        assert finished.state is RunState.FAILED
        assert "cancelled" in finished.error

    def test_cancel_finished_run_is_noop(self, checker, shared_pair_corpus) -> None:
        run = checker.start_run()
        checker.run(run.run_id, shared_pair_corpus)
        assert checker.cancel_run(run.run_id).state is RunState.CHECKED

    def test_discard_run(self, checker, shared_pair_corpus) -> None:
        pending = checker.start_run()
        with pytest.raises(InvalidRunState):
            checker.discard_run(pending.run_id)

        checker.run(pending.run_id, shared_pair_corpus)
        checker.discard_run(pending.run_id)
        with pytest.raises(KeyError):
            checker.get_run(pending.run_id)
        with pytest.raises(KeyError):
            checker.discard_run(pending.run_id)


class TestRunRegistry:
    def test_oldest_finished_runs_are_evicted(self, shared_pair_corpus) -> None:
        checker = SimilarityChecker(DetectionConfig(max_runs=3))
        run_ids = []
        for _ in range(6):
            run = checker.start_run()
            checker.run(run.run_id, shared_pair_corpus)
            run_ids.append(run.run_id)

        for run_id in run_ids[:3]:
            with pytest.raises(KeyError):
                checker.get_run(run_id)
        for run_id in run_ids[3:]:
            assert checker.get_run(run_id).state is RunState.CHECKED

    def test_unfinished_runs_are_kept(self) -> None:
        checker = SimilarityChecker(DetectionConfig(max_runs=2))
        runs = [checker.start_run() for _ in range(4)]
        for run in runs:
            assert checker.get_run(run.run_id) is run

    def test_max_runs_must_be_positive(self) -> None:
        with pytest.raises(ValueError):
            SimilarityChecker(DetectionConfig(max_runs=0))
