import argparse
import csv
import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Dict

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = REPO_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from plagiarism_detection.errors import DetectionError
from plagiarism_detection.loader import load_documents
from plagiarism_detection.models import CheckResult, DetectionConfig, DocumentReport
from plagiarism_detection.service import SimilarityChecker


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Run a similarity check over a corpus and write per-document reports"
    )
    parser.add_argument(
        "dataset",
        type=Path,
        help="Directory of .txt files, or a .jsonl/.csv file of documents",
    )
    parser.add_argument("output", type=Path, help="Where to write the report")
    parser.add_argument("--format", choices=["csv", "json"], default="csv")
    parser.add_argument(
        "--limit", type=int, help="Limit number of documents loaded (for testing)"
    )
    parser.add_argument("--shingle-size", type=int, default=3)
    parser.add_argument("--bands", type=int, default=128, help="Number of LSH bands")
    parser.add_argument("--rows", type=int, default=1, help="Rows per LSH band")
    parser.add_argument("--top-k", type=int, default=3)
    parser.add_argument("--timeout", type=float, help="Abort the run after this many seconds")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level",
    )
    return parser.parse_args()


def build_checker(args: argparse.Namespace) -> SimilarityChecker:
    config = DetectionConfig(
        shingle_size=args.shingle_size,
        num_permutations=args.bands * args.rows,
        num_bands=args.bands,
        rows_per_band=args.rows,
        top_k=args.top_k,
        timeout_seconds=args.timeout,
    )
    return SimilarityChecker(config)


def format_top_matches(report: DocumentReport) -> str:
    if not report.top_matches:
        return "-1"
    return " ".join(
        f"{match.matched_id}:{match.similarity:.2f}" for match in report.top_matches
    )


def write_csv(output_path: Path, reports: Dict[str, DocumentReport]) -> None:
    with output_path.open("w", encoding="utf-8", newline="") as handle:
        writer = csv.writer(handle)
        writer.writerow(["Id", "Title", "OverallScore", "Level", "WordCount", "TopMatches"])
        for doc_id in sorted(reports, key=lambda x: (int(x) if x.isdigit() else x)):
            report = reports[doc_id]
            writer.writerow(
                [
                    doc_id,
                    report.title or "",
                    f"{report.overall_score:.4f}",
                    report.level,
                    report.word_count,
                    format_top_matches(report),
                ]
            )


def write_json(output_path: Path, result: CheckResult) -> None:
    payload = {
        "run_id": result.run_id,
        "document_count": result.document_count,
        "candidate_count": result.candidate_count,
        "pair_space": result.pair_space,
        "started_at": result.started_at.isoformat(),
        "finished_at": result.finished_at.isoformat(),
        "reports": [asdict(report) for report in result.reports.values()],
    }
    output_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")


def main() -> None:
    args = parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="[%(asctime)s] %(levelname)s %(message)s",
    )

    logging.info("Loading documents from %s", args.dataset)
    documents = load_documents(args.dataset, limit=args.limit)
    if not documents:
        raise SystemExit("No documents loaded from the dataset")

    logging.info("Loaded %d documents. Checking...", len(documents))
    checker = build_checker(args)
    try:
        result = checker.check(documents)
    except DetectionError as exc:
        raise SystemExit(f"Check failed: {exc}") from exc

    logging.info("Writing %s report to %s", args.format, args.output)
    args.output.parent.mkdir(parents=True, exist_ok=True)
    if args.format == "json":
        write_json(args.output, result)
    else:
        write_csv(args.output, result.reports)
    logging.info("Done.")


if __name__ == "__main__":
    main()
