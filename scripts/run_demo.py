#!/usr/bin/env python3
import argparse
import os
import sys
import time
from pathlib import Path
from typing import List

import requests


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Submission similarity API demo")
    parser.add_argument(
        "--query-dir", type=Path, help="Directory of .txt submissions to check"
    )
    parser.add_argument(
        "--top", type=int, default=3, help="Number of top matches to display per document",
    )
    parser.add_argument(
        "--api-url",
        default=os.environ.get("PLAGIARISM_API_URL", "http://localhost:8000"),
        help="Base URL of the similarity API",
    )
    parser.add_argument(
        "--poll-interval", type=float, default=1.0, help="Seconds between status polls"
    )
    return parser.parse_args()


def read_documents(directory: Path) -> List[dict]:
    return [
        {"doc_id": path.stem, "author_id": path.stem, "text": path.read_text(encoding="utf-8")}
        for path in sorted(directory.glob("*.txt"))
    ]


def start_run(api_url: str, documents: List[dict]) -> dict:
    response = requests.post(
        f"{api_url}/runs",
        json={"documents": documents},
        timeout=30,
    )
    response.raise_for_status()
    return response.json()


def wait_for_run(api_url: str, run_id: str, poll_interval: float) -> dict:
    while True:
        response = requests.get(f"{api_url}/runs/{run_id}", timeout=30)
        response.raise_for_status()
        payload = response.json()
        if payload["state"] in ("checked", "failed"):
            return payload
        time.sleep(poll_interval)


def main() -> None:
    args = parse_args()

    if not args.query_dir or not args.query_dir.is_dir():
        print("Provide --query-dir with the submissions to check.")
        sys.exit(1)

    documents = read_documents(args.query_dir)
    if len(documents) < 2:
        print("At least two .txt submissions are needed.")
        sys.exit(1)

    handle = start_run(args.api_url, documents)
    print(f"Started run {handle['run_id']}")
    result = wait_for_run(args.api_url, handle["run_id"], args.poll_interval)

    if result["state"] == "failed":
        print(f"Run failed: {result.get('error')}")
        sys.exit(1)

    print(
        f"Candidate pairs: {result['candidate_count']} of {result['pair_space']} possible"
    )
    for report in result.get("reports") or []:
        print("-" * 80)
        print(
            f"{report['document_id']}: {report['overall_score']:.3f} ({report['level']})"
        )
        for idx, match in enumerate(report["top_matches"][: args.top], start=1):
            print(f"  {idx}. {match['matched_id']} {match['similarity']:.3f} ({match['level']})")
            if match.get("matched_excerpt"):
                print(f"     \"{match['matched_excerpt'][:120]}\"")
    print("-" * 80)


if __name__ == "__main__":
    main()
