import os
from dataclasses import asdict
from typing import List, Optional

from fastapi import BackgroundTasks, FastAPI, HTTPException, Response
from pydantic import BaseModel

from plagiarism_detection.errors import InsufficientData, InvalidRunState
from plagiarism_detection.models import DEFAULT_HASH_SEED, DetectionConfig, Document
from plagiarism_detection.service import SimilarityChecker
from plagiarism_detection.similarity import highlight_matches, similarity_level, text_similarity


def _optional_float(value: Optional[str]) -> Optional[float]:
    return float(value) if value else None


DEFAULT_SHINGLE_SIZE = int(os.environ.get("PLAGIARISM_SHINGLE_SIZE", "3"))
DEFAULT_NUM_PERMUTATIONS = int(os.environ.get("PLAGIARISM_NUM_PERMUTATIONS", "128"))
DEFAULT_NUM_BANDS = int(os.environ.get("PLAGIARISM_NUM_BANDS", "128"))
DEFAULT_ROWS_PER_BAND = int(os.environ.get("PLAGIARISM_ROWS_PER_BAND", "1"))
DEFAULT_HASH_VERSION = int(os.environ.get("PLAGIARISM_HASH_VERSION", "1"))
DEFAULT_HASH_SEED_VALUE = os.environ.get("PLAGIARISM_HASH_SEED", DEFAULT_HASH_SEED)
DEFAULT_TOP_K = int(os.environ.get("PLAGIARISM_TOP_K", "3"))
DEFAULT_TIMEOUT_SECONDS = _optional_float(os.environ.get("PLAGIARISM_TIMEOUT_SECONDS"))
DEFAULT_MAX_RUNS = int(os.environ.get("PLAGIARISM_MAX_RUNS", "100"))

app = FastAPI(title="Submission Similarity Service")
checker: Optional[SimilarityChecker] = None


class DocumentPayload(BaseModel):
    doc_id: str
    author_id: str
    text: str
    title: Optional[str] = None


class RunRequest(BaseModel):
    documents: List[DocumentPayload]


class RunHandle(BaseModel):
    run_id: str
    state: str


class MatchResponse(BaseModel):
    matched_id: str
    similarity: float
    level: str
    matched_author_id: Optional[str] = None
    matched_excerpt: Optional[str] = None


class ReportResponse(BaseModel):
    document_id: str
    author_id: str
    overall_score: float
    level: str
    word_count: int
    top_matches: List[MatchResponse]
    all_matches: List[MatchResponse]
    title: Optional[str] = None


class RunResponse(BaseModel):
    run_id: str
    state: str
    error: Optional[str] = None
    candidate_count: Optional[int] = None
    pair_space: Optional[int] = None
    reports: Optional[List[ReportResponse]] = None


class SimilarityRequest(BaseModel):
    text_a: str
    text_b: str


class SimilarityResponse(BaseModel):
    similarity: float
    level: str


class HighlightRequest(BaseModel):
    text: str
    reference: str


class HighlightedWord(BaseModel):
    text: str
    highlight: bool


def build_config() -> DetectionConfig:
    return DetectionConfig(
        shingle_size=DEFAULT_SHINGLE_SIZE,
        num_permutations=DEFAULT_NUM_PERMUTATIONS,
        num_bands=DEFAULT_NUM_BANDS,
        rows_per_band=DEFAULT_ROWS_PER_BAND,
        hash_seed=DEFAULT_HASH_SEED_VALUE,
        hash_version=DEFAULT_HASH_VERSION,
        top_k=DEFAULT_TOP_K,
        timeout_seconds=DEFAULT_TIMEOUT_SECONDS,
        max_runs=DEFAULT_MAX_RUNS,
    )


@app.on_event("startup")
async def startup_event() -> None:
    global checker
    if checker is not None:
        return
    checker = SimilarityChecker(build_config())


def _require_checker() -> SimilarityChecker:
    if checker is None:
        raise HTTPException(status_code=503, detail="Service not initialised")
    return checker


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}


@app.post("/runs", response_model=RunHandle, status_code=202)
async def start_run(req: RunRequest, background_tasks: BackgroundTasks) -> RunHandle:
    service = _require_checker()
    documents = [
        Document(
            doc_id=payload.doc_id,
            author_id=payload.author_id,
            title=payload.title,
            text=payload.text,
        )
        for payload in req.documents
    ]
    try:
        service.validate_documents(documents)
    except (InsufficientData, ValueError) as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    run = service.start_run()
    background_tasks.add_task(service.run, run.run_id, documents)
    return RunHandle(run_id=run.run_id, state=run.state.value)


@app.get("/runs/{run_id}", response_model=RunResponse)
async def get_run(run_id: str) -> RunResponse:
    service = _require_checker()
    try:
        run = service.get_run(run_id)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=f"Run {run_id} not found") from exc

    response = RunResponse(run_id=run.run_id, state=run.state.value, error=run.error)
    if run.result is not None:
        response.candidate_count = run.result.candidate_count
        response.pair_space = run.result.pair_space
        response.reports = [
            ReportResponse(**asdict(report)) for report in run.result.reports.values()
        ]
    return response


@app.post("/similarity", response_model=SimilarityResponse)
async def similarity(req: SimilarityRequest) -> SimilarityResponse:
    score = text_similarity(req.text_a, req.text_b)
    return SimilarityResponse(similarity=score, level=similarity_level(score))


@app.post("/highlight", response_model=List[HighlightedWord])
async def highlight(req: HighlightRequest) -> List[HighlightedWord]:
    return [HighlightedWord(**word) for word in highlight_matches(req.text, req.reference)]


@app.post("/runs/{run_id}/cancel", response_model=RunHandle, status_code=202)
async def cancel_run(run_id: str) -> RunHandle:
    service = _require_checker()
    try:
        run = service.cancel_run(run_id)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=f"Run {run_id} not found") from exc
    return RunHandle(run_id=run.run_id, state=run.state.value)


@app.delete("/runs/{run_id}", status_code=204)
async def discard_run(run_id: str) -> Response:
    service = _require_checker()
    try:
        service.discard_run(run_id)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=f"Run {run_id} not found") from exc
    except InvalidRunState as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return Response(status_code=204)
