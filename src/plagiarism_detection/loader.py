import json
import logging
from pathlib import Path
from typing import List, Optional

import pandas as pd

from .models import Document


_RESERVED_KEYS = {"doc_id", "author_id", "title", "text"}


def load_jsonl(path: Path) -> List[Document]:
    documents: List[Document] = []
    with path.open("r", encoding="utf-8") as handle:
        for line in handle:
            if not line.strip():
                continue
            payload = json.loads(line)
            doc_id = str(payload.get("doc_id"))
            documents.append(
                Document(
                    doc_id=doc_id,
                    author_id=str(payload.get("author_id", doc_id)),
                    title=payload.get("title"),
                    text=payload.get("text") or "",
                    metadata={
                        k: v for k, v in payload.items() if k not in _RESERVED_KEYS
                    },
                )
            )
    return documents


def load_csv(
    path: Path,
    text_column: str = "text",
    id_column: str = "doc_id",
    author_column: Optional[str] = "author_id",
    title_column: Optional[str] = None,
) -> List[Document]:
    frame = pd.read_csv(path)
    if author_column and author_column not in frame.columns:
        logging.info("Column %s missing from %s; using document ids as authors", author_column, path)
        author_column = None
    documents: List[Document] = []
    for _, row in frame.iterrows():
        doc_id = str(row[id_column])
        author_id = (
            str(row[author_column])
            if author_column and not pd.isna(row[author_column])
            else doc_id
        )
        title = (
            str(row[title_column])
            if title_column and not pd.isna(row[title_column])
            else None
        )
        text = str(row[text_column]) if not pd.isna(row[text_column]) else ""
        documents.append(
            Document(
                doc_id=doc_id,
                author_id=author_id,
                title=title,
                text=text,
                metadata=row.to_dict(),
            )
        )
    return documents


def load_text_directory(
    directory: Path,
    pattern: str = "*.txt",
    encoding: str = "utf-8",
    limit: Optional[int] = None,
) -> List[Document]:
    if not directory.exists() or not directory.is_dir():
        raise FileNotFoundError(f"Directory {directory} not found")

    files = sorted(directory.glob(pattern), key=lambda p: p.name)
    documents: List[Document] = []

    for idx, file in enumerate(files, start=1):
        text = file.read_text(encoding=encoding)
        documents.append(
            Document(
                doc_id=file.stem,
                author_id=file.stem,
                title=_derive_title(text),
                text=text,
                metadata={"source_path": str(file)},
            )
        )
        if idx % 100 == 0:
            logging.debug("Loaded %d text files", idx)
        if limit is not None and len(documents) >= limit:
            logging.info("Reached limit of %d files", limit)
            break

    return documents


def load_documents(path: Path, limit: Optional[int] = None) -> List[Document]:
    """Load a ``.jsonl`` file, a ``.csv`` file or a directory of ``.txt`` files."""
    if path.is_dir():
        return load_text_directory(path, limit=limit)
    if not path.exists():
        raise FileNotFoundError(f"Dataset {path} not found")
    if path.suffix == ".jsonl":
        documents = load_jsonl(path)
    elif path.suffix == ".csv":
        documents = load_csv(path)
    else:
        raise ValueError(f"Unsupported dataset format: {path.suffix or path.name}")
    return documents[:limit] if limit is not None else documents


def _derive_title(text: str, max_length: int = 80) -> Optional[str]:
    for line in text.splitlines():
        stripped = line.strip()
        if stripped:
            return stripped[:max_length]
    return None
