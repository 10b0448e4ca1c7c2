"""Corpus Cache Validation Script

Validates that a saved corpus cache conforms to the chunk invariants the
search layer relies on:
  - Every document has a file name and a non-empty chunk list
  - total_chunks matches the number of chunks
  - Chunk text is trimmed and non-empty, and size equals its length
  - Quality scores lie within 0-100
  - Keyword tables hold at most 20 entries

Usage:
    python -m src.cellito_rag.scripts.validate_cache --path cache/rag_cache.json

Exits with code 0 on success, 1 on validation failure, 2 on argument error.
"""

#!/usr/bin/env python
import argparse
import json
from pathlib import Path
from typing import Any, Dict, List, Tuple

MAX_KEYWORDS = 20


def load_documents(path: Path) -> List[Dict[str, Any]]:
    """Load processed documents from a cache file.

    Supports:
      - the cache layout {"metadata": {...}, "processedDocuments": [...]}
      - a bare JSON array of processed documents
    """
    with path.open("r", encoding="utf-8") as f:
        data = json.load(f)

    if isinstance(data, list):
        return data
    if isinstance(data, dict) and isinstance(data.get("processedDocuments"), list):
        return data["processedDocuments"]
    raise ValueError("File holds neither a cache object nor a list of documents.")


def _is_score(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and 0 <= value <= 100


def validate_chunk(
    chunk: Any,
    doc_idx: int,
    chunk_idx: int,
) -> Tuple[List[str], List[str]]:
    errors: List[str] = []
    warnings: List[str] = []
    where = f"[doc={doc_idx} chunk={chunk_idx}]"

    if not isinstance(chunk, dict):
        errors.append(f"{where} chunk should be an object, got {type(chunk).__name__}")
        return errors, warnings

    text = chunk.get("text")
    if not isinstance(text, str) or not text:
        errors.append(f"{where} missing or empty 'text'")
        return errors, warnings
    if text != text.strip():
        errors.append(f"{where} text is not trimmed")

    size = chunk.get("size")
    if size != len(text):
        errors.append(f"{where} size {size!r} != text length {len(text)}")

    for field in ("completeness", "readability"):
        if field not in chunk:
            warnings.append(f"{where} missing '{field}'")
        elif not _is_score(chunk[field]):
            errors.append(f"{where} {field} out of range (got {chunk[field]!r})")

    if chunk.get("type") not in ("smart", "fallback"):
        warnings.append(f"{where} unknown chunk type {chunk.get('type')!r}")

    return errors, warnings


def validate_document(doc: Any, idx: int) -> Tuple[List[str], List[str]]:
    """Validate a single processed document.

    Returns:
        (errors, warnings)
    """
    errors: List[str] = []
    warnings: List[str] = []

    if not isinstance(doc, dict):
        errors.append(f"[doc={idx}] should be an object, got {type(doc).__name__}")
        return errors, warnings

    name = doc.get("file_name") or doc.get("fileName")
    if not name:
        warnings.append(f"[doc={idx}] missing file name")

    chunks = doc.get("chunks")
    if not isinstance(chunks, list) or not chunks:
        errors.append(f"[doc={idx}] 'chunks' must be a non-empty list")
        return errors, warnings

    if doc.get("total_chunks") != len(chunks):
        errors.append(
            f"[doc={idx}] total_chunks {doc.get('total_chunks')!r} != {len(chunks)} chunks"
        )

    for chunk_idx, chunk in enumerate(chunks):
        chunk_errors, chunk_warnings = validate_chunk(chunk, idx, chunk_idx)
        errors.extend(chunk_errors)
        warnings.extend(chunk_warnings)

    keywords = doc.get("keywords")
    if keywords is None:
        warnings.append(f"[doc={idx}] missing 'keywords'")
    elif not isinstance(keywords, dict):
        errors.append(f"[doc={idx}] 'keywords' should be an object")
    elif len(keywords) > MAX_KEYWORDS:
        errors.append(f"[doc={idx}] {len(keywords)} keywords (max {MAX_KEYWORDS})")

    return errors, warnings


def main(argv: list[str] | None = None) -> None:
    """Validate a corpus cache file.

    Args:
        argv: Command-line arguments. If None, uses sys.argv[1:]

    Raises:
        SystemExit: With code 0 on success, 1 on validation failure
    """
    parser = argparse.ArgumentParser(
        description="Validate a saved RAG corpus cache."
    )
    parser.add_argument(
        "--path",
        type=str,
        required=True,
        help="Path to the corpus cache JSON file",
    )
    args = parser.parse_args(argv)

    path = Path(args.path)

    try:
        documents = load_documents(path)
    except Exception as e:
        print(f"FAILED TO LOAD FILE: {e}")
        raise SystemExit(1)

    all_errors: List[str] = []
    all_warnings: List[str] = []

    for idx, doc in enumerate(documents):
        errors, warnings = validate_document(doc, idx)
        all_errors.extend(errors)
        all_warnings.extend(warnings)

    if all_errors:
        print("VALIDATION FAILED:\n")
        for err in all_errors:
            print(err)
        print(f"\nTotal errors: {len(all_errors)}")
        if all_warnings:
            print(f"Total warnings: {len(all_warnings)}")
        raise SystemExit(1)

    print("VALIDATION PASSED")
    print(f"Total documents: {len(documents)}")
    print(f"Total chunks: {sum(len(d['chunks']) for d in documents)}")
    if all_warnings:
        print("\nWarnings (non-fatal):")
        for w in all_warnings:
            print(w)
        print(f"\nTotal warnings: {len(all_warnings)}")

    raise SystemExit(0)


if __name__ == "__main__":
    main()
