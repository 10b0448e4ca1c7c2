# tests/test_validate_cache.py

"""
Tests for the corpus cache validator.

These tests verify that `validate_cache.py` accepts caches written by the
pipeline and reports broken chunk and document structures.
"""


import json
from pathlib import Path

import pytest

from src.cellito_rag.cache import save_cache
from src.cellito_rag.pipeline import process_articles_for_rag
from src.cellito_rag.scripts.validate_cache import (
    load_documents,
    validate_document,
    main as validate_main,
)

POLICY_TEXT = (
    "Refunds are processed within 30 days. Contact support for help. "
    "Refunds require a receipt."
)


# -------------------------------------------------------------------
# Helpers
# -------------------------------------------------------------------


def make_valid_document(name: str = "policy.txt"):
    """Create a minimal valid processed document for reuse in tests."""
    text = "Refunds require a receipt."
    return {
        "file_name": name,
        "text": text,
        "chunks": [{
            "text": text,
            "size": len(text),
            "element_count": 1,
            "type": "smart",
            "completeness": 30,
            "readability": 100,
        }],
        "total_chunks": 1,
        "keywords": {},
    }


# -------------------------------------------------------------------
# Unit tests for validate_document
# -------------------------------------------------------------------


def test_valid_document_has_no_errors():
    errors, warnings = validate_document(make_valid_document(), 0)
    assert errors == []
    assert warnings == []


def test_size_mismatch_is_an_error():
    doc = make_valid_document()
    doc["chunks"][0]["size"] = 3

    errors, _ = validate_document(doc, 0)
    assert any("size" in e for e in errors)


def test_untrimmed_or_empty_chunk_text_is_an_error():
    doc = make_valid_document()
    doc["chunks"].append({"text": "", "size": 0})
    doc["chunks"].append({"text": " padded ", "size": 8})
    doc["total_chunks"] = 3

    errors, _ = validate_document(doc, 4)
    assert any("[doc=4 chunk=1] missing or empty 'text'" in e for e in errors)
    assert any("[doc=4 chunk=2] text is not trimmed" in e for e in errors)


def test_total_chunks_mismatch_is_an_error():
    doc = make_valid_document()
    doc["total_chunks"] = 5

    errors, _ = validate_document(doc, 0)
    assert any("total_chunks" in e for e in errors)


def test_scores_out_of_range_are_errors():
    doc = make_valid_document()
    doc["chunks"][0]["completeness"] = 120

    errors, _ = validate_document(doc, 0)
    assert any("completeness" in e for e in errors)


def test_missing_chunks_is_an_error():
    doc = make_valid_document()
    doc["chunks"] = []

    errors, _ = validate_document(doc, 0)
    assert errors == ["[doc=0] 'chunks' must be a non-empty list"]


def test_too_many_keywords_is_an_error():
    doc = make_valid_document()
    doc["keywords"] = {f"term{i}": 2 for i in range(21)}

    errors, _ = validate_document(doc, 0)
    assert any("keywords" in e for e in errors)


def test_missing_optional_fields_are_warnings():
    doc = make_valid_document()
    del doc["file_name"]
    del doc["keywords"]
    del doc["chunks"][0]["readability"]

    errors, warnings = validate_document(doc, 0)
    assert errors == []
    assert len(warnings) == 3


# -------------------------------------------------------------------
# File loading and CLI
# -------------------------------------------------------------------


def test_load_documents_accepts_cache_and_list(tmp_path: Path):
    docs = [make_valid_document()]

    list_path = tmp_path / "list.json"
    list_path.write_text(json.dumps(docs), encoding="utf-8")
    assert load_documents(list_path) == docs

    cache_path = tmp_path / "cache.json"
    cache_path.write_text(
        json.dumps({"metadata": {}, "processedDocuments": docs}), encoding="utf-8"
    )
    assert load_documents(cache_path) == docs


def test_load_documents_rejects_other_shapes(tmp_path: Path):
    path = tmp_path / "bad.json"
    path.write_text(json.dumps({"points": []}), encoding="utf-8")

    with pytest.raises(ValueError):
        load_documents(path)


def test_main_passes_on_pipeline_cache(tmp_path: Path, capsys):
    report = process_articles_for_rag(
        [{"fileName": "policy.txt", "text": POLICY_TEXT}], sleep=lambda _s: None
    )
    path = tmp_path / "rag_cache.json"
    save_cache(path, report.processed_docs)

    with pytest.raises(SystemExit) as exc:
        validate_main(["--path", str(path)])

    assert exc.value.code == 0
    out = capsys.readouterr().out
    assert "VALIDATION PASSED" in out
    assert "Total chunks: 1" in out


def test_main_fails_on_broken_cache(tmp_path: Path, capsys):
    doc = make_valid_document()
    doc["chunks"][0]["size"] = 999
    path = tmp_path / "rag_cache.json"
    path.write_text(json.dumps({"processedDocuments": [doc]}), encoding="utf-8")

    with pytest.raises(SystemExit) as exc:
        validate_main(["--path", str(path)])

    assert exc.value.code == 1
    assert "VALIDATION FAILED" in capsys.readouterr().out


def test_main_fails_on_unreadable_file(tmp_path: Path, capsys):
    with pytest.raises(SystemExit) as exc:
        validate_main(["--path", str(tmp_path / "missing.json")])

    assert exc.value.code == 1
    assert "FAILED TO LOAD FILE" in capsys.readouterr().out
