# tests/test_chunking.py

"""
Tests for the sentence-aware chunker and its fallback path.
"""

import pytest
from pydantic import ValidationError

import src.cellito_rag.chunking as chunking
from src.cellito_rag.chunking import (
    calculate_completeness,
    calculate_readability,
    create_fallback_chunks,
    create_smart_chunks,
    create_text_chunks,
    resolve_chunking_options,
    split_sentences,
)
from src.cellito_rag.config import MAX_TEXT_LENGTH
from src.cellito_rag.models import Chunk, ChunkingOptions


# -------------------------------------------------------------------
# Helpers
# -------------------------------------------------------------------


def make_text(n_sentences: int = 100) -> str:
    """52-character sentences, numbered so overlap can be traced."""
    return " ".join(
        f"This is sentence number {i:03d} about the refund policy."
        for i in range(n_sentences)
    )


# -------------------------------------------------------------------
# Options
# -------------------------------------------------------------------


def test_resolve_options_defaults():
    opts = resolve_chunking_options(None)
    assert opts.chunk_size == 800
    assert opts.overlap == 150
    assert opts.min_chunk_size == 100
    assert opts.max_chunk_size == 1200


def test_resolve_options_from_dict():
    opts = resolve_chunking_options({"chunk_size": 300, "min_chunk_size": 50})
    assert isinstance(opts, ChunkingOptions)
    assert opts.chunk_size == 300
    assert opts.min_chunk_size == 50


def test_options_reject_min_above_max():
    with pytest.raises(ValidationError):
        ChunkingOptions(min_chunk_size=500, max_chunk_size=400)


# -------------------------------------------------------------------
# Quality scores
# -------------------------------------------------------------------


def test_readability_rewards_medium_sentences():
    fifteen_words = " ".join(["word"] * 14) + " end."
    assert calculate_readability(fifteen_words) == 100
    assert calculate_readability("Short one.") == 100


def test_readability_penalties_stack_for_long_sentences():
    twenty_five = " ".join(["word"] * 25) + "."
    thirty_five = " ".join(["word"] * 35) + "."

    assert calculate_readability(twenty_five) == 80
    assert calculate_readability(thirty_five) == 50


def test_completeness_components():
    assert calculate_completeness("Short.") == 30
    assert calculate_completeness("no terminator") == 0

    text = make_text(5)  # 264 chars, repeated words, ends with '.'
    assert calculate_completeness(text) == 80


# -------------------------------------------------------------------
# Sentence chunking
# -------------------------------------------------------------------


def test_split_sentences_drops_short_fragments():
    sentences = split_sentences("Ok. This one is long enough. Yes! Another long sentence?")
    assert sentences == ["This one is long enough.", "Another long sentence?"]


def test_empty_or_non_string_input_returns_no_chunks():
    assert create_text_chunks("") == []
    assert create_text_chunks(None) == []
    assert create_text_chunks(12345) == []


def test_short_document_yields_single_chunk():
    text = "Refunds are processed within 30 days. Contact support for help."
    chunks = create_text_chunks(text)

    assert len(chunks) == 1
    assert chunks[0].text == text
    assert chunks[0].size == len(text)


def test_chunks_respect_size_bounds():
    chunks = create_text_chunks(make_text(100))

    assert len(chunks) > 1
    for chunk in chunks:
        assert chunk.type == "smart"
        assert chunk.text == chunk.text.strip()
        assert chunk.size == len(chunk.text)
        assert 100 <= chunk.size <= 800


def test_consecutive_chunks_overlap_by_trailing_sentences():
    chunks = create_text_chunks(make_text(100))

    first_sentences = split_sentences(chunks[0].text)
    tail = " ".join(first_sentences[-2:])

    assert chunks[1].text.startswith(tail)


def test_chunk_metadata():
    chunks = create_text_chunks(make_text(20) + " Is this covered?")
    last = chunks[-1]

    assert last.starts_with_capital is True
    assert last.ends_with_punctuation is True
    assert last.has_questions is True
    assert last.word_count == len(last.text.split())
    assert 0 <= last.completeness <= 100
    assert 0 <= last.readability <= 100


def test_oversized_sentence_is_emitted_once():
    """A single sentence longer than max_chunk_size becomes one chunk."""
    sentence = " ".join(["lengthy"] * 200) + "."
    chunks = create_smart_chunks(sentence, 800, 100, 1200)

    assert len(chunks) == 1
    assert chunks[0].size == len(sentence)
    assert chunks[0].size > 1200


@pytest.mark.parametrize("n_sentences", [47, 100])
def test_every_sentence_lands_in_a_chunk(n_sentences):
    text = make_text(n_sentences)
    chunks = create_text_chunks(text)

    for sentence in split_sentences(text):
        assert any(sentence.strip() in c.text for c in chunks)


def test_force_emit_restarts_with_current_sentence_only():
    """Over the hard ceiling the buffer is emitted and restarts without overlap."""
    first = make_text(1)
    long_sentence = ("lengthy " * 146).strip() + "."
    tail = make_text(2)

    chunks = create_smart_chunks(f"{first} {long_sentence} {tail}", 800, 100, 1200)

    assert [c.text for c in chunks] == [
        f"{first} {long_sentence}",
        long_sentence,
        tail,
    ]
    assert chunks[0].element_count == 2
    assert chunks[1].element_count == 1


def test_oversized_sentence_in_buffer_is_emitted_once():
    first = make_text(1)
    big = " ".join(["lengthy"] * 200) + "."
    tail = make_text(2)

    chunks = create_smart_chunks(f"{first} {big} {tail}", 800, 100, 1200)

    assert [c.text for c in chunks] == [f"{first} {big}", tail]
    assert sum(big in c.text for c in chunks) == 1


def test_chunk_cap_is_respected(monkeypatch):
    monkeypatch.setattr(chunking, "MAX_SMART_CHUNKS", 3)
    assert len(create_smart_chunks(make_text(100), 800, 100, 1200)) == 3


def test_trailing_fragment_below_minimum_is_dropped():
    # the tail forces the first sentence out, then is too short to stand alone
    text = make_text(1) + " Tiny tail here."
    chunks = create_smart_chunks(text, 60, 50, 1200)

    assert len(chunks) == 1
    assert chunks[0].text == make_text(1)


def test_long_text_is_truncated(monkeypatch):
    seen = {}

    def fake_smart(text, chunk_size, min_chunk_size, max_chunk_size):
        seen["length"] = len(text)
        return []

    monkeypatch.setattr(chunking, "create_smart_chunks", fake_smart)

    create_text_chunks("a" * (MAX_TEXT_LENGTH + 500))
    assert seen["length"] == MAX_TEXT_LENGTH


# -------------------------------------------------------------------
# Fallback chunking
# -------------------------------------------------------------------


def test_fallback_chunks_group_words():
    text = " ".join(["alphabet"] * 25)
    chunks = create_fallback_chunks(text, 60)  # 10 words per chunk

    # last bucket (5 words, 44 chars) is too short to keep
    assert len(chunks) == 2
    assert [c.start_index for c in chunks] == [0, 10]
    for chunk in chunks:
        assert chunk.type == "fallback"
        assert chunk.completeness == 50
        assert chunk.readability == 50
        assert chunk.word_count == 10


def test_sentence_failure_uses_fallback(monkeypatch):
    def broken(*args, **kwargs):
        raise RuntimeError("regex exploded")

    monkeypatch.setattr(chunking, "create_smart_chunks", broken)

    chunks = create_text_chunks(make_text(10))

    assert chunks
    assert all(isinstance(c, Chunk) and c.type == "fallback" for c in chunks)


def test_chunk_rejects_untrimmed_text():
    with pytest.raises(ValidationError):
        Chunk(text=" padded ", size=8, element_count=1)
