"""Sentence-aware overlapping text chunker.

Splits normalized article text into retrieval-sized chunks:
- Accumulates whole sentences up to a target size
- Carries the last sentences of a chunk into the next one as overlap
- Enforces a hard ceiling by force-emitting oversized buffers
- Falls back to fixed word buckets if the sentence path fails

Every chunk carries light-weight quality metadata (completeness and
readability scores) used for ranking and corpus statistics.
"""

import re
import logging
from collections import Counter
from typing import Any, Dict, List, Optional, Union

from .config import (
    CHARS_PER_WORD,
    MAX_FALLBACK_CHUNKS,
    MAX_SMART_CHUNKS,
    MAX_TEXT_LENGTH,
    MIN_FALLBACK_CHUNK_LENGTH,
    MIN_SENTENCE_LENGTH,
)
from .models import Chunk, ChunkingOptions

logger = logging.getLogger(__name__)

# Sentence boundary: whitespace after . ! ? or the Devanagari danda
SENTENCE_SPLIT_RE = re.compile(r'(?<=[.!?।])\s+')
SENTENCE_END_RE = re.compile(r'[.!?]')
CAPITAL_START_RE = re.compile(r'^[A-Z]')
TERMINATORS = (".", "!", "?")

OptionsLike = Union[ChunkingOptions, Dict[str, Any], None]


def resolve_chunking_options(options: OptionsLike) -> ChunkingOptions:
    if options is None:
        return ChunkingOptions()
    if isinstance(options, ChunkingOptions):
        return options
    return ChunkingOptions.model_validate(options)


def calculate_completeness(text: str) -> int:
    """Score 0-100 for how self-contained a chunk looks."""
    score = 0
    if text.endswith(TERMINATORS):
        score += 30
    if 200 <= len(text) <= 800:
        score += 25

    freq = Counter(w for w in text.lower().split() if len(w) > 3)
    repeated = sum(1 for count in freq.values() if count > 1)
    if repeated > 2:
        score += 25

    return min(100, score)


def calculate_readability(text: str) -> int:
    """Score 0-100 based on average words per sentence."""
    sentences = len(SENTENCE_END_RE.findall(text))
    words = len(text.split())
    avg_words = words / sentences if sentences > 0 else words

    score = 100
    if avg_words > 20:
        score -= 20
    if avg_words > 30:
        score -= 30
    if 10 <= avg_words <= 20:
        score += 20

    return max(0, min(100, score))


def build_chunk(text: str, sentences: List[str], index: int) -> Chunk:
    """Create a smart chunk with its quality metadata."""
    text = text.strip()
    return Chunk(
        text=text,
        size=len(text),
        element_count=len(sentences),
        type="smart",
        start_index=index,
        starts_with_capital=bool(CAPITAL_START_RE.match(text)),
        ends_with_punctuation=text.endswith(TERMINATORS),
        has_questions="?" in text,
        word_count=len(text.split()),
        completeness=calculate_completeness(text),
        readability=calculate_readability(text),
    )


def split_sentences(text: str) -> List[str]:
    """Split on sentence terminators, dropping fragments of 10 chars or less."""
    return [
        s for s in SENTENCE_SPLIT_RE.split(text)
        if len(s.strip()) > MIN_SENTENCE_LENGTH
    ]


def create_smart_chunks(
    text: str,
    chunk_size: int,
    min_chunk_size: int,
    max_chunk_size: int,
) -> List[Chunk]:
    """
    Greedily pack sentences into chunks.

    A chunk is emitted when the next sentence would push it past
    ``chunk_size`` and it already holds ``min_chunk_size`` characters; the
    next chunk then starts with up to two trailing sentences of the previous
    one. Buffers over ``max_chunk_size`` are emitted immediately and the
    next one restarts from the current sentence alone, or empty when that
    sentence is itself oversized. The trailing buffer is kept when it reaches
    ``min_chunk_size``, or when it is the only content the text produced.
    At most ``MAX_SMART_CHUNKS`` chunks are returned.
    """
    sentences = split_sentences(text)
    if not sentences:
        return []

    chunks: List[Chunk] = []
    current = ""
    current_sentences: List[str] = []

    for i, raw_sentence in enumerate(sentences):
        if len(chunks) >= MAX_SMART_CHUNKS:
            logger.warning("Maximum chunk limit reached (%d), stopping", MAX_SMART_CHUNKS)
            break

        sentence = raw_sentence.strip()
        candidate = f"{current} {sentence}" if current else sentence

        if len(candidate) > chunk_size and len(current) >= min_chunk_size:
            chunks.append(build_chunk(current, current_sentences, i))

            overlap_count = min(2, int(len(current_sentences) * 0.3))
            if overlap_count > 0:
                tail = current_sentences[-overlap_count:]
                current = " ".join(tail) + " " + sentence
                current_sentences = tail + [sentence]
            else:
                current = sentence
                current_sentences = [sentence]
        else:
            current = candidate
            current_sentences.append(sentence)

        if len(current) > max_chunk_size and len(chunks) < MAX_SMART_CHUNKS:
            chunks.append(build_chunk(current, current_sentences, i))
            if len(sentence) > max_chunk_size:
                # an oversized sentence would only be emitted again on its own
                current = ""
                current_sentences = []
            else:
                current = sentence
                current_sentences = [sentence]

    trailing = current.strip()
    if (
        trailing
        and len(chunks) < MAX_SMART_CHUNKS
        and (len(trailing) >= min_chunk_size or not chunks)
    ):
        chunks.append(build_chunk(trailing, current_sentences, len(sentences)))

    return chunks


def create_fallback_chunks(text: str, chunk_size: int) -> List[Chunk]:
    """Fixed-size word buckets with neutral quality scores."""
    logger.info("Using fallback chunking")

    chunks: List[Chunk] = []
    words = text.split()
    words_per_chunk = max(1, chunk_size // CHARS_PER_WORD)

    for start in range(0, len(words), words_per_chunk):
        bucket = words[start:start + words_per_chunk]
        chunk_text = " ".join(bucket)

        if len(chunk_text) > MIN_FALLBACK_CHUNK_LENGTH:
            chunks.append(Chunk(
                text=chunk_text,
                size=len(chunk_text),
                element_count=len(bucket),
                type="fallback",
                start_index=start,
                word_count=len(bucket),
                completeness=50,
                readability=50,
            ))

        if len(chunks) >= MAX_FALLBACK_CHUNKS:
            logger.warning("Fallback chunk limit reached (%d)", MAX_FALLBACK_CHUNKS)
            break

    return chunks


def create_text_chunks(text: Optional[str], options: OptionsLike = None) -> List[Chunk]:
    """
    Chunk text for retrieval.

    Args:
        text: Normalized document text
        options: ChunkingOptions or a dict of its fields

    Returns:
        List of chunks; empty for empty or non-string input
    """
    if not text or not isinstance(text, str):
        return []

    opts = resolve_chunking_options(options)

    if len(text) > MAX_TEXT_LENGTH:
        logger.warning(
            "Text too long (%d chars), truncating to %d chars",
            len(text),
            MAX_TEXT_LENGTH,
        )
        text = text[:MAX_TEXT_LENGTH]

    logger.debug(
        "Creating chunks: %d chars, strategy: %s", opts.chunk_size, opts.strategy
    )

    try:
        return create_smart_chunks(
            text, opts.chunk_size, opts.min_chunk_size, opts.max_chunk_size
        )
    except Exception:
        logger.exception("Error in sentence chunking, using fallback")
        return create_fallback_chunks(text, opts.chunk_size)
