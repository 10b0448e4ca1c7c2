"""Corpus-wide ranking and context assembly.

Ranks every chunk of every processed document against a query and formats
the best matches as a context block for the answering step.
"""

import logging
from typing import Dict, List, Sequence

from .config import DEFAULT_MAX_CHUNKS, MIN_RELEVANCE_SCORE
from .models import DocumentRef, ProcessedDocument, RelevantChunkMatch
from .pipeline import round_half_up
from .scoring import calculate_similarity

logger = logging.getLogger(__name__)

NO_RELEVANT_ARTICLES = "No relevant articles found for this query."
SECTION_DIVIDER = "─" * 50


def find_relevant_chunks(
    corpus: Sequence[ProcessedDocument],
    query: str,
    max_chunks: int = DEFAULT_MAX_CHUNKS,
    min_score: int = MIN_RELEVANCE_SCORE,
) -> List[RelevantChunkMatch]:
    """
    Rank chunks across the corpus.

    Args:
        corpus: Processed documents to search
        query: User question
        max_chunks: Maximum matches to return
        min_score: Matches scoring below this are dropped

    Returns:
        Matches sorted by descending score (ties keep corpus order)
    """
    if not corpus:
        return []

    logger.debug("Searching %d articles for: %r", len(corpus), query)

    matches: List[RelevantChunkMatch] = []
    searched = 0

    for doc_index, doc in enumerate(corpus):
        ref = DocumentRef(
            file_name=doc.file_name,
            article_slug=doc.article_slug,
            category=doc.category,
            total_chunks=doc.total_chunks,
        )
        for chunk_index, chunk in enumerate(doc.chunks):
            searched += 1
            score = calculate_similarity(query, chunk, doc)
            if score > 0:
                matches.append(RelevantChunkMatch(
                    chunk=chunk,
                    score=score,
                    document=ref,
                    chunk_index=chunk_index,
                    doc_index=doc_index,
                ))

    ranked = sorted(matches, key=lambda m: m.score, reverse=True)
    ranked = [m for m in ranked if m.score >= min_score][:max_chunks]

    logger.info("Found %d/%d relevant chunks", len(ranked), searched)
    return ranked


def create_context_for_query(matches: Sequence[RelevantChunkMatch], query: str) -> str:
    """
    Format matches as a context block, grouped by source document.

    Documents appear in the order of their best match; each chunk is
    annotated with its position in the document and its score.
    """
    if not matches:
        return NO_RELEVANT_ARTICLES

    by_document: Dict[str, List[RelevantChunkMatch]] = {}
    for match in matches:
        by_document.setdefault(match.document.file_name, []).append(match)

    parts = [f'RELEVANT CONTEXT FOR: "{query}"\n\n']
    for name, doc_matches in by_document.items():
        parts.append(f"ARTICLE: {name}\n")
        for match in doc_matches:
            parts.append(
                f"\n[Section {match.chunk_index + 1}/{match.document.total_chunks}"
                f" - Relevance: {match.score}]\n"
            )
            parts.append(f"{match.chunk.text}\n")
        parts.append(f"\n{SECTION_DIVIDER}\n\n")

    return "".join(parts)


def unique_articles(matches: Sequence[RelevantChunkMatch]) -> List[str]:
    """Source file names in first-seen order, without duplicates."""
    return list(dict.fromkeys(m.document.file_name for m in matches))


def average_score(matches: Sequence[RelevantChunkMatch]) -> int:
    return round_half_up(sum(m.score for m in matches) / len(matches)) if matches else 0
