"""Lexical relevance scoring of a chunk against a query.

The score is additive and unbounded:

  +100  chunk contains the whole query (case-insensitive)
  +15   per chunk token equal to a query word
  +8    per chunk token containing, or contained in, a query word
  +10x  keyword-table weight of a query word found verbatim in the table
  +5x   keyword-table weight of every keyword containing, or contained in,
        a query word
  +2    chunk starts with a capital letter
  +2    chunk ends with terminal punctuation

Exact token matches also count as partial matches, and an exact keyword
hit also counts in the containment scan. Rankings depend on this curve, so
it is kept as is.
"""

from typing import List, Optional

from .models import Chunk, ProcessedDocument
from .pipeline import round_half_up

PHRASE_MATCH = 100
EXACT_WORD_MATCH = 15
PARTIAL_WORD_MATCH = 8
EXACT_KEYWORD_MATCH = 10
PARTIAL_KEYWORD_MATCH = 5
QUALITY_BONUS = 2


def query_words(query: str) -> List[str]:
    return [w for w in query.lower().split() if len(w) > 2]


def calculate_similarity(
    query: str,
    chunk: Chunk,
    document: Optional[ProcessedDocument] = None,
) -> int:
    """Score how relevant ``chunk`` of ``document`` is to ``query`` (>= 0)."""
    query_lower = query.lower()
    chunk_lower = chunk.text.lower()

    score = 0

    if query_lower in chunk_lower:
        score += PHRASE_MATCH

    words = query_words(query)
    chunk_tokens = chunk_lower.split()

    for word in words:
        exact = sum(1 for token in chunk_tokens if token == word)
        score += exact * EXACT_WORD_MATCH

        partial = sum(1 for token in chunk_tokens if word in token or token in word)
        score += partial * PARTIAL_WORD_MATCH

    keywords = document.keywords if document is not None else None
    if keywords:
        for word in words:
            if keywords.get(word):
                score += keywords[word] * EXACT_KEYWORD_MATCH

            for keyword, weight in keywords.items():
                if word in keyword or keyword in word:
                    score += weight * PARTIAL_KEYWORD_MATCH

    if chunk.starts_with_capital:
        score += QUALITY_BONUS
    if chunk.ends_with_punctuation:
        score += QUALITY_BONUS

    return round_half_up(score)
