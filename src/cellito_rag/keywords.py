"""Keyword extraction for processed documents.

Builds a small, frequency-ranked keyword table per document: repeated
single words plus repeated two- and three-word phrases (phrases weighted
double). The table feeds the keyword boosts of the relevance scorer.
"""

import re
from collections import Counter
from typing import Dict, List

from .config import MAX_KEYWORDS

# Articles are written in Portuguese and English
STOP_WORDS = frozenset({
    # Portuguese
    "o", "a", "os", "as", "um", "uma", "e", "ou", "mas", "se", "que", "de", "da", "do",
    "em", "no", "na", "por", "para", "com", "ser", "ter", "estar", "isso", "ele", "ela",
    # English
    "the", "and", "or", "but", "if", "that", "of", "in", "on", "at", "by", "for", "with",
    "is", "are", "was", "were", "be", "been", "have", "has", "had", "this", "i", "you",
})

# Anything that is not an ASCII word char, whitespace or an accented Latin letter
NON_WORD_RE = re.compile(r'[^\w\sàáâãäåçèéêëìíîïñòóôõöùúûüý]', re.ASCII)
WHITESPACE_RE = re.compile(r'\s+')
NUMERIC_RE = re.compile(r'^\d+$')

PHRASE_WEIGHT = 2


def tokenize(text: str) -> List[str]:
    """Lowercase, strip punctuation and drop short, stop-listed or numeric tokens."""
    processed = NON_WORD_RE.sub(" ", text.lower())
    processed = WHITESPACE_RE.sub(" ", processed).strip()

    return [
        word for word in processed.split(" ")
        if len(word) > 2 and word not in STOP_WORDS and not NUMERIC_RE.match(word)
    ]


def extract_keywords(text: str) -> Dict[str, int]:
    """
    Extract the top keywords and phrases of a document.

    Args:
        text: Full document text

    Returns:
        Ordered mapping of keyword/phrase to weight (highest first), at most
        20 entries. Only terms seen more than once are kept; phrases count
        double.
    """
    if not text:
        return {}

    words = tokenize(text)
    word_freq = Counter(words)

    phrases: List[str] = []
    for i in range(len(words) - 1):
        phrases.append(f"{words[i]} {words[i + 1]}")
        if i < len(words) - 2:
            phrases.append(f"{words[i]} {words[i + 1]} {words[i + 2]}")
    phrase_freq = Counter(phrases)

    weighted: Dict[str, int] = {}
    for word, freq in word_freq.items():
        if freq > 1:
            weighted[word] = freq
    for phrase, freq in phrase_freq.items():
        if freq > 1:
            weighted[phrase] = freq * PHRASE_WEIGHT

    ranked = sorted(weighted.items(), key=lambda item: item[1], reverse=True)
    return dict(ranked[:MAX_KEYWORDS])
