"""Runtime configuration.

Limits and thresholds for the RAG pipeline. Values that operators may want
to tune are read from environment variables at import time; the rest are
fixed properties of the chunking and scoring algorithms.

Environment variables:
  RAG_CHUNK_TIMEOUT_SECONDS: Per-document chunking budget (default: 30)
  RAG_YIELD_SECONDS: Pause inserted every RAG_YIELD_EVERY documents (default: 0.1)
  RAG_YIELD_EVERY: Documents between pauses (default: 10)
  RAG_HISTORY_LIMIT: Search results kept in history (default: 50)
  RAG_MIN_RELEVANCE_SCORE: Matches scoring below this are dropped (default: 5)
"""

import os

# --- Document processing ---

MIN_DOCUMENT_LENGTH = 50
MAX_TEXT_LENGTH = 100_000
CHUNK_TIMEOUT_SECONDS = float(os.getenv("RAG_CHUNK_TIMEOUT_SECONDS", "30"))
DIAGNOSTIC_TIMEOUT_SECONDS = 5.0
YIELD_EVERY = int(os.getenv("RAG_YIELD_EVERY", "10"))
YIELD_SECONDS = float(os.getenv("RAG_YIELD_SECONDS", "0.1"))

# --- Chunking ---

MIN_SENTENCE_LENGTH = 10
MAX_SMART_CHUNKS = 1000
MAX_FALLBACK_CHUNKS = 500
MIN_FALLBACK_CHUNK_LENGTH = 50
CHARS_PER_WORD = 6

# --- Keywords ---

MAX_KEYWORDS = 20

# --- Search ---

DEFAULT_MAX_CHUNKS = 5
MIN_RELEVANCE_SCORE = int(os.getenv("RAG_MIN_RELEVANCE_SCORE", "5"))
HISTORY_LIMIT = int(os.getenv("RAG_HISTORY_LIMIT", "50"))

# --- Cache ---

CACHE_VERSION = "2.0"
CACHE_SLUG = "cellito-rag-cache"
