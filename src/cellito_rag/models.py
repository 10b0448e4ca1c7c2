"""Data Models Module

Defines Pydantic models for the documents and results that flow through the
RAG pipeline: raw articles from the input provider, chunks and processed
documents held in the corpus, and the transient search/initialization
results handed to the answering layer.
"""

from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, model_validator


class RawDocument(BaseModel):
    """Document as supplied by the input provider.

    Only ``file_name`` and ``text`` are used by the pipeline; any other
    metadata (slug, category, tags, ...) is carried through untouched.
    camelCase keys from the portal (``fileName``, ``articleSlug``) are
    accepted as aliases.
    """
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    file_name: str = Field(default="", alias="fileName")
    text: Optional[str] = None
    article_slug: Optional[str] = Field(default=None, alias="articleSlug")
    category: Optional[str] = None


class Chunk(BaseModel):
    """A bounded, trimmed slice of a document's text used for retrieval."""
    model_config = ConfigDict(frozen=True)

    text: str
    size: int
    element_count: int
    type: Literal["smart", "fallback"] = "smart"
    start_index: int = 0
    starts_with_capital: bool = False
    ends_with_punctuation: bool = False
    has_questions: bool = False
    word_count: int = 0
    completeness: int = Field(default=50, ge=0, le=100)
    readability: int = Field(default=50, ge=0, le=100)

    @model_validator(mode="after")
    def _check_text(self) -> "Chunk":
        if not self.text or self.text != self.text.strip():
            raise ValueError("chunk text must be trimmed and non-empty")
        if self.size != len(self.text):
            raise ValueError(
                f"chunk size {self.size} does not match text length {len(self.text)}"
            )
        return self


class ProcessedDocument(RawDocument):
    """Raw document plus its chunks, keyword table and aggregate quality."""
    chunks: List[Chunk] = Field(min_length=1)
    total_chunks: int
    keywords: Dict[str, int] = {}
    original_text_length: int
    average_chunk_size: int
    quality_score: int
    processed_at: str


class ChunkingOptions(BaseModel):
    """Tuning knobs for the chunker (sizes are in characters)."""
    chunk_size: int = Field(default=800, gt=0)
    overlap: int = Field(default=150, ge=0)
    min_chunk_size: int = Field(default=100, gt=0)
    max_chunk_size: int = Field(default=1200, gt=0)
    strategy: str = "smart"

    @model_validator(mode="after")
    def _check_bounds(self) -> "ChunkingOptions":
        if self.min_chunk_size > self.max_chunk_size:
            raise ValueError("min_chunk_size must not exceed max_chunk_size")
        return self


class ProcessingError(BaseModel):
    """Skip record for a document that could not be processed."""
    index: int
    error: str
    article: Optional[str] = None
    is_last: bool = False


class DocumentRef(BaseModel):
    file_name: str
    article_slug: Optional[str] = None
    category: Optional[str] = None
    total_chunks: int


class RelevantChunkMatch(BaseModel):
    chunk: Chunk
    score: int = Field(ge=0)
    document: DocumentRef
    chunk_index: int
    doc_index: int


class SearchResult(BaseModel):
    """Outcome of a single search call.

    Failures (empty corpus, nothing relevant, unexpected error) are reported
    with ``success=False`` and a ``message`` or ``error`` rather than raised.
    """
    success: bool
    query: str
    context: Optional[str] = None
    relevant_chunks: Optional[List[RelevantChunkMatch]] = None
    relevant_articles: Optional[List[str]] = None
    total_chunks_found: Optional[int] = None
    searched_articles: int = 0
    avg_score: Optional[int] = None
    timestamp: str
    error: Optional[str] = None
    message: Optional[str] = None


class RAGStatus(BaseModel):
    total_articles: int = 0
    total_chunks: int = 0
    is_ready: bool = False
    from_cache: bool = False
    last_updated: Optional[str] = None
    error: Optional[str] = None
    processing_errors: Optional[int] = None
    average_chunk_size: Optional[int] = None
    average_quality: Optional[int] = None


class InitializationResult(BaseModel):
    success: bool
    articles_processed: int = 0
    total_chunks: int = 0
    errors: int = 0
    from_cache: bool = False
    status: RAGStatus
    error: Optional[str] = None


class AnswerResult(BaseModel):
    """Answer produced from the retrieved context, with citation data."""
    content: str
    sources: List[str] = []
    has_relevant_docs: bool = False
    confidence: int = 0
    query_info: Dict[str, Any] = {}


class ProcessingReport(BaseModel):
    """Outcome of a document batch: what made it into the corpus and what didn't."""
    processed_docs: List[ProcessedDocument] = []
    errors: List[ProcessingError] = []
    cancelled: bool = False
