"""RAG engine: owns the corpus, status and search history for a session.

One ``RagEngine`` is created per application session and handed to the
consumers that need search (chat UI, CLI, answering layer). It moves
through the states::

    UNINITIALIZED -> INITIALIZING -> READY | ERROR

``reset()`` returns it to UNINITIALIZED from any state. The corpus is only
ever replaced as a whole, so a search running alongside a re-initialization
sees either the old corpus or the new one, never a mix.

Public methods report failures through result/status objects; they do not
raise.
"""

import logging
import threading
from enum import Enum
from typing import Callable, List, Optional, Sequence, Tuple

from .chunking import OptionsLike, resolve_chunking_options
from .config import CHUNK_TIMEOUT_SECONDS, DEFAULT_MAX_CHUNKS, HISTORY_LIMIT
from .models import (
    InitializationResult,
    ProcessedDocument,
    ProcessingReport,
    RAGStatus,
    RelevantChunkMatch,
    SearchResult,
)
from .pipeline import (
    DocumentLike,
    diagnose_articles,
    process_articles_for_rag,
    round_half_up,
    utc_now_iso,
)
from .search import (
    average_score,
    create_context_for_query,
    find_relevant_chunks,
    unique_articles,
)

logger = logging.getLogger(__name__)

NOT_INITIALIZED_MESSAGE = "No articles loaded. Run initialization first."
NOTHING_RELEVANT_MESSAGE = "No relevant information found in the articles."
EMPTY_QUERY_MESSAGE = "Query is empty."
ALREADY_INITIALIZING = "Initialization already in progress"
CANCELLED_BY_RESET = "Initialization cancelled by reset"

DocumentLoader = Callable[[], Sequence[DocumentLike]]
StatusListener = Callable[[RAGStatus], None]


class EngineState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    ERROR = "error"


class InitializationError(Exception):
    """Raised internally when there is nothing to build a corpus from."""


def aggregate_status(report: ProcessingReport, from_cache: bool = False) -> RAGStatus:
    docs = report.processed_docs
    return RAGStatus(
        total_articles=len(docs),
        total_chunks=sum(d.total_chunks for d in docs),
        is_ready=True,
        from_cache=from_cache,
        last_updated=utc_now_iso(),
        error=None,
        processing_errors=len(report.errors),
        average_chunk_size=round_half_up(sum(d.average_chunk_size for d in docs) / len(docs)),
        average_quality=round_half_up(sum(d.quality_score for d in docs) / len(docs)),
    )


class RagEngine:
    """
    Session-scoped retrieval engine.

    Args:
        loader: Callable returning raw documents; used when ``initialize``
            is called without explicit documents
        chunking_options: Default chunking options
        history_limit: Number of search results kept, newest first
        chunk_timeout: Per-document chunking budget in seconds
    """

    def __init__(
        self,
        loader: Optional[DocumentLoader] = None,
        chunking_options: OptionsLike = None,
        *,
        history_limit: int = HISTORY_LIMIT,
        chunk_timeout: float = CHUNK_TIMEOUT_SECONDS,
    ):
        self._loader = loader
        self._chunking_options = resolve_chunking_options(chunking_options)
        self._history_limit = history_limit
        self._chunk_timeout = chunk_timeout

        self._lock = threading.RLock()
        self._listeners: List[StatusListener] = []
        self._generation = 0

        self._state = EngineState.UNINITIALIZED
        self._corpus: Tuple[ProcessedDocument, ...] = ()
        self._status = RAGStatus()
        self._history: List[SearchResult] = []
        self._last_result: Optional[SearchResult] = None

    # ------------------------------------------------------------------
    # State accessors
    # ------------------------------------------------------------------

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def status(self) -> RAGStatus:
        return self._status

    @property
    def is_ready(self) -> bool:
        return self._status.is_ready

    @property
    def is_processing(self) -> bool:
        return self._state is EngineState.INITIALIZING

    @property
    def processed_articles(self) -> List[ProcessedDocument]:
        return list(self._corpus)

    @property
    def search_history(self) -> List[SearchResult]:
        return list(self._history)

    @property
    def last_search_result(self) -> Optional[SearchResult]:
        return self._last_result

    # ------------------------------------------------------------------
    # Change notification
    # ------------------------------------------------------------------

    def subscribe(self, listener: StatusListener) -> Callable[[], None]:
        """Register a status listener; returns a function that removes it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, status: RAGStatus) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(status)
            except Exception:
                logger.exception("Status listener %r failed", listener)

    # ------------------------------------------------------------------
    # Initialization
    # ------------------------------------------------------------------

    def _begin(self) -> Optional[int]:
        with self._lock:
            if self._state is EngineState.INITIALIZING:
                return None
            self._state = EngineState.INITIALIZING
            self._generation += 1
            return self._generation

    def _is_stale(self, generation: int) -> bool:
        return self._generation != generation

    def _discarded(self) -> InitializationResult:
        logger.warning("Discarding initialization result: engine was reset")
        return InitializationResult(
            success=False, error=CANCELLED_BY_RESET, status=self._status
        )

    def _fail(self, generation: int, message: str) -> InitializationResult:
        with self._lock:
            if self._is_stale(generation):
                return self._discarded()
            status = RAGStatus(error=message)
            self._corpus = ()
            self._status = status
            self._state = EngineState.ERROR
        self._notify(status)
        return InitializationResult(success=False, error=message, status=status)

    def _commit(
        self,
        generation: int,
        report: ProcessingReport,
        from_cache: bool = False,
    ) -> InitializationResult:
        status = aggregate_status(report, from_cache=from_cache)
        with self._lock:
            if self._is_stale(generation):
                return self._discarded()
            self._corpus = tuple(report.processed_docs)
            self._status = status
            self._state = EngineState.READY
        self._notify(status)

        logger.info(
            "✓ RAG ready: %d articles, %d chunks, %d processing errors%s",
            status.total_articles,
            status.total_chunks,
            len(report.errors),
            " (from cache)" if from_cache else "",
        )
        return InitializationResult(
            success=True,
            articles_processed=status.total_articles,
            total_chunks=status.total_chunks,
            errors=len(report.errors),
            from_cache=from_cache,
            status=status,
        )

    def _load_documents(self) -> List[DocumentLike]:
        if self._loader is None:
            raise InitializationError("No document loader configured")
        logger.info("Loading articles from provider")
        return list(self._loader())

    def initialize(
        self,
        documents: Optional[Sequence[DocumentLike]] = None,
        chunking_options: OptionsLike = None,
    ) -> InitializationResult:
        """
        Build the corpus from raw documents.

        Args:
            documents: Raw documents; when omitted the engine's loader is used
            chunking_options: Overrides the engine's default options

        Returns:
            InitializationResult; on failure ``success`` is False and the
            status carries the error message
        """
        generation = self._begin()
        if generation is None:
            logger.warning("initialize() called while already initializing")
            return InitializationResult(
                success=False, error=ALREADY_INITIALIZING, status=self._status
            )

        logger.info("Initializing RAG system")
        try:
            options = (
                resolve_chunking_options(chunking_options)
                if chunking_options is not None
                else self._chunking_options
            )
            raw_docs = list(documents) if documents is not None else self._load_documents()
            if not raw_docs:
                raise InitializationError("No articles found")

            report = process_articles_for_rag(
                raw_docs,
                options,
                timeout=self._chunk_timeout,
                should_cancel=lambda: self._is_stale(generation),
            )
            if report.cancelled or self._is_stale(generation):
                return self._discarded()
            if not report.processed_docs:
                raise InitializationError("No articles could be processed")
        except InitializationError as e:
            logger.error("RAG initialization failed: %s", e)
            return self._fail(generation, str(e))
        except Exception as e:
            logger.exception("RAG initialization failed")
            return self._fail(generation, str(e) or type(e).__name__)

        return self._commit(generation, report)

    def load_from_cache(
        self,
        documents: Sequence[ProcessedDocument],
    ) -> InitializationResult:
        """Install an already-processed corpus (e.g. restored from a cache file)."""
        generation = self._begin()
        if generation is None:
            return InitializationResult(
                success=False, error=ALREADY_INITIALIZING, status=self._status
            )
        if not documents:
            return self._fail(generation, "Cache contains no documents")

        logger.info("Loading %d processed articles from cache", len(documents))
        report = ProcessingReport(processed_docs=list(documents))
        return self._commit(generation, report, from_cache=True)

    def diagnose(self, documents: Sequence[DocumentLike]) -> List[dict]:
        """Per-document chunking diagnostics; does not touch engine state."""
        return diagnose_articles(documents)

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def find_relevant_chunks(
        self,
        query: str,
        max_chunks: int = DEFAULT_MAX_CHUNKS,
    ) -> List[RelevantChunkMatch]:
        return find_relevant_chunks(self._corpus, query, max_chunks)

    def _record(self, result: SearchResult) -> None:
        with self._lock:
            self._history.insert(0, result)
            del self._history[self._history_limit:]

    def search(
        self,
        query: str,
        max_chunks: int = DEFAULT_MAX_CHUNKS,
        save_to_history: bool = True,
    ) -> SearchResult:
        """
        Search the corpus and assemble a context block.

        Returns a failed SearchResult (with ``message``) when the corpus is
        empty, the query is blank or nothing scores high enough, and one with
        ``error`` when something unexpected goes wrong.
        """
        corpus = self._corpus

        try:
            if not corpus:
                result = SearchResult(
                    success=False,
                    query=query,
                    message=NOT_INITIALIZED_MESSAGE,
                    timestamp=utc_now_iso(),
                )
            elif not query.strip():
                result = SearchResult(
                    success=False,
                    query=query,
                    message=EMPTY_QUERY_MESSAGE,
                    searched_articles=len(corpus),
                    timestamp=utc_now_iso(),
                )
            else:
                result = self._search_corpus(corpus, query, max_chunks)
        except Exception as e:
            logger.exception("Search error for query %r", query)
            result = SearchResult(
                success=False,
                query=str(query),
                error=str(e) or type(e).__name__,
                timestamp=utc_now_iso(),
            )

        if save_to_history:
            self._record(result)
        return result

    def _search_corpus(
        self,
        corpus: Sequence[ProcessedDocument],
        query: str,
        max_chunks: int,
    ) -> SearchResult:
        matches = find_relevant_chunks(corpus, query, max_chunks)

        if not matches:
            return SearchResult(
                success=False,
                query=query,
                message=NOTHING_RELEVANT_MESSAGE,
                relevant_chunks=[],
                searched_articles=len(corpus),
                timestamp=utc_now_iso(),
            )

        articles = unique_articles(matches)
        result = SearchResult(
            success=True,
            query=query,
            context=create_context_for_query(matches, query),
            relevant_chunks=matches,
            relevant_articles=articles,
            total_chunks_found=len(matches),
            searched_articles=len(corpus),
            avg_score=average_score(matches),
            timestamp=utc_now_iso(),
        )
        self._last_result = result

        logger.info(
            "✓ Search complete: %d chunks from %d articles",
            len(matches),
            len(articles),
        )
        return result

    # ------------------------------------------------------------------
    # Reset
    # ------------------------------------------------------------------

    def reset(self) -> None:
        """Drop corpus, history and status; cancels an in-flight initialize."""
        logger.info("Resetting RAG system")
        with self._lock:
            self._generation += 1
            self._state = EngineState.UNINITIALIZED
            self._corpus = ()
            self._history = []
            self._last_result = None
            self._status = RAGStatus()
            status = self._status
        self._notify(status)
