# tests/test_engine.py

"""
Tests for the RagEngine: initialization lifecycle, search results,
history, change notification and reset.
"""

from src.cellito_rag.engine import (
    ALREADY_INITIALIZING,
    CANCELLED_BY_RESET,
    EMPTY_QUERY_MESSAGE,
    NOTHING_RELEVANT_MESSAGE,
    NOT_INITIALIZED_MESSAGE,
    EngineState,
    RagEngine,
)

POLICY_TEXT = (
    "Refunds are processed within 30 days. Contact support for help. "
    "Refunds require a receipt."
)
SHIPPING_TEXT = (
    "Orders ship within two business days. Shipping is free above fifty dollars. "
    "Express shipping costs extra."
)


def policy_doc():
    return {"fileName": "policy.txt", "text": POLICY_TEXT}


def shipping_doc():
    return {"fileName": "shipping.txt", "text": SHIPPING_TEXT}


def ready_engine(**kwargs) -> RagEngine:
    engine = RagEngine(**kwargs)
    result = engine.initialize([policy_doc(), shipping_doc()])
    assert result.success
    return engine


# --- initialization ----------------------------------------------------------


def test_new_engine_is_uninitialized():
    engine = RagEngine()
    assert engine.state is EngineState.UNINITIALIZED
    assert engine.is_ready is False
    assert engine.is_processing is False
    assert engine.processed_articles == []


def test_initialize_builds_corpus_and_status():
    engine = RagEngine()
    result = engine.initialize([policy_doc(), shipping_doc(), {"fileName": "x", "text": "short"}])

    assert result.success is True
    assert result.articles_processed == 2
    assert result.errors == 1
    assert result.from_cache is False

    status = engine.status
    assert engine.state is EngineState.READY
    assert status.is_ready is True
    assert status.total_articles == 2
    assert status.total_chunks == 2
    assert status.processing_errors == 1
    assert status.error is None
    assert status.last_updated


def test_initialize_uses_loader_when_no_documents_given():
    engine = RagEngine(loader=lambda: [policy_doc()])
    result = engine.initialize()

    assert result.success
    assert [d.file_name for d in engine.processed_articles] == ["policy.txt"]


def test_initialize_without_documents_or_loader_fails():
    engine = RagEngine()
    result = engine.initialize()

    assert result.success is False
    assert result.error == "No document loader configured"
    assert engine.state is EngineState.ERROR


def test_initialize_with_empty_list_fails():
    engine = RagEngine()
    result = engine.initialize([])

    assert result.success is False
    assert engine.status.error == "No articles found"
    assert engine.is_ready is False


def test_initialize_when_nothing_survives_processing_fails():
    engine = RagEngine()
    result = engine.initialize([{"fileName": "x", "text": "short"}])

    assert result.success is False
    assert result.error == "No articles could be processed"


def test_loader_exception_is_reported_not_raised():
    def broken_loader():
        raise RuntimeError("provider unavailable")

    engine = RagEngine(loader=broken_loader)
    result = engine.initialize()

    assert result.success is False
    assert result.error == "provider unavailable"
    assert engine.state is EngineState.ERROR


def test_failed_reinitialization_clears_corpus():
    engine = ready_engine()
    engine.initialize([])

    assert engine.processed_articles == []
    assert engine.search("refund").message == NOT_INITIALIZED_MESSAGE


def test_initialize_while_initializing_is_rejected():
    inner = {}

    def loader():
        inner["result"] = engine.initialize([policy_doc()])
        return [policy_doc()]

    engine = RagEngine(loader=loader)
    outer = engine.initialize()

    assert inner["result"].success is False
    assert inner["result"].error == ALREADY_INITIALIZING
    assert outer.success is True


def test_reset_during_initialize_discards_result():
    def loader():
        engine.reset()
        return [policy_doc()]

    engine = RagEngine(loader=loader)
    result = engine.initialize()

    assert result.success is False
    assert result.error == CANCELLED_BY_RESET
    assert engine.state is EngineState.UNINITIALIZED
    assert engine.processed_articles == []


def test_load_from_cache_marks_status():
    source = ready_engine()
    engine = RagEngine()

    result = engine.load_from_cache(source.processed_articles)

    assert result.success is True
    assert result.from_cache is True
    assert engine.status.from_cache is True
    assert engine.status.total_articles == 2


def test_load_from_empty_cache_fails():
    engine = RagEngine()
    result = engine.load_from_cache([])
    assert result.success is False
    assert engine.state is EngineState.ERROR


# --- search ------------------------------------------------------------------


def test_search_before_initialize_fails_and_is_recorded():
    engine = RagEngine()
    result = engine.search("refund")

    assert result.success is False
    assert result.message == NOT_INITIALIZED_MESSAGE
    assert len(engine.search_history) == 1
    assert engine.last_search_result is None


def test_end_to_end_policy_search():
    engine = RagEngine()
    engine.initialize([policy_doc()])

    result = engine.search("refund")

    assert result.success is True
    assert result.relevant_articles == ["policy.txt"]
    assert result.total_chunks_found == 1
    assert result.searched_articles == 1
    assert result.avg_score == 130
    assert result.context.startswith('RELEVANT CONTEXT FOR: "refund"')
    assert "ARTICLE: policy.txt" in result.context
    assert engine.last_search_result is result


def test_search_picks_the_relevant_document():
    engine = ready_engine()
    result = engine.search("shipping")

    assert result.success is True
    assert result.relevant_articles == ["shipping.txt"]


def test_search_with_nothing_relevant():
    engine = ready_engine()
    result = engine.search("xyz")

    assert result.success is False
    assert result.message == NOTHING_RELEVANT_MESSAGE
    assert result.relevant_chunks == []
    assert result.searched_articles == 2
    assert engine.last_search_result is None


def test_blank_query_is_rejected():
    engine = ready_engine()
    result = engine.search("   ")

    assert result.success is False
    assert result.message == EMPTY_QUERY_MESSAGE


def test_search_error_is_returned_as_result(monkeypatch):
    import src.cellito_rag.engine as engine_mod

    def broken(*args, **kwargs):
        raise RuntimeError("index corrupted")

    engine = ready_engine()
    monkeypatch.setattr(engine_mod, "find_relevant_chunks", broken)

    result = engine.search("refund")
    assert result.success is False
    assert result.error == "index corrupted"


def test_history_is_newest_first_and_capped():
    engine = ready_engine()
    for i in range(60):
        engine.search(f"q{i}")

    history = engine.search_history
    assert len(history) == 50
    assert history[0].query == "q59"
    assert history[-1].query == "q10"


def test_custom_history_limit():
    engine = ready_engine(history_limit=3)
    for i in range(5):
        engine.search(f"refund {i}")
    assert [r.query for r in engine.search_history] == ["refund 4", "refund 3", "refund 2"]


def test_search_can_skip_history():
    engine = ready_engine()
    engine.search("refund", save_to_history=False)
    assert engine.search_history == []


def test_history_is_a_copy():
    engine = ready_engine()
    engine.search("refund")
    engine.search_history.clear()
    assert len(engine.search_history) == 1


# --- notification and reset --------------------------------------------------


def test_listeners_receive_status_changes():
    engine = RagEngine()
    seen = []
    unsubscribe = engine.subscribe(seen.append)

    engine.initialize([policy_doc()])
    assert seen[-1].is_ready is True

    unsubscribe()
    engine.reset()
    assert len(seen) == 1


def test_failing_listener_does_not_break_engine():
    engine = RagEngine()

    def bad_listener(status):
        raise ValueError("listener bug")

    seen = []
    engine.subscribe(bad_listener)
    engine.subscribe(seen.append)

    result = engine.initialize([policy_doc()])

    assert result.success is True
    assert len(seen) == 1


def test_reset_clears_everything():
    engine = ready_engine()
    engine.search("refund")

    engine.reset()

    assert engine.state is EngineState.UNINITIALIZED
    assert engine.processed_articles == []
    assert engine.search_history == []
    assert engine.last_search_result is None
    assert engine.status.is_ready is False
    assert engine.status.total_articles == 0


def test_diagnose_does_not_change_state():
    engine = RagEngine()
    reports = engine.diagnose([policy_doc()])

    assert reports[0]["status"] == "ok"
    assert engine.state is EngineState.UNINITIALIZED
