"""Answer Generation Module

Answers user questions with an OpenAI-compatible chat model, grounded in the
context block retrieved by the RAG engine.

Key features:
  - Retrieval first: when nothing relevant is found, a fixed reply is
    returned without calling the model
  - Cellito system prompt built around the retrieved context
  - Exponential backoff retry logic for rate limiting
  - Fake answers mode for testing without API calls
  - Confidence estimate derived from retrieval scores

Environment variables:
  OPENAI_API_KEY: API key for the chat endpoint (defaults to None)
  OPENAI_BASE_URL: Alternative OpenAI-compatible endpoint (defaults to OpenAI)
  CELLITO_CHAT_MODEL: Chat model name (default: gpt-4o-mini)
  USE_FAKE_ANSWERS: Set to '1' to return canned answers for testing
"""

from typing import Dict, List, Optional, Sequence
import os
import time
import logging

import openai
from openai import OpenAI

from .config import DEFAULT_MAX_CHUNKS
from .engine import RagEngine
from .models import AnswerResult, SearchResult
from .pipeline import round_half_up

logger = logging.getLogger(__name__)

client: Optional[OpenAI] = None
USE_FAKE_ANSWERS = os.getenv("USE_FAKE_ANSWERS", "0") == "1"

CHAT_MODEL = os.getenv("CELLITO_CHAT_MODEL", "gpt-4o-mini")
MAX_TOKENS = 1500
TEMPERATURE = 0.3

# Only the last exchanges are sent to keep the prompt small
HISTORY_MESSAGES = 2

NO_ANSWER = (
    "I could not find relevant information to answer your question. "
    "Could you rephrase it or be more specific?"
)

SYSTEM_PROMPT = """You are Cellito, the customer experience expert of the company.
Give PRECISE, CONSISTENT and SPECIFIC answers using ONLY the information in
the KNOWLEDGE BASE block below.

RULES:
- Ignore spelling mistakes in the question and answer anyway.
- Always answer in the language of the question, translating knowledge base
  content when needed.
- If the answer is not in the knowledge base, say so and suggest a related
  question you can answer.
1. Never invent data, prices, deadlines or plan names.
2. When asked, compare plans and services using the available information.
3. Always include prices when talking about plans.
4. Keep answers short and clear.
5. Give the same answer to identical questions.

---
KNOWLEDGE BASE:
{context}
---
"""


def get_client() -> OpenAI:
    """Create the chat client on first use."""
    global client
    if client is None:
        client = OpenAI(
            api_key=os.getenv("OPENAI_API_KEY"),
            base_url=os.getenv("OPENAI_BASE_URL") or None,
        )
    return client


def estimate_confidence(avg_score: float) -> int:
    """Map an average retrieval score to a 20-95 confidence."""
    return min(95, max(20, round_half_up(avg_score * 0.8)))


def build_messages(
    query: str,
    context: str,
    history: Optional[Sequence[Dict[str, str]]] = None,
) -> List[Dict[str, str]]:
    """System prompt with context, recent non-system history, then the question."""
    recent = [
        {"role": m["role"], "content": m["content"]}
        for m in (history or [])
        if m.get("role") != "system"
    ][-HISTORY_MESSAGES:]

    return [
        {"role": "system", "content": SYSTEM_PROMPT.format(context=context)},
        *recent,
        {"role": "user", "content": query},
    ]


def complete_chat(
    messages: List[Dict[str, str]],
    model: str = CHAT_MODEL,
) -> str:
    """
    Send a chat completion request.

    Raises:
        Exception: On API errors (callers decide whether to retry)
    """
    if USE_FAKE_ANSWERS:
        logger.warning(
            "USE_FAKE_ANSWERS=1 set; returning a canned answer instead of "
            "calling the chat model."
        )
        return "This is a placeholder answer generated without calling the model."

    logger.debug(
        "Calling chat completions API: model=%s, messages=%d", model, len(messages)
    )
    response = get_client().chat.completions.create(
        model=model,
        messages=messages,
        max_tokens=MAX_TOKENS,
        temperature=TEMPERATURE,
        top_p=0.95,
        frequency_penalty=0.2,
        presence_penalty=0.1,
        seed=42,
    )
    return response.choices[0].message.content or ""


def complete_chat_with_retry(
    messages: List[Dict[str, str]],
    model: str = CHAT_MODEL,
    max_retries: int = 5,
) -> str:
    """
    Wraps complete_chat to handle rate limiting with retries.
    Retries up to `max_retries` times with exponential backoff.
    """
    retries = 0
    while True:
        try:
            return complete_chat(messages, model=model)
        except openai.RateLimitError as e:
            retries += 1
            # Quota errors will not clear up by waiting
            if getattr(e, "code", None) == "insufficient_quota" or "insufficient_quota" in str(e):
                logger.error("Insufficient quota – cannot retry. Error: %s", e)
                raise

            if retries > max_retries:
                logger.error(
                    "Max retries exceeded (%d). Last error: %s",
                    max_retries,
                    e,
                )
                raise

            wait_time = 2 ** retries
            logger.warning(
                "Rate limit error from chat API (attempt %d/%d). "
                "Sleeping for %d seconds before retry. Error: %s",
                retries,
                max_retries,
                wait_time,
                e,
            )
            time.sleep(wait_time)


def answer_from_result(
    result: SearchResult,
    history: Optional[Sequence[Dict[str, str]]] = None,
    model: str = CHAT_MODEL,
) -> AnswerResult:
    """Turn a search result into an answer, calling the model only when grounded."""
    if not result.success or not result.relevant_chunks:
        logger.info("No relevant context for %r; answering without the model", result.query)
        return AnswerResult(
            content=NO_ANSWER,
            has_relevant_docs=False,
            confidence=0,
            query_info={
                "chunks_found": 0,
                "searched_articles": result.searched_articles,
                "search_message": result.message or result.error,
            },
        )

    avg_score = result.avg_score or 0
    messages = build_messages(result.query, result.context or "", history)
    content = complete_chat_with_retry(messages, model=model)

    return AnswerResult(
        content=content,
        sources=list(result.relevant_articles or []),
        has_relevant_docs=True,
        confidence=estimate_confidence(avg_score),
        query_info={
            "chunks_found": result.total_chunks_found,
            "searched_articles": result.searched_articles,
            "avg_relevance_score": avg_score,
        },
    )


def answer_question(
    engine: RagEngine,
    query: str,
    history: Optional[Sequence[Dict[str, str]]] = None,
    max_chunks: int = DEFAULT_MAX_CHUNKS,
    model: str = CHAT_MODEL,
) -> AnswerResult:
    """
    Answer a question from the engine's knowledge base.

    Args:
        engine: Initialized RAG engine
        query: User question
        history: Previous chat messages ({"role", "content"} dicts)
        max_chunks: Number of passages retrieved as context
        model: Chat model name

    Returns:
        AnswerResult with the answer text and cited source articles

    Raises:
        Exception: On chat API errors after retries
    """
    result = engine.search(query, max_chunks=max_chunks)
    try:
        return answer_from_result(result, history=history, model=model)
    except Exception:
        logger.exception("Failed to generate answer for %r", query)
        raise
