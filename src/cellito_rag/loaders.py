"""Data Loader Module

Loads raw documents for the RAG pipeline from JSON exports.

Two input shapes are supported:
  - documents already in pipeline form: ``{"fileName": ..., "text": ...}``
  - items exported from the portal's ArticlesList, which are mapped to
    documents by combining title, summary, normalized body and tags
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .config import CACHE_SLUG
from .transformers import extract_text_from_content

logger = logging.getLogger(__name__)

PUBLISHED = "Published"


def load_raw_documents(path: str | Path) -> List[Dict[str, Any]]:
    """Load raw documents from a JSON file.

    Supports flexible input formats:
      - Direct list of documents: [{...}, {...}, ...]
      - Wrapped in 'documents' key: {"documents": [...]}
      - Wrapped in 'results' key: {"results": [...]}
      - Wrapped in 'value' key (REST list export): {"value": [...]}

    Args:
        path: File path to JSON file containing raw documents

    Returns:
        List of raw document dictionaries

    Raises:
        FileNotFoundError: If file does not exist
        json.JSONDecodeError: If file is not valid JSON
    """
    path = Path(path)
    with path.open("r", encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, list):
        return data
    # fall back if wrapped
    return data.get("documents") or data.get("results") or data.get("value") or []


def _tags_text(tags: Any) -> str:
    if not tags:
        return ""
    if isinstance(tags, str):
        return tags
    return json.dumps(tags, ensure_ascii=False)


def article_to_raw_document(item: Dict[str, Any]) -> Dict[str, Any]:
    """
    Map an ArticlesList item to a raw document.

    The searchable text is the title, summary, normalized article content
    and tags, joined by blank lines (empty parts are left out). The file
    name is virtual: ``<Title>.article``.
    """
    title = item.get("Title") or "Untitled"
    body = extract_text_from_content(item.get("ArticleContent") or "")

    full_text = "\n\n".join(
        part for part in (
            item.get("Title") or "",
            item.get("Summary") or "",
            body,
            _tags_text(item.get("Tags")),
        )
        if part
    )

    return {
        "id": item.get("Id"),
        "fileName": f"{title}.article",
        "title": title,
        "articleSlug": item.get("ArticleSlug") or "",
        "category": item.get("Category") or "",
        "subcategory": item.get("Subcategory") or "",
        "type": item.get("ArticleType") or "",
        "level": item.get("ArticleLevel") or "",
        "tags": item.get("Tags") or "",
        "summary": item.get("Summary") or "",
        "readTime": item.get("ReadTime") or "",
        "text": full_text,
        "textLength": len(full_text),
        "extension": "article",
        "created": item.get("Created"),
        "modified": item.get("Modified") or item.get("LastModifiedContentDate"),
    }


def is_searchable_article(item: Dict[str, Any]) -> bool:
    """Published articles only, and never the stored corpus cache itself."""
    if item.get("ArticleSlug") == CACHE_SLUG:
        return False
    status = item.get("ArticleStatus")
    return status is None or status == PUBLISHED


def load_articles(path: str | Path) -> Tuple[List[Dict[str, Any]], Dict[str, Any]]:
    """
    Load an ArticlesList export.

    Returns:
        (documents, snapshot): raw documents for the searchable items, and
        the ``articles_metadata`` snapshot used to validate a corpus cache
    """
    items = load_raw_documents(path)
    documents = [article_to_raw_document(i) for i in items if is_searchable_article(i)]
    logger.info(
        "✓ Loaded %d searchable articles (%d items in export)",
        len(documents),
        len(items),
    )
    return documents, articles_metadata(items)


def _parse_date(value: Any) -> Optional[datetime]:
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def articles_metadata(items: List[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Summarize the current article set for cache validation.

    Returns:
        Dict with ``count``, ``lastModified`` (ISO string or None) and the
        sorted ``articleIds``
    """
    searchable = [i for i in items if is_searchable_article(i)]

    latest: Optional[datetime] = None
    for item in searchable:
        modified = _parse_date(
            item.get("LastModifiedContentDate") or item.get("Modified") or item.get("Created")
        )
        if modified and (latest is None or modified > latest):
            latest = modified

    # numeric ids sort numerically, anything else after them as text
    ids = sorted(
        (i.get("Id") for i in searchable if i.get("Id") is not None),
        key=lambda v: (0, v, "") if isinstance(v, (int, float)) else (1, 0, str(v)),
    )

    return {
        "count": len(searchable),
        "lastModified": latest.isoformat() if latest else None,
        "articleIds": ids,
    }
