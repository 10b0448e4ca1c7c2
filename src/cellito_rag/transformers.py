"""Text Normalization Module

Turns the heterogeneous content stored for an article into plain text
suitable for chunking and keyword extraction.

Stored content is either:
  - an HTML/markup string, or
  - a serialized JSON object produced by the page builder, with a title
    field and a nested ``content``/``body``/``text`` structure

Key responsibilities:
  - Strip markup and collapse whitespace
  - Walk nested content blocks and concatenate their text, title first
  - Degrade to plain markup stripping on anything that is not valid JSON
"""

import html
import json
import re
from dataclasses import dataclass
from typing import Any, List, Union

import logging

logger = logging.getLogger(__name__)

# Regex patterns (define at module level for performance)
# A tag opens with a letter, / ! or ?; a bare '<' in prose is kept
TAG_RE = re.compile(r'<[A-Za-z/!?][^>]*>')
WHITESPACE_RE = re.compile(r'\s+')
BLANK_LINES_RE = re.compile(r'\n\s*\n')

TITLE_FIELDS = ("title", "header", "heading")
BODY_FIELDS = ("content", "body")
TEXT_FIELDS = ("text", "content", "value", "innerHTML", "innerText")


@dataclass
class TitleBlock:
    value: Any


@dataclass
class ContentBlock:
    value: Any


@dataclass
class RawText:
    value: Any


Block = Union[TitleBlock, ContentBlock, RawText]


def _present(value: Any) -> bool:
    """Containers count as present even when empty; scalars by truthiness."""
    if isinstance(value, (dict, list)):
        return True
    return bool(value)


def strip_html_tags(text: Any) -> str:
    """
    Reduce a markup string to its text content.

    Steps:
    1. Remove tags
    2. Decode HTML entities (&amp; → &, &nbsp; → space, ...)
    3. Collapse whitespace runs and blank lines
    4. Trim

    Non-string input yields an empty string.
    """
    if not text or not isinstance(text, str):
        return ""

    text = TAG_RE.sub("", text)
    text = html.unescape(text)
    text = WHITESPACE_RE.sub(" ", text)
    text = BLANK_LINES_RE.sub("\n", text)

    return text.strip()


def extract_content_text(content: Any) -> str:
    """
    Recursively extract text from a nested content value.

    - strings are tag-stripped
    - lists are visited item by item and joined with newlines
    - dicts first try the canonical text fields; when none of them yields
      text, every property value is visited instead
    - anything else contributes nothing
    """
    if not _present(content):
        return ""

    if isinstance(content, str):
        return strip_html_tags(content)

    if isinstance(content, list):
        return "\n".join(extract_content_text(item) for item in content)

    if isinstance(content, dict):
        text = ""
        for field in TEXT_FIELDS:
            if _present(content.get(field)):
                text += strip_html_tags(extract_content_text(content[field])) + "\n"

        if not text.strip():
            # Unknown block shape: fall back to every value it carries
            for value in content.values():
                if isinstance(value, str) and value.strip():
                    text += strip_html_tags(value) + "\n"
                elif isinstance(value, (dict, list)):
                    text += extract_content_text(value) + "\n"

        return text

    return ""


def parse_blocks(document: dict) -> List[Block]:
    """Split a page-builder document into its title and body blocks."""
    blocks: List[Block] = []

    title = next(
        (document[f] for f in TITLE_FIELDS if _present(document.get(f))),
        None,
    )
    if title is not None:
        blocks.append(TitleBlock(title))

    body = next(
        (document[f] for f in BODY_FIELDS if _present(document.get(f))),
        None,
    )
    if body is not None:
        blocks.append(ContentBlock(body))
    elif _present(document.get("text")):
        blocks.append(RawText(document["text"]))

    return blocks


def render_block(block: Block) -> str:
    if isinstance(block, TitleBlock):
        return strip_html_tags(block.value) + "\n\n"
    if isinstance(block, ContentBlock):
        return strip_html_tags(extract_content_text(block.value))
    return strip_html_tags(block.value)


def extract_text_from_content(raw_content: Any) -> str:
    """
    Normalize stored article content to plain text.

    Args:
        raw_content: HTML string or serialized JSON document

    Returns:
        Plain text, title first when the content is a JSON document.
        Never raises; returns an empty string for unusable input.
    """
    if not raw_content or not isinstance(raw_content, str):
        return ""

    try:
        parsed = json.loads(raw_content)
    except ValueError:
        return strip_html_tags(raw_content)

    if isinstance(parsed, dict):
        return "".join(render_block(b) for b in parse_blocks(parsed)).strip()

    if isinstance(parsed, list):
        return strip_html_tags(extract_content_text(parsed))

    if isinstance(parsed, str):
        return strip_html_tags(parsed)

    # numbers, booleans, null: the raw text is already what we want
    logger.debug("Content parsed as JSON scalar; using raw text")
    return strip_html_tags(raw_content)
