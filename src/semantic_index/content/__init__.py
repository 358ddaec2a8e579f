"""
Content — the document tree consumed by chunking and section hashing.

Public surface
--------------
- :class:`ContentNode` and :func:`decode_content_state` — the immutable tree.
- :func:`get_content_schema` — process-wide node-type vocabulary.
- :func:`render_plain_text`, :func:`render_markup`, :func:`render_block` — renderers.
- :func:`content_hash` and :class:`SectionKeyAllocator` — change-detection helpers.
"""

from semantic_index.content.nodes import (
    ContentNode,
    ContentSchema,
    Mark,
    SectionKeyAllocator,
    content_hash,
    decode_content_state,
    get_content_schema,
    heading_level,
)
from semantic_index.content.rendering import (
    Rendered,
    RenderResult,
    Skip,
    render_block,
    render_markup,
    render_paragraphs,
    render_plain_text,
    strip_markup,
)

__all__ = [
    "ContentNode",
    "ContentSchema",
    "Mark",
    "RenderResult",
    "Rendered",
    "SectionKeyAllocator",
    "Skip",
    "content_hash",
    "decode_content_state",
    "get_content_schema",
    "heading_level",
    "render_block",
    "render_markup",
    "render_paragraphs",
    "render_plain_text",
    "strip_markup",
]
