"""Content tree model, the structured body of one document.

Documents arrive as editor JSON (``doc`` → block nodes → inline text with
marks).  The tree is decoded once per indexing run into frozen
:class:`ContentNode` snapshots; nothing downstream mutates it.
"""

from __future__ import annotations

import hashlib
from collections.abc import Mapping
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from semantic_index.exceptions import ChunkingError, ContentDecodeError


class Mark(BaseModel):
    """Inline formatting applied to a text node (bold, link, …)."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    type: str
    attrs: dict[str, Any] = Field(default_factory=dict)


class ContentNode(BaseModel):
    """One node of the content tree.

    Attributes
    ----------
    type:
        Node type, e.g. ``"doc"``, ``"heading"``, ``"paragraph"``, ``"text"``.
    attrs:
        Node attributes (``level`` for headings, ``language`` for code …).
    content:
        Child nodes, in document order.
    text:
        Literal text for ``text`` nodes.
    marks:
        Inline marks for ``text`` nodes.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    type: str
    attrs: dict[str, Any] = Field(default_factory=dict)
    content: tuple[ContentNode, ...] = ()
    text: str | None = None
    marks: tuple[Mark, ...] = ()

    @classmethod
    def empty_document(cls) -> ContentNode:
        return cls(type="doc")


ContentNode.model_rebuild()


@dataclass(frozen=True)
class ContentSchema:
    """Node-type vocabulary the chunkers and section extractor agree on."""

    content_block_types: frozenset[str]
    section_heading_levels: frozenset[int]
    min_heading_level: int = 1
    max_heading_level: int = 6

    def is_content_block(self, node: ContentNode) -> bool:
        return node.type in self.content_block_types

    def is_section_heading(self, node: ContentNode) -> bool:
        return node.type == "heading" and node.attrs.get("level") in self.section_heading_levels


@lru_cache(maxsize=1)
def get_content_schema() -> ContentSchema:
    """Return the process-wide content schema (built on first call, then reused)."""
    return ContentSchema(
        content_block_types=frozenset(
            {
                "paragraph",
                "bulletList",
                "orderedList",
                "taskList",
                "blockquote",
                "codeBlock",
                "table",
            }
        ),
        section_heading_levels=frozenset({1, 2}),
    )


def decode_content_state(raw: Any) -> ContentNode:
    """Decode a stored content state into a ``doc`` node.

    Accepts an already-decoded :class:`ContentNode`, a mapping, or JSON as
    ``str`` / ``bytes``.  Missing or empty state yields an empty document.

    Raises
    ------
    ContentDecodeError
        When the state is present but is not a valid content tree.
    """
    if isinstance(raw, ContentNode):
        node = raw
    elif raw is None:
        return ContentNode.empty_document()
    else:
        try:
            if isinstance(raw, (bytes, bytearray, str)):
                if not raw.strip():
                    return ContentNode.empty_document()
                node = ContentNode.model_validate_json(raw)
            elif isinstance(raw, Mapping):
                if not raw:
                    return ContentNode.empty_document()
                node = ContentNode.model_validate(dict(raw))
            else:
                raise ContentDecodeError(
                    "Unsupported content state type",
                    details={"type": type(raw).__name__},
                )
        except ValidationError as exc:
            raise ContentDecodeError(
                "Content state is not a valid content tree",
                details={"errors": exc.error_count()},
            ) from exc

    if node.type != "doc":
        return ContentNode(type="doc", content=(node,))
    return node


def heading_level(node: ContentNode) -> int:
    """Return the level of a heading node, defaulting to 1 when unset."""
    schema = get_content_schema()
    level = node.attrs.get("level") or 1
    if isinstance(level, bool) or not isinstance(level, int):
        raise ChunkingError("Heading level is not an integer", details={"level": repr(level)})
    if not schema.min_heading_level <= level <= schema.max_heading_level:
        raise ChunkingError("Heading level out of range", details={"level": level})
    return level


def content_hash(text: str) -> str:
    """SHA-256 hex digest used for section and whole-document change detection."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


class SectionKeyAllocator:
    """Hand out stable, unique section keys in document order.

    Headed sections are keyed by their heading text; a repeated heading gets
    an ordinal suffix (``"Summary"``, ``"Summary (2)"``).  Headingless
    sections are keyed ``__intro_<n>`` where *n* counts headingless sections.
    """

    def __init__(self) -> None:
        self._issued: set[str] = set()
        self._occurrences: dict[str, int] = {}
        self._intro_count = 0

    def allocate(self, heading: str | None) -> str:
        if not heading:
            key = f"__intro_{self._intro_count}"
            self._intro_count += 1
        else:
            count = self._occurrences.get(heading, 0) + 1
            key = heading if count == 1 else f"{heading} ({count})"
            while key in self._issued:
                count += 1
                key = f"{heading} ({count})"
            self._occurrences[heading] = count
        self._issued.add(key)
        return key
