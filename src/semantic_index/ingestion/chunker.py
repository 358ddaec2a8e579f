"""Text chunking strategies.

Three interchangeable chunkers turn a document into embedding-sized chunks:

- :func:`generate_paragraph_chunks` — paragraph-granular, every chunk
  prefixed with its heading breadcrumb (the default).
- :func:`generate_heading_aware_chunks` — heading blocks packed up to a
  size target, with a configurable overlap between consecutive chunks.
- :func:`generate_simple_chunks` — plain-text fallback for content the
  structural chunkers cannot handle.

All three are pure: they never mutate the input, are deterministic, and
number their chunks ``0..n-1`` without gaps.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Literal

from semantic_index.content import (
    ContentNode,
    Skip,
    heading_level,
    render_block,
    render_markup,
    render_paragraphs,
    render_plain_text,
    strip_markup,
)
from semantic_index.exceptions import ChunkingError
from semantic_index.ingestion.models import BlockChunk, ParagraphChunk
from semantic_index.ingestion.sections import extract_sections

logger = logging.getLogger(__name__)

_PARAGRAPH_SPLIT_RE = re.compile(r"\n\s*\n")
_SENTENCE_SPLIT_RE = re.compile(r"(?<=[.?!])\s+")
_NOISE_MAX_LENGTH = 20

ChunkStrategy = Literal["paragraph", "heading"]


@dataclass(frozen=True)
class _Item:
    kind: Literal["heading", "content"]
    markup: str
    plain_text: str
    level: int | None = None
    section_key: str | None = None


def _node_section_keys(doc: ContentNode) -> dict[int, str]:
    """Map top-level node positions to the key of the section holding them."""
    return {
        index: section.key
        for section in extract_sections(doc)
        for index in range(section.start_node_index, section.end_node_index + 1)
    }


def _extract_items(doc: ContentNode) -> list[_Item]:
    """Flatten the top-level blocks of *doc* into heading / content items."""
    if doc.type != "doc":
        raise ChunkingError("Chunkers expect a 'doc' root node", details={"type": doc.type})

    section_keys = _node_section_keys(doc)
    items: list[_Item] = []

    for index, node in enumerate(doc.content):
        section_key = section_keys.get(index)
        if node.type == "heading":
            text = render_plain_text(node).strip()
            if text:
                items.append(
                    _Item(
                        kind="heading",
                        markup=render_markup(node),
                        plain_text=text,
                        level=heading_level(node),
                        section_key=section_key,
                    )
                )
            continue

        result = render_block(node)
        if isinstance(result, Skip):
            logger.debug("Skipping %s node: %s", node.type, result.reason)
            continue
        items.append(
            _Item(
                kind="content",
                markup=result.markup,
                plain_text=result.plain_text,
                section_key=section_key,
            )
        )
    return items


def _measure(items: list[_Item]) -> int:
    return len(strip_markup("\n".join(item.markup for item in items)))


# ---------------------------------------------------------------------------
# Paragraph mode
# ---------------------------------------------------------------------------


def generate_paragraph_chunks(doc: ContentNode, min_chunk_size: int = 50) -> list[ParagraphChunk]:
    """Split *doc* into paragraph-granular chunks with heading breadcrumbs.

    Small blocks are packed together until they reach ``3 × min_chunk_size``;
    a block of ``2 × min_chunk_size`` or more always stands alone.  Chunks
    shorter than *min_chunk_size* are dropped.

    Parameters
    ----------
    doc:
        Root ``doc`` node.
    min_chunk_size:
        Minimum stripped length of an emitted chunk.

    Returns
    -------
    list[ParagraphChunk]
        Chunks in document order.
    """
    chunks: list[ParagraphChunk] = []
    stack: list[tuple[str, int]] = []
    pending: list[_Item] = []

    def flush() -> None:
        if not pending:
            return
        markup = "\n".join(item.markup for item in pending)
        if len(strip_markup(markup)) >= min_chunk_size:
            header_path = [text for text, _ in stack]
            breadcrumb = " > ".join(header_path)
            chunks.append(
                ParagraphChunk(
                    content=f"{breadcrumb}\n\n{markup}" if breadcrumb else markup,
                    header_breadcrumb=breadcrumb,
                    header_path=header_path,
                    header_levels=[level for _, level in stack],
                    index=len(chunks),
                    section_key=pending[0].section_key,
                )
            )
        pending.clear()

    for item in _extract_items(doc):
        if item.kind == "heading":
            flush()
            while stack and stack[-1][1] >= item.level:
                stack.pop()
            stack.append((item.plain_text, item.level))
            continue

        if len(item.plain_text) >= 2 * min_chunk_size:
            flush()
            pending.append(item)
            flush()
            continue

        pending.append(item)
        if _measure(pending) >= 3 * min_chunk_size:
            flush()

    flush()
    return chunks


# ---------------------------------------------------------------------------
# Heading-aware windowed mode
# ---------------------------------------------------------------------------


def _overlap_tail(items: list[_Item], overlap_size: int) -> list[_Item]:
    """Return the trailing items whose combined stripped length fits *overlap_size*."""
    tail: list[_Item] = []
    total = 0
    for item in reversed(items):
        length = len(strip_markup(item.markup))
        if total + length > overlap_size:
            break
        tail.insert(0, item)
        total += length
    return tail


def _check_window(max_chunk_size: int, overlap_size: int) -> None:
    if max_chunk_size <= 0:
        raise ValueError(f"max_chunk_size must be positive, got {max_chunk_size}")
    if not 0 <= overlap_size < max_chunk_size:
        raise ValueError(
            f"overlap_size ({overlap_size}) must be >= 0 and < max_chunk_size ({max_chunk_size})"
        )


def generate_heading_aware_chunks(
    doc: ContentNode,
    max_chunk_size: int = 500,
    min_chunk_size: int = 50,
    overlap_size: int = 100,
) -> list[BlockChunk]:
    """Pack heading blocks into chunks of at most ~*max_chunk_size* characters.

    Each heading starts a fresh chunk seeded with the heading itself and
    drops any overlap carried from the previous section.  Within a section,
    a chunk that would outgrow *max_chunk_size* is flushed and the next one
    starts from the trailing items of the flushed chunk (up to
    *overlap_size* characters) followed by the new item.
    """
    _check_window(max_chunk_size, overlap_size)

    chunks: list[BlockChunk] = []
    heading: str | None = None
    level: int | None = None
    carried: list[_Item] = []
    current: list[_Item] = []

    def flush() -> None:
        if not current:
            return
        body = carried + current
        if _measure(body) >= min_chunk_size:
            chunks.append(
                BlockChunk(
                    content="\n".join(item.markup for item in body),
                    heading=heading,
                    level=level,
                    index=len(chunks),
                    section_key=current[-1].section_key,
                )
            )
        current.clear()

    for item in _extract_items(doc):
        if item.kind == "heading":
            flush()
            carried.clear()
            heading, level = item.plain_text, item.level
            current.append(item)
            continue

        combined = _measure(carried) + _measure(current) + len(item.plain_text)
        if combined > max_chunk_size and current:
            tail = _overlap_tail(carried + current, overlap_size)
            flush()
            carried[:] = tail
        current.append(item)

    flush()
    return chunks


# ---------------------------------------------------------------------------
# Plain-text fallback
# ---------------------------------------------------------------------------


def generate_simple_chunks(text: str, max_chunk_size: int = 300) -> list[BlockChunk]:
    """Split plain *text* on blank lines, packing long paragraphs by sentence.

    Fragments of 20 characters or fewer are discarded as noise.
    """
    pieces: list[str] = []

    for paragraph in _PARAGRAPH_SPLIT_RE.split(text):
        if not paragraph.strip():
            continue
        if len(paragraph) <= max_chunk_size:
            pieces.append(paragraph.strip())
            continue

        current = ""
        for sentence in _SENTENCE_SPLIT_RE.split(paragraph):
            if len(f"{current} {sentence}") <= max_chunk_size:
                current = f"{current} {sentence}".strip()
            else:
                if current:
                    pieces.append(current)
                current = sentence.strip()
        if current:
            pieces.append(current)

    kept = [piece for piece in pieces if len(piece) > _NOISE_MAX_LENGTH]
    return [BlockChunk(content=piece, index=index) for index, piece in enumerate(kept)]


# ---------------------------------------------------------------------------
# Chunking policy
# ---------------------------------------------------------------------------


def chunk_document(
    doc: ContentNode,
    *,
    strategy: ChunkStrategy = "paragraph",
    title: str = "",
    max_chunk_size: int = 500,
    min_chunk_size: int = 50,
    overlap_size: int = 100,
    fallback_max_chunk_size: int = 300,
) -> list[BlockChunk] | list[ParagraphChunk]:
    """Chunk *doc* with the structural *strategy*, degrading to plain text on failure.

    A structural chunker error is logged and never propagated; the document
    is then chunked from its title and plain-text rendering instead.  Invalid
    size parameters are configuration errors and raise before chunking.
    """
    if strategy not in ("paragraph", "heading"):
        raise ValueError(f"Unsupported chunk strategy: {strategy!r}")
    if strategy == "heading":
        _check_window(max_chunk_size, overlap_size)

    try:
        if strategy == "heading":
            return generate_heading_aware_chunks(
                doc,
                max_chunk_size=max_chunk_size,
                min_chunk_size=min_chunk_size,
                overlap_size=overlap_size,
            )
        return generate_paragraph_chunks(doc, min_chunk_size=min_chunk_size)
    except Exception:
        logger.warning("Structural chunking failed, falling back to simple chunking", exc_info=True)

    text = render_paragraphs(doc)
    full_text = f"{title}\n\n{text}" if title else text
    return generate_simple_chunks(full_text, max_chunk_size=fallback_max_chunk_size)
