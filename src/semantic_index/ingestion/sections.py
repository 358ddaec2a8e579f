"""Section extraction and hash-based change detection.

A *section* is a maximal run of top-level nodes opened by a level-1 or
level-2 heading (deeper headings are ordinary content).  Each section is
hashed over its plain text, and the hashes persisted after an indexing run
are compared with freshly extracted ones to decide whether a document
needs re-embedding at all.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from semantic_index.content import (
    ContentNode,
    SectionKeyAllocator,
    content_hash,
    get_content_schema,
    render_plain_text,
)

logger = logging.getLogger(__name__)

SectionHashes = dict[str, str]


@dataclass(frozen=True)
class Section:
    """A heading-delimited run of top-level nodes.

    Attributes
    ----------
    key:
        Unique key within the document (heading text, or ``__intro_<n>``).
    heading:
        Plain text of the opening heading; ``None`` for headingless sections.
    level:
        Level (1 or 2) of the opening heading.
    content:
        The section's nodes, opening heading included.
    hash:
        Content hash of the newline-joined plain text of ``content``.
    start_node_index / end_node_index:
        Inclusive bounds within ``doc.content``.
    """

    key: str
    heading: str | None
    level: int | None
    content: tuple[ContentNode, ...]
    hash: str
    start_node_index: int
    end_node_index: int


@dataclass
class SectionDiff:
    """Result of comparing persisted section hashes with new sections."""

    changed_sections: list[Section] = field(default_factory=list)
    unchanged_section_keys: list[str] = field(default_factory=list)
    deleted_section_keys: list[str] = field(default_factory=list)
    is_full_reindex: bool = False

    @property
    def has_changes(self) -> bool:
        return self.is_full_reindex or bool(self.changed_sections)


def _section_text(nodes: tuple[ContentNode, ...]) -> str:
    return "\n".join(render_plain_text(node) for node in nodes)


def extract_sections(doc: ContentNode) -> list[Section]:
    """Partition the top-level nodes of *doc* into sections.

    Without any level-1/2 heading the whole document is a single headingless
    section.  Sections whose plain text is blank are not emitted.
    """
    nodes = doc.content
    if not nodes:
        logger.debug("Document has no content nodes")
        return []

    schema = get_content_schema()
    keys = SectionKeyAllocator()
    sections: list[Section] = []

    def close(heading: str | None, level: int | None, run: list[ContentNode], start: int, end: int) -> None:
        members = tuple(run)
        text = _section_text(members)
        if not text.strip():
            return
        sections.append(
            Section(
                key=keys.allocate(heading),
                heading=heading,
                level=level,
                content=members,
                hash=content_hash(text),
                start_node_index=start,
                end_node_index=end,
            )
        )

    if not any(schema.is_section_heading(node) for node in nodes):
        close(None, None, list(nodes), 0, len(nodes) - 1)
        return sections

    heading: str | None = None
    level: int | None = None
    run: list[ContentNode] = []
    start = 0

    for index, node in enumerate(nodes):
        if schema.is_section_heading(node):
            if run:
                close(heading, level, run, start, index - 1)
            heading = render_plain_text(node).strip() or None
            level = node.attrs.get("level")
            run = [node]
            start = index
        else:
            run.append(node)

    if run:
        close(heading, level, run, start, len(nodes) - 1)
    return sections


def sections_to_hash_map(sections: list[Section]) -> SectionHashes:
    """Project *sections* to the ``{key: hash}`` map persisted per document."""
    return {section.key: section.hash for section in sections}


def find_changed_sections(old_hashes: SectionHashes | None, new_sections: list[Section]) -> SectionDiff:
    """Diff freshly extracted sections against the last persisted hashes.

    No previous hashes means a first (full) index.  Any section key that
    disappeared also forces a full reindex, whatever else changed.
    """
    if not old_hashes:
        return SectionDiff(changed_sections=list(new_sections), is_full_reindex=True)

    diff = SectionDiff()
    for section in new_sections:
        if old_hashes.get(section.key) == section.hash:
            diff.unchanged_section_keys.append(section.key)
        else:
            diff.changed_sections.append(section)

    new_keys = {section.key for section in new_sections}
    diff.deleted_section_keys = [key for key in old_hashes if key not in new_keys]
    diff.is_full_reindex = bool(diff.deleted_section_keys)
    return diff
