"""Plain-text and HTML renderers for the content tree.

Both renderers are pure functions of a :class:`ContentNode`.  The HTML
form is what gets embedded and shown to an LLM (it keeps lists, emphasis
and code readable); the plain-text form is what gets hashed and measured.

:func:`render_block` wraps both for a single top-level block and reports
blocks it cannot use as a :class:`Skip` instead of raising, so one odd
node never aborts a whole indexing run.
"""

from __future__ import annotations

import html
import re
from dataclasses import dataclass

from semantic_index.content.nodes import ContentNode, Mark, get_content_schema

_TAG_RE = re.compile(r"<[^>]*>")
_WS_RE = re.compile(r"\s+")

_MARK_TAGS = {
    "bold": "strong",
    "italic": "em",
    "code": "code",
    "strike": "s",
    "underline": "u",
}


@dataclass(frozen=True)
class Rendered:
    """A block that rendered to usable text."""

    markup: str
    plain_text: str


@dataclass(frozen=True)
class Skip:
    """A block that produced nothing worth indexing."""

    reason: str


RenderResult = Rendered | Skip


# ---------------------------------------------------------------------------
# Plain text
# ---------------------------------------------------------------------------


def render_plain_text(node: ContentNode) -> str:
    """Render *node* to plain text; blocks are separated by newlines."""
    if node.type == "text":
        return node.text or ""
    if node.type == "hardBreak":
        return "\n"
    if node.type in ("paragraph", "heading", "codeBlock"):
        return "".join(render_plain_text(child) for child in node.content)
    if node.type == "tableRow":
        return " | ".join(render_plain_text(child) for child in node.content)
    if node.type == "horizontalRule":
        return ""
    if node.content:
        return "\n".join(render_plain_text(child) for child in node.content)
    return node.text or ""


def render_paragraphs(doc: ContentNode) -> str:
    """Render a document with blank lines between top-level blocks."""
    parts = (render_plain_text(node).strip() for node in doc.content)
    return "\n\n".join(part for part in parts if part)


# ---------------------------------------------------------------------------
# HTML
# ---------------------------------------------------------------------------


def _escape(text: str) -> str:
    return html.escape(text, quote=True)


def _apply_mark(content: str, mark: Mark) -> str:
    if mark.type == "link":
        href = mark.attrs.get("href")
        href_attr = f' href="{_escape(str(href))}"' if href else ""
        return f"<a{href_attr}>{content}</a>"
    tag = _MARK_TAGS.get(mark.type)
    if tag is None:
        return content
    return f"<{tag}>{content}</{tag}>"


def render_markup(node: ContentNode) -> str:
    """Render *node* to an HTML fragment."""
    if node.type == "text":
        rendered = _escape(node.text or "")
        for mark in node.marks:
            rendered = _apply_mark(rendered, mark)
        return rendered
    if node.type == "hardBreak":
        return "<br>"
    if node.type == "horizontalRule":
        return "<hr>"
    if node.type == "codeBlock":
        code = "".join(child.text or "" for child in node.content)
        language = node.attrs.get("language")
        lang_attr = f' class="language-{_escape(str(language))}"' if language else ""
        return f"<pre><code{lang_attr}>{_escape(code)}</code></pre>"

    children = "".join(render_markup(child) for child in node.content)
    if node.type == "heading":
        level = node.attrs.get("level")
        safe_level = level if isinstance(level, int) and 1 <= level <= 6 else 1
        return f"<h{safe_level}>{children}</h{safe_level}>"
    if node.type == "orderedList":
        start = node.attrs.get("start")
        start_attr = f' start="{start}"' if isinstance(start, int) and start != 1 else ""
        return f"<ol{start_attr}>{children}</ol>"

    tag = {
        "doc": "div",
        "paragraph": "p",
        "bulletList": "ul",
        "taskList": "ul",
        "listItem": "li",
        "taskItem": "li",
        "blockquote": "blockquote",
        "table": "table",
        "tableRow": "tr",
        "tableHeader": "th",
        "tableCell": "td",
    }.get(node.type)
    if tag is None:
        return children
    return f"<{tag}>{children}</{tag}>"


def strip_markup(markup: str) -> str:
    """Drop tags and collapse whitespace (used for length measurements)."""
    return _WS_RE.sub(" ", _TAG_RE.sub(" ", markup)).strip()


def render_block(node: ContentNode) -> RenderResult:
    """Render one top-level content block, or explain why it is skipped."""
    if not get_content_schema().is_content_block(node):
        return Skip(reason=f"unsupported block type {node.type!r}")
    plain_text = render_plain_text(node).strip()
    if not plain_text:
        return Skip(reason="blank")
    return Rendered(markup=render_markup(node), plain_text=plain_text)
