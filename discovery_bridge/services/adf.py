"""Atlassian Document Format (ADF) <-> markdown conversion.

JPD descriptions and comments are ADF trees; GitLab wants markdown. The
conversion is best-effort: unknown nodes degrade to their nested text and
nothing here raises on malformed input.

Reference: https://developer.atlassian.com/cloud/jira/platform/apis/document/structure/
"""

import logging
import re
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

_INLINE_TYPES = {"text", "hardBreak", "mention", "inlineCard", "emoji", "date", "status"}


def adf_to_markdown(adf_content: Optional[Dict[str, Any]]) -> str:
    """Convert an ADF document (or any ADF node) to markdown.

    Example:
        >>> adf_to_markdown({"type": "doc", "content": [
        ...     {"type": "paragraph", "content": [{"type": "text", "text": "Hello"}]}]})
        'Hello'
    """
    if not adf_content:
        return ""
    if isinstance(adf_content, str):
        return adf_content
    if adf_content.get("type") == "doc":
        blocks = _render_blocks(adf_content.get("content") or [], indent_level=0)
    else:
        blocks = _render_blocks([adf_content], indent_level=0)
    return "\n\n".join(b for b in blocks if b).strip()


def _render_blocks(nodes: List[Any], indent_level: int) -> List[str]:
    blocks: List[str] = []
    inline_run: List[Any] = []

    def flush_inline():
        if inline_run:
            text = _render_inline(inline_run)
            if text.strip():
                blocks.append(text)
            inline_run.clear()

    for node in nodes:
        if not isinstance(node, dict):
            if isinstance(node, str):
                inline_run.append({"type": "text", "text": node})
            continue
        if node.get("type") in _INLINE_TYPES:
            inline_run.append(node)
            continue
        flush_inline()
        rendered = _render_block(node, indent_level)
        if rendered:
            blocks.append(rendered)
    flush_inline()
    return blocks


def _render_block(node: Dict[str, Any], indent_level: int) -> str:
    node_type = node.get("type")
    content = node.get("content") or []
    attrs = node.get("attrs") or {}

    if node_type == "paragraph":
        return _render_inline(content)

    if node_type == "heading":
        try:
            level = int(attrs.get("level", 1))
        except (TypeError, ValueError):
            level = 1
        level = min(max(level, 1), 6)
        return f"{'#' * level} {_render_inline(content)}"

    if node_type in ("bulletList", "orderedList"):
        return _render_list(node, indent_level)

    if node_type == "codeBlock":
        language = attrs.get("language") or ""
        code = "".join(child.get("text", "") for child in content if isinstance(child, dict))
        return f"```{language}\n{code}\n```"

    if node_type == "blockquote":
        inner = "\n\n".join(_render_blocks(content, indent_level))
        return "\n".join(f"> {line}" if line else ">" for line in inner.split("\n"))

    if node_type == "rule":
        return "---"

    if node_type in ("mediaSingle", "mediaGroup", "media"):
        return ""

    if node_type is None:
        logger.debug(f"ADF node without type: {str(node)[:100]}")
    else:
        logger.warning(f"Unsupported ADF node type '{node_type}', extracting text")
    return "\n\n".join(_render_blocks(content, indent_level))


def _render_list(node: Dict[str, Any], indent_level: int) -> str:
    ordered = node.get("type") == "orderedList"
    start = 1
    if ordered:
        try:
            start = int((node.get("attrs") or {}).get("order", 1))
        except (TypeError, ValueError):
            start = 1
    indent = "  " * indent_level
    lines: List[str] = []
    for i, item in enumerate(node.get("content") or []):
        if not isinstance(item, dict):
            continue
        marker = f"{start + i}. " if ordered else "- "
        text_parts: List[str] = []
        nested: List[str] = []
        for child in item.get("content") or []:
            if not isinstance(child, dict):
                continue
            if child.get("type") in ("bulletList", "orderedList"):
                nested.append(_render_list(child, indent_level + 1))
            elif child.get("type") in _INLINE_TYPES:
                text_parts.append(_render_inline([child]))
            else:
                text_parts.append(_render_block(child, indent_level + 1))
        lines.append(f"{indent}{marker}{' '.join(p for p in text_parts if p)}")
        lines.extend(nested)
    return "\n".join(lines)


def _render_inline(nodes: List[Any]) -> str:
    parts: List[str] = []
    for node in nodes:
        if not isinstance(node, dict):
            continue
        node_type = node.get("type")
        attrs = node.get("attrs") or {}
        if node_type == "text":
            parts.append(_apply_marks(node.get("text", ""), node.get("marks") or []))
        elif node_type == "hardBreak":
            parts.append("\n")
        elif node_type == "mention":
            name = attrs.get("displayName") or attrs.get("text") or "Unknown"
            parts.append(name if name.startswith("@") else f"@{name}")
        elif node_type == "inlineCard":
            parts.append(attrs.get("url", ""))
        elif node_type == "emoji":
            parts.append(attrs.get("text") or attrs.get("shortName", ""))
        elif node_type == "status":
            parts.append(f"[{attrs.get('text', '')}]")
        elif node_type == "date":
            parts.append(str(attrs.get("timestamp", "")))
        else:
            parts.append(_render_inline(node.get("content") or []))
    return "".join(parts)


def _apply_marks(text: str, marks: List[Dict[str, Any]]) -> str:
    if not text:
        return text
    mark_types = {m.get("type"): m for m in marks if isinstance(m, dict)}
    if "code" in mark_types:
        text = f"`{text}`"
    if "strong" in mark_types:
        text = f"**{text}**"
    if "em" in mark_types:
        text = f"*{text}*"
    if "strike" in mark_types:
        text = f"~~{text}~~"
    if "link" in mark_types:
        href = (mark_types["link"].get("attrs") or {}).get("href")
        if href:
            text = f"[{text}]({href})"
    return text


_FENCE_RE = re.compile(r"^```\s*([\w+-]*)\s*$")
_HEADING_RE = re.compile(r"^(#{1,6})\s+(.*)$")
_BULLET_RE = re.compile(r"^\s*[-*+]\s+(.*)$")
_ORDERED_RE = re.compile(r"^\s*\d+[.)]\s+(.*)$")
_INLINE_RE = re.compile(
    r"\*\*\[(?P<bl_text>[^\]]+)\]\((?P<bl_url>[^)\s]+)\)\*\*"
    r"|\*\*(?P<bold>[^*]+)\*\*"
    r"|`(?P<code>[^`]+)`"
    r"|\[(?P<l_text>[^\]]+)\]\((?P<l_url>[^)\s]+)\)"
)


def markdown_to_adf(text: Optional[str]) -> Dict[str, Any]:
    """Convert markdown into a simple ADF document.

    Handles paragraphs, ATX headings, fenced code, bullet and ordered lists.
    Inline formatting is limited to bold, inline code and links; HTML
    comments are carried through as plain text.
    """
    content: List[Dict[str, Any]] = []
    lines = (text or "").replace("\r\n", "\n").split("\n")
    paragraph: List[str] = []
    list_node: Optional[Dict[str, Any]] = None
    i = 0

    def flush_paragraph():
        if paragraph:
            content.append({"type": "paragraph", "content": _paragraph_inline(paragraph)})
            paragraph.clear()

    while i < len(lines):
        line = lines[i]
        fence = _FENCE_RE.match(line)
        if fence:
            flush_paragraph()
            list_node = None
            code_lines = []
            i += 1
            while i < len(lines) and not lines[i].startswith("```"):
                code_lines.append(lines[i])
                i += 1
            node: Dict[str, Any] = {"type": "codeBlock", "attrs": {}, "content": []}
            if fence.group(1):
                node["attrs"]["language"] = fence.group(1)
            if code_lines:
                node["content"].append({"type": "text", "text": "\n".join(code_lines)})
            content.append(node)
            i += 1
            continue

        if not line.strip():
            flush_paragraph()
            list_node = None
            i += 1
            continue

        heading = _HEADING_RE.match(line)
        if heading:
            flush_paragraph()
            list_node = None
            content.append(
                {
                    "type": "heading",
                    "attrs": {"level": len(heading.group(1))},
                    "content": _inline_nodes(heading.group(2)),
                }
            )
            i += 1
            continue

        bullet = _BULLET_RE.match(line)
        ordered = None if bullet else _ORDERED_RE.match(line)
        if bullet or ordered:
            flush_paragraph()
            list_type = "bulletList" if bullet else "orderedList"
            if list_node is None or list_node["type"] != list_type:
                list_node = {"type": list_type, "content": []}
                content.append(list_node)
            item_text = (bullet or ordered).group(1)
            list_node["content"].append(
                {"type": "listItem", "content": [{"type": "paragraph", "content": _inline_nodes(item_text)}]}
            )
            i += 1
            continue

        list_node = None
        paragraph.append(line)
        i += 1

    flush_paragraph()
    return {"type": "doc", "version": 1, "content": content}


def _paragraph_inline(lines: List[str]) -> List[Dict[str, Any]]:
    nodes: List[Dict[str, Any]] = []
    for idx, line in enumerate(lines):
        if idx:
            nodes.append({"type": "hardBreak"})
        nodes.extend(_inline_nodes(line))
    return nodes


def _inline_nodes(text: str) -> List[Dict[str, Any]]:
    if text.lstrip().startswith("<!--"):
        return [{"type": "text", "text": text}] if text else []

    nodes: List[Dict[str, Any]] = []
    pos = 0
    for match in _INLINE_RE.finditer(text):
        if match.start() > pos:
            nodes.append({"type": "text", "text": text[pos : match.start()]})
        if match.group("bl_text"):
            nodes.append(
                {
                    "type": "text",
                    "text": match.group("bl_text"),
                    "marks": [{"type": "strong"}, {"type": "link", "attrs": {"href": match.group("bl_url")}}],
                }
            )
        elif match.group("bold"):
            nodes.append({"type": "text", "text": match.group("bold"), "marks": [{"type": "strong"}]})
        elif match.group("code"):
            nodes.append({"type": "text", "text": match.group("code"), "marks": [{"type": "code"}]})
        else:
            nodes.append(
                {
                    "type": "text",
                    "text": match.group("l_text"),
                    "marks": [{"type": "link", "attrs": {"href": match.group("l_url")}}],
                }
            )
        pos = match.end()
    if pos < len(text):
        nodes.append({"type": "text", "text": text[pos:]})
    return nodes
