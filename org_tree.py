#!/usr/bin/env python3
"""
org_tree.py

Document Tree shared by every exporter and by the interpreter.

A tree is made of `OrgNode` values. Each node has a `type` taken from one of
two closed enumerations (block-level elements and inline objects), a
`properties` mapping whose shape depends on the type, and a list of
`children`. Headlines additionally carry a `section` (their own body) that is
kept apart from `children` (the nested headlines).

The root is an `OrgDocument` holding the document keywords, an optional
preamble section and the top-level headlines.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Union


ELEMENT_TYPES: frozenset[str] = frozenset({
    "headline",
    "section",
    "paragraph",
    "src-block",
    "example-block",
    "quote-block",
    "center-block",
    "special-block",
    "verse-block",
    "latex-environment",
    "table",
    "table-row",
    "plain-list",
    "item",
    "drawer",
    "property-drawer",
    "node-property",
    "keyword",
    "horizontal-rule",
    "comment",
    "comment-block",
    "fixed-width",
    "footnote-definition",
    "export-block",
    "babel-call",
    "clock",
    "planning",
})

OBJECT_TYPES: frozenset[str] = frozenset({
    "bold",
    "italic",
    "underline",
    "strike-through",
    "code",
    "verbatim",
    "command",
    "link",
    "timestamp",
    "entity",
    "latex-fragment",
    "subscript",
    "superscript",
    "footnote-reference",
    "statistics-cookie",
    "target",
    "radio-target",
    "line-break",
    "plain-text",
    "inline-src-block",
    "inline-babel-call",
    "export-snippet",
    "macro",
    "table-cell",
    "citation",
})

Caption = Union[str, tuple[str, str]]


@dataclass
class Affiliated:
    """
    Affiliated keywords attached to the element that follows them.

    caption: plain string, or a (short, long) pair for `#+CAPTION[short]: long`
    attr:    backend name -> {key: value}, from `#+ATTR_<BACKEND>: :key value`
    """
    caption: Optional[Caption] = None
    name: Optional[str] = None
    attr: dict[str, dict[str, str]] = field(default_factory=dict)
    header: list[str] = field(default_factory=list)
    results: Optional[str] = None
    plot: Optional[str] = None

    def caption_text(self) -> Optional[str]:
        """Return the long caption (the one that goes under a figure)."""
        if isinstance(self.caption, tuple):
            return self.caption[1]
        return self.caption

    def is_empty(self) -> bool:
        return not (
            self.caption or self.name or self.attr or self.header
            or self.results is not None or self.plot
        )


@dataclass
class OrgNode:
    type: str
    properties: dict[str, Any] = field(default_factory=dict)
    children: list["OrgNode"] = field(default_factory=list)
    affiliated: Optional[Affiliated] = None
    # Headlines only: the body that belongs to this headline.
    section: Optional["OrgNode"] = None

    def get(self, key: str, default: Any = None) -> Any:
        return self.properties.get(key, default)

    @property
    def is_element(self) -> bool:
        return self.type in ELEMENT_TYPES

    @property
    def is_object(self) -> bool:
        return self.type in OBJECT_TYPES


@dataclass
class OrgDocument:
    """
    Root of a parsed Org file.

    keywords:      `#+KEY: value` pairs, last occurrence wins (keys upper-case)
    keyword_lists: every occurrence of repeatable keys (MACRO, LATEX_HEADER)
    properties:    `#+PROPERTY: name value` pairs
    section:       content before the first headline
    children:      top-level headlines
    """
    keywords: dict[str, str] = field(default_factory=dict)
    keyword_lists: dict[str, list[str]] = field(default_factory=dict)
    properties: dict[str, str] = field(default_factory=dict)
    section: Optional[OrgNode] = None
    children: list[OrgNode] = field(default_factory=list)


# ---------------- Constructors -----------------------------------------------

def element(type_: str, children: Optional[list[OrgNode]] = None,
            affiliated: Optional[Affiliated] = None, **properties: Any) -> OrgNode:
    return OrgNode(type=type_, properties=properties,
                   children=list(children or []), affiliated=affiliated)


def obj(type_: str, children: Optional[list[OrgNode]] = None, **properties: Any) -> OrgNode:
    return OrgNode(type=type_, properties=properties, children=list(children or []))


def text(value: str) -> OrgNode:
    return OrgNode(type="plain-text", properties={"value": value})


def paragraph(*objects: OrgNode) -> OrgNode:
    return OrgNode(type="paragraph", children=list(objects))


def section(*elements: OrgNode) -> OrgNode:
    return OrgNode(type="section", children=list(elements))


def headline(
    level: int,
    title: str,
    *,
    body: Optional[list[OrgNode]] = None,
    children: Optional[list[OrgNode]] = None,
    todo_keyword: Optional[str] = None,
    todo_type: Optional[str] = None,
    priority: Optional[str] = None,
    tags: Optional[list[str]] = None,
    custom_id: Optional[str] = None,
    id: Optional[str] = None,
    title_objects: Optional[list[OrgNode]] = None,
) -> OrgNode:
    """
    Build a headline node.

    `title` is the raw title text; `title_objects` defaults to a single
    plain-text object holding it.
    """
    return OrgNode(
        type="headline",
        properties={
            "level": level,
            "raw_value": title,
            "title": list(title_objects) if title_objects is not None else [text(title)],
            "todo_keyword": todo_keyword,
            "todo_type": todo_type,
            "priority": priority,
            "tags": list(tags or []),
            "custom_id": custom_id,
            "id": id,
        },
        children=list(children or []),
        section=section(*body) if body else None,
    )


def plain_text_of(objects: list[OrgNode]) -> str:
    """Flatten objects into their visible text (used for titles and alt text)."""
    out: list[str] = []
    for node in objects:
        if node.type == "plain-text":
            out.append(node.get("value", ""))
        elif node.type in ("code", "verbatim"):
            out.append(node.get("value", ""))
        elif node.type == "entity":
            out.append(node.get("utf8") or node.get("name", ""))
        elif node.type == "link" and not node.children:
            out.append(node.get("raw_link") or node.get("path", ""))
        else:
            out.append(plain_text_of(node.children))
    return "".join(out)
