#!/usr/bin/env python3
"""
export_core.py

Shared machinery for all exporters:

- `ExportState`: per-call mutable state (footnotes, targets, TOC entries,
  section-number stack, pending one-shot signals)
- the pre-scan passes `collect_targets` and `collect_footnotes`
- string helpers (`generate_id`, `escape_string`, `timestamp_to_iso`)
- macro expansion and tag selection
- `ExportBackend`, the base class with the closed dispatch tables

A backend never raises for content it does not understand: unknown node
types and nodes whose handler trips over missing properties are logged and
rendered as a placeholder.
"""
from __future__ import annotations

import datetime as _dt
import logging
import re
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator, Optional, Union

from export_options import ExportError, ExportOptions, ExportOptionsError
from org_tree import ELEMENT_TYPES, OBJECT_TYPES, Affiliated, OrgDocument, OrgNode, paragraph

__all__ = [
    "BUILTIN_MACROS",
    "ExportBackend",
    "ExportError",
    "ExportOptionsError",
    "ExportState",
    "FootnoteInfo",
    "PendingSignals",
    "TocEntry",
    "collect_footnotes",
    "collect_targets",
    "escape_string",
    "expand_macro",
    "export_subtree",
    "generate_id",
    "generate_section_number",
    "should_export",
    "timestamp_to_iso",
]

logger = logging.getLogger(__name__)


# ---------------- State ------------------------------------------------------

@dataclass
class FootnoteInfo:
    definition: Optional[list[OrgNode]] = None
    references: int = 0


@dataclass
class TocEntry:
    level: int
    title: str
    id: str
    number_label: Optional[str] = None


@dataclass
class PendingSignals:
    """
    One-shot signals passed from one element's render to the next.

    skip_next_results:
        Set by a source block whose `:exports` hides its results; read and
        cleared by the very next fixed-width element through
        `consume_skip_results()`.
    affiliated:
        The affiliated keywords of the paragraph currently being rendered.
        Only set inside `ExportState.affiliated_scope()`, so an image link
        can pick up the caption/name/attributes of its enclosing paragraph.
    """
    skip_next_results: bool = False
    affiliated: Optional[Affiliated] = None


@dataclass
class ExportState:
    options: ExportOptions
    headline_offset: int = 0
    footnotes: dict[str, FootnoteInfo] = field(default_factory=dict)
    footnote_counter: int = 0
    targets: dict[str, str] = field(default_factory=dict)
    radio_targets: dict[str, str] = field(default_factory=dict)
    toc_entries: list[TocEntry] = field(default_factory=list)
    custom_ids: dict[str, str] = field(default_factory=dict)
    section_numbers: list[int] = field(default_factory=list)
    pending: PendingSignals = field(default_factory=PendingSignals)

    def consume_skip_results(self) -> bool:
        """Return the pending skip flag and clear it."""
        value = self.pending.skip_next_results
        self.pending.skip_next_results = False
        return value

    @contextmanager
    def affiliated_scope(self, affiliated: Optional[Affiliated]) -> Iterator[None]:
        previous = self.pending.affiliated
        self.pending.affiliated = affiliated
        try:
            yield
        finally:
            self.pending.affiliated = previous


# ---------------- Helpers ----------------------------------------------------

def generate_id(text: str, prefix: str = "org") -> str:
    """
    Build a stable anchor id from arbitrary text.

    Example:
        'Hello, World!'  ->  'org-hello-world'
        ''               ->  'org-section'
    """
    slug = re.sub(r"[^a-z0-9]+", "-", text.lower())
    slug = re.sub(r"^-|-$", "", slug)[:50]
    return f"{prefix}-{slug or 'section'}"


def generate_section_number(level: int, state: ExportState) -> str:
    """
    Advance the section counter stack for a headline at `level`.

    Levels [1, 2, 2, 1, 2] yield '1', '1.1', '1.2', '2', '2.1'.
    """
    level = max(1, level)
    numbers = state.section_numbers
    while len(numbers) < level:
        numbers.append(0)
    del numbers[level:]
    numbers[level - 1] += 1
    return ".".join(str(n) for n in numbers)


_LATEX_BACKSLASH_PLACEHOLDER = "\x00BACKSLASH\x00"


def escape_string(value: str, fmt: str) -> str:
    """Escape text for `fmt` ('html' or 'latex'); other formats pass through."""
    if fmt == "html":
        return (
            value.replace("&", "&amp;")
            .replace("<", "&lt;")
            .replace(">", "&gt;")
            .replace('"', "&quot;")
            .replace("'", "&#39;")
        )
    if fmt == "latex":
        out = value.replace("\\", _LATEX_BACKSLASH_PLACEHOLDER)
        out = re.sub(r"([&%$#_{}])", r"\\\1", out)
        out = out.replace("^", "\\textasciicircum{}").replace("~", "\\textasciitilde{}")
        return out.replace(_LATEX_BACKSLASH_PLACEHOLDER, "\\textbackslash{}")
    return value


def timestamp_to_iso(timestamp: OrgNode) -> str:
    props = timestamp.properties
    date_str = (
        f"{props.get('year_start')}-{int(props.get('month_start', 0)):02d}"
        f"-{int(props.get('day_start', 0)):02d}"
    )
    hour, minute = props.get("hour_start"), props.get("minute_start")
    if hour is not None and minute is not None:
        return f"{date_str}T{int(hour):02d}:{int(minute):02d}"
    return date_str


Macro = Union[str, Callable[..., str]]


def expand_macro(key: str, args: list[str], macros: dict[str, Macro]) -> str:
    """
    Expand `{{{key(args)}}}`.

    Unknown keys are rendered back literally; callables receive the
    arguments; string templates get `$1`..`$n` substituted.
    """
    macro = macros.get(key)
    if not macro:
        return "{{{" + f"{key}({','.join(args)})" + "}}}"
    if callable(macro):
        return macro(*args)
    result = macro
    for index, arg in enumerate(args, start=1):
        result = result.replace(f"${index}", arg)
    return result


def should_export(headline: OrgNode, options: ExportOptions) -> bool:
    """Exclusion tags win; a non-empty selection list requires a match."""
    tags = headline.get("tags") or []
    if options.exclude_tags and any(tag in options.exclude_tags for tag in tags):
        return False
    if options.select_tags and not any(tag in options.select_tags for tag in tags):
        return False
    return True


def _today() -> str:
    return _dt.date.today().isoformat()


def _now_time() -> str:
    return _dt.datetime.now().strftime("%H:%M:%S")


BUILTIN_MACROS: dict[str, Macro] = {
    "date": lambda *args: _today(),
    "time": lambda *args: _now_time(),
    "modification-time": lambda *args: _today(),
    # Resolved by the host application; exported as visible placeholders
    "property": lambda name="", *rest: f"[PROPERTY:{name}]",
    "input": lambda name="", *rest: f"[INPUT:{name}]",
    "include": lambda name="", *rest: f"[INCLUDE:{name}]",
}


# ---------------- Pre-scan ---------------------------------------------------

def headline_id(headline: OrgNode) -> str:
    return (
        headline.get("custom_id")
        or headline.get("id")
        or generate_id(headline.get("raw_value") or "")
    )


def collect_targets(doc: OrgDocument, state: ExportState) -> None:
    """
    Register an id for every headline, in document order.

    Custom ids map to the headline id. When a table of contents is requested,
    one entry per exported headline is appended; headlines removed by the tag
    filter (and everything below them) are left out of the TOC. Entries carry
    the section number the headline will be rendered with.
    """
    options = state.options
    numbers: list[int] = []

    def visit(headlines: list[OrgNode], listed: bool) -> None:
        for hl in headlines:
            if hl.type != "headline":
                continue
            hl_id = headline_id(hl)
            custom_id = hl.get("custom_id")
            if custom_id:
                state.custom_ids[custom_id] = hl_id

            exported = listed and should_export(hl, options)
            if options.toc and exported:
                level = int(hl.get("level", 1))
                number_label = None
                if options.section_numbers and (options.headline_level <= 0 or level <= options.headline_level):
                    while len(numbers) < level:
                        numbers.append(0)
                    del numbers[level:]
                    numbers[level - 1] += 1
                    number_label = ".".join(str(n) for n in numbers)
                state.toc_entries.append(
                    TocEntry(
                        level=level,
                        title=hl.get("raw_value") or "",
                        id=hl_id,
                        number_label=number_label,
                    )
                )
            visit(hl.children, exported)

    visit(doc.children, True)


def collect_footnotes(doc: OrgDocument, state: ExportState) -> None:
    """
    Collect footnote definitions and count references.

    A later definition with the same label replaces an earlier one, the
    reference count is kept. References may precede their definition.
    """

    def info(label: str) -> FootnoteInfo:
        if label not in state.footnotes:
            state.footnotes[label] = FootnoteInfo()
        return state.footnotes[label]

    def walk(node: OrgNode) -> None:
        if node.type == "footnote-definition":
            label = node.get("label")
            if label:
                info(label).definition = node.children
        elif node.type == "footnote-reference":
            label = node.get("label")
            if label:
                entry = info(label)
                entry.references += 1
                if node.children and entry.definition is None:
                    # inline definition [fn:label:text]
                    entry.definition = [paragraph(*node.children)]

        for child in node.children:
            walk(child)
        for key in ("title", "tag"):
            for child in node.properties.get(key) or []:
                if isinstance(child, OrgNode):
                    walk(child)
        if node.section is not None:
            walk(node.section)

    if doc.section is not None:
        walk(doc.section)
    for hl in doc.children:
        walk(hl)


def export_subtree(headline: OrgNode, backend: "ExportBackend",
                   options: Optional[dict[str, Any]] = None) -> Any:
    """Export a single headline (and what lies below it) as a document."""
    subtree = OrgDocument(children=[headline])
    merged = dict(options or {})
    merged.setdefault("scope", "subtree")
    return backend.export_document(subtree, merged)


# ---------------- Backend base -----------------------------------------------

# handler failures that mean "this node is malformed", not "the exporter is broken"
_MALFORMED_NODE_ERRORS = (KeyError, TypeError, ValueError, AttributeError, IndexError)


class ExportBackend:
    """
    Base class for all exporters.

    Subclasses fill `element_handlers()` and `object_handlers()` with one entry
    per supported type. Dispatch is closed: a type outside the enumerations in
    `org_tree`, or one without a handler, renders `unknown_element()` /
    `unknown_object()`.
    """

    name = "base"

    def __init__(self) -> None:
        self._element_handlers = self.element_handlers()
        self._object_handlers = self.object_handlers()

    # ---- to implement ----

    def export_document(self, doc: OrgDocument, options: Optional[dict[str, Any]] = None) -> Any:
        raise NotImplementedError

    def element_handlers(self) -> dict[str, Callable[[OrgNode, Any], Any]]:
        return {}

    def object_handlers(self) -> dict[str, Callable[[OrgNode, Any], Any]]:
        return {}

    def unknown_element(self, node_type: str) -> Any:
        return ""

    def unknown_object(self, node_type: str) -> Any:
        return ""

    # ---- dispatch ----

    def export_element(self, node: OrgNode, state: ExportState) -> Any:
        handler = self._element_handlers.get(node.type) if node.type in ELEMENT_TYPES else None
        if handler is None:
            logger.warning("%s export: unknown element type %r", self.name, node.type)
            return self.unknown_element(node.type)
        try:
            return handler(node, state)
        except _MALFORMED_NODE_ERRORS as exc:
            logger.warning("%s export: malformed %s element (%s)", self.name, node.type, exc)
            return self.unknown_element(node.type)

    def export_object(self, node: OrgNode, state: ExportState) -> Any:
        handler = self._object_handlers.get(node.type) if node.type in OBJECT_TYPES else None
        if handler is None:
            logger.warning("%s export: unknown object type %r", self.name, node.type)
            return self.unknown_object(node.type)
        try:
            return handler(node, state)
        except _MALFORMED_NODE_ERRORS as exc:
            logger.warning("%s export: malformed %s object (%s)", self.name, node.type, exc)
            return self.unknown_object(node.type)

    def export_elements(self, nodes: list[OrgNode], state: ExportState) -> str:
        return "".join(self.export_element(n, state) for n in nodes)

    def export_objects(self, nodes: list[OrgNode], state: ExportState) -> str:
        return "".join(self.export_object(n, state) for n in nodes)

    # ---- shared pieces ----

    @staticmethod
    def prepare_state(state: ExportState, doc: OrgDocument) -> None:
        """Run both pre-scan passes."""
        collect_targets(doc, state)
        collect_footnotes(doc, state)

    @staticmethod
    def merge_macros(options: ExportOptions, doc: OrgDocument, collected: dict[str, str]) -> None:
        """Built-in < caller < document macros."""
        merged: dict[str, Macro] = dict(BUILTIN_MACROS)
        merged.update(options.macros)
        merged.update(collected)
        options.macros = merged

    @staticmethod
    def headline_numbered(level: int, options: ExportOptions) -> bool:
        if not options.section_numbers:
            return False
        return options.headline_level <= 0 or level <= options.headline_level

    @staticmethod
    def macro_args(node: OrgNode) -> list[str]:
        return [str(a) for a in (node.get("args") or [])]

    @staticmethod
    def exports_mode(parameters: Optional[str]) -> str:
        match = re.search(r":exports\s+(\w+)", parameters or "")
        return match.group(1) if match else "both"

    @staticmethod
    def update_skip_results(state: ExportState, exports: str) -> bool:
        """
        Record whether the next fixed-width element (the block's results) is
        hidden, and return True when the code itself should be rendered.
        """
        state.pending.skip_next_results = exports in ("none", "code")
        return exports in ("code", "both")

    @staticmethod
    def drawer_visible(name: str, options: ExportOptions) -> bool:
        upper = (name or "").upper()
        if upper == "PROPERTIES":
            return False
        drawers = options.include_drawers
        if isinstance(drawers, list):
            visible = upper in (d.upper() for d in drawers)
        else:
            visible = bool(drawers)
        if visible and upper == "LOGBOOK":
            return bool(options.include_clocks)
        return visible
