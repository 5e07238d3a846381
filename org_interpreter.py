#!/usr/bin/env python3
"""
org_interpreter.py

Turn a Document Tree back into Org text.

    text = interpret(doc)
    text = interpret(doc, {"use_utf8_entities": True})

Affiliated keywords are written before their element in a fixed order:
NAME, CAPTION, HEADER, PLOT, RESULTS, then one ATTR_<BACKEND> line per
backend.

Timestamps are rebuilt from their fields (the weekday is recomputed) unless
`preserve_formatting` is set and the node still carries its raw text.
"""
from __future__ import annotations

import dataclasses
import datetime as _dt
import logging
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional

from export_options import ExportOptionsError
from org_tree import Affiliated, OrgDocument, OrgNode

logger = logging.getLogger(__name__)

DAY_NAMES = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")


@dataclass
class InterpreterOptions:
    indent: str = "  "
    line_ending: str = "\n"
    preserve_formatting: bool = False
    use_utf8_entities: bool = False


def resolve_interpreter_options(options: Optional[Mapping[str, Any]]) -> InterpreterOptions:
    if options is None:
        return InterpreterOptions()
    if isinstance(options, InterpreterOptions):
        return options
    names = {f.name for f in dataclasses.fields(InterpreterOptions)}
    unknown = sorted(str(k) for k in options if k not in names)
    if unknown:
        raise ExportOptionsError(f"Unknown interpreter option(s): {', '.join(unknown)}")
    return InterpreterOptions(**options)


def serialize_affiliated(affiliated: Affiliated) -> list[str]:
    """
    Example:
        Affiliated(name='tbl', caption=('Short', 'Long'), attr={'html': {'width': '50%'}})
    ->  ['#+NAME: tbl', '#+CAPTION[Short]: Long', '#+ATTR_HTML: :width 50%']
    """
    lines: list[str] = []
    if affiliated.name:
        lines.append(f"#+NAME: {affiliated.name}")
    if affiliated.caption:
        if isinstance(affiliated.caption, tuple):
            short, long = affiliated.caption
            lines.append(f"#+CAPTION[{short}]: {long}")
        else:
            lines.append(f"#+CAPTION: {affiliated.caption}")
    for header in affiliated.header:
        lines.append(f"#+HEADER: {header}")
    if affiliated.plot:
        lines.append(f"#+PLOT: {affiliated.plot}")
    if affiliated.results is not None:
        lines.append(f"#+RESULTS: {affiliated.results}".rstrip())
    for backend, attrs in affiliated.attr.items():
        if attrs:
            rendered = " ".join(f":{key} {value}" for key, value in attrs.items())
            lines.append(f"#+ATTR_{backend.upper()}: {rendered}")
    return lines


def _weekday(year: int, month: int, day: int) -> str:
    try:
        return DAY_NAMES[_dt.date(year, month, day).weekday()]
    except ValueError:
        # out-of-range date fields; keep the text readable
        return "???"


class OrgInterpreter:
    def __init__(self, options: InterpreterOptions):
        self.options = options
        self.nl = options.line_ending
        self._element_handlers: dict[str, Callable[[OrgNode], str]] = {
            "headline": self.headline,
            "section": self.section,
            "paragraph": lambda p: self.objects(p.children),
            "src-block": self.src_block,
            "example-block": lambda b: self._block("EXAMPLE", b.get("switches"), b.properties["value"]),
            "quote-block": lambda b: self._container("QUOTE", b),
            "center-block": lambda b: self._container("CENTER", b),
            "special-block": lambda b: self._container(b.properties["block_type"].upper(), b),
            "verse-block": lambda b: self._block("VERSE", None, b.properties["value"]),
            "latex-environment": lambda e: e.properties["value"],
            "table": self.table,
            "table-row": self.table_row,
            "plain-list": self.plain_list,
            "item": lambda i: self.item(i, "unordered"),
            "drawer": self.drawer,
            "property-drawer": self.property_drawer,
            "node-property": lambda p: f":{p.properties['key']}: {p.get('value') or ''}".rstrip(),
            "keyword": lambda k: f"#+{k.properties['key']}: {k.get('value') or ''}".rstrip(),
            "horizontal-rule": lambda h: "-----",
            "comment": lambda c: self.nl.join(
                f"# {line}".rstrip() for line in (c.get("value") or "").split("\n")
            ),
            "comment-block": lambda b: self._block("COMMENT", None, b.properties["value"]),
            "fixed-width": lambda f: self.nl.join(
                f": {line}".rstrip() for line in f.properties["value"].split("\n")
            ),
            "footnote-definition": self.footnote_definition,
            "export-block": lambda b: self._block("EXPORT", b.properties["backend"], b.properties["value"]),
            "babel-call": self.babel_call,
            "clock": self.clock,
            "planning": self.planning,
        }
        self._object_handlers: dict[str, Callable[[OrgNode], str]] = {
            "bold": lambda o: f"*{self.objects(o.children)}*",
            "italic": lambda o: f"/{self.objects(o.children)}/",
            "underline": lambda o: f"_{self.objects(o.children)}_",
            "strike-through": lambda o: f"+{self.objects(o.children)}+",
            "code": lambda o: f"~{o.properties['value']}~",
            "verbatim": lambda o: f"={o.properties['value']}=",
            "command": lambda o: f"~{o.properties['value']}~",
            "link": self.link,
            "timestamp": self.timestamp,
            "entity": self.entity,
            "latex-fragment": lambda o: o.properties["value"],
            "subscript": lambda o: self._script("_", o),
            "superscript": lambda o: self._script("^", o),
            "footnote-reference": self.footnote_reference,
            "statistics-cookie": lambda o: o.properties["value"],
            "target": lambda o: f"<<{o.properties['value']}>>",
            "radio-target": lambda o: f"<<<{self.objects(o.children)}>>>",
            "line-break": lambda o: "\\\\",
            "plain-text": lambda o: o.properties["value"],
            "inline-src-block": self.inline_src_block,
            "inline-babel-call": self.inline_babel_call,
            "export-snippet": lambda o: f"@@{o.properties['backend']}:{o.properties['value']}@@",
            "macro": self.macro,
            "table-cell": lambda o: self.objects(o.children) if o.children else o.get("value") or "",
            "citation": self.citation,
        }

    # ---------------- Dispatch -----------------------------------------------

    def element(self, node: OrgNode) -> str:
        handler = self._element_handlers.get(node.type)
        if handler is None:
            logger.warning("interpreter: unknown element type %r", node.type)
            return f"# Unknown element: {node.type}"
        prefix = ""
        if node.affiliated is not None:
            lines = serialize_affiliated(node.affiliated)
            if lines:
                prefix = self.nl.join(lines) + self.nl
        return prefix + handler(node)

    def object(self, node: OrgNode) -> str:
        handler = self._object_handlers.get(node.type)
        if handler is None:
            logger.warning("interpreter: unknown object type %r", node.type)
            return ""
        return handler(node)

    def objects(self, nodes: list[OrgNode]) -> str:
        return "".join(self.object(node) for node in nodes)

    # ---------------- Document -----------------------------------------------

    def document(self, doc: OrgDocument) -> str:
        parts: list[str] = [f"#+{key}: {value}" for key, value in doc.keywords.items()]
        for key, values in doc.keyword_lists.items():
            parts.extend(f"#+{key}: {value}" for value in values)
        parts.extend(f"#+PROPERTY: {key} {value}" for key, value in doc.properties.items())
        if parts:
            parts.append("")

        if doc.section is not None:
            section_text = self.section(doc.section)
            if section_text.strip():
                parts.append(section_text)
        for hl in doc.children:
            parts.append(self.headline(hl))
        return self.nl.join(parts)

    # ---------------- Elements -----------------------------------------------

    def headline(self, hl: OrgNode) -> str:
        props = hl.properties
        line = "*" * int(props["level"]) + " "
        if props.get("todo_keyword"):
            line += props["todo_keyword"] + " "
        if props.get("priority"):
            line += f"[#{props['priority']}] "
        if props.get("title"):
            line += self.objects(props["title"])
        else:
            line += props.get("raw_value") or ""
        tags = props.get("tags") or []
        if tags:
            line += " :" + ":".join(tags) + ":"

        parts = [line]
        if hl.section is not None:
            section_text = self.section(hl.section)
            if section_text:
                parts.append(section_text)
        parts.extend(self.headline(child) for child in hl.children)
        return self.nl.join(parts)

    def section(self, section: OrgNode) -> str:
        return (self.nl * 2).join(self.element(child) for child in section.children)

    def _block(self, name: str, argument: Optional[str], value: str) -> str:
        begin = f"#+BEGIN_{name}" + (f" {argument}" if argument else "")
        return self.nl.join([begin, value, f"#+END_{name}"])

    def _container(self, name: str, block: OrgNode) -> str:
        parts = [f"#+BEGIN_{name}"]
        parts.extend(self.element(child) for child in block.children)
        parts.append(f"#+END_{name}")
        return self.nl.join(parts)

    def src_block(self, block: OrgNode) -> str:
        argument = " ".join(p for p in (block.get("language"), block.get("parameters")) if p)
        return self._block("SRC", argument, block.properties["value"])

    def table(self, table: OrgNode) -> str:
        if table.get("table_type") == "table.el" and table.get("value"):
            return table.get("value")
        lines = [self.table_row(row) for row in table.children]
        for formula in table.get("tblfm") or []:
            lines.append(f"#+TBLFM: {formula}")
        return self.nl.join(lines)

    def table_row(self, row: OrgNode) -> str:
        if row.get("row_type") == "rule":
            return "|-"
        return "| " + " | ".join(self.object(cell) for cell in row.children) + " |"

    def plain_list(self, plain_list: OrgNode) -> str:
        list_type = plain_list.get("list_type") or "unordered"
        return self.nl.join(self.item(item, list_type) for item in plain_list.children)

    def item(self, item: OrgNode, list_type: str) -> str:
        bullet = item.get("bullet") or ("1." if list_type == "ordered" else "-")
        line = bullet + " "
        checkbox = item.get("checkbox")
        if checkbox:
            line += "[" + {"on": "X", "trans": "-"}.get(checkbox, " ") + "] "
        if list_type == "descriptive" and item.get("tag"):
            line += self.objects(item.get("tag")) + " :: "

        children = [self.element(child) for child in item.children]
        if not children:
            return line.rstrip()
        # continuation lines are indented under the bullet
        rest = self.nl.join(children[1:])
        line += children[0]
        if rest:
            indent = self.options.indent
            line += self.nl + self.nl.join(indent + l if l else l for l in rest.split(self.nl))
        return line

    def drawer(self, drawer: OrgNode) -> str:
        parts = [f":{drawer.properties['name']}:"]
        parts.extend(self.element(child) for child in drawer.children)
        parts.append(":END:")
        return self.nl.join(parts)

    def property_drawer(self, drawer: OrgNode) -> str:
        parts = [":PROPERTIES:"]
        parts.extend(self.element(child) for child in drawer.children)
        parts.append(":END:")
        return self.nl.join(parts)

    def footnote_definition(self, footnote: OrgNode) -> str:
        parts = [f"[fn:{footnote.properties['label']}]"]
        parts.extend(self.element(child) for child in footnote.children)
        return " ".join(parts)

    def babel_call(self, call: OrgNode) -> str:
        line = f"#+CALL: {call.properties['call']}"
        if call.get("inside_header"):
            line += f"[{call.get('inside_header')}]"
        line += f"({call.get('arguments') or ''})"
        if call.get("end_header"):
            line += f"[{call.get('end_header')}]"
        return line

    def clock(self, clock: OrgNode) -> str:
        start = clock.get("start")
        if start is None:
            line = f"CLOCK: {clock.get('value') or ''}".rstrip()
        else:
            line = "CLOCK: " + self.timestamp(start)
            if clock.get("end") is not None:
                line += "--" + self.timestamp(clock.get("end"))
        if clock.get("duration"):
            line += " =>  " + clock.get("duration")
        return line

    def planning(self, planning: OrgNode) -> str:
        parts = []
        for key in ("scheduled", "deadline", "closed"):
            ts = planning.get(key)
            if ts is not None:
                parts.append(f"{key.upper()}: {self.timestamp(ts)}")
        return " ".join(parts)

    # ---------------- Objects ------------------------------------------------

    def link(self, link: OrgNode) -> str:
        link_type = link.get("link_type") or "fuzzy"
        path = link.get("path") or ""
        raw_link = link.get("raw_link")
        fmt = link.get("format") or "bracket"

        if fmt == "plain":
            return raw_link or path
        if fmt == "angle":
            return f"<{raw_link or path}>"

        if raw_link:
            target = raw_link
        elif link_type in ("fuzzy", "internal", "headline", "custom-id"):
            target = path
        else:
            target = f"{link_type}:{path}"

        if link.children:
            return f"[[{target}][{self.objects(link.children)}]]"
        return f"[[{target}]]"

    def timestamp(self, ts: OrgNode) -> str:
        props = ts.properties
        if self.options.preserve_formatting and props.get("raw_value"):
            return props["raw_value"]

        active = props.get("timestamp_type", "active") in ("active", "active-range")
        opening, closing = ("<", ">") if active else ("[", "]")

        year, month, day = int(props["year_start"]), int(props["month_start"]), int(props["day_start"])
        result = f"{opening}{year:04d}-{month:02d}-{day:02d} {_weekday(year, month, day)}"

        has_end_date = props.get("year_end") is not None
        if props.get("hour_start") is not None:
            result += f" {int(props['hour_start']):02d}:{int(props.get('minute_start') or 0):02d}"
            if props.get("hour_end") is not None and not has_end_date:
                result += f"-{int(props['hour_end']):02d}:{int(props.get('minute_end') or 0):02d}"

        if props.get("repeater_type"):
            result += f" {props['repeater_type']}{props.get('repeater_value')}{props.get('repeater_unit')}"
        if props.get("warning_type"):
            result += f" {props['warning_type']}{props.get('warning_value')}{props.get('warning_unit')}"
        result += closing

        if has_end_date:
            year_end = int(props["year_end"])
            month_end, day_end = int(props["month_end"]), int(props["day_end"])
            result += (
                f"--{opening}{year_end:04d}-{month_end:02d}-{day_end:02d} "
                f"{_weekday(year_end, month_end, day_end)}"
            )
            if props.get("hour_end") is not None:
                result += f" {int(props['hour_end']):02d}:{int(props.get('minute_end') or 0):02d}"
            result += closing
        return result

    def entity(self, entity: OrgNode) -> str:
        if self.options.use_utf8_entities and entity.get("utf8"):
            return entity.get("utf8")
        brackets = "{}" if entity.get("uses_brackets") else ""
        return f"\\{entity.properties['name']}{brackets}"

    def _script(self, marker: str, node: OrgNode) -> str:
        content = self.objects(node.children)
        if node.get("uses_braces"):
            return f"{marker}{{{content}}}"
        return f"{marker}{content}"

    def footnote_reference(self, ref: OrgNode) -> str:
        label = ref.get("label") or ""
        if ref.children:
            content = self.objects(ref.children)
            return f"[fn:{label}:{content}]" if label else f"[fn::{content}]"
        return f"[fn:{label}]"

    def inline_src_block(self, block: OrgNode) -> str:
        result = f"src_{block.properties['language']}"
        if block.get("parameters"):
            result += f"[{block.get('parameters')}]"
        return result + f"{{{block.properties['value']}}}"

    def inline_babel_call(self, call: OrgNode) -> str:
        result = f"call_{call.properties['call']}"
        if call.get("inside_header"):
            result += f"[{call.get('inside_header')}]"
        result += f"({call.get('arguments') or ''})"
        if call.get("end_header"):
            result += f"[{call.get('end_header')}]"
        return result

    def macro(self, macro: OrgNode) -> str:
        args = [str(a) for a in macro.get("args") or []]
        if args:
            return "{{{" + f"{macro.properties['key']}({','.join(args)})" + "}}}"
        return "{{{" + macro.properties["key"] + "}}}"

    def citation(self, citation: OrgNode) -> str:
        if citation.get("raw_value"):
            return citation.get("raw_value")
        style = citation.get("style")
        keys = ";".join(f"@{key}" for key in citation.get("keys") or [])
        return f"[cite/{style}:{keys}]" if style else f"[cite:{keys}]"


# ---------------- Public API -------------------------------------------------

def interpret(doc: OrgDocument, options: Optional[Mapping[str, Any]] = None) -> str:
    return OrgInterpreter(resolve_interpreter_options(options)).document(doc)


def interpret_element(node: OrgNode, options: Optional[Mapping[str, Any]] = None) -> str:
    return OrgInterpreter(resolve_interpreter_options(options)).element(node)


def interpret_object(node: OrgNode, options: Optional[Mapping[str, Any]] = None) -> str:
    return OrgInterpreter(resolve_interpreter_options(options)).object(node)
