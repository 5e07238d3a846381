#!/usr/bin/env python3
"""
export_markdown.py

Markdown backend: a deliberately lossy projection of the tree.

What survives: headings, paragraphs, emphasis, code (inline and fenced),
quotes, lists with checkboxes, pipe tables, links and images, footnotes,
horizontal rules. Drawers, planning lines and most layout details are
dropped.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Optional

from export_core import (
    ExportBackend,
    ExportState,
    FootnoteInfo,
    expand_macro,
    generate_id,
    generate_section_number,
    headline_id,
    should_export,
)
from export_options import (
    ExportOptions,
    collect_document_macros,
    document_metadata,
    resolve_options,
)
from org_tree import OrgDocument, OrgNode, paragraph

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = (".png", ".jpg", ".jpeg", ".gif", ".svg", ".webp")
MARKDOWN_BACKENDS = frozenset({"md", "markdown", "gfm"})


@dataclass
class MarkdownExportOptions(ExportOptions):
    section_numbers: bool = False
    # emit <a id="..."></a> before each heading so internal links resolve
    heading_anchors: bool = True


DEFAULT_MARKDOWN_OPTIONS = MarkdownExportOptions()


def _indent(text: str, prefix: str) -> str:
    return "\n".join(prefix + line if line else line for line in text.split("\n"))


def _fence(value: str, info: str = "") -> str:
    fence = "```"
    while fence in value:
        fence += "`"
    return f"{fence}{info}\n{value}\n{fence}\n"


class MarkdownExportBackend(ExportBackend):
    name = "markdown"

    # ---------------- Document -----------------------------------------------

    def export_document(self, doc: OrgDocument, options: Optional[dict[str, Any]] = None) -> str:
        opts = resolve_options(doc.keywords, options, DEFAULT_MARKDOWN_OPTIONS)
        opts.backend = "markdown"
        state = ExportState(options=opts)
        self.prepare_state(state, doc)
        self.merge_macros(opts, doc, collect_document_macros(doc.keyword_lists))

        meta = document_metadata(opts, doc.keywords)
        parts: list[str] = []
        if not opts.body_only:
            if meta["title"]:
                parts.append(f"# {meta['title']}\n")
                # headlines sit below the title heading
                state.headline_offset = 1
            if meta["author"] and opts.include_author:
                parts.append(f"*{meta['author']}*\n")
            if meta["date"] and opts.include_date:
                parts.append(f"{meta['date']}\n")

        if opts.toc:
            toc = self.generate_toc(state)
            if toc:
                parts.append(toc)

        if doc.section is not None:
            section_md = self._export_section(doc.section, state)
            if section_md.strip():
                parts.append(section_md)
        for hl in doc.children:
            if should_export(hl, opts):
                parts.append(self._export_headline(hl, state))

        footnotes = self.export_footnotes(state)
        if footnotes:
            parts.append(footnotes)

        return re.sub(r"\n{3,}", "\n\n", "\n".join(parts)).strip("\n") + "\n"

    # ---------------- Dispatch tables ----------------------------------------

    def element_handlers(self):
        return {
            "headline": self._export_headline,
            "section": self._export_section,
            "paragraph": lambda p, s: self.export_objects(p.children, s).strip("\n") + "\n",
            "src-block": self._export_src_block,
            "example-block": lambda b, s: _fence(b.properties["value"]),
            "quote-block": self._export_quote_block,
            "center-block": lambda b, s: self._export_children(b, s),
            "special-block": self._export_special_block,
            "verse-block": lambda b, s: "  \n".join(b.properties["value"].split("\n")) + "\n",
            "latex-environment": lambda e, s: f"$$\n{e.properties['value']}\n$$\n",
            "table": self._export_table,
            "plain-list": self._export_plain_list,
            "drawer": self._export_drawer,
            "property-drawer": lambda node, state: "",
            "planning": lambda node, state: "",
            "clock": lambda node, state: "",
            "keyword": lambda node, state: "",
            "horizontal-rule": lambda node, state: "---\n",
            "comment": lambda node, state: "",
            "comment-block": lambda node, state: "",
            "fixed-width": self._export_fixed_width,
            "footnote-definition": lambda node, state: "",
            "export-block": lambda b, s: (
                b.properties["value"] + "\n" if b.properties["backend"].lower() in MARKDOWN_BACKENDS else ""
            ),
            "babel-call": lambda node, state: "",
        }

    def object_handlers(self):
        return {
            "bold": lambda o, s: f"**{self.export_objects(o.children, s)}**",
            "italic": lambda o, s: f"*{self.export_objects(o.children, s)}*",
            "underline": lambda o, s: f"<u>{self.export_objects(o.children, s)}</u>",
            "strike-through": lambda o, s: f"~~{self.export_objects(o.children, s)}~~",
            "code": lambda o, s: self._inline_code(o.properties["value"]),
            "command": lambda o, s: self._inline_code(o.properties["value"]),
            "verbatim": lambda o, s: self._inline_code(o.properties["value"]),
            "link": self._export_link,
            "timestamp": lambda o, s: (o.get("raw_value") or "") if s.options.timestamps else "",
            "entity": lambda o, s: o.get("utf8") or o.properties["name"],
            "latex-fragment": lambda o, s: o.properties["value"],
            "subscript": lambda o, s: f"<sub>{self.export_objects(o.children, s)}</sub>",
            "superscript": lambda o, s: f"<sup>{self.export_objects(o.children, s)}</sup>",
            "footnote-reference": self._export_footnote_reference,
            "statistics-cookie": lambda o, s: o.properties["value"],
            "target": lambda o, s: f'<a id="{generate_id(o.properties["value"])}"></a>',
            "radio-target": lambda o, s: self.export_objects(o.children, s),
            "line-break": lambda o, s: "  \n",
            "plain-text": lambda o, s: o.properties["value"],
            "inline-src-block": lambda o, s: self._inline_code(o.properties["value"]),
            "inline-babel-call": lambda o, s: self._inline_code(f"call_{o.properties['call']}()"),
            "export-snippet": lambda o, s: (
                o.properties["value"] if o.properties["backend"].lower() in MARKDOWN_BACKENDS else ""
            ),
            "macro": self._export_macro,
            "table-cell": lambda o, s: (
                self.export_objects(o.children, s) if o.children else o.get("value") or ""
            ),
            "citation": lambda o, s: "[" + "; ".join(f"@{k}" for k in o.get("keys") or []) + "]",
        }

    def unknown_element(self, node_type: str) -> str:
        return f"<!-- Unknown element type: {node_type} -->\n"

    def unknown_object(self, node_type: str) -> str:
        return f"<!-- Unknown object type: {node_type} -->"

    # ---------------- Elements -----------------------------------------------

    def _export_headline(self, hl: OrgNode, state: ExportState) -> str:
        props = hl.properties
        raw_level = int(props["level"])
        level = min(raw_level + state.headline_offset, 6)

        title = self.export_objects(props["title"], state) if props.get("title") else props.get("raw_value") or ""
        if props.get("todo_keyword") and state.options.include_todo:
            title = f"{props['todo_keyword']} {title}"
        if props.get("priority") and state.options.include_priority:
            title = f"[#{props['priority']}] {title}"
        if self.headline_numbered(raw_level, state.options):
            title = f"{generate_section_number(raw_level, state)} {title}"
        tags = props.get("tags") or []
        if tags and state.options.include_tags:
            title += " " + " ".join(f"`{t}`" for t in tags)

        parts: list[str] = []
        if state.options.heading_anchors:
            parts.append(f'<a id="{headline_id(hl)}"></a>')
        parts.append(f"{'#' * level} {title}\n")
        if hl.section is not None:
            parts.append(self._export_section(hl.section, state))
        for child in hl.children:
            if should_export(child, state.options):
                parts.append(self._export_headline(child, state))
        return "\n".join(parts)

    def _export_section(self, section: OrgNode, state: ExportState) -> str:
        rendered = (self.export_element(child, state) for child in section.children)
        return "\n".join(r for r in rendered if r)

    def _export_children(self, node: OrgNode, state: ExportState) -> str:
        rendered = (self.export_element(child, state) for child in node.children)
        return "\n".join(r for r in rendered if r)

    def _export_src_block(self, block: OrgNode, state: ExportState) -> str:
        exports = self.exports_mode(block.get("parameters")).lower()
        if not self.update_skip_results(state, exports):
            return ""
        code = _fence(block.properties["value"], block.get("language") or "")
        affiliated = block.affiliated
        if affiliated is not None and affiliated.caption:
            code += f"\n*{affiliated.caption_text()}*\n"
        return code

    def _export_quote_block(self, block: OrgNode, state: ExportState) -> str:
        return _indent(self._export_children(block, state).rstrip("\n"), "> ").replace("\n\n", "\n>\n") + "\n"

    def _export_special_block(self, block: OrgNode, state: ExportState) -> str:
        block_type = block.properties["block_type"].lower()
        content = self._export_children(block, state).rstrip("\n")
        if block_type in ("warning", "note", "tip", "important", "caution"):
            body = f"**{block_type.capitalize()}:** {content}"
            return _indent(body, "> ").replace("\n\n", "\n>\n") + "\n"
        return content + "\n"

    def _export_table(self, table: OrgNode, state: ExportState) -> str:
        if not state.options.include_tables:
            return ""
        rows = [
            [self.export_object(cell, state).strip().replace("|", "\\|") for cell in row.children]
            for row in table.children
            if row.get("row_type") != "rule"
        ]
        if not rows:
            return ""
        column_count = max(len(row) for row in rows)
        for row in rows:
            row.extend([""] * (column_count - len(row)))
        widths = [max(3, *(len(row[col]) for row in rows)) for col in range(column_count)]

        def line(cells: list[str]) -> str:
            return "| " + " | ".join(cell.ljust(width) for cell, width in zip(cells, widths)) + " |"

        out = [line(rows[0]), "| " + " | ".join("-" * width for width in widths) + " |"]
        out.extend(line(row) for row in rows[1:])
        caption = ""
        if table.affiliated is not None and table.affiliated.caption:
            caption = f"\n*{table.affiliated.caption_text()}*\n"
        return "\n".join(out) + "\n" + caption

    def _export_plain_list(self, plain_list: OrgNode, state: ExportState) -> str:
        list_type = plain_list.get("list_type") or "unordered"
        out: list[str] = []
        for number, item in enumerate(plain_list.children, start=1):
            out.append(self._export_item(item, state, list_type, number))
        return "".join(out)

    def _export_item(self, item: OrgNode, state: ExportState, list_type: str, number: int) -> str:
        marker = f"{number}." if list_type == "ordered" else "-"
        head = marker + " "
        checkbox = item.get("checkbox")
        if checkbox:
            head += "[" + {"on": "x", "trans": "-"}.get(checkbox, " ") + "] "
        if list_type == "descriptive" and item.get("tag"):
            head += f"**{self.export_objects(item.get('tag'), state)}**: "

        blocks = [self.export_element(child, state).rstrip("\n") for child in item.children]
        blocks = [b for b in blocks if b]
        if not blocks:
            return head.rstrip() + "\n"
        indent = " " * len(marker + " ")
        first, rest = blocks[0], blocks[1:]
        text = head + _indent(first, indent)[len(indent):] if "\n" in first else head + first
        for block in rest:
            text += "\n" + _indent(block, indent)
        return text + "\n"

    def _export_drawer(self, drawer: OrgNode, state: ExportState) -> str:
        if not self.drawer_visible(drawer.properties["name"], state.options):
            return ""
        return self._export_children(drawer, state)

    def _export_fixed_width(self, element: OrgNode, state: ExportState) -> str:
        if state.consume_skip_results():
            return ""
        return _fence(element.properties["value"])

    # ---------------- Objects ------------------------------------------------

    @staticmethod
    def _inline_code(value: str) -> str:
        if "`" in value:
            return f"`` {value} ``"
        return f"`{value}`"

    def _export_link(self, link: OrgNode, state: ExportState) -> str:
        link_type = link.get("link_type") or "fuzzy"
        path = link.get("path") or ""
        raw_link = link.get("raw_link") or path
        description = self.export_objects(link.children, state) if link.children else ""

        if link_type in ("http", "https", "file") or link_type not in (
            "fuzzy", "headline", "custom-id", "id", "internal", "mailto"
        ):
            target = re.sub(r"^file:", "", path) if link_type == "file" else raw_link
            if target.lower().endswith(IMAGE_EXTENSIONS):
                return f"![{description}]({target})"
            if not description and link_type in ("http", "https"):
                return f"<{target}>"
            return f"[{description or target}]({target})"

        if link_type == "mailto":
            return f"[{description or path}](mailto:{path})"
        if link_type == "headline":
            title = path[1:] if path.startswith("*") else path
            return f"[{description or title}](#{generate_id(title)})"
        if link_type == "custom-id":
            custom_id = path.lstrip("#")
            return f"[{description or custom_id}](#{state.custom_ids.get(custom_id, custom_id)})"
        if link_type == "id":
            return f"[{description or path}](#{path})"
        if path in state.custom_ids:
            return f"[{description or path}](#{state.custom_ids[path]})"
        if path in state.targets:
            return f"[{description or path}](#{state.targets[path]})"
        return f"[{description or path}](#{generate_id(path)})"

    def _export_footnote_reference(self, ref: OrgNode, state: ExportState) -> str:
        if state.options.footnotes == "none":
            return ""
        label = ref.get("label")
        if not label:
            state.footnote_counter += 1
            label = str(state.footnote_counter)
        info = state.footnotes.setdefault(label, FootnoteInfo(references=1))
        if ref.children and not info.definition:
            info.definition = [paragraph(*ref.children)]
        return f"[^{label}]"

    def _export_macro(self, macro: OrgNode, state: ExportState) -> str:
        key = macro.properties["key"]
        args = self.macro_args(macro)
        if not state.options.expand_macros:
            return "{{{" + f"{key}({','.join(args)})" + "}}}"
        return expand_macro(key, args, state.options.macros)

    # ---------------- Document structure -------------------------------------

    def generate_toc(self, state: ExportState) -> str:
        toc = state.options.toc
        max_level = toc if isinstance(toc, int) and not isinstance(toc, bool) else 3
        lines = []
        for entry in state.toc_entries:
            if entry.level > max_level:
                continue
            number = f"{entry.number_label} " if entry.number_label else ""
            lines.append(f"{'  ' * (entry.level - 1)}- [{number}{entry.title}](#{entry.id})")
        return "\n".join(lines) + "\n" if lines else ""

    def export_footnotes(self, state: ExportState) -> str:
        if state.options.footnotes == "none":
            return ""
        out: list[str] = []
        for label, info in state.footnotes.items():
            if not info.definition:
                continue
            content = "\n".join(
                self.export_element(el, state).rstrip("\n") for el in info.definition
            ).strip()
            out.append(f"[^{label}]: {_indent(content, '    ')[4:] if content else ''}")
        return "\n".join(out) + "\n" if out else ""


def export_to_markdown(doc: OrgDocument, options: Optional[dict[str, Any]] = None) -> str:
    return MarkdownExportBackend().export_document(doc, options)
