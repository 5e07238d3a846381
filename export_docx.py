#!/usr/bin/env python3
"""
export_docx.py

Word backend built on python-docx.

Unlike the text backends, handlers here do not return strings: element
handlers append paragraphs and tables to `state.document`, object handlers
append runs to `state.paragraph`. Inline formatting (bold inside italic and
so on) is carried on a small stack in the state and applied to every run
created while it is active.

    data = export_to_docx(parse_org_text(text))
    Path("out.docx").write_bytes(data)
"""
from __future__ import annotations

import io
import logging
import os
import re
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Iterator, Optional

from docx import Document
from docx.enum.text import WD_ALIGN_PARAGRAPH, WD_BREAK
from docx.opc.constants import RELATIONSHIP_TYPE as RT
from docx.oxml import OxmlElement
from docx.oxml.ns import qn
from docx.shared import Inches, Pt, RGBColor

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
from org_tree import OrgDocument, OrgNode, paragraph, plain_text_of

logger = logging.getLogger(__name__)

HEADING_COLORS = {1: "2F5496", 2: "2F5496", 3: "1F3763", 4: "1F3763"}
HYPERLINK_COLOR = RGBColor(0x05, 0x63, 0xC1)
MUTED_COLOR = RGBColor(0x80, 0x80, 0x80)
IMAGE_EXTENSIONS = (".png", ".jpg", ".jpeg", ".gif", ".bmp")
ADMONITIONS = ("warning", "note", "tip", "important", "caution")
DOCX_BACKENDS = frozenset({"docx", "word"})
CITATION_LINK_TYPES = frozenset({
    "cite", "citep", "citet", "citeauthor", "citeyear", "citealp", "citealt",
    "parencite", "textcite", "autocite", "footcite", "nocite",
})


@dataclass
class DocxExportOptions(ExportOptions):
    font_family: str = "Calibri"
    font_size: int = 11
    heading_font_family: str = "Calibri Light"
    code_font_family: str = "Consolas"
    code_font_size: int = 10
    toc_depth: int = 3
    # directory relative image paths are resolved against
    base_path: Optional[str] = None
    image_width_inches: float = 6.0


DEFAULT_DOCX_OPTIONS = DocxExportOptions()


@dataclass
class DocxExportState(ExportState):
    document: Any = None
    paragraph: Any = None
    run_format: dict[str, bool] = field(default_factory=dict)
    paragraph_style: Optional[str] = None
    alignment: Any = None
    list_depth: int = 0
    bookmark_counter: int = 0

    @contextmanager
    def formatting(self, **flags: bool) -> Iterator[None]:
        previous = dict(self.run_format)
        self.run_format.update(flags)
        try:
            yield
        finally:
            self.run_format = previous

    @contextmanager
    def block(self, style: Optional[str] = None, alignment: Any = None) -> Iterator[None]:
        previous = (self.paragraph_style, self.alignment)
        if style is not None:
            self.paragraph_style = style
        if alignment is not None:
            self.alignment = alignment
        try:
            yield
        finally:
            self.paragraph_style, self.alignment = previous


def bookmark_name(anchor: str) -> str:
    """Word bookmark names allow letters, digits and underscores only (max 40)."""
    name = re.sub(r"[^A-Za-z0-9_]", "_", anchor)
    if not name or not name[0].isalpha():
        name = "b" + name
    return name[:40]


# ---------------- Low-level docx helpers -------------------------------------

def add_toc_field(paragraph, depth: int = 3) -> None:
    """Insert a TOC field; Word fills it in when fields are updated (F9)."""
    run = paragraph.add_run()
    begin = OxmlElement("w:fldChar")
    begin.set(qn("w:fldCharType"), "begin")
    instr = OxmlElement("w:instrText")
    instr.set(qn("xml:space"), "preserve")
    instr.text = f' TOC \\o "1-{depth}" \\h \\z \\u '
    separate = OxmlElement("w:fldChar")
    separate.set(qn("w:fldCharType"), "separate")
    run._r.append(begin)
    run._r.append(instr)
    run._r.append(separate)

    placeholder = paragraph.add_run("Update field to generate the table of contents")
    placeholder.font.color.rgb = MUTED_COLOR
    placeholder.font.italic = True

    end = OxmlElement("w:fldChar")
    end.set(qn("w:fldCharType"), "end")
    paragraph.add_run()._r.append(end)


def add_bookmark(paragraph, name: str, bookmark_id: int) -> None:
    start = OxmlElement("w:bookmarkStart")
    start.set(qn("w:id"), str(bookmark_id))
    start.set(qn("w:name"), name)
    end = OxmlElement("w:bookmarkEnd")
    end.set(qn("w:id"), str(bookmark_id))
    paragraph._p.append(start)
    paragraph._p.append(end)


def add_hyperlink(paragraph, text: str, url: Optional[str] = None, anchor: Optional[str] = None):
    """
    Append a clickable run. `url` becomes an external relationship of the
    paragraph's part; `anchor` points at a bookmark inside the document.
    """
    hyperlink = OxmlElement("w:hyperlink")
    if url is not None:
        r_id = paragraph.part.relate_to(url, RT.HYPERLINK, is_external=True)
        hyperlink.set(qn("r:id"), r_id)
    else:
        hyperlink.set(qn("w:anchor"), anchor or "")
    run = paragraph.add_run(text)
    run.font.color.rgb = HYPERLINK_COLOR
    run.font.underline = True
    # moving the run element inside <w:hyperlink> keeps its formatting
    hyperlink.append(run._r)
    paragraph._p.append(hyperlink)
    return run


def add_bottom_border(paragraph) -> None:
    p_pr = paragraph._p.get_or_add_pPr()
    borders = OxmlElement("w:pBdr")
    bottom = OxmlElement("w:bottom")
    bottom.set(qn("w:val"), "single")
    bottom.set(qn("w:sz"), "6")
    bottom.set(qn("w:space"), "1")
    bottom.set(qn("w:color"), "auto")
    borders.append(bottom)
    p_pr.append(borders)


def configure_styles(document, opts: DocxExportOptions) -> None:
    normal = document.styles["Normal"]
    normal.font.name = opts.font_family
    normal.font.size = Pt(opts.font_size)
    for level in range(1, 10):
        try:
            style = document.styles[f"Heading {level}"]
        except KeyError:
            continue
        style.font.name = opts.heading_font_family
        color = HEADING_COLORS.get(level, HEADING_COLORS[4])
        style.font.color.rgb = RGBColor.from_string(color)


# ---------------- Backend ----------------------------------------------------

class DocxExportBackend(ExportBackend):
    name = "docx"

    def export_document(self, doc: OrgDocument, options: Optional[dict[str, Any]] = None) -> bytes:
        opts = resolve_options(doc.keywords, options, DEFAULT_DOCX_OPTIONS)
        opts.backend = "docx"
        document = Document()
        configure_styles(document, opts)

        state = DocxExportState(options=opts, document=document)
        self.prepare_state(state, doc)
        self.merge_macros(opts, doc, collect_document_macros(doc.keyword_lists))

        meta = document_metadata(opts, doc.keywords)
        core = document.core_properties
        if meta["title"]:
            core.title = meta["title"]
        if meta["author"]:
            core.author = meta["author"]
        core.language = meta["language"] or ""

        if not opts.body_only:
            if meta["title"]:
                document.add_heading(meta["title"], level=0)
            if meta["author"] and opts.include_author:
                document.add_paragraph(meta["author"])
            if meta["email"] and opts.include_email:
                document.add_paragraph(meta["email"])
            if meta["date"] and opts.include_date:
                document.add_paragraph(meta["date"])

        if opts.toc:
            toc = opts.toc
            depth = toc if isinstance(toc, int) and not isinstance(toc, bool) else opts.toc_depth
            self.insert_toc(state, depth)

        if doc.section is not None:
            self.export_elements(doc.section.children, state)
        for hl in doc.children:
            if should_export(hl, opts):
                self.export_element(hl, state)

        self.export_footnotes(state)

        buffer = io.BytesIO()
        document.save(buffer)
        return buffer.getvalue()

    # ---------------- Dispatch -----------------------------------------------

    def element_handlers(self):
        return {
            "headline": self._export_headline,
            "section": lambda node, state: self.export_elements(node.children, state),
            "paragraph": self._export_paragraph,
            "src-block": self._export_src_block,
            "example-block": lambda b, s: self._code_paragraph(b.properties["value"], s),
            "quote-block": self._export_quote_block,
            "center-block": self._export_center_block,
            "special-block": self._export_special_block,
            "verse-block": self._export_verse_block,
            "latex-environment": lambda e, s: self._code_paragraph(e.properties["value"], s),
            "table": self._export_table,
            "plain-list": self._export_plain_list,
            "drawer": self._export_drawer,
            "property-drawer": lambda node, state: None,
            "planning": self._export_planning,
            "clock": self._export_clock,
            "keyword": lambda node, state: None,
            "horizontal-rule": lambda node, state: add_bottom_border(self._new_paragraph(state)),
            "comment": lambda node, state: None,
            "comment-block": lambda node, state: None,
            "fixed-width": self._export_fixed_width,
            "footnote-definition": lambda node, state: None,
            "export-block": self._export_export_block,
            "babel-call": lambda node, state: None,
        }

    def object_handlers(self):
        return {
            "bold": lambda o, s: self._formatted(o, s, bold=True),
            "italic": lambda o, s: self._formatted(o, s, italic=True),
            "underline": lambda o, s: self._formatted(o, s, underline=True),
            "strike-through": lambda o, s: self._formatted(o, s, strike=True),
            "code": lambda o, s: self._add_run(o.properties["value"], s, code=True),
            "command": lambda o, s: self._add_run(o.properties["value"], s, code=True),
            "verbatim": lambda o, s: self._add_run(o.properties["value"], s, code=True),
            "link": self._export_link,
            "timestamp": lambda o, s: (
                self._add_run(o.get("raw_value") or "", s) if s.options.timestamps else None
            ),
            "entity": lambda o, s: self._add_run(o.get("utf8") or o.properties["name"], s),
            "latex-fragment": lambda o, s: self._add_run(o.properties["value"], s, italic=True),
            "subscript": lambda o, s: self._formatted(o, s, subscript=True),
            "superscript": lambda o, s: self._formatted(o, s, superscript=True),
            "footnote-reference": self._export_footnote_reference,
            "statistics-cookie": lambda o, s: self._add_run(o.properties["value"], s),
            "target": self._export_target,
            "radio-target": lambda o, s: self.export_objects(o.children, s),
            "line-break": lambda o, s: self._current_paragraph(s).add_run().add_break(WD_BREAK.LINE),
            "plain-text": lambda o, s: self._add_run(o.properties["value"], s),
            "inline-src-block": lambda o, s: self._add_run(o.properties["value"], s, code=True),
            "inline-babel-call": lambda o, s: self._add_run(f"call_{o.properties['call']}()", s, code=True),
            "export-snippet": lambda o, s: (
                self._add_run(o.properties["value"], s)
                if o.properties["backend"].lower() in DOCX_BACKENDS else None
            ),
            "macro": self._export_macro,
            "table-cell": lambda o, s: (
                self.export_objects(o.children, s) if o.children else self._add_run(o.get("value") or "", s)
            ),
            "citation": lambda o, s: self._citation_run(o.get("keys") or [], s),
        }

    def unknown_element(self, node_type: str) -> str:
        return f"[Unknown element type: {node_type}]"

    def unknown_object(self, node_type: str) -> str:
        return f"[Unknown object type: {node_type}]"

    # Placeholders come back as strings; everything else writes straight
    # into the document.
    def export_element(self, node: OrgNode, state: DocxExportState) -> None:
        result = super().export_element(node, state)
        if isinstance(result, str) and result:
            placeholder = self._new_paragraph(state).add_run(result)
            placeholder.font.color.rgb = MUTED_COLOR

    def export_object(self, node: OrgNode, state: DocxExportState) -> None:
        result = super().export_object(node, state)
        if isinstance(result, str) and result:
            self._add_run(result, state).font.color.rgb = MUTED_COLOR

    def export_elements(self, nodes: list[OrgNode], state: DocxExportState) -> None:
        for node in nodes:
            self.export_element(node, state)

    def export_objects(self, nodes: list[OrgNode], state: DocxExportState) -> None:
        for node in nodes:
            self.export_object(node, state)

    # ---------------- Paragraph and run plumbing ----------------------------

    def _new_paragraph(self, state: DocxExportState, style: Optional[str] = None):
        para = state.document.add_paragraph(style=style or state.paragraph_style)
        if state.alignment is not None:
            para.alignment = state.alignment
        state.paragraph = para
        return para

    def _current_paragraph(self, state: DocxExportState):
        if state.paragraph is None:
            return self._new_paragraph(state)
        return state.paragraph

    def _add_run(self, value: str, state: DocxExportState, **extra: bool):
        run = self._current_paragraph(state).add_run(value)
        flags = dict(state.run_format)
        flags.update(extra)
        font = run.font
        if flags.get("bold"):
            font.bold = True
        if flags.get("italic"):
            font.italic = True
        if flags.get("underline"):
            font.underline = True
        if flags.get("strike"):
            font.strike = True
        if flags.get("superscript"):
            font.superscript = True
        if flags.get("subscript"):
            font.subscript = True
        if flags.get("code"):
            font.name = state.options.code_font_family
            font.size = Pt(state.options.code_font_size)
        return run

    def _formatted(self, node: OrgNode, state: DocxExportState, **flags: bool) -> None:
        with state.formatting(**flags):
            self.export_objects(node.children, state)

    def _code_paragraph(self, value: str, state: DocxExportState) -> None:
        para = self._new_paragraph(state)
        lines = value.split("\n")
        for index, line in enumerate(lines):
            self._add_run(line, state, code=True)
            if index < len(lines) - 1:
                para.runs[-1].add_break(WD_BREAK.LINE)
        state.paragraph = None

    def _next_bookmark_id(self, state: DocxExportState) -> int:
        state.bookmark_counter += 1
        return state.bookmark_counter

    # ---------------- Elements -----------------------------------------------

    def _export_headline(self, hl: OrgNode, state: DocxExportState) -> None:
        props = hl.properties
        raw_level = int(props["level"])
        heading = state.document.add_heading(level=min(raw_level + state.headline_offset, 9))
        state.paragraph = heading

        if self.headline_numbered(raw_level, state.options):
            heading.add_run(generate_section_number(raw_level, state) + " ")
        if props.get("todo_keyword") and state.options.include_todo:
            todo = heading.add_run(props["todo_keyword"] + " ")
            todo.font.bold = True
        if props.get("priority") and state.options.include_priority:
            heading.add_run(f"[#{props['priority']}] ")
        if props.get("title"):
            self.export_objects(props["title"], state)
        else:
            heading.add_run(props.get("raw_value") or "")
        tags = props.get("tags") or []
        if tags and state.options.include_tags:
            tag_run = heading.add_run("  :" + ":".join(tags) + ":")
            tag_run.font.size = Pt(max(state.options.font_size - 2, 6))
            tag_run.font.color.rgb = MUTED_COLOR
        add_bookmark(heading, bookmark_name(headline_id(hl)), self._next_bookmark_id(state))
        state.paragraph = None

        if hl.section is not None:
            self.export_elements(hl.section.children, state)
        for child in hl.children:
            if should_export(child, state.options):
                self.export_element(child, state)

    def _export_paragraph(self, para: OrgNode, state: DocxExportState) -> None:
        self._new_paragraph(state)
        with state.affiliated_scope(para.affiliated):
            self.export_objects(para.children, state)
        state.paragraph = None

    def _export_src_block(self, block: OrgNode, state: DocxExportState) -> None:
        exports = self.exports_mode(block.get("parameters")).lower()
        if not self.update_skip_results(state, exports):
            return
        self._code_paragraph(block.properties["value"], state)
        self._export_caption(block, state)

    def _export_caption(self, node: OrgNode, state: DocxExportState) -> None:
        if node.affiliated is None or not node.affiliated.caption:
            return
        caption = state.document.add_paragraph()
        run = caption.add_run(node.affiliated.caption_text())
        run.font.italic = True

    def _export_quote_block(self, block: OrgNode, state: DocxExportState) -> None:
        with state.block(style="Quote"):
            self.export_elements(block.children, state)

    def _export_center_block(self, block: OrgNode, state: DocxExportState) -> None:
        with state.block(alignment=WD_ALIGN_PARAGRAPH.CENTER):
            self.export_elements(block.children, state)

    def _export_special_block(self, block: OrgNode, state: DocxExportState) -> None:
        block_type = block.properties["block_type"].lower()
        if block_type not in ADMONITIONS:
            self.export_elements(block.children, state)
            return
        label = self._new_paragraph(state, style="Intense Quote")
        label.add_run(block_type.capitalize()).font.bold = True
        state.paragraph = None
        with state.block(style="Intense Quote"):
            self.export_elements(block.children, state)

    def _export_verse_block(self, block: OrgNode, state: DocxExportState) -> None:
        para = self._new_paragraph(state)
        lines = block.properties["value"].split("\n")
        for index, line in enumerate(lines):
            run = para.add_run(line)
            if index < len(lines) - 1:
                run.add_break(WD_BREAK.LINE)
        state.paragraph = None

    def _export_table(self, table: OrgNode, state: DocxExportState) -> None:
        if not state.options.include_tables:
            return
        if table.get("table_type") == "table.el":
            self._code_paragraph(table.get("value") or "", state)
            return

        rows = [row for row in table.children if row.get("row_type") != "rule"]
        if not rows:
            return
        # a rule right after the first data row marks it as the header
        has_header = False
        for index, row in enumerate(table.children):
            if row.get("row_type") == "rule":
                has_header = index > 0
                break

        column_count = max(len(row.children) for row in rows) or 1
        doc_table = state.document.add_table(rows=len(rows), cols=column_count)
        doc_table.style = "Table Grid"
        for row_index, row in enumerate(rows):
            for col_index, cell in enumerate(row.children):
                state.paragraph = doc_table.cell(row_index, col_index).paragraphs[0]
                if row_index == 0 and has_header:
                    with state.formatting(bold=True):
                        self.export_object(cell, state)
                else:
                    self.export_object(cell, state)
        state.paragraph = None
        self._export_caption(table, state)

    def _export_plain_list(self, plain_list: OrgNode, state: DocxExportState) -> None:
        list_type = plain_list.get("list_type") or "unordered"
        state.list_depth += 1
        try:
            for item in plain_list.children:
                self._export_item(item, state, list_type)
        finally:
            state.list_depth -= 1

    def _list_style(self, list_type: str, depth: int) -> str:
        base = "List Number" if list_type == "ordered" else "List Bullet"
        return base if depth <= 1 else f"{base} {min(depth, 3)}"

    def _export_item(self, item: OrgNode, state: DocxExportState, list_type: str) -> None:
        para = self._new_paragraph(state, style=self._list_style(list_type, state.list_depth))
        checkbox = item.get("checkbox")
        if checkbox:
            para.add_run({"on": "[X] ", "trans": "[-] "}.get(checkbox, "[ ] "))
        if item.get("tag"):
            with state.formatting(bold=True):
                self.export_objects(item.get("tag"), state)
            para.add_run(": ")

        children = list(item.children)
        # the first paragraph shares the bullet's line
        if children and children[0].type == "paragraph":
            self.export_objects(children.pop(0).children, state)
        state.paragraph = None
        self.export_elements(children, state)

    def _export_drawer(self, drawer: OrgNode, state: DocxExportState) -> None:
        if self.drawer_visible(drawer.properties["name"], state.options):
            self.export_elements(drawer.children, state)

    def _export_planning(self, planning: OrgNode, state: DocxExportState) -> None:
        if not state.options.include_planning:
            return
        para = None
        for key in ("closed", "deadline", "scheduled"):
            stamp = planning.get(key)
            if stamp is None:
                continue
            if para is None:
                para = self._new_paragraph(state)
            label = para.add_run(f"{key.upper()}: ")
            label.font.bold = True
            value = para.add_run((stamp.get("raw_value") or "") + " ")
            value.font.color.rgb = MUTED_COLOR
        state.paragraph = None

    def _export_clock(self, clock: OrgNode, state: DocxExportState) -> None:
        if not state.options.include_clocks:
            return
        para = self._new_paragraph(state)
        para.add_run("CLOCK: ").font.bold = True
        value = clock.get("value") or ""
        if clock.get("duration"):
            value += f" => {clock.get('duration')}"
        para.add_run(value).font.color.rgb = MUTED_COLOR
        state.paragraph = None

    def _export_fixed_width(self, element: OrgNode, state: DocxExportState) -> None:
        if state.consume_skip_results():
            return
        self._code_paragraph(element.properties["value"], state)

    def _export_export_block(self, block: OrgNode, state: DocxExportState) -> None:
        if block.properties["backend"].lower() in DOCX_BACKENDS:
            self._new_paragraph(state).add_run(block.properties["value"])
            state.paragraph = None

    # ---------------- Objects ------------------------------------------------

    def _export_link(self, link: OrgNode, state: DocxExportState) -> None:
        link_type = link.get("link_type") or "fuzzy"
        path = link.get("path") or ""
        raw_link = link.get("raw_link") or path
        description = plain_text_of(link.children) if link.children else ""
        para = self._current_paragraph(state)

        if link_type == "file" and not description:
            target = re.sub(r"^file:", "", path)
            if target.lower().endswith(IMAGE_EXTENSIONS) and self._add_image(target, state):
                return
        if link_type in ("http", "https"):
            add_hyperlink(para, description or path, url=path)
        elif link_type == "mailto":
            add_hyperlink(para, description or path, url=f"mailto:{path}")
        elif link_type == "file":
            add_hyperlink(para, description or path, url=path)
        elif link_type == "headline":
            title = path[1:] if path.startswith("*") else path
            add_hyperlink(para, description or title, anchor=bookmark_name(generate_id(title)))
        elif link_type == "custom-id":
            custom_id = path.lstrip("#")
            anchor = state.custom_ids.get(custom_id, custom_id)
            add_hyperlink(para, description or custom_id, anchor=bookmark_name(anchor))
        elif link_type == "id":
            add_hyperlink(para, description or path, anchor=bookmark_name(path))
        elif link_type in ("fuzzy", "internal"):
            anchor = state.custom_ids.get(path) or state.targets.get(path) or generate_id(path)
            add_hyperlink(para, description or path, anchor=bookmark_name(anchor))
        elif link_type.lower() in CITATION_LINK_TYPES:
            keys = [k.strip().lstrip("&").strip() for k in re.split(r"[,;]", path)]
            self._citation_run([k for k in keys if k], state)
        else:
            self._add_run(description or raw_link, state)

    def _add_image(self, target: str, state: DocxExportState) -> bool:
        path = target
        if state.options.base_path and not os.path.isabs(path):
            path = os.path.join(state.options.base_path, path)
        if not os.path.isfile(path):
            logger.warning("docx export: image not found: %s", path)
            return False
        run = self._current_paragraph(state).add_run()
        run.add_picture(path, width=Inches(state.options.image_width_inches))
        affiliated = state.pending.affiliated
        if affiliated is not None and affiliated.caption:
            caption = state.document.add_paragraph()
            caption.add_run(affiliated.caption_text()).font.italic = True
        return True

    def _export_footnote_reference(self, ref: OrgNode, state: DocxExportState) -> None:
        if state.options.footnotes == "none":
            return
        label = ref.get("label")
        if not label:
            state.footnote_counter += 1
            label = str(state.footnote_counter)
        info = state.footnotes.setdefault(label, FootnoteInfo(references=1))
        if ref.children and not info.definition:
            info.definition = [paragraph(*ref.children)]
        self._add_run(f"[{label}]", state, superscript=True)

    def _export_target(self, target: OrgNode, state: DocxExportState) -> None:
        anchor = bookmark_name(generate_id(target.properties["value"]))
        add_bookmark(self._current_paragraph(state), anchor, self._next_bookmark_id(state))

    def _citation_run(self, keys: list[str], state: DocxExportState) -> None:
        self._add_run("[" + "; ".join(keys) + "]", state)

    def _export_macro(self, macro: OrgNode, state: DocxExportState) -> None:
        key = macro.properties["key"]
        args = self.macro_args(macro)
        if not state.options.expand_macros:
            self._add_run("{{{" + f"{key}({','.join(args)})" + "}}}", state)
            return
        self._add_run(expand_macro(key, args, state.options.macros), state)

    # ---------------- Document structure -------------------------------------

    def insert_toc(self, state: DocxExportState, depth: int) -> None:
        state.document.add_heading("Contents", level=1)
        add_toc_field(state.document.add_paragraph(), depth)

    def export_footnotes(self, state: DocxExportState) -> None:
        if state.options.footnotes == "none":
            return
        defined = [(label, info) for label, info in state.footnotes.items() if info.definition]
        if not defined:
            return
        state.document.add_heading("Footnotes", level=1)
        for label, info in defined:
            para = self._new_paragraph(state)
            marker = para.add_run(f"[{label}] ")
            marker.font.superscript = True
            blocks = list(info.definition)
            if blocks and blocks[0].type == "paragraph":
                self.export_objects(blocks.pop(0).children, state)
            state.paragraph = None
            self.export_elements(blocks, state)


def export_to_docx(doc: OrgDocument, options: Optional[dict[str, Any]] = None) -> bytes:
    return DocxExportBackend().export_document(doc, options)
