#!/usr/bin/env python3
"""
export_html.py

HTML5 backend.

    backend = HtmlExportBackend()
    html_text = backend.export_document(doc, {"toc": True})

The document content is:

  preamble section, table of contents, headlines, footnotes, bibliography

wrapped in a full page (head with styles, MathJax and highlight.js; a title
block; a postamble) unless `body_only` is set.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Optional

from export_core import (
    ExportBackend,
    ExportState,
    FootnoteInfo,
    escape_string,
    expand_macro,
    generate_id,
    generate_section_number,
    headline_id,
    should_export,
    timestamp_to_iso,
)
from export_options import (
    ExportOptions,
    collect_document_macros,
    document_metadata,
    resolve_options,
)
from org_tree import OrgDocument, OrgNode, paragraph

logger = logging.getLogger(__name__)

CITATION_LINK_TYPES = frozenset({
    "cite", "citep", "citet", "citeauthor", "citeyear", "citealp", "citealt",
    "citep*", "citet*", "nocite",
})

ADMONITION_TYPES = frozenset({"warning", "note", "tip", "important", "caution"})

IMAGE_EXTENSIONS = (".png", ".jpg", ".jpeg", ".gif", ".svg", ".webp")


def escape_html(text: str) -> str:
    """Escape text for HTML output."""
    return escape_string(text, "html")


@dataclass
class HtmlExportOptions(ExportOptions):
    doctype: str = "<!DOCTYPE html>"
    css: Optional[str] = None
    css_files: list[str] = field(default_factory=list)
    javascript: Optional[str] = None
    js_files: list[str] = field(default_factory=list)
    mathjax: bool = True
    mathjax_url: str = "https://cdn.jsdelivr.net/npm/mathjax@3/es5/tex-mml-chtml.js"
    highlight_js: bool = True
    highlight_js_url: str = "https://cdnjs.cloudflare.com/ajax/libs/highlight.js/11.9.0"
    head_extra: Optional[str] = None
    container_class: str = "org-content"
    postamble: bool = True
    postamble_content: Optional[str] = None
    preamble: bool = False
    preamble_content: Optional[str] = None

    citation_style: str = "apa"
    bibliography: bool = True
    bibliography_title: str = "References"
    # citation key -> formatted reference (plain text)
    bib_entries: dict[str, str] = field(default_factory=dict)


DEFAULT_HTML_OPTIONS = HtmlExportOptions()


@dataclass
class HtmlExportState(ExportState):
    # citation key -> ids of the spans that cite it (for back-links)
    citation_locations: dict[str, list[str]] = field(default_factory=dict)
    citation_counter: int = 0

    def next_citation_id(self) -> str:
        self.citation_counter += 1
        return f"cite-{self.citation_counter}"

    def record_citation(self, key: str, citation_id: str) -> None:
        self.citation_locations.setdefault(key, []).append(citation_id)


def is_image_path(path: str) -> bool:
    """True if the link target looks like an image (query/fragment ignored)."""
    base = path.split("?", 1)[0].split("#", 1)[0].lower()
    return base.endswith(IMAGE_EXTENSIONS)


def build_img_attributes(src: str, alt: str, html_attrs: Optional[dict[str, str]]) -> str:
    """
    Build the attribute string of an <img>.

    `html_attrs` comes from `#+ATTR_HTML: :width 50% :class big`; `src` and
    `alt` given there win over the link.
    """
    attrs: dict[str, str] = {"src": src, "alt": alt}
    for key, value in (html_attrs or {}).items():
        attrs[key] = value
    return "".join(f' {k}="{escape_html(v)}"' for k, v in attrs.items())


class HtmlExportBackend(ExportBackend):
    name = "html"

    # ---------------- Document -----------------------------------------------

    def export_document(self, doc: OrgDocument, options: Optional[dict[str, Any]] = None) -> str:
        opts = resolve_options(doc.keywords, options, DEFAULT_HTML_OPTIONS)
        opts.backend = "html"
        if doc.keywords.get("CSL_STYLE"):
            opts.citation_style = doc.keywords["CSL_STYLE"]

        state = HtmlExportState(options=opts)
        self.prepare_state(state, doc)
        self.merge_macros(opts, doc, collect_document_macros(doc.keyword_lists))

        meta = document_metadata(opts, doc.keywords)
        content = self.export_document_content(doc, state)

        if opts.body_only:
            return content
        return self.wrap_in_html_document(content, meta, opts)

    def export_document_content(self, doc: OrgDocument, state: HtmlExportState) -> str:
        parts: list[str] = []

        if doc.section is not None:
            section_html = self._export_section(doc.section, state)
            if section_html.strip():
                parts.append(f'<div class="org-preamble">{section_html}</div>')

        if state.options.toc:
            toc = self.generate_toc(state)
            if toc:
                parts.append(toc)

        for hl in doc.children:
            if should_export(hl, state.options):
                parts.append(self._export_headline(hl, state))

        footnotes = self.export_footnotes(state)
        if footnotes:
            parts.append(footnotes)

        if state.options.bibliography:
            bibliography = self.generate_bibliography(state)
            if bibliography:
                parts.append(bibliography)

        return "\n".join(parts)

    # ---------------- Dispatch tables ----------------------------------------

    def element_handlers(self):
        return {
            "headline": self._export_headline,
            "section": self._export_section,
            "paragraph": self._export_paragraph,
            "src-block": self._export_src_block,
            "example-block": self._export_example_block,
            "quote-block": self._export_quote_block,
            "center-block": self._export_center_block,
            "special-block": self._export_special_block,
            "verse-block": self._export_verse_block,
            "latex-environment": self._export_latex_environment,
            "table": self._export_table,
            "plain-list": self._export_plain_list,
            "drawer": self._export_drawer,
            "property-drawer": lambda node, state: "",
            "planning": lambda node, state: "",
            "clock": self._export_clock,
            "keyword": self._export_keyword,
            "horizontal-rule": lambda node, state: "<hr />\n",
            "comment": lambda node, state: "",
            "comment-block": lambda node, state: "",
            "fixed-width": self._export_fixed_width,
            "footnote-definition": lambda node, state: "",
            "export-block": self._export_export_block,
            "babel-call": lambda node, state: "",
        }

    def object_handlers(self):
        return {
            "bold": lambda o, s: f"<strong>{self.export_objects(o.children, s)}</strong>",
            "italic": lambda o, s: f"<em>{self.export_objects(o.children, s)}</em>",
            "underline": lambda o, s: f'<span class="org-underline">{self.export_objects(o.children, s)}</span>',
            "strike-through": lambda o, s: f"<del>{self.export_objects(o.children, s)}</del>",
            "code": lambda o, s: f"<code>{escape_html(o.properties['value'])}</code>",
            "command": lambda o, s: f"<kbd>{escape_html(o.properties['value'])}</kbd>",
            "verbatim": lambda o, s: f'<code class="verbatim">{escape_html(o.properties["value"])}</code>',
            "link": self._export_link,
            "timestamp": self._export_timestamp,
            "entity": lambda o, s: o.properties["html"],
            "latex-fragment": self._export_latex_fragment,
            "subscript": lambda o, s: f"<sub>{self.export_objects(o.children, s)}</sub>",
            "superscript": lambda o, s: f"<sup>{self.export_objects(o.children, s)}</sup>",
            "footnote-reference": self._export_footnote_reference,
            "statistics-cookie": lambda o, s: (
                f'<span class="org-statistics-cookie">{escape_html(o.properties["value"])}</span>'
            ),
            "target": self._export_target,
            "radio-target": self._export_radio_target,
            "line-break": lambda o, s: "<br />\n",
            "plain-text": lambda o, s: escape_html(o.properties["value"]),
            "inline-src-block": lambda o, s: (
                f'<code class="src src-{escape_html(o.properties["language"])}">'
                f'{escape_html(o.properties["value"])}</code>'
            ),
            "inline-babel-call": self._export_inline_babel_call,
            "export-snippet": lambda o, s: (
                o.properties["value"] if o.properties["backend"].lower() == "html" else ""
            ),
            "macro": self._export_macro,
            "table-cell": self._export_table_cell,
            "citation": self._export_citation,
        }

    def unknown_element(self, node_type: str) -> str:
        return f"<!-- Unknown element type: {node_type} -->"

    def unknown_object(self, node_type: str) -> str:
        return f"<!-- Unknown object type: {node_type} -->"

    # ---------------- Elements -----------------------------------------------

    def _export_headline(self, hl: OrgNode, state: ExportState) -> str:
        props = hl.properties
        raw_level = int(props["level"])
        level = min(raw_level + state.headline_offset, 6)
        hl_id = headline_id(hl)

        number_label = ""
        if self.headline_numbered(raw_level, state.options):
            number_label = generate_section_number(raw_level, state)

        if props.get("title"):
            title = self.export_objects(props["title"], state)
        else:
            title = escape_html(props.get("raw_value") or "")

        todo = props.get("todo_keyword")
        if todo and state.options.include_todo:
            todo_type = props.get("todo_type") or "todo"
            title = (
                f'<span class="org-todo-keyword org-todo-{todo_type} org-kw-{todo.lower()}">'
                f"{escape_html(todo)}</span> {title}"
            )

        if props.get("priority") and state.options.include_priority:
            title = f'<span class="org-priority">[#{escape_html(props["priority"])}]</span> {title}'

        if number_label:
            title = f'<span class="section-number">{number_label}</span> {title}'

        tags = props.get("tags") or []
        if tags and state.options.include_tags:
            tags_html = "".join(f'<span class="org-tag">{escape_html(t)}</span>' for t in tags)
            title += f'<span class="org-tags">{tags_html}</span>'

        parts = [
            f'<div id="{escape_html(hl_id)}" class="org-section org-level-{raw_level}">',
            f"<h{level}>{title}</h{level}>",
        ]
        if hl.section is not None:
            parts.append(self._export_section(hl.section, state))
        for child in hl.children:
            if should_export(child, state.options):
                parts.append(self._export_headline(child, state))
        parts.append("</div>")
        return "\n".join(parts)

    def _export_section(self, section: OrgNode, state: ExportState) -> str:
        return "\n".join(self.export_element(child, state) for child in section.children)

    def _export_paragraph(self, paragraph: OrgNode, state: ExportState) -> str:
        affiliated = paragraph.affiliated
        image = self._lone_image_link(paragraph)
        if image is not None and affiliated is not None and not affiliated.is_empty():
            return self._export_image_figure(image, paragraph, state)

        with state.affiliated_scope(affiliated):
            content = self.export_objects(paragraph.children, state)
        return f"<p>{content}</p>\n"

    @staticmethod
    def _lone_image_link(paragraph: OrgNode) -> Optional[OrgNode]:
        significant = [
            child for child in paragraph.children
            if not (child.type == "plain-text" and not child.get("value", "").strip())
        ]
        if len(significant) == 1 and significant[0].type == "link":
            link = significant[0]
            if is_image_path(link.get("path") or ""):
                return link
        return None

    def _export_image_figure(self, link: OrgNode, paragraph: OrgNode, state: ExportState) -> str:
        """
        An image alone in its paragraph, with a caption or name: a <figure>.

        ATTR_HTML is applied to the <img>, not the <figure>.
        """
        affiliated = paragraph.affiliated
        src = self._link_href(link, state)
        alt = escape_html(affiliated.caption_text() or "") if affiliated.caption else ""
        img_html = f"<img{build_img_attributes(src, alt, affiliated.attr.get('html'))} />"

        opening = f'<figure id="{escape_html(affiliated.name)}">' if affiliated.name else "<figure>"
        caption = affiliated.caption_text()
        if caption:
            return f"{opening}{img_html}<figcaption>{escape_html(caption)}</figcaption></figure>\n"
        return f"{opening}{img_html}</figure>\n"

    def _export_src_block(self, block: OrgNode, state: ExportState) -> str:
        lang = block.get("language") or "text"
        exports = self.exports_mode(block.get("parameters")).lower()
        if not self.update_skip_results(state, exports):
            return ""

        code = escape_html(block.properties["value"])
        wrapper = '<div class="org-src-container">\n'
        affiliated = block.affiliated
        if affiliated is not None and affiliated.caption:
            wrapper += f'<div class="org-src-caption">{escape_html(affiliated.caption_text())}</div>\n'
        if affiliated is not None and affiliated.name:
            wrapper += f'<a id="{escape_html(affiliated.name)}"></a>\n'
        wrapper += (
            f'<pre class="src src-{lang}"><code class="language-{lang}">{code}</code></pre>\n'
        )
        return wrapper + "</div>\n"

    def _export_example_block(self, block: OrgNode, state: ExportState) -> str:
        return f'<pre class="example">{escape_html(block.properties["value"])}</pre>\n'

    def _export_children(self, node: OrgNode, state: ExportState) -> str:
        return "\n".join(self.export_element(child, state) for child in node.children)

    def _export_quote_block(self, block: OrgNode, state: ExportState) -> str:
        return f"<blockquote>\n{self._export_children(block, state)}</blockquote>\n"

    def _export_center_block(self, block: OrgNode, state: ExportState) -> str:
        return f'<div class="org-center">\n{self._export_children(block, state)}</div>\n'

    def _export_special_block(self, block: OrgNode, state: ExportState) -> str:
        block_type = block.properties["block_type"].lower()
        content = self._export_children(block, state)
        if block_type in ADMONITION_TYPES:
            return f'<div class="org-{block_type} admonition">\n{content}</div>\n'
        return f'<div class="org-special-block org-{block_type}">\n{content}</div>\n'

    def _export_verse_block(self, block: OrgNode, state: ExportState) -> str:
        lines = block.properties["value"].split("\n")
        content = "<br />\n".join(escape_html(line) for line in lines)
        return f'<p class="verse">\n{content}</p>\n'

    def _export_latex_environment(self, env: OrgNode, state: ExportState) -> str:
        # raw: MathJax needs the LaTeX source untouched
        return f'<div class="org-latex-environment">\n{env.properties["value"]}\n</div>\n'

    def _export_table(self, table: OrgNode, state: ExportState) -> str:
        if not state.options.include_tables:
            return ""

        if table.get("table_type") == "table.el":
            return f'<pre class="table-el">{escape_html(table.get("value") or "")}</pre>\n'

        out = ['<table class="org-table">\n']
        if table.affiliated is not None and table.affiliated.caption:
            out.append(f"<caption>{escape_html(table.affiliated.caption_text())}</caption>\n")

        header_rows: list[OrgNode] = []
        body_rows: list[OrgNode] = []
        in_header = True
        for row in table.children:
            if row.get("row_type") == "rule":
                in_header = False
                continue
            (header_rows if in_header else body_rows).append(row)

        # no rule: everything is body
        if not body_rows and header_rows:
            body_rows, header_rows = header_rows, []

        if header_rows:
            out.append("<thead>\n")
            out.extend(self._export_table_row(row, state, True) for row in header_rows)
            out.append("</thead>\n")
        if body_rows:
            out.append("<tbody>\n")
            out.extend(self._export_table_row(row, state, False) for row in body_rows)
            out.append("</tbody>\n")
        out.append("</table>\n")
        return "".join(out)

    def _export_table_row(self, row: OrgNode, state: ExportState, is_header: bool) -> str:
        tag = "th" if is_header else "td"
        cells = "".join(
            f"<{tag}>{self.export_object(cell, state)}</{tag}>" for cell in row.children
        )
        return f"<tr>{cells}</tr>\n"

    def _export_plain_list(self, plain_list: OrgNode, state: ExportState) -> str:
        list_type = plain_list.get("list_type") or "unordered"
        tag = {"ordered": "ol", "descriptive": "dl"}.get(list_type, "ul")
        items = "".join(self._export_item(item, state, list_type) for item in plain_list.children)
        return f"<{tag}>\n{items}</{tag}>\n"

    def _export_item(self, item: OrgNode, state: ExportState, list_type: str) -> str:
        out: list[str] = []
        if list_type == "descriptive":
            term = self.export_objects(item.get("tag") or [], state)
            out.append(f"<dt>{term}</dt>\n<dd>")
        else:
            out.append("<li>")
            checkbox = item.get("checkbox")
            if checkbox:
                checked = "checked" if checkbox == "on" else ""
                indeterminate = 'class="indeterminate"' if checkbox == "trans" else ""
                out.append(f'<input type="checkbox" {checked} {indeterminate} disabled /> ')

        out.extend(self.export_element(child, state) for child in item.children)
        out.append("</dd>\n" if list_type == "descriptive" else "</li>\n")
        return "".join(out)

    def _export_drawer(self, drawer: OrgNode, state: ExportState) -> str:
        name = drawer.properties["name"]
        if not self.drawer_visible(name, state.options):
            return ""
        content = "\n".join(self.export_element(child, state) for child in drawer.children)
        if name.upper() == "LOGBOOK":
            return f'<div class="org-drawer org-logbook">\n{content}</div>\n'
        return f'<div class="org-drawer org-drawer-{name.lower()}">\n{content}</div>\n'

    def _export_clock(self, clock: OrgNode, state: ExportState) -> str:
        if not state.options.include_clocks:
            return ""
        duration = clock.get("duration")
        suffix = f' <span class="org-clock-duration">{escape_html(duration)}</span>' if duration else ""
        return f'<p class="org-clock">CLOCK: {escape_html(clock.get("value") or "")}{suffix}</p>\n'

    def _export_keyword(self, keyword: OrgNode, state: ExportState) -> str:
        if keyword.properties["key"].upper() == "TOC":
            return "<!-- TOC placeholder -->"
        return ""

    def _export_fixed_width(self, element: OrgNode, state: ExportState) -> str:
        if state.consume_skip_results():
            return ""
        return f'<pre class="fixed-width">{escape_html(element.properties["value"])}</pre>\n'

    def _export_export_block(self, block: OrgNode, state: ExportState) -> str:
        if block.properties["backend"].lower() == "html":
            return block.properties["value"] + "\n"
        return ""

    # ---------------- Objects ------------------------------------------------

    def _link_href(self, link: OrgNode, state: ExportState) -> str:
        link_type = link.get("link_type") or "fuzzy"
        path = link.get("path") or ""
        raw_link = link.get("raw_link")

        if link_type in ("http", "https"):
            return path
        if link_type == "file":
            return re.sub(r"\.(org|md)$", ".html", re.sub(r"^file:", "", path), flags=re.IGNORECASE)
        if link_type == "id":
            return f"#{path}"
        if link_type == "custom-id":
            return path if path.startswith("#") else f"#{path}"
        if link_type == "headline":
            return f"#{generate_id(path[1:] if path.startswith('*') else path)}"
        if link_type == "internal":
            return f"#{generate_id(path)}"
        if link_type == "mailto":
            return f"mailto:{path}"
        if link_type == "fuzzy":
            if path in state.custom_ids:
                return f"#{state.custom_ids[path]}"
            if path in state.targets:
                return f"#{state.targets[path]}"
            return f"#{generate_id(path)}"
        if path in state.custom_ids:
            return f"#{state.custom_ids[path]}"
        return raw_link or path

    def _export_link(self, link: OrgNode, state: HtmlExportState) -> str:
        link_type = (link.get("link_type") or "fuzzy")
        path = link.get("path") or ""

        if link_type.lower() in CITATION_LINK_TYPES:
            return self._export_citation_link(link, state)
        if link_type in ("bibliography", "bibliographystyle", "bibstyle"):
            # bibliography metadata; the list itself is generated from bib_entries
            return ""

        href = self._link_href(link, state)
        if is_image_path(path):
            alt = self.export_objects(link.children, state) if link.children else ""
            attrs = None
            affiliated = state.pending.affiliated
            if affiliated is not None:
                attrs = affiliated.attr.get("html")
            return f"<img{build_img_attributes(href, alt, attrs)} />"

        if link.children:
            description = self.export_objects(link.children, state)
        else:
            description = escape_html(link.get("raw_link") or path)
        return f'<a href="{escape_html(href)}">{description}</a>'

    def _export_citation_link(self, link: OrgNode, state: HtmlExportState) -> str:
        command = (link.get("link_type") or "cite").lower()
        path = link.get("path") or ""
        citation_id = state.next_citation_id()

        keys = [k.strip().lstrip("&").strip() for k in re.split(r"[,;]", path.lstrip("&"))]
        keys = [k for k in keys if k]
        for key in keys:
            state.record_citation(key, citation_id)

        linked = ", ".join(
            f'<a href="#ref-{escape_html(k)}" class="citation-link">{escape_html(k)}</a>' for k in keys
        )
        if command in ("citet", "citeauthor"):
            return f'<span class="citation citation-{command}" id="{citation_id}">{linked}</span>'
        return f'<span class="citation citation-{command}" id="{citation_id}">({linked})</span>'

    def _export_citation(self, citation: OrgNode, state: HtmlExportState) -> str:
        keys = citation.get("keys") or []
        if not keys:
            return escape_html(citation.get("raw_value") or "")

        links: list[str] = []
        for key in keys:
            citation_id = state.next_citation_id()
            state.record_citation(key, citation_id)
            escaped = escape_html(key)
            links.append(
                f'<a id="{citation_id}" href="#ref-{escaped}" class="org-ref-reference">{escaped}</a>'
            )

        if citation.get("style") in ("t", "text"):
            return " and ".join(links)
        return f"({'; '.join(links)})"

    def _export_timestamp(self, ts: OrgNode, state: ExportState) -> str:
        if not state.options.timestamps:
            return ""
        iso = timestamp_to_iso(ts)
        display = escape_html(ts.get("raw_value") or iso)
        return f'<span class="org-timestamp"><time datetime="{iso}">{display}</time></span>'

    def _export_latex_fragment(self, fragment: OrgNode, state: ExportState) -> str:
        value = fragment.properties["value"]
        kind = fragment.get("fragment_type")
        if kind == "inline-math":
            if value.startswith("$"):
                return f"\\({escape_html(value[1:-1])}\\)"
            if value.startswith("\\("):
                return f"\\({escape_html(value[2:-2])}\\)"
        elif kind == "display-math":
            if value.startswith("$$") or value.startswith("\\["):
                return f"\\[{escape_html(value[2:-2])}\\]"
        return escape_html(value)

    def _export_footnote_reference(self, ref: OrgNode, state: ExportState) -> str:
        label = ref.get("label")
        if not label:
            state.footnote_counter += 1
            label = str(state.footnote_counter)
        if label not in state.footnotes or (ref.children and not state.footnotes[label].definition):
            self._register_inline_footnote(label, ref, state)
        return (
            f'<sup><a href="#fn-{label}" id="fnr-{label}" class="org-footnote-ref">[{label}]</a></sup>'
        )

    @staticmethod
    def _register_inline_footnote(label: str, ref: OrgNode, state: ExportState) -> None:
        info = state.footnotes.setdefault(label, FootnoteInfo(references=1))
        if ref.children:
            info.definition = [paragraph(*ref.children)]

    def _export_target(self, target: OrgNode, state: ExportState) -> str:
        value = target.properties["value"]
        target_id = generate_id(value)
        state.targets[value] = target_id
        return f'<a id="{target_id}"></a>'

    def _export_radio_target(self, target: OrgNode, state: ExportState) -> str:
        content = self.export_objects(target.children, state)
        target_id = generate_id(content)
        state.radio_targets[content] = target_id
        return f'<a id="{target_id}">{content}</a>'

    def _export_inline_babel_call(self, call: OrgNode, state: ExportState) -> str:
        result = f"call_{escape_html(call.properties['call'])}"
        if call.get("inside_header"):
            result += f"[{escape_html(call.get('inside_header'))}]"
        result += f"({escape_html(call.get('arguments') or '')})"
        if call.get("end_header"):
            result += f"[{escape_html(call.get('end_header'))}]"
        return f'<code class="babel-call">{result}</code>'

    def _export_macro(self, macro: OrgNode, state: ExportState) -> str:
        key = macro.properties["key"]
        args = self.macro_args(macro)
        if not state.options.expand_macros:
            return "{{{" + f"{key}({','.join(args)})" + "}}}"
        return escape_html(expand_macro(key, args, state.options.macros))

    def _export_table_cell(self, cell: OrgNode, state: ExportState) -> str:
        if cell.children:
            return self.export_objects(cell.children, state)
        return escape_html(cell.get("value") or "")

    # ---------------- Document structure -------------------------------------

    def generate_toc(self, state: ExportState) -> str:
        if not state.toc_entries:
            return ""
        toc = state.options.toc
        max_level = toc if isinstance(toc, int) and not isinstance(toc, bool) else 3

        out = ['<nav id="table-of-contents" class="org-toc">\n', "<h2>Table of Contents</h2>\n"]
        prev_level = 0
        for entry in state.toc_entries:
            if entry.level > max_level:
                continue
            while prev_level < entry.level:
                out.append("<ul>\n")
                prev_level += 1
            while prev_level > entry.level:
                out.append("</ul>\n")
                prev_level -= 1
            number = f"{entry.number_label} " if entry.number_label else ""
            out.append(f'<li><a href="#{entry.id}">{number}{escape_html(entry.title)}</a></li>\n')
        while prev_level > 0:
            out.append("</ul>\n")
            prev_level -= 1
        out.append("</nav>\n")
        return "".join(out)

    def export_footnotes(self, state: ExportState) -> str:
        if not state.footnotes or state.options.footnotes == "none":
            return ""
        out = ['<div id="footnotes" class="org-footnotes">\n', "<h2>Footnotes</h2>\n"]
        for label, info in state.footnotes.items():
            out.append(f'<div id="fn-{label}" class="org-footnote">\n')
            out.append(f'<a href="#fnr-{label}">[{label}]</a> ')
            for definition in info.definition or []:
                out.append(self.export_element(definition, state))
            out.append("</div>\n")
        out.append("</div>\n")
        return "".join(out)

    def generate_bibliography(self, state: HtmlExportState) -> str:
        """
        One entry per cited key that has a formatted reference in
        `bib_entries`, in order of first citation, each with back-links to
        the places that cite it.
        """
        entries = state.options.bib_entries
        if not entries or not state.citation_locations:
            return ""

        out = [
            f'<div id="bibliography" class="bibliography" data-style="{escape_html(state.options.citation_style)}">\n',
            f"<h2>{escape_html(state.options.bibliography_title)}</h2>\n",
            '<div class="csl-bib-body">\n',
        ]
        listed = 0
        for key, citation_ids in state.citation_locations.items():
            reference = entries.get(key)
            if reference is None:
                logger.debug("No bibliography entry for cited key %r", key)
                continue
            backlinks = "".join(
                f'<a href="#{cid}" class="citation-backlink">&#8617;</a>' for cid in citation_ids
            )
            out.append(
                f'<div class="csl-entry" id="ref-{escape_html(key)}">{escape_html(reference)}'
                f'<span class="citation-backlinks">{backlinks}</span></div>\n'
            )
            listed += 1
        if not listed:
            return ""
        out.append("</div>\n</div>\n")
        return "".join(out)

    def wrap_in_html_document(self, content: str, meta: dict[str, Optional[str]],
                              opts: HtmlExportOptions) -> str:
        title = meta["title"] or "Untitled"
        author = meta["author"] or ""
        email = meta["email"] or ""
        date = meta["date"] or ""

        parts = [
            opts.doctype or "<!DOCTYPE html>",
            f'<html lang="{escape_html(meta["language"] or "en")}">',
            "<head>",
            '<meta charset="utf-8" />',
            '<meta name="viewport" content="width=device-width, initial-scale=1" />',
            f"<title>{escape_html(title)}</title>",
        ]
        if author:
            parts.append(f'<meta name="author" content="{escape_html(author)}" />')
        for css in opts.css_files:
            parts.append(f'<link rel="stylesheet" href="{css}" />')
        if opts.css:
            parts.append(f"<style>{opts.css}</style>")
        parts.append(DEFAULT_STYLES)
        if opts.mathjax:
            parts.append(
                '<script>MathJax={tex:{inlineMath:[["\\\\(","\\\\)"]],'
                'displayMath:[["\\\\[","\\\\]"]]}};</script>'
            )
            parts.append(f'<script id="MathJax-script" async src="{opts.mathjax_url}"></script>')
        if opts.highlight_js:
            parts.append(f'<link rel="stylesheet" href="{opts.highlight_js_url}/styles/default.min.css" />')
            parts.append(f'<script src="{opts.highlight_js_url}/highlight.min.js"></script>')
            parts.append("<script>hljs.highlightAll();</script>")
        if opts.head_extra:
            parts.append(opts.head_extra)
        parts.append("</head>")

        parts.append("<body>")
        if opts.preamble and opts.preamble_content:
            parts.append(f'<div id="preamble">{opts.preamble_content}</div>')
        parts.append(f'<main class="{opts.container_class or "org-content"}">')

        parts.append('<header id="title-block">')
        parts.append(f'<h1 class="title">{escape_html(title)}</h1>')
        if author and opts.include_author:
            author_html = escape_html(author)
            if email and opts.include_email:
                author_html += (
                    f' <a href="mailto:{escape_html(email)}">&lt;{escape_html(email)}&gt;</a>'
                )
            parts.append(f'<p class="author">{author_html}</p>')
        if date and opts.include_date:
            parts.append(f'<p class="date">{escape_html(date)}</p>')
        parts.append("</header>")

        parts.append(content)
        parts.append("</main>")

        if opts.postamble:
            postamble = opts.postamble_content or "<p>Generated by org-mode export</p>"
            parts.append(f'<footer id="postamble">{postamble}</footer>')
        for js in opts.js_files:
            parts.append(f'<script src="{js}"></script>')
        if opts.javascript:
            parts.append(f"<script>{opts.javascript}</script>")

        parts.append("</body>")
        parts.append("</html>")
        return "\n".join(parts)


DEFAULT_STYLES = """<style>
.org-content { max-width: 800px; margin: 0 auto; padding: 2rem; font-family: system-ui, sans-serif; line-height: 1.6; }
.org-section { margin-bottom: 2rem; }
.org-todo-keyword { font-weight: bold; padding: 0.1em 0.4em; border-radius: 3px; margin-right: 0.3em; }
.org-todo-todo, .org-kw-todo { color: #c92a2a; }
.org-todo-done, .org-kw-done { color: #2f9e44; }
.org-kw-next { color: #1971c2; }
.org-kw-waiting { color: #e67700; }
.org-kw-cancelled { color: #868e96; text-decoration: line-through; }
.org-priority { color: #e67700; font-weight: bold; }
.org-tags { float: right; font-size: 0.8em; }
.org-tag { background: #e9ecef; padding: 0.2em 0.5em; border-radius: 3px; margin-left: 0.3em; }
.org-timestamp { font-family: monospace; background: #f1f3f5; padding: 0.1em 0.3em; border-radius: 3px; }
.org-src-container { margin: 1rem 0; }
.src { background: #f8f9fa; padding: 1rem; border-radius: 4px; overflow-x: auto; }
pre.example { background: #fff3bf; padding: 1rem; border-radius: 4px; }
blockquote { border-left: 4px solid #ced4da; margin: 1rem 0; padding-left: 1rem; color: #495057; }
.org-center { text-align: center; }
.verse { white-space: pre-line; font-style: italic; }
.org-table { border-collapse: collapse; margin: 1rem 0; }
.org-table th, .org-table td { border: 1px solid #dee2e6; padding: 0.5rem; }
.org-table th { background: #f8f9fa; }
.org-footnote-ref { font-size: 0.8em; }
.org-footnotes { border-top: 1px solid #dee2e6; margin-top: 2rem; padding-top: 1rem; font-size: 0.9em; }
.org-underline { text-decoration: underline; }
.org-statistics-cookie { font-family: monospace; }
.org-toc { background: #f8f9fa; padding: 1rem; border-radius: 4px; margin-bottom: 2rem; }
.org-toc ul { list-style: none; padding-left: 1rem; }
.section-number { color: #868e96; margin-right: 0.5em; }
.admonition { padding: 1rem; margin: 1rem 0; border-radius: 4px; border-left: 4px solid; }
.admonition.org-warning { background: #fff5f5; border-color: #fa5252; }
.admonition.org-note { background: #e7f5ff; border-color: #339af0; }
.admonition.org-tip { background: #ebfbee; border-color: #40c057; }
.admonition.org-important { background: #fff9db; border-color: #fab005; }
.citation a, .citation-link { color: #1971c2; text-decoration: none; }
.citation:target, .bibliography .csl-entry:target { background-color: #fff3bf; }
.bibliography { margin-top: 2rem; padding-top: 1rem; border-top: 1px solid #dee2e6; }
.bibliography .csl-entry { margin-bottom: 0.75rem; padding-left: 2em; text-indent: -2em; }
.citation-backlinks { font-size: 0.85em; color: #868e96; margin-left: 0.5em; }
.citation-backlink { color: #1971c2; text-decoration: none; margin: 0 0.1em; }
</style>"""


def export_to_html(doc: OrgDocument, options: Optional[dict[str, Any]] = None) -> str:
    return HtmlExportBackend().export_document(doc, options)
