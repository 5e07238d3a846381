#!/usr/bin/env python3
"""
export_latex.py

LaTeX backend.

Option precedence (lowest first):

  DEFAULT_LATEX_OPTIONS < #+OPTIONS: < caller mapping
      < #+LATEX_CLASS: / #+LATEX_CLASS_OPTIONS: / #+LATEX_HEADER: / #+LATEX_NO_DEFAULTS:

The document shell has three modes:

  custom_header  the given text replaces everything before \\title
  no_defaults    \\documentclass plus the user preamble, nothing else
  (normal)       \\documentclass, the default packages, the user preamble

Example:
    backend = LatexExportBackend()
    tex = backend.export_document(doc, {"minted": False, "listings": True})
"""
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from typing import Any, Optional

from export_core import (
    ExportBackend,
    ExportState,
    escape_string,
    expand_macro,
    generate_id,
    headline_id,
    should_export,
)
from export_options import (
    ExportOptions,
    collect_document_macros,
    document_metadata,
    resolve_options,
)
from org_tree import OrgDocument, OrgNode

logger = logging.getLogger(__name__)


def escape_latex(text: str) -> str:
    return escape_string(text, "latex")


def _default_hyperref_options() -> dict[str, str]:
    # an empty value renders as a bare key
    return {
        "linktocpage": "",
        "pdfstartview": "FitH",
        "colorlinks": "",
        "linkcolor": "blue",
        "anchorcolor": "blue",
        "citecolor": "blue",
        "filecolor": "blue",
        "menucolor": "blue",
        "urlcolor": "blue",
    }


@dataclass
class LatexExportOptions(ExportOptions):
    document_class: str = "article"
    class_options: list[str] = field(default_factory=lambda: ["11pt", "a4paper"])
    packages: list[str] = field(default_factory=list)
    preamble: str = ""
    custom_header: Optional[str] = None
    no_defaults: bool = False
    hyperref: bool = True
    hyperref_options: dict[str, str] = field(default_factory=_default_hyperref_options)
    listings: bool = False
    minted: bool = True
    image_width: str = "0.8\\textwidth"
    float_placement: str = "htbp"
    booktabs: bool = True
    bib_style: str = "plain"
    bib_file: Optional[str] = None
    sec_num_depth: int = 3
    toc_depth: int = 3
    # 1 = top headlines are \section, 0 = \chapter
    headline_start_level: int = 1


DEFAULT_LATEX_OPTIONS = LatexExportOptions()

LATEX_SECTIONS = (
    "\\part",
    "\\chapter",
    "\\section",
    "\\subsection",
    "\\subsubsection",
    "\\paragraph",
    "\\subparagraph",
)

THEOREM_LIKE = frozenset({"theorem", "lemma", "corollary", "definition", "example", "remark"})
ADMONITION_TYPES = frozenset({"warning", "note", "tip", "important", "caution"})
IMAGE_EXTENSIONS = (".png", ".jpg", ".jpeg", ".gif", ".pdf", ".eps", ".svg")

CITE_COMMANDS = {
    "cite": "cite",
    "citep": "citep",
    "Citep": "citep",
    "citet": "citet",
    "Citet": "citet",
    "citeauthor": "citeauthor",
    "citeyear": "citeyear",
    "citealp": "citealp",
    "citealt": "citealt",
    "nocite": "nocite",
}

REFERENCE_COMMANDS = frozenset({
    "ref", "eqref", "pageref", "nameref", "autoref", "cref", "Cref", "label",
})

# citation style -> command
CITATION_STYLES = {
    "t": "citet",
    "text": "citet",
    "a": "citeauthor",
    "author": "citeauthor",
    "na": "citeyear",
    "noauthor": "citeyear",
    "n": "nocite",
    "nocite": "nocite",
}

MINTED_LANGUAGES = {
    "jupyter-python": "python",
    "jupyter-julia": "julia",
    "jupyter-r": "r",
    "sh": "bash",
    "shell": "bash",
    "elisp": "common-lisp",
    "emacs-lisp": "common-lisp",
    "js": "javascript",
    "ts": "typescript",
    "py": "python",
}

LISTINGS_LANGUAGES = {
    "python": "Python",
    "py": "Python",
    "jupyter-python": "Python",
    "javascript": "JavaScript",
    "js": "JavaScript",
    "typescript": "JavaScript",
    "ts": "JavaScript",
    "java": "Java",
    "c": "C",
    "cpp": "C++",
    "c++": "C++",
    "ruby": "Ruby",
    "perl": "Perl",
    "php": "PHP",
    "sh": "bash",
    "bash": "bash",
    "shell": "bash",
    "sql": "SQL",
    "html": "HTML",
    "xml": "XML",
    "latex": "TeX",
    "tex": "TeX",
    "lisp": "Lisp",
    "elisp": "Lisp",
    "emacs-lisp": "Lisp",
    "scheme": "Lisp",
    "haskell": "Haskell",
    "ocaml": "ML",
    "r": "R",
    "jupyter-r": "R",
    "matlab": "Matlab",
    "fortran": "Fortran",
    "go": "Go",
}

_VERB_DELIMITERS = "|!@#+=:;<>,.?/"
_CLASS_OPTIONS_RE = re.compile(r"^\[([^\]]*)\]$")


def map_minted_language(lang: str) -> str:
    return MINTED_LANGUAGES.get(lang.lower(), lang.lower())


def map_listings_language(lang: str) -> str:
    return LISTINGS_LANGUAGES.get(lang.lower(), lang)


def _escape_url(url: str) -> str:
    return re.sub(r"([%#])", r"\\\1", url)


def _is_image(path: str) -> bool:
    return path.lower().endswith(IMAGE_EXTENSIONS)


# ---------------- Options ----------------------------------------------------

def resolve_latex_options(doc: OrgDocument, caller_options: Optional[dict[str, Any]] = None) -> LatexExportOptions:
    """
    Common resolution, then the LaTeX document keywords on top.

    Example:
        #+LATEX_CLASS: report
        #+LATEX_CLASS_OPTIONS: [12pt,twocolumn]
    ->  document_class='report', class_options=['12pt', 'twocolumn']
        (whatever the caller passed for either)
    """
    opts = resolve_options(doc.keywords, caller_options, DEFAULT_LATEX_OPTIONS)
    opts.backend = "latex"
    opts.class_options = list(opts.class_options)
    opts.packages = list(opts.packages)
    opts.hyperref_options = dict(opts.hyperref_options)

    keywords = doc.keywords
    if keywords.get("LATEX_CLASS"):
        opts.document_class = keywords["LATEX_CLASS"].strip()

    class_options = keywords.get("LATEX_CLASS_OPTIONS")
    if class_options:
        match = _CLASS_OPTIONS_RE.match(class_options.strip())
        if match:
            opts.class_options = [o.strip() for o in match.group(1).split(",") if o.strip()]
        else:
            logger.debug("Ignoring LATEX_CLASS_OPTIONS without brackets: %r", class_options)

    headers = doc.keyword_lists.get("LATEX_HEADER") or []
    if headers:
        opts.preamble = "\n".join(([opts.preamble] if opts.preamble else []) + list(headers))

    no_defaults = (keywords.get("LATEX_NO_DEFAULTS") or "").strip().lower()
    if no_defaults in ("t", "true"):
        opts.no_defaults = True

    if not opts.bib_file and keywords.get("BIBLIOGRAPHY"):
        opts.bib_file = keywords["BIBLIOGRAPHY"].strip()
    return opts


class LatexExportBackend(ExportBackend):
    name = "latex"

    # ---------------- Document -----------------------------------------------

    def export_document(self, doc: OrgDocument, options: Optional[dict[str, Any]] = None) -> str:
        opts = resolve_latex_options(doc, options)
        state = ExportState(options=opts)
        self.prepare_state(state, doc)
        self.merge_macros(opts, doc, collect_document_macros(doc.keyword_lists))

        meta = document_metadata(opts, doc.keywords)
        content = self.export_document_content(doc, state)
        if opts.body_only:
            return content
        return self.wrap_in_latex_document(content, meta, opts)

    def export_document_content(self, doc: OrgDocument, state: ExportState) -> str:
        parts: list[str] = []
        if doc.section is not None:
            section_tex = self._export_section(doc.section, state)
            if section_tex.strip():
                parts.append(section_tex)
        for hl in doc.children:
            if should_export(hl, state.options):
                parts.append(self._export_headline(hl, state))
        return "\n\n".join(parts)

    # ---------------- Dispatch tables ----------------------------------------

    def element_handlers(self):
        return {
            "headline": self._export_headline,
            "section": self._export_section,
            "paragraph": self._export_paragraph,
            "src-block": self._export_src_block,
            "example-block": lambda b, s: f"\\begin{{verbatim}}\n{b.properties['value']}\n\\end{{verbatim}}\n",
            "quote-block": lambda b, s: self._environment("quote", b, s),
            "center-block": lambda b, s: self._environment("center", b, s),
            "special-block": self._export_special_block,
            "verse-block": self._export_verse_block,
            "latex-environment": lambda e, s: e.properties["value"] + "\n",
            "table": self._export_table,
            "plain-list": self._export_plain_list,
            "drawer": self._export_drawer,
            "property-drawer": lambda node, state: "",
            "planning": lambda node, state: "",
            "clock": self._export_clock,
            "keyword": self._export_keyword,
            "horizontal-rule": lambda node, state: "\\noindent\\rule{\\textwidth}{0.4pt}\n",
            "comment": lambda node, state: "",
            "comment-block": lambda node, state: "",
            "fixed-width": self._export_fixed_width,
            # rendered in place through \footnote
            "footnote-definition": lambda node, state: "",
            "export-block": lambda b, s: (
                b.properties["value"] + "\n" if b.properties["backend"].lower() == "latex" else ""
            ),
            "babel-call": lambda node, state: "",
        }

    def object_handlers(self):
        return {
            "bold": lambda o, s: f"\\textbf{{{self.export_objects(o.children, s)}}}",
            "italic": lambda o, s: f"\\textit{{{self.export_objects(o.children, s)}}}",
            "underline": lambda o, s: f"\\underline{{{self.export_objects(o.children, s)}}}",
            "strike-through": lambda o, s: f"\\sout{{{self.export_objects(o.children, s)}}}",
            "code": self._export_code,
            "command": lambda o, s: f"\\texttt{{{escape_latex(o.properties['value'])}}}",
            "verbatim": lambda o, s: f"\\texttt{{{escape_latex(o.properties['value'])}}}",
            "link": self._export_link,
            "timestamp": self._export_timestamp,
            "entity": lambda o, s: o.properties["latex"],
            "latex-fragment": lambda o, s: o.properties["value"],
            "subscript": lambda o, s: f"\\textsubscript{{{self.export_objects(o.children, s)}}}",
            "superscript": lambda o, s: f"\\textsuperscript{{{self.export_objects(o.children, s)}}}",
            "footnote-reference": self._export_footnote_reference,
            "statistics-cookie": self._export_statistics_cookie,
            "target": self._export_target,
            "radio-target": self._export_radio_target,
            "line-break": lambda o, s: "\\\\\n",
            "plain-text": lambda o, s: escape_latex(o.properties["value"]),
            "inline-src-block": lambda o, s: f"\\texttt{{{escape_latex(o.properties['value'])}}}",
            "inline-babel-call": self._export_inline_babel_call,
            "export-snippet": lambda o, s: (
                o.properties["value"] if o.properties["backend"].lower() == "latex" else ""
            ),
            "macro": self._export_macro,
            "table-cell": self._export_table_cell,
            "citation": self._export_citation,
        }

    def unknown_element(self, node_type: str) -> str:
        return f"% Unknown element type: {node_type}\n"

    def unknown_object(self, node_type: str) -> str:
        return f"% Unknown object type: {node_type}\n"

    # ---------------- Elements -----------------------------------------------

    def _export_headline(self, hl: OrgNode, state: ExportState) -> str:
        props = hl.properties
        opts: LatexExportOptions = state.options
        raw_level = int(props["level"])
        level = raw_level + state.headline_offset
        index = min(level + opts.headline_start_level, len(LATEX_SECTIONS) - 1)
        command = LATEX_SECTIONS[index]

        if props.get("title"):
            title = self.export_objects(props["title"], state)
        else:
            title = escape_latex(props.get("raw_value") or "")

        todo = props.get("todo_keyword")
        if todo and opts.include_todo:
            title = f"\\textbf{{{escape_latex(todo)}}} {title}"
        if props.get("priority") and opts.include_priority:
            title = f"[\\#{escape_latex(props['priority'])}] {title}"

        tags = props.get("tags") or []
        if tags and opts.include_tags:
            title = f"{title} \\hfill :{':'.join(escape_latex(t) for t in tags)}:"

        numbered = self.headline_numbered(raw_level, opts) and "nonum" not in tags
        star = "" if numbered else "*"

        parts = [f"{command}{star}{{{title}}}", f"\\label{{{headline_id(hl)}}}"]
        if hl.section is not None:
            parts.append(self._export_section(hl.section, state))
        for child in hl.children:
            if should_export(child, opts):
                parts.append(self._export_headline(child, state))
        return "\n".join(parts)

    def _export_section(self, section: OrgNode, state: ExportState) -> str:
        return "\n\n".join(self.export_element(child, state) for child in section.children)

    def _export_paragraph(self, paragraph: OrgNode, state: ExportState) -> str:
        with state.affiliated_scope(paragraph.affiliated):
            content = self.export_objects(paragraph.children, state)
        return content + "\n"

    def _float_wrapper(self, env: str, node: OrgNode, state: ExportState,
                       centering: bool = False) -> tuple[str, str]:
        affiliated = node.affiliated
        if affiliated is None or not (affiliated.caption or affiliated.name):
            return "", ""
        opening = f"\\begin{{{env}}}[{state.options.float_placement}]\n"
        if centering:
            opening += "\\centering\n"
        closing = ""
        if affiliated.caption:
            closing += f"\\caption{{{escape_latex(affiliated.caption_text())}}}\n"
        if affiliated.name:
            closing += f"\\label{{{affiliated.name}}}\n"
        closing += f"\\end{{{env}}}\n"
        return opening, closing

    def _export_src_block(self, block: OrgNode, state: ExportState) -> str:
        opts: LatexExportOptions = state.options
        lang = block.get("language") or "text"
        code = block.properties["value"]
        exports = self.exports_mode(block.get("parameters")).lower()
        if not self.update_skip_results(state, exports):
            return ""

        if opts.minted:
            body = f"\\begin{{minted}}{{{map_minted_language(lang)}}}\n{code}\n\\end{{minted}}\n"
        elif opts.listings:
            body = (
                f"\\begin{{lstlisting}}[language={map_listings_language(lang)}]\n"
                f"{code}\n\\end{{lstlisting}}\n"
            )
        else:
            body = f"\\begin{{verbatim}}\n{code}\n\\end{{verbatim}}\n"

        opening, closing = self._float_wrapper("figure", block, state)
        return opening + body + closing

    def _environment(self, env: str, block: OrgNode, state: ExportState) -> str:
        content = "\n".join(self.export_element(child, state) for child in block.children)
        return f"\\begin{{{env}}}\n{content}\\end{{{env}}}\n"

    def _export_special_block(self, block: OrgNode, state: ExportState) -> str:
        block_type = block.properties["block_type"].lower()
        if block_type in ADMONITION_TYPES:
            content = "\n".join(self.export_element(child, state) for child in block.children)
            return (
                f"\\begin{{tcolorbox}}[title={block_type.capitalize()}]\n"
                f"{content}\\end{{tcolorbox}}\n"
            )
        # abstract, proof and theorem-likes are environments of the same name
        return self._environment(block_type, block, state)

    def _export_verse_block(self, block: OrgNode, state: ExportState) -> str:
        lines = block.properties["value"].split("\n")
        content = " \\\\\n".join(escape_latex(line) for line in lines)
        return f"\\begin{{verse}}\n{content}\n\\end{{verse}}\n"

    def _export_table(self, table: OrgNode, state: ExportState) -> str:
        opts: LatexExportOptions = state.options
        if not opts.include_tables:
            return ""
        if table.get("table_type") == "table.el":
            return f"\\begin{{verbatim}}\n{table.get('value') or ''}\n\\end{{verbatim}}\n"

        first_row = next((r for r in table.children if r.get("row_type") != "rule"), None)
        column_count = len(first_row.children) if first_row is not None else 1
        col_spec = "l" * max(column_count, 1)

        latex_attr = table.affiliated.attr.get("latex", {}) if table.affiliated else {}
        if latex_attr.get("align"):
            col_spec = latex_attr["align"]

        top, rule, bottom = (
            ("\\toprule", "\\midrule", "\\bottomrule") if opts.booktabs else ("\\hline",) * 3
        )
        out = [f"\\begin{{tabular}}{{{col_spec}}}\n", f"{top}\n"]
        for row in table.children:
            if row.get("row_type") == "rule":
                out.append(f"{rule}\n")
                continue
            cells = [self.export_object(cell, state) for cell in row.children]
            out.append(" & ".join(cells) + " \\\\\n")
        out.append(f"{bottom}\n")
        out.append("\\end{tabular}\n")

        opening, closing = self._float_wrapper("table", table, state, centering=True)
        return opening + "".join(out) + closing

    def _export_plain_list(self, plain_list: OrgNode, state: ExportState) -> str:
        list_type = plain_list.get("list_type") or "unordered"
        env = {"ordered": "enumerate", "descriptive": "description"}.get(list_type, "itemize")
        items = "".join(self._export_item(item, state, list_type) for item in plain_list.children)
        return f"\\begin{{{env}}}\n{items}\\end{{{env}}}\n"

    def _export_item(self, item: OrgNode, state: ExportState, list_type: str) -> str:
        if list_type == "descriptive" and item.get("tag"):
            out = f"\\item[{self.export_objects(item.get('tag'), state)}] "
        else:
            out = "\\item "
            checkbox = item.get("checkbox")
            if checkbox:
                box = {"on": "$\\boxtimes$", "trans": "$\\boxminus$"}.get(checkbox, "$\\square$")
                out += box + " "
        out += "".join(self.export_element(child, state) for child in item.children)
        return out + "\n"

    def _export_drawer(self, drawer: OrgNode, state: ExportState) -> str:
        name = drawer.properties["name"]
        if not self.drawer_visible(name, state.options):
            return ""
        content = "".join(self.export_element(child, state) for child in drawer.children)
        if name.upper() == "LOGBOOK":
            return f"% LOGBOOK\n{content}"
        return content

    def _export_clock(self, clock: OrgNode, state: ExportState) -> str:
        if not state.options.include_clocks:
            return ""
        duration = clock.get("duration")
        suffix = f" ({escape_latex(duration)})" if duration else ""
        return f"\\texttt{{CLOCK: {escape_latex(clock.get('value') or '')}}}{suffix}\n"

    def _export_keyword(self, keyword: OrgNode, state: ExportState) -> str:
        if keyword.properties["key"].upper() == "TOC":
            return "\\tableofcontents\n"
        return ""

    def _export_fixed_width(self, element: OrgNode, state: ExportState) -> str:
        if state.consume_skip_results():
            return ""
        return f"\\begin{{verbatim}}\n{element.properties['value']}\n\\end{{verbatim}}\n"

    # ---------------- Objects ------------------------------------------------

    @staticmethod
    def _export_code(code: OrgNode, state: ExportState) -> str:
        value = code.properties["value"]
        delimiter = next((d for d in _VERB_DELIMITERS if d not in value), None)
        if delimiter is None:
            return f"\\texttt{{{escape_latex(value)}}}"
        return f"\\verb{delimiter}{value}{delimiter}"

    def _export_link(self, link: OrgNode, state: ExportState) -> str:
        link_type = link.get("link_type") or "fuzzy"
        path = link.get("path") or ""
        raw_link = link.get("raw_link") or path

        if link.children:
            description = self.export_objects(link.children, state)
        else:
            description = escape_latex(raw_link)

        if link_type in ("http", "https"):
            url = _escape_url(raw_link)
            if link.children:
                return f"\\href{{{url}}}{{{description}}}"
            return f"\\url{{{url}}}"

        if link_type == "file":
            if _is_image(path):
                return self._export_image(path, state)
            return f"\\href{{file:{_escape_url(path)}}}{{{description}}}"

        if link_type in ("id", "internal"):
            return f"\\hyperref[{path}]{{{description}}}"

        if link_type == "headline":
            title = path[1:] if path.startswith("*") else path
            target = state.targets.get(title) or generate_id(title)
            if not link.children:
                description = escape_latex(title)
            return f"\\hyperref[{target}]{{{description}}}"

        if link_type == "custom-id":
            return f"\\hyperref[{path.lstrip('#')}]{{{description}}}"

        if link_type == "fuzzy":
            if not link.children:
                description = escape_latex(path)
            if path in state.targets:
                return f"\\hyperref[{state.targets[path]}]{{{description}}}"
            if path in state.custom_ids:
                return f"\\hyperref[{state.custom_ids[path]}]{{{description}}}"
            return f"\\hyperref[{generate_id(path)}]{{{description}}}"

        if link_type == "mailto":
            return f"\\href{{mailto:{path}}}{{{description}}}"
        if link_type == "doi":
            return f"\\href{{https://doi.org/{path}}}{{{description}}}"

        if link_type in CITE_COMMANDS:
            keys = ",".join(k.strip().lstrip("&") for k in re.split(r"[,;]", path) if k.strip())
            return f"\\{CITE_COMMANDS[link_type]}{{{keys}}}"
        if link_type in REFERENCE_COMMANDS:
            return f"\\{link_type}{{{path}}}"

        if link_type == "bibliography":
            home = os.path.expanduser("~")
            files = []
            for entry in path.split(","):
                entry = entry.strip()
                if entry.startswith("~"):
                    entry = home + entry[1:]
                files.append(re.sub(r"\.bib$", "", entry, flags=re.IGNORECASE))
            return f"\\bibliography{{{','.join(files)}}}"
        if link_type in ("bibstyle", "bibliographystyle"):
            return f"\\bibliographystyle{{{path}}}"

        if path in state.custom_ids:
            return f"\\ref{{{path}}}"
        return description

    def _export_image(self, path: str, state: ExportState) -> str:
        opts: LatexExportOptions = state.options
        width = opts.image_width
        placement = opts.float_placement
        caption = label = None

        affiliated = state.pending.affiliated
        if affiliated is not None:
            caption = affiliated.caption_text()
            label = affiliated.name
            latex_attr = affiliated.attr.get("latex", {})
            width = latex_attr.get("width", width)
            placement = latex_attr.get("placement", placement).strip("[]")

        out = [
            f"\\begin{{figure}}[{placement}]\n",
            "\\centering\n",
            f"\\includegraphics[width={width}]{{{path}}}\n",
        ]
        if caption:
            out.append(f"\\caption{{{escape_latex(caption)}}}\n")
        if label:
            out.append(f"\\label{{{label}}}\n")
        out.append("\\end{figure}")
        return "".join(out)

    def _export_timestamp(self, ts: OrgNode, state: ExportState) -> str:
        if not state.options.timestamps:
            return ""
        return f"\\texttt{{{escape_latex(ts.get('raw_value') or '')}}}"

    def _export_footnote_reference(self, ref: OrgNode, state: ExportState) -> str:
        if state.options.footnotes == "none":
            return ""
        label = ref.get("label")
        if not label:
            state.footnote_counter += 1
            label = str(state.footnote_counter)

        info = state.footnotes.get(label)
        if info is not None and info.definition:
            content = "".join(self.export_element(el, state) for el in info.definition)
            return f"\\footnote{{{content.strip()}}}"
        if ref.children:
            return f"\\footnote{{{self.export_objects(ref.children, state)}}}"
        return f"\\footnotemark[{label}]"

    def _export_statistics_cookie(self, cookie: OrgNode, state: ExportState) -> str:
        if not state.options.include_planning:
            return ""
        return f"\\texttt{{{escape_latex(cookie.properties['value'])}}}"

    def _export_target(self, target: OrgNode, state: ExportState) -> str:
        value = target.properties["value"]
        target_id = generate_id(value)
        state.targets[value] = target_id
        return f"\\label{{{target_id}}}"

    def _export_radio_target(self, target: OrgNode, state: ExportState) -> str:
        content = self.export_objects(target.children, state)
        target_id = generate_id(content)
        state.radio_targets[content] = target_id
        return f"\\label{{{target_id}}}{content}"

    def _export_inline_babel_call(self, call: OrgNode, state: ExportState) -> str:
        result = f"call\\_{escape_latex(call.properties['call'])}"
        if call.get("inside_header"):
            result += f"[{escape_latex(call.get('inside_header'))}]"
        result += f"({escape_latex(call.get('arguments') or '')})"
        if call.get("end_header"):
            result += f"[{escape_latex(call.get('end_header'))}]"
        return f"\\texttt{{{result}}}"

    def _export_macro(self, macro: OrgNode, state: ExportState) -> str:
        key = macro.properties["key"]
        args = self.macro_args(macro)
        if not state.options.expand_macros:
            return f"\\{{\\{{\\{{{escape_latex(key)}({escape_latex(','.join(args))})\\}}\\}}\\}}"
        return escape_latex(expand_macro(key, args, state.options.macros))

    def _export_table_cell(self, cell: OrgNode, state: ExportState) -> str:
        if cell.children:
            return self.export_objects(cell.children, state)
        return escape_latex(cell.get("value") or "")

    def _export_citation(self, citation: OrgNode, state: ExportState) -> str:
        keys = citation.get("keys") or []
        if not keys:
            return escape_latex(citation.get("raw_value") or "")
        command = CITATION_STYLES.get(citation.get("style") or "", "cite")
        return f"\\{command}{{{','.join(keys)}}}"

    # ---------------- Document shell -----------------------------------------

    @staticmethod
    def default_packages(opts: LatexExportOptions) -> list[str]:
        packages = [
            "\\usepackage[utf8]{inputenc}",
            "\\usepackage[T1]{fontenc}",
            "\\usepackage{graphicx}",
            "\\usepackage{amsmath}",
            "\\usepackage{amssymb}",
            "\\usepackage[normalem]{ulem}",
        ]
        if opts.booktabs:
            packages.append("\\usepackage{booktabs}")
        if opts.minted:
            packages.append("\\usepackage{minted}")
        elif opts.listings:
            packages.append("\\usepackage{listings}")
        for package in opts.packages:
            packages.append(package if package.startswith("\\") else f"\\usepackage{{{package}}}")
        if opts.hyperref:
            # hyperref goes last
            hyperref_opts = ",".join(
                f"{k}={v}" if v else k for k, v in opts.hyperref_options.items()
            )
            packages.append(
                f"\\usepackage[{hyperref_opts}]{{hyperref}}" if hyperref_opts else "\\usepackage{hyperref}"
            )
        return packages

    def wrap_in_latex_document(self, content: str, meta: dict[str, Optional[str]],
                               opts: LatexExportOptions) -> str:
        class_opts = f"[{','.join(opts.class_options)}]" if opts.class_options else ""
        documentclass = f"\\documentclass{class_opts}{{{opts.document_class}}}"

        parts: list[str] = []
        if opts.custom_header:
            parts += [opts.custom_header, ""]
        elif opts.no_defaults:
            parts += [documentclass, ""]
            if opts.preamble:
                parts += ["% User preamble", opts.preamble, ""]
        else:
            parts += [documentclass, ""]
            parts += self.default_packages(opts)
            parts.append(f"\\setcounter{{secnumdepth}}{{{opts.sec_num_depth}}}")
            parts.append("")
            if opts.preamble:
                parts += [opts.preamble, ""]

        title = meta["title"]
        if title:
            parts.append(f"\\title{{{escape_latex(title)}}}")

        author = meta["author"]
        if author and opts.include_author:
            author_tex = escape_latex(author)
            if meta["email"] and opts.include_email:
                author_tex += f"\\\\\\texttt{{{escape_latex(meta['email'])}}}"
            parts.append(f"\\author{{{author_tex}}}")

        # the date is passed through so that \today works
        date = meta["date"] or "\\today"
        parts.append(f"\\date{{{date}}}" if opts.include_date else "\\date{}")
        parts += ["", "\\begin{document}", ""]

        if title:
            parts += ["\\maketitle", ""]

        if opts.toc:
            depth = opts.toc if isinstance(opts.toc, int) and not isinstance(opts.toc, bool) else opts.toc_depth
            parts += [f"\\setcounter{{tocdepth}}{{{depth}}}", "\\tableofcontents", "\\newpage", ""]

        parts += [content, ""]

        if opts.bib_file:
            parts += [
                f"\\bibliographystyle{{{opts.bib_style or 'plain'}}}",
                f"\\bibliography{{{opts.bib_file}}}",
                "",
            ]

        parts.append("\\end{document}")
        return "\n".join(parts)


def export_to_latex(doc: OrgDocument, options: Optional[dict[str, Any]] = None) -> str:
    return LatexExportBackend().export_document(doc, options)
