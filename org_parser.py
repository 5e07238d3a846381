#!/usr/bin/env python3
"""
org_parser.py

A small line-oriented Org reader that builds the document tree of `org_tree`.

It is not a full Org grammar. It recognises the element and object types
the exporters know about, in the forms people actually type:

    parse_org_text(text)            -> OrgDocument
    parse_objects("*bold* [[x]]")   -> [OrgNode(bold), OrgNode(plain-text), OrgNode(link)]

Element recognition works the way the old event reader did: every line is
offered to a chain of `_parse_<thing>_if_present()` handlers; the first one
that recognises it consumes as many lines as it needs. Lines nobody claims
become paragraph text.
"""
from __future__ import annotations

import logging
import re
import textwrap
from dataclasses import dataclass, field
from typing import Callable, Optional

from config_loader import DEFAULT_CONFIG, OrgReaderConfig
from org_tree import Affiliated, OrgDocument, OrgNode, element, obj, text
from table_formula import is_hline, split_row

logger = logging.getLogger(__name__)


@dataclass
class ParserState:
    """
    Mutable state for one `parse_org_text()` call.

    pending_affiliated collects `#+NAME:`, `#+CAPTION:`, `#+ATTR_*:` lines
    until the next element takes them.
    """
    doc: OrgDocument
    todo_keywords: list[str] = field(default_factory=list)
    done_keywords: list[str] = field(default_factory=list)
    pending_affiliated: Optional[Affiliated] = None

    def take_affiliated(self) -> Optional[Affiliated]:
        affiliated = self.pending_affiliated
        self.pending_affiliated = None
        return affiliated


# ---------------- Headline helpers ---------------------------------------------

def calculate_heading_level(asterisks: str) -> int:
    """Convert the heading marker string (e.g. '***') into a numeric level."""
    return len(asterisks)


def extract_heading_tags(trailing: str) -> Optional[list[str]]:
    """
    Extract Org heading tags from the trailing part of a heading line.

    Example: ' :foo:bar:' -> ['foo', 'bar']
    """
    if ":" not in trailing:
        return None

    stripped = trailing.strip()
    if not (stripped.startswith(":") and stripped.endswith(":")):
        return None

    tags = [t for t in stripped.split(":") if t]
    return tags or None


def parse_attr_args(arg_string: str) -> dict[str, str]:
    """
    Parse an Org #+ATTR_<BACKEND>: argument string into a dict.

    Example:
        ':width 50% :class big img-rounded'
    ->  {'width': '50%', 'class': 'big img-rounded'}

    Very permissive: values may contain spaces until the next ':key'.
    """
    tokens = arg_string.strip().split()
    if not tokens:
        return {}

    attrs: dict[str, str] = {}
    i = 0
    while i < len(tokens):
        token = tokens[i]
        if token.startswith(":"):
            key = token[1:]
            i += 1
            values: list[str] = []
            while i < len(tokens) and not tokens[i].startswith(":"):
                values.append(tokens[i])
                i += 1
            attrs[key] = " ".join(values) if values else "true"
        else:
            # stray token: ignore
            i += 1
    return attrs


def parse_todo_keyword_line(value: str) -> tuple[list[str], list[str]]:
    """
    Split a `#+TODO:` value into (todo, done) keywords.

    Example:
        'TODO(t) NEXT | DONE(d) CANCELLED'  ->  (['TODO', 'NEXT'], ['DONE', 'CANCELLED'])
        'TODO FEEDBACK DONE'                ->  (['TODO', 'FEEDBACK'], ['DONE'])
    """
    words = [re.sub(r"\(.*?\)$", "", w) for w in value.split()]
    if "|" in words:
        bar = words.index("|")
        return [w for w in words[:bar] if w], [w for w in words[bar + 1:] if w]
    words = [w for w in words if w]
    if len(words) < 2:
        return words, []
    return words[:-1], words[-1:]


def _document_todo_keywords(lines: list[str], cfg: OrgReaderConfig) -> tuple[list[str], list[str]]:
    """`#+TODO:` lines apply to the whole file, headlines above them included."""
    todo: list[str] = []
    done: list[str] = []
    for line in lines:
        match = cfg.keyword_re.match(line)
        if match and match.group(1).upper() in ("TODO", "SEQ_TODO", "TYP_TODO"):
            more_todo, more_done = parse_todo_keyword_line(match.group(3))
            todo.extend(more_todo)
            done.extend(more_done)
    if not todo and not done:
        return list(cfg.todo_keywords), list(cfg.done_keywords)
    return todo, done


# ---------------- Timestamps ---------------------------------------------------

_TIMESTAMP_CORE = (
    r"(\d{4})-(\d{2})-(\d{2})"
    r"(?:\s+[^\s\d>\]+.-][^\s>\]]*)?"                  # day name
    r"(?:\s+(\d{1,2}):(\d{2})(?:-(\d{1,2}):(\d{2}))?)?"
    r"(?:\s+(\.\+|\+\+|\+)(\d+)([hdwmy]))?"            # repeater
    r"(?:\s+(--|-)(\d+)([hdwmy]))?"                    # warning delay
    r"\s*"
)
_ACTIVE_TS_RE = re.compile(r"<" + _TIMESTAMP_CORE + r">")
_INACTIVE_TS_RE = re.compile(r"\[" + _TIMESTAMP_CORE + r"\]")


def _single_timestamp(source: str, pos: int) -> Optional[tuple[dict, int]]:
    pattern = _ACTIVE_TS_RE if source.startswith("<", pos) else _INACTIVE_TS_RE
    match = pattern.match(source, pos)
    if not match:
        return None
    g = match.groups()
    props = {
        "timestamp_type": "active" if source[pos] == "<" else "inactive",
        "raw_value": match.group(0),
        "year_start": int(g[0]),
        "month_start": int(g[1]),
        "day_start": int(g[2]),
        "hour_start": int(g[3]) if g[3] else None,
        "minute_start": int(g[4]) if g[4] else None,
        "hour_end": int(g[5]) if g[5] else None,
        "minute_end": int(g[6]) if g[6] else None,
        "repeater_type": g[7],
        "repeater_value": int(g[8]) if g[8] else None,
        "repeater_unit": g[9],
        "warning_type": g[10],
        "warning_value": int(g[11]) if g[11] else None,
        "warning_unit": g[12],
    }
    return props, match.end()


def parse_timestamp(source: str, pos: int = 0) -> Optional[tuple[OrgNode, int]]:
    """
    Parse a timestamp (or a `<a>--<b>` range) starting at `pos`.

    Returns the node and the index just past it, or None.
    """
    first = _single_timestamp(source, pos)
    if first is None:
        return None
    props, end = first
    if source.startswith("--", end) and end + 2 < len(source) and source[end + 2] == source[pos]:
        second = _single_timestamp(source, end + 2)
        if second is not None:
            end_props, range_end = second
            props["timestamp_type"] += "-range"
            props["raw_value"] = source[pos:range_end]
            props["year_end"] = end_props["year_start"]
            props["month_end"] = end_props["month_start"]
            props["day_end"] = end_props["day_start"]
            props["hour_end"] = end_props["hour_start"]
            props["minute_end"] = end_props["minute_start"]
            end = range_end
    return obj("timestamp", **props), end


# ---------------- Links --------------------------------------------------------

CITE_LINK_TYPES = frozenset({
    "cite", "citep", "citet", "citeauthor", "citeyear", "citealp", "citealt",
    "Citep", "Citet", "parencite", "textcite", "autocite", "footcite", "nocite",
})
REF_LINK_TYPES = frozenset({"ref", "eqref", "pageref", "nameref", "autoref", "cref", "Cref", "label"})
KNOWN_LINK_TYPES = frozenset({
    "file", "id", "mailto", "doi", "ftp", "news", "shell", "elisp", "info", "help",
    "bibliography", "bibstyle", "bibliographystyle",
}) | CITE_LINK_TYPES | REF_LINK_TYPES

_LINK_SCHEME_RE = re.compile(r"^([A-Za-z][A-Za-z0-9]*):(.*)$", re.DOTALL)


def classify_link(raw: str) -> tuple[str, str]:
    """
    Return (link_type, path) for the target part of a link.

    Example:
        'https://x.org/a'   ->  ('https', 'https://x.org/a')
        'file:img/a.png'    ->  ('file', 'img/a.png')
        '*Intro'            ->  ('headline', '*Intro')
        '#setup'            ->  ('custom-id', 'setup')
        'cite:knuth84'      ->  ('cite', 'knuth84')
        'Some target'       ->  ('fuzzy', 'Some target')
    """
    raw = raw.strip()
    if raw.startswith(("http://", "https://")):
        return raw.split(":", 1)[0].lower(), raw
    if raw.startswith("*"):
        return "headline", raw
    if raw.startswith("#"):
        return "custom-id", raw[1:]
    if raw.startswith(("./", "../", "/", "~/")):
        return "file", raw
    match = _LINK_SCHEME_RE.match(raw)
    if match:
        scheme, rest = match.group(1), match.group(2)
        if scheme in KNOWN_LINK_TYPES or scheme.lower() in KNOWN_LINK_TYPES:
            kind = scheme if scheme in CITE_LINK_TYPES | REF_LINK_TYPES else scheme.lower()
            if kind == "file":
                rest = re.sub(r"::.*$", "", rest)
            return kind, rest
    return "fuzzy", raw


def _link(raw: str, description: Optional[list[OrgNode]], fmt: str) -> OrgNode:
    link_type, path = classify_link(raw)
    return obj(
        "link",
        description or [],
        link_type=link_type,
        path=path,
        raw_link=raw,
        format=fmt,
    )


# ---------------- Entities -----------------------------------------------------

# name -> (latex, html, utf8)
ENTITIES: dict[str, tuple[str, str, str]] = {
    "alpha": ("$\\alpha$", "&alpha;", "α"),
    "beta": ("$\\beta$", "&beta;", "β"),
    "gamma": ("$\\gamma$", "&gamma;", "γ"),
    "delta": ("$\\delta$", "&delta;", "δ"),
    "epsilon": ("$\\epsilon$", "&epsilon;", "ε"),
    "zeta": ("$\\zeta$", "&zeta;", "ζ"),
    "eta": ("$\\eta$", "&eta;", "η"),
    "theta": ("$\\theta$", "&theta;", "θ"),
    "iota": ("$\\iota$", "&iota;", "ι"),
    "kappa": ("$\\kappa$", "&kappa;", "κ"),
    "lambda": ("$\\lambda$", "&lambda;", "λ"),
    "mu": ("$\\mu$", "&mu;", "μ"),
    "nu": ("$\\nu$", "&nu;", "ν"),
    "xi": ("$\\xi$", "&xi;", "ξ"),
    "pi": ("$\\pi$", "&pi;", "π"),
    "rho": ("$\\rho$", "&rho;", "ρ"),
    "sigma": ("$\\sigma$", "&sigma;", "σ"),
    "tau": ("$\\tau$", "&tau;", "τ"),
    "upsilon": ("$\\upsilon$", "&upsilon;", "υ"),
    "phi": ("$\\phi$", "&phi;", "φ"),
    "chi": ("$\\chi$", "&chi;", "χ"),
    "psi": ("$\\psi$", "&psi;", "ψ"),
    "omega": ("$\\omega$", "&omega;", "ω"),
    "Gamma": ("$\\Gamma$", "&Gamma;", "Γ"),
    "Delta": ("$\\Delta$", "&Delta;", "Δ"),
    "Theta": ("$\\Theta$", "&Theta;", "Θ"),
    "Lambda": ("$\\Lambda$", "&Lambda;", "Λ"),
    "Pi": ("$\\Pi$", "&Pi;", "Π"),
    "Sigma": ("$\\Sigma$", "&Sigma;", "Σ"),
    "Phi": ("$\\Phi$", "&Phi;", "Φ"),
    "Psi": ("$\\Psi$", "&Psi;", "Ψ"),
    "Omega": ("$\\Omega$", "&Omega;", "Ω"),
    "to": ("$\\to$", "&rarr;", "→"),
    "rarr": ("$\\rightarrow$", "&rarr;", "→"),
    "larr": ("$\\leftarrow$", "&larr;", "←"),
    "harr": ("$\\leftrightarrow$", "&harr;", "↔"),
    "rArr": ("$\\Rightarrow$", "&rArr;", "⇒"),
    "lArr": ("$\\Leftarrow$", "&lArr;", "⇐"),
    "hArr": ("$\\Leftrightarrow$", "&hArr;", "⇔"),
    "le": ("$\\le$", "&le;", "≤"),
    "ge": ("$\\ge$", "&ge;", "≥"),
    "ne": ("$\\ne$", "&ne;", "≠"),
    "approx": ("$\\approx$", "&asymp;", "≈"),
    "pm": ("$\\pm$", "&plusmn;", "±"),
    "times": ("$\\times$", "&times;", "×"),
    "div": ("$\\div$", "&divide;", "÷"),
    "infin": ("$\\infty$", "&infin;", "∞"),
    "sum": ("$\\sum$", "&sum;", "∑"),
    "deg": ("\\textdegree{}", "&deg;", "°"),
    "nbsp": ("~", "&nbsp;", "\u00a0"),
    "ndash": ("--", "&ndash;", "–"),
    "mdash": ("---", "&mdash;", "—"),
    "hellip": ("\\ldots{}", "&hellip;", "…"),
    "dots": ("\\dots{}", "&hellip;", "…"),
    "laquo": ("\\guillemotleft{}", "&laquo;", "«"),
    "raquo": ("\\guillemotright{}", "&raquo;", "»"),
    "ldquo": ("\\textquotedblleft{}", "&ldquo;", "“"),
    "rdquo": ("\\textquotedblright{}", "&rdquo;", "”"),
    "lsquo": ("\\textquoteleft{}", "&lsquo;", "‘"),
    "rsquo": ("\\textquoteright{}", "&rsquo;", "’"),
    "copy": ("\\textcopyright{}", "&copy;", "©"),
    "reg": ("\\textregistered{}", "&reg;", "®"),
    "trade": ("\\texttrademark{}", "&trade;", "™"),
    "euro": ("\\texteuro{}", "&euro;", "€"),
    "pound": ("\\pounds{}", "&pound;", "£"),
    "yen": ("\\textyen{}", "&yen;", "¥"),
    "cent": ("\\textcent{}", "&cent;", "¢"),
    "sect": ("\\S{}", "&sect;", "§"),
    "para": ("\\P{}", "&para;", "¶"),
    "middot": ("\\textperiodcentered{}", "&middot;", "·"),
    "bull": ("\\textbullet{}", "&bull;", "•"),
    "dagger": ("\\dag{}", "&dagger;", "†"),
    "checkmark": ("\\checkmark{}", "&#10003;", "✓"),
}


# ---------------- Inline objects ---------------------------------------------

EMPHASIS_TYPES: dict[str, str] = {
    "*": "bold",
    "/": "italic",
    "_": "underline",
    "+": "strike-through",
    "=": "verbatim",
    "~": "code",
}
_EMPHASIS_PRE = " \t\n-('\"{"
_EMPHASIS_POST = " \t\n-.,;:!?')}\"[\\"

_LINK_RE = re.compile(r"\[\[([^\[\]]+)\](?:\[(.+?)\])?\]", re.DOTALL)
_ANGLE_LINK_RE = re.compile(r"<((?:https?|ftp|mailto|file|doi|id):[^<>\n]+)>")
_PLAIN_LINK_RE = re.compile(r"(?:https?|ftp|mailto|doi):[^\s()<>\[\]]+")
_RADIO_TARGET_RE = re.compile(r"<<<([^<>\n]+?)>>>")
_TARGET_RE = re.compile(r"<<([^<>\n]+?)>>")
_MACRO_RE = re.compile(r"\{\{\{([A-Za-z][\w-]*)(?:\((.*?)\))?\}\}\}", re.DOTALL)
_EXPORT_SNIPPET_RE = re.compile(r"@@([\w-]+):(.*?)@@", re.DOTALL)
_INLINE_SRC_RE = re.compile(r"src_([A-Za-z0-9+-]+)(?:\[([^\]\n]*)\])?\{([^}\n]*)\}")
_INLINE_CALL_RE = re.compile(r"call_([\w.-]+)(?:\[([^\]\n]*)\])?\(([^)\n]*)\)(?:\[([^\]\n]*)\])?")
_STATISTICS_RE = re.compile(r"\[(\d*/\d*|\d*%)\]")
_CITATION_RE = re.compile(r"\[cite(?:/([\w/-]+))?:([^\]]*)\]")
_CITATION_KEY_RE = re.compile(r"@([^\s;\]]+)")
_ENTITY_RE = re.compile(r"\\([A-Za-z]+)(\{\})?")
_LATEX_COMMAND_RE = re.compile(r"\\[A-Za-z]+(?:\[[^\]\n]*\])*(?:\{[^{}\n]*\})+")
_SCRIPT_WORD_RE = re.compile(r"[A-Za-z0-9]+|\*")
_LINE_BREAK_RE = re.compile(r"\\\\[ \t]*(?=\n|$)")

Match = Optional[tuple[OrgNode, int]]


def _balanced_end(source: str, start: int, opening: str, closing: str) -> int:
    """Index of the bracket closing the one at `start`, or -1."""
    depth = 0
    for index in range(start, len(source)):
        char = source[index]
        if char == opening:
            depth += 1
        elif char == closing:
            depth -= 1
            if depth == 0:
                return index
    return -1


def _split_macro_args(raw: Optional[str]) -> list[str]:
    if raw is None or raw == "":
        return []
    parts = re.split(r"(?<!\\),", raw)
    return [part.replace("\\,", ",").strip() for part in parts]


def _match_bracket(source: str, pos: int) -> Match:
    if source.startswith("[[", pos):
        match = _LINK_RE.match(source, pos)
        if match:
            description = parse_objects(match.group(2)) if match.group(2) else None
            return _link(match.group(1), description, "bracket"), match.end()
        return None

    if source.startswith("[fn:", pos):
        end = _balanced_end(source, pos, "[", "]")
        if end == -1:
            return None
        body = source[pos + 4:end]
        label, sep, definition = body.partition(":")
        if not re.fullmatch(r"[\w-]*", label) or (not label and not sep):
            return None
        children = parse_objects(definition.strip()) if sep else []
        return obj("footnote-reference", children, label=label or None), end + 1

    if source.startswith("[cite", pos):
        match = _CITATION_RE.match(source, pos)
        if match:
            keys = _CITATION_KEY_RE.findall(match.group(2))
            return obj(
                "citation", style=match.group(1), keys=keys, raw_value=match.group(0)
            ), match.end()
        return None

    match = _STATISTICS_RE.match(source, pos)
    if match:
        return obj("statistics-cookie", value=match.group(0)), match.end()

    return parse_timestamp(source, pos)


def _match_angle(source: str, pos: int) -> Match:
    match = _RADIO_TARGET_RE.match(source, pos)
    if match:
        return obj("radio-target", parse_objects(match.group(1)), value=match.group(1)), match.end()
    match = _TARGET_RE.match(source, pos)
    if match:
        return obj("target", value=match.group(1)), match.end()
    match = _ANGLE_LINK_RE.match(source, pos)
    if match:
        return _link(match.group(1), None, "angle"), match.end()
    return parse_timestamp(source, pos)


def _match_backslash(source: str, pos: int) -> Match:
    match = _LINE_BREAK_RE.match(source, pos)
    if match:
        return obj("line-break"), match.end()

    for opening, closing, kind in (("\\(", "\\)", "inline-math"), ("\\[", "\\]", "display-math")):
        if source.startswith(opening, pos):
            end = source.find(closing, pos + 2)
            if end != -1:
                return obj("latex-fragment", value=source[pos:end + 2], fragment_type=kind), end + 2
            return None

    match = _ENTITY_RE.match(source, pos)
    if match and match.group(1) in ENTITIES:
        after = match.end()
        if match.group(2) or after >= len(source) or not source[after].isalpha():
            latex, html, utf8 = ENTITIES[match.group(1)]
            return obj(
                "entity",
                name=match.group(1),
                latex=latex,
                html=html,
                utf8=utf8,
                uses_brackets=bool(match.group(2)),
            ), after

    match = _LATEX_COMMAND_RE.match(source, pos)
    if match:
        return obj("latex-fragment", value=match.group(0), fragment_type="command"), match.end()
    return None


def _match_dollar(source: str, pos: int) -> Match:
    if source.startswith("$$", pos):
        end = source.find("$$", pos + 2)
        if end != -1:
            return obj("latex-fragment", value=source[pos:end + 2], fragment_type="display-math"), end + 2
        return None
    if pos > 0 and source[pos - 1] == "$":
        return None
    end = source.find("$", pos + 1)
    if end == -1:
        return None
    inner = source[pos + 1:end]
    # $1 and $2 are prices, not math
    if not inner or inner[0].isspace() or inner[-1].isspace() or "\n\n" in inner:
        return None
    if end + 1 < len(source) and (source[end + 1].isalnum()):
        return None
    return obj("latex-fragment", value=source[pos:end + 1], fragment_type="inline-math"), end + 1


def _is_valid_emphasis_open(source: str, pos: int) -> bool:
    if pos + 1 >= len(source) or source[pos + 1].isspace():
        return False
    return pos == 0 or source[pos - 1] in _EMPHASIS_PRE


def _is_valid_emphasis_close(source: str, pos: int) -> bool:
    if source[pos - 1].isspace():
        return False
    return pos + 1 >= len(source) or source[pos + 1] in _EMPHASIS_POST


def _match_emphasis(source: str, pos: int) -> Match:
    marker = source[pos]
    if not _is_valid_emphasis_open(source, pos):
        return None
    index = pos + 2
    while index < len(source):
        if source[index] == marker and _is_valid_emphasis_close(source, index):
            inner = source[pos + 1:index]
            kind = EMPHASIS_TYPES[marker]
            if kind in ("verbatim", "code"):
                return obj(kind, value=inner), index + 1
            return obj(kind, parse_objects(inner)), index + 1
        # emphasis never spans a paragraph break
        if source.startswith("\n\n", index):
            return None
        index += 1
    return None


def _match_script(source: str, pos: int) -> Match:
    if pos == 0 or source[pos - 1].isspace():
        return None
    kind = "subscript" if source[pos] == "_" else "superscript"
    if source.startswith("{", pos + 1):
        end = _balanced_end(source, pos + 1, "{", "}")
        if end == -1:
            return None
        return obj(kind, parse_objects(source[pos + 2:end]), uses_braces=True), end + 1
    match = _SCRIPT_WORD_RE.match(source, pos + 1)
    if match:
        return obj(kind, [text(match.group(0))], uses_braces=False), match.end()
    return None


def _word_start(source: str, pos: int) -> bool:
    return pos == 0 or not (source[pos - 1].isalnum() or source[pos - 1] in "_/")


def _match_word(source: str, pos: int) -> Match:
    if not _word_start(source, pos):
        return None
    match = _INLINE_SRC_RE.match(source, pos)
    if match:
        return obj(
            "inline-src-block",
            language=match.group(1),
            parameters=match.group(2),
            value=match.group(3),
        ), match.end()
    match = _INLINE_CALL_RE.match(source, pos)
    if match:
        return obj(
            "inline-babel-call",
            call=match.group(1),
            inside_header=match.group(2),
            arguments=match.group(3),
            end_header=match.group(4),
        ), match.end()
    match = _PLAIN_LINK_RE.match(source, pos)
    if match:
        raw = match.group(0).rstrip(".,;:!?'\"")
        return _link(raw, None, "plain"), pos + len(raw)
    return None


def _match_object(source: str, pos: int) -> Match:
    char = source[pos]
    if char == "[":
        return _match_bracket(source, pos)
    if char == "<":
        return _match_angle(source, pos)
    if char == "\\":
        return _match_backslash(source, pos)
    if char == "$":
        return _match_dollar(source, pos)
    if char == "{" and source.startswith("{{{", pos):
        match = _MACRO_RE.match(source, pos)
        if match:
            return obj("macro", key=match.group(1), args=_split_macro_args(match.group(2))), match.end()
        return None
    if char == "@" and source.startswith("@@", pos):
        match = _EXPORT_SNIPPET_RE.match(source, pos)
        if match:
            return obj("export-snippet", backend=match.group(1), value=match.group(2)), match.end()
        return None
    if char in EMPHASIS_TYPES:
        found = _match_emphasis(source, pos)
        if found is not None:
            return found
    if char in "_^":
        return _match_script(source, pos)
    if char in "scfhmd":
        return _match_word(source, pos)
    return None


def parse_objects(source: str) -> list[OrgNode]:
    """
    Parse inline markup into a list of object nodes.

    Adjacent plain characters are merged into one plain-text node.

    Example:
        'see *this* now'
    ->  [plain-text 'see ', bold[plain-text 'this'], plain-text ' now']
    """
    nodes: list[OrgNode] = []
    buffer: list[str] = []

    def flush_plaintext() -> None:
        if buffer:
            nodes.append(text("".join(buffer)))
            buffer.clear()

    index = 0
    while index < len(source):
        found = _match_object(source, index)
        if found is None:
            buffer.append(source[index])
            index += 1
            continue
        node, end = found
        flush_plaintext()
        nodes.append(node)
        index = end

    flush_plaintext()
    return nodes


# ---------------- Element handlers ---------------------------------------------

# (node or None when the lines were consumed without producing one, next index)
Consumed = Optional[tuple[Optional[OrgNode], int]]


def _unescape_block_line(line: str) -> str:
    """',* foo' and ',#+bar' protect lines inside verbatim blocks."""
    return re.sub(r"^(\s*),([*#])", r"\1\2", line)


def _block_value(body: list[str]) -> str:
    return textwrap.dedent("\n".join(_unescape_block_line(line) for line in body))


def _parse_block_if_present(lines: list[str], i: int, cfg: OrgReaderConfig, state: ParserState) -> Consumed:
    match = cfg.block_re.match(lines[i])
    if not match or match.group(1).lower() != "begin":
        return None

    name = match.group(2)
    argument = match.group(3).strip()
    depth = 0
    end = -1
    for j in range(i + 1, len(lines)):
        other = cfg.block_re.match(lines[j])
        if not other or other.group(2).lower() != name.lower():
            continue
        if other.group(1).lower() == "begin":
            depth += 1
        elif depth == 0:
            end = j
            break
        else:
            depth -= 1
    if end == -1:
        logger.debug("Unterminated #+BEGIN_%s at line %d", name, i + 1)
        return None

    body = lines[i + 1:end]
    lowered = name.lower()
    affiliated = state.take_affiliated()

    if lowered in cfg.verbatim_blocks:
        value = _block_value(body)
        if lowered == "src":
            language, _, parameters = argument.partition(" ")
            node = element(
                "src-block",
                affiliated=affiliated,
                language=language or None,
                parameters=parameters.strip() or None,
                value=value,
            )
        elif lowered == "example":
            node = element("example-block", affiliated=affiliated, value=value, switches=argument or None)
        elif lowered == "export":
            node = element("export-block", affiliated=affiliated, backend=argument.split(" ")[0], value=value)
        elif lowered == "comment":
            node = element("comment-block", value=value)
        elif lowered == "verse":
            node = element("verse-block", affiliated=affiliated, value=value)
        else:
            node = element("special-block", [element("paragraph", [text(value)])],
                           affiliated=affiliated, block_type=name, parameters=argument or None)
        return node, end + 1

    children = parse_elements(body, cfg, state)
    if lowered == "quote":
        node = element("quote-block", children, affiliated=affiliated)
    elif lowered == "center":
        node = element("center-block", children, affiliated=affiliated)
    else:
        node = element("special-block", children, affiliated=affiliated,
                       block_type=name, parameters=argument or None)
    return node, end + 1


def _parse_latex_environment_if_present(lines: list[str], i: int, cfg: OrgReaderConfig,
                                        state: ParserState) -> Consumed:
    match = cfg.latex_environment_re.match(lines[i])
    if not match:
        return None
    closing = f"\\end{{{match.group(1)}}}"
    for j in range(i, len(lines)):
        if closing in lines[j]:
            value = "\n".join(lines[i:j + 1]).strip()
            return element("latex-environment", affiliated=state.take_affiliated(), value=value), j + 1
    return None


_BABEL_CALL_RE = re.compile(r"^([^\[\]()\s]+)(?:\[([^\]]*)\])?\(([^)]*)\)(?:\s*\[([^\]]*)\])?")


def _add_affiliated(state: ParserState, key: str, option: Optional[str], value: str) -> None:
    affiliated = state.pending_affiliated or Affiliated()
    if key == "CAPTION":
        affiliated.caption = (option[1:-1], value) if option else value
    elif key == "NAME":
        affiliated.name = value
    elif key == "HEADER":
        affiliated.header.append(value)
    elif key == "RESULTS":
        affiliated.results = value
    elif key == "PLOT":
        affiliated.plot = value
    elif key.startswith("ATTR_"):
        backend = key[len("ATTR_"):].lower()
        affiliated.attr.setdefault(backend, {}).update(parse_attr_args(value))
    state.pending_affiliated = affiliated


def _parse_keyword_if_present(lines: list[str], i: int, cfg: OrgReaderConfig, state: ParserState) -> Consumed:
    match = cfg.keyword_re.match(lines[i])
    if not match:
        return None
    key = match.group(1).upper()
    option = match.group(2)
    value = match.group(3).strip()
    doc = state.doc

    if key == "TBLFM":
        logger.debug("Dropping #+TBLFM without a table at line %d", i + 1)
        return None, i + 1
    if key in cfg.affiliated_keywords or key.startswith("ATTR_"):
        _add_affiliated(state, key, option, value)
        return None, i + 1
    if key == "CALL":
        call = _BABEL_CALL_RE.match(value)
        if call:
            node = element(
                "babel-call",
                affiliated=state.take_affiliated(),
                call=call.group(1),
                inside_header=call.group(2),
                arguments=call.group(3),
                end_header=call.group(4),
                value=value,
            )
        else:
            node = element("babel-call", affiliated=state.take_affiliated(), call=value,
                           inside_header=None, arguments=None, end_header=None, value=value)
        return node, i + 1
    if key in cfg.keyword_list_keys:
        doc.keyword_lists.setdefault(key, []).append(value)
        return None, i + 1
    if key == "PROPERTY":
        name, _, prop_value = value.partition(" ")
        doc.properties[name] = prop_value.strip()
        return None, i + 1
    if key in cfg.document_keywords:
        doc.keywords[key] = value
        return None, i + 1
    return element("keyword", key=key, value=value), i + 1


def _parse_drawer_if_present(lines: list[str], i: int, cfg: OrgReaderConfig, state: ParserState) -> Consumed:
    match = cfg.drawer_begin_re.match(lines[i])
    if not match or match.group(1).upper() == "END":
        return None
    end = next((j for j in range(i + 1, len(lines)) if cfg.drawer_end_re.match(lines[j])), -1)
    if end == -1:
        return None

    name = match.group(1)
    body = lines[i + 1:end]
    if name.upper() == "PROPERTIES":
        properties = []
        for line in body:
            prop = cfg.node_property_re.match(line)
            if prop:
                properties.append(element("node-property", key=prop.group(1), value=prop.group(2) or ""))
        return element("property-drawer", properties), end + 1
    return element("drawer", parse_elements(body, cfg, state), name=name), end + 1


def _parse_clock_if_present(lines: list[str], i: int, cfg: OrgReaderConfig, state: ParserState) -> Consumed:
    match = cfg.clock_re.match(lines[i])
    if not match:
        return None
    value = match.group(1)
    start = end = None
    first = _single_timestamp(value, 0) if value else None
    if first is not None:
        start_props, after = first
        start = obj("timestamp", **start_props)
        if value.startswith("--", after):
            second = _single_timestamp(value, after + 2)
            if second is not None:
                end = obj("timestamp", **second[0])
    return element("clock", value=value, duration=match.group(2), start=start, end=end), i + 1


_PLANNING_ITEM_RE = re.compile(r"(SCHEDULED|DEADLINE|CLOSED):\s*")


def _parse_planning_if_present(lines: list[str], i: int, cfg: OrgReaderConfig, state: ParserState) -> Consumed:
    line = lines[i]
    if not cfg.planning_re.match(line):
        return None
    props: dict[str, Optional[OrgNode]] = {"scheduled": None, "deadline": None, "closed": None}
    for match in _PLANNING_ITEM_RE.finditer(line):
        parsed = parse_timestamp(line, match.end())
        if parsed is not None:
            props[match.group(1).lower()] = parsed[0]
    return element("planning", **props), i + 1


def _parse_table_if_present(lines: list[str], i: int, cfg: OrgReaderConfig, state: ParserState) -> Consumed:
    stripped = lines[i].strip()
    if stripped.startswith("+-"):
        j = i
        while j < len(lines) and lines[j].strip()[:1] in ("+", "|"):
            j += 1
        value = "\n".join(line.strip() for line in lines[i:j])
        return element("table", affiliated=state.take_affiliated(), table_type="table.el",
                       value=value, tblfm=[]), j

    if not stripped.startswith("|"):
        return None
    j = i
    rows: list[OrgNode] = []
    while j < len(lines) and lines[j].strip().startswith("|"):
        line = lines[j]
        if is_hline(line):
            rows.append(element("table-row", row_type="rule"))
        else:
            cells = [obj("table-cell", parse_objects(cell), value=cell) for cell in split_row(line)]
            rows.append(element("table-row", cells, row_type="standard"))
        j += 1
    value = "\n".join(line.strip() for line in lines[i:j])

    tblfm: list[str] = []
    while j < len(lines):
        keyword = cfg.keyword_re.match(lines[j])
        if not keyword or keyword.group(1).upper() != "TBLFM":
            break
        tblfm.append(keyword.group(3).strip())
        j += 1
    return element("table", rows, affiliated=state.take_affiliated(), table_type="org",
                   value=value, tblfm=tblfm), j


def _parse_horizontal_rule_if_present(lines: list[str], i: int, cfg: OrgReaderConfig,
                                      state: ParserState) -> Consumed:
    if cfg.horizontal_rule_re.match(lines[i]):
        return element("horizontal-rule"), i + 1
    return None


def _parse_footnote_definition_if_present(lines: list[str], i: int, cfg: OrgReaderConfig,
                                          state: ParserState) -> Consumed:
    match = cfg.footnote_definition_re.match(lines[i])
    if not match:
        return None
    body = [match.group(2)]
    j = i + 1
    while j < len(lines) and lines[j].strip() and not cfg.footnote_definition_re.match(lines[j]):
        body.append(lines[j])
        j += 1
    children = parse_elements(body, cfg, state)
    return element("footnote-definition", children, label=match.group(1)), j


_CHECKBOX_RE = re.compile(r"^\[([ xX-])\](?:\s+|$)")
_COUNTER_RE = re.compile(r"^\[@(\d+|[A-Za-z])\]\s*")
_DESCRIPTIVE_TAG_RE = re.compile(r"^(.*?)\s+::(?:\s+|$)")
_CHECKBOX_STATES = {" ": "off", "x": "on", "X": "on", "-": "trans"}


def _list_item_match(line: str, cfg: OrgReaderConfig) -> Optional[re.Match]:
    match = cfg.list_item_re.match(line)
    if not match:
        return None
    # a star bullet at column 0 is a headline
    if match.group(2) == "*" and not match.group(1):
        return None
    return match


def _indentation(line: str) -> int:
    return len(line) - len(line.lstrip())


def _parse_list_if_present(lines: list[str], i: int, cfg: OrgReaderConfig, state: ParserState) -> Consumed:
    first = _list_item_match(lines[i], cfg)
    if not first:
        return None
    indent = len(first.group(1))
    affiliated = state.take_affiliated()
    items: list[OrgNode] = []
    list_type: Optional[str] = None

    while i < len(lines):
        match = _list_item_match(lines[i], cfg)
        if match is None or len(match.group(1)) != indent:
            break
        bullet = match.group(2)
        content = match.group(3) or ""

        # continuation: deeper-indented lines, single blank lines allowed
        j = i + 1
        blank_run = 0
        while j < len(lines):
            if not lines[j].strip():
                blank_run += 1
                if blank_run >= 2:
                    break
                j += 1
                continue
            if _indentation(lines[j]) <= indent:
                break
            blank_run = 0
            j += 1
        continuation = lines[i + 1:j]
        while continuation and not continuation[-1].strip():
            continuation.pop()

        counter = None
        counter_match = _COUNTER_RE.match(content)
        if counter_match:
            counter = counter_match.group(1)
            content = content[counter_match.end():]
        checkbox = None
        checkbox_match = _CHECKBOX_RE.match(content)
        if checkbox_match:
            checkbox = _CHECKBOX_STATES[checkbox_match.group(1)]
            content = content[checkbox_match.end():]
        tag = None
        if not bullet[0].isdigit():
            tag_match = _DESCRIPTIVE_TAG_RE.match(content)
            if tag_match:
                tag = parse_objects(tag_match.group(1).strip())
                content = content[tag_match.end():]

        if list_type is None:
            list_type = "ordered" if bullet[0].isdigit() else ("descriptive" if tag else "unordered")

        item_lines = [content] if content else []
        if continuation:
            item_lines.extend(textwrap.dedent("\n".join(continuation)).split("\n"))
        children = parse_elements(item_lines, cfg, state)
        items.append(element("item", children, bullet=bullet, checkbox=checkbox, tag=tag, counter=counter))

        i = j
        # two blank lines end the list
        if blank_run >= 2:
            break

    return element("plain-list", items, affiliated=affiliated, list_type=list_type or "unordered"), i


def _parse_fixed_width_if_present(lines: list[str], i: int, cfg: OrgReaderConfig,
                                  state: ParserState) -> Consumed:
    if not cfg.fixed_width_re.match(lines[i]):
        return None
    values: list[str] = []
    j = i
    while j < len(lines):
        match = cfg.fixed_width_re.match(lines[j])
        if not match:
            break
        values.append(match.group(1) or "")
        j += 1
    return element("fixed-width", affiliated=state.take_affiliated(), value="\n".join(values)), j


def _parse_comment_if_present(lines: list[str], i: int, cfg: OrgReaderConfig, state: ParserState) -> Consumed:
    if not cfg.comment_re.match(lines[i]):
        return None
    values: list[str] = []
    j = i
    while j < len(lines):
        match = cfg.comment_re.match(lines[j])
        if not match:
            break
        values.append(match.group(1) or "")
        j += 1
    return element("comment", value="\n".join(values)), j


ELEMENT_PARSERS: tuple[Callable[[list[str], int, OrgReaderConfig, ParserState], Consumed], ...] = (
    _parse_block_if_present,
    _parse_latex_environment_if_present,
    _parse_keyword_if_present,
    _parse_drawer_if_present,
    _parse_clock_if_present,
    _parse_planning_if_present,
    _parse_table_if_present,
    _parse_horizontal_rule_if_present,
    _parse_footnote_definition_if_present,
    _parse_list_if_present,
    _parse_fixed_width_if_present,
    _parse_comment_if_present,
)


def parse_elements(lines: list[str], cfg: OrgReaderConfig, state: ParserState) -> list[OrgNode]:
    """Parse a run of body lines (no headlines) into element nodes."""
    nodes: list[OrgNode] = []
    paragraph_lines: list[str] = []
    paragraph_affiliated: Optional[Affiliated] = None

    def flush_paragraph() -> None:
        nonlocal paragraph_affiliated
        if paragraph_lines:
            node = element("paragraph", parse_objects("\n".join(paragraph_lines)),
                           affiliated=paragraph_affiliated)
            nodes.append(node)
            paragraph_lines.clear()
            paragraph_affiliated = None

    i = 0
    while i < len(lines):
        line = lines[i]
        if not line.strip():
            flush_paragraph()
            i += 1
            continue

        for handler in ELEMENT_PARSERS:
            consumed = handler(lines, i, cfg, state)
            if consumed is not None:
                break
        else:
            if not paragraph_lines:
                paragraph_affiliated = state.take_affiliated()
            paragraph_lines.append(line.strip())
            i += 1
            continue

        flush_paragraph()
        node, i = consumed
        if node is not None:
            nodes.append(node)

    flush_paragraph()
    return nodes


# ---------------- Headlines and document -------------------------------------

def _parse_headline(line: str, cfg: OrgReaderConfig, state: ParserState) -> Optional[OrgNode]:
    match = cfg.section_heading_re.match(line)
    if not match:
        return None
    level = calculate_heading_level(match.group(1))
    rest = match.group(2)

    tags: list[str] = []
    tag_match = cfg.heading_tags_re.search(rest)
    if tag_match:
        tags = extract_heading_tags(tag_match.group(1)) or []
        rest = rest[:tag_match.start()]

    todo_keyword = todo_type = None
    first, _, remainder = rest.partition(" ")
    if first in state.todo_keywords or first in state.done_keywords:
        todo_keyword = first
        todo_type = "todo" if first in state.todo_keywords else "done"
        rest = remainder.lstrip()

    priority = None
    priority_match = re.match(r"^\[#([A-Z0-9])\]\s*", rest)
    if priority_match:
        priority = priority_match.group(1)
        rest = rest[priority_match.end():]

    title = rest.strip()
    return element(
        "headline",
        level=level,
        raw_value=title,
        title=parse_objects(title),
        todo_keyword=todo_keyword,
        todo_type=todo_type,
        priority=priority,
        tags=tags,
        custom_id=None,
        id=None,
    )


def _apply_headline_properties(headline: OrgNode) -> None:
    """Lift CUSTOM_ID and ID from the property drawer onto the headline."""
    if headline.section is None:
        return
    for node in headline.section.children:
        if node.type != "property-drawer":
            continue
        for prop in node.children:
            key = (prop.get("key") or "").upper()
            if key == "CUSTOM_ID":
                headline.properties["custom_id"] = prop.get("value") or None
            elif key == "ID":
                headline.properties["id"] = prop.get("value") or None
        return


def _is_headline(line: str, cfg: OrgReaderConfig) -> bool:
    return line.startswith("*") and cfg.section_heading_re.match(line) is not None


def parse_org_text(source: str, cfg: OrgReaderConfig = DEFAULT_CONFIG) -> OrgDocument:
    """
    Parse Org text into an `OrgDocument`.

    Headlines nest by level: a headline becomes a child of the nearest
    preceding headline with a lower level.
    """
    lines = source.replace("\r\n", "\n").replace("\r", "\n").split("\n")
    todo_keywords, done_keywords = _document_todo_keywords(lines, cfg)
    doc = OrgDocument()
    state = ParserState(doc=doc, todo_keywords=todo_keywords, done_keywords=done_keywords)

    chunks: list[tuple[Optional[str], list[str]]] = [(None, [])]
    for line in lines:
        if _is_headline(line, cfg):
            chunks.append((line, []))
        else:
            chunks[-1][1].append(line)

    preamble = parse_elements(chunks[0][1], cfg, state)
    if preamble:
        doc.section = element("section", preamble)

    stack: list[OrgNode] = []
    for heading_line, body in chunks[1:]:
        state.pending_affiliated = None
        headline = _parse_headline(heading_line, cfg, state)
        body_nodes = parse_elements(body, cfg, state)
        if body_nodes:
            headline.section = element("section", body_nodes)
        _apply_headline_properties(headline)

        level = headline.properties["level"]
        while stack and stack[-1].properties["level"] >= level:
            stack.pop()
        (stack[-1].children if stack else doc.children).append(headline)
        stack.append(headline)

    logger.debug("Parsed %d line(s), %d top-level headline(s)", len(lines), len(doc.children))
    return doc
