#!/usr/bin/env python3
"""
export_options.py

Effective export options.

Three layers are merged, lowest precedence first:

  1. built-in defaults (an `ExportOptions` dataclass, or a backend subclass)
  2. flags from the document's `#+OPTIONS:` keyword
  3. the caller's partial mapping

Backends may apply further keyword overrides on top (the LaTeX backend lets
`#+LATEX_CLASS:` and friends win over the caller).

Only an invalid caller mapping raises (`ExportOptionsError`); malformed
`#+OPTIONS:` flags are ignored one by one.
"""
from __future__ import annotations

import dataclasses
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, TypeVar, Union

logger = logging.getLogger(__name__)


class ExportError(Exception):
    """Base class for export failures the caller should see."""


class ExportOptionsError(ExportError, ValueError):
    """Raised when a caller passes an options mapping that cannot be applied."""


def default_todo_keywords() -> dict[str, list[str]]:
    return {
        "todo": ["TODO", "NEXT", "WAITING"],
        "done": ["DONE", "CANCELLED"],
    }


@dataclass
class ExportOptions:
    title: Optional[str] = None
    author: Optional[str] = None
    email: Optional[str] = None
    date: Optional[str] = None
    language: Optional[str] = None      # falls back to #+LANGUAGE, then "en"

    scope: str = "full"                 # "full" | "subtree"
    headline_level: int = 0             # 0 = no cutoff
    toc: Union[bool, int] = False       # int = depth
    section_numbers: bool = True
    preserve_breaks: bool = False
    footnotes: str = "separate"         # "inline" | "separate" | "none"
    expand_macros: bool = True
    timestamps: bool = True

    todo_keywords: dict[str, list[str]] = field(default_factory=default_todo_keywords)
    exclude_tags: list[str] = field(default_factory=list)
    select_tags: list[str] = field(default_factory=list)
    macros: dict[str, Any] = field(default_factory=dict)

    backend: Optional[str] = None
    body_only: bool = False

    include_todo: bool = True
    include_tags: bool = True
    include_priority: bool = False
    include_drawers: Union[bool, list[str]] = False
    include_clocks: bool = True
    include_tables: bool = True
    include_planning: bool = True
    include_author: bool = True
    include_date: bool = True
    include_email: bool = False


OptionsT = TypeVar("OptionsT", bound=ExportOptions)


# ---------------- #+OPTIONS: ---------------------------------------------------

# flag -> option field for plain t/nil switches
_BOOLEAN_FLAGS: dict[str, str] = {
    "todo": "include_todo",
    "pri": "include_priority",
    "c": "include_clocks",
    "|": "include_tables",
    "p": "include_planning",
    "author": "include_author",
    "date": "include_date",
    "email": "include_email",
    "<": "timestamps",
    "\\n": "preserve_breaks",
}

_FLAG_RE = re.compile(r"(\S+?):(\S+)")


def _parse_switch(value: str) -> Optional[bool]:
    lowered = value.lower()
    if lowered == "t":
        return True
    if lowered == "nil":
        return False
    return None


def _parse_int(value: str) -> Optional[int]:
    try:
        return int(value)
    except ValueError:
        return None


def parse_options_keyword(text: Optional[str]) -> dict[str, Any]:
    """
    Parse the value of a `#+OPTIONS:` keyword into option overrides.

    Example:
        'toc:2 num:nil H:3 todo:nil'
    ->  {'toc': 2, 'section_numbers': False, 'headline_level': 3, 'include_todo': False}

    Unknown flags are ignored. A flag whose value cannot be parsed is dropped
    so the lower layer's value stays in effect.
    """
    if not text:
        return {}

    overrides: dict[str, Any] = {}
    for match in _FLAG_RE.finditer(text):
        flag, value = match.group(1), match.group(2)

        if flag == "toc":
            switch = _parse_switch(value)
            if switch is not None:
                overrides["toc"] = switch
            else:
                depth = _parse_int(value)
                if depth is not None:
                    overrides["toc"] = depth
                else:
                    logger.debug("Ignoring malformed OPTIONS flag toc:%s", value)
            continue

        if flag == "H":
            level = _parse_int(value)
            if level is not None and level >= 0:
                overrides["headline_level"] = level
            else:
                logger.debug("Ignoring malformed OPTIONS flag H:%s", value)
            continue

        if flag == "num":
            switch = _parse_switch(value)
            if switch is None and _parse_int(value) is not None:
                # num:N numbers down to level N; numbering is on
                switch = True
            if switch is not None:
                overrides["section_numbers"] = switch
            continue

        if flag == "f":
            switch = _parse_switch(value)
            if switch is False:
                overrides["footnotes"] = "none"
            elif switch is True:
                overrides["footnotes"] = "separate"
            continue

        if flag == "d":
            switch = _parse_switch(value)
            if switch is not None:
                overrides["include_drawers"] = switch
            elif value.startswith("(") and value.endswith(")"):
                names = [n.strip('"') for n in value[1:-1].split() if n.strip('"')]
                overrides["include_drawers"] = names
            continue

        if flag == "tags":
            # tags:not-in-toc keeps tags in the body
            switch = _parse_switch(value)
            overrides["include_tags"] = True if switch is None else switch
            continue

        field_name = _BOOLEAN_FLAGS.get(flag)
        if field_name is None:
            continue
        switch = _parse_switch(value)
        if switch is not None:
            overrides[field_name] = switch

    return overrides


# ---------------- Resolution -------------------------------------------------

def _field_names(options: ExportOptions) -> set[str]:
    return {f.name for f in dataclasses.fields(options)}


def resolve_options(
    document_keywords: Mapping[str, str],
    caller_options: Optional[Mapping[str, Any]],
    defaults: OptionsT,
) -> OptionsT:
    """
    Merge defaults < #+OPTIONS: flags < caller mapping into a new options value.

    `defaults` is never modified. Keys in `caller_options` must be field names
    of the defaults' dataclass.
    """
    names = _field_names(defaults)

    merged: dict[str, Any] = {}
    for key, value in parse_options_keyword(document_keywords.get("OPTIONS")).items():
        if key in names:
            merged[key] = value

    if caller_options:
        if not isinstance(caller_options, Mapping):
            raise ExportOptionsError(
                f"Export options must be a mapping, got {type(caller_options).__name__}"
            )
        unknown = sorted(str(k) for k in caller_options if k not in names)
        if unknown:
            raise ExportOptionsError(f"Unknown export option(s): {', '.join(unknown)}")
        merged.update(caller_options)

    resolved = dataclasses.replace(defaults, **merged)

    # mutable containers must not be shared with the defaults instance
    resolved.todo_keywords = {k: list(v) for k, v in resolved.todo_keywords.items()}
    resolved.exclude_tags = list(resolved.exclude_tags)
    resolved.select_tags = list(resolved.select_tags)
    resolved.macros = dict(resolved.macros)
    return resolved


_MACRO_DEFINITION_RE = re.compile(r"^(\S+)\s+(.*)$")


def collect_document_macros(keyword_lists: Mapping[str, list[str]]) -> dict[str, str]:
    """
    Read `#+MACRO: name template` entries.

    Example:
        ['greet Hello, $1!']  ->  {'greet': 'Hello, $1!'}
    """
    macros: dict[str, str] = {}
    for entry in keyword_lists.get("MACRO", []):
        match = _MACRO_DEFINITION_RE.match(entry.strip())
        if match:
            macros[match.group(1)] = match.group(2)
    return macros


def document_metadata(options: ExportOptions, keywords: Mapping[str, str]) -> dict[str, Optional[str]]:
    """Title/author/email/date/language: caller option first, then the keyword."""
    return {
        "title": options.title or keywords.get("TITLE"),
        "author": options.author or keywords.get("AUTHOR"),
        "email": options.email or keywords.get("EMAIL"),
        "date": options.date or keywords.get("DATE"),
        "language": options.language or keywords.get("LANGUAGE") or "en",
    }
