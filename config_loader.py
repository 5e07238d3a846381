# config_loader.py
from __future__ import annotations

from pathlib import Path
from typing import Any
import re

import yaml  # PyYAML


class OrgReaderConfig:
    """
    Immutable-ish container for Org reader configuration.

    Besides the line regexes used by `org_parser`, it carries the keyword
    sets that decide how `#+KEY:` lines are stored, and per-backend export
    defaults that front ends merge under the caller's own options.
    """

    def __init__(
        self,
        *,
        todo_keywords: list[str],
        done_keywords: list[str],
        document_keywords: set[str],
        keyword_list_keys: set[str],
        affiliated_keywords: set[str],
        verbatim_blocks: set[str],
        quotes: dict[str, str],
        export_defaults: dict[str, dict[str, Any]],
        block_re: re.Pattern,
        keyword_re: re.Pattern,
        include_keyword_re: re.Pattern,
        section_heading_re: re.Pattern,
        heading_tags_re: re.Pattern,
        list_item_re: re.Pattern,
        drawer_begin_re: re.Pattern,
        drawer_end_re: re.Pattern,
        node_property_re: re.Pattern,
        planning_re: re.Pattern,
        clock_re: re.Pattern,
        footnote_definition_re: re.Pattern,
        fixed_width_re: re.Pattern,
        comment_re: re.Pattern,
        horizontal_rule_re: re.Pattern,
        latex_environment_re: re.Pattern,
    ):
        self.todo_keywords = todo_keywords
        self.done_keywords = done_keywords
        self.document_keywords = document_keywords
        self.keyword_list_keys = keyword_list_keys
        self.affiliated_keywords = affiliated_keywords
        self.verbatim_blocks = verbatim_blocks
        self.quotes = quotes
        self.export_defaults = export_defaults
        self.block_re = block_re
        self.keyword_re = keyword_re
        self.include_keyword_re = include_keyword_re
        self.section_heading_re = section_heading_re
        self.heading_tags_re = heading_tags_re
        self.list_item_re = list_item_re
        self.drawer_begin_re = drawer_begin_re
        self.drawer_end_re = drawer_end_re
        self.node_property_re = node_property_re
        self.planning_re = planning_re
        self.clock_re = clock_re
        self.footnote_definition_re = footnote_definition_re
        self.fixed_width_re = fixed_width_re
        self.comment_re = comment_re
        self.horizontal_rule_re = horizontal_rule_re
        self.latex_environment_re = latex_environment_re


# ---------------- Defaults ---------------------------------------------------

# name -> (default pattern, flags); load_config() overrides by name
REGEX_DEFAULTS: dict[str, tuple[str, int]] = {
    "block_re": (r"^\s*#\+(begin|end)_(\S+)\s*(.*)$", re.IGNORECASE),
    "keyword_re": (r"^\s*#\+([A-Za-z0-9_-]+)(\[[^\]]*\])?:\s?(.*)$", 0),
    "include_keyword_re": (r"^\s*#\+include\b", re.IGNORECASE),
    "section_heading_re": (r"^(\*+)\s+(.*?)\s*$", 0),
    "heading_tags_re": (r"\s+(:[\w@#%:]+:)\s*$", 0),
    "list_item_re": (r"^(\s*)([-+*]|\d+[.)])(?:\s+(.*))?$", 0),
    "drawer_begin_re": (r"^\s*:([A-Za-z0-9_@#%-]+):\s*$", 0),
    "drawer_end_re": (r"^\s*:END:\s*$", re.IGNORECASE),
    "node_property_re": (r"^\s*:([^\s:]+):(?:\s+(.*?))?\s*$", 0),
    "planning_re": (r"^\s*(SCHEDULED|DEADLINE|CLOSED):", 0),
    "clock_re": (r"^\s*CLOCK:\s*(.*?)\s*(?:=>\s*(\S+))?\s*$", 0),
    "footnote_definition_re": (r"^\[fn:([\w-]+)\]\s*(.*)$", 0),
    "fixed_width_re": (r"^\s*:(?: (.*)|)$", 0),
    "comment_re": (r"^\s*#(?: (.*)|)$", 0),
    "horizontal_rule_re": (r"^\s*-{5,}\s*$", 0),
    "latex_environment_re": (r"^\s*\\begin\{([A-Za-z*]+)\}", 0),
}


def default_export_defaults() -> dict[str, dict[str, Any]]:
    return {"common": {}}


DEFAULT_CONFIG = OrgReaderConfig(
    todo_keywords=["TODO", "NEXT", "WAITING"],
    done_keywords=["DONE", "CANCELLED"],
    document_keywords={
        "TITLE", "AUTHOR", "DATE", "EMAIL", "LANGUAGE", "OPTIONS",
        "DESCRIPTION", "KEYWORDS", "STARTUP", "FILETAGS", "CATEGORY",
        "SELECT_TAGS", "EXCLUDE_TAGS", "LATEX_CLASS", "LATEX_CLASS_OPTIONS",
        "LATEX_NO_DEFAULTS", "LATEX_COMPILER", "BIBLIOGRAPHY", "CSL_STYLE",
        "CITE_EXPORT", "HTML_DOCTYPE", "SETUPFILE",
    },
    keyword_list_keys={"MACRO", "LATEX_HEADER", "LATEX_HEADER_EXTRA", "HTML_HEAD", "TODO"},
    affiliated_keywords={"NAME", "CAPTION", "HEADER", "PLOT", "RESULTS"},
    verbatim_blocks={"src", "example", "export", "comment", "verse"},
    quotes={'"': '"', "'": "'"},
    export_defaults=default_export_defaults(),
    **{name: re.compile(pattern, flags) for name, (pattern, flags) in REGEX_DEFAULTS.items()},
)

# ---------------- Loader -----------------------------------------------------


def _as_lower_str_set(value: Any, name: str) -> set[str]:
    if value is None:
        return set()
    if not isinstance(value, list):
        raise TypeError(f"{name} must be a list of strings")
    return {str(v).lower() for v in value}


def _as_upper_str_set(value: Any, name: str) -> set[str]:
    return {v.upper() for v in _as_lower_str_set(value, name)}


def _as_str_list(value: Any, name: str) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise TypeError(f"{name} must be a list of strings")
    return [str(v) for v in value]


def _as_export_defaults(value: Any) -> dict[str, dict[str, Any]]:
    if value is None:
        return default_export_defaults()
    if not isinstance(value, dict):
        raise TypeError("export_defaults must be a mapping")
    result: dict[str, dict[str, Any]] = {"common": {}}
    for backend, options in value.items():
        if options is None:
            options = {}
        if not isinstance(options, dict):
            raise TypeError(f"export_defaults.{backend} must be a mapping")
        result[str(backend).lower()] = dict(options)
    return result


def load_config(path: Path) -> OrgReaderConfig:
    """
    Load YAML config and return an OrgReaderConfig instance.

    Missing keys fall back to DEFAULT_CONFIG; entries under `regex:` replace
    the default pattern of the same name.
    """
    raw = yaml.safe_load(Path(path).read_text(encoding="utf-8"))
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise TypeError("Config root must be a mapping")

    regex = raw.get("regex", {}) or {}
    if not isinstance(regex, dict):
        raise TypeError("regex must be a mapping")
    unknown = sorted(set(regex) - set(REGEX_DEFAULTS))
    if unknown:
        raise TypeError(f"Unknown regex name(s): {', '.join(unknown)}")

    patterns = {
        name: re.compile(regex.get(name, pattern), flags)
        for name, (pattern, flags) in REGEX_DEFAULTS.items()
    }

    return OrgReaderConfig(
        todo_keywords=_as_str_list(
            raw.get("todo_keywords", DEFAULT_CONFIG.todo_keywords), "todo_keywords"
        ),
        done_keywords=_as_str_list(
            raw.get("done_keywords", DEFAULT_CONFIG.done_keywords), "done_keywords"
        ),
        document_keywords=_as_upper_str_set(
            raw.get("document_keywords", sorted(DEFAULT_CONFIG.document_keywords)),
            "document_keywords",
        ),
        keyword_list_keys=_as_upper_str_set(
            raw.get("keyword_list_keys", sorted(DEFAULT_CONFIG.keyword_list_keys)),
            "keyword_list_keys",
        ),
        affiliated_keywords=_as_upper_str_set(
            raw.get("affiliated_keywords", sorted(DEFAULT_CONFIG.affiliated_keywords)),
            "affiliated_keywords",
        ),
        verbatim_blocks=_as_lower_str_set(
            raw.get("verbatim_blocks", sorted(DEFAULT_CONFIG.verbatim_blocks)),
            "verbatim_blocks",
        ),
        quotes=dict(raw.get("quotes", DEFAULT_CONFIG.quotes)),
        export_defaults=_as_export_defaults(raw.get("export_defaults")),
        **patterns,
    )


def export_defaults_for(cfg: OrgReaderConfig, backend: str) -> dict[str, Any]:
    """
    Options for `backend`: the `common` entry overlaid with the backend's own.

    Example (config.yml):
        export_defaults:
          common: {toc: 2}
          latex:  {toc: false, document_class: report}
    ->  export_defaults_for(cfg, "latex") == {"toc": False, "document_class": "report"}
    """
    merged = dict(cfg.export_defaults.get("common", {}))
    merged.update(cfg.export_defaults.get(backend.lower(), {}))
    return merged
