#!/usr/bin/env python3
"""
org_export.py

Command line front end: read an Org file (with includes), optionally
recalculate its tables, and export it to html, latex, docx, md or org.

    python org_export.py notes.org -f latex --toc -o notes.tex
"""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Callable, Optional, Union

from config_loader import DEFAULT_CONFIG, OrgReaderConfig, export_defaults_for, load_config
from export_docx import export_to_docx
from export_html import export_to_html
from export_latex import export_to_latex
from export_markdown import export_to_markdown
from export_options import ExportError
from org_interpreter import interpret
from org_parser import parse_org_text
from org_reader import read_with_includes, safe_input_path
from org_tree import OrgDocument
from table_formula import recalculate_all_tables

logger = logging.getLogger(__name__)

Exporter = Callable[[OrgDocument, Optional[dict[str, Any]]], Union[str, bytes]]

# format -> (exporter, file extension, export_defaults key)
FORMATS: dict[str, tuple[Exporter, str, str]] = {
    "html": (export_to_html, ".html", "html"),
    "latex": (export_to_latex, ".tex", "latex"),
    "docx": (export_to_docx, ".docx", "docx"),
    "md": (export_to_markdown, ".md", "markdown"),
    "org": (lambda doc, options: interpret(doc), ".org", "org"),
}


def load_org_text(path: Path, cfg: OrgReaderConfig, *, recalc_tables: bool = False) -> str:
    text = "\n".join(read_with_includes(path, cfg))
    if recalc_tables:
        text = recalculate_all_tables(text)
    return text


def export_text(
    text: str,
    fmt: str,
    cfg: OrgReaderConfig = DEFAULT_CONFIG,
    options: Optional[dict[str, Any]] = None,
) -> Union[str, bytes]:
    """
    Parse `text` and export it as `fmt`.

    Options are layered: config `export_defaults` < `options`.
    """
    if fmt not in FORMATS:
        raise ExportError(f"Unknown export format: {fmt}")
    exporter, _, defaults_key = FORMATS[fmt]
    merged = export_defaults_for(cfg, defaults_key)
    merged.update(options or {})
    doc = parse_org_text(text, cfg)
    return exporter(doc, merged or None)


def default_output_path(input_path: Path, fmt: str) -> Path:
    return input_path.with_suffix(FORMATS[fmt][1])


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="org_export.py",
        description="Export an Org file (with includes) to HTML, LaTeX, Word, Markdown or Org.",
    )
    parser.add_argument("input", help="Input Org file")
    parser.add_argument(
        "-f", "--format",
        choices=sorted(FORMATS),
        default="html",
        help="Output format (default: html)",
    )
    parser.add_argument(
        "-o", "--output",
        default=None,
        help="Output file; '-' writes text formats to stdout (default: input name with the format's suffix)",
    )
    parser.add_argument("-c", "--config", default=None, help="Config YAML file (default: built-in defaults)")
    parser.add_argument("--body-only", action="store_true", help="Omit the document wrapper")
    parser.add_argument("--toc", action="store_true", help="Include a table of contents")
    parser.add_argument(
        "--recalc-tables",
        action="store_true",
        help="Recalculate #+TBLFM formulas before exporting",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = build_arg_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(message)s",
    )

    options: dict[str, Any] = {}
    if args.body_only and args.format != "org":
        options["body_only"] = True
    if args.toc and args.format != "org":
        options["toc"] = True

    try:
        cfg = load_config(Path(args.config)) if args.config else DEFAULT_CONFIG
        input_path = safe_input_path(args.input)
        text = load_org_text(input_path, cfg, recalc_tables=args.recalc_tables)
        result = export_text(text, args.format, cfg, options)
    except (FileNotFoundError, IsADirectoryError, ExportError, TypeError, ValueError) as e:
        raise SystemExit(f"[org_export] {e}") from e

    if args.output == "-":
        if isinstance(result, bytes):
            raise SystemExit("[org_export] docx output cannot be written to stdout")
        sys.stdout.write(result)
        return 0

    output = Path(args.output) if args.output else default_output_path(input_path, args.format)
    if isinstance(result, bytes):
        output.write_bytes(result)
    else:
        output.write_text(result, encoding="utf-8")
    logger.info("Wrote %s", output)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
