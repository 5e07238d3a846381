from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator, Optional, Tuple

from config_loader import DEFAULT_CONFIG, OrgReaderConfig
from org_parser import parse_org_text
from org_tree import OrgDocument

logger = logging.getLogger(__name__)

# header keywords of an included file that would clobber the includer's
INCLUDED_HEADER_KEYS = frozenset({"TITLE", "AUTHOR", "DATE", "OPTIONS", "EMAIL"})


def safe_input_path(raw: str, *, root: Optional[Path] = None) -> Path:
    """
    Parse and validate a user-supplied path.

    Goals:
    - reject obvious malicious / malformed inputs (NUL, empty)
    - avoid directory traversal surprises when a root is given
    - resolve symlinks safely (best effort) and return an absolute path
    """
    if not raw or raw.strip() == "":
        raise ValueError("Empty input path.")

    if "\x00" in raw:
        raise ValueError("NUL byte in path is not allowed.")

    p = Path(raw).expanduser()

    # Disallow path traversal patterns (conservative).
    if any(part == ".." for part in p.parts):
        raise ValueError("Path traversal ('..') is not allowed.")

    if root is not None and not p.is_absolute():
        p = root / p

    # strict=False so it can still be resolved even if it doesn't exist (we check after)
    resolved = p.resolve(strict=False)

    if root is not None:
        root_resolved = root.resolve(strict=True)
        try:
            resolved.relative_to(root_resolved)
        except ValueError as e:
            raise ValueError(f"Input path must be within root: {root_resolved}") from e

    if not resolved.exists():
        raise FileNotFoundError(f"File not found: {resolved}")
    if not resolved.is_file():
        raise IsADirectoryError(f"Not a file: {resolved}")

    return resolved


def un_quote_string(string: str, cfg: OrgReaderConfig) -> str:
    """
    Remove a single matching pair of surrounding quotation marks from a string.
    """
    for open_quote, close_quote in cfg.quotes.items():
        if len(string) >= 2 and string.startswith(open_quote) and string.endswith(close_quote):
            return string[len(open_quote):-len(close_quote)].strip()
    return string


def parse_include_target(line: str, cfg: OrgReaderConfig) -> Optional[str]:
    """
    Extract the include target from a line like:
      #+INCLUDE: "file.org"
      #+INCLUDE file.org
      #+INCLUDE: file.org src python
    Returns the unquoted file name, or None if not parseable.
    """
    match = cfg.include_keyword_re.match(line)
    if not match:
        return None

    rest = line[match.end():].lstrip(":").strip()
    if not rest:
        return None

    if rest[0] in cfg.quotes:
        close = cfg.quotes[rest[0]]
        end = rest.find(close, 1)
        target = rest[1:end] if end != -1 else rest[1:]
    else:
        target = rest.split()[0]
    target = un_quote_string(target.strip(), cfg)
    return target or None


def resolve_include(line: str, path: Path, cfg: OrgReaderConfig) -> Optional[Path]:
    """
    Resolve an Org-style #+INCLUDE directive to an absolute file path.
    """
    target = parse_include_target(line, cfg)
    if target is None:
        return None
    return (path.parent / Path(target).expanduser()).resolve()


def preamble_decision(line: str, cfg: OrgReaderConfig) -> Tuple[bool, bool]:
    """
    Decide whether a line of an included file is dropped.

    Returns (skip, still_in_preamble).
    """
    if line.strip() == "":
        return True, True

    match = cfg.keyword_re.match(line)
    if match and match.group(1).upper() in INCLUDED_HEADER_KEYS:
        return True, True

    return False, False


def read_with_includes(
    path: Path,
    cfg: OrgReaderConfig = DEFAULT_CONFIG,
    *,
    is_root: bool = True,
    _seen: Optional[set[Path]] = None,
) -> Iterator[str]:
    """
    Iterate over an Org file line-by-line, expanding #+INCLUDE directives.

    Does NOT expand includes inside blocks or drawers. A file that includes
    itself (directly or through others) is skipped with a warning.
    """
    path = Path(path).resolve()
    seen = set(_seen or ())
    seen.add(path)

    open_blocks: list[str] = []
    inside_drawer = False
    in_preamble: bool = not is_root

    with path.open(encoding="utf-8") as f:
        for raw_line in f:
            line = raw_line.rstrip("\n")

            if in_preamble:
                skip, in_preamble = preamble_decision(line, cfg)
                if skip:
                    continue

            block = cfg.block_re.match(line)
            if block:
                name = block.group(2).lower()
                if block.group(1).lower() == "begin":
                    open_blocks.append(name)
                elif open_blocks and open_blocks[-1] == name:
                    open_blocks.pop()
            elif cfg.drawer_end_re.match(line):
                inside_drawer = False
            elif cfg.drawer_begin_re.match(line):
                inside_drawer = True

            if not open_blocks and not inside_drawer and cfg.include_keyword_re.match(line):
                target = resolve_include(line, path, cfg)
                if target is None:
                    logger.warning("Unparseable include in %s: %s", path, line.strip())
                elif target in seen:
                    logger.warning("Skipping recursive include of %s", target)
                else:
                    yield from read_with_includes(target, cfg, is_root=False, _seen=seen)
                continue

            yield line


def read_org_file(path: Path, cfg: OrgReaderConfig = DEFAULT_CONFIG) -> OrgDocument:
    """Read `path` with includes expanded and parse it."""
    return parse_org_text("\n".join(read_with_includes(Path(path), cfg)), cfg)
