#!/usr/bin/env python3
"""
table_formula.py

Spreadsheet formulas for Org tables (`#+TBLFM:` lines).

Pipeline, every step pure:

  parse_table(lines, i)        ->  ParsedTable  (rows, formulas, parameters)
  apply_formulas(table, ...)   ->  {"@R$C": "formatted value"}
  generate_updated_table(...)  ->  new table text

`recalculate_table(text, line)` and `recalculate_all_tables(text)` chain the
three for a whole document.

Row numbers count every row that is not a horizontal rule, starting at 1
with the header. Column numbers start at 1.

Expressions are rewritten by a reference tokenizer, in this order:

  1. aggregates     vsum(...) sum(...) vmean vmin vmax vcount vprod sdev
  2. remote         remote(name, @R$C)
  3. fields         @R$C  (R may be 0, <, >, I..III or +N/-N; C may be 0 or +N/-N)
  4. relative cols  $+N  $-N
  5. names          $name  (table parameter, then document constant, then column name)
  6. columns        $N     ($0 is the current column)
  7. specials       @# $# @> @< $> $<  and a lone @N

The result is plain arithmetic, evaluated by a small recursive-descent
parser (`+ - * / % **`, parentheses, unary signs). `^` is accepted as `**`.

Example:
    | a  | b  | sum |
    |----+----+-----|
    | 10 | 20 |     |
    #+TBLFM: $3=$1+$2

    recalculate_all_tables(text)  ->  ... | 10 | 20 | 30 | ...
"""
from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from typing import Callable, Optional, Union

logger = logging.getLogger(__name__)

RowRef = Union[int, str]


class FormulaError(ValueError):
    """Raised while evaluating a formula; always turned into `#ERROR: ...`."""


# ---------------- Durations --------------------------------------------------

_DURATION_RE = re.compile(r"^(-?)(\d+):(\d{2})(?::(\d{2}))?$")


def parse_duration(value: str) -> Optional[int]:
    """
    '[-]H:MM[:SS]' -> seconds, or None.

    Example:
        '1:30'     ->  5400
        '-0:30:00' -> -1800
        '1:2'      ->  None
    """
    match = _DURATION_RE.match(value.strip())
    if not match:
        return None
    seconds = int(match.group(2)) * 3600 + int(match.group(3)) * 60 + int(match.group(4) or 0)
    return -seconds if match.group(1) == "-" else seconds


def is_duration(value: str) -> bool:
    return _DURATION_RE.match(value.strip()) is not None


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _split_seconds(seconds: float) -> tuple[str, int, int, int]:
    sign = "-" if seconds < 0 else ""
    total = _round_half_up(abs(seconds))
    return sign, total // 3600, (total % 3600) // 60, total % 60


def format_duration_hms(seconds: float) -> str:
    sign, hours, minutes, secs = _split_seconds(seconds)
    return f"{sign}{hours}:{minutes:02d}:{secs:02d}"


def format_duration_hm(seconds: float) -> str:
    sign, hours, minutes, _ = _split_seconds(seconds)
    return f"{sign}{hours}:{minutes:02d}"


def format_duration_decimal_hours(seconds: float) -> str:
    return f"{seconds / 3600:.2f}"


# ---------------- Table model ------------------------------------------------

@dataclass(frozen=True)
class TableRow:
    cells: tuple[str, ...]
    is_hline: bool = False
    is_header: bool = False


@dataclass(frozen=True)
class FormulaTarget:
    kind: str                       # "column" | "field" | "range"
    column: RowRef                  # int, or ">" / "<" for a column target
    row: Optional[RowRef] = None
    end_column: Optional[int] = None
    end_row: Optional[RowRef] = None


@dataclass(frozen=True)
class Formula:
    raw: str
    target: FormulaTarget
    expression: str
    format: Optional[str] = None


@dataclass(frozen=True)
class ParsedTable:
    cells: tuple[TableRow, ...]
    start_line: int
    end_line: int
    name: Optional[str] = None
    tblfm_line: Optional[int] = None
    formulas: tuple[Formula, ...] = ()
    column_count: int = 0
    data_row_count: int = 0
    first_data_row: int = 1
    parameters: dict[str, str] = field(default_factory=dict)
    column_names: dict[str, int] = field(default_factory=dict)
    # row numbers of `| $name=value |` rows, never targets of column formulas
    parameter_rows: frozenset[int] = frozenset()

    @property
    def row_count(self) -> int:
        return sum(1 for row in self.cells if not row.is_hline)

    def cell(self, row: int, col: int) -> str:
        """Text of the cell at (row, col); '' when out of range."""
        index = 0
        for table_row in self.cells:
            if table_row.is_hline:
                continue
            index += 1
            if index == row:
                if 1 <= col <= len(table_row.cells):
                    return table_row.cells[col - 1]
                return ""
        return ""

    def row_after_hline(self, n: int) -> int:
        """Row number following the n-th rule; the last row if there is none."""
        hlines = rows = 0
        for table_row in self.cells:
            if table_row.is_hline:
                hlines += 1
                if hlines == n:
                    return rows + 1
            else:
                rows += 1
        return self.row_count


@dataclass
class EvalContext:
    table: ParsedTable
    current_row: Optional[int] = None
    current_col: int = 1
    named_tables: dict[str, ParsedTable] = field(default_factory=dict)
    constants: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class TableUpdate:
    start_line: int
    end_line: int
    new_text: str


# ---------------- Parsing ----------------------------------------------------

_HLINE_RE = re.compile(r"^\|-[-+]*\|?$")
_NAME_RE = re.compile(r"^\s*#\+NAME:\s*(.+)$", re.IGNORECASE)
_TBLFM_RE = re.compile(r"^\s*#\+TBLFM:\s*(.+)$", re.IGNORECASE)
_PARAMETER_RE = re.compile(r"^\$(\w+)\s*=\s*(.+)$")


def is_table_line(line: str) -> bool:
    return line.strip().startswith("|")


def is_hline(line: str) -> bool:
    return _HLINE_RE.match(line.strip()) is not None


def split_row(line: str) -> list[str]:
    """'| a | b |' -> ['a', 'b']"""
    text = line.strip()
    if text.startswith("|"):
        text = text[1:]
    if text.endswith("|"):
        text = text[:-1]
    return [cell.strip() for cell in text.split("|")]


def parse_table(lines: list[str], line_index: int) -> Optional[ParsedTable]:
    """
    Parse the table that contains `line_index` (0-based).

    A `#+TBLFM:` line directly below a table counts as part of it. The table
    name comes from a `#+NAME:` line directly above the first row.
    """
    if not 0 <= line_index < len(lines):
        return None

    line = lines[line_index]
    if _TBLFM_RE.match(line):
        if line_index > 0 and is_table_line(lines[line_index - 1]):
            return parse_table(lines, line_index - 1)
        return None
    if not is_table_line(line):
        return None

    start = line_index
    while start > 0 and is_table_line(lines[start - 1]):
        start -= 1
    end = line_index
    while end < len(lines) - 1 and is_table_line(lines[end + 1]):
        end += 1

    name = None
    if start > 0:
        match = _NAME_RE.match(lines[start - 1])
        if match:
            name = match.group(1).strip()

    tblfm_line = None
    formulas: list[Formula] = []
    if end + 1 < len(lines):
        match = _TBLFM_RE.match(lines[end + 1])
        if match:
            tblfm_line = end + 1
            formulas = parse_formulas(match.group(1))

    rows: list[TableRow] = []
    parameters: dict[str, str] = {}
    parameter_rows: set[int] = set()
    header_cells: list[str] = []
    seen_hline = False
    first_data_row = 1
    row_number = 0
    column_count = 0

    for i in range(start, end + 1):
        text = lines[i].strip()
        if is_hline(text):
            rows.append(TableRow(cells=(), is_hline=True))
            if not seen_hline:
                seen_hline = True
                first_data_row = row_number + 1
            continue

        values = split_row(text)
        row_number += 1
        if values and values[0].startswith("$"):
            for value in values:
                match = _PARAMETER_RE.match(value)
                if match:
                    parameters[match.group(1)] = match.group(2).strip()
                    parameter_rows.add(row_number)
        if not seen_hline and not header_cells:
            header_cells = values
        rows.append(TableRow(cells=tuple(values), is_header=not seen_hline))
        column_count = max(column_count, len(values))

    column_names: dict[str, int] = {}
    if seen_hline:
        for col, header in enumerate(header_cells, start=1):
            if header and not header.startswith("<") and not re.match(r"^[-+]+$", header):
                column_names[header.lower()] = col

    header_count = first_data_row - 1 if seen_hline else 0
    return ParsedTable(
        cells=tuple(rows),
        start_line=start,
        end_line=end,
        name=name,
        tblfm_line=tblfm_line,
        formulas=tuple(formulas),
        column_count=column_count,
        data_row_count=row_number - header_count,
        first_data_row=first_data_row,
        parameters=parameters,
        column_names=column_names,
        parameter_rows=frozenset(parameter_rows),
    )


_FORMULA_RE = re.compile(r"^([^=]+)=(.+?)(?:;(.+))?$")
_ROW_TOKEN = r"(?:[<>]|I{1,3}|-?\d+)"
_COLUMN_TARGET_RE = re.compile(r"^\$(\d+|[<>])$")
_FIELD_TARGET_RE = re.compile(rf"^@({_ROW_TOKEN})\$(\d+)$")
_RANGE_TARGET_RE = re.compile(rf"^@({_ROW_TOKEN})\$(\d+)\.\.@({_ROW_TOKEN})\$(\d+)$")


def _parse_row_ref(text: str) -> RowRef:
    if text in ("<", ">", "I", "II", "III") or text.startswith("-"):
        return text
    return int(text)


def parse_formula_target(text: str) -> Optional[FormulaTarget]:
    match = _COLUMN_TARGET_RE.match(text)
    if match:
        column = match.group(1)
        return FormulaTarget(kind="column", column=column if column in "<>" else int(column))
    match = _FIELD_TARGET_RE.match(text)
    if match:
        return FormulaTarget(kind="field", row=_parse_row_ref(match.group(1)), column=int(match.group(2)))
    match = _RANGE_TARGET_RE.match(text)
    if match:
        return FormulaTarget(
            kind="range",
            row=_parse_row_ref(match.group(1)),
            column=int(match.group(2)),
            end_row=_parse_row_ref(match.group(3)),
            end_column=int(match.group(4)),
        )
    return None


def parse_formulas(tblfm: str) -> list[Formula]:
    """
    Split a `#+TBLFM:` value on '::' into formulas. Malformed ones are dropped.

    Example:
        '$3=$1+$2::@>$3=vsum(@2$3..@-1$3);%.1f'
    ->  [Formula(target=column 3, ...), Formula(target=field (>, 3), format='%.1f')]
    """
    formulas: list[Formula] = []
    for part in (p.strip() for p in tblfm.split("::")):
        if not part:
            continue
        match = _FORMULA_RE.match(part)
        target = parse_formula_target(match.group(1).strip()) if match else None
        if target is None:
            logger.debug("Dropping malformed table formula %r", part)
            continue
        fmt = match.group(3).strip() if match.group(3) else None
        formulas.append(Formula(raw=part, target=target, expression=match.group(2).strip(), format=fmt))
    return formulas


# ---------------- Reference resolution ---------------------------------------

_NUMBER_PREFIX_RE = re.compile(r"^\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")


def to_number(value: str, duration_mode: bool = False) -> Optional[float]:
    """Leading number of a cell ('12 kg' -> 12.0), a duration in seconds, or None."""
    if duration_mode and is_duration(value):
        return float(parse_duration(value))
    match = _NUMBER_PREFIX_RE.match(value)
    if match:
        return float(match.group(1))
    return None


def _number_literal(value: float) -> str:
    text = repr(value)
    return f"({text})" if value < 0 else text


def _cell_literal(value: str, duration_mode: bool) -> str:
    if not value.strip():
        return "0"
    number = to_number(value, duration_mode)
    if number is None:
        raise FormulaError(f"non-numeric value {value!r}")
    return _number_literal(number)


def _expression_row(ref: str, context: EvalContext) -> int:
    """Row reference inside an expression; @-N is relative to the current row."""
    table = context.table
    if ref == ">":
        return table.row_count
    if ref == "<":
        return 1
    if ref in ("I", "II", "III"):
        return table.row_after_hline(len(ref))
    if ref == "0":
        return context.current_row or 1
    if ref.startswith("+"):
        return (context.current_row or 1) + int(ref[1:])
    if ref.startswith("-"):
        base = context.current_row if context.current_row is not None else table.row_count
        return base - int(ref[1:])
    return int(ref)


def _expression_column(ref: str, context: EvalContext) -> int:
    if ref == ">":
        return context.table.column_count
    if ref == "<":
        return 1
    if ref == "0":
        return context.current_col
    if ref[0] in "+-":
        return context.current_col + int(ref)
    return int(ref)


def _target_row(ref: RowRef, table: ParsedTable) -> int:
    """Row reference in a formula target; @-N is relative to the last row."""
    if isinstance(ref, int):
        return ref
    if ref == ">":
        return table.row_count
    if ref == "<":
        return 1
    if ref in ("I", "II", "III"):
        return table.row_after_hline(len(ref))
    if ref.startswith("-"):
        return table.row_count - int(ref[1:])
    return 1


_CELL_REF = r"@([<>0]|I{1,3}|[+-]?\d+)\$([<>]|[+-]?\d+)"
_CELL_RANGE_RE = re.compile(rf"^{_CELL_REF}\.\.{_CELL_REF}$")
_CELL_RE = re.compile(rf"^{_CELL_REF}$")
_COLUMN_RANGE_RE = re.compile(r"^\$([+-]?\d+)\.\.\$([+-]?\d+)$")
_WHOLE_COLUMN_RE = re.compile(r"^\$(\d+)$")
_REMOTE_RE = re.compile(r"^remote\(\s*([^,()]+?)\s*,\s*(.+?)\s*\)$", re.IGNORECASE)


def _remote_context(name: str, context: EvalContext) -> Optional[EvalContext]:
    remote = context.named_tables.get(name)
    if remote is None:
        return None
    return EvalContext(
        table=remote,
        current_row=context.current_row,
        current_col=context.current_col,
        named_tables=context.named_tables,
        constants=context.constants,
    )


def resolve_range(text: str, context: EvalContext) -> list[str]:
    """
    Cell texts covered by a range, in row-major order.

    Example:
        '@2$1..@4$1'   rows 2-4 of column 1
        '$1..$3'       columns 1-3 of the current row
        '$2'           every data row of column 2
    """
    text = text.strip()
    table = context.table

    match = _REMOTE_RE.match(text)
    if match:
        remote = _remote_context(match.group(1), context)
        return resolve_range(match.group(2), remote) if remote is not None else []

    match = _CELL_RANGE_RE.match(text)
    if match:
        rows = sorted((_expression_row(match.group(1), context), _expression_row(match.group(3), context)))
        cols = sorted((_expression_column(match.group(2), context), _expression_column(match.group(4), context)))
        return [
            table.cell(row, col)
            for row in range(rows[0], rows[1] + 1)
            for col in range(cols[0], cols[1] + 1)
        ]

    match = _COLUMN_RANGE_RE.match(text)
    if match:
        cols = sorted((_expression_column(match.group(1), context), _expression_column(match.group(2), context)))
        row = context.current_row or 1
        return [table.cell(row, col) for col in range(cols[0], cols[1] + 1)]

    match = _WHOLE_COLUMN_RE.match(text)
    if match:
        col = int(match.group(1))
        first = table.first_data_row
        return [table.cell(row, col) for row in range(first, first + table.data_row_count)]

    match = _CELL_RE.match(text)
    if match:
        return [table.cell(_expression_row(match.group(1), context), _expression_column(match.group(2), context))]

    logger.debug("Unrecognised range %r", text)
    return []


def _mean(values: list[float]) -> float:
    return sum(values) / len(values)


def _sdev(values: list[float]) -> float:
    mean = _mean(values)
    return math.sqrt(sum((v - mean) ** 2 for v in values) / len(values))


AGGREGATES: dict[str, Callable[[list[float]], float]] = {
    "sum": lambda values: math.fsum(values),
    "mean": _mean,
    "min": min,
    "max": max,
    "count": lambda values: float(len(values)),
    "prod": lambda values: math.prod(values),
    "sdev": _sdev,
}

_AGGREGATE_RE = re.compile(r"\b(v?(?:sum|mean|min|max|count|prod)|sdev)\(", re.IGNORECASE)


def aggregate(name: str, values: list[float]) -> float:
    """Apply an aggregate; an empty input gives 0."""
    if not values:
        return 0.0
    key = name.lower()
    if key.startswith("v"):
        key = key[1:]
    return AGGREGATES[key](values)


def _closing_paren(text: str, open_index: int) -> int:
    depth = 0
    for i in range(open_index, len(text)):
        if text[i] == "(":
            depth += 1
        elif text[i] == ")":
            depth -= 1
            if depth == 0:
                return i
    raise FormulaError("unbalanced parentheses")


def _substitute_aggregates(expr: str, context: EvalContext, duration_mode: bool) -> str:
    while True:
        match = _AGGREGATE_RE.search(expr)
        if match is None:
            return expr
        open_index = match.end() - 1
        close_index = _closing_paren(expr, open_index)
        values = [
            number
            for number in (to_number(v, duration_mode) for v in resolve_range(expr[open_index + 1:close_index], context))
            if number is not None
        ]
        result = aggregate(match.group(1), values)
        expr = expr[:match.start()] + _number_literal(result) + expr[close_index + 1:]


_REMOTE_CALL_RE = re.compile(r"remote\(\s*([^,()]+?)\s*,\s*([^()]+?)\s*\)", re.IGNORECASE)

_REFERENCE_RE = re.compile(
    r"@(?P<frow>[<>]|I{1,3}|[+-]?\d+)\$(?P<fcol>[<>]|[+-]?\d+)"
    r"|\$(?P<rel>[+-]\d+)"
    r"|\$(?P<name>[A-Za-z_]\w*)"
    r"|\$(?P<col>\d+)"
    r"|(?P<special>@#|\$#|@>|@<|\$>|\$<)"
    r"|@(?P<row>\d+)"
)


def _resolve_name(name: str, context: EvalContext) -> Optional[str]:
    table = context.table
    if name in table.parameters:
        return table.parameters[name]
    if name in context.constants:
        return context.constants[name]
    col = table.column_names.get(name.lower())
    if col is not None:
        return table.cell(context.current_row or 1, col)
    return None


def substitute_references(expr: str, context: EvalContext, duration_mode: bool = False) -> str:
    """Replace every table reference in `expr` by a numeric literal."""
    expr = _substitute_aggregates(expr, context, duration_mode)

    def remote(match: re.Match) -> str:
        remote_context = _remote_context(match.group(1), context)
        if remote_context is None:
            logger.debug("remote(): unknown table %r", match.group(1))
            return "0"
        values = resolve_range(match.group(2), remote_context)
        return _cell_literal(values[0] if values else "", duration_mode)

    expr = _REMOTE_CALL_RE.sub(remote, expr)

    table = context.table
    row = context.current_row or 1

    def reference(match: re.Match) -> str:
        if match.group("frow") is not None:
            cell = table.cell(
                _expression_row(match.group("frow"), context),
                _expression_column(match.group("fcol"), context),
            )
            return _cell_literal(cell, duration_mode)
        if match.group("rel") is not None:
            return _cell_literal(table.cell(row, context.current_col + int(match.group("rel"))), duration_mode)
        if match.group("name") is not None:
            value = _resolve_name(match.group("name"), context)
            if value is None:
                # left in place; the evaluator reports it
                return match.group(0)
            return _cell_literal(value, duration_mode)
        if match.group("col") is not None:
            col = int(match.group("col")) or context.current_col
            return _cell_literal(table.cell(row, col), duration_mode)
        special = match.group("special")
        if special is not None:
            return str({
                "@#": table.data_row_count,
                "$#": table.column_count,
                "@>": table.row_count,
                "@<": 1,
                "$>": table.column_count,
                "$<": 1,
            }[special])
        number = int(match.group("row"))
        return str(row if number == 0 else number)

    expr = _REFERENCE_RE.sub(reference, expr)
    return expr.replace("^", "**")


# ---------------- Arithmetic -------------------------------------------------

_TOKEN_RE = re.compile(r"\s*(?:(\d+\.?\d*(?:[eE][+-]?\d+)?|\.\d+(?:[eE][+-]?\d+)?)|(\*\*|[-+*/%()]))")


def _tokenize(expr: str) -> list[str]:
    tokens: list[str] = []
    pos = 0
    expr = expr.rstrip()
    while pos < len(expr):
        match = _TOKEN_RE.match(expr, pos)
        if match is None:
            raise FormulaError(f"unexpected {expr[pos:].strip()!r}")
        tokens.append(match.group(1) or match.group(2))
        pos = match.end()
    return tokens


class _Parser:
    """
    expr  := term (('+' | '-') term)*
    term  := unary (('*' | '/' | '%') unary)*
    unary := ('+' | '-') unary | power
    power := atom ('**' unary)?
    atom  := NUMBER | '(' expr ')'
    """

    def __init__(self, tokens: list[str]):
        self.tokens = tokens
        self.pos = 0

    def peek(self) -> Optional[str]:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def take(self) -> str:
        token = self.peek()
        if token is None:
            raise FormulaError("unexpected end of expression")
        self.pos += 1
        return token

    def parse(self) -> float:
        value = self.expr()
        if self.peek() is not None:
            raise FormulaError(f"unexpected {self.peek()!r}")
        return value

    def expr(self) -> float:
        value = self.term()
        while self.peek() in ("+", "-"):
            op = self.take()
            right = self.term()
            value = value + right if op == "+" else value - right
        return value

    def term(self) -> float:
        value = self.unary()
        while self.peek() in ("*", "/", "%"):
            op = self.take()
            right = self.unary()
            if op == "*":
                value *= right
            elif right == 0:
                raise FormulaError("division by zero")
            elif op == "/":
                value /= right
            else:
                value = math.fmod(value, right)
        return value

    def unary(self) -> float:
        if self.peek() in ("+", "-"):
            op = self.take()
            value = self.unary()
            return -value if op == "-" else value
        return self.power()

    def power(self) -> float:
        base = self.atom()
        if self.peek() == "**":
            self.take()
            exponent = self.unary()
            try:
                return math.pow(base, exponent)
            except (OverflowError, ValueError) as exc:
                raise FormulaError(f"invalid power {base}**{exponent}") from exc
        return base

    def atom(self) -> float:
        token = self.take()
        if token == "(":
            value = self.expr()
            if self.take() != ")":
                raise FormulaError("expected ')'")
            return value
        if token in ("+", "-", "*", "/", "%", "**", ")"):
            raise FormulaError(f"unexpected {token!r}")
        return float(token)


def evaluate_arithmetic(expr: str) -> float:
    value = _Parser(_tokenize(expr)).parse()
    if not math.isfinite(value):
        raise FormulaError("result is not finite")
    return value


# ---------------- Evaluation and formatting ----------------------------------

def duration_flag(fmt: Optional[str]) -> Optional[str]:
    """'T', 'U' or 't' anywhere in the format; it wins over a printf spec."""
    if not fmt:
        return None
    for flag in ("T", "U", "t"):
        if flag in fmt:
            return flag
    return None


def evaluate_expression(expression: str, context: EvalContext,
                        fmt: Optional[str] = None) -> Union[float, str]:
    """
    Evaluate one formula right-hand side at `context`'s current cell.

    Returns a number, or '#ERROR: <message>'.
    """
    try:
        arithmetic = substitute_references(expression, context, duration_flag(fmt) is not None)
        return evaluate_arithmetic(arithmetic)
    except FormulaError as exc:
        logger.debug("Formula %r failed at @%s$%s: %s",
                     expression, context.current_row, context.current_col, exc)
        return f"#ERROR: {exc}"


def _plain_number(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return repr(value)


def _exponential(value: float, precision: Optional[int]) -> str:
    if precision is None:
        mantissa, exponent = f"{value:.15e}".split("e")
        mantissa = mantissa.rstrip("0").rstrip(".")
    else:
        mantissa, exponent = f"{value:.{precision}e}".split("e")
    sign = exponent[0]
    return f"{mantissa}e{sign}{int(exponent[1:])}"


_PRINTF_RE = re.compile(r"^%(\d+)?(?:\.(\d+))?([dfes])(.*)$")


def format_result(result: Union[float, str], fmt: Optional[str] = None) -> str:
    """
    Render a result for its cell.

    Example:
        30.0, None      ->  '30'
        2.5, None       ->  '2.5'
        12600, 'U'      ->  '3:30'
        0.456, '%.1f'   ->  '0.5'
        7, '%5d%%'      ->  '    7%'
    """
    if isinstance(result, str):
        return result

    if not fmt:
        if float(result).is_integer():
            return str(int(result))
        return re.sub(r"\.?0+$", "", f"{result:.2f}")

    flag = duration_flag(fmt)
    if flag == "T":
        return format_duration_hms(result)
    if flag == "U":
        return format_duration_hm(result)
    if flag == "t":
        return format_duration_decimal_hours(result)

    match = _PRINTF_RE.match(fmt)
    if not match:
        return _plain_number(result)

    width, precision, kind, suffix = match.groups()
    if kind == "d":
        text = str(_round_half_up(result))
    elif kind == "f":
        text = f"{result:.{int(precision) if precision else 2}f}"
    elif kind == "e":
        text = _exponential(result, int(precision) if precision else None)
    else:
        text = _plain_number(result)

    if width:
        text = text.rjust(int(width))
    return text + suffix.replace("%%", "%")


def _target_column(column: RowRef, table: ParsedTable) -> int:
    if column == ">":
        return table.column_count
    if column == "<":
        return 1
    return int(column)


def apply_formulas(
    table: ParsedTable,
    named_tables: Optional[dict[str, ParsedTable]] = None,
    constants: Optional[dict[str, str]] = None,
) -> dict[str, str]:
    """
    Evaluate every formula of `table` against its parsed cells.

    Returns '@R$C' -> formatted text. Later formulas overwrite earlier ones
    for the same cell.
    """
    updates: dict[str, str] = {}
    named_tables = named_tables or {}
    constants = constants or {}

    def run(formula: Formula, row: int, col: int) -> None:
        context = EvalContext(table=table, current_row=row, current_col=col,
                              named_tables=named_tables, constants=constants)
        result = evaluate_expression(formula.expression, context, formula.format)
        updates[f"@{row}${col}"] = format_result(result, formula.format)

    for formula in table.formulas:
        target = formula.target
        if target.kind == "column":
            col = _target_column(target.column, table)
            first = table.first_data_row
            for row in range(first, first + table.data_row_count):
                if row not in table.parameter_rows:
                    run(formula, row, col)
        elif target.kind == "field":
            run(formula, _target_row(target.row, table), int(target.column))
        else:
            rows = sorted((_target_row(target.row, table), _target_row(target.end_row, table)))
            cols = sorted((int(target.column), int(target.end_column)))
            for row in range(rows[0], rows[1] + 1):
                for col in range(cols[0], cols[1] + 1):
                    run(formula, row, col)
    return updates


def format_table_row(cells: list[str]) -> str:
    return "| " + " | ".join(cells) + " |"


def generate_updated_table(lines: list[str], table: ParsedTable, updates: dict[str, str]) -> str:
    """Rebuild the table's lines with `updates` applied; rules are kept as they are."""
    out: list[str] = []
    row = 0
    for i in range(table.start_line, table.end_line + 1):
        line = lines[i]
        if is_hline(line):
            out.append(line)
            continue
        row += 1
        cells = split_row(line)
        cells += [""] * (table.column_count - len(cells))
        for col in range(1, len(cells) + 1):
            value = updates.get(f"@{row}${col}")
            if value is not None:
                cells[col - 1] = value
        out.append(format_table_row(cells))
    return "\n".join(out)


# ---------------- Document helpers -------------------------------------------

_CONSTANTS_RE = re.compile(r"^\s*#\+CONSTANTS:\s*(.+)$", re.IGNORECASE)


def parse_document_constants(text: str) -> dict[str, str]:
    """
    Collect `#+CONSTANTS: name=value ...` pairs from every such line.

    Example:
        '#+CONSTANTS: pi=3.14159 e=2.71828'  ->  {'pi': '3.14159', 'e': '2.71828'}
    """
    constants: dict[str, str] = {}
    for line in text.splitlines():
        match = _CONSTANTS_RE.match(line)
        if not match:
            continue
        for pair in match.group(1).split():
            name, sep, value = pair.partition("=")
            if name and sep:
                constants[name.strip()] = value.strip()
    return constants


def find_named_tables(lines: list[str]) -> dict[str, ParsedTable]:
    tables: dict[str, ParsedTable] = {}
    for i, line in enumerate(lines):
        match = _NAME_RE.match(line)
        if match and i + 1 < len(lines) and is_table_line(lines[i + 1]):
            table = parse_table(lines, i + 1)
            if table is not None:
                tables[match.group(1).strip()] = table
    return tables


def recalculate_table(text: str, line: int) -> Optional[TableUpdate]:
    """
    Recalculate the table at 0-based `line`.

    Returns None when there is no table there, or it has no formulas.
    """
    lines = text.splitlines()
    table = parse_table(lines, line)
    if table is None or not table.formulas:
        return None

    updates = apply_formulas(table, find_named_tables(lines), parse_document_constants(text))
    if not updates:
        return None
    return TableUpdate(
        start_line=table.start_line,
        end_line=table.end_line,
        new_text=generate_updated_table(lines, table, updates),
    )


def recalculate_all_tables(text: str) -> str:
    """Recalculate every table with a `#+TBLFM:` line, from the bottom up."""
    lines = text.splitlines()
    starts: list[int] = []
    i = 0
    while i < len(lines):
        if is_table_line(lines[i]):
            table = parse_table(lines, i)
            if table is not None and table.formulas:
                starts.append(table.start_line)
            i = table.end_line + 1 if table is not None else i + 1
        else:
            i += 1

    for start in reversed(starts):
        update = recalculate_table("\n".join(lines), start)
        if update is None:
            continue
        lines[update.start_line:update.end_line + 1] = update.new_text.split("\n")
        logger.debug("Recalculated table at line %d", start + 1)

    result = "\n".join(lines)
    return result + "\n" if text.endswith("\n") else result
