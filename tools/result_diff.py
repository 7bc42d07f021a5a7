#!/usr/bin/env python3
"""
Diff two directories of BenchmarkDotNet CSV reports as Markdown tables.
Usage: python3 tools/result_diff.py <old result path> <new result path>

Each old row is printed next to the matching new row (compared by position), with
the relative change of every metric appended to the new value, e.g. `1.111 ms (-10%)`.
"""
from __future__ import annotations

import argparse
import contextlib
import logging
import pathlib
import re
import sys
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, TextIO, Tuple

import bdn_report_files

logger = logging.getLogger(__name__)

Row = Sequence[str]

COLUMNS = (
    "Type",
    "Method",
    "FileName",
    "N",
    "Mean",
    "Error",
    "Gen 0/1k Op",
    "Gen 1/1k Op",
    "Gen 2/1k Op",
    "Allocated Memory/Op",
    "Gen 0",
    "Gen 1",
    "Gen 2",
    "Allocated",
)

PLACEHOLDERS = frozenset({"-", "N/A", "NA"})
IDENTITY_COLUMNS = frozenset({"Type", "Method", "N", "FileName"})
CODE_COLUMNS = frozenset({"Type", "Method"})
ERROR_COLUMN = "Error"

REPORT_SUFFIX = "-report.csv"

CONVERSION_FROM_BIGGER = Decimal("0.0009765625")

# (bigger, smaller) unit steps; time units deliberately use the same 1024 ratio.
UNIT_STEPS = (
    ("KB", "B"),
    ("MB", "KB"),
    ("GB", "MB"),
    ("s", "ms"),
    ("ms", "us"),
    ("ms", "μs"),
    ("μs", "ns"),
)


def _build_unit_multipliers() -> Dict[Tuple[str, str], Decimal]:
    multipliers: Dict[Tuple[str, str], Decimal] = {}
    for bigger, smaller in UNIT_STEPS:
        multipliers[bigger, smaller] = CONVERSION_FROM_BIGGER
        multipliers[smaller, bigger] = 1 / CONVERSION_FROM_BIGGER
    multipliers["MB", "B"] = CONVERSION_FROM_BIGGER * CONVERSION_FROM_BIGGER
    return multipliers


# Keyed by (old unit, new unit); scales a new value onto the old value's unit.
UNIT_MULTIPLIERS = _build_unit_multipliers()

NUMBER_RE = re.compile(r"[-+]?(?:\d[\d,]*(?:\.\d*)?|\.\d+)")


class Alignment(Enum):
    LEFT = "left"
    RIGHT = "right"


@dataclass(frozen=True)
class Cell:
    text: str
    alignment: Alignment = Alignment.LEFT


@dataclass(frozen=True)
class ColumnSpec:
    name: str
    old_index: Optional[int]
    new_index: Optional[int]
    alignment: Alignment


def split_result(text: str) -> Tuple[str, str]:
    """Split a cell such as `1.234 ms` into its value and unit at the last space."""
    value, space, unit = text.rpartition(" ")
    if not space:
        return text, ""
    return value, unit


def parse_number(text: str) -> Optional[Decimal]:
    cleaned = text.strip()
    if not NUMBER_RE.fullmatch(cleaned):
        return None
    return Decimal(cleaned.replace(",", ""))


def unit_multiplier(old_unit: str, new_unit: str) -> Optional[Decimal]:
    """
    Return the factor that expresses a new value in the old value's unit.

    None means the two units cannot be compared.
    """
    if old_unit == new_unit or not old_unit:
        return Decimal(1)
    return UNIT_MULTIPLIERS.get((old_unit, new_unit))


def format_percent(diff: Decimal) -> str:
    rounded = int(diff.to_integral_value(rounding=ROUND_HALF_UP))
    if rounded == 0:
        return "0"
    return f"{rounded:+d}"


def format_diff(column: str, old_text: str, new_text: str) -> str:
    """
    Annotate `new_text` with its relative change against `old_text`.

    Cells that cannot be compared are returned unannotated. A warning is logged
    when a real difference could not be expressed as a percentage.
    """
    old_value, old_unit = split_result(old_text)
    new_value, new_unit = split_result(new_text)

    if bool(old_unit.strip()) != bool(new_unit.strip()):
        return new_text

    old_number = parse_number(old_value)
    new_number = parse_number(new_value)
    can_diff = (
        column != ERROR_COLUMN
        and old_value not in PLACEHOLDERS
        and new_value not in PLACEHOLDERS
        and old_number is not None
        and old_number != 0
    )

    multiplier: Optional[Decimal] = Decimal(1)
    if can_diff and old_unit:
        multiplier = unit_multiplier(old_unit, new_unit)
        can_diff = multiplier is not None

    if can_diff and new_number is not None:
        diff = (new_number * multiplier / old_number - 1) * 100
        return f"{new_text} ({format_percent(diff)}%)"

    if old_value == "-" or (old_value, new_value) == ("0.0000", "0.0000"):
        return new_text
    if new_value == "-":
        # The measurement disappeared.
        if old_number is not None and column != ERROR_COLUMN:
            return f"{new_text} (-100%)"
        return new_text
    if column != ERROR_COLUMN and old_text != new_text:
        logger.warning("Cannot calculate diff for %s vs %s", old_text, new_text)
    return new_text


def column_alignment(name: str) -> Alignment:
    if "gen " in name.lower() or name in ("Allocated", "Mean", "Error"):
        return Alignment.RIGHT
    return Alignment.LEFT


def select_columns(old_header: Row, new_header: Row, columns: Sequence[str] = COLUMNS) -> List[ColumnSpec]:
    """Keep the reference columns present in either header, in reference order."""
    specs = []
    for name in columns:
        old_index = bdn_report_files.find_first_index(old_header, name)
        new_index = bdn_report_files.find_first_index(new_header, name)
        if old_index is None and new_index is None:
            continue
        specs.append(ColumnSpec(name, old_index, new_index, column_alignment(name)))
    return specs


def field_at(row: Row, index: Optional[int]) -> Optional[str]:
    if index is None or index >= len(row):
        return None
    return row[index]


def format_table(row_pairs: Iterable[Tuple[Row, Row]]) -> Iterator[List[Cell]]:
    """
    Turn positionally aligned (old, new) rows into table cells.

    The first pair must be the two header rows. Yields the header cells, then an
    "Old" and a "New" row for every following pair.
    """
    pairs = iter(row_pairs)
    try:
        old_header, new_header = next(pairs)
    except StopIteration:
        raise RuntimeError("Incomplete data in one of the two files.") from None

    specs = select_columns(old_header, new_header)
    yield [Cell("Diff")] + [Cell(spec.name, spec.alignment) for spec in specs]

    for old_row, new_row in pairs:
        old_values = [field_at(old_row, spec.old_index) for spec in specs]

        cells = [Cell("Old")]
        for spec, old_value in zip(specs, old_values):
            text = "-" if old_value is None else old_value
            if spec.name in CODE_COLUMNS:
                text = f"`{text}`"
            cells.append(Cell(text, spec.alignment))
        yield cells

        cells = [Cell("**New**")]
        for spec, old_value in zip(specs, old_values):
            if spec.name in IDENTITY_COLUMNS:
                cells.append(Cell(""))
                continue
            new_value = field_at(new_row, spec.new_index)
            text = "-" if new_value is None else new_value
            if old_value is not None:
                text = format_diff(spec.name, old_value, text)
            cells.append(Cell(f"**{text}**", spec.alignment))
        yield cells


def render_table(rows: Iterable[List[Cell]]) -> List[str]:
    """Render header, alignment separator and body rows as a padded Markdown table."""
    table = list(rows)
    if not table:
        return []
    widths = [max(len(row[i].text) for row in table) for i in range(len(table[0]))]

    lines = []
    for idx, row in enumerate(table):
        padded = [
            cell.text.rjust(width) if cell.alignment is Alignment.RIGHT else cell.text.ljust(width)
            for cell, width in zip(row, widths)
        ]
        lines.append(f"| {' | '.join(padded)} |")
        if idx == 0:
            separators = [
                f" {'-' * width}{':' if cell.alignment is Alignment.RIGHT else ' '}"
                for cell, width in zip(row, widths)
            ]
            lines.append(f"|{'|'.join(separators)}|")
    return lines


def report_title(path: pathlib.Path) -> str:
    return path.name.replace(REPORT_SUFFIX, "")


def compare_reports(old_path: pathlib.Path, new_path: pathlib.Path) -> str:
    with contextlib.closing(bdn_report_files.read_rows(old_path)) as old_rows, contextlib.closing(
        bdn_report_files.read_rows(new_path)
    ) as new_rows:
        lines = render_table(format_table(zip(old_rows, new_rows)))
    return "\n".join([f"## {report_title(old_path)}", ""] + lines)


def compare_directories(old_dir: pathlib.Path, new_dir: pathlib.Path, out: TextIO) -> int:
    """Write one block per report pair to `out` and return the number of pairs."""
    count = 0
    for old_file, new_file in bdn_report_files.create_file_pairs(old_dir, new_dir):
        logger.info("Analyzing pair %s", old_file.name)
        block = compare_reports(old_file, new_file)
        if count:
            out.write("\n\n")
        out.write(block + "\n")
        count += 1
    return count


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Diff two directories of BenchmarkDotNet CSV reports as Markdown tables."
    )
    parser.add_argument("old", help="old result path (a directory, or one holding results/)")
    parser.add_argument("new", help="new result path (a directory, or one holding results/)")
    parser.add_argument("-o", "--output", type=pathlib.Path, help="write the Markdown here instead of stdout")
    parser.add_argument("-q", "--quiet", action="store_true", help="only report warnings and errors")
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.WARNING if args.quiet else logging.INFO,
        format="%(message)s",
        stream=sys.stderr,
    )

    old_dir = bdn_report_files.find_directory(args.old)
    new_dir = bdn_report_files.find_directory(args.new)
    for directory in (old_dir, new_dir):
        if not directory.is_dir():
            logger.error("Directory does not exist: %s", directory)
            return 1

    with contextlib.ExitStack() as stack:
        out = stack.enter_context(args.output.open("w", encoding="utf-8")) if args.output else sys.stdout
        try:
            count = compare_directories(old_dir, new_dir, out)
        except RuntimeError as exc:
            logger.error("%s", exc)
            return 1

    if not count:
        logger.warning("No %s files to compare in %s", bdn_report_files.REPORT_PATTERN, old_dir)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
