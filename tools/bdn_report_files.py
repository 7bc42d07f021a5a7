#!/usr/bin/env python3
"""
Locate and read BenchmarkDotNet CSV reports for result_diff.py.

Reports are matched by file name between an "old" and a "new" results directory.
Rows are read lazily and exposed positionally, header row included.
"""
from __future__ import annotations

import csv
import logging
import pathlib
from typing import Iterator, List, Optional, Sequence, Tuple, Union

logger = logging.getLogger(__name__)

REPORT_PATTERN = "*-report.csv"
RESULTS_DIRNAME = "results"

FilePair = Tuple[pathlib.Path, pathlib.Path]


def find_directory(path: Union[str, pathlib.Path]) -> pathlib.Path:
    """Resolve a results path, descending into `results/` when it holds no CSV files."""
    directory = pathlib.Path(path).expanduser()
    if not directory.is_dir():
        return directory
    if not any(directory.glob("*.csv")):
        results = directory / RESULTS_DIRNAME
        if results.is_dir():
            return results
    return directory


def create_file_pairs(old_dir: pathlib.Path, new_dir: pathlib.Path) -> Iterator[FilePair]:
    for old_file in sorted(old_dir.glob(REPORT_PATTERN)):
        new_file = new_dir / old_file.name
        if new_file.is_file():
            yield old_file, new_file
            continue
        # Newer BenchmarkDotNet versions drop the namespace from the report name.
        parts = old_file.name.split(".")
        if len(parts) >= 2:
            new_file = new_dir / ".".join(parts[-2:])
            if new_file.is_file():
                yield old_file, new_file
                continue
        logger.debug("No counterpart for %s in %s", old_file.name, new_dir)


def read_rows(path: pathlib.Path) -> Iterator[List[str]]:
    with path.open(newline="", encoding="utf-8-sig") as handle:
        # Blank lines are not rows.
        yield from (row for row in csv.reader(handle) if row)


def find_first_index(row: Sequence[str], name: str) -> Optional[int]:
    for index, field in enumerate(row):
        if field == name:
            return index
    return None
