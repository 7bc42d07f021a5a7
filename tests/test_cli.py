"""End-to-end tests for the result_diff command line."""
import logging

import pytest

import result_diff

HEADER = "Type,Method,Mean,Gen 0,Allocated\n"


def write_report(directory, name, rows, header=HEADER):
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / name
    path.write_text(header + "".join(row + "\n" for row in rows), encoding="utf-8")
    return path


@pytest.fixture
def result_dirs(tmp_path):
    old_dir, new_dir = tmp_path / "old", tmp_path / "new"
    write_report(old_dir / "results", "Bench.Parser-report.csv", ["Parser,Parse,1.234 ms,3,512 B"])
    write_report(new_dir, "Parser-report.csv", ["Parser,Parse,1.111 ms,-,1 KB"])
    return old_dir, new_dir


def test_renders_markdown(result_dirs, capsys):
    old_dir, new_dir = result_dirs

    assert result_diff.main([str(old_dir), str(new_dir)]) == 0

    assert capsys.readouterr().out.splitlines() == [
        "## Bench.Parser",
        "",
        "| Diff    | Type     | Method  |                Mean |         Gen 0 |        Allocated |",
        "| ------- | -------- | ------- | -------------------:| -------------:| ----------------:|",
        "| Old     | `Parser` | `Parse` |            1.234 ms |             3 |            512 B |",
        "| **New** |          |         | **1.111 ms (-10%)** | **- (-100%)** | **1 KB (+100%)** |",
    ]


def test_progress_goes_to_diagnostics(result_dirs, capsys, caplog):
    old_dir, new_dir = result_dirs

    with caplog.at_level(logging.INFO):
        result_diff.main([str(old_dir), str(new_dir)])

    assert "Analyzing pair Bench.Parser-report.csv" in caplog.text
    assert "Analyzing" not in capsys.readouterr().out


def test_blocks_are_separated(result_dirs, capsys):
    old_dir, new_dir = result_dirs
    write_report(old_dir / "results", "Bench.Writer-report.csv", ["Writer,Write,2 ns,1,64 B"])
    write_report(new_dir, "Bench.Writer-report.csv", ["Writer,Write,3 ns,1,64 B"])

    assert result_diff.main([str(old_dir), str(new_dir)]) == 0

    out = capsys.readouterr().out
    assert out.count("## ") == 2
    assert out.index("## Bench.Parser") < out.index("## Bench.Writer")
    assert "|\n\n\n## Bench.Writer\n" in out
    assert "**3 ns (+50%)**" in out


def test_output_is_reproducible(result_dirs, capsys):
    old_dir, new_dir = result_dirs

    result_diff.main([str(old_dir), str(new_dir)])
    first = capsys.readouterr().out
    result_diff.main([str(old_dir), str(new_dir)])

    assert capsys.readouterr().out == first


def test_output_file(result_dirs, tmp_path, capsys):
    old_dir, new_dir = result_dirs
    target = tmp_path / "diff.md"

    assert result_diff.main([str(old_dir), str(new_dir), "--output", str(target)]) == 0

    assert capsys.readouterr().out == ""
    assert target.read_text(encoding="utf-8").startswith("## Bench.Parser\n\n| Diff")


def test_comparison_stops_at_shorter_file(tmp_path, capsys):
    rows = [f"Parser,Parse,{i} ms,0,1 KB" for i in range(1, 6)]
    write_report(tmp_path / "old", "A-report.csv", rows)
    write_report(tmp_path / "new", "A-report.csv", rows[:2])

    assert result_diff.main([str(tmp_path / "old"), str(tmp_path / "new")]) == 0

    lines = capsys.readouterr().out.splitlines()
    assert len(lines) == 2 + 2 + 2 * 2
    assert sum(line.startswith("| Old ") for line in lines) == 2


def test_empty_report_is_fatal(tmp_path, caplog):
    write_report(tmp_path / "old", "A-report.csv", ["Parser,Parse,1 ms,0,1 KB"])
    write_report(tmp_path / "new", "A-report.csv", [], header="")

    assert result_diff.main([str(tmp_path / "old"), str(tmp_path / "new")]) == 1
    assert "Incomplete data in one of the two files." in caplog.text


def test_file_with_only_a_blank_line_is_fatal(tmp_path, caplog):
    write_report(tmp_path / "old", "A-report.csv", ["Parser,Parse,1 ms,0,1 KB"])
    write_report(tmp_path / "new", "A-report.csv", [], header="\n")

    assert result_diff.main([str(tmp_path / "old"), str(tmp_path / "new")]) == 1
    assert "Incomplete data in one of the two files." in caplog.text


def test_blank_lines_keep_rows_paired(tmp_path, capsys):
    write_report(tmp_path / "old", "A-report.csv", ["", "Run,1 ms"], header="Method,Mean\n")
    write_report(tmp_path / "new", "A-report.csv", ["Run,2 ms"], header="Method,Mean\n")

    assert result_diff.main([str(tmp_path / "old"), str(tmp_path / "new")]) == 0

    lines = capsys.readouterr().out.splitlines()
    assert lines[-2:] == [
        "| Old     | `Run`  |             1 ms |",
        "| **New** |        | **2 ms (+100%)** |",
    ]


def test_missing_directory(tmp_path, caplog):
    (tmp_path / "old").mkdir()

    assert result_diff.main([str(tmp_path / "old"), str(tmp_path / "missing")]) == 1
    assert "Directory does not exist" in caplog.text


def test_nothing_to_compare(tmp_path, capsys, caplog):
    (tmp_path / "old").mkdir()
    (tmp_path / "new").mkdir()

    assert result_diff.main([str(tmp_path / "old"), str(tmp_path / "new")]) == 0
    assert capsys.readouterr().out == ""
    assert "No *-report.csv files to compare" in caplog.text


def test_wrong_argument_count():
    with pytest.raises(SystemExit) as excinfo:
        result_diff.main(["only-one"])
    assert excinfo.value.code == 2
