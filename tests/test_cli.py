"""Tests for the command line interface."""

from pathlib import Path

import polars as pl
import pytest
from typer.testing import CliRunner

from reflex_grid_engine.cli import app

runner = CliRunner()


@pytest.fixture
def people_csv(tmp_path: Path) -> Path:
    path = tmp_path / "people.csv"
    pl.DataFrame(
        {
            "id": [1, 2, 3],
            "name": ["Ann", "bob", "Annika"],
            "age": [34, 27, 27],
            "joined": ["2024-01-15", "2023-11-02", "2024-03-01"],
        }
    ).write_csv(path)
    return path


def _body_lines(output: str) -> list[str]:
    """Table rows: everything between the separator line and the footer."""
    lines = output.strip().splitlines()
    return lines[3:-1]


class TestView:
    def test_first_page(self, people_csv: Path) -> None:
        result = runner.invoke(app, ["view", str(people_csv)])
        assert result.exit_code == 0, result.output
        lines = result.output.strip().splitlines()
        assert lines[0] == "people.csv | No active filters or sorts."
        assert lines[1].split() == ["#", "Id", "Name", "Age", "Joined"]
        assert lines[-1] == "3 of 3 rows | page 1/1 | 4 columns"

    def test_filter_and_sort(self, people_csv: Path) -> None:
        result = runner.invoke(
            app,
            ["view", str(people_csv), "--filter", "name:contains:ANN", "--sort", "age:desc", "-c", "name,age"],
        )
        assert result.exit_code == 0, result.output
        rows = [line.split() for line in _body_lines(result.output)]
        assert rows == [["1", "Ann", "34"], ["2", "Annika", "27"]]
        assert "1 filter(s) on name | 1 sort(s): age desc" in result.output

    def test_date_filter(self, people_csv: Path) -> None:
        result = runner.invoke(
            app, ["view", str(people_csv), "-f", "joined:between:2024-01-01..2024-02-01", "-c", "name"]
        )
        assert result.exit_code == 0, result.output
        assert [line.split() for line in _body_lines(result.output)] == [["1", "Ann"]]

    def test_second_page(self, people_csv: Path) -> None:
        result = runner.invoke(app, ["view", str(people_csv), "--per-page", "2", "--page", "2"])
        assert result.exit_code == 0, result.output
        assert result.output.strip().splitlines()[-1] == "1 of 3 rows | page 2/2 | 4 columns"
        assert _body_lines(result.output)[0].split()[:3] == ["3", "3", "Annika"]

    def test_page_out_of_range(self, people_csv: Path) -> None:
        result = runner.invoke(app, ["view", str(people_csv), "--per-page", "2", "--page", "5"])
        assert result.exit_code == 1
        assert "out of range" in result.output

    def test_unknown_column(self, people_csv: Path) -> None:
        result = runner.invoke(app, ["view", str(people_csv), "--columns", "name,height"])
        assert result.exit_code == 1
        assert "height" in result.output

    def test_unknown_sort_column(self, people_csv: Path) -> None:
        result = runner.invoke(app, ["view", str(people_csv), "--sort", "height"])
        assert result.exit_code == 1

    def test_bad_filter(self, people_csv: Path) -> None:
        result = runner.invoke(app, ["view", str(people_csv), "--filter", "age:contains:3"])
        assert result.exit_code != 0

    def test_missing_file(self, tmp_path: Path) -> None:
        result = runner.invoke(app, ["view", str(tmp_path / "nope.csv")])
        assert result.exit_code == 1
        assert "file not found" in result.output


class TestOperations:
    def test_lists_every_family(self) -> None:
        result = runner.invoke(app, ["operations"])
        assert result.exit_code == 0
        lines = result.output.strip().splitlines()
        assert [line.split(":")[0] for line in lines] == ["text", "number", "date", "boolean"]
        assert "between" in lines[2]
