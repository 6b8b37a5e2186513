"""CLI tests via click's CliRunner."""

from __future__ import annotations

import json
from pathlib import Path

import polars as pl
import pytest
from click.testing import CliRunner

from gridcalc import __version__
from gridcalc.cli import main


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def doc(tmp_path: Path) -> Path:
    path = tmp_path / "budget.grid"
    path.write_text("!item | !cost\nrent | 1200\nfood | 350.5\n!total | =SUM(B^v)\n")
    return path


@pytest.fixture
def broken_doc(tmp_path: Path) -> Path:
    path = tmp_path / "broken.grid"
    path.write_text("=B1 | =A1 | =NOPE(1) | =@none<0> | =1 +\n")
    return path


class TestEval:
    def test_renders_grid(self, runner: CliRunner, doc: Path) -> None:
        result = runner.invoke(main, ["eval", str(doc)])
        assert result.exit_code == 0, result.output
        lines = result.output.splitlines()
        assert lines[0] == "item  | cost   "
        assert lines[3] == "total | 1550.50"

    def test_json_output(self, runner: CliRunner, doc: Path) -> None:
        result = runner.invoke(main, ["eval", str(doc), "--json"])
        assert result.exit_code == 0, result.output
        payload = json.loads(result.output)
        assert payload["run_id"]
        assert payload["cells"]["B4"]["value"] == 1550.5
        assert payload["cells"]["A1"]["value"] == "item"

    def test_csv_export(self, runner: CliRunner, doc: Path, tmp_path: Path) -> None:
        out = tmp_path / "out.csv"
        result = runner.invoke(main, ["eval", str(doc), "--csv", str(out)])
        assert result.exit_code == 0, result.output
        df = pl.read_csv(out)
        assert df.columns == ["A", "B"]
        assert df["A"].to_list() == ["item", "rent", "food", "total"]

    def test_writes_event_log(self, runner: CliRunner, doc: Path, tmp_path: Path) -> None:
        runner.invoke(main, ["eval", str(doc)])
        log = tmp_path / "logs" / "events.ndjson"
        types = [json.loads(line)["event_type"] for line in log.read_text().splitlines()]
        assert types[0] == "eval_started"
        assert types[-1] == "eval_completed"

    def test_failures_reported(self, runner: CliRunner, broken_doc: Path) -> None:
        result = runner.invoke(main, ["eval", str(broken_doc)])
        assert result.exit_code == 0
        assert "#CircularReference!" in result.output
        assert "#UnknownFunction!" in result.output

    def test_strict_exit_code(self, runner: CliRunner, broken_doc: Path) -> None:
        result = runner.invoke(main, ["eval", str(broken_doc), "--strict"])
        assert result.exit_code == 1

    def test_strict_passes_clean_document(self, runner: CliRunner, doc: Path) -> None:
        result = runner.invoke(main, ["eval", str(doc), "--strict"])
        assert result.exit_code == 0, result.output

    def test_deadline_option(self, runner: CliRunner, doc: Path) -> None:
        result = runner.invoke(main, ["eval", str(doc), "--deadline", "0", "--json"])
        payload = json.loads(result.output)
        assert {c["state"] for c in payload["cells"].values()} == {"incomplete"}

    def test_precision_option(self, runner: CliRunner, doc: Path) -> None:
        result = runner.invoke(main, ["eval", str(doc), "--precision", "1"])
        assert "1550.5" in result.output
        assert "1550.50" not in result.output

    def test_config_delimiter_and_separator(self, runner: CliRunner, tmp_path: Path) -> None:
        (tmp_path / "gridcalc.yaml").write_text("delimiter: ','\nrender_separator: ';'\n")
        path = tmp_path / "doc.csvgrid"
        path.write_text("1,=A1 * 3\n")
        result = runner.invoke(main, ["eval", str(path)])
        assert result.exit_code == 0, result.output
        assert result.output.splitlines()[0] == "1;3"

    def test_delimiter_option_overrides_config(self, runner: CliRunner, tmp_path: Path) -> None:
        (tmp_path / "gridcalc.yaml").write_text("delimiter: ','\n")
        path = tmp_path / "doc.grid"
        path.write_text("1;=A1 + 1\n")
        result = runner.invoke(main, ["eval", str(path), "--delimiter", ";", "--json"])
        assert json.loads(result.output)["cells"]["B1"]["value"] == 2

    def test_invalid_config(self, runner: CliRunner, doc: Path, tmp_path: Path) -> None:
        (tmp_path / "gridcalc.yaml").write_text("delimiter: ab\n")
        result = runner.invoke(main, ["eval", str(doc)])
        assert result.exit_code == 1
        assert "delimiter" in result.output

    def test_project_option(self, runner: CliRunner, doc: Path, tmp_path: Path) -> None:
        project = tmp_path / "proj"
        project.mkdir()
        result = runner.invoke(main, ["eval", str(doc), "--project", str(project)])
        assert result.exit_code == 0, result.output
        assert (project / "logs" / "events.ndjson").exists()


class TestCheck:
    def test_clean_document(self, runner: CliRunner, doc: Path) -> None:
        result = runner.invoke(main, ["check", str(doc)])
        assert result.exit_code == 0, result.output
        assert "No problems found." in result.output
        assert "8 cells, 3 labels, 4 rows" in result.output

    def test_reports_problems(self, runner: CliRunner, broken_doc: Path) -> None:
        result = runner.invoke(main, ["check", str(broken_doc)])
        assert result.exit_code == 1
        assert "Circular reference: A1, B1" in result.output
        assert "Unknown function: 'NOPE'" in result.output
        assert "Unknown label: 'none'" in result.output
        assert "E1: Formula parse error" in result.output
        assert "4 problem(s) found" in result.output

    def test_uses_config_delimiter(self, runner: CliRunner, tmp_path: Path) -> None:
        (tmp_path / "gridcalc.yaml").write_text("delimiter: ','\n")
        path = tmp_path / "doc.csvgrid"
        path.write_text("1,=A1 + 1\n")
        result = runner.invoke(main, ["check", str(path)])
        assert result.exit_code == 0, result.output
        assert "2 cells, 0 labels, 1 rows" in result.output

    def test_delimiter_option_overrides_config(self, runner: CliRunner, tmp_path: Path) -> None:
        (tmp_path / "gridcalc.yaml").write_text("delimiter: ','\n")
        path = tmp_path / "doc.grid"
        path.write_text("1;=A1 + 1\n")
        result = runner.invoke(main, ["check", str(path), "--delimiter", ";"])
        assert "2 cells" in result.output

    def test_project_option(self, runner: CliRunner, tmp_path: Path) -> None:
        project = tmp_path / "proj"
        project.mkdir()
        (project / "gridcalc.yaml").write_text("delimiter: ';'\n")
        path = tmp_path / "doc.grid"
        path.write_text("1;2;3\n")
        result = runner.invoke(main, ["check", str(path), "--project", str(project)])
        assert "3 cells" in result.output


class TestFunctions:
    def test_lists_builtins(self, runner: CliRunner) -> None:
        result = runner.invoke(main, ["functions"])
        assert result.exit_code == 0
        assert "SUM/0.." in result.output
        assert "ABS/1" in result.output

    def test_json(self, runner: CliRunner) -> None:
        result = runner.invoke(main, ["functions", "--json"])
        names = [f["name"] for f in json.loads(result.output)]
        assert names == sorted(names)
        assert "AVG" in names


class TestEvents:
    def test_no_events(self, runner: CliRunner, tmp_path: Path) -> None:
        result = runner.invoke(main, ["events", str(tmp_path)])
        assert "No events found." in result.output

    def test_events_after_eval(self, runner: CliRunner, broken_doc: Path, tmp_path: Path) -> None:
        runner.invoke(main, ["eval", str(broken_doc)])
        result = runner.invoke(main, ["events", str(tmp_path), "--type", "cell_failed"])
        assert result.exit_code == 0, result.output
        assert "cell_failed" in result.output
        assert "(cell_parse_error)" in result.output

    def test_events_level_filter(self, runner: CliRunner, doc: Path, tmp_path: Path) -> None:
        runner.invoke(main, ["eval", str(doc)])
        result = runner.invoke(main, ["events", str(tmp_path), "--level", "error"])
        assert "No events found." in result.output

    def test_run_log_latest(self, runner: CliRunner, doc: Path, tmp_path: Path) -> None:
        out = runner.invoke(main, ["eval", str(doc), "--json"])
        run_id = json.loads(out.output)["run_id"]
        result = runner.invoke(main, ["run-log", str(tmp_path)])
        assert result.exit_code == 0, result.output
        assert result.output.splitlines()[0] == f"Run {run_id}"
        assert "eval_completed" in result.output

    def test_run_log_unknown(self, runner: CliRunner, tmp_path: Path) -> None:
        result = runner.invoke(main, ["run-log", str(tmp_path), "19990101_000000_deadbeef"])
        assert result.exit_code == 1

    def test_run_log_no_runs(self, runner: CliRunner, tmp_path: Path) -> None:
        result = runner.invoke(main, ["run-log", str(tmp_path)])
        assert "No runs found." in result.output


def test_version(runner: CliRunner) -> None:
    result = runner.invoke(main, ["--version"])
    assert __version__ in result.output
