"""
Tests for the command-line tools.
"""

import json

import pytest
from click.testing import CliRunner

from ..cli import cli


@pytest.fixture
def runner():
    return CliRunner()


def write_scenario(tmp_path, data) -> str:
    path = tmp_path / "scenario.json"
    path.write_text(json.dumps(data))
    return str(path)


# ═══════════════════════════════════════════════════════════════════════════════
# replay
# ═══════════════════════════════════════════════════════════════════════════════


class TestReplay:
    def test_prints_layout(self, runner, tmp_path):
        scenario = write_scenario(
            tmp_path,
            {
                "options": {"column": 4},
                "entries": [
                    {"id": "a", "box": [0, 0, 2, 1]},
                    {"id": "b", "box": [2, 0, 2, 1]},
                ],
                "operations": [
                    {"op": "insert", "id": "c", "box": [0, 0, 2, 1], "auto_position": True},
                ],
            },
        )

        result = runner.invoke(cli, ["replay", scenario])

        assert result.exit_code == 0, result.output
        assert result.output == (
            "GRID column=4 rows=2\n"
            "ENTRY id=a box=[0, 0, 2, 1]\n"
            "ENTRY id=b box=[2, 0, 2, 1]\n"
            "ENTRY id=c box=[0, 1, 2, 1]\n"
        )

    def test_operations(self, runner, tmp_path):
        scenario = write_scenario(
            tmp_path,
            {
                "entries": [
                    {"id": "a", "box": [0, 0, 4, 2]},
                    {"id": "b", "box": [0, 2, 4, 2]},
                    {"id": "gone", "box": [4, 0, 1, 1]},
                ],
                "operations": [
                    {"op": "move", "id": "b", "box": [0, 0, 4, 2]},
                    {"op": "remove", "id": "gone"},
                    {"op": "column", "count": 6, "flags": "move_scale"},
                    {"op": "batch", "operations": [{"op": "compact"}]},
                ],
            },
        )

        result = runner.invoke(cli, ["replay", scenario])

        assert result.exit_code == 0, result.output
        assert result.output.splitlines() == [
            "GRID column=6 rows=2",
            "ENTRY id=b box=[0, 0, 2, 2]",
            "ENTRY id=a box=[2, 0, 2, 2]",
        ]

    def test_oplog(self, runner, tmp_path):
        scenario = write_scenario(tmp_path, {"entries": [{"id": "a", "box": [0, 0, 1, 1]}]})

        result = runner.invoke(cli, ["replay", "--oplog", scenario])

        assert result.exit_code == 0, result.output
        assert "ADD id=a box=[0, 0, 1, 1]" in result.output
        assert "NOTIFY added=[a]" in result.output

    def test_unknown_operation(self, runner, tmp_path):
        scenario = write_scenario(tmp_path, {"operations": [{"op": "explode"}]})
        result = runner.invoke(cli, ["replay", scenario])
        assert result.exit_code == 1
        assert "Unknown operation 'explode'" in result.output

    def test_unknown_entry(self, runner, tmp_path):
        scenario = write_scenario(tmp_path, {"operations": [{"op": "remove", "id": "ghost"}]})
        result = runner.invoke(cli, ["replay", scenario])
        assert result.exit_code == 1
        assert "Unknown entry 'ghost'" in result.output

    def test_duplicate_entry(self, runner, tmp_path):
        scenario = write_scenario(
            tmp_path,
            {"entries": [{"id": "a", "box": [0, 0, 1, 1]}, {"id": "a", "box": [1, 0, 1, 1]}]},
        )
        result = runner.invoke(cli, ["replay", scenario])
        assert result.exit_code == 1
        assert "already tracked" in result.output

    def test_bad_options(self, runner, tmp_path):
        scenario = write_scenario(tmp_path, {"options": {"columns": 3}})
        result = runner.invoke(cli, ["replay", scenario])
        assert result.exit_code == 1
        assert "Unknown grid options" in result.output

    def test_invalid_json(self, runner, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json")
        result = runner.invoke(cli, ["replay", str(path)])
        assert result.exit_code == 1
        assert "Invalid scenario" in result.output


# ═══════════════════════════════════════════════════════════════════════════════
# columns
# ═══════════════════════════════════════════════════════════════════════════════


class TestColumns:
    def test_breakpoints(self, runner):
        result = runner.invoke(
            cli, ["columns", "700", "--breakpoint", "768:1", "--breakpoint", "1024:6"]
        )
        assert result.exit_code == 0, result.output
        assert result.output == "COLUMNS width=700.0 column=1 flags=MOVE_SCALE\n"

    def test_column_width(self, runner):
        result = runner.invoke(cli, ["columns", "1000", "--column-width", "150", "--max", "6"])
        assert result.exit_code == 0, result.output
        assert "column=6" in result.output

    def test_no_policy_keeps_current(self, runner):
        result = runner.invoke(cli, ["columns", "500", "--current", "4"])
        assert "column=4" in result.output

    def test_bad_breakpoint(self, runner):
        result = runner.invoke(cli, ["columns", "700", "--breakpoint", "wide"])
        assert result.exit_code == 2
        assert "WIDTH:COLUMN" in result.output
