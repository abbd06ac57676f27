from __future__ import annotations

import json
from pathlib import Path

from typer.testing import CliRunner

from dynamic_mock.main import app

runner = CliRunner()


def test_routes_lists_snapshot(tmp_path: Path) -> None:
    data_file = tmp_path / "data.json"
    data_file.write_text(
        json.dumps(
            [
                {"path": "/a", "method": "get", "status": 201, "response": {}},
                {"path": "b", "method": "POST", "response": "x"},
            ]
        ),
        encoding="utf-8",
    )

    result = runner.invoke(app, ["routes", "--data-file", str(data_file)])

    assert result.exit_code == 0, result.output
    assert "GET /a -> 201" in result.output
    assert "POST /b -> 200" in result.output


def test_routes_reports_empty_snapshot(tmp_path: Path) -> None:
    result = runner.invoke(app, ["routes", "--data-file", str(tmp_path / "missing.json")])

    assert result.exit_code == 0, result.output
    assert "No mocks stored" in result.output


def test_serve_rejects_invalid_environment(tmp_path: Path) -> None:
    result = runner.invoke(
        app,
        ["serve", "--data-file", str(tmp_path / "data.json")],
        env={"PORT": "not-a-port"},
    )

    assert result.exit_code != 0
