"""Tests for ``toolhost call`` CLI command."""

from __future__ import annotations

import json

from click.testing import CliRunner

from toolhost.cli import main


class TestCall:
    def test_call_echo(self) -> None:
        runner = CliRunner()
        result = runner.invoke(
            main,
            ["call", "echo", "--args", '{"message": "hi"}', "--tool", "toolhost.tools.echo"],
        )

        assert result.exit_code == 0
        assert json.loads(result.output) == {"echoed": "hi", "length": 2}

    def test_default_arguments(self) -> None:
        runner = CliRunner()
        result = runner.invoke(main, ["call", "echo", "-t", "toolhost.tools.echo"])

        assert result.exit_code == 0
        assert json.loads(result.output) == {"echoed": "", "length": 0}

    def test_unknown_tool(self) -> None:
        runner = CliRunner()
        result = runner.invoke(main, ["call", "missing", "-t", "toolhost.tools.echo"])

        assert result.exit_code == 1
        assert "Error -32001" in result.output
        assert "missing" in result.output

    def test_bad_arguments_json(self) -> None:
        runner = CliRunner()
        result = runner.invoke(main, ["call", "echo", "--args", "{nope", "-t", "toolhost.tools.echo"])

        assert result.exit_code == 2
        assert "not valid JSON" in result.output

    def test_arguments_must_be_object(self) -> None:
        runner = CliRunner()
        result = runner.invoke(main, ["call", "echo", "--args", "[1, 2]", "-t", "toolhost.tools.echo"])

        assert result.exit_code == 2
        assert "must be a JSON object" in result.output

    def test_tool_failure_exits_nonzero(self) -> None:
        runner = CliRunner()
        result = runner.invoke(
            main, ["call", "echo", "--args", '{"unexpected": 1}', "-t", "toolhost.tools.echo"]
        )

        assert result.exit_code == 1
        assert "Error -32000" in result.output

    def test_load_error(self) -> None:
        runner = CliRunner()
        result = runner.invoke(main, ["call", "echo", "-t", "toolhost.no_such_module"])

        assert result.exit_code == 1
        assert "Load error" in result.output
