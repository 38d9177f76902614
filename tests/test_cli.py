"""Tests for the root CLI group and its global flags."""

from __future__ import annotations

from pathlib import Path

import pytest
from click.testing import CliRunner

from fedideploy import __version__
from fedideploy.cli import cli
from tests.conftest import load_json


@pytest.mark.usefixtures("_isolated_workdir")
class TestRootGroup:
    def test_version(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_bare_invocation_prints_help(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, [])
        assert result.exit_code == 0
        assert "provision a self-hosted Mastodon instance" in result.output

    @pytest.mark.parametrize("name", ["check", "render", "stack", "bootstrap", "follow", "deploy"])
    def test_commands_registered(self, cli_runner: CliRunner, name: str) -> None:
        result = cli_runner.invoke(cli, ["--help"])
        assert name in result.output

    def test_help_mentions_examples(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["render", "--help"])
        assert result.exit_code == 0
        assert "--examples" in result.output

    def test_workdir_flag(self, cli_runner: CliRunner, tmp_path: Path) -> None:
        target = tmp_path / "elsewhere"
        target.mkdir()
        result = cli_runner.invoke(cli, ["--json", "-w", str(target), "stack", "status"])
        assert result.exit_code == 1
        assert load_json(result.stderr)["error"]["code"] == "NOT_RENDERED"

    def test_config_file_sets_workdir(self, cli_runner: CliRunner, tmp_path: Path) -> None:
        deploy_dir = tmp_path / "deploy"
        deploy_dir.mkdir()
        (deploy_dir / "fedideploy.toml").write_text('[compose]\nproject_name = "social"\n')
        result = cli_runner.invoke(
            cli, ["--json", "-c", str(deploy_dir / "fedideploy.toml"), "bootstrap"]
        )
        assert result.exit_code == 1
        assert load_json(result.stderr)["error"]["code"] == "NOT_RENDERED"

    def test_invalid_toml(self, cli_runner: CliRunner, tmp_path: Path) -> None:
        (tmp_path / "fedideploy.toml").write_text("[compose\n")
        result = cli_runner.invoke(cli, ["check"])
        assert result.exit_code != 0
        assert "Invalid TOML" in result.output
