"""Tests for CLI commands."""

import zipfile
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from lambda_reconciler.cli import cli
from lambda_reconciler.reconciler import Clients
from lambda_reconciler.state import FileStateStore


@pytest.fixture
def runner() -> CliRunner:
    """Create a Click CLI runner."""
    return CliRunner()


@pytest.fixture
def state_dir(tmp_path):
    return tmp_path / "state"


@pytest.fixture
def patched_clients(clients):
    """Route every command to the in-memory fakes."""
    with patch.object(Clients, "from_settings", return_value=clients) as from_settings:
        yield from_settings


@pytest.fixture
def deploy_args(source_tree, state_dir, tmp_path):
    return [
        "deploy",
        "--config",
        str(tmp_path / "missing.yaml"),
        "--name",
        "fn1",
        "--code",
        str(source_tree),
        "--state-dir",
        str(state_dir),
    ]


class TestHelp:
    def test_cli_help(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "lambda-reconciler deployment CLI" in result.output
        for command in ("deploy", "plan", "remove", "publish", "pack"):
            assert command in result.output

    def test_deploy_help(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["deploy", "--help"])
        assert result.exit_code == 0
        for option in ("--name", "--memory", "--env", "--role-arn", "--bucket", "--no-wait"):
            assert option in result.output


class TestDeploy:
    """Tests for the deploy command."""

    def test_first_deploy_creates(self, runner, deploy_args, patched_clients, state_dir):
        result = runner.invoke(cli, deploy_args)

        assert result.exit_code == 0, result.output
        assert "Deploying function: fn1" in result.output
        assert "✓ Create: fn1" in result.output
        assert "Function ARN: arn:aws:lambda:us-east-1:123456789012:function:fn1" in result.output
        assert FileStateStore(state_dir).load().name == "fn1"

    def test_second_deploy_is_noop(self, runner, deploy_args, patched_clients, fake_lambda):
        runner.invoke(cli, deploy_args)
        mutations = list(fake_lambda.mutations)

        result = runner.invoke(cli, deploy_args)

        assert result.exit_code == 0, result.output
        assert "✓ Noop: fn1" in result.output
        assert fake_lambda.mutations == mutations

    def test_overrides(self, runner, deploy_args, patched_clients, fake_lambda):
        result = runner.invoke(
            cli, [*deploy_args, "--memory", "1024", "-e", "STAGE=prod", "--no-wait"]
        )

        assert result.exit_code == 0, result.output
        function = fake_lambda.functions["fn1"]
        assert function["MemorySize"] == 1024
        assert function["Environment"] == {"Variables": {"STAGE": "prod"}}
        assert fake_lambda.waiters == []

    def test_manifest_file(self, runner, source_tree, state_dir, patched_clients, fake_lambda):
        manifest = source_tree.parent / "lambda.yaml"
        manifest.write_text("name: from-yaml\ncode: src\ntimeout: 30\n")

        result = runner.invoke(
            cli, ["deploy", "--config", str(manifest), "--state-dir", str(state_dir)]
        )

        assert result.exit_code == 0, result.output
        assert fake_lambda.functions["from-yaml"]["Timeout"] == 30

    def test_name_from_previous_state(
        self, runner, deploy_args, source_tree, state_dir, tmp_path, patched_clients
    ):
        runner.invoke(cli, deploy_args)

        result = runner.invoke(
            cli,
            [
                "deploy",
                "--config",
                str(tmp_path / "missing.yaml"),
                "--code",
                str(source_tree),
                "--state-dir",
                str(state_dir),
            ],
        )

        assert result.exit_code == 0, result.output
        assert "✓ Noop: fn1" in result.output

    def test_missing_name_fails(self, runner, source_tree, state_dir, tmp_path, patched_clients):
        result = runner.invoke(
            cli,
            [
                "deploy",
                "--config",
                str(tmp_path / "missing.yaml"),
                "--code",
                str(source_tree),
                "--state-dir",
                str(state_dir),
            ],
        )

        assert result.exit_code == 1
        assert "✗ Deployment failed" in result.output

    def test_bad_env_option(self, runner, deploy_args):
        result = runner.invoke(cli, [*deploy_args, "-e", "NOVALUE"])
        assert result.exit_code == 2
        assert "expected KEY=VALUE" in result.output

    def test_memory_out_of_range(self, runner, deploy_args):
        result = runner.invoke(cli, [*deploy_args, "--memory", "64"])
        assert result.exit_code == 2


class TestPlan:
    def test_plan_reports_create_without_changes(
        self, runner, deploy_args, patched_clients, fake_lambda
    ):
        args = ["plan", *deploy_args[1:]]

        result = runner.invoke(cli, args)

        assert result.exit_code == 0, result.output
        assert "Action: create" in result.output
        assert fake_lambda.mutations == []

    def test_plan_reports_changed_fields(self, runner, deploy_args, patched_clients):
        runner.invoke(cli, deploy_args)

        result = runner.invoke(cli, ["plan", *deploy_args[1:], "--timeout", "60"])

        assert result.exit_code == 0, result.output
        assert "Action: update_config_only" in result.output
        assert "Changed: timeout" in result.output


class TestRemove:
    def test_remove(self, runner, deploy_args, state_dir, patched_clients, fake_lambda):
        runner.invoke(cli, deploy_args)

        result = runner.invoke(cli, ["remove", "--yes", "--state-dir", str(state_dir)])

        assert result.exit_code == 0, result.output
        assert "✓ Function 'fn1' removed" in result.output
        assert fake_lambda.functions == {}
        assert FileStateStore(state_dir).load() is None

    def test_remove_requires_confirmation(
        self, runner, deploy_args, state_dir, patched_clients, fake_lambda
    ):
        runner.invoke(cli, deploy_args)

        result = runner.invoke(cli, ["remove", "--state-dir", str(state_dir)], input="n\n")

        assert result.exit_code == 1
        assert "fn1" in fake_lambda.functions

    def test_nothing_to_remove(self, runner, state_dir):
        result = runner.invoke(cli, ["remove", "--yes", "--state-dir", str(state_dir)])

        assert result.exit_code == 0
        assert "Nothing to remove" in result.output


class TestPublish:
    def test_publish(self, runner, deploy_args, state_dir, patched_clients):
        runner.invoke(cli, deploy_args)

        result = runner.invoke(cli, ["publish", "--state-dir", str(state_dir)])

        assert result.exit_code == 0, result.output
        assert "✓ Published version 1 of fn1" in result.output

    def test_publish_without_state(self, runner, state_dir):
        result = runner.invoke(cli, ["publish", "--state-dir", str(state_dir)])

        assert result.exit_code == 1
        assert "✗ Publish failed" in result.output


class TestPack:
    def test_pack(self, runner, source_tree, tmp_path):
        output = tmp_path / "out.zip"

        result = runner.invoke(cli, ["pack", str(source_tree), "-o", str(output), "-x", "lib/**"])

        assert result.exit_code == 0, result.output
        assert "✓ Packaged" in result.output
        assert "Code SHA256:" in result.output
        with zipfile.ZipFile(output) as zf:
            assert zf.namelist() == [".env", "handler.py"]

    def test_pack_invalid_format(self, runner, source_tree, tmp_path):
        result = runner.invoke(cli, ["pack", str(source_tree), "-o", str(tmp_path / "out.rar")])

        assert result.exit_code == 1
        assert "Unsupported archive format" in result.output
