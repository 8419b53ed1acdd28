"""CLI tests for the teardown, migrate and power commands.

The Azure client is replaced with the in-memory fake; everything else
(config, logging, confirmation, output, exit codes) runs for real.
"""

from unittest.mock import patch

import pytest
from click.testing import CliRunner

from tests.fixtures.fake_cloud import SUBSCRIPTION_ID
from vm_lifecycle import __version__
from vm_lifecycle.cli import cli


@pytest.fixture
def invoke(fake_cloud):
    runner = CliRunner()

    def _invoke(args, input=None, env=None):
        with patch("vm_lifecycle.commands.base.build_client", return_value=fake_cloud):
            return runner.invoke(
                cli, ["--subscription-id", SUBSCRIPTION_ID, *args], input=input, env=env
            )

    return _invoke


def test_version():
    result = CliRunner().invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


class TestTeardownCommand:
    def test_force_deletes_without_prompt(self, fake_cloud, web_vm, invoke):
        result = invoke(["teardown", "--name", "web01", "--resource-group", "rg-app", "--force"])

        assert result.exit_code == 0, result.output
        assert "Teardown Result:" in result.output
        assert "Status: completed" in result.output
        assert "web01" not in fake_cloud.resources_in("rg-app")

    def test_prints_dependencies_before_prompt(self, fake_cloud, web_vm, invoke):
        result = invoke(["teardown", "--name", "web01", "--resource-group", "rg-app"], input="n\n")

        head = result.output.split("Delete web01")[0]
        assert "Discovered Resources" in head
        assert "web01-nic" in head
        assert "Retained: nothing" in head

    def test_declining_is_a_clean_no_op(self, fake_cloud, web_vm, invoke):
        result = invoke(["teardown", "--name", "web01", "--resource-group", "rg-app"], input="n\n")

        assert result.exit_code == 0
        assert "Operation cancelled by user." in result.output
        assert fake_cloud.called("delete_vm") == []

    def test_confirming_proceeds(self, fake_cloud, web_vm, invoke):
        result = invoke(["teardown", "--name", "web01", "--keep-os-disk"], input="y\n")

        assert result.exit_code == 0, result.output
        assert "Retained: OS disk" in result.output
        assert "web01-osdisk" in fake_cloud.resources_in("rg-app")

    def test_not_found_exits_with_error(self, fake_cloud, invoke):
        result = invoke(["teardown", "--name", "ghost", "--force"])

        assert result.exit_code == 1
        assert "Error: Virtual machine ghost not found" in result.output

    def test_ambiguous_name_exits_with_hint(self, fake_cloud, invoke):
        fake_cloud.add_vm("web01", "rg-a")
        fake_cloud.add_vm("web01", "rg-b")

        result = invoke(["teardown", "--name", "web01", "--force"])

        assert result.exit_code == 1
        assert "Found 2 virtual machines named web01" in result.output
        assert "--resource-group" in result.output
        assert fake_cloud.called("delete_vm") == []

    def test_partial_failure_exits_non_zero(self, fake_cloud, web_vm, invoke):
        fake_cloud.fail_on("delete_nic", "web01-nic")

        result = invoke(["teardown", "--name", "web01", "--resource-group", "rg-app", "--force"])

        assert result.exit_code == 1
        assert "Status: partial" in result.output
        assert "Errors:" in result.output

    def test_dry_run(self, fake_cloud, web_vm, invoke):
        result = invoke(["teardown", "--name", "web01", "--resource-group", "rg-app", "--dry-run"])

        assert result.exit_code == 0, result.output
        assert "Status: dry_run" in result.output
        assert "web01" in fake_cloud.resources_in("rg-app")

    def test_missing_subscription(self, fake_cloud, web_vm):
        with patch("vm_lifecycle.commands.base.build_client", return_value=fake_cloud):
            result = CliRunner().invoke(
                cli,
                ["teardown", "--name", "web01", "--force"],
                env={"AZURE_SUBSCRIPTION_ID": None},
            )

        assert result.exit_code == 1
        assert "Error: Azure subscription ID is required" in result.output


class TestMigrateCommand:
    def test_force_migrates(self, fake_cloud, web_vm, invoke):
        result = invoke(
            ["migrate", "--name", "web01", "--resource-group", "rg-app",
             "--destination-group", "rg-new", "--force"]
        )

        assert result.exit_code == 0, result.output
        assert "Migration Result:" in result.output
        assert "Destination Group: rg-new" in result.output
        assert "web01" in fake_cloud.resources_in("rg-new")

    def test_same_group_is_fatal(self, fake_cloud, web_vm, invoke):
        result = invoke(
            ["migrate", "--name", "web01", "--destination-group", "rg-app", "--force"]
        )

        assert result.exit_code == 1
        assert "Error: Source and destination resource groups are the same" in result.output

    def test_declining_is_a_clean_no_op(self, fake_cloud, web_vm, invoke):
        result = invoke(
            ["migrate", "--name", "web01", "--destination-group", "rg-new"], input="n\n"
        )

        assert result.exit_code == 0
        assert "Operation cancelled by user." in result.output
        assert "rg-new" not in fake_cloud.groups

    def test_fatal_failure_exits_non_zero(self, fake_cloud, web_vm, invoke):
        fake_cloud.fail_on("create_snapshot", "web01-osdisk_snapshot")

        result = invoke(
            ["migrate", "--name", "web01", "--destination-group", "rg-new", "--force"]
        )

        assert result.exit_code == 1
        assert "Status: failed" in result.output
        assert "web01" in fake_cloud.resources_in("rg-app")


class TestPowerCommands:
    @pytest.fixture
    def batch(self, fake_cloud):
        return [fake_cloud.add_vm(f"worker{i}", "rg-batch") for i in range(3)]

    def test_start_group(self, fake_cloud, batch, invoke):
        result = invoke(["power", "start", "--resource-group", "rg-batch", "--max-workers", "2"])

        assert result.exit_code == 0, result.output
        assert "Starting 3 VM(s)..." in result.output
        assert set(fake_cloud.power_states.values()) == {"running"}

    def test_stop_named_without_deallocate(self, fake_cloud, batch, invoke):
        result = invoke(
            ["power", "stop", "--name", "worker0", "--name", "worker1",
             "--resource-group", "rg-batch", "--no-deallocate", "--no-wait"]
        )

        assert result.exit_code == 0, result.output
        assert fake_cloud.power_states == {"worker0": "stopped", "worker1": "stopped"}

    def test_requires_a_target(self, fake_cloud, invoke):
        result = invoke(["power", "start"])

        assert result.exit_code == 1
        assert "Error: Specify at least one VM name or a resource group" in result.output

    def test_empty_group(self, fake_cloud, invoke):
        fake_cloud.add_group("rg-empty")

        result = invoke(["power", "stop", "--resource-group", "rg-empty"])

        assert result.exit_code == 0
        assert "No virtual machines matched." in result.output

    def test_failure_exits_non_zero(self, fake_cloud, batch, invoke):
        fake_cloud.fail_on("start_vm", "worker1")

        result = invoke(["power", "start", "--resource-group", "rg-batch"])

        assert result.exit_code == 1
        assert "Status: partial" in result.output
