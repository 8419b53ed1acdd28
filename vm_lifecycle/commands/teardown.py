"""Teardown command: delete a VM and, optionally, what it leaves behind.

The dependency graph is discovered and printed first. Nothing is deleted
until the user confirms (or --force is given); --dry-run lists the planned
actions without mutating anything.
"""

from typing import Optional

import click

from ..exceptions import OperationAbortedError, VmLifecycleError
from ..models import TeardownOptions
from ..services.teardown_service import TeardownOrchestrator
from .base import cancel, command_context, confirm_deletion, exit_for_report, exit_with_error
from .output import print_dependencies, print_report, print_retention


@click.command("teardown")
@click.option("--name", "-n", required=True, help="Name of the virtual machine")
@click.option(
    "--resource-group",
    "-g",
    default=None,
    help="Resource group of the VM (looked up across the subscription if omitted)",
)
@click.option("--keep-nic", is_flag=True, help="Keep the network interfaces")
@click.option("--keep-public-ip", is_flag=True, help="Keep the public IP addresses")
@click.option("--keep-os-disk", is_flag=True, help="Keep the OS disk")
@click.option("--keep-data-disk", is_flag=True, help="Keep the data disks")
@click.option(
    "--keep-resource-group",
    is_flag=True,
    help="Keep the resource group even if it ends up empty",
)
@click.option("--force", "-f", is_flag=True, help="Skip the confirmation prompt")
@click.option(
    "--dry-run",
    is_flag=True,
    default=False,
    help="Preview only - do not actually delete resources",
)
@click.pass_context
def teardown_command(
    ctx: click.Context,
    name: str,
    resource_group: Optional[str],
    keep_nic: bool,
    keep_public_ip: bool,
    keep_os_disk: bool,
    keep_data_disk: bool,
    keep_resource_group: bool,
    force: bool,
    dry_run: bool,
) -> None:
    """Delete a virtual machine and its dependent resources.

    \b
    Deleted unless kept:
    - Network interfaces, then the public IPs bound to them
    - OS disk (managed disk or VHD blob) and data disks
    - The resource group, only if nothing else is left in it

    Resources in other resource groups are treated as shared and left alone.
    """
    cmd_ctx = command_context(ctx)
    config = cmd_ctx.get_config()
    orchestrator = TeardownOrchestrator(cmd_ctx.get_client(config))
    options = TeardownOptions(
        keep_nic=keep_nic,
        keep_public_ip=keep_public_ip,
        keep_os_disk=keep_os_disk,
        keep_data_disk=keep_data_disk,
        keep_resource_group=keep_resource_group,
        force=force,
        dry_run=dry_run,
    )

    click.echo(f"Discovering resources of {name}...")
    try:
        deps = orchestrator.plan(name, resource_group)
    except VmLifecycleError as e:
        exit_with_error(e.message, hint=e.recovery_suggestion)

    print_dependencies(deps)
    print_retention(options)

    def confirm(_deps) -> bool:
        return confirm_deletion(
            f"Delete {deps.vm.name} in {deps.vm.resource_group} and the resources above?"
        )

    try:
        report = orchestrator.teardown(
            name, deps.vm.resource_group, options, confirm=confirm, dependencies=deps
        )
    except OperationAbortedError:
        cancel()

    print_report(report, title="Teardown Result:")
    exit_for_report(report)
