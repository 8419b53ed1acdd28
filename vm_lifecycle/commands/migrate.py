"""Migrate command: move a VM and its managed disks to another resource group."""

from typing import Optional

import click

from ..exceptions import OperationAbortedError, VmLifecycleError
from ..models import MigrationOptions
from ..services.migration_service import MigrationOrchestrator
from .base import cancel, command_context, confirm_deletion, exit_for_report, exit_with_error
from .output import print_dependencies, print_report


@click.command("migrate")
@click.option("--name", "-n", required=True, help="Name of the virtual machine")
@click.option(
    "--resource-group",
    "-g",
    default=None,
    help="Source resource group (looked up across the subscription if omitted)",
)
@click.option(
    "--destination-group",
    "-d",
    required=True,
    help="Resource group to move the VM into (created if missing)",
)
@click.option("--force", "-f", is_flag=True, help="Skip the confirmation prompt")
@click.option(
    "--dry-run",
    is_flag=True,
    default=False,
    help="Preview only - do not change any resources",
)
@click.pass_context
def migrate_command(
    ctx: click.Context,
    name: str,
    resource_group: Optional[str],
    destination_group: str,
    force: bool,
    dry_run: bool,
) -> None:
    """Move a virtual machine to another resource group.

    \b
    Steps:
    1. Copy each managed disk into the destination through a snapshot
    2. Delete the original VM (its disks stay until the new VM exists)
    3. Create the VM again in the destination over the copied disks
    4. Move NICs, NSGs and public IPs owned by the source group
    5. Delete the original disks

    The VM is unavailable between steps 2 and 3.
    """
    cmd_ctx = command_context(ctx)
    config = cmd_ctx.get_config()
    orchestrator = MigrationOrchestrator(cmd_ctx.get_client(config))

    click.echo(f"Discovering resources of {name}...")
    try:
        deps = orchestrator.plan(name, destination_group, resource_group)
    except VmLifecycleError as e:
        exit_with_error(e.message, hint=e.recovery_suggestion)

    print_dependencies(deps)
    click.echo(f"Destination: {destination_group}")

    def confirm(_deps, _destination) -> bool:
        return confirm_deletion(
            f"Recreate {deps.vm.name} in {destination_group}? "
            f"The original VM will be deleted"
        )

    try:
        report = orchestrator.migrate(
            name,
            destination_group,
            resource_group=deps.vm.resource_group,
            options=MigrationOptions(force=force, dry_run=dry_run),
            confirm=confirm,
            dependencies=deps,
        )
    except OperationAbortedError:
        cancel()

    print_report(report, title="Migration Result:")
    exit_for_report(report)
