"""Power commands: start or stop several VMs concurrently."""

import asyncio
from typing import Optional, Tuple

import click

from ..exceptions import VmLifecycleError
from ..services.power_service import VmPowerService
from .base import command_context, exit_for_report, exit_with_error
from .output import print_report


def _target_options(f):
    f = click.option(
        "--no-wait",
        is_flag=True,
        help="Return once the request is accepted instead of waiting for it",
    )(f)
    f = click.option(
        "--max-workers",
        type=int,
        default=None,
        help="Maximum VMs acted on concurrently (default: VM_LIFECYCLE_MAX_WORKERS)",
    )(f)
    f = click.option(
        "--resource-group",
        "-g",
        default=None,
        help="Resource group; without --name every VM in it is targeted",
    )(f)
    f = click.option(
        "--name", "-n", "names", multiple=True, help="VM name (repeatable)"
    )(f)
    return f


def _build_service(
    ctx: click.Context,
    names: Tuple[str, ...],
    resource_group: Optional[str],
    max_workers: Optional[int],
):
    cmd_ctx = command_context(ctx)
    config = cmd_ctx.get_config(max_workers=max_workers)
    service = VmPowerService(
        cmd_ctx.get_client(config), max_workers=config.operation.max_workers
    )
    try:
        vms = service.resolve_targets(names, resource_group)
    except VmLifecycleError as e:
        exit_with_error(e.message, hint=e.recovery_suggestion)
    if not vms:
        click.echo("No virtual machines matched.")
        ctx.exit(0)
    return service, vms


@click.group("power")
def power():
    """Start or stop virtual machines."""
    pass


@power.command("start")
@_target_options
@click.pass_context
def power_start(
    ctx: click.Context,
    names: Tuple[str, ...],
    resource_group: Optional[str],
    max_workers: Optional[int],
    no_wait: bool,
) -> None:
    """Start the selected VMs."""
    service, vms = _build_service(ctx, names, resource_group, max_workers)
    click.echo(f"Starting {len(vms)} VM(s)...")
    report = asyncio.run(service.start(vms, wait=not no_wait))
    print_report(report, title="Start Result:")
    exit_for_report(report)


@power.command("stop")
@_target_options
@click.option(
    "--no-deallocate",
    is_flag=True,
    help="Power off but keep the compute allocation (still billed)",
)
@click.pass_context
def power_stop(
    ctx: click.Context,
    names: Tuple[str, ...],
    resource_group: Optional[str],
    max_workers: Optional[int],
    no_wait: bool,
    no_deallocate: bool,
) -> None:
    """Stop (and by default deallocate) the selected VMs."""
    service, vms = _build_service(ctx, names, resource_group, max_workers)
    click.echo(f"Stopping {len(vms)} VM(s)...")
    report = asyncio.run(
        service.stop(vms, deallocate=not no_deallocate, wait=not no_wait)
    )
    print_report(report, title="Stop Result:")
    exit_for_report(report)
