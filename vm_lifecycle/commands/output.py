"""Console output for the lifecycle commands (dependency preview and reports)."""

from typing import List, Tuple

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ..models import (
    ActionType,
    MigrationReport,
    OperationReport,
    TeardownOptions,
    TeardownReport,
    VmDependencies,
)

console = Console()

ACTION_STYLES = {
    ActionType.DELETED: "red",
    ActionType.FAILED: "bold red",
    ActionType.RETAINED: "green",
    ActionType.SKIPPED: "yellow",
    ActionType.PLANNED: "cyan",
    ActionType.MOVED: "blue",
    ActionType.CREATED: "blue",
    ActionType.DISSOCIATED: "magenta",
    ActionType.STARTED: "green",
    ActionType.STOPPED: "green",
}


def dependency_rows(deps: VmDependencies) -> List[Tuple[str, str, str, str]]:
    """Flatten discovered dependencies into (kind, name, resource group, detail) rows."""
    vm = deps.vm
    os_name = vm.os_type.value if vm.os_type else "unknown OS"
    rows = [("virtual machine", vm.name, vm.resource_group, f"{vm.size}, {os_name}")]
    for nic in deps.nics:
        rows.append(("network interface", nic.name, nic.resource_group, ""))
        for ip in deps.public_ips_for(nic):
            rows.append(("public IP", ip.name, ip.resource_group, f"on {nic.name}"))
        nsg = deps.nsg_for(nic)
        if nsg is not None:
            rows.append(("network security group", nsg.name, nsg.resource_group, f"on {nic.name}"))

    for kind, disk in [("OS disk", deps.os_disk)] + [("data disk", d) for d in deps.data_disks]:
        detail = "managed" if disk.is_managed else f"VHD {disk.vhd_uri}"
        if disk.lun is not None:
            detail += f", LUN {disk.lun}"
        rows.append((kind, disk.name, vm.resource_group, detail))
    return rows


def print_dependencies(deps: VmDependencies, title: str = "Discovered Resources") -> None:
    table = Table(title=title)
    table.add_column("Kind", style="cyan")
    table.add_column("Name", style="bold")
    table.add_column("Resource Group")
    table.add_column("Detail", style="dim")
    for row in dependency_rows(deps):
        table.add_row(*row)
    console.print(table)


def print_retention(options: TeardownOptions) -> None:
    kept = [
        label
        for label, flag in [
            ("network interfaces", options.keep_nic),
            ("public IPs", options.keep_public_ip),
            ("OS disk", options.keep_os_disk),
            ("data disks", options.keep_data_disk),
            ("resource group", options.keep_resource_group),
        ]
        if flag
    ]
    click.echo(f"Retained: {', '.join(kept) if kept else 'nothing'}")


def print_report(report: OperationReport, title: str = "Operation Result:") -> None:
    """Print a run report: status, per-resource actions and errors."""
    click.echo()
    click.echo(title)
    click.echo("-" * 60)
    click.echo(f"VM: {report.vm_name}")
    click.echo(f"Status: {report.status.value}")
    click.echo(f"Success: {report.success}")

    if isinstance(report, TeardownReport):
        click.echo(f"Resource Group Deleted: {report.resource_group_deleted}")
    if isinstance(report, MigrationReport):
        click.echo(f"Destination Group: {report.destination_group}")
        if report.new_vm_id:
            click.echo(f"New VM: {report.new_vm_id}")

    if report.actions:
        table = Table()
        table.add_column("Resource")
        table.add_column("Name", style="bold")
        table.add_column("Resource Group")
        table.add_column("Action")
        table.add_column("Detail", style="dim")
        for action in report.actions:
            style = ACTION_STYLES.get(action.action, "")
            table.add_row(
                action.resource_type,
                action.name,
                action.resource_group or "",
                f"[{style}]{action.action.value}[/{style}]" if style else action.action.value,
                escape(action.error or action.detail or ""),
            )
        console.print(table)

    click.echo(f"Duration: {report.duration_seconds:.2f} seconds")

    if report.errors:
        click.echo()
        click.echo(click.style("Errors:", fg="red", bold=True))
        for error in report.errors:
            click.echo(click.style(f"  - {error}", fg="red"))
