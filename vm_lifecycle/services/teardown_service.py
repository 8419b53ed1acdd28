"""
VM Teardown Service.

Deletes a VM and, subject to per-kind retention switches, the resources it
leaves behind. Deletion follows the control plane's locking rules:

1. VM (mandatory; failure aborts the run since every dependent stays locked)
2. NICs, then the public IPs bound to them (an IP on a live NIC is locked)
3. OS disk (managed disk or VHD blob)
4. Data disks
5. Resource group, only if nothing is left in it

Every step after the VM is best-effort: a failure is recorded on the report
and the next independent resource is attempted. There is no rollback. Each
deletion first re-reads its target, so a re-run after a partial failure only
touches what is still there.
"""

import time
from datetime import datetime
from typing import Callable, Optional, Set

import structlog

from ..exceptions import OperationAbortedError, VmLifecycleError
from ..models import (
    ActionType,
    DiskReference,
    NetworkInterface,
    OperationStatus,
    PublicIpAddress,
    ResourceAction,
    TeardownOptions,
    TeardownReport,
    VmDependencies,
    parse_blob_uri,
    parse_resource_id,
    same_group,
)
from .dependency_walker import DependencyGraphWalker
from .resource_locator import ResourceLocator

logger = structlog.get_logger(__name__)

ConfirmCallback = Callable[[VmDependencies], bool]

SHARED_DETAIL = "resides in another resource group; presumed shared"


class TeardownOrchestrator:
    """
    Cascading VM deletion with selective retention.

    Args:
        client: CloudResourceClient (or any object with the same primitives)
        locator: Optional ResourceLocator override
        walker: Optional DependencyGraphWalker override
    """

    def __init__(
        self,
        client,
        locator: Optional[ResourceLocator] = None,
        walker: Optional[DependencyGraphWalker] = None,
    ):
        self.client = client
        self.locator = locator or ResourceLocator(client)
        self.walker = walker or DependencyGraphWalker(client)

    def plan(self, name: str, resource_group: Optional[str] = None) -> VmDependencies:
        """Resolve the VM and discover its dependents without mutating anything."""
        vm = self.locator.locate(name, resource_group)
        return self.walker.discover(vm)

    def teardown(
        self,
        name: str,
        resource_group: Optional[str] = None,
        options: Optional[TeardownOptions] = None,
        confirm: Optional[ConfirmCallback] = None,
        dependencies: Optional[VmDependencies] = None,
    ) -> TeardownReport:
        """
        Tear down a VM and its dependents.

        Args:
            name: VM name
            resource_group: VM resource group; inferred when omitted
            options: Retention, force and dry-run switches
            confirm: Called with the discovered dependencies unless forced;
                a falsy answer aborts before any mutation
            dependencies: Previously discovered dependencies (skips re-discovery)

        Returns:
            TeardownReport; status FAILED when the VM itself could not be deleted

        Raises:
            ResourceNotFoundError, AmbiguousResourceError: VM could not be resolved
            OperationAbortedError: Confirmation declined
        """
        options = options or TeardownOptions()
        deps = dependencies or self.plan(name, resource_group)
        vm = deps.vm

        if not options.force and not options.dry_run:
            if confirm is None or not confirm(deps):
                logger.info("teardown_cancelled", vm=vm.name, resource_group=vm.resource_group)
                raise OperationAbortedError(
                    f"Teardown of {vm.name} cancelled by user",
                    context={"resource_group": vm.resource_group},
                )

        report = TeardownReport(
            vm_name=vm.name, resource_group=vm.resource_group, started_at=datetime.now()
        )
        logger.info(
            "teardown_started",
            vm=vm.name,
            resource_group=vm.resource_group,
            dry_run=options.dry_run,
        )
        planned_ids: Set[str] = set()

        # The VM is the gating dependency for every later step.
        if not self._attempt(
            report,
            "virtual machine",
            vm.name,
            vm.resource_group,
            vm.id,
            lambda: self.client.get_vm(vm.name, vm.resource_group) is not None
            and self.client.delete_vm(vm.resource_group, vm.name),
            options.dry_run,
            planned_ids,
        ):
            logger.error("teardown_aborted", vm=vm.name, resource_group=vm.resource_group)
            report.finish(OperationStatus.FAILED)
            return report

        self._teardown_network(report, deps, options, planned_ids)

        if options.keep_os_disk:
            self._retain(report, "OS disk", deps.os_disk, vm.resource_group)
        else:
            self._delete_disk(report, "OS disk", deps.os_disk, vm.resource_group, options, planned_ids)

        for disk in deps.data_disks:
            if options.keep_data_disk:
                self._retain(report, "data disk", disk, vm.resource_group)
            else:
                self._delete_disk(report, "data disk", disk, vm.resource_group, options, planned_ids)

        if options.keep_resource_group:
            report.record(
                ResourceAction("resource group", vm.resource_group, vm.resource_group, ActionType.RETAINED)
            )
        else:
            self._delete_group_if_empty(report, vm.resource_group, options, planned_ids)

        report.finish(OperationStatus.DRY_RUN if options.dry_run else None)
        logger.info(
            "teardown_finished",
            vm=vm.name,
            resource_group=vm.resource_group,
            status=report.status.value,
            errors=len(report.errors),
        )
        return report

    def _attempt(
        self,
        report: TeardownReport,
        resource_type: str,
        name: str,
        resource_group: str,
        resource_id: Optional[str],
        operation: Callable[[], bool],
        dry_run: bool,
        planned_ids: Set[str],
    ) -> bool:
        """Run one deletion, recording the outcome.

        ``operation`` returns True when it deleted something and False when
        the target was already absent. Returns False only on failure.
        """
        if dry_run:
            if resource_id:
                planned_ids.add(resource_id.lower())
            report.record(
                ResourceAction(resource_type, name, resource_group, ActionType.PLANNED, resource_id)
            )
            return True

        started = time.monotonic()
        try:
            deleted = operation()
        except VmLifecycleError as e:
            logger.error(
                "delete_failed",
                resource_type=resource_type,
                name=name,
                resource_group=resource_group,
                error=e.message,
            )
            report.record(
                ResourceAction(
                    resource_type,
                    name,
                    resource_group,
                    ActionType.FAILED,
                    resource_id,
                    error=e.message,
                    duration_seconds=time.monotonic() - started,
                )
            )
            return False

        action = ActionType.DELETED if deleted else ActionType.SKIPPED
        logger.info(
            "resource_deleted" if deleted else "resource_already_absent",
            resource_type=resource_type,
            name=name,
            resource_group=resource_group,
        )
        report.record(
            ResourceAction(
                resource_type,
                name,
                resource_group,
                action,
                resource_id,
                detail=None if deleted else "already absent",
                duration_seconds=time.monotonic() - started,
            )
        )
        return True

    def _teardown_network(
        self,
        report: TeardownReport,
        deps: VmDependencies,
        options: TeardownOptions,
        planned_ids: Set[str],
    ) -> None:
        vm_group = deps.vm.resource_group
        handled_ips: Set[str] = set()

        for nic in deps.nics:
            ips = [ip for ip in deps.public_ips_for(nic) if ip.id.lower() not in handled_ips]
            handled_ips.update(ip.id.lower() for ip in ips)

            if not same_group(nic.resource_group, vm_group):
                report.record(
                    ResourceAction(
                        "network interface", nic.name, nic.resource_group,
                        ActionType.SKIPPED, nic.id, detail=SHARED_DETAIL,
                    )
                )
                for ip in ips:
                    report.record(
                        ResourceAction(
                            "public IP", ip.name, ip.resource_group, ActionType.SKIPPED,
                            ip.id, detail="bound to a shared network interface",
                        )
                    )
                continue

            if options.keep_nic:
                report.record(
                    ResourceAction("network interface", nic.name, nic.resource_group, ActionType.RETAINED, nic.id)
                )
                for ip in ips:
                    self._teardown_public_ip(report, ip, nic, vm_group, options, planned_ids, nic_kept=True)
                continue

            nic_gone = self._attempt(
                report,
                "network interface",
                nic.name,
                nic.resource_group,
                nic.id,
                lambda nic=nic: self.client.get_nic(nic.id) is not None
                and self.client.delete_nic(nic.id),
                options.dry_run,
                planned_ids,
            )
            for ip in ips:
                if not nic_gone and not options.keep_public_ip:
                    report.record(
                        ResourceAction(
                            "public IP", ip.name, ip.resource_group, ActionType.SKIPPED,
                            ip.id, detail=f"still bound to network interface {nic.name}",
                        )
                    )
                    continue
                self._teardown_public_ip(report, ip, nic, vm_group, options, planned_ids, nic_kept=False)

    def _teardown_public_ip(
        self,
        report: TeardownReport,
        ip: PublicIpAddress,
        nic: NetworkInterface,
        vm_group: str,
        options: TeardownOptions,
        planned_ids: Set[str],
        nic_kept: bool,
    ) -> None:
        if options.keep_public_ip:
            report.record(
                ResourceAction("public IP", ip.name, ip.resource_group, ActionType.RETAINED, ip.id)
            )
            return
        if not same_group(ip.resource_group, vm_group):
            report.record(
                ResourceAction(
                    "public IP", ip.name, ip.resource_group, ActionType.SKIPPED,
                    ip.id, detail=SHARED_DETAIL,
                )
            )
            return

        if nic_kept:
            # The NIC stays, so the IP has to be unlinked before it can go.
            if options.dry_run:
                report.record(
                    ResourceAction(
                        "public IP", ip.name, ip.resource_group, ActionType.PLANNED,
                        ip.id, detail=f"dissociate from {nic.name}",
                    )
                )
            else:
                try:
                    if self.client.dissociate_public_ip(nic.id, ip.id):
                        report.record(
                            ResourceAction(
                                "public IP", ip.name, ip.resource_group, ActionType.DISSOCIATED,
                                ip.id, detail=f"unlinked from {nic.name}",
                            )
                        )
                except VmLifecycleError as e:
                    logger.error(
                        "dissociate_failed",
                        nic=nic.name,
                        public_ip=ip.name,
                        resource_group=ip.resource_group,
                        error=e.message,
                    )
                    report.record(
                        ResourceAction(
                            "public IP", ip.name, ip.resource_group, ActionType.FAILED,
                            ip.id, error=e.message,
                        )
                    )
                    return

        self._attempt(
            report,
            "public IP",
            ip.name,
            ip.resource_group,
            ip.id,
            lambda: self.client.get_public_ip(ip.id) is not None
            and self.client.delete_public_ip(ip.id),
            options.dry_run,
            planned_ids,
        )

    def _retain(self, report: TeardownReport, kind: str, disk: DiskReference, vm_group: str) -> None:
        group = parse_resource_id(disk.managed_disk_id).resource_group if disk.is_managed else vm_group
        report.record(
            ResourceAction(
                kind, disk.name, group, ActionType.RETAINED,
                disk.managed_disk_id or disk.vhd_uri,
            )
        )

    def _delete_disk(
        self,
        report: TeardownReport,
        kind: str,
        disk: DiskReference,
        vm_group: str,
        options: TeardownOptions,
        planned_ids: Set[str],
    ) -> None:
        """Delete a managed disk, or the VHD blob behind an unmanaged one."""
        if disk.is_managed:
            disk_id = disk.managed_disk_id
            try:
                group = parse_resource_id(disk_id).resource_group
            except VmLifecycleError as e:
                report.record(
                    ResourceAction(kind, disk.name, vm_group, ActionType.FAILED, disk_id, error=e.message)
                )
                return
            self._attempt(
                report,
                kind,
                disk.name,
                group,
                disk_id,
                lambda: self.client.get_managed_disk(disk_id) is not None
                and self.client.delete_managed_disk(disk_id),
                options.dry_run,
                planned_ids,
            )
            return

        def delete_vhd() -> bool:
            location = parse_blob_uri(disk.vhd_uri)
            return self.client.delete_blob(
                location.storage_account, location.container, location.blob_path
            )

        self._attempt(
            report,
            f"{kind} blob",
            disk.name,
            vm_group,
            disk.vhd_uri,
            delete_vhd,
            options.dry_run,
            planned_ids,
        )

    def _delete_group_if_empty(
        self,
        report: TeardownReport,
        resource_group: str,
        options: TeardownOptions,
        planned_ids: Set[str],
    ) -> None:
        try:
            remaining = self.client.list_resources_in_group(resource_group)
        except VmLifecycleError as e:
            report.record(
                ResourceAction(
                    "resource group", resource_group, resource_group, ActionType.FAILED, error=e.message
                )
            )
            return

        if options.dry_run:
            remaining = [r for r in remaining if r.id.lower() not in planned_ids]

        if remaining:
            logger.info(
                "resource_group_not_empty",
                resource_group=resource_group,
                remaining=len(remaining),
            )
            report.record(
                ResourceAction(
                    "resource group", resource_group, resource_group, ActionType.RETAINED,
                    detail=f"{len(remaining)} resource(s) remain",
                )
            )
            return

        self._attempt(
            report,
            "resource group",
            resource_group,
            resource_group,
            None,
            lambda: self.client.delete_resource_group(resource_group),
            options.dry_run,
            planned_ids,
        )
        report.resource_group_deleted = report.actions[-1].action == ActionType.DELETED
