"""
VM Migration Service.

Moves a VM into another resource group of the same subscription. Managed
disks cannot be moved across groups directly, so each one is copied through a
transient snapshot:

    source disk ──snapshot──▶ <disk>_snapshot ──copy──▶ new disk (same name, SKU)
                                     └── deleted once the copy exists

Then the original VM is deleted, a new VM with the same name, size and OS
type is created over the new disks and the original NICs, and NICs, NSGs and
public IPs owned by the source group are moved across. Resources that live in
any other group are shared infrastructure and stay where they are.

Deleting the original VM is the point of no return: everything before it can
be re-run safely (a destination disk tagged as a copy of the same source disk
is reused; any other disk of that name is a precondition failure), every
failure after it needs manual follow-up and is reported per resource.
"""

import time
from datetime import datetime
from typing import Any, Callable, List, Optional, Set, Tuple

import structlog

from ..exceptions import InvalidArgumentError, OperationAbortedError, VmLifecycleError
from ..models import (
    ActionType,
    DiskReference,
    ManagedDisk,
    MigrationOptions,
    MigrationReport,
    OperationStatus,
    ResourceAction,
    VmDefinition,
    VmDependencies,
    same_group,
    snapshot_name_for,
)
from .dependency_walker import DependencyGraphWalker
from .resource_locator import ResourceLocator

logger = structlog.get_logger(__name__)

ConfirmCallback = Callable[[VmDependencies, str], bool]


class MigrationOrchestrator:
    """
    Snapshot-copy-recreate migration of a VM between resource groups.

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

    def plan(
        self, name: str, destination_group: str, resource_group: Optional[str] = None
    ) -> VmDependencies:
        """Validate the request and discover the VM's dependents.

        Raises:
            InvalidArgumentError: Same source and destination group, an
                unmanaged disk (only managed disks can be copied), a missing
                OS type, or a destination disk of the same name that is not
                a copy of the source disk
            ResourceNotFoundError, AmbiguousResourceError: VM could not be resolved
        """
        if not destination_group:
            raise InvalidArgumentError(
                "A destination resource group is required", argument="destination_group"
            )
        if resource_group and same_group(resource_group, destination_group):
            raise _same_group_error(resource_group)

        vm = self.locator.locate(name, resource_group)
        if same_group(vm.resource_group, destination_group):
            raise _same_group_error(vm.resource_group)

        unmanaged = [d.name for d in [vm.os_disk, *vm.data_disks] if not d.is_managed]
        if unmanaged:
            raise InvalidArgumentError(
                f"Virtual machine {vm.name} uses unmanaged disks ({', '.join(unmanaged)}); "
                f"only managed disks can be migrated",
                argument="name",
                context={"resource_group": vm.resource_group},
            )
        if vm.os_type is None:
            raise InvalidArgumentError(
                f"Virtual machine {vm.name} has no OS type on its OS disk; "
                f"it cannot be recreated",
                argument="name",
                context={"resource_group": vm.resource_group},
            )
        self._check_destination_disks(vm, destination_group)
        return self.walker.discover(vm)

    def _check_destination_disks(self, vm, destination_group: str) -> None:
        """Refuse to run over destination disks that are not copies of this VM's disks."""
        for disk in [vm.os_disk, *vm.data_disks]:
            source = self.client.get_managed_disk(disk.managed_disk_id)
            if source is None:
                continue
            existing = self.client.find_managed_disk(destination_group, source.name)
            if existing is not None and not existing.is_copy_of(source):
                raise _disk_conflict_error(existing, source)

    def migrate(
        self,
        name: str,
        destination_group: str,
        resource_group: Optional[str] = None,
        options: Optional[MigrationOptions] = None,
        confirm: Optional[ConfirmCallback] = None,
        dependencies: Optional[VmDependencies] = None,
    ) -> MigrationReport:
        """
        Migrate a VM and its managed disks into ``destination_group``.

        Args:
            name: VM name
            destination_group: Target resource group (created if absent)
            resource_group: Source resource group; inferred when omitted
            options: Force and dry-run switches
            confirm: Called with the dependencies and destination unless
                forced; a falsy answer aborts before any mutation
            dependencies: Previously discovered dependencies (skips re-discovery)

        Returns:
            MigrationReport; status FAILED when a fatal step failed

        Raises:
            InvalidArgumentError, ResourceNotFoundError, AmbiguousResourceError:
                Precondition failures, raised before any mutation
            OperationAbortedError: Confirmation declined
        """
        options = options or MigrationOptions()
        deps = dependencies or self.plan(name, destination_group, resource_group)
        vm = deps.vm
        source_group = vm.resource_group

        if not options.force and not options.dry_run:
            if confirm is None or not confirm(deps, destination_group):
                logger.info("migration_cancelled", vm=vm.name, resource_group=source_group)
                raise OperationAbortedError(
                    f"Migration of {vm.name} cancelled by user",
                    context={"resource_group": source_group},
                )

        report = MigrationReport(
            vm_name=vm.name,
            resource_group=source_group,
            destination_group=destination_group,
            started_at=datetime.now(),
        )
        dry_run = options.dry_run
        logger.info(
            "migration_started",
            vm=vm.name,
            resource_group=source_group,
            destination_group=destination_group,
            dry_run=dry_run,
        )

        if not self._ensure_destination_group(report, destination_group, vm.location, dry_run):
            return self._abort(report)

        new_disks: List[Optional[ManagedDisk]] = []
        for disk in [vm.os_disk, *vm.data_disks]:
            ok, new_disk = self._copy_disk(report, disk, destination_group, dry_run)
            if not ok:
                return self._abort(report)
            new_disks.append(new_disk)

        # Point of no return.
        ok, _ = self._step(
            report,
            "virtual machine",
            vm.name,
            source_group,
            vm.id,
            ActionType.DELETED,
            lambda: self.client.delete_vm(source_group, vm.name),
            dry_run,
        )
        if not ok:
            return self._abort(report)

        if dry_run:
            report.record(
                ResourceAction(
                    "virtual machine", vm.name, destination_group, ActionType.PLANNED,
                    detail=f"create with {len(new_disks)} disk(s)",
                )
            )
        else:
            new_os, *new_data = new_disks
            definition = VmDefinition(
                name=vm.name,
                resource_group=destination_group,
                location=vm.location,
                size=vm.size,
                os_type=vm.os_type,
                os_disk_id=new_os.id,
                data_disk_ids=[d.id for d in new_data],
                network_interface_ids=list(vm.network_interface_ids),
            )
            ok, new_vm = self._step(
                report,
                "virtual machine",
                vm.name,
                destination_group,
                None,
                ActionType.CREATED,
                lambda: self.client.create_vm(definition),
                dry_run,
            )
            if not ok:
                report.errors.append(
                    f"Original VM {vm.name} was deleted; its disks were copied to "
                    f"{destination_group} and must be attached manually"
                )
                return self._abort(report)
            report.new_vm_id = new_vm.id
            report.actions[-1].resource_id = new_vm.id

        self._move_network(report, deps, destination_group, dry_run)

        for disk in [vm.os_disk, *vm.data_disks]:
            self._step(
                report,
                "managed disk",
                disk.name,
                source_group,
                disk.managed_disk_id,
                ActionType.DELETED,
                lambda disk=disk: self.client.get_managed_disk(disk.managed_disk_id) is not None
                and self.client.delete_managed_disk(disk.managed_disk_id),
                dry_run,
            )

        report.finish(OperationStatus.DRY_RUN if dry_run else None)
        logger.info(
            "migration_finished",
            vm=vm.name,
            destination_group=destination_group,
            status=report.status.value,
            errors=len(report.errors),
        )
        return report

    def _abort(self, report: MigrationReport) -> MigrationReport:
        logger.error(
            "migration_aborted",
            vm=report.vm_name,
            resource_group=report.resource_group,
            destination_group=report.destination_group,
        )
        report.finish(OperationStatus.FAILED)
        return report

    def _step(
        self,
        report: MigrationReport,
        resource_type: str,
        name: str,
        resource_group: str,
        resource_id: Optional[str],
        action: ActionType,
        operation: Callable[[], Any],
        dry_run: bool,
        detail: Optional[str] = None,
        skipped_detail: str = "already absent",
    ) -> Tuple[bool, Any]:
        """Run one control-plane call and record its outcome.

        An operation returning exactly ``False`` had nothing to do (its target
        was already absent, or already moved) and is recorded as skipped.
        """
        if dry_run:
            report.record(
                ResourceAction(
                    resource_type, name, resource_group, ActionType.PLANNED,
                    resource_id, detail=detail or action.value,
                )
            )
            return True, None

        started = time.monotonic()
        try:
            result = operation()
        except VmLifecycleError as e:
            logger.error(
                "migration_step_failed",
                resource_type=resource_type,
                name=name,
                resource_group=resource_group,
                action=action.value,
                error=e.message,
            )
            report.record(
                ResourceAction(
                    resource_type, name, resource_group, ActionType.FAILED,
                    resource_id, error=e.message,
                    duration_seconds=time.monotonic() - started,
                )
            )
            return False, None

        recorded = ActionType.SKIPPED if result is False else action
        report.record(
            ResourceAction(
                resource_type, name, resource_group, recorded, resource_id,
                detail=skipped_detail if result is False else detail,
                duration_seconds=time.monotonic() - started,
            )
        )
        return True, result

    def _ensure_destination_group(
        self, report: MigrationReport, destination_group: str, location: str, dry_run: bool
    ) -> bool:
        try:
            existing = self.client.get_resource_group(destination_group)
        except VmLifecycleError as e:
            report.record(
                ResourceAction(
                    "resource group", destination_group, destination_group,
                    ActionType.FAILED, error=e.message,
                )
            )
            return False
        if existing is not None:
            return True
        ok, _ = self._step(
            report,
            "resource group",
            destination_group,
            destination_group,
            None,
            ActionType.CREATED,
            lambda: self.client.create_resource_group(destination_group, location),
            dry_run,
            detail=f"create in {location}",
        )
        return ok

    def _copy_disk(
        self, report: MigrationReport, disk: DiskReference, destination_group: str, dry_run: bool
    ) -> Tuple[bool, Optional[ManagedDisk]]:
        """Recreate one managed disk in the destination group via a snapshot.

        The snapshot is deleted whether or not the copy succeeds.
        """
        try:
            source = self.client.get_managed_disk(disk.managed_disk_id)
            existing = (
                self.client.find_managed_disk(destination_group, source.name)
                if source is not None
                else None
            )
        except VmLifecycleError as e:
            report.record(
                ResourceAction(
                    "managed disk", disk.name, destination_group, ActionType.FAILED,
                    disk.managed_disk_id, error=e.message,
                )
            )
            return False, None

        if source is None:
            report.record(
                ResourceAction(
                    "managed disk", disk.name, destination_group, ActionType.FAILED,
                    disk.managed_disk_id, error="source disk not found",
                )
            )
            return False, None

        if existing is not None and not existing.is_copy_of(source):
            report.record(
                ResourceAction(
                    "managed disk", existing.name, destination_group, ActionType.FAILED,
                    existing.id, error=_disk_conflict_error(existing, source).message,
                )
            )
            return False, None

        if existing is not None:
            logger.info("disk_copy_reused", disk=existing.name, resource_group=destination_group)
            report.record(
                ResourceAction(
                    "managed disk", existing.name, destination_group, ActionType.SKIPPED,
                    existing.id, detail="already present in destination",
                )
            )
            report.new_disk_ids.append(existing.id)
            return True, existing

        snapshot_name = snapshot_name_for(source.name)
        if dry_run:
            self._step(report, "snapshot", snapshot_name, destination_group, None,
                       ActionType.CREATED, lambda: None, dry_run, detail="create and delete")
            self._step(report, "managed disk", source.name, destination_group, None,
                       ActionType.CREATED, lambda: None, dry_run, detail=f"copy ({source.sku})")
            return True, None

        try:
            ok, snapshot = self._step(
                report,
                "snapshot",
                snapshot_name,
                destination_group,
                None,
                ActionType.CREATED,
                lambda: self.client.create_snapshot(source, destination_group, snapshot_name),
                dry_run,
            )
            if not ok:
                return False, None
            ok, new_disk = self._step(
                report,
                "managed disk",
                source.name,
                destination_group,
                None,
                ActionType.CREATED,
                lambda: self.client.create_managed_disk_from_snapshot(
                    snapshot, destination_group, source.name, source.sku, source.location
                ),
                dry_run,
                detail=source.sku,
            )
            if not ok:
                return False, None
        finally:
            self._step(
                report,
                "snapshot",
                snapshot_name,
                destination_group,
                None,
                ActionType.DELETED,
                lambda: self.client.delete_snapshot(destination_group, snapshot_name),
                dry_run,
            )

        report.actions_of(ActionType.CREATED)[-1].resource_id = new_disk.id
        report.new_disk_ids.append(new_disk.id)
        return True, new_disk

    def _move_network(
        self, report: MigrationReport, deps: VmDependencies, destination_group: str, dry_run: bool
    ) -> None:
        """Move NICs, NSGs and public IPs owned by the source group."""
        source_group = deps.vm.resource_group
        seen: Set[str] = set()

        candidates = []
        for nic in deps.nics:
            candidates.append(("network interface", nic.id, nic.name, nic.resource_group))
            nsg = deps.nsg_for(nic)
            if nsg is not None:
                candidates.append(("network security group", nsg.id, nsg.name, nsg.resource_group))
            for ip in deps.public_ips_for(nic):
                candidates.append(("public IP", ip.id, ip.name, ip.resource_group))

        for resource_type, resource_id, name, group in candidates:
            if resource_id.lower() in seen:
                continue
            seen.add(resource_id.lower())
            if not same_group(group, source_group):
                logger.info(
                    "shared_resource_left_in_place",
                    resource_type=resource_type,
                    name=name,
                    resource_group=group,
                )
                report.record(
                    ResourceAction(
                        resource_type, name, group, ActionType.SKIPPED, resource_id,
                        detail="resides in another resource group; presumed shared",
                    )
                )
                continue
            self._step(
                report,
                resource_type,
                name,
                group,
                resource_id,
                ActionType.MOVED,
                lambda resource_id=resource_id: self.client.move_resource(
                    resource_id, destination_group
                ),
                dry_run,
                detail=f"to {destination_group}",
                skipped_detail="already in destination",
            )


def _disk_conflict_error(existing: ManagedDisk, source: ManagedDisk) -> InvalidArgumentError:
    return InvalidArgumentError(
        f"Disk {existing.name} already exists in {existing.resource_group} "
        f"({existing.sku}) and was not copied from {source.id} ({source.sku})",
        argument="destination_group",
        recovery_suggestion="Remove or rename the existing disk, or choose another destination",
    )


def _same_group_error(group: str) -> InvalidArgumentError:
    return InvalidArgumentError(
        f"Source and destination resource groups are the same ({group})",
        argument="destination_group",
    )
