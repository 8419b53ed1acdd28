"""
VM Power Service.

Starts or stops several VMs at once. The management SDK is synchronous, so
each per-VM call runs in a worker thread and an asyncio semaphore bounds how
many are in flight. One VM failing never blocks or cancels the others.
"""

import asyncio
import time
from datetime import datetime
from typing import Callable, List, Optional, Sequence

import structlog

from ..exceptions import InvalidArgumentError, VmLifecycleError
from ..models import ActionType, PowerReport, ResourceAction, VirtualMachine
from .resource_locator import ResourceLocator

logger = structlog.get_logger(__name__)

DEFAULT_MAX_WORKERS = 10


class VmPowerService:
    """
    Concurrent VM start/stop.

    Args:
        client: CloudResourceClient (or any object with the same primitives)
        max_workers: Maximum number of VMs acted on concurrently
        locator: Optional ResourceLocator override
    """

    def __init__(
        self,
        client,
        max_workers: int = DEFAULT_MAX_WORKERS,
        locator: Optional[ResourceLocator] = None,
    ):
        if max_workers < 1:
            raise InvalidArgumentError(
                f"max_workers must be at least 1, got {max_workers}", argument="max_workers"
            )
        self.client = client
        self.max_workers = max_workers
        self.locator = locator or ResourceLocator(client)

    def resolve_targets(
        self, names: Sequence[str] = (), resource_group: Optional[str] = None
    ) -> List[VirtualMachine]:
        """Select VMs by name, or every VM in a resource group.

        Raises:
            InvalidArgumentError: Neither names nor a resource group were given
            ResourceNotFoundError, AmbiguousResourceError: A name did not resolve
        """
        if names:
            return [self.locator.locate(name, resource_group) for name in names]
        if not resource_group:
            raise InvalidArgumentError(
                "Specify at least one VM name or a resource group", argument="name"
            )
        return self.client.list_vms(resource_group)

    async def start(self, vms: Sequence[VirtualMachine], wait: bool = True) -> PowerReport:
        return await self._run(
            "start",
            ActionType.STARTED,
            vms,
            lambda vm: self.client.start_vm(vm.resource_group, vm.name, wait=wait),
        )

    async def stop(
        self, vms: Sequence[VirtualMachine], deallocate: bool = True, wait: bool = True
    ) -> PowerReport:
        """Stop VMs; with ``deallocate`` the compute allocation is released too."""
        return await self._run(
            "stop",
            ActionType.STOPPED,
            vms,
            lambda vm: self.client.stop_vm(
                vm.resource_group, vm.name, deallocate=deallocate, wait=wait
            ),
        )

    async def _run(
        self,
        operation: str,
        action: ActionType,
        vms: Sequence[VirtualMachine],
        call: Callable[[VirtualMachine], None],
    ) -> PowerReport:
        report = PowerReport(
            vm_name=", ".join(vm.name for vm in vms),
            operation=operation,
            started_at=datetime.now(),
        )
        groups = {vm.resource_group for vm in vms}
        if len(groups) == 1:
            report.resource_group = groups.pop()

        semaphore = asyncio.Semaphore(self.max_workers)

        async def run_with_semaphore(vm: VirtualMachine) -> ResourceAction:
            async with semaphore:
                started = time.monotonic()
                try:
                    await asyncio.to_thread(call, vm)
                except VmLifecycleError as e:
                    logger.error(
                        "power_operation_failed",
                        operation=operation,
                        name=vm.name,
                        resource_group=vm.resource_group,
                        error=e.message,
                    )
                    return ResourceAction(
                        "virtual machine", vm.name, vm.resource_group, ActionType.FAILED,
                        vm.id, error=e.message, duration_seconds=time.monotonic() - started,
                    )
                logger.info(
                    "power_operation_completed",
                    operation=operation,
                    name=vm.name,
                    resource_group=vm.resource_group,
                )
                return ResourceAction(
                    "virtual machine", vm.name, vm.resource_group, action, vm.id,
                    duration_seconds=time.monotonic() - started,
                )

        logger.info("power_operation_started", operation=operation, vms=len(vms))
        results = await asyncio.gather(*[run_with_semaphore(vm) for vm in vms])
        for result in results:
            report.record(result)

        report.finish()
        return report
