"""Resolve a VM referenced by name to exactly one VM."""

from typing import Optional

import structlog

from ..exceptions import AmbiguousResourceError, ResourceNotFoundError
from ..models import VirtualMachine

logger = structlog.get_logger(__name__)


class ResourceLocator:
    """
    Finds the VM a destructive operation targets.

    With an explicit resource group the lookup is direct. Without one, every
    VM in the subscription is enumerated and the name must match exactly one;
    several matches are an error rather than a guess.
    """

    def __init__(self, client):
        self.client = client

    def locate(self, name: str, resource_group: Optional[str] = None) -> VirtualMachine:
        """
        Args:
            name: VM name
            resource_group: Optional resource group; inferred when omitted

        Raises:
            ResourceNotFoundError: No VM with this name
            AmbiguousResourceError: More than one VM with this name
        """
        if resource_group:
            vm = self.client.get_vm(name, resource_group)
            if vm is None:
                raise ResourceNotFoundError(
                    f"Virtual machine {name} not found in resource group {resource_group}",
                    resource_type="virtual machine",
                    name=name,
                    resource_group=resource_group,
                )
            return vm

        matches = [vm for vm in self.client.list_vms() if vm.name.lower() == name.lower()]
        if not matches:
            raise ResourceNotFoundError(
                f"Virtual machine {name} not found in the current subscription",
                resource_type="virtual machine",
                name=name,
            )
        if len(matches) > 1:
            groups = sorted(vm.resource_group for vm in matches)
            raise AmbiguousResourceError(
                f"Found {len(matches)} virtual machines named {name}; "
                f"specify the resource group explicitly",
                name=name,
                match_count=len(matches),
                resource_groups=groups,
            )

        vm = matches[0]
        logger.info("vm_located", name=vm.name, resource_group=vm.resource_group)
        return vm
