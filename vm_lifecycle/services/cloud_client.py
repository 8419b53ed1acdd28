"""
Cloud Resource Client.

Thin typed facade over the Azure management SDKs. Every read returns one of
the records in vm_lifecycle.models (or None when the resource is absent), and
every control-plane rejection surfaces as ResourceOperationError with enough
context (type, name, resource group) for manual remediation.

Reads never raise for a missing resource so callers can recheck existence
before acting; deletes of an already-absent resource return False.
"""

import contextlib
from typing import Dict, Iterator, List, Optional

import structlog
from azure.core.exceptions import AzureError
from azure.core.exceptions import ResourceNotFoundError as AzureResourceNotFoundError
from azure.mgmt.compute import ComputeManagementClient
from azure.mgmt.compute.models import (
    CreationData,
    DataDisk,
    Disk,
    DiskSku,
    HardwareProfile,
    ManagedDiskParameters,
    NetworkInterfaceReference,
    NetworkProfile,
    OSDisk,
    StorageProfile,
)
from azure.mgmt.compute.models import Snapshot as SdkSnapshot
from azure.mgmt.compute.models import VirtualMachine as SdkVirtualMachine
from azure.mgmt.network import NetworkManagementClient
from azure.mgmt.resource.resources import ResourceManagementClient
from azure.mgmt.resource.resources.models import ResourcesMoveInfo
from azure.mgmt.resource.resources.models import ResourceGroup as SdkResourceGroup
from azure.mgmt.storage import StorageManagementClient
from azure.storage.blob import BlobServiceClient

from ..credential_provider import AzureContext
from ..exceptions import ResourceNotFoundError, ResourceOperationError
from ..models import (
    DiskReference,
    IpConfiguration,
    ManagedDisk,
    NetworkInterface,
    NetworkSecurityGroup,
    OsType,
    PublicIpAddress,
    ResourceGroup,
    ResourceRef,
    Snapshot,
    VirtualMachine,
    VmDefinition,
    parse_resource_id,
    same_group,
)

logger = structlog.get_logger(__name__)

DEFAULT_OPERATION_TIMEOUT = 1800
DEFAULT_BLOB_ENDPOINT_SUFFIX = "blob.core.windows.net"

# Tag written on migrated disks, recording the disk they were copied from.
SOURCE_DISK_TAG = "vm-lifecycle-source-disk"


def _disk_reference(sdk_disk, default_name: str) -> DiskReference:
    managed_id = sdk_disk.managed_disk.id if sdk_disk.managed_disk else None
    vhd_uri = sdk_disk.vhd.uri if sdk_disk.vhd else None
    return DiskReference(
        name=sdk_disk.name or default_name,
        managed_disk_id=managed_id,
        vhd_uri=None if managed_id else vhd_uri,
        lun=getattr(sdk_disk, "lun", None),
    )


def vm_from_sdk(vm) -> VirtualMachine:
    """Convert an azure.mgmt.compute VirtualMachine into a VirtualMachine record."""
    storage = vm.storage_profile
    nic_refs = vm.network_profile.network_interfaces if vm.network_profile else None
    data_disks = sorted(storage.data_disks or [], key=lambda d: d.lun)
    return VirtualMachine(
        id=vm.id,
        name=vm.name,
        resource_group=parse_resource_id(vm.id).resource_group,
        location=vm.location,
        size=vm.hardware_profile.vm_size if vm.hardware_profile else "",
        os_type=OsType.parse(storage.os_disk.os_type) if storage.os_disk.os_type else None,
        os_disk=_disk_reference(storage.os_disk, f"{vm.name}-osdisk"),
        data_disks=[
            _disk_reference(d, f"{vm.name}-datadisk-{d.lun}") for d in data_disks
        ],
        network_interface_ids=[ref.id for ref in nic_refs or []],
    )


def nic_from_sdk(nic) -> NetworkInterface:
    return NetworkInterface(
        id=nic.id,
        name=nic.name,
        resource_group=parse_resource_id(nic.id).resource_group,
        ip_configurations=[
            IpConfiguration(
                name=cfg.name,
                public_ip_id=cfg.public_ip_address.id if cfg.public_ip_address else None,
            )
            for cfg in nic.ip_configurations or []
        ],
        network_security_group_id=(
            nic.network_security_group.id if nic.network_security_group else None
        ),
    )


class CloudResourceClient:
    """
    Resource CRUD primitives against one subscription.

    Args:
        context: Credential and subscription to operate on
        operation_timeout: Seconds to wait on each long-running operation
        blob_endpoint_suffix: DNS suffix of blob endpoints (sovereign clouds differ)
    """

    def __init__(
        self,
        context: AzureContext,
        operation_timeout: int = DEFAULT_OPERATION_TIMEOUT,
        blob_endpoint_suffix: str = DEFAULT_BLOB_ENDPOINT_SUFFIX,
    ):
        self.context = context
        self.operation_timeout = operation_timeout
        self.blob_endpoint_suffix = blob_endpoint_suffix

        # Azure clients (lazy initialization)
        self._compute_client: Optional[ComputeManagementClient] = None
        self._network_client: Optional[NetworkManagementClient] = None
        self._resource_client: Optional[ResourceManagementClient] = None
        self._storage_client: Optional[StorageManagementClient] = None

    @property
    def subscription_id(self) -> str:
        return self.context.subscription_id

    def _compute(self) -> ComputeManagementClient:
        if self._compute_client is None:
            self._compute_client = ComputeManagementClient(
                self.context.credential, self.subscription_id
            )
        return self._compute_client

    def _network(self) -> NetworkManagementClient:
        if self._network_client is None:
            self._network_client = NetworkManagementClient(
                self.context.credential, self.subscription_id
            )
        return self._network_client

    def _resources(self) -> ResourceManagementClient:
        if self._resource_client is None:
            self._resource_client = ResourceManagementClient(
                self.context.credential, self.subscription_id
            )
        return self._resource_client

    def _storage(self) -> StorageManagementClient:
        if self._storage_client is None:
            self._storage_client = StorageManagementClient(
                self.context.credential, self.subscription_id
            )
        return self._storage_client

    @contextlib.contextmanager
    def _control_plane_call(
        self, action: str, resource_type: str, name: str, resource_group: Optional[str]
    ) -> Iterator[None]:
        """Translate SDK failures into ResourceOperationError."""
        try:
            yield
        except AzureError as e:
            message = getattr(e, "message", None) or str(e)
            logger.warning(
                "control_plane_call_failed",
                action=action,
                resource_type=resource_type,
                name=name,
                resource_group=resource_group,
                error=message,
            )
            raise ResourceOperationError(
                f"Failed to {action} {resource_type} {name}: {message}",
                resource_type=resource_type,
                name=name,
                resource_group=resource_group,
                cause=e,
            ) from e

    def _wait(self, poller):
        """Block on a long-running operation.

        LROPoller.result returns whatever it has when the timeout elapses, so
        an unfinished operation is raised as an AzureError here and surfaces
        from _control_plane_call as ResourceOperationError.
        """
        result = poller.result(timeout=self.operation_timeout)
        if not poller.done():
            raise AzureError(
                f"operation did not complete within {self.operation_timeout}s"
            )
        return result

    # Virtual machines

    def get_vm(self, name: str, resource_group: str) -> Optional[VirtualMachine]:
        with self._control_plane_call("read", "virtual machine", name, resource_group):
            try:
                vm = self._compute().virtual_machines.get(resource_group, name)
            except AzureResourceNotFoundError:
                return None
        return vm_from_sdk(vm)

    def list_vms(self, resource_group: Optional[str] = None) -> List[VirtualMachine]:
        """List VMs in a resource group, or in the whole subscription."""
        with self._control_plane_call(
            "list", "virtual machine", "*", resource_group or self.subscription_id
        ):
            if resource_group:
                vms = list(self._compute().virtual_machines.list(resource_group))
            else:
                vms = list(self._compute().virtual_machines.list_all())
        return [vm_from_sdk(vm) for vm in vms]

    def delete_vm(self, resource_group: str, name: str) -> bool:
        with self._control_plane_call("delete", "virtual machine", name, resource_group):
            try:
                self._wait(self._compute().virtual_machines.begin_delete(resource_group, name))
            except AzureResourceNotFoundError:
                return False
        return True

    def start_vm(self, resource_group: str, name: str, wait: bool = True) -> None:
        with self._control_plane_call("start", "virtual machine", name, resource_group):
            poller = self._compute().virtual_machines.begin_start(resource_group, name)
            if wait:
                self._wait(poller)

    def stop_vm(
        self, resource_group: str, name: str, deallocate: bool = True, wait: bool = True
    ) -> None:
        """Stop a VM; deallocating releases the compute billing as well."""
        with self._control_plane_call("stop", "virtual machine", name, resource_group):
            vms = self._compute().virtual_machines
            if deallocate:
                poller = vms.begin_deallocate(resource_group, name)
            else:
                poller = vms.begin_power_off(resource_group, name)
            if wait:
                self._wait(poller)

    def create_vm(self, definition: VmDefinition) -> VirtualMachine:
        """Create a VM that attaches existing managed disks and NICs."""
        parameters = SdkVirtualMachine(
            location=definition.location,
            hardware_profile=HardwareProfile(vm_size=definition.size),
            storage_profile=StorageProfile(
                os_disk=OSDisk(
                    name=parse_resource_id(definition.os_disk_id).name,
                    create_option="Attach",
                    os_type=definition.os_type.value,
                    managed_disk=ManagedDiskParameters(id=definition.os_disk_id),
                ),
                data_disks=[
                    DataDisk(
                        lun=lun,
                        name=parse_resource_id(disk_id).name,
                        create_option="Attach",
                        managed_disk=ManagedDiskParameters(id=disk_id),
                    )
                    for lun, disk_id in enumerate(definition.data_disk_ids)
                ],
            ),
            network_profile=NetworkProfile(
                network_interfaces=[
                    NetworkInterfaceReference(id=nic_id, primary=index == 0)
                    for index, nic_id in enumerate(definition.network_interface_ids)
                ]
            ),
        )
        with self._control_plane_call(
            "create", "virtual machine", definition.name, definition.resource_group
        ):
            vm = self._wait(
                self._compute().virtual_machines.begin_create_or_update(
                    definition.resource_group, definition.name, parameters
                )
            )
        return vm_from_sdk(vm)

    # Network

    def get_nic(self, nic_id: str) -> Optional[NetworkInterface]:
        parts = parse_resource_id(nic_id)
        with self._control_plane_call(
            "read", "network interface", parts.name, parts.resource_group
        ):
            try:
                nic = self._network().network_interfaces.get(parts.resource_group, parts.name)
            except AzureResourceNotFoundError:
                return None
        return nic_from_sdk(nic)

    def delete_nic(self, nic_id: str) -> bool:
        parts = parse_resource_id(nic_id)
        with self._control_plane_call(
            "delete", "network interface", parts.name, parts.resource_group
        ):
            try:
                self._wait(
                    self._network().network_interfaces.begin_delete(
                        parts.resource_group, parts.name
                    )
                )
            except AzureResourceNotFoundError:
                return False
        return True

    def dissociate_public_ip(self, nic_id: str, public_ip_id: str) -> bool:
        """Unlink a public IP from every IP configuration of a NIC.

        Returns:
            True if the NIC was updated, False if the IP was not attached
        """
        parts = parse_resource_id(nic_id)
        with self._control_plane_call(
            "update", "network interface", parts.name, parts.resource_group
        ):
            nics = self._network().network_interfaces
            nic = nics.get(parts.resource_group, parts.name)
            changed = False
            for cfg in nic.ip_configurations or []:
                if cfg.public_ip_address and cfg.public_ip_address.id.lower() == public_ip_id.lower():
                    cfg.public_ip_address = None
                    changed = True
            if changed:
                self._wait(nics.begin_create_or_update(parts.resource_group, parts.name, nic))
        return changed

    def get_public_ip(self, public_ip_id: str) -> Optional[PublicIpAddress]:
        parts = parse_resource_id(public_ip_id)
        with self._control_plane_call("read", "public IP", parts.name, parts.resource_group):
            try:
                ip = self._network().public_ip_addresses.get(parts.resource_group, parts.name)
            except AzureResourceNotFoundError:
                return None
        return PublicIpAddress(id=ip.id, name=ip.name, resource_group=parts.resource_group)

    def delete_public_ip(self, public_ip_id: str) -> bool:
        parts = parse_resource_id(public_ip_id)
        with self._control_plane_call("delete", "public IP", parts.name, parts.resource_group):
            try:
                self._wait(
                    self._network().public_ip_addresses.begin_delete(
                        parts.resource_group, parts.name
                    )
                )
            except AzureResourceNotFoundError:
                return False
        return True

    def get_nsg(self, nsg_id: str) -> Optional[NetworkSecurityGroup]:
        parts = parse_resource_id(nsg_id)
        with self._control_plane_call(
            "read", "network security group", parts.name, parts.resource_group
        ):
            try:
                nsg = self._network().network_security_groups.get(
                    parts.resource_group, parts.name
                )
            except AzureResourceNotFoundError:
                return None
        return NetworkSecurityGroup(id=nsg.id, name=nsg.name, resource_group=parts.resource_group)

    # Managed disks and snapshots

    def get_managed_disk(self, disk_id: str) -> Optional[ManagedDisk]:
        parts = parse_resource_id(disk_id)
        return self.find_managed_disk(parts.resource_group, parts.name)

    def find_managed_disk(self, resource_group: str, name: str) -> Optional[ManagedDisk]:
        with self._control_plane_call("read", "managed disk", name, resource_group):
            try:
                disk = self._compute().disks.get(resource_group, name)
            except AzureResourceNotFoundError:
                return None
        return ManagedDisk(
            id=disk.id,
            name=disk.name,
            resource_group=parse_resource_id(disk.id).resource_group,
            location=disk.location,
            sku=disk.sku.name if disk.sku else "Standard_LRS",
            source_disk_id=(getattr(disk, "tags", None) or {}).get(SOURCE_DISK_TAG),
        )

    def delete_managed_disk(self, disk_id: str) -> bool:
        parts = parse_resource_id(disk_id)
        with self._control_plane_call("delete", "managed disk", parts.name, parts.resource_group):
            try:
                self._wait(self._compute().disks.begin_delete(parts.resource_group, parts.name))
            except AzureResourceNotFoundError:
                return False
        return True

    def create_snapshot(self, source_disk: ManagedDisk, resource_group: str, name: str) -> Snapshot:
        """Take a full point-in-time copy of a managed disk."""
        parameters = SdkSnapshot(
            location=source_disk.location,
            creation_data=CreationData(create_option="Copy", source_resource_id=source_disk.id),
        )
        with self._control_plane_call("create", "snapshot", name, resource_group):
            snapshot = self._wait(
                self._compute().snapshots.begin_create_or_update(resource_group, name, parameters)
            )
        return Snapshot(
            id=snapshot.id,
            name=snapshot.name,
            resource_group=resource_group,
            source_disk_id=source_disk.id,
        )

    def delete_snapshot(self, resource_group: str, name: str) -> bool:
        with self._control_plane_call("delete", "snapshot", name, resource_group):
            try:
                self._wait(self._compute().snapshots.begin_delete(resource_group, name))
            except AzureResourceNotFoundError:
                return False
        return True

    def create_managed_disk_from_snapshot(
        self, snapshot: Snapshot, resource_group: str, name: str, sku: str, location: str
    ) -> ManagedDisk:
        parameters = Disk(
            location=location,
            sku=DiskSku(name=sku),
            creation_data=CreationData(create_option="Copy", source_resource_id=snapshot.id),
            tags={SOURCE_DISK_TAG: snapshot.source_disk_id},
        )
        with self._control_plane_call("create", "managed disk", name, resource_group):
            disk = self._wait(
                self._compute().disks.begin_create_or_update(resource_group, name, parameters)
            )
        return ManagedDisk(
            id=disk.id,
            name=disk.name,
            resource_group=resource_group,
            location=disk.location,
            sku=disk.sku.name if disk.sku else sku,
            source_disk_id=snapshot.source_disk_id,
        )

    # Storage

    def resolve_storage_account_group(self, account_name: str) -> str:
        """Find the resource group that owns a storage account.

        Raises:
            ResourceNotFoundError: If no storage account has this name
        """
        with self._control_plane_call("list", "storage account", account_name, None):
            accounts = list(self._storage().storage_accounts.list())
        for account in accounts:
            if account.name.lower() == account_name.lower():
                return parse_resource_id(account.id).resource_group
        raise ResourceNotFoundError(
            f"Storage account {account_name} not found in subscription {self.subscription_id}",
            resource_type="storage account",
            name=account_name,
        )

    def delete_blob(self, storage_account: str, container: str, blob_path: str) -> bool:
        """Delete a blob (and its snapshots) using the account key.

        Returns:
            True if deleted, False if the blob was already gone
        """
        resource_group = self.resolve_storage_account_group(storage_account)
        with self._control_plane_call("delete", "blob", blob_path, resource_group):
            keys = self._storage().storage_accounts.list_keys(resource_group, storage_account)
            service = BlobServiceClient(
                account_url=f"https://{storage_account}.{self.blob_endpoint_suffix}",
                credential=keys.keys[0].value,
            )
            try:
                service.get_blob_client(container, blob_path).delete_blob(
                    delete_snapshots="include"
                )
            except AzureResourceNotFoundError:
                return False
        return True

    # Resource groups

    def get_resource_group(self, name: str) -> Optional[ResourceGroup]:
        with self._control_plane_call("read", "resource group", name, name):
            try:
                group = self._resources().resource_groups.get(name)
            except AzureResourceNotFoundError:
                return None
        return ResourceGroup(name=group.name, location=group.location)

    def create_resource_group(self, name: str, location: str) -> ResourceGroup:
        with self._control_plane_call("create", "resource group", name, name):
            group = self._resources().resource_groups.create_or_update(
                name, SdkResourceGroup(location=location)
            )
        return ResourceGroup(name=group.name, location=group.location)

    def delete_resource_group(self, name: str) -> bool:
        with self._control_plane_call("delete", "resource group", name, name):
            try:
                self._wait(self._resources().resource_groups.begin_delete(name))
            except AzureResourceNotFoundError:
                return False
        return True

    def list_resources_in_group(self, name: str) -> List[ResourceRef]:
        with self._control_plane_call("list", "resource group", name, name):
            resources = list(self._resources().resources.list_by_resource_group(name))
        return [ResourceRef(id=r.id, name=r.name, type=r.type) for r in resources]

    def move_resource(self, resource_id: str, destination_group: str) -> bool:
        """Move one resource into another group of the same subscription.

        Returns:
            True if moved, False if it already lives in the destination
        """
        parts = parse_resource_id(resource_id)
        if same_group(parts.resource_group, destination_group):
            return False
        target = f"/subscriptions/{self.subscription_id}/resourceGroups/{destination_group}"
        with self._control_plane_call(
            "move", parts.resource_type, parts.name, parts.resource_group
        ):
            self._wait(
                self._resources().resources.begin_move_resources(
                    parts.resource_group,
                    ResourcesMoveInfo(resources=[resource_id], target_resource_group=target),
                )
            )
        return True

    def describe(self) -> Dict[str, str]:
        return {"subscription_id": self.subscription_id}
