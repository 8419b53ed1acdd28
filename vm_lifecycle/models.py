"""Models for VM Teardown and Migration.

Philosophy:
- Type-safe data structures using dataclasses
- One record per resource kind, required fields first
- Reports record every action so partial failures can be remediated by hand

Public API:
    VirtualMachine, NetworkInterface, PublicIpAddress, NetworkSecurityGroup,
    ManagedDisk, Snapshot, ResourceGroup, ResourceRef: control-plane records
    DiskReference: managed-disk id XOR unmanaged VHD blob URI
    VmDependencies: resources attached to a VM
    VmDefinition: input for recreating a VM from existing disks
    TeardownOptions / MigrationOptions: per-run switches
    TeardownReport / MigrationReport / PowerReport: results
"""

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional
from urllib.parse import unquote, urlparse

from .exceptions import InvalidArgumentError

SNAPSHOT_SUFFIX = "_snapshot"

RESOURCE_ID_PATTERN = re.compile(
    r"^/subscriptions/(?P<subscription>[^/]+)"
    r"/resourceGroups/(?P<group>[^/]+)"
    r"/providers/(?P<namespace>[^/]+)/(?P<type>[^/]+)/(?P<name>[^/]+)",
    re.IGNORECASE,
)


class OsType(str, Enum):
    """Operating system of a VM's OS disk."""

    WINDOWS = "Windows"
    LINUX = "Linux"

    @classmethod
    def parse(cls, value: Optional[str]) -> "OsType":
        """
        Raises:
            InvalidArgumentError: If the value is neither Windows nor Linux
        """
        for member in cls:
            if value and str(value).lower() == member.value.lower():
                return member
        raise InvalidArgumentError(f"Unrecognised OS type: {value!r}", argument="os_type")


class ActionType(str, Enum):
    """What happened to a single resource during an operation."""

    DELETED = "deleted"
    RETAINED = "retained"
    SKIPPED = "skipped"
    MOVED = "moved"
    CREATED = "created"
    DISSOCIATED = "dissociated"
    STARTED = "started"
    STOPPED = "stopped"
    FAILED = "failed"
    PLANNED = "planned"


class OperationStatus(str, Enum):
    """Overall status of an orchestration run."""

    RUNNING = "running"
    COMPLETED = "completed"
    PARTIAL = "partial"  # Some steps succeeded, some failed
    FAILED = "failed"
    ABORTED = "aborted"
    DRY_RUN = "dry_run"


@dataclass
class ResourceIdParts:
    """Components of an ARM resource id."""

    subscription_id: str
    resource_group: str
    namespace: str
    resource_type: str
    name: str


def parse_resource_id(resource_id: str) -> ResourceIdParts:
    """Split an ARM resource id into its components.

    Raises:
        InvalidArgumentError: If the id is not a resource-group scoped ARM id
    """
    match = RESOURCE_ID_PATTERN.match(resource_id or "")
    if not match:
        raise InvalidArgumentError(
            f"Invalid resource ID format: {resource_id}", argument="resource_id"
        )
    return ResourceIdParts(
        subscription_id=match.group("subscription"),
        resource_group=match.group("group"),
        namespace=match.group("namespace"),
        resource_type=match.group("type"),
        name=match.group("name"),
    )


def same_group(left: Optional[str], right: Optional[str]) -> bool:
    """Resource group names are case-insensitive in ARM."""
    return bool(left) and bool(right) and left.lower() == right.lower()


def snapshot_name_for(disk_name: str) -> str:
    return f"{disk_name}{SNAPSHOT_SUFFIX}"


@dataclass
class BlobLocation:
    """Where an unmanaged disk's VHD lives."""

    storage_account: str
    container: str
    blob_path: str


def parse_blob_uri(uri: str) -> BlobLocation:
    """Parse a VHD blob URI into storage account, container and blob path.

    ``https://acct1.blob.core.windows.net/containerA/path/to/blob.vhd`` yields
    account ``acct1``, container ``containerA`` and path ``path/to/blob.vhd``.
    """
    parsed = urlparse(uri or "")
    host = parsed.hostname or ""
    segments = [s for s in parsed.path.split("/") if s]
    if not host or "." not in host or len(segments) < 2:
        raise InvalidArgumentError(f"Invalid blob URI: {uri}", argument="vhd_uri")
    return BlobLocation(
        storage_account=host.split(".", 1)[0],
        container=segments[0],
        blob_path=unquote("/".join(segments[1:])),
    )


@dataclass
class DiskReference:
    """A VM disk: either a managed disk id or an unmanaged VHD blob URI."""

    name: str
    managed_disk_id: Optional[str] = None
    vhd_uri: Optional[str] = None
    lun: Optional[int] = None

    def __post_init__(self):
        if bool(self.managed_disk_id) == bool(self.vhd_uri):
            raise ValueError(
                f"Disk {self.name} must reference exactly one of a managed disk "
                f"or a VHD blob"
            )

    @property
    def is_managed(self) -> bool:
        return bool(self.managed_disk_id)


@dataclass
class VirtualMachine:
    """A virtual machine as read from the control plane."""

    id: str
    name: str
    resource_group: str
    location: str
    size: str
    os_type: Optional[OsType]
    os_disk: DiskReference
    data_disks: List[DiskReference] = field(default_factory=list)
    network_interface_ids: List[str] = field(default_factory=list)


@dataclass
class IpConfiguration:
    name: str
    public_ip_id: Optional[str] = None


@dataclass
class NetworkInterface:
    id: str
    name: str
    resource_group: str
    ip_configurations: List[IpConfiguration] = field(default_factory=list)
    network_security_group_id: Optional[str] = None

    @property
    def public_ip_ids(self) -> List[str]:
        return [c.public_ip_id for c in self.ip_configurations if c.public_ip_id]


@dataclass
class PublicIpAddress:
    id: str
    name: str
    resource_group: str


@dataclass
class NetworkSecurityGroup:
    id: str
    name: str
    resource_group: str


@dataclass
class ManagedDisk:
    id: str
    name: str
    resource_group: str
    location: str
    sku: str
    # Id of the disk this one was copied from; only set on migration copies.
    source_disk_id: Optional[str] = None

    def is_copy_of(self, source: "ManagedDisk") -> bool:
        """True when this disk was copied from ``source`` and kept its SKU."""
        return (
            bool(self.source_disk_id)
            and self.source_disk_id.lower() == source.id.lower()
            and self.sku.lower() == source.sku.lower()
        )


@dataclass
class Snapshot:
    """Transient copy of a disk, deleted once the new disk exists."""

    id: str
    name: str
    resource_group: str
    source_disk_id: str


@dataclass
class ResourceGroup:
    name: str
    location: str


@dataclass
class ResourceRef:
    """Any resource listed in a resource group."""

    id: str
    name: str
    type: str


@dataclass
class VmDependencies:
    """Resources directly and transitively attached to a VM."""

    vm: VirtualMachine
    nics: List[NetworkInterface] = field(default_factory=list)
    public_ips: List[PublicIpAddress] = field(default_factory=list)
    network_security_groups: List[NetworkSecurityGroup] = field(default_factory=list)

    @property
    def os_disk(self) -> DiskReference:
        return self.vm.os_disk

    @property
    def data_disks(self) -> List[DiskReference]:
        return self.vm.data_disks

    def public_ips_for(self, nic: NetworkInterface) -> List[PublicIpAddress]:
        wanted = {pid.lower() for pid in nic.public_ip_ids}
        return [ip for ip in self.public_ips if ip.id.lower() in wanted]

    def nsg_for(self, nic: NetworkInterface) -> Optional[NetworkSecurityGroup]:
        if not nic.network_security_group_id:
            return None
        for nsg in self.network_security_groups:
            if nsg.id.lower() == nic.network_security_group_id.lower():
                return nsg
        return None


@dataclass
class VmDefinition:
    """Definition of a VM built from existing disks and NICs.

    Data disks are attached with LUNs assigned from 0 in list order; the first
    NIC is primary.
    """

    name: str
    resource_group: str
    location: str
    size: str
    os_type: OsType
    os_disk_id: str
    data_disk_ids: List[str] = field(default_factory=list)
    network_interface_ids: List[str] = field(default_factory=list)


@dataclass
class TeardownOptions:
    """Retention switches for teardown. False means "also delete"."""

    keep_nic: bool = False
    keep_public_ip: bool = False
    keep_os_disk: bool = False
    keep_data_disk: bool = False
    keep_resource_group: bool = False
    force: bool = False
    dry_run: bool = False


@dataclass
class MigrationOptions:
    force: bool = False
    dry_run: bool = False


@dataclass
class ResourceAction:
    """Result of acting on a single resource."""

    resource_type: str
    name: str
    resource_group: str
    action: ActionType
    resource_id: Optional[str] = None
    error: Optional[str] = None
    detail: Optional[str] = None
    duration_seconds: float = 0.0

    @property
    def failed(self) -> bool:
        return self.action == ActionType.FAILED

    def to_dict(self) -> dict:
        return {
            "resource_type": self.resource_type,
            "name": self.name,
            "resource_group": self.resource_group,
            "action": self.action.value,
            "resource_id": self.resource_id,
            "error": self.error,
            "detail": self.detail,
            "duration_seconds": self.duration_seconds,
        }


@dataclass
class OperationReport:
    """Common bookkeeping shared by all reports."""

    vm_name: str
    resource_group: Optional[str] = None
    status: OperationStatus = OperationStatus.RUNNING
    actions: List[ResourceAction] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    duration_seconds: float = 0.0

    @property
    def success(self) -> bool:
        """Check if operation was fully successful."""
        return self.status == OperationStatus.COMPLETED and len(self.errors) == 0

    def record(self, action: ResourceAction) -> ResourceAction:
        self.actions.append(action)
        if action.failed and action.error:
            self.errors.append(
                f"{action.resource_type} {action.name} "
                f"(resource group {action.resource_group}): {action.error}"
            )
        return action

    def actions_of(self, action_type: ActionType) -> List[ResourceAction]:
        return [a for a in self.actions if a.action == action_type]

    def finish(self, status: Optional[OperationStatus] = None) -> None:
        """Stamp completion time and derive status from recorded errors."""
        self.completed_at = datetime.now()
        if self.started_at:
            self.duration_seconds = (self.completed_at - self.started_at).total_seconds()
        if status is not None:
            self.status = status
        elif self.errors:
            self.status = OperationStatus.PARTIAL
        else:
            self.status = OperationStatus.COMPLETED

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "vm_name": self.vm_name,
            "resource_group": self.resource_group,
            "status": self.status.value,
            "success": self.success,
            "actions": [a.to_dict() for a in self.actions],
            "errors": self.errors,
            "duration_seconds": self.duration_seconds,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


@dataclass
class TeardownReport(OperationReport):
    resource_group_deleted: bool = False

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["resource_group_deleted"] = self.resource_group_deleted
        return data


@dataclass
class MigrationReport(OperationReport):
    destination_group: Optional[str] = None
    new_vm_id: Optional[str] = None
    new_disk_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update(
            {
                "destination_group": self.destination_group,
                "new_vm_id": self.new_vm_id,
                "new_disk_ids": self.new_disk_ids,
            }
        )
        return data


@dataclass
class PowerReport(OperationReport):
    operation: str = "start"

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["operation"] = self.operation
        return data
