"""
Dependency discovery for a single VM.

Follows the relation fields stored on the VM and its NICs:

    VM ──▶ NIC ──▶ IP configuration ──▶ public IP
            └────▶ network security group
    VM ──▶ OS disk, data disks (managed disk id or VHD blob URI)

Discovery is read-only, so it can be re-run or run ahead of a confirmation
prompt without side effects.
"""

from typing import Dict

import structlog

from ..models import NetworkSecurityGroup, PublicIpAddress, VirtualMachine, VmDependencies

logger = structlog.get_logger(__name__)


class DependencyGraphWalker:
    def __init__(self, client):
        self.client = client

    def discover(self, vm: VirtualMachine) -> VmDependencies:
        """Enumerate the NICs, public IPs and NSGs attached to a VM.

        References that no longer resolve (deleted out of band) are logged
        and left out.
        """
        deps = VmDependencies(vm=vm)
        public_ips: Dict[str, PublicIpAddress] = {}
        nsgs: Dict[str, NetworkSecurityGroup] = {}

        for nic_id in vm.network_interface_ids:
            nic = self.client.get_nic(nic_id)
            if nic is None:
                logger.warning("nic_missing", vm=vm.name, nic_id=nic_id)
                continue
            deps.nics.append(nic)

            for public_ip_id in nic.public_ip_ids:
                key = public_ip_id.lower()
                if key in public_ips:
                    continue
                public_ip = self.client.get_public_ip(public_ip_id)
                if public_ip is None:
                    logger.warning("public_ip_missing", nic=nic.name, public_ip_id=public_ip_id)
                    continue
                public_ips[key] = public_ip

            nsg_id = nic.network_security_group_id
            if nsg_id and nsg_id.lower() not in nsgs:
                nsg = self.client.get_nsg(nsg_id)
                if nsg is None:
                    logger.warning("nsg_missing", nic=nic.name, nsg_id=nsg_id)
                else:
                    nsgs[nsg_id.lower()] = nsg

        deps.public_ips = list(public_ips.values())
        deps.network_security_groups = list(nsgs.values())

        logger.info(
            "dependencies_discovered",
            vm=vm.name,
            resource_group=vm.resource_group,
            nics=len(deps.nics),
            public_ips=len(deps.public_ips),
            nsgs=len(deps.network_security_groups),
            os_disk_managed=vm.os_disk.is_managed,
            data_disks=len(vm.data_disks),
        )
        return deps
