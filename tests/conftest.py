import pytest

from tests.fixtures.fake_cloud import FakeCloudClient

VHD_URI = "https://acct1.blob.core.windows.net/vhds/legacy01-osdisk.vhd"


@pytest.fixture
def fake_cloud():
    """Provide an empty in-memory control plane."""
    return FakeCloudClient()


@pytest.fixture
def web_vm(fake_cloud):
    """VM web01 in rg-app with one NIC, a public IP, an NSG, an OS disk and two data disks."""
    ip = fake_cloud.add_public_ip("web01-ip", "rg-app")
    nsg = fake_cloud.add_nsg("web01-nsg", "rg-app")
    nic = fake_cloud.add_nic("web01-nic", "rg-app", public_ips=(ip,), nsg=nsg)
    os_disk = fake_cloud.add_disk("web01-osdisk", "rg-app")
    data = (
        fake_cloud.add_disk("web01-data0", "rg-app", sku="Standard_LRS"),
        fake_cloud.add_disk("web01-data1", "rg-app"),
    )
    return fake_cloud.add_vm("web01", "rg-app", nics=(nic,), os_disk=os_disk, data_disks=data)


@pytest.fixture
def legacy_vm(fake_cloud):
    """VM legacy01 in rg-legacy whose OS disk is an unmanaged VHD blob."""
    nic = fake_cloud.add_nic("legacy01-nic", "rg-legacy")
    return fake_cloud.add_vm("legacy01", "rg-legacy", nics=(nic,), os_vhd_uri=VHD_URI)
