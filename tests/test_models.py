"""Tests for vm_lifecycle.models."""

from datetime import datetime, timedelta

import pytest

from vm_lifecycle.exceptions import InvalidArgumentError
from vm_lifecycle.models import (
    ActionType,
    DiskReference,
    ManagedDisk,
    MigrationReport,
    OperationStatus,
    OsType,
    ResourceAction,
    TeardownReport,
    parse_blob_uri,
    parse_resource_id,
    same_group,
    snapshot_name_for,
)


class TestBlobUri:
    def test_parses_account_container_and_path(self):
        location = parse_blob_uri("https://acct1.blob.core.windows.net/containerA/path/to/blob.vhd")
        assert location.storage_account == "acct1"
        assert location.container == "containerA"
        assert location.blob_path == "path/to/blob.vhd"

    def test_unquotes_blob_path(self):
        location = parse_blob_uri("https://acct1.blob.core.windows.net/vhds/my%20disk.vhd")
        assert location.blob_path == "my disk.vhd"

    @pytest.mark.parametrize(
        "uri",
        [
            "",
            "not a uri",
            "https://acct1.blob.core.windows.net/containerOnly",
            "https://localhost/container/blob.vhd",
        ],
    )
    def test_rejects_invalid_uris(self, uri):
        with pytest.raises(InvalidArgumentError):
            parse_blob_uri(uri)


class TestResourceId:
    def test_parses_components(self):
        parts = parse_resource_id(
            "/subscriptions/sub-1/resourceGroups/rg-app/providers/"
            "Microsoft.Network/networkInterfaces/web01-nic"
        )
        assert parts.subscription_id == "sub-1"
        assert parts.resource_group == "rg-app"
        assert parts.namespace == "Microsoft.Network"
        assert parts.resource_type == "networkInterfaces"
        assert parts.name == "web01-nic"

    def test_accepts_lower_case_segments(self):
        parts = parse_resource_id(
            "/subscriptions/sub-1/resourcegroups/rg-app/providers/microsoft.compute/disks/d1"
        )
        assert parts.resource_group == "rg-app"

    def test_rejects_non_group_scoped_id(self):
        with pytest.raises(InvalidArgumentError):
            parse_resource_id("/subscriptions/sub-1")


def test_same_group_ignores_case():
    assert same_group("RG-App", "rg-app")
    assert not same_group("rg-app", "rg-other")
    assert not same_group(None, "rg-app")


def test_snapshot_name():
    assert snapshot_name_for("web01-osdisk") == "web01-osdisk_snapshot"


def test_os_type_parse():
    assert OsType.parse("windows") == OsType.WINDOWS
    assert OsType.parse("Linux") == OsType.LINUX


@pytest.mark.parametrize("value", [None, "", "Solaris"])
def test_os_type_parse_rejects_unknown_values(value):
    with pytest.raises(InvalidArgumentError):
        OsType.parse(value)


class TestManagedDiskProvenance:
    def make(self, name="d", group="rg", sku="Premium_LRS", source_disk_id=None):
        return ManagedDisk(
            id=f"/subscriptions/s/resourceGroups/{group}/providers/Microsoft.Compute/disks/{name}",
            name=name,
            resource_group=group,
            location="eastus",
            sku=sku,
            source_disk_id=source_disk_id,
        )

    def test_copy_of_matching_source(self):
        source = self.make(group="rg-app")
        copy = self.make(group="rg-new", source_disk_id=source.id.upper())
        assert copy.is_copy_of(source)

    def test_untagged_disk_is_not_a_copy(self):
        assert not self.make(group="rg-new").is_copy_of(self.make(group="rg-app"))

    def test_sku_mismatch_is_not_a_copy(self):
        source = self.make(group="rg-app", sku="Standard_LRS")
        copy = self.make(group="rg-new", sku="Premium_LRS", source_disk_id=source.id)
        assert not copy.is_copy_of(source)


class TestDiskReference:
    def test_managed(self):
        assert DiskReference(name="d", managed_disk_id="/subscriptions/s/x").is_managed

    def test_unmanaged(self):
        assert not DiskReference(name="d", vhd_uri="https://a.blob.core.windows.net/c/d.vhd").is_managed

    def test_requires_exactly_one_reference(self):
        with pytest.raises(ValueError):
            DiskReference(name="d")
        with pytest.raises(ValueError):
            DiskReference(name="d", managed_disk_id="id", vhd_uri="uri")


class TestReports:
    def test_failed_action_is_recorded_as_error(self):
        report = TeardownReport(vm_name="web01", resource_group="rg-app")
        report.record(ResourceAction("network interface", "nic1", "rg-app", ActionType.DELETED))
        report.record(
            ResourceAction("public IP", "ip1", "rg-app", ActionType.FAILED, error="Conflict")
        )

        assert report.errors == ["public IP ip1 (resource group rg-app): Conflict"]
        assert [a.name for a in report.actions_of(ActionType.DELETED)] == ["nic1"]

    def test_finish_derives_status(self):
        clean = TeardownReport(vm_name="web01", started_at=datetime.now() - timedelta(seconds=2))
        clean.finish()
        assert clean.status == OperationStatus.COMPLETED
        assert clean.success
        assert clean.duration_seconds >= 2

        partial = TeardownReport(vm_name="web01")
        partial.errors.append("boom")
        partial.finish()
        assert partial.status == OperationStatus.PARTIAL
        assert not partial.success

    def test_explicit_status_wins(self):
        report = TeardownReport(vm_name="web01")
        report.finish(OperationStatus.DRY_RUN)
        assert report.status == OperationStatus.DRY_RUN
        assert not report.success

    def test_migration_report_to_dict(self):
        report = MigrationReport(vm_name="web01", resource_group="rg-app", destination_group="rg-new")
        report.record(ResourceAction("snapshot", "d_snapshot", "rg-new", ActionType.CREATED))
        report.finish()

        data = report.to_dict()

        assert data["destination_group"] == "rg-new"
        assert data["status"] == "completed"
        assert data["success"] is True
        assert data["actions"][0]["action"] == "created"
        assert data["completed_at"] is not None
