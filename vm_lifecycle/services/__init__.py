"""Services for VM discovery, teardown, migration and power operations."""

from .cloud_client import CloudResourceClient
from .dependency_walker import DependencyGraphWalker
from .migration_service import MigrationOrchestrator
from .power_service import VmPowerService
from .resource_locator import ResourceLocator
from .teardown_service import TeardownOrchestrator

__all__ = [
    "CloudResourceClient",
    "DependencyGraphWalker",
    "MigrationOrchestrator",
    "ResourceLocator",
    "TeardownOrchestrator",
    "VmPowerService",
]
