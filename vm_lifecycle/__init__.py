"""Azure VM lifecycle operations: teardown, resource-group migration and power control."""

__version__ = "0.1.0"

from .exceptions import (
    AmbiguousResourceError,
    ConfigurationError,
    InvalidArgumentError,
    OperationAbortedError,
    ResourceNotFoundError,
    ResourceOperationError,
    VmLifecycleError,
)
from .models import (
    MigrationOptions,
    MigrationReport,
    PowerReport,
    TeardownOptions,
    TeardownReport,
    VmDependencies,
)

__all__ = [
    "AmbiguousResourceError",
    "ConfigurationError",
    "InvalidArgumentError",
    "MigrationOptions",
    "MigrationReport",
    "OperationAbortedError",
    "PowerReport",
    "ResourceNotFoundError",
    "ResourceOperationError",
    "TeardownOptions",
    "TeardownReport",
    "VmDependencies",
    "VmLifecycleError",
    "__version__",
]
