"""
Configuration Management for Azure VM Lifecycle

This module provides centralized configuration management with validation
and environment variable handling. Values come from the process environment
(or a .env file) and may be overridden by CLI options.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import colorlog
from dotenv import load_dotenv

from .exceptions import ConfigurationError

# Load environment variables
load_dotenv()


def _set_azure_http_log_level(log_level: str) -> None:
    """Set log levels for HTTP-related loggers to reduce noise."""
    http_loggers = [
        "azure.core.pipeline.policies.http_logging_policy",
        "azure.core.pipeline",
        "azure.identity",
        "azure.mgmt",
        "azure.storage",
        "urllib3",
        "urllib3.connectionpool",
        "http.client",
    ]
    # HTTP logging should only appear at DEBUG level
    target_level = logging.DEBUG if log_level == "DEBUG" else logging.WARNING
    for name in http_loggers:
        logging.getLogger(name).setLevel(target_level)


logger = logging.getLogger(__name__)


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


@dataclass
class AzureConfig:
    """Subscription and service principal settings."""

    subscription_id: str = field(
        default_factory=lambda: os.getenv("AZURE_SUBSCRIPTION_ID", "")
    )
    tenant_id: Optional[str] = field(default_factory=lambda: os.getenv("AZURE_TENANT_ID"))
    client_id: Optional[str] = field(default_factory=lambda: os.getenv("AZURE_CLIENT_ID"))
    client_secret: Optional[str] = field(
        default_factory=lambda: os.getenv("AZURE_CLIENT_SECRET")
    )

    def has_service_principal(self) -> bool:
        """Check if explicit service principal credentials are configured."""
        return bool(self.tenant_id and self.client_id and self.client_secret)

    def validate(self) -> None:
        if not self.subscription_id:
            raise ConfigurationError(
                "Azure subscription ID is required", config_key="AZURE_SUBSCRIPTION_ID"
            )


@dataclass
class OperationConfig:
    """Configuration for orchestration behavior."""

    max_workers: int = field(
        default_factory=lambda: int(os.getenv("VM_LIFECYCLE_MAX_WORKERS", "10"))
    )
    operation_timeout: int = field(
        default_factory=lambda: int(os.getenv("VM_LIFECYCLE_OPERATION_TIMEOUT", "1800"))
    )
    blob_endpoint_suffix: str = field(
        default_factory=lambda: os.getenv(
            "VM_LIFECYCLE_BLOB_ENDPOINT_SUFFIX", "blob.core.windows.net"
        )
    )

    def __post_init__(self) -> None:
        """Validate operation configuration."""
        if self.max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        if self.operation_timeout < 1:
            raise ValueError("operation_timeout must be at least 1 second")


@dataclass
class LoggingConfig:
    """Configuration for logging behavior."""

    level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    format: str = field(
        default_factory=lambda: os.getenv(
            "LOG_FORMAT", "%(log_color)s%(levelname)s:%(name)s:%(message)s"
        )
    )
    file_output: Optional[str] = field(default_factory=lambda: os.getenv("LOG_FILE"))
    json_output: bool = field(default_factory=lambda: _env_flag("LOG_JSON"))

    def __post_init__(self) -> None:
        """Validate logging configuration."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if self.level.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        self.level = self.level.upper()

    def get_log_level(self) -> int:
        """Convert string log level to logging constant."""
        level_attr = getattr(logging, self.level, None)
        if level_attr is None:
            raise ValueError(f"Invalid log level: {self.level}")
        return int(level_attr)


@dataclass
class VmLifecycleConfig:
    """Main configuration class that aggregates all configuration sections."""

    azure: AzureConfig = field(default_factory=AzureConfig)
    operation: OperationConfig = field(default_factory=OperationConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_environment(
        cls,
        subscription_id: Optional[str] = None,
        max_workers: Optional[int] = None,
        log_level: Optional[str] = None,
    ) -> "VmLifecycleConfig":
        """
        Create configuration from environment variables.

        Args:
            subscription_id: Overrides AZURE_SUBSCRIPTION_ID
            max_workers: Overrides VM_LIFECYCLE_MAX_WORKERS
            log_level: Overrides LOG_LEVEL

        Returns:
            VmLifecycleConfig: Configured instance
        """
        config = cls()
        if subscription_id:
            config.azure.subscription_id = subscription_id
        if max_workers is not None:
            config.operation.max_workers = max_workers
        if log_level:
            config.logging.level = log_level.upper()
        return config

    def validate_all(self) -> None:
        """Validate all configuration sections."""
        try:
            self.azure.validate()
            self.operation.__post_init__()
            self.logging.__post_init__()
            logger.debug("Configuration validation successful")
        except Exception as e:
            logger.error(f"Configuration validation failed: {e}")
            raise

    def log_configuration_summary(self) -> None:
        """Log a summary of the current configuration (without sensitive data)."""
        logger.info("=" * 60)
        logger.info("AZURE VM LIFECYCLE CONFIGURATION")
        logger.info("=" * 60)
        logger.info(f"Subscription: {self.azure.subscription_id}")
        logger.info(
            "Credential: "
            + ("service principal" if self.azure.has_service_principal() else "default chain")
        )
        logger.info(f"Max Workers: {self.operation.max_workers}")
        logger.info(f"Operation Timeout: {self.operation.operation_timeout}s")
        logger.info(f"Logging Level: {self.logging.level}")
        if self.logging.file_output:
            logger.info(f"Log File: {self.logging.file_output}")
        logger.info("=" * 60)

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary for serialization."""
        return {
            "azure": {
                "subscription_id": self.azure.subscription_id,
                "tenant_id": self.azure.tenant_id,
                "client_id": self.azure.client_id,
                # Don't include client secret in serialization
                "service_principal": self.azure.has_service_principal(),
            },
            "operation": {
                "max_workers": self.operation.max_workers,
                "operation_timeout": self.operation.operation_timeout,
                "blob_endpoint_suffix": self.operation.blob_endpoint_suffix,
            },
            "logging": {
                "level": self.logging.level,
                "file_output": self.logging.file_output,
                "json_output": self.logging.json_output,
            },
        }


def setup_logging(config: LoggingConfig) -> None:
    """
    Setup logging configuration based on config.
    """
    _set_azure_http_log_level(config.level.upper())

    # Configure root logger
    root_logger = logging.getLogger()
    root_logger.handlers.clear()  # Remove any existing handlers
    root_logger.setLevel(config.get_log_level())

    console_handler = colorlog.StreamHandler()
    console_handler.setFormatter(colorlog.ColoredFormatter(config.format))
    root_logger.addHandler(console_handler)

    # Add file handler if file output is configured
    if config.file_output:
        file_handler = logging.FileHandler(config.file_output)
        file_formatter = logging.Formatter(
            "%(asctime)s - %(levelname)s:%(name)s:%(message)s"
        )
        file_handler.setFormatter(file_formatter)
        root_logger.addHandler(file_handler)

    # Reduce Azure SDK noise
    logging.getLogger("azure").setLevel(
        logging.DEBUG if config.level == "DEBUG" else logging.WARNING
    )

    logger.debug(
        f"Logging configured: level={config.level}, file={config.file_output or 'console'}"
    )


def create_config_from_env(
    subscription_id: Optional[str] = None,
    max_workers: Optional[int] = None,
    log_level: Optional[str] = None,
) -> VmLifecycleConfig:
    """
    Factory function to create and validate configuration from environment.

    Raises:
        ConfigurationError: If the subscription is not configured
        ValueError: If any other value is invalid
    """
    config = VmLifecycleConfig.from_environment(subscription_id, max_workers, log_level)
    config.validate_all()
    return config
