"""Base command infrastructure and shared utilities.

This module provides common utilities used across command modules:
- CommandContext for shared command execution context (config, logging, client)
- Confirmation prompt and exit helpers shared by the destructive commands
"""

import sys
from typing import Any, NoReturn, Optional

import click

from ..config_manager import VmLifecycleConfig, create_config_from_env, setup_logging
from ..credential_provider import create_azure_context
from ..exceptions import ConfigurationError
from ..logging_config import configure_logging
from ..models import OperationReport, OperationStatus
from ..services.cloud_client import CloudResourceClient


class CommandContext:
    """Shared context for command execution."""

    def __init__(
        self,
        ctx: click.Context,
        log_level: str = "INFO",
        subscription_id: Optional[str] = None,
        json_logs: bool = False,
    ):
        self.click_ctx = ctx
        self.log_level = log_level
        self.subscription_id = subscription_id
        self.json_logs = json_logs

    def get_config(self, **kwargs: Any) -> VmLifecycleConfig:
        """Get configuration from environment and wire up logging."""
        try:
            config = create_config_from_env(
                subscription_id=self.subscription_id, log_level=self.log_level, **kwargs
            )
        except ConfigurationError as e:
            exit_with_error(e.message, hint=e.recovery_suggestion)
        except ValueError as e:
            exit_with_error(str(e))
        setup_logging(config.logging)
        configure_logging(
            config.logging.level, json_output=self.json_logs or config.logging.json_output
        )
        config.log_configuration_summary()
        return config

    def get_client(self, config: VmLifecycleConfig) -> CloudResourceClient:
        return build_client(config)


def build_client(config: VmLifecycleConfig) -> CloudResourceClient:
    """Create a CloudResourceClient for the configured subscription."""
    return CloudResourceClient(
        create_azure_context(config.azure),
        operation_timeout=config.operation.operation_timeout,
        blob_endpoint_suffix=config.operation.blob_endpoint_suffix,
    )


def command_context(ctx: click.Context) -> CommandContext:
    """Create CommandContext from click context."""
    obj = ctx.obj or {}
    return CommandContext(
        ctx=ctx,
        log_level=obj.get("log_level", "INFO"),
        subscription_id=obj.get("subscription_id"),
        json_logs=obj.get("json_logs", False),
    )


def exit_with_error(message: str, code: int = 1, hint: Optional[str] = None) -> NoReturn:
    """Exit with error message."""
    click.echo(f"Error: {message}", err=True)
    if hint:
        click.echo(hint, err=True)
    sys.exit(code)


def confirm_deletion(prompt: str) -> bool:
    """Ask for a yes/no confirmation; anything but yes cancels."""
    click.echo()
    return click.confirm(click.style(prompt, fg="yellow", bold=True), default=False)


def cancel() -> NoReturn:
    click.echo("Operation cancelled by user.")
    sys.exit(0)


def exit_for_report(report: OperationReport) -> None:
    """Exit non-zero when the run failed or recorded any error."""
    if report.status == OperationStatus.FAILED or report.errors:
        sys.exit(1)


__all__ = [
    "CommandContext",
    "build_client",
    "cancel",
    "command_context",
    "confirm_deletion",
    "exit_for_report",
    "exit_with_error",
]
