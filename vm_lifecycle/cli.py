"""
Command-line entry point for vm-lifecycle.

    vm-lifecycle [--log-level LEVEL] [--subscription-id ID] [--json-logs] COMMAND
"""

import click

from . import __version__
from .commands import register_all_commands


@click.group()
@click.version_option(__version__, prog_name="vm-lifecycle")
@click.option(
    "--log-level",
    default="INFO",
    help="Logging level (DEBUG, INFO, WARNING, ERROR)",
)
@click.option(
    "--subscription-id",
    envvar="AZURE_SUBSCRIPTION_ID",
    default=None,
    help="Azure subscription to operate on (default: AZURE_SUBSCRIPTION_ID)",
)
@click.option("--json-logs", is_flag=True, help="Emit structured logs as JSON")
@click.pass_context
def cli(ctx: click.Context, log_level: str, subscription_id: str, json_logs: bool) -> None:
    """Azure VM lifecycle - teardown, migration and power control for virtual machines."""
    ctx.ensure_object(dict)
    ctx.obj["log_level"] = log_level.upper()
    ctx.obj["subscription_id"] = subscription_id
    ctx.obj["json_logs"] = json_logs


register_all_commands(cli)


def main() -> None:
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
