"""CLI commands for VM lifecycle operations.

Each module exposes one click command (or group) that cli.py registers on the
top-level group. Shared helpers live in base.py and console output in output.py.
"""

from .base import CommandContext, command_context, exit_with_error
from .migrate import migrate_command
from .power import power
from .teardown import teardown_command

ALL_COMMANDS = [teardown_command, migrate_command, power]


def register_all_commands(cli_group) -> None:
    for command in ALL_COMMANDS:
        cli_group.add_command(command)


__all__ = [
    "ALL_COMMANDS",
    "CommandContext",
    "command_context",
    "exit_with_error",
    "migrate_command",
    "power",
    "register_all_commands",
    "teardown_command",
]
