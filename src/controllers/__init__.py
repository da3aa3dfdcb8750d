"""Controllers package for the Jarvis WhatsApp assistant."""

from src.controllers.admin_commands import AdminCommands
from src.controllers.command_router import CommandRouter, parse_command

__all__ = [
    "AdminCommands",
    "CommandRouter",
    "parse_command",
]
