"""
Device Commands

Closed command union shared by the write path, the reconciliation
engine and the command queue.
"""

from .models import (
    BrightnessCommand,
    CommandStatus,
    DeviceCommand,
    PowerState,
    TurnCommand,
    command_payload,
    parse_command,
)

__all__ = [
    "BrightnessCommand",
    "CommandStatus",
    "DeviceCommand",
    "PowerState",
    "TurnCommand",
    "command_payload",
    "parse_command",
]
