# Models package
from .device import Device, DeviceGroup, Room
from .command_queue import CommandQueueEntry

__all__ = [
    "Device",
    "DeviceGroup",
    "Room",
    "CommandQueueEntry",
]
