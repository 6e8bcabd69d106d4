"""
Device View Builder

Caller-facing device snapshot: effective state (preferred over actual),
devices with a command in flight left out, and group members folded under
their group's reference device.
"""

import logging
from typing import Callable, Iterable, List, Optional, Set

from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..models.device import Device
from .command_queue import PendingCommandGuard
from .device_store import DeviceFilter, DeviceStateStore

DevicePredicate = Callable[[Device], bool]


class DeviceView(BaseModel):
    """Device as shown to callers; the actual/preferred split is not exposed"""
    device: str
    device_name: Optional[str] = None
    brand: str
    model: Optional[str] = None
    power_state: Optional[str] = None
    brightness: Optional[int] = None
    online: bool = False
    room_id: Optional[int] = None
    room_name: Optional[str] = None
    group_id: Optional[int] = None
    group_name: Optional[str] = None
    show_in_group_only: bool = False
    low: Optional[int] = None
    medium: Optional[int] = None
    high: Optional[int] = None
    preferred_color_tem: Optional[int] = None
    group_members: Optional[List["DeviceView"]] = None


DeviceView.model_rebuild()


def without_pending(pending: Set[str]) -> DevicePredicate:
    return lambda device: device.device not in pending


def listed_outside_group(device: Device) -> bool:
    """Hidden group members only show up under their reference device"""
    if device.device_group_id is None or not device.show_in_group_only:
        return True
    return device.is_group_reference


def all_of(predicates: Iterable[DevicePredicate]) -> DevicePredicate:
    predicates = list(predicates)
    return lambda device: all(predicate(device) for predicate in predicates)


class DeviceViewBuilder:

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)

    def build(self, db: Session, device_filter: Optional[DeviceFilter] = None) -> List[DeviceView]:
        device_filter = device_filter or DeviceFilter()
        self.logger.info("Getting devices from the database.")

        devices = DeviceStateStore.list_devices(db, device_filter)
        pending = PendingCommandGuard.pending_devices(db)

        if device_filter.is_single_device:
            # The named device is always shown
            listed = devices
        else:
            keep = all_of([without_pending(pending), listed_outside_group])
            listed = [device for device in devices if keep(device)]

        return [self._to_view(device, pending) for device in listed]

    def _to_view(self, device: Device, pending: Set[str]) -> DeviceView:
        view = self._base_view(device)
        if device.is_group_reference:
            members = [
                member for member in device.group.members
                if member.device != device.device and member.device not in pending
            ]
            view.group_members = [self._base_view(member) for member in members]
        return view

    @staticmethod
    def _base_view(device: Device) -> DeviceView:
        return DeviceView(
            device=device.device,
            device_name=device.preferred_name or device.device_name,
            brand=device.brand,
            model=device.model,
            power_state=device.effective_power_state,
            brightness=device.effective_brightness,
            online=bool(device.online),
            room_id=device.room_id,
            room_name=device.room.room_name if device.room else None,
            group_id=device.device_group_id,
            group_name=device.group.name if device.group else None,
            show_in_group_only=bool(device.show_in_group_only),
            low=device.low,
            medium=device.medium,
            high=device.high,
            preferred_color_tem=device.preferred_color_tem,
        )
