"""
Device State Store

Canonical device records: vendor-observed ("actual") fields written by
reconciliation, caller-requested ("preferred") fields written by the write
path, and room/group associations.

Methods flush but never commit; callers own the transaction.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session, joinedload

from ..core.exceptions import NotFound, ValidationError
from ..db.database import store_errors
from ..models.device import Device, Room

# Columns a vendor poll may overwrite on an existing device
DESCRIPTOR_FIELDS = ("brand", "model", "device_name", "vendor_data")
OBSERVED_FIELDS = ("power_state", "brightness", "online")
PREFERRED_FIELDS = ("preferred_power_state", "preferred_brightness")
CONFIG_FIELDS = ("room_id", "low", "medium", "high", "preferred_color_tem", "preferred_name")


@dataclass(frozen=True)
class DeviceFilter:
    """
    Read filter: one device, one room, or all rooms but one.

    `device` wins over the room filters; `room` and `exclude_room`
    together are rejected.
    """
    device: Optional[str] = None
    room: Optional[int] = None
    exclude_room: Optional[int] = None

    def __post_init__(self):
        if self.room is not None and self.exclude_room is not None:
            raise ValidationError("'room' and 'exclude_room' cannot be combined")

    @property
    def is_single_device(self) -> bool:
        return self.device is not None


class DeviceStateStore:
    """Persistence operations on the devices table"""

    @staticmethod
    def get_device(db: Session, device: str) -> Device:
        with store_errors(f"loading device {device}"):
            record = db.query(Device).filter(Device.device == device).first()
        if not record:
            raise NotFound(f"Device {device} not found")
        return record

    @staticmethod
    def upsert_device(db: Session, device: str, fields: Dict[str, Any]) -> Device:
        """
        Insert a new device or refresh a known one from a vendor poll.

        Only descriptor and observed columns are written; room, group,
        preferred and configuration columns of an existing row are left alone.
        """
        allowed = set(DESCRIPTOR_FIELDS) | set(OBSERVED_FIELDS)
        unexpected = set(fields) - allowed
        if unexpected:
            raise ValidationError(f"Vendor update may not set: {', '.join(sorted(unexpected))}")

        with store_errors(f"upserting device {device}"):
            record = db.query(Device).filter(Device.device == device).first()
            if record is None:
                record = Device(device=device)
                db.add(record)

            for key, value in fields.items():
                setattr(record, key, value)
            record.last_polled_at = datetime.now()
            db.flush()

        return record

    @staticmethod
    def set_preferred(db: Session, device: str, field: str, value: Any) -> Device:
        """Record a caller-requested value (power_state or brightness)"""
        column = f"preferred_{field}"
        if column not in PREFERRED_FIELDS:
            raise ValidationError(f"Unknown preferred field: {field}")

        record = DeviceStateStore.get_device(db, device)
        with store_errors(f"saving preferred {field} for {device}"):
            setattr(record, column, value)
            db.flush()
        return record

    @staticmethod
    def update_config(db: Session, device: str, config: Dict[str, Any]) -> Device:
        """Administrative configuration (room, brightness presets, colour temperature, name)"""
        unexpected = set(config) - set(CONFIG_FIELDS)
        if unexpected:
            raise ValidationError(f"Unknown configuration fields: {', '.join(sorted(unexpected))}")

        record = DeviceStateStore.get_device(db, device)
        room_id = config.get("room_id")
        if room_id is not None:
            with store_errors("loading room"):
                room = db.query(Room).filter(Room.id == room_id).first()
            if room is None:
                raise NotFound(f"Room {room_id} not found")

        with store_errors(f"updating configuration for {device}"):
            for key, value in config.items():
                setattr(record, key, value)
            db.flush()
        return record

    @staticmethod
    def list_devices(db: Session, device_filter: Optional[DeviceFilter] = None) -> List[Device]:
        """Devices matching the filter, ordered by name, with room and group loaded"""
        device_filter = device_filter or DeviceFilter()

        query = db.query(Device).options(joinedload(Device.room), joinedload(Device.group))

        if device_filter.is_single_device:
            query = query.filter(Device.device == device_filter.device)
        elif device_filter.room is not None:
            query = query.filter(Device.room_id == device_filter.room)
        elif device_filter.exclude_room is not None:
            # Devices without a room are kept
            query = query.filter(or_(Device.room_id.is_(None), Device.room_id != device_filter.exclude_room))

        with store_errors("listing devices"):
            return query.order_by(Device.device_name.asc(), Device.device.asc()).all()
