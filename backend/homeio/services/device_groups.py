"""
Device Group Service

Groups cluster devices of one model behind a reference device. The
reference device is always a member and stays visible; members that join
later are shown only inside the group.
"""

import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from ..core.exceptions import NotFound, ValidationError
from ..db.database import store_errors
from ..models.device import Device, DeviceGroup
from .device_store import DeviceStateStore

logger = logging.getLogger(__name__)


class DeviceGroupService:
    """Group membership operations (each call commits)"""

    @staticmethod
    def get_group(db: Session, group_id: int) -> DeviceGroup:
        with store_errors(f"loading group {group_id}"):
            group = db.query(DeviceGroup).filter(DeviceGroup.id == group_id).first()
        if not group:
            raise NotFound(f"Group {group_id} not found")
        return group

    @staticmethod
    def create_group(db: Session, device: str, name: Optional[str], model: Optional[str]) -> DeviceGroup:
        """Create a group with `device` as its reference device"""
        if not name or not model:
            raise ValidationError("Missing required parameters: groupName, model")

        record = DeviceStateStore.get_device(db, device)
        if record.model and record.model != model:
            raise ValidationError(f"Device {device} is a {record.model}, not a {model}")
        if record.device_group_id is not None:
            DeviceGroupService._check_not_reference(db, record)

        with store_errors(f"creating group {name}"):
            group = DeviceGroup(name=name, model=model, reference_device=device)
            db.add(group)
            db.flush()

            record.device_group_id = group.id
            record.show_in_group_only = False
            db.commit()

        logger.info(f"Created group {group.id} '{name}' with reference device {device}")
        return group

    @staticmethod
    def join_group(db: Session, device: str, group_id: Optional[int]) -> DeviceGroup:
        if group_id is None:
            raise ValidationError("Missing required parameters: groupId")

        group = DeviceGroupService.get_group(db, group_id)
        record = DeviceStateStore.get_device(db, device)
        if record.model and record.model != group.model:
            raise ValidationError(f"Device {device} ({record.model}) cannot join a {group.model} group")
        if record.device_group_id is not None and record.device_group_id != group.id:
            DeviceGroupService._check_not_reference(db, record)

        with store_errors(f"joining group {group_id}"):
            record.device_group_id = group.id
            record.show_in_group_only = record.device != group.reference_device
            db.commit()

        logger.info(f"Device {device} joined group {group.id}")
        return group

    @staticmethod
    def leave_group(db: Session, device: str):
        record = DeviceStateStore.get_device(db, device)
        if record.device_group_id is None:
            return
        DeviceGroupService._check_not_reference(db, record)

        with store_errors(f"leaving group {record.device_group_id}"):
            record.device_group_id = None
            record.show_in_group_only = False
            db.commit()

        logger.info(f"Device {device} left its group")

    @staticmethod
    def delete_group(db: Session, group_id: Optional[int]):
        """Release every member, then drop the group"""
        if group_id is None:
            raise ValidationError("Missing required parameters: groupId")

        group = DeviceGroupService.get_group(db, group_id)
        try:
            with store_errors(f"deleting group {group_id}"):
                db.query(Device).filter(Device.device_group_id == group.id).update(
                    {Device.device_group_id: None, Device.show_in_group_only: False},
                    synchronize_session=False
                )
                db.delete(group)
                db.commit()
        except Exception:
            db.rollback()
            raise

        logger.info(f"Deleted group {group_id}")

    @staticmethod
    def available_groups(db: Session, model: Optional[str]) -> List[DeviceGroup]:
        if not model:
            raise ValidationError("Missing required parameters: model")
        with store_errors("listing groups"):
            return db.query(DeviceGroup).filter(DeviceGroup.model == model).order_by(DeviceGroup.name).all()

    @staticmethod
    def group_devices(db: Session, group_id: Optional[int]) -> List[Device]:
        if group_id is None:
            raise ValidationError("Missing required parameters: groupId")
        return list(DeviceGroupService.get_group(db, group_id).members)

    @staticmethod
    def _check_not_reference(db: Session, record: Device):
        group = DeviceGroupService.get_group(db, record.device_group_id)
        if group.reference_device == record.device:
            raise ValidationError(
                f"Device {record.device} is the reference device of group {group.id}; delete the group instead"
            )
