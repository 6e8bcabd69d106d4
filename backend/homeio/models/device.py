from sqlalchemy import Column, Integer, String, DateTime, Boolean, JSON, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..db.database import Base


class Room(Base):
    __tablename__ = "rooms"

    id = Column(Integer, primary_key=True, index=True)
    room_name = Column(String, nullable=False)
    tab_order = Column(Integer, default=0)
    icon = Column(String, nullable=True)


class DeviceGroup(Base):
    """
    Devices of one model clustered behind a reference device.
    The reference device's row represents the group in the default view.
    """
    __tablename__ = "device_groups"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    model = Column(String, nullable=False, index=True)
    reference_device = Column(String, nullable=False)

    members = relationship("Device", back_populates="group", order_by="Device.device_name")


class Device(Base):
    __tablename__ = "devices"

    id = Column(Integer, primary_key=True, index=True)

    # Device identification
    device = Column(String, unique=True, index=True, nullable=False)  # Vendor-scoped id
    brand = Column(String, nullable=False, index=True)  # "govee", "hue"
    model = Column(String, nullable=True)
    device_name = Column(String, nullable=True)

    # Last observed state (written by reconciliation only)
    power_state = Column(String, nullable=True)  # 'on', 'off'
    brightness = Column(Integer, nullable=True)  # Canonical 0-100
    online = Column(Boolean, default=False)

    # Desired state - NULL means mirror actual
    preferred_power_state = Column(String, nullable=True)
    preferred_brightness = Column(Integer, nullable=True)

    # Associations
    room_id = Column(Integer, ForeignKey("rooms.id"), nullable=True, index=True)
    device_group_id = Column(Integer, ForeignKey("device_groups.id"), nullable=True, index=True)
    show_in_group_only = Column(Boolean, default=False, nullable=False)

    # Configuration
    low = Column(Integer, nullable=True)
    medium = Column(Integer, nullable=True)
    high = Column(Integer, nullable=True)
    preferred_color_tem = Column(Integer, nullable=True)
    preferred_name = Column(String, nullable=True)

    # Vendor passthrough, e.g. {"light_index": "3"} for Hue
    vendor_data = Column(JSON, nullable=True)

    # Timestamps
    last_polled_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    room = relationship("Room")
    group = relationship("DeviceGroup", back_populates="members")

    @property
    def effective_power_state(self):
        return self.preferred_power_state if self.preferred_power_state is not None else self.power_state

    @property
    def effective_brightness(self):
        return self.preferred_brightness if self.preferred_brightness is not None else self.brightness

    @property
    def is_group_reference(self) -> bool:
        return self.group is not None and self.group.reference_device == self.device

    def __repr__(self):
        return f"<Device(device='{self.device}', brand='{self.brand}', power_state='{self.power_state}')>"
