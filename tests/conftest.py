import asyncio

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from homeio.adapters.base import DeviceDescriptor, StateProperties, VendorAdapter
from homeio.commands.models import PowerState
from homeio.db.database import Base
from homeio.models import CommandQueueEntry, Device, DeviceGroup, Room  # noqa: F401
from homeio.services.device_locks import DeviceLockRegistry


class FakeAdapter(VendorAdapter):
    """In-memory adapter: `devices` maps device id -> StateProperties (or an exception)"""

    def __init__(self, name="fake", devices=None, skip_on_quick=False, list_error=None, delay=0.0):
        super().__init__(timeout=1.0)
        self.name = name
        self.skip_on_quick = skip_on_quick
        self.devices = devices or {}
        self.list_error = list_error
        self.delay = delay
        self.list_calls = 0

    async def list_devices(self):
        self.list_calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.list_error:
            raise self.list_error
        return [
            DeviceDescriptor(device=device, brand=self.name, model="M1", device_name=f"Light {device}")
            for device in self.devices
        ]

    async def fetch_state(self, descriptor):
        state = self.devices[descriptor.device]
        if isinstance(state, Exception):
            raise state
        return state


def on(brightness=None, online=True):
    return StateProperties(power_state=PowerState.ON, brightness=brightness, online=online)


def off(brightness=None, online=True):
    return StateProperties(power_state=PowerState.OFF, brightness=brightness, online=online)


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def locks():
    return DeviceLockRegistry()


@pytest.fixture
def make_device(db):
    def _make(device, brand="govee", **fields):
        fields.setdefault("device_name", f"Light {device}")
        fields.setdefault("model", "M1")
        fields.setdefault("online", True)
        record = Device(device=device, brand=brand, **fields)
        db.add(record)
        db.commit()
        return record
    return _make


@pytest.fixture
def make_room(db):
    def _make(room_name, tab_order=0):
        room = Room(room_name=room_name, tab_order=tab_order)
        db.add(room)
        db.commit()
        return room
    return _make
