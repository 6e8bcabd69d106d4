import pytest

from homeio.core.exceptions import NotFound, ValidationError
from homeio.models import CommandQueueEntry
from homeio.services.command_queue import CommandQueueService
from homeio.services.device_state import DeviceStateService
from homeio.services.device_store import DeviceStateStore


@pytest.fixture
def service(locks):
    return DeviceStateService(locks=locks)


def entries(db):
    return [(e.device, e.command) for e in db.query(CommandQueueEntry).order_by(CommandQueueEntry.id)]


def test_turn_on_queues_command(db, service, make_device):
    make_device("d1", power_state="off")

    result = service.update_state(db, "d1", "turn", "ON")

    assert result.queued
    assert DeviceStateStore.get_device(db, "d1").preferred_power_state == "on"
    assert entries(db) == [("d1", {"name": "turn", "value": "on"})]


def test_converged_request_records_preference_only(db, service, make_device):
    make_device("d1", power_state="on")

    result = service.update_state(db, "d1", "turn", "on")

    assert not result.queued
    assert result.reason == "already converged"
    assert DeviceStateStore.get_device(db, "d1").preferred_power_state == "on"
    assert entries(db) == []


def test_brightness_also_prefers_power_on(db, service, make_device):
    make_device("d1", power_state="off", brightness=20)

    result = service.update_state(db, "d1", "brightness", "65")

    record = DeviceStateStore.get_device(db, "d1")
    assert (record.preferred_brightness, record.preferred_power_state) == (65, "on")
    assert result.queued
    assert entries(db) == [("d1", {"name": "brightness", "value": 65})]


def test_same_brightness_on_a_lit_device_is_a_no_op(db, service, make_device):
    make_device("d1", power_state="on", brightness=40)

    assert not service.update_state(db, "d1", "brightness", 40).queued
    assert entries(db) == []


def test_second_write_is_suppressed_while_pending(db, service, make_device):
    make_device("d1", power_state="off", brightness=20)

    first = service.update_state(db, "d1", "turn", "on")
    second = service.update_state(db, "d1", "brightness", 80)

    assert first.queued
    assert not second.queued
    assert second.reason == "command already in flight"
    assert DeviceStateStore.get_device(db, "d1").preferred_brightness == 80
    assert len(entries(db)) == 1

    CommandQueueService.mark_failed(db, first.command_id, "timeout")
    assert service.update_state(db, "d1", "brightness", 80).queued


@pytest.mark.parametrize("device, command, value", [
    (None, "turn", "on"),
    ("d1", None, "on"),
    ("d1", "turn", None),
    ("d1", "turn", "sideways"),
    ("d1", "color", 4000),
    ("d1", "brightness", "very"),
])
def test_invalid_requests_write_nothing(db, service, make_device, device, command, value):
    make_device("d1", power_state="off")

    with pytest.raises(ValidationError):
        service.update_state(db, device, command, value)

    record = DeviceStateStore.get_device(db, "d1")
    assert record.preferred_power_state is None
    assert record.preferred_brightness is None
    assert entries(db) == []


def test_unknown_device(db, service):
    with pytest.raises(NotFound):
        service.update_state(db, "ghost", "turn", "on")
    assert entries(db) == []


def test_send_command_leaves_preferences_alone(db, service, make_device):
    make_device("d1", power_state="on")

    result = service.send_command(db, "d1", {"name": "turn", "value": "on"})

    assert result.queued
    assert DeviceStateStore.get_device(db, "d1").preferred_power_state is None
    assert entries(db) == [("d1", {"name": "turn", "value": "on"})]


def test_send_command_is_guarded(db, service, make_device):
    make_device("d1")
    service.send_command(db, "d1", {"name": "brightness", "value": 30})

    result = service.send_command(db, "d1", {"name": "turn", "value": "off"})

    assert not result.queued
    assert len(entries(db)) == 1


def test_send_command_validates_payload(db, service, make_device):
    make_device("d1")

    with pytest.raises(ValidationError):
        service.send_command(db, "d1", {"name": "turn"})
    with pytest.raises(ValidationError):
        service.send_command(db, "d1", None)
