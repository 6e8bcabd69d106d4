"""
Device State Service

Write path for caller-requested state. The preferred value is always
recorded; a command is queued only when it differs from the observed value
and the device has no command in flight.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional, assert_never

from sqlalchemy.orm import Session

from ..commands.models import (
    BrightnessCommand,
    DeviceCommand,
    PowerState,
    TurnCommand,
    command_payload,
    parse_command,
)
from ..core.exceptions import ValidationError
from ..db.database import store_errors
from ..models.device import Device
from .command_queue import CommandQueueService, PendingCommandGuard
from .device_locks import DeviceLockRegistry, device_locks
from .device_store import DeviceStateStore


@dataclass
class StateUpdateResult:
    device: str
    command: DeviceCommand
    queued: bool
    command_id: Optional[int] = None
    reason: Optional[str] = None


class DeviceStateService:
    """Preferred-state updates and direct command submission"""

    def __init__(
        self,
        locks: Optional[DeviceLockRegistry] = None,
        logger: Optional[logging.Logger] = None
    ):
        self.locks = locks or device_locks
        self.logger = logger or logging.getLogger(__name__)

    def update_state(self, db: Session, device: Optional[str], command: Optional[str], value: Any) -> StateUpdateResult:
        """
        Record a preferred power/brightness value and queue a command if needed

        Args:
            db: Database session
            device: Device id
            command: 'turn' or 'brightness'
            value: power token ('on'/'off') or brightness (0-100)

        Raises:
            ValidationError: missing or invalid fields (nothing is written)
            NotFound: unknown device
        """
        missing = [name for name, given in (("device", device), ("command", command), ("value", value)) if given is None]
        if missing:
            raise ValidationError(f"Missing required parameters: {', '.join(missing)}")

        requested = parse_command({"name": command, "value": value})

        with self.locks.hold(device):
            try:
                record = DeviceStateStore.get_device(db, device)

                if isinstance(requested, TurnCommand):
                    DeviceStateStore.set_preferred(db, device, "power_state", requested.value.value)
                    converged = record.power_state == requested.value.value
                elif isinstance(requested, BrightnessCommand):
                    DeviceStateStore.set_preferred(db, device, "brightness", requested.value)
                    # Changing brightness of a device that is off also asks for power on
                    DeviceStateStore.set_preferred(db, device, "power_state", PowerState.ON.value)
                    converged = (
                        record.brightness == requested.value
                        and record.power_state == PowerState.ON.value
                    )
                else:
                    assert_never(requested)

                result = self._queue_unless(db, record, requested, converged)

                with store_errors(f"committing state for {device}"):
                    db.commit()
            except Exception:
                db.rollback()
                raise

        self.logger.info(
            f"Preferred {requested.name} for {device} set to {command_payload(requested)['value']} "
            f"(queued={result.queued}{', ' + result.reason if result.reason else ''})"
        )
        return result

    def send_command(self, db: Session, device: Optional[str], payload: Any) -> StateUpdateResult:
        """
        Queue a raw command without touching preferred state.

        Still subject to the one-command-in-flight rule.
        """
        if device is None or payload is None:
            raise ValidationError("Missing required parameters: device, cmd")

        command = parse_command(payload)

        with self.locks.hold(device):
            try:
                record = DeviceStateStore.get_device(db, device)
                result = self._queue_unless(db, record, command, converged=False)
                with store_errors(f"committing command for {device}"):
                    db.commit()
            except Exception:
                db.rollback()
                raise

        return result

    @staticmethod
    def _queue_unless(db: Session, record: Device, command: DeviceCommand, converged: bool) -> StateUpdateResult:
        if converged:
            return StateUpdateResult(record.device, command, queued=False, reason="already converged")

        if PendingCommandGuard.has_pending(db, record.device):
            return StateUpdateResult(record.device, command, queued=False, reason="command already in flight")

        command_id = CommandQueueService.enqueue(db, record.device, record.model, record.brand, command)
        return StateUpdateResult(record.device, command, queued=True, command_id=command_id)
