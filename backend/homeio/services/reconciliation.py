"""
Reconciliation Engine

Polls every vendor adapter, merges the results into the device store and
queues a command when a device's preferred state diverges from what the
vendor reports.

Failure containment:
- vendor listing errors skip that vendor for this cycle
- per-device state errors skip only that device's state
- store errors abort only that device's merge
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from ..adapters.base import DeviceDescriptor, StateProperties, VendorAdapter
from ..commands.models import BrightnessCommand, DeviceCommand, PowerState, TurnCommand, command_payload
from ..core.exceptions import AdapterError, AdapterUnavailable, NotFound, StoreError
from ..db.database import store_errors
from ..models.device import Device
from .command_queue import CommandQueueService, PendingCommandGuard
from .device_locks import DeviceLockRegistry, device_locks
from .device_store import DeviceStateStore


@dataclass
class VendorReport:
    vendor: str
    devices_seen: int = 0
    devices_updated: int = 0
    state_errors: List[str] = field(default_factory=list)
    merge_errors: List[str] = field(default_factory=list)
    commands_enqueued: List[int] = field(default_factory=list)
    error: Optional[str] = None
    duration_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class CycleReport:
    quick: bool
    vendors: Dict[str, VendorReport] = field(default_factory=dict)
    skipped: List[str] = field(default_factory=list)
    duration_ms: int = 0

    @property
    def timing(self) -> Dict[str, Dict[str, int]]:
        timing = {name: {"duration": r.duration_ms} for name, r in self.vendors.items()}
        timing["total"] = {"duration": self.duration_ms}
        return timing


def divergent_command(device: Device, state: StateProperties) -> Optional[DeviceCommand]:
    """
    Command needed to move a freshly polled device to its preferred state.

    Power is checked before brightness. Brightness is left alone while the
    device is meant to be off (a brightness command also powers the device
    on) or when the vendor does not report brightness for it.
    """
    if state.online is False:
        return None

    if device.preferred_power_state is not None and device.preferred_power_state != device.power_state:
        return TurnCommand(value=device.preferred_power_state)

    if device.effective_power_state == PowerState.OFF.value:
        return None

    if (
        device.preferred_brightness is not None
        and device.brightness is not None
        and device.preferred_brightness != device.brightness
    ):
        return BrightnessCommand(value=device.preferred_brightness)

    return None


def _elapsed_ms(start: float) -> int:
    return round((time.monotonic() - start) * 1000)


class ReconciliationEngine:
    """
    Merge vendor state into the store and enqueue convergence commands.

    Vendors share nothing until the merge step, so they may be polled
    concurrently (one task per vendor). The merge + guard + enqueue for one
    device runs inside that device's lock and one transaction.
    """

    def __init__(
        self,
        adapters: Iterable[VendorAdapter],
        session_factory: Callable[[], Session],
        settings: Optional[Any] = None,
        logger: Optional[logging.Logger] = None,
        locks: Optional[DeviceLockRegistry] = None
    ):
        self.adapters: Dict[str, VendorAdapter] = {a.name: a for a in adapters}
        self.session_factory = session_factory
        self.adapter_timeout = settings.ADAPTER_TIMEOUT_SECONDS if settings else 10.0
        self.concurrent = settings.RECONCILE_VENDORS_CONCURRENTLY if settings else True
        self.logger = logger or logging.getLogger(__name__)
        self.locks = locks or device_locks

    async def run_cycle(self, quick: bool = False) -> CycleReport:
        """
        Poll every vendor once.

        Args:
            quick: skip vendors flagged skip_on_quick (slow cloud APIs)
        """
        start = time.monotonic()
        report = CycleReport(quick=quick)

        selected = []
        for adapter in self.adapters.values():
            if quick and adapter.skip_on_quick:
                report.skipped.append(adapter.name)
            else:
                selected.append(adapter)

        if self.concurrent:
            results = await asyncio.gather(
                *(self._poll_adapter(adapter) for adapter in selected),
                return_exceptions=True
            )
        else:
            results = []
            for adapter in selected:
                try:
                    results.append(await self._poll_adapter(adapter))
                except Exception as e:
                    results.append(e)

        for adapter, result in zip(selected, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, BaseException):
                self.logger.error(f"Unexpected error polling {adapter.name}: {result}", exc_info=result)
                result = VendorReport(vendor=adapter.name, error=f"Unexpected error: {result}")
            report.vendors[adapter.name] = result

        report.duration_ms = _elapsed_ms(start)
        self.logger.info(
            f"Reconciliation cycle finished in {report.duration_ms}ms "
            f"(quick={quick}, vendors={list(report.vendors)}, skipped={report.skipped})"
        )
        return report

    async def poll_vendor(self, name: str) -> VendorReport:
        """Refresh a single vendor"""
        adapter = self.adapters.get(name)
        if adapter is None:
            raise NotFound(f"Vendor {name} is not configured")
        return await self._poll_adapter(adapter)

    async def _call(self, adapter: VendorAdapter, call: Awaitable):
        try:
            return await asyncio.wait_for(call, timeout=self.adapter_timeout)
        except asyncio.TimeoutError:
            raise AdapterUnavailable(adapter.name, f"Timed out after {self.adapter_timeout}s")

    async def _poll_adapter(self, adapter: VendorAdapter) -> VendorReport:
        start = time.monotonic()
        report = VendorReport(vendor=adapter.name)
        self.logger.info(f"Starting {adapter.name} devices update")

        try:
            descriptors = await self._call(adapter, adapter.list_devices())
        except AdapterError as e:
            self.logger.error(f"{adapter.name} update error: {e}")
            report.error = str(e)
            report.duration_ms = _elapsed_ms(start)
            return report

        report.devices_seen = len(descriptors)

        for descriptor in descriptors:
            state = None
            try:
                state = await self._call(adapter, adapter.fetch_state(descriptor))
            except AdapterError as e:
                self.logger.error(f"Failed to get state for device {descriptor.device}: {e}")
                report.state_errors.append(descriptor.device)

            try:
                entry_id = self._merge(adapter, descriptor, state)
            except StoreError as e:
                self.logger.error(f"Failed to merge device {descriptor.device}: {e}")
                report.merge_errors.append(descriptor.device)
                continue

            report.devices_updated += 1
            if entry_id is not None:
                report.commands_enqueued.append(entry_id)

        report.duration_ms = _elapsed_ms(start)
        self.logger.info(
            f"{adapter.name} update completed: {report.devices_updated}/{report.devices_seen} devices, "
            f"{len(report.commands_enqueued)} commands queued in {report.duration_ms}ms"
        )
        return report

    def _merge(
        self,
        adapter: VendorAdapter,
        descriptor: DeviceDescriptor,
        state: Optional[StateProperties]
    ) -> Optional[int]:
        """Upsert one device and enqueue a convergence command if needed"""
        with self.locks.hold(descriptor.device):
            db = self.session_factory()
            try:
                fields = adapter.apply_normalized_update(descriptor, state)
                device = DeviceStateStore.upsert_device(db, descriptor.device, fields)

                entry_id = None
                if state is not None:
                    entry_id = self._enqueue_if_divergent(db, device, state)

                with store_errors(f"committing device {descriptor.device}"):
                    db.commit()
                return entry_id
            except StoreError:
                db.rollback()
                raise
            finally:
                db.close()

    def _enqueue_if_divergent(self, db: Session, device: Device, state: StateProperties) -> Optional[int]:
        command = divergent_command(device, state)
        if command is None:
            return None

        if PendingCommandGuard.has_pending(db, device.device):
            self.logger.debug(
                f"Device {device.device} diverges ({command.name}) but already has a command in flight"
            )
            return None

        entry_id = CommandQueueService.enqueue(db, device.device, device.model, device.brand, command)
        payload = command_payload(command)
        self.logger.info(
            f"Queued {payload['name']}={payload['value']} for {device.device} (command {entry_id})"
        )
        return entry_id
