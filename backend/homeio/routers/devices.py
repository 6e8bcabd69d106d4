"""
Device API Router

Thin HTTP layer over the reconciliation engine, the device view and the
write path. Domain errors (ValidationError, NotFound, StoreError) are
turned into JSON error bodies by the handlers registered in main.
"""

import time
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..core.security import require_api_key
from ..db.database import get_db
from ..services.command_queue import CommandQueueService
from ..services.device_groups import DeviceGroupService
from ..services.device_state import DeviceStateService
from ..services.device_store import DeviceFilter, DeviceStateStore
from ..services.device_view import DeviceViewBuilder
from ..services.reconciliation import ReconciliationEngine

router = APIRouter(tags=["devices"], dependencies=[Depends(require_api_key)])


# ============================================================================
# Pydantic Models
# ============================================================================

class UpdateDeviceStateRequest(BaseModel):
    device: Optional[str] = None
    command: Optional[str] = None  # 'turn' or 'brightness'
    value: Any = None


class SendCommandRequest(BaseModel):
    device: Optional[str] = None
    cmd: Optional[Dict[str, Any]] = None  # {"name": ..., "value": ...}


class DeviceConfigUpdate(BaseModel):
    device: Optional[str] = None
    room: Optional[int] = None
    low: Optional[int] = None
    medium: Optional[int] = None
    high: Optional[int] = None
    preferredColorTem: Optional[int] = None
    preferredName: Optional[str] = None


class DeviceGroupRequest(BaseModel):
    device: Optional[str] = None
    action: Optional[str] = None  # 'create', 'join', 'leave'
    groupName: Optional[str] = None
    model: Optional[str] = None
    groupId: Optional[int] = None


class DeleteGroupRequest(BaseModel):
    groupId: Optional[int] = None


# ============================================================================
# Dependencies
# ============================================================================

def get_engine(request: Request) -> ReconciliationEngine:
    return request.app.state.engine


def get_view_builder(request: Request) -> DeviceViewBuilder:
    return request.app.state.view_builder


def get_state_service(request: Request) -> DeviceStateService:
    return request.app.state.state_service


def _ms(start: float) -> int:
    return round((time.monotonic() - start) * 1000)


# ============================================================================
# Device view and reconciliation
# ============================================================================

@router.get("/devices")
async def list_devices(
    device: Optional[str] = None,
    room: Optional[int] = None,
    exclude_room: Optional[int] = None,
    quick: bool = False,
    refresh: bool = False,
    db: Session = Depends(get_db),
    engine: ReconciliationEngine = Depends(get_engine),
    view_builder: DeviceViewBuilder = Depends(get_view_builder)
):
    """
    Caller-facing device list

    refresh=true runs a reconciliation cycle first; quick=true skips the
    slow cloud vendors in that cycle.
    """
    device_filter = DeviceFilter(device=device, room=room, exclude_room=exclude_room)

    timing: Dict[str, Dict[str, int]] = {}
    if refresh:
        report = await engine.run_cycle(quick=quick)
        timing.update(report.timing)

    start = time.monotonic()
    devices = view_builder.build(db, device_filter)
    timing["devices"] = {"duration": _ms(start)}

    return {
        "success": True,
        "devices": devices,
        "updated": datetime.now().astimezone().isoformat(),
        "timing": timing,
        "quick": quick,
    }


@router.get("/update-{vendor}-devices")
async def update_vendor_devices(vendor: str, engine: ReconciliationEngine = Depends(get_engine)):
    """Refresh one vendor's devices now"""
    report = await engine.poll_vendor(vendor)
    if not report.ok:
        raise HTTPException(status_code=503, detail=report.error)

    return {
        "success": True,
        "vendor": vendor,
        "devices_updated": report.devices_updated,
        "state_errors": report.state_errors,
        "commands_queued": report.commands_enqueued,
        "updated": datetime.now().astimezone().isoformat(),
        "timing": {"states": {"duration": report.duration_ms}},
    }


# ============================================================================
# Write path
# ============================================================================

@router.post("/update-device-state")
async def update_device_state(
    request: UpdateDeviceStateRequest,
    db: Session = Depends(get_db),
    state_service: DeviceStateService = Depends(get_state_service)
):
    result = state_service.update_state(db, request.device, request.command, request.value)
    return {
        "success": True,
        "message": "Device state preferences updated successfully",
        "queued": result.queued,
        "command_id": result.command_id,
    }


@router.post("/send-command")
async def send_command(
    request: SendCommandRequest,
    db: Session = Depends(get_db),
    state_service: DeviceStateService = Depends(get_state_service)
):
    result = state_service.send_command(db, request.device, request.cmd)
    if not result.queued:
        raise HTTPException(status_code=409, detail=f"Device {request.device}: {result.reason}")

    return {"success": True, "message": "Command queued successfully", "command_id": result.command_id}


@router.get("/queue/metrics")
async def queue_metrics(db: Session = Depends(get_db)):
    return {"success": True, **CommandQueueService.get_queue_metrics(db)}


# ============================================================================
# Device configuration
# ============================================================================

@router.get("/device-config")
async def get_device_config(device: Optional[str] = None, db: Session = Depends(get_db)):
    if not device:
        raise HTTPException(status_code=400, detail="Missing required parameters: device")

    record = DeviceStateStore.get_device(db, device)
    return {
        "success": True,
        "room": record.room_id,
        "low": record.low,
        "medium": record.medium,
        "high": record.high,
        "preferredColorTem": record.preferred_color_tem,
        "preferredName": record.preferred_name,
    }


@router.post("/update-device-config")
async def update_device_config(request: DeviceConfigUpdate, db: Session = Depends(get_db)):
    if not request.device:
        raise HTTPException(status_code=400, detail="Missing required parameters: device")

    supplied = request.model_dump(exclude_unset=True, exclude={"device"})
    column_names = {"room": "room_id", "preferredColorTem": "preferred_color_tem", "preferredName": "preferred_name"}
    config = {column_names.get(key, key): value for key, value in supplied.items()}

    DeviceStateStore.update_config(db, request.device, config)
    db.commit()
    return {"success": True, "message": "Device configuration updated successfully"}


# ============================================================================
# Device groups
# ============================================================================

@router.get("/available-groups")
async def available_groups(model: Optional[str] = None, db: Session = Depends(get_db)):
    groups = DeviceGroupService.available_groups(db, model)
    return {"success": True, "groups": [{"id": g.id, "name": g.name} for g in groups]}


@router.get("/group-devices")
async def group_devices(group_id: Optional[int] = Query(default=None, alias="groupId"), db: Session = Depends(get_db)):
    members = DeviceGroupService.group_devices(db, group_id)
    return {
        "success": True,
        "devices": [
            {
                "device": m.device,
                "device_name": m.preferred_name or m.device_name,
                "power_state": m.effective_power_state,
                "online": bool(m.online),
            }
            for m in members
        ],
    }


@router.post("/update-device-group")
async def update_device_group(request: DeviceGroupRequest, db: Session = Depends(get_db)):
    if not request.device or not request.action:
        raise HTTPException(status_code=400, detail="Missing required parameters: device, action")

    if request.action == "create":
        DeviceGroupService.create_group(db, request.device, request.groupName, request.model)
    elif request.action == "join":
        DeviceGroupService.join_group(db, request.device, request.groupId)
    elif request.action == "leave":
        DeviceGroupService.leave_group(db, request.device)
    else:
        raise HTTPException(status_code=400, detail=f"Unknown action: {request.action}")

    return {"success": True, "message": "Device group updated successfully"}


@router.post("/delete-device-group")
async def delete_device_group(request: DeleteGroupRequest, db: Session = Depends(get_db)):
    DeviceGroupService.delete_group(db, request.groupId)
    return {"success": True, "message": "Group deleted successfully"}
