"""Device REST API routes."""

from typing import Any

from fastapi import APIRouter, Depends

from cooling_feedback.api.dependencies import get_device_store
from cooling_feedback.engine.telemetry import read_telemetry
from cooling_feedback.exceptions import DeviceNotFoundError
from cooling_feedback.models.device import DeviceRecord
from cooling_feedback.storage.device_store import DeviceStore

router = APIRouter(prefix="/devices", tags=["devices"])


async def _require_device(store: DeviceStore, device_id: str) -> DeviceRecord:
    device = await store.find_device_by_id(device_id)
    if not device:
        raise DeviceNotFoundError(f"Device not found: {device_id}", deviceId=device_id)
    return device


@router.get("/{device_id}")
async def get_device(
    device_id: str,
    store: DeviceStore = Depends(get_device_store),
) -> dict[str, Any]:
    """Get a device record with its ports."""
    device = await _require_device(store, device_id)
    ports = await store.find_ports(device)
    return {
        "device": device.model_dump(mode="json"),
        "ports": [p.model_dump(mode="json") for p in ports],
        "address": device.mac_id,
    }


@router.get("/{device_id}/telemetry")
async def get_device_telemetry(
    device_id: str,
    store: DeviceStore = Depends(get_device_store),
) -> dict[str, Any]:
    """Get the current state snapshot the feedback flow would act on."""
    device = await _require_device(store, device_id)
    port = await store.find_primary_port(device)
    return {
        "deviceId": device_id,
        "portId": port.port_id if port else None,
        "snapshot": read_telemetry(device, port).to_dict(),
    }
