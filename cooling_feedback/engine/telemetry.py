"""Telemetry reader: device + port records -> DeviceSnapshot."""

import math
from datetime import datetime, timezone
from typing import Any

from pydantic.alias_generators import to_camel

from cooling_feedback.models.action import Intent
from cooling_feedback.models.common import finite_number
from cooling_feedback.models.device import DeviceRecord, DeviceSnapshot, PortRecord, Power


def _numeric_text(value: Any) -> float | None:
    """Like finite_number, but also accepts numeric strings ("26.5")."""
    if isinstance(value, str):
        try:
            parsed = float(value.strip())
        except ValueError:
            return None
        return parsed if math.isfinite(parsed) else None
    return finite_number(value)


def _power_from_port(value: Any) -> Power | None:
    if finite_number(value) is None:
        return None
    return Power.ON if value == 1 else Power.OFF


def read_telemetry(
    device: DeviceRecord | None,
    port: PortRecord | None,
    now: datetime | None = None,
) -> DeviceSnapshot:
    """Build a snapshot from the authoritative records. Never raises.

    ``last_update_at`` prefers the last ping, then the last modification,
    then ``now`` so a reply can always cite a freshness value.
    """
    last_update = None
    if device is not None:
        last_update = device.last_ping or device.updated_at

    return DeviceSnapshot(
        setpoint_c=finite_number(port.ac_temp) if port else None,
        power=_power_from_port(port.val) if port else None,
        room_temp_c=_numeric_text(port.room_temp) if port else None,
        humidity_pct=finite_number(device.humidity_pct) if device else None,
        consumption_w=finite_number(device.consumption_w) if device else None,
        run_hours=finite_number(device.run_hours) if device else None,
        last_update_at=last_update or now or datetime.now(timezone.utc),
    )


def read_data_for(intent: Intent, snapshot: DeviceSnapshot) -> dict[str, Any] | None:
    """The slice of the snapshot a read-only intent answers with."""
    fields = {
        Intent.GET_SETPOINT: ("power", "setpoint_c"),
        Intent.GET_ROOM_TEMPERATURE: ("room_temp_c",),
        Intent.GET_HUMIDITY: ("humidity_pct",),
        Intent.GET_CONSUMPTION: ("consumption_w",),
        Intent.GET_RUN_HOURS: ("run_hours",),
    }.get(intent)
    if fields is None:
        return None
    data = snapshot.to_dict()
    keys = [to_camel(f) for f in (*fields, "last_update_at")]
    return {key: data[key] for key in keys}
