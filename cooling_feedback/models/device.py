"""Pydantic models for AC controller records and the derived state snapshot.

``DeviceRecord`` and ``PortRecord`` mirror what the controllers report and are
stored as-is, so their telemetry fields are untyped: a value may be missing,
a string, or garbage. Only ``DeviceSnapshot`` guarantees clean numbers.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel

from cooling_feedback.models.common import CamelModel


class Power(str, Enum):
    ON = "ON"
    OFF = "OFF"


class DeviceRecord(BaseModel):
    """A controller as stored by the persistence layer."""
    device_id: str
    mac_id: str | None = None
    online: bool = True
    port_ids: list[str] = []
    humidity_pct: Any = None
    consumption_w: Any = None
    run_hours: Any = None
    last_ping: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"extra": "allow"}

    def summary(self) -> dict[str, Any]:
        """Short projection used in log lines."""
        return {
            "device_id": self.device_id,
            "mac_id": self.mac_id,
            "online": self.online,
            "last_ping": self.last_ping.isoformat() if self.last_ping else None,
        }


class PortRecord(BaseModel):
    """The AC channel of a controller (setpoint, power, mode, fan)."""
    port_id: str
    device_id: str
    title: str = "Switch"
    val: Any = None
    ac_temp: Any = None
    ac_mode: Any = None
    ac_fan_speed: Any = None
    room_temp: Any = None
    updated_at: datetime | None = None

    model_config = {"extra": "allow"}

    def summary(self) -> dict[str, Any]:
        return {
            "port_id": self.port_id,
            "ac_temp": self.ac_temp,
            "val": self.val,
            "room_temp": self.room_temp,
        }


class DeviceSnapshot(CamelModel):
    """Point-in-time read of a device. Numeric fields are finite or None."""
    setpoint_c: float | None = None
    power: Power | None = None
    room_temp_c: float | None = None
    humidity_pct: float | None = None
    consumption_w: float | None = None
    run_hours: float | None = None
    last_update_at: datetime
