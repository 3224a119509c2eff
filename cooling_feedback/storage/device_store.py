"""SQLite store for AC controllers and their ports.

Records are kept as JSON documents, so whatever a controller reported is
preserved verbatim and only interpreted by the telemetry reader.
"""

import logging
from datetime import datetime
from pathlib import Path

import aiosqlite
import yaml
from pydantic import BaseModel

from config import settings
from cooling_feedback.models.device import DeviceRecord, PortRecord

logger = logging.getLogger(__name__)


class ResolvedDevice(BaseModel):
    """A zone lookup: the device (if any) and where to send its commands."""
    zone_id: str
    device: DeviceRecord | None = None
    address: str | None = None


class DeviceStore:
    """Async SQLite-based device and port store."""

    def __init__(self, db_path: str | None = None, zone_addresses: dict[str, str] | None = None):
        self._db_path = db_path or settings.sqlite_db_path
        self._db: aiosqlite.Connection | None = None
        self._zone_addresses: dict[str, str] = dict(zone_addresses or {})

    @property
    def zone_addresses(self) -> dict[str, str]:
        return self._zone_addresses

    async def initialize(self) -> None:
        """Create database and tables."""
        self._db = await aiosqlite.connect(self._db_path)

        await self._db.execute("""
            CREATE TABLE IF NOT EXISTS devices (
                device_id TEXT PRIMARY KEY,
                mac_id TEXT,
                data TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        await self._db.execute("""
            CREATE INDEX IF NOT EXISTS idx_devices_mac
            ON devices(mac_id)
        """)
        await self._db.execute("""
            CREATE TABLE IF NOT EXISTS ports (
                port_id TEXT PRIMARY KEY,
                device_id TEXT NOT NULL,
                data TEXT NOT NULL,
                created_at TEXT NOT NULL
            )
        """)
        await self._db.execute("""
            CREATE INDEX IF NOT EXISTS idx_ports_device
            ON ports(device_id)
        """)

        await self._db.commit()
        logger.info(f"Device store initialized at {self._db_path}")

    async def _conn(self) -> aiosqlite.Connection:
        if not self._db:
            await self.initialize()
        return self._db

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def upsert_device(self, device: DeviceRecord) -> None:
        db = await self._conn()
        if device.updated_at is None:
            device = device.model_copy(update={"updated_at": datetime.now()})
        await db.execute(
            """INSERT INTO devices (device_id, mac_id, data, updated_at)
               VALUES (?, ?, ?, ?)
               ON CONFLICT(device_id) DO UPDATE SET
                   mac_id = excluded.mac_id,
                   data = excluded.data,
                   updated_at = excluded.updated_at""",
            (
                device.device_id,
                device.mac_id,
                device.model_dump_json(),
                device.updated_at.isoformat(),
            ),
        )
        await db.commit()

    async def upsert_port(self, port: PortRecord) -> None:
        db = await self._conn()
        await db.execute(
            """INSERT INTO ports (port_id, device_id, data, created_at)
               VALUES (?, ?, ?, ?)
               ON CONFLICT(port_id) DO UPDATE SET
                   device_id = excluded.device_id,
                   data = excluded.data""",
            (port.port_id, port.device_id, port.model_dump_json(), datetime.now().isoformat()),
        )
        await db.commit()

    async def seed_device(self, device: DeviceRecord) -> bool:
        """Insert a device only if it is not stored yet. Returns True if inserted."""
        db = await self._conn()
        updated_at = device.updated_at or datetime.now()
        cursor = await db.execute(
            """INSERT INTO devices (device_id, mac_id, data, updated_at)
               VALUES (?, ?, ?, ?)
               ON CONFLICT(device_id) DO NOTHING""",
            (device.device_id, device.mac_id, device.model_dump_json(), updated_at.isoformat()),
        )
        await db.commit()
        return cursor.rowcount > 0

    async def seed_port(self, port: PortRecord) -> bool:
        db = await self._conn()
        cursor = await db.execute(
            """INSERT INTO ports (port_id, device_id, data, created_at)
               VALUES (?, ?, ?, ?)
               ON CONFLICT(port_id) DO NOTHING""",
            (port.port_id, port.device_id, port.model_dump_json(), datetime.now().isoformat()),
        )
        await db.commit()
        return cursor.rowcount > 0

    async def load_from_yaml(self, config_path: str) -> None:
        """Load the zone map and seed devices from a YAML file.

        Seed records are inserted only where nothing is stored yet.
        """
        path = Path(config_path)
        if not path.exists():
            logger.error(f"Zone config not found: {config_path}")
            return

        with open(path) as f:
            config = yaml.safe_load(f) or {}

        for zone_id, address in (config.get("zones") or {}).items():
            self._zone_addresses[str(zone_id)] = str(address)

        for device_data in config.get("devices") or []:
            ports = device_data.get("ports") or []
            port_ids = [p["port_id"] for p in ports]
            device = DeviceRecord(
                **{k: v for k, v in device_data.items() if k != "ports"},
                port_ids=port_ids,
            )
            inserted = await self.seed_device(device)
            for port_data in ports:
                await self.seed_port(PortRecord(device_id=device.device_id, **port_data))
            if inserted:
                logger.info(f"Registered device: {device.device_id} ({len(port_ids)} ports)")
            else:
                logger.info(f"Device already stored, kept: {device.device_id}")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def _fetch_device(self, column: str, value: str) -> DeviceRecord | None:
        db = await self._conn()
        async with db.execute(f"SELECT data FROM devices WHERE {column} = ? LIMIT 1", (value,)) as cursor:
            row = await cursor.fetchone()
        return DeviceRecord.model_validate_json(row[0]) if row else None

    async def find_device_by_id(self, device_id: str) -> DeviceRecord | None:
        return await self._fetch_device("device_id", device_id)

    async def find_device_by_address(self, mac_id: str) -> DeviceRecord | None:
        return await self._fetch_device("mac_id", mac_id)

    async def find_device(self, zone_id: str) -> ResolvedDevice:
        """Resolve a zone: mapped zones by address, anything else by device id."""
        mapped = self._zone_addresses.get(zone_id)
        if mapped:
            device = await self.find_device_by_address(mapped)
            return ResolvedDevice(zone_id=zone_id, device=device, address=mapped)

        device = await self.find_device_by_id(zone_id)
        return ResolvedDevice(
            zone_id=zone_id,
            device=device,
            address=device.mac_id if device else None,
        )

    async def get_port(self, port_id: str) -> PortRecord | None:
        db = await self._conn()
        async with db.execute("SELECT data FROM ports WHERE port_id = ?", (port_id,)) as cursor:
            row = await cursor.fetchone()
        return PortRecord.model_validate_json(row[0]) if row else None

    async def find_ports(self, device: DeviceRecord) -> list[PortRecord]:
        """All ports of a device, in the device's own order when it has one."""
        if device.port_ids:
            ports = [await self.get_port(pid) for pid in device.port_ids]
            return [p for p in ports if p is not None]

        db = await self._conn()
        async with db.execute(
            "SELECT data FROM ports WHERE device_id = ? ORDER BY created_at, port_id",
            (device.device_id,),
        ) as cursor:
            rows = await cursor.fetchall()
        return [PortRecord.model_validate_json(row[0]) for row in rows]

    async def find_primary_port(self, device: DeviceRecord) -> PortRecord | None:
        """First listed port, else the first port stored for the device."""
        if device.port_ids:
            return await self.get_port(device.port_ids[0])
        ports = await self.find_ports(device)
        return ports[0] if ports else None

    async def close(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None
            logger.info("Device store closed")
