from __future__ import annotations
import json
import logging
import aiosqlite
from datetime import datetime, timezone

from ..domain.events import EventLog
from ..domain.metrics import MetricsAggregator
from ..domain.models import AssetMetrics, ChangeSet, Event, Sensor, SensorReading
from ..domain.registry import SensorRegistry
from ..domain.state import OracleState

logger = logging.getLogger(__name__)


class SQLiteRepository:
    def __init__(self, path: str) -> None:
        self._path = path

    async def init(self) -> None:
        async with aiosqlite.connect(self._path) as db:
            await db.execute(
                """
                CREATE TABLE IF NOT EXISTS sensors (
                    sensor_id TEXT PRIMARY KEY,
                    owner TEXT NOT NULL,
                    energy_type TEXT NOT NULL,
                    is_active INTEGER NOT NULL,
                    seq INTEGER NOT NULL
                )
                """
            )
            # uint128 totals do not fit SQLite INTEGER, keep them as decimal text
            await db.execute(
                """
                CREATE TABLE IF NOT EXISTS asset_metrics (
                    asset_id TEXT PRIMARY KEY,
                    total_energy_output TEXT NOT NULL,
                    last_update_timestamp TEXT NOT NULL,
                    last_energy_output TEXT NOT NULL,
                    energy_type TEXT NOT NULL
                )
                """
            )
            await db.execute(
                """
                CREATE TABLE IF NOT EXISTS readings (
                    sensor_id TEXT NOT NULL,
                    timestamp TEXT NOT NULL,
                    energy_output TEXT NOT NULL,
                    verified INTEGER NOT NULL,
                    reported_by TEXT NOT NULL,
                    PRIMARY KEY (sensor_id, timestamp)
                )
                """
            )
            await db.execute(
                """
                CREATE TABLE IF NOT EXISTS events (
                    event_id INTEGER PRIMARY KEY,
                    event_type TEXT NOT NULL,
                    sensor_id TEXT NOT NULL,
                    asset_id TEXT NOT NULL,
                    timestamp TEXT NOT NULL,
                    data TEXT
                )
                """
            )
            await db.execute(
                """
                CREATE TABLE IF NOT EXISTS roles (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            await db.commit()

    async def persist(self, changes: ChangeSet) -> None:
        """Write one transition's records in a single transaction."""
        now = datetime.now(timezone.utc).isoformat()
        async with aiosqlite.connect(self._path) as db:
            for sensor_id, s in changes.sensors.items():
                await db.execute(
                    "INSERT INTO sensors(sensor_id, owner, energy_type, is_active, seq) "
                    "VALUES (?, ?, ?, ?, (SELECT COUNT(*) FROM sensors)) "
                    "ON CONFLICT(sensor_id) DO UPDATE SET is_active=excluded.is_active",
                    (sensor_id, s.owner, s.energy_type, 1 if s.is_active else 0),
                )
            for asset_id, m in changes.asset_metrics.items():
                await db.execute(
                    "INSERT INTO asset_metrics(asset_id, total_energy_output, last_update_timestamp, "
                    "last_energy_output, energy_type) VALUES (?, ?, ?, ?, ?) "
                    "ON CONFLICT(asset_id) DO UPDATE SET "
                    "total_energy_output=excluded.total_energy_output, "
                    "last_update_timestamp=excluded.last_update_timestamp, "
                    "last_energy_output=excluded.last_energy_output",
                    (
                        asset_id,
                        str(m.total_energy_output),
                        str(m.last_update_timestamp),
                        str(m.last_energy_output),
                        m.energy_type,
                    ),
                )
            for (sensor_id, ts), r in changes.readings.items():
                await db.execute(
                    "INSERT INTO readings(sensor_id, timestamp, energy_output, verified, reported_by) "
                    "VALUES (?, ?, ?, ?, ?) "
                    "ON CONFLICT(sensor_id, timestamp) DO UPDATE SET "
                    "energy_output=excluded.energy_output, verified=excluded.verified, "
                    "reported_by=excluded.reported_by",
                    (sensor_id, str(ts), str(r.energy_output), 1 if r.verified else 0, r.reported_by),
                )
            for event_id, e in changes.events.items():
                await db.execute(
                    "INSERT INTO events(event_id, event_type, sensor_id, asset_id, timestamp, data) "
                    "VALUES (?, ?, ?, ?, ?, ?)",
                    (
                        event_id,
                        e.event_type,
                        e.sensor_id,
                        e.asset_id,
                        str(e.timestamp),
                        None if e.data is None else str(e.data),
                    ),
                )
            for key, value in changes.roles.items():
                await db.execute(
                    "INSERT INTO roles(key, value, updated_at) VALUES (?, ?, ?) "
                    "ON CONFLICT(key) DO UPDATE SET value=excluded.value, updated_at=excluded.updated_at",
                    (key, json.dumps(value), now),
                )
            await db.commit()

    async def load_state(self, deployer: str) -> OracleState:
        async with aiosqlite.connect(self._path) as db:
            cur = await db.execute("SELECT key, value FROM roles")
            roles = {k: json.loads(v) for k, v in await cur.fetchall()}

            cur = await db.execute(
                "SELECT sensor_id, owner, energy_type, is_active FROM sensors ORDER BY seq"
            )
            sensors = [
                (sid, Sensor(owner=owner, energy_type=et, is_active=bool(active)))
                for sid, owner, et, active in await cur.fetchall()
            ]

            cur = await db.execute(
                "SELECT asset_id, total_energy_output, last_update_timestamp, last_energy_output, energy_type "
                "FROM asset_metrics"
            )
            metrics = [
                (aid, AssetMetrics(int(total), int(last_ts), int(last_out), et))
                for aid, total, last_ts, last_out, et in await cur.fetchall()
            ]

            cur = await db.execute(
                "SELECT sensor_id, timestamp, energy_output, verified, reported_by FROM readings"
            )
            readings = [
                ((sid, int(ts)), SensorReading(int(out), bool(verified), reporter))
                for sid, ts, out, verified, reporter in await cur.fetchall()
            ]

            cur = await db.execute(
                "SELECT event_id, event_type, sensor_id, asset_id, timestamp, data FROM events ORDER BY event_id"
            )
            events = [
                (eid, Event(et, sid, aid, int(ts), None if data is None else int(data)))
                for eid, et, sid, aid, ts, data in await cur.fetchall()
            ]

        admin = roles.get("admin", deployer)
        state = OracleState(
            admin=admin,
            oracle_operator=roles.get("oracle_operator", admin),
            paused=bool(roles.get("paused", False)),
            registry=SensorRegistry(sensors),
            metrics=MetricsAggregator(metrics, readings),
            events=EventLog(events, next_event_id=events[-1][0] + 1 if events else 0),
        )
        if not roles:
            # Fresh ledger: pin the deployer so a later settings change cannot reassign roles
            await self.persist(ChangeSet(roles={
                "admin": state.get_admin(),
                "oracle_operator": state.get_oracle_operator(),
                "paused": state.is_paused(),
            }))
            logger.info("Initialized new ledger at %s (deployer=%s)", self._path, deployer)
        logger.info(
            "Loaded ledger from %s: sensors=%d assets=%d readings=%d events=%d",
            self._path, len(sensors), len(metrics), len(readings), len(events),
        )
        return state
