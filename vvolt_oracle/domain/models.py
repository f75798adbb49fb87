from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, NewType, Optional

from ..core.errors import ErrorCode

Identity = NewType("Identity", str)

# Reserved burn identity: default for absent lookups, rejected as a role target
NULL_IDENTITY = Identity("SP000000000000000000002Q6VF78")

MAX_SENSOR_DATA_AGE = 3600
UINT128_MAX = 2**128 - 1


class EnergyType(str, Enum):
    SOLAR = "solar"
    WIND = "wind"


class EventType(str, Enum):
    SENSOR_REGISTERED = "sensor-registered"
    SENSOR_DEACTIVATED = "sensor-deactivated"
    DATA_SUBMITTED = "data-submitted"


@dataclass(frozen=True)
class Sensor:
    owner: str
    energy_type: str
    is_active: bool


@dataclass(frozen=True)
class AssetMetrics:
    total_energy_output: int
    last_update_timestamp: int
    last_energy_output: int
    energy_type: str


@dataclass(frozen=True)
class SensorReading:
    energy_output: int
    verified: bool
    reported_by: str


@dataclass(frozen=True)
class Event:
    event_type: str
    sensor_id: str
    asset_id: str
    timestamp: int
    data: Optional[int] = None


# Zero values surfaced by reads when a key is absent
EMPTY_SENSOR = Sensor(owner=NULL_IDENTITY, energy_type="", is_active=False)
EMPTY_ASSET_METRICS = AssetMetrics(0, 0, 0, "")
EMPTY_READING = SensorReading(energy_output=0, verified=False, reported_by=NULL_IDENTITY)
EMPTY_EVENT = Event(event_type="", sensor_id="", asset_id="", timestamp=0, data=None)


@dataclass(frozen=True)
class CallContext:
    """Who is calling, and the logical height the environment reports for the call."""

    caller: str
    height: int


@dataclass
class ChangeSet:
    """Records written by one successful transition, keyed the way storage keys them.

    The ``prior_*`` maps hold what each touched key held before the
    transition (None when the key was absent) so the transition can be
    undone without copying the ledger.
    """

    sensors: dict[str, Sensor] = field(default_factory=dict)
    asset_metrics: dict[str, AssetMetrics] = field(default_factory=dict)
    readings: dict[tuple[str, int], SensorReading] = field(default_factory=dict)
    events: dict[int, Event] = field(default_factory=dict)
    roles: dict[str, Any] = field(default_factory=dict)

    prior_sensors: dict[str, Optional[Sensor]] = field(default_factory=dict, repr=False)
    prior_asset_metrics: dict[str, Optional[AssetMetrics]] = field(default_factory=dict, repr=False)
    prior_readings: dict[tuple[str, int], Optional[SensorReading]] = field(default_factory=dict, repr=False)
    prior_roles: dict[str, Any] = field(default_factory=dict, repr=False)


@dataclass(frozen=True)
class TxResult:
    ok: bool
    value: Any = None
    error: Optional[ErrorCode] = None
    reason: Optional[str] = None  # set only for aborted calls
    changes: Optional[ChangeSet] = field(default=None, compare=False, repr=False)

    @classmethod
    def success(cls, value: Any, changes: Optional[ChangeSet] = None) -> "TxResult":
        return cls(ok=True, value=value, changes=changes)

    @classmethod
    def failure(cls, code: ErrorCode) -> "TxResult":
        return cls(ok=False, error=code)

    @classmethod
    def aborted(cls, reason: str) -> "TxResult":
        return cls(ok=False, reason=reason)
