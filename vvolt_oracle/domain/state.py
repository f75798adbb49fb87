from __future__ import annotations
import logging
from typing import Callable, Optional

from ..core.errors import ErrorCode, OracleError, TxAborted
from .access import AccessControl
from .events import EventLog
from .ingestion import IngestionGuard
from .metrics import MetricsAggregator
from .models import (
    NULL_IDENTITY,
    AssetMetrics,
    CallContext,
    ChangeSet,
    Event,
    EventType,
    Sensor,
    SensorReading,
    TxResult,
)
from .registry import SensorRegistry

logger = logging.getLogger(__name__)


class OracleState:
    """Aggregate root of the oracle ledger.

    Every public mutating operation is one transition: all checks run first,
    then the writes, so a call either commits completely or leaves the state
    untouched. Domain failures come back as ``TxResult.failure(code)`` and
    uint128 exhaustion as ``TxResult.aborted(reason)``; nothing is raised
    past this class.

    The state is not thread safe. Callers serialize transitions (see
    ``LedgerService``).
    """

    def __init__(
        self,
        admin: str,
        oracle_operator: Optional[str] = None,
        paused: bool = False,
        registry: Optional[SensorRegistry] = None,
        metrics: Optional[MetricsAggregator] = None,
        events: Optional[EventLog] = None,
    ) -> None:
        self.access = AccessControl(admin=admin, oracle_operator=oracle_operator or admin)
        self.paused = paused
        self.registry = registry or SensorRegistry()
        self.metrics = metrics or MetricsAggregator()
        self.events = events or EventLog()
        self.guard = IngestionGuard(self.access, self.registry)

    @classmethod
    def deploy(cls, deployer: str) -> "OracleState":
        return cls(admin=deployer, oracle_operator=deployer, paused=False)

    def revert(self, changes: ChangeSet) -> None:
        """Undo the most recent successful transition from its recorded prior values."""
        for sensor_id, prior in changes.prior_sensors.items():
            self.registry.restore(sensor_id, prior)
        for asset_id, prior in changes.prior_asset_metrics.items():
            self.metrics.restore(asset_id, prior)
        for key, prior in changes.prior_readings.items():
            self.metrics.restore_reading(key, prior)
        if changes.events:
            self.events.truncate(min(changes.events))
        for role, prior in changes.prior_roles.items():
            if role == "paused":
                self.paused = prior
            else:
                setattr(self.access, role, prior)

    def _transition(self, name: str, ctx: CallContext, apply: Callable[[ChangeSet], object]) -> TxResult:
        changes = ChangeSet()
        try:
            value = apply(changes)
        except OracleError as e:
            logger.info("%s rejected caller=%s code=%d (%s): %s", name, ctx.caller, e.code, e.code.label, e)
            return TxResult.failure(e.code)
        except TxAborted as e:
            logger.warning("%s aborted caller=%s: %s", name, ctx.caller, e.reason)
            return TxResult.aborted(e.reason)
        logger.info("%s ok caller=%s height=%s", name, ctx.caller, ctx.height)
        return TxResult.success(value, changes)

    def _log(
        self,
        changes: ChangeSet,
        ctx: CallContext,
        event_type: EventType,
        sensor_id: str,
        asset_id: str = "",
        data: Optional[int] = None,
    ) -> int:
        event_id = self.events.log_event(event_type, sensor_id, asset_id, data, ctx.height)
        changes.events[event_id] = self.events.get_event(event_id)
        return event_id

    # --- Sensor lifecycle ---

    def register_sensor(self, ctx: CallContext, sensor_id: str, owner: str, energy_type: str) -> TxResult:
        def apply(changes: ChangeSet) -> bool:
            self.access.require_admin(ctx.caller)
            self.registry.check_register(sensor_id, energy_type)
            self.events.check_capacity()

            changes.prior_sensors[sensor_id] = None
            changes.sensors[sensor_id] = self.registry.register(sensor_id, owner, energy_type)
            self._log(changes, ctx, EventType.SENSOR_REGISTERED, sensor_id)
            return True

        return self._transition("register_sensor", ctx, apply)

    def deactivate_sensor(self, ctx: CallContext, sensor_id: str) -> TxResult:
        def apply(changes: ChangeSet) -> bool:
            self.access.require_admin(ctx.caller)
            prior = self.registry.check_deactivate(sensor_id)
            self.events.check_capacity()

            changes.prior_sensors[sensor_id] = prior
            changes.sensors[sensor_id] = self.registry.deactivate(sensor_id)
            self._log(changes, ctx, EventType.SENSOR_DEACTIVATED, sensor_id)
            return True

        return self._transition("deactivate_sensor", ctx, apply)

    # --- Ingestion ---

    def submit_sensor_data(
        self,
        ctx: CallContext,
        sensor_id: str,
        asset_id: str,
        energy_output: int,
        timestamp: int,
    ) -> TxResult:
        def apply(changes: ChangeSet) -> bool:
            sensor = self.guard.admit(ctx, self.paused, sensor_id, energy_output, timestamp)
            folded = self.metrics.fold(asset_id, sensor, energy_output, timestamp)
            self.events.check_capacity()

            reading = SensorReading(energy_output=energy_output, verified=True, reported_by=ctx.caller)
            changes.prior_readings[(sensor_id, timestamp)] = self.metrics.lookup_reading(sensor_id, timestamp)
            changes.prior_asset_metrics[asset_id] = self.metrics.lookup(asset_id)
            self.metrics.record(sensor_id, timestamp, reading, asset_id, folded)
            changes.readings[(sensor_id, timestamp)] = reading
            changes.asset_metrics[asset_id] = folded
            self._log(changes, ctx, EventType.DATA_SUBMITTED, sensor_id, asset_id, energy_output)
            return True

        return self._transition("submit_sensor_data", ctx, apply)

    # --- Administration (no events) ---

    def set_paused(self, ctx: CallContext, pause: bool) -> TxResult:
        def apply(changes: ChangeSet) -> bool:
            self.access.require_admin(ctx.caller)
            changes.prior_roles["paused"] = self.paused
            self.paused = bool(pause)
            changes.roles["paused"] = self.paused
            return self.paused

        return self._transition("set_paused", ctx, apply)

    def set_oracle_operator(self, ctx: CallContext, new_operator: str) -> TxResult:
        def apply(changes: ChangeSet) -> bool:
            self.access.require_admin(ctx.caller)
            if new_operator == NULL_IDENTITY:
                raise OracleError(ErrorCode.INVALID_ASSET, "operator cannot be the null identity")
            changes.prior_roles["oracle_operator"] = self.access.oracle_operator
            self.access.oracle_operator = new_operator
            changes.roles["oracle_operator"] = new_operator
            return True

        return self._transition("set_oracle_operator", ctx, apply)

    def transfer_admin(self, ctx: CallContext, new_admin: str) -> TxResult:
        def apply(changes: ChangeSet) -> bool:
            self.access.require_admin(ctx.caller)
            if new_admin == NULL_IDENTITY:
                raise OracleError(ErrorCode.INVALID_ASSET, "admin cannot be the null identity")
            changes.prior_roles["admin"] = self.access.admin
            self.access.admin = new_admin
            changes.roles["admin"] = new_admin
            return True

        return self._transition("transfer_admin", ctx, apply)

    # --- Reads (never fail) ---

    def get_sensor(self, sensor_id: str) -> Sensor:
        return self.registry.get(sensor_id)

    def list_sensors(self) -> list[tuple[str, Sensor]]:
        return self.registry.items()

    def get_asset_metrics(self, asset_id: str) -> AssetMetrics:
        return self.metrics.get(asset_id)

    def get_sensor_data(self, sensor_id: str, timestamp: int) -> SensorReading:
        return self.metrics.get_reading(sensor_id, timestamp)

    def get_event(self, event_id: int) -> Event:
        return self.events.get_event(event_id)

    def list_events(self, start: int = 0, limit: int = 100) -> list[tuple[int, Event]]:
        return self.events.list_events(start, limit)

    def get_event_count(self) -> int:
        return self.events.next_event_id

    def get_admin(self) -> str:
        return self.access.admin

    def get_oracle_operator(self) -> str:
        return self.access.oracle_operator

    def is_paused(self) -> bool:
        return self.paused
