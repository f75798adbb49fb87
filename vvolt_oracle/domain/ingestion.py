from __future__ import annotations
import logging

from ..core.errors import ErrorCode, OracleError
from .access import AccessControl
from .models import MAX_SENSOR_DATA_AGE, CallContext, Sensor
from .registry import SensorRegistry

logger = logging.getLogger(__name__)


class IngestionGuard:
    """Admission control for sensor readings.

    Checks run in a fixed order and the first failure wins, so a reading
    with several problems always reports the same code:

        1. paused            -> PAUSED
        2. caller != operator -> NOT_AUTHORIZED
        3. energy_output <= 0 -> INVALID_DATA
        4. too old            -> TIMESTAMP_TOO_OLD
        5. sensor unknown/inactive -> INVALID_SENSOR

    Only the lower bound of the freshness window is enforced; timestamps
    ahead of the current height are admitted.
    """

    def __init__(
        self,
        access: AccessControl,
        registry: SensorRegistry,
        max_age: int = MAX_SENSOR_DATA_AGE,
    ) -> None:
        self._access = access
        self._registry = registry
        self._max_age = max_age

    def is_fresh(self, height: int, timestamp: int) -> bool:
        return height - timestamp <= self._max_age

    def admit(
        self,
        ctx: CallContext,
        paused: bool,
        sensor_id: str,
        energy_output: int,
        timestamp: int,
    ) -> Sensor:
        if paused:
            raise OracleError(ErrorCode.PAUSED)

        # Sensor ownership does not matter here, only the designated operator may submit
        self._access.require_oracle_operator(ctx.caller)

        if energy_output <= 0:
            raise OracleError(ErrorCode.INVALID_DATA, f"energy output {energy_output} must be positive")

        if not self.is_fresh(ctx.height, timestamp):
            raise OracleError(
                ErrorCode.TIMESTAMP_TOO_OLD,
                f"reading at {timestamp} is {ctx.height - timestamp} old (max {self._max_age})",
            )

        sensor = self._registry.active_sensor(sensor_id)
        logger.debug("admitted reading sensor=%s ts=%s output=%s", sensor_id, timestamp, energy_output)
        return sensor
