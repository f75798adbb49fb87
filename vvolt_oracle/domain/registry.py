from __future__ import annotations
from typing import Iterable, Optional

from ..core.errors import ErrorCode, OracleError
from .models import EMPTY_SENSOR, EnergyType, Sensor


class SensorRegistry:
    """Sensor records keyed by sensor id. Records are never deleted."""

    def __init__(self, sensors: Optional[Iterable[tuple[str, Sensor]]] = None) -> None:
        self._sensors: dict[str, Sensor] = dict(sensors or ())

    def __len__(self) -> int:
        return len(self._sensors)

    def lookup(self, sensor_id: str) -> Optional[Sensor]:
        return self._sensors.get(sensor_id)

    def get(self, sensor_id: str) -> Sensor:
        return self.lookup(sensor_id) or EMPTY_SENSOR

    def items(self) -> list[tuple[str, Sensor]]:
        return list(self._sensors.items())

    def check_register(self, sensor_id: str, energy_type: str) -> None:
        try:
            EnergyType(energy_type)
        except ValueError:
            raise OracleError(ErrorCode.INVALID_ENERGY_TYPE, f"unknown energy type {energy_type!r}")
        if sensor_id in self._sensors:
            raise OracleError(ErrorCode.ALREADY_REGISTERED, f"sensor {sensor_id} already registered")

    def register(self, sensor_id: str, owner: str, energy_type: str) -> Sensor:
        sensor = Sensor(owner=owner, energy_type=EnergyType(energy_type).value, is_active=True)
        self._sensors[sensor_id] = sensor
        return sensor

    def check_deactivate(self, sensor_id: str) -> Sensor:
        sensor = self.lookup(sensor_id)
        if sensor is None:
            raise OracleError(ErrorCode.INVALID_SENSOR, f"sensor {sensor_id} not registered")
        return sensor

    def deactivate(self, sensor_id: str) -> Sensor:
        # One-way: there is no reactivation path
        current = self.check_deactivate(sensor_id)
        sensor = Sensor(owner=current.owner, energy_type=current.energy_type, is_active=False)
        self._sensors[sensor_id] = sensor
        return sensor

    def restore(self, sensor_id: str, prior: Optional[Sensor]) -> None:
        if prior is None:
            self._sensors.pop(sensor_id, None)
        else:
            self._sensors[sensor_id] = prior

    def active_sensor(self, sensor_id: str) -> Sensor:
        sensor = self.lookup(sensor_id)
        if sensor is None or not sensor.is_active:
            raise OracleError(ErrorCode.INVALID_SENSOR, f"sensor {sensor_id} unknown or inactive")
        return sensor
