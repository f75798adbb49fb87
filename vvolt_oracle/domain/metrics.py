from __future__ import annotations
from typing import Iterable, Optional

from ..core.errors import TxAborted
from .models import (
    EMPTY_ASSET_METRICS,
    EMPTY_READING,
    UINT128_MAX,
    AssetMetrics,
    Sensor,
    SensorReading,
)

ReadingKey = tuple[str, int]


def checked_add(total: int, amount: int) -> int:
    result = total + amount
    if result > UINT128_MAX:
        raise TxAborted("arithmetic-overflow")
    return result


class MetricsAggregator:
    """Stored readings plus per-asset running totals."""

    def __init__(
        self,
        metrics: Optional[Iterable[tuple[str, AssetMetrics]]] = None,
        readings: Optional[Iterable[tuple[ReadingKey, SensorReading]]] = None,
    ) -> None:
        self._metrics: dict[str, AssetMetrics] = dict(metrics or ())
        self._readings: dict[ReadingKey, SensorReading] = dict(readings or ())

    def lookup(self, asset_id: str) -> Optional[AssetMetrics]:
        return self._metrics.get(asset_id)

    def get(self, asset_id: str) -> AssetMetrics:
        return self.lookup(asset_id) or EMPTY_ASSET_METRICS

    def lookup_reading(self, sensor_id: str, timestamp: int) -> Optional[SensorReading]:
        return self._readings.get((sensor_id, timestamp))

    def get_reading(self, sensor_id: str, timestamp: int) -> SensorReading:
        return self.lookup_reading(sensor_id, timestamp) or EMPTY_READING

    def fold(self, asset_id: str, sensor: Sensor, energy_output: int, timestamp: int) -> AssetMetrics:
        """Return the asset's metrics with one more reading folded in. Does not store."""
        current = self.lookup(asset_id)
        if current is None:
            # First reading fixes the asset's energy type; later readings never change it
            current = AssetMetrics(0, 0, 0, sensor.energy_type)
        return AssetMetrics(
            total_energy_output=checked_add(current.total_energy_output, energy_output),
            last_update_timestamp=timestamp,
            last_energy_output=energy_output,
            energy_type=current.energy_type,
        )

    def record(
        self,
        sensor_id: str,
        timestamp: int,
        reading: SensorReading,
        asset_id: str,
        metrics: AssetMetrics,
    ) -> None:
        # Same (sensor, timestamp) overwrites: last write wins
        self._readings[(sensor_id, timestamp)] = reading
        self._metrics[asset_id] = metrics

    def restore(self, asset_id: str, prior: Optional[AssetMetrics]) -> None:
        if prior is None:
            self._metrics.pop(asset_id, None)
        else:
            self._metrics[asset_id] = prior

    def restore_reading(self, key: ReadingKey, prior: Optional[SensorReading]) -> None:
        if prior is None:
            self._readings.pop(key, None)
        else:
            self._readings[key] = prior
