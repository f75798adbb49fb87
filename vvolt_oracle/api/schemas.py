from __future__ import annotations
from pydantic import BaseModel, Field
from typing import Optional


class RegisterSensorRequest(BaseModel):
    sensor_id: str = Field(min_length=1)
    owner: str
    energy_type: str  # validated by the oracle so the 207 code is preserved


class SubmitReadingRequest(BaseModel):
    sensor_id: str
    asset_id: str
    energy_output: int = Field(ge=0)  # zero reaches the oracle and comes back as 203
    timestamp: int = Field(ge=0)


class PausedRequest(BaseModel):
    paused: bool


class IdentityRequest(BaseModel):
    identity: str


class SensorOut(BaseModel):
    owner: str
    energy_type: str
    is_active: bool


class AssetMetricsOut(BaseModel):
    # Decimal strings: totals are uint128
    total_energy_output: str
    last_update_timestamp: str
    last_energy_output: str
    energy_type: str


class SensorReadingOut(BaseModel):
    energy_output: str
    verified: bool
    reported_by: str


class EventOut(BaseModel):
    event_id: Optional[int] = None
    event_type: str
    sensor_id: str
    asset_id: str
    timestamp: str
    data: Optional[str] = None
