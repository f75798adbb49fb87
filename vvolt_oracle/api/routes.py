from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request

from ..core.config import settings
from ..core.errors import ErrorCode
from ..domain.models import AssetMetrics, CallContext, Event, Sensor, SensorReading, TxResult
from ..services.ledger import LedgerService
from .schemas import (
    AssetMetricsOut,
    EventOut,
    IdentityRequest,
    PausedRequest,
    RegisterSensorRequest,
    SensorOut,
    SensorReadingOut,
    SubmitReadingRequest,
)

router = APIRouter()


def get_ledger() -> LedgerService:  # overridden in main
    raise RuntimeError("Ledger dependency not configured")


def get_call_context(request: Request) -> CallContext:
    caller = request.headers.get(settings.caller_header)
    if not caller:
        raise HTTPException(status_code=422, detail=f"Missing {settings.caller_header} header")
    raw = request.headers.get(settings.height_header)
    try:
        height = int(raw)
    except (TypeError, ValueError):
        raise HTTPException(status_code=422, detail=f"Invalid {settings.height_header} header: {raw}")
    if height < 0:
        raise HTTPException(status_code=422, detail=f"{settings.height_header} must be non-negative")
    return CallContext(caller=caller, height=height)


ERROR_STATUS = {
    ErrorCode.NOT_AUTHORIZED: 403,
    ErrorCode.INVALID_SENSOR: 404,
    ErrorCode.INVALID_ASSET: 400,
    ErrorCode.INVALID_DATA: 422,
    ErrorCode.PAUSED: 423,
    ErrorCode.ALREADY_REGISTERED: 409,
    ErrorCode.TIMESTAMP_TOO_OLD: 422,
    ErrorCode.INVALID_ENERGY_TYPE: 400,
}


def _unwrap(result: TxResult) -> dict:
    if result.ok:
        return {"value": result.value}
    if result.error is None:
        raise HTTPException(status_code=409, detail={"error": None, "reason": result.reason})
    raise HTTPException(
        status_code=ERROR_STATUS[result.error],
        detail={"error": int(result.error), "name": result.error.label},
    )


def _sensor_out(s: Sensor) -> SensorOut:
    return SensorOut(owner=s.owner, energy_type=s.energy_type, is_active=s.is_active)


def _metrics_out(m: AssetMetrics) -> AssetMetricsOut:
    return AssetMetricsOut(
        total_energy_output=str(m.total_energy_output),
        last_update_timestamp=str(m.last_update_timestamp),
        last_energy_output=str(m.last_energy_output),
        energy_type=m.energy_type,
    )


def _reading_out(r: SensorReading) -> SensorReadingOut:
    return SensorReadingOut(energy_output=str(r.energy_output), verified=r.verified, reported_by=r.reported_by)


def _event_out(e: Event, event_id: int | None = None) -> EventOut:
    return EventOut(
        event_id=event_id,
        event_type=e.event_type,
        sensor_id=e.sensor_id,
        asset_id=e.asset_id,
        timestamp=str(e.timestamp),
        data=None if e.data is None else str(e.data),
    )


# --- Sensors ---
@router.post("/sensors")
async def register_sensor(
    req: RegisterSensorRequest,
    ctx: CallContext = Depends(get_call_context),
    ledger: LedgerService = Depends(get_ledger),
):
    return _unwrap(await ledger.register_sensor(ctx, req.sensor_id, req.owner, req.energy_type))


@router.post("/sensors/{sensor_id}/deactivate")
async def deactivate_sensor(
    sensor_id: str,
    ctx: CallContext = Depends(get_call_context),
    ledger: LedgerService = Depends(get_ledger),
):
    return _unwrap(await ledger.deactivate_sensor(ctx, sensor_id))


@router.get("/sensors")
async def list_sensors(ledger: LedgerService = Depends(get_ledger)):
    async with ledger.reading() as st:
        rows = st.list_sensors()
    return {"sensors": [{"sensor_id": sid, **_sensor_out(s).model_dump()} for sid, s in rows]}


@router.get("/sensors/{sensor_id}")
async def get_sensor(sensor_id: str, ledger: LedgerService = Depends(get_ledger)):
    async with ledger.reading() as st:
        return {"value": _sensor_out(st.get_sensor(sensor_id))}


# --- Readings & assets ---
@router.post("/readings")
async def submit_reading(
    req: SubmitReadingRequest,
    ctx: CallContext = Depends(get_call_context),
    ledger: LedgerService = Depends(get_ledger),
):
    result = await ledger.submit_sensor_data(ctx, req.sensor_id, req.asset_id, req.energy_output, req.timestamp)
    return _unwrap(result)


@router.get("/readings/{sensor_id}/{timestamp}")
async def get_reading(sensor_id: str, timestamp: int, ledger: LedgerService = Depends(get_ledger)):
    async with ledger.reading() as st:
        return {"value": _reading_out(st.get_sensor_data(sensor_id, timestamp))}


@router.get("/assets/{asset_id}")
async def get_asset_metrics(asset_id: str, ledger: LedgerService = Depends(get_ledger)):
    async with ledger.reading() as st:
        return {"value": _metrics_out(st.get_asset_metrics(asset_id))}


# --- Audit trail ---
@router.get("/events")
async def list_events(start: int = 0, limit: int = 100, ledger: LedgerService = Depends(get_ledger)):
    limit = max(0, min(limit, settings.max_page_size))
    async with ledger.reading() as st:
        rows = st.list_events(max(0, start), limit)
        count = st.get_event_count()
    return {"count": count, "events": [_event_out(e, eid) for eid, e in rows]}


@router.get("/events/{event_id}")
async def get_event(event_id: int, ledger: LedgerService = Depends(get_ledger)):
    async with ledger.reading() as st:
        # Ids are contiguous from 0, so anything below the count is stored
        stored = 0 <= event_id < st.get_event_count()
        return {"value": _event_out(st.get_event(event_id), event_id if stored else None)}


# --- Administration ---
@router.get("/admin")
async def get_admin(ledger: LedgerService = Depends(get_ledger)):
    async with ledger.reading() as st:
        return {
            "admin": st.get_admin(),
            "oracle_operator": st.get_oracle_operator(),
            "paused": st.is_paused(),
            "event_count": st.get_event_count(),
        }


@router.post("/admin/paused")
async def set_paused(
    req: PausedRequest,
    ctx: CallContext = Depends(get_call_context),
    ledger: LedgerService = Depends(get_ledger),
):
    return _unwrap(await ledger.set_paused(ctx, req.paused))


@router.post("/admin/operator")
async def set_oracle_operator(
    req: IdentityRequest,
    ctx: CallContext = Depends(get_call_context),
    ledger: LedgerService = Depends(get_ledger),
):
    return _unwrap(await ledger.set_oracle_operator(ctx, req.identity))


@router.post("/admin/transfer")
async def transfer_admin(
    req: IdentityRequest,
    ctx: CallContext = Depends(get_call_context),
    ledger: LedgerService = Depends(get_ledger),
):
    return _unwrap(await ledger.transfer_admin(ctx, req.identity))
