"""Oracle state transitions.

Run:
    pytest tests/test_oracle_state.py -v
"""

import pytest

from vvolt_oracle.core.errors import ErrorCode
from vvolt_oracle.domain.metrics import MetricsAggregator
from vvolt_oracle.domain.models import (
    EMPTY_ASSET_METRICS,
    EMPTY_EVENT,
    EMPTY_READING,
    EMPTY_SENSOR,
    MAX_SENSOR_DATA_AGE,
    NULL_IDENTITY,
    UINT128_MAX,
    AssetMetrics,
    CallContext,
    EnergyType,
    EventType,
    Sensor,
    SensorReading,
    TxResult,
)
from vvolt_oracle.domain.events import EventLog
from vvolt_oracle.domain.state import OracleState


ADMIN = "ST1PQHQKV0RJXZFY1DGX8MNSNYVE3VGZJSRTPGZGM"
OWNER = "ST2CY5V39NHDPWSXMW9QDT3HC3GD6Q6XX4CFRK9AG"
STRANGER = "ST3NBRSFKX28FQ2ZJ1MAKX58HKHSDGNV5N7R21XCP"
HEIGHT = 1000


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def state() -> OracleState:
    return OracleState.deploy(ADMIN)


@pytest.fixture
def admin() -> CallContext:
    return CallContext(caller=ADMIN, height=HEIGHT)


@pytest.fixture
def registered(state, admin) -> OracleState:
    assert state.register_sensor(admin, "s1", OWNER, "solar").ok
    return state


def at(height: int, caller: str = ADMIN) -> CallContext:
    return CallContext(caller=caller, height=height)


# =============================================================================
# DEPLOYMENT & READS
# =============================================================================

class TestDeployment:
    def test_deployer_is_admin_and_operator(self, state):
        assert state.get_admin() == ADMIN
        assert state.get_oracle_operator() == ADMIN
        assert state.is_paused() is False
        assert state.get_event_count() == 0

    def test_reads_of_absent_keys_return_zero_values(self, state):
        assert state.get_sensor("nope") == EMPTY_SENSOR
        assert state.get_sensor("nope").owner == NULL_IDENTITY
        assert state.get_asset_metrics("nope") == EMPTY_ASSET_METRICS
        assert state.get_sensor_data("nope", 5) == EMPTY_READING
        assert state.get_sensor_data("nope", 5).reported_by == NULL_IDENTITY
        assert state.get_event(0) == EMPTY_EVENT
        assert state.get_event(0).data is None


# =============================================================================
# REGISTRY
# =============================================================================

class TestRegisterSensor:
    def test_register_as_admin(self, state, admin):
        result = state.register_sensor(admin, "s1", OWNER, "solar")

        assert result == TxResult.success(True)
        assert state.get_sensor("s1") == Sensor(owner=OWNER, energy_type="solar", is_active=True)
        event = state.get_event(0)
        assert event.event_type == EventType.SENSOR_REGISTERED
        assert event.sensor_id == "s1"
        assert event.asset_id == ""
        assert event.data is None
        assert event.timestamp == HEIGHT

    def test_accepts_enum_member(self, state, admin):
        assert state.register_sensor(admin, "w1", OWNER, EnergyType.WIND).ok
        assert state.get_sensor("w1").energy_type == "wind"

    def test_non_admin_rejected_without_mutation(self, state):
        result = state.register_sensor(at(HEIGHT, STRANGER), "s1", OWNER, "solar")

        assert result.error == ErrorCode.NOT_AUTHORIZED
        assert int(result.error) == 200
        assert state.list_sensors() == []
        assert state.get_event_count() == 0

    @pytest.mark.parametrize("energy_type", ["invalid", "", "Solar", "hydro"])
    def test_invalid_energy_type(self, state, admin, energy_type):
        result = state.register_sensor(admin, "s1", OWNER, energy_type)
        assert result.error == ErrorCode.INVALID_ENERGY_TYPE
        assert state.get_sensor("s1") == EMPTY_SENSOR

    def test_reregistration_rejected(self, registered, admin):
        result = registered.register_sensor(admin, "s1", STRANGER, "wind")

        assert result.error == ErrorCode.ALREADY_REGISTERED
        assert registered.get_sensor("s1").owner == OWNER
        assert registered.get_event_count() == 1

    def test_not_authorized_checked_before_energy_type(self, state):
        result = state.register_sensor(at(HEIGHT, STRANGER), "s1", OWNER, "bogus")
        assert result.error == ErrorCode.NOT_AUTHORIZED

    def test_energy_type_checked_before_duplicate(self, registered, admin):
        result = registered.register_sensor(admin, "s1", OWNER, "bogus")
        assert result.error == ErrorCode.INVALID_ENERGY_TYPE


class TestDeactivateSensor:
    def test_deactivate_as_admin(self, registered, admin):
        result = registered.deactivate_sensor(admin, "s1")

        assert result.ok and result.value is True
        assert registered.get_sensor("s1") == Sensor(owner=OWNER, energy_type="solar", is_active=False)
        event = registered.get_event(1)
        assert event.event_type == "sensor-deactivated"
        assert event.sensor_id == "s1"
        assert event.asset_id == ""

    def test_unknown_sensor(self, state, admin):
        assert state.deactivate_sensor(admin, "s1").error == ErrorCode.INVALID_SENSOR
        assert state.get_event_count() == 0

    def test_non_admin_rejected(self, registered):
        result = registered.deactivate_sensor(at(HEIGHT, STRANGER), "s1")
        assert result.error == ErrorCode.NOT_AUTHORIZED
        assert registered.get_sensor("s1").is_active is True
        assert registered.get_event_count() == 1

    def test_deactivated_sensor_stays_registered(self, registered, admin):
        registered.deactivate_sensor(admin, "s1")
        assert registered.register_sensor(admin, "s1", OWNER, "solar").error == ErrorCode.ALREADY_REGISTERED


# =============================================================================
# INGESTION
# =============================================================================

class TestSubmitSensorData:
    def test_scenario_accepted_reading(self, registered):
        result = registered.submit_sensor_data(at(1000), "s1", "asset-1", 100, 900)

        assert result == TxResult.success(True)
        assert registered.get_sensor_data("s1", 900) == SensorReading(100, True, ADMIN)
        assert registered.get_asset_metrics("asset-1") == AssetMetrics(100, 900, 100, "solar")
        event = registered.get_event(1)
        assert event.event_type == "data-submitted"
        assert event.asset_id == "asset-1"
        assert event.data == 100
        # Event carries the logical height, not the reading's timestamp
        assert event.timestamp == 1000

    def test_unregistered_sensor(self, state):
        result = state.submit_sensor_data(at(1000), "s1", "asset-1", 100, 900)
        assert result.error == ErrorCode.INVALID_SENSOR
        assert state.get_asset_metrics("asset-1") == EMPTY_ASSET_METRICS

    def test_inactive_sensor(self, registered, admin):
        registered.deactivate_sensor(admin, "s1")
        result = registered.submit_sensor_data(at(1000), "s1", "asset-1", 100, 900)
        assert result.error == ErrorCode.INVALID_SENSOR
        assert registered.get_event_count() == 2

    def test_zero_output_rejected(self, registered):
        result = registered.submit_sensor_data(at(1000), "s1", "asset-1", 0, 900)

        assert result.error == ErrorCode.INVALID_DATA
        assert registered.get_sensor_data("s1", 900) == EMPTY_READING
        assert registered.get_asset_metrics("asset-1") == EMPTY_ASSET_METRICS
        assert registered.get_event_count() == 1

    def test_negative_output_rejected(self, registered):
        assert registered.submit_sensor_data(at(1000), "s1", "asset-1", -5, 900).error == ErrorCode.INVALID_DATA

    def test_paused_wins_over_everything(self, state, admin):
        state.set_paused(admin, True)
        # stranger, zero output, stale timestamp, unknown sensor
        result = state.submit_sensor_data(at(100_000, STRANGER), "ghost", "asset-1", 0, 0)
        assert result.error == ErrorCode.PAUSED

    def test_resume_after_pause(self, registered, admin):
        registered.set_paused(admin, True)
        registered.set_paused(admin, False)
        assert registered.submit_sensor_data(at(1000), "s1", "asset-1", 1, 1000).ok

    def test_only_operator_may_submit(self, registered):
        # The sensor's owner is not the operator
        result = registered.submit_sensor_data(at(1000, OWNER), "s1", "asset-1", 100, 900)
        assert result.error == ErrorCode.NOT_AUTHORIZED
        assert registered.get_asset_metrics("asset-1") == EMPTY_ASSET_METRICS

    def test_check_order_with_multiple_violations(self, state):
        ctx = at(100_000)
        # invalid data beats stale timestamp and unknown sensor
        assert state.submit_sensor_data(ctx, "ghost", "a", 0, 0).error == ErrorCode.INVALID_DATA
        # stale timestamp beats unknown sensor
        assert state.submit_sensor_data(ctx, "ghost", "a", 1, 0).error == ErrorCode.TIMESTAMP_TOO_OLD
        # unauthorized beats invalid data
        assert state.submit_sensor_data(at(100_000, STRANGER), "ghost", "a", 0, 0).error == ErrorCode.NOT_AUTHORIZED


class TestFreshnessWindow:
    def test_age_equal_to_max_is_accepted(self, registered):
        height = 10_000
        result = registered.submit_sensor_data(at(height), "s1", "a", 5, height - MAX_SENSOR_DATA_AGE)
        assert result.ok

    def test_age_one_past_max_is_rejected(self, registered):
        height = 10_000
        result = registered.submit_sensor_data(at(height), "s1", "a", 5, height - MAX_SENSOR_DATA_AGE - 1)
        assert result.error == ErrorCode.TIMESTAMP_TOO_OLD
        assert int(result.error) == 206

    def test_future_timestamp_is_accepted(self, registered):
        result = registered.submit_sensor_data(at(1000), "s1", "a", 5, 50_000)
        assert result.ok
        assert registered.get_asset_metrics("a").last_update_timestamp == 50_000


class TestAssetMetrics:
    def test_total_is_sum_of_accepted_outputs(self, registered):
        outputs = [100, 250, 1, 49]
        for i, out in enumerate(outputs):
            assert registered.submit_sensor_data(at(1000), "s1", "asset-1", out, 900 + i).ok

        metrics = registered.get_asset_metrics("asset-1")
        assert metrics.total_energy_output == sum(outputs)
        assert metrics.last_energy_output == 49
        assert metrics.last_update_timestamp == 903

    def test_rejected_reading_does_not_change_total(self, registered):
        registered.submit_sensor_data(at(1000), "s1", "asset-1", 100, 900)
        registered.submit_sensor_data(at(1000), "s1", "asset-1", 0, 901)
        assert registered.get_asset_metrics("asset-1").total_energy_output == 100

    def test_duplicate_key_overwrites_reading(self, registered, admin):
        registered.set_oracle_operator(admin, STRANGER)
        registered.submit_sensor_data(at(1000, STRANGER), "s1", "asset-1", 100, 900)
        registered.set_oracle_operator(admin, ADMIN)
        result = registered.submit_sensor_data(at(1000), "s1", "asset-1", 70, 900)

        assert result.ok
        assert registered.get_sensor_data("s1", 900) == SensorReading(70, True, ADMIN)
        # Overwriting the reading still adds to the running total
        assert registered.get_asset_metrics("asset-1").total_energy_output == 170
        assert registered.get_event_count() == 3

    def test_energy_type_fixed_by_first_reading(self, registered, admin):
        registered.register_sensor(admin, "w1", OWNER, "wind")
        registered.submit_sensor_data(at(1000), "s1", "asset-1", 10, 900)
        registered.submit_sensor_data(at(1000), "w1", "asset-1", 20, 901)

        metrics = registered.get_asset_metrics("asset-1")
        assert metrics.energy_type == "solar"
        assert metrics.total_energy_output == 30

    def test_assets_are_independent(self, registered):
        registered.submit_sensor_data(at(1000), "s1", "a", 10, 900)
        registered.submit_sensor_data(at(1000), "s1", "b", 20, 900)
        assert registered.get_asset_metrics("a").total_energy_output == 10
        assert registered.get_asset_metrics("b").total_energy_output == 20

    def test_overflow_aborts_without_writes(self, admin):
        metrics = MetricsAggregator(metrics=[("big", AssetMetrics(UINT128_MAX - 5, 1, 1, "solar"))])
        state = OracleState(admin=ADMIN, metrics=metrics)
        state.register_sensor(admin, "s1", OWNER, "solar")

        result = state.submit_sensor_data(at(1000), "s1", "big", 6, 900)

        assert not result.ok
        assert result.error is None
        assert result.reason == "arithmetic-overflow"
        assert state.get_asset_metrics("big").total_energy_output == UINT128_MAX - 5
        assert state.get_sensor_data("s1", 900) == EMPTY_READING
        assert state.get_event_count() == 1

    def test_total_may_reach_uint128_max(self, admin):
        metrics = MetricsAggregator(metrics=[("big", AssetMetrics(UINT128_MAX - 5, 1, 1, "solar"))])
        state = OracleState(admin=ADMIN, metrics=metrics)
        state.register_sensor(admin, "s1", OWNER, "solar")

        assert state.submit_sensor_data(at(1000), "s1", "big", 5, 900).ok
        assert state.get_asset_metrics("big").total_energy_output == UINT128_MAX


# =============================================================================
# ADMINISTRATION
# =============================================================================

class TestAdministration:
    def test_set_paused_returns_new_value(self, state, admin):
        assert state.set_paused(admin, True) == TxResult.success(True)
        assert state.is_paused() is True
        assert state.set_paused(admin, False) == TxResult.success(False)
        assert state.is_paused() is False

    def test_set_oracle_operator(self, state, admin):
        assert state.set_oracle_operator(admin, STRANGER).ok
        assert state.get_oracle_operator() == STRANGER
        assert state.get_admin() == ADMIN

    def test_new_operator_can_submit_and_old_cannot(self, registered, admin):
        registered.set_oracle_operator(admin, STRANGER)
        assert registered.submit_sensor_data(at(1000), "s1", "a", 1, 900).error == ErrorCode.NOT_AUTHORIZED
        assert registered.submit_sensor_data(at(1000, STRANGER), "s1", "a", 1, 900).ok
        assert registered.get_sensor_data("s1", 900).reported_by == STRANGER

    def test_operator_cannot_be_null_identity(self, state, admin):
        result = state.set_oracle_operator(admin, NULL_IDENTITY)
        assert result.error == ErrorCode.INVALID_ASSET
        assert state.get_oracle_operator() == ADMIN

    def test_transfer_admin(self, state, admin):
        assert state.transfer_admin(admin, STRANGER).ok
        assert state.get_admin() == STRANGER
        assert state.set_paused(admin, True).error == ErrorCode.NOT_AUTHORIZED
        assert state.set_paused(at(HEIGHT, STRANGER), True).ok

    def test_transfer_admin_rejects_null_identity(self, state, admin):
        assert state.transfer_admin(admin, NULL_IDENTITY).error == ErrorCode.INVALID_ASSET
        assert state.get_admin() == ADMIN

    def test_admin_changes_log_no_events(self, state, admin):
        state.set_paused(admin, True)
        state.set_paused(admin, False)
        state.set_oracle_operator(admin, STRANGER)
        state.transfer_admin(admin, STRANGER)
        assert state.get_event_count() == 0


class TestAccessControlCompleteness:
    """Every mutating operation returns exactly 200 for the wrong role."""

    @pytest.mark.parametrize(
        "call",
        [
            lambda s, c: s.register_sensor(c, "s2", OWNER, "wind"),
            lambda s, c: s.deactivate_sensor(c, "s1"),
            lambda s, c: s.submit_sensor_data(c, "s1", "a", 10, 900),
            lambda s, c: s.set_paused(c, True),
            lambda s, c: s.set_oracle_operator(c, OWNER),
            lambda s, c: s.transfer_admin(c, OWNER),
        ],
    )
    def test_wrong_role(self, registered, call):
        sensors_before = registered.list_sensors()
        result = call(registered, at(1000, STRANGER))

        assert result.error == ErrorCode.NOT_AUTHORIZED
        assert result.changes is None
        assert registered.list_sensors() == sensors_before
        assert registered.get_event_count() == 1
        assert registered.is_paused() is False
        assert registered.get_admin() == ADMIN
        assert registered.get_oracle_operator() == ADMIN
        assert registered.get_asset_metrics("a") == EMPTY_ASSET_METRICS


# =============================================================================
# EVENT LOG
# =============================================================================

class TestEventLog:
    def test_ids_increase_from_zero(self, state, admin):
        state.register_sensor(admin, "s1", OWNER, "solar")
        state.register_sensor(admin, "s2", OWNER, "wind")
        state.set_paused(admin, True)
        state.set_paused(admin, False)
        state.submit_sensor_data(at(1001), "s2", "a", 3, 1000)
        state.deactivate_sensor(at(1002), "s1")

        rows = state.list_events()
        assert [eid for eid, _ in rows] == [0, 1, 2, 3]
        assert [e.event_type for _, e in rows] == [
            "sensor-registered",
            "sensor-registered",
            "data-submitted",
            "sensor-deactivated",
        ]
        assert [e.timestamp for _, e in rows] == [HEIGHT, HEIGHT, 1001, 1002]

    def test_list_events_paging(self, state, admin):
        for i in range(5):
            state.register_sensor(admin, f"s{i}", OWNER, "solar")
        assert [eid for eid, _ in state.list_events(start=2, limit=2)] == [2, 3]
        assert state.list_events(start=10) == []

    def test_log_event_returns_assigned_id(self):
        log = EventLog()
        assert log.log_event(EventType.SENSOR_REGISTERED, "s1", "", None, 7) == 0
        assert log.log_event(EventType.DATA_SUBMITTED, "s1", "a", 9, 8) == 1
        assert log.get_event(1).data == 9
        assert log.next_event_id == 2

    def test_exhausted_id_space_aborts(self, admin):
        state = OracleState(admin=ADMIN, events=EventLog(next_event_id=UINT128_MAX + 1))
        result = state.register_sensor(admin, "s1", OWNER, "solar")

        assert result.reason == "event-id-exhausted"
        assert state.get_sensor("s1") == EMPTY_SENSOR


# =============================================================================
# REVERT
# =============================================================================

class TestRevert:
    """Undoing a committed transition from the prior values it recorded."""

    def test_revert_registration(self, registered, admin):
        result = registered.register_sensor(admin, "s2", OWNER, "wind")
        registered.revert(result.changes)

        assert registered.get_sensor("s2") == EMPTY_SENSOR
        assert [sid for sid, _ in registered.list_sensors()] == ["s1"]
        assert registered.get_event_count() == 1
        assert registered.get_event(1) == EMPTY_EVENT
        # The id is handed out again by the next transition
        assert registered.register_sensor(admin, "s2", OWNER, "wind").ok
        assert registered.get_event(1).sensor_id == "s2"

    def test_revert_deactivation(self, registered, admin):
        result = registered.deactivate_sensor(admin, "s1")
        registered.revert(result.changes)
        assert registered.get_sensor("s1").is_active is True
        assert registered.get_event_count() == 1

    def test_revert_first_reading_for_asset(self, registered):
        result = registered.submit_sensor_data(at(1000), "s1", "asset-1", 100, 900)
        registered.revert(result.changes)

        assert registered.get_asset_metrics("asset-1") == EMPTY_ASSET_METRICS
        assert registered.get_sensor_data("s1", 900) == EMPTY_READING
        assert registered.get_event_count() == 1

    def test_revert_overwrite_restores_previous_reading(self, registered):
        registered.submit_sensor_data(at(1000), "s1", "asset-1", 100, 900)
        result = registered.submit_sensor_data(at(1001), "s1", "asset-1", 70, 900)
        registered.revert(result.changes)

        assert registered.get_sensor_data("s1", 900) == SensorReading(100, True, ADMIN)
        assert registered.get_asset_metrics("asset-1") == AssetMetrics(100, 900, 100, "solar")
        assert registered.get_event_count() == 2

    def test_revert_role_changes(self, state, admin):
        paused = state.set_paused(admin, True)
        operator = state.set_oracle_operator(admin, STRANGER)
        transfer = state.transfer_admin(admin, OWNER)

        state.revert(transfer.changes)
        state.revert(operator.changes)
        state.revert(paused.changes)

        assert state.get_admin() == ADMIN
        assert state.get_oracle_operator() == ADMIN
        assert state.is_paused() is False

    def test_change_set_touches_only_written_keys(self, registered):
        result = registered.submit_sensor_data(at(1000), "s1", "asset-1", 100, 900)
        changes = result.changes

        assert set(changes.readings) == {("s1", 900)}
        assert set(changes.asset_metrics) == {"asset-1"}
        assert set(changes.events) == {1}
        assert changes.prior_readings == {("s1", 900): None}
        assert changes.prior_asset_metrics == {"asset-1": None}
        assert changes.sensors == {} and changes.roles == {}
