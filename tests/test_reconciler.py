import pytest

from conftest import OFFICE_MAC, FakeDispatcher, make_snapshot
from cooling_feedback.engine.reconciler import Reconciler, build_command, command_target, plan_next_state
from cooling_feedback.engine.rules import classify_fallback
from cooling_feedback.engine.validator import validate_action
from cooling_feedback.exceptions import UnknownStateError
from cooling_feedback.models.action import CommandTarget, NextState, ProposedAction, ValidatedAction
from cooling_feedback.models.device import PortRecord, Power

TARGET = CommandTarget(address=OFFICE_MAC, mode="0", fan="2")


async def _reconcile(dispatcher, current, target=TARGET, **action):
    validation = validate_action(ProposedAction(**action))
    return await Reconciler(dispatcher, fallback_setpoint_c=24.0).reconcile(current, validation, target)


@pytest.mark.asyncio
async def test_explicit_off_while_off_still_dispatches(dispatcher) -> None:
    result = await _reconcile(dispatcher, make_snapshot(24, Power.OFF), power="OFF")

    assert result.changed is True
    assert result.change_reasons.power_changed is True
    assert result.dispatch.attempted is True
    assert result.dispatch.succeeded is True
    assert dispatcher.calls == [(OFFICE_MAC, {"Power": "off", "Temp": "24", "Mode": "0", "Fan": "2"})]


@pytest.mark.asyncio
async def test_matching_setpoint_sends_nothing(dispatcher) -> None:
    result = await _reconcile(dispatcher, make_snapshot(22, Power.ON), setpoint_c=22)

    assert result.changed is False
    assert result.dispatch.attempted is False
    assert dispatcher.calls == []


@pytest.mark.asyncio
async def test_still_hot_lowers_setpoint_by_two(dispatcher) -> None:
    action = classify_fallback("still hot").action
    validation = validate_action(action)

    result = await Reconciler(dispatcher).reconcile(make_snapshot(24, Power.ON), validation, TARGET)

    assert result.next == NextState(power=Power.ON, setpoint_c=22.0)
    assert result.changed is True
    assert dispatcher.calls[0][1]["Temp"] == "22"


@pytest.mark.asyncio
async def test_delta_result_is_clamped(dispatcher) -> None:
    result = await _reconcile(dispatcher, make_snapshot(29, Power.ON), delta_c=5)

    assert result.next.setpoint_c == 30.0


@pytest.mark.parametrize("action", [
    {"setpoint_c": 22},
    {"setpoint_c": 35},
    {"power": "ON"},
    {"power": "ON", "setpoint_c": 18.5},
])
@pytest.mark.asyncio
async def test_reconciling_twice_is_a_no_op(dispatcher, action) -> None:
    first = await _reconcile(dispatcher, make_snapshot(24, Power.OFF), **action)
    settled = make_snapshot(first.next.setpoint_c, first.next.power)

    second = await _reconcile(dispatcher, settled, **action)

    assert second.changed is False
    assert len(dispatcher.calls) == 1


@pytest.mark.parametrize("action", [
    {"setpoint_c": 22},
    {"delta_c": -2},
    {"power": "ON", "delta_c": 2},
])
@pytest.mark.asyncio
async def test_temperature_change_turns_unit_on(dispatcher, action) -> None:
    result = await _reconcile(dispatcher, make_snapshot(24, Power.OFF), **action)

    assert result.next.power == Power.ON
    assert result.change_reasons.power_changed is True


@pytest.mark.asyncio
async def test_explicit_off_is_not_overridden_by_setpoint(dispatcher) -> None:
    result = await _reconcile(dispatcher, make_snapshot(24, Power.ON), power="OFF", setpoint_c=22)

    assert result.next == NextState(power=Power.OFF, setpoint_c=22.0)
    assert dispatcher.calls[0][1]["Power"] == "off"


def test_setpoint_wins_over_delta() -> None:
    next_state, reasons = plan_next_state(
        make_snapshot(24, Power.ON),
        ValidatedAction(setpoint_c=20, delta_c=5),
    )

    assert next_state.setpoint_c == 20.0
    assert reasons.setpoint_changed is True


def test_delta_on_unknown_setpoint_is_rejected() -> None:
    with pytest.raises(UnknownStateError) as exc_info:
        plan_next_state(make_snapshot(None, Power.ON), ValidatedAction(delta_c=-2))

    assert exc_info.value.code == "UNKNOWN_STATE"
    assert exc_info.value.status_code == 400


def test_absolute_setpoint_on_unknown_setpoint_is_allowed() -> None:
    next_state, reasons = plan_next_state(make_snapshot(None, None), ValidatedAction(setpoint_c=23))

    assert next_state == NextState(power=Power.ON, setpoint_c=23.0)
    assert reasons.setpoint_changed is True
    assert reasons.power_changed is True


def test_small_setpoint_differences_are_ignored() -> None:
    _, reasons = plan_next_state(make_snapshot(22.0, Power.ON), ValidatedAction(setpoint_c=22.05))
    assert reasons.setpoint_changed is False


@pytest.mark.asyncio
async def test_power_only_command_with_unknown_setpoint_uses_fallback_temp(dispatcher) -> None:
    await _reconcile(dispatcher, make_snapshot(None, Power.OFF), power="ON")

    assert dispatcher.calls[0][1] == {"Power": "on", "Temp": "24", "Mode": "0", "Fan": "2"}


@pytest.mark.asyncio
async def test_failed_publish_is_reported_not_raised() -> None:
    dispatcher = FakeDispatcher(published=False, reason="MQTT_NOT_READY")

    result = await _reconcile(dispatcher, make_snapshot(24, Power.ON), setpoint_c=20)

    assert result.changed is True
    assert result.dispatch.attempted is True
    assert result.dispatch.succeeded is False
    assert result.dispatch.reason == "MQTT_NOT_READY"


@pytest.mark.asyncio
async def test_raising_dispatcher_is_recorded_as_failure() -> None:
    dispatcher = FakeDispatcher(error=RuntimeError("broker went away"))

    result = await _reconcile(dispatcher, make_snapshot(24, Power.ON), power="OFF")

    assert result.dispatch.attempted is True
    assert result.dispatch.succeeded is False
    assert result.dispatch.reason == "broker went away"


@pytest.mark.asyncio
async def test_missing_address_skips_dispatch(dispatcher) -> None:
    target = CommandTarget(address=None, mode="0", fan="1")

    result = await _reconcile(dispatcher, make_snapshot(24, Power.ON), target=target, setpoint_c=20)

    assert result.changed is True
    assert result.dispatch.attempted is False
    assert result.dispatch.reason == "NO_CONTROL_ADDRESS"
    assert dispatcher.calls == []


def test_command_values_are_strings() -> None:
    payload = build_command(NextState(power=Power.ON, setpoint_c=22.5), TARGET, fallback_setpoint_c=24)
    assert payload == {"Power": "on", "Temp": "22.5", "Mode": "0", "Fan": "2"}


def test_command_target_passes_mode_and_fan_through() -> None:
    port = PortRecord(port_id="P1", device_id="AC-001", ac_mode=3, ac_fan_speed="4")
    assert command_target(OFFICE_MAC, port) == CommandTarget(address=OFFICE_MAC, mode="3", fan="4")


def test_command_target_defaults_missing_mode_and_fan() -> None:
    port = PortRecord(port_id="P1", device_id="AC-001")
    target = command_target(None, port)

    assert target.mode == "0"
    assert target.fan == "1"
