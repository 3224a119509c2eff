"""State reconciler: current snapshot + validated action -> next state + dispatch."""

import logging
from typing import Any, Protocol

from config import settings
from cooling_feedback.engine.validator import clamp_setpoint
from cooling_feedback.exceptions import UnknownStateError
from cooling_feedback.models.action import (
    ActionValidation,
    ChangeReasons,
    CommandTarget,
    DispatchOutcome,
    NextState,
    PublishResult,
    ReconciliationResult,
    ValidatedAction,
)
from cooling_feedback.models.common import finite_number, format_number
from cooling_feedback.models.device import DeviceSnapshot, PortRecord, Power

logger = logging.getLogger(__name__)

SETPOINT_TOLERANCE_C = 0.1


class CommandDispatcher(Protocol):
    async def publish(self, address: str, payload: dict[str, Any]) -> PublishResult: ...


def _passthrough(value: Any, default: str) -> str:
    number = finite_number(value)
    if number is not None:
        return format_number(number)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return default


def command_target(address: str | None, port: PortRecord) -> CommandTarget:
    """Mode and fan come straight from the port; they are not reconciled."""
    return CommandTarget(
        address=address,
        mode=_passthrough(port.ac_mode, settings.default_ac_mode),
        fan=_passthrough(port.ac_fan_speed, settings.default_fan_speed),
    )


def _setpoint_changed(current: float | None, nxt: float | None) -> bool:
    if current is None or nxt is None:
        return current != nxt
    return abs(current - nxt) > SETPOINT_TOLERANCE_C


def plan_next_state(current: DeviceSnapshot, action: ValidatedAction) -> tuple[NextState, ChangeReasons]:
    """Pure part of reconciliation.

    An absolute setpoint wins over a delta when both are present. A delta
    needs a known baseline, otherwise UnknownStateError is raised.
    """
    power = current.power
    setpoint = current.setpoint_c

    if action.power is not None:
        power = action.power

    if action.setpoint_c is not None:
        setpoint = action.setpoint_c
    elif action.delta_c is not None:
        if current.setpoint_c is None:
            raise UnknownStateError(
                "Cannot apply a relative change: current setpoint is unknown",
                deltaC=action.delta_c,
            )
        setpoint = clamp_setpoint(current.setpoint_c + action.delta_c)

    # A setpoint change on a unit that stays off would do nothing
    if action.requests_temperature_change and action.power != Power.OFF:
        power = Power.ON

    reasons = ChangeReasons(
        # Explicit OFF is always resent: the unit may be on despite the snapshot
        power_changed=current.power != power or action.power == Power.OFF,
        setpoint_changed=_setpoint_changed(current.setpoint_c, setpoint),
    )
    return NextState(power=power, setpoint_c=setpoint), reasons


def build_command(next_state: NextState, target: CommandTarget, fallback_setpoint_c: float) -> dict[str, str]:
    """Controller payload. Field names and string values are fixed by the firmware."""
    setpoint = next_state.setpoint_c if next_state.setpoint_c is not None else fallback_setpoint_c
    return {
        "Power": "off" if next_state.power == Power.OFF else "on",
        "Temp": format_number(setpoint),
        "Mode": target.mode,
        "Fan": target.fan,
    }


class Reconciler:
    """Decides whether a command is needed and sends it at most once."""

    def __init__(self, dispatcher: CommandDispatcher, fallback_setpoint_c: float | None = None):
        self._dispatcher = dispatcher
        self._fallback_setpoint_c = (
            settings.fallback_setpoint_c if fallback_setpoint_c is None else fallback_setpoint_c
        )

    async def reconcile(
        self,
        current: DeviceSnapshot,
        validation: ActionValidation,
        target: CommandTarget,
    ) -> ReconciliationResult:
        next_state, reasons = plan_next_state(current, validation.action)
        changed = reasons.power_changed or reasons.setpoint_changed

        if changed:
            dispatch = await self._dispatch(next_state, target)
        else:
            logger.info(f"Desired state already matches {target.address}; no command sent")
            dispatch = DispatchOutcome(address=target.address)

        return ReconciliationResult(
            current=current,
            next=next_state,
            changed=changed,
            change_reasons=reasons,
            dispatch=dispatch,
            validation=validation,
        )

    async def _dispatch(self, next_state: NextState, target: CommandTarget) -> DispatchOutcome:
        if not target.address:
            logger.warning("No control address for device; command not sent")
            return DispatchOutcome(reason="NO_CONTROL_ADDRESS")

        payload = build_command(next_state, target, self._fallback_setpoint_c)
        try:
            result = await self._dispatcher.publish(target.address, payload)
        except Exception as e:
            logger.error(f"Dispatch to {target.address} failed: {e}", exc_info=True)
            result = PublishResult(published=False, reason=str(e) or type(e).__name__)

        return DispatchOutcome(
            attempted=True,
            succeeded=result.published,
            reason=result.reason,
            address=target.address,
            payload=payload,
        )
