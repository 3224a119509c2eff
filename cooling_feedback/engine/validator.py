"""Action validator: clamp proposed values into safe ranges."""

from cooling_feedback.models.action import ActionValidation, ProposedAction, ValidatedAction
from cooling_feedback.models.common import finite_number
from cooling_feedback.models.device import Power

MIN_SETPOINT_C = 16.0
MAX_SETPOINT_C = 30.0
MIN_DELTA_C = -10.0
MAX_DELTA_C = 10.0


def clamp(value: float, low: float, high: float) -> float:
    """Round to 0.1 and clamp into [low, high]."""
    return max(low, min(high, round(value, 1)))


def clamp_setpoint(value: float) -> float:
    return clamp(value, MIN_SETPOINT_C, MAX_SETPOINT_C)


def clamp_delta(value: float) -> float:
    return clamp(value, MIN_DELTA_C, MAX_DELTA_C)


def _power(value: str | None) -> Power | None:
    if value in (Power.ON.value, Power.OFF.value):
        return Power(value)
    return None


def validate_action(action: ProposedAction) -> ActionValidation:
    """Clamp setpoint and delta, drop unknown power values. Never raises.

    Idempotent: validating an already validated action changes nothing and
    reports ``clamped=False``.
    """
    setpoint = finite_number(action.setpoint_c)
    delta = finite_number(action.delta_c)

    validated = ValidatedAction(
        power=_power(action.power),
        setpoint_c=clamp_setpoint(setpoint) if setpoint is not None else None,
        delta_c=clamp_delta(delta) if delta is not None else None,
    )

    original_power = action.power.value if isinstance(action.power, Power) else action.power
    clamped = (
        validated.setpoint_c != action.setpoint_c
        or validated.delta_c != action.delta_c
        or (validated.power.value if validated.power else None) != original_power
    )
    return ActionValidation(original_action=action, action=validated, clamped=clamped)
