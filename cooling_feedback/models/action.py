"""Pydantic models for intents, proposed actions and reconciliation results."""

from enum import Enum
from typing import Any

from pydantic import model_validator

from cooling_feedback.models.common import CamelModel
from cooling_feedback.models.device import DeviceSnapshot, Power


class Intent(str, Enum):
    GET_SETPOINT = "GET_SETPOINT"
    GET_ROOM_TEMPERATURE = "GET_ROOM_TEMPERATURE"
    GET_HUMIDITY = "GET_HUMIDITY"
    GET_CONSUMPTION = "GET_CONSUMPTION"
    GET_RUN_HOURS = "GET_RUN_HOURS"
    FEEDBACK = "FEEDBACK"
    OTHER = "OTHER"


READ_INTENTS = frozenset({
    Intent.GET_SETPOINT,
    Intent.GET_ROOM_TEMPERATURE,
    Intent.GET_HUMIDITY,
    Intent.GET_CONSUMPTION,
    Intent.GET_RUN_HOURS,
})


class ClassifierSource(str, Enum):
    LLM = "llm"
    RULES = "rules"


class ProposedAction(CamelModel):
    """A desired change as produced by either classifier.

    ``delta_c`` is relative to the current setpoint, not to ``setpoint_c``.
    """
    power: str | None = None
    setpoint_c: float | None = None
    delta_c: float | None = None

    def is_empty(self) -> bool:
        return self.power is None and self.setpoint_c is None and self.delta_c is None

    @property
    def requests_temperature_change(self) -> bool:
        return self.setpoint_c is not None or self.delta_c is not None


class ValidatedAction(ProposedAction):
    """A ProposedAction whose values are inside safe bounds."""
    power: Power | None = None


class ActionValidation(CamelModel):
    original_action: ProposedAction
    action: ValidatedAction
    clamped: bool = False


class Classification(CamelModel):
    """Intent plus optional action, from the LLM or from the keyword rules."""
    intent: Intent
    requires_action: bool = False
    action: ProposedAction | None = None
    source: ClassifierSource = ClassifierSource.LLM

    @model_validator(mode="after")
    def _only_feedback_acts(self) -> "Classification":
        if self.intent != Intent.FEEDBACK:
            self.requires_action = False
            self.action = None
        return self

    @property
    def actionable(self) -> bool:
        return self.requires_action and self.action is not None and not self.action.is_empty()


class NextState(CamelModel):
    power: Power | None = None
    setpoint_c: float | None = None


class ChangeReasons(CamelModel):
    power_changed: bool = False
    setpoint_changed: bool = False


class CommandTarget(CamelModel):
    """Where and how to send a command; mode and fan are passed through."""
    address: str | None = None
    mode: str
    fan: str


class PublishResult(CamelModel):
    """What the command transport reports back for one publish."""
    published: bool
    reason: str | None = None
    topic: str | None = None


class DispatchOutcome(CamelModel):
    attempted: bool = False
    succeeded: bool = False
    reason: str | None = None
    address: str | None = None
    payload: dict[str, str] | None = None


class ReconciliationResult(CamelModel):
    current: DeviceSnapshot
    next: NextState
    changed: bool
    change_reasons: ChangeReasons
    dispatch: DispatchOutcome
    validation: ActionValidation

    def projection(self) -> dict[str, Any]:
        """Compact form for log lines."""
        return {
            "next": self.next.to_dict(),
            "changed": self.changed,
            "dispatched": self.dispatch.attempted,
            "published": self.dispatch.succeeded,
            "clamped": self.validation.clamped,
        }
