"""Keyword rules that map user text to an intent and action without an LLM.

This is the only classifier that is always available, so every value it
emits is already inside the validator's bounds.
"""

import re

from cooling_feedback.engine.validator import clamp_delta, clamp_setpoint
from cooling_feedback.models.action import Classification, ClassifierSource, Intent, ProposedAction
from cooling_feedback.models.device import Power

DEFAULT_STEP_C = 2.0

_NUMBER = r"(-?\d+(?:\.\d+)?)"

# Read-only families, checked in order. A setpoint followed by a number is a
# command ("setpoint to 24"), not a question.
READ_RULES: list[tuple[Intent, re.Pattern]] = [
    (Intent.GET_HUMIDITY, re.compile(r"\bhumid(?:ity)?\b")),
    (Intent.GET_CONSUMPTION, re.compile(r"consumption|\bwatts?\b|\bkwh?\b|\benergy\b")),
    (Intent.GET_RUN_HOURS, re.compile(r"\brun\s*hours?\b|\brun\s*time\b|\bruntime\b")),
    (Intent.GET_SETPOINT, re.compile(
        r"set\s*point(?!\s*(?:to\s*)?-?\d)"
        r"|\btemp(?:erature)?\s*set\b(?!\s*(?:to\s*)?-?\d)"
        r"|\bset\s*temp\s*\?"
    )),
    (Intent.GET_ROOM_TEMPERATURE, re.compile(
        r"\bcurrent\s*temp(?:erature)?\b|\broom\s*temp(?:erature)?\b|\btemperature\s*now\b"
    )),
]

_OFF = re.compile(r"\b(?:turn|switch|power)\s+(?:it\s+|the\s+ac\s+|the\s+unit\s+|ac\s+)?off\b|\bac\s+off\b")
_ON = re.compile(r"\b(?:turn|switch|power)\s+(?:it\s+|the\s+ac\s+|the\s+unit\s+|ac\s+)?on\b|\bac\s+on\b")
_SET_TEMP = re.compile(
    r"(?:\bset\s+(?:the\s+)?(?:ac\s+)?(?:temp(?:erature)?|set\s*point)|\bset\s*point|\btemp(?:erature)?\s+set)"
    r"\s*(?:to\s*)?" + _NUMBER
)
_INCREASE = re.compile(r"\b(?:increase|raise|higher)\b(?:\D*?" + _NUMBER + r")?")
_DECREASE = re.compile(r"\b(?:decrease|lower|reduce)\b(?:\D*?" + _NUMBER + r")?")

_HOT = re.compile(r"\b(?:hot|boiling|sweltering)\b")
_COLD = re.compile(r"\b(?:cold|chilly|freezing)\b")


def _step(match: re.Match) -> float:
    """Magnitude of a relative change: the number after the keyword, else 2."""
    if match.group(1) is None:
        return DEFAULT_STEP_C
    return abs(float(match.group(1)))


def classify_fallback(text: str) -> Classification:
    """Deterministic intent + action. First matching rule wins."""
    t = (text or "").strip().lower()

    for intent, pattern in READ_RULES:
        if pattern.search(t):
            return Classification(intent=intent, requires_action=False, source=ClassifierSource.RULES)

    action = ProposedAction()

    if _OFF.search(t):
        action.power = Power.OFF.value
    if _ON.search(t):
        action.power = Power.ON.value

    set_match = _SET_TEMP.search(t)
    if set_match:
        action.setpoint_c = clamp_setpoint(float(set_match.group(1)))

    increase = _INCREASE.search(t)
    decrease = _DECREASE.search(t)
    if increase:
        action.delta_c = clamp_delta(_step(increase))
    elif decrease:
        action.delta_c = clamp_delta(-_step(decrease))

    # Heat/cold complaints only apply when nothing explicit was asked for
    if action.is_empty():
        if _HOT.search(t):
            action = ProposedAction(power=Power.ON.value, delta_c=-DEFAULT_STEP_C)
        elif _COLD.search(t):
            action = ProposedAction(power=Power.ON.value, delta_c=DEFAULT_STEP_C)

    if action.is_empty():
        return Classification(intent=Intent.OTHER, requires_action=False, source=ClassifierSource.RULES)
    return Classification(
        intent=Intent.FEEDBACK,
        requires_action=True,
        action=action,
        source=ClassifierSource.RULES,
    )
