"""Response synthesizer: LLM-written reply, or templated fallback."""

import json
import logging
import re
from typing import Any

from pydantic import BaseModel

from config import settings
from cooling_feedback.exceptions import LLMError, LLMFailure
from cooling_feedback.integrations.openrouter import OpenRouterClient, with_deadline
from cooling_feedback.models.action import READ_INTENTS, Intent, ProposedAction, ReconciliationResult
from cooling_feedback.models.common import format_number
from cooling_feedback.models.conversation import LLMStatus
from cooling_feedback.models.device import Power

logger = logging.getLogger(__name__)

REPLY_PROMPT = """You are a cooling management feedback assistant for air-conditioned zones.
Write 1-2 short sentences, natural and helpful, in the user's language.
If the answer involves a temperature or setpoint, ALWAYS include °C (e.g. 24°C) and finish the sentence.
Only describe changes the facts confirm. If a command was not delivered, say so.
Plain text only: no JSON, no markdown."""

LIMITED_MODE_NOTE = "Note: the assistant is in limited mode right now, so this is a standard reply.\n"

_TERMINAL = re.compile(r"[.!?]$")
_MARKDOWN = re.compile(r"\*\*|__|`")
_HEADING = re.compile(r"^#+\s*", re.MULTILINE)


class ReplyContext(BaseModel):
    """Facts the reply must be consistent with."""
    message: str
    zone_id: str
    intent: Intent
    requires_action: bool = False
    action: ProposedAction | None = None
    read_data: dict[str, Any] | None = None
    computed: ReconciliationResult | None = None

    def cited_temperatures(self) -> list[float]:
        values = []
        if self.computed is not None:
            for setpoint in (self.computed.next.setpoint_c, self.computed.current.setpoint_c):
                if setpoint is not None:
                    values.append(setpoint)
        for key in ("setpointC", "roomTempC"):
            value = (self.read_data or {}).get(key)
            if isinstance(value, (int, float)):
                values.append(float(value))
        return list(dict.fromkeys(values))


def build_reply_prompt(context: ReplyContext) -> str:
    lines = [
        f"Zone ID: {context.zone_id}",
        f"User message: {context.message}",
        f"Intent: {context.intent.value}",
        f"requiresAction: {str(context.requires_action).lower()}",
    ]
    if context.action is not None:
        lines.append(f"Action decided: {json.dumps(context.action.to_dict())}")
    if context.read_data is not None:
        lines.append(f"Read data: {json.dumps(context.read_data)}")

    computed = context.computed
    if computed is not None:
        lines.append(f"Computed change: {json.dumps(computed.to_dict())}")
        if not computed.changed:
            lines.append(
                "IMPORTANT: The desired state already matches the current state. "
                "Tell the user it is already set correctly."
            )
        else:
            lines.append(
                f"State changed: {json.dumps(computed.change_reasons.to_dict())}. "
                f"Command delivered: {str(computed.dispatch.succeeded).lower()}."
            )
            if not computed.dispatch.succeeded:
                lines.append("The command was NOT delivered. Do not claim the change was applied.")
        if computed.validation.clamped:
            lines.append("Note: Action values were clamped to safe ranges (16-30°C).")

    lines.append("Reply to the user now.")
    return "\n".join(lines)


def _with_unit(text: str, temperatures: list[float]) -> str:
    """Make sure every cited temperature carries °C."""
    for value in temperatures:
        number = re.escape(format_number(value))
        if float(value).is_integer():
            number += r"(?:\.0+)?"
        pattern = (
            rf"(?<![\d.]){number}(?![\d.])(?!\s*°)"
            r"(?:\s*(?:degrees?|deg)\b)?(?:\s*(?:celsius|c)\b)?"
        )
        text = re.sub(pattern, f"{format_number(value)}°C", text, flags=re.IGNORECASE)
    return text


def finish_reply(text: str, temperatures: list[float] | None = None) -> str:
    """Normalize LLM prose: strip markdown, add units, end with punctuation."""
    t = _HEADING.sub("", _MARKDOWN.sub("", text or "")).strip()
    if not t:
        return ""
    t = _with_unit(t, temperatures or [])
    if not _TERMINAL.search(t):
        t = f"{t}."
    return t


def _power_word(power: Power | None) -> str:
    return power.value.lower() if power else "on"


def _read_reply(intent: Intent, data: dict[str, Any]) -> str:
    if intent == Intent.GET_SETPOINT:
        sp, p = data.get("setpointC"), data.get("power")
        if sp is None and p is None:
            return "I couldn't read the setpoint right now."
        if sp is None:
            return f"The AC power is {str(p).lower()}."
        power = f" and power is {str(p).lower()}" if p else ""
        return f"The current setpoint is {format_number(sp)}°C{power}."

    if intent == Intent.GET_ROOM_TEMPERATURE:
        rt = data.get("roomTempC")
        if rt is None:
            return "I couldn't read the room temperature right now."
        return f"The current room temperature is {format_number(rt)}°C."

    if intent == Intent.GET_HUMIDITY:
        h = data.get("humidityPct")
        if h is None:
            return "I couldn't read humidity right now."
        return f"Current humidity is {format_number(h)}%."

    if intent == Intent.GET_CONSUMPTION:
        w = data.get("consumptionW")
        if w is None:
            return "I couldn't read power consumption right now."
        return f"Current consumption is {format_number(w)}W."

    rh = data.get("runHours")
    if rh is None:
        return "I couldn't read run hours right now."
    return f"Total run hours is {format_number(rh)}."


def _action_reply(computed: ReconciliationResult) -> str:
    nxt = computed.next
    setpoint = f"{format_number(nxt.setpoint_c)}°C" if nxt.setpoint_c is not None else None

    if not computed.changed:
        if setpoint:
            return f"Already set: {_power_word(nxt.power)} at {setpoint}."
        if nxt.power:
            return f"Already {_power_word(nxt.power)}."
        return "No change needed."

    if not computed.dispatch.succeeded:
        return (
            "I worked out the change, but the command could not be delivered to the controller. "
            "Please check the controller connection."
        )

    reasons = computed.change_reasons
    if nxt.power == Power.OFF:
        if reasons.setpoint_changed and setpoint:
            return f"Done. Turned the AC off and set it to {setpoint}."
        return "Done. Turned the AC off."
    if reasons.setpoint_changed and setpoint:
        return f"Done. The AC is on and set to {setpoint}."
    if setpoint:
        return f"Done. Turned the AC on at {setpoint}."
    return "Done. Turned the AC on."


def fallback_reply(context: ReplyContext, limited: bool = True) -> str:
    """Deterministic reply keyed by intent, or by the reconciliation outcome."""
    prefix = LIMITED_MODE_NOTE if limited else ""

    if context.intent in READ_INTENTS:
        return prefix + _read_reply(context.intent, context.read_data or {})

    if context.computed is not None:
        reply = _action_reply(context.computed)
        if context.computed.validation.clamped:
            reply += " (Adjusted to the safe range of 16-30°C.)"
        return prefix + reply

    return prefix + (
        "Thanks, I've noted your feedback. You can ask me to set a temperature, "
        "turn the AC on or off, or check the room temperature."
    )


class ResponseSynthesizer:
    """Builds the user-facing reply.

    The generative path is used only while ``status`` is not degraded; once
    any LLM call in the request has failed, every reply is templated.
    """

    def __init__(self, llm: OpenRouterClient, timeout_seconds: float | None = None):
        self._llm = llm
        self._timeout = timeout_seconds or settings.llm_timeout_seconds

    async def synthesize(self, context: ReplyContext, status: LLMStatus) -> str:
        if status.used_fallback:
            return fallback_reply(context)
        try:
            return await self.generate(context)
        except LLMError as e:
            logger.error(f"LLM response generation failed, using fallback: {e.reason.value} {e}")
            status.record_failure(e, "response")
            return fallback_reply(context)

    async def generate(self, context: ReplyContext) -> str:
        logger.info(f"Calling LLM (response) zone={context.zone_id or 'none'}")
        raw = await with_deadline(
            self._llm.chat(
                messages=[
                    {"role": "system", "content": REPLY_PROMPT},
                    {"role": "user", "content": build_reply_prompt(context)},
                ],
                temperature=0.5,
                max_tokens=180,
            ),
            self._timeout,
            what="Response generation",
        )
        text = finish_reply(raw, context.cited_temperatures())
        if not text:
            raise LLMError(LLMFailure.ERROR, "LLM returned an empty reply")
        return text
