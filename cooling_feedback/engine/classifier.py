"""Generative intent classifier backed by the LLM client."""

import logging

from pydantic import ValidationError

from config import settings
from cooling_feedback.exceptions import LLMError, LLMFailure
from cooling_feedback.integrations.openrouter import OpenRouterClient, with_deadline
from cooling_feedback.models.action import Classification, ClassifierSource
from cooling_feedback.models.conversation import HistoryMessage, TurnRole

logger = logging.getLogger(__name__)

CLASSIFY_PROMPT = """You are a cooling management feedback assistant for air-conditioned zones.
Return ONLY strict JSON (no markdown, no extra text).

Return shape:
{"intent": "FEEDBACK", "requiresAction": true, "action": {"power": "ON", "setpointC": 22, "deltaC": -2}}

Rules:
- intent is one of: GET_SETPOINT, GET_ROOM_TEMPERATURE, GET_HUMIDITY, GET_CONSUMPTION, GET_RUN_HOURS, FEEDBACK, OTHER
- requiresAction is true only for FEEDBACK that asks for a change
- action only when requiresAction is true; it may include power ("ON" or "OFF"), setpointC (absolute, °C) and deltaC (relative, °C)
- use setpointC OR deltaC, never both
- increase/decrease without a number -> deltaC +2 / -2
- still hot / too hot -> {"power": "ON", "deltaC": -2}; still cold / too cold -> {"power": "ON", "deltaC": 2}

Examples:
- "current temperature" -> {"intent": "GET_ROOM_TEMPERATURE", "requiresAction": false}
- "humidity?" -> {"intent": "GET_HUMIDITY", "requiresAction": false}
- "what is the setpoint" -> {"intent": "GET_SETPOINT", "requiresAction": false}
- "power consumption" -> {"intent": "GET_CONSUMPTION", "requiresAction": false}
- "run hours" -> {"intent": "GET_RUN_HOURS", "requiresAction": false}
- "set temp to 23" -> {"intent": "FEEDBACK", "requiresAction": true, "action": {"setpointC": 23}}
- "still hot" -> {"intent": "FEEDBACK", "requiresAction": true, "action": {"power": "ON", "deltaC": -2}}
- "turn off the ac" -> {"intent": "FEEDBACK", "requiresAction": true, "action": {"power": "OFF"}}
- "thanks!" -> {"intent": "OTHER", "requiresAction": false}"""


def build_classification_prompt(zone_id: str, history: list[HistoryMessage], message: str) -> str:
    """Zone, rolling history and the latest message, as one user prompt."""
    lines = [f"Zone ID: {zone_id}"]
    if history:
        lines.append("Conversation so far:")
        for m in history:
            speaker = "Assistant" if m.role == TurnRole.ASSISTANT else "User"
            lines.append(f"{speaker}: {m.text}")
        lines.append("")
    lines.append(f"Latest user message: {message}")
    return "\n".join(lines)


class GenerativeClassifier:
    """Asks the LLM for ``{intent, requiresAction, action}``.

    Any failure (transport, deadline, unparseable or off-schema output)
    surfaces as LLMError so the caller can fall back to the keyword rules.
    """

    def __init__(self, llm: OpenRouterClient, timeout_seconds: float | None = None):
        self._llm = llm
        self._timeout = timeout_seconds or settings.llm_timeout_seconds

    async def classify(self, prompt: str, zone_id: str) -> Classification:
        logger.info(f"Calling LLM (intent) zone={zone_id or 'none'} prompt_length={len(prompt)}")
        data = await with_deadline(
            self._llm.chat_json(
                messages=[
                    {"role": "system", "content": CLASSIFY_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                temperature=0.2,
                max_tokens=140,
            ),
            self._timeout,
            what="Intent classification",
        )

        try:
            result = Classification.model_validate(data)
        except ValidationError as e:
            logger.error(f"Intent JSON off schema for zone {zone_id}: {str(data)[:400]}")
            raise LLMError(LLMFailure.ERROR, "Classification did not match schema") from e

        result.source = ClassifierSource.LLM
        return result
