"""Request/response envelopes and conversation turns."""

import re
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import Field

from cooling_feedback.exceptions import LLMError, LLMFailure
from cooling_feedback.models.action import Intent, ProposedAction, ReconciliationResult
from cooling_feedback.models.common import CamelModel

MAX_ZONE_ID = 64
MAX_SESSION_ID = 80
MAX_MESSAGE = 2000
MAX_HISTORY_TEXT = 500

_WHITESPACE = re.compile(r"\s+")


def _collapse(text: str) -> str:
    return _WHITESPACE.sub(" ", text).strip()


class TurnRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class HistoryMessage(CamelModel):
    role: TurnRole
    text: str


class ConversationTurn(CamelModel):
    """One side of an exchange, as handed to the chat store."""
    zone_id: str
    session_id: str
    role: TurnRole
    text: str
    request_id: str | None = None
    intent: Intent | None = None
    requires_action: bool | None = None
    action: dict[str, Any] | None = None
    created_at: datetime = Field(default_factory=datetime.now)


class FeedbackRequest(CamelModel):
    """Inbound body of POST /feedback.

    Fields are loosely typed so that bad input is reported as a
    VALIDATION_ERROR by the service rather than by the framework.
    """
    message: Any = None
    zone_id: Any = None
    ac_id: Any = None
    session_id: Any = None
    history: Any = None

    def normalized_message(self) -> str:
        if not isinstance(self.message, str):
            return ""
        return _collapse(self.message)[:MAX_MESSAGE]

    def normalized_zone_id(self) -> str:
        raw = str(self.zone_id or self.ac_id or "").strip()
        return raw[:MAX_ZONE_ID]

    def normalized_session_id(self, client_host: str | None = None) -> str:
        raw = str(self.session_id or "").strip()[:MAX_SESSION_ID]
        if raw:
            return raw
        host = re.sub(r"[^a-zA-Z0-9]", "", client_host or "ip")[:20]
        return f"anon_{host}"

    def normalized_history(self, limit: int = 10) -> list[HistoryMessage]:
        """Keep the last ``limit`` entries, coerce roles, drop empty texts."""
        if not isinstance(self.history, list):
            return []
        messages = []
        for item in self.history[-limit:]:
            if not isinstance(item, dict):
                continue
            role = TurnRole.ASSISTANT if item.get("role") == "assistant" else TurnRole.USER
            text = item.get("text")
            text = _collapse(text)[:MAX_HISTORY_TEXT] if isinstance(text, str) else ""
            if text:
                messages.append(HistoryMessage(role=role, text=text))
        return messages


class LLMStatus(CamelModel):
    """Truthful record of whether the request ran in degraded mode."""
    ok: bool = True
    used_fallback: bool = False
    reason: LLMFailure | None = None
    message: str | None = None

    def record_failure(self, error: LLMError, stage: str) -> None:
        """Switch to degraded mode. ``stage`` is "rules" or "response"."""
        self.ok = False
        self.used_fallback = True
        self.reason = error.reason
        if error.reason == LLMFailure.RATE_LIMIT:
            self.message = f"LLM rate limit reached (429). Using fallback {stage}."
        elif error.reason == LLMFailure.TIMEOUT:
            self.message = f"LLM timed out (504). Using fallback {stage}."
        else:
            self.message = f"LLM error. Using fallback {stage}."


class FeedbackResponse(CamelModel):
    response: str
    original_message: str
    zone_id: str
    session_id: str
    address: str | None = None
    intent: Intent
    requires_action: bool
    action: ProposedAction | None = None
    read_data: dict[str, Any] | None = None
    computed: ReconciliationResult | None = None
    chat_stored: bool = False
    llm: LLMStatus
