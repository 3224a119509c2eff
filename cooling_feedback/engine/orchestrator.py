"""Feedback orchestrator: classify -> read state -> reconcile -> reply -> record.

One ``LLMStatus`` is created per request. The first LLM failure flips it to
degraded mode, and from then on both the action stage and the reply stage
use the deterministic path only.
"""

import logging

from config import settings
from cooling_feedback.engine.classifier import GenerativeClassifier, build_classification_prompt
from cooling_feedback.engine.reconciler import Reconciler, command_target
from cooling_feedback.engine.responder import ReplyContext, ResponseSynthesizer
from cooling_feedback.engine.rules import classify_fallback
from cooling_feedback.engine.telemetry import read_data_for, read_telemetry
from cooling_feedback.engine.validator import validate_action
from cooling_feedback.exceptions import (
    DeviceNotFoundError,
    InvalidRequestError,
    LLMError,
    PortNotFoundError,
)
from cooling_feedback.models.action import READ_INTENTS, Classification
from cooling_feedback.models.conversation import (
    ConversationTurn,
    FeedbackRequest,
    FeedbackResponse,
    LLMStatus,
    TurnRole,
)
from cooling_feedback.storage.chat_store import ChatStore
from cooling_feedback.storage.device_store import DeviceStore

logger = logging.getLogger(__name__)


class FeedbackOrchestrator:
    """Runs one feedback request end to end.

    Collaborators are built once at startup and shared; nothing here is
    mutated per request.
    """

    def __init__(
        self,
        *,
        classifier: GenerativeClassifier,
        synthesizer: ResponseSynthesizer,
        reconciler: Reconciler,
        device_store: DeviceStore,
        chat_store: ChatStore | None = None,
        record_turns: bool | None = None,
        history_limit: int | None = None,
    ):
        self._classifier = classifier
        self._synthesizer = synthesizer
        self._reconciler = reconciler
        self._device_store = device_store
        self._chat_store = chat_store
        self._record_turns = settings.chat_writes_enabled if record_turns is None else record_turns
        self._history_limit = history_limit or settings.history_limit

    async def handle(
        self,
        request: FeedbackRequest,
        request_id: str = "",
        client_host: str | None = None,
    ) -> FeedbackResponse:
        zone_id = request.normalized_zone_id()
        session_id = request.normalized_session_id(client_host)
        message = request.normalized_message()

        if not zone_id:
            raise InvalidRequestError("zoneId is required")
        if not message:
            raise InvalidRequestError("message is required")

        logger.info(f"[{request_id}] Feedback zone={zone_id} session={session_id}")

        status = LLMStatus()
        history = request.normalized_history(self._history_limit)
        prompt = build_classification_prompt(zone_id, history, message)
        classification = await self._classify(prompt, zone_id, message, status, request_id)

        logger.info(
            f"[{request_id}] Intent classified: {classification.intent.value} "
            f"requires_action={classification.requires_action} source={classification.source.value} "
            f"action={classification.action.to_dict() if classification.action else None}"
        )

        # Single read of current state, reused for the action and the reply
        resolved = await self._device_store.find_device(zone_id)
        if resolved.device is None:
            raise DeviceNotFoundError(
                f"Device not found for zoneId: {zone_id}", zoneId=zone_id, sessionId=session_id
            )
        port = await self._device_store.find_primary_port(resolved.device)
        if port is None:
            raise PortNotFoundError(
                f"Port not found for device: {zone_id}", zoneId=zone_id, sessionId=session_id
            )

        snapshot = read_telemetry(resolved.device, port)
        logger.debug(
            f"[{request_id}] DB read address={resolved.address} device={resolved.device.summary()} "
            f"port={port.summary()} snapshot={snapshot.to_dict()}"
        )

        read_data = None
        computed = None
        if classification.intent in READ_INTENTS:
            read_data = read_data_for(classification.intent, snapshot)
        elif classification.actionable:
            validation = validate_action(classification.action)
            computed = await self._reconciler.reconcile(
                snapshot, validation, command_target(resolved.address, port)
            )
            logger.info(f"[{request_id}] Reconciled: {computed.projection()}")

        context = ReplyContext(
            message=message,
            zone_id=zone_id,
            intent=classification.intent,
            requires_action=classification.requires_action,
            action=classification.action,
            read_data=read_data,
            computed=computed,
        )
        reply = await self._synthesizer.synthesize(context, status)

        chat_stored = await self._record_exchange(
            zone_id, session_id, request_id, message, reply, classification
        )

        return FeedbackResponse(
            response=reply,
            original_message=request.message,
            zone_id=zone_id,
            session_id=session_id,
            address=resolved.address,
            intent=classification.intent,
            requires_action=classification.requires_action,
            action=classification.action,
            read_data=read_data,
            computed=computed,
            chat_stored=chat_stored,
            llm=status,
        )

    async def _classify(
        self,
        prompt: str,
        zone_id: str,
        message: str,
        status: LLMStatus,
        request_id: str,
    ) -> Classification:
        try:
            return await self._classifier.classify(prompt, zone_id)
        except LLMError as e:
            status.record_failure(e, "rules")
            logger.error(
                f"[{request_id}] LLM intent classification failed - using fallback: "
                f"{e.reason.value} {e}"
            )
            return classify_fallback(message)

    async def _record_exchange(
        self,
        zone_id: str,
        session_id: str,
        request_id: str,
        message: str,
        reply: str,
        classification: Classification,
    ) -> bool:
        """Best effort: both turns or neither. A storage failure is logged, never surfaced."""
        if not self._record_turns or self._chat_store is None:
            return False
        try:
            await self._chat_store.record_turns([
                ConversationTurn(
                    zone_id=zone_id,
                    session_id=session_id,
                    role=TurnRole.USER,
                    text=message,
                    request_id=request_id,
                ),
                ConversationTurn(
                    zone_id=zone_id,
                    session_id=session_id,
                    role=TurnRole.ASSISTANT,
                    text=reply,
                    request_id=request_id,
                    intent=classification.intent,
                    requires_action=classification.requires_action,
                    action=classification.action.to_dict() if classification.action else None,
                ),
            ])
        except Exception as e:
            logger.warning(f"[{request_id}] Chat write failed: {e}")
            return False
        return True
