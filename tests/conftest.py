from datetime import datetime, timezone
from typing import Any
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from cooling_feedback.engine.classifier import GenerativeClassifier
from cooling_feedback.engine.orchestrator import FeedbackOrchestrator
from cooling_feedback.engine.reconciler import Reconciler
from cooling_feedback.engine.responder import ResponseSynthesizer
from cooling_feedback.models.action import PublishResult
from cooling_feedback.models.device import DeviceRecord, DeviceSnapshot, PortRecord, Power
from cooling_feedback.storage.chat_store import ChatStore
from cooling_feedback.storage.device_store import DeviceStore

OFFICE_MAC = "68:FE:71:2C:50:C0"
FIXED_NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


class FakeDispatcher:
    """Records every publish; can be told to fail or raise."""

    def __init__(self, published: bool = True, reason: str | None = None, error: Exception | None = None):
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self._published = published
        self._reason = reason
        self._error = error

    async def publish(self, address: str, payload: dict[str, Any]) -> PublishResult:
        self.calls.append((address, payload))
        if self._error is not None:
            raise self._error
        return PublishResult(published=self._published, reason=self._reason, topic=address)


def make_snapshot(setpoint_c: float | None = 24.0, power: Power | None = Power.ON, **kwargs) -> DeviceSnapshot:
    return DeviceSnapshot(setpoint_c=setpoint_c, power=power, last_update_at=FIXED_NOW, **kwargs)


@pytest.fixture
def dispatcher() -> FakeDispatcher:
    return FakeDispatcher()


@pytest.fixture
def llm() -> AsyncMock:
    """LLM client double. Tests set ``chat_json`` / ``chat`` behaviour."""
    client = AsyncMock()
    client.chat_json.return_value = {"intent": "OTHER", "requiresAction": False}
    client.chat.return_value = "Happy to help."
    return client


@pytest_asyncio.fixture
async def device_store(tmp_path):
    store = DeviceStore(db_path=str(tmp_path / "devices.db"), zone_addresses={"1": OFFICE_MAC})
    await store.initialize()
    await store.upsert_device(DeviceRecord(
        device_id="AC-001",
        mac_id=OFFICE_MAC,
        port_ids=["AC-001-P1"],
        humidity_pct=48.0,
        consumption_w=1150,
        run_hours=812.5,
        last_ping=FIXED_NOW,
    ))
    await store.upsert_port(PortRecord(
        port_id="AC-001-P1",
        device_id="AC-001",
        val=1,
        ac_temp=24,
        ac_mode=0,
        ac_fan_speed=2,
        room_temp="26.5",
    ))
    yield store
    await store.close()


@pytest_asyncio.fixture
async def chat_store(tmp_path):
    store = ChatStore(db_path=str(tmp_path / "chat.db"))
    await store.initialize()
    yield store
    await store.close()


@pytest.fixture
def orchestrator(llm, dispatcher, device_store, chat_store) -> FeedbackOrchestrator:
    return FeedbackOrchestrator(
        classifier=GenerativeClassifier(llm, timeout_seconds=1.0),
        synthesizer=ResponseSynthesizer(llm, timeout_seconds=1.0),
        reconciler=Reconciler(dispatcher, fallback_setpoint_c=24.0),
        device_store=device_store,
        chat_store=chat_store,
        record_turns=True,
    )
