"""FastAPI dependencies for objects built in the application lifespan."""

from fastapi import Request

from cooling_feedback.engine.orchestrator import FeedbackOrchestrator
from cooling_feedback.storage.chat_store import ChatStore
from cooling_feedback.storage.device_store import DeviceStore


def get_orchestrator(request: Request) -> FeedbackOrchestrator:
    return request.app.state.orchestrator


def get_device_store(request: Request) -> DeviceStore:
    return request.app.state.device_store


def get_chat_store(request: Request) -> ChatStore:
    return request.app.state.chat_store
