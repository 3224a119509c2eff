"""Feedback REST API route."""

from typing import Any

from fastapi import APIRouter, Depends, Request

from cooling_feedback.api.dependencies import get_orchestrator
from cooling_feedback.engine.orchestrator import FeedbackOrchestrator
from cooling_feedback.models.conversation import FeedbackRequest

router = APIRouter(tags=["feedback"])


@router.post("/feedback")
async def submit_feedback(
    body: FeedbackRequest,
    request: Request,
    orchestrator: FeedbackOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    """Turn a comfort complaint or question into a reply (and a command if needed)."""
    result = await orchestrator.handle(
        body,
        request_id=getattr(request.state, "request_id", ""),
        client_host=request.client.host if request.client else None,
    )
    return result.to_dict()
