"""FastAPI application entry point for the Cooling Feedback Assistant."""

import logging
import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import settings
from cooling_feedback.api.routes.conversations import router as conversations_router
from cooling_feedback.api.routes.devices import router as devices_router
from cooling_feedback.api.routes.feedback import router as feedback_router
from cooling_feedback.engine.classifier import GenerativeClassifier
from cooling_feedback.engine.orchestrator import FeedbackOrchestrator
from cooling_feedback.engine.reconciler import Reconciler
from cooling_feedback.engine.responder import ResponseSynthesizer
from cooling_feedback.exceptions import FeedbackError, InvalidRequestError
from cooling_feedback.integrations.openrouter import llm_client
from cooling_feedback.mqtt.client import mqtt_client
from cooling_feedback.storage.chat_store import ChatStore
from cooling_feedback.storage.device_store import DeviceStore

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
# Quiet noisy loggers
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("aiosqlite").setLevel(logging.WARNING)
logging.getLogger("mqtt").setLevel(logging.ERROR)
logging.getLogger("cooling_feedback.mqtt.client").setLevel(logging.INFO)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown lifecycle."""
    logger.info(f"Starting {settings.app_name}")

    # Initialize storage
    device_store = DeviceStore()
    chat_store = ChatStore()
    await device_store.initialize()
    await chat_store.initialize()

    # Load zone map and seed devices
    await device_store.load_from_yaml(settings.zones_config_path)

    # Connect MQTT
    try:
        await mqtt_client.connect()
    except Exception as e:
        logger.warning(f"MQTT broker not available: {e}. Commands will not be delivered.")

    if not llm_client.is_configured:
        logger.warning("OpenRouter API key not set. Every request will use the fallback path.")

    app.state.device_store = device_store
    app.state.chat_store = chat_store
    app.state.orchestrator = FeedbackOrchestrator(
        classifier=GenerativeClassifier(llm_client),
        synthesizer=ResponseSynthesizer(llm_client),
        reconciler=Reconciler(mqtt_client),
        device_store=device_store,
        chat_store=chat_store,
    )

    logger.info(f"{settings.app_name} is ready")
    yield

    # Shutdown
    logger.info("Shutting down...")
    await mqtt_client.disconnect()
    await llm_client.close()
    await chat_store.close()
    await device_store.close()


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.app_name,
        version="1.0.0",
        lifespan=lifespan,
    )

    # CORS for frontend
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        request_id = uuid.uuid4().hex[:8]
        request.state.request_id = request_id
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(
            f"[{request_id}] {request.method} {request.url.path} "
            f"-> {response.status_code} ({elapsed_ms:.0f}ms)"
        )
        response.headers["X-Request-ID"] = request_id
        return response

    @app.exception_handler(FeedbackError)
    async def feedback_error_handler(request: Request, exc: FeedbackError) -> JSONResponse:
        request_id = getattr(request.state, "request_id", None)
        logger.warning(f"[{request_id}] {exc.code}: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content={**exc.to_dict(), "requestId": request_id},
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        fields = sorted({".".join(str(p) for p in e.get("loc", ())[1:]) or "body" for e in exc.errors()})
        return await feedback_error_handler(
            request,
            InvalidRequestError(f"Invalid request: {', '.join(fields)}", fields=fields),
        )

    app.include_router(feedback_router, prefix="/api")
    app.include_router(conversations_router, prefix="/api")
    app.include_router(devices_router, prefix="/api")

    @app.get("/api/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "mqtt_connected": mqtt_client.is_connected,
            "llm_configured": llm_client.is_configured,
            "chat_writes_enabled": settings.chat_writes_enabled,
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "cooling_feedback.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
    )
