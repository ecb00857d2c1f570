"""Main entry point for the Reflect chat study API."""
import logging
import time
from datetime import datetime, timezone
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import PORT, APP_ENV, IS_PRODUCTION, CORS_ORIGINS, LOG_LEVEL, LOG_FORMAT, SHUTDOWN_DRAIN_SECONDS
from logger import setup_logging
from models.api import (
    StartConversationRequest,
    StartConversationResponse,
    MessageRequest,
    MessageResponse,
    EndConversationResponse,
    ErrorResponse,
)
from services.conversation_manager import ConversationManager
from services import errors
from services.errors import ConversationError, classify_exception

setup_logging(LOG_LEVEL, LOG_FORMAT)
logger = logging.getLogger(__name__)

CLEAR_CONFIRMATION = "DELETE_ALL_DATA"

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    410: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}

# Initialize FastAPI app
app = FastAPI(
    title="Reflect Chat Study",
    description="Time-boxed research conversations about climate change beliefs",
    version="1.0.0"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "x-admin-token"],
)


@app.on_event("startup")
async def startup_event():
    """Initialize the conversation manager on startup."""
    logger.info("Initializing Reflect chat study services...")

    try:
        app.state.conversation_manager = ConversationManager.from_config()
        logger.info("All services initialized successfully")
    except Exception as e:
        # Production without a reachable primary store lands here and aborts startup
        logger.error(f"Failed to initialize services: {e}", exc_info=True)
        raise


@app.on_event("shutdown")
async def shutdown_event():
    """Drain in-flight writes and release store connections."""
    manager = getattr(app.state, "conversation_manager", None)
    if manager is not None:
        manager.shutdown(SHUTDOWN_DRAIN_SECONDS)


def get_conversation_manager(request: Request) -> ConversationManager:
    """Dependency returning the process's conversation manager."""
    manager = getattr(request.app.state, "conversation_manager", None)
    if manager is None:
        raise HTTPException(status_code=503, detail="Service not initialized")
    return manager


@app.middleware("http")
async def chat_logger(request: Request, call_next):
    """Log timing for conversation endpoints."""
    if not request.url.path.startswith("/api/conversations"):
        return await call_next(request)

    start_time = time.time()
    response = await call_next(request)
    duration_ms = int((time.time() - start_time) * 1000)
    logger.info(
        f"[CHAT] {request.method} {request.url.path} - {response.status_code} - {duration_ms}ms",
        extra={"duration_ms": duration_ms}
    )
    return response


@app.exception_handler(ConversationError)
async def conversation_error_handler(request: Request, exc: ConversationError):
    """Render lifecycle errors with their category tag."""
    body = {"error": exc.error.message, "type": exc.error.code}
    if not IS_PRODUCTION and exc.error.details:
        body["details"] = exc.error.details
    return JSONResponse(status_code=exc.status_code, content=body)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Render malformed or missing request bodies as validation errors."""
    fields = [".".join(str(part) for part in error.get("loc", ())) for error in exc.errors()]
    error = errors.validation_error("Invalid request body")
    error.error.details = {"fields": fields}
    return await conversation_error_handler(request, error)


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    """Absorb unexpected failures behind a generic message."""
    category, message = classify_exception(exc)
    logger.error(f"Unexpected error on {request.url.path}: {exc}", exc_info=True)
    body = {"error": message, "type": category}
    if not IS_PRODUCTION:
        body["technical_error"] = str(exc)
    return JSONResponse(status_code=500, content=body)


@app.get("/")
async def root():
    """Health check endpoint."""
    return {"status": "ok", "message": "Reflect Chat Study API"}


@app.get("/health")
def health(manager: ConversationManager = Depends(get_conversation_manager)):
    """Detailed health check including primary store reachability."""
    start_time = time.time()
    db_start = time.time()
    db_available = manager.primary_available()
    db_connection_ms = int((time.time() - db_start) * 1000)

    return {
        "ok": True,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "database": {
            "available": db_available,
            "connection_time_ms": db_connection_ms
        },
        "environment": APP_ENV,
        "response_time_ms": int((time.time() - start_time) * 1000)
    }


@app.get("/healthz")
def healthz(manager: ConversationManager = Depends(get_conversation_manager)):
    """Lightweight liveness check."""
    return {
        "ok": True,
        "time": datetime.now(timezone.utc).isoformat(),
        "activeConversations": manager.active_conversations()
    }


@app.get("/api/admin/health-db")
def health_db(manager: ConversationManager = Depends(get_conversation_manager)):
    """Per-store availability and session counts."""
    stats = manager.storage_stats()
    primary = next(iter(stats.values()))
    body = {
        "ok": bool(primary["available"]),
        "stores": stats,
        "environment": APP_ENV,
        "timestamp": datetime.now(timezone.utc).isoformat()
    }
    return JSONResponse(status_code=200 if body["ok"] else 503, content=body)


@app.post("/api/conversations/start", response_model=StartConversationResponse, responses=ERROR_RESPONSES)
def start_conversation(
    request: StartConversationRequest,
    manager: ConversationManager = Depends(get_conversation_manager)
) -> StartConversationResponse:
    """
    Start a new conversation for a participant.

    Args:
        request: StartConversationRequest with participantId

    Returns:
        StartConversationResponse with the new conversationId

    Raises:
        ConversationError: validation_error or participant_not_found
    """
    conversation_id = manager.start_conversation(request.participant_id)
    return StartConversationResponse(conversation_id=conversation_id)


@app.post("/api/conversations/{conversation_id}/message", response_model=MessageResponse, responses=ERROR_RESPONSES)
def send_message(
    conversation_id: str,
    request: MessageRequest,
    manager: ConversationManager = Depends(get_conversation_manager)
) -> MessageResponse:
    """
    Submit a participant message and return the assistant reply.

    Returns:
        MessageResponse with reply, whether the conversation ended, and
        whether the turn reached durable storage
    """
    result = manager.submit_turn(conversation_id, request.content)
    return MessageResponse(reply=result.reply, ended=result.ended, persisted=result.persisted)


@app.post("/api/conversations/{conversation_id}/end", response_model=EndConversationResponse, responses=ERROR_RESPONSES)
def end_conversation(
    conversation_id: str,
    manager: ConversationManager = Depends(get_conversation_manager)
) -> EndConversationResponse:
    """End an open conversation (time limit reached on the client, or participant choice)."""
    result = manager.end_conversation(conversation_id)
    return EndConversationResponse(ok=True, reply=result.reply, duration_seconds=result.duration_seconds)


@app.get("/debug/last-session")
def last_session(manager: ConversationManager = Depends(get_conversation_manager)):
    """Most recently completed session (development only)."""
    if IS_PRODUCTION:
        raise HTTPException(status_code=404, detail="Not found")

    session = manager.latest_completed_session()
    if session is None:
        return {"message": "No sessions found"}
    return session.to_dict()


@app.delete("/api/admin/clear-all-data")
def clear_all_data(confirm: str = "", manager: ConversationManager = Depends(get_conversation_manager)):
    """Permanently delete every stored conversation."""
    if confirm != CLEAR_CONFIRMATION:
        return JSONResponse(
            status_code=400,
            content={
                "error": "Missing confirmation parameter",
                "required": f"Add ?confirm={CLEAR_CONFIRMATION} to the URL to confirm data deletion",
                "warning": "This will permanently delete ALL conversation data from every store"
            }
        )

    logger.warning("ADMIN DATA CLEAR INITIATED - all conversation data will be deleted")
    result = manager.clear_all_data()
    return JSONResponse(status_code=200 if result["success"] else 500, content=result)


if __name__ == "__main__":
    import uvicorn
    logger.info(f"Starting Reflect Chat Study API on port {PORT}")
    uvicorn.run(app, host="0.0.0.0", port=PORT)
