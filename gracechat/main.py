import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session

from gracechat.config import settings
from gracechat.conversation import exchange
from gracechat.errors import InvalidInputError, NotFoundError, PersistenceError
from gracechat.logging_utils import RequestLoggingMiddleware, log_exchange_data, setup_logging
from gracechat.metrics import get_metrics, get_metrics_content_type, record_exchange_outcome
from gracechat.schemas import (
    ClassificationPayload,
    ErrorResponse,
    ExchangeRequest,
    ExchangeResponse,
    HealthResponse,
    MessageResponse,
    SessionDetail,
    SessionListResponse,
    SessionSummary,
)
from gracechat.storage import (
    check_db_health,
    get_db,
    get_session,
    init_db,
    list_messages_ordered,
    list_sessions,
)


# Setup structured JSON logging
setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.
    - Startup: Initialize database and create tables
    """
    init_db()
    yield


app = FastAPI(
    title="Grace Chat API",
    description="Conversation service pairing each user message with a categorized reply",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
)


def to_message_response(message) -> MessageResponse:
    return MessageResponse(
        id=message.id,
        session_id=message.session_id,
        content=message.content,
        sender=message.sender,
        category=message.category,
        created_at=message.created_at,
    )


# =============================================================================
# Health Check Routes
# =============================================================================

@app.get("/health/live", response_model=HealthResponse)
async def health_live() -> HealthResponse:
    """Liveness probe - always returns 200 once the app is running."""
    return HealthResponse(status="ok")


@app.get("/health/ready", response_model=HealthResponse)
async def health_ready(response: Response) -> HealthResponse:
    """
    Readiness probe - returns 200 only if the DB is reachable and the
    schema is applied, 503 otherwise.
    """
    if not check_db_health():
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(
            status="not_ready",
            reason="Database not reachable or schema not applied"
        )
    return HealthResponse(status="ready")


# =============================================================================
# Chat Routes
# =============================================================================

@app.post(
    "/api/chat/message",
    response_model=ExchangeResponse,
    responses={
        422: {"model": ErrorResponse, "description": "Empty message content"},
        500: {"model": ErrorResponse, "description": "Message could not be stored"},
    }
)
async def send_message(
    body: ExchangeRequest,
    request: Request,
    db: Session = Depends(get_db)
) -> ExchangeResponse:
    """
    Submit one exchange.

    - Resolves the session from sessionId, or creates a new one
    - Stores the user message and the classified bot reply together
    - Returns both messages and the session to use next
    """
    logger.info(f"Exchange request received: session_id={body.session_id}")

    try:
        result = exchange(db, body.content, session_id=body.session_id)
    except InvalidInputError as e:
        record_exchange_outcome("invalid_input")
        log_exchange_data(request, session_id=body.session_id, result="invalid_input")
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(e)
        )
    except NotFoundError as e:
        record_exchange_outcome("not_found")
        log_exchange_data(request, session_id=body.session_id, result="not_found")
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except PersistenceError as e:
        logger.error(f"Exchange failed: {e}")
        record_exchange_outcome("error")
        log_exchange_data(request, session_id=body.session_id, result="error")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to process message"
        )

    category = result.category.value
    record_exchange_outcome("created", category=category)
    log_exchange_data(request, session_id=result.session.id, category=category, result="created")

    return ExchangeResponse(
        session_id=result.session.id,
        user_message=to_message_response(result.user_message),
        bot_message=to_message_response(result.bot_message),
        response=ClassificationPayload(
            category=result.category,
            content=result.content,
            explanation=result.classification.explanation,
        ),
    )


@app.get(
    "/api/chat/sessions",
    response_model=SessionListResponse,
    responses={500: {"model": ErrorResponse}},
)
async def get_chat_sessions(db: Session = Depends(get_db)) -> SessionListResponse:
    """
    List sessions, most recently active first.

    Each session carries its first message as a preview.
    """
    try:
        rows = list_sessions(db, limit=settings.SESSION_LIST_LIMIT)
    except PersistenceError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch chat sessions"
        )

    data = [
        SessionSummary(
            id=chat_session.id,
            user_id=chat_session.user_id,
            created_at=chat_session.created_at,
            updated_at=chat_session.updated_at,
            messages=[to_message_response(preview)] if preview is not None else [],
        )
        for chat_session, preview in rows
    ]
    logger.info(f"GET /api/chat/sessions: returned {len(data)} sessions")
    return SessionListResponse(data=data, total=len(data))


@app.get(
    "/api/chat/sessions/{session_id}",
    response_model=SessionDetail,
    responses={
        404: {"model": ErrorResponse, "description": "Unknown session"},
        500: {"model": ErrorResponse},
    },
)
async def get_chat_session(session_id: str, db: Session = Depends(get_db)) -> SessionDetail:
    """Return a session with all of its messages, oldest first."""
    try:
        chat_session = get_session(db, session_id)
        messages = list_messages_ordered(db, session_id)
    except NotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Chat session not found"
        )
    except PersistenceError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch chat session"
        )

    return SessionDetail(
        id=chat_session.id,
        user_id=chat_session.user_id,
        created_at=chat_session.created_at,
        updated_at=chat_session.updated_at,
        messages=[to_message_response(m) for m in messages],
    )


# =============================================================================
# Metrics Route
# =============================================================================

@app.get("/metrics")
async def metrics() -> Response:
    """Expose Prometheus-style metrics."""
    return Response(
        content=get_metrics(),
        media_type=get_metrics_content_type()
    )
