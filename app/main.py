import logging
import uuid
from contextlib import asynccontextmanager
from typing import Annotated, Optional

from fastapi import FastAPI, Response, Request, Depends, HTTPException, status, Query
from sqlalchemy.exc import SQLAlchemyError

from app.config import settings
from app.storage import (
    init_db,
    check_db_health,
    MessageStore,
    SqlKeyValueMedium,
    StorageMedium,
    NOT_FOUND,
)
from app.logging_utils import setup_logging, RequestLoggingMiddleware, log_event_data
from app.spotify import SpotifyClient, build_spotify_client
from app.utils import build_share_links
from app.metrics import (
    record_like_outcome,
    record_message_created,
    record_search_outcome,
    get_metrics,
    get_metrics_content_type,
)
from app.schemas import (
    HealthResponse,
    ErrorResponse,
    Message,
    MessageDraft,
    LikeResponse,
    LikedStatusResponse,
    ShareLinksResponse,
    Track,
)


# Setup structured JSON logging
setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

CLIENT_COOKIE_MAX_AGE = 60 * 60 * 24 * 365


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.
    - Startup: create tables, build the storage medium and Spotify client
    """
    init_db()
    app.state.medium = SqlKeyValueMedium()
    app.state.spotify_client = build_spotify_client()
    yield


app = FastAPI(
    title="For Bias API",
    description="Short messages paired with a song, shareable by permalink",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(RequestLoggingMiddleware)


# =============================================================================
# Dependencies
# =============================================================================

def get_medium(request: Request) -> Optional[StorageMedium]:
    """Storage medium built at startup; None when the app was not started."""
    return getattr(request.app.state, "medium", None)


def get_client_id(request: Request, response: Response) -> str:
    """
    Identify the calling browser by cookie, issuing a new id when missing.
    """
    client_id = request.cookies.get(settings.CLIENT_COOKIE_NAME)
    if not client_id:
        client_id = uuid.uuid4().hex
        response.set_cookie(
            settings.CLIENT_COOKIE_NAME,
            client_id,
            max_age=CLIENT_COOKIE_MAX_AGE,
            httponly=True,
            samesite="lax",
        )
        logger.debug(f"Issued new client id: {client_id}")
    return client_id


def get_store(medium: Optional[StorageMedium] = Depends(get_medium)) -> MessageStore:
    return MessageStore(medium)


def get_client_store(
    medium: Optional[StorageMedium] = Depends(get_medium),
    client_id: str = Depends(get_client_id),
) -> MessageStore:
    """Store whose liked-set belongs to the calling browser."""
    return MessageStore(medium, client_id=client_id)


def get_spotify_client(request: Request) -> SpotifyClient:
    client = getattr(request.app.state, "spotify_client", None)
    if client is None:
        client = build_spotify_client()
        request.app.state.spotify_client = client
    return client


def find_message_or_404(store: MessageStore, message_id: str) -> Message:
    message = store.get(message_id)
    if message is None:
        logger.info(f"Message not found: {message_id}")
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Message not found"
        )
    return message


# =============================================================================
# Health Check Routes
# =============================================================================

@app.get("/health/live", response_model=HealthResponse)
async def health_live() -> HealthResponse:
    """
    Liveness probe - always returns 200 once the app is running.
    """
    return HealthResponse(status="ok")


@app.get("/health/ready", response_model=HealthResponse)
async def health_ready(response: Response) -> HealthResponse:
    """
    Readiness probe - returns 200 only if:
    1. DB is reachable and schema is applied
    2. Spotify credentials are set

    Otherwise returns 503 (Service Unavailable).
    """
    if not (settings.SPOTIFY_CLIENT_ID and settings.SPOTIFY_CLIENT_SECRET):
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(
            status="not_ready",
            reason="Spotify credentials not configured"
        )

    if not check_db_health():
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(
            status="not_ready",
            reason="Database not reachable or schema not applied"
        )

    return HealthResponse(status="ready")


# =============================================================================
# Search Proxy Route
# =============================================================================

@app.get(
    "/api/spotify/search",
    response_model=list[Track],
    responses={
        400: {"model": ErrorResponse, "description": "Missing query"},
        500: {"model": ErrorResponse, "description": "Upstream search failed"},
    }
)
def search_tracks(
    q: Annotated[str | None, Query(description="Free-text track search")] = None,
    spotify: SpotifyClient = Depends(get_spotify_client),
) -> list[Track]:
    """
    Search the Spotify catalog for tracks to attach to a message.

    Runs in the threadpool since the upstream call blocks.
    """
    if not q:
        logger.warning("Search request without query")
        record_search_outcome("missing_query")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Query parameter is required"
        )

    try:
        tracks = spotify.search_tracks(q)
    except Exception as e:
        logger.error(f"Spotify search failed: {e}")
        record_search_outcome("upstream_error")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to search tracks"
        )

    record_search_outcome("ok")
    return tracks


# =============================================================================
# Message Routes
# =============================================================================

@app.post(
    "/messages",
    response_model=Message,
    status_code=status.HTTP_201_CREATED,
    responses={500: {"model": ErrorResponse, "description": "Storage failure"}},
)
async def create_message(
    request: Request,
    draft: MessageDraft,
    store: MessageStore = Depends(get_store),
) -> Message:
    """
    Store a new message. The server assigns id, createdAt and likes.
    """
    try:
        message = store.create(draft)
    except SQLAlchemyError:
        log_event_data(request, result="error")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to store message"
        )

    record_message_created()
    log_event_data(request, message_id=message.id, result="created")
    return message


@app.get("/messages", response_model=list[Message])
async def list_messages(
    recipient: Annotated[str | None, Query(description="Filter by recipient name (case-insensitive)")] = None,
    store: MessageStore = Depends(get_store),
) -> list[Message]:
    """
    List stored messages in creation order, optionally for one recipient.
    """
    if recipient is not None:
        messages = store.list_by_recipient(recipient)
    else:
        messages = store.list_all()

    logger.info(f"GET /messages: returned {len(messages)} messages (recipient={recipient})")
    return messages


@app.get(
    "/messages/{message_id}",
    response_model=Message,
    responses={404: {"model": ErrorResponse, "description": "Message not found"}},
)
async def get_message(message_id: str, store: MessageStore = Depends(get_store)) -> Message:
    return find_message_or_404(store, message_id)


@app.get(
    "/message/{message_id}",
    response_model=Message,
    responses={404: {"model": ErrorResponse, "description": "Message not found"}},
)
async def message_permalink(message_id: str, store: MessageStore = Depends(get_store)) -> Message:
    """Permalink form of GET /messages/{message_id}."""
    return find_message_or_404(store, message_id)


@app.post(
    "/messages/{message_id}/like",
    response_model=LikeResponse,
    responses={
        404: {"model": ErrorResponse, "description": "Message not found"},
        500: {"model": ErrorResponse, "description": "Storage failure"},
    },
)
async def like_message(
    message_id: str,
    request: Request,
    client_id: str = Depends(get_client_id),
    store: MessageStore = Depends(get_client_store),
) -> LikeResponse:
    """
    Like a message once per browser. Repeated likes leave the count unchanged.
    """
    try:
        result = store.like(message_id)
    except SQLAlchemyError:
        log_event_data(request, message_id=message_id, client_id=client_id, result="error")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to store like"
        )

    record_like_outcome(result)
    log_event_data(request, message_id=message_id, client_id=client_id, result=result)

    if result == NOT_FOUND:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Message not found"
        )

    message = find_message_or_404(store, message_id)
    return LikeResponse(id=message.id, likes=message.likes, liked=True)


@app.get("/messages/{message_id}/liked", response_model=LikedStatusResponse)
async def liked_status(
    message_id: str,
    store: MessageStore = Depends(get_client_store),
) -> LikedStatusResponse:
    return LikedStatusResponse(id=message_id, liked=store.has_liked(message_id))


@app.get(
    "/messages/{message_id}/share",
    response_model=ShareLinksResponse,
    responses={404: {"model": ErrorResponse, "description": "Message not found"}},
)
async def share_links(
    message_id: str,
    request: Request,
    store: MessageStore = Depends(get_store),
) -> ShareLinksResponse:
    """
    Links for sharing a message: permalink, WhatsApp and Instagram
    intents, and the Spotify embed URL for its song.
    """
    message = find_message_or_404(store, message_id)
    links = build_share_links(str(request.base_url), message.id, message.song_id)
    return ShareLinksResponse(**links)


# =============================================================================
# Metrics Route
# =============================================================================

@app.get("/metrics")
async def metrics() -> Response:
    """
    Expose Prometheus-style metrics.
    """
    return Response(
        content=get_metrics(),
        media_type=get_metrics_content_type()
    )
