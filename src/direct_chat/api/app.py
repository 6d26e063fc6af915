"""
FastAPI Application Module

Direct messaging API: users exchange text messages over a WebSocket
channel, and history is available over HTTP, either in order or ranked by
semantic similarity to a query.

Key Features:
- Async request handling with FastAPI
- Room-based realtime delivery over WebSockets
- Best-effort message embeddings for semantic search
- Structured logging and metrics
- CORS and OpenTelemetry support
"""

import asyncio
from typing import Any, List, Optional
from uuid import uuid4

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response, WebSocket
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from prometheus_client import generate_latest
from pydantic import BaseModel
from starlette.websockets import WebSocketDisconnect
from structlog import get_logger

from ..config import get_settings
from ..domain.errors import (
    EmbeddingUnavailable,
    NotFoundError,
    ValidationError,
)
from ..domain.models import MessageView, SearchResult
from ..metrics import CUSTOM_REGISTRY, ERRORS, REQUESTS
from ..realtime.rooms import RoomRouter
from ..realtime.session import Session, SessionState
from ..repositories.memory import InMemoryRepository
from ..services.auth import TokenVerifier
from ..services.conversation import ConversationService
from ..services.embedding import GeminiEmbeddingProvider

logger = get_logger()


class SendMessageRequest(BaseModel):
    """Defines the structure for message creation requests"""
    senderId: str
    receiverId: str
    message: str


class WebSocketConnection:
    """Deliverable handle around a FastAPI WebSocket.

    Frames are JSON objects of the form {"event": ..., "data": ...}.
    """

    def __init__(self, websocket: WebSocket) -> None:
        self.websocket = websocket
        self.connection_id = str(uuid4())
        self._send_lock = asyncio.Lock()

    async def send(self, event: str, data: Any) -> None:
        async with self._send_lock:
            await self.websocket.send_json({"event": event, "data": data})

    async def close(self) -> None:
        await self.websocket.close()


# Core service instances
settings = get_settings()
repository = InMemoryRepository(embedding_dimension=settings.embedding_dimension)
embedding_provider = GeminiEmbeddingProvider.from_settings(settings)
conversation_service = ConversationService(repository, embedding_provider)
room_router = RoomRouter()
token_verifier = TokenVerifier.from_settings(settings)


def get_conversation_service() -> ConversationService:
    """Returns the conversation service"""
    return conversation_service


def get_room_router() -> RoomRouter:
    """Returns the realtime room router"""
    return room_router


def get_token_verifier() -> TokenVerifier:
    """Returns the token verifier"""
    return token_verifier


app = FastAPI(
    title="Direct Chat API",
    description="Realtime direct messaging with semantic message search",
    version="0.1.0",
)

# Enable cross-origin requests
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

# Set up request tracing
FastAPIInstrumentor.instrument_app(app)


@app.middleware("http")
async def logging_middleware(request: Request, call_next):
    """Tracks requests and failures"""
    REQUESTS.inc()
    logger.info("request_started", path=request.url.path, method=request.method)
    try:
        response = await call_next(request)
    except Exception as e:
        ERRORS.inc()
        logger.error("request_failed", path=request.url.path, error=str(e))
        raise
    if response.status_code >= 500:
        ERRORS.inc()
    return response


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Missing or malformed fields are a client error (400)"""
    fields = [".".join(str(p) for p in err.get("loc", ())[1:]) for err in exc.errors()]
    logger.warning("request_invalid", path=request.url.path, fields=fields)
    return JSONResponse(
        status_code=400,
        content={"detail": f"Missing or invalid field(s): {', '.join(f for f in fields if f)}"},
    )


@app.get("/")
async def root():
    return {"message": "Direct Chat backend is running"}


@app.post("/api/messages", response_model=MessageView, status_code=201)
async def send_message(
    payload: SendMessageRequest,
    conversations: ConversationService = Depends(get_conversation_service),
) -> MessageView:
    """Stores a message from sender to receiver"""
    try:
        return await conversations.send_message(
            payload.senderId, payload.receiverId, payload.message
        )
    except ValidationError as e:
        logger.warning("send_message_invalid", sender_id=payload.senderId, receiver_id=payload.receiverId, error=str(e))
        raise HTTPException(status_code=400, detail=str(e))
    except NotFoundError as e:
        logger.warning("send_message_unknown_user", sender_id=payload.senderId, receiver_id=payload.receiverId, error=str(e))
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error("send_message_error", sender_id=payload.senderId, receiver_id=payload.receiverId, error=str(e))
        raise HTTPException(status_code=500, detail="Failed to send message")


@app.get("/api/messages", response_model=List[MessageView])
async def list_messages(
    userId: str = Query(...),
    otherUserId: Optional[str] = None,
    limit: int = 50,
    conversations: ConversationService = Depends(get_conversation_service),
) -> List[MessageView]:
    """Gets message history for a user, optionally narrowed to one peer"""
    try:
        return await conversations.list_conversation(userId, otherUserId, limit=limit)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error("list_messages_error", user_id=userId, other_user_id=otherUserId, error=str(e))
        raise HTTPException(status_code=500, detail="Failed to fetch messages")


@app.get("/api/messages/search", response_model=List[SearchResult])
async def search_messages(
    userId: str = Query(...),
    q: str = "",
    k: int = 10,
    conversations: ConversationService = Depends(get_conversation_service),
) -> List[SearchResult]:
    """Ranks a user's messages by semantic similarity to the query"""
    try:
        return await conversations.semantic_search(userId, q, k=k)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except EmbeddingUnavailable:
        raise HTTPException(status_code=503, detail="Search is temporarily unavailable")
    except Exception as e:
        logger.error("search_messages_error", user_id=userId, error=str(e))
        raise HTTPException(status_code=500, detail="Failed to search messages")


@app.websocket("/ws")
async def realtime(
    websocket: WebSocket,
    conversations: ConversationService = Depends(get_conversation_service),
    router: RoomRouter = Depends(get_room_router),
    verifier: TokenVerifier = Depends(get_token_verifier),
):
    """Serves one realtime connection until it closes"""
    await websocket.accept()
    connection = WebSocketConnection(websocket)
    session = Session(connection, router, conversations, verifier)
    logger.info("socket_connected", connection_id=connection.connection_id)

    try:
        while session.state is not SessionState.CLOSED:
            try:
                frame = await websocket.receive_json()
            except (ValueError, KeyError):
                await session.reply_error("Malformed frame")
                continue
            if not isinstance(frame, dict):
                await session.reply_error("Malformed frame")
                continue
            await session.handle(frame.get("event"), frame.get("data"))
    except WebSocketDisconnect:
        logger.debug("socket_client_closed", connection_id=connection.connection_id)
    finally:
        await session.disconnect()


@app.get("/metrics")
async def metrics():
    """Provides Prometheus metrics for system monitoring"""
    return Response(generate_latest(CUSTOM_REGISTRY), media_type="text/plain")
