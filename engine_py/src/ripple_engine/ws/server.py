"""
FastAPI WebSocket server exposing a MatchEngine.
"""

import asyncio
import logging
import os
import uuid
from dataclasses import asdict
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from ..collaborator import Subscription
from ..engine import MatchEngine
from ..errors import GameError, INTERNAL_ERROR, INVALID_MUTATION, MATCH_NOT_FOUND
from ..models import Card
from ..serialization import sanitize_state
from .events import (
    DealRequest, FetchCardsRequest, FetchStateRequest, SubmitRequest, SubscribeRequest,
    UnsubscribeRequest, create_error_reply, create_push_event, create_reply, parse_request
)

# Configure logging
logging.basicConfig(level=os.getenv("LOG_LEVEL", "info").upper())
logger = logging.getLogger(__name__)

# FastAPI app
app = FastAPI(title="Ripple Match Engine", version="1.0.0")

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Global state
engine = MatchEngine()
connections: Dict[str, "MatchConnection"] = {}


class CardPayload(BaseModel):
    id: str = Field(..., min_length=1)
    content: str
    category: str
    depth: int = Field(default=1, ge=1, le=3)
    contributor_id: Optional[str] = None


class CreateMatchRequest(BaseModel):
    match_id: Optional[str] = Field(default=None, max_length=50)
    created_by: str = Field(..., min_length=1)
    username: str = Field(..., min_length=1, max_length=30)
    cards: List[CardPayload] = Field(default_factory=list)
    settings: Dict[str, Any] = Field(default_factory=dict)


class JoinMatchRequest(BaseModel):
    player_id: str = Field(..., min_length=1)
    username: str = Field(..., min_length=1, max_length=30)


class MatchConnection:
    """
    One websocket client.

    Replies and pushes share a single outbox so they leave in the order the
    engine produced them: a mutation's push always precedes its reply.
    """

    def __init__(self, websocket: WebSocket):
        self.id = str(uuid.uuid4())
        self.websocket = websocket
        self.outbox: asyncio.Queue = asyncio.Queue()
        self.subscriptions: Dict[str, Subscription] = {}
        self.sender: Optional[asyncio.Task] = None

    def start(self):
        self.sender = asyncio.create_task(self._send_loop())

    def send(self, event: BaseModel):
        self.outbox.put_nowait(event)

    def on_push(self, push: Dict[str, Any]):
        self.send(create_push_event(push))

    async def _send_loop(self):
        while True:
            event = await self.outbox.get()
            await self.websocket.send_text(event.model_dump_json())

    async def stop(self):
        for subscription in self.subscriptions.values():
            subscription.cancel()
        self.subscriptions.clear()
        if self.sender is not None:
            self.sender.cancel()
            result, = await asyncio.gather(self.sender, return_exceptions=True)
            if isinstance(result, Exception):
                logger.error(f"Sender for connection {self.id} failed: {result}")


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "matches": len(engine.matches),
        "connections": len(connections)
    }


@app.post("/matches")
async def create_match(request: CreateMatchRequest):
    """Create a match from a card list. The creator is seated automatically."""
    match_id = request.match_id or str(uuid.uuid4())[:8]
    cards = [Card(**card.model_dump()) for card in request.cards]
    try:
        state = await engine.create_match(match_id, request.created_by, request.username, cards, request.settings)
    except GameError as e:
        raise HTTPException(status_code=409, detail=e.message)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return sanitize_state(state, request.created_by)


@app.post("/matches/{match_id}/players")
async def join_match(match_id: str, request: JoinMatchRequest):
    try:
        state = await engine.add_player(match_id, request.player_id, request.username)
    except GameError as e:
        status_code = 404 if e.code == MATCH_NOT_FOUND else 400
        raise HTTPException(status_code=status_code, detail=e.message)
    return sanitize_state(state, request.player_id)


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """Main WebSocket endpoint."""
    await websocket.accept()
    connection = MatchConnection(websocket)
    connections[connection.id] = connection
    connection.start()
    logger.info(f"WebSocket connection {connection.id} accepted")

    try:
        while True:
            raw_data = await websocket.receive_text()
            request_id = None

            try:
                request = parse_request(raw_data)
                request_id = request.request_id
                reply = await handle_request(connection, request)
            except ValueError as e:
                reply = create_error_reply(request_id, INVALID_MUTATION, str(e))
            except GameError as e:
                reply = create_error_reply(request_id, e.code, e.message)
            except Exception as e:
                logger.error(f"Error handling request {request_id}: {e}")
                reply = create_error_reply(request_id, INTERNAL_ERROR, "Internal server error")

            connection.send(reply)

    except WebSocketDisconnect:
        logger.info(f"WebSocket {connection.id} disconnected")
    finally:
        await connection.stop()
        connections.pop(connection.id, None)


async def handle_request(connection: MatchConnection, request):
    """Handle one inbound request and build its reply."""

    if isinstance(request, FetchStateRequest):
        state = await engine.fetch_state(request.match_id, request.viewer_id)
        return create_reply(request.request_id, state=state)

    elif isinstance(request, SubscribeRequest):
        previous = connection.subscriptions.pop(request.match_id, None)
        if previous is not None:
            previous.cancel()
        connection.subscriptions[request.match_id] = await engine.subscribe(
            request.match_id, connection.on_push, viewer_id=request.viewer_id
        )
        return create_reply(request.request_id, subscribed=True)

    elif isinstance(request, UnsubscribeRequest):
        subscription = connection.subscriptions.pop(request.match_id, None)
        if subscription is not None:
            subscription.cancel()
        return create_reply(request.request_id, subscribed=False)

    elif isinstance(request, SubmitRequest):
        ack = await engine.submit_mutation(request.match_id, request.mutation)
        return create_reply(request.request_id, **ack.to_dict())

    elif isinstance(request, DealRequest):
        card_ids = await engine.deal_atomic(request.match_id, request.player_id, request.count)
        return create_reply(request.request_id, card_ids=card_ids)

    elif isinstance(request, FetchCardsRequest):
        cards = await engine.fetch_cards(request.card_ids)
        return create_reply(request.request_id, cards=[asdict(card) for card in cards])

    else:
        raise ValueError(f"Unhandled request type: {type(request)}")
