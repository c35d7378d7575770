"""
WebSocket request/reply/push models and validation.
"""

import time
from enum import Enum
from typing import Any, Dict, List, Optional, Union

import orjson
from pydantic import BaseModel, Field


class RequestType(str, Enum):
    """Inbound request types."""
    FETCH_STATE = "fetch_state"
    SUBSCRIBE = "subscribe"
    UNSUBSCRIBE = "unsubscribe"
    SUBMIT = "submit"
    DEAL = "deal"
    FETCH_CARDS = "fetch_cards"


class OutboundEventType(str, Enum):
    """Outbound event types."""
    REPLY = "reply"
    PUSH = "push"


# Inbound request models
class BaseRequest(BaseModel):
    """Base request model."""
    type: RequestType
    request_id: str = Field(..., min_length=1, max_length=64)


class FetchStateRequest(BaseRequest):
    type: RequestType = RequestType.FETCH_STATE
    match_id: str = Field(..., min_length=1, max_length=50)
    viewer_id: Optional[str] = None


class SubscribeRequest(BaseRequest):
    """Start receiving pushes for a match, sanitized for viewer_id."""
    type: RequestType = RequestType.SUBSCRIBE
    match_id: str = Field(..., min_length=1, max_length=50)
    viewer_id: Optional[str] = None


class UnsubscribeRequest(BaseRequest):
    type: RequestType = RequestType.UNSUBSCRIBE
    match_id: str = Field(..., min_length=1, max_length=50)


class SubmitRequest(BaseRequest):
    """Submit a mutation descriptor (see actions.parse_mutation)."""
    type: RequestType = RequestType.SUBMIT
    match_id: str = Field(..., min_length=1, max_length=50)
    mutation: Dict[str, Any]


class DealRequest(BaseRequest):
    type: RequestType = RequestType.DEAL
    match_id: str = Field(..., min_length=1, max_length=50)
    player_id: str = Field(..., min_length=1)
    count: int = Field(..., ge=1, le=10)


class FetchCardsRequest(BaseRequest):
    type: RequestType = RequestType.FETCH_CARDS
    card_ids: List[str] = Field(..., max_length=500)


InboundRequest = Union[
    FetchStateRequest,
    SubscribeRequest,
    UnsubscribeRequest,
    SubmitRequest,
    DealRequest,
    FetchCardsRequest
]


# Outbound event models
class ReplyEvent(BaseModel):
    """Answer to one request, matched by request_id."""
    type: OutboundEventType = OutboundEventType.REPLY
    request_id: Optional[str] = None
    ok: bool
    data: Dict[str, Any] = Field(default_factory=dict)
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    timestamp: float


class PatchOperation(BaseModel):
    """JSON Patch operation."""
    op: str = Field(..., pattern="^(replace|add|remove)$")
    path: str
    value: Optional[Any] = None


class PushEvent(BaseModel):
    """Committed change: either patch ops or a full state."""
    type: OutboundEventType = OutboundEventType.PUSH
    match_id: str
    version: int
    ops: Optional[List[PatchOperation]] = None
    state: Optional[Dict[str, Any]] = None
    timestamp: float


def parse_request(raw: Union[str, bytes]) -> InboundRequest:
    """
    Parse a raw WebSocket message into the matching request model.

    Args:
        raw: Message text or bytes

    Returns:
        Parsed request model

    Raises:
        ValueError: If the message is not JSON, the type is unknown or data is malformed
    """
    try:
        data = orjson.loads(raw)
    except orjson.JSONDecodeError as e:
        raise ValueError(f"Malformed JSON: {e}")

    if not isinstance(data, dict):
        raise ValueError("Request must be a JSON object")

    request_type = data.get("type")
    if not request_type:
        raise ValueError("Missing request type")

    try:
        request_type = RequestType(request_type)
    except ValueError:
        raise ValueError(f"Invalid request type: {request_type}")

    request_map = {
        RequestType.FETCH_STATE: FetchStateRequest,
        RequestType.SUBSCRIBE: SubscribeRequest,
        RequestType.UNSUBSCRIBE: UnsubscribeRequest,
        RequestType.SUBMIT: SubmitRequest,
        RequestType.DEAL: DealRequest,
        RequestType.FETCH_CARDS: FetchCardsRequest,
    }

    try:
        return request_map[request_type](**data)
    except Exception as e:
        raise ValueError(f"Invalid request data: {str(e)}")


def create_reply(request_id: Optional[str], **data) -> ReplyEvent:
    """Create a successful reply."""
    return ReplyEvent(
        request_id=request_id,
        ok=True,
        data=data,
        timestamp=time.time()
    )


def create_error_reply(request_id: Optional[str], code: str, message: str) -> ReplyEvent:
    """Create an error reply."""
    return ReplyEvent(
        request_id=request_id,
        ok=False,
        error_code=code,
        error_message=message,
        timestamp=time.time()
    )


def create_push_event(push: Dict[str, Any]) -> PushEvent:
    """Wrap an engine push for the wire."""
    ops = push.get("ops")
    return PushEvent(
        match_id=push["match_id"],
        version=push["version"],
        ops=[PatchOperation(**op) for op in ops] if ops is not None else None,
        state=push.get("state"),
        timestamp=time.time()
    )


def push_from_event(data: Dict[str, Any]) -> Dict[str, Any]:
    """Turn a decoded push message back into the engine's push dict."""
    push = {"match_id": data["match_id"], "version": data["version"]}
    if data.get("state") is not None:
        push["state"] = data["state"]
    else:
        push["ops"] = data.get("ops") or []
    return push
