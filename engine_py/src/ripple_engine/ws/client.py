"""
WebSocket client for a remote match engine.
"""

import asyncio
import logging
import uuid
from typing import Any, Dict, List, Optional, Set

import orjson
import websockets

from ..collaborator import Collaborator, LostHandler, MutationAck, PushHandler, Subscription
from ..errors import SyncLost, error_from_code
from ..models import Card
from .events import push_from_event

logger = logging.getLogger(__name__)


class _RemoteSubscription:
    def __init__(self, viewer_id: Optional[str], on_change: PushHandler, on_lost: Optional[LostHandler]):
        self.viewer_id = viewer_id
        self.on_change = on_change
        self.on_lost = on_lost


class RemoteCollaborator(Collaborator):
    """
    Collaborator backed by the websocket server in ws.server.

    One socket carries every request, reply and push. Replies are matched to
    requests by request_id. When the socket closes every pending request fails
    with ConnectionError and every subscription's on_lost fires.
    """

    def __init__(self, uri: str, timeout: float = 10.0):
        self.uri = uri
        self.timeout = timeout
        self._websocket = None
        self._reader: Optional[asyncio.Task] = None
        self._pending: Dict[str, asyncio.Future] = {}
        self._subscriptions: Dict[str, _RemoteSubscription] = {}
        self._background: Set[asyncio.Task] = set()

    @property
    def connected(self) -> bool:
        return self._websocket is not None

    async def connect(self):
        self._websocket = await websockets.connect(self.uri)
        self._reader = asyncio.create_task(self._read_loop(self._websocket))
        logger.info(f"Connected to {self.uri}")

    async def close(self):
        if self._websocket is not None:
            await self._websocket.close()
        if self._reader is not None:
            await asyncio.gather(self._reader, return_exceptions=True)

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def _read_loop(self, websocket):
        try:
            async for raw in websocket:
                message = orjson.loads(raw)
                if message.get("type") == "reply":
                    self._resolve(message)
                elif message.get("type") == "push":
                    self._dispatch(message)
                else:
                    logger.warning(f"Ignoring unknown message type: {message.get('type')}")
        except websockets.exceptions.ConnectionClosed as e:
            logger.error(f"Connection to {self.uri} closed: {e}")
        finally:
            self._websocket = None
            self._fail_all()

    def _resolve(self, message: Dict[str, Any]):
        future = self._pending.pop(message.get("request_id"), None)
        if future is None or future.done():
            return
        if message.get("ok"):
            future.set_result(message.get("data") or {})
        else:
            future.set_exception(error_from_code(message.get("error_code"), message.get("error_message") or ""))

    def _dispatch(self, message: Dict[str, Any]):
        subscription = self._subscriptions.get(message.get("match_id"))
        if subscription is not None:
            subscription.on_change(push_from_event(message))

    def _fail_all(self):
        pending, self._pending = self._pending, {}
        for future in pending.values():
            if not future.done():
                future.set_exception(ConnectionError(f"Connection to {self.uri} closed"))

        subscriptions, self._subscriptions = self._subscriptions, {}
        for match_id, subscription in subscriptions.items():
            if subscription.on_lost is not None:
                subscription.on_lost(SyncLost(f"Push channel for match {match_id} closed"))

    async def _request(self, request_type: str, **payload) -> Dict[str, Any]:
        if self._websocket is None:
            raise ConnectionError(f"Not connected to {self.uri}")

        request_id = str(uuid.uuid4())
        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        message = {"type": request_type, "request_id": request_id, **payload}

        try:
            await self._websocket.send(orjson.dumps(message).decode())
            return await asyncio.wait_for(future, timeout=self.timeout)
        except websockets.exceptions.ConnectionClosed as e:
            raise ConnectionError(f"Connection to {self.uri} closed: {e}") from e
        finally:
            self._pending.pop(request_id, None)

    async def fetch_state(self, match_id: str, viewer_id: Optional[str] = None) -> Dict[str, Any]:
        data = await self._request("fetch_state", match_id=match_id, viewer_id=viewer_id)
        return data["state"]

    async def subscribe(
        self,
        match_id: str,
        on_change: PushHandler,
        viewer_id: Optional[str] = None,
        on_lost: Optional[LostHandler] = None
    ) -> Subscription:
        self._subscriptions[match_id] = _RemoteSubscription(viewer_id, on_change, on_lost)
        try:
            await self._request("subscribe", match_id=match_id, viewer_id=viewer_id)
        except Exception:
            self._subscriptions.pop(match_id, None)
            raise

        def detach():
            self._subscriptions.pop(match_id, None)
            if self._websocket is not None:
                task = asyncio.ensure_future(self._request("unsubscribe", match_id=match_id))
                self._background.add(task)
                task.add_done_callback(self._forget)

        return Subscription(on_cancel=detach)

    def _forget(self, task: asyncio.Task):
        self._background.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning(f"Unsubscribe failed: {task.exception()}")

    async def submit_mutation(self, match_id: str, mutation: Dict[str, Any]) -> MutationAck:
        data = await self._request("submit", match_id=match_id, mutation=mutation)
        return MutationAck(
            data.get("ok", False),
            version=data.get("version"),
            error_code=data.get("error_code"),
            error_message=data.get("error_message")
        )

    async def deal_atomic(self, match_id: str, player_id: str, count: int) -> List[str]:
        data = await self._request("deal", match_id=match_id, player_id=player_id, count=count)
        return data["card_ids"]

    async def fetch_cards(self, card_ids: List[str]) -> List[Card]:
        data = await self._request("fetch_cards", card_ids=card_ids)
        return [Card(**card) for card in data["cards"]]
