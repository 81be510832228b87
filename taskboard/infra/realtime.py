"""Board-scoped realtime fan-out over WebSockets.

Every connected client subscribes to one board channel. Mutations publish
``{"event": ..., "id": board_id, "body": ...}`` to all connections on the
channel except those belonging to the acting user. Delivery is best effort:
nothing is persisted or replayed and a failing socket is simply dropped.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from fastapi import WebSocket
from loguru import logger


@dataclass(eq=False)
class _Subscriber:
    user_id: str
    ws: WebSocket


class BoardHub:
    def __init__(self) -> None:
        self._channels: dict[str, list[_Subscriber]] = {}

    def subscriber_count(self, channel: str) -> int:
        return len(self._channels.get(channel, []))

    async def connect(self, channel: str, user_id: str, websocket: WebSocket) -> None:
        await websocket.accept()
        self._channels.setdefault(channel, []).append(_Subscriber(user_id=user_id, ws=websocket))

    def disconnect(self, channel: str, websocket: WebSocket) -> None:
        subscribers = self._channels.get(channel, [])
        remaining = [item for item in subscribers if item.ws is not websocket]
        if remaining:
            self._channels[channel] = remaining
        elif channel in self._channels:
            del self._channels[channel]

    async def publish(
        self,
        channel: str,
        event: str,
        exclude_user_id: str | None,
        body: dict[str, Any],
    ) -> int:
        message = {"event": event, "id": channel, "body": body}
        delivered = 0
        for subscriber in list(self._channels.get(channel, [])):
            if exclude_user_id is not None and subscriber.user_id == exclude_user_id:
                continue
            try:
                await subscriber.ws.send_json(message)
            except Exception:
                logger.warning("dropping board {} subscriber {} after failed send", channel, subscriber.user_id)
                self.disconnect(channel, subscriber.ws)
                continue
            delivered += 1
        logger.debug("event {} on board {} delivered to {} subscriber(s)", event, channel, delivered)
        return delivered


board_hub = BoardHub()
