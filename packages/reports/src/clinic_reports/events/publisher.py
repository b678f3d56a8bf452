"""WebSocket notifier for dashboard clients.

Dashboards connect to learn about refresh progress without polling. A client
gets the recent refresh events on connect, then every new event it is
subscribed to. Client messages are small JSON objects keyed by ``type``:

    {"type": "subscribe", "event_types": ["refresh.failed"]}
    {"type": "unsubscribe", "event_types": ["refresh.failed"]}
    {"type": "refresh"}      # the "retry now" button of a failure notice
    {"type": "ping"}
"""

import asyncio
import json
from collections import deque
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

import structlog
import websockets
from websockets.asyncio.server import Server, ServerConnection

from clinic_reports.config import get_settings
from clinic_reports.events.types import EventType, ReportEvent

logger = structlog.get_logger(__name__)

RefreshHandler = Callable[[], Awaitable[Any]]
EventHook = Callable[[ReportEvent], None]


def _event_types(values: Iterable[Any]) -> set[EventType]:
    """Known event types among ``values``; unknown names are dropped."""
    known = {item.value: item for item in EventType}
    return {known[value] for value in values if value in known}


@dataclass(eq=False)
class DashboardClient:
    """One connected dashboard; an empty subscription means every event."""

    websocket: ServerConnection
    connected_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    subscriptions: set[EventType] = field(default_factory=set)

    @property
    def peer(self) -> str:
        address = self.websocket.remote_address
        if isinstance(address, tuple) and len(address) >= 2:
            return f"{address[0]}:{address[1]}"
        return str(address) if address else "unknown"

    def wants(self, event: ReportEvent) -> bool:
        return not self.subscriptions or event.event_type in self.subscriptions

    async def send_json(self, payload: dict[str, Any]) -> None:
        await self.websocket.send(json.dumps(payload))


class EventPublisher:
    """Fans report events out to dashboards and relays their refresh requests.

    Usage:
        publisher = EventPublisher()
        publisher.set_refresh_handler(scheduler.trigger_manual_refresh)
        await publisher.start()
        scheduler = RefreshScheduler(pipeline, publish=publisher.publish)
    """

    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        buffer_size: int = 50,
    ):
        settings = get_settings()
        self._host = host or settings.ws_host
        self._port = port or settings.ws_port

        self._server: Server | None = None
        self._clients: set[DashboardClient] = set()
        self._history: deque[ReportEvent] = deque(maxlen=buffer_size)
        self._hooks: list[EventHook] = []
        self._refresh_handler: RefreshHandler | None = None
        self._background: set[asyncio.Task[Any]] = set()

        self._handlers: dict[str, Callable[[DashboardClient, dict[str, Any]], Awaitable[None]]] = {
            "subscribe": self._on_subscribe,
            "unsubscribe": self._on_unsubscribe,
            "refresh": self._on_refresh,
            "ping": self._on_ping,
        }
        self._logger = logger.bind(component="event_publisher")

    @property
    def is_running(self) -> bool:
        return self._server is not None

    @property
    def client_count(self) -> int:
        return len(self._clients)

    @property
    def recent_events(self) -> list[ReportEvent]:
        return list(self._history)

    def add_event_hook(self, hook: EventHook) -> None:
        """Call ``hook`` synchronously with every published event."""
        self._hooks.append(hook)

    def remove_event_hook(self, hook: EventHook) -> None:
        if hook in self._hooks:
            self._hooks.remove(hook)

    def set_refresh_handler(self, handler: RefreshHandler | None) -> None:
        """Coroutine function run when a dashboard asks for a manual refresh."""
        self._refresh_handler = handler

    def _spawn(self, coro: Awaitable[Any]) -> None:
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    # === Server lifecycle ===

    async def start(self) -> None:
        if self._server is not None:
            self._logger.warning("publisher_already_running")
            return

        self._server = await websockets.serve(
            self._serve_client,
            self._host,
            self._port,
            ping_interval=30,
            ping_timeout=10,
        )
        self._logger.info("publisher_listening", url=f"ws://{self._host}:{self._port}")

    async def stop(self) -> None:
        """Close every dashboard connection, then the server."""
        if self._server is None:
            return

        clients = list(self._clients)
        self._clients.clear()
        await asyncio.gather(
            *(client.websocket.close(1001, "Server shutting down") for client in clients),
            return_exceptions=True,
        )
        self._server.close()
        await self._server.wait_closed()
        self._server = None
        self._logger.info("publisher_closed", disconnected=len(clients))

    async def _serve_client(self, websocket: ServerConnection) -> None:
        client = DashboardClient(websocket=websocket)
        self._clients.add(client)
        self._logger.info("dashboard_connected", peer=client.peer)

        try:
            await self._send_event_history(client)
            async for message in websocket:
                await self._handle_message(client, message)
        except websockets.ConnectionClosed as e:
            self._logger.info("dashboard_disconnected", peer=client.peer, code=e.code)
        finally:
            self._clients.discard(client)

    # === Client messages ===

    def _decode(self, client: DashboardClient, message: str | bytes) -> dict[str, Any] | None:
        try:
            data = json.loads(message)
        except (UnicodeDecodeError, json.JSONDecodeError):
            self._logger.warning("dashboard_message_unreadable", peer=client.peer)
            return None
        if not isinstance(data, dict):
            self._logger.warning("dashboard_message_unreadable", peer=client.peer)
            return None
        return data

    async def _handle_message(self, client: DashboardClient, message: str | bytes) -> None:
        data = self._decode(client, message)
        if data is None:
            return
        handler = self._handlers.get(str(data.get("type", "")))
        if handler is None:
            self._logger.warning(
                "dashboard_message_unknown", peer=client.peer, msg_type=data.get("type")
            )
            return
        await handler(client, data)

    async def _on_subscribe(self, client: DashboardClient, data: dict[str, Any]) -> None:
        client.subscriptions |= _event_types(data.get("event_types", []))
        await client.send_json(
            {
                "type": "subscribed",
                "event_types": sorted(item.value for item in client.subscriptions),
            }
        )

    async def _on_unsubscribe(self, client: DashboardClient, data: dict[str, Any]) -> None:
        client.subscriptions -= _event_types(data.get("event_types", []))

    async def _on_refresh(self, client: DashboardClient, data: dict[str, Any]) -> None:
        if self._refresh_handler is None:
            await client.send_json({"type": "refresh_rejected", "reason": "no refresh handler"})
            return
        self._logger.info("manual_refresh_requested", peer=client.peer)
        self._spawn(self._refresh_handler())
        await client.send_json({"type": "refresh_accepted"})

    async def _on_ping(self, client: DashboardClient, data: dict[str, Any]) -> None:
        await client.send_json({"type": "pong"})

    async def _send_event_history(self, client: DashboardClient) -> None:
        events = [event.to_dict() for event in self._history if client.wants(event)]
        if events:
            await client.send_json({"type": "event_history", "events": events})

    # === Publishing ===

    def _record(self, event: ReportEvent) -> None:
        self._history.append(event)
        for hook in list(self._hooks):
            try:
                hook(event)
            except Exception as e:
                self._logger.error("event_hook_failed", event_type=event.event_type.value, error=str(e))

    def publish(self, event: ReportEvent) -> None:
        """Record the event and broadcast it in the background."""
        self._record(event)
        if self._server is not None:
            self._spawn(self._broadcast(event))

    async def broadcast_all(self, event: ReportEvent) -> None:
        """Record the event and wait until every interested dashboard has it."""
        self._record(event)
        await self._broadcast(event)

    async def _broadcast(self, event: ReportEvent) -> None:
        recipients = [client for client in list(self._clients) if client.wants(event)]
        if not recipients:
            return
        payload = event.to_dict()
        results = await asyncio.gather(
            *(client.send_json(payload) for client in recipients),
            return_exceptions=True,
        )
        for client, result in zip(recipients, results):
            if isinstance(result, websockets.ConnectionClosed):
                self._clients.discard(client)

    def get_status(self) -> dict[str, Any]:
        """Get publisher status information."""
        return {
            "is_running": self.is_running,
            "host": self._host,
            "port": self._port,
            "client_count": len(self._clients),
            "buffered_events": len(self._history),
            "has_refresh_handler": self._refresh_handler is not None,
            "clients": [
                {
                    "peer": client.peer,
                    "connected_at": client.connected_at.isoformat(),
                    "subscriptions": sorted(item.value for item in client.subscriptions),
                }
                for client in self._clients
            ],
        }


_publisher: EventPublisher | None = None


def get_publisher() -> EventPublisher:
    """Get or create the global event publisher instance."""
    global _publisher
    if _publisher is None:
        _publisher = EventPublisher()
    return _publisher


async def stop_publisher() -> None:
    """Stop and discard the global event publisher."""
    global _publisher
    if _publisher:
        await _publisher.stop()
        _publisher = None
