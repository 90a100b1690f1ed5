from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from dataclasses import asdict
import asyncio
import json
import logging

logger = logging.getLogger(__name__)

router = APIRouter()

KEEPALIVE_INTERVAL = 30.0


def encode_event(event_type: str, data: dict) -> str:
    # datetimes and enums go out as strings
    return json.dumps({"type": event_type, "data": data}, default=str)


class EventBroadcaster:
    """Pushes scanner events to every attached WebSocket client."""

    def __init__(self):
        self.clients: set[WebSocket] = set()

    async def attach(self, websocket: WebSocket):
        await websocket.accept()
        self.clients.add(websocket)
        logger.debug("WebSocket client attached (%d total)", len(self.clients))

    def detach(self, websocket: WebSocket):
        self.clients.discard(websocket)

    async def publish(self, event_type: str, data: dict):
        """Send one event to all clients; clients that fail are detached."""
        if not self.clients:
            return
        message = encode_event(event_type, data)

        clients = list(self.clients)
        results = await asyncio.gather(
            *(client.send_text(message) for client in clients),
            return_exceptions=True,
        )
        for client, result in zip(clients, results):
            if isinstance(result, Exception):
                logger.debug("Dropping WebSocket client: %s", result)
                self.detach(client)

    async def send_to(self, websocket: WebSocket, event_type: str, data: dict):
        await websocket.send_text(encode_event(event_type, data))


broadcaster = EventBroadcaster()


async def scanner_callback(event_type: str, data: dict):
    """Scanner event hook: scan_progress, deep_scan_progress, scan_completed, ..."""
    await broadcaster.publish(event_type, data)


def _scanner_state(scanner) -> dict:
    return {
        "scanning": scanner.is_scanning,
        "progress": asdict(scanner.scan_progress.current),
    }


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """
    Live scan events.

    Clients may send {"type": "ping"} to check the link or {"type": "state"}
    to get the scanner state again; the server pings idle clients.
    """
    scanner = websocket.app.state.scanner
    await broadcaster.attach(websocket)

    try:
        await broadcaster.send_to(websocket, "connected", _scanner_state(scanner))

        while True:
            try:
                raw = await asyncio.wait_for(websocket.receive_text(), timeout=KEEPALIVE_INTERVAL)
            except asyncio.TimeoutError:
                await broadcaster.send_to(websocket, "ping", {})
                continue

            try:
                request = json.loads(raw)
            except json.JSONDecodeError:
                logger.debug("Ignoring non-JSON WebSocket message")
                continue
            if not isinstance(request, dict):
                continue

            kind = request.get("type")
            if kind == "ping":
                await broadcaster.send_to(websocket, "pong", {})
            elif kind == "state":
                await broadcaster.send_to(websocket, "state", _scanner_state(scanner))

    except WebSocketDisconnect:
        logger.debug("WebSocket client disconnected")
    finally:
        broadcaster.detach(websocket)
