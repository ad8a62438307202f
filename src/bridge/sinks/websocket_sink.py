from __future__ import annotations

import json

import anyio.from_thread
from fastapi import WebSocket

from shared.schemas.device_events import DeviceEvent
from src.bridge.errors import DeliveryError


class WebSocketSink:
    """
    Pushes events to a browser as one JSON text message each.

    deliver() is called from the session worker thread (started with
    run_in_threadpool) and hops back onto the event loop to send.
    """
    fatal_on_failure = True

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket

    def deliver(self, event: DeviceEvent) -> None:
        try:
            payload = json.dumps(event.to_wire(), allow_nan=False)
        except ValueError as e:
            raise DeliveryError(f"event is not valid JSON: {e}") from e
        try:
            anyio.from_thread.run(self.websocket.send_text, payload)
        except Exception as e:  # noqa: BLE001
            raise DeliveryError(f"websocket send failed: {e}") from e
