import json
import logging
from typing import Optional

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from shared.contracts.relay_contracts import FeedControlResponse, FeedMeta, RelayStatusResponse
from shared.logging_config import setup_logging
from src.relay.broker.frame_broker import FeedUnavailable, FrameBroker, stream_key

setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="Camera Relay Service", version="0.1")

broker = FrameBroker()


@app.get("/relay/status", response_model=RelayStatusResponse)
def status():
    return RelayStatusResponse(feed_connected=broker.has_feed, streams=broker.stream_counts())


@app.websocket("/ws/feed")
async def feed(websocket: WebSocket):
    await websocket.accept()
    await broker.set_feed(websocket)

    clinic, patient = "Unknown", "Unknown"
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            if message.get("bytes") is not None:
                await broker.broadcast(stream_key(clinic, patient), message["bytes"])
                continue

            text = message.get("text") or ""
            try:
                meta = FeedMeta.model_validate(json.loads(text))
            except (json.JSONDecodeError, ValidationError):
                logger.info("WS text: %s", text)
                continue
            if meta.clinic_name:
                clinic = meta.clinic_name
            if meta.patient_name:
                patient = meta.patient_name
    except WebSocketDisconnect:
        pass
    finally:
        await broker.clear_feed(websocket)
        logger.info("Feed WS disconnected")


@app.websocket("/ws/stream")
async def stream(websocket: WebSocket, clinic: Optional[str] = None, patient: Optional[str] = None):
    if not clinic or not patient:
        # rejected before the upgrade completes
        await websocket.close(code=1008)
        return

    await websocket.accept()
    key = stream_key(clinic, patient)
    await broker.subscribe(key, websocket)
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
    except WebSocketDisconnect:
        pass
    finally:
        await broker.unsubscribe(key, websocket)


async def _control(command: str) -> FeedControlResponse:
    try:
        await broker.send_control(command)
    except FeedUnavailable as e:
        raise HTTPException(status_code=503, detail=str(e))
    return FeedControlResponse(ok=True, command=command)


@app.post("/api/feed/start", response_model=FeedControlResponse)
async def feed_start():
    return await _control("start")


@app.post("/api/feed/stop", response_model=FeedControlResponse)
async def feed_stop():
    return await _control("stop")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8081)
