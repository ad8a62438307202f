import asyncio
import json
import logging
import threading
from typing import List, Literal

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from starlette.concurrency import run_in_threadpool
from starlette.websockets import WebSocketState

from shared.contracts.bridge_contracts import (
    BridgeStatusResponse, CameraCommandResponse, ForwardStartRequest,
    ForwardStartResponse, ForwardStopResponse,
)
from shared.logging_config import setup_logging
from shared.schemas.device_events import DeviceKind, DeviceStatus
from src.bridge.camera.camera_commands import camera_tool_config, run_camera_command
from src.bridge.errors import LaunchError, SessionAlreadyRunning
from src.bridge.process.device_process import ProcessSession
from src.bridge.sinks.http_sink import HTTPForwardSink
from src.bridge.sinks.websocket_sink import WebSocketSink
from src.bridge.supervisor.session_supervisor import SessionSupervisor

setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="Device Bridge Service", version="0.1")

FORWARD_CHANNEL = "forward"

# close codes: 1011 internal error, 1013 try again later
WS_CLOSE_LAUNCH_FAILED = 1011
WS_CLOSE_BUSY = 1013

supervisor = SessionSupervisor()


def _ws_channel(kind: DeviceKind) -> str:
    return f"ws:{kind.value}"


def _status_text(message: str) -> str:
    return json.dumps(DeviceStatus(message=message).to_wire())


async def _close_quietly(websocket: WebSocket, code: int = 1000) -> None:
    if WebSocketState.DISCONNECTED in (websocket.client_state, websocket.application_state):
        return
    try:
        await websocket.close(code=code)
    except (RuntimeError, WebSocketDisconnect):
        # client already went away
        pass


async def _watch_disconnect(websocket: WebSocket, session: ProcessSession) -> None:
    """Read (and ignore) client frames; any close or read error kills the session."""
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                logger.info("Client disconnected from %s session", session.kind.value)
                break
    except Exception as e:  # noqa: BLE001
        logger.info("WS read error on %s session: %s", session.kind.value, e)
    session.cancel()


async def _start_session(channel: str, kind: DeviceKind) -> ProcessSession:
    """
    Start a session on a worker thread. If the caller is cancelled around
    the launch, whichever side sees the session last tears it down.
    """
    lock = threading.Lock()
    started: List[ProcessSession] = []
    cancelled: List[bool] = []

    def start() -> ProcessSession:
        session = supervisor.start(channel, kind)
        with lock:
            started.append(session)
            orphaned = bool(cancelled)
        if orphaned:
            supervisor.abandon(channel, session)
        return session

    try:
        return await run_in_threadpool(start)
    except asyncio.CancelledError:
        with lock:
            cancelled.append(True)
            session = started[0] if started else None
        if session is not None:
            logger.info("Cancelled while launching %s, stopping it", kind.value)
            threading.Thread(
                target=supervisor.abandon, args=(channel, session), daemon=True
            ).start()
        raise


@app.get("/bridge/status", response_model=BridgeStatusResponse)
def status():
    return BridgeStatusResponse(
        active_channels=supervisor.active_channels(),
        device_cli=supervisor.cfg.executable,
        camera_cli=camera_tool_config().executable,
    )


@app.websocket("/ws/{kind}")
async def device_stream(websocket: WebSocket, kind: DeviceKind):
    await websocket.accept()
    channel = _ws_channel(kind)

    try:
        session = await _start_session(channel, kind)
    except SessionAlreadyRunning:
        await websocket.send_text(_status_text("already running"))
        await _close_quietly(websocket, WS_CLOSE_BUSY)
        return
    except LaunchError as e:
        await websocket.send_text(_status_text(f"launch failed: {e}"))
        await _close_quietly(websocket, WS_CLOSE_LAUNCH_FAILED)
        return

    watcher = asyncio.create_task(_watch_disconnect(websocket, session))
    try:
        await run_in_threadpool(supervisor.run, channel, session, WebSocketSink(websocket))
    except asyncio.CancelledError:
        session.cancel()
        raise
    finally:
        watcher.cancel()
    await _close_quietly(websocket)


def _runner_forward(session: ProcessSession, sink: HTTPForwardSink) -> None:
    try:
        supervisor.run(FORWARD_CHANNEL, session, sink)
    finally:
        sink.close()


@app.post("/forward/start", response_model=ForwardStartResponse)
def forward_start(req: ForwardStartRequest):
    try:
        session = supervisor.start(FORWARD_CHANNEL, req.kind)
    except SessionAlreadyRunning:
        raise HTTPException(status_code=409, detail="already running")
    except LaunchError as e:
        raise HTTPException(status_code=500, detail=f"launch failed: {e}")

    sink = HTTPForwardSink(req.target_url, req.patient_name, req.clinic_name)
    thread = threading.Thread(
        target=_runner_forward,
        args=(session, sink),
        name=f"forward-{req.kind.value}",
        daemon=True,
    )
    thread.start()
    logger.info("Forwarding %s for %s to %s", req.kind.value, req.patient_name, req.target_url)
    return ForwardStartResponse(ok=True, channel=FORWARD_CHANNEL, kind=req.kind, pid=session.pid)


@app.post("/forward/stop", response_model=ForwardStopResponse)
def forward_stop():
    stopped = supervisor.cancel(FORWARD_CHANNEL)
    if stopped:
        logger.info("Stopping forward process...")
    return ForwardStopResponse(ok=True, stopped=stopped)


@app.post("/camera/{action}", response_model=CameraCommandResponse)
def camera(action: Literal["list", "move-left", "move-right", "move-up", "move-down"]):
    return run_camera_command(action)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8090)
