"""FastAPI REST and WebSocket interface for DLP-TH1C snapshots.

Single-process, single-sensor lifecycle with thread-safe access to:
- PollingSession (serial communication, polling loops)
- SnapshotFeed (background consumer holding a window of recent snapshots)

Error mapping:
- InvalidCommand → 400
- DecodeError → 422
- SerialIOError → 503
- Other exceptions → 500
"""

import asyncio
import logging
import os
from threading import RLock
from typing import Optional

from fastapi import FastAPI, HTTPException, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from data_feed import SnapshotFeed
from th1c_lib import PollingSession, SessionConfig, __version__
from th1c_lib.errors import DecodeError, InvalidCommand, SerialIOError
from th1c_lib.transport import Transport

# =============================================================================
# Environment Configuration
# =============================================================================

API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("API_PORT", "9150"))
DEFAULT_SERIAL_PORT = os.getenv("SERIAL_PORT", "/dev/ttyACM0")
DEFAULT_SERIAL_BAUD = int(os.getenv("SERIAL_BAUD", "115200"))
FEED_WINDOW = int(os.getenv("FEED_WINDOW", "1000"))

# Configure logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# =============================================================================
# Global Singletons
# =============================================================================

_session: Optional[PollingSession] = None
_feed: Optional[SnapshotFeed] = None
_port: Optional[str] = None
_session_config: SessionConfig = SessionConfig()
_lock = RLock()  # Protects state-changing operations

# =============================================================================
# FastAPI App
# =============================================================================

app = FastAPI(
    title="DLP-TH1C API",
    description="REST and WebSocket interface for the DLP-TH1C multi-sensor module",
    version=__version__,
)

# =============================================================================
# Response Models
# =============================================================================


class StatusResponse(BaseModel):
    """Response for GET /status."""
    connected: bool
    running: bool
    port: Optional[str]
    command: Optional[str]
    state: str
    snapshots: int
    error: Optional[str]


class ConnectResponse(BaseModel):
    """Response for POST /connect."""
    status: str
    port: str


class StartResponse(BaseModel):
    """Response for POST /start."""
    status: str
    command: str


# =============================================================================
# Exception Handlers
# =============================================================================

@app.exception_handler(InvalidCommand)
async def invalid_command_handler(request: Request, exc: InvalidCommand):
    """Map InvalidCommand to 400 Bad Request."""
    logger.error(f"InvalidCommand: {exc}")
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(DecodeError)
async def decode_error_handler(request: Request, exc: DecodeError):
    """Map other decode failures to 422 Unprocessable Entity."""
    logger.error(f"DecodeError: {exc}")
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(SerialIOError)
async def serial_io_error_handler(request: Request, exc: SerialIOError):
    """Map SerialIOError to 503 Service Unavailable."""
    logger.error(f"SerialIOError: {exc}")
    return JSONResponse(status_code=503, content={"detail": str(exc)})


# =============================================================================
# Read-Only Endpoints
# =============================================================================

@app.get("/")
async def root():
    return {"service": "DLP-TH1C API", "version": __version__, "status": "online"}


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"service": "DLP-TH1C API", "version": __version__, "status": "online"}


@app.get("/status", response_model=StatusResponse)
async def get_status():
    """Get connection, polling loop and feed status."""
    session, feed = _session, _feed

    error = None
    if session is not None and session.error is not None:
        error = str(session.error)

    return StatusResponse(
        connected=session is not None,
        running=session is not None and session.is_running(),
        port=_port,
        command=session.command if session else None,
        state=session.state.value if session else "disconnected",
        snapshots=feed.count if feed else 0,
        error=error,
    )


@app.get("/latest")
async def get_latest():
    """Get the most recent snapshot as a flat row, or {} if none yet."""
    if not _feed:
        return {}

    latest = _feed.latest_row()
    return latest if latest else {}


@app.get("/recent")
async def get_recent(count: int = Query(10, ge=1, le=1000)):
    """Get the newest `count` snapshots (oldest first) as flat rows."""
    if not _feed:
        return {"rows": []}

    return {"rows": _feed.recent_rows(count)}


# =============================================================================
# Lifecycle Endpoints
# =============================================================================

@app.post("/connect", response_model=ConnectResponse)
async def connect(
    port: str = Query(DEFAULT_SERIAL_PORT, description="Serial port (e.g., /dev/ttyACM0)"),
    baud: int = Query(DEFAULT_SERIAL_BAUD, description="Baud rate"),
):
    """Open the serial port and create a polling session.

    Raises:
        400: If already connected
        503: If port cannot be opened (SerialIOError)
    """
    global _session, _port

    with _lock:
        if _session is not None:
            raise HTTPException(status_code=400, detail="Already connected. Disconnect first.")

        logger.info(f"Connecting to {port} at {baud} baud...")
        transport = Transport.open(port, baud)
        _session = PollingSession(transport, _session_config)
        _port = port

        logger.info(f"Connected to {port}")
        return ConnectResponse(status="connected", port=port)


@app.post("/start", response_model=StartResponse)
async def start_polling(
    command: str = Query("all", description="'all', one command letter, or several letters"),
):
    """Start the polling loop and the snapshot feed.

    Raises:
        400: If command is invalid or polling is already running
        503: If not connected
    """
    global _feed

    if not _session:
        raise HTTPException(status_code=503, detail="Not connected")

    with _lock:
        if _session.is_running():
            raise HTTPException(status_code=400, detail="Polling already running")

        _session.start(command)
        _feed = SnapshotFeed(_session, max_snapshots=FEED_WINDOW)
        _feed.start()

        logger.info(f"Polling started for command {command!r}")
        return StartResponse(status="started", command=command)


@app.post("/stop")
async def stop_polling():
    """Stop the polling loop after its current cycle."""
    if not _session:
        raise HTTPException(status_code=503, detail="Not connected")

    with _lock:
        _session.stop()
        if _feed:
            _feed.join(timeout=1.0)
        return {"status": "stopped"}


@app.post("/disconnect")
async def disconnect():
    """Stop polling and close the serial port."""
    global _session, _feed, _port

    with _lock:
        if _session:
            _session.close()
        if _feed:
            _feed.join(timeout=1.0)
        _session = None
        _feed = None
        _port = None
        return {"status": "disconnected"}


# =============================================================================
# WebSocket Streaming
# =============================================================================

@app.websocket("/stream")
async def websocket_stream(websocket: WebSocket):
    """Push each new snapshot (as a flat row) to the client.

    Usage:
        ws = new WebSocket("ws://localhost:9150/stream");
        ws.onmessage = (event) => console.log(JSON.parse(event.data).temperature);
    """
    await websocket.accept()
    logger.info(f"WebSocket client connected: {websocket.client}")

    if not _feed:
        await websocket.send_json({"error": "No snapshot feed running"})
        await websocket.close()
        return

    feed = _feed
    try:
        last_count = 0
        while True:
            if feed.count != last_count:
                latest = feed.latest_row()
                if latest:
                    await websocket.send_json(latest)
                last_count = feed.count

            if not feed.is_running() and feed.count == last_count:
                if feed.error is not None:
                    await websocket.send_json({"error": str(feed.error)})
                await websocket.close()
                return

            await asyncio.sleep(0.1)

    except WebSocketDisconnect:
        logger.info(f"WebSocket client disconnected: {websocket.client}")
    except Exception as e:
        logger.error(f"WebSocket error: {e}", exc_info=True)
        try:
            await websocket.close()
        except RuntimeError:
            logger.debug("WebSocket already closed")


# =============================================================================
# Shutdown
# =============================================================================

@app.on_event("shutdown")
async def shutdown_event():
    """Clean up resources on shutdown."""
    global _session, _feed

    logger.info("Shutting down DLP-TH1C API...")
    if _session:
        _session.close()
    _session = None
    _feed = None
    logger.info("Shutdown complete")
