"""
Base pieces for the auction web server.
Provides the WebSocket connection manager, error translation and the runner.
"""

import asyncio
import logging
from typing import List

from fastapi import FastAPI, Request, WebSocket
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .errors import AuctionError

logger = logging.getLogger(__name__)


class BaseConnectionManager:
    """
    Keeps the list of live WebSocket clients and pushes events to them.
    """

    def __init__(self):
        self.connections: List[WebSocket] = []

    async def connect(self, ws: WebSocket):
        """Accept and register a WebSocket connection."""
        await ws.accept()
        self.connections.append(ws)

    def disconnect(self, ws: WebSocket):
        """Remove a WebSocket connection."""
        if ws in self.connections:
            self.connections.remove(ws)

    async def broadcast(self, msg: dict):
        """Send a message to every client, dropping the ones that fail."""
        for ws in list(self.connections):
            try:
                await ws.send_json(msg)
            except Exception as e:
                logger.info("Dropping WebSocket client after failed send: %s", e)
                self.disconnect(ws)


def _describe_validation_error(exc: RequestValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "invalid request: " + "; ".join(parts)


def register_error_handlers(app: FastAPI):
    """Answer every AuctionError and bad request body with {"error": message}."""

    @app.exception_handler(AuctionError)
    async def auction_error_handler(request: Request, exc: AuctionError):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"error": _describe_validation_error(exc)})


async def run_blocking(func, *args, **kwargs):
    """Run a synchronous store call in a worker thread, off the event loop."""
    loop = asyncio.get_event_loop()
    return await loop.run_in_executor(None, lambda: func(*args, **kwargs))


def run_server(app: FastAPI, host: str = "0.0.0.0", port: int = 5080):
    """Run the FastAPI server."""
    import uvicorn
    uvicorn.run(app, host=host, port=port)
