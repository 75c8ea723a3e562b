# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Web server exposing a prompter session to a rendering layer.

HTTP endpoints give the current state and script lines; a WebSocket pushes
every scroll change and accepts the user's commands (pause, speed, clicks,
hover...). All commands are forwarded to the session, which applies them in
order on its own worker thread.
"""

import asyncio
import contextlib
import json
import logging
import math
import threading
from collections.abc import Awaitable, Callable
from typing import Any

from aiohttp import web

from .scroll_state import ScrollSnapshot
from .session import PrompterSession

logger = logging.getLogger(__name__)

MessageHandler = Callable[[web.WebSocketResponse, dict[str, Any]], Awaitable[None]]


def _as_float(value: object, default: float = 0.0) -> float:
    """Read a finite number from a message field, else the default."""
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        return default
    try:
        number: float = float(value)
    except (ValueError, OverflowError):
        return default
    return number if math.isfinite(number) else default


class WebServer:
    """
    Serves the session state and manages WebSocket connections.
    """

    def __init__(
        self,
        session: PrompterSession,
        host: str = "127.0.0.1",
        port: int = 8000
    ) -> None:
        self.session: PrompterSession = session
        self.host: str = host
        self.port: int = port
        self.app: web.Application = web.Application()
        self.websockets: set[web.WebSocketResponse] = set()
        self.runner: web.AppRunner | None = None

        self._loop: asyncio.AbstractEventLoop | None = None
        self._pending_snapshot: ScrollSnapshot | None = None
        self._snapshot_lock = threading.Lock()
        self._unsubscribe: Callable[[], None] | None = None

        self.app.on_startup.append(self._on_startup)
        self.app.on_cleanup.append(self._on_cleanup)
        self._setup_routes()

    def _setup_routes(self) -> None:
        self.app.router.add_get('/state', self._handle_get_state)
        self.app.router.add_get('/script', self._handle_get_script)
        self.app.router.add_post('/script', self._handle_script_upload)
        self.app.router.add_get('/ws', self._handle_websocket)

    async def _on_startup(self, _app: web.Application) -> None:
        self._loop = asyncio.get_running_loop()
        self._unsubscribe = self.session.subscribe(self._on_snapshot)

    async def _on_cleanup(self, _app: web.Application) -> None:
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None
        for ws in list(self.websockets):
            with contextlib.suppress(Exception):
                await ws.close()
        self.websockets.clear()

    # Scroll observer (runs on the session worker thread)

    def _on_snapshot(self, snapshot: ScrollSnapshot) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        # Coalesce: only the newest snapshot is sent once the loop gets to it
        with self._snapshot_lock:
            first: bool = self._pending_snapshot is None
            self._pending_snapshot = snapshot
        if first:
            with contextlib.suppress(RuntimeError):
                loop.call_soon_threadsafe(self._flush_snapshot)

    def _flush_snapshot(self) -> None:
        with self._snapshot_lock:
            snapshot = self._pending_snapshot
            self._pending_snapshot = None
        if snapshot is not None and self.websockets:
            asyncio.ensure_future(self.broadcast(self._state_message(snapshot)))

    def _state_message(self, snapshot: ScrollSnapshot) -> dict[str, object]:
        return {
            "type": "state",
            **snapshot.to_dict(),
            "confidence": self.session.confidence,
            "listening": self.session.is_listening,
        }

    def _script_message(self) -> dict[str, object]:
        return {
            "type": "script",
            "lines": list(self.session.lines),
            "lineHeight": self.session.scroll.line_height,
        }

    # HTTP

    async def _handle_get_state(self, _request: web.Request) -> web.Response:
        return web.json_response(self._state_message(self.session.snapshot()))

    async def _handle_get_script(self, _request: web.Request) -> web.Response:
        return web.json_response(self._script_message())

    async def _handle_script_upload(self, request: web.Request) -> web.Response:
        """Load new script text, sent as JSON {"text": ...} or plain text."""
        if request.content_type == 'application/json':
            try:
                data = await request.json()
            except json.JSONDecodeError:
                return web.json_response({"error": "invalid JSON"}, status=400)
            text = data.get("text") if isinstance(data, dict) else None
            if not isinstance(text, str):
                return web.json_response({"error": "missing 'text'"}, status=400)
        else:
            text = await request.text()

        await self._load_script(text)
        return web.json_response({"status": "ok"})

    async def _load_script(self, text: str) -> None:
        self.session.load_script(text)
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self.session.flush)
        await self.broadcast(self._script_message())

    # WebSocket

    async def _handle_websocket(self, request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse()
        await ws.prepare(request)
        self.websockets.add(ws)
        logger.info("WebSocket connected. Total: %d", len(self.websockets))

        try:
            await ws.send_json({
                "type": "init",
                "lines": list(self.session.lines),
                "lineHeight": self.session.scroll.line_height,
                "state": self._state_message(self.session.snapshot()),
            })

            async for msg in ws:
                if msg.type == web.WSMsgType.TEXT:
                    try:
                        data = json.loads(msg.data)
                    except json.JSONDecodeError:
                        logger.warning("Ignoring malformed WebSocket message")
                        continue
                    if isinstance(data, dict):
                        await self._handle_ws_message(ws, data)
                elif msg.type == web.WSMsgType.ERROR:
                    logger.warning("WebSocket error: %s", ws.exception())
        finally:
            self.websockets.discard(ws)
            logger.info("WebSocket disconnected. Total: %d", len(self.websockets))

        return ws

    async def _handle_ws_message(self, ws: web.WebSocketResponse, data: dict[str, Any]) -> None:
        """Dispatch an incoming WebSocket message by its type."""
        handlers: dict[str, MessageHandler] = {
            "pause": self._on_pause,
            "resume": self._on_resume,
            "toggle_pause": self._on_toggle_pause,
            "reset": self._on_reset,
            "adjust_speed": self._on_adjust_speed,
            "scroll_by": self._on_scroll_by,
            "jump_to_line": self._on_jump_to_line,
            "hover": self._on_hover,
            "layout": self._on_layout,
            "script": self._on_script,
        }
        handler = handlers.get(str(data.get("type", "")))
        if handler:
            await handler(ws, data)
        else:
            logger.warning("Unhandled WebSocket message: %s", data.get("type"))

    async def _on_pause(self, _ws: web.WebSocketResponse, _data: dict[str, Any]) -> None:
        self.session.pause()

    async def _on_resume(self, _ws: web.WebSocketResponse, _data: dict[str, Any]) -> None:
        self.session.resume()

    async def _on_toggle_pause(self, _ws: web.WebSocketResponse, _data: dict[str, Any]) -> None:
        self.session.toggle_pause()

    async def _on_reset(self, _ws: web.WebSocketResponse, _data: dict[str, Any]) -> None:
        self.session.reset()

    async def _on_adjust_speed(self, _ws: web.WebSocketResponse, data: dict[str, Any]) -> None:
        self.session.adjust_speed(_as_float(data.get("delta")))

    async def _on_scroll_by(self, _ws: web.WebSocketResponse, data: dict[str, Any]) -> None:
        self.session.scroll_by_delta(_as_float(data.get("delta")))

    async def _on_jump_to_line(self, _ws: web.WebSocketResponse, data: dict[str, Any]) -> None:
        last_line: int = max(0, len(self.session.lines) - 1)
        line_index: int = min(max(0, int(_as_float(data.get("lineIndex")))), last_line)
        auto_resume: object = data.get("autoResumeAfter")
        self.session.jump_to_line(
            line_index,
            _as_float(auto_resume) if auto_resume is not None else None
        )

    async def _on_hover(self, _ws: web.WebSocketResponse, data: dict[str, Any]) -> None:
        self.session.set_hovering(bool(data.get("hovering", False)))

    async def _on_layout(self, _ws: web.WebSocketResponse, data: dict[str, Any]) -> None:
        self.session.set_content_size(
            _as_float(data.get("contentHeight")),
            _as_float(data.get("visibleHeight"))
        )

    async def _on_script(self, _ws: web.WebSocketResponse, data: dict[str, Any]) -> None:
        await self._load_script(str(data.get("text", "")))

    async def broadcast(self, message: dict[str, object]) -> None:
        """Send a message to all connected WebSocket clients."""
        if not self.websockets:
            return

        dead: set[web.WebSocketResponse] = set()
        for ws in list(self.websockets):
            try:
                await ws.send_json(message)
            except (ConnectionError, RuntimeError) as e:
                logger.warning("Error sending to WebSocket: %s", e)
                dead.add(ws)

        self.websockets -= dead

    async def start(self) -> None:
        """Start the web server."""
        self.runner = web.AppRunner(self.app)
        await self.runner.setup()
        site: web.TCPSite = web.TCPSite(self.runner, self.host, self.port)
        await site.start()
        logger.info("Web server running at http://%s:%d", self.host, self.port)

    async def stop(self) -> None:
        """Stop the web server."""
        if self.runner:
            await self.runner.cleanup()
            self.runner = None
