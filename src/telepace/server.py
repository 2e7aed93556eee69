# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Web server exposing the playback controller.
Clients send control messages over a WebSocket and receive every playback
event as JSON; GET /state returns a snapshot for polling clients.
"""

import asyncio
import contextlib
import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from aiohttp import web

from .config import Config, save_config, update_config_playback
from .playback import PlaybackEvent, PlaybackMode, PlaybackStateMachine
from .subtitles import generate_srt

logger = logging.getLogger(__name__)

Handler = Callable[[web.WebSocketResponse, dict[str, Any]], Awaitable[None]]


class MessageError(ValueError):
    """A WebSocket message was missing a field or had the wrong type."""


def _number(data: dict[str, Any], key: str) -> float:
    value = data.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise MessageError(f"'{key}' must be a number")
    return float(value)


def _integer(data: dict[str, Any], key: str) -> int:
    value = data.get(key)
    if isinstance(value, bool) or not isinstance(value, int):
        raise MessageError(f"'{key}' must be an integer")
    return value


def _direction(data: dict[str, Any]) -> int:
    return 1 if _number(data, "direction") > 0 else -1


class WebServer:
    """
    Serves the playback controller over HTTP and WebSocket.
    """

    def __init__(
        self,
        controller: PlaybackStateMachine,
        host: str = "127.0.0.1",
        port: int = 8000,
        config: Config | None = None
    ) -> None:
        self.controller: PlaybackStateMachine = controller
        self.host: str = host
        self.port: int = port
        self.config: Config | None = config
        self.app: web.Application = web.Application()
        self.websockets: set[web.WebSocketResponse] = set()
        self.runner: web.AppRunner | None = None
        self._sends: set[asyncio.Task[None]] = set()

        self._handlers: dict[str, Handler] = {
            "script": self._on_script_message,
            "layout": self._on_layout_message,
            "mode": self._on_mode_message,
            "cycle_mode": self._on_cycle_mode_message,
            "toggle": self._on_toggle_message,
            "stop": self._on_stop_message,
            "back_to_top": self._on_back_to_top_message,
            "seek": self._on_seek_message,
            "navigate": self._on_navigate_message,
            "wheel": self._on_wheel_message,
            "advance_page": self._on_advance_page_message,
            "speed": self._on_speed_message,
            "go_to_word": self._on_go_to_word_message,
            "cue": self._on_cue_message,
            "language": self._on_language_message,
            "save_config": self._on_save_config_message,
        }

        self._unsubscribe = controller.subscribe(self._on_playback_event)
        self._setup_routes()

    def _setup_routes(self) -> None:
        """Set up HTTP routes."""
        self.app.router.add_get('/ws', self._handle_websocket)
        self.app.router.add_get('/state', self._handle_get_state)
        self.app.router.add_post('/script', self._handle_script_upload)
        self.app.router.add_get('/subtitles.srt', self._handle_subtitles)

    # ---- HTTP ---------------------------------------------------------------

    async def _handle_get_state(self, request: web.Request) -> web.Response:
        return web.json_response(self.controller.snapshot())

    async def _handle_script_upload(self, request: web.Request) -> web.Response:
        """Replace the script from a JSON body {"text": ..., "max_words_per_line": ...}."""
        try:
            data = await request.json()
        except json.JSONDecodeError:
            return web.json_response(
                {"status": "error", "message": "Invalid JSON"}, status=400)
        if not isinstance(data, dict) or not isinstance(data.get("text"), str):
            return web.json_response(
                {"status": "error", "message": "'text' must be a string"}, status=400)

        max_words = data.get("max_words_per_line")
        index = self.controller.set_script(
            data["text"], max_words if isinstance(max_words, int) else None)
        return web.json_response({"status": "ok", "lines": index.line_count})

    async def _handle_subtitles(self, request: web.Request) -> web.Response:
        srt: str = generate_srt(
            self.controller.text,
            self.controller.scroller.speed,
            self.controller.max_words_per_line,
        )
        return web.Response(
            text=srt,
            content_type='application/x-subrip',
            headers={'Content-Disposition': 'attachment; filename="subtitles.srt"'},
        )

    # ---- WebSocket ----------------------------------------------------------

    async def _handle_websocket(self, request: web.Request) -> web.WebSocketResponse:
        """Handle WebSocket connections for real-time updates."""
        ws = web.WebSocketResponse()
        await ws.prepare(request)
        self.websockets.add(ws)
        logger.info("WebSocket connected. Total: %d", len(self.websockets))

        try:
            await ws.send_json({"type": "init", **self.controller.snapshot()})

            async for msg in ws:
                if msg.type == web.WSMsgType.TEXT:
                    try:
                        data = json.loads(msg.data)
                    except json.JSONDecodeError:
                        await ws.send_json({"type": "error", "message": "Invalid JSON"})
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
        """Handle incoming WebSocket messages using dispatch pattern."""
        msg_type = data.get("type")
        if not msg_type:
            return

        handler = self._handlers.get(msg_type) if isinstance(msg_type, str) else None
        if handler is None:
            logger.warning("Unhandled WebSocket message: %s", msg_type)
            await ws.send_json({"type": "error", "message": f"Unknown message: {msg_type}"})
            return

        try:
            await handler(ws, data)
        except ValueError as e:  # includes MessageError and bad enum values
            await ws.send_json({"type": "error", "message": str(e), "request": msg_type})

    async def _on_script_message(self, _ws: web.WebSocketResponse, data: dict[str, Any]) -> None:
        text = data.get("text", "")
        if not isinstance(text, str):
            raise MessageError("'text' must be a string")
        max_words = data.get("max_words_per_line")
        self.controller.set_script(text, _integer(data, "max_words_per_line")
                                   if max_words is not None else None)

    async def _on_layout_message(self, _ws: web.WebSocketResponse, data: dict[str, Any]) -> None:
        self.controller.set_layout(
            _number(data, "line_height"),
            _number(data, "viewport_height"),
            _number(data, "top_padding") if "top_padding" in data else 0.0,
        )

    async def _on_mode_message(self, _ws: web.WebSocketResponse, data: dict[str, Any]) -> None:
        # PlaybackMode raises ValueError for unknown modes
        self.controller.set_mode(PlaybackMode(data.get("mode")))

    async def _on_cycle_mode_message(self, _ws: web.WebSocketResponse, _data: dict[str, Any]) -> None:
        self.controller.cycle_mode()

    async def _on_toggle_message(self, _ws: web.WebSocketResponse, _data: dict[str, Any]) -> None:
        self.controller.toggle()

    async def _on_stop_message(self, _ws: web.WebSocketResponse, _data: dict[str, Any]) -> None:
        self.controller.stop()

    async def _on_back_to_top_message(self, _ws: web.WebSocketResponse, _data: dict[str, Any]) -> None:
        self.controller.back_to_top()

    async def _on_seek_message(self, _ws: web.WebSocketResponse, data: dict[str, Any]) -> None:
        self.controller.jump_to_line(_integer(data, "line"))

    async def _on_navigate_message(self, _ws: web.WebSocketResponse, data: dict[str, Any]) -> None:
        self.controller.navigate_line(_direction(data))

    async def _on_wheel_message(self, _ws: web.WebSocketResponse, data: dict[str, Any]) -> None:
        self.controller.wheel(_number(data, "delta"))

    async def _on_advance_page_message(self, _ws: web.WebSocketResponse, data: dict[str, Any]) -> None:
        self.controller.advance_page(_direction(data))

    async def _on_speed_message(self, _ws: web.WebSocketResponse, data: dict[str, Any]) -> None:
        if "scroll_speed" in data:
            self.controller.set_scroll_speed(_number(data, "scroll_speed"))
        if "rsvp_speed" in data:
            self.controller.set_rsvp_speed(_number(data, "rsvp_speed"))

    async def _on_go_to_word_message(self, _ws: web.WebSocketResponse, data: dict[str, Any]) -> None:
        self.controller.go_to_word(_integer(data, "index"))

    async def _on_cue_message(self, _ws: web.WebSocketResponse, data: dict[str, Any]) -> None:
        action = data.get("action", "toggle")
        if action == "toggle":
            line = data.get("line")
            self.controller.toggle_cue_point(_integer(data, "line") if line is not None else None)
        elif action == "next":
            self.controller.jump_to_cue(1)
        elif action == "previous":
            self.controller.jump_to_cue(-1)
        else:
            raise MessageError(f"Unknown cue action: {action}")

    async def _on_language_message(self, _ws: web.WebSocketResponse, data: dict[str, Any]) -> None:
        language = data.get("language")
        if not isinstance(language, str) or not language:
            raise MessageError("'language' must be a non-empty string")
        self.controller.set_language(language)

    async def _on_save_config_message(self, ws: web.WebSocketResponse, _data: dict[str, Any]) -> None:
        if self.config is None:
            await ws.send_json({"type": "config_saved", "success": False,
                                "message": "No configuration loaded"})
            return
        self.config = update_config_playback(self.config, self.controller.playback_settings())
        success = save_config(self.config)
        await ws.send_json({"type": "config_saved", "success": success})

    # ---- broadcasting -------------------------------------------------------

    def _on_playback_event(self, event: PlaybackEvent) -> None:
        if not self.websockets:
            return
        task = asyncio.ensure_future(self.broadcast(event.to_dict()))
        self._sends.add(task)
        task.add_done_callback(self._sends.discard)

    async def broadcast(self, message: dict[str, Any]) -> None:
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
        print(f"Web server running at http://{self.host}:{self.port}")

    async def stop(self) -> None:
        """Stop the web server."""
        self._unsubscribe()
        for ws in list(self.websockets):
            with contextlib.suppress(Exception):
                await ws.close()
        self.websockets.clear()

        if self.runner:
            await self.runner.cleanup()
