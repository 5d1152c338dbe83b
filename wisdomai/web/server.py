"""Async HTTP API for chatting with the personas.

Uses aiohttp's AppRunner/TCPSite for non-blocking start/stop. Replies are
streamed to the client as Server-Sent Events.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from aiohttp import web
from pydantic import ValidationError

from wisdomai.auth.store import ApiKeyStore
from wisdomai.chats.models import ChatMessage, Role
from wisdomai.chats.store import ChatNotFoundError, ChatStore
from wisdomai.chats.turn import run_turn
from wisdomai.config import settings
from wisdomai.knowledge.loader import KnowledgeLoadError
from wisdomai.knowledge.store import KnowledgeStore
from wisdomai.llm.client import ProviderError
from wisdomai.web.schemas import (
    ClearChatRequest,
    SaveMessageRequest,
    StreamChatRequest,
    first_error,
)

logger = logging.getLogger(__name__)

API_KEY_HEADER = "X-API-Key"
DEFAULT_HISTORY_LIMIT = 30
MAX_HISTORY_LIMIT = 100

_SSE_HEADERS = {
    "Content-Type": "text/event-stream",
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


def _error(message: str, status: int, **extra: Any) -> web.Response:
    return web.json_response({"error": message, **extra}, status=status)


def _provider_status(exc: ProviderError) -> int:
    if exc.rate_limited:
        return 429
    if exc.retryable:
        return 503
    return 502


async def _read_json(request: web.Request) -> dict[str, Any] | None:
    try:
        payload = await request.json()
    except Exception:
        logger.warning("Bad request: invalid JSON (%s %s)", request.method, request.path)
        return None
    return payload if isinstance(payload, dict) else None


# -- Auth ----------------------------------------------------------------------


@web.middleware
async def _auth_middleware(request: web.Request, handler):
    """Resolve the API key for every ``/api/`` route and stash the user ID."""
    if not request.path.startswith("/api/"):
        return await handler(request)

    raw_key = request.headers.get(API_KEY_HEADER) or request.query.get("apiKey", "")
    credential = await ApiKeyStore.get().authenticate(raw_key)
    if credential is None:
        logger.warning("Rejected %s %s: invalid API key", request.method, request.path)
        return _error("unauthorized", 401)

    request["user_id"] = credential.user_id
    return await handler(request)


# -- Handlers ------------------------------------------------------------------


async def _health(request: web.Request) -> web.Response:
    """GET /health, basic liveness check."""
    return web.json_response({"status": "ok", "knowledge_items": KnowledgeStore.get().size})


async def _handle_stream(request: web.Request) -> web.StreamResponse:
    """GET|POST /api/chat/stream: answer a message as a persona over SSE.

    Errors raised before the first chunk get a normal JSON status code.
    Once the event stream has started, a failure becomes a final ``error``
    event instead.
    """
    user_id = request["user_id"]

    if request.method == "POST":
        payload = await _read_json(request)
        if payload is None:
            return _error("invalid JSON", 400)
    else:
        payload = dict(request.query)
        payload.pop("apiKey", None)

    try:
        chat_request = StreamChatRequest.model_validate(payload)
    except ValidationError as exc:
        return _error(first_error(exc), 400)

    response = web.StreamResponse(headers=_SSE_HEADERS)

    async def send(event: dict[str, Any]) -> None:
        if not response.prepared:
            await response.prepare(request)
        await response.write(f"data: {json.dumps(event)}\n\n".encode())

    async def on_text_delta(text: str) -> None:
        await send({"content": text})

    try:
        result = await run_turn(
            user_id,
            chat_request.message,
            chat_request.persona,
            chat_id=chat_request.chat_id,
            on_text_delta=on_text_delta,
        )
    except ChatNotFoundError as exc:
        if response.prepared:
            await send({"error": str(exc), "retryable": False})
            return response
        return _error("chat not found", 404)
    except ProviderError as exc:
        logger.warning("Provider failure for user %s: %s", user_id, exc)
        extra = {"chatId": exc.chat_id} if exc.chat_id else {}
        if response.prepared:
            await send({"error": str(exc), "retryable": exc.retryable, **extra})
            return response
        return _error(str(exc), _provider_status(exc), **extra)
    except ConnectionResetError:
        logger.info("Stream client for user %s disconnected", user_id)
        return response
    except Exception:
        logger.exception("Stream failed for user %s", user_id)
        if response.prepared:
            await send({"error": "internal error", "retryable": False})
            return response
        return _error("internal error", 500)

    await send({"done": True, "chatId": result.chat_id})
    await response.write_eof()
    return response


async def _handle_save_message(request: web.Request) -> web.Response:
    """POST /api/chat/message: store a message without generating a reply."""
    user_id = request["user_id"]
    payload = await _read_json(request)
    if payload is None:
        return _error("invalid JSON", 400)

    try:
        body = SaveMessageRequest.model_validate(payload)
        message = ChatMessage(
            role=body.message.role,
            content=body.message.content,
            persona=body.persona if body.message.role is Role.ASSISTANT else None,
        )
    except ValidationError as exc:
        return _error(first_error(exc), 400)

    store = ChatStore.get()
    if body.chat_id:
        try:
            session = await store.append_message(body.chat_id, user_id, message)
        except ChatNotFoundError:
            return _error("chat not found", 404)
    else:
        session = await store.create_session(user_id, message)

    return web.json_response(session.model_dump(mode="json"))


async def _handle_history(request: web.Request) -> web.Response:
    """GET /api/chat/history: the user's chats, newest first."""
    try:
        limit = int(request.query.get("limit", DEFAULT_HISTORY_LIMIT))
    except ValueError:
        return _error("limit must be an integer", 400)
    limit = max(1, min(limit, MAX_HISTORY_LIMIT))

    summaries = await ChatStore.get().list_sessions(request["user_id"], limit=limit)
    return web.json_response([s.model_dump(mode="json") for s in summaries])


async def _handle_get_chat(request: web.Request) -> web.Response:
    """GET /api/chat/{chat_id}"""
    session = await ChatStore.get().get_session(request.match_info["chat_id"], request["user_id"])
    if session is None:
        return _error("chat not found", 404)
    return web.json_response(session.model_dump(mode="json"))


async def _handle_delete_chat(request: web.Request) -> web.Response:
    """DELETE /api/chat/{chat_id}"""
    deleted = await ChatStore.get().delete_session(
        request.match_info["chat_id"], request["user_id"]
    )
    if not deleted:
        return _error("chat not found", 404)
    return web.json_response({"ok": True})


async def _handle_clear_chat(request: web.Request) -> web.Response:
    """POST /api/chat/clear"""
    payload = await _read_json(request)
    if payload is None:
        return _error("invalid JSON", 400)
    try:
        body = ClearChatRequest.model_validate(payload)
    except ValidationError as exc:
        return _error(first_error(exc), 400)

    cleared = await ChatStore.get().clear_session(body.chat_id, request["user_id"])
    if not cleared:
        return _error("chat not found", 404)
    return web.json_response({"ok": True})


async def _handle_reload_knowledge(request: web.Request) -> web.Response:
    """POST /api/knowledge/reload (admins only)."""
    user_id = request["user_id"]
    if user_id not in settings.get_admin_user_ids():
        logger.warning("Knowledge reload refused for non-admin user %s", user_id)
        return _error("forbidden", 403)

    try:
        snapshot = await KnowledgeStore.get().reload()
    except KnowledgeLoadError as exc:
        return _error(f"reload failed: {exc}", 500)

    return web.json_response(
        {"ok": True, "documents": len(snapshot.documents), "items": len(snapshot.items)}
    )


def _create_web_app() -> web.Application:
    """Build the aiohttp Application with routes."""
    app = web.Application(middlewares=[_auth_middleware])
    app.router.add_get("/health", _health)
    app.router.add_get("/api/chat/stream", _handle_stream)
    app.router.add_post("/api/chat/stream", _handle_stream)
    app.router.add_post("/api/chat/message", _handle_save_message)
    app.router.add_get("/api/chat/history", _handle_history)
    app.router.add_post("/api/chat/clear", _handle_clear_chat)
    app.router.add_get("/api/chat/{chat_id}", _handle_get_chat)
    app.router.add_delete("/api/chat/{chat_id}", _handle_delete_chat)
    app.router.add_post("/api/knowledge/reload", _handle_reload_knowledge)
    return app


class WebServer:
    """Manages the aiohttp server lifecycle."""

    def __init__(self, host: str | None = None, port: int | None = None) -> None:
        self.host = host or settings.server_host
        self.port = port or settings.server_port
        self._runner: web.AppRunner | None = None

    async def start(self) -> None:
        """Start serving the API."""
        app = _create_web_app()
        self._runner = web.AppRunner(app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        logger.info("WisdomAI API listening on %s:%d", self.host, self.port)

    async def stop(self) -> None:
        """Shut down the server gracefully."""
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
            logger.info("WisdomAI API stopped")
