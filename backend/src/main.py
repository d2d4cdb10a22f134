"""Calorie Tracker Server - Entry point.

Serves the JSON API, the live WebSocket feeds and the MCP tools with
Starlette, run by uvicorn.
"""

import asyncio
import logging
import os
from collections.abc import Coroutine
from typing import Any

import uvicorn
from pydantic import ValidationError
from starlette.applications import Starlette
from starlette.concurrency import run_in_threadpool
from starlette.middleware import Middleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Mount, Route, WebSocketRoute
from starlette.websockets import WebSocket, WebSocketDisconnect

from .core.errors import (
    AuthError,
    InputValidationError,
    NotAuthenticatedError,
    RemoteOperationError,
    SaveInProgressError,
    TrackerError,
    error_message,
)
from .core.meals import MEAL_ADDED_MESSAGE
from .core.models import EditorState
from .core.profile_editor import PROFILE_SAVED_MESSAGE, ProfileEditor
from .core.progress import build_day_view
from .shell.auth import Session
from .shell.firestore_client import SnapshotStream
from .shell.mcp_server import current_session, get_identity_client, get_store, mcp, pending_saves
from .shell.tracker import PendingSaves, Tracker, parse_log_date


logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO"),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

DEFAULT_CORS_ORIGINS = "http://localhost:5173"

# Auth failures that are not credential problems; everything else is 401
AUTH_ERROR_STATUS = {
    "auth/email-already-in-use": 409,
    "auth/network-request-failed": 502,
}

# Close codes for live feeds
POLICY_VIOLATION = 1008
UNSUPPORTED_DATA = 1003


# ==================== Helpers ====================


def error_response(err: Exception) -> JSONResponse:
    """Transient error notification with a status matching the error class."""
    if isinstance(err, AuthError):
        status = AUTH_ERROR_STATUS.get(err.code, 401)
    elif isinstance(err, NotAuthenticatedError):
        status = 401
    elif isinstance(err, SaveInProgressError):
        status = 409
    elif isinstance(err, RemoteOperationError):
        status = 502
    else:
        status = 400
    return JSONResponse({"error": error_message(err)}, status_code=status)


async def read_json(request: Request) -> dict[str, Any]:
    """Request body as a JSON object.

    Raises:
        InputValidationError: Body is not a JSON object
    """
    try:
        body = await request.json()
    except ValueError as e:
        raise InputValidationError("Request body must be JSON.") from e
    if not isinstance(body, dict):
        raise InputValidationError("Request body must be a JSON object.")
    return body


def text_field(body: dict[str, Any], key: str) -> str:
    value = body.get(key)
    return "" if value is None else str(value)


def get_session(request: Request) -> Session:
    session = getattr(request.state, "session", None) or current_session.get()
    if session is None:
        session = Session(get_identity_client())
        session.restore(None)
    return session


def get_tracker(request: Request) -> Tracker:
    return Tracker(session=get_session(request), store=get_store(), pending=get_pending_saves(request))


def get_pending_saves(request: Request) -> PendingSaves:
    return request.app.state.pending_saves


def parse_editor_state(body: dict[str, Any]) -> EditorState:
    try:
        return EditorState.model_validate(body.get("state") or {})
    except ValidationError as e:
        raise InputValidationError("Invalid profile form state.") from e


# ==================== Route Handlers ====================


async def health_check(request: Request) -> JSONResponse:
    """Health check endpoint."""
    return JSONResponse({"status": "healthy", "service": "calorie-tracker"})


def _credentials(body: dict[str, Any]) -> tuple[str, str]:
    email = text_field(body, "email").strip()
    password = text_field(body, "password")
    if not email or "@" not in email or not password:
        raise InputValidationError("Valid email and password are required.")
    return email, password


def _signed_in(session: Session) -> JSONResponse:
    user = session.require_user()
    return JSONResponse({
        "user": {"uid": user.uid, "email": user.email},
        "id_token": user.id_token,
        "refresh_token": user.refresh_token,
    })


async def register(request: Request) -> JSONResponse:
    """Create an email/password account."""
    session = get_session(request)
    try:
        email, password = _credentials(await read_json(request))
        await run_in_threadpool(session.register_with_password, email, password)
    except TrackerError as e:
        return error_response(e)
    return _signed_in(session)


async def login(request: Request) -> JSONResponse:
    """Sign in with email and password."""
    session = get_session(request)
    try:
        email, password = _credentials(await read_json(request))
        await run_in_threadpool(session.login_with_password, email, password)
    except TrackerError as e:
        return error_response(e)
    return _signed_in(session)


async def login_federated(request: Request) -> JSONResponse:
    """Sign in with a federated provider token (Google by default)."""
    session = get_session(request)
    try:
        body = await read_json(request)
        await run_in_threadpool(
            session.login_with_federated_provider,
            body.get("id_token"),
            body.get("provider_id") or "google.com",
        )
    except TrackerError as e:
        return error_response(e)
    return _signed_in(session)


async def logout(request: Request) -> JSONResponse:
    get_session(request).logout()
    return JSONResponse({"message": "Signed out."})


async def me(request: Request) -> JSONResponse:
    try:
        user = get_session(request).require_user()
    except TrackerError as e:
        return error_response(e)
    return JSONResponse({"uid": user.uid, "email": user.email})


async def get_day(request: Request) -> JSONResponse:
    """Meals for a date with progress toward the goal."""
    try:
        day = get_tracker(request).day(request.path_params["date"])
    except TrackerError as e:
        return error_response(e)
    return JSONResponse(day.model_dump())


async def add_meal(request: Request) -> JSONResponse:
    """Log a meal. Calories arrive as typed text."""
    tracker = get_tracker(request)
    try:
        body = await read_json(request)
        entry = await run_in_threadpool(
            tracker.log_meal,
            text_field(body, "name"),
            text_field(body, "calories"),
            body.get("time") or None,
            request.path_params["date"],
        )
    except TrackerError as e:
        return error_response(e)
    return JSONResponse({"message": MEAL_ADDED_MESSAGE, "meal": entry.model_dump()}, status_code=201)


async def delete_meal(request: Request) -> JSONResponse:
    tracker = get_tracker(request)
    try:
        await run_in_threadpool(
            tracker.remove_meal,
            request.path_params["meal_id"],
            request.path_params["date"],
        )
    except TrackerError as e:
        return error_response(e)
    return JSONResponse({"message": "Meal deleted."})


async def get_profile(request: Request) -> JSONResponse:
    """Stored profile plus an editor state loaded from it."""
    try:
        profile = get_tracker(request).profile()
    except TrackerError as e:
        return error_response(e)
    editor = ProfileEditor.from_profile(profile)
    return JSONResponse({
        "profile": profile.model_dump(mode="json") if profile else None,
        "editor": editor.state.model_dump(mode="json"),
    })


async def change_profile_field(request: Request) -> JSONResponse:
    """Apply one field change to an editor state and return the result."""
    try:
        body = await read_json(request)
        editor = ProfileEditor(parse_editor_state(body))
        editor.change(text_field(body, "field"), text_field(body, "value"))
    except TrackerError as e:
        return error_response(e)
    return JSONResponse({"editor": editor.state.model_dump(mode="json")})


async def save_profile(request: Request) -> JSONResponse:
    """Validate an editor state and merge-save the profile."""
    tracker = get_tracker(request)
    try:
        editor = ProfileEditor(parse_editor_state(await read_json(request)))
        profile = await run_in_threadpool(tracker.save_profile, editor)
    except TrackerError as e:
        return error_response(e)
    return JSONResponse({"message": PROFILE_SAVED_MESSAGE, "profile": profile.model_dump(mode="json")})


# ==================== Live Feeds ====================


async def _open_feed(websocket: WebSocket) -> Session | None:
    """Authenticate a feed from its ``token`` query parameter."""
    session = Session(get_identity_client())
    user = await run_in_threadpool(session.restore, websocket.query_params.get("token"))
    if user is None:
        await websocket.close(code=POLICY_VIOLATION)
        return None
    await websocket.accept()
    return session


async def _serve_feed(
    websocket: WebSocket,
    streams: list[SnapshotStream[Any]],
    pumps: list[Coroutine[Any, Any, None]],
) -> None:
    """Run pumps until the client disconnects, then unsubscribe."""
    tasks = [asyncio.ensure_future(p) for p in pumps]
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
    except WebSocketDisconnect:
        pass
    finally:
        for stream in streams:
            stream.close()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)


async def day_feed(websocket: WebSocket) -> None:
    """Push a fresh day view whenever the meals or the goal change."""
    try:
        log_date = parse_log_date(websocket.path_params["date"])
    except InputValidationError:
        await websocket.close(code=UNSUPPORTED_DATA)
        return
    session = await _open_feed(websocket)
    if session is None:
        return

    store = get_store()
    user_id = session.require_user().uid
    meals_stream = store.watch_meals(user_id, log_date)
    profile_stream = store.watch_profile(user_id)
    cached: dict[str, Any] = {"meals": [], "goal": 0.0}

    async def send_day() -> None:
        day = build_day_view(log_date, cached["meals"], cached["goal"])
        await websocket.send_json(day.model_dump())

    async def pump_meals() -> None:
        async for meals in meals_stream:
            cached["meals"] = meals
            await send_day()

    async def pump_profile() -> None:
        async for profile in profile_stream:
            cached["goal"] = profile.daily_goal if profile else 0.0
            await send_day()

    await _serve_feed(websocket, [meals_stream, profile_stream], [pump_meals(), pump_profile()])


async def profile_feed(websocket: WebSocket) -> None:
    """Push the profile document whenever it changes."""
    session = await _open_feed(websocket)
    if session is None:
        return

    stream = get_store().watch_profile(session.require_user().uid)

    async def pump() -> None:
        async for profile in stream:
            await websocket.send_json({"profile": profile.model_dump(mode="json") if profile else None})

    await _serve_feed(websocket, [stream], [pump()])


# ==================== Auth Middleware ====================


class AuthMiddleware(BaseHTTPMiddleware):
    """Build the request's session from a Firebase ID token, if one is sent."""

    async def dispatch(self, request: Request, call_next):
        session = Session(get_identity_client())
        auth_header = request.headers.get("Authorization", "")

        if auth_header.startswith("Bearer "):
            id_token = auth_header.replace("Bearer ", "", 1).strip()
            user = await run_in_threadpool(session.restore, id_token)
            if user is not None:
                logger.debug("Authenticated user: %s", user.uid[:8])
        else:
            session.restore(None)

        request.state.session = session
        current_session.set(session)
        return await call_next(request)


# ==================== Create ASGI App ====================


def create_app() -> Starlette:
    """Create the Starlette application with MCP at root.

    The MCP streamable_http_app() handles /mcp/ internally when mounted at root.
    We use its lifespan context to ensure proper initialization.
    """
    mcp_app = mcp.streamable_http_app()

    routes = [
        Route("/health", health_check, methods=["GET"]),
        Route("/auth/register", register, methods=["POST"]),
        Route("/auth/login", login, methods=["POST"]),
        Route("/auth/federated", login_federated, methods=["POST"]),
        Route("/auth/logout", logout, methods=["POST"]),
        Route("/auth/me", me, methods=["GET"]),
        Route("/api/days/{date}", get_day, methods=["GET"]),
        Route("/api/days/{date}/meals", add_meal, methods=["POST"]),
        Route("/api/days/{date}/meals/{meal_id}", delete_meal, methods=["DELETE"]),
        Route("/api/profile", get_profile, methods=["GET"]),
        Route("/api/profile", save_profile, methods=["PUT"]),
        Route("/api/profile/editor", change_profile_field, methods=["POST"]),
        WebSocketRoute("/ws/days/{date}", day_feed),
        WebSocketRoute("/ws/profile", profile_feed),
        # Mount MCP app at root - it handles /mcp/ path internally
        Mount("/", app=mcp_app),
    ]

    origins = os.environ.get("CORS_ORIGINS", DEFAULT_CORS_ORIGINS)

    app = Starlette(
        routes=routes,
        middleware=[
            Middleware(
                CORSMiddleware,
                allow_origins=[o.strip() for o in origins.split(",") if o.strip()],
                allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
                allow_headers=["*"],
            ),
            Middleware(AuthMiddleware),
        ],
        lifespan=mcp_app.router.lifespan_context,
    )
    app.state.pending_saves = pending_saves

    return app


app = create_app()


def main() -> None:
    """Run the server."""
    port = int(os.environ.get("PORT", 8080))
    host = os.environ.get("HOST", "0.0.0.0")

    logger.info("Starting calorie tracker on %s:%d", host, port)

    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    main()
