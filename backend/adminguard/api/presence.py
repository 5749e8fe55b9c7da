"""Live admin presence: the page WebSocket and the active-sessions listing"""
import json
from typing import Any, Dict, List, Tuple

from fastapi import APIRouter, Depends, Request, WebSocket, WebSocketDisconnect
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from adminguard.api.deps import require_admin_session
from adminguard.config import settings
from adminguard.database import get_db, session_scope
from adminguard.errors import AdminGuardError
from adminguard.realtime.idle import IdleTracker
from adminguard.realtime.presence import PresenceManager
from adminguard.services.audit import RequestMeta
from adminguard.services.presence_store import PresenceStore
from adminguard.services.session_resolver import AuthSessionResolver, ResolvedSession
from adminguard.utils.logger import logger

router = APIRouter(tags=["presence"])

# Application-defined WebSocket close codes
CLOSE_UNAUTHORIZED = 4401
CLOSE_IDLE_TIMEOUT = 4408
CLOSE_SESSION_ENDED = 4409


def _resolve_socket_session(token: str) -> Tuple[str, str, str]:
    with session_scope() as db:
        session = AuthSessionResolver(db).resolve(token)
        return session.user_id, session.identity.email, session.role


@router.websocket("/admin/ws/presence")
async def presence_socket(websocket: WebSocket):
    """One live admin page.

    Client messages::

        {"type": "page", "path": "/admin/users"}
        {"type": "activity", "signal": "mousemove"}

    Server messages::

        {"type": "presence", "onlineAdmins": 2, "admins": [...]}
        {"type": "idle_timeout"}
    """
    token = websocket.cookies.get(settings.SESSION_COOKIE_NAME)
    try:
        user_id, email, role = await run_in_threadpool(_resolve_socket_session, token)
    except AdminGuardError as exc:
        logger.info(f"Presence socket rejected: {exc.message}", extra={"reason": "session"})
        await websocket.close(code=CLOSE_UNAUTHORIZED)
        return

    await websocket.accept()
    hub = websocket.app.state.presence_hub
    registry = websocket.app.state.presence_registry
    manager = PresenceManager(hub.channel(settings.PRESENCE_TOPIC))

    async def send_roster(online_admins: int, admins: List[Dict[str, Any]]) -> None:
        await websocket.send_json({"type": "presence", "onlineAdmins": online_admins, "admins": admins})

    async def close_socket(code: int) -> None:
        try:
            await websocket.close(code=code)
        except RuntimeError:
            # already closed by the client
            pass

    async def on_idle() -> None:
        try:
            await websocket.send_json({"type": "idle_timeout"})
        except RuntimeError:
            pass
        await manager.cleanup()
        await close_socket(CLOSE_IDLE_TIMEOUT)

    tracker = IdleTracker(on_idle, admin_id=user_id)
    registry.register(user_id, manager, close=lambda: close_socket(CLOSE_SESSION_ENDED))
    await manager.initialize(
        user_id,
        email,
        role,
        current_page=websocket.query_params.get("page"),
        meta=RequestMeta.from_connection(websocket),
        on_roster=send_roster,
    )
    registration = tracker.start()

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except ValueError:
                continue
            if not isinstance(message, dict):
                continue
            kind = message.get("type")
            if kind == "page" and isinstance(message.get("path"), str):
                await manager.update_current_page(message["path"])
            elif kind == "activity" and isinstance(message.get("signal"), str):
                tracker.record_activity(message.get("signal"))
    except WebSocketDisconnect:
        pass
    finally:
        registration.dispose()
        registry.unregister(user_id, manager)
        await manager.cleanup()


@router.get("/admin/api/presence/active")
def active_sessions(
    request: Request,
    session: ResolvedSession = Depends(require_admin_session),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    """Admins seen in the last five minutes, flagged active if seen in the last minute."""
    sessions = PresenceStore(db).active_sessions()
    return {
        "sessions": sessions,
        "total": len(sessions),
        "activeNow": sum(1 for item in sessions if item["isActive"]),
        "liveConnections": request.app.state.presence_registry.connection_count(),
    }
