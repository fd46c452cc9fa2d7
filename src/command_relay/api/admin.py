"""Admin API endpoints with simple token auth."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from pydantic import BaseModel

from command_relay.domain.errors import SessionNotFound, StoreIOError, UnknownChannel
from command_relay.services.notifications import NotificationDeliveryError

if TYPE_CHECKING:
    from command_relay.containers import AppContainer
    from command_relay.domain.sessions import SessionRecord

router = APIRouter(prefix="/admin", tags=["admin"])


class NotifyRequest(BaseModel):
    """Body of an outbound notification request."""

    channel: str
    title: str
    message: str = ""
    terminal_target: str | None = None
    receiver: str | None = None


def _get_admin_token(request: Request) -> str:
    container: AppContainer = request.app.state.container
    return container.settings.admin_token


async def require_admin(
    x_admin_token: str | None = Header(default=None),
    admin_token: str = Depends(_get_admin_token),
) -> None:
    """Ensure requests include a valid admin token."""
    if not x_admin_token or x_admin_token != admin_token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)


@router.post("/notify", dependencies=[Depends(require_admin)])
async def notify(body: NotifyRequest, request: Request) -> dict[str, object]:
    """Create a session and send its notification through a channel."""
    container: AppContainer = request.app.state.container
    try:
        record = await container.notification_service.notify(
            channel=body.channel,
            title=body.title,
            message=body.message,
            terminal_target=body.terminal_target,
            receiver_identity=body.receiver,
        )
    except UnknownChannel as exc:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Unknown channel") from exc
    except ValueError as exc:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, str(exc)) from exc
    except StoreIOError as exc:
        raise HTTPException(
            status.HTTP_503_SERVICE_UNAVAILABLE, "Session store unavailable"
        ) from exc
    except NotificationDeliveryError as exc:
        raise HTTPException(
            status.HTTP_502_BAD_GATEWAY, "Notification not delivered"
        ) from exc
    return {"token": record.token, "expires_at": record.expires_at.isoformat()}


@router.get("/sessions", dependencies=[Depends(require_admin)])
async def list_sessions(request: Request, limit: int = 20) -> dict[str, object]:
    """Return recent sessions."""
    container: AppContainer = request.app.state.container
    records = container.session_service.list_sessions(limit)
    return {"sessions": [_session_payload(record) for record in records]}


@router.post("/sessions/purge", dependencies=[Depends(require_admin)])
async def purge_sessions(request: Request) -> dict[str, int]:
    """Reclaim every expired session."""
    container: AppContainer = request.app.state.container
    return {"removed": container.session_service.purge_expired()}


@router.get("/sessions/{token}", dependencies=[Depends(require_admin)])
async def session_detail(token: str, request: Request) -> dict[str, object]:
    """Return one live session."""
    container: AppContainer = request.app.state.container
    try:
        record = container.session_service.lookup(token)
    except SessionNotFound as exc:
        raise HTTPException(status.HTTP_404_NOT_FOUND) from exc
    return _session_payload(record)


@router.delete("/sessions/{token}", dependencies=[Depends(require_admin)])
async def delete_session(token: str, request: Request) -> dict[str, str]:
    """Remove a session explicitly."""
    container: AppContainer = request.app.state.container
    container.session_service.remove(token)
    return {"status": "ok"}


def _session_payload(record: SessionRecord) -> dict[str, object]:
    return {
        "token": record.token,
        "channel": record.channel,
        "receiver_identity": record.receiver_identity,
        "terminal_target": record.terminal_target,
        "created_at": record.created_at.isoformat(),
        "expires_at": record.expires_at.isoformat(),
        "command_count": record.command_count,
        "max_commands": record.max_commands,
        "status": record.status.value,
    }
