"""Read-only admin API: health of the sync loop and the pending queue."""

from __future__ import annotations

import secrets
from typing import Any

from fastapi import Depends, FastAPI, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .models import Reminder, SyncState


_bearer = HTTPBearer(auto_error=False)


def _require_token(api_token: str):
    """Dependency that admits any request when ``api_token`` is empty."""

    async def check(credentials: HTTPAuthorizationCredentials | None = Depends(_bearer)) -> None:
        if not api_token:
            return
        if credentials is None or not secrets.compare_digest(credentials.credentials, api_token):
            raise HTTPException(
                status_code=401,
                detail="Admin token required",
                headers={"WWW-Authenticate": "Bearer"},
            )

    return check


def _reminder_to_dict(reminder: Reminder) -> dict[str, Any]:
    return {
        "id": reminder.id,
        "due": reminder.due.isoformat(),
        "destination": reminder.destination,
        "text": reminder.text,
    }


def build_app(store: Any, sync_state: SyncState | None = None, api_token: str = "") -> FastAPI:
    verify_token = _require_token(api_token)

    app = FastAPI(title="Reminder Bot Admin API", version="0.1.0")
    app.state.store = store
    app.state.sync_state = sync_state if sync_state is not None else SyncState()

    @app.get("/health", dependencies=[Depends(verify_token)])
    def health() -> dict[str, Any]:
        state: SyncState = app.state.sync_state
        next_due = app.state.store.next_due()
        return {
            "status": "ok" if state.is_live and not state.errored else "degraded",
            "sync": {
                "is_live": state.is_live,
                "errored": state.errored,
                "has_next_batch": state.next_batch is not None,
            },
            "pending_reminders": app.state.store.pending_count(),
            "next_due": next_due.isoformat() if next_due else None,
        }

    @app.get("/reminders/pending", dependencies=[Depends(verify_token)])
    def pending_reminders(limit: int = 100) -> list[dict[str, Any]]:
        if limit < 1:
            raise HTTPException(status_code=400, detail="limit must be positive")
        return [_reminder_to_dict(r) for r in app.state.store.list_pending(limit=limit)]

    return app
