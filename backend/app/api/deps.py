from __future__ import annotations

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from backend.app.core.errors import Unauthenticated, to_http_exception
from backend.app.core.settings import settings
from backend.app.db import models
from backend.app.db.session import get_session
from backend.app.services.entities import UserRecord


def get_current_user(request: Request, db: Session = Depends(get_session)) -> UserRecord:
    """Resolve the caller id forwarded by the identity gateway to a User record."""
    caller_id = (request.headers.get(settings.caller_id_header) or "").strip()
    if not caller_id:
        raise to_http_exception(Unauthenticated("The function must be called while authenticated."))
    user = db.get(models.User, caller_id)
    if user is None:
        raise to_http_exception(Unauthenticated(f"Unknown caller '{caller_id}'."))
    return UserRecord.from_model(user)
