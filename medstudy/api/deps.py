"""Common FastAPI dependencies.

There is no login: the client identifies its user with the ``X-User-Id``
header and every owned resource is scoped to that id. A minimal User row is
created on first use so foreign keys hold.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from medstudy.db.session import get_db
from medstudy.models.user import User
from medstudy.services.user_service import ensure_user_exists


def get_current_user_optional(
    db: Session = Depends(get_db),
    x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
) -> Optional[User]:
    """Return current user from the ``X-User-Id`` header, or None."""

    if not x_user_id:
        return None

    try:
        uid = int(str(x_user_id).strip())
    except ValueError:
        return None
    if uid <= 0:
        return None

    return ensure_user_exists(db, uid)


def require_user(user: Optional[User] = Depends(get_current_user_optional)) -> User:
    if not user:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return user
