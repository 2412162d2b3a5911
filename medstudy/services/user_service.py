from __future__ import annotations

from sqlalchemy.orm import Session

from medstudy.models.user import User


def ensure_user_exists(db: Session, user_id: int) -> User:
    """Ensure a user row exists for the caller's numeric ID.

    There is no login: the client names its user with ``X-User-Id``. Every
    owned row (documents, progress, Q&A history, ...) has a foreign key to
    ``users``, so a minimal record is created on first use.
    """

    uid = int(user_id)
    user = db.get(User, uid)
    if user:
        return user

    email = f"student{uid}@medstudy.local"
    # If email happens to exist already, keep it unique.
    if db.query(User).filter(User.email == email).first():
        email = f"student{uid}-{uid}@medstudy.local"

    user = User(id=uid, email=email, full_name=f"Estudiant {uid}")
    db.add(user)
    db.commit()
    db.refresh(user)
    return user
