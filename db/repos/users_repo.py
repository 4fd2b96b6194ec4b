from __future__ import annotations

import uuid

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from db.models.user import UserRow
from db.utils import utcnow


class UserNotFoundError(Exception):
    pass


def get_user(db: Session, user_id: uuid.UUID) -> UserRow | None:
    return db.execute(select(UserRow).where(UserRow.id == user_id)).scalar_one_or_none()


def get_user_by_email(db: Session, email: str) -> UserRow | None:
    return db.execute(select(UserRow).where(UserRow.email == email)).scalar_one_or_none()


def get_or_create_user(db: Session, *, email: str) -> UserRow:
    user = get_user_by_email(db, email)
    if user is not None:
        return user

    user = UserRow(email=email)
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        # lost the insert race on the unique email
        db.rollback()
        user = get_user_by_email(db, email)
        if user is None:
            raise
        return user

    db.refresh(user)
    return user


def attach_wallet(
    db: Session,
    *,
    user_id: uuid.UUID,
    wallet_id: str,
    wallet_address: str,
) -> UserRow:
    """
    Compare-and-set: writes the wallet only if the user has none yet.
    Returns the stored row, which holds the earlier wallet when the
    write lost.
    """
    db.execute(
        update(UserRow)
        .where(UserRow.id == user_id, UserRow.wallet_id.is_(None))
        .values(wallet_id=wallet_id, wallet_address=wallet_address, updated_at=utcnow())
    )
    db.commit()

    user = get_user(db, user_id)
    if user is None:
        raise UserNotFoundError(f"User not found: {user_id}")
    return user
