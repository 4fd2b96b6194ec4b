"""
User ledger: email -> user record with the attached custodial wallet.

Two backings share one async interface: an in-process map for tests and
single-node runs, and a SQLAlchemy store for durable deployments.
"""
from __future__ import annotations

import asyncio
import threading
import uuid
from contextlib import nullcontext
from typing import Dict, Optional, Protocol

from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.domain.models import User, utcnow
from db.repos import users_repo


def normalize_email(email: str) -> str:
    return email.strip().lower()


class UserStore(Protocol):
    async def get_or_create(self, email: str) -> User: ...

    async def get(self, user_id: uuid.UUID) -> Optional[User]: ...

    async def get_by_email(self, email: str) -> Optional[User]: ...

    async def attach_wallet(
        self, user_id: uuid.UUID, *, wallet_id: str, wallet_address: str
    ) -> User:
        """
        Set the wallet fields if the user has none. Returns the stored user;
        when another wallet was attached first, that one is kept.
        """
        ...


class InMemoryUserStore:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._by_id: Dict[uuid.UUID, User] = {}
        self._by_email: Dict[str, uuid.UUID] = {}

    async def get_or_create(self, email: str) -> User:
        key = normalize_email(email)
        with self._lock:
            user_id = self._by_email.get(key)
            if user_id is not None:
                return self._by_id[user_id]

            user = User(id=uuid.uuid4(), email=key)
            self._by_id[user.id] = user
            self._by_email[key] = user.id
            return user

    async def get(self, user_id: uuid.UUID) -> Optional[User]:
        with self._lock:
            return self._by_id.get(user_id)

    async def get_by_email(self, email: str) -> Optional[User]:
        with self._lock:
            user_id = self._by_email.get(normalize_email(email))
            return self._by_id.get(user_id) if user_id else None

    async def attach_wallet(
        self, user_id: uuid.UUID, *, wallet_id: str, wallet_address: str
    ) -> User:
        with self._lock:
            user = self._by_id.get(user_id)
            if user is None:
                raise users_repo.UserNotFoundError(f"User not found: {user_id}")
            if user.wallet_id:
                return user

            updated = user.model_copy(
                update={
                    "wallet_id": wallet_id,
                    "wallet_address": wallet_address,
                    "updated_at": utcnow(),
                }
            )
            self._by_id[user_id] = updated
            return updated


class SqlUserStore:
    """
    SQLAlchemy-backed ledger. Session work runs in a worker thread.

    When the engine hands every session the same connection (StaticPool, used
    for in-memory SQLite) the worker threads take turns on it.
    """

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory
        bind = session_factory.kw.get("bind")
        shared = bind is not None and isinstance(bind.pool, StaticPool)
        self._lock = threading.Lock() if shared else nullcontext()

    def _run(self, fn, *args, **kwargs):
        def work() -> Optional[User]:
            with self._lock, self._session_factory() as db:
                row = fn(db, *args, **kwargs)
                return User.model_validate(row) if row is not None else None

        return asyncio.to_thread(work)

    async def get_or_create(self, email: str) -> User:
        return await self._run(users_repo.get_or_create_user, email=normalize_email(email))

    async def get(self, user_id: uuid.UUID) -> Optional[User]:
        return await self._run(users_repo.get_user, user_id)

    async def get_by_email(self, email: str) -> Optional[User]:
        return await self._run(users_repo.get_user_by_email, normalize_email(email))

    async def attach_wallet(
        self, user_id: uuid.UUID, *, wallet_id: str, wallet_address: str
    ) -> User:
        return await self._run(
            users_repo.attach_wallet,
            user_id=user_id,
            wallet_id=wallet_id,
            wallet_address=wallet_address,
        )
