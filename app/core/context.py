from __future__ import annotations

from contextvars import ContextVar, Token
from typing import Optional

mint_id_ctx: ContextVar[Optional[str]] = ContextVar("mint_id", default=None)


def set_mint_id(mint_id: Optional[str]) -> Token:
    return mint_id_ctx.set(mint_id)


def reset_mint_id(token: Token) -> None:
    mint_id_ctx.reset(token)


def get_mint_id() -> Optional[str]:
    return mint_id_ctx.get()
