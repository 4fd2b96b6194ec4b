from __future__ import annotations

import logging
import time
from typing import Any, Awaitable, Callable, TypeVar

T = TypeVar("T")

_default_logger = logging.getLogger(__name__)


async def run_tool(
    *,
    tool_name: str,
    request: Any,
    fn: Callable[[], Awaitable[T]],
    logger: logging.Logger | None = None,
) -> T:
    """
    Generic external-call wrapper.

    - Logs start with the request summary
    - Awaits fn()
    - Logs finish with the duration
    - Re-raises exceptions after logging
    """
    log = logger or _default_logger
    started = time.monotonic()
    log.debug("tool call start tool=%s request=%s", tool_name, request)

    try:
        result = await fn()
    except Exception as e:
        log.warning(
            "tool call error tool=%s duration_ms=%d error=%s: %s",
            tool_name,
            int((time.monotonic() - started) * 1000),
            type(e).__name__,
            e,
        )
        raise

    log.debug(
        "tool call done tool=%s duration_ms=%d",
        tool_name,
        int((time.monotonic() - started) * 1000),
    )
    return result
