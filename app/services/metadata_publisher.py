from __future__ import annotations

import logging
import secrets
from typing import Any, Dict, Protocol

from app.domain.errors import MetadataPublishError
from app.domain.models import NFTMetadata


class PinningApi(Protocol):
    async def pin_json(
        self, content: Dict[str, Any], *, name: str, keyvalues: Dict[str, str] | None = None
    ) -> str: ...


class MetadataPublisher:
    """
    Uploads token metadata and returns its gateway URI.

    Without a pinning client, or when pinning fails, a stub URI is returned
    instead (logged with stub=true) unless require_pinning is set.
    """

    def __init__(
        self,
        pinning: PinningApi | None,
        *,
        gateway: str = "https://ipfs.io/ipfs/",
        require_pinning: bool = False,
        logger: logging.Logger | None = None,
    ) -> None:
        self._pinning = pinning
        self._gateway = gateway if gateway.endswith("/") else gateway + "/"
        self._require_pinning = require_pinning
        self._logger = logger or logging.getLogger(__name__)

    async def publish(self, metadata: NFTMetadata) -> str:
        if self._pinning is None:
            if self._require_pinning:
                raise MetadataPublishError("Metadata pinning is not configured")
            return self._stub_uri(metadata, reason="pinning not configured")

        try:
            ipfs_hash = await self._pinning.pin_json(
                metadata.to_token_json(),
                name=f"{metadata.name}_metadata.json",
                keyvalues={"type": "nft-metadata"},
            )
        except Exception as e:
            if self._require_pinning:
                if isinstance(e, MetadataPublishError):
                    raise
                raise MetadataPublishError(f"Metadata publish failed: {e}") from e
            return self._stub_uri(metadata, reason=f"{type(e).__name__}: {e}")

        uri = self._gateway + ipfs_hash
        self._logger.info("metadata published name=%s uri=%s", metadata.name, uri)
        return uri

    def _stub_uri(self, metadata: NFTMetadata, *, reason: str) -> str:
        uri = f"{self._gateway}mock-{secrets.token_hex(16)}"
        self._logger.warning(
            "metadata stubbed stub=true name=%s uri=%s reason=%s", metadata.name, uri, reason
        )
        return uri
