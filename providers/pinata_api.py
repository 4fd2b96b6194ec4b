from __future__ import annotations

import logging
from typing import Any, Dict

import httpx

from app.domain.errors import MetadataPublishError
from tools.tool_runner import run_tool


class PinataClient:
    """Minimal Pinata pinning client (JSON documents only)."""

    def __init__(
        self,
        *,
        api_key: str,
        secret_key: str,
        base_url: str = "https://api.pinata.cloud",
        timeout_s: float = 30.0,
        http: httpx.AsyncClient | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._api_key = api_key
        self._secret_key = secret_key
        self._base_url = base_url.rstrip("/")
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(timeout=timeout_s)
        self._logger = logger or logging.getLogger(__name__)

    async def pin_json(
        self,
        content: Dict[str, Any],
        *,
        name: str,
        keyvalues: Dict[str, str] | None = None,
    ) -> str:
        """Pin a JSON document and return its IPFS content hash."""
        body = {
            "pinataContent": content,
            "pinataMetadata": {"name": name, "keyvalues": keyvalues or {}},
        }
        headers = {
            "pinata_api_key": self._api_key,
            "pinata_secret_api_key": self._secret_key,
            "Content-Type": "application/json",
        }

        async def call() -> httpx.Response:
            try:
                return await self._http.post(
                    f"{self._base_url}/pinning/pinJSONToIPFS", json=body, headers=headers
                )
            except httpx.HTTPError as e:
                raise MetadataPublishError(f"pinata transport error: {e}") from e

        response = await run_tool(
            tool_name="pinata.pinJSONToIPFS",
            request={"name": name},
            fn=call,
            logger=self._logger,
        )

        if not response.is_success:
            raise MetadataPublishError(
                f"pinata pin failed: HTTP {response.status_code}",
                http_status=response.status_code,
                provider_message=response.text[:200],
            )

        try:
            ipfs_hash = response.json().get("IpfsHash")
        except (ValueError, AttributeError) as e:
            raise MetadataPublishError("pinata returned invalid JSON") from e
        if not ipfs_hash:
            raise MetadataPublishError("pinata response missing IpfsHash")
        return str(ipfs_hash)

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()
