from __future__ import annotations

import logging
from typing import Any, Dict, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from app.domain.errors import ProviderError
from tools.tool_runner import run_tool

M = TypeVar("M", bound=BaseModel)


def _provider_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return response.text[:200]


class CircleApiClient:
    """
    Shared plumbing for Circle's programmable-wallet endpoints:
    bearer auth, the {"data": ...} envelope and error translation.

    Subclasses pick the error types raised for provider failures and
    for payloads that do not match the expected shape.
    """

    error_cls: Type[ProviderError] = ProviderError
    malformed_cls: Type[ProviderError] = ProviderError

    def __init__(
        self,
        *,
        base_url: str,
        api_key: str,
        entity_secret_ciphertext: str = "",
        timeout_s: float = 30.0,
        http: httpx.AsyncClient | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._entity_secret_ciphertext = entity_secret_ciphertext
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(timeout=timeout_s)
        self._logger = logger or logging.getLogger(__name__)

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

    def _signed_body(self, body: Dict[str, Any]) -> Dict[str, Any]:
        if self._entity_secret_ciphertext:
            body = {**body, "entitySecretCiphertext": self._entity_secret_ciphertext}
        return body

    async def _request(
        self,
        method: str,
        path: str,
        *,
        tool_name: str,
        json: Dict[str, Any] | None = None,
        params: Dict[str, Any] | None = None,
        allow_404: bool = False,
    ) -> Dict[str, Any] | None:
        """
        Perform a request and return the unwrapped "data" object.
        Returns None on 404 when allow_404 is set.
        """
        url = self._base_url + path

        async def call() -> httpx.Response:
            try:
                return await self._http.request(
                    method, url, json=json, params=params, headers=self._headers()
                )
            except httpx.HTTPError as e:
                raise self.error_cls(f"{tool_name} transport error: {e}") from e

        response = await run_tool(
            tool_name=tool_name,
            request={"method": method, "path": path},
            fn=call,
            logger=self._logger,
        )

        if allow_404 and response.status_code == 404:
            return None

        if not response.is_success:
            message = _provider_message(response)
            raise self.error_cls(
                f"{tool_name} failed: HTTP {response.status_code}: {message}",
                http_status=response.status_code,
                provider_message=message,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise self.malformed_cls(
                f"{tool_name} returned invalid JSON", http_status=response.status_code
            ) from e

        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, dict):
            raise self.malformed_cls(
                f"{tool_name} response missing data object", http_status=response.status_code
            )
        return data

    def _validate(self, model: Type[M], data: Any, *, what: str) -> M:
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise self.malformed_cls(f"Malformed {what}: {e.error_count()} validation error(s)") from e

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()
