"""Shared HTTP plumbing for the hosted OpenAI endpoints."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

DEFAULT_BASE_URL = "https://api.openai.com/v1"

logger = logging.getLogger(__name__)


class APIError(RuntimeError):
    """Base class for failures talking to the hosted models."""


class MissingCredentialError(APIError):
    def __init__(self) -> None:
        super().__init__(
            "API key is missing. Set the OPENAI_API_KEY environment variable "
            "or run `micnotes login`."
        )


class NetworkError(APIError):
    def __init__(self, cause: BaseException) -> None:
        self.cause = cause
        super().__init__(f"Network error: {cause}")


class ServerError(APIError):
    def __init__(self, status_code: int, body: str) -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(f"Server error {status_code}: {body}")


class InvalidResponseError(APIError):
    def __init__(self, detail: Optional[str] = None) -> None:
        self.detail = detail
        super().__init__("Invalid response from server")


class OpenAIClient:
    """Single-attempt JSON/multipart POSTs with bearer authentication.

    An ``httpx.AsyncClient`` can be injected (tests pass one built on
    ``httpx.MockTransport``); otherwise a short-lived client is opened per call.
    Timeouts, transport and decoding failures surface as :class:`NetworkError`.
    """

    def __init__(
        self,
        api_key: Optional[str],
        *,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 60.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.api_key = api_key or ""
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._http_client = http_client

    def _headers(self) -> Dict[str, str]:
        if not self.api_key:
            raise MissingCredentialError()
        return {"Authorization": f"Bearer {self.api_key}"}

    async def _post(self, path: str, **kwargs: Any) -> Dict[str, Any]:
        headers = self._headers()
        url = f"{self.base_url}/{path.lstrip('/')}"
        logger.debug("POST %s", url)
        try:
            if self._http_client is not None:
                response = await self._http_client.post(url, headers=headers, **kwargs)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(url, headers=headers, **kwargs)
        except httpx.RequestError as exc:
            raise NetworkError(exc) from exc

        if not response.is_success:
            raise ServerError(response.status_code, response.text or "Unknown error")

        try:
            payload = response.json()
        except ValueError as exc:
            raise InvalidResponseError(str(exc)) from exc
        if not isinstance(payload, dict):
            raise InvalidResponseError("expected a JSON object")
        return payload
