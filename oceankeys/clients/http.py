"""HTTP client for the DigitalOcean account keys API."""

from __future__ import annotations

import logging
from typing import Any, Optional, Union

import httpx

from ..config import ApiConfig
from ..constants import KEYS_PATH
from ..errors import (
    ApiError,
    ConflictError,
    NotFoundError,
    TransportError,
    ValidationError,
)
from ..models import SshKey
from .base import BaseKeyClient

logger = logging.getLogger(__name__)

KeyRef = Union[int, str]


class HttpKeyClient(BaseKeyClient):
    """Talk to ``/v2/account/keys`` over ``httpx.AsyncClient``."""

    def __init__(
        self,
        config: Optional[ApiConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.config = config or ApiConfig()
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def connect(self) -> None:
        if self._client is not None:
            return
        headers = {"Content-Type": "application/json"}
        if self.config.token:
            headers["Authorization"] = f"Bearer {self.config.token}"
        self._client = httpx.AsyncClient(
            base_url=self.config.base_url.rstrip("/"),
            headers=headers,
            timeout=self.config.request_timeout,
            transport=self._transport,
        )

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------
    async def _request(
        self, method: str, path: str, **kwargs: Any
    ) -> Optional[dict[str, Any]]:
        await self.connect()
        assert self._client is not None
        logger.debug(f"{method} {path}")
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise TransportError(f"{method} {path} failed: {e}") from e

        if response.status_code >= 400:
            raise self._error_for(response)
        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise TransportError(
                f"{method} {path} returned a non-JSON body", response.status_code
            ) from e

    @staticmethod
    def _error_for(response: httpx.Response) -> ApiError:
        """Translate an error response into the matching ``ApiError``."""
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        message = body.get("message") or response.reason_phrase or "request failed"
        error_id = body.get("id")
        status = response.status_code

        if status == 404:
            return NotFoundError(message, status, error_id)
        if status == 409:
            return ConflictError(message, status, error_id)
        if status in (400, 422):
            if "already" in message.lower():
                return ConflictError(message, status, error_id)
            return ValidationError(message, status, error_id)
        return TransportError(message, status, error_id)

    @staticmethod
    def _key_path(ref: KeyRef) -> str:
        return f"{KEYS_PATH}/{ref}"

    # ------------------------------------------------------------------
    async def list_keys(self) -> list[SshKey]:
        keys: list[SshKey] = []
        page = 1
        while True:
            data = await self._request(
                "GET",
                KEYS_PATH,
                params={"page": page, "per_page": self.config.per_page},
            )
            data = data or {}
            keys.extend(SshKey.from_api(item) for item in data.get("ssh_keys", []))
            next_page = (data.get("links") or {}).get("pages", {}).get("next")
            if not next_page:
                break
            page += 1
        return keys

    async def create(self, name: str, public_key: str) -> SshKey:
        data = await self._request(
            "POST", KEYS_PATH, json={"name": name, "public_key": public_key}
        )
        key = SshKey.from_api((data or {})["ssh_key"])
        logger.info(f"Created key id={key.id} fingerprint={key.fingerprint}")
        return key

    async def _get(self, ref: KeyRef) -> SshKey:
        data = await self._request("GET", self._key_path(ref))
        return SshKey.from_api((data or {})["ssh_key"])

    async def get_by_id(self, key_id: int) -> SshKey:
        return await self._get(key_id)

    async def get_by_fingerprint(self, fingerprint: str) -> SshKey:
        return await self._get(fingerprint)

    async def _rename(self, ref: KeyRef, new_name: str) -> SshKey:
        data = await self._request(
            "PUT", self._key_path(ref), json={"name": new_name}
        )
        key = SshKey.from_api((data or {})["ssh_key"])
        logger.info(f"Renamed key id={key.id} to {new_name!r}")
        return key

    async def rename_by_id(self, key_id: int, new_name: str) -> SshKey:
        return await self._rename(key_id, new_name)

    async def rename_by_fingerprint(self, fingerprint: str, new_name: str) -> SshKey:
        return await self._rename(fingerprint, new_name)

    async def delete_by_id(self, key_id: int) -> None:
        await self._request("DELETE", self._key_path(key_id))
        logger.info(f"Deleted key id={key_id}")

    async def delete_by_fingerprint(self, fingerprint: str) -> None:
        await self._request("DELETE", self._key_path(fingerprint))
        logger.info(f"Deleted key fingerprint={fingerprint}")
