"""Pinata pinning client: uploads a job definition and returns its IPFS hash."""

from __future__ import annotations

import json
from typing import Any, Dict, Optional

import httpx
from loguru import logger

from nosdeploy.config.settings import DEFAULT_PINATA_URL
from nosdeploy.errors import ConfigError, ResponseSchemaError, ServiceUnavailable, StorageAPIError


class PinataAdapter:
    def __init__(
        self,
        jwt: str,
        base_url: str = DEFAULT_PINATA_URL,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not jwt:
            raise ConfigError("PINATA_JWT is required to upload job definitions")
        self._jwt = jwt
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        return self._client

    async def close(self):
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def upload(self, document: Dict[str, Any], name: str = "job.json") -> str:
        client = await self._get_client()
        files = {"file": (name, json.dumps(document).encode(), "application/json")}
        data = {"pinataMetadata": json.dumps({"name": name})}

        path = "/pinning/pinFileToIPFS"
        try:
            resp = await client.post(
                f"{self.base_url}{path}",
                headers={"Authorization": f"Bearer {self._jwt}"},
                files=files,
                data=data,
            )
        except httpx.HTTPError as e:
            logger.warning(f"IPFS_UPLOAD | error | {type(e).__name__}: {e}")
            raise ServiceUnavailable("pinata", "POST", path, e) from e

        if resp.status_code < 200 or resp.status_code >= 300:
            logger.warning(f"IPFS_UPLOAD | status={resp.status_code}")
            raise StorageAPIError(path, resp.status_code, resp.text)

        try:
            payload = resp.json()
        except ValueError as e:
            raise ResponseSchemaError("pinata returned a non-JSON body") from e

        ipfs_hash = payload.get("IpfsHash") if isinstance(payload, dict) else None
        if not ipfs_hash:
            raise ResponseSchemaError("pinata response missing 'IpfsHash'")

        logger.info(f"IPFS_UPLOAD | hash={ipfs_hash} | bytes={len(files['file'][1])}")
        return ipfs_hash


__all__ = ["PinataAdapter"]
