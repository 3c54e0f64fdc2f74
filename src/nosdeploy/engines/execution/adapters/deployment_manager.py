"""
deployment_manager.py - HTTP client for the Nosana deployment manager

Authentication:
    x-user-id:     wallet address (base58)
    Authorization: DeploymentsAuthorization:<base58 ed25519 signature>:<unix ms>

The signed message is the constant "DeploymentsAuthorization"; the timestamp
travels alongside it. Signatures are never logged.
"""

from __future__ import annotations

import time
from typing import Any, Callable, Dict, Optional

import base58
import httpx
from loguru import logger
from solders.keypair import Keypair

from nosdeploy.config.settings import DEFAULT_API_URL
from nosdeploy.domain.deployment import Deployment, DeploymentCreateRequest
from nosdeploy.errors import DeploymentAPIError, ResponseSchemaError, ServiceUnavailable
from nosdeploy.ports.deployment_service import DeploymentServicePort


AUTH_MESSAGE = "DeploymentsAuthorization"


def _now_ms() -> int:
    return int(time.time() * 1000)


def build_auth_header(keypair: Keypair, timestamp_ms: int) -> str:
    signature = keypair.sign_message(AUTH_MESSAGE.encode())
    return f"{AUTH_MESSAGE}:{base58.b58encode(bytes(signature)).decode()}:{timestamp_ms}"


class DeploymentManagerClient(DeploymentServicePort):
    def __init__(
        self,
        keypair: Keypair,
        base_url: str = DEFAULT_API_URL,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock_ms: Callable[[], int] = _now_ms,
    ):
        self.keypair = keypair
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._clock_ms = clock_ms
        self._client: Optional[httpx.AsyncClient] = None
        self.user_id = str(keypair.pubkey())
        logger.info(f"DEPLOYMENT_MANAGER | init | url={self.base_url} | user={self.user_id[:8]}...")

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self):
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    def auth_headers(self) -> Dict[str, str]:
        return {
            "x-user-id": self.user_id,
            "Authorization": build_auth_header(self.keypair, self._clock_ms()),
        }

    async def _request(self, method: str, path: str, body: Optional[Dict[str, Any]] = None) -> Any:
        client = await self._get_client()
        kwargs: Dict[str, Any] = {"headers": self.auth_headers()}
        if body is not None:
            kwargs["json"] = body

        try:
            resp = await client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.warning(f"DEPLOYMENT_API | {method} {path} | {type(e).__name__}: {e}")
            raise ServiceUnavailable("deployment manager", method, path, e) from e

        if resp.status_code < 200 or resp.status_code >= 300:
            logger.warning(f"DEPLOYMENT_API | {method} {path} | status={resp.status_code}")
            raise DeploymentAPIError(method, path, resp.status_code, resp.text)

        logger.debug(f"DEPLOYMENT_API | {method} {path} | status={resp.status_code}")
        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as e:
            raise ResponseSchemaError(f"{method} {path} returned non-JSON body: {resp.text[:200]}") from e

    # =========================================================================
    # DEPLOYMENT LIFECYCLE
    # =========================================================================

    async def create(self, request: DeploymentCreateRequest) -> Deployment:
        payload = await self._request("POST", "/api/deployment/create", request.to_payload())
        deployment = Deployment.from_payload(payload)
        logger.info(f"DEPLOYMENT_CREATED | id={deployment.id} | status={deployment.status.value}")
        return deployment

    async def get(self, deployment_id: str) -> Deployment:
        return Deployment.from_payload(await self._request("GET", f"/api/deployment/{deployment_id}"))

    async def start(self, deployment_id: str) -> None:
        await self._request("POST", f"/api/deployment/{deployment_id}/start")

    async def stop(self, deployment_id: str) -> None:
        await self._request("POST", f"/api/deployment/{deployment_id}/stop")

    async def restart(self, deployment_id: str) -> None:
        await self._request("POST", f"/api/deployment/{deployment_id}/restart")

    async def archive(self, deployment_id: str) -> None:
        await self._request("PATCH", f"/api/deployment/{deployment_id}/archive")

    async def update_replica_count(self, deployment_id: str, replicas: int) -> None:
        if replicas < 1:
            raise ValueError("replicas must be >= 1")
        await self._request("POST", f"/api/deployment/{deployment_id}/update-replica-count", {"replicas": replicas})

    async def update_timeout(self, deployment_id: str, timeout: int) -> None:
        if timeout <= 0:
            raise ValueError("timeout must be > 0")
        await self._request("POST", f"/api/deployment/{deployment_id}/update-timeout", {"timeout": timeout})

    # =========================================================================
    # VAULT
    # =========================================================================

    async def update_vault_balance(self, vault: str) -> None:
        """Ask the manager to re-read the vault's on-chain balance after funding."""
        await self._request("PATCH", f"/api/vault/{vault}/update-balance")


__all__ = ["AUTH_MESSAGE", "build_auth_header", "DeploymentManagerClient"]
