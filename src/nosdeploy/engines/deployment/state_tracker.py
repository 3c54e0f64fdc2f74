"""
state_tracker.py - Poll a deployment until it settles

Status transitions are never assumed locally: every status in `history` was
read from the deployment manager. Stable statuses end the wait, except an
ERROR caused by the confirmation timeout, which is restarted within a budget.
"""

from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable, List, Optional

from loguru import logger

from nosdeploy.config.settings import DiagnosticsSettings, TrackerSettings
from nosdeploy.domain.deployment import Deployment, DeploymentStatus
from nosdeploy.engines.deployment.diagnostics import ErrorKind, classify
from nosdeploy.errors import CompletionTimeout, RestartBudgetExhausted
from nosdeploy.ports.deployment_service import DeploymentServicePort


SleepFn = Callable[[float], Awaitable[None]]
ClockFn = Callable[[], float]
StatusCallback = Callable[[DeploymentStatus, Deployment], None]


class DeploymentTracker:
    def __init__(
        self,
        service: DeploymentServicePort,
        settings: Optional[TrackerSettings] = None,
        diagnostics: Optional[DiagnosticsSettings] = None,
        on_status: Optional[StatusCallback] = None,
        sleep: SleepFn = asyncio.sleep,
        clock: ClockFn = time.monotonic,
    ):
        self.service = service
        self.settings = settings or TrackerSettings()
        self.diagnostics = diagnostics or DiagnosticsSettings()
        self.on_status = on_status
        self._sleep = sleep
        self._clock = clock

        self.status: Optional[DeploymentStatus] = None
        self.history: List[DeploymentStatus] = []
        self.restarts = 0
        self.last: Optional[Deployment] = None

    def observe(self, deployment: Deployment) -> None:
        """Record a status read elsewhere (create, start verification)."""
        self.last = deployment
        if deployment.status is self.status:
            return
        logger.info(
            f"DEPLOYMENT_STATUS | id={deployment.id} | "
            f"{self.status.value if self.status else '<none>'} -> {deployment.status.value}"
        )
        self.status = deployment.status
        self.history.append(deployment.status)
        if self.on_status is not None:
            self.on_status(deployment.status, deployment)

    async def wait_until_stable(self, deployment_id: str, completion_timeout: Optional[float] = None) -> Deployment:
        """
        Returns the deployment once it is RUNNING, STOPPED, ARCHIVED,
        INSUFFICIENT_FUNDS, or in ERROR for a reason other than the
        confirmation timeout.

        Raises:
            RestartBudgetExhausted: timeout ERROR persisted past max_restarts.
            CompletionTimeout: no stable status before the deadline.
        """
        cfg = self.settings
        timeout = cfg.completion_timeout_seconds if completion_timeout is None else completion_timeout
        deadline = self._clock() + timeout

        while True:
            try:
                deployment = await self.service.get(deployment_id)
            except Exception as e:
                logger.warning(f"DEPLOYMENT_POLL | error | id={deployment_id} | {type(e).__name__}: {e}")
            else:
                self.observe(deployment)
                if deployment.status.is_stable:
                    kind = classify(deployment, self.diagnostics.timeout_signature)
                    if kind is not ErrorKind.CONFIRMATION_TIMEOUT:
                        return deployment
                    await self._restart(deployment, deadline, timeout)

            if self._clock() >= deadline:
                raise self._timed_out(deployment_id, timeout)
            await self._sleep(min(cfg.poll_interval_seconds, deadline - self._clock()))

    def _timed_out(self, deployment_id: str, timeout: float) -> CompletionTimeout:
        logger.error(f"DEPLOYMENT_TIMEOUT | id={deployment_id} | timeout={timeout:.0f}s")
        return CompletionTimeout(
            f"deployment {deployment_id} not stable after {timeout:.0f}s",
            status=self.status,
            events=self.last.events if self.last else (),
        )

    async def _restart(self, deployment: Deployment, deadline: float, timeout: float) -> None:
        cfg = self.settings
        if self.restarts >= cfg.max_restarts:
            logger.error(f"DEPLOYMENT_RESTART_BUDGET | id={deployment.id} | restarts={self.restarts}")
            raise RestartBudgetExhausted(deployment.id, self.restarts, status=deployment.status, events=deployment.events)

        # cooldown must fit before the deadline
        if self._clock() + cfg.restart_cooldown_seconds > deadline:
            raise self._timed_out(deployment.id, timeout)

        self.restarts += 1
        logger.warning(
            f"DEPLOYMENT_RESTART | id={deployment.id} | restart={self.restarts}/{cfg.max_restarts} "
            f"| cooldown={cfg.restart_cooldown_seconds}s"
        )
        await self._sleep(cfg.restart_cooldown_seconds)
        try:
            await self.service.restart(deployment.id)
        except Exception as e:
            logger.warning(f"DEPLOYMENT_RESTART | error | id={deployment.id} | {e}")


__all__ = ["DeploymentTracker"]
