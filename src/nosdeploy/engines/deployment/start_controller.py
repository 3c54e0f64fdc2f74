"""
start_controller.py - Start a deployment with bounded retry and restart

Flow per attempt:
    start -> wait verify_delay -> read deployment
      - not ERROR                      -> done
      - ERROR, other cause             -> StartFailed
      - ERROR, confirmation timeout    -> nested restart sequence, cooldown, next attempt
    start/read failure                 -> wait retry_delay, next attempt

Attempts are an explicit counter; nothing here loops without a bound.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional

from loguru import logger

from nosdeploy.config.settings import DiagnosticsSettings, StartSettings
from nosdeploy.domain.deployment import Deployment
from nosdeploy.engines.deployment.diagnostics import ErrorKind, classify, timed_out_signatures
from nosdeploy.errors import StartFailed
from nosdeploy.ports.deployment_service import DeploymentServicePort


SleepFn = Callable[[float], Awaitable[None]]


class StartController:
    def __init__(
        self,
        service: DeploymentServicePort,
        settings: Optional[StartSettings] = None,
        diagnostics: Optional[DiagnosticsSettings] = None,
        sleep: SleepFn = asyncio.sleep,
    ):
        self.service = service
        self.settings = settings or StartSettings()
        self.diagnostics = diagnostics or DiagnosticsSettings()
        self._sleep = sleep
        self.restarts = 0

        if self.settings.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

    async def start(self, deployment_id: str) -> Deployment:
        """
        Start `deployment_id` and return it once it leaves ERROR.

        Raises:
            StartFailed: non-recoverable ERROR, or the attempt budget ran out.
        """
        cfg = self.settings
        last: Optional[Deployment] = None
        last_error: Optional[Exception] = None
        skip_start = False

        for attempt in range(1, cfg.max_attempts + 1):
            if not skip_start:
                try:
                    await self.service.start(deployment_id)
                    logger.info(f"START_REQUESTED | id={deployment_id} | attempt={attempt}/{cfg.max_attempts}")
                except Exception as e:
                    last_error = e
                    logger.warning(f"START_FAILED | id={deployment_id} | attempt={attempt} | {type(e).__name__}: {e}")
                    if attempt < cfg.max_attempts:
                        await self._sleep(cfg.retry_delay_seconds)
                    continue
            skip_start = False

            await self._sleep(cfg.verify_delay_seconds)

            try:
                last = await self.service.get(deployment_id)
            except Exception as e:
                last_error = e
                logger.warning(f"START_VERIFY_FAILED | id={deployment_id} | attempt={attempt} | {e}")
                if attempt < cfg.max_attempts:
                    await self._sleep(cfg.retry_delay_seconds)
                continue

            kind = classify(last, self.diagnostics.timeout_signature)
            logger.info(f"START_VERIFY | id={deployment_id} | status={last.status.value} | kind={kind.value}")

            if kind is ErrorKind.NONE:
                return last

            if kind is ErrorKind.OTHER:
                logger.error(f"START_ERROR | id={deployment_id} | status={last.status.value}")
                raise StartFailed(f"deployment {deployment_id} entered ERROR", status=last.status, events=last.events)

            if attempt == cfg.max_attempts:
                break

            logger.warning(f"START_CONFIRMATION_TIMEOUT | id={deployment_id} | attempt={attempt} | restarting")
            skip_start = await self._restart_sequence(last)
            await self._sleep(cfg.cooldown_seconds)

        message = f"deployment {deployment_id} did not start after {cfg.max_attempts} attempt(s)"
        if last is None and last_error is not None:
            message += f": {last_error}"
        raise StartFailed(
            message,
            status=last.status if last else None,
            events=last.events if last else (),
        )

    async def _restart_sequence(self, deployment: Deployment) -> bool:
        """Returns True when a restart was accepted."""
        deployment_id = deployment.id
        for sig in timed_out_signatures(deployment.events, self.diagnostics.timeout_signature):
            logger.warning(f"START_TIMED_OUT_TX | id={deployment_id} | sig={sig}")

        tries = self.settings.nested_restarts
        for i in range(1, tries + 1):
            try:
                await self.service.restart(deployment_id)
                self.restarts += 1
                logger.info(f"RESTART_OK | id={deployment_id} | try={i}/{tries}")
                return True
            except Exception as e:
                logger.warning(f"RESTART_FAILED | id={deployment_id} | try={i}/{tries} | {e} | falling back to start")
                try:
                    await self.service.start(deployment_id)
                    logger.info(f"RESTART_FALLBACK_START_OK | id={deployment_id} | try={i}/{tries}")
                except Exception as start_err:
                    logger.warning(f"RESTART_FALLBACK_START_FAILED | id={deployment_id} | {start_err}")
            if i < tries:
                await self._sleep(self.settings.restart_backoff_seconds)
        return False


__all__ = ["StartController"]
