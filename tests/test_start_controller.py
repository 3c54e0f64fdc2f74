from typing import List

import pytest
from loguru import logger
from solders.keypair import Keypair

from nosdeploy.config.settings import StartSettings
from nosdeploy.domain.deployment import Deployment, DeploymentEvent, DeploymentStatus, DeploymentStrategy
from nosdeploy.engines.deployment.start_controller import StartController
from nosdeploy.errors import DeploymentAPIError, StartFailed
from nosdeploy.ports.deployment_service import DeploymentServicePort

TIMEOUT_TEXT = "Transaction was not confirmed in 60.00 seconds. Check signature abc using the Solana Explorer"


def _deployment(status: DeploymentStatus, *messages: str) -> Deployment:
    return Deployment(
        id="dep-1",
        name="demo",
        status=status,
        market="mkt",
        owner="owner",
        vault="vault",
        replicas=1,
        timeout=60,
        strategy=DeploymentStrategy.SIMPLE,
        events=tuple(DeploymentEvent("JOB", "dep-1", "JOB_LIST_FAILED", m) for m in messages),
    )


class _FakeService(DeploymentServicePort):
    def __init__(self, reads: List[object], start_failures: int = 0, restart_failures: int = 0) -> None:
        self.reads = list(reads)
        self.start_failures = start_failures
        self.restart_failures = restart_failures
        self.calls: List[str] = []

    async def create(self, request):
        raise NotImplementedError

    async def get(self, deployment_id):
        self.calls.append("get")
        item = self.reads.pop(0) if len(self.reads) > 1 else self.reads[0]
        if isinstance(item, Exception):
            raise item
        return item

    async def start(self, deployment_id):
        self.calls.append("start")
        if self.start_failures > 0:
            self.start_failures -= 1
            raise DeploymentAPIError("POST", f"/api/deployment/{deployment_id}/start", 500, "boom")

    async def stop(self, deployment_id):
        self.calls.append("stop")

    async def restart(self, deployment_id):
        self.calls.append("restart")
        if self.restart_failures > 0:
            self.restart_failures -= 1
            raise DeploymentAPIError("POST", f"/api/deployment/{deployment_id}/restart", 409, "busy")

    async def update_vault_balance(self, vault):
        self.calls.append("update_vault_balance")


def _controller(service, clock, **overrides) -> StartController:
    return StartController(service, StartSettings(**overrides), sleep=clock.sleep)


@pytest.mark.anyio
async def test_start_returns_when_not_error(clock):
    service = _FakeService([_deployment(DeploymentStatus.STARTING)])

    result = await _controller(service, clock).start("dep-1")

    assert result.status is DeploymentStatus.STARTING
    assert service.calls == ["start", "get"]
    assert clock.sleeps == [5.0]


@pytest.mark.anyio
async def test_timeout_error_triggers_restart_then_recovers(clock):
    service = _FakeService(
        [_deployment(DeploymentStatus.ERROR, TIMEOUT_TEXT), _deployment(DeploymentStatus.RUNNING)]
    )
    controller = _controller(service, clock)

    result = await controller.start("dep-1")

    assert result.status is DeploymentStatus.RUNNING
    assert controller.restarts == 1
    assert service.calls == ["start", "get", "restart", "get"]
    assert clock.sleeps == [5.0, 30.0, 5.0]


@pytest.mark.anyio
async def test_restart_logs_the_timed_out_transaction(clock):
    sig = str(Keypair().sign_message(b"list"))
    text = f"Transaction was not confirmed in 60.00 seconds. Check signature {sig} using the Solana Explorer"
    service = _FakeService([_deployment(DeploymentStatus.ERROR, text), _deployment(DeploymentStatus.RUNNING)])
    messages: List[str] = []
    sink = logger.add(messages.append, level="WARNING", format="{message}")
    try:
        await _controller(service, clock).start("dep-1")
    finally:
        logger.remove(sink)

    assert any("START_TIMED_OUT_TX" in m and sig in m for m in messages)


@pytest.mark.anyio
async def test_failed_restart_falls_back_to_start(clock):
    service = _FakeService(
        [_deployment(DeploymentStatus.ERROR, TIMEOUT_TEXT), _deployment(DeploymentStatus.STARTING)],
        restart_failures=1,
    )
    controller = _controller(service, clock)

    await controller.start("dep-1")

    assert service.calls[:5] == ["start", "get", "restart", "start", "restart"]
    assert controller.restarts == 1
    assert 10.0 in clock.sleeps


@pytest.mark.anyio
async def test_unrelated_error_fails_without_restart(clock):
    service = _FakeService([_deployment(DeploymentStatus.ERROR, "market is closed")])
    controller = _controller(service, clock)

    with pytest.raises(StartFailed) as exc:
        await controller.start("dep-1")

    assert controller.restarts == 0
    assert "restart" not in service.calls
    assert exc.value.status is DeploymentStatus.ERROR
    assert "market is closed" in str(exc.value)
    assert "last status: ERROR" in str(exc.value)


@pytest.mark.anyio
async def test_start_failures_are_retried(clock):
    service = _FakeService([_deployment(DeploymentStatus.STARTING)], start_failures=2)

    result = await _controller(service, clock).start("dep-1")

    assert result.status is DeploymentStatus.STARTING
    assert service.calls == ["start", "start", "start", "get"]
    assert clock.sleeps == [10.0, 10.0, 5.0]


@pytest.mark.anyio
async def test_attempt_budget_is_bounded(clock):
    service = _FakeService([_deployment(DeploymentStatus.ERROR, TIMEOUT_TEXT)])
    controller = _controller(service, clock, max_attempts=3)

    with pytest.raises(StartFailed) as exc:
        await controller.start("dep-1")

    assert service.calls.count("get") == 3
    assert controller.restarts == 2
    assert TIMEOUT_TEXT in str(exc.value)


@pytest.mark.anyio
async def test_start_never_succeeding_raises(clock):
    service = _FakeService([_deployment(DeploymentStatus.STARTING)], start_failures=99)

    with pytest.raises(StartFailed):
        await _controller(service, clock, max_attempts=2).start("dep-1")

    assert service.calls == ["start", "start"]


def test_attempts_must_be_positive():
    with pytest.raises(ValueError):
        StartController(_FakeService([]), StartSettings(max_attempts=0))
