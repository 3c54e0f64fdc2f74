"""
job_engine.py - Post jobs and drive deployments on the Nosana network

Two paths:
    post_job   list a job directly on the Jobs program (job + run accounts
               are fresh keypairs, result status QUEUED)
    deploy     create a deployment, fund its vault in one transaction, start
               it, then poll until it settles

Every collaborator comes in through JobContext / the constructor; there is no
module-level client or keypair.
"""

from __future__ import annotations

import asyncio
import json
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from loguru import logger
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from nosdeploy.config.nosana_tokens import NOS, SolanaToken, get_token, load_extra_tokens
from nosdeploy.config.settings import EngineConfig, EngineSettings, load_config_or_exit
from nosdeploy.domain.deployment import Deployment, DeploymentCreateRequest, DeploymentStatus, DeploymentStrategy
from nosdeploy.engines.deployment.start_controller import StartController
from nosdeploy.engines.deployment.state_tracker import DeploymentTracker, StatusCallback
from nosdeploy.engines.execution.adapters.deployment_manager import DeploymentManagerClient
from nosdeploy.engines.execution.adapters.pinata_adapter import PinataAdapter
from nosdeploy.engines.execution.addresses import generate_keypair, parse_pubkey, short
from nosdeploy.engines.execution.funding import FundingPlanner
from nosdeploy.engines.execution.instructions import build_list_instruction
from nosdeploy.engines.execution.solana_client import SolanaClient
from nosdeploy.engines.execution.transaction_engine import TransactionEngine, TxOutcome, TxResult
from nosdeploy.engines.execution.transfers import TransferBuilder
from nosdeploy.errors import ConfigError, DeploymentFailed, NosDeployError
from nosdeploy.ports.deployment_service import DeploymentServicePort
from nosdeploy.ports.ledger import LedgerPort


JOB_STATUS_QUEUED = "QUEUED"


@dataclass
class JobContext:
    keypair: Keypair
    ledger: LedgerPort
    market: Pubkey
    settings: EngineSettings = field(default_factory=EngineSettings)
    token: SolanaToken = NOS

    @property
    def wallet(self) -> Pubkey:
        return self.keypair.pubkey()


@dataclass(frozen=True)
class JobPostResult:
    job: str
    run: str
    signature: str
    ipfs_hash: str
    status: str = JOB_STATUS_QUEUED
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class NosanaJobEngine:
    def __init__(
        self,
        ctx: JobContext,
        deployments: Optional[DeploymentServicePort] = None,
        storage: Optional[PinataAdapter] = None,
        sleep: Callable[[float], Any] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        on_status: Optional[StatusCallback] = None,
    ):
        self.ctx = ctx
        self.deployments = deployments
        self.storage = storage
        self._sleep = sleep
        self._clock = clock
        self.on_status = on_status

        self.tx_engine = TransactionEngine(ctx.ledger, ctx.settings.confirmation, sleep=sleep, clock=clock)
        self.planner = FundingPlanner(ctx.ledger, ctx.settings.funding, token=ctx.token)
        self.transfers = TransferBuilder(ctx.ledger, token=ctx.token)
        self.tracker: Optional[DeploymentTracker] = None

        logger.info(f"JOB_ENGINE | init | wallet={short(ctx.wallet)} | market={short(ctx.market)}")

    def _require_deployments(self) -> DeploymentServicePort:
        if self.deployments is None:
            raise ConfigError("no deployment manager configured")
        return self.deployments

    async def _submit(self, instructions, signers=()) -> TxResult:
        """
        Build once, send, and re-check the same signed transaction while it
        stays TIMED_OUT. A landed signature is reported as landed, never resent
        as a new transaction.
        """
        tx = await self.tx_engine.build(instructions, self.ctx.keypair, signers)
        result = await self.tx_engine.send_and_confirm(tx)

        rechecks = self.ctx.settings.confirmation.recheck_attempts
        for attempt in range(1, rechecks + 1):
            if result.outcome is not TxOutcome.TIMED_OUT:
                break
            logger.warning(f"TX_RECHECK | sig={result.signature} | attempt={attempt}/{rechecks}")
            result = await self.tx_engine.send_and_confirm(tx)

        return result.raise_for_outcome()

    # =========================================================================
    # DIRECT JOB POSTING
    # =========================================================================

    async def post_job(self, ipfs_hash: str, timeout_seconds: int) -> JobPostResult:
        """
        List one job on the Jobs program.

        Raises:
            EncodingError, MissingSignerError, TransactionFailed, TransactionTimedOut
        """
        job, run = generate_keypair(), generate_keypair()
        ix = build_list_instruction(
            job=job.pubkey(),
            run=run.pubkey(),
            market=self.ctx.market,
            wallet=self.ctx.wallet,
            ipfs_hash=ipfs_hash,
            timeout_seconds=timeout_seconds,
            mint=self.ctx.token.mint,
        )
        logger.info(f"JOB_POST | job={short(job.pubkey())} | run={short(run.pubkey())} | ipfs={ipfs_hash}")

        result = await self._submit([ix], [job, run])

        posted = JobPostResult(
            job=str(job.pubkey()),
            run=str(run.pubkey()),
            signature=result.signature,
            ipfs_hash=ipfs_hash,
        )
        logger.info(f"JOB_QUEUED | job={posted.job} | sig={posted.signature}")
        return posted

    async def upload_and_post(self, definition: Dict[str, Any], timeout_seconds: int) -> JobPostResult:
        if self.storage is None:
            raise ConfigError("no content storage configured (set PINATA_JWT)")
        ipfs_hash = await self.storage.upload(definition)
        return await self.post_job(ipfs_hash, timeout_seconds)

    # =========================================================================
    # VAULT FUNDING
    # =========================================================================

    async def fund_vault(self, vault: str) -> Optional[TxResult]:
        """
        Top up `vault` with SOL and the market's job price in NOS.

        Returns None when the vault already holds enough.
        """
        vault_pk = parse_pubkey(vault, "vault")
        plan = await self.planner.plan(self.ctx.wallet, self.ctx.market, vault=vault_pk)
        if not plan.required:
            logger.info(f"FUNDING_SKIPPED | vault={short(vault_pk)} | already funded")
            return None

        plan.ensure_affordable()
        instructions = await self.transfers.build(self.ctx.wallet, vault_pk, plan)
        result = await self._submit(instructions)
        logger.info(f"FUNDING_CONFIRMED | vault={short(vault_pk)} | sig={result.signature}")

        if self.deployments is not None:
            try:
                await self.deployments.update_vault_balance(str(vault_pk))
            except Exception as e:
                logger.warning(f"VAULT_BALANCE_SYNC | error | vault={short(vault_pk)} | {e}")
        return result

    # =========================================================================
    # DEPLOYMENTS
    # =========================================================================

    async def deploy(self, request: DeploymentCreateRequest, completion_timeout: Optional[float] = None) -> Deployment:
        """
        Create, fund, start and wait.

        Raises:
            DeploymentFailed: funding failed, or settled in ERROR or INSUFFICIENT_FUNDS.
            StartFailed, RestartBudgetExhausted, CompletionTimeout
        """
        service = self._require_deployments()
        settings = self.ctx.settings

        deployment = await service.create(request)
        self.tracker = DeploymentTracker(
            service,
            settings.tracker,
            settings.diagnostics,
            on_status=self.on_status,
            sleep=self._sleep,
            clock=self._clock,
        )
        self.tracker.observe(deployment)

        try:
            await self.fund_vault(deployment.vault)
        except NosDeployError as e:
            logger.error(f"DEPLOYMENT_FUNDING | failed | id={deployment.id} | {type(e).__name__}: {e}")
            raise DeploymentFailed(
                f"funding deployment {deployment.id} (vault {deployment.vault}) failed: {e}",
                status=self.tracker.status,
                events=deployment.events,
            ) from e

        controller = StartController(service, settings.start, settings.diagnostics, sleep=self._sleep)
        started = await controller.start(deployment.id)
        self.tracker.observe(started)

        final = await self.tracker.wait_until_stable(deployment.id, completion_timeout)
        if final.status in (DeploymentStatus.ERROR, DeploymentStatus.INSUFFICIENT_FUNDS):
            raise DeploymentFailed(f"deployment {final.id} settled in {final.status.value}", status=final.status, events=final.events)

        logger.info(f"DEPLOYMENT_STABLE | id={final.id} | status={final.status.value}")
        return final

    async def close(self):
        for component in (self.ctx.ledger, self.deployments, self.storage):
            close = getattr(component, "close", None)
            if close is not None:
                await close()
        logger.info("JOB_ENGINE_SHUTDOWN")


# =============================================================================
# MAIN ENTRY POINT
# =============================================================================

def load_job_definition(path: str) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError as e:
        raise ConfigError(f"job definition not found: {path}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"job definition is not valid JSON: {path}: {e}") from e


def build_engine(cfg: EngineConfig, keypair: Keypair) -> NosanaJobEngine:
    token = get_token(NOS.symbol, load_extra_tokens(cfg.extra_tokens))
    ctx = JobContext(
        keypair=keypair,
        ledger=SolanaClient(cfg.rpc_url),
        market=parse_pubkey(cfg.market_address, "market"),
        settings=cfg.settings,
        token=token,
    )
    deployments = DeploymentManagerClient(keypair, cfg.api_url, timeout=cfg.http_timeout_seconds)
    storage = PinataAdapter(cfg.pinata_jwt, cfg.pinata_url, timeout=cfg.http_timeout_seconds) if cfg.pinata_jwt else None
    return NosanaJobEngine(ctx, deployments=deployments, storage=storage)


async def main(
    definition_path: str,
    name: str = "nosdeploy",
    timeout_seconds: int = 3600,
    replicas: int = 1,
    strategy: str = DeploymentStrategy.SIMPLE.value,
    schedule: Optional[str] = None,
    ipfs_hash: Optional[str] = None,
    direct: bool = False,
) -> int:
    """Entry point: deploy (default) or post a job directly with `direct=True`."""
    cfg, keypair = load_config_or_exit()
    engine = build_engine(cfg, keypair)

    try:
        if direct:
            if ipfs_hash:
                posted = await engine.post_job(ipfs_hash, timeout_seconds)
            else:
                posted = await engine.upload_and_post(load_job_definition(definition_path), timeout_seconds)
            print(json.dumps({"job": posted.job, "run": posted.run, "tx": posted.signature, "status": posted.status}))
            return 0

        request = DeploymentCreateRequest(
            name=name,
            market=cfg.market_address,
            timeout=timeout_seconds,
            replicas=replicas,
            strategy=DeploymentStrategy(strategy),
            schedule=schedule,
            ipfs_definition_hash=ipfs_hash,
            job_definition=None if ipfs_hash else load_job_definition(definition_path),
        )
        final = await engine.deploy(request)
        print(json.dumps({"id": final.id, "status": final.status.value, "vault": final.vault}))
        return 0
    finally:
        await engine.close()


__all__ = [
    "JOB_STATUS_QUEUED",
    "JobContext",
    "JobPostResult",
    "NosanaJobEngine",
    "build_engine",
    "load_job_definition",
    "main",
]
