import pytest
from solders.keypair import Keypair

from nosdeploy.engines.execution.funding import FundingPlanner
from nosdeploy.errors import EncodingError, InsufficientFundsError, MarketAccountError

SOL = 1_000_000_000
NOS = 1_000_000


@pytest.fixture
def planner(ledger):
    return FundingPlanner(ledger)


@pytest.mark.anyio
async def test_plan_tops_up_sol_and_transfers_job_price(ledger, planner, wallet, market):
    ledger.set_market(market, price=2 * NOS)
    ledger.balances[wallet.pubkey()] = SOL // 100  # 0.01 SOL

    plan = await planner.plan(wallet.pubkey(), market)

    assert plan.snapshot.job_price == 2 * NOS
    assert plan.native_lamports == 3_000_000
    assert plan.token_amount == 2 * NOS
    assert not plan.token_deferred
    assert plan.required
    assert plan.ensure_affordable() is plan


@pytest.mark.anyio
async def test_wallet_exactly_at_threshold_still_transfers_token(ledger, planner, wallet, market):
    ledger.set_market(market, price=NOS)
    ledger.balances[wallet.pubkey()] = 3_000_000

    plan = await planner.plan(wallet.pubkey(), market)

    assert plan.token_amount == NOS
    assert plan.native_lamports == 2_900_000


@pytest.mark.anyio
async def test_low_sol_defers_token_transfer(ledger, planner, wallet, market):
    ledger.set_market(market, price=NOS)
    ledger.balances[wallet.pubkey()] = 2_000_000

    plan = await planner.plan(wallet.pubkey(), market)

    assert plan.token_amount == 0
    assert plan.token_deferred
    assert plan.native_lamports == 1_900_000
    with pytest.raises(InsufficientFundsError):
        plan.ensure_affordable()


@pytest.mark.anyio
async def test_wallet_below_fee_buffer_raises(ledger, planner, wallet, market):
    ledger.set_market(market, price=NOS)
    ledger.balances[wallet.pubkey()] = 100_000

    with pytest.raises(InsufficientFundsError):
        await planner.plan(wallet.pubkey(), market)


@pytest.mark.anyio
async def test_free_market_needs_no_token(ledger, planner, wallet, market):
    ledger.set_market(market, price=0)
    ledger.balances[wallet.pubkey()] = 1_000_000

    plan = await planner.plan(wallet.pubkey(), market)

    assert plan.token_amount == 0
    assert not plan.token_deferred
    plan.ensure_affordable()


@pytest.mark.anyio
async def test_missing_market_account_raises(ledger, planner, wallet, market):
    ledger.balances[wallet.pubkey()] = SOL
    with pytest.raises(MarketAccountError):
        await planner.plan(wallet.pubkey(), market)


@pytest.mark.anyio
async def test_short_market_account_raises_encoding_error(ledger, planner, wallet, market):
    ledger.set_market(market, price=0, length=40)
    ledger.balances[wallet.pubkey()] = SOL
    with pytest.raises(EncodingError):
        await planner.plan(wallet.pubkey(), market)


@pytest.mark.anyio
async def test_funded_vault_is_not_required(ledger, planner, wallet, market):
    vault = Keypair().pubkey()
    ledger.set_market(market, price=2 * NOS)
    ledger.balances[wallet.pubkey()] = SOL
    ledger.balances[vault] = 5_000_000
    ledger.set_token_account(vault, 2 * NOS)

    plan = await planner.plan(wallet.pubkey(), market, vault=vault)

    assert not plan.required


@pytest.mark.anyio
async def test_underfunded_vault_is_required(ledger, planner, wallet, market):
    vault = Keypair().pubkey()
    ledger.set_market(market, price=2 * NOS)
    ledger.balances[wallet.pubkey()] = SOL
    ledger.balances[vault] = 5_000_000
    ledger.set_token_account(vault, NOS)

    plan = await planner.plan(wallet.pubkey(), market, vault=vault)

    assert plan.required


@pytest.mark.anyio
async def test_planning_is_read_only_and_repeatable(ledger, planner, wallet, market):
    ledger.set_market(market, price=2 * NOS)
    ledger.balances[wallet.pubkey()] = SOL

    first = await planner.plan(wallet.pubkey(), market)
    second = await planner.plan(wallet.pubkey(), market)

    assert first == second
    assert ledger.sent == []
