import pytest
from decimal import Decimal
from sqlalchemy.orm import Session

from companion_api.core import reconciliation
from companion_api.core.commission_ledger import OUTCOME_NOT_FOUND
from companion_api.schemas.commission import CommissionOutcome, ReconciliationStats
from companion_api.core.reconciliation import reconcile_missing_commissions
from companion_api.crud import crud_bonus
from tests.conftest import create_user, create_chain, create_payment

pytestmark = pytest.mark.core


@pytest.mark.asyncio
async def test_fixes_payments_without_commissions(db_session: Session):
    payer, r1 = create_chain(db_session, 1)
    missed = create_payment(db_session, payer, amount="20.00")

    stats = await reconcile_missing_commissions(db_session)

    assert stats.scanned == 1
    assert stats.fixed == 1
    assert stats.fixed_ids == [missed.id]
    assert stats.errors == 0
    assert crud_bonus.get_wallet(db_session, user_id=r1.id).balance == Decimal("10.00")

@pytest.mark.asyncio
async def test_second_run_fixes_nothing(db_session: Session):
    payer, r1 = create_chain(db_session, 2)[:2]
    create_payment(db_session, payer, amount="20.00")

    await reconcile_missing_commissions(db_session)
    stats = await reconcile_missing_commissions(db_session)

    assert stats.scanned == 1
    assert stats.fixed == 0
    assert stats.skipped == 1
    db_session.expire_all()
    assert crud_bonus.get_wallet(db_session, user_id=r1.id).balance == Decimal("10.00")

@pytest.mark.asyncio
async def test_only_successful_payments_are_scanned(db_session: Session):
    payer, _ = create_chain(db_session, 1)
    create_payment(db_session, payer, status="pending")
    create_payment(db_session, payer, status="failed")
    create_payment(db_session, payer, status="paid")
    create_payment(db_session, payer, status="completed")

    stats = await reconcile_missing_commissions(db_session)

    assert stats.scanned == 2
    assert stats.fixed == 2

@pytest.mark.asyncio
async def test_payments_without_referrer_count_as_skipped(db_session: Session):
    loner = create_user(db_session)
    create_payment(db_session, loner)

    stats = await reconcile_missing_commissions(db_session)

    assert stats.scanned == 1
    assert stats.fixed == 0
    assert stats.skipped == 1

@pytest.mark.asyncio
async def test_limit_bounds_the_scan(db_session: Session):
    payer, _ = create_chain(db_session, 1)
    for _ in range(5):
        create_payment(db_session, payer, amount="10.00")

    stats = await reconcile_missing_commissions(db_session, limit=3)

    assert stats.scanned == 3
    assert stats.fixed == 3

@pytest.mark.asyncio
async def test_one_failing_payment_does_not_abort_the_run(db_session: Session, monkeypatch):
    payer, _ = create_chain(db_session, 1)
    bad = create_payment(db_session, payer)
    good = create_payment(db_session, payer)

    real_distribute = reconciliation.distribute_commission

    async def exploding_distribute(db, payment_id):
        if payment_id == bad.id:
            raise RuntimeError("boom")
        return await real_distribute(db, payment_id)

    monkeypatch.setattr(reconciliation, "distribute_commission", exploding_distribute)

    stats = await reconcile_missing_commissions(db_session)

    assert stats.scanned == 2
    assert stats.errors == 1
    assert stats.fixed_ids == [good.id]

@pytest.mark.asyncio
async def test_vanished_payment_counts_as_error(db_session: Session, monkeypatch):
    payer, _ = create_chain(db_session, 1)
    create_payment(db_session, payer)

    async def not_found(db, payment_id):
        return CommissionOutcome(payment_id=payment_id, status=OUTCOME_NOT_FOUND, reason="payment not found")

    monkeypatch.setattr(reconciliation, "distribute_commission", not_found)

    stats = await reconcile_missing_commissions(db_session)

    assert stats.errors == 1
    assert stats.fixed == 0

@pytest.mark.asyncio
@pytest.mark.parametrize("limit", [0, -1])
async def test_non_positive_limit_is_rejected(db_session: Session, limit: int):
    payer, r1 = create_chain(db_session, 1)
    create_payment(db_session, payer)

    with pytest.raises(ValueError):
        await reconcile_missing_commissions(db_session, limit=limit)

    assert crud_bonus.get_wallet(db_session, user_id=r1.id) is None

@pytest.mark.asyncio
async def test_stats_are_the_response_model(db_session: Session):
    stats = await reconcile_missing_commissions(db_session)
    assert isinstance(stats, ReconciliationStats)
    assert stats.model_dump() == {"scanned": 0, "fixed": 0, "skipped": 0, "errors": 0, "fixed_ids": []}
