# tests/test_settlement_calc.py
from datetime import datetime
from decimal import Decimal

import pytest

from openmarket.errors import InvalidStateError, NotFoundError, SettlementCalculationError
from openmarket.logic import settlement_calc
from openmarket.logic.settlement_calc import calculate_settlement
from openmarket.models import (
    Settlement,
    SettlementEventLog,
    SettlementEventType,
    SettlementPeriod,
    SettlementPeriodStatus,
    SettlementStatus,
)

from factories import (
    make_order,
    make_period,
    make_policy,
    make_product,
    make_seller,
    make_settlement,
)


def _by_seller(result):
    return {st.seller_id: st for st in result.settlements}


def _assert_invariants(st):
    assert st.final_settlement_amount == (
        st.total_order_amount
        - st.total_commission
        - st.total_delivery_fee
        - st.total_refund_amount
        - st.total_cancel_amount
        + st.adjustment_amount
    )
    for item in st.items:
        assert item.settlement_amount == item.total_price - item.commission_amount - item.delivery_fee
    assert (st.settled_at is not None) == (st.status == SettlementStatus.COMPLETED)


# ---------------------------------------------------------
# 기본 시나리오 (카테고리 기반 수수료)
# ---------------------------------------------------------
def test_weekly_calculation_with_category_and_seller_policies(db, item_category_mode):
    s1 = make_seller(db)
    s2 = make_seller(db)
    p1 = make_product(db, s1, category_code="FASHION")
    p2 = make_product(db, s2, category_code="FOOD")
    make_policy(db, 8, category_code="FASHION")
    make_policy(db, 12, seller=s2)
    make_order(db, [(p1, 1, 10000)])
    make_order(db, [(p2, 1, 10000)])
    period = make_period(db)

    result = calculate_settlement(db, period.id)

    assert result.settlement_count == 2
    assert result.period.status == SettlementPeriodStatus.COMPLETED
    by = _by_seller(result)

    assert by[s1.id].total_commission == 800
    assert by[s1.id].final_settlement_amount == 9200
    assert by[s2.id].total_commission == 1200
    assert by[s2.id].final_settlement_amount == 8800
    for st in result.settlements:
        assert st.status == SettlementStatus.PENDING
        assert st.settled_at is None
        _assert_invariants(st)

    assert by[s1.id].items[0].category_code == "FASHION"
    assert by[s1.id].commission_rate == Decimal("8")


def test_seller_mode_ignores_category_policies(db):
    s1 = make_seller(db)
    p1 = make_product(db, s1, category_code="FASHION")
    make_policy(db, 8, category_code="FASHION")
    make_order(db, [(p1, 1, 10000)])
    period = make_period(db)

    result = calculate_settlement(db, period.id)

    # 카테고리 없이 조회 → 전역 정책 없음 → 폴백 5%
    st = result.settlements[0]
    assert st.total_commission == 500
    assert st.final_settlement_amount == 9500
    assert st.commission_rate == Decimal("5")


def test_mixed_categories_store_effective_rate(db, item_category_mode):
    seller = make_seller(db)
    fashion = make_product(db, seller, category_code="FASHION")
    food = make_product(db, seller, category_code="FOOD")
    make_policy(db, 10, category_code="FASHION")
    make_policy(db, 4, category_code="FOOD")
    make_order(db, [(fashion, 1, 10000), (food, 2, 5000)])
    period = make_period(db)

    st = calculate_settlement(db, period.id).settlements[0]

    assert st.total_order_amount == 20000
    assert st.total_commission == 1000 + 400
    assert st.commission_rate == Decimal("7.00")
    assert sorted(Decimal(i.commission_rate) for i in st.items) == [Decimal("4"), Decimal("10")]
    _assert_invariants(st)


# ---------------------------------------------------------
# 그룹핑 / 대상 주문 필터
# ---------------------------------------------------------
def test_one_order_split_across_sellers(db):
    s1 = make_seller(db)
    s2 = make_seller(db)
    make_policy(db, 10)
    p1 = make_product(db, s1)
    p2 = make_product(db, s2)
    make_order(db, [(p1, 2, 3000), (p2, 1, 7000)])
    period = make_period(db)

    by = _by_seller(calculate_settlement(db, period.id))

    assert set(by) == {s1.id, s2.id}
    assert by[s1.id].total_order_amount == 6000
    assert by[s1.id].total_commission == 600
    assert by[s2.id].total_order_amount == 7000
    assert by[s2.id].total_commission == 700
    assert len(by[s1.id].items) == 1
    assert by[s1.id].items[0].quantity == 2


def test_only_eligible_orders_in_window_are_settled(db):
    seller = make_seller(db)
    make_policy(db, 10)
    product = make_product(db, seller)
    make_order(db, [(product, 1, 10000)])  # 대상
    make_order(db, [(product, 1, 20000)], order_status="CONFIRMED")  # 대상
    make_order(db, [(product, 1, 1000)], payment_status="PENDING")
    make_order(db, [(product, 1, 1000)], order_status="SHIPPING")
    make_order(db, [(product, 1, 1000)], created_at=datetime(2023, 12, 31, 23, 0))
    make_order(db, [(product, 1, 1000)], created_at=datetime(2024, 1, 8, 0, 0, 1))
    period = make_period(db)

    st = calculate_settlement(db, period.id).settlements[0]

    assert st.total_order_amount == 30000
    assert len(st.items) == 2


def test_period_without_orders_completes_with_no_settlements(db):
    period = make_period(db)
    result = calculate_settlement(db, period.id)
    assert result.settlement_count == 0
    assert result.period.status == SettlementPeriodStatus.COMPLETED


def test_commission_rounds_half_up(db):
    seller = make_seller(db)
    product = make_product(db, seller)
    make_order(db, [(product, 1, 3333)])  # 3333 * 5% = 166.65
    make_order(db, [(product, 1, 10010)])  # 10010 * 5% = 500.5
    period = make_period(db)

    st = calculate_settlement(db, period.id).settlements[0]
    assert sorted(i.commission_amount for i in st.items) == [167, 501]
    assert st.total_commission == 668


def test_commission_rounding_from_policy_yaml(db, policy_override):
    policy_override(commission={"rounding": "DOWN"})
    seller = make_seller(db)
    product = make_product(db, seller)
    make_order(db, [(product, 1, 3333)])
    period = make_period(db)

    st = calculate_settlement(db, period.id).settlements[0]
    assert st.total_commission == 166


# ---------------------------------------------------------
# 기간 선점 / 재실행 / 기존 정산
# ---------------------------------------------------------
def test_unknown_period(db):
    with pytest.raises(NotFoundError):
        calculate_settlement(db, 999)


def test_second_calculation_is_rejected(db):
    seller = make_seller(db)
    make_order(db, [(make_product(db, seller), 1, 10000)])
    period = make_period(db)

    calculate_settlement(db, period.id)
    with pytest.raises(InvalidStateError) as ei:
        calculate_settlement(db, period.id)

    assert ei.value.message == "이미 처리된 정산 기간입니다."
    assert db.query(Settlement).count() == 1


def test_claim_from_two_sessions_only_one_wins(db, session_factory):
    period = make_period(db)
    first, second = session_factory(), session_factory()
    try:
        # 두 세션 모두 PREPARING 상태를 읽은 뒤 선점 시도
        assert first.get(SettlementPeriod, period.id).status == SettlementPeriodStatus.PREPARING
        assert second.get(SettlementPeriod, period.id).status == SettlementPeriodStatus.PREPARING

        assert settlement_calc._claim_period(first, period.id) is True
        assert settlement_calc._claim_period(second, period.id) is False
    finally:
        first.close()
        second.close()

    db.expire_all()
    assert db.get(SettlementPeriod, period.id).status == SettlementPeriodStatus.PROCESSING


def test_processing_period_cannot_be_claimed(db):
    period = make_period(db, status=SettlementPeriodStatus.PROCESSING)
    with pytest.raises(InvalidStateError):
        calculate_settlement(db, period.id)
    db.expire_all()
    assert db.get(SettlementPeriod, period.id).status == SettlementPeriodStatus.PROCESSING


def test_sellers_with_existing_settlement_are_skipped(db):
    s1 = make_seller(db)
    s2 = make_seller(db)
    make_order(db, [(make_product(db, s1), 1, 10000)])
    make_order(db, [(make_product(db, s2), 1, 10000)])
    period = make_period(db)
    manual = make_settlement(db, period, s1, total_order_amount=5000, total_commission=100)

    result = calculate_settlement(db, period.id)

    assert result.skipped_seller_ids == [s1.id]
    assert [st.seller_id for st in result.settlements] == [s2.id]
    db.expire_all()
    assert db.query(Settlement).filter(Settlement.seller_id == s1.id).count() == 1
    assert db.get(Settlement, manual.id).total_order_amount == 5000


# ---------------------------------------------------------
# 실패 시 롤백 + 기간 복구
# ---------------------------------------------------------
def test_failure_rolls_back_and_releases_period(db, monkeypatch):
    s1 = make_seller(db)
    s2 = make_seller(db)
    make_order(db, [(make_product(db, s1), 1, 10000)])
    make_order(db, [(make_product(db, s2), 1, 10000)])
    period = make_period(db)

    calls = {"n": 0}

    def _boom(db_, seller_id, category_code=None, **kw):
        calls["n"] += 1
        if calls["n"] == 2:
            raise RuntimeError("policy lookup failed")
        return Decimal("10")

    monkeypatch.setattr(settlement_calc, "resolve_commission_rate", _boom)

    with pytest.raises(SettlementCalculationError) as ei:
        calculate_settlement(db, period.id)
    assert ei.value.status_code == 500

    db.expire_all()
    # 첫 판매자 정산도 남지 않음 (단일 트랜잭션)
    assert db.query(Settlement).count() == 0
    assert db.get(SettlementPeriod, period.id).status == SettlementPeriodStatus.PREPARING
    failed = (
        db.query(SettlementEventLog)
        .filter(SettlementEventLog.event_type == SettlementEventType.PERIOD_CALCULATION_FAILED)
        .all()
    )
    assert len(failed) == 1
    assert "policy lookup failed" in failed[0].reason

    # 복구 후 재계산 가능
    monkeypatch.undo()
    result = calculate_settlement(db, period.id)
    assert result.settlement_count == 2


def test_calculation_writes_event_logs(db):
    seller = make_seller(db)
    make_order(db, [(make_product(db, seller), 1, 10000)])
    period = make_period(db)

    calculate_settlement(db, period.id, actor_id=7)

    logs = db.query(SettlementEventLog).order_by(SettlementEventLog.id).all()
    types = [log.event_type for log in logs]
    assert SettlementEventType.SETTLEMENT_CREATED in types
    assert types[-1] == SettlementEventType.PERIOD_CALCULATED
    created = [log for log in logs if log.event_type == SettlementEventType.SETTLEMENT_CREATED]
    assert created[0].batch_id == logs[-1].batch_id
    assert created[0].actor_id == 7
    assert created[0].actor_type == "admin"
