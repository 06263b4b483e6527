# openmarket/logic/settlement_calc.py
"""
정산 기간 계산 엔진

흐름:
  1) 기간 조회 (없으면 404)
  2) PREPARING → PROCESSING 조건부 UPDATE 로 선점 (0건이면 이미 처리된 기간)
  3) 기간 내 결제완료/배송완료 주문 로드 → 상품 판매자 기준으로 항목 그룹핑
  4) 판매자별 수수료율 결정 → 항목/정산 금액 계산
  5) 정산 + 항목 + 이벤트 로그 저장, 기간 COMPLETED, 한 번에 commit
  실패 시: rollback → PROCESSING → PREPARING 보상 UPDATE → 500
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from sqlalchemy import update
from sqlalchemy.orm import Session, selectinload

from openmarket.config.feature_flags import FEATURE_FLAGS
from openmarket.crud import _utcnow, log_event
from openmarket.errors import InvalidStateError, NotFoundError, SettlementCalculationError
from openmarket.logic.commission import resolve_commission_rate
from openmarket.models import (
    Order,
    OrderItem,
    Settlement,
    SettlementEventType,
    SettlementItem,
    SettlementPeriod,
    SettlementPeriodStatus,
    SettlementStatus,
)
from openmarket.policy import api as policy_api

logger = logging.getLogger(__name__)

RESOLUTION_SELLER = "SELLER"
RESOLUTION_ITEM_CATEGORY = "ITEM_CATEGORY"


@dataclass
class CalculationResult:
    period: SettlementPeriod
    settlement_count: int
    settlements: List[Settlement]
    skipped_seller_ids: List[int] = field(default_factory=list)


# ---------------------------------------------------------
# 기간 선점 / 보상
# ---------------------------------------------------------
def _claim_period(db: Session, period_id: int) -> bool:
    res = db.execute(
        update(SettlementPeriod)
        .where(
            SettlementPeriod.id == period_id,
            SettlementPeriod.status == SettlementPeriodStatus.PREPARING,
        )
        .values(status=SettlementPeriodStatus.PROCESSING, updated_at=_utcnow())
    )
    claimed = res.rowcount == 1
    db.commit()
    return claimed


def _release_period_claim(db: Session, period_id: int, *, actor_id: Optional[int], error: Exception) -> None:
    # 보상 실패는 로그만 남긴다 (원래 예외를 가리지 않음)
    try:
        db.execute(
            update(SettlementPeriod)
            .where(
                SettlementPeriod.id == period_id,
                SettlementPeriod.status == SettlementPeriodStatus.PROCESSING,
            )
            .values(status=SettlementPeriodStatus.PREPARING, updated_at=_utcnow())
        )
        log_event(
            db,
            SettlementEventType.PERIOD_CALCULATION_FAILED,
            actor_id=actor_id,
            settlement_period_id=period_id,
            prev_status=SettlementPeriodStatus.PROCESSING,
            new_status=SettlementPeriodStatus.PREPARING,
            reason=f"{type(error).__name__}: {error}",
        )
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("settlement period claim release failed period_id=%s", period_id)


# ---------------------------------------------------------
# 주문 로드 / 그룹핑
# ---------------------------------------------------------
def _load_eligible_orders(db: Session, period: SettlementPeriod) -> List[Order]:
    return (
        db.query(Order)
        .options(selectinload(Order.items).selectinload(OrderItem.product))
        .filter(
            Order.created_at >= period.start_date,
            Order.created_at <= period.end_date,
            Order.payment_status.in_(policy_api.eligible_payment_statuses()),
            Order.order_status.in_(policy_api.eligible_order_statuses()),
        )
        .order_by(Order.id.asc())
        .all()
    )


def _group_by_seller(orders: List[Order]) -> Dict[int, List[Tuple[Order, OrderItem]]]:
    # 한 주문이 여러 판매자에게 나뉠 수 있으므로 항목 단위로 그룹핑
    grouped: Dict[int, List[Tuple[Order, OrderItem]]] = {}
    for order in orders:
        for oi in order.items:
            if oi.product is None:
                logger.warning("order item without product skipped order_id=%s item_id=%s", order.id, oi.id)
                continue
            grouped.setdefault(oi.product.seller_id, []).append((order, oi))
    return grouped


def _existing_seller_ids(db: Session, period_id: int) -> set:
    rows = db.query(Settlement.seller_id).filter(Settlement.settlement_period_id == period_id).all()
    return {r[0] for r in rows}


# ---------------------------------------------------------
# 판매자 단위 정산 생성
# ---------------------------------------------------------
def _build_seller_settlement(
    db: Session,
    period: SettlementPeriod,
    seller_id: int,
    lines: List[Tuple[Order, OrderItem]],
    mode: str,
) -> Settlement:
    seller_rate: Optional[Decimal] = None
    category_rates: Dict[Optional[str], Decimal] = {}
    if mode == RESOLUTION_SELLER:
        seller_rate = resolve_commission_rate(db, seller_id)

    items: List[SettlementItem] = []
    for order, oi in lines:
        category = oi.product.category_code
        if seller_rate is not None:
            rate = seller_rate
        else:
            if category not in category_rates:
                category_rates[category] = resolve_commission_rate(db, seller_id, category)
            rate = category_rates[category]

        total_price = int(oi.total_price)
        commission = policy_api.commission_amount(total_price, rate)
        delivery_fee = 0
        items.append(
            SettlementItem(
                order_id=order.id,
                order_item_id=oi.id,
                product_name=oi.product_name,
                sku_code=oi.sku_code,
                category_code=category,
                quantity=oi.quantity,
                unit_price=int(oi.unit_price),
                total_price=total_price,
                commission_rate=rate,
                commission_amount=commission,
                delivery_fee=delivery_fee,
                settlement_amount=total_price - commission - delivery_fee,
                order_status=order.order_status,
                payment_status=order.payment_status,
                created_at=_utcnow(),
            )
        )

    total_order = sum(i.total_price for i in items)
    total_commission = sum(i.commission_amount for i in items)
    total_delivery = sum(i.delivery_fee for i in items)

    distinct_rates = {Decimal(i.commission_rate) for i in items}
    if len(distinct_rates) == 1:
        settlement_rate = distinct_rates.pop()
    else:
        settlement_rate = policy_api.effective_rate(total_commission, total_order)

    st = Settlement(
        settlement_period_id=period.id,
        seller_id=seller_id,
        total_order_amount=total_order,
        total_commission=total_commission,
        total_delivery_fee=total_delivery,
        total_refund_amount=0,
        total_cancel_amount=0,
        adjustment_amount=0,
        commission_rate=settlement_rate,
        status=SettlementStatus.PENDING,
        settled_at=None,
        items=items,
    )
    st.recompute_final_amount()
    return st


# ---------------------------------------------------------
# 🧮 정산 계산 (public)
# ---------------------------------------------------------
def calculate_settlement(
    db: Session,
    period_id: int,
    *,
    actor_id: Optional[int] = None,
) -> CalculationResult:
    period = db.get(SettlementPeriod, period_id)
    if not period:
        raise NotFoundError("정산 기간을 찾을 수 없습니다.")

    if not _claim_period(db, period_id):
        raise InvalidStateError("이미 처리된 정산 기간입니다.")

    batch_id = uuid.uuid4().hex
    mode = policy_api.commission_resolution_mode()
    logger.info("settlement calculation start period_id=%s mode=%s batch=%s", period_id, mode, batch_id)

    try:
        orders = _load_eligible_orders(db, period)
        grouped = _group_by_seller(orders)

        skipped: List[int] = []
        if FEATURE_FLAGS.get("SKIP_EXISTING_SELLER_SETTLEMENTS", True):
            existing = _existing_seller_ids(db, period_id)
            skipped = sorted(sid for sid in grouped if sid in existing)
            if skipped:
                logger.info("sellers already settled in period_id=%s skipped=%s", period_id, skipped)

        settlements: List[Settlement] = []
        for seller_id, lines in grouped.items():
            if seller_id in skipped:
                continue
            st = _build_seller_settlement(db, period, seller_id, lines, mode)
            db.add(st)
            db.flush()
            log_event(
                db,
                SettlementEventType.SETTLEMENT_CREATED,
                actor_id=actor_id,
                settlement_id=st.id,
                settlement_period_id=period_id,
                seller_id=seller_id,
                new_status=st.status,
                reason="calculation",
                batch_id=batch_id,
                meta={"item_count": len(st.items), "commission_rate": str(st.commission_rate)},
            )
            settlements.append(st)

        period.status = SettlementPeriodStatus.COMPLETED
        log_event(
            db,
            SettlementEventType.PERIOD_CALCULATED,
            actor_id=actor_id,
            settlement_period_id=period_id,
            prev_status=SettlementPeriodStatus.PROCESSING,
            new_status=SettlementPeriodStatus.COMPLETED,
            batch_id=batch_id,
            meta={
                "order_count": len(orders),
                "settlement_count": len(settlements),
                "skipped_seller_ids": skipped,
            },
        )
        db.commit()
    except Exception as e:
        db.rollback()
        logger.exception("settlement calculation failed period_id=%s batch=%s", period_id, batch_id)
        _release_period_claim(db, period_id, actor_id=actor_id, error=e)
        raise SettlementCalculationError("정산 계산에 실패했습니다.") from e

    db.refresh(period)
    for st in settlements:
        db.refresh(st)
    logger.info(
        "settlement calculation done period_id=%s settlements=%s skipped=%s",
        period_id, len(settlements), len(skipped),
    )
    return CalculationResult(
        period=period,
        settlement_count=len(settlements),
        settlements=settlements,
        skipped_seller_ids=skipped,
    )
