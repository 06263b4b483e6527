# openmarket/crud.py
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from openmarket import schemas
from openmarket.errors import NotFoundError, SettlementValidationError
from openmarket.models import (
    CommissionPolicy,
    Seller,
    Settlement,
    SettlementEventLog,
    SettlementEventType,
    SettlementPeriod,
    SettlementPeriodStatus,
    SettlementStatus,
)
from openmarket.policy import api as policy_api

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------
# 공용 유틸
# ---------------------------------------------------------------------
def _utcnow() -> datetime:
    # DB 컬럼은 naive UTC
    return datetime.now(timezone.utc).replace(tzinfo=None)

def _as_naive_utc(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)

def _status_value(v: Any) -> Optional[str]:
    if v is None:
        return None
    return getattr(v, "value", str(v))


# ---------------------------------------------------------------------
# 🧭 정산 이벤트 로그 (호출측 트랜잭션에 포함, commit 하지 않음)
# ---------------------------------------------------------------------
def log_event(
    db: Session,
    event_type: SettlementEventType,
    *,
    actor_id: Optional[int] = None,
    settlement_id: Optional[int] = None,
    settlement_period_id: Optional[int] = None,
    seller_id: Optional[int] = None,
    prev_status: Any = None,
    new_status: Any = None,
    reason: Optional[str] = None,
    batch_id: Optional[str] = None,
    meta: Optional[Dict[str, Any]] = None,
) -> SettlementEventLog:
    ev = SettlementEventLog(
        event_type=event_type,
        actor_type="admin" if actor_id is not None else "system",
        actor_id=actor_id,
        settlement_id=settlement_id,
        settlement_period_id=settlement_period_id,
        seller_id=seller_id,
        prev_status=_status_value(prev_status),
        new_status=_status_value(new_status),
        reason=reason[:255] if reason else None,
        batch_id=batch_id,
        meta=meta,
        created_at=_utcnow(),
    )
    db.add(ev)
    return ev


# ---------------------------------------------------------------------
# 📅 SettlementPeriod
# ---------------------------------------------------------------------
def create_settlement_period(
    db: Session,
    payload: schemas.SettlementPeriodCreate,
    *,
    actor_id: Optional[int] = None,
) -> SettlementPeriod:
    start = _as_naive_utc(payload.start_date)
    end = _as_naive_utc(payload.end_date)
    pay_at = _as_naive_utc(payload.settlement_date)

    if not (payload.period_type and start and end and pay_at):
        raise SettlementValidationError("필수 필드가 누락되었습니다.")
    if start > end:
        raise SettlementValidationError("정산 시작일은 종료일보다 늦을 수 없습니다.")

    period = SettlementPeriod(
        period_type=payload.period_type,
        start_date=start,
        end_date=end,
        settlement_date=pay_at,
        status=SettlementPeriodStatus.PREPARING,
    )
    db.add(period)
    db.flush()
    log_event(
        db,
        SettlementEventType.PERIOD_CREATED,
        actor_id=actor_id,
        settlement_period_id=period.id,
        new_status=period.status,
        meta={"period_type": _status_value(period.period_type)},
    )
    db.commit()
    db.refresh(period)
    return period


def list_settlement_periods(
    db: Session,
    *,
    status: Optional[SettlementPeriodStatus] = None,
) -> List[SettlementPeriod]:
    q = db.query(SettlementPeriod)
    if status is not None:
        q = q.filter(SettlementPeriod.status == status)
    return q.order_by(SettlementPeriod.start_date.desc(), SettlementPeriod.id.desc()).all()


def get_settlement_period(db: Session, period_id: int) -> SettlementPeriod:
    period = db.get(SettlementPeriod, period_id)
    if not period:
        raise NotFoundError("정산 기간을 찾을 수 없습니다.")
    return period


# ---------------------------------------------------------------------
# 📐 CommissionPolicy
# ---------------------------------------------------------------------
def list_commission_policies(db: Session) -> List[CommissionPolicy]:
    return (
        db.query(CommissionPolicy)
        .filter(CommissionPolicy.is_active.is_(True))
        .order_by(CommissionPolicy.effective_date.desc(), CommissionPolicy.id.desc())
        .all()
    )


def create_commission_policy(db: Session, payload: schemas.CommissionPolicyCreate) -> CommissionPolicy:
    if not payload.name or payload.commission_rate is None or payload.effective_date is None:
        raise SettlementValidationError("필수 필드가 누락되었습니다.")

    if payload.seller_id is not None and not db.get(Seller, payload.seller_id):
        raise NotFoundError("판매자를 찾을 수 없습니다.")

    effective = _as_naive_utc(payload.effective_date)
    end = _as_naive_utc(payload.end_date)
    if end is not None and end < effective:
        raise SettlementValidationError("정책 종료일은 적용 시작일보다 빠를 수 없습니다.")

    policy = CommissionPolicy(
        name=payload.name,
        category_code=payload.category_code or None,
        seller_id=payload.seller_id,
        commission_rate=payload.commission_rate,
        min_amount=payload.min_amount,
        max_amount=payload.max_amount,
        effective_date=effective,
        end_date=end,
        is_active=True,
    )
    db.add(policy)
    db.commit()
    db.refresh(policy)
    logger.info(
        "commission policy created id=%s seller=%s category=%s rate=%s",
        policy.id, policy.seller_id, policy.category_code, policy.commission_rate,
    )
    return policy


def update_commission_policy(
    db: Session,
    policy_id: int,
    payload: schemas.CommissionPolicyUpdate,
) -> CommissionPolicy:
    policy = db.get(CommissionPolicy, policy_id)
    if not policy:
        raise NotFoundError("수수료 정책을 찾을 수 없습니다.")

    fields = payload.model_dump(exclude_unset=True)
    if "name" in fields and not fields["name"]:
        raise SettlementValidationError("정책 이름은 비워둘 수 없습니다.")
    if "commission_rate" in fields and fields["commission_rate"] is None:
        raise SettlementValidationError("수수료율은 비워둘 수 없습니다.")
    if "end_date" in fields:
        fields["end_date"] = _as_naive_utc(fields["end_date"])
        if fields["end_date"] is not None and fields["end_date"] < policy.effective_date:
            raise SettlementValidationError("정책 종료일은 적용 시작일보다 빠를 수 없습니다.")
    if "is_active" in fields and fields["is_active"] is None:
        fields.pop("is_active")

    for k, v in fields.items():
        setattr(policy, k, v)
    db.commit()
    db.refresh(policy)
    return policy


# ---------------------------------------------------------------------
# 💰 Settlement 수동 생성
# ---------------------------------------------------------------------
def create_settlement(
    db: Session,
    payload: schemas.SettlementCreate,
    *,
    actor_id: Optional[int] = None,
) -> Settlement:
    if (
        payload.settlement_period_id is None
        or payload.seller_id is None
        or not payload.total_order_amount
        or payload.total_order_amount <= 0
        or payload.total_commission is None
        or payload.total_commission < 0
    ):
        raise SettlementValidationError("필수 필드가 누락되었습니다.")
    # 수수료율 컬럼(Numeric 5,2) 범위: 0~100%
    if payload.total_commission > payload.total_order_amount:
        raise SettlementValidationError("수수료는 주문 금액을 초과할 수 없습니다.")

    if not db.get(SettlementPeriod, payload.settlement_period_id):
        raise NotFoundError("정산 기간을 찾을 수 없습니다.")
    if not db.get(Seller, payload.seller_id):
        raise NotFoundError("판매자를 찾을 수 없습니다.")

    st = Settlement(
        settlement_period_id=payload.settlement_period_id,
        seller_id=payload.seller_id,
        total_order_amount=payload.total_order_amount,
        total_commission=payload.total_commission,
        total_delivery_fee=payload.total_delivery_fee,
        total_refund_amount=payload.total_refund_amount,
        total_cancel_amount=payload.total_cancel_amount,
        adjustment_amount=payload.adjustment_amount,
        commission_rate=policy_api.effective_rate(payload.total_commission, payload.total_order_amount),
        status=SettlementStatus.PENDING,
        settled_at=None,
        memo=payload.memo,
    )
    st.recompute_final_amount()
    db.add(st)
    db.flush()
    log_event(
        db,
        SettlementEventType.SETTLEMENT_CREATED,
        actor_id=actor_id,
        settlement_id=st.id,
        settlement_period_id=st.settlement_period_id,
        seller_id=st.seller_id,
        new_status=st.status,
        reason="manual",
    )
    db.commit()
    db.refresh(st)
    return st
