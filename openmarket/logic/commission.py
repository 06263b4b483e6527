# openmarket/logic/commission.py
"""
수수료율 결정 (워터폴)

  1) 판매자 전용 정책         (seller_id 일치, 카테고리 무시)
  2) 카테고리 전용 전역 정책  (category_code 일치 & seller_id NULL, 카테고리가 주어진 경우만)
  3) 전역 기본 정책           (seller_id NULL & category_code NULL)
  4) YAML fallback_rate      (기본 5.00%)

각 단계: is_active & effective_date <= at & (end_date NULL or end_date >= at),
effective_date 최신순, 같으면 id 큰 것 우선.
"""
from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from openmarket.crud import _as_naive_utc, _utcnow
from openmarket.models import CommissionPolicy
from openmarket.policy import api as policy_api

logger = logging.getLogger(__name__)


def _active_at(db: Session, at: datetime):
    return db.query(CommissionPolicy).filter(
        CommissionPolicy.is_active.is_(True),
        CommissionPolicy.effective_date <= at,
        or_(CommissionPolicy.end_date.is_(None), CommissionPolicy.end_date >= at),
    )


def _latest(q) -> Optional[CommissionPolicy]:
    return q.order_by(CommissionPolicy.effective_date.desc(), CommissionPolicy.id.desc()).first()


def find_applicable_policy(
    db: Session,
    seller_id: Optional[int],
    category_code: Optional[str] = None,
    *,
    at: Optional[datetime] = None,
) -> Optional[CommissionPolicy]:
    """워터폴 1~3 단계에서 매칭된 정책 (없으면 None)"""
    at = _as_naive_utc(at) or _utcnow()

    if seller_id is not None:
        hit = _latest(_active_at(db, at).filter(CommissionPolicy.seller_id == seller_id))
        if hit:
            return hit

    if category_code:
        hit = _latest(
            _active_at(db, at).filter(
                CommissionPolicy.category_code == category_code,
                CommissionPolicy.seller_id.is_(None),
            )
        )
        if hit:
            return hit

    return _latest(
        _active_at(db, at).filter(
            CommissionPolicy.seller_id.is_(None),
            CommissionPolicy.category_code.is_(None),
        )
    )


def resolve_commission_rate(
    db: Session,
    seller_id: Optional[int],
    category_code: Optional[str] = None,
    *,
    at: Optional[datetime] = None,
) -> Decimal:
    policy = find_applicable_policy(db, seller_id, category_code, at=at)
    if policy is None:
        rate = policy_api.fallback_commission_rate()
        logger.debug("no commission policy seller=%s category=%s -> fallback %s", seller_id, category_code, rate)
        return rate

    logger.debug(
        "commission policy id=%s seller=%s category=%s rate=%s",
        policy.id, seller_id, category_code, policy.commission_rate,
    )
    return Decimal(policy.commission_rate)
