# openmarket/logic/settlement_lifecycle.py
"""
정산 상태 전이 (일괄 처리)

  process   : PENDING(settled_at NULL) → CALCULATING   (수수료 재계산)
  complete  : CALCULATING              → COMPLETED     (settled_at = now)
  hold      : PENDING/CALCULATING      → ON_HOLD
  unhold    : ON_HOLD                  → PENDING
  cancel    : COMPLETED                → CANCELLED
  delete    : PENDING/ON_HOLD          → (삭제, 항목 cascade)

공통 규칙:
  - id 목록이 비면 400
  - 대상 상태가 아닌 행은 건드리지 않고 skipped 로 돌려준다
  - 대상이 0건이면 400 (작업별 메시지)
  - 대상 행 변경 + 이벤트 로그는 한 트랜잭션
  - settled_at 은 COMPLETED 일 때만 값이 있다
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence

from sqlalchemy.orm import Session

from openmarket.crud import _utcnow, log_event
from openmarket.errors import InvalidStateError, NotFoundError, SettlementValidationError
from openmarket.models import Settlement, SettlementEventType, SettlementStatus
from openmarket.policy import api as policy_api

logger = logging.getLogger(__name__)


@dataclass
class BatchResult:
    affected_ids: List[int] = field(default_factory=list)
    skipped_ids: List[int] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.affected_ids)


# ---------------------------------------------------------
# 공용 헬퍼
# ---------------------------------------------------------
def _normalize_ids(ids: Optional[Iterable[int]], empty_message: str) -> List[int]:
    if not ids:
        raise SettlementValidationError(empty_message)
    # 중복 제거 (입력 순서 유지)
    out: List[int] = []
    for i in map(int, ids):
        if i not in out:
            out.append(i)
    return out


def _load_eligible(db: Session, ids: List[int], statuses: Sequence[SettlementStatus], *extra) -> List[Settlement]:
    q = db.query(Settlement).filter(Settlement.id.in_(ids), Settlement.status.in_(list(statuses)))
    for cond in extra:
        q = q.filter(cond)
    return q.order_by(Settlement.id.asc()).all()


def _skipped(ids: List[int], rows: List[Settlement]) -> List[int]:
    hit = {r.id for r in rows}
    return [i for i in ids if i not in hit]


def _apply_transition(
    db: Session,
    rows: List[Settlement],
    *,
    new_status: SettlementStatus,
    event_type: SettlementEventType,
    actor_id: Optional[int],
    memo: Optional[str] = None,
    batch_id: str,
) -> None:
    now = _utcnow()
    for st in rows:
        prev = st.status
        st.status = new_status
        st.settled_at = now if new_status == SettlementStatus.COMPLETED else None
        if memo:
            st.memo = memo
        log_event(
            db,
            event_type,
            actor_id=actor_id,
            settlement_id=st.id,
            settlement_period_id=st.settlement_period_id,
            seller_id=st.seller_id,
            prev_status=prev,
            new_status=new_status,
            reason=memo,
            batch_id=batch_id,
        )


def _finish(db: Session, op: str, ids: List[int], rows: List[Settlement], batch_id: str) -> BatchResult:
    db.commit()
    result = BatchResult(affected_ids=[r.id for r in rows], skipped_ids=_skipped(ids, rows))
    logger.info("settlement %s batch=%s affected=%s", op, batch_id, result.affected_ids)
    if result.skipped_ids:
        logger.info("settlement %s batch=%s skipped=%s", op, batch_id, result.skipped_ids)
    return result


# ---------------------------------------------------------
# 🧾 process: PENDING → CALCULATING
# ---------------------------------------------------------
def process_settlements(
    db: Session,
    ids: Optional[Iterable[int]],
    commission_rate: Optional[Decimal] = None,
    *,
    actor_id: Optional[int] = None,
) -> BatchResult:
    ids = _normalize_ids(ids, "처리할 정산 항목을 선택해주세요.")
    rate = Decimal(commission_rate) if commission_rate is not None else policy_api.default_process_commission_rate()
    if rate < 0 or rate > 100:
        raise SettlementValidationError("수수료율은 0~100 사이여야 합니다.")

    rows = _load_eligible(db, ids, [SettlementStatus.PENDING], Settlement.settled_at.is_(None))
    if not rows:
        raise InvalidStateError("처리 가능한 정산 항목이 없습니다.")

    batch_id = uuid.uuid4().hex
    for st in rows:
        prev_commission = int(st.total_commission or 0)
        st.total_commission = policy_api.commission_amount(int(st.total_order_amount or 0), rate)
        st.commission_rate = rate
        st.recompute_final_amount()
        st.status = SettlementStatus.CALCULATING
        st.settled_at = None
        log_event(
            db,
            SettlementEventType.SETTLEMENT_PROCESSED,
            actor_id=actor_id,
            settlement_id=st.id,
            settlement_period_id=st.settlement_period_id,
            seller_id=st.seller_id,
            prev_status=SettlementStatus.PENDING,
            new_status=SettlementStatus.CALCULATING,
            batch_id=batch_id,
            meta={
                "commission_rate": str(rate),
                "prev_commission": prev_commission,
                "commission": st.total_commission,
                "final_settlement_amount": st.final_settlement_amount,
            },
        )
    return _finish(db, "process", ids, rows, batch_id)


# ---------------------------------------------------------
# ✅ complete: CALCULATING → COMPLETED
# ---------------------------------------------------------
def complete_settlements(
    db: Session,
    ids: Optional[Iterable[int]],
    *,
    actor_id: Optional[int] = None,
) -> BatchResult:
    ids = _normalize_ids(ids, "정산 ID 목록이 필요합니다.")
    rows = _load_eligible(db, ids, [SettlementStatus.CALCULATING])
    if not rows:
        raise InvalidStateError("완료 처리 가능한 정산 항목이 없습니다.")

    batch_id = uuid.uuid4().hex
    _apply_transition(
        db, rows,
        new_status=SettlementStatus.COMPLETED,
        event_type=SettlementEventType.SETTLEMENT_COMPLETED,
        actor_id=actor_id,
        batch_id=batch_id,
    )
    return _finish(db, "complete", ids, rows, batch_id)


# ---------------------------------------------------------
# ⏸ hold / ▶ unhold
# ---------------------------------------------------------
def hold_settlements(
    db: Session,
    ids: Optional[Iterable[int]],
    memo: Optional[str] = None,
    *,
    actor_id: Optional[int] = None,
) -> BatchResult:
    ids = _normalize_ids(ids, "정산 ID 목록이 필요합니다.")
    rows = _load_eligible(db, ids, [SettlementStatus.PENDING, SettlementStatus.CALCULATING])
    if not rows:
        raise InvalidStateError("보류할 수 있는 정산이 없습니다.")

    batch_id = uuid.uuid4().hex
    _apply_transition(
        db, rows,
        new_status=SettlementStatus.ON_HOLD,
        event_type=SettlementEventType.SETTLEMENT_HELD,
        actor_id=actor_id,
        memo=memo,
        batch_id=batch_id,
    )
    return _finish(db, "hold", ids, rows, batch_id)


def unhold_settlements(
    db: Session,
    ids: Optional[Iterable[int]],
    memo: Optional[str] = None,
    *,
    actor_id: Optional[int] = None,
) -> BatchResult:
    ids = _normalize_ids(ids, "정산 ID 목록이 필요합니다.")
    rows = _load_eligible(db, ids, [SettlementStatus.ON_HOLD])
    if not rows:
        raise InvalidStateError("보류 해제할 수 있는 정산이 없습니다.")

    batch_id = uuid.uuid4().hex
    _apply_transition(
        db, rows,
        new_status=SettlementStatus.PENDING,
        event_type=SettlementEventType.SETTLEMENT_UNHELD,
        actor_id=actor_id,
        memo=memo,
        batch_id=batch_id,
    )
    return _finish(db, "unhold", ids, rows, batch_id)


# ---------------------------------------------------------
# ✖ cancel: COMPLETED → CANCELLED
# ---------------------------------------------------------
def cancel_settlements(
    db: Session,
    ids: Optional[Iterable[int]],
    memo: Optional[str] = None,
    *,
    actor_id: Optional[int] = None,
) -> BatchResult:
    ids = _normalize_ids(ids, "정산 ID 목록이 필요합니다.")
    rows = _load_eligible(db, ids, [SettlementStatus.COMPLETED])
    if not rows:
        raise InvalidStateError("취소할 수 있는 정산이 없습니다.")

    batch_id = uuid.uuid4().hex
    _apply_transition(
        db, rows,
        new_status=SettlementStatus.CANCELLED,
        event_type=SettlementEventType.SETTLEMENT_CANCELLED,
        actor_id=actor_id,
        memo=memo,
        batch_id=batch_id,
    )
    return _finish(db, "cancel", ids, rows, batch_id)


# ---------------------------------------------------------
# 🗑 delete: PENDING/ON_HOLD (hard delete)
# ---------------------------------------------------------
def delete_settlements(
    db: Session,
    ids: Optional[Iterable[int]],
    *,
    actor_id: Optional[int] = None,
) -> BatchResult:
    ids = _normalize_ids(ids, "정산 ID 목록이 필요합니다.")
    rows = _load_eligible(db, ids, [SettlementStatus.PENDING, SettlementStatus.ON_HOLD])
    if not rows:
        raise InvalidStateError("삭제할 수 있는 정산이 없습니다.")

    batch_id = uuid.uuid4().hex
    affected = [r.id for r in rows]
    for st in rows:
        log_event(
            db,
            SettlementEventType.SETTLEMENT_DELETED,
            actor_id=actor_id,
            settlement_id=st.id,
            settlement_period_id=st.settlement_period_id,
            seller_id=st.seller_id,
            prev_status=st.status,
            batch_id=batch_id,
            meta={
                "total_order_amount": int(st.total_order_amount or 0),
                "final_settlement_amount": int(st.final_settlement_amount or 0),
                "item_count": len(st.items),
            },
        )
        db.delete(st)
    db.commit()

    result = BatchResult(affected_ids=affected, skipped_ids=[i for i in ids if i not in set(affected)])
    logger.info("settlement delete batch=%s affected=%s skipped=%s", batch_id, affected, result.skipped_ids)
    return result


# ---------------------------------------------------------
# ⚠ 관리자 강제 상태 변경 (전이 규칙 미적용)
# ---------------------------------------------------------
def force_set_status(
    db: Session,
    settlement_id: int,
    status: SettlementStatus,
    memo: Optional[str] = None,
    *,
    actor_id: Optional[int] = None,
) -> Settlement:
    """
    전이 규칙을 우회하는 운영용 수동 변경.
    settled_at 불변식(COMPLETED 일 때만 값 존재)만 유지하고, 이전 상태를 이벤트 로그에 남긴다.
    """
    st = db.get(Settlement, settlement_id)
    if not st:
        raise NotFoundError("정산 내역을 찾을 수 없습니다.")

    status = SettlementStatus(status)
    prev = st.status
    st.status = status
    st.settled_at = _utcnow() if status == SettlementStatus.COMPLETED else None
    if memo:
        st.memo = memo

    log_event(
        db,
        SettlementEventType.SETTLEMENT_STATUS_FORCED,
        actor_id=actor_id,
        settlement_id=st.id,
        settlement_period_id=st.settlement_period_id,
        seller_id=st.seller_id,
        prev_status=prev,
        new_status=status,
        reason=memo,
    )
    db.commit()
    db.refresh(st)
    logger.warning(
        "settlement status forced id=%s %s -> %s actor=%s",
        st.id, getattr(prev, "value", prev), status.value, actor_id,
    )
    return st
