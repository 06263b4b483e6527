# openmarket/logic/settlement_query.py
from __future__ import annotations

import logging
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Tuple

from sqlalchemy import case, func, or_
from sqlalchemy.orm import Session, joinedload

from openmarket import schemas
from openmarket.crud import _as_naive_utc
from openmarket.errors import NotFoundError, SettlementValidationError
from openmarket.models import (
    Order,
    Seller,
    Settlement,
    SettlementItem,
    SettlementPeriod,
    SettlementStatus,
)
from openmarket.policy import api as policy_api

logger = logging.getLogger(__name__)

SELLER_PREVIEW_ITEMS = 5
RETURNED_ORDER_STATUSES = ("RETURNED", "REFUNDED")


# ---------------------------------------------------------
# 공용 헬퍼
# ---------------------------------------------------------
def _page_params(page: Optional[int], limit: Optional[int]) -> Tuple[int, int]:
    page = max(int(page or 1), 1)
    if not limit:
        limit = policy_api.default_page_size()
    limit = max(1, min(int(limit), policy_api.max_page_size()))
    return page, limit


def _pagination(page: int, limit: int, total: int) -> schemas.Pagination:
    return schemas.Pagination(page=page, limit=limit, total=total, total_pages=(total + limit - 1) // limit)


def _parse_status(status: Optional[str]) -> Optional[SettlementStatus]:
    """'ALL' 또는 빈 값이면 필터 없음"""
    if status is None or str(status).strip() == "" or str(status).upper() == "ALL":
        return None
    try:
        return SettlementStatus(str(status).upper())
    except ValueError:
        raise SettlementValidationError(f"유효하지 않은 정산 상태입니다: {status}") from None


# ---------------------------------------------------------
# 📋 정산 목록 (관리자)
# ---------------------------------------------------------
def list_settlements(
    db: Session,
    *,
    status: Optional[str] = "PENDING",
    search: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    page: Optional[int] = 1,
    limit: Optional[int] = None,
) -> schemas.SettlementListOut:
    page, limit = _page_params(page, limit)

    q = db.query(Settlement).join(Seller, Seller.id == Settlement.seller_id)
    st_filter = _parse_status(status)
    if st_filter is not None:
        q = q.filter(Settlement.status == st_filter)
    if search:
        like = f"%{search.strip()}%"
        q = q.filter(or_(Seller.name.ilike(like), Seller.email.ilike(like)))
    if start_date:
        q = q.filter(Settlement.created_at >= _as_naive_utc(start_date))
    if end_date:
        q = q.filter(Settlement.created_at <= _as_naive_utc(end_date))

    total = q.count()
    rows = (
        q.options(joinedload(Settlement.seller), joinedload(Settlement.period))
        .order_by(Settlement.created_at.desc(), Settlement.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    out = []
    for st in rows:
        base = schemas.SettlementOut.model_validate(st).model_dump()
        out.append(
            schemas.SettlementListRow(
                **base,
                seller_name=st.seller.name if st.seller else "-",
                seller_email=st.seller.email if st.seller else "-",
                sales_amount=int(st.total_order_amount or 0),
                commission_amount=int(st.total_commission or 0),
                settlement_amount=int(st.final_settlement_amount or 0),
                start_date=st.period.start_date if st.period else None,
                end_date=st.period.end_date if st.period else None,
            )
        )
    return schemas.SettlementListOut(settlements=out, pagination=_pagination(page, limit, total))


# ---------------------------------------------------------
# 🔎 정산 상세
# ---------------------------------------------------------
def get_settlement_detail(db: Session, settlement_id: int) -> schemas.SettlementDetailOut:
    st = (
        db.query(Settlement)
        .options(
            joinedload(Settlement.seller),
            joinedload(Settlement.period),
        )
        .filter(Settlement.id == settlement_id)
        .first()
    )
    if not st:
        raise NotFoundError("정산 내역을 찾을 수 없습니다.")

    items = sorted(st.items, key=lambda i: (i.created_at or datetime.min, i.id), reverse=True)
    base = schemas.SettlementOut.model_validate(st).model_dump()
    return schemas.SettlementDetailOut(
        **base,
        items=[schemas.SettlementItemOut.model_validate(i) for i in items],
        seller=schemas.SellerBrief.model_validate(st.seller) if st.seller else None,
        period=schemas.SettlementPeriodOut.model_validate(st.period) if st.period else None,
    )


# ---------------------------------------------------------
# 🧑‍💼 판매자 정산 이력
# ---------------------------------------------------------
def list_seller_settlements(
    db: Session,
    seller_id: int,
    *,
    status: Optional[str] = None,
    page: Optional[int] = 1,
    limit: Optional[int] = None,
) -> schemas.SellerSettlementsOut:
    page, limit = _page_params(page, limit)

    q = db.query(Settlement).filter(Settlement.seller_id == seller_id)
    st_filter = _parse_status(status)
    if st_filter is not None:
        q = q.filter(Settlement.status == st_filter)

    total = q.count()
    rows = (
        q.options(joinedload(Settlement.period))
        .order_by(Settlement.created_at.desc(), Settlement.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    out = []
    for st in rows:
        preview = (
            db.query(SettlementItem)
            .filter(SettlementItem.settlement_id == st.id)
            .order_by(SettlementItem.id.asc())
            .limit(SELLER_PREVIEW_ITEMS)
            .all()
        )
        base = schemas.SettlementOut.model_validate(st).model_dump()
        out.append(
            schemas.SellerSettlementRow(
                **base,
                period=schemas.SettlementPeriodOut.model_validate(st.period) if st.period else None,
                items=[schemas.SettlementItemOut.model_validate(i) for i in preview],
            )
        )
    return schemas.SellerSettlementsOut(settlements=out, pagination=_pagination(page, limit, total))


# ---------------------------------------------------------
# 📦 상품별 정산 집계 (DB GROUP BY)
# ---------------------------------------------------------
_PRODUCT_SORT_KEYS = {
    "salesAmount": "sales_amount",
    "totalPrice": "sales_amount",
    "orderCount": "order_count",
    "settlementAmount": "settlement_amount",
    "commissionAmount": "commission_amount",
}


def _avg_half_up(total: int, count: int) -> int:
    if not count:
        return 0
    return int((Decimal(total) / Decimal(count)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def aggregate_seller_products(
    db: Session,
    seller_id: int,
    *,
    sort_by: Optional[str] = "salesAmount",
    search: Optional[str] = None,
    category: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    page: Optional[int] = 1,
    limit: Optional[int] = None,
) -> schemas.ProductSettlementsOut:
    page, limit = _page_params(page, limit)
    # 모르는 정렬 기준은 판매금액으로
    sort_col = _PRODUCT_SORT_KEYS.get(sort_by or "salesAmount", "sales_amount")

    sales = func.coalesce(func.sum(SettlementItem.total_price), 0).label("sales_amount")
    commission = func.coalesce(func.sum(SettlementItem.commission_amount), 0).label("commission_amount")
    settled = func.coalesce(func.sum(SettlementItem.settlement_amount), 0).label("settlement_amount")
    order_count = func.count(SettlementItem.id).label("order_count")
    is_return = SettlementItem.order_status.in_(RETURNED_ORDER_STATUSES)

    grouped = (
        db.query(
            SettlementItem.product_name.label("product_name"),
            SettlementItem.sku_code.label("sku_code"),
            func.max(SettlementItem.unit_price).label("unit_price"),
            order_count,
            func.coalesce(func.sum(SettlementItem.quantity), 0).label("total_quantity"),
            sales,
            commission,
            settled,
            func.coalesce(func.sum(case((is_return, 1), else_=0)), 0).label("return_count"),
            func.coalesce(func.sum(case((is_return, SettlementItem.total_price), else_=0)), 0).label("return_amount"),
            func.min(SettlementPeriod.start_date).label("period_start"),
            func.max(SettlementPeriod.end_date).label("period_end"),
        )
        .join(Settlement, Settlement.id == SettlementItem.settlement_id)
        .join(SettlementPeriod, SettlementPeriod.id == Settlement.settlement_period_id)
        .filter(Settlement.seller_id == seller_id)
    )
    if search:
        like = f"%{search.strip()}%"
        grouped = grouped.filter(or_(SettlementItem.product_name.ilike(like), SettlementItem.sku_code.ilike(like)))
    if category:
        grouped = grouped.filter(SettlementItem.category_code == category)
    if start_date:
        grouped = grouped.filter(SettlementPeriod.start_date >= _as_naive_utc(start_date))
    if end_date:
        grouped = grouped.filter(SettlementPeriod.end_date <= _as_naive_utc(end_date))

    grouped = grouped.group_by(SettlementItem.product_name, SettlementItem.sku_code)

    sub = grouped.subquery()
    total = db.query(func.count()).select_from(sub).scalar() or 0

    rows = (
        db.query(sub)
        .order_by(getattr(sub.c, sort_col).desc(), sub.c.product_name.asc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    out = []
    for r in rows:
        sales_amount = int(r.sales_amount or 0)
        commission_amount = int(r.commission_amount or 0)
        out.append(
            schemas.ProductSettlementRow(
                product_name=r.product_name,
                sku_code=r.sku_code,
                unit_price=int(r.unit_price or 0),
                order_count=int(r.order_count or 0),
                total_quantity=int(r.total_quantity or 0),
                sales_amount=sales_amount,
                commission_amount=commission_amount,
                settlement_amount=int(r.settlement_amount or 0),
                avg_order_value=_avg_half_up(sales_amount, int(r.order_count or 0)),
                commission_rate=policy_api.effective_rate(commission_amount, sales_amount),
                return_count=int(r.return_count or 0),
                return_amount=int(r.return_amount or 0),
                period_start=r.period_start,
                period_end=r.period_end,
            )
        )
    return schemas.ProductSettlementsOut(product_settlements=out, pagination=_pagination(page, limit, total))


# ---------------------------------------------------------
# 🔍 상품 단위 정산 상세
# ---------------------------------------------------------
def get_seller_product_detail(
    db: Session,
    seller_id: int,
    product_name: str,
    sku_code: Optional[str] = None,
) -> schemas.ProductSettlementDetailOut:
    """
    판매자 상품 하나의 정산 상세.
    - (product_name, sku_code) 로 정산 항목을 모아 합계를 낸다 (sku_code 미지정이면 상품명만)
    - 수수료율/상태/기간은 가장 최근 정산 기준
    - 주문 라인은 최신순
    """
    q = (
        db.query(SettlementItem, Settlement, Order.order_number, Order.created_at)
        .join(Settlement, Settlement.id == SettlementItem.settlement_id)
        .outerjoin(Order, Order.id == SettlementItem.order_id)
        .filter(
            Settlement.seller_id == seller_id,
            SettlementItem.product_name == product_name,
        )
    )
    if sku_code:
        q = q.filter(SettlementItem.sku_code == sku_code)

    rows = q.order_by(SettlementItem.created_at.desc(), SettlementItem.id.desc()).all()
    if not rows:
        raise NotFoundError("해당 상품의 정산 데이터를 찾을 수 없습니다.")

    latest_item, latest_settlement, _, _ = rows[0]
    sales_amount = sum(int(item.total_price) for item, _, _, _ in rows)
    commission_amount = sum(int(item.commission_amount) for item, _, _, _ in rows)
    settlement_amount = sum(int(item.settlement_amount) for item, _, _, _ in rows)
    order_count = len(rows)

    rate = latest_settlement.commission_rate
    if rate is None:
        rate = policy_api.effective_rate(commission_amount, sales_amount)

    return schemas.ProductSettlementDetailOut(
        product_name=latest_item.product_name,
        sku_code=latest_item.sku_code,
        category_code=latest_item.category_code,
        order_count=order_count,
        total_quantity=sum(int(item.quantity) for item, _, _, _ in rows),
        sales_amount=sales_amount,
        commission_amount=commission_amount,
        settlement_amount=settlement_amount,
        avg_order_value=_avg_half_up(sales_amount, order_count),
        commission_rate=rate,
        latest_status=latest_settlement.status,
        latest_period=(
            schemas.SettlementPeriodOut.model_validate(latest_settlement.period)
            if latest_settlement.period else None
        ),
        orders=[
            schemas.SellerReportRow(
                order_id=item.order_id,
                order_number=order_number,
                ordered_at=ordered_at,
                product_name=item.product_name,
                quantity=item.quantity,
                unit_price=int(item.unit_price),
                total_price=int(item.total_price),
                commission_rate=item.commission_rate,
                commission_amount=int(item.commission_amount),
                settlement_amount=int(item.settlement_amount),
            )
            for item, _, order_number, ordered_at in rows
        ],
    )
