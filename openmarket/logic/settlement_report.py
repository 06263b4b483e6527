# openmarket/logic/settlement_report.py
# 판매자 정산 리포트 (JSON/CSV) + 상태별 요약
from __future__ import annotations

import csv
import logging
from datetime import datetime
from io import StringIO
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from openmarket import schemas
from openmarket.crud import _as_naive_utc
from openmarket.models import (
    Order,
    Settlement,
    SettlementItem,
    SettlementPeriod,
    SettlementStatus,
)

logger = logging.getLogger(__name__)

REPORT_CSV_HEADERS = [
    "주문번호",
    "주문일시",
    "상품명",
    "수량",
    "단가",
    "판매금액",
    "수수료율(%)",
    "수수료",
    "정산금액",
]


def build_seller_report(
    db: Session,
    seller_id: int,
    *,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
) -> schemas.SellerReportOut:
    """
    판매자 정산 리포트.
    - 대상: 기간이 [start_date, end_date] 안에 들어오는 정산의 항목 (취소된 정산 제외)
    - summary.totalOrders 는 고유 주문 수
    """
    start = _as_naive_utc(start_date)
    end = _as_naive_utc(end_date)

    q = (
        db.query(SettlementItem, Order.order_number, Order.created_at)
        .join(Settlement, Settlement.id == SettlementItem.settlement_id)
        .join(SettlementPeriod, SettlementPeriod.id == Settlement.settlement_period_id)
        .outerjoin(Order, Order.id == SettlementItem.order_id)
        .filter(
            Settlement.seller_id == seller_id,
            Settlement.status != SettlementStatus.CANCELLED,
        )
    )
    if start:
        q = q.filter(SettlementPeriod.start_date >= start)
    if end:
        q = q.filter(SettlementPeriod.end_date <= end)

    rows: List[schemas.SellerReportRow] = []
    order_ids = set()
    total_sales = total_commission = net_amount = 0
    for item, order_number, ordered_at in q.order_by(Order.created_at.asc(), SettlementItem.id.asc()).all():
        order_ids.add(item.order_id)
        total_sales += int(item.total_price)
        total_commission += int(item.commission_amount)
        net_amount += int(item.settlement_amount)
        rows.append(
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
        )

    logger.debug("seller report seller_id=%s rows=%s", seller_id, len(rows))
    return schemas.SellerReportOut(
        seller_id=seller_id,
        start_date=start,
        end_date=end,
        summary=schemas.SellerReportSummary(
            total_orders=len(order_ids),
            total_sales=total_sales,
            total_commission=total_commission,
            net_amount=net_amount,
        ),
        orders=rows,
    )


def render_seller_report_csv(report: schemas.SellerReportOut) -> bytes:
    buf = StringIO()
    writer = csv.writer(buf)
    writer.writerow(REPORT_CSV_HEADERS)
    for r in report.orders:
        writer.writerow(
            [
                r.order_number or r.order_id,
                r.ordered_at.strftime("%Y-%m-%d %H:%M:%S") if r.ordered_at else "",
                r.product_name,
                r.quantity,
                r.unit_price,
                r.total_price,
                f"{r.commission_rate:.2f}",
                r.commission_amount,
                r.settlement_amount,
            ]
        )
    csv_text = buf.getvalue()
    buf.close()
    # 엑셀 한글 깨짐 방지 (BOM)
    return csv_text.encode("utf-8-sig")


# ---------------------------------------------------------
# 📊 상태별 요약 (관리자 대시보드)
# ---------------------------------------------------------
def summarize_settlements_by_status(db: Session) -> List[schemas.SettlementStatusSummaryRow]:
    rows = (
        db.query(
            Settlement.status,
            func.count(Settlement.id),
            func.coalesce(func.sum(Settlement.total_order_amount), 0),
            func.coalesce(func.sum(Settlement.total_commission), 0),
            func.coalesce(func.sum(Settlement.final_settlement_amount), 0),
        )
        .group_by(Settlement.status)
        .all()
    )
    by_status = {r[0]: r for r in rows}

    out = []
    for status in SettlementStatus:
        r = by_status.get(status)
        out.append(
            schemas.SettlementStatusSummaryRow(
                status=status,
                count=int(r[1]) if r else 0,
                total_order_amount=int(r[2]) if r else 0,
                total_commission=int(r[3]) if r else 0,
                final_settlement_amount=int(r[4]) if r else 0,
            )
        )
    return out
