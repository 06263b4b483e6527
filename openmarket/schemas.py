# ===== Settlement Schemas (Period / Settlement / Item / CommissionPolicy / Report) =====
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Optional, List

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer
from pydantic.alias_generators import to_camel

# 모델 Enum 재사용 (중복 정의 방지)
from openmarket.models import SettlementPeriodStatus, SettlementPeriodType, SettlementStatus


# ─────────────────────────────────────────────────────────
# 공통 베이스: JSON 키는 camelCase, 입력은 snake_case 도 허용
# ─────────────────────────────────────────────────────────
class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ORMModel(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# 수수료율(Decimal)은 응답 JSON 에서 숫자로 내려준다
Rate = Annotated[Decimal, PlainSerializer(lambda v: float(v), return_type=float, when_used="json")]


class Pagination(CamelModel):
    page: int
    limit: int
    total: int
    total_pages: int


# ---------------- Seller ----------------
class SellerBrief(ORMModel):
    id: int
    name: str
    email: str
    shop_name: Optional[str] = None
    bank_type: Optional[str] = None
    bank_account: Optional[str] = None
    depositor_name: Optional[str] = None


# ---------------- SettlementPeriod ----------------
class SettlementPeriodCreate(CamelModel):
    period_type: SettlementPeriodType
    # 누락 여부는 crud 에서 400 으로 검증
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    settlement_date: Optional[datetime] = None


class SettlementPeriodOut(ORMModel):
    id: int
    period_type: SettlementPeriodType
    start_date: datetime
    end_date: datetime
    settlement_date: datetime
    status: SettlementPeriodStatus
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# ---------------- SettlementItem ----------------
class SettlementItemOut(ORMModel):
    id: int
    settlement_id: int
    order_id: int
    order_item_id: int
    product_name: str
    sku_code: Optional[str] = None
    category_code: Optional[str] = None
    quantity: int
    unit_price: int
    total_price: int
    commission_rate: Rate
    commission_amount: int
    delivery_fee: int
    settlement_amount: int
    order_status: Optional[str] = None
    payment_status: Optional[str] = None
    created_at: Optional[datetime] = None


# ---------------- Settlement ----------------
class SettlementCreate(CamelModel):
    settlement_period_id: Optional[int] = None
    seller_id: Optional[int] = None
    total_order_amount: Optional[int] = None
    total_commission: Optional[int] = None
    total_delivery_fee: int = 0
    total_refund_amount: int = 0
    total_cancel_amount: int = 0
    adjustment_amount: int = 0
    memo: Optional[str] = None


class SettlementOut(ORMModel):
    id: int
    settlement_period_id: int
    seller_id: int
    total_order_amount: int
    total_commission: int
    total_delivery_fee: int
    total_refund_amount: int
    total_cancel_amount: int
    adjustment_amount: int
    commission_rate: Optional[Rate] = None
    final_settlement_amount: int
    status: SettlementStatus
    settled_at: Optional[datetime] = None
    memo: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class SettlementWithItemsOut(SettlementOut):
    items: List[SettlementItemOut] = Field(default_factory=list)


class SettlementDetailOut(SettlementWithItemsOut):
    seller: Optional[SellerBrief] = None
    period: Optional[SettlementPeriodOut] = None


class SettlementListRow(SettlementOut):
    # 대시보드 테이블용 파생 필드
    seller_name: str = "-"
    seller_email: str = "-"
    sales_amount: int = 0
    commission_amount: int = 0
    settlement_amount: int = 0
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class SettlementListOut(CamelModel):
    settlements: List[SettlementListRow]
    pagination: Pagination


class SellerSettlementRow(SettlementOut):
    period: Optional[SettlementPeriodOut] = None
    # 미리보기 (최대 5개)
    items: List[SettlementItemOut] = Field(default_factory=list)


class SellerSettlementsOut(CamelModel):
    settlements: List[SellerSettlementRow]
    pagination: Pagination


class SettlementStatusUpdate(CamelModel):
    status: SettlementStatus
    memo: Optional[str] = None


# ---------------- Batch transitions ----------------
class SettlementBatchRequest(CamelModel):
    # 빈 목록/누락은 로직에서 400 으로 처리
    settlement_ids: Optional[List[int]] = None
    memo: Optional[str] = None


class SettlementProcessRequest(SettlementBatchRequest):
    commission_rate: Optional[Decimal] = Field(default=None, ge=0, le=100)


# ---------------- Calculation ----------------
class SettlementCalculationOut(CamelModel):
    message: str
    period: SettlementPeriodOut
    settlement_count: int
    settlements: List[SettlementWithItemsOut]
    skipped_seller_ids: List[int] = Field(default_factory=list)


# ---------------- CommissionPolicy ----------------
class CommissionPolicyCreate(CamelModel):
    name: Optional[str] = None
    category_code: Optional[str] = None
    seller_id: Optional[int] = None
    commission_rate: Optional[Decimal] = Field(default=None, ge=0, le=100)
    min_amount: Optional[int] = None
    max_amount: Optional[int] = None
    effective_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class CommissionPolicyUpdate(CamelModel):
    name: Optional[str] = None
    commission_rate: Optional[Decimal] = Field(default=None, ge=0, le=100)
    end_date: Optional[datetime] = None
    is_active: Optional[bool] = None


class CommissionPolicyOut(ORMModel):
    id: int
    name: str
    category_code: Optional[str] = None
    seller_id: Optional[int] = None
    commission_rate: Rate
    min_amount: Optional[int] = None
    max_amount: Optional[int] = None
    effective_date: datetime
    end_date: Optional[datetime] = None
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# ---------------- Reporting ----------------
class ProductSettlementRow(CamelModel):
    product_name: str
    sku_code: Optional[str] = None
    unit_price: int = 0
    order_count: int
    total_quantity: int
    sales_amount: int
    commission_amount: int
    settlement_amount: int
    avg_order_value: int
    commission_rate: Rate
    # 반품/환불 주문 항목
    return_count: int = 0
    return_amount: int = 0
    period_start: Optional[datetime] = None
    period_end: Optional[datetime] = None


class ProductSettlementsOut(CamelModel):
    product_settlements: List[ProductSettlementRow]
    pagination: Pagination


class SellerReportSummary(CamelModel):
    total_orders: int
    total_sales: int
    total_commission: int
    net_amount: int


class SellerReportRow(CamelModel):
    order_id: int
    order_number: Optional[str] = None
    ordered_at: Optional[datetime] = None
    product_name: str
    quantity: int
    unit_price: int
    total_price: int
    commission_rate: Rate
    commission_amount: int
    settlement_amount: int


class SellerReportOut(CamelModel):
    seller_id: int
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    summary: SellerReportSummary
    orders: List[SellerReportRow]


class ProductSettlementDetailOut(CamelModel):
    product_name: str
    sku_code: Optional[str] = None
    category_code: Optional[str] = None
    order_count: int
    total_quantity: int
    sales_amount: int
    commission_amount: int
    settlement_amount: int
    avg_order_value: int
    # 최신 정산 기준
    commission_rate: Rate
    latest_status: SettlementStatus
    latest_period: Optional[SettlementPeriodOut] = None
    orders: List[SellerReportRow]


class SettlementStatusSummaryRow(CamelModel):
    status: SettlementStatus
    count: int
    total_order_amount: int
    total_commission: int
    final_settlement_amount: int
