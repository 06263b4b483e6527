# openmarket/models.py
# 판매자 정산 모델: 정산기간/정산/정산항목/수수료정책 + 주문 읽기 모델 + 정산 이벤트 로그
# 금액 컬럼은 모두 원(KRW) 단위 정수, 수수료율은 퍼센트(Numeric 5,2)
from sqlalchemy import (
    Column, Integer, BigInteger, String, DateTime, Numeric, ForeignKey, Text, Boolean,
    Enum as SAEnum, JSON, Index, CheckConstraint,
)
from sqlalchemy.orm import relationship
from datetime import datetime
from .database import Base
import enum


# -------------------------------------------------------
# 🧑‍💼 Seller (외부 엔티티, 정산/정책 조회용)
# -------------------------------------------------------
class Seller(Base):
    __tablename__ = "sellers"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    shop_name = Column(String(100), nullable=True)

    # 정산 계좌
    bank_type = Column(String(50), nullable=True)
    bank_account = Column(String(50), nullable=True)
    depositor_name = Column(String(50), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    products = relationship("Product", back_populates="seller")
    settlements = relationship("Settlement", back_populates="seller")

    def __repr__(self):
        return f"<Seller(id={self.id}, email='{self.email}')>"


# -------------------------------------------------------
# 📦 Product / 🧾 Order / OrderItem (주문 읽기 모델)
# -------------------------------------------------------
class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    seller_id = Column(Integer, ForeignKey("sellers.id"), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    sku_code = Column(String(100), nullable=True)
    category_code = Column(String(100), nullable=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    seller = relationship("Seller", back_populates="products")


class OrderStatus(str, enum.Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    SHIPPING = "SHIPPING"
    DELIVERED = "DELIVERED"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    RETURNED = "RETURNED"


class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    order_number = Column(String(50), unique=True, index=True, nullable=False)
    buyer_id = Column(Integer, nullable=True, index=True)
    # 상태값은 외부 주문 시스템 소유라 문자열로 둔다 (OrderStatus/PaymentStatus 값 사용)
    order_status = Column(String(20), nullable=False, default=OrderStatus.PENDING.value)
    payment_status = Column(String(20), nullable=False, default=PaymentStatus.PENDING.value)
    total_amount = Column(BigInteger, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    items = relationship("OrderItem", back_populates="order", order_by="OrderItem.id")

    __table_args__ = (
        Index("ix_order_status_created", "payment_status", "order_status", "created_at"),
    )


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    product_name = Column(String(200), nullable=False)
    sku_code = Column(String(100), nullable=True)
    quantity = Column(Integer, nullable=False, default=1)
    unit_price = Column(BigInteger, nullable=False)
    total_price = Column(BigInteger, nullable=False)

    order = relationship("Order", back_populates="items")
    product = relationship("Product")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_item_qty_positive"),
    )


# -------------------------------------------------------
# 📅 SettlementPeriod
# -------------------------------------------------------
class SettlementPeriodType(str, enum.Enum):
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"


class SettlementPeriodStatus(str, enum.Enum):
    PREPARING = "PREPARING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"


class SettlementPeriod(Base):
    __tablename__ = "settlement_periods"

    id = Column(Integer, primary_key=True, index=True)
    period_type = Column(SAEnum(SettlementPeriodType, name="settlementperiodtype"), nullable=False)
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=False)
    settlement_date = Column(DateTime, nullable=False)  # 지급 예정일
    status = Column(
        SAEnum(SettlementPeriodStatus, name="settlementperiodstatus"),
        nullable=False,
        default=SettlementPeriodStatus.PREPARING,
    )
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    settlements = relationship("Settlement", back_populates="period")

    __table_args__ = (
        CheckConstraint("start_date <= end_date", name="ck_settlement_period_range"),
        Index("ix_settlement_period_status", "status"),
    )


# -------------------------------------------------------
# 💰 Settlement / SettlementItem
# -------------------------------------------------------
class SettlementStatus(str, enum.Enum):
    PENDING = "PENDING"
    CALCULATING = "CALCULATING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    ON_HOLD = "ON_HOLD"


class Settlement(Base):
    __tablename__ = "settlements"

    id = Column(Integer, primary_key=True, index=True)
    settlement_period_id = Column(Integer, ForeignKey("settlement_periods.id"), nullable=False, index=True)
    seller_id = Column(Integer, ForeignKey("sellers.id"), nullable=False, index=True)

    total_order_amount = Column(BigInteger, nullable=False, default=0)
    total_commission = Column(BigInteger, nullable=False, default=0)
    total_delivery_fee = Column(BigInteger, nullable=False, default=0)
    total_refund_amount = Column(BigInteger, nullable=False, default=0)
    total_cancel_amount = Column(BigInteger, nullable=False, default=0)
    adjustment_amount = Column(BigInteger, nullable=False, default=0)
    commission_rate = Column(Numeric(5, 2), nullable=True)
    final_settlement_amount = Column(BigInteger, nullable=False, default=0)

    status = Column(
        SAEnum(SettlementStatus, name="settlementstatus"),
        nullable=False,
        default=SettlementStatus.PENDING,
    )
    settled_at = Column(DateTime, nullable=True)
    memo = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    period = relationship("SettlementPeriod", back_populates="settlements")
    seller = relationship("Seller", back_populates="settlements")
    items = relationship(
        "SettlementItem",
        back_populates="settlement",
        cascade="all, delete-orphan",
        order_by="SettlementItem.id",
    )

    __table_args__ = (
        Index("ix_settlement_period_seller", "settlement_period_id", "seller_id"),
        Index("ix_settlement_status_created", "status", "created_at"),
    )

    def recompute_final_amount(self) -> int:
        """finalSettlementAmount = 주문 - 수수료 - 배송비 - 환불 - 취소 + 조정"""
        self.final_settlement_amount = (
            int(self.total_order_amount or 0)
            - int(self.total_commission or 0)
            - int(self.total_delivery_fee or 0)
            - int(self.total_refund_amount or 0)
            - int(self.total_cancel_amount or 0)
            + int(self.adjustment_amount or 0)
        )
        return self.final_settlement_amount


class SettlementItem(Base):
    __tablename__ = "settlement_items"

    id = Column(Integer, primary_key=True, index=True)
    settlement_id = Column(Integer, ForeignKey("settlements.id", ondelete="CASCADE"), nullable=False, index=True)
    order_id = Column(Integer, nullable=False, index=True)
    order_item_id = Column(Integer, nullable=False, index=True)

    product_name = Column(String(200), nullable=False)
    sku_code = Column(String(100), nullable=True)
    # 계산 시점 상품 카테고리 스냅샷
    category_code = Column(String(100), nullable=True)

    quantity = Column(Integer, nullable=False)
    unit_price = Column(BigInteger, nullable=False)
    total_price = Column(BigInteger, nullable=False)
    commission_rate = Column(Numeric(5, 2), nullable=False)
    commission_amount = Column(BigInteger, nullable=False)
    delivery_fee = Column(BigInteger, nullable=False, default=0)
    settlement_amount = Column(BigInteger, nullable=False)

    order_status = Column(String(20), nullable=True)
    payment_status = Column(String(20), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    settlement = relationship("Settlement", back_populates="items")

    __table_args__ = (
        Index("ix_settlement_item_product", "product_name", "sku_code"),
    )


# -------------------------------------------------------
# 📐 CommissionPolicy
# -------------------------------------------------------
class CommissionPolicy(Base):
    __tablename__ = "commission_policies"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    category_code = Column(String(100), nullable=True)
    seller_id = Column(Integer, ForeignKey("sellers.id"), nullable=True)
    commission_rate = Column(Numeric(5, 2), nullable=False)  # 퍼센트 (예: 8.00 = 8%)
    # 저장만 하고 계산에는 쓰지 않음 (운영 참고용)
    min_amount = Column(BigInteger, nullable=True)
    max_amount = Column(BigInteger, nullable=True)
    effective_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=True)  # NULL = 무기한
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    seller = relationship("Seller")

    __table_args__ = (
        CheckConstraint("commission_rate >= 0 AND commission_rate <= 100", name="ck_commission_rate_range"),
        Index("ix_commission_policy_lookup", "is_active", "seller_id", "category_code", "effective_date"),
    )


# -------------------------------------------------------
# 🧭 정산 이벤트 로그
# -------------------------------------------------------
class SettlementEventType(str, enum.Enum):
    PERIOD_CREATED = "PERIOD_CREATED"
    PERIOD_CALCULATED = "PERIOD_CALCULATED"
    PERIOD_CALCULATION_FAILED = "PERIOD_CALCULATION_FAILED"
    SETTLEMENT_CREATED = "SETTLEMENT_CREATED"
    SETTLEMENT_PROCESSED = "SETTLEMENT_PROCESSED"
    SETTLEMENT_COMPLETED = "SETTLEMENT_COMPLETED"
    SETTLEMENT_HELD = "SETTLEMENT_HELD"
    SETTLEMENT_UNHELD = "SETTLEMENT_UNHELD"
    SETTLEMENT_CANCELLED = "SETTLEMENT_CANCELLED"
    SETTLEMENT_DELETED = "SETTLEMENT_DELETED"
    SETTLEMENT_STATUS_FORCED = "SETTLEMENT_STATUS_FORCED"


class SettlementEventLog(Base):
    __tablename__ = "settlement_event_logs"

    id = Column(Integer, primary_key=True, index=True)
    event_type = Column(SAEnum(SettlementEventType, name="settlementeventtype"), nullable=False)
    actor_type = Column(String(20), nullable=True)  # 'admin' | 'system'
    actor_id = Column(Integer, nullable=True)

    # settlement 삭제 후에도 로그는 남아야 하므로 FK 없이 id만 기록
    settlement_id = Column(Integer, nullable=True, index=True)
    settlement_period_id = Column(Integer, nullable=True, index=True)
    seller_id = Column(Integer, nullable=True, index=True)

    prev_status = Column(String(20), nullable=True)
    new_status = Column(String(20), nullable=True)
    reason = Column(String(255), nullable=True)
    batch_id = Column(String(32), nullable=True, index=True)
    meta = Column(JSON, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    __table_args__ = (
        Index("ix_settlement_event_type_created", "event_type", "created_at"),
    )
