# openmarket/policy/api.py
from __future__ import annotations

from decimal import ROUND_DOWN, ROUND_HALF_EVEN, ROUND_HALF_UP, Decimal
from typing import Tuple

from openmarket.policy.runtime import get_policy


_ROUNDING = {
    "HALF_UP": ROUND_HALF_UP,
    "HALF_EVEN": ROUND_HALF_EVEN,
    "DOWN": ROUND_DOWN,
}


# =========================================================
# Basic getters (YAML SSOT)
# =========================================================

def fallback_commission_rate() -> Decimal:
    """어떤 정책도 매칭되지 않을 때의 수수료율 (percent)"""
    return get_policy().commission.fallback_rate

def commission_resolution_mode() -> str:
    return get_policy().commission.resolution_mode

def default_process_commission_rate() -> Decimal:
    return get_policy().lifecycle.default_process_commission_rate

def eligible_payment_statuses() -> Tuple[str, ...]:
    return get_policy().calculation.eligible_payment_statuses

def eligible_order_statuses() -> Tuple[str, ...]:
    return get_policy().calculation.eligible_order_statuses

def default_page_size() -> int:
    return int(get_policy().query.default_page_size)

def max_page_size() -> int:
    return int(get_policy().query.max_page_size)


# =========================================================
# Money helpers
# =========================================================

def commission_amount(total_price: int, rate_percent: Decimal) -> int:
    """
    원 단위 수수료 = total_price * rate / 100, 설정된 방식으로 정수 반올림.
    금액은 정수(원), 수수료율은 Decimal(퍼센트)로만 다룬다.
    """
    raw = Decimal(int(total_price)) * Decimal(rate_percent) / Decimal(100)
    rounding = _ROUNDING[get_policy().commission.rounding]
    return int(raw.quantize(Decimal("1"), rounding=rounding))


def effective_rate(commission: int, order_amount: int) -> Decimal:
    """주문금액 대비 수수료 비율 (percent, 소수 2자리). 주문금액 0이면 0."""
    if not order_amount:
        return Decimal("0.00")
    return (Decimal(int(commission)) * Decimal(100) / Decimal(int(order_amount))).quantize(
        Decimal("0.01"), rounding=ROUND_HALF_UP
    )
