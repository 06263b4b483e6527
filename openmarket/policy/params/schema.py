from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Literal, Tuple


ResolutionMode = Literal["SELLER", "ITEM_CATEGORY"]
RoundingMode = Literal["HALF_UP", "HALF_EVEN", "DOWN"]


@dataclass(frozen=True)
class CommissionPolicyConfig:
    """수수료율 조회/계산 정책."""

    # 정책 미매칭 시 하드 폴백 (percent, 예: 5.0 = 5%)
    fallback_rate: Decimal
    resolution_mode: ResolutionMode = "SELLER"
    rounding: RoundingMode = "HALF_UP"


@dataclass(frozen=True)
class LifecyclePolicyConfig:
    default_process_commission_rate: Decimal


@dataclass(frozen=True)
class CalculationPolicyConfig:
    eligible_payment_statuses: Tuple[str, ...]
    eligible_order_statuses: Tuple[str, ...]


@dataclass(frozen=True)
class QueryPolicyConfig:
    default_page_size: int = 10
    max_page_size: int = 100


@dataclass(frozen=True)
class SettlementPolicyBundle:
    commission: CommissionPolicyConfig
    lifecycle: LifecyclePolicyConfig
    calculation: CalculationPolicyConfig
    query: QueryPolicyConfig
