# openmarket/policy/params/loader.py
from __future__ import annotations

import os
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Tuple

import yaml

from openmarket.policy.params.schema import (
    CalculationPolicyConfig,
    CommissionPolicyConfig,
    LifecyclePolicyConfig,
    QueryPolicyConfig,
    SettlementPolicyBundle,
)
from openmarket.policy.params.guardrails import PolicyValidationError, validate_policy

DEFAULT_POLICY_PATH = Path(__file__).resolve().parent / "defaults.yaml"


def _deep_get(d: dict, key: str) -> Any:
    if key not in d:
        raise KeyError(f"Missing key: {key}")
    return d[key]


def _to_percent(v: Any, *, key: str) -> Decimal:
    """
    수수료율은 "퍼센트 단위" Decimal 로 통일:
      - 5     => 5%
      - 5.0   => 5%
      - "8.5" => 8.5%
    float 오차를 피하려고 str() 을 거쳐 Decimal 로 만든다.
    """
    try:
        return Decimal(str(v)).quantize(Decimal("0.01"))
    except (InvalidOperation, ValueError) as e:
        raise PolicyValidationError(f"{key} must be a number, got={v!r}") from e


def _to_status_tuple(v: Any, *, key: str) -> Tuple[str, ...]:
    if isinstance(v, str):
        v = [v]
    if not isinstance(v, (list, tuple)):
        raise PolicyValidationError(f"{key} must be a list of status strings, got={v!r}")
    return tuple(str(x).strip().upper() for x in v if str(x).strip())


def load_policy_yaml(path: str | None = None) -> SettlementPolicyBundle:
    """
    Loads settlement policy bundle from YAML.
    - default: openmarket/policy/params/defaults.yaml
    - override path by env SETTLEMENT_POLICY_YAML_PATH or param
    """
    if path is None:
        path = os.environ.get("SETTLEMENT_POLICY_YAML_PATH")

    if path is None:
        path = str(DEFAULT_POLICY_PATH)

    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Policy YAML not found: {p}")

    raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}

    commission_raw = _deep_get(raw, "commission")
    lifecycle_raw = _deep_get(raw, "lifecycle")
    calculation_raw = _deep_get(raw, "calculation")
    # query 섹션은 선택 (없으면 기본값)
    query_raw = raw.get("query") or {}

    bundle = SettlementPolicyBundle(
        commission=CommissionPolicyConfig(
            fallback_rate=_to_percent(_deep_get(commission_raw, "fallback_rate"), key="commission.fallback_rate"),
            resolution_mode=str(commission_raw.get("resolution_mode") or "SELLER").strip().upper(),  # type: ignore[arg-type]
            rounding=str(commission_raw.get("rounding") or "HALF_UP").strip().upper(),  # type: ignore[arg-type]
        ),
        lifecycle=LifecyclePolicyConfig(
            default_process_commission_rate=_to_percent(
                _deep_get(lifecycle_raw, "default_process_commission_rate"),
                key="lifecycle.default_process_commission_rate",
            ),
        ),
        calculation=CalculationPolicyConfig(
            eligible_payment_statuses=_to_status_tuple(
                _deep_get(calculation_raw, "eligible_payment_statuses"),
                key="calculation.eligible_payment_statuses",
            ),
            eligible_order_statuses=_to_status_tuple(
                _deep_get(calculation_raw, "eligible_order_statuses"),
                key="calculation.eligible_order_statuses",
            ),
        ),
        query=QueryPolicyConfig(
            default_page_size=int(query_raw.get("default_page_size") or 10),
            max_page_size=int(query_raw.get("max_page_size") or 100),
        ),
    )

    validate_policy(bundle)
    return bundle
