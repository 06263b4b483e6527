from __future__ import annotations

from decimal import Decimal

from openmarket.policy.params.schema import SettlementPolicyBundle


class PolicyValidationError(ValueError):
    pass


_RESOLUTION_MODES = {"SELLER", "ITEM_CATEGORY"}
_ROUNDING_MODES = {"HALF_UP", "HALF_EVEN", "DOWN"}


def validate_policy(bundle: SettlementPolicyBundle) -> None:
    c = bundle.commission
    lc = bundle.lifecycle
    calc = bundle.calculation
    q = bundle.query

    # --- commission ---
    for name, v in [
        ("commission.fallback_rate", c.fallback_rate),
        ("lifecycle.default_process_commission_rate", lc.default_process_commission_rate),
    ]:
        if not (Decimal("0") <= v <= Decimal("100")):
            raise PolicyValidationError(f"{name} must be between 0 and 100 (percent), got={v}")

    if c.resolution_mode not in _RESOLUTION_MODES:
        raise PolicyValidationError(
            f"commission.resolution_mode must be one of {sorted(_RESOLUTION_MODES)}, got={c.resolution_mode}"
        )
    if c.rounding not in _ROUNDING_MODES:
        raise PolicyValidationError(
            f"commission.rounding must be one of {sorted(_ROUNDING_MODES)}, got={c.rounding}"
        )

    # --- calculation ---
    if not calc.eligible_payment_statuses:
        raise PolicyValidationError("calculation.eligible_payment_statuses must not be empty")
    if not calc.eligible_order_statuses:
        raise PolicyValidationError("calculation.eligible_order_statuses must not be empty")

    # --- query ---
    if q.default_page_size <= 0 or q.max_page_size <= 0:
        raise PolicyValidationError(
            f"query page sizes must be positive, got default={q.default_page_size} max={q.max_page_size}"
        )
    if q.default_page_size > q.max_page_size:
        raise PolicyValidationError(
            f"query.default_page_size({q.default_page_size}) > query.max_page_size({q.max_page_size})"
        )
