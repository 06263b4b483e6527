# tests/test_policy_loader.py
from decimal import Decimal

import pytest
import yaml

from openmarket.policy import api as policy_api
from openmarket.policy.params.guardrails import PolicyValidationError
from openmarket.policy.params.loader import DEFAULT_POLICY_PATH, load_policy_yaml


def _write(tmp_path, **sections):
    raw = yaml.safe_load(DEFAULT_POLICY_PATH.read_text(encoding="utf-8"))
    for section, values in sections.items():
        raw[section].update(values)
    p = tmp_path / "policy.yaml"
    p.write_text(yaml.safe_dump(raw), encoding="utf-8")
    return str(p)


def test_defaults():
    bundle = load_policy_yaml()
    assert bundle.commission.fallback_rate == Decimal("5.00")
    assert bundle.commission.resolution_mode == "SELLER"
    assert bundle.commission.rounding == "HALF_UP"
    assert bundle.lifecycle.default_process_commission_rate == Decimal("10.00")
    assert bundle.calculation.eligible_payment_statuses == ("COMPLETED",)
    assert bundle.calculation.eligible_order_statuses == ("DELIVERED", "CONFIRMED")
    assert bundle.query.default_page_size == 10


def test_env_override_path(tmp_path, monkeypatch):
    monkeypatch.setenv("SETTLEMENT_POLICY_YAML_PATH", _write(tmp_path, commission={"resolution_mode": "item_category"}))
    assert load_policy_yaml().commission.resolution_mode == "ITEM_CATEGORY"


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_policy_yaml(str(tmp_path / "nope.yaml"))


@pytest.mark.parametrize(
    "sections",
    [
        {"commission": {"fallback_rate": 120}},
        {"commission": {"fallback_rate": "abc"}},
        {"commission": {"resolution_mode": "PRODUCT"}},
        {"commission": {"rounding": "CEILING"}},
        {"lifecycle": {"default_process_commission_rate": -1}},
        {"calculation": {"eligible_payment_statuses": []}},
        {"query": {"default_page_size": 500, "max_page_size": 100}},
    ],
)
def test_guardrails_reject_bad_values(tmp_path, sections):
    with pytest.raises(PolicyValidationError):
        load_policy_yaml(_write(tmp_path, **sections))


def test_missing_required_section(tmp_path):
    p = tmp_path / "policy.yaml"
    p.write_text("commission:\n  fallback_rate: 5\n", encoding="utf-8")
    with pytest.raises(KeyError):
        load_policy_yaml(str(p))


def test_commission_amount_rounding(policy_override):
    assert policy_api.commission_amount(2525, Decimal("10")) == 253  # 252.5 → HALF_UP
    policy_override(commission={"rounding": "HALF_EVEN"})
    assert policy_api.commission_amount(2525, Decimal("10")) == 252
    assert policy_api.commission_amount(2535, Decimal("10")) == 254


def test_effective_rate():
    assert policy_api.effective_rate(1400, 20000) == Decimal("7.00")
    assert policy_api.effective_rate(1, 3) == Decimal("33.33")
    assert policy_api.effective_rate(100, 0) == Decimal("0.00")
