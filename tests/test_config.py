import logging
from decimal import Decimal

import pytest
from fastapi import FastAPI
from pydantic import ValidationError as SettingsValidationError

from lotledger.core.config import LedgerSettings, get_settings
from lotledger.core.logging import setup_logging
from lotledger.core.telemetry import setup_telemetry
from lotledger.errors import ValidationError
from lotledger.money import floor_shares, quantize_money, to_decimal


def test_settings_defaults_and_overrides():
    settings = get_settings()
    assert settings.sell_tax_rate_percent == Decimal("0.1")
    assert settings.dividend_tax_rate == Decimal("0.05")
    assert settings.money_quantum == Decimal("0.01")

    custom = get_settings(money_quantum=Decimal("1"), sell_tax_rate_percent=Decimal("0.15"))
    assert custom.money_quantum == Decimal("1")
    assert custom.sell_tax_rate_percent == Decimal("0.15")


@pytest.mark.parametrize(
    "overrides",
    [
        {"sell_tax_rate_percent": Decimal("101")},
        {"dividend_tax_rate": Decimal("1.2")},
        {"money_quantum": Decimal("0")},
    ],
)
def test_settings_reject_out_of_range_rates(overrides):
    with pytest.raises(SettingsValidationError):
        LedgerSettings(**overrides)


def test_settings_logging_view_masks_secrets():
    settings = LedgerSettings(internal_auth_token="s3cret")
    logged = settings.dict_for_logging()
    assert logged["internal_auth_token"] == "***"
    assert logged["database_url"] == "***"
    assert logged["api_prefix"] == "/ledger"


def test_telemetry_is_a_noop_when_disabled():
    assert setup_telemetry(FastAPI(), LedgerSettings(telemetry_enabled=False)) is False


def test_setup_logging_installs_one_handler():
    root = logging.getLogger()
    before = list(root.handlers)
    level = root.level
    try:
        setup_logging()
        setup_logging()
        added = [h for h in root.handlers if h not in before]
        assert len(added) == 1
        assert logging.getLogger("sqlalchemy").level == logging.WARNING
    finally:
        for handler in root.handlers[:]:
            if handler not in before:
                root.removeHandler(handler)
        root.setLevel(level)


def test_money_rounds_half_even():
    assert quantize_money(Decimal("2.345")) == Decimal("2.34")
    assert quantize_money(Decimal("2.355")) == Decimal("2.36")


def test_floor_shares_never_rounds_up():
    assert floor_shares(Decimal("10.99")) == 10
    assert floor_shares(Decimal("-0.5")) == -1


@pytest.mark.parametrize("value", [True, None, "abc", "NaN", "Infinity"])
def test_to_decimal_rejects_non_numbers(value):
    with pytest.raises(ValidationError):
        to_decimal(value, "price")


def test_to_decimal_avoids_binary_float():
    assert to_decimal(0.1, "price") == Decimal("0.1")
