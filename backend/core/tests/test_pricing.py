from decimal import Decimal

import pytest

from core.pricing import FeeRates, compute_fee_breakdown, current_fee_rates, format_cents
from operator_settings.models import DbSetting

DEFAULT_RATES = FeeRates(buyer_bps=1290, host_bps=1290)


def test_breakdown_for_default_rent_rates():
    breakdown = compute_fee_breakdown(
        base_cents=10000, delivery_fee_cents=0, deposit_cents=25000, rates=DEFAULT_RATES
    )

    assert breakdown.subtotal_cents == 10000
    assert breakdown.buyer_fee_cents == 1290
    assert breakdown.host_fee_cents == 1290
    assert breakdown.customer_total_cents == 36290
    assert breakdown.application_fee_cents == 2580
    assert breakdown.host_payout_cents == 8710


def test_fees_round_half_up_to_the_cent():
    # 11500 * 12.9% = 1483.5
    breakdown = compute_fee_breakdown(
        base_cents=10000, delivery_fee_cents=1500, rates=DEFAULT_RATES
    )

    assert breakdown.buyer_fee_cents == 1484
    assert breakdown.host_fee_cents == 1484
    assert breakdown.customer_total_cents == 12984
    assert breakdown.host_payout_cents == 10016


@pytest.mark.parametrize(
    "base,delivery,deposit,rates",
    [
        (1, 0, None, DEFAULT_RATES),
        (3333, 777, 5000, DEFAULT_RATES),
        (99999, 1, 0, FeeRates(buyer_bps=0, host_bps=1500)),
        (12345, 678, 910, FeeRates(buyer_bps=333, host_bps=2499)),
    ],
)
def test_customer_total_minus_deposit_and_fee_is_host_payout(base, delivery, deposit, rates):
    breakdown = compute_fee_breakdown(
        base_cents=base, delivery_fee_cents=delivery, deposit_cents=deposit, rates=rates
    )

    assert (
        breakdown.customer_total_cents
        - breakdown.deposit_cents
        - breakdown.application_fee_cents
        == breakdown.host_payout_cents
    )


def test_missing_deposit_counts_as_zero():
    breakdown = compute_fee_breakdown(base_cents=5000, rates=DEFAULT_RATES)

    assert breakdown.deposit_cents == 0
    assert breakdown.customer_total_cents == 5000 + breakdown.buyer_fee_cents


def test_rejects_negative_and_fractional_amounts():
    with pytest.raises(ValueError):
        compute_fee_breakdown(base_cents=-1, rates=DEFAULT_RATES)
    with pytest.raises(TypeError):
        compute_fee_breakdown(base_cents=10.5, rates=DEFAULT_RATES)
    with pytest.raises(ValueError):
        compute_fee_breakdown(base_cents=100, rates=FeeRates(buyer_bps=10001, host_bps=0))


def test_format_cents():
    assert format_cents(123456) == "$1,234.56"
    assert format_cents(0) == "$0.00"


@pytest.mark.django_db
def test_current_rates_come_from_settings(settings):
    settings.BOOKING_BUYER_FEE_RATE = Decimal("0.10")
    settings.BOOKING_HOST_FEE_RATE = Decimal("0.05")
    settings.SALE_BUYER_FEE_RATE = Decimal("0")
    settings.SALE_SELLER_FEE_RATE = Decimal("0.15")

    assert current_fee_rates("rent") == FeeRates(buyer_bps=1000, host_bps=500)
    assert current_fee_rates("sale") == FeeRates(buyer_bps=0, host_bps=1500)


@pytest.mark.django_db
def test_operator_override_wins_over_environment_rate():
    DbSetting.objects.create(key="BOOKING_BUYER_FEE_BPS", value_json=800, value_type="int")

    rates = current_fee_rates("rent")

    assert rates.buyer_bps == 800
    assert rates.host_bps == 1290


@pytest.mark.django_db
def test_pricing_endpoint_returns_rates_and_quote(api_client):
    resp = api_client.get(
        "/api/bookings/pricing/",
        {"base_cents": "10000", "deposit_cents": "25000"},
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["buyer_fee_bps"] == 1290
    assert body["buyer_fee_rate"] == 12.9
    assert body["quote"]["customer_total_cents"] == 36290
    assert body["quote"]["host_payout_cents"] == 8710


@pytest.mark.django_db
def test_pricing_endpoint_rejects_bad_amounts(api_client):
    resp = api_client.get("/api/bookings/pricing/", {"base_cents": "-5"})
    assert resp.status_code == 400

    resp = api_client.get("/api/bookings/pricing/", {"mode": "lease"})
    assert resp.status_code == 400
