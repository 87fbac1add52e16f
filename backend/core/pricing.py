"""Marketplace fee calculation in integer cents."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Literal

from django.conf import settings
from django.http import JsonResponse

from core.settings_resolver import get_non_negative_int

BPS_DENOMINATOR = 10000
PricingMode = Literal["rent", "sale"]


@dataclass(frozen=True)
class FeeRates:
    buyer_bps: int
    host_bps: int


@dataclass(frozen=True)
class FeeBreakdown:
    """Cent amounts for one booking; ``customer_total - deposit - application_fee == host_payout``."""

    base_cents: int
    delivery_fee_cents: int
    deposit_cents: int
    subtotal_cents: int
    buyer_fee_cents: int
    host_fee_cents: int
    customer_total_cents: int
    application_fee_cents: int
    host_payout_cents: int
    buyer_fee_bps: int
    host_fee_bps: int

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


def _rate_to_bps(rate: Decimal) -> int:
    """Convert a decimal rate (e.g. 0.129) to basis points."""
    return int((Decimal(rate) * Decimal(BPS_DENOMINATOR)).to_integral_value(rounding=ROUND_HALF_UP))


def _fee_cents(amount_cents: int, bps: int) -> int:
    """Apply a bps rate to a cent amount, rounding half-up to the cent."""
    fee = Decimal(amount_cents) * Decimal(bps) / Decimal(BPS_DENOMINATOR)
    return int(fee.to_integral_value(rounding=ROUND_HALF_UP))


def current_fee_rates(mode: PricingMode = "rent") -> FeeRates:
    """
    Return the commission rates in effect right now.

    Operator overrides (``*_FEE_BPS`` DbSettings) win over the environment rates.
    """
    if mode == "sale":
        buyer_default = _rate_to_bps(settings.SALE_BUYER_FEE_RATE)
        host_default = _rate_to_bps(settings.SALE_SELLER_FEE_RATE)
        return FeeRates(
            buyer_bps=get_non_negative_int("SALE_BUYER_FEE_BPS", buyer_default),
            host_bps=get_non_negative_int("SALE_SELLER_FEE_BPS", host_default),
        )
    buyer_default = _rate_to_bps(settings.BOOKING_BUYER_FEE_RATE)
    host_default = _rate_to_bps(settings.BOOKING_HOST_FEE_RATE)
    return FeeRates(
        buyer_bps=get_non_negative_int("BOOKING_BUYER_FEE_BPS", buyer_default),
        host_bps=get_non_negative_int("BOOKING_HOST_FEE_BPS", host_default),
    )


def compute_fee_breakdown(
    *,
    base_cents: int,
    delivery_fee_cents: int = 0,
    deposit_cents: int | None = None,
    rates: FeeRates,
) -> FeeBreakdown:
    """Split a booking's price into what the buyer pays, the platform keeps and the host nets."""
    deposit = deposit_cents or 0
    for label, value in (
        ("base_cents", base_cents),
        ("delivery_fee_cents", delivery_fee_cents),
        ("deposit_cents", deposit),
    ):
        if type(value) is not int:
            raise TypeError(f"{label} must be an integer amount of cents.")
        if value < 0:
            raise ValueError(f"{label} cannot be negative.")
    for label, bps in (("buyer_bps", rates.buyer_bps), ("host_bps", rates.host_bps)):
        if not 0 <= bps <= BPS_DENOMINATOR:
            raise ValueError(f"{label} must be between 0 and {BPS_DENOMINATOR}.")

    subtotal = base_cents + delivery_fee_cents
    buyer_fee = _fee_cents(subtotal, rates.buyer_bps)
    host_fee = _fee_cents(subtotal, rates.host_bps)

    return FeeBreakdown(
        base_cents=base_cents,
        delivery_fee_cents=delivery_fee_cents,
        deposit_cents=deposit,
        subtotal_cents=subtotal,
        buyer_fee_cents=buyer_fee,
        host_fee_cents=host_fee,
        customer_total_cents=subtotal + buyer_fee + deposit,
        application_fee_cents=buyer_fee + host_fee,
        host_payout_cents=subtotal - host_fee,
        buyer_fee_bps=rates.buyer_bps,
        host_fee_bps=rates.host_bps,
    )


def format_cents(cents: int) -> str:
    return f"${Decimal(cents) / 100:,.2f}"


def _parse_cents(raw: str | None) -> int:
    if raw in (None, ""):
        return 0
    value = int(raw)
    if value < 0:
        raise ValueError("amounts cannot be negative")
    return value


def pricing_summary(request):
    """
    Public endpoint that surfaces the current fee configuration.

    When ``base_cents`` is supplied the response also carries a full quote for
    that price (plus optional ``delivery_fee_cents``/``deposit_cents``).
    """
    mode = request.GET.get("mode") or "rent"
    if mode not in ("rent", "sale"):
        return JsonResponse({"detail": "mode must be 'rent' or 'sale'."}, status=400)
    rates = current_fee_rates(mode)

    def as_percent(bps: int) -> float:
        return round(bps / 100, 2)

    payload: dict[str, object] = {
        "currency": settings.STRIPE_CURRENCY.upper(),
        "mode": mode,
        "buyer_fee_bps": rates.buyer_bps,
        "buyer_fee_rate": as_percent(rates.buyer_bps),
        "host_fee_bps": rates.host_bps,
        "host_fee_rate": as_percent(rates.host_bps),
    }

    if request.GET.get("base_cents") not in (None, ""):
        try:
            breakdown = compute_fee_breakdown(
                base_cents=_parse_cents(request.GET.get("base_cents")),
                delivery_fee_cents=_parse_cents(request.GET.get("delivery_fee_cents")),
                deposit_cents=_parse_cents(request.GET.get("deposit_cents")),
                rates=rates,
            )
        except (TypeError, ValueError):
            return JsonResponse(
                {"detail": "Amounts must be non-negative whole numbers of cents."},
                status=400,
            )
        payload["quote"] = breakdown.as_dict()

    return JsonResponse(payload)
