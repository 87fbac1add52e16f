from __future__ import annotations

from typing import Optional

from django.conf import settings
from django.db.models import Sum

from .models import Transaction


def log_transaction(
    *,
    user,
    kind: str,
    amount_cents: int,
    booking=None,
    reward=None,
    stripe_id: Optional[str] = None,
    currency: str | None = None,
) -> Transaction:
    """Create and return a ledger row. Amounts are whole cents."""
    return Transaction.objects.create(
        user=user,
        booking=booking,
        reward=reward,
        kind=kind,
        amount_cents=int(amount_cents),
        currency=currency or settings.STRIPE_CURRENCY,
        stripe_id=stripe_id,
    )


def booking_ledger_totals(booking) -> dict[str, int]:
    """Sum the booking's ledger rows per kind."""
    rows = (
        Transaction.objects.filter(booking=booking)
        .values("kind")
        .annotate(total=Sum("amount_cents"))
        .order_by("kind")
    )
    return {row["kind"]: int(row["total"] or 0) for row in rows}
