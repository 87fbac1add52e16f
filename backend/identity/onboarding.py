"""Payout prerequisites consumed by the payment engine."""

from __future__ import annotations

from payments.models import OwnerPayoutAccount

from .models import IdentityVerification


def _payout_account(user) -> OwnerPayoutAccount | None:
    if user is None or not getattr(user, "pk", None):
        return None
    return OwnerPayoutAccount.objects.filter(user_id=user.pk).first()


def is_payout_destination_configured(user) -> bool:
    """True once the user's connected account can receive transfers."""
    account = _payout_account(user)
    return bool(
        account
        and account.stripe_account_id
        and account.payouts_enabled
        and account.is_fully_onboarded
    )


def is_identity_verified(user) -> bool:
    if user is None or not getattr(user, "pk", None):
        return False
    return IdentityVerification.objects.filter(
        user_id=user.pk, status=IdentityVerification.Status.VERIFIED
    ).exists()


def get_payout_destination(user) -> str | None:
    """Return the connected account id transfers for this user are sent to."""
    account = _payout_account(user)
    if account is None or not account.stripe_account_id:
        return None
    return account.stripe_account_id
