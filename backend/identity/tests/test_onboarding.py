import pytest

from bookings.tests.fixtures import _create_user, connect_payout_account, verify_identity
from identity.models import IdentityVerification, mark_session_verified
from identity.onboarding import (
    get_payout_destination,
    is_identity_verified,
    is_payout_destination_configured,
)
from payments.models import OwnerPayoutAccount

pytestmark = pytest.mark.django_db


def test_fully_onboarded_account_is_configured():
    user = _create_user(username="vendor")
    connect_payout_account(user)

    assert is_payout_destination_configured(user)
    assert get_payout_destination(user) == "acct_test_vendor"


@pytest.mark.parametrize(
    "field",
    ["payouts_enabled", "is_fully_onboarded"],
)
def test_incomplete_account_is_not_configured(field):
    user = _create_user(username="vendor")
    connect_payout_account(user)
    OwnerPayoutAccount.objects.filter(user=user).update(**{field: False})

    assert not is_payout_destination_configured(user)


def test_user_without_account():
    user = _create_user(username="vendor")

    assert not is_payout_destination_configured(user)
    assert get_payout_destination(user) is None
    assert not is_payout_destination_configured(None)


def test_identity_requires_verified_session():
    user = _create_user(username="vendor")
    IdentityVerification.objects.create(
        user=user, session_id="vs_pending", status=IdentityVerification.Status.PENDING
    )

    assert not is_identity_verified(user)

    verify_identity(user)
    assert is_identity_verified(user)


def test_mark_session_verified_is_idempotent():
    user = _create_user(username="vendor")

    mark_session_verified(user, "vs_1")
    mark_session_verified(user, "vs_1")

    assert IdentityVerification.objects.filter(session_id="vs_1").count() == 1
    assert is_identity_verified(user)
