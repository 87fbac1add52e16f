from types import SimpleNamespace

import pytest
import stripe

from payments import stripe_api


def _booking(**overrides):
    values = {
        "id": 42,
        "listing_id": 7,
        "shopper_id": 3,
        "host_id": 2,
        "payment_intent_id": "pi_42",
        "platform_fee_cents": 2580,
        "host_payout_cents": 8710,
    }
    values.update(overrides)
    return SimpleNamespace(**values)


def test_booking_metadata_is_stringified(settings):
    settings.STRIPE_ENV = "staging"

    metadata = stripe_api.booking_metadata(_booking(), kind="booking_hold", amount=100)

    assert metadata == {
        "booking_id": "42",
        "listing_id": "7",
        "buyer_id": "3",
        "host_id": "2",
        "env": "staging",
        "kind": "booking_hold",
        "amount": "100",
    }


def test_missing_key_is_a_configuration_error(settings):
    settings.STRIPE_SECRET_KEY = ""

    with pytest.raises(stripe_api.StripeConfigurationError):
        stripe_api.ensure_configured()


@pytest.mark.parametrize(
    "error,expected",
    [
        (stripe.error.CardError("Insufficient funds.", None, "card_declined"), stripe_api.StripePaymentError),
        (stripe.error.RateLimitError("slow down"), stripe_api.StripeTransientError),
        (stripe.error.APIConnectionError("no route"), stripe_api.StripeTransientError),
        (stripe.error.APIError("boom"), stripe_api.StripeTransientError),
        (stripe.error.AuthenticationError("bad key"), stripe_api.StripeConfigurationError),
        (stripe.error.InvalidRequestError("bad param", "amount"), stripe_api.StripePaymentError),
    ],
)
def test_processor_errors_are_classified(error, expected):
    with pytest.raises(expected):
        stripe_api._handle_stripe_error(error)


def test_card_error_message_is_kept():
    error = stripe.error.CardError("Insufficient funds.", None, "card_declined")

    with pytest.raises(stripe_api.StripePaymentError, match="Insufficient funds."):
        stripe_api._handle_stripe_error(error)


def test_hold_amount_must_be_positive():
    with pytest.raises(stripe_api.StripePaymentError):
        stripe_api.create_hold(
            _booking(), amount_cents=0, payment_method_ref="pm_card_visa", capture_method="manual"
        )


def test_capture_missing_intent_fails(fake_stripe):
    with pytest.raises(stripe_api.StripePaymentError):
        stripe_api.capture_hold(_booking(payment_intent_id="pi_gone"))


def test_capture_of_succeeded_intent_skips_processor_call(fake_stripe):
    fake_stripe.add_intent("pi_42", "succeeded")

    assert stripe_api.capture_hold(_booking()) == "succeeded"
    assert fake_stripe.calls["intent_capture"] == []


def test_capture_rejects_uncapturable_status(fake_stripe):
    fake_stripe.add_intent("pi_42", "requires_payment_method")

    with pytest.raises(stripe_api.StripePaymentError, match="requires_payment_method"):
        stripe_api.capture_hold(_booking())


def test_cancel_without_reference_is_a_noop(fake_stripe):
    assert stripe_api.cancel_hold(_booking(payment_intent_id="")) == "canceled"
    assert fake_stripe.calls["intent_retrieve"] == []


def test_refund_targets_charge_or_intent(fake_stripe):
    stripe_api.refund_charge(_booking(), charge_ref="ch_123", amount_cents=500, reason="deposit_refund")
    stripe_api.refund_charge(_booking(), charge_ref="pi_42", amount_cents=700, reason="deposit_refund")

    by_charge, by_intent = fake_stripe.calls["refund_create"]
    assert by_charge["charge"] == "ch_123"
    assert "payment_intent" not in by_charge
    assert by_intent["payment_intent"] == "pi_42"
    assert by_intent["idempotency_key"] == "booking:42:v1:deposit_refund"


def test_transfer_metadata_carries_environment(fake_stripe, settings):
    settings.STRIPE_ENV = "prod"

    transfer_id = stripe_api.create_transfer(
        destination="acct_1",
        amount_cents=1000,
        metadata={"reward_id": 9},
        idempotency_key="reward:9:transfer",
    )

    call = fake_stripe.calls["transfer_create"][0]
    assert transfer_id.startswith("tr_test_")
    assert call["metadata"] == {"reward_id": "9", "env": "prod"}
    assert call["currency"] == "usd"
    assert "transfer_group" not in call
