"""Named failures raised by the booking payment engine.

Each error carries a stable ``code`` for API clients and a message written for
the person who hit it (shopper, host or operator).
"""

from __future__ import annotations


class BookingPaymentError(Exception):
    code = "booking_payment_error"
    default_message = "The booking payment could not be processed."
    http_status = 400

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ActionNotPermitted(BookingPaymentError):
    code = "action_not_permitted"
    default_message = "You are not allowed to perform this action on this booking."
    http_status = 403


class HostPayoutNotConfigured(BookingPaymentError):
    code = "host_payout_not_configured"
    default_message = (
        "This host hasn't finished setting up payouts yet, so the booking can't be "
        "requested. Please try again later or contact the host."
    )


class PaymentMethodRequired(BookingPaymentError):
    code = "payment_method_required"
    default_message = "Add a payment method to this booking before requesting it."


class InvalidHoldTransition(BookingPaymentError):
    code = "invalid_hold_transition"
    http_status = 409

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Payment hold cannot move from '{current}' to '{target}'.")


class CannotReleaseCapturedHold(BookingPaymentError):
    code = "cannot_release_captured_hold"
    default_message = (
        "Cannot release hold - payment was already captured. Use a refund instead."
    )
    http_status = 409


class CannotCaptureReleasedHold(BookingPaymentError):
    code = "cannot_capture_released_hold"
    default_message = "Cannot capture payment - the hold was already released."
    http_status = 409


class HoldExpired(BookingPaymentError):
    code = "hold_expired"
    default_message = (
        "The payment authorization for this booking has expired. The shopper needs "
        "to request the booking again."
    )
    http_status = 409


class BookingAlreadySettled(BookingPaymentError):
    code = "booking_already_settled"
    default_message = (
        "The host payout for this booking was already processed, so its payment and "
        "deposit can no longer change."
    )
    http_status = 409


class InvalidDepositTransition(BookingPaymentError):
    code = "invalid_deposit_transition"
    http_status = 409

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Deposit cannot move from '{current}' to '{target}'.")


class NoDepositToRefund(BookingPaymentError):
    code = "no_deposit_to_refund"
    default_message = "No deposit to refund on this booking."


class DepositAlreadyRefunded(BookingPaymentError):
    code = "deposit_already_refunded"
    default_message = "Deposit already refunded."
    http_status = 409


class DepositChargeMissing(BookingPaymentError):
    code = "deposit_charge_missing"
    default_message = "The deposit has no processor charge to refund against."
    http_status = 409


class InvalidSettlementPolicy(BookingPaymentError):
    code = "invalid_settlement_policy"
    default_message = "Policy must be one of: full, partial, forfeit."


class InvalidPayoutHold(BookingPaymentError):
    code = "invalid_payout_hold"
    default_message = "A payout hold needs a future end time and a reason."


class PayoutAlreadyProcessed(BookingPaymentError):
    code = "payout_already_processed"
    default_message = (
        "Cannot change the payout hold - the host payout for this booking was already "
        "processed."
    )
    http_status = 409


class PayoutInProgress(BookingPaymentError):
    code = "payout_in_progress"
    default_message = (
        "The host payout for this booking is being sent right now. Try again in a few "
        "minutes."
    )
    http_status = 409


class PayoutOnHold(BookingPaymentError):
    code = "payout_on_hold"
    http_status = 409

    def __init__(self, hold_until, reason: str | None):
        self.hold_until = hold_until
        self.reason = reason
        super().__init__(
            f"Payout is on hold until {hold_until.isoformat()}: {reason or 'no reason given'}."
        )


class PayoutNotReady(BookingPaymentError):
    code = "payout_not_ready"
    http_status = 409
