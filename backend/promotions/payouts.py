"""Scheduled promo payouts: listing rewards and contest prizes."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import Q
from django.utils import timezone

from core.settings_resolver import get_non_negative_int
from identity.onboarding import (
    get_payout_destination,
    is_identity_verified,
    is_payout_destination_configured,
)
from notifications.models import OutboxEvent
from notifications.outbox import emit_event
from payments import stripe_api
from payments.ledger import log_transaction
from payments.models import Transaction

from .models import RewardRecord

logger = logging.getLogger(__name__)

DUPLICATE_DESTINATION_REASON = "duplicate destination account"

Pool = RewardRecord.Pool
PayoutStatus = RewardRecord.PayoutStatus
OPEN_STATUSES = (PayoutStatus.PENDING, PayoutStatus.ELIGIBLE)
# A claim older than this belongs to a run that died before recording the outcome.
CLAIM_TTL = timedelta(minutes=30)


@dataclass(frozen=True)
class PoolConfig:
    amount_setting: str
    description: str


POOLS = {
    Pool.LISTING_REWARD: PoolConfig(
        amount_setting="PROMO_LISTING_REWARD_CENTS",
        description="Listing reward",
    ),
    Pool.CONTEST: PoolConfig(
        amount_setting="PROMO_CONTEST_PRIZE_CENTS",
        description="Contest prize",
    ),
}


@dataclass
class PromoBatchSummary:
    paid: int = 0
    skipped: int = 0
    disqualified: int = 0
    failed: int = 0

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


class RewardNotRetryable(Exception):
    """Only failed rewards can be put back into the payout queue."""


def reward_amount_cents(pool: str) -> int:
    key = POOLS[pool].amount_setting
    return get_non_negative_int(key, getattr(settings, key))


def paid_destinations(pool: str) -> set[str]:
    """Destination accounts that already received a payout from this pool."""
    return set(
        RewardRecord.objects.filter(pool=pool, payout_status=PayoutStatus.PAID)
        .exclude(destination_account_id__isnull=True)
        .exclude(destination_account_id="")
        .values_list("destination_account_id", flat=True)
    )


def _destination_taken(pool: str, destination: str, seen: set[str]) -> bool:
    if destination in seen:
        return True
    # A concurrent run may have paid this destination since the set was built.
    return RewardRecord.objects.filter(
        pool=pool,
        payout_status=PayoutStatus.PAID,
        destination_account_id=destination,
    ).exists()


def _unclaimed(now: datetime) -> Q:
    return Q(payout_initiated_at__isnull=True) | Q(payout_initiated_at__lt=now - CLAIM_TTL)


def _destination_in_flight(reward: RewardRecord, destination: str) -> bool:
    """Another open reward in the pool is already claimed for this destination."""
    return (
        RewardRecord.objects.filter(
            pool=reward.pool,
            payout_status__in=OPEN_STATUSES,
            destination_account_id=destination,
        )
        .exclude(pk=reward.pk)
        .exists()
    )


def _claim(reward: RewardRecord, destination: str, now: datetime) -> bool:
    """
    Reserve the reward and its destination for one transfer.

    The destination is stored with the claim, so the per-destination unique
    constraint rejects a second claim from an overlapping run.
    """
    try:
        with transaction.atomic():
            return bool(
                RewardRecord.objects.filter(
                    _unclaimed(now),
                    pk=reward.pk,
                    payout_status__in=OPEN_STATUSES,
                ).update(
                    payout_initiated_at=now,
                    destination_account_id=destination,
                    updated_at=now,
                )
            )
    except IntegrityError:
        logger.warning(
            "promotions: destination claimed by a concurrent run",
            extra={"reward_id": reward.id, "destination": destination},
        )
        return False


def _release_claim(reward: RewardRecord) -> None:
    RewardRecord.objects.filter(pk=reward.pk, payout_status__in=OPEN_STATUSES).update(
        payout_initiated_at=None,
        destination_account_id=None,
    )


def _disqualify(reward: RewardRecord, reason: str) -> None:
    RewardRecord.objects.filter(pk=reward.pk, payout_status__in=OPEN_STATUSES).update(
        payout_status=PayoutStatus.DISQUALIFIED,
        disqualified_reason=reason,
        updated_at=timezone.now(),
    )


def _mark_failed(reward: RewardRecord, message: str) -> None:
    RewardRecord.objects.filter(pk=reward.pk).update(
        payout_status=PayoutStatus.FAILED,
        failure_message=message,
        updated_at=timezone.now(),
    )


def _mark_paid(reward: RewardRecord, *, destination: str, transfer_id: str, amount_cents: int) -> None:
    now = timezone.now()
    with transaction.atomic():
        RewardRecord.objects.filter(pk=reward.pk).update(
            payout_status=PayoutStatus.PAID,
            destination_account_id=destination,
            transfer_id=transfer_id,
            amount_cents=amount_cents,
            failure_message="",
            payout_completed_at=now,
            updated_at=now,
        )
        reward.refresh_from_db()
        log_transaction(
            user=reward.user,
            reward=reward,
            kind=Transaction.Kind.PROMO_REWARD,
            amount_cents=amount_cents,
            stripe_id=transfer_id,
        )
        emit_event(
            OutboxEvent.Type.REWARD_PAID,
            recipient=reward.user,
            payload={
                "amount_cents": amount_cents,
                "transfer_id": transfer_id,
                "pool_label": POOLS[reward.pool].description.lower(),
            },
        )


def run_promo_payout_batch(pool: str) -> PromoBatchSummary:
    """
    Pay every open reward in ``pool`` whose owner can receive transfers.

    Rewards whose owner has no configured destination or no verified identity
    are skipped and stay open. A destination that was already paid from this
    pool disqualifies the reward; one that is claimed by an overlapping run
    is skipped and stays open. Processor failures mark the single reward
    ``failed`` and the batch moves on. Only a missing processor configuration
    stops the run. Claims abandoned for longer than ``CLAIM_TTL`` are picked
    up again; the per-reward transfer idempotency key keeps that safe.
    """
    if pool not in POOLS:
        raise ValueError(f"Unknown promo pool: {pool}")
    stripe_api.ensure_configured()

    amount_cents = reward_amount_cents(pool)
    seen = paid_destinations(pool)
    summary = PromoBatchSummary()
    candidates = list(
        RewardRecord.objects.filter(
            _unclaimed(timezone.now()),
            pool=pool,
            payout_status__in=OPEN_STATUSES,
        )
        .select_related("user", "listing")
        .order_by("created_at", "id")
    )

    for reward in candidates:
        user = reward.user
        if not (is_payout_destination_configured(user) and is_identity_verified(user)):
            logger.info(
                "promotions: reward owner not payable yet",
                extra={"reward_id": reward.id, "user_id": user.id},
            )
            summary.skipped += 1
            continue

        destination = get_payout_destination(user)
        if _destination_taken(pool, destination, seen):
            logger.warning(
                "promotions: destination already paid for this pool",
                extra={"reward_id": reward.id, "destination": destination},
            )
            _disqualify(reward, DUPLICATE_DESTINATION_REASON)
            summary.disqualified += 1
            summary.skipped += 1
            continue

        if _destination_in_flight(reward, destination):
            logger.info(
                "promotions: destination has a transfer in flight",
                extra={"reward_id": reward.id, "destination": destination},
            )
            summary.skipped += 1
            continue

        if not _claim(reward, destination, timezone.now()):
            summary.skipped += 1
            continue

        try:
            transfer_id = stripe_api.create_transfer(
                destination=destination,
                amount_cents=amount_cents,
                metadata={
                    "reward_id": reward.id,
                    "user_id": user.id,
                    "listing_id": reward.listing_id or "",
                    "pool": pool,
                },
                description=f"{settings.SITE_NAME} {POOLS[pool].description}",
                idempotency_key=f"reward:{reward.id}:transfer",
            )
        except stripe_api.StripeConfigurationError:
            _release_claim(reward)
            raise
        except (stripe_api.StripePaymentError, stripe_api.StripeTransientError) as exc:
            logger.warning(
                "promotions: reward transfer failed",
                exc_info=True,
                extra={"reward_id": reward.id},
            )
            _mark_failed(reward, str(exc))
            summary.failed += 1
            continue

        _mark_paid(reward, destination=destination, transfer_id=transfer_id, amount_cents=amount_cents)
        seen.add(destination)
        summary.paid += 1

    logger.info("promotions: %s payout batch finished", pool, extra=summary.as_dict())
    return summary


def retry_failed_reward(reward_id: int) -> RewardRecord:
    """Put a failed reward back in the queue for the next batch."""
    updated = RewardRecord.objects.filter(
        pk=reward_id, payout_status=PayoutStatus.FAILED
    ).update(
        payout_status=PayoutStatus.ELIGIBLE,
        payout_initiated_at=None,
        destination_account_id=None,
        failure_message="",
        updated_at=timezone.now(),
    )
    if not updated:
        raise RewardNotRetryable("Only failed rewards can be retried.")
    return RewardRecord.objects.get(pk=reward_id)
