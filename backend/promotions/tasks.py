"""Celery tasks for promo payouts."""

from __future__ import annotations

import logging

from celery import shared_task

from .models import RewardRecord
from .payouts import run_promo_payout_batch

logger = logging.getLogger(__name__)


@shared_task(name="promotions.run_listing_reward_payouts")
def run_listing_reward_payouts() -> dict[str, int]:
    return run_promo_payout_batch(RewardRecord.Pool.LISTING_REWARD).as_dict()


@shared_task(name="promotions.run_contest_payouts")
def run_contest_payouts() -> dict[str, int]:
    return run_promo_payout_batch(RewardRecord.Pool.CONTEST).as_dict()
