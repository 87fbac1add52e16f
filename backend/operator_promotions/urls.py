from django.urls import path

from operator_promotions.api import (
    OperatorPromoPayoutBatchView,
    OperatorRewardListView,
    OperatorRewardRetryView,
)

urlpatterns = [
    path("rewards/", OperatorRewardListView.as_view(), name="operator_reward_list"),
    path(
        "rewards/<int:pk>/retry/",
        OperatorRewardRetryView.as_view(),
        name="operator_reward_retry",
    ),
    path(
        "payout-batch/",
        OperatorPromoPayoutBatchView.as_view(),
        name="operator_promo_payout_batch",
    ),
]
