from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

from operator_core.permissions import MONEY_PERMISSIONS


class OperatorAPIView(APIView):
    """Money-moving operator endpoint: finance/admin roles only, operator throttle scope."""

    permission_classes = MONEY_PERMISSIONS
    throttle_scope = "operator"
    throttle_classes = [ScopedRateThrottle]
