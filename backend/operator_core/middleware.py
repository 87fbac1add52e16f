from django.conf import settings
from django.http import HttpResponseNotFound

OPERATOR_PREFIX = "/api/operator/"


class OpsOnlyRouteGatingMiddleware:
    """Hide the operator API unless it is enabled and requested on an ops host."""

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        if (request.path or "").startswith(OPERATOR_PREFIX) and not self._operator_allowed(request):
            return HttpResponseNotFound()
        return self.get_response(request)

    def _operator_allowed(self, request) -> bool:
        if not getattr(settings, "ENABLE_OPERATOR", False):
            return False
        allowed = {host.lower() for host in getattr(settings, "OPS_ALLOWED_HOSTS", [])}
        hostname = (request.get_host() or "").split(":", 1)[0].lower()
        return hostname in allowed
