from typing import Iterable, Sequence

from rest_framework.permissions import BasePermission

# Groups allowed to move money: payout holds, early releases, deposit and promo settlement.
MONEY_ROLES = ("operator_admin", "operator_finance")


class IsOperator(BasePermission):
    """
    Allows access only to authenticated staff users.
    """

    def has_permission(self, request, view):
        user = getattr(request, "user", None)
        return bool(user and user.is_authenticated and user.is_staff)


class HasOperatorRole(BasePermission):
    """
    Allows access to staff users in at least one of ``required_roles``.
    """

    required_roles: Sequence[str] = ()

    def has_permission(self, request, view):
        user = getattr(request, "user", None)
        if not (user and user.is_authenticated and user.is_staff):
            return False
        if not self.required_roles:
            return False
        return user.groups.filter(name__in=self.required_roles).exists()

    @classmethod
    def with_roles(cls, roles: Iterable[str]):
        role_tuple = tuple(roles)

        class _HasOperatorRole(cls):
            required_roles = role_tuple

        _HasOperatorRole.__name__ = f"{cls.__name__}WithRoles"
        return _HasOperatorRole


MONEY_PERMISSIONS = [IsOperator, HasOperatorRole.with_roles(MONEY_ROLES)]
