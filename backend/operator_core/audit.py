from operator_core.models import OperatorAuditEvent


def request_origin(request) -> dict:
    """Client address and user agent of an operator request, for the audit trail."""
    if request is None:
        return {"ip": "", "user_agent": ""}
    forwarded = (request.META.get("HTTP_X_FORWARDED_FOR") or "").split(",")[0].strip()
    return {
        "ip": forwarded or request.META.get("REMOTE_ADDR", ""),
        "user_agent": request.META.get("HTTP_USER_AGENT", ""),
    }


def audit(
    *,
    actor,
    action,
    entity_type,
    entity_id,
    reason,
    before=None,
    after=None,
    meta=None,
    ip=None,
    user_agent=None,
):
    """
    Persist an operator audit event. Raises ValueError if reason is missing.

    Callers write this inside the same transaction as the change it records.
    """

    if not reason:
        raise ValueError("reason is required for audit events")

    return OperatorAuditEvent.objects.create(
        actor=actor,
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
        before_json=before,
        after_json=after,
        meta_json=meta,
        ip=ip or "",
        user_agent=user_agent or "",
    )
