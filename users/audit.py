import logging

from .models import AuditLog

logger = logging.getLogger(__name__)


def client_ip(request):
    if request is None:
        return None
    forwarded = request.META.get('HTTP_X_FORWARDED_FOR')
    if forwarded:
        return forwarded.split(',')[0].strip()
    return request.META.get('REMOTE_ADDR')


def log_action(user, action, entity_type, entity_id='', details='', request=None):
    """
    Store an audit trail entry.

    Args:
        user: acting user, or None for system actions
        action: verb such as CREATE, ADJUST, APPROVE, RECEIVE
        entity_type: model name the action applies to
        entity_id: primary key of the affected row
        details: free-text description
        request: optional request, used for the client IP
    """
    if user is not None and not user.is_authenticated:
        user = None

    entry = AuditLog.objects.create(
        user=user,
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id or ''),
        details=details,
        ip_address=client_ip(request),
    )

    logger.info(
        f"[AUDIT] {action} {entity_type}:{entity_id} | "
        f"User: {user.username if user else 'System'} | {details}"
    )
    return entry
