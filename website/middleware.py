import logging

from users.models import role_for

logger = logging.getLogger(__name__)


class RoleSessionMiddleware:
    """
    Keep the role and display name cached in the session in line with the
    user's profile, so a role change by an admin applies on the next request.
    """

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        user = getattr(request, 'user', None)
        if user is not None and user.is_authenticated:
            role = role_for(user)
            if request.session.get('role') != role:
                if 'role' in request.session:
                    logger.info(f"Role of {user.username} changed to {role}, session updated")
                request.session['role'] = role
            name = user.get_full_name() or user.username
            if request.session.get('user_name') != name:
                request.session['user_name'] = name

        return self.get_response(request)
