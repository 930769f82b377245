from django.conf import settings

from users.models import Profile, role_for


def company_info(request):
    """Pharmacy details for page headers and printed invoices."""
    return {
        'pharmacy_name': settings.PHARMACY_NAME,
        'pharmacy_address': settings.PHARMACY_ADDRESS,
        'pharmacy_tel': settings.PHARMACY_TEL,
        'pharmacy_email': settings.PHARMACY_EMAIL,
    }


def user_role(request):
    if not request.user.is_authenticated:
        return {'user_role': None, 'is_admin': False}

    role = role_for(request.user)
    return {
        'user_role': role,
        'is_admin': role == Profile.ROLE_ADMIN,
    }
