from django.conf import settings
from django.db import models
from django.contrib.auth.models import User
from django.db.models.signals import post_save
from django.dispatch import receiver


class Profile(models.Model):
    ROLE_ADMIN = "admin"
    ROLE_EMPLOYEE = "employee"
    ROLE_CHOICES = [
        (ROLE_ADMIN, "Admin"),
        (ROLE_EMPLOYEE, "Employee"),
    ]

    user = models.OneToOneField(User, on_delete=models.CASCADE)
    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default=ROLE_EMPLOYEE)
    phone_number = models.CharField(max_length=20, blank=True)
    last_login_ip = models.GenericIPAddressField(null=True, blank=True)

    def __str__(self):
        return f"{self.user.username} - {self.role}"

    @property
    def is_admin(self):
        return self.role == self.ROLE_ADMIN or self.user.is_superuser


def role_for(user):
    """Role name for a user; superusers are always admins."""
    if not user or not user.is_authenticated:
        return None
    if user.is_superuser:
        return Profile.ROLE_ADMIN
    profile = getattr(user, 'profile', None)
    return profile.role if profile else Profile.ROLE_EMPLOYEE


def is_admin(user):
    return role_for(user) == Profile.ROLE_ADMIN


class AuditLog(models.Model):
    """
    Append-only record of business actions (adjustments, sales,
    purchase receipts, ...). Rows are written by users.audit.log_action().
    """

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='audit_logs',
    )
    action = models.CharField(max_length=50)
    entity_type = models.CharField(max_length=50)
    entity_id = models.CharField(max_length=64, blank=True)
    details = models.TextField(blank=True)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    action_date = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-action_date', '-id']
        indexes = [
            models.Index(fields=['entity_type', 'entity_id'], name='idx_audit_entity'),
            models.Index(fields=['action_date'], name='idx_audit_date'),
        ]

    def __str__(self):
        return f"{self.action} {self.entity_type}:{self.entity_id}"


# SIGNALS: auto-create Profile for new users
@receiver(post_save, sender=User)
def create_user_profile(sender, instance, created, **kwargs):
    if created:
        Profile.objects.create(
            user=instance,
            role=Profile.ROLE_ADMIN if instance.is_superuser else Profile.ROLE_EMPLOYEE,
        )


@receiver(post_save, sender=User)
def save_user_profile(sender, instance, **kwargs):
    # ensures the profile is saved whenever the user is saved
    if hasattr(instance, 'profile'):
        instance.profile.save()
