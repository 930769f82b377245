from django.contrib.auth.models import User
from django.core.management.base import BaseCommand

from users.models import Profile


class Command(BaseCommand):
    help = 'Creates missing profiles and promotes superusers to the admin role'

    def handle(self, *args, **kwargs):
        created_count = 0
        promoted_count = 0

        for user in User.objects.all():
            profile, created = Profile.objects.get_or_create(
                user=user,
                defaults={'role': Profile.ROLE_ADMIN if user.is_superuser else Profile.ROLE_EMPLOYEE},
            )
            if created:
                self.stdout.write(self.style.SUCCESS(f'✓ Created profile: {user.username} ({profile.role})'))
                created_count += 1
            elif user.is_superuser and profile.role != Profile.ROLE_ADMIN:
                profile.role = Profile.ROLE_ADMIN
                profile.save(update_fields=['role'])
                self.stdout.write(self.style.WARNING(f'↑ Promoted to admin: {user.username}'))
                promoted_count += 1

        self.stdout.write(self.style.SUCCESS(f'\nTotal profiles in database: {Profile.objects.count()}'))
        self.stdout.write(self.style.SUCCESS(f'Created {created_count} new profiles, promoted {promoted_count}'))
