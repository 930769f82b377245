from django.core.management.base import BaseCommand

from inventory.notifications import send_expiry_alerts, send_low_stock_alerts


class Command(BaseCommand):
    help = 'Logs and emails expiry and low stock alerts to the configured recipients'

    def add_arguments(self, parser):
        parser.add_argument('--expiry-only', action='store_true', help='Only send expiry alerts')
        parser.add_argument('--low-stock-only', action='store_true', help='Only send low stock alerts')

    def handle(self, *args, **options):
        if not options['low_stock_only']:
            count = send_expiry_alerts()
            self.stdout.write(self.style.SUCCESS(f'✓ Expiry alerts emailed: {count}'))

        if not options['expiry_only']:
            count = send_low_stock_alerts()
            self.stdout.write(self.style.SUCCESS(f'✓ Low stock alerts emailed: {count}'))
