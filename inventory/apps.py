from django.apps import AppConfig


class InventoryConfig(AppConfig):
    """
    Configuration for the Inventory application.

    This app manages the medicine catalog and stock:
    - Products (generic name, pricing, prescription flag)
    - Product batches (batch number, supplier, expiry, quantity)
    - Stock adjustments (Increase / Decrease / Correction, with approval)

    Features:
    - First-expiry-first-out batch selection for sales
    - Expiry alerts (Critical / Warning / Info)
    - Low stock and out of stock reports
    - Audit trail for every stock change
    """

    default_auto_field = 'django.db.models.BigAutoField'
    name = 'inventory'
    verbose_name = 'Inventory Management'

    def ready(self):
        """
        Import signal handlers when the app is ready.

        Signals handle:
        - Logging of product, batch and adjustment changes
        - Low stock and short dated batch warnings
        """
        import inventory.signals  # noqa: F401
