"""
Inventory Management Application

MODELS:
- Product: a catalog item with generic name, prices and a low stock threshold
- ProductBatch: a received lot of a product with its own expiry and quantity
- StockAdjustment: a manual correction to a batch quantity, approved by an admin

BUSINESS LOGIC:
Stock:
  - Sellable stock is the sum over batches that have not expired
  - Batch quantities never go below zero (checked in services and in the DB)

Adjustments:
  - Increase adds, Decrease subtracts, Correction sets the counted total
  - The batch is updated at once; approval is a separate review flag

Expiry alerts:
  - Critical: expired
  - Warning: 7 days or fewer left
  - Info: within the 30 day alert window

USAGE:
    from inventory import services

    adjustment = services.adjust_stock(batch, 'Decrease', 2, 'Broken vials', request.user)
    alerts = services.expiry_alerts(days=30)
"""
