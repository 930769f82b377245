from django.conf import settings


def build_invoice_payload(sale):
    """
    Build the invoice data for printing or a JSON response.

    Arguments:
    - sale: Sale instance; items and their batches are read from it
    """
    items = [
        {
            "product": item.product.name,
            "batch": item.batch.batch_number,
            "expiry": item.batch.expiry_date.isoformat(),
            "qty": item.quantity,
            "price": float(item.unit_price),
            "discount": float(item.discount),
            "total": float(item.total_price),
        }
        for item in sale.items.select_related('product', 'batch')
    ]

    customer = sale.customer
    return {
        "invoiceNumber": sale.invoice_number,
        "date": sale.sale_date.isoformat(),
        "operator": sale.user.get_full_name() or sale.user.username,
        "customer": {
            "name": customer.name if customer else "Walk-in",
            "phone": customer.contact_number if customer else "",
            "address": customer.address if customer else "",
        },
        "items": items,
        "discount": float(sum(item["discount"] for item in items)),
        "total": float(sale.total_amount),
        "paymentStatus": sale.payment_status,
        "note": sale.note,
        "footer": [
            settings.PHARMACY_NAME,
            f"Address: {settings.PHARMACY_ADDRESS}",
            f"Tel: {settings.PHARMACY_TEL}",
            "Medicines once sold cannot be returned.",
        ],
    }
