from django.utils import timezone


def next_document_number(model, field, prefix, on=None):
    """
    Next ``PREFIX-YYYYMMDD-NNNN`` number for ``model.field``.

    The sequence restarts every day and grows past four digits when a day
    goes beyond 9999 documents. Call it inside the transaction that saves
    the row; the unique constraint on ``field`` catches a race.
    """
    day = (on or timezone.localdate()).strftime('%Y%m%d')
    stem = f"{prefix}-{day}-"
    numbers = model.objects.filter(**{f"{field}__startswith": stem}).values_list(field, flat=True)
    # compare numerically, "-10000" sorts before "-9999" as text
    sequence = max((int(number[len(stem):]) for number in numbers if number[len(stem):].isdigit()), default=0) + 1
    return f"{stem}{sequence:04d}"
