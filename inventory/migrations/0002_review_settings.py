import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models

import inventory.models


class Migration(migrations.Migration):

    dependencies = [
        ('inventory', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.AlterField(
            model_name='product',
            name='low_stock_threshold',
            field=models.PositiveIntegerField(default=inventory.models.default_low_stock_threshold),
        ),
        migrations.AlterField(
            model_name='stockadjustment',
            name='approved_by',
            field=models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='reviewed_adjustments', to=settings.AUTH_USER_MODEL),
        ),
    ]
