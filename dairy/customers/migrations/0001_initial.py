from decimal import Decimal

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('catalog', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Customer',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=200)),
                ('phone', models.CharField(blank=True, max_length=20, null=True, unique=True)),
                ('email', models.EmailField(blank=True, default='', max_length=254)),
                ('address', models.TextField(blank=True, default='')),
                ('area', models.CharField(blank=True, default='', max_length=100)),
                ('subscription_type', models.CharField(choices=[('daily', 'Daily'), ('alternate', 'Alternate Days'), ('weekly', 'Weekly'), ('custom', 'Custom Days')], default='daily', max_length=20)),
                ('billing_cycle', models.CharField(choices=[('monthly', 'Monthly'), ('weekly', 'Weekly')], default='monthly', max_length=20)),
                ('delivery_schedule', models.JSONField(blank=True, default=dict, help_text="e.g. {'frequency': 'custom', 'days': [1, 3, 5]}")),
                ('credit_balance', models.DecimalField(decimal_places=2, default=Decimal('0.00'), help_text='Amount owed (ledger debits minus credits)', max_digits=12)),
                ('advance_balance', models.DecimalField(decimal_places=2, default=Decimal('0.00'), help_text='Amount paid in advance', max_digits=12)),
                ('is_active', models.BooleanField(default=True)),
                ('notes', models.TextField(blank=True, default='')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'db_table': 'customers',
                'ordering': ['name'],
                'indexes': [models.Index(fields=['area'], name='customers_area_idx'), models.Index(fields=['is_active'], name='customers_active_idx')],
            },
        ),
        migrations.CreateModel(
            name='CustomerSubscription',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('quantity', models.DecimalField(decimal_places=3, default=Decimal('1.000'), max_digits=10)),
                ('custom_price', models.DecimalField(blank=True, decimal_places=2, max_digits=10, null=True)),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('customer', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='subscriptions', to='customers.customer')),
                ('product', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='subscriptions', to='catalog.product')),
            ],
            options={
                'db_table': 'customer_products',
                'ordering': ['customer', 'product__name'],
            },
        ),
        migrations.CreateModel(
            name='CustomerVacation',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('start_date', models.DateField()),
                ('end_date', models.DateField()),
                ('reason', models.CharField(blank=True, default='', max_length=255)),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='customer_vacations', to=settings.AUTH_USER_MODEL)),
                ('customer', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='vacations', to='customers.customer')),
            ],
            options={
                'db_table': 'customer_vacations',
                'ordering': ['-start_date'],
            },
        ),
        migrations.CreateModel(
            name='LedgerEntry',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('transaction_date', models.DateField()),
                ('transaction_type', models.CharField(choices=[('invoice', 'Invoice'), ('payment', 'Payment'), ('delivery', 'Delivery'), ('advance', 'Advance'), ('adjustment', 'Adjustment')], max_length=20)),
                ('description', models.TextField(blank=True, default='')),
                ('debit_amount', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=12)),
                ('credit_amount', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=12)),
                ('running_balance', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=12)),
                ('reference_id', models.PositiveBigIntegerField(blank=True, help_text='ID of the invoice/payment/delivery this entry came from', null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='ledger_entries', to=settings.AUTH_USER_MODEL)),
                ('customer', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='ledger_entries', to='customers.customer')),
            ],
            options={
                'db_table': 'customer_ledger',
                'ordering': ['-transaction_date', '-created_at', '-id'],
                'indexes': [models.Index(fields=['customer', 'transaction_date'], name='ledger_customer_date_idx'), models.Index(fields=['transaction_type', 'reference_id'], name='ledger_type_reference_idx')],
            },
        ),
    ]
