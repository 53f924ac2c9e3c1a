import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


ORDER_STATUS_CHOICES = [
    ('AWAITING_PAYMENT', 'Awaiting Payment'),
    ('PENDING', 'Waiting for Delivery Person'),
    ('ACCEPTED', 'Accepted'),
    ('PICKED_UP', 'Picked Up'),
    ('IN_TRANSIT', 'In Transit'),
    ('DELIVERED', 'Delivered'),
    ('CANCELLED', 'Cancelled'),
    ('NO_COURIER_AVAILABLE', 'No Delivery Person Available'),
]

PAYMENT_METHOD_CHOICES = [
    ('CREDIT_CARD', 'Credit Card'),
    ('DEBIT_CARD', 'Debit Card'),
    ('PIX', 'PIX'),
    ('CASH', 'Cash'),
    ('END_OF_DAY', 'End of Day Billing'),
    ('ON_DELIVERY', 'On Delivery'),
    ('INVOICED', 'Invoiced'),
]

OFFER_STATUS_CHOICES = [
    ('PENDING', 'Pending'),
    ('ACCEPTED', 'Accepted'),
    ('REJECTED', 'Rejected'),
    ('EXPIRED', 'Expired'),
]

OFFER_FAILURE_CHOICES = [
    ('REJECTED', 'Rejected by delivery person'),
    ('TIMEOUT', 'No response before the offer window closed'),
    ('ORDER_UNAVAILABLE', 'Order cancelled or no longer available'),
]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='SystemConfig',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('key', models.CharField(max_length=64, unique=True)),
                ('value', models.CharField(max_length=255)),
                ('description', models.TextField(blank=True, default='')),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'db_table': 'system_config',
                'ordering': ['key'],
            },
        ),
        migrations.CreateModel(
            name='Order',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('origin_address', models.TextField()),
                ('origin_latitude', models.DecimalField(blank=True, decimal_places=6, max_digits=10, null=True)),
                ('origin_longitude', models.DecimalField(blank=True, decimal_places=6, max_digits=10, null=True)),
                ('destination_address', models.TextField()),
                ('destination_latitude', models.DecimalField(blank=True, decimal_places=6, max_digits=10, null=True)),
                ('destination_longitude', models.DecimalField(blank=True, decimal_places=6, max_digits=10, null=True)),
                ('distance_km', models.DecimalField(decimal_places=2, max_digits=8)),
                ('duration_minutes', models.IntegerField(blank=True, null=True)),
                ('notes', models.TextField(blank=True, default='')),
                ('delivery_fee', models.DecimalField(decimal_places=2, max_digits=10)),
                ('platform_fee', models.DecimalField(decimal_places=2, max_digits=10)),
                ('price', models.DecimalField(decimal_places=2, max_digits=10)),
                ('payment_method', models.CharField(choices=PAYMENT_METHOD_CHOICES, default='CREDIT_CARD', max_length=20)),
                ('status', models.CharField(choices=ORDER_STATUS_CHOICES, default='PENDING', max_length=30)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('accepted_at', models.DateTimeField(blank=True, null=True)),
                ('picked_up_at', models.DateTimeField(blank=True, null=True)),
                ('in_transit_at', models.DateTimeField(blank=True, null=True)),
                ('completed_at', models.DateTimeField(blank=True, null=True)),
                ('cancelled_at', models.DateTimeField(blank=True, null=True)),
                ('client', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='orders', to=settings.AUTH_USER_MODEL)),
                ('delivery_person', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='assigned_orders', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'orders',
                'ordering': ['-created_at'],
                'indexes': [models.Index(fields=['status', 'delivery_person'], name='order_status_dp_idx')],
            },
        ),
        migrations.CreateModel(
            name='OrderOffer',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('distance_to_pickup_km', models.FloatField(blank=True, null=True)),
                ('attempt_number', models.PositiveIntegerField(default=1)),
                ('status', models.CharField(choices=OFFER_STATUS_CHOICES, default='PENDING', max_length=20)),
                ('failure_reason', models.CharField(blank=True, choices=OFFER_FAILURE_CHOICES, max_length=20, null=True)),
                ('offered_at', models.DateTimeField()),
                ('expires_at', models.DateTimeField()),
                ('responded_at', models.DateTimeField(blank=True, null=True)),
                ('delivery_person', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='order_offers', to=settings.AUTH_USER_MODEL)),
                ('order', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='offers', to='orders.order')),
            ],
            options={
                'db_table': 'order_offers',
                'ordering': ['offered_at', 'id'],
                'indexes': [
                    models.Index(fields=['status', 'expires_at'], name='offer_status_expiry_idx'),
                    models.Index(fields=['delivery_person', 'status'], name='offer_dp_status_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(condition=models.Q(('status', 'PENDING')), fields=('order',), name='unique_pending_offer_per_order'),
                ],
            },
        ),
    ]
