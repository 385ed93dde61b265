import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Offer',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('title', models.CharField(max_length=200)),
                ('description', models.TextField(blank=True)),
                ('pickup_address', models.TextField()),
                ('pickup_latitude', models.DecimalField(decimal_places=6, max_digits=9)),
                ('pickup_longitude', models.DecimalField(decimal_places=6, max_digits=9)),
                ('pickup_contact_name', models.CharField(blank=True, max_length=100)),
                ('pickup_contact_phone', models.CharField(blank=True, max_length=20)),
                ('pickup_available_from', models.DateTimeField(blank=True, null=True)),
                ('pickup_available_until', models.DateTimeField(blank=True, null=True)),
                ('pickup_instructions', models.TextField(blank=True)),
                ('delivery_address', models.TextField()),
                ('delivery_latitude', models.DecimalField(decimal_places=6, max_digits=9)),
                ('delivery_longitude', models.DecimalField(decimal_places=6, max_digits=9)),
                ('delivery_contact_name', models.CharField(blank=True, max_length=100)),
                ('delivery_contact_phone', models.CharField(blank=True, max_length=20)),
                ('deliver_by', models.DateTimeField(blank=True, null=True)),
                ('delivery_instructions', models.TextField(blank=True)),
                ('package_weight', models.FloatField(blank=True, null=True)),
                ('package_length', models.FloatField(blank=True, null=True)),
                ('package_width', models.FloatField(blank=True, null=True)),
                ('package_height', models.FloatField(blank=True, null=True)),
                ('is_fragile', models.BooleanField(default=False)),
                ('temperature_class', models.CharField(choices=[('ambient', 'Ambient'), ('chilled', 'Chilled'), ('frozen', 'Frozen')], default='ambient', max_length=10)),
                ('special_instructions', models.TextField(blank=True)),
                ('payment_amount', models.DecimalField(decimal_places=2, max_digits=10)),
                ('payment_currency', models.CharField(choices=[('USD', 'US Dollar'), ('EUR', 'Euro'), ('GBP', 'British Pound')], default='USD', max_length=3)),
                ('payment_method', models.CharField(choices=[('cash', 'Cash'), ('card', 'Card'), ('digital', 'Digital')], default='card', max_length=10)),
                ('status', models.CharField(choices=[('open', 'Open'), ('accepted', 'Accepted'), ('picked_up', 'Picked Up'), ('in_transit', 'In Transit'), ('delivered', 'Delivered'), ('completed', 'Completed'), ('cancelled', 'Cancelled')], default='open', max_length=20)),
                ('status_history', models.JSONField(blank=True, default=list)),
                ('version', models.PositiveIntegerField(default=0)),
                ('cancellation_reason', models.TextField(blank=True)),
                ('estimated_distance', models.FloatField(blank=True, null=True)),
                ('estimated_duration', models.IntegerField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('accepted_at', models.DateTimeField(blank=True, null=True)),
                ('picked_up_at', models.DateTimeField(blank=True, null=True)),
                ('in_transit_at', models.DateTimeField(blank=True, null=True)),
                ('delivered_at', models.DateTimeField(blank=True, null=True)),
                ('completed_at', models.DateTimeField(blank=True, null=True)),
                ('cancelled_at', models.DateTimeField(blank=True, null=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('accepted_by', models.ForeignKey(blank=True, limit_choices_to={'role': 'rider'}, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='deliveries', to=settings.AUTH_USER_MODEL)),
                ('business', models.ForeignKey(limit_choices_to={'role': 'business'}, on_delete=django.db.models.deletion.PROTECT, related_name='offers', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'offers',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['status', 'created_at'], name='offer_status_created_idx'),
                    models.Index(fields=['status', 'pickup_latitude', 'pickup_longitude'], name='offer_status_pickup_idx'),
                    models.Index(fields=['business', 'status'], name='offer_business_status_idx'),
                    models.Index(fields=['accepted_by', 'status'], name='offer_rider_status_idx'),
                ],
                'constraints': [
                    models.CheckConstraint(
                        condition=models.Q(
                            models.Q(('accepted_by__isnull', True), ('status', 'open')),
                            models.Q(models.Q(('status', 'open'), _negated=True), ('accepted_by__isnull', False)),
                            _connector='OR',
                        ),
                        name='offer_open_iff_unassigned',
                    ),
                ],
            },
        ),
    ]
