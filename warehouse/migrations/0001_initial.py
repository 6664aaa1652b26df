import django.core.validators
import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='Client',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('client_name', models.CharField(max_length=255)),
            ],
            options={
                'db_table': 'clients',
                'ordering': ['client_name'],
            },
        ),
        migrations.CreateModel(
            name='AuditEntry',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('actor', models.CharField(max_length=150)),
                ('action', models.CharField(max_length=64)),
                ('detail', models.TextField(blank=True, default='')),
                ('ip_address', models.CharField(blank=True, default='', max_length=45)),
                ('timestamp', models.DateTimeField()),
            ],
            options={
                'db_table': 'audit_log',
                'ordering': ['-timestamp'],
                'indexes': [
                    models.Index(fields=['actor'], name='audit_actor_idx'),
                    models.Index(fields=['action'], name='audit_action_idx'),
                    models.Index(fields=['timestamp'], name='audit_timestamp_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='InventoryMovement',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('sku_id', models.CharField(max_length=50)),
                ('tag_id', models.CharField(max_length=50)),
                ('movement_type', models.CharField(max_length=20)),
                ('quantity', models.IntegerField()),
                ('location_from', models.CharField(blank=True, default='', max_length=50)),
                ('location_to', models.CharField(blank=True, default='', max_length=50)),
                ('reference_number', models.CharField(blank=True, default='', max_length=64)),
                ('reason', models.CharField(blank=True, default='', max_length=500)),
                ('actor', models.CharField(max_length=150)),
                ('created_at', models.DateTimeField()),
            ],
            options={
                'db_table': 'inventory_movements',
                'indexes': [
                    models.Index(fields=['sku_id'], name='movement_sku_idx'),
                    models.Index(fields=['created_at'], name='movement_created_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='SkuRecord',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('item_code', models.CharField(max_length=50, unique=True)),
                ('description', models.CharField(max_length=255)),
                ('pack_config', models.CharField(blank=True, default='', max_length=100)),
                ('ean', models.CharField(blank=True, default='', max_length=32)),
                ('serial_number', models.CharField(blank=True, default='', max_length=100)),
                ('origin', models.CharField(blank=True, default='', max_length=100)),
                ('dimension', models.CharField(blank=True, default='', max_length=100)),
                ('unit_weight', models.FloatField(default=0, validators=[django.core.validators.MinValueValidator(0)])),
                ('product_group', models.CharField(blank=True, default='', max_length=100)),
                ('fragile', models.BooleanField(default=False)),
                ('high_security', models.BooleanField(default=False)),
                ('each_weight', models.FloatField(default=0, validators=[django.core.validators.MinValueValidator(0)])),
                ('packed_weight', models.FloatField(default=0, validators=[django.core.validators.MinValueValidator(0)])),
                ('last_updated', models.DateTimeField(auto_now=True)),
                ('client', models.ForeignKey(db_column='client_id', on_delete=django.db.models.deletion.PROTECT, related_name='skus', to='warehouse.client')),
            ],
            options={
                'db_table': 'sku_master',
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('description', ''), _negated=True), name='sku_description_not_empty'),
                    models.CheckConstraint(condition=models.Q(('unit_weight__gte', 0)), name='sku_unit_weight_non_negative'),
                ],
            },
        ),
        migrations.CreateModel(
            name='InventoryItem',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('tag_id', models.CharField(max_length=50, unique=True)),
                ('qty_on_hand', models.IntegerField(default=0, validators=[django.core.validators.MinValueValidator(0)])),
                ('qty_allocated', models.IntegerField(default=0, validators=[django.core.validators.MinValueValidator(0)])),
                ('location_id', models.CharField(blank=True, default='', max_length=50)),
                ('last_updated', models.DateTimeField(auto_now=True)),
                ('sku', models.ForeignKey(db_column='sku_id', on_delete=django.db.models.deletion.PROTECT, related_name='inventory_items', to='warehouse.skurecord', to_field='item_code')),
            ],
            options={
                'db_table': 'inventory',
                'indexes': [
                    models.Index(fields=['location_id'], name='inventory_location_idx'),
                ],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('qty_on_hand__gte', 0)), name='inventory_on_hand_non_negative'),
                    models.CheckConstraint(condition=models.Q(('qty_allocated__gte', 0)), name='inventory_allocated_non_negative'),
                ],
            },
        ),
    ]
