# warehouse/models.py
from enum import Enum

from django.core.validators import MinValueValidator
from django.db import models
from django.db.models import Q
from django.db.models.deletion import PROTECT


class Client(models.Model):
    client_name = models.CharField(max_length=255)

    class Meta:
        db_table = 'clients'
        ordering = ['client_name']

    def __str__(self):
        return self.client_name


class SkuRecord(models.Model):
    item_code = models.CharField(max_length=50, unique=True)
    description = models.CharField(max_length=255)
    pack_config = models.CharField(max_length=100, blank=True, default='')
    ean = models.CharField(max_length=32, blank=True, default='')
    serial_number = models.CharField(max_length=100, blank=True, default='')
    origin = models.CharField(max_length=100, blank=True, default='')
    dimension = models.CharField(max_length=100, blank=True, default='')
    unit_weight = models.FloatField(default=0, validators=[MinValueValidator(0)])
    product_group = models.CharField(max_length=100, blank=True, default='')
    fragile = models.BooleanField(default=False)
    high_security = models.BooleanField(default=False)
    each_weight = models.FloatField(default=0, validators=[MinValueValidator(0)])
    packed_weight = models.FloatField(default=0, validators=[MinValueValidator(0)])
    client = models.ForeignKey(Client, on_delete=PROTECT, related_name='skus', db_column='client_id')
    last_updated = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'sku_master'
        constraints = [
            models.CheckConstraint(condition=~Q(description=''), name='sku_description_not_empty'),
            models.CheckConstraint(condition=Q(unit_weight__gte=0), name='sku_unit_weight_non_negative'),
        ]

    def __str__(self):
        return f"{self.item_code} - {self.description}"


class InventoryItem(models.Model):
    tag_id = models.CharField(max_length=50, unique=True)
    sku = models.ForeignKey(
        SkuRecord,
        on_delete=PROTECT,
        to_field='item_code',
        db_column='sku_id',
        related_name='inventory_items',
    )
    qty_on_hand = models.IntegerField(default=0, validators=[MinValueValidator(0)])
    qty_allocated = models.IntegerField(default=0, validators=[MinValueValidator(0)])
    location_id = models.CharField(max_length=50, blank=True, default='')
    last_updated = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'inventory'
        indexes = [
            models.Index(fields=['location_id'], name='inventory_location_idx'),
        ]
        constraints = [
            models.CheckConstraint(condition=Q(qty_on_hand__gte=0), name='inventory_on_hand_non_negative'),
            models.CheckConstraint(condition=Q(qty_allocated__gte=0), name='inventory_allocated_non_negative'),
        ]

    def __str__(self):
        return f"{self.tag_id} ({self.sku_id}) @ {self.location_id or 'N/A'}"

    @property
    def qty_available(self):
        return self.qty_on_hand - self.qty_allocated


class InventoryMovement(models.Model):
    """Append-only stock movement written alongside each inventory deletion."""

    MOVEMENT_DELETION = 'DELETION'

    sku_id = models.CharField(max_length=50)
    tag_id = models.CharField(max_length=50)
    movement_type = models.CharField(max_length=20)
    quantity = models.IntegerField()
    location_from = models.CharField(max_length=50, blank=True, default='')
    location_to = models.CharField(max_length=50, blank=True, default='')
    reference_number = models.CharField(max_length=64, blank=True, default='')
    reason = models.CharField(max_length=500, blank=True, default='')
    actor = models.CharField(max_length=150)
    created_at = models.DateTimeField()

    class Meta:
        db_table = 'inventory_movements'
        indexes = [
            models.Index(fields=['sku_id'], name='movement_sku_idx'),
            models.Index(fields=['created_at'], name='movement_created_idx'),
        ]

    def __str__(self):
        return f"{self.movement_type} {self.tag_id} {self.quantity}"


class AuditEntry(models.Model):
    """Append-only activity record; rows are never updated or deleted."""

    actor = models.CharField(max_length=150)
    action = models.CharField(max_length=64)
    detail = models.TextField(blank=True, default='')
    ip_address = models.CharField(max_length=45, blank=True, default='')
    timestamp = models.DateTimeField()

    class Meta:
        db_table = 'audit_log'
        ordering = ['-timestamp']
        indexes = [
            models.Index(fields=['actor'], name='audit_actor_idx'),
            models.Index(fields=['action'], name='audit_action_idx'),
            models.Index(fields=['timestamp'], name='audit_timestamp_idx'),
        ]

    def __str__(self):
        return f"[{self.timestamp:%Y-%m-%d %H:%M:%S}] {self.actor} {self.action}"


class SkuField(str, Enum):
    """Columns of ``sku_master`` that the edit form may change."""

    DESCRIPTION = 'description'
    PACK_CONFIG = 'pack_config'
    EAN = 'ean'
    SERIAL_NUMBER = 'serial_number'
    ORIGIN = 'origin'
    DIMENSION = 'dimension'
    UNIT_WEIGHT = 'unit_weight'
    PRODUCT_GROUP = 'product_group'
    FRAGILE = 'fragile'
    HIGH_SECURITY = 'high_security'
    EACH_WEIGHT = 'each_weight'
    PACKED_WEIGHT = 'packed_weight'
    CLIENT = 'client_id'
