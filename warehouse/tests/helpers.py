from django.contrib.auth import get_user_model

from warehouse.models import Client, InventoryItem, SkuRecord


class FakeClock:
    """Manually advanced replacement for ``time.time``."""

    def __init__(self, start=1_000_000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def make_client(name="Acme Retail"):
    return Client.objects.create(client_name=name)


def make_sku(item_code="ABC-123", client=None, **overrides):
    fields = {
        "description": "Demo Widget",
        "pack_config": "12x1",
        "unit_weight": 0.25,
    }
    fields.update(overrides)
    return SkuRecord.objects.create(item_code=item_code, client=client or make_client(), **fields)


def make_item(tag_id, sku, qty_on_hand=10, qty_allocated=0, location_id="A-01-01"):
    return InventoryItem.objects.create(
        tag_id=tag_id,
        sku=sku,
        qty_on_hand=qty_on_hand,
        qty_allocated=qty_allocated,
        location_id=location_id,
    )


def make_staff_user(username="staff", password="pass-12345", is_staff=True):
    return get_user_model().objects.create_user(username=username, password=password, is_staff=is_staff)
