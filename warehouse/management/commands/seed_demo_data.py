from django.core.management.base import BaseCommand
from django.db import transaction
from django.conf import settings
import os

from warehouse.models import Client, InventoryItem, SkuRecord


CLIENT_ACME = "Acme Retail"
CLIENT_NORTHWIND = "Northwind Traders"

LOCATION_A1 = "A-01-01"
LOCATION_A2 = "A-01-02"
LOCATION_B1 = "B-02-01"

DEMO_CLIENTS = [CLIENT_ACME, CLIENT_NORTHWIND]

DEMO_SKUS = [
    {
        "item_code": "ABC-123",
        "client": CLIENT_ACME,
        "description": "Demo Widget, boxed",
        "pack_config": "12x1",
        "ean": "4006381333931",
        "origin": "DE",
        "dimension": "10x10x5",
        "unit_weight": 0.25,
        "product_group": "Widgets",
        "each_weight": 0.25,
        "packed_weight": 3.2,
    },
    {
        "item_code": "GLS-500",
        "client": CLIENT_ACME,
        "description": "Demo Glass Vase",
        "pack_config": "4x1",
        "unit_weight": 1.1,
        "product_group": "Homeware",
        "fragile": True,
        "each_weight": 1.1,
        "packed_weight": 4.8,
    },
    {
        "item_code": "PHN-900",
        "client": CLIENT_NORTHWIND,
        "description": "Demo Phone Handset",
        "pack_config": "10x1",
        "serial_number": "SN-DEMO-0001",
        "unit_weight": 0.4,
        "product_group": "Electronics",
        "high_security": True,
        "each_weight": 0.4,
        "packed_weight": 4.5,
    },
]

# ABC-123 deliberately has no inventory rows.
DEMO_INVENTORY = [
    {"tag_id": "T1", "sku": "GLS-500", "qty_on_hand": 10, "qty_allocated": 0, "location_id": LOCATION_A1},
    {"tag_id": "T2", "sku": "GLS-500", "qty_on_hand": 8, "qty_allocated": 5, "location_id": LOCATION_A2},
    {"tag_id": "T4", "sku": "PHN-900", "qty_on_hand": 25, "qty_allocated": 0, "location_id": LOCATION_B1},
]


class Command(BaseCommand):
    help = "Idempotently seed demo clients, SKUs and inventory rows"

    def add_arguments(self, parser):
        parser.add_argument(
            "--reset-inventory",
            action="store_true",
            help="Restore demo inventory quantities even if the rows already exist",
        )

    def handle(self, *args, **options):
        reset_inventory = options.get("reset_inventory", False)

        if not self._env_allows_seed():
            self.stdout.write(self.style.ERROR(
                "Refusing to run demo seeder: DEBUG is False and DEMO_SEED is not enabled.\n"
                "To override set environment variable ALLOW_DEMO_ON_PRODUCTION=true (not recommended for production)."
            ))
            return

        with transaction.atomic():
            clients = self._seed_clients()
            skus_created, skus_updated = self._seed_skus(clients)
            inventory_created, inventory_updated = self._seed_inventory(reset_inventory)

        self.stdout.write(self.style.SUCCESS(
            f"Seed complete: clients={len(clients)}; skus(created={skus_created}, updated={skus_updated}); "
            f"inventory(created={inventory_created}, updated={inventory_updated})"
        ))

    def _env_allows_seed(self) -> bool:
        """Return True if seeding is allowed in current environment."""
        return (
            getattr(settings, "DEBUG", False)
            or getattr(settings, "DEMO_SEED", False)
            or (os.environ.get("ALLOW_DEMO_ON_PRODUCTION", "").lower() in ("1", "true", "yes"))
        )

    def _seed_clients(self):
        clients = {}
        for name in DEMO_CLIENTS:
            client, _ = Client.objects.get_or_create(client_name=name)
            clients[name] = client
        return clients

    def _seed_skus(self, clients):
        created = 0
        updated = 0
        for s in DEMO_SKUS:
            defaults = {k: v for k, v in s.items() if k not in ("item_code", "client")}
            defaults["client"] = clients[s["client"]]
            _, created_flag = SkuRecord.objects.update_or_create(item_code=s["item_code"], defaults=defaults)
            if created_flag:
                created += 1
            else:
                updated += 1
        return created, updated

    def _seed_inventory(self, reset):
        created = 0
        updated = 0
        for row in DEMO_INVENTORY:
            defaults = {
                "sku_id": row["sku"],
                "qty_on_hand": row["qty_on_hand"],
                "qty_allocated": row["qty_allocated"],
                "location_id": row["location_id"],
            }
            if reset:
                _, created_flag = InventoryItem.objects.update_or_create(tag_id=row["tag_id"], defaults=defaults)
            else:
                _, created_flag = InventoryItem.objects.get_or_create(tag_id=row["tag_id"], defaults=defaults)
            if created_flag:
                created += 1
            elif reset:
                updated += 1
        return created, updated
