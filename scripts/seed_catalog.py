"""Seed the product catalog.

Loads catalog entries (and the supplier article codes that identify them)
from a JSON file into the inventory database.

Usage:
    python scripts/seed_catalog.py catalog.json [--db inventory.db]
    python scripts/seed_catalog.py --sample
    python scripts/seed_catalog.py --list

JSON format:
    [
        {
            "name": "Farina 00",
            "unit": "kg",
            "quantity_on_hand": "10",
            "supplier_codes": [{"supplier_name": "Molino Rossi SRL", "code": "F00-25"}]
        }
    ]
"""

import argparse
import json
import sys
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from core.config import DEFAULT_DB_PATH
from models.inventory import CatalogEntry
from storage import CatalogStore, init_inventory_db


SAMPLE_CATALOG = [
    {
        "name": "Farina 00",
        "unit": "kg",
        "quantity_on_hand": "10",
        "supplier_codes": [{"supplier_name": "Molino Rossi SRL", "code": "F00-25"}],
    },
    {"name": "Semola rimacinata", "unit": "kg", "quantity_on_hand": "0"},
    {"name": "Ricotta fresca", "unit": "kg", "quantity_on_hand": "0"},
    {"name": "Ricotta di pecora", "unit": "kg", "quantity_on_hand": "0"},
    {"name": "Uova fresche", "unit": "pz", "quantity_on_hand": "0"},
    {"name": "Zucchero semolato", "unit": "kg", "quantity_on_hand": "0"},
]


def load_entries(path: Path) -> List[Dict[str, Any]]:
    with open(path, encoding="utf-8") as f:
        entries = json.load(f)
    if not isinstance(entries, list):
        raise ValueError(f"{path}: expected a JSON list of catalog entries")
    return entries


def seed(catalog: CatalogStore, entries: List[Dict[str, Any]]) -> List[CatalogEntry]:
    """Insert entries; returns the created catalog entries."""
    created = []
    for raw in entries:
        codes = [(c["supplier_name"], c["code"]) for c in raw.get("supplier_codes", [])]
        created.append(catalog.add_entry(
            name=raw["name"],
            unit=raw.get("unit", "pz"),
            quantity_on_hand=Decimal(str(raw.get("quantity_on_hand", "0"))),
            supplier_codes=codes,
        ))
    return created


def print_catalog(catalog: CatalogStore) -> None:
    entries = catalog.list_entries()
    print(f"Catalog entries: {len(entries)}")
    for entry in entries:
        codes = ", ".join(sorted(f"{c.supplier_name}:{c.code}" for c in entry.supplier_codes))
        print(f"  [{entry.id}] {entry.name}: {entry.quantity_on_hand} {entry.unit}" + (f" ({codes})" if codes else ""))


def main():
    parser = argparse.ArgumentParser(description="Seed the product catalog")
    parser.add_argument("file", nargs="?", help="JSON file of catalog entries")
    parser.add_argument("--db", default=str(DEFAULT_DB_PATH), help="SQLite database path")
    parser.add_argument("--sample", action="store_true", help="Seed a small sample catalog")
    parser.add_argument("--list", action="store_true", help="Print the catalog and exit")
    args = parser.parse_args()

    init_inventory_db(args.db)
    catalog = CatalogStore(args.db)

    if args.list:
        print_catalog(catalog)
        return

    if args.sample:
        entries = SAMPLE_CATALOG
    elif args.file:
        entries = load_entries(Path(args.file))
    else:
        parser.error("Give a JSON file or --sample")

    created = seed(catalog, entries)
    print(f"Seeded {len(created)} catalog entries into {args.db}")
    print_catalog(catalog)


if __name__ == "__main__":
    main()
