#!/usr/bin/env python3
"""Seed a demo dealership network.

Usage:
  python scripts/seed_demo_data.py --config scripts/seed_network.yaml
  python scripts/seed_demo_data.py --create-schema --seed 7

This script:
  1) Brings the schema up to date (Alembic `upgrade head`, or ORM create_all).
  2) Creates the dealerships from the YAML config, one admin and one salesperson each,
     plus a Factory user.
  3) Generates factory and assigned inventory with a consistent status history.
  4) Rebuilds the materialized dashboard snapshot.
"""
import argparse
import logging
import random
import string
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List

import yaml
from alembic import command as alembic_command
from alembic.config import Config as AlembicConfig

ROOT = Path(__file__).resolve().parents[1]
DEFAULT_CONFIG = ROOT / "scripts" / "seed_network.yaml"

if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from backend.app.core.logging_config import configure_logging  # noqa: E402
from backend.app.core.settings import settings  # noqa: E402
from backend.app.db import models  # noqa: E402
from backend.app.db.session import create_schema, session_scope  # noqa: E402
from backend.app.services.directory import create_dealership, create_user  # noqa: E402
from backend.app.services.entities import (  # noqa: E402
    ROLE_DEALERSHIP_ADMIN,
    ROLE_FACTORY,
    ROLE_SALESPERSON,
    STATUS_ARRIVED,
    STATUS_AT_FACTORY,
    STATUS_IN_STOCK,
    STATUS_IN_TRANSIT,
)
from backend.app.services.forecast import slugify  # noqa: E402
from backend.app.services.inventory import append_history  # noqa: E402
from backend.app.services.metrics_store import refresh_metrics_snapshot  # noqa: E402

logger = logging.getLogger("seed_demo_data")

VIN_ALPHABET = string.ascii_uppercase + string.digits


def load_config(path: Path) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f)


def migrate():
    alembic_cfg = AlembicConfig(str(ROOT / "alembic.ini"))
    alembic_cfg.set_main_option("sqlalchemy.url", settings.database_url)
    alembic_command.upgrade(alembic_cfg, "head")


def generate_vin(rng: random.Random) -> str:
    return "V" + "".join(rng.choice(VIN_ALPHABET) for _ in range(16))


def pick_final_status(rng: random.Random, mix: Dict[str, float]) -> str:
    roll = rng.random()
    if roll < mix.get(STATUS_IN_TRANSIT, 0.4):
        return STATUS_IN_TRANSIT
    if roll < mix.get(STATUS_IN_TRANSIT, 0.4) + mix.get(STATUS_ARRIVED, 0.3):
        return STATUS_ARRIVED
    return STATUS_IN_STOCK


def build_vehicle(rng: random.Random, cfg: Dict[str, Any], dealership_id: str | None, now: datetime) -> models.Vehicle:
    catalog_entry = rng.choice(cfg["models"])
    vehicle = models.Vehicle(
        vin=generate_vin(rng),
        model=catalog_entry["model"],
        color=rng.choice(catalog_entry["colors"]),
        year=now.year,
        cost_price=catalog_entry["cost_price"],
        dealership_id=dealership_id,
        history=[],
    )
    built_at = now - timedelta(days=rng.randrange(cfg.get("max_history_age_days", 40)))
    append_history(vehicle, STATUS_AT_FACTORY, built_at)
    if dealership_id is None:
        return vehicle

    final_status = pick_final_status(rng, cfg.get("status_mix") or {})
    shipped_at = built_at + timedelta(days=1)
    append_history(vehicle, STATUS_IN_TRANSIT, shipped_at)
    if final_status in {STATUS_ARRIVED, STATUS_IN_STOCK}:
        arrived_at = shipped_at + timedelta(days=rng.randint(1, 8))
        append_history(vehicle, STATUS_ARRIVED, arrived_at)
        if final_status == STATUS_IN_STOCK:
            append_history(vehicle, STATUS_IN_STOCK, arrived_at + timedelta(hours=1))
    return vehicle


def seed(cfg: Dict[str, Any], rng: random.Random) -> Dict[str, int]:
    now = datetime.now(timezone.utc)
    factory = cfg.get("factory_user") or {}
    create_user(
        factory.get("username", "factory"),
        factory.get("name", "Factory"),
        ROLE_FACTORY,
        user_id=factory.get("id"),
    )

    dealership_ids: List[str] = []
    for index, entry in enumerate(cfg["dealerships"], start=1):
        dealership = create_dealership(
            entry["name"],
            entry["city"],
            entry["province"],
            coords=entry.get("coords"),
            dealership_id=f"dealership-{index}",
        )
        dealership_ids.append(dealership["id"])
        handle = slugify(entry["city"])
        create_user(f"admin_{handle}", f"Admin {entry['name']}", ROLE_DEALERSHIP_ADMIN, dealership_id=dealership["id"])
        create_user(f"sales_{handle}", f"Sales {entry['name']}", ROLE_SALESPERSON, dealership_id=dealership["id"])

    vehicles = [build_vehicle(rng, cfg, None, now) for _ in range(cfg.get("factory_vehicles", 20))]
    for dealership_id in dealership_ids:
        vehicles.extend(
            build_vehicle(rng, cfg, dealership_id, now) for _ in range(cfg.get("vehicles_per_dealership", 50))
        )
    with session_scope() as session:
        session.add_all(vehicles)

    return {"dealerships": len(dealership_ids), "vehicles": len(vehicles)}


def main():
    ap = argparse.ArgumentParser()
    ap.add_argument("--config", type=str, help="Path to the network YAML", default=str(DEFAULT_CONFIG))
    ap.add_argument("--seed", type=int, help="Random seed for reproducible inventory", default=None)
    ap.add_argument("--create-schema", action="store_true", help="Create tables from ORM metadata instead of Alembic")
    args = ap.parse_args()

    configure_logging()
    if args.create_schema:
        create_schema()
    else:
        migrate()

    counts = seed(load_config(Path(args.config)), random.Random(args.seed))
    if not refresh_metrics_snapshot():
        logger.warning("Seeded data but the dashboard snapshot could not be rebuilt")
    logger.info("Seeded %(dealerships)d dealerships and %(vehicles)d vehicles", counts)


if __name__ == "__main__":
    main()
