"""
Configuration loader (``stock_config.loader``).

Responsibility
--------------
Loads the YAML configuration set, merges the per-organization override
block onto the defaults, validates the result and parses it into
``stock_config.schema`` dataclasses.  Runtime callers use
``stock_config.get_active_config()``; nothing else reads the YAML.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Out-of-range values  -> ``ValueError`` naming the offending key.
"""

from __future__ import annotations

import copy
import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from stock_config.schema import (
    ConcurrencyPolicy,
    InventoryConfig,
    ListingPolicy,
    LotExpiryPolicy,
)

_SECTIONS = ("lot_expiry", "listing", "concurrency")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization (sorted keys)."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def effective_values(data: dict[str, Any], organization_id: str | None) -> dict[str, Any]:
    """
    Defaults with the organization's overrides applied.

    Section keys (lot_expiry, listing, concurrency) merge key by key; an
    organization overriding only ``urgent_days`` keeps the default
    ``horizon_days``.
    """
    values = {
        "default_low_stock_threshold": data.get("default_low_stock_threshold", 5),
    }
    for section in _SECTIONS:
        values[section] = dict(data.get(section) or {})

    overrides = (data.get("organizations") or {}).get(organization_id) or {}
    for key, value in overrides.items():
        if key in _SECTIONS:
            values[key].update(value or {})
        elif key == "default_low_stock_threshold":
            values[key] = value
        else:
            raise ValueError(f"Unknown override key for organization {organization_id}: {key}")
    return copy.deepcopy(values)


def _int(value: Any, key: str, minimum: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{key} must be an integer, got {value!r}")
    if value < minimum:
        raise ValueError(f"{key} must be >= {minimum}, got {value}")
    return value


def parse_inventory_config(
    data: dict[str, Any],
    organization_id: str | None = None,
) -> InventoryConfig:
    """
    Build the effective InventoryConfig for ``organization_id``.

    Raises:
        ValueError: negative threshold, non-positive horizon, urgent_days
            larger than horizon_days, page sizes below 1, default page size
            above the maximum, or negative retry count.
    """
    values = effective_values(data, organization_id)

    threshold = _int(values["default_low_stock_threshold"], "default_low_stock_threshold", 0)

    expiry = values["lot_expiry"]
    horizon_days = _int(expiry.get("horizon_days", 90), "lot_expiry.horizon_days", 1)
    urgent_days = _int(expiry.get("urgent_days", 30), "lot_expiry.urgent_days", 0)
    if urgent_days > horizon_days:
        raise ValueError(
            f"lot_expiry.urgent_days ({urgent_days}) exceeds "
            f"lot_expiry.horizon_days ({horizon_days})"
        )

    listing = values["listing"]
    default_page_size = _int(listing.get("default_page_size", 50), "listing.default_page_size", 1)
    max_page_size = _int(listing.get("max_page_size", 200), "listing.max_page_size", 1)
    if default_page_size > max_page_size:
        raise ValueError(
            f"listing.default_page_size ({default_page_size}) exceeds "
            f"listing.max_page_size ({max_page_size})"
        )

    retries = _int(
        values["concurrency"].get("max_conflict_retries", 3),
        "concurrency.max_conflict_retries",
        0,
    )

    return InventoryConfig(
        config_id=str(data.get("config_id", "default")),
        version=int(data.get("version", 1)),
        organization_id=organization_id,
        default_low_stock_threshold=threshold,
        lot_expiry=LotExpiryPolicy(horizon_days=horizon_days, urgent_days=urgent_days),
        listing=ListingPolicy(default_page_size=default_page_size, max_page_size=max_page_size),
        concurrency=ConcurrencyPolicy(max_conflict_retries=retries),
        checksum=compute_checksum(values),
    )
