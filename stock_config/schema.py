"""
Configuration schema (``stock_config.schema``).

Frozen dataclasses for the effective inventory configuration of one
organization.  Instances are produced by ``stock_config.loader`` and handed
out only through ``stock_config.get_active_config()``.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class LotExpiryPolicy:
    """Days-to-expiry horizon for EXPIRING and the urgent cut-off inside it."""

    horizon_days: int = 90
    urgent_days: int = 30


@dataclass(frozen=True)
class ListingPolicy:
    default_page_size: int = 50
    max_page_size: int = 200


@dataclass(frozen=True)
class ConcurrencyPolicy:
    # Optimistic-lock conflicts retried before STORE_UNAVAILABLE is reported.
    max_conflict_retries: int = 3


@dataclass(frozen=True)
class InventoryConfig:
    """
    Effective configuration after organization overrides are merged.

    ``checksum`` is the SHA-256 of the canonical JSON of the effective
    values, so two organizations with identical settings share a checksum.
    """

    config_id: str
    version: int
    organization_id: str | None = None
    default_low_stock_threshold: int = 5
    lot_expiry: LotExpiryPolicy = field(default_factory=LotExpiryPolicy)
    listing: ListingPolicy = field(default_factory=ListingPolicy)
    concurrency: ConcurrencyPolicy = field(default_factory=ConcurrencyPolicy)
    checksum: str = ""
