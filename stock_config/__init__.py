"""
stock_config -- single public entrypoint for inventory configuration.

Responsibility:
    ``get_active_config()`` is the only way runtime code obtains settings
    (low-stock default, lot expiry horizon, page sizes, conflict retries).
    The kernel never imports this package; ``stock_config.bridges`` turns
    the config into kernel constructor arguments.

Audit relevance:
    Every call emits a ``STOCK_CONFIG_TRACE`` log entry with the config id,
    version, organization and checksum of the effective values.
"""

from __future__ import annotations

import logging
from pathlib import Path

from stock_config.loader import load_yaml_file, parse_inventory_config
from stock_config.schema import (
    ConcurrencyPolicy,
    InventoryConfig,
    ListingPolicy,
    LotExpiryPolicy,
)

_logger = logging.getLogger("stock_kernel.config")

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_config(
    organization_id: str | None = None,
    config_path: Path | None = None,
) -> InventoryConfig:
    """
    The ONLY public configuration entrypoint.

    Args:
        organization_id: Applies the matching ``organizations`` override
            block, if any.
        config_path: Override path to the YAML set.  Defaults to
            stock_config/sets/default.yaml.

    Raises:
        FileNotFoundError: The YAML file does not exist.
        ValueError: A value is out of range.
    """
    path = Path(config_path) if config_path is not None else _DEFAULT_CONFIG_PATH
    config = parse_inventory_config(load_yaml_file(path), organization_id)

    _logger.info(
        "STOCK_CONFIG_TRACE",
        extra={
            "trace_type": "STOCK_CONFIG_TRACE",
            "config_set_id": config.config_id,
            "config_set_version": config.version,
            "organization_id": organization_id,
            "checksum": config.checksum,
            "default_low_stock_threshold": config.default_low_stock_threshold,
            "horizon_days": config.lot_expiry.horizon_days,
            "urgent_days": config.lot_expiry.urgent_days,
        },
    )
    return config


__all__ = [
    "ConcurrencyPolicy",
    "InventoryConfig",
    "ListingPolicy",
    "LotExpiryPolicy",
    "get_active_config",
]
