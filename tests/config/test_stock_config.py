"""Tests for loading, merging and validating the inventory configuration."""

import textwrap

import pytest
import yaml

from stock_config import get_active_config
from stock_config.loader import compute_checksum, effective_values, parse_inventory_config

BASE = {
    "config_id": "test-set",
    "version": 3,
    "default_low_stock_threshold": 5,
    "lot_expiry": {"horizon_days": 90, "urgent_days": 30},
    "listing": {"default_page_size": 50, "max_page_size": 200},
    "concurrency": {"max_conflict_retries": 3},
    "organizations": {
        "org-pharma": {
            "default_low_stock_threshold": 20,
            "lot_expiry": {"horizon_days": 180},
        },
    },
}


def _write(tmp_path, data):
    path = tmp_path / "inventory.yaml"
    path.write_text(yaml.safe_dump(data))
    return path


class TestDefaultSet:

    def test_shipped_defaults(self):
        config = get_active_config()
        assert config.config_id == "stock-default"
        assert config.default_low_stock_threshold == 5
        assert config.lot_expiry.horizon_days == 90
        assert config.lot_expiry.urgent_days == 30
        assert config.listing.default_page_size == 50
        assert config.listing.max_page_size == 200
        assert config.concurrency.max_conflict_retries == 3
        assert len(config.checksum) == 64

    def test_unknown_organization_uses_defaults(self):
        assert get_active_config("org-anything").default_low_stock_threshold == 5

    def test_emits_trace(self, captured_logs):
        get_active_config("org-1")
        traces = [r for r in captured_logs() if r["message"] == "STOCK_CONFIG_TRACE"]
        assert len(traces) == 1
        assert traces[0]["config_set_id"] == "stock-default"
        assert traces[0]["organization_id"] == "org-1"
        assert traces[0]["logger"] == "stock_kernel.config"


class TestOverrides:

    def test_section_merges_key_by_key(self, tmp_path):
        config = get_active_config("org-pharma", config_path=_write(tmp_path, BASE))
        assert config.default_low_stock_threshold == 20
        assert config.lot_expiry.horizon_days == 180
        assert config.lot_expiry.urgent_days == 30
        assert config.organization_id == "org-pharma"
        assert config.version == 3

    def test_checksum_tracks_effective_values(self, tmp_path):
        path = _write(tmp_path, BASE)
        default = get_active_config(None, config_path=path)
        pharma = get_active_config("org-pharma", config_path=path)
        other = get_active_config("org-other", config_path=path)
        assert default.checksum == other.checksum
        assert default.checksum != pharma.checksum

    def test_unknown_override_key(self):
        data = dict(BASE, organizations={"org-x": {"colour": "red"}})
        with pytest.raises(ValueError, match="colour"):
            effective_values(data, "org-x")

    def test_effective_values_do_not_alias_input(self):
        values = effective_values(BASE, "org-pharma")
        values["lot_expiry"]["horizon_days"] = 1
        assert BASE["lot_expiry"]["horizon_days"] == 90


class TestValidation:

    @pytest.mark.parametrize(
        "patch, key",
        [
            ({"default_low_stock_threshold": -1}, "default_low_stock_threshold"),
            ({"default_low_stock_threshold": "5"}, "default_low_stock_threshold"),
            ({"lot_expiry": {"horizon_days": 0, "urgent_days": 0}}, "horizon_days"),
            ({"lot_expiry": {"horizon_days": 10, "urgent_days": 30}}, "urgent_days"),
            ({"listing": {"default_page_size": 0, "max_page_size": 10}}, "default_page_size"),
            ({"listing": {"default_page_size": 300, "max_page_size": 200}}, "default_page_size"),
            ({"concurrency": {"max_conflict_retries": -1}}, "max_conflict_retries"),
        ],
    )
    def test_out_of_range(self, patch, key):
        with pytest.raises(ValueError, match=key):
            parse_inventory_config(dict(BASE, **patch))

    def test_empty_document_uses_built_in_defaults(self):
        config = parse_inventory_config({})
        assert config.default_low_stock_threshold == 5
        assert config.lot_expiry.horizon_days == 90

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(config_path=tmp_path / "missing.yaml")

    def test_malformed_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text(textwrap.dedent("""\
            lot_expiry:
              horizon_days: [90
        """))
        with pytest.raises(yaml.YAMLError):
            get_active_config(config_path=path)


class TestChecksum:

    def test_key_order_irrelevant(self):
        assert compute_checksum({"a": 1, "b": 2}) == compute_checksum({"b": 2, "a": 1})
