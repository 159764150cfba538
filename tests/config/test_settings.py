"""Tests for settings loading, overrides and validation."""

import pytest
import yaml

from ledger_config import get_settings
from ledger_config.loader import (
    DATABASE_URL_ENV,
    compute_checksum,
    load_settings,
    merge_settings,
)
from ledger_config.schema import LedgerSettings


@pytest.fixture(autouse=True)
def _no_database_env(monkeypatch):
    monkeypatch.delenv(DATABASE_URL_ENV, raising=False)


@pytest.fixture
def override_file(tmp_path):
    def _write(data):
        path = tmp_path / "ledger.yaml"
        path.write_text(yaml.safe_dump(data))
        return path

    return _write


class TestDefaults:
    def test_packaged_defaults_match_schema_defaults(self):
        assert load_settings() == LedgerSettings()

    def test_default_values(self):
        settings = load_settings()

        assert settings.matching.date_tolerance_days == 3
        assert settings.payables.default_payment_terms == "Net 30"
        assert settings.accounts.accounts_payable == "2000"
        assert settings.accounts.cash == "1000"


class TestOverrides:
    def test_section_merge_keeps_other_keys(self, override_file):
        path = override_file({"matching": {"date_tolerance_days": 5}, "accounts": {"cash": 1010}})

        settings = load_settings(path)

        assert settings.matching.date_tolerance_days == 5
        assert settings.accounts.cash == "1010"
        assert settings.accounts.accounts_receivable == "1200"

    def test_environment_replaces_database_url(self, monkeypatch, override_file):
        path = override_file({"database": {"url": "sqlite:///from-file.db"}})
        monkeypatch.setenv(DATABASE_URL_ENV, "postgresql://ledger@db/ledger")

        assert load_settings(path).database.url == "postgresql://ledger@db/ledger"

    def test_merge_is_section_wise(self):
        merged = merge_settings({"matching": {"date_tolerance_days": 3}}, {"logging": {"level": "DEBUG"}})

        assert merged == {"matching": {"date_tolerance_days": 3}, "logging": {"level": "DEBUG"}}


class TestValidation:
    @pytest.mark.parametrize(
        "data",
        [
            {"matching": {"window": 3}},
            {"reporting": {"format": "pdf"}},
            {"matching": {"date_tolerance_days": "three"}},
            {"database": {"echo": "yes"}},
            {"matching": {"date_tolerance_days": -1}},
            {"matching": 7},
        ],
        ids=["unknown-key", "unknown-section", "bad-int", "bad-bool", "negative-tolerance", "not-a-mapping"],
    )
    def test_rejected(self, override_file, data):
        with pytest.raises(ValueError):
            load_settings(override_file(data))

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_settings(tmp_path / "absent.yaml")


class TestChecksum:
    def test_deterministic(self):
        assert compute_checksum(load_settings()) == compute_checksum(LedgerSettings())

    def test_changes_with_settings(self, override_file):
        changed = load_settings(override_file({"matching": {"date_tolerance_days": 1}}))

        assert compute_checksum(changed) != compute_checksum(LedgerSettings())

    def test_get_settings_emits_trace(self, captured_logs):
        settings = get_settings()

        traces = [r for r in captured_logs() if r["message"] == "LEDGER_CONFIG_TRACE"]
        assert len(traces) == 1
        assert traces[0]["checksum"] == compute_checksum(settings)
        assert traces[0]["dialect"] == "sqlite"
