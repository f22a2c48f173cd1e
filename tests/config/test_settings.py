"""KernelSettings construction and YAML loading."""

from decimal import Decimal

import pytest

from textile_kernel.config import KernelSettings, load_settings
from textile_kernel.domain.doc_numbers import DocType, ResetPeriod


@pytest.fixture
def no_env(monkeypatch):
    for name in ("TEXTILE_CONFIG", "TEXTILE_DATABASE_URL", "DATABASE_URL"):
        monkeypatch.delenv(name, raising=False)


class TestKernelSettings:

    def test_defaults(self):
        settings = KernelSettings.with_defaults()

        assert settings.lock_timeout_ms == 5000
        assert settings.reconciliation_tolerance_percent == Decimal("1")
        assert settings.enforce_step_up
        assert set(settings.doc_numbers) == set(DocType)

    def test_from_dict_overrides_doc_numbers(self):
        settings = KernelSettings.from_dict({
            "lock_timeout_ms": 2000,
            "doc_numbers": {"GRN": {"prefix": "RCV", "reset_period": "YEARLY", "padding": 5}},
        })

        grn = settings.doc_numbers[DocType.GRN]
        assert grn.prefix == "RCV/"
        assert grn.reset_period is ResetPeriod.YEARLY
        assert grn.padding == 5
        assert settings.doc_numbers[DocType.PO].prefix == "PO/"

    def test_unknown_keys_rejected(self):
        with pytest.raises(ValueError, match="lock_timeout"):
            KernelSettings.from_dict({"lock_timeout": 10})

    @pytest.mark.parametrize(
        "data",
        [
            {"lock_timeout_ms": -1},
            {"log_level": "LOUD"},
            {"pool_size": 0},
            {"reconciliation_tolerance_percent": "-0.5"},
            {"doc_numbers": {"WO": {"padding": 11}}},
        ],
    )
    def test_invalid_values(self, data):
        with pytest.raises(ValueError):
            KernelSettings.from_dict(data)


class TestLoadSettings:

    def test_defaults_without_file(self, no_env):
        assert load_settings() == KernelSettings.with_defaults()

    def test_yaml_file(self, no_env, tmp_path):
        path = tmp_path / "kernel.yaml"
        path.write_text(
            "lock_timeout_ms: 1500\n"
            "reconciliation_tolerance_percent: \"2.5\"\n"
            "doc_numbers:\n"
            "  ADJ: {prefix: \"ADJ-\", reset_period: NEVER}\n",
            encoding="utf-8",
        )

        settings = load_settings(path)

        assert settings.lock_timeout_ms == 1500
        assert settings.reconciliation_tolerance_percent == Decimal("2.5")
        assert settings.doc_numbers[DocType.ADJ].prefix == "ADJ-/"
        assert settings.doc_numbers[DocType.ADJ].reset_period is ResetPeriod.NEVER

    def test_config_path_from_environment(self, no_env, tmp_path, monkeypatch):
        path = tmp_path / "kernel.yaml"
        path.write_text("log_level: DEBUG\n", encoding="utf-8")
        monkeypatch.setenv("TEXTILE_CONFIG", str(path))

        assert load_settings().log_level == "DEBUG"

    def test_database_url_from_environment(self, no_env, monkeypatch):
        monkeypatch.setenv("TEXTILE_DATABASE_URL", "postgresql://erp@db/erp")
        assert load_settings().database_url == "postgresql://erp@db/erp"

    def test_missing_file(self, no_env, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_settings(tmp_path / "absent.yaml")
