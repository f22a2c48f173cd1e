"""
Engine bootstrap.

Validates:
- Creating an engine turns on the append-only guards for the stock ledger
  and the audit log
- init_engine_from_settings passes the configured pool options through
- get_engine / get_session_factory fail loudly before initialization
"""

import pytest
from sqlalchemy import event

from textile_kernel.config import KernelSettings
from textile_kernel.db import engine as engine_module
from textile_kernel.db import immutability
from textile_kernel.db.engine import get_engine, get_session_factory, init_engine_from_settings


class TestBootstrap:

    def test_engine_init_installs_append_only_listeners(self, db_engine):
        targets = immutability._targets()
        for model_name, event_name, fn in immutability._LISTENERS:
            assert event.contains(targets[model_name], event_name, fn)

    def test_get_engine_returns_initialized_engine(self, db_engine):
        assert get_engine() is db_engine

    def test_settings_map_to_engine_options(self, monkeypatch):
        calls = []

        def fake_init(url, **options):
            calls.append((url, options))
            return "engine"

        monkeypatch.setattr(engine_module, "init_engine_from_url", fake_init)
        settings = KernelSettings(
            database_url="postgresql://textile@db/erp",
            pool_size=7,
            max_overflow=3,
            echo=True,
        )

        assert init_engine_from_settings(settings, pool_timeout=5) == "engine"
        assert calls == [
            (
                "postgresql://textile@db/erp",
                {"echo": True, "pool_size": 7, "max_overflow": 3, "pool_timeout": 5},
            )
        ]


class TestUninitialized:

    def test_get_engine_before_init(self, monkeypatch):
        monkeypatch.setattr(engine_module, "_engine", None)
        with pytest.raises(RuntimeError, match="not initialized"):
            get_engine()

    def test_get_session_factory_before_init(self, monkeypatch):
        monkeypatch.setattr(engine_module, "_SessionFactory", None)
        with pytest.raises(RuntimeError, match="not initialized"):
            get_session_factory()
