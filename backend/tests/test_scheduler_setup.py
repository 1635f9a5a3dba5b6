"""
Test Suite: Scheduler wiring and store configuration
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from apscheduler.triggers.interval import IntervalTrigger

from database import create_store, get_store_backend, validate_required_env_vars
from services.scheduler_setup import make_lock_sweep_job, setup_scheduler
from storage.memory_store import InMemoryDocumentStore
from utils.environment import get_environment


class TestSchedulerSetup:

    def test_registers_hourly_sweep(self, store):
        scheduler = MagicMock()

        setup_scheduler(scheduler, store)

        scheduler.add_job.assert_called_once()
        args, kwargs = scheduler.add_job.call_args
        assert isinstance(args[1], IntervalTrigger)
        assert args[1].interval.total_seconds() == 3600
        assert kwargs["id"] == "login_lock_sweep"
        assert kwargs["max_instances"] == 1
        assert kwargs["coalesce"] is True

    @pytest.mark.asyncio
    async def test_job_runs_sweep(self, store):
        with patch("services.scheduler_setup.LockSweeper") as sweeper_cls:
            sweeper_cls.return_value.sweep = AsyncMock(return_value=3)
            await make_lock_sweep_job(store)()

        sweeper_cls.assert_called_once_with(store)
        sweeper_cls.return_value.sweep.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_job_failure_is_logged_not_raised(self, store, caplog):
        with patch("services.scheduler_setup.LockSweeper") as sweeper_cls:
            sweeper_cls.return_value.sweep = AsyncMock(side_effect=RuntimeError("store down"))
            await make_lock_sweep_job(store)()

        assert "store down" in caplog.text


class TestStoreConfiguration:

    def test_memory_backend(self, monkeypatch):
        monkeypatch.setenv("ENVIRONMENT", "development")
        assert isinstance(create_store("memory"), InMemoryDocumentStore)

    def test_memory_backend_refused_in_production(self, monkeypatch):
        monkeypatch.setenv("ENVIRONMENT", "production")
        with pytest.raises(ValueError):
            validate_required_env_vars("memory")

    def test_mongo_backend_requires_url(self, monkeypatch):
        monkeypatch.delenv("MONGO_URL", raising=False)
        monkeypatch.delenv("DB_NAME", raising=False)
        with pytest.raises(ValueError) as exc_info:
            validate_required_env_vars("mongo")
        assert "MONGO_URL" in str(exc_info.value)

    def test_unknown_backend(self, monkeypatch):
        monkeypatch.setenv("STORE_BACKEND", "redis")
        with pytest.raises(ValueError):
            get_store_backend()

    def test_invalid_environment_defaults_to_development(self, monkeypatch):
        monkeypatch.setenv("ENVIRONMENT", "staging-ish")
        assert get_environment() == "development"
