"""Tests for the service factory — backend and provider selection."""

from __future__ import annotations

import pytest
from pydantic import SecretStr

from pricewatch.core.config import DatabaseConfig, EmailConfig, Settings
from pricewatch.monitor.channels import LogChannel, ResendChannel
from pricewatch.scheduler.factory import create_channel, create_repository, create_service
from pricewatch.scheduler.service import MonitorService
from pricewatch.store.memory import InMemoryRepository
from pricewatch.store.supabase import SupabaseRepository


class TestCreateRepository:
    def test_memory(self) -> None:
        assert isinstance(create_repository(DatabaseConfig()), InMemoryRepository)

    async def test_supabase(self) -> None:
        repo = create_repository(DatabaseConfig(
            backend="supabase",
            url="https://abc.supabase.co",
            service_role_key=SecretStr("srk"),
        ))
        assert isinstance(repo, SupabaseRepository)
        await repo.close()

    def test_supabase_requires_url(self) -> None:
        with pytest.raises(ValueError, match="database.url"):
            create_repository(DatabaseConfig(backend="supabase"))

    def test_unknown_backend(self) -> None:
        with pytest.raises(ValueError, match="unknown database backend"):
            create_repository(DatabaseConfig(backend="sqlite"))


class TestCreateChannel:
    def test_log(self) -> None:
        assert isinstance(create_channel(EmailConfig()), LogChannel)

    def test_resend(self) -> None:
        channel = create_channel(EmailConfig(provider="resend", api_key=SecretStr("re_123")))
        assert isinstance(channel, ResendChannel)

    def test_unknown_provider(self) -> None:
        with pytest.raises(ValueError, match="unknown email provider"):
            create_channel(EmailConfig(provider="smtp"))


class TestCreateService:
    def test_defaults_build_memory_stack(self) -> None:
        service = create_service(Settings())
        assert isinstance(service, MonitorService)
        assert service.running is False
        assert service.monitor.cycle_running is False

    def test_injected_repository_is_used(self) -> None:
        repo = InMemoryRepository()
        service = create_service(Settings(), repository=repo)
        assert service.health._repo is repo
