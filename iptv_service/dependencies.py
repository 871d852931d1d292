"""
Dependency Injection Configuration

Builds the service graph (provider clients, channel directory, guide cache,
scheduler) from settings and exposes it to the HTTP layer. Tests install
their own registry with fake collaborators via set_registry().
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import tzinfo

import httpx

from iptv_service.config import CustomSettings
from iptv_service.providers.base import (
    ChannelAcquirer,
    ProgramFetcher,
    ProviderSession,
    StaticSessionProvider,
)
from iptv_service.providers.hwctc import HWCTCChannelClient, build_program_fetcher
from iptv_service.services.channel_directory import ChannelDirectory
from iptv_service.services.classification import compile_exclude_rule
from iptv_service.services.epg_aggregator import EPGAggregator, FetchWindow, GuideCache
from iptv_service.services.logo_store import LogoStore
from iptv_service.services.refresh_coordinator import RefreshCoordinator
from iptv_service.services.scheduler_service import RefreshScheduler
from iptv_service.utils.timezone import load_timezone


logger = logging.getLogger(__name__)


@dataclass
class ServiceRegistry:
    """Everything the HTTP layer needs, owned for the lifetime of the app."""
    settings: CustomSettings
    directory: ChannelDirectory
    guide: GuideCache
    coordinator: RefreshCoordinator
    scheduler: RefreshScheduler
    logos: LogoStore
    tz: tzinfo
    http_client: httpx.AsyncClient | None = None

    async def aclose(self) -> None:
        self.scheduler.shutdown()
        if self.http_client is not None:
            await self.http_client.aclose()


def build_registry(
    settings: CustomSettings,
    *,
    acquirer: ChannelAcquirer | None = None,
    fetcher: ProgramFetcher | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> ServiceRegistry:
    """
    Assemble the service graph.

    Provider collaborators default to the HWCTC implementations sharing one
    httpx client; pass acquirer/fetcher to substitute them.
    """
    tz = load_timezone(settings.timezone)

    if acquirer is None or fetcher is None:
        if http_client is None:
            http_client = httpx.AsyncClient(timeout=settings.http_timeout_sec)
        sessions = StaticSessionProvider(ProviderSession(
            host=settings.provider_host,
            jsessionid=settings.provider_jsessionid,
            user_token=settings.provider_user_token or None,
        ))
        if acquirer is None:
            acquirer = HWCTCChannelClient(http_client, sessions, settings.provider_headers)
        if fetcher is None:
            fetcher = build_program_fetcher(
                settings.epg_dialect, http_client, sessions, settings.provider_headers
            )

    directory = ChannelDirectory(
        acquirer,
        settings.rule_set(),
        compile_exclude_rule(settings.channel_exclude_rule),
        fetch_timeout=settings.http_timeout_sec * 3,
    )
    aggregator = EPGAggregator(
        fetcher,
        FetchWindow(settings.epg_back_days, settings.epg_preview_days),
        tz=tz,
        max_concurrency=settings.epg_max_concurrency,
    )
    guide = GuideCache(aggregator)
    coordinator = RefreshCoordinator()
    scheduler = RefreshScheduler(
        directory,
        guide,
        coordinator,
        retry_wait=settings.channel_refresh_retry_wait_sec,
        misfire_grace_sec=settings.scheduler_misfire_grace_sec,
    )
    logger.debug("Service registry built (EPG dialect: %s)", settings.epg_dialect)

    return ServiceRegistry(
        settings=settings,
        directory=directory,
        guide=guide,
        coordinator=coordinator,
        scheduler=scheduler,
        logos=LogoStore(settings.logo_dir),
        tz=tz,
        http_client=http_client,
    )


# Registry installed by the application lifespan (or by tests)
_registry: ServiceRegistry | None = None


def set_registry(registry: ServiceRegistry | None) -> None:
    global _registry
    _registry = registry


def get_registry() -> ServiceRegistry:
    """
    FastAPI dependency returning the active registry.

    Raises:
        RuntimeError: If the application has not been started
    """
    if _registry is None:
        raise RuntimeError("Service registry not initialized. Application not started?")
    return _registry
