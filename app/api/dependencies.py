"""Shared FastAPI dependencies for process-owned services and source adapters."""

from collections.abc import Sequence
from datetime import timedelta

from fastapi import Request

from app.adapters.sources.artist import ArtistSearchSourceAdapter
from app.adapters.sources.chart import AppleChartSourceAdapter
from app.adapters.sources.lastfm import LastFmClient
from app.adapters.sources.mock import MockSourceAdapter
from app.config import SourceProvider, settings
from app.ports.source import SourcePort
from app.services.rate_limiter import TokenBucketRateLimiter
from app.services.retry import RetryPolicy
from app.services.sampler import ExclusionPolicy


def get_rate_limiter(request: Request) -> TokenBucketRateLimiter:
    return request.app.state.rate_limiter


def get_exclusion_policy() -> ExclusionPolicy:
    return ExclusionPolicy(
        like_window=timedelta(days=settings.like_exclusion_days),
        dislike_window=timedelta(days=settings.dislike_exclusion_days),
        cap=settings.exclusion_cap,
    )


def get_retry_policy() -> RetryPolicy:
    return RetryPolicy(
        max_attempts=settings.source_max_attempts,
        base_delay=settings.source_base_delay_s,
        max_delay=settings.source_max_delay_s,
        jitter_factor=settings.source_jitter_factor,
    )


class SourceFactory:
    """Builds source adapters for the configured provider."""

    def chart(self) -> SourcePort:
        if settings.source_provider == SourceProvider.MOCK:
            return MockSourceAdapter(name="chart")
        return AppleChartSourceAdapter(
            country=settings.chart_country,
            limit=settings.chart_limit,
            timeout=settings.source_timeout_s,
            user_agent=settings.user_agent,
        )

    def artist(self, artist_names: Sequence[str]) -> SourcePort:
        if settings.source_provider == SourceProvider.MOCK:
            return MockSourceAdapter(name="artist", artist_names=artist_names, id_offset=2_000_000)
        return ArtistSearchSourceAdapter(
            artist_names,
            country=settings.chart_country,
            limit=settings.artist_search_limit,
            timeout=settings.source_timeout_s,
            user_agent=settings.user_agent,
        )

    def lastfm(self) -> LastFmClient:
        return LastFmClient(
            settings.lastfm_api_key,
            timeout=settings.source_timeout_s,
            user_agent=settings.user_agent,
        )


def get_source_factory() -> SourceFactory:
    return SourceFactory()
