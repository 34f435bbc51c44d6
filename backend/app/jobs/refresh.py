from __future__ import annotations

from app.cache import TTLCache
from app.config.settings import Settings
from app.engine.backoff import BackoffPolicy
from app.engine.rate_limiter import TokenBucket
from app.engine.retry import FetchTask
from app.providers import market_data, node_stats, ranking
from app.store import SnapshotStore


def build_backoff_policy(settings: Settings) -> BackoffPolicy:
    return BackoffPolicy(
        base_delay=settings.retry.base_delay_seconds,
        max_retries=settings.retry.max_retries,
        max_jitter=settings.retry.max_jitter_seconds,
    )


def build_fetch_tasks(settings: Settings, store: SnapshotStore) -> list[FetchTask]:
    policy = build_backoff_policy(settings)
    limiter = TokenBucket(
        ranking.NAME,
        rate_per_second=settings.ranking.rate_per_second,
        capacity=settings.ranking.burst,
    )
    # Cache and snapshot share one lock.
    cache = TTLCache(market_data.NAME, settings.market_data.cache_ttl_seconds, store.lock)

    ranking_fetcher = ranking.RankingFetcher(settings.ranking, store, limiter)
    market_fetcher = market_data.MarketDataFetcher(settings.market_data, store, cache)
    stats_fetcher = node_stats.NodeStatsFetcher(settings.node_stats, store)

    return [
        FetchTask(
            name=ranking.NAME,
            interval=settings.ranking.interval_seconds,
            fetch=ranking_fetcher.fetch,
            policy=policy,
        ),
        FetchTask(
            name=market_data.NAME,
            interval=settings.market_data.interval_seconds,
            fetch=market_fetcher.fetch,
            policy=policy,
        ),
        FetchTask(
            name=node_stats.NAME,
            interval=settings.node_stats.interval_seconds,
            fetch=stats_fetcher.fetch,
            policy=policy,
        ),
    ]
