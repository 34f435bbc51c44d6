from __future__ import annotations

from app.config.settings import Settings
from app.errors import ConfigInvalid, CredentialMissing


def validate_settings(settings: Settings) -> None:
    if not (settings.ranking.api_token or "").strip():
        raise CredentialMissing("Ranking API token is not configured.")
    if not (settings.market_data.api_key or "").strip():
        raise CredentialMissing("Market data API key is not configured.")

    problems: list[str] = []
    positive = {
        "ranking.page_size": settings.ranking.page_size,
        "ranking.interval_seconds": settings.ranking.interval_seconds,
        "ranking.rate_per_second": settings.ranking.rate_per_second,
        "ranking.burst": settings.ranking.burst,
        "ranking.request_timeout_seconds": settings.ranking.request_timeout_seconds,
        "market_data.interval_seconds": settings.market_data.interval_seconds,
        "market_data.cache_ttl_seconds": settings.market_data.cache_ttl_seconds,
        "market_data.timeout_seconds": settings.market_data.timeout_seconds,
        "node_stats.interval_seconds": settings.node_stats.interval_seconds,
        "node_stats.timeout_seconds": settings.node_stats.timeout_seconds,
        "retry.deadline_seconds": settings.retry.deadline_seconds,
        "credential.check_interval_seconds": settings.credential.check_interval_seconds,
    }
    for name, value in positive.items():
        if value <= 0:
            problems.append(f"{name} must be positive")

    if settings.retry.max_retries < 0:
        problems.append("retry.max_retries must not be negative")
    if settings.retry.base_delay_seconds < 0 or settings.retry.max_jitter_seconds < 0:
        problems.append("retry delays must not be negative")
    if settings.credential.warning_threshold_days < 0:
        problems.append("credential.warning_threshold_days must not be negative")
    if not [part for part in settings.market_data.command if part.strip()]:
        problems.append("market_data.command must not be empty")
    if settings.node_stats.enabled and not settings.node_stats.queries:
        problems.append("node_stats.queries must not be empty")
    names = [query.name for query in settings.node_stats.queries]
    if len(names) != len(set(names)):
        problems.append("node_stats.queries names must be unique")

    if problems:
        raise ConfigInvalid("Invalid configuration: " + ", ".join(problems))
