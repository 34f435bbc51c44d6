from __future__ import annotations

from typing import List

from pydantic import AliasChoices, BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class RankingSettings(BaseModel):
    api_url: str = "https://api.amboss.space/graphql"
    api_token: str | None = None
    page_size: int = 100
    interval_seconds: float = 600.0
    rate_per_second: float = 1.0
    burst: int = 2
    request_timeout_seconds: float = 30.0


class MarketDataSettings(BaseModel):
    command: List[str] = Field(
        default_factory=lambda: ["python3", "scripts/market_data.py"]
    )
    api_key: str | None = None
    interval_seconds: float = 300.0
    cache_ttl_seconds: float = 240.0
    timeout_seconds: float = 120.0


class NodeQuery(BaseModel):
    """One CLI sub-query; ``result_key`` keeps only that field of the output."""

    name: str
    command: str
    args: List[str] = Field(default_factory=list)
    result_key: str | None = None
    window_hours: float | None = None


def default_node_queries() -> List[NodeQuery]:
    return [
        NodeQuery(name="info", command="getinfo"),
        NodeQuery(name="channels", command="listchannels", result_key="channels"),
        NodeQuery(name="wallet_balance", command="walletbalance"),
        NodeQuery(name="channel_balance", command="channelbalance"),
        NodeQuery(name="peers", command="listpeers", result_key="peers"),
        NodeQuery(name="fwdinghistory", command="fwdinghistory", window_hours=24),
    ]


class NodeStatsSettings(BaseModel):
    cli_path: str = "lncli"
    rpc_host: str | None = None
    tls_cert_path: str | None = None
    macaroon_path: str | None = None
    queries: List[NodeQuery] = Field(default_factory=default_node_queries)
    interval_seconds: float = 60.0
    timeout_seconds: float = 30.0

    @property
    def enabled(self) -> bool:
        return bool(self.rpc_host and self.tls_cert_path and self.macaroon_path)


class RetrySettings(BaseModel):
    max_retries: int = 3
    base_delay_seconds: float = 1.0
    max_jitter_seconds: float = 1.0
    deadline_seconds: float = 300.0


class CredentialSettings(BaseModel):
    check_interval_seconds: float = 24 * 60 * 60
    warning_threshold_days: int = 30


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="NODERANK_",
        env_nested_delimiter="__",
        env_file=("../.env", ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    log_level: str = Field(
        default="INFO",
        validation_alias=AliasChoices("LOG_LEVEL", "NODERANK_LOG_LEVEL"),
    )
    warmup: bool = True

    ranking: RankingSettings = Field(default_factory=RankingSettings)
    market_data: MarketDataSettings = Field(default_factory=MarketDataSettings)
    node_stats: NodeStatsSettings = Field(default_factory=NodeStatsSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    credential: CredentialSettings = Field(default_factory=CredentialSettings)


settings = Settings()
