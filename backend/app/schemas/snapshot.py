from __future__ import annotations

import datetime
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class Node(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    pub_key: str = Field(validation_alias=AliasChoices("pub_key", "pubkey", "pubKey"))
    alias: str = ""
    capacity: int = 0
    channels: int = Field(
        default=0, validation_alias=AliasChoices("channels", "channel_count", "channelCount")
    )
    rank: int | None = None
    rank_change: dict[str, int | None] = Field(
        default_factory=dict, validation_alias=AliasChoices("rank_change", "rankChange")
    )
    uptime_percentage: float | None = Field(
        default=None, validation_alias=AliasChoices("uptime_percentage", "uptimePercentage")
    )
    success_rate: float | None = Field(
        default=None, validation_alias=AliasChoices("success_rate", "successRate")
    )
    fee_rates: list[float] = Field(
        default_factory=list, validation_alias=AliasChoices("fee_rates", "feeRates")
    )
    avg_routing_fee: float | None = Field(
        default=None, validation_alias=AliasChoices("avg_routing_fee", "avgRoutingFee")
    )


class MarketQuote(BaseModel):
    model_config = ConfigDict(extra="allow")

    price: float
    timestamp: int | float | str


class Snapshot(BaseModel):
    nodes: list[Node] = Field(default_factory=list)
    last_updated: datetime.datetime | None = None
    market_data: dict[str, Any] = Field(default_factory=dict)
    market_data_updated: datetime.datetime | None = None
    local_stats: dict[str, Any] = Field(default_factory=dict)
    local_stats_updated: datetime.datetime | None = None


def normalize_node(record: dict[str, Any]) -> Node:
    """Validate an upstream node record and fill derived fields it lacks."""
    node = Node.model_validate(record)
    if node.avg_routing_fee is None:
        node.avg_routing_fee = (
            sum(node.fee_rates) / len(node.fee_rates) if node.fee_rates else 0.0
        )
    if node.uptime_percentage is None:
        node.uptime_percentage = 0.0
    if node.success_rate is None:
        node.success_rate = 0.0
    return node
