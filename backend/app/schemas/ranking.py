from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class RankingPage(BaseModel):
    records: list[dict[str, Any]] = Field(default_factory=list)
    end_cursor: str | None = None
    has_next_page: bool = False
