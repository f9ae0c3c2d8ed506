"""Row-level change notifications delivered by the change feed."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class ChangeType(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class ChangeEvent(BaseModel):
    """
    One mutation of one row.

    new is the row image after the change (absent for DELETE), old the image
    before it (absent for INSERT). Both are keyed by database column names.
    """

    event_type: ChangeType
    table: str
    schema_name: str = "public"
    new: Optional[dict[str, Any]] = None
    old: Optional[dict[str, Any]] = None
    commit_timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    def rows(self) -> list[dict[str, Any]]:
        return [row for row in (self.new, self.old) if row]
