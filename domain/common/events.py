"""
Domain events shared base.

Events are plain dataclasses collected by application services during a unit of
work and handed to the publisher port only after the commit succeeded.
"""
from __future__ import annotations

from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Any
import uuid


@dataclass
class DomainEvent:
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()), kw_only=True)
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc), kw_only=True)

    @property
    def name(self) -> str:
        return type(self).__name__

    def to_payload(self) -> dict[str, Any]:
        data = asdict(self)
        data["occurred_at"] = self.occurred_at.isoformat()
        for key, value in list(data.items()):
            if not isinstance(value, (str, int, float, bool, type(None), list, dict)):
                data[key] = str(value)
        return data
