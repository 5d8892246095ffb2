from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, TypedDict


@dataclass
class LogRecord:
    id: str
    text: str
    timestamp: int
    app_name: str | None = None
    directory: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"text": self.text, "timestamp": self.timestamp, "id": self.id}
        if self.app_name:
            data["appName"] = self.app_name
        if self.directory:
            data["directory"] = self.directory
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LogRecord:
        return cls(
            id=data["id"],
            text=data["text"],
            timestamp=int(data["timestamp"]),
            app_name=data.get("appName") or None,
            directory=data.get("directory") or None,
        )


def is_valid_log_item(item: Any) -> bool:
    if not isinstance(item, dict):
        return False
    text = item.get("text")
    timestamp = item.get("timestamp")
    item_id = item.get("id")
    return (
        isinstance(text, str)
        and len(text) > 0
        and isinstance(timestamp, (int, float))
        and not isinstance(timestamp, bool)
        and math.isfinite(timestamp)
        and isinstance(item_id, str)
    )


class HistoryStats(TypedDict):
    totalItems: int
    totalCharacters: int
    averageLength: int
    oldestTimestamp: int | None
    newestTimestamp: int | None


class ExportData(TypedDict):
    version: str
    exportDate: str
    history: list[dict[str, Any]]
    stats: HistoryStats
