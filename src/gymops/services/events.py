from __future__ import annotations

import json
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any


@dataclass
class EventLogger:
    """Append-only JSONL audit trail of workflow outcomes for one workspace."""

    path: Path
    workspace: str
    enabled: bool = True

    def log(
        self,
        *,
        event_type: str,
        entity_type: str,
        entity_id: str,
        details: Mapping[str, Any] | None = None,
    ) -> None:
        if not self.enabled:
            return
        payload = {
            "ts": datetime.now(UTC).replace(microsecond=0).isoformat(),
            "workspace": self.workspace,
            "entity_type": entity_type,
            "entity_id": entity_id,
            "event_type": event_type,
            "details": dict(details or {}),
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(payload, default=str) + "\n")

    def read(
        self, entity_id: str | None = None, event_type: str | None = None
    ) -> Iterator[dict[str, Any]]:
        if not self.path.exists():
            return
        with self.path.open(encoding="utf-8") as handle:
            for line in handle:
                if not line.strip():
                    continue
                event = json.loads(line)
                if entity_id is not None and event.get("entity_id") != entity_id:
                    continue
                if event_type is not None and event.get("event_type") != event_type:
                    continue
                yield event
