"""
Change notices emitted after every committed mutation.

A notice names the table, the operation and the owning event, which is all a
listener needs to decide which cached views are stale.
"""
import json
from dataclasses import dataclass, asdict
from typing import List, Optional

TABLES = ("events", "guests", "wishes")
OPERATIONS = ("insert", "update", "delete")


@dataclass(frozen=True)
class Change:
    table: str
    op: str
    event_id: str
    row_id: Optional[str] = None

    @property
    def routing_key(self) -> str:
        return f"{self.table}.{self.op}.{self.event_id}"

    def to_json(self) -> bytes:
        return json.dumps(asdict(self)).encode()

    @classmethod
    def from_json(cls, body: bytes) -> "Change":
        data = json.loads(body.decode())
        if data.get("table") not in TABLES or data.get("op") not in OPERATIONS or not data.get("event_id"):
            raise ValueError(f"Malformed change notice: {data!r}")
        return cls(
            table=data["table"],
            op=data["op"],
            event_id=str(data["event_id"]),
            row_id=str(data["row_id"]) if data.get("row_id") else None,
        )


def cache_patterns_for(change: Change) -> List[str]:
    """Cache key patterns made stale by ``change``."""
    patterns = ["events:list:*", f"analytics:{change.event_id}:*"]
    if change.table == "wishes":
        patterns.append(f"wishes:{change.event_id}:*")
    return patterns
