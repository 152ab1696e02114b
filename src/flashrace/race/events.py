"""
Race lifecycle events, streamed to listeners as JSON lines.

    {"type": "start", "token": 3, "durationMs": 5000, "startedAtMs": ..., "deadlineMs": ...}
    {"type": "lane", "token": 3, "lane": "flashblocks", "kind": "confirm", "state": {...}, ...}
    {"type": "end", "token": 3, "reason": "timeout", "endedAtMs": ..., "lanes": {...}}
"""

import json
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class EndReason(Enum):
    MANUAL = "manual"
    TIMEOUT = "timeout"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    SUPERSEDED = "superseded"
    ABORTED = "aborted"
    ERROR = "error"


class LaneEventKind(Enum):
    SEND = "send"
    CONFIRM = "confirm"
    ERROR = "error"
    STATUS = "status"


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class RaceEvent:
    type: str
    token: int
    payload: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def start(cls, token: int, duration_ms: int, started_at_ms: int, deadline_ms: int) -> "RaceEvent":
        return cls("start", token, {
            "durationMs": duration_ms,
            "startedAtMs": started_at_ms,
            "deadlineMs": deadline_ms,
        })

    @classmethod
    def lane(cls, token: int, lane: str, kind: LaneEventKind, state: Dict[str, Any], **extra: Any) -> "RaceEvent":
        payload = {"lane": lane, "kind": kind.value, "atMs": now_ms(), "state": state}
        payload.update({key: value for key, value in extra.items() if value is not None})
        return cls("lane", token, payload)

    @classmethod
    def end(cls, token: int, reason: EndReason, lanes: Dict[str, Any], message: Optional[str] = None) -> "RaceEvent":
        payload = {"reason": reason.value, "endedAtMs": now_ms(), "lanes": lanes}
        if message:
            payload["message"] = message
        return cls("end", token, payload)

    @property
    def is_end(self) -> bool:
        return self.type == "end"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "token": self.token, **self.payload}

    def to_json_line(self) -> str:
        return json.dumps(self.to_dict()) + "\n"
