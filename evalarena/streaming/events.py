"""
Wire events for the evaluation stream.

Each event is one Server-Sent-Events frame: ``data: <json>\\n\\n``.
"""

import json
from dataclasses import dataclass
from typing import Any, Dict, Optional

SYSTEM_MODEL = "system"


@dataclass(frozen=True)
class StreamEvent:
    """One frame of the evaluation stream.

    ``response`` is the full accumulated text for ``model`` so far; ``delta``
    is the fragment that extended it. Absent optional fields are omitted
    from the wire form.
    """

    model: str
    response: str = ""
    delta: Optional[str] = None
    error: Optional[str] = None
    metrics: Optional[Dict[str, Any]] = None
    done: Optional[bool] = None

    @property
    def is_terminal(self) -> bool:
        return self.error is not None or self.metrics is not None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"model": self.model, "response": self.response}
        if self.delta is not None:
            data["delta"] = self.delta
        if self.error is not None:
            data["error"] = self.error
        if self.metrics is not None:
            data["metrics"] = self.metrics
        if self.done is not None:
            data["done"] = self.done
        return data

    def to_sse(self) -> bytes:
        payload = json.dumps(self.to_dict(), ensure_ascii=False)
        return f"data: {payload}\n\n".encode("utf-8")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StreamEvent":
        return cls(
            model=str(data["model"]),
            response=data.get("response") or "",
            delta=data.get("delta"),
            error=data.get("error"),
            metrics=data.get("metrics"),
            done=data.get("done"),
        )

    @classmethod
    def system_done(cls) -> "StreamEvent":
        return cls(model=SYSTEM_MODEL, response="", done=True)

    @classmethod
    def system_error(cls, message: str) -> "StreamEvent":
        return cls(model=SYSTEM_MODEL, response="", error=message)
