"""
Per-invocation structured telemetry.

Each build_page() call gets its own TelemetryRecorder. Events are kept in
order on the recorder and also emitted through the module logger with the
payload attached as `extra`, so log shippers see structured fields.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TelemetryEvent:
    name: str
    payload: Dict[str, Any]
    level: int = logging.INFO

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "payload": dict(self.payload)}


@dataclass
class TelemetryRecorder:
    events: List[TelemetryEvent] = field(default_factory=list)

    def emit(self, name: str, level: int = logging.INFO, **payload: Any) -> TelemetryEvent:
        event = TelemetryEvent(name=name, payload=payload, level=level)
        self.events.append(event)
        logger.log(level, name, extra={"event": name, "payload": payload})
        return event

    def named(self, name: str) -> List[TelemetryEvent]:
        return [e for e in self.events if e.name == name]

    def to_list(self) -> List[Dict[str, Any]]:
        return [e.to_dict() for e in self.events]


def ensure_recorder(telemetry: Optional[TelemetryRecorder]) -> TelemetryRecorder:
    """Stages may be called standalone; give them a throwaway recorder."""
    return telemetry if telemetry is not None else TelemetryRecorder()
