"""Events emitted after a shielded operation commits."""

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class Event:
    pool_id: str

    @property
    def name(self) -> str:
        return type(self).__name__

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for key, value in data.items():
            if isinstance(value, int) and not isinstance(value, bool):
                data[key] = str(value)
        data["event"] = self.name
        return data


@dataclass(frozen=True)
class OperationVerified(Event):
    operation_id: str
    kind: str
    outputs: Dict[str, str] = field(default_factory=dict)
    timestamp: str = field(default_factory=_now)


@dataclass(frozen=True)
class NullifierSpent(Event):
    nullifier_hash: int
    operation_id: str


@dataclass(frozen=True)
class CommitmentAdded(Event):
    commitment: int
    leaf_index: int
    root: int
    operation_id: Optional[str] = None


@dataclass(frozen=True)
class RootAccepted(Event):
    root: int
    source: str


Subscriber = Callable[[Event], None]


class EventBus:
    """
    Synchronous fan-out to subscribers.

    Events are published only after state has committed, so a failing
    subscriber is logged and skipped rather than propagated.
    """

    def __init__(self):
        self._subscribers: List[Subscriber] = []

    def subscribe(self, callback: Subscriber) -> None:
        self._subscribers.append(callback)

    def unsubscribe(self, callback: Subscriber) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def publish(self, event: Event) -> None:
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:
                logger.error(f"Subscriber failed on {event.name}", exc_info=True)
