"""Change fan-out after a committed batch.

The core only reports which projects and users a batch touched; a
:class:`Notifier` turns that into whatever live-update channel the host
runs. :class:`PubSub` is the in-process implementation.
"""

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol
from uuid import UUID, uuid4

import structlog

from planboard.utils.dates import isoformat, utcnow

logger = structlog.get_logger()

CHANGED = "changed"


class Notifier(Protocol):
    def notify(self, project_ids: Iterable[UUID], user_ids: Iterable[UUID]) -> None:
        ...


@dataclass(frozen=True)
class ChangeEvent:
    """A published event."""

    topic: str
    type: str
    project_id: UUID | None = None
    user_id: UUID | None = None
    id: UUID = field(default_factory=uuid4)
    ts: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        data = {
            "id": str(self.id),
            "ts": isoformat(self.ts),
            "topic": self.topic,
            "type": self.type,
        }
        if self.project_id is not None:
            data["projectId"] = str(self.project_id)
        if self.user_id is not None:
            data["userId"] = str(self.user_id)
        return data


Handler = Callable[[ChangeEvent], None]


def project_topic(project_id: UUID) -> str:
    return f"project:{project_id}"


def user_topic(user_id: UUID) -> str:
    return f"user:{user_id}"


class PubSub:
    """Topic-keyed in-process subscriber registry."""

    def __init__(self):
        # Map of topic -> handlers in subscription order
        self.listeners: dict[str, list[Handler]] = {}

    def subscribe(self, topic: str, handler: Handler) -> Callable[[], None]:
        """Register a handler; the returned callable unsubscribes it."""
        self.listeners.setdefault(topic, []).append(handler)
        return lambda: self.unsubscribe(topic, handler)

    def unsubscribe(self, topic: str, handler: Handler) -> None:
        handlers = self.listeners.get(topic)
        if not handlers:
            return
        if handler in handlers:
            handlers.remove(handler)
        if not handlers:
            del self.listeners[topic]

    def publish(self, event: ChangeEvent) -> int:
        """Deliver an event to every handler on its topic.

        A failing handler is logged and does not stop delivery to the
        rest. Returns the number of handlers that received the event.
        """
        delivered = 0
        for handler in list(self.listeners.get(event.topic, ())):
            try:
                handler(event)
            except Exception:
                logger.exception("pubsub_handler_failed", topic=event.topic)
                continue
            delivered += 1
        return delivered

    def notify(self, project_ids: Iterable[UUID], user_ids: Iterable[UUID]) -> None:
        for project_id in project_ids:
            self.publish(
                ChangeEvent(
                    topic=project_topic(project_id), type=CHANGED, project_id=project_id
                )
            )
        for user_id in user_ids:
            self.publish(ChangeEvent(topic=user_topic(user_id), type=CHANGED, user_id=user_id))


_pubsub: PubSub | None = None


def get_notifier() -> PubSub:
    """Return the process-wide pub/sub instance."""
    global _pubsub
    if _pubsub is None:
        _pubsub = PubSub()
    return _pubsub
