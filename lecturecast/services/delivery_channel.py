"""
Session-scoped publish/subscribe rooms for lecture events.

A subscriber is an asyncio.Queue plus the session it joined. Events published
for a session go to that session's room. When the room is empty the event is
broadcast to every connected subscriber with `targetSession` set, and clients
drop events meant for other sessions. Delivery is at-most-once: nothing is
buffered for subscribers that connect later.
"""

import asyncio
import itertools
from typing import Any, Dict, Optional, Set

from lecturecast.logging_config import get_logger
from lecturecast.models.events import ChannelEvent, JoinedPayload, build_event

logger = get_logger(__name__)

_subscriber_ids = itertools.count(1)


class Subscriber:
    """One connected client's outbound event queue."""

    def __init__(self, maxsize: int = 1000):
        self.id = next(_subscriber_ids)
        self.queue: "asyncio.Queue[Dict[str, Any]]" = asyncio.Queue(maxsize=maxsize)
        self.session_id: Optional[str] = None

    def deliver(self, envelope: Dict[str, Any]) -> None:
        try:
            self.queue.put_nowait(envelope)
        except asyncio.QueueFull:
            # Slow consumer: drop the oldest event to make room
            self.queue.get_nowait()
            self.queue.put_nowait(envelope)
            logger.warning(f"[CHANNEL] Subscriber {self.id} queue full, dropped oldest event")

    async def get(self) -> Dict[str, Any]:
        return await self.queue.get()

    def __repr__(self) -> str:
        return f"Subscriber(id={self.id}, session={self.session_id})"


class DeliveryChannel:
    """Rooms keyed by session id."""

    def __init__(self, subscriber_queue_size: int = 1000):
        self.subscriber_queue_size = subscriber_queue_size
        self._subscribers: Set[Subscriber] = set()
        self._rooms: Dict[str, Set[Subscriber]] = {}
        self.published = 0
        self.fallback_broadcasts = 0

    def connect(self) -> Subscriber:
        subscriber = Subscriber(self.subscriber_queue_size)
        self._subscribers.add(subscriber)
        logger.debug(f"[CHANNEL] {subscriber} connected")
        return subscriber

    def join(self, subscriber: Subscriber, session_id: str) -> ChannelEvent:
        """Move the subscriber into the session room; the `joined` ack is queued first."""
        ack = build_event("joined", JoinedPayload(sessionId=session_id), session_id)
        subscriber.deliver(ack.model_dump(exclude_none=True))

        self._leave_room(subscriber)
        subscriber.session_id = session_id
        self._rooms.setdefault(session_id, set()).add(subscriber)
        logger.info(f"[CHANNEL] {subscriber} joined session {session_id}")
        return ack

    def _leave_room(self, subscriber: Subscriber) -> None:
        if subscriber.session_id is None:
            return
        room = self._rooms.get(subscriber.session_id)
        if room is not None:
            room.discard(subscriber)
            if not room:
                del self._rooms[subscriber.session_id]

    def disconnect(self, subscriber: Subscriber) -> None:
        self._leave_room(subscriber)
        self._subscribers.discard(subscriber)
        logger.debug(f"[CHANNEL] {subscriber} disconnected")

    def room_size(self, session_id: str) -> int:
        return len(self._rooms.get(session_id, ()))

    def publish(self, session_id: str, event: str, payload: Any) -> int:
        """Validate and deliver an event; returns how many subscribers received it.

        Raises EventValidationError when the payload does not fit the event type.
        """
        envelope = build_event(event, payload, session_id)
        room = self._rooms.get(session_id)

        if room:
            targets = list(room)
        else:
            envelope.targetSession = session_id
            targets = list(self._subscribers)
            self.fallback_broadcasts += 1
            logger.warning(
                f"[CHANNEL] No subscribers in room {session_id} for '{event}', "
                f"broadcasting to {len(targets)} clients"
            )

        data = envelope.model_dump(exclude_none=True)
        for subscriber in targets:
            subscriber.deliver(data)
        self.published += 1
        logger.debug(f"[CHANNEL] published event={event} session={session_id} receivers={len(targets)}")
        return len(targets)

    def send_to(self, subscriber: Subscriber, session_id: str, event: str, payload: Any) -> None:
        """Deliver a validated event to a single subscriber."""
        envelope = build_event(event, payload, session_id)
        subscriber.deliver(envelope.model_dump(exclude_none=True))

    def stats(self) -> Dict[str, int]:
        return {
            'connected': len(self._subscribers),
            'rooms': len(self._rooms),
            'published': self.published,
            'fallbackBroadcasts': self.fallback_broadcasts,
        }
