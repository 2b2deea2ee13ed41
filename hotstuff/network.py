"""Gossip validation and the bridge that carries consensus messages over the network."""

from __future__ import annotations

import asyncio
import logging
import threading
from collections import defaultdict
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from hotstuff.message import ConsensusMessage, gossip_topic
from hotstuff.primitives import HotstuffError, blake2_256

_log = logging.getLogger("hotstuff")

SetId = int


@dataclass(frozen=True)
class ValidationResult:
    """What to do with an incoming gossip message."""

    class Kind(Enum):
        PROCESS_AND_KEEP = "process_and_keep"
        PROCESS_AND_DISCARD = "process_and_discard"
        DISCARD = "discard"

    kind: "ValidationResult.Kind"
    topic: Optional[bytes] = None

    @classmethod
    def process_and_keep(cls, topic: bytes) -> "ValidationResult":
        return cls(cls.Kind.PROCESS_AND_KEEP, topic)

    @classmethod
    def process_and_discard(cls, topic: bytes) -> "ValidationResult":
        return cls(cls.Kind.PROCESS_AND_DISCARD, topic)

    @classmethod
    def discard(cls) -> "ValidationResult":
        return cls(cls.Kind.DISCARD)

    @property
    def processed(self) -> bool:
        return self.kind is not self.Kind.DISCARD


def _message_view(data: bytes) -> Optional[int]:
    try:
        return ConsensusMessage.decode(data).view()
    except (HotstuffError, ValueError):
        return None


def round_topic(round_number: int, set_id: SetId) -> bytes:
    """A unique topic for a round and set id."""
    return blake2_256(f"{set_id}-{round_number}".encode())


class GossipValidator:
    """Accepts consensus messages no more than one view behind the local view."""

    def __init__(self) -> None:
        self._view = 0
        self._lock = threading.Lock()

    def set_view(self, new_view: int) -> None:
        with self._lock:
            self._view = new_view

    def get_view(self) -> int:
        with self._lock:
            return self._view

    def new_peer(self, who, role) -> None:
        _log.debug("gossip validator: new peer %s (%s)", who, role)

    def peer_disconnected(self, who) -> None:
        _log.info("gossip validator: peer disconnected %s", who)

    def validate(self, sender, data: bytes) -> ValidationResult:
        view = _message_view(data)
        if view is None:
            return ValidationResult.discard()
        current = self.get_view()
        if current > 1 and view < current - 1:
            return ValidationResult.discard()
        return ValidationResult.process_and_keep(gossip_topic())

    def message_expired(self, topic: bytes, data: bytes) -> bool:
        view = _message_view(data)
        if view is None:
            return True
        current = self.get_view()
        return current >= 1 and view < current - 1

    def message_allowed(self, who, intent, topic: bytes, data: bytes) -> bool:
        if topic != gossip_topic():
            return False
        view = _message_view(data)
        if view is None:
            return False
        current = self.get_view()
        return not (current >= 1 and view < current - 1)


class HotstuffNetworkBridge:
    """Gossips consensus messages through ``service``.

    The service provides ``broadcast(protocol_name, topic, message)`` and
    ``local_peer_id()``.
    """

    def __init__(self, service, sync, protocol_name: str) -> None:
        self.service = service
        self.sync = sync
        self.protocol_name = protocol_name
        self.validator = GossipValidator()
        self._known: dict[tuple[bytes, bytes], bytes] = {}
        self._subscribers: defaultdict[bytes, list[asyncio.Queue]] = defaultdict(list)
        self._lock = threading.Lock()

    def gossip_message(self, topic: bytes, message: bytes, force: bool = False) -> bool:
        """Send a message to peers; a known one is resent only when ``force`` is set."""
        message = bytes(message)
        key = (bytes(topic), blake2_256(message))
        with self._lock:
            seen = key in self._known
            self._known[key] = message
        if seen and not force:
            return False
        if not self.validator.message_allowed(None, "broadcast", topic, message):
            return False
        self.service.broadcast(self.protocol_name, topic, message)
        return True

    def messages_for(self, topic: bytes) -> asyncio.Queue:
        """A queue receiving every accepted incoming message on ``topic``."""
        queue: asyncio.Queue = asyncio.Queue()
        with self._lock:
            self._subscribers[bytes(topic)].append(queue)
        return queue

    def on_incoming(self, sender, data: bytes) -> ValidationResult:
        """Validate a message from a peer and hand it to subscribers if accepted."""
        data = bytes(data)
        result = self.validator.validate(sender, data)
        if not result.processed:
            return result
        with self._lock:
            if result.kind is ValidationResult.Kind.PROCESS_AND_KEEP:
                self._known[(result.topic, blake2_256(data))] = data
            subscribers = list(self._subscribers.get(result.topic, ()))
        for queue in subscribers:
            queue.put_nowait(data)
        return result

    def collect_garbage(self) -> int:
        """Forget expired messages; return how many were dropped."""
        with self._lock:
            expired = [
                key
                for key, message in self._known.items()
                if self.validator.message_expired(key[0], message)
            ]
            for key in expired:
                del self._known[key]
        return len(expired)

    def set_view(self, view: int) -> None:
        self.validator.set_view(view)

    def local_peer_id(self):
        return self.service.local_peer_id()