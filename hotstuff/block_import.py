"""Block import wrapper and the queue of blocks waiting for finalization."""

from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from hotstuff.primitives import ClientError

_log = logging.getLogger("hotstuff")


class BlockStatus(Enum):
    IN_CHAIN = "in_chain"
    UNKNOWN = "unknown"


class ImportResult(Enum):
    IMPORTED = "imported"
    ALREADY_IN_CHAIN = "already_in_chain"
    KNOWN_BAD = "known_bad"
    UNKNOWN_PARENT = "unknown_parent"
    MISSING_STATE = "missing_state"


@dataclass(frozen=True)
class ChainInfo:
    genesis_hash: bytes
    best_hash: bytes
    best_number: int
    finalized_hash: bytes
    finalized_number: int


@dataclass(frozen=True)
class BlockInfo:
    hash: Optional[bytes]
    number: int


@dataclass(frozen=True)
class PeerReport:
    """A reputation change for a peer."""

    who: str
    cost_benefit: int
    reason: str = ""


class HotstuffBlockImport:
    """Passes blocks through to the client, stripping justifications on re-import."""

    def __init__(self, client) -> None:
        self.client = client

    def check_block(self, block):
        return self.client.check_block(block)

    def import_block(self, block) -> ImportResult:
        try:
            status = self.client.status(block.post_hash)
        except Exception as error:
            raise ClientError(str(error)) from error

        if status is BlockStatus.IN_CHAIN:
            block.justifications = None
            return self.client.import_block(block)

        try:
            return self.client.import_block(block)
        except Exception as error:
            raise ClientError(str(error)) from error

    def import_justification(self, block_hash: bytes, number: int, justification) -> None:
        """Finalize the block; a failure is logged, not raised."""
        try:
            self.client.finalize_block(block_hash, None, True)
        except Exception as error:
            _log.warning("finalize_block error: %s", error)
        else:
            _log.info("finalized block 0x%s", bytes(block_hash).hex())

    def on_start(self) -> list[tuple[bytes, int]]:
        return []


class PendingFinalizeBlockQueue:
    """Best blocks awaiting finalization, in import order."""

    def __init__(self, client) -> None:
        info = client.info()
        # Blocks already between finality and best are only checked for availability;
        # the queue itself fills from import notifications.
        for number in range(info.finalized_number + 1, info.best_number + 1):
            try:
                client.block_hash(number)
            except Exception as error:
                raise ClientError(str(error)) from error
        self.lock = threading.Lock()
        self._inner: deque[BlockInfo] = deque()

    def on_import(self, block_hash: bytes, number: int, is_new_best: bool) -> None:
        if not is_new_best:
            return
        with self.lock:
            _log.debug("*** push 0x%s", bytes(block_hash).hex())
            self._inner.append(BlockInfo(block_hash, number))

    def on_finalized(self, number: int) -> None:
        """Drop leading entries up to and including ``number``."""
        with self.lock:
            while self._inner and self._inner[0].number <= number:
                _log.debug("*** pop %s", self._inner.popleft())

    def queue(self) -> deque[BlockInfo]:
        return self._inner