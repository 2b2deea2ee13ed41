"""View timer and retrieval of stored proposals and their ancestors."""

from __future__ import annotations

import asyncio
import logging
import time

from hotstuff.message import Proposal, decode_proposal, encode_proposal
from hotstuff.primitives import HotstuffError, OtherError, ProposalNoParent, SaveProposalError
from hotstuff.store import Store

_log = logging.getLogger("hotstuff")


class Timer:
    """A periodic timer whose first tick fires at once; ``reset`` restarts the period."""

    def __init__(self, duration: int) -> None:
        self.period = duration / 1000
        self._deadline = time.monotonic()

    def reset(self) -> None:
        self._deadline = time.monotonic() + self.period

    async def wait(self) -> float:
        """Wait for the next tick and return the moment it was due."""
        while (remaining := self._deadline - time.monotonic()) > 0:
            await asyncio.sleep(remaining)
        fired = self._deadline
        self._deadline = fired + self.period
        return fired


class Synchronizer:
    """Stores proposals by digest and looks up their ancestors."""

    def __init__(self, client) -> None:
        self.store = Store(client)

    def save_proposal(self, proposal: Proposal) -> None:
        key = proposal.digest()
        _log.debug("~~ save proposal, digest 0x%s", key.hex())
        try:
            self.store.set(key, encode_proposal(proposal))
        except Exception as error:
            raise SaveProposalError(str(error)) from error

    def get_proposal_ancestors(self, proposal: Proposal) -> tuple[Proposal, Proposal]:
        """Return the parent and grandparent of ``proposal``."""
        parent = self.get_proposal_parent(proposal)
        grandparent = self.get_proposal_parent(parent)
        return parent, grandparent

    def get_proposal_parent(self, proposal: Proposal) -> Proposal:
        try:
            data = self.store.get(proposal.parent_hash())
        except Exception as error:
            raise OtherError(str(error)) from error
        if data is None:
            raise ProposalNoParent()
        try:
            return decode_proposal(data)
        except (HotstuffError, ValueError) as error:
            raise OtherError(str(error)) from error