"""Collects votes and timeouts into quorum and timeout certificates."""

from __future__ import annotations

from collections import defaultdict
from typing import Optional

from hotstuff.message import QC, TC, Timeout, Vote
from hotstuff.primitives import AuthorityId, NullSignature


def _quorum(authorities) -> int:
    return len(authorities) * 2 // 3 + 1


class QCMaker:
    """Gathers votes for one proposal digest."""

    def __init__(self) -> None:
        self.weight = 0
        self.votes: list[tuple[AuthorityId, bytes]] = []

    def append(self, vote: Vote, authorities) -> Optional[QC]:
        """Add a vote; return a QC once a quorum is reached."""
        if any(voter == vote.voter for voter, _ in self.votes):
            return None
        if vote.signature is None:
            raise NullSignature()
        self.votes.append((vote.voter, vote.signature))
        self.weight += 1
        if self.weight < _quorum(authorities):
            return None
        return QC(vote.proposal_hash, vote.view, list(self.votes))


class TCMaker:
    """Gathers timeouts for one view."""

    def __init__(self) -> None:
        self.weight = 0
        self.votes: list[tuple[AuthorityId, bytes, int]] = []

    def append(self, timeout: Timeout, authorities) -> Optional[TC]:
        """Add a timeout; return a TC once a quorum is reached."""
        if any(voter == timeout.voter for voter, _, _ in self.votes):
            return None
        if timeout.signature is None:
            raise NullSignature()
        self.votes.append((timeout.voter, timeout.signature, timeout.view))
        self.weight += 1
        if self.weight < _quorum(authorities):
            return None
        return TC(timeout.view, list(self.votes))


class Aggregator:
    """Routes votes and timeouts to the maker for their view."""

    def __init__(self) -> None:
        self._votes: defaultdict[int, defaultdict[bytes, QCMaker]] = defaultdict(
            lambda: defaultdict(QCMaker)
        )
        self._timeouts: defaultdict[int, TCMaker] = defaultdict(TCMaker)

    def add_vote(self, vote: Vote, authorities) -> Optional[QC]:
        return self._votes[vote.view][vote.digest()].append(vote, authorities)

    def add_timeout(self, timeout: Timeout, authorities) -> Optional[TC]:
        return self._timeouts[timeout.view].append(timeout, authorities)