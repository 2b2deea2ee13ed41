"""The core HotStuff state: the view, the voting rule and the certificates."""

from __future__ import annotations

from dataclasses import replace
from typing import Optional

from hotstuff.aggregator import Aggregator
from hotstuff.message import QC, TC, Payload, Proposal, Timeout, Vote
from hotstuff.primitives import (
    AuthorityId,
    ExpiredVote,
    InvalidTC,
    Keystore,
    NotAuthority,
    WrongProposer,
    blake2_256,
)

EMPTY_PAYLOAD = b"hotstuff/empty_payload"


def empty_payload_hash() -> bytes:
    """The block hash carried by a proposal that finalizes nothing."""
    return blake2_256(EMPTY_PAYLOAD)


def _copy_qc(qc: QC) -> QC:
    return replace(qc, votes=list(qc.votes))


class ConsensusState:
    """View, last voted view, highest QC and vote aggregation of one node."""

    def __init__(self, keystore: Keystore, authorities) -> None:
        self.keystore = keystore
        self.authorities = list(authorities)
        self._view = 0
        self.last_voted_view = 0
        self.high_qc = QC()
        self.aggregator = Aggregator()

    def local_authority_id(self) -> Optional[AuthorityId]:
        """The first authority whose key the keystore holds, or ``None``."""
        return next(
            (
                authority
                for authority, _ in self.authorities
                if self.keystore.has_key(authority)
            ),
            None,
        )

    def _require_authority(self) -> AuthorityId:
        authority_id = self.local_authority_id()
        if authority_id is None:
            raise NotAuthority()
        return authority_id

    def increase_last_voted_view(self) -> None:
        self.last_voted_view = max(self.last_voted_view, self._view)

    def make_timeout(self) -> Timeout:
        authority_id = self._require_authority()
        timeout = Timeout(_copy_qc(self.high_qc), self._view, authority_id)
        timeout.signature = self.keystore.sign(authority_id, timeout.digest())
        return timeout

    def make_proposal(self, payload: Payload, tc: Optional[TC]) -> Proposal:
        author = self._require_authority()
        proposal = Proposal(_copy_qc(self.high_qc), tc, payload, self._view, author)
        proposal.signature = self.keystore.sign(author, proposal.digest())
        return proposal

    def make_vote(self, proposal: Proposal) -> Optional[Vote]:
        """Vote for ``proposal`` unless not an authority or already voted in its view."""
        author = self.local_authority_id()
        if author is None:
            return None
        if proposal.view <= self.last_voted_view:
            return None
        self.last_voted_view = max(self.last_voted_view, proposal.view)
        vote = Vote(proposal.digest(), proposal.view, author)
        vote.signature = self.keystore.sign(author, vote.digest())
        return vote

    def view(self) -> int:
        return self._view

    def verify_timeout(self, timeout: Timeout) -> None:
        timeout.verify(self.authorities)

    def verify_proposal(self, proposal: Proposal) -> None:
        if proposal.author != self.view_leader(proposal.view):
            raise WrongProposer()
        proposal.verify(self.authorities)

    def verify_vote(self, vote: Vote) -> None:
        if vote.view < self._view:
            raise ExpiredVote()
        vote.verify(self.authorities)

    def verify_tc(self, tc: TC) -> None:
        if tc.view < self._view:
            raise InvalidTC()
        tc.verify(self.authorities)

    def add_timeout(self, timeout: Timeout) -> Optional[TC]:
        """Add a verified timeout; return a TC once a quorum is reached."""
        return self.aggregator.add_timeout(timeout, self.authorities)

    def add_vote(self, vote: Vote) -> Optional[QC]:
        """Add a verified vote; return a QC once a quorum is reached."""
        return self.aggregator.add_vote(vote, self.authorities)

    def update_high_qc(self, qc: QC) -> None:
        if qc.view > self.high_qc.view:
            self.high_qc = _copy_qc(qc)

    def advance_view_from_target(self, view: int) -> None:
        if self._view >= view:
            self._view = view + 1

    def view_leader(self, view: int) -> AuthorityId:
        return self.authorities[view % len(self.authorities)][0]

    def is_leader(self) -> bool:
        """Whether the local node leads the current view."""
        local = self.local_authority_id()
        return local is not None and local == self.view_leader(self._view)