"""The consensus worker that drives views, and the task that feeds it from the network."""

from __future__ import annotations

import asyncio
import logging
import os
import re
from typing import Optional

from hotstuff.block_import import BlockInfo, BlockStatus, PendingFinalizeBlockQueue
from hotstuff.client import GenesisAuthoritySetProvider
from hotstuff.message import (
    QC,
    TC,
    ConsensusMessage,
    Payload,
    Proposal,
    Timeout,
    Vote,
    gossip_topic,
)
from hotstuff.network import HotstuffNetworkBridge
from hotstuff.primitives import (
    ClientError,
    FinalizeBlockError,
    HotstuffError,
    OtherError,
)
from hotstuff.state import ConsensusState, empty_payload_hash
from hotstuff.synchronizer import Synchronizer, Timer

_log = logging.getLogger("hotstuff")

DEFAULT_TIMER_DURATION = 3000
MESSAGE_QUEUE_SIZE = 1000
TIMER_DURATION_ENV = "HOTSTUFF_DURATION"


class ConsensusWorker:
    """Runs the HotStuff protocol for one node: proposals, votes, timeouts and finality."""

    def __init__(
        self,
        state: ConsensusState,
        client,
        sync,
        network: HotstuffNetworkBridge,
        synchronizer: Synchronizer,
        local_timer_duration: int,
        messages: asyncio.Queue,
        pending_finalize_queue: PendingFinalizeBlockQueue,
    ) -> None:
        self.state = state
        self.client = client
        self.sync = sync
        self.network = network
        self.synchronizer = synchronizer
        self.local_timer = Timer(local_timer_duration)
        self.messages = messages
        self.pending_finalize_queue = pending_finalize_queue
        with pending_finalize_queue.lock:
            pending = pending_finalize_queue.queue()
            self.processing_block: Optional[BlockInfo] = pending[0] if pending else None
        self.proposal_hash_queue: list[bytes] = []

    def _gossip(self, message: ConsensusMessage, force: bool) -> None:
        self.network.gossip_message(gossip_topic(), message.encode(), force)

    async def run(self) -> None:
        """Handle timer ticks and incoming messages until cancelled."""
        while True:
            tick = asyncio.ensure_future(self.local_timer.wait())
            incoming = asyncio.ensure_future(self.messages.get())
            try:
                done, _ = await asyncio.wait(
                    {tick, incoming}, return_when=asyncio.FIRST_COMPLETED
                )
            finally:
                for task in (tick, incoming):
                    if not task.done():
                        task.cancel()
            if tick in done:
                try:
                    await self.handle_local_timer()
                except HotstuffError as error:
                    _log.debug("handle_local_timer failed: %s", error)
            if incoming in done:
                await self._dispatch(incoming.result())

    async def _dispatch(self, message: ConsensusMessage) -> None:
        handlers = {
            Proposal: self.handle_proposal,
            Vote: self.handle_vote,
            Timeout: self.handle_timeout,
            TC: self.handle_tc,
        }
        handler = handlers.get(type(message.body))
        if handler is None:
            return
        try:
            await handler(message.body)
        except HotstuffError as error:
            _log.debug(
                "%s: handling %s failed: %r",
                self.state.local_authority_id(),
                type(message.body).__name__,
                error,
            )

    async def handle_local_timer(self) -> None:
        _log.debug("$L$ handle_local_timer. self.view %s", self.state.view())
        self.local_timer.reset()
        self.state.increase_last_voted_view()
        timeout = self.state.make_timeout()
        self._gossip(ConsensusMessage(timeout), force=True)
        await self.handle_timeout(timeout)

    async def handle_timeout(self, timeout: Timeout) -> None:
        _log.debug(
            "~~ handle_timeout. self.view %s, timeout.view %s, timeout.author %s, qc.view %s",
            self.state.view(),
            timeout.view,
            timeout.voter,
            timeout.high_qc.view,
        )
        if self.state.view() > timeout.view:
            return

        self.state.verify_timeout(timeout)
        self.handle_qc(timeout.high_qc)

        tc = self.state.add_timeout(timeout)
        if tc is None:
            return

        if tc.view >= self.state.view():
            self._advance_view(tc.view)
            self.local_timer.reset()

        # The certificate is broadcast; nodes that timed out in this view treat it as expired.
        self._gossip(ConsensusMessage(tc), force=True)

        if self.state.is_leader():
            _log.debug(
                "@L@ handle_timeout. leader propose. self.view %s, TC.view %s",
                self.state.view(),
                timeout.view,
            )
            self.processing_block = None
            await self.generate_proposal(tc)

    async def handle_proposal(self, proposal: Proposal) -> None:
        _log.debug(
            "~~ handle_proposal. self.view %s, proposal[view: %s, payload: %s, author %s]",
            self.state.view(),
            proposal.view,
            proposal.payload,
            proposal.author,
        )
        payload = proposal.payload
        if payload.block_hash != empty_payload_hash():
            try:
                status = self.client.status(payload.block_hash)
            except Exception as error:
                raise ClientError(str(error)) from error
            if status is BlockStatus.UNKNOWN:
                _log.debug("#^# unknown proposal payload %s", payload)
                self.sync.set_sync_fork_request([], payload.block_hash, payload.block_number)
                return

        self.state.verify_proposal(proposal)
        self.handle_qc(proposal.qc)

        if proposal.tc is not None and proposal.tc.view > self.state.view():
            self._advance_view(proposal.tc.view)
            self.local_timer.reset()

        self.synchronizer.save_proposal(proposal)

        try:
            self._finalize_ancestors(proposal)
        except HotstuffError as error:
            _log.debug("~~ handle_proposal. has error when finalize block %r", error)

        if proposal.view != self.state.view():
            return

        vote = self.state.make_vote(proposal)
        if vote is None:
            return

        _log.debug("~~ handle proposal. make vote. vote.view %s", vote.view)
        self.proposal_hash_queue.append(payload.block_hash)
        self.processing_block = BlockInfo(payload.block_hash, payload.block_number)

        next_leader = self.state.view_leader(self.state.view() + 1)
        # The leader of the next view takes its own vote directly.
        if self.state.local_authority_id() == next_leader:
            await self.handle_vote(vote)
        else:
            self._gossip(ConsensusMessage(vote), force=False)

    def _finalize_ancestors(self, proposal: Proposal) -> None:
        parent, grandparent = self.synchronizer.get_proposal_ancestors(proposal)
        if parent.view != grandparent.view + 1:
            return
        block_hash = grandparent.payload.block_hash
        if block_hash == empty_payload_hash() or block_hash == self.client.info().finalized_hash:
            return
        _log.info("block %s can finalize", grandparent.payload)
        try:
            self.client.finalize_block(block_hash, None, True)
        except Exception as error:
            raise FinalizeBlockError(str(error)) from error

    async def handle_vote(self, vote: Vote) -> None:
        _log.debug(
            "~~ handle_vote. self.view %s, vote.view %s, vote.author %s",
            self.state.view(),
            vote.view,
            vote.voter,
        )
        self.state.verify_vote(vote)

        qc = self.state.add_vote(vote)
        if qc is None:
            return

        _log.debug("~~ handle_vote. get QC. view: %s, self.view %s", qc.view, self.state.view())
        self.handle_qc(qc)

        current_leader = self.state.view_leader(self.state.view())
        if self.state.local_authority_id() != current_leader:
            return

        payload = self.get_proposal_payload()
        if payload is None:
            return

        empty = empty_payload_hash()
        trailing_empty = 0
        for block_hash in reversed(self.proposal_hash_queue):
            if block_hash != empty:
                break
            trailing_empty += 1
            if trailing_empty == 2 and payload.block_hash == empty:
                _log.debug("^^ already has 3 empty proposal, this empty not gossip")
                return

        if len(self.proposal_hash_queue) > 3:
            self.proposal_hash_queue.clear()
        self.proposal_hash_queue.append(payload.block_hash)

        proposal = self.state.make_proposal(payload, None)
        self._gossip(ConsensusMessage(proposal), force=False)
        await self.handle_proposal(proposal)

    def handle_qc(self, qc: QC) -> None:
        if qc.view >= self.state.view():
            self._advance_view(qc.view)
            self.state.update_high_qc(qc)
            self.local_timer.reset()

    async def handle_tc(self, tc: TC) -> None:
        _log.debug("~~ handle_tc. self.view %s, tc.view %s", self.state.view(), tc.view)
        self.state.verify_tc(tc)

        self._advance_view(tc.view)
        self.local_timer.reset()
        self.processing_block = None

        if self.state.is_leader():
            await self.generate_proposal(None)

    async def generate_proposal(self, tc: Optional[TC]) -> None:
        payload = self.get_proposal_payload()
        if payload is None:
            _log.debug("~~ generate_proposal. can't get chain block.")
            return
        _log.debug(
            "~~ generate_proposal. payload: %s, self.view: %s", payload, self.state.view()
        )
        proposal = self.state.make_proposal(payload, tc)
        self._gossip(ConsensusMessage(proposal), force=False)
        await self.handle_proposal(proposal)

    def get_proposal_payload(self) -> Optional[Payload]:
        """Choose the block the next proposal carries, or ``None`` if nothing is pending."""
        empty = empty_payload_hash()
        queue = self.pending_finalize_queue
        with queue.lock:
            pending = queue.queue()
            processing = self.processing_block
            if processing is None:
                if not pending:
                    return None
                front = pending[0]
                self.processing_block = front
                return Payload(front.hash if front.hash is not None else empty, front.number)

            finalized_number = self.client.info().finalized_number
            if processing.number > finalized_number:
                return Payload(empty, processing.number)

            found = next((info for info in pending if info.number > finalized_number), None)
            if found is None:
                return Payload(empty, processing.number)
            self.processing_block = found
            return Payload(found.hash if found.hash is not None else empty, found.number)

    def _advance_view(self, view: int) -> None:
        self.state.advance_view_from_target(view)
        self.network.set_view(self.state.view())


class ConsensusNetwork:
    """Moves gossiped consensus messages from the network to the worker."""

    def __init__(
        self,
        network: HotstuffNetworkBridge,
        messages: asyncio.Queue,
        pending_queue: PendingFinalizeBlockQueue,
    ) -> None:
        self.network = network
        self.messages = messages
        self.pending_queue = pending_queue
        self.message_recv = network.messages_for(gossip_topic())

    def incoming_message_handler(self, data: bytes) -> None:
        """Decode a gossiped message and queue it for the worker."""
        try:
            message = ConsensusMessage.decode(data)
        except (HotstuffError, ValueError) as error:
            raise OtherError(str(error)) from error
        try:
            self.messages.put_nowait(message)
        except asyncio.QueueFull as error:
            raise OtherError("consensus message queue is full") from error

    async def run(self) -> None:
        while True:
            data = await self.message_recv.get()
            try:
                self.incoming_message_handler(data)
            except HotstuffError as error:
                _log.error("process incoming message error: %r", error)


def _timer_duration() -> int:
    value = os.environ.get(TIMER_DURATION_ENV)
    if value is not None and re.fullmatch(r"\+?[0-9]+", value):
        return int(value)
    return DEFAULT_TIMER_DURATION


def start_hotstuff(network, link, sync, protocol_name: str, keystore, authorities=None):
    """Build the worker and the network feeder; run both by awaiting their ``run()``.

    Without ``authorities`` the genesis authorities are read from the client.
    """
    client = link.client
    if authorities is None:
        authorities = get_genesis_authorities_from_client(client)

    bridge = HotstuffNetworkBridge(network, sync, protocol_name)
    synchronizer = Synchronizer(client)
    state = ConsensusState(keystore, authorities)
    messages: asyncio.Queue = asyncio.Queue(maxsize=MESSAGE_QUEUE_SIZE)
    pending = PendingFinalizeBlockQueue(client)

    worker = ConsensusWorker(
        state, client, sync, bridge, synchronizer, _timer_duration(), messages, pending
    )
    return worker, ConsensusNetwork(bridge, messages, pending)


def get_genesis_authorities_from_client(client) -> list:
    """The genesis authorities, each with weight 0."""
    return [(authority_id, 0) for authority_id in GenesisAuthoritySetProvider(client).get()]