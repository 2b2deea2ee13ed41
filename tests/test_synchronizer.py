import asyncio
import time

import pytest

from hotstuff.message import QC, Payload, Proposal
from hotstuff.primitives import (
    AuthorityPair,
    OtherError,
    ProposalNoParent,
    SaveProposalError,
)
from hotstuff.store import MemoryAuxStore
from hotstuff.synchronizer import Synchronizer, Timer

AUTHOR = AuthorityPair.from_seed("//Alice")


def make_proposal(view, parent=None):
    qc = QC() if parent is None else QC(parent.digest(), parent.view, [])
    proposal = Proposal(qc, None, Payload(bytes([view]) * 32, view), view, AUTHOR.public())
    proposal.signature = AUTHOR.sign(proposal.digest())
    return proposal


class FailingBackend:
    def get_aux(self, key):
        raise RuntimeError("backend down")

    def insert_aux(self, insert, delete):
        raise RuntimeError("backend down")


def test_save_and_get_parent_round_trip():
    sync = Synchronizer(MemoryAuxStore())
    parent = make_proposal(1)
    child = make_proposal(2, parent)
    sync.save_proposal(parent)
    found = sync.get_proposal_parent(child)
    assert found.digest() == parent.digest()
    assert found.signature == parent.signature
    assert found.payload == parent.payload


def test_missing_parent_raises():
    sync = Synchronizer(MemoryAuxStore())
    with pytest.raises(ProposalNoParent):
        sync.get_proposal_parent(make_proposal(3, make_proposal(2)))


def test_ancestors():
    sync = Synchronizer(MemoryAuxStore())
    grandparent = make_proposal(1)
    parent = make_proposal(2, grandparent)
    child = make_proposal(3, parent)
    sync.save_proposal(grandparent)
    sync.save_proposal(parent)
    got_parent, got_grandparent = sync.get_proposal_ancestors(child)
    assert got_parent.view == parent.view
    assert got_grandparent.digest() == grandparent.digest()


def test_ancestors_missing_grandparent():
    sync = Synchronizer(MemoryAuxStore())
    parent = make_proposal(2, make_proposal(1))
    sync.save_proposal(parent)
    with pytest.raises(ProposalNoParent):
        sync.get_proposal_ancestors(make_proposal(3, parent))


def test_save_failure_is_save_proposal_error():
    sync = Synchronizer(FailingBackend())
    with pytest.raises(SaveProposalError):
        sync.save_proposal(make_proposal(1))


def test_read_failure_is_other_error():
    sync = Synchronizer(FailingBackend())
    with pytest.raises(OtherError):
        sync.get_proposal_parent(make_proposal(1))


def test_corrupt_data_is_other_error():
    backend = MemoryAuxStore()
    parent = make_proposal(1)
    backend.insert_aux([(parent.digest(), b"\x01\x02")], [])
    with pytest.raises(OtherError):
        Synchronizer(backend).get_proposal_parent(make_proposal(2, parent))


@pytest.mark.asyncio
async def test_timer_first_tick_is_immediate_then_waits_period():
    timer = Timer(50)
    first = asyncio.create_task(timer.wait())
    await asyncio.sleep(0.02)
    assert first.done() is True
    assert first.exception() is None

    start = time.monotonic()
    second = asyncio.create_task(timer.wait())
    await asyncio.sleep(0.01)
    assert second.done() is False
    await asyncio.wait_for(second, 1.0)
    assert second.done() is True
    assert time.monotonic() - start >= 0.04


@pytest.mark.asyncio
async def test_timer_reset_postpones_tick():
    timer = Timer(60)
    timer.reset()
    start = time.monotonic()
    task = asyncio.create_task(timer.wait())
    await asyncio.sleep(0.03)
    timer.reset()
    await asyncio.sleep(0.045)
    # Past the original deadline, but the reset pushed the tick further out.
    assert task.done() is False
    await asyncio.wait_for(task, 1.0)
    assert task.done() is True
    assert time.monotonic() - start >= 0.085