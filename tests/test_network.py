import pytest

from hotstuff.message import ConsensusMessage, Vote, gossip_topic
from hotstuff.network import (
    GossipValidator,
    HotstuffNetworkBridge,
    ValidationResult,
    round_topic,
)
from hotstuff.primitives import AuthorityPair

VOTER = AuthorityPair.from_seed("//Bob").public()


def vote_message(view):
    return ConsensusMessage(Vote(bytes(32), view, VOTER)).encode()


class FakeService:
    def __init__(self):
        self.sent = []

    def broadcast(self, protocol_name, topic, message):
        self.sent.append((protocol_name, topic, message))

    def local_peer_id(self):
        return "peer-local"


@pytest.fixture
def bridge():
    return HotstuffNetworkBridge(FakeService(), object(), "/hotstuff/1")


def test_validator_view_round_trip():
    validator = GossipValidator()
    validator.set_view(7)
    assert validator.get_view() == 7


@pytest.mark.parametrize("view,accepted", [(8, False), (9, True), (12, True)])
def test_validate_by_view(view, accepted):
    validator = GossipValidator()
    validator.set_view(10)
    result = validator.validate("peer", vote_message(view))
    if accepted:
        assert result == ValidationResult.process_and_keep(gossip_topic())
    else:
        assert result == ValidationResult.discard()


def test_validate_low_view_accepts_old():
    validator = GossipValidator()
    validator.set_view(1)
    assert validator.validate("peer", vote_message(0)).processed is True


def test_validate_garbage_is_discarded():
    assert GossipValidator().validate("peer", b"\xff\x00") == ValidationResult.discard()


def test_message_expired():
    validator = GossipValidator()
    validator.set_view(1)
    assert validator.message_expired(gossip_topic(), vote_message(0)) is False
    validator.set_view(2)
    assert validator.message_expired(gossip_topic(), vote_message(0)) is True
    assert validator.message_expired(gossip_topic(), b"junk") is True


def test_message_allowed():
    validator = GossipValidator()
    validator.set_view(5)
    assert validator.message_allowed("p", None, gossip_topic(), vote_message(4)) is True
    assert validator.message_allowed("p", None, gossip_topic(), vote_message(3)) is False
    assert validator.message_allowed("p", None, bytes(32), vote_message(5)) is False
    assert validator.message_allowed("p", None, gossip_topic(), b"junk") is False


def test_round_topic_is_deterministic_and_distinct():
    assert round_topic(1, 0) == round_topic(1, 0)
    assert round_topic(1, 0) != round_topic(0, 1)
    assert len(round_topic(3, 2)) == 32


def test_gossip_sends_once_unless_forced(bridge):
    message = vote_message(0)
    assert bridge.gossip_message(gossip_topic(), message, False) is True
    assert bridge.gossip_message(gossip_topic(), message, False) is False
    assert bridge.gossip_message(gossip_topic(), message, True) is True
    assert bridge.service.sent == [("/hotstuff/1", gossip_topic(), message)] * 2


def test_gossip_refuses_stale_message(bridge):
    bridge.set_view(10)
    assert bridge.gossip_message(gossip_topic(), vote_message(2), True) is False
    assert bridge.service.sent == []


def test_set_view_reaches_validator(bridge):
    bridge.set_view(4)
    assert bridge.validator.get_view() == 4


def test_local_peer_id(bridge):
    assert bridge.local_peer_id() == "peer-local"


def test_incoming_messages_reach_subscribers(bridge):
    queue = bridge.messages_for(gossip_topic())
    message = vote_message(3)
    result = bridge.on_incoming("peer", message)
    assert result.processed is True
    assert queue.get_nowait() == message
    assert bridge.on_incoming("peer", b"junk") == ValidationResult.discard()
    assert queue.empty()


def test_collect_garbage_drops_expired(bridge):
    bridge.gossip_message(gossip_topic(), vote_message(0))
    bridge.gossip_message(gossip_topic(), vote_message(6))
    bridge.set_view(6)
    assert bridge.collect_garbage() == 1
    assert bridge.collect_garbage() == 0