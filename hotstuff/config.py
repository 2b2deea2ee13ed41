"""Gossip protocol naming and peer-set configuration."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

HOTSTUFF_PROTOCOL_NAME = "/hotstuff/1"
CLIENT_LOG_TARGET = "hotstuff"
MAX_NOTIFICATION_SIZE = 1024 * 1024


class NonReservedPeerMode(Enum):
    ACCEPT = "accept"
    DENY = "deny"


@dataclass
class SetConfig:
    in_peers: int = 0
    out_peers: int = 0
    reserved_nodes: list[str] = field(default_factory=list)
    non_reserved_mode: NonReservedPeerMode = NonReservedPeerMode.DENY


@dataclass
class NonDefaultSetConfig:
    notifications_protocol: str
    fallback_names: list[str] = field(default_factory=list)
    max_notification_size: int = MAX_NOTIFICATION_SIZE
    handshake: Optional[bytes] = None
    set_config: SetConfig = field(default_factory=SetConfig)


def standard_name(genesis_hash: bytes, fork_id: Optional[str] = None) -> str:
    """The protocol name for a chain, built from its genesis hash and fork id."""
    prefix = f"/{bytes(genesis_hash).hex()}"
    if fork_id is not None:
        prefix = f"{prefix}/{fork_id}"
    return prefix + HOTSTUFF_PROTOCOL_NAME


def hotstuff_peers_set_config(protocol_name: str) -> NonDefaultSetConfig:
    return NonDefaultSetConfig(
        notifications_protocol=protocol_name,
        fallback_names=[],
        max_notification_size=MAX_NOTIFICATION_SIZE,
        handshake=None,
        set_config=SetConfig(
            in_peers=0,
            out_peers=0,
            reserved_nodes=[],
            non_reserved_mode=NonReservedPeerMode.DENY,
        ),
    )