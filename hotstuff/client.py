"""Genesis authorities, the link between block import and voter, and its setup."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from hotstuff.authorities import PersistentData, SharedAuthoritySet, load_persistent
from hotstuff.block_import import HotstuffBlockImport
from hotstuff.primitives import PUBLIC_KEY_SIZE, AuthorityId, ClientError, HotstuffError

AUTHORITIES_CALL = "HotstuffApi_authorities"


def _decode_compact(data: bytes) -> tuple[int, int]:
    if not data:
        raise ValueError("empty input")
    first = data[0]
    mode = first & 3
    if mode == 0:
        return first >> 2, 1
    width = {1: 2, 2: 4}.get(mode)
    if width is not None:
        if len(data) < width:
            raise ValueError("truncated length prefix")
        return int.from_bytes(data[:width], "little") >> 2, width
    width = (first >> 2) + 4
    if len(data) < 1 + width:
        raise ValueError("truncated length prefix")
    return int.from_bytes(data[1 : 1 + width], "little"), 1 + width


def _decode_authorities(data: bytes) -> list[AuthorityId]:
    data = bytes(data)
    count, offset = _decode_compact(data)
    if len(data) != offset + count * PUBLIC_KEY_SIZE:
        raise ValueError("length does not match authority count")
    return [
        AuthorityId(data[start : start + PUBLIC_KEY_SIZE])
        for start in range(offset, len(data), PUBLIC_KEY_SIZE)
    ]


class GenesisAuthoritySetProvider:
    """Reads the authorities configured on the genesis block from the runtime."""

    def __init__(self, client) -> None:
        self.client = client

    def get(self) -> list[AuthorityId]:
        try:
            genesis_hash = self.client.block_hash(0)
            if genesis_hash is None:
                raise ClientError("unknown genesis block")
            result = self.client.call(genesis_hash, AUTHORITIES_CALL, b"")
        except HotstuffError:
            raise
        except Exception as error:
            raise ClientError(str(error)) from error
        try:
            return _decode_authorities(result)
        except ValueError as error:
            raise ClientError(
                f"failed to decode hotstuff authorities set proof: {error}"
            ) from error


@dataclass
class LinkHalf:
    """Link between the block importer and the background voter."""

    client: Any
    select_chain: Optional[Any]
    persistent_data: PersistentData

    def shared_authority_set(self) -> SharedAuthoritySet:
        return self.persistent_data.authority_set


def block_import(client, genesis_authorities_provider) -> tuple[HotstuffBlockImport, LinkHalf]:
    """Make the block importer and the link half that ties the voter to it."""
    genesis_hash = client.info().genesis_hash

    def genesis_authorities():
        return [(authority_id, 1) for authority_id in genesis_authorities_provider.get()]

    persistent_data = load_persistent(client, genesis_hash, 0, genesis_authorities)
    return HotstuffBlockImport(client), LinkHalf(client, None, persistent_data)