"""Consensus messages, their digests, verification and wire encoding."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Optional, TypeVar, Union

from hotstuff.primitives import (
    HASH_SIZE,
    PUBLIC_KEY_SIZE,
    SIGNATURE_SIZE,
    AuthorityId,
    AuthorityPair,
    AuthorityReuse,
    InsufficientQuorum,
    InvalidSignature,
    NullSignature,
    OtherError,
    UnknownAuthority,
    blake2_256,
)

_T = TypeVar("_T")
_ZERO_HASH = bytes(HASH_SIZE)


def _compact(n: int) -> bytes:
    if n < 0:
        raise ValueError("compact integers are unsigned")
    if n < 1 << 6:
        return bytes([n << 2])
    if n < 1 << 14:
        return ((n << 2) | 1).to_bytes(2, "little")
    if n < 1 << 30:
        return ((n << 2) | 2).to_bytes(4, "little")
    body = n.to_bytes((n.bit_length() + 7) // 8, "little")
    return bytes([((len(body) - 4) << 2) | 3]) + body


def _u64(n: int) -> bytes:
    if not 0 <= n < 1 << 64:
        raise ValueError(f"{n} does not fit in 64 bits")
    return n.to_bytes(8, "little")


def _fixed(data: bytes, size: int) -> bytes:
    data = bytes(data)
    if len(data) != size:
        raise ValueError(f"expected {size} bytes, got {len(data)}")
    return data


def _option(value, encode: Callable[[object], bytes]) -> bytes:
    return b"\x00" if value is None else b"\x01" + encode(value)


def _hash_of(data: bytes) -> bytes:
    return blake2_256(_compact(len(data)) + data)


class _Reader:
    def __init__(self, data: bytes) -> None:
        self._data = bytes(data)
        self._pos = 0

    def take(self, n: int) -> bytes:
        end = self._pos + n
        if end > len(self._data):
            raise OtherError("unexpected end of input")
        chunk = self._data[self._pos:end]
        self._pos = end
        return chunk

    def u8(self) -> int:
        return self.take(1)[0]

    def u64(self) -> int:
        return int.from_bytes(self.take(8), "little")

    def compact(self) -> int:
        first = self.u8()
        mode = first & 3
        if mode == 0:
            return first >> 2
        if mode == 1:
            return int.from_bytes(bytes([first]) + self.take(1), "little") >> 2
        if mode == 2:
            return int.from_bytes(bytes([first]) + self.take(3), "little") >> 2
        return int.from_bytes(self.take((first >> 2) + 4), "little")

    def hash(self) -> bytes:
        return self.take(HASH_SIZE)

    def authority_id(self) -> AuthorityId:
        return AuthorityId(self.take(PUBLIC_KEY_SIZE))

    def signature(self) -> bytes:
        return self.take(SIGNATURE_SIZE)

    def option(self, read: Callable[[], _T]) -> Optional[_T]:
        tag = self.u8()
        if tag == 0:
            return None
        if tag == 1:
            return read()
        raise OtherError(f"invalid option tag {tag}")

    def sequence(self, read: Callable[[], _T]) -> list[_T]:
        return [read() for _ in range(self.compact())]


def _check_signed(signer: AuthorityId, signature, digest: bytes, authorities) -> None:
    if not any(authority == signer for authority, _ in authorities):
        raise UnknownAuthority(signer)
    if signature is None:
        raise NullSignature()
    if not AuthorityPair.verify(signature, digest, signer):
        raise InvalidSignature(signer)


def _check_quorum(voters, authorities) -> None:
    used: set[AuthorityId] = set()
    for voter in voters:
        if voter in used:
            raise AuthorityReuse(voter)
        used.add(voter)
    if len(used) <= len(authorities) * 2 // 3:
        raise InsufficientQuorum()


@dataclass(eq=False)
class QC:
    """Quorum certificate for a proposal."""

    proposal_hash: bytes = _ZERO_HASH
    view: int = 0
    votes: list[tuple[AuthorityId, bytes]] = field(default_factory=list)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, QC):
            return NotImplemented
        return self.proposal_hash == other.proposal_hash and self.view == other.view

    def digest(self) -> bytes:
        return _hash_of(_fixed(self.proposal_hash, HASH_SIZE) + _u64(self.view))

    def add_votes(self, authority_id: AuthorityId, signature: bytes) -> None:
        self.votes.append((authority_id, signature))

    def verify(self, authorities) -> None:
        """Check for a quorum of distinct voters with valid signatures (weights ignored)."""
        _check_quorum((voter for voter, _ in self.votes), authorities)
        digest = self.digest()
        for voter, signature in self.votes:
            if not AuthorityPair.verify(signature, digest, voter):
                raise InvalidSignature(voter)

    def is_default(self) -> bool:
        return self == QC()

    def _encode(self) -> bytes:
        votes = b"".join(
            voter.encode() + _fixed(signature, SIGNATURE_SIZE) for voter, signature in self.votes
        )
        return (
            _fixed(self.proposal_hash, HASH_SIZE)
            + _u64(self.view)
            + _compact(len(self.votes))
            + votes
        )

    @classmethod
    def _read(cls, reader: _Reader) -> "QC":
        proposal_hash = reader.hash()
        view = reader.u64()
        votes = reader.sequence(lambda: (reader.authority_id(), reader.signature()))
        return cls(proposal_hash, view, votes)


@dataclass
class Payload:
    """The chain block a proposal asks to finalize."""

    block_hash: bytes
    block_number: int

    def __str__(self) -> str:
        return f"{{ block_hash: 0x{self.block_hash.hex()}   block_number: {self.block_number} }}"

    def _encode(self) -> bytes:
        return _fixed(self.block_hash, HASH_SIZE) + _u64(self.block_number)

    @classmethod
    def _read(cls, reader: _Reader) -> "Payload":
        return cls(reader.hash(), reader.u64())


@dataclass
class TC:
    """Timeout certificate."""

    view: int
    votes: list[tuple[AuthorityId, bytes, int]] = field(default_factory=list)

    def verify(self, authorities) -> None:
        _check_quorum((voter for voter, _, _ in self.votes), authorities)
        for voter, signature, high_qc_view in self.votes:
            digest = _hash_of(_u64(self.view) + _u64(high_qc_view))
            if not AuthorityPair.verify(signature, digest, voter):
                raise InvalidSignature(voter)

    def _encode(self) -> bytes:
        votes = b"".join(
            voter.encode() + _fixed(signature, SIGNATURE_SIZE) + _u64(view)
            for voter, signature, view in self.votes
        )
        return _u64(self.view) + _compact(len(self.votes)) + votes

    @classmethod
    def _read(cls, reader: _Reader) -> "TC":
        view = reader.u64()
        votes = reader.sequence(
            lambda: (reader.authority_id(), reader.signature(), reader.u64())
        )
        return cls(view, votes)


@dataclass
class Proposal:
    """A consensus proposal; its author is the view leader, not the block producer."""

    qc: QC
    tc: Optional[TC]
    payload: Payload
    view: int
    author: AuthorityId
    signature: Optional[bytes] = None

    def parent_hash(self) -> bytes:
        return self.qc.proposal_hash

    def digest(self) -> bytes:
        data = (
            self.author.encode()
            + self.payload._encode()
            + _u64(self.view)
            + _fixed(self.qc.proposal_hash, HASH_SIZE)
        )
        return _hash_of(data)

    def verify(self, authorities) -> None:
        _check_signed(self.author, self.signature, self.digest(), authorities)
        if not self.qc.is_default():
            self.qc.verify(authorities)

    def _encode(self) -> bytes:
        return (
            self.qc._encode()
            + _option(self.tc, TC._encode)
            + self.payload._encode()
            + _u64(self.view)
            + self.author.encode()
            + _option(self.signature, lambda s: _fixed(s, SIGNATURE_SIZE))
        )

    @classmethod
    def _read(cls, reader: _Reader) -> "Proposal":
        qc = QC._read(reader)
        tc = reader.option(lambda: TC._read(reader))
        payload = Payload._read(reader)
        view = reader.u64()
        author = reader.authority_id()
        signature = reader.option(reader.signature)
        return cls(qc, tc, payload, view, author, signature)


@dataclass
class Vote:
    """A vote for a proposal."""

    proposal_hash: bytes
    view: int
    voter: AuthorityId
    signature: Optional[bytes] = None

    def digest(self) -> bytes:
        return _hash_of(_fixed(self.proposal_hash, HASH_SIZE) + _u64(self.view))

    def verify(self, authorities) -> None:
        _check_signed(self.voter, self.signature, self.digest(), authorities)

    def _encode(self) -> bytes:
        return (
            _fixed(self.proposal_hash, HASH_SIZE)
            + _u64(self.view)
            + self.voter.encode()
            + _option(self.signature, lambda s: _fixed(s, SIGNATURE_SIZE))
        )

    @classmethod
    def _read(cls, reader: _Reader) -> "Vote":
        proposal_hash = reader.hash()
        view = reader.u64()
        voter = reader.authority_id()
        return cls(proposal_hash, view, voter, reader.option(reader.signature))


@dataclass
class Timeout:
    """A timeout notice carrying the sender's highest QC."""

    high_qc: QC
    view: int
    voter: AuthorityId
    signature: Optional[bytes] = None

    def digest(self) -> bytes:
        return _hash_of(_u64(self.view) + _u64(self.high_qc.view))

    def verify(self, authorities) -> None:
        _check_signed(self.voter, self.signature, self.digest(), authorities)
        if not self.high_qc.is_default():
            self.high_qc.verify(authorities)

    def _encode(self) -> bytes:
        return (
            self.high_qc._encode()
            + _u64(self.view)
            + self.voter.encode()
            + _option(self.signature, lambda s: _fixed(s, SIGNATURE_SIZE))
        )

    @classmethod
    def _read(cls, reader: _Reader) -> "Timeout":
        high_qc = QC._read(reader)
        view = reader.u64()
        voter = reader.authority_id()
        return cls(high_qc, view, voter, reader.option(reader.signature))


@dataclass
class SyncRequest:
    """A request for a block from an authority."""

    block_hash: bytes
    authority_id: AuthorityId

    def _encode(self) -> bytes:
        return _fixed(self.block_hash, HASH_SIZE) + self.authority_id.encode()

    @classmethod
    def _read(cls, reader: _Reader) -> "SyncRequest":
        return cls(reader.hash(), reader.authority_id())


MessageBody = Union[Proposal, Vote, Timeout, TC, SyncRequest]
_VARIANTS: tuple[type, ...] = (Proposal, Vote, Timeout, TC, SyncRequest)


@dataclass
class ConsensusMessage:
    """A message gossiped between authorities."""

    body: MessageBody

    def encode(self) -> bytes:
        return bytes([_VARIANTS.index(type(self.body))]) + self.body._encode()

    @classmethod
    def decode(cls, data: bytes) -> "ConsensusMessage":
        reader = _Reader(data)
        index = reader.u8()
        if index >= len(_VARIANTS):
            raise OtherError(f"unknown message variant {index}")
        return cls(_VARIANTS[index]._read(reader))

    def view(self) -> int:
        """The view the message belongs to; 0 for messages without one."""
        if isinstance(self.body, SyncRequest):
            return 0
        return self.body.view


def gossip_topic() -> bytes:
    """The gossip topic all consensus messages travel on."""
    return blake2_256(b"hotstuff/consensus")


def encode_proposal(proposal: Proposal) -> bytes:
    return proposal._encode()


def decode_proposal(data: bytes) -> Proposal:
    return Proposal._read(_Reader(data))