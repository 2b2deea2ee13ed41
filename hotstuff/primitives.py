"""Errors, authority keys, signatures and hashing used by the consensus."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Optional, Union

from nacl.exceptions import BadSignatureError
from nacl.signing import SigningKey, VerifyKey

ViewNumber = int
AuthoritySignature = bytes

HASH_SIZE = 32
PUBLIC_KEY_SIZE = 32
SIGNATURE_SIZE = 64


def blake2_256(data: bytes) -> bytes:
    """Return the 32-byte BLAKE2b digest of ``data``."""
    return hashlib.blake2b(bytes(data), digest_size=HASH_SIZE).digest()


class HotstuffError(Exception):
    """Base class for every consensus error."""


class _AuthorityError(HotstuffError):
    def __init__(self, authority_id: "AuthorityId") -> None:
        super().__init__(authority_id)
        self.authority_id = authority_id

    def __str__(self) -> str:
        return f"{type(self).__name__}({self.authority_id})"


class _DetailError(HotstuffError):
    def __init__(self, detail: str = "") -> None:
        super().__init__(detail)
        self.detail = detail


class AuthorityReuse(_AuthorityError):
    """More than one vote was received from the same authority."""


class InsufficientQuorum(HotstuffError):
    """A certificate does not carry a quorum of votes."""


class InvalidSignature(_AuthorityError):
    """An authority's signature does not verify."""


class NullSignature(HotstuffError):
    """A message that must be signed carries no signature."""


class UnknownAuthority(_AuthorityError):
    """The signer is not among the authorities."""


class NotAuthority(HotstuffError):
    """The local node holds no authority key."""


class WrongProposer(HotstuffError):
    """The proposal was made by someone other than the view leader."""


class ProposalNoParent(HotstuffError):
    """The parent of a proposal cannot be found."""


class ExpiredVote(HotstuffError):
    """The vote belongs to an old view."""


class InvalidTC(HotstuffError):
    """The timeout certificate is not acceptable."""


class FinalizeBlockError(_DetailError):
    """Finalizing a block failed."""


class SaveProposalError(_DetailError):
    """Storing a proposal failed."""


class ClientError(_DetailError):
    """The node client reported an error."""


class OtherError(_DetailError):
    """Any other failure."""


@dataclass(frozen=True, order=True)
class AuthorityId:
    """The public key that identifies an authority."""

    raw: bytes

    def __post_init__(self) -> None:
        raw = bytes(self.raw)
        if len(raw) != PUBLIC_KEY_SIZE:
            raise ValueError(f"authority id must be {PUBLIC_KEY_SIZE} bytes, got {len(raw)}")
        object.__setattr__(self, "raw", raw)

    def encode(self) -> bytes:
        return self.raw

    def __bytes__(self) -> bytes:
        return self.raw

    def __str__(self) -> str:
        return "0x" + self.raw.hex()


AuthorityList = list[tuple[AuthorityId, int]]


class AuthorityPair:
    """An authority's signing key pair."""

    def __init__(self, signing_key: SigningKey) -> None:
        self._signing_key = signing_key

    @classmethod
    def from_seed(cls, seed: Union[str, bytes]) -> "AuthorityPair":
        """Derive a pair deterministically from a seed phrase or 32 seed bytes."""
        seed_bytes = seed.encode() if isinstance(seed, str) else bytes(seed)
        if len(seed_bytes) != 32:
            seed_bytes = blake2_256(seed_bytes)
        return cls(SigningKey(seed_bytes))

    @classmethod
    def random(cls) -> "AuthorityPair":
        return cls(SigningKey.generate())

    def public(self) -> AuthorityId:
        return AuthorityId(bytes(self._signing_key.verify_key))

    def sign(self, message: bytes) -> AuthoritySignature:
        return self._signing_key.sign(bytes(message)).signature

    @staticmethod
    def verify(signature: bytes, message: bytes, public: AuthorityId) -> bool:
        """Check ``signature`` over ``message`` against ``public``."""
        if signature is None or len(signature) != SIGNATURE_SIZE:
            return False
        try:
            VerifyKey(public.raw).verify(bytes(message), bytes(signature))
        except (BadSignatureError, ValueError, TypeError):
            return False
        return True


class Keystore:
    """Holds the local authority key pairs."""

    def __init__(self) -> None:
        self._pairs: dict[AuthorityId, AuthorityPair] = {}

    def generate(self, seed: Optional[Union[str, bytes]] = None) -> AuthorityId:
        """Create a key pair (random when no seed is given) and return its id."""
        pair = AuthorityPair.random() if seed is None else AuthorityPair.from_seed(seed)
        authority_id = pair.public()
        self._pairs[authority_id] = pair
        return authority_id

    def has_key(self, authority_id: AuthorityId) -> bool:
        return authority_id in self._pairs

    def sign(self, authority_id: AuthorityId, message: bytes) -> Optional[AuthoritySignature]:
        """Sign with the key of ``authority_id``; ``None`` if that key is not held."""
        pair = self._pairs.get(authority_id)
        return None if pair is None else pair.sign(message)