"""Authority sets, their shared handle and the data kept between runs."""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Optional

from hotstuff.primitives import AuthorityId


@dataclass
class AuthoritySetChanges:
    """Pairs of set id and the number of the last block of each finalized set."""

    changes: list[tuple[int, int]] = field(default_factory=list)


def _invalid_authority_list(authorities) -> bool:
    return not authorities or any(weight == 0 for _, weight in authorities)


@dataclass
class AuthoritySet:
    """A non-empty set of authorities, each with a positive weight."""

    current_authorities: list[tuple[AuthorityId, int]]
    authority_set_changes: AuthoritySetChanges = field(default_factory=AuthoritySetChanges)

    @classmethod
    def genesis(cls, initial) -> Optional["AuthoritySet"]:
        """A genesis set, or ``None`` if the list is empty or has a zero weight."""
        return cls.create(initial, AuthoritySetChanges())

    @classmethod
    def create(cls, authorities, authority_set_changes) -> Optional["AuthoritySet"]:
        if _invalid_authority_list(authorities):
            return None
        return cls(list(authorities), authority_set_changes)


class SharedAuthoritySet:
    """An authority set guarded by a lock."""

    def __init__(self, authority_set: AuthoritySet) -> None:
        self._set = authority_set
        self._lock = threading.Lock()

    @contextmanager
    def inner(self) -> Iterator[AuthoritySet]:
        """Hold the lock and give access to the set."""
        with self._lock:
            yield self._set

    def authority_set_changes(self) -> AuthoritySetChanges:
        with self.inner() as authority_set:
            return AuthoritySetChanges(list(authority_set.authority_set_changes.changes))


@dataclass
class PersistentData:
    """Data kept between runs."""

    authority_set: SharedAuthoritySet


def load_persistent(
    backend,
    genesis_hash: bytes,
    genesis_number: int,
    genesis_authorities: Callable[[], list],
) -> PersistentData:
    """Initialize persistent data from the genesis authorities."""
    genesis_set = AuthoritySet.genesis(genesis_authorities())
    if genesis_set is None:
        raise ValueError("genesis authorities must be non-empty with non-zero weights")
    return PersistentData(SharedAuthoritySet(genesis_set))