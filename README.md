# hotstuff

A HotStuff-style Byzantine fault tolerant finality engine. Authorities take
turns leading views (the leader of view `v` is authority `v % len(authorities)`),
propose blocks that already exist on a chain, collect votes into quorum
certificates (QC) and, when a view stalls, collect timeouts into timeout
certificates (TC). A quorum is more than two thirds of the authorities; weights
are not counted.

When a proposal arrives whose parent and grandparent proposals are stored and
have consecutive views, the block carried by the grandparent is finalized
through the client.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Modules

- `hotstuff.primitives`: authority keys (`AuthorityId`, `AuthorityPair`, Ed25519
  via PyNaCl), an in-memory `Keystore`, the `blake2_256` hash and the
  `HotstuffError` family of exceptions (`AuthorityReuse`, `InsufficientQuorum`,
  `InvalidSignature`, `NullSignature`, `UnknownAuthority`, `NotAuthority`,
  `WrongProposer`, `ProposalNoParent`, `ExpiredVote`, `InvalidTC`,
  `FinalizeBlockError`, `SaveProposalError`, `ClientError`, `OtherError`).
- `hotstuff.message`: the messages `Proposal`, `Vote`, `Timeout`, `QC`, `TC`,
  `SyncRequest` and `Payload`, and the `ConsensusMessage` envelope with
  `encode()` / `decode()`. Each signed message has `digest()` and
  `verify(authorities)`, which raises on an unknown signer, a missing or bad
  signature, a reused authority or a missing quorum. `gossip_topic()` is the
  topic every message is gossiped on.
- `hotstuff.aggregator`: `Aggregator`, `QCMaker` and `TCMaker` turn votes and
  timeouts into certificates once a quorum is reached.
- `hotstuff.authorities`: `AuthoritySet` (rejects empty lists and zero weights),
  the lock-guarded `SharedAuthoritySet`, `PersistentData` and `load_persistent`.
- `hotstuff.state`: `ConsensusState` keeps the view, the last voted view, the
  highest QC and the leader rotation, and builds signed proposals, votes and
  timeouts. `empty_payload_hash()` marks a proposal that finalizes nothing.
- `hotstuff.store`: `Store` over any backend with `get_aux` / `insert_aux`, and
  `MemoryAuxStore`, an in-memory backend.
- `hotstuff.synchronizer`: `Timer`, the view timer, and `Synchronizer`, which
  stores proposals by digest and finds their parent and grandparent.
- `hotstuff.block_import`: `HotstuffBlockImport`, which passes blocks through to
  the client, and `PendingFinalizeBlockQueue`, the best blocks waiting for
  finality (`on_import`, `on_finalized`).
- `hotstuff.config`: `standard_name(genesis_hash, fork_id)` builds the protocol
  name (`/<genesis hex>[/<fork id>]/hotstuff/1`); `hotstuff_peers_set_config`
  gives the peer-set settings.
- `hotstuff.network`: `GossipValidator` drops messages more than one view behind
  the local view; `HotstuffNetworkBridge` gossips messages through a service and
  hands accepted incoming ones to subscribers.
- `hotstuff.client`: `GenesisAuthoritySetProvider`, `LinkHalf` and
  `block_import(client, provider)`.
- `hotstuff.worker`: `ConsensusWorker` drives the protocol and
  `ConsensusNetwork` feeds it from the network. `start_hotstuff(...)` builds both;
  run them by awaiting their `run()` coroutines.

## Example

```python
from hotstuff.primitives import Keystore, InvalidSignature
from hotstuff.message import Payload, Proposal, QC

keystore = Keystore()
authorities = [(keystore.generate(f"//User{i}"), 1) for i in range(3)]
author = authorities[0][0]

proposal = Proposal(
    qc=QC(),
    tc=None,
    payload=Payload(block_hash=bytes(32), block_number=10),
    view=10,
    author=author,
    signature=None,
)
proposal.signature = keystore.sign(author, proposal.digest())
proposal.verify(authorities)          # passes

proposal.signature = keystore.sign(author, b"bad")
try:
    proposal.verify(authorities)
except InvalidSignature as err:
    print("rejected:", err)
```

## What the package does not do

This package is the consensus logic only. It has no blockchain node, no block
production and no network transport of its own. The caller supplies:

- a client object offering `info()` (returning a `ChainInfo`), `status(hash)`
  (returning a `BlockStatus`), `block_hash(number)`, `call(hash, name, data)`
  for reading the genesis authorities, `finalize_block(hash, justification,
  notify)`, `check_block` / `import_block`, and `get_aux` / `insert_aux` for
  storage;
- a network service offering `broadcast(protocol_name, topic, message)` and
  `local_peer_id()`, and feeding received messages to
  `HotstuffNetworkBridge.on_incoming`;
- a sync service offering `set_sync_fork_request(peers, hash, number)`.

The only storage provided is the in-memory `MemoryAuxStore`; nothing is kept
on disk.

## Timer duration

`start_hotstuff` reads the `HOTSTUFF_DURATION` environment variable (whole
milliseconds) for the local view timer; it defaults to 3000.