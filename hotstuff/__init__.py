"""HotStuff-style BFT finality consensus: messages, certificates, view changes and finality."""

__version__ = "0.1.0"

__all__ = [
    "aggregator",
    "authorities",
    "block_import",
    "client",
    "config",
    "message",
    "network",
    "primitives",
    "state",
    "store",
    "synchronizer",
    "worker",
]