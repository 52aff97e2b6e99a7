from .codec import decode, encode, load_snapshot, write_snapshot
from .collector import collect_snapshot, collect_to_file
from .model import CountRecord, EntityKey, Snapshot, join_identifier, split_identifier

__all__ = [
    "CountRecord",
    "EntityKey",
    "Snapshot",
    "collect_snapshot",
    "collect_to_file",
    "decode",
    "encode",
    "join_identifier",
    "load_snapshot",
    "split_identifier",
    "write_snapshot",
]
