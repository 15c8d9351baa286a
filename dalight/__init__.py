"""Light-node building blocks: header stores, a header syncer, JSON serializers and an RPC client."""

__version__ = "0.1.0"
__all__ = ["disk_store", "rpc", "serializers", "store", "sync_state", "syncer", "utils"]