"""In-memory Bitcoin block index: block types, block trees, header store and syncing heartbeat."""

__version__ = "0.1.0"