"""Storage of block headers indexed by block hash and by height."""

from __future__ import annotations

from typing import Iterator, Optional

from sortedcontainers import SortedDict

from btcindex.types import Block, BlockHeader, BlockHeaderBlob


class BlockHeaderStore:
    """Stores block headers and indexes them by block hash and height."""

    def __init__(self) -> None:
        self.block_headers: dict[bytes, BlockHeaderBlob] = {}
        self.block_heights: SortedDict = SortedDict()

    def insert_block(self, block: Block, height: int) -> None:
        """Stores the header of the given block at the given height."""
        self.insert(block.block_hash(), BlockHeaderBlob(block.header.encode()), height)

    def insert(self, block_hash: bytes, header_blob: BlockHeaderBlob, height: int) -> None:
        """Stores a serialized header under its hash and height."""
        block_hash = bytes(block_hash)
        self.block_headers[block_hash] = header_blob
        self.block_heights[height] = block_hash

    def get_with_block_hash(self, block_hash: bytes) -> Optional[BlockHeader]:
        """Returns the header with the given hash, if stored."""
        blob = self.block_headers.get(bytes(block_hash))
        return None if blob is None else BlockHeader.decode(bytes(blob))

    def get_with_height(self, height: int) -> Optional[BlockHeader]:
        """Returns the header at the given height, if stored."""
        block_hash = self.block_heights.get(height)
        if block_hash is None:
            return None
        return BlockHeader.decode(bytes(self._blob(block_hash)))

    def get_block_headers_in_range(self, start: int, end: int) -> Iterator[BlockHeaderBlob]:
        """Yields the stored headers with heights in `start..=end`, in height order."""
        for height in self.block_heights.irange(start, end):
            yield self._blob(self.block_heights[height])

    def _blob(self, block_hash: bytes) -> BlockHeaderBlob:
        try:
            return self.block_headers[block_hash]
        except KeyError:
            raise LookupError(
                f"block header must exist for {block_hash[::-1].hex()}"
            ) from None

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, BlockHeaderStore):
            return NotImplemented
        return (
            self.block_headers == other.block_headers
            and dict(self.block_heights) == dict(other.block_heights)
        )

    __hash__ = None  # type: ignore[assignment]