"""Page-based growable memories and a manager that hands out one per id."""

from __future__ import annotations

import enum
from typing import Optional

WASM_PAGE_SIZE = 65536


class MemoryId(enum.IntEnum):
    """Identifiers of the memories used for persistent state."""

    UPGRADES = 0
    ADDRESS_UTXOS = 1
    SMALL_UTXOS = 2
    MEDIUM_UTXOS = 3
    BALANCES = 4
    BLOCK_HEADERS = 5
    BLOCK_HEIGHTS = 6


class Memory:
    """A linear memory that grows in pages of `WASM_PAGE_SIZE` bytes."""

    def __init__(self, max_pages: Optional[int] = None) -> None:
        if max_pages is not None and max_pages < 0:
            raise ValueError("max_pages must not be negative")
        self.max_pages = max_pages
        self._data = bytearray()

    def size(self) -> int:
        """Returns the size of the memory in pages."""
        return len(self._data) // WASM_PAGE_SIZE

    def grow(self, pages: int) -> int:
        """Grows the memory by `pages` pages.

        Returns the previous size in pages, or -1 if the memory cannot grow.
        """
        if pages < 0:
            raise ValueError("cannot grow by a negative number of pages")
        previous = self.size()
        if self.max_pages is not None and previous + pages > self.max_pages:
            return -1
        self._data.extend(bytes(pages * WASM_PAGE_SIZE))
        return previous

    def _check_range(self, offset: int, length: int) -> None:
        if offset < 0 or length < 0:
            raise ValueError("offset and length must not be negative")
        if offset + length > len(self._data):
            raise IndexError(
                f"access of {length} bytes at offset {offset} is out of bounds "
                f"(memory is {len(self._data)} bytes)"
            )

    def read(self, offset: int, length: int) -> bytes:
        """Returns `length` bytes starting at `offset`."""
        self._check_range(offset, length)
        return bytes(self._data[offset:offset + length])

    def write(self, offset: int, data: bytes) -> None:
        """Writes `data` at `offset`; the memory must already be large enough."""
        data = bytes(data)
        self._check_range(offset, len(data))
        self._data[offset:offset + len(data)] = data


class MemoryManager:
    """Hands out one independent memory per `MemoryId`."""

    def __init__(self, max_pages: Optional[int] = None) -> None:
        self.max_pages = max_pages
        self._memories: dict[MemoryId, Memory] = {}

    def get(self, memory_id: MemoryId) -> Memory:
        """Returns the memory for the given id, creating it on first use."""
        memory_id = MemoryId(memory_id)
        memory = self._memories.get(memory_id)
        if memory is None:
            memory = self._memories[memory_id] = Memory(self.max_pages)
        return memory


def write(memory: Memory, offset: int, data: bytes) -> None:
    """Writes the bytes at the given offset, growing the memory if needed."""
    data = bytes(data)
    if offset < 0:
        raise ValueError("offset must not be negative")
    last_byte = offset + len(data)
    size_pages = memory.size()
    size_bytes = size_pages * WASM_PAGE_SIZE
    if size_bytes < last_byte:
        diff_pages = (last_byte - size_bytes + WASM_PAGE_SIZE - 1) // WASM_PAGE_SIZE
        if memory.grow(diff_pages) == -1:
            raise MemoryError(
                f"Failed to grow memory from {size_pages} pages to "
                f"{size_pages + diff_pages} pages (delta = {diff_pages} pages)."
            )
    memory.write(offset, data)