"""A guard ensuring only one block fetch is in progress at a time."""

from __future__ import annotations

from types import TracebackType
from typing import Optional

from btcindex.syncing import SyncingState


class AlreadyFetchingError(RuntimeError):
    """Raised when a block fetch is already in progress."""

    def __init__(self) -> None:
        super().__init__("a request to fetch blocks is already in progress")


class FetchBlocksGuard:
    """Marks blocks as being fetched for the duration of a `with` block."""

    def __init__(self, syncing_state: SyncingState) -> None:
        self._syncing_state = syncing_state

    def __enter__(self) -> "FetchBlocksGuard":
        if self._syncing_state.is_fetching_blocks:
            raise AlreadyFetchingError()
        self._syncing_state.is_fetching_blocks = True
        return self

    def __exit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> bool:
        self._syncing_state.is_fetching_blocks = False
        return False