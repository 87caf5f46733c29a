"""The periodic task that keeps the chain in sync with the network."""

from __future__ import annotations

import logging
from typing import Optional, Protocol, Sequence

from btcindex.blocktree import BlockDoesNotExtendTree
from btcindex.fetching import fetch_blocks
from btcindex.metrics import Metrics
from btcindex.runtime import Runtime
from btcindex.syncing import Flag, SyncingState
from btcindex.types import (
    Block,
    BlockHeaderBlob,
    GetSuccessorsCompleteResponse,
    Network,
)

logger = logging.getLogger(__name__)


class Chain(Protocol):
    """The block state that the heartbeat feeds with new blocks."""

    def ingest_stable_blocks(self) -> bool:
        """Moves blocks that have become stable into the stable set.

        Returns whether anything changed.
        """

    def insert_block(self, block: Block) -> None:
        """Adds a block to the unstable blocks.

        Raises `BlockDoesNotExtendTree` or `ValueError` if the block is rejected.
        """

    def insert_next_block_headers(self, header_blobs: Sequence[BlockHeaderBlob]) -> None:
        """Records headers of blocks that are known but not yet downloaded."""

    def unstable_block_hashes(self) -> Sequence[bytes]:
        """Returns the hashes of the unstable blocks, the anchor first."""

    def compute_fee_percentiles(self) -> list[int]:
        """Computes and caches the current fee percentiles."""


class Heartbeat:
    """Fetches new blocks from the network and inserts them into the chain."""

    def __init__(
        self,
        chain: Chain,
        runtime: Runtime,
        syncing_state: SyncingState,
        metrics: Metrics,
        network: Network,
        burn_cycles: Flag = Flag.DISABLED,
        lazily_evaluate_fee_percentiles: Flag = Flag.DISABLED,
    ) -> None:
        self.chain = chain
        self.runtime = runtime
        self.syncing_state = syncing_state
        self.metrics = metrics
        self.network = network
        self.burn_cycles_flag = burn_cycles
        self.lazily_evaluate_fee_percentiles = lazily_evaluate_fee_percentiles

    async def run(self) -> None:
        """Runs one round of the heartbeat.

        Each round does at most one of: ingesting stable blocks, fetching a
        response, or processing a response, to stay within instruction limits.
        """
        logger.info("Starting heartbeat...")
        self.burn_cycles()

        if self.chain.ingest_stable_blocks():
            logger.info("Done ingesting stable blocks.")
            return

        fetched = await fetch_blocks(
            self.syncing_state,
            self.runtime,
            self.network,
            self.chain.unstable_block_hashes(),
        )
        if fetched:
            logger.info("Done fetching new response.")
            return

        self.process_response()
        self._maybe_compute_fee_percentiles()

    def process_response(self) -> int:
        """Inserts the blocks of a complete response, if one is available.

        On the first block that cannot be decoded or inserted, the rest of the
        response is dropped. Returns the number of blocks inserted.
        """
        response = self.syncing_state.response_to_process
        if not isinstance(response, GetSuccessorsCompleteResponse):
            if response is None:
                logger.info("No response available to process.")
            else:
                logger.info("Complete response not yet available. Response so far: %r", response)
            return 0

        self.syncing_state.response_to_process = None
        logger.info("Inserting %d blocks from response...", len(response.blocks))
        inserted = 0
        for block_bytes in response.blocks:
            try:
                block = Block.decode(block_bytes)
            except ValueError as err:
                logger.error(
                    "Cannot deserialize block. Err: %s, Block bytes: %r", err, block_bytes
                )
                self.syncing_state.num_block_deserialize_errors += 1
                return inserted
            try:
                self.chain.insert_block(block)
            except (BlockDoesNotExtendTree, ValueError) as err:
                logger.error("Failed to insert block. Err: %s, Block bytes: %r", err, block_bytes)
                self.syncing_state.num_insert_block_errors += 1
                return inserted
            inserted += 1

        logger.info("Inserting %d next block headers...", len(response.next))
        self.chain.insert_next_block_headers(response.next)
        return inserted

    def burn_cycles(self) -> int:
        """Burns the cycles balance if enabled and returns the amount burnt."""
        if self.burn_cycles_flag != Flag.ENABLED:
            return 0
        cycles_burnt = self.runtime.cycles_burn()
        self.metrics.add_cycles_burnt(cycles_burnt)
        return cycles_burnt

    def _maybe_compute_fee_percentiles(self) -> Optional[list[int]]:
        if self.lazily_evaluate_fee_percentiles == Flag.ENABLED:
            return None
        return self.chain.compute_fee_percentiles()