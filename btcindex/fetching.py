"""Fetching successor blocks and assembling paginated responses."""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from btcindex.guard import AlreadyFetchingError, FetchBlocksGuard
from btcindex.runtime import CallRejected, RejectionCode, Runtime
from btcindex.syncing import Flag, PartialResponseToProcess, SyncingState
from btcindex.types import (
    GetSuccessorsCompleteResponse,
    GetSuccessorsFollowUpRequest,
    GetSuccessorsFollowUpResponse,
    GetSuccessorsPartialResponse,
    GetSuccessorsRequest,
    GetSuccessorsRequestInitial,
    GetSuccessorsResponse,
    Network,
)

logger = logging.getLogger(__name__)


def next_request(
    syncing_state: SyncingState,
    network: Network,
    unstable_block_hashes: Sequence[bytes],
) -> Optional[GetSuccessorsRequest]:
    """Returns the request to send next, or None if a complete response awaits processing.

    `unstable_block_hashes` starts with the anchor block's hash.
    """
    pending = syncing_state.response_to_process
    if isinstance(pending, GetSuccessorsCompleteResponse):
        return None
    if isinstance(pending, PartialResponseToProcess):
        if pending.response.remaining_follow_ups < pending.follow_up_index:
            raise RuntimeError("follow-up index exceeds the number of follow-ups")
        return GetSuccessorsFollowUpRequest(pending.follow_up_index)
    hashes = [bytes(block_hash) for block_hash in unstable_block_hashes]
    if not hashes:
        raise ValueError("there must be at least one unstable block")
    return GetSuccessorsRequestInitial(
        network=network, anchor=hashes[0], processed_block_hashes=hashes[1:]
    )


def record_response(syncing_state: SyncingState, response: GetSuccessorsResponse) -> None:
    """Stores a received response, joining follow-up pages onto a partial response."""
    if isinstance(response, GetSuccessorsCompleteResponse):
        if syncing_state.response_to_process is not None:
            raise RuntimeError("Received complete response before processing previous response.")
        syncing_state.response_to_process = response
    elif isinstance(response, GetSuccessorsPartialResponse):
        if syncing_state.response_to_process is not None:
            raise RuntimeError("Received partial response before processing previous response.")
        syncing_state.response_to_process = PartialResponseToProcess(response, 0)
    elif isinstance(response, GetSuccessorsFollowUpResponse):
        pending = syncing_state.response_to_process
        syncing_state.response_to_process = None
        if not isinstance(pending, PartialResponseToProcess):
            raise RuntimeError(
                "Cannot receive follow-up response without a previous partial response. "
                f"Previous response found: {pending!r}"
            )
        partial = pending.response
        partial.partial_block = bytes(partial.partial_block) + bytes(response.block_bytes)
        follow_up_index = pending.follow_up_index + 1
        if follow_up_index == partial.remaining_follow_ups:
            syncing_state.response_to_process = GetSuccessorsCompleteResponse(
                blocks=[partial.partial_block], next=partial.next
            )
        else:
            syncing_state.response_to_process = PartialResponseToProcess(partial, follow_up_index)
    else:
        raise TypeError(f"unexpected response: {response!r}")


def record_rejection(syncing_state: SyncingState, code: RejectionCode, message: str) -> None:
    """Counts a rejected request and drops any response in progress."""
    syncing_state.num_get_successors_rejects += 1
    logger.warning("Error fetching blocks: [%s] %s", code.name, message)
    syncing_state.response_to_process = None


async def fetch_blocks(
    syncing_state: SyncingState,
    runtime: Runtime,
    network: Network,
    unstable_block_hashes: Sequence[bytes],
) -> bool:
    """Fetches new blocks unless syncing is off, a fetch is running or a response awaits.

    Returns True if a request was sent.
    """
    if syncing_state.syncing == Flag.DISABLED:
        return False
    try:
        with FetchBlocksGuard(syncing_state):
            request = next_request(syncing_state, network, unstable_block_hashes)
            if request is None:
                return False
            logger.info("Sending request: %r", request)
            try:
                response = await runtime.call_get_successors(request)
            except CallRejected as rejection:
                record_rejection(syncing_state, rejection.code, rejection.message)
                return True
            logger.info("Received response: %r", response)
            record_response(syncing_state, response)
            return True
    except AlreadyFetchingError:
        return False