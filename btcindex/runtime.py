"""The environment the syncing logic runs against: remote calls, counters and cycles.

This implementation keeps everything in memory. Replies to block requests are
queued up front, which makes the syncing logic fully deterministic.
"""

from __future__ import annotations

import enum
import time as _time
from typing import Iterable, Optional, Union

from btcindex.types import (
    GetSuccessorsCompleteResponse,
    GetSuccessorsRequest,
    GetSuccessorsResponse,
    SendTransactionInternalRequest,
)

# The instruction limit in system subnets is 50B.
INSTRUCTIONS_LIMIT = 50_000_000_000

_U64_MAX = (1 << 64) - 1
_CYCLES_BURNT_PER_CALL = 1_000_000


class RejectionCode(enum.IntEnum):
    """Why a remote call was rejected."""

    NO_ERROR = 0
    SYS_FATAL = 1
    SYS_TRANSIENT = 2
    DESTINATION_INVALID = 3
    CANISTER_REJECT = 4
    CANISTER_ERROR = 5
    UNKNOWN = 6


class CallRejected(Exception):
    """Raised when a remote call is rejected."""

    def __init__(self, code: RejectionCode, message: str) -> None:
        super().__init__(f"[{code.name}] {message}")
        self.code = code
        self.message = message


class InstructionsLimitExceeded(RuntimeError):
    """Raised when the instruction counter passes the instruction limit."""

    def __init__(self) -> None:
        super().__init__("instructions limit exceeded")


GetSuccessorsReply = Union[GetSuccessorsResponse, CallRejected]


class Runtime:
    """An in-memory runtime with queued replies and a stepping instruction counter."""

    def __init__(self) -> None:
        self._replies: list[GetSuccessorsReply] = []
        self._reply_index = 0
        self._performance_counter = 0
        self._performance_counter_step = 0
        self.cycles_balance = 0
        self.requests: list[GetSuccessorsRequest] = []
        self.sent_transactions: list[SendTransactionInternalRequest] = []

    def set_successors_response(self, reply: GetSuccessorsReply) -> None:
        """Sets the single reply returned by the next block request."""
        self.set_successors_responses([reply])

    def set_successors_responses(self, replies: Iterable[GetSuccessorsReply]) -> None:
        """Sets the replies returned by block requests, in order."""
        self._replies = list(replies)
        self._reply_index = 0

    async def call_get_successors(self, request: GetSuccessorsRequest) -> GetSuccessorsResponse:
        """Requests successor blocks.

        Returns the next queued reply, or an empty complete response once the
        queue is used up. A queued `CallRejected` is raised.
        """
        self.requests.append(request)
        reply: Optional[GetSuccessorsReply] = None
        if self._reply_index < len(self._replies):
            reply = self._replies[self._reply_index]
        self._reply_index += 1
        if reply is None:
            return GetSuccessorsCompleteResponse(blocks=[], next=[])
        if isinstance(reply, CallRejected):
            raise reply
        return reply

    async def call_send_transaction_internal(self, request: SendTransactionInternalRequest) -> None:
        """Sends a transaction to the network."""
        self.sent_transactions.append(request)

    def inc_performance_counter(self) -> int:
        """Advances the instruction counter by its step and returns it."""
        self._performance_counter += self._performance_counter_step
        if self._performance_counter > INSTRUCTIONS_LIMIT:
            raise InstructionsLimitExceeded()
        return self._performance_counter

    def performance_counter(self) -> int:
        """Returns the current instruction count."""
        return self._performance_counter

    def performance_counter_reset(self) -> None:
        """Sets the instruction count back to zero."""
        self._performance_counter = 0

    def set_performance_counter_step(self, step: int) -> None:
        """Sets how much each `inc_performance_counter` call adds."""
        if step < 0:
            raise ValueError("step must not be negative")
        self._performance_counter_step = step

    def msg_cycles_available(self) -> int:
        """Returns the cycles attached to the current message."""
        return _U64_MAX // 2

    def msg_cycles_accept(self, max_amount: int) -> int:
        """Accepts up to `max_amount` cycles and returns the amount accepted."""
        if not 0 <= max_amount <= _U64_MAX:
            raise ValueError(f"amount out of range: {max_amount}")
        self.cycles_balance += max_amount
        return max_amount

    def cycles_burn(self) -> int:
        """Burns cycles and returns how many were burnt."""
        return _CYCLES_BURNT_PER_CALL

    def time(self) -> int:
        """Returns the current time in seconds since the Unix epoch."""
        return int(_time.time())