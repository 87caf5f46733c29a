"""State kept while syncing blocks from the network."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from btcindex.types import (
    BlockHeaderBlob,
    GetSuccessorsCompleteResponse,
    GetSuccessorsPartialResponse,
)

_U8_MAX = 0xFF


class Flag(enum.Enum):
    """An on/off switch for a feature."""

    ENABLED = "enabled"
    DISABLED = "disabled"

    def __str__(self) -> str:
        return self.value


@dataclass
class PartialResponseToProcess:
    """A partial response with the number of follow-up pages received so far."""

    response: GetSuccessorsPartialResponse
    follow_up_index: int = 0

    def __post_init__(self) -> None:
        if not 0 <= self.follow_up_index <= _U8_MAX:
            raise ValueError(f"follow-up index out of range: {self.follow_up_index}")


ResponseToProcess = Union[GetSuccessorsCompleteResponse, PartialResponseToProcess]


def _encode_headers(headers: list[BlockHeaderBlob]) -> list[bytes]:
    return [bytes(header) for header in headers]


def _decode_headers(items: list[Any]) -> list[BlockHeaderBlob]:
    return [BlockHeaderBlob(item) for item in items]


def _response_to_dict(response: Optional[ResponseToProcess]) -> Optional[dict[str, Any]]:
    if response is None:
        return None
    if isinstance(response, GetSuccessorsCompleteResponse):
        return {
            "kind": "complete",
            "blocks": [bytes(block) for block in response.blocks],
            "next": _encode_headers(response.next),
        }
    if isinstance(response, PartialResponseToProcess):
        partial = response.response
        return {
            "kind": "partial",
            "partial_block": bytes(partial.partial_block),
            "next": _encode_headers(partial.next),
            "remaining_follow_ups": partial.remaining_follow_ups,
            "follow_up_index": response.follow_up_index,
        }
    raise TypeError(f"unexpected response to process: {response!r}")


def _response_from_dict(data: Optional[dict[str, Any]]) -> Optional[ResponseToProcess]:
    if data is None:
        return None
    kind = data["kind"]
    if kind == "complete":
        return GetSuccessorsCompleteResponse(
            blocks=[bytes(block) for block in data["blocks"]],
            next=_decode_headers(data["next"]),
        )
    if kind == "partial":
        return PartialResponseToProcess(
            GetSuccessorsPartialResponse(
                partial_block=bytes(data["partial_block"]),
                next=_decode_headers(data["next"]),
                remaining_follow_ups=int(data["remaining_follow_ups"]),
            ),
            int(data["follow_up_index"]),
        )
    raise ValueError(f"unknown response kind: {kind!r}")


@dataclass
class SyncingState:
    """State used for fetching new blocks from the network."""

    syncing: Flag = Flag.ENABLED
    is_fetching_blocks: bool = False
    response_to_process: Optional[ResponseToProcess] = None
    num_get_successors_rejects: int = 0
    num_block_deserialize_errors: int = 0
    num_insert_block_errors: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Returns the state as plain data suitable for serialization."""
        return {
            "syncing": self.syncing.value,
            "is_fetching_blocks": self.is_fetching_blocks,
            "response_to_process": _response_to_dict(self.response_to_process),
            "num_get_successors_rejects": self.num_get_successors_rejects,
            "num_block_deserialize_errors": self.num_block_deserialize_errors,
            "num_insert_block_errors": self.num_insert_block_errors,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SyncingState":
        """Rebuilds the state from the output of `to_dict`."""
        return cls(
            syncing=Flag(data["syncing"]),
            is_fetching_blocks=bool(data["is_fetching_blocks"]),
            response_to_process=_response_from_dict(data["response_to_process"]),
            num_get_successors_rejects=int(data["num_get_successors_rejects"]),
            num_block_deserialize_errors=int(data["num_block_deserialize_errors"]),
            num_insert_block_errors=int(data["num_insert_block_errors"]),
        )


@dataclass
class FeePercentilesCache:
    """The last computed fee percentiles and the tip they were computed for."""

    tip_block_hash: bytes = b""
    fee_percentiles: list[int] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Returns the cache as plain data suitable for serialization."""
        return {
            "tip_block_hash": bytes(self.tip_block_hash),
            "fee_percentiles": list(self.fee_percentiles),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FeePercentilesCache":
        """Rebuilds the cache from the output of `to_dict`."""
        return cls(
            tip_block_hash=bytes(data["tip_block_hash"]),
            fee_percentiles=[int(fee) for fee in data["fee_percentiles"]],
        )