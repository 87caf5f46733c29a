"""Instruction-count histograms and the metrics kept for the endpoints."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterator, Optional

M = 1_000_000
BUCKET_SIZE = 500 * M
NUM_BUCKETS = 21

_U64_MAX = (1 << 64) - 1


class InstructionHistogram:
    """A histogram of instruction counts.

    Values fall into buckets of (500M, 1B, 1.5B, ..., 9.5B, 10B, +Inf).
    """

    def __init__(self, name: str, help: str) -> None:
        self.name = name
        self.help = help
        self.sum = 0.0
        self.bucket_counts: list[int] = [0] * NUM_BUCKETS

    def observe(self, value: int) -> None:
        """Records one instruction count."""
        if not 0 <= value <= _U64_MAX:
            raise ValueError(f"instruction count out of range: {value}")
        self.bucket_counts[self._bucket_index(value)] += 1
        # Counts are kept in millions to keep the sum readable.
        self.sum += value / M

    def buckets(self) -> Iterator[tuple[float, float]]:
        """Yields each bucket's upper bound (in millions) with its count."""
        bounds = [float(bound) for bound in range(500, 10_500, BUCKET_SIZE // M)]
        bounds.append(float("inf"))
        return ((bound, float(count)) for bound, count in zip(bounds, self.bucket_counts))

    @staticmethod
    def _bucket_index(value: int) -> int:
        if value == 0:
            return 0
        return min((value - 1) // BUCKET_SIZE, NUM_BUCKETS - 1)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, InstructionHistogram):
            return NotImplemented
        return (
            self.name == other.name
            and self.help == other.help
            and self.sum == other.sum
            and self.bucket_counts == other.bucket_counts
        )

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"InstructionHistogram(name={self.name!r}, sum={self.sum!r}, buckets={self.bucket_counts!r})"


def default_get_block_headers_total() -> InstructionHistogram:
    return InstructionHistogram(
        "ins_block_headers_total",
        "Instructions needed to execute a get_block_headers request.",
    )


def default_get_block_headers_stable_blocks() -> InstructionHistogram:
    return InstructionHistogram(
        "inst_count_get_block_headers_stable_blocks",
        "Instructions needed to build the block headers vec in a get_block_headers "
        "request from stable blocks.",
    )


def default_get_block_headers_unstable_blocks() -> InstructionHistogram:
    return InstructionHistogram(
        "inst_count_get_block_headers_unstable_blocks",
        "Instructions needed to build the block headers vec in a get_block_headers "
        "request from unstable blocks.",
    )


def _histogram(name: str, help: str) -> Any:
    return field(default_factory=lambda: InstructionHistogram(name, help))


@dataclass
class Metrics:
    """Metrics for the various endpoints."""

    get_utxos_total: InstructionHistogram = _histogram(
        "ins_get_utxos_total",
        "Instructions needed to execute a get_utxos request.",
    )
    get_utxos_apply_unstable_blocks: InstructionHistogram = _histogram(
        "ins_get_utxos_apply_unstable_blocks",
        "Instructions needed to apply the unstable blocks in a get_utxos request.",
    )
    get_utxos_build_utxos_vec: InstructionHistogram = _histogram(
        "inst_count_get_utxos_build_utxos_vec",
        "Instructions needed to build the UTXOs vec in a get_utxos request.",
    )
    get_block_headers_total: InstructionHistogram = field(
        default_factory=default_get_block_headers_total
    )
    get_block_headers_stable_blocks: InstructionHistogram = field(
        default_factory=default_get_block_headers_stable_blocks
    )
    get_block_headers_unstable_blocks: InstructionHistogram = field(
        default_factory=default_get_block_headers_unstable_blocks
    )
    get_balance_total: InstructionHistogram = _histogram(
        "ins_get_balance_total",
        "Instructions needed to execute a get_balance request.",
    )
    get_balance_apply_unstable_blocks: InstructionHistogram = _histogram(
        "ins_get_balance_apply_unstable_blocks",
        "Instructions needed to apply the unstable blocks in a get_utxos request.",
    )
    get_current_fee_percentiles_total: InstructionHistogram = _histogram(
        "ins_get_current_fee_percentiles_total",
        "Instructions needed to execute a get_current_fee_percentiles request.",
    )
    # The total number of (valid) requests sent to `send_transaction`.
    send_transaction_count: int = 0
    # The stats of the most recent block ingested into the stable UTXO set.
    block_ingestion_stats: Optional[Any] = None
    block_insertion: InstructionHistogram = _histogram(
        "ins_block_insertion",
        "Instructions needed to insert a block into the pool of unstable blocks.",
    )
    cycles_burnt: Optional[int] = 0

    def add_cycles_burnt(self, cycles: int) -> None:
        """Adds to the total number of cycles burnt."""
        if self.cycles_burnt is None:
            self.cycles_burnt = cycles
        else:
            self.cycles_burnt += cycles