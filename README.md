# btcindex

`btcindex` is a library for indexing a Bitcoin chain in memory. It provides:

- a tree of recent blocks, forks included, that are not yet stable;
- a store of stable block headers that you can look up by hash or by height;
- the byte encodings used for storage keys;
- the syncing logic, which fetches successor blocks and processes them in small steps.

## Installation

```
pip install .
```

With the test dependencies:

```
pip install ".[test]"
```

## Modules

### `btcindex.types`

This module defines the core data types.

- `Block` and `BlockHeader` cover the 80-byte header and the block wire format. Both have `encode`, `decode` and `block_hash`. `Block.difficulty(network)` returns a block's difficulty.
- `OutPoint` and `Txid`. `str(txid)` gives the reversed hex form.
- `Address` has `from_script`, `parse`, `to_bytes` and `from_bytes`. It supports P2PKH, P2SH and segwit (bech32/bech32m). Invalid input raises `InvalidAddress`.
- `Utxo` sorts by descending height, then by outpoint, then by value.
- `Page`, `AddressUtxo` and `AddressUtxoRange` are the keys used for paging through UTXOs.
- `BlockHeaderBlob` is a serialized header. It must be exactly 80 bytes.
- The request and response types exchanged while syncing:
  - `GetSuccessorsRequestInitial` and `GetSuccessorsFollowUpRequest`;
  - `GetSuccessorsCompleteResponse`, `GetSuccessorsPartialResponse` and `GetSuccessorsFollowUpResponse`.
- `HttpRequest` and `HttpResponse`.
- `Paused` and `Done` mark the result of time-sliced work.
- Key encodings:
  - `encode_height` / `decode_height`. Heights are XOR'ed and big-endian, so keys sort in descending height order.
  - `encode_height_outpoint` / `decode_height_outpoint`.
  - `encode_txout_height` / `decode_txout_height`.

### `btcindex.blocktree`

`BlockTree` is a tree of connected blocks.

- `extend(block)` adds a block under its parent. Adding a block that is already present does nothing. A block with no parent in the tree raises `BlockDoesNotExtendTree`.
- `blockchains()` returns every chain from the root to a tip.
- `get_chain_with_tip(hash)` returns the chain ending at that block, or `None`.
- `find(hash)` returns the subtree rooted at that block together with its depth, or `None`.
- `contains(block)` reports whether the block is in the tree.
- `depth()` and `difficulty_based_depth(network)` measure the tree.
- `num_tips()` counts the tips.
- `blocks_with_depths_by_heights()` gives depth information grouped by height.

All traversals are iterative, so very deep trees work.

`BlockChain` is a non-empty chain. `BlockChain.from_blocks([])` raises `EmptyChainError`.

### `btcindex.blocktree_codec`

- `dumps(tree)` encodes a `BlockTree` as CBOR and `loads(data)` decodes it.
- `flatten_tree` and `unflatten_tree` convert between a tree and a pre-order list of `(block, number_of_children)` pairs.

### `btcindex.block_header_store`

`BlockHeaderStore` indexes stable block headers by hash and by height.

- `insert_block` and `insert` add headers.
- `get_with_block_hash` and `get_with_height` return a header, or `None`.
- `get_block_headers_in_range(start, end)` yields header blobs for the inclusive height range, in height order.

### `btcindex.metrics`

- `InstructionHistogram.observe(value)` counts instruction values in 21 buckets. The buckets go from 500M to 10B in 500M steps, plus `+Inf`. `buckets()` yields `(upper_bound_in_millions, count)`.
- `Metrics` holds the histograms and counters. `add_cycles_burnt` adds to the cycles total.

### `btcindex.memory`

- `Memory` is a byte memory that grows in 64 KiB pages. `grow` returns `-1` once `max_pages` would be exceeded.
- `MemoryManager.get(MemoryId)` returns one memory per id.
- `write(memory, offset, data)` grows the memory as needed. It raises `MemoryError` if growing fails.

### `btcindex.syncing`

- `SyncingState` holds the sync flag, the response waiting to be processed and the error counters.
- `FeePercentilesCache` caches fee percentiles.

Both convert to and from plain dicts with `to_dict` / `from_dict`. `Flag` is `ENABLED` or `DISABLED`.

### `btcindex.guard`

`FetchBlocksGuard` is a context manager. It marks a fetch as in progress and raises `AlreadyFetchingError` if one is already running.

### `btcindex.runtime`

`Runtime` is an in-memory environment.

- `set_successors_response` and `set_successors_responses` queue replies to successor requests. A queued `CallRejected` is raised instead of returned. Once the queue is used up, an empty complete response is returned.
- It has an instruction counter: `inc_performance_counter`, `performance_counter_reset` and `set_performance_counter_step`. Passing 50B instructions raises `InstructionsLimitExceeded`.
- It tracks cycles and gives the time.

### `btcindex.fetching`

- `next_request` chooses between an initial request and a follow-up request. It returns `None` while a complete response waits.
- `record_response` stores a response and joins follow-up pages onto a partial response.
- `record_rejection` counts a rejected call.
- `fetch_blocks` is asynchronous and ties these together.

### `btcindex.heartbeat`

`Heartbeat.run()` is asynchronous. Each run first burns cycles if that is enabled, then does at most one of:

1. ingest stable blocks;
2. fetch a response;
3. process a complete response, then compute fee percentiles unless they are evaluated lazily.

`process_response` stops at the first block that cannot be decoded or inserted. It counts the error and drops the rest of the response.

## Example

```python
from btcindex.blocktree import BlockTree
from btcindex.blocktree_codec import dumps, loads
from btcindex.types import Block, BlockHeader

genesis = Block(BlockHeader(1, bytes(32), bytes(32), 0, 0x207FFFFF, 0))
child = Block(BlockHeader(1, genesis.block_hash(), bytes(32), 1, 0x207FFFFF, 0))

tree = BlockTree(genesis)
tree.extend(child)
assert len(tree.get_chain_with_tip(child.block_hash())) == 2
assert loads(dumps(tree)) == tree
```

## What the package does not do

- **No chain state.** `Heartbeat` works against a `Chain` protocol, and you must supply the object that implements it. The package contains no UTXO set, no pool of unstable blocks, no header validation and no fee-percentile computation.
- **No queries.** There are no balance or UTXO queries.
- **No interface.** There is no command-line program and no network server. `Runtime` replies only with what you queue, and it never contacts the Bitcoin network.

## Running the tests

```
pytest
```