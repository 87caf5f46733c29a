"""Serialization of block trees as a flat, pre-order list of nodes.

Flattening avoids recursion, so very deep trees can be encoded and decoded.
"""

from __future__ import annotations

from typing import Any, Iterable

import cbor2

from btcindex.blocktree import BlockTree
from btcindex.types import Block


def flatten_tree(tree: BlockTree) -> list[tuple[Block, int]]:
    """Returns each block with its number of children, in pre-order."""
    flattened: list[tuple[Block, int]] = []
    stack = [tree]
    while stack:
        node = stack.pop()
        flattened.append((node.root, len(node.children)))
        stack.extend(reversed(node.children))
    return flattened


def unflatten_tree(items: Iterable[tuple[Block, int]]) -> BlockTree:
    """Rebuilds a tree from the output of `flatten_tree`."""
    entries = iter(items)

    def next_entry() -> tuple[Block, int]:
        try:
            block, num_children = next(entries)
        except StopIteration:
            raise ValueError("expected more entries while decoding a block tree") from None
        if isinstance(num_children, bool) or not isinstance(num_children, int) or num_children < 0:
            raise ValueError(f"invalid number of children: {num_children!r}")
        return block, num_children

    root, num_children = next_entry()
    # Each entry holds a subtree and how many children remain to be added to it.
    stack: list[list[Any]] = [[BlockTree(root), num_children]]
    while stack:
        tree, remaining = stack[-1]
        if remaining == 0:
            stack.pop()
            if stack:
                stack[-1][0].children.append(tree)
                continue
            if next(entries, None) is not None:
                raise ValueError("unexpected trailing entries after the block tree")
            return tree
        stack[-1][1] = remaining - 1
        child, grand_children = next_entry()
        stack.append([BlockTree(child), grand_children])
    raise ValueError("expected more entries while decoding a block tree")


def dumps(tree: BlockTree) -> bytes:
    """Encodes a block tree as CBOR."""
    return cbor2.dumps([[block.encode(), count] for block, count in flatten_tree(tree)])


def loads(data: bytes) -> BlockTree:
    """Decodes a block tree from the output of `dumps`."""
    decoded = cbor2.loads(data)
    if not isinstance(decoded, list):
        raise ValueError("encoded block tree must be a list")

    def entries() -> Iterable[tuple[Block, int]]:
        for item in decoded:
            if not isinstance(item, (list, tuple)) or len(item) != 2:
                raise ValueError(f"invalid block tree entry: {item!r}")
            block_bytes, num_children = item
            if not isinstance(block_bytes, (bytes, bytearray)):
                raise ValueError("block must be encoded as bytes")
            yield Block.decode(bytes(block_bytes)), num_children

    return unflatten_tree(entries())