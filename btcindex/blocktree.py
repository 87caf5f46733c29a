"""A tree of connected blocks and the chains that run through it."""

from __future__ import annotations

from typing import Iterator, Optional, Sequence

from btcindex.types import Block, Network


class EmptyChainError(ValueError):
    """Raised when building a `BlockChain` out of an empty list of blocks."""

    def __init__(self) -> None:
        super().__init__("cannot create a `BlockChain` from an empty chain")


class BlockDoesNotExtendTree(Exception):
    """Raised when a block isn't a successor of any block in the tree."""

    def __init__(self, block_hash: bytes) -> None:
        super().__init__(f"block {bytes(block_hash)[::-1].hex()} does not extend the tree")
        self.block_hash = block_hash


class BlockChain:
    """A non-empty chain of blocks: a first block followed by its successors."""

    def __init__(self, first: Block, successors: Optional[Sequence[Block]] = None) -> None:
        self.first = first
        self.successors: list[Block] = list(successors or [])

    @classmethod
    def from_blocks(cls, blocks: Sequence[Block]) -> "BlockChain":
        """Builds a chain from a list of blocks ordered by height."""
        blocks = list(blocks)
        if not blocks:
            raise EmptyChainError()
        return cls(blocks[0], blocks[1:])

    def push(self, block: Block) -> None:
        """Appends a block to the end of the chain."""
        self.successors.append(block)

    def __len__(self) -> int:
        return len(self.successors) + 1

    def tip(self) -> Block:
        """Returns the last block of the chain."""
        return self.successors[-1] if self.successors else self.first

    def into_chain(self) -> list[Block]:
        """Returns all blocks of the chain, first to tip."""
        return [self.first, *self.successors]

    def __iter__(self) -> Iterator[Block]:
        return iter(self.into_chain())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, BlockChain):
            return NotImplemented
        return self.first == other.first and self.successors == other.successors

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"BlockChain(first={self.first!r}, successors={self.successors!r})"


class BlockTree:
    """A tree of connected blocks rooted at a single block."""

    def __init__(self, root: Block) -> None:
        self.root = root
        self.children: list[BlockTree] = []

    def _pre_order(self) -> Iterator[tuple["BlockTree", list[tuple["BlockTree", Iterator["BlockTree"]]]]]:
        """Yields each subtree with the stack of its ancestors, parents before children."""
        stack: list[tuple[BlockTree, Iterator[BlockTree]]] = []
        yield self, stack
        stack.append((self, iter(self.children)))
        while stack:
            child = next(stack[-1][1], None)
            if child is None:
                stack.pop()
                continue
            yield child, stack
            stack.append((child, iter(child.children)))

    def _post_order(self) -> Iterator[tuple["BlockTree", int]]:
        """Yields each subtree with its height, children before parents."""
        stack: list[tuple[BlockTree, Iterator[BlockTree]]] = [(self, iter(self.children))]
        while stack:
            tree, children = stack[-1]
            child = next(children, None)
            if child is None:
                stack.pop()
                yield tree, len(stack)
            else:
                stack.append((child, iter(child.children)))

    def blocks_with_depths_by_heights(self) -> list[list[tuple[Block, int]]]:
        """Returns every block with the depth of its subtree, grouped by height."""
        result: list[list[tuple[Block, int]]] = [[]]
        depths: dict[int, int] = {}
        for tree, height in self._post_order():
            depth = 1 + max((depths.pop(id(child)) for child in tree.children), default=0)
            depths[id(tree)] = depth
            while len(result) <= height:
                result.append([])
            result[height].append((tree.root, depth))
        return result

    def num_tips(self) -> int:
        """Returns the number of tips (leaves) in the tree."""
        return sum(1 for tree, _ in self._pre_order() if not tree.children)

    def extend(self, block: Block) -> None:
        """Adds a block as a successor of its parent in the tree.

        Adding a block that is already present does nothing.
        """
        if self.contains(block):
            return
        found = self.find(block.header.prev_blockhash)
        if found is None:
            raise BlockDoesNotExtendTree(block.block_hash())
        parent, _ = found
        parent.children.append(BlockTree(block))

    def blockchains(self) -> list[BlockChain]:
        """Returns every chain from the root to a tip."""
        chains = []
        for tree, stack in self._pre_order():
            if not tree.children:
                path = [ancestor.root for ancestor, _ in stack] + [tree.root]
                chains.append(BlockChain(path[0], path[1:]))
        return chains

    def get_chain_with_tip(self, tip: bytes) -> Optional[BlockChain]:
        """Returns the chain from the root to the block with hash `tip`, if present."""
        for tree, stack in self._pre_order():
            if tree.root.block_hash() == tip:
                path = [ancestor.root for ancestor, _ in stack] + [tree.root]
                return BlockChain(path[0], path[1:])
        return None

    def difficulty_based_depth(self, network: Network) -> int:
        """Returns the largest sum of block difficulties from the root to a tip."""
        sums: dict[int, int] = {}
        for tree, _ in self._post_order():
            best = max((sums.pop(id(child)) for child in tree.children), default=0)
            sums[id(tree)] = best + tree.root.difficulty(network)
        return sums[id(self)]

    def depth(self) -> int:
        """Returns the number of blocks on the longest path from the root to a tip."""
        depths: dict[int, int] = {}
        for tree, _ in self._post_order():
            depths[id(tree)] = 1 + max(
                (depths.pop(id(child)) for child in tree.children), default=0
            )
        return depths[id(self)]

    def find(self, block_hash: bytes) -> Optional[tuple["BlockTree", int]]:
        """Returns the subtree rooted at the given block hash with its depth, if present."""
        for tree, stack in self._pre_order():
            if tree.root.block_hash() == block_hash:
                return tree, len(stack)
        return None

    def contains(self, block: Block) -> bool:
        """Returns whether the block is in the tree."""
        block_hash = block.block_hash()
        return any(tree.root.block_hash() == block_hash for tree, _ in self._pre_order())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, BlockTree):
            return NotImplemented
        pairs = [(self, other)]
        while pairs:
            left, right = pairs.pop()
            if left.root != right.root or len(left.children) != len(right.children):
                return False
            pairs.extend(zip(left.children, right.children))
        return True

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"BlockTree(root={self.root.block_hash()[::-1].hex()}, children={len(self.children)})"