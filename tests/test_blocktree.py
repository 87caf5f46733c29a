import itertools

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from btcindex.blocktree import (
    BlockChain,
    BlockDoesNotExtendTree,
    BlockTree,
    EmptyChainError,
)
from btcindex.types import Block, BlockHeader, Network

_nonces = itertools.count()


def make_block(prev=None, difficulty=None):
    header = BlockHeader(
        version=1,
        prev_blockhash=prev.block_hash() if prev is not None else bytes(32),
        merkle_root=bytes(32),
        time=0,
        bits=0x207FFFFF,
        nonce=next(_nonces),
    )
    return Block(header, (), difficulty)


def make_chain(length, start=None):
    blocks = []
    prev = start
    for _ in range(length):
        block = make_block(prev)
        blocks.append(block)
        prev = block
    return blocks


def tree_from_chain(chain):
    tree = BlockTree(chain[0])
    for block in chain[1:]:
        tree.extend(block)
    return tree


def test_tree_single_block():
    tree = BlockTree(make_block())
    assert tree.blockchains() == [BlockChain(tree.root, [])]


def test_tree_multiple_forks():
    genesis = make_block()
    tree = BlockTree(genesis)
    for i in range(1, 5):
        tree.extend(make_block(genesis))
        assert len(tree.blockchains()) == i
    assert len(tree.children) == 4


def _check_chain(chain, genesis, tip, expected_len):
    assert chain[0] == genesis
    assert chain[-1] == tip
    assert len(chain) == expected_len
    for parent, child in zip(chain, chain[1:]):
        assert parent.block_hash() == child.header.prev_blockhash


def test_chain_with_tip_no_forks():
    blocks = make_chain(10)
    tree = BlockTree(blocks[0])
    for block in blocks:
        tree.extend(block)
    for i, block in enumerate(blocks):
        chain = tree.get_chain_with_tip(block.block_hash()).into_chain()
        _check_chain(chain, blocks[0], block, i + 1)


def test_chain_with_tip_multiple_forks():
    genesis = make_block()
    tree = BlockTree(genesis)
    for _ in range(5):
        blocks = [genesis] + make_chain(9, genesis)
        for block in blocks:
            tree.extend(block)
        for i, block in enumerate(blocks):
            chain = tree.get_chain_with_tip(block.block_hash()).into_chain()
            _check_chain(chain, genesis, block, i + 1)
    assert len(tree.children) == 5


def test_chain_with_unknown_tip_is_none():
    tree = tree_from_chain(make_chain(3))
    assert tree.get_chain_with_tip(make_block().block_hash()) is None


def test_difficulty_based_depth_single_block():
    tree = BlockTree(make_block(difficulty=5))
    assert tree.difficulty_based_depth(Network.MAINNET) == 5


def test_difficulty_based_depth_root_with_children():
    genesis = make_block(difficulty=5)
    tree = BlockTree(genesis)
    for i in range(1, 11):
        tree.extend(make_block(genesis, difficulty=i))
    assert tree.difficulty_based_depth(Network.MAINNET) == 15


def test_blocks_with_depths_by_heights_only_root():
    genesis = make_block()
    result = BlockTree(genesis).blocks_with_depths_by_heights()
    assert len(result) == 1
    assert len(result[0]) == 1
    block, depth = result[0][0]
    assert block.block_hash() == genesis.block_hash()
    assert depth == 1


def test_blocks_with_depths_by_heights_chain():
    chain_len = 10
    chain = make_chain(chain_len)
    tree = tree_from_chain(chain)
    result = tree.blocks_with_depths_by_heights()
    assert len(result) == chain_len
    for i, row in enumerate(result):
        assert len(row) == 1
        block, depth = row[0]
        assert block.block_hash() == chain[i].block_hash()
        assert depth == chain_len - i


def test_blocks_with_depths_by_heights_fork():
    chain = make_chain(2)
    fork = make_chain(2, chain[0])
    tree = BlockTree(chain[0])
    tree.extend(chain[1])
    tree.extend(fork[0])
    tree.extend(fork[1])

    result = tree.blocks_with_depths_by_heights()
    assert len(result) == 3

    assert len(result[0]) == 1
    block, depth = result[0][0]
    assert block.block_hash() == chain[0].block_hash()
    assert depth == 3

    assert len(result[1]) == 2
    assert result[1][0][0].block_hash() != result[1][1][0].block_hash()
    for block, depth in result[1]:
        if block.block_hash() == chain[1].block_hash():
            assert depth == 1
        elif block.block_hash() == fork[0].block_hash():
            assert depth == 2
        else:
            pytest.fail("unexpected block")

    assert len(result[2]) == 1
    block, depth = result[2][0]
    assert block.block_hash() == fork[1].block_hash()
    assert depth == 1


def test_extend_with_unconnected_block_raises():
    tree = BlockTree(make_block())
    stray = make_block()
    with pytest.raises(BlockDoesNotExtendTree) as info:
        tree.extend(stray)
    assert info.value.block_hash == stray.block_hash()


def test_extend_with_existing_block_is_noop():
    chain = make_chain(3)
    tree = tree_from_chain(chain)
    tree.extend(chain[1])
    tree.extend(chain[0])
    assert tree.num_tips() == 1
    assert tree.depth() == 3


def test_find_returns_subtree_and_depth():
    chain = make_chain(4)
    tree = tree_from_chain(chain)
    subtree, depth = tree.find(chain[2].block_hash())
    assert subtree.root == chain[2]
    assert depth == 2
    assert tree.find(make_block().block_hash()) is None


def test_contains():
    chain = make_chain(3)
    tree = tree_from_chain(chain)
    assert tree.contains(chain[2])
    assert not tree.contains(make_block())


def test_num_tips_and_depth_with_forks():
    genesis = make_block()
    tree = BlockTree(genesis)
    main = make_chain(3, genesis)
    side = make_chain(1, genesis)
    for block in main + side:
        tree.extend(block)
    assert tree.num_tips() == 2
    assert tree.depth() == 4


def test_blockchain_methods():
    blocks = make_chain(3)
    chain = BlockChain(blocks[0])
    assert len(chain) == 1
    assert chain.tip() == blocks[0]
    chain.push(blocks[1])
    chain.push(blocks[2])
    assert len(chain) == 3
    assert chain.tip() == blocks[2]
    assert chain.into_chain() == blocks


def test_blockchain_from_blocks():
    blocks = make_chain(3)
    chain = BlockChain.from_blocks(blocks)
    assert chain.first == blocks[0]
    assert chain.successors == blocks[1:]


def test_blockchain_from_empty_raises():
    with pytest.raises(EmptyChainError, match="empty chain"):
        BlockChain.from_blocks([])


def test_very_deep_tree():
    chain = make_chain(5000)
    tree = tree_from_chain(chain)
    assert tree.depth() == 5000
    assert tree.num_tips() == 1
    assert len(tree.blockchains()[0]) == 5000
    assert tree == tree_from_chain(chain)


def test_tree_equality():
    chain = make_chain(3)
    assert tree_from_chain(chain) == tree_from_chain(chain)
    assert tree_from_chain(chain) != tree_from_chain(chain[:2])


def _build_tree(num_children):
    tree = BlockTree(make_block())
    frontier = [tree]
    for count in num_children:
        next_frontier = []
        for node in frontier:
            for _ in range(count):
                child = BlockTree(make_block(node.root))
                node.children.append(child)
                next_frontier.append(child)
        frontier = next_frontier
    return tree


@settings(max_examples=30, deadline=None)
@given(st.lists(st.integers(min_value=1, max_value=2), max_size=6))
def test_blockchains_match_tips(num_children):
    tree = _build_tree(num_children)
    chains = tree.blockchains()
    assert len(chains) == tree.num_tips()
    assert all(len(chain) == tree.depth() for chain in chains)
    for chain in chains:
        found = tree.get_chain_with_tip(chain.tip().block_hash())
        assert found == chain