import pytest
from hypothesis import given
from hypothesis import strategies as st

from btcindex.types import (
    Address,
    AddressUtxo,
    AddressUtxoRange,
    Block,
    BlockHeader,
    BlockHeaderBlob,
    GetSuccessorsRequestInitial,
    InvalidAddress,
    Network,
    OutPoint,
    Page,
    TxOut,
    Txid,
    Utxo,
    decode_height,
    decode_height_outpoint,
    decode_txout_height,
    encode_height,
    encode_height_outpoint,
    encode_txout_height,
    into_bitcoin_network,
)

GENESIS_MERKLE_ROOT = bytes.fromhex(
    "3ba3edfd7a7b12b27ac72c3e67768f617fc81bc3888a51323a9fb8aa4b1e5e4a"
)

heights = st.integers(min_value=0, max_value=0xFFFFFFFF)


def genesis_header():
    return BlockHeader(1, bytes(32), GENESIS_MERKLE_ROOT, 1231006505, 0x1D00FFFF, 2083236893)


def legacy_tx():
    return (
        b"\x01\x00\x00\x00"
        + b"\x01"
        + bytes(32)
        + b"\xff" * 4
        + b"\x01\x51"
        + b"\xff" * 4
        + b"\x01"
        + (1000).to_bytes(8, "little")
        + b"\x01\x51"
        + bytes(4)
    )


def segwit_tx():
    return (
        b"\x01\x00\x00\x00"
        + b"\x00\x01"
        + b"\x01"
        + bytes(32)
        + b"\x00" * 4
        + b"\x00"
        + b"\xff" * 4
        + b"\x01"
        + (500).to_bytes(8, "little")
        + b"\x01\x51"
        + b"\x01\x02\xab\xcd"
        + bytes(4)
    )


def test_utxo_ordering():
    a = Utxo(height=3, outpoint=OutPoint(Txid(b""), 0), value=123)
    b = Utxo(height=2, outpoint=OutPoint(Txid(bytes([1])), 0), value=123)
    c = Utxo(height=2, outpoint=OutPoint(Txid(bytes([1])), 0), value=123)
    d = Utxo(height=2, outpoint=OutPoint(Txid(bytes([1])), 0), value=124)

    assert a < b
    assert b < d
    assert a < c
    assert c < d
    assert a < d

    assert d > c
    assert c > a
    assert d > b
    assert b > a
    assert d > a

    assert c == b
    assert c <= b
    assert c >= b


def test_txid_to_string():
    txid = Txid(
        bytes(
            [
                148, 87, 230, 105, 220, 107, 52, 76, 0, 144, 209, 14, 178, 42, 3, 119, 2, 40,
                152, 212, 96, 127, 189, 241, 227, 206, 242, 163, 35, 193, 63, 169,
            ]
        )
    )
    assert str(txid) == "a93fc123a3f2cee3f1bd7f60d498280277032ab20ed190004c346bdc69e65794"


def test_address_handles_script_edge_case():
    script = bytes([0, 17, 97, 69, 142, 51, 3, 137, 205, 4, 55, 238, 159, 227, 100, 29, 112, 204, 24])
    with pytest.raises(InvalidAddress):
        Address.from_script(script, Network.TESTNET)


@given(heights)
def test_height_round_trip(height):
    assert decode_height(encode_height(height)) == height


@given(heights, heights)
def test_encoded_heights_sort_descending(h1, h2):
    assert (encode_height(h1) < encode_height(h2)) == (h1 > h2)


def test_decode_height_rejects_wrong_length():
    with pytest.raises(ValueError):
        decode_height(b"\x00\x01")


@given(st.integers(min_value=0, max_value=2**64 - 1), st.binary(max_size=50), heights)
def test_txout_height_round_trip(value, script, height):
    txout = TxOut(value, script)
    assert decode_txout_height(encode_txout_height(txout, height)) == (txout, height)


@given(heights, st.binary(min_size=32, max_size=32), st.integers(0, 0xFFFFFFFF))
def test_height_outpoint_round_trip(height, txid, vout):
    outpoint = OutPoint(Txid(txid), vout)
    encoded = encode_height_outpoint(height, outpoint)
    assert len(encoded) == 40
    assert decode_height_outpoint(encoded) == (height, outpoint)


def test_outpoint_bytes():
    outpoint = OutPoint(Txid(bytes(range(32))), 7)
    encoded = outpoint.to_bytes()
    assert len(encoded) == 36
    assert OutPoint.from_bytes(encoded) == outpoint
    with pytest.raises(ValueError):
        OutPoint.from_bytes(encoded[:-1])


def test_page_round_trip():
    page = Page(bytes(range(32)), 1234, OutPoint(Txid(b"\x07" * 32), 3))
    encoded = page.to_bytes()
    assert len(encoded) == 72
    assert Page.from_bytes(encoded) == page


def test_page_rejects_wrong_length():
    with pytest.raises(ValueError, match="the expected length is 72"):
        Page.from_bytes(bytes(71))


def test_address_utxo_round_trip():
    key = AddressUtxo(Address("1PgZsaGjvssNCqHHisshLoCFeUjxPhutTh"), 75361, OutPoint(Txid(b"\x01" * 32), 1))
    assert AddressUtxo.from_bytes(key.to_bytes()) == key


def test_address_utxo_range():
    address = Address("1PgZsaGjvssNCqHHisshLoCFeUjxPhutTh")
    other = Address("12tGGuawKdkw5NeDEzS3UANhCRa1XggBbK")
    outpoint = OutPoint(Txid(b"\x05" * 32), 0)

    full = AddressUtxoRange(address, None)
    assert AddressUtxo(address, 10, outpoint) in full
    assert AddressUtxo(other, 10, outpoint) not in full

    start = Utxo(height=10, outpoint=outpoint, value=1)
    partial = AddressUtxoRange(address, start)
    assert AddressUtxo(address, 10, outpoint) in partial
    assert AddressUtxo(address, 9, outpoint) in partial
    assert AddressUtxo(address, 11, outpoint) not in partial


def test_block_header_blob_requires_80_bytes():
    blob = BlockHeaderBlob(genesis_header().encode())
    assert bytes(blob) == genesis_header().encode()
    with pytest.raises(ValueError, match="80 bytes"):
        BlockHeaderBlob(bytes(79))


def test_genesis_header_hash():
    header = genesis_header()
    assert len(header.encode()) == 80
    assert BlockHeader.decode(header.encode()) == header
    assert header.block_hash()[::-1].hex() == (
        "000000000019d6689c085ae165831e934ff763ae46a2a6c172b3f1b60a8ce26f"
    )


def test_difficulty():
    assert Block(genesis_header()).difficulty(Network.MAINNET) == 1
    regtest = BlockHeader(1, bytes(32), GENESIS_MERKLE_ROOT, 1296688602, 0x207FFFFF, 2)
    assert Block(regtest).difficulty(Network.REGTEST) == 1
    harder = BlockHeader(1, bytes(32), GENESIS_MERKLE_ROOT, 0, 0x1B0404CB, 0)
    assert Block(harder).difficulty(Network.MAINNET) == 16307
    assert Block(genesis_header(), mock_difficulty=5).difficulty(Network.MAINNET) == 5


def test_block_round_trip():
    block = Block(genesis_header(), (legacy_tx(), segwit_tx()))
    decoded = Block.decode(block.encode())
    assert decoded == block
    assert decoded.transactions[1] == segwit_tx()
    assert decoded.block_hash() == genesis_header().block_hash()


def test_block_decode_rejects_garbage():
    with pytest.raises(ValueError):
        Block.decode(bytes([1, 2, 3]))


def test_segwit_flag_without_witness_is_rejected():
    tx = (
        b"\x01\x00\x00\x00\x00\x01\x01" + bytes(32) + bytes(4) + b"\x00" + b"\xff" * 4
        + b"\x00" + b"\x00" + bytes(4)
    )
    data = genesis_header().encode() + b"\x01" + tx
    with pytest.raises(ValueError, match="witness"):
        Block.decode(data)


def test_p2pkh_of_zero_hash():
    script = b"\x76\xa9\x14" + bytes(20) + b"\x88\xac"
    assert str(Address.from_script(script, Network.MAINNET)) == "1111111111111111111114oLvT2"


def test_p2sh_and_testnet_prefixes():
    p2sh = b"\xa9\x14" + bytes(range(20)) + b"\x87"
    assert str(Address.from_script(p2sh, Network.MAINNET)).startswith("3")
    p2pkh = b"\x76\xa9\x14" + bytes(range(20)) + b"\x88\xac"
    assert str(Address.from_script(p2pkh, Network.TESTNET))[0] in "mn"


def test_bech32_vector():
    script = bytes.fromhex("0014751e76e8199196d454941c45d1b3a323f1433bd6")
    expected = Address("bc1qw508d6qejxtdg4y5r3zarvary0c5xw7kv8f3t4")
    assert Address.from_script(script, Network.MAINNET) == expected
    assert Address.parse("BC1QW508D6QEJXTDG4Y5R3ZARVARY0C5XW7KV8F3T4") == expected


def test_parse_round_trips():
    for script in (
        b"\x76\xa9\x14" + bytes(range(20)) + b"\x88\xac",
        b"\x00\x20" + bytes(range(32)),
        b"\x51\x20" + bytes(range(32)),
    ):
        for network in Network:
            address = Address.from_script(script, network)
            assert Address.parse(str(address)) == address


def test_parse_known_address():
    assert str(Address.parse("1PgZsaGjvssNCqHHisshLoCFeUjxPhutTh")) == "1PgZsaGjvssNCqHHisshLoCFeUjxPhutTh"


def test_parse_rejects_corrupted_addresses():
    with pytest.raises(InvalidAddress):
        Address.parse("1PgZsaGjvssNCqHHisshLoCFeUjxPhutTj")
    with pytest.raises(InvalidAddress):
        Address.parse("bc1qw508d6qejxtdg4y5r3zarvary0c5xw7kv8f3t5")


def test_address_bytes_round_trip():
    address = Address("bc1qw508d6qejxtdg4y5r3zarvary0c5xw7kv8f3t4")
    assert Address.from_bytes(address.to_bytes()) == address


def test_networks():
    assert str(Network.MAINNET) == "mainnet"
    assert into_bitcoin_network(Network.MAINNET) == "bitcoin"
    assert into_bitcoin_network(Network.REGTEST) == "regtest"


def test_initial_request_repr_reports_length():
    request = GetSuccessorsRequestInitial(Network.REGTEST, b"\x00", [b"\x01", b"\x02"])
    assert "processed_block_hashes_len=2" in repr(request)