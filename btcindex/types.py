"""Core data types, their byte encodings and the Bitcoin wire formats they use."""

from __future__ import annotations

import enum
import functools
import hashlib
import struct
from dataclasses import dataclass, field
from typing import Generic, Optional, TypeVar, Union

T = TypeVar("T")

EXPECTED_PAGE_LENGTH = 72
HEIGHT_SIZE = 4
TXID_SIZE = 32
OUTPOINT_SIZE = 36
BLOCK_HEADER_SIZE = 80
ADDRESS_MAX_SIZE = 90
ADDRESS_UTXO_MAX_SIZE = ADDRESS_MAX_SIZE + HEIGHT_SIZE + OUTPOINT_SIZE

_U32_MAX = 0xFFFFFFFF
_U64_MASK = (1 << 64) - 1
_HEADER_FORMAT = "<i32s32sIII"


def _sha256d(data: bytes) -> bytes:
    return hashlib.sha256(hashlib.sha256(data).digest()).digest()


class Network(enum.Enum):
    """A Bitcoin network."""

    MAINNET = "mainnet"
    TESTNET = "testnet"
    REGTEST = "regtest"

    def __str__(self) -> str:
        return self.value


_BITCOIN_NETWORK_NAMES = {
    Network.MAINNET: "bitcoin",
    Network.TESTNET: "testnet",
    Network.REGTEST: "regtest",
}


def into_bitcoin_network(network: Network) -> str:
    """Returns the name Bitcoin tooling uses for the given network."""
    return _BITCOIN_NETWORK_NAMES[network]


_MAX_TARGETS = {
    Network.MAINNET: 0xFFFF << 208,
    Network.TESTNET: 0xFFFF << 208,
    Network.REGTEST: 0x7FFFFF << 232,
}


def _target_from_bits(bits: int) -> int:
    exponent = bits >> 24
    mantissa = bits & 0x007FFFFF
    if exponent <= 3:
        return mantissa >> (8 * (3 - exponent))
    return mantissa << (8 * (exponent - 3))


@dataclass(frozen=True, order=True)
class Txid:
    """A transaction id, stored in internal byte order."""

    data: bytes

    def __bytes__(self) -> bytes:
        return bytes(self.data)

    def __str__(self) -> str:
        return bytes(self.data)[::-1].hex()


@dataclass(frozen=True, order=True)
class TxOut:
    """A Bitcoin transaction's output."""

    value: int
    script_pubkey: bytes


@dataclass(frozen=True, order=True)
class OutPoint:
    """A reference to a transaction output."""

    txid: Txid
    vout: int

    def to_bytes(self) -> bytes:
        return bytes(self.txid) + self.vout.to_bytes(4, "little")

    @classmethod
    def from_bytes(cls, data: bytes) -> "OutPoint":
        data = bytes(data)
        if len(data) != OUTPOINT_SIZE:
            raise ValueError(
                f"outpoint must be {OUTPOINT_SIZE} bytes, got {len(data)}"
            )
        return cls(Txid(data[:TXID_SIZE]), int.from_bytes(data[TXID_SIZE:], "little"))


def encode_height(height: int) -> bytes:
    """Encodes a height as XOR'ed big-endian bytes so that order is descending."""
    return bytes(byte ^ 0xFF for byte in height.to_bytes(HEIGHT_SIZE, "big"))


def decode_height(data: bytes) -> int:
    data = bytes(data)
    if len(data) != HEIGHT_SIZE:
        raise ValueError(f"height bytes must be of length {HEIGHT_SIZE}")
    return int.from_bytes(bytes(byte ^ 0xFF for byte in data), "big")


def encode_txout_height(txout: TxOut, height: int) -> bytes:
    return txout.value.to_bytes(8, "big") + bytes(txout.script_pubkey) + encode_height(height)


def decode_txout_height(data: bytes) -> tuple[TxOut, int]:
    data = bytes(data)
    if len(data) < 8 + HEIGHT_SIZE:
        raise ValueError("encoded output is too short")
    height = decode_height(data[-HEIGHT_SIZE:])
    value = int.from_bytes(data[:8], "big")
    return TxOut(value, data[8:-HEIGHT_SIZE]), height


def encode_height_outpoint(height: int, outpoint: OutPoint) -> bytes:
    return encode_height(height) + outpoint.to_bytes()


def decode_height_outpoint(data: bytes) -> tuple[int, OutPoint]:
    data = bytes(data)
    return decode_height(data[:HEIGHT_SIZE]), OutPoint.from_bytes(data[HEIGHT_SIZE:])


class _Reader:
    def __init__(self, data: bytes) -> None:
        self._data = bytes(data)
        self.position = 0

    def read(self, size: int) -> bytes:
        end = self.position + size
        if end > len(self._data):
            raise ValueError("unexpected end of data")
        chunk = self._data[self.position:end]
        self.position = end
        return chunk

    def read_varint(self) -> int:
        first = self.read(1)[0]
        if first < 0xFD:
            return first
        size, minimum = {0xFD: (2, 0xFD), 0xFE: (4, 0x10000), 0xFF: (8, 0x100000000)}[first]
        value = int.from_bytes(self.read(size), "little")
        if value < minimum:
            raise ValueError("non-canonical variable-length integer")
        return value

    def read_var_bytes(self) -> bytes:
        return self.read(self.read_varint())

    def since(self, start: int) -> bytes:
        return self._data[start:self.position]


def _encode_varint(value: int) -> bytes:
    if value < 0xFD:
        return bytes([value])
    if value <= 0xFFFF:
        return b"\xfd" + value.to_bytes(2, "little")
    if value <= _U32_MAX:
        return b"\xfe" + value.to_bytes(4, "little")
    return b"\xff" + value.to_bytes(8, "little")


def _read_transaction(reader: _Reader) -> bytes:
    start = reader.position
    reader.read(4)
    num_inputs = reader.read_varint()
    segwit = False
    if num_inputs == 0:
        flag = reader.read(1)[0]
        if flag != 1:
            raise ValueError(f"unsupported segwit flag {flag}")
        segwit = True
        num_inputs = reader.read_varint()
    for _ in range(num_inputs):
        reader.read(OUTPOINT_SIZE)
        reader.read_var_bytes()
        reader.read(4)
    for _ in range(reader.read_varint()):
        reader.read(8)
        reader.read_var_bytes()
    if segwit:
        has_witness = False
        for _ in range(num_inputs):
            items = reader.read_varint()
            for _ in range(items):
                reader.read_var_bytes()
            has_witness = has_witness or items > 0
        if not has_witness:
            raise ValueError("witness flag set but no witnesses present")
    reader.read(4)
    return reader.since(start)


@dataclass(frozen=True)
class BlockHeader:
    """An 80-byte Bitcoin block header."""

    version: int
    prev_blockhash: bytes
    merkle_root: bytes
    time: int
    bits: int
    nonce: int

    def __post_init__(self) -> None:
        if len(self.prev_blockhash) != 32 or len(self.merkle_root) != 32:
            raise ValueError("block header hashes must be 32 bytes")

    def encode(self) -> bytes:
        return struct.pack(
            _HEADER_FORMAT,
            self.version,
            bytes(self.prev_blockhash),
            bytes(self.merkle_root),
            self.time,
            self.bits,
            self.nonce,
        )

    @classmethod
    def decode(cls, data: bytes) -> "BlockHeader":
        data = bytes(data)
        if len(data) < BLOCK_HEADER_SIZE:
            raise ValueError("block header must be 80 bytes")
        return cls(*struct.unpack(_HEADER_FORMAT, data[:BLOCK_HEADER_SIZE]))

    def block_hash(self) -> bytes:
        return _sha256d(self.encode())


@dataclass(frozen=True)
class Block:
    """A block: its header and its transactions in serialized form."""

    header: BlockHeader
    transactions: tuple[bytes, ...] = ()
    mock_difficulty: Optional[int] = None

    def block_hash(self) -> bytes:
        return self.header.block_hash()

    def difficulty(self, network: Network) -> int:
        if self.mock_difficulty is not None:
            return self.mock_difficulty
        target = _target_from_bits(self.header.bits)
        return (_MAX_TARGETS[network] // target) & _U64_MASK

    def encode(self) -> bytes:
        return (
            self.header.encode()
            + _encode_varint(len(self.transactions))
            + b"".join(self.transactions)
        )

    @classmethod
    def decode(cls, data: bytes) -> "Block":
        reader = _Reader(data)
        header = BlockHeader.decode(reader.read(BLOCK_HEADER_SIZE))
        count = reader.read_varint()
        transactions = tuple(_read_transaction(reader) for _ in range(count))
        return cls(header, transactions)


@dataclass(frozen=True)
class Page:
    """The cut-off point for returning chunked UTXO results."""

    tip_block_hash: bytes
    height: int
    outpoint: OutPoint

    def to_bytes(self) -> bytes:
        return bytes(self.tip_block_hash) + encode_height(self.height) + self.outpoint.to_bytes()

    @classmethod
    def from_bytes(cls, data: bytes) -> "Page":
        data = bytes(data)
        if len(data) != EXPECTED_PAGE_LENGTH:
            raise ValueError(
                f"Could not parse the page, the length is {len(data)}, "
                f"but the expected length is {EXPECTED_PAGE_LENGTH}."
            )
        return cls(
            tip_block_hash=data[:32],
            height=decode_height(data[32:36]),
            outpoint=OutPoint.from_bytes(data[36:]),
        )


class InvalidAddress(ValueError):
    """Raised when a script or string is not a valid Bitcoin address."""

    def __init__(self, message: str = "invalid address") -> None:
        super().__init__(message)


_BASE58_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
_BECH32_CHARSET = "qpzry9x8gf2tvdw0s3jn54khce6mua7l"
_BECH32_CONST = 1
_BECH32M_CONST = 0x2BC830A3
_BECH32_GENERATORS = (0x3B6A57B2, 0x26508E6D, 0x1EA119FA, 0x3D4233DD, 0x2A1462B3)

# network -> (p2pkh version byte, p2sh version byte, bech32 human-readable part)
_ADDRESS_PARAMS = {
    Network.MAINNET: (0x00, 0x05, "bc"),
    Network.TESTNET: (0x6F, 0xC4, "tb"),
    Network.REGTEST: (0x6F, 0xC4, "bcrt"),
}
_BASE58_VERSIONS = {version for p2pkh, p2sh, _ in _ADDRESS_PARAMS.values() for version in (p2pkh, p2sh)}
_BECH32_HRPS = {hrp for _, _, hrp in _ADDRESS_PARAMS.values()}


def _b58check_encode(payload: bytes) -> str:
    data = payload + _sha256d(payload)[:4]
    number = int.from_bytes(data, "big")
    digits = []
    while number:
        number, remainder = divmod(number, 58)
        digits.append(_BASE58_ALPHABET[remainder])
    leading_zeros = len(data) - len(data.lstrip(b"\x00"))
    return "1" * leading_zeros + "".join(reversed(digits))


def _b58check_decode(text: str) -> bytes:
    number = 0
    for char in text:
        digit = _BASE58_ALPHABET.find(char)
        if digit < 0:
            raise InvalidAddress(f"invalid base58 character {char!r}")
        number = number * 58 + digit
    leading_zeros = len(text) - len(text.lstrip("1"))
    data = b"\x00" * leading_zeros + number.to_bytes((number.bit_length() + 7) // 8, "big")
    if len(data) < 4:
        raise InvalidAddress("base58 data too short")
    payload, checksum = data[:-4], data[-4:]
    if _sha256d(payload)[:4] != checksum:
        raise InvalidAddress("invalid base58 checksum")
    return payload


def _bech32_polymod(values: list[int]) -> int:
    checksum = 1
    for value in values:
        top = checksum >> 25
        checksum = ((checksum & 0x1FFFFFF) << 5) ^ value
        for bit, generator in enumerate(_BECH32_GENERATORS):
            if (top >> bit) & 1:
                checksum ^= generator
    return checksum


def _hrp_expand(hrp: str) -> list[int]:
    return [ord(char) >> 5 for char in hrp] + [0] + [ord(char) & 31 for char in hrp]


def _convert_bits(data: list[int] | bytes, from_bits: int, to_bits: int, pad: bool) -> list[int]:
    accumulator = 0
    bits = 0
    result = []
    max_value = (1 << to_bits) - 1
    max_accumulator = (1 << (from_bits + to_bits - 1)) - 1
    for value in data:
        if value >> from_bits:
            raise InvalidAddress("invalid data value")
        accumulator = ((accumulator << from_bits) | value) & max_accumulator
        bits += from_bits
        while bits >= to_bits:
            bits -= to_bits
            result.append((accumulator >> bits) & max_value)
    if pad:
        if bits:
            result.append((accumulator << (to_bits - bits)) & max_value)
    elif bits >= from_bits or ((accumulator << (to_bits - bits)) & max_value):
        raise InvalidAddress("invalid padding")
    return result


def _validate_witness_program(version: int, program: bytes) -> None:
    if not 2 <= len(program) <= 40:
        raise InvalidAddress("invalid witness program length")
    if version == 0 and len(program) not in (20, 32):
        raise InvalidAddress("invalid segwit v0 program length")


def _encode_segwit(hrp: str, version: int, program: bytes) -> str:
    _validate_witness_program(version, program)
    const = _BECH32_CONST if version == 0 else _BECH32M_CONST
    data = [version] + _convert_bits(program, 8, 5, True)
    polymod = _bech32_polymod(_hrp_expand(hrp) + data + [0] * 6) ^ const
    checksum = [(polymod >> 5 * (5 - shift)) & 31 for shift in range(6)]
    return hrp + "1" + "".join(_BECH32_CHARSET[digit] for digit in data + checksum)


def _decode_segwit(text: str) -> str:
    if any(ord(char) < 33 or ord(char) > 126 for char in text):
        raise InvalidAddress("invalid character")
    if text.lower() != text and text.upper() != text:
        raise InvalidAddress("mixed case")
    text = text.lower()
    separator = text.rfind("1")
    if separator < 1 or separator + 7 > len(text) or len(text) > ADDRESS_MAX_SIZE:
        raise InvalidAddress("invalid bech32 layout")
    hrp = text[:separator]
    data = [_BECH32_CHARSET.find(char) for char in text[separator + 1:]]
    if -1 in data:
        raise InvalidAddress("invalid bech32 character")
    const = _bech32_polymod(_hrp_expand(hrp) + data)
    data = data[:-6]
    if not data or data[0] > 16:
        raise InvalidAddress("invalid witness version")
    version = data[0]
    expected = _BECH32_CONST if version == 0 else _BECH32M_CONST
    if const != expected:
        raise InvalidAddress("invalid bech32 checksum")
    program = bytes(_convert_bits(data[1:], 5, 8, False))
    return _encode_segwit(hrp, version, program)


def _witness_version(script: bytes) -> Optional[int]:
    if not 4 <= len(script) <= 42:
        return None
    opcode = script[0]
    if opcode == 0:
        version = 0
    elif 0x51 <= opcode <= 0x60:
        version = opcode - 0x50
    else:
        return None
    if script[1] != len(script) - 2:
        return None
    return version


@dataclass(frozen=True, order=True)
class Address:
    """A Bitcoin address in its string form."""

    value: str

    def __str__(self) -> str:
        return self.value

    def to_bytes(self) -> bytes:
        return self.value.encode("utf-8")

    @classmethod
    def from_bytes(cls, data: bytes) -> "Address":
        return cls(bytes(data).decode("utf-8"))

    @classmethod
    def from_script(cls, script: bytes, network: Network) -> "Address":
        """Creates an address from a locking script."""
        script = bytes(script)
        p2pkh, p2sh, hrp = _ADDRESS_PARAMS[network]
        if len(script) == 25 and script[:3] == b"\x76\xa9\x14" and script[23:] == b"\x88\xac":
            return cls(_b58check_encode(bytes([p2pkh]) + script[3:23]))
        if len(script) == 23 and script[:2] == b"\xa9\x14" and script[22] == 0x87:
            return cls(_b58check_encode(bytes([p2sh]) + script[2:22]))
        version = _witness_version(script)
        if version is not None:
            return cls(_encode_segwit(hrp, version, script[2:]))
        raise InvalidAddress("script has no address form")

    @classmethod
    def parse(cls, text: str) -> "Address":
        """Parses and normalizes an address string of any network."""
        lowered = text.lower()
        if any(lowered.startswith(hrp + "1") for hrp in _BECH32_HRPS):
            return cls(_decode_segwit(text))
        payload = _b58check_decode(text)
        if len(payload) != 21 or payload[0] not in _BASE58_VERSIONS:
            raise InvalidAddress("unknown address version")
        return cls(_b58check_encode(payload))


@dataclass(frozen=True)
class AddressUtxo:
    """A key locating one UTXO of an address."""

    address: Address
    height: int
    outpoint: OutPoint

    def to_bytes(self) -> bytes:
        return self.address.to_bytes() + encode_height(self.height) + self.outpoint.to_bytes()

    @classmethod
    def from_bytes(cls, data: bytes) -> "AddressUtxo":
        data = bytes(data)
        if len(data) < HEIGHT_SIZE + OUTPOINT_SIZE:
            raise ValueError("encoded address UTXO is too short")
        split = len(data) - OUTPOINT_SIZE
        return cls(
            address=Address.from_bytes(data[:split - HEIGHT_SIZE]),
            height=decode_height(data[split - HEIGHT_SIZE:split]),
            outpoint=OutPoint.from_bytes(data[split:]),
        )


class AddressUtxoRange:
    """An inclusive range of encoded `AddressUtxo` keys of one address.

    It matches every UTXO of the address that sorts at or after the given UTXO;
    UTXOs sort by height in descending order, then by outpoint.
    """

    def __init__(self, address: Address, utxo: Optional["Utxo"] = None) -> None:
        if utxo is not None:
            start_height, start_outpoint = utxo.height, utxo.outpoint
        else:
            start_height, start_outpoint = _U32_MAX, OutPoint(Txid(bytes(32)), 0)
        end_outpoint = OutPoint(Txid(b"\xff" * 32), _U32_MAX)
        self.start_bound = self._bound(AddressUtxo(address, start_height, start_outpoint))
        self.end_bound = self._bound(AddressUtxo(address, 0, end_outpoint))

    @staticmethod
    def _bound(key: AddressUtxo) -> bytes:
        encoded = key.to_bytes()
        if len(encoded) > ADDRESS_UTXO_MAX_SIZE:
            raise ValueError("address UTXO key exceeds its maximum size")
        return encoded

    def __contains__(self, key: object) -> bool:
        encoded = key.to_bytes() if isinstance(key, AddressUtxo) else bytes(key)  # type: ignore[arg-type]
        return self.start_bound <= encoded <= self.end_bound


class BlockHeaderBlob:
    """A serialized block header, always exactly 80 bytes."""

    MAX_SIZE = BLOCK_HEADER_SIZE
    __slots__ = ("_data",)

    def __init__(self, data: bytes) -> None:
        data = bytes(data)
        if len(data) != self.MAX_SIZE:
            raise ValueError(f"BlockHeader must {self.MAX_SIZE} bytes")
        self._data = data

    def __bytes__(self) -> bytes:
        return self._data

    def __len__(self) -> int:
        return len(self._data)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, BlockHeaderBlob):
            return NotImplemented
        return self._data == other._data

    def __hash__(self) -> int:
        return hash(self._data)

    def __repr__(self) -> str:
        return f"BlockHeaderBlob({self._data.hex()})"


@dataclass
class SendTransactionInternalRequest:
    network: Network
    transaction: bytes


@dataclass(repr=False)
class GetSuccessorsRequestInitial:
    """A request for the successors of the given blocks."""

    network: Network
    anchor: bytes
    processed_block_hashes: list[bytes] = field(default_factory=list)

    def __repr__(self) -> str:
        return (
            f"GetSuccessorsRequestInitial(network={self.network!r}, anchor={self.anchor!r}, "
            f"processed_block_hashes_len={len(self.processed_block_hashes)}, "
            f"processed_block_hashes={self.processed_block_hashes!r})"
        )


@dataclass
class GetSuccessorsFollowUpRequest:
    """A request for the given page of a partial response."""

    page: int


@dataclass
class GetSuccessorsCompleteResponse:
    """A response that doesn't require pagination."""

    blocks: list[bytes] = field(default_factory=list)
    next: list[BlockHeaderBlob] = field(default_factory=list)


@dataclass
class GetSuccessorsPartialResponse:
    """A response whose block needs follow-up pages to be complete."""

    partial_block: bytes = b""
    next: list[BlockHeaderBlob] = field(default_factory=list)
    remaining_follow_ups: int = 0


@dataclass
class GetSuccessorsFollowUpResponse:
    """A page of bytes to append to a partial response."""

    block_bytes: bytes


GetSuccessorsRequest = Union[GetSuccessorsRequestInitial, GetSuccessorsFollowUpRequest]
GetSuccessorsResponse = Union[
    GetSuccessorsCompleteResponse, GetSuccessorsPartialResponse, GetSuccessorsFollowUpResponse
]


@dataclass
class HttpRequest:
    method: str
    url: str
    headers: list[tuple[str, str]] = field(default_factory=list)
    body: bytes = b""


@dataclass
class HttpResponse:
    status_code: int
    headers: list[tuple[str, str]] = field(default_factory=list)
    body: bytes = b""


@dataclass(frozen=True)
class Paused(Generic[T]):
    """Work was interrupted and must be resumed later."""

    value: Optional[T] = None


@dataclass(frozen=True)
class Done(Generic[T]):
    """Work finished with the given result."""

    value: T


Slicing = Union[Paused, Done]


@functools.total_ordering
@dataclass(frozen=True)
class Utxo:
    """An unspent transaction output, ordered by descending height."""

    height: int
    outpoint: OutPoint
    value: int

    def _sort_key(self) -> tuple:
        return (-self.height, self.outpoint, self.value)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Utxo):
            return NotImplemented
        return self._sort_key() < other._sort_key()