"""A small DEFLATE and zlib decoder for PNG image data."""

from __future__ import annotations

from dataclasses import dataclass
from functools import cache

from micropng.errors import MalformedError

_UNFILLED = 32767

_NUM_DEFLATE_CODE_SYMBOLS = 288
_NUM_DISTANCE_SYMBOLS = 32
_NUM_CODE_LENGTH_CODES = 19
_DEFLATE_CODE_BITLEN = 15
_DISTANCE_BITLEN = 15
_CODE_LENGTH_BITLEN = 7

_FIRST_LENGTH_CODE = 257
_LAST_LENGTH_CODE = 285
_END_CODE = 256

_LENGTH_BASE = (
    3, 4, 5, 6, 7, 8, 9, 10, 11, 13, 15, 17, 19, 23, 27, 31, 35, 43, 51, 59,
    67, 83, 99, 115, 131, 163, 195, 227, 258,
)
_LENGTH_EXTRA = (
    0, 0, 0, 0, 0, 0, 0, 0, 1, 1, 1, 1, 2, 2, 2, 2, 3, 3, 3, 3, 4, 4, 4, 4,
    5, 5, 5, 5, 0,
)
_DISTANCE_BASE = (
    1, 2, 3, 4, 5, 7, 9, 13, 17, 25, 33, 49, 65, 97, 129, 193, 257, 385, 513,
    769, 1025, 1537, 2049, 3073, 4097, 6145, 8193, 12289, 16385, 24577,
)
_DISTANCE_EXTRA = (
    0, 0, 0, 0, 1, 1, 2, 2, 3, 3, 4, 4, 5, 5, 6, 6, 7, 7, 8, 8, 9, 9, 10, 10,
    11, 11, 12, 12, 13, 13,
)
# Order in which code length code lengths are stored in a dynamic block.
_CLCL = (16, 17, 18, 0, 8, 7, 9, 6, 10, 5, 11, 4, 12, 3, 13, 2, 14, 1, 15)


class BitReader:
    """Reads bits least significant first from a byte string."""

    def __init__(self, data: bytes, position: int = 0) -> None:
        self.data = bytes(data)
        self.position = position

    def read_bit(self) -> int:
        index = self.position >> 3
        if index >= len(self.data):
            raise MalformedError("unexpected end of compressed data")
        bit = (self.data[index] >> (self.position & 7)) & 1
        self.position += 1
        return bit

    def read_bits(self, count: int) -> int:
        value = 0
        for shift in range(count):
            value |= self.read_bit() << shift
        return value


@dataclass(frozen=True)
class HuffmanTree:
    """A Huffman decoding tree stored as pairs of child entries.

    An entry below ``numcodes`` is a symbol; any other entry is the index
    of the next node plus ``numcodes``.
    """

    tree2d: tuple[int, ...]
    numcodes: int
    maxbitlen: int

    @classmethod
    def from_lengths(cls, lengths, max_bitlen: int) -> HuffmanTree:
        """Build the canonical tree that DEFLATE defines for these code lengths."""
        lengths = list(lengths)
        numcodes = len(lengths)
        top = max(max_bitlen, max(lengths, default=0))

        blcount = [0] * (top + 1)
        for length in lengths:
            if length:
                blcount[length] += 1

        nextcode = [0] * (top + 1)
        for bits in range(1, max_bitlen + 1):
            nextcode[bits] = (nextcode[bits - 1] + blcount[bits - 1]) << 1

        codes = []
        for length in lengths:
            if length:
                codes.append(nextcode[length])
                nextcode[length] += 1
            else:
                codes.append(0)

        tree2d = [_UNFILLED] * (numcodes * 2)
        nodefilled = 0
        treepos = 0
        for symbol, (length, code) in enumerate(zip(lengths, codes)):
            for i in range(length):
                bit = (code >> (length - i - 1)) & 1
                if not 0 <= treepos <= numcodes - 2:
                    raise MalformedError("oversubscribed Huffman code lengths")
                slot = 2 * treepos + bit
                if tree2d[slot] == _UNFILLED:
                    if i + 1 == length:
                        tree2d[slot] = symbol
                        treepos = 0
                    else:
                        nodefilled += 1
                        tree2d[slot] = nodefilled + numcodes
                        treepos = nodefilled
                else:
                    treepos = tree2d[slot] - numcodes

        return cls(
            tuple(0 if entry == _UNFILLED else entry for entry in tree2d),
            numcodes,
            max_bitlen,
        )

    def decode_symbol(self, reader: BitReader, in_length: int) -> int:
        """Read bits from ``reader`` until a whole symbol is decoded."""
        treepos = 0
        while True:
            if reader.position & 7 == 0 and reader.position >> 3 > in_length:
                raise MalformedError("end of input reached without end code")
            bit = reader.read_bit()
            entry = self.tree2d[(treepos << 1) | bit]
            if entry < self.numcodes:
                return entry
            treepos = entry - self.numcodes
            if treepos >= self.numcodes:
                raise MalformedError("invalid Huffman tree position")


@cache
def _fixed_trees() -> tuple[HuffmanTree, HuffmanTree]:
    literal_lengths = [8] * 144 + [9] * 112 + [7] * 24 + [8] * 8
    codes = HuffmanTree.from_lengths(literal_lengths, _DEFLATE_CODE_BITLEN)
    distances = HuffmanTree.from_lengths([5] * _NUM_DISTANCE_SYMBOLS, _DISTANCE_BITLEN)
    return codes, distances


def _check_remaining(reader: BitReader, in_length: int) -> None:
    if reader.position >> 3 >= in_length:
        raise MalformedError("bit pointer past end of compressed data")


def _read_dynamic_trees(reader: BitReader, in_length: int) -> tuple[HuffmanTree, HuffmanTree]:
    if reader.position >> 3 >= in_length - 2:
        raise MalformedError("dynamic block header past end of data")

    hlit = reader.read_bits(5) + 257
    hdist = reader.read_bits(5) + 1
    hclen = reader.read_bits(4) + 4

    code_length_lengths = [0] * _NUM_CODE_LENGTH_CODES
    for order in _CLCL[:hclen]:
        code_length_lengths[order] = reader.read_bits(3)
    code_length_tree = HuffmanTree.from_lengths(code_length_lengths, _CODE_LENGTH_BITLEN)

    total = hlit + hdist
    lengths: list[int] = []
    while len(lengths) < total:
        code = code_length_tree.decode_symbol(reader, in_length)
        if code <= 15:
            lengths.append(code)
            continue
        if code == 16:
            _check_remaining(reader, in_length)
            repeat = 3 + reader.read_bits(2)
            if not lengths:
                raise MalformedError("repeat code with no previous length")
            value = lengths[-1]
        elif code == 17:
            _check_remaining(reader, in_length)
            repeat = 3 + reader.read_bits(3)
            value = 0
        elif code == 18:
            _check_remaining(reader, in_length)
            repeat = 11 + reader.read_bits(7)
            value = 0
        else:
            raise MalformedError("invalid code length code")
        if len(lengths) + repeat > total:
            raise MalformedError("code lengths exceed the number of codes")
        lengths.extend([value] * repeat)

    literal_lengths = lengths[:hlit] + [0] * (_NUM_DEFLATE_CODE_SYMBOLS - hlit)
    distance_lengths = lengths[hlit:] + [0] * (_NUM_DISTANCE_SYMBOLS - hdist)
    if literal_lengths[_END_CODE] == 0:
        raise MalformedError("end code has zero length")

    return (
        HuffmanTree.from_lengths(literal_lengths, _DEFLATE_CODE_BITLEN),
        HuffmanTree.from_lengths(distance_lengths, _DISTANCE_BITLEN),
    )


def _inflate_huffman(
    reader: BitReader, out: bytearray, out_size: int, in_length: int, btype: int
) -> None:
    if btype == 1:
        codes, distances = _fixed_trees()
    else:
        codes, distances = _read_dynamic_trees(reader, in_length)

    while True:
        code = codes.decode_symbol(reader, in_length)
        if code == _END_CODE:
            return
        if code <= 255:
            if len(out) >= out_size:
                raise MalformedError("decompressed data exceeds output size")
            out.append(code)
        elif _FIRST_LENGTH_CODE <= code <= _LAST_LENGTH_CODE:
            index = code - _FIRST_LENGTH_CODE
            _check_remaining(reader, in_length)
            length = _LENGTH_BASE[index] + reader.read_bits(_LENGTH_EXTRA[index])

            distance_code = distances.decode_symbol(reader, in_length)
            if distance_code > 29:
                raise MalformedError("invalid distance code")
            _check_remaining(reader, in_length)
            distance = _DISTANCE_BASE[distance_code] + reader.read_bits(
                _DISTANCE_EXTRA[distance_code]
            )

            if len(out) + length >= out_size:
                raise MalformedError("decompressed data exceeds output size")
            if distance > len(out):
                raise MalformedError("back reference before start of output")
            for _ in range(length):
                out.append(out[-distance])


def _inflate_stored(reader: BitReader, out: bytearray, out_size: int, in_length: int) -> None:
    reader.position = (reader.position + 7) & ~7
    p = reader.position >> 3
    if p >= in_length - 4:
        raise MalformedError("stored block header past end of data")

    header = reader.data[p:p + 4]
    if len(header) < 4:
        raise MalformedError("stored block header past end of data")
    length = header[0] | header[1] << 8
    nlength = header[2] | header[3] << 8
    p += 4

    if length + nlength != 65535:
        raise MalformedError("stored block length check failed")
    if len(out) + length >= out_size:
        raise MalformedError("decompressed data exceeds output size")
    if p + length > in_length:
        raise MalformedError("stored block past end of data")
    chunk = reader.data[p:p + length]
    if len(chunk) < length:
        raise MalformedError("stored block past end of data")

    out += chunk
    reader.position = (p + length) * 8


def _inflate(data: bytes, out_size: int, in_length: int) -> bytes:
    reader = BitReader(data)
    out = bytearray()
    done = False
    while not done:
        _check_remaining(reader, in_length)
        done = bool(reader.read_bit())
        btype = reader.read_bit() | (reader.read_bit() << 1)
        if btype == 3:
            raise MalformedError("invalid block type")
        if btype == 0:
            _inflate_stored(reader, out, out_size, in_length)
        else:
            _inflate_huffman(reader, out, out_size, in_length, btype)
    return bytes(out)


def inflate(data: bytes, out_size: int) -> bytes:
    """Decompress a raw DEFLATE stream that yields fewer than ``out_size`` bytes."""
    data = bytes(data)
    return _inflate(data, out_size, len(data))


def zlib_decompress(data: bytes, out_size: int) -> bytes:
    """Check a zlib header as PNG requires it and decompress the stream after it."""
    data = bytes(data)
    if len(data) < 2:
        raise MalformedError("zlib header too short")
    cmf, flags = data[0], data[1]
    if (cmf * 256 + flags) % 31 != 0:
        raise MalformedError("zlib header check failed")
    if cmf & 15 != 8 or (cmf >> 4) & 15 > 7:
        raise MalformedError("unsupported zlib compression method")
    if (flags >> 5) & 1:
        raise MalformedError("preset dictionary is not allowed")
    # Bounds are checked against the whole stream, header included.
    return _inflate(data[2:], out_size, len(data))