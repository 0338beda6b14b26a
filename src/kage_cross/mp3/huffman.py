"""
Huffman decoding of the big_values and count1 regions.

Codes are matched bit by bit against a ``(length, code) -> value`` map,
which is enough for codes of at most 19 bits.
"""

from typing import Dict, Tuple

from .bits import BitReader
from .errors import MP3Error
from .huffman_tables import CODES


class HuffmanTable:
    """
    One decoding table.

    Attributes:
        ylen: Number of distinct y values, pair tables only
        linbits: Escape bits appended to values of 15
    """

    def __init__(self, codes, lengths, ylen: int = 0, linbits: int = 0):
        self.ylen = ylen
        self.linbits = linbits
        self.max_length = max(lengths)
        self._lookup: Dict[Tuple[int, int], int] = {
            (length, code): value
            for value, (code, length) in enumerate(zip(codes, lengths))
        }

    def decode(self, reader: BitReader) -> int:
        code = 0
        for length in range(1, self.max_length + 1):
            code = (code << 1) | reader.bit()
            value = self._lookup.get((length, code))
            if value is not None:
                return value
        raise MP3Error(f"invalid Huffman code at bit {reader.pos}")


_YLEN = {
    1: 2, 2: 3, 3: 3, 5: 4, 6: 4, 7: 6, 8: 6, 9: 6,
    10: 8, 11: 8, 12: 8, 13: 16, 15: 16, 16: 16, 24: 16,
}

_LINBITS = {
    16: 1, 17: 2, 18: 3, 19: 4, 20: 6, 21: 8, 22: 10, 23: 13,
    24: 4, 25: 5, 26: 6, 27: 7, 28: 8, 29: 9, 30: 11, 31: 13,
}


def _build_tables() -> Dict[int, HuffmanTable]:
    tables = {}
    for n in range(1, 32):
        if n in (4, 14):
            continue
        if n <= 15:
            base = n
        elif n <= 23:
            base = 16
        else:
            base = 24
        codes, lengths = CODES[base]
        tables[n] = HuffmanTable(codes, lengths, _YLEN[base], _LINBITS.get(n, 0))
    for n in (32, 33):
        codes, lengths = CODES[n]
        tables[n] = HuffmanTable(codes, lengths)
    return tables


TABLES = _build_tables()


def _signed(reader: BitReader, value: int) -> int:
    if value and reader.bit():
        return -value
    return value


def decode_pair(reader: BitReader, table_num: int) -> Tuple[int, int]:
    """Decode one big_values pair ``(x, y)`` with signs and linbits applied."""
    if table_num == 0:
        return 0, 0
    table = TABLES.get(table_num)
    if table is None:
        raise MP3Error(f"Huffman table {table_num} is not used in Layer III")
    x, y = divmod(table.decode(reader), table.ylen)
    if table.linbits and x == 15:
        x += reader.bits(table.linbits)
    x = _signed(reader, x)
    if table.linbits and y == 15:
        y += reader.bits(table.linbits)
    y = _signed(reader, y)
    return x, y


def decode_quad(reader: BitReader, table_num: int) -> Tuple[int, int, int, int]:
    """Decode one count1 quadruple ``(v, w, x, y)`` from table 32 or 33."""
    value = TABLES[table_num].decode(reader)
    v = _signed(reader, (value >> 3) & 1)
    w = _signed(reader, (value >> 2) & 1)
    x = _signed(reader, (value >> 1) & 1)
    y = _signed(reader, value & 1)
    return v, w, x, y
