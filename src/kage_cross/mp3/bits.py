"""MSB-first bit cursor over a byte string."""


class BitReader:
    """
    Reads bit fields from ``data``, most significant bit first.

    Reads beyond the end yield zero bits; callers that care compare
    ``pos`` against their own limit.
    """

    def __init__(self, data: bytes):
        self._data = bytes(data)
        self._size = len(self._data) * 8
        self.pos = 0

    def __len__(self) -> int:
        return self._size

    def bit(self) -> int:
        pos = self.pos
        self.pos = pos + 1
        if pos >= self._size:
            return 0
        return (self._data[pos >> 3] >> (7 - (pos & 7))) & 1

    def bits(self, n: int) -> int:
        value = 0
        for _ in range(n):
            value = (value << 1) | self.bit()
        return value
