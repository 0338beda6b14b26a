"""
Main data: bit reservoir, scalefactors and Huffman coded frequency lines.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from .bits import BitReader
from .header import FrameHeader
from .huffman import decode_pair, decode_quad
from .sideinfo import GranuleInfo, SideInfo
from .tables import SCALEFAC_SIZES, SF_BAND_INDICES_LONG

logger = logging.getLogger(__name__)

GRANULE_SAMPLES = 576

# main_data_begin is 9 bits, so older bytes are never referenced
_RESERVOIR_LIMIT = 4096


class Reservoir:
    """Main data bytes carried over from previous frames."""

    def __init__(self):
        self._data = bytearray()

    def __len__(self) -> int:
        return len(self._data)

    def clear(self):
        self._data.clear()

    def assemble(self, main_data_begin: int, data: bytes) -> Optional[bytes]:
        """
        Append a frame's main data and return the bytes its granules read.

        Returns None when ``main_data_begin`` reaches back further than the
        reservoir holds; the bytes are still kept for the next frame.
        """
        if main_data_begin > len(self._data):
            logger.debug("bit reservoir underflow: need %d bytes, have %d",
                         main_data_begin, len(self._data))
            self._data += data
            self._trim()
            return None
        start = len(self._data) - main_data_begin
        assembled = bytes(self._data[start:]) + bytes(data)
        self._data = bytearray(assembled)
        self._trim()
        return assembled

    def _trim(self):
        if len(self._data) > _RESERVOIR_LIMIT:
            del self._data[:-_RESERVOIR_LIMIT]


@dataclass
class MainData:
    # All indexed [gr][ch]
    scalefac_l: List[List[np.ndarray]]
    scalefac_s: List[List[np.ndarray]]
    samples: List[List[np.ndarray]]
    count1: List[List[int]]

    @classmethod
    def silent(cls, nch: int) -> 'MainData':
        return cls(
            scalefac_l=[[np.zeros(22, dtype=np.int64) for _ in range(nch)] for _ in range(2)],
            scalefac_s=[[np.zeros((13, 3), dtype=np.int64) for _ in range(nch)] for _ in range(2)],
            samples=[[np.zeros(GRANULE_SAMPLES, dtype=np.int64) for _ in range(nch)] for _ in range(2)],
            count1=[[0] * nch for _ in range(2)],
        )


# ============================================================================
# Scalefactors
# ============================================================================

def _read_short_scalefactors(reader, scalefac_s, first_sfb, slen1, slen2):
    for sfb in range(first_sfb, 12):
        nbits = slen1 if sfb < 6 else slen2
        for win in range(3):
            scalefac_s[sfb, win] = reader.bits(nbits)


def read_scalefactors(reader: BitReader, g: GranuleInfo, scfsi: List[int],
                      gr: int, previous_l: Optional[np.ndarray]):
    """
    Read the scalefactors of one granule and channel.

    ``previous_l`` holds granule 0's long scalefactors, copied into
    granule 1 for every band group whose scfsi bit is set.

    Returns:
        (scalefac_l, scalefac_s)
    """
    slen1, slen2 = SCALEFAC_SIZES[g.scalefac_compress]
    scalefac_l = np.zeros(22, dtype=np.int64)
    scalefac_s = np.zeros((13, 3), dtype=np.int64)

    if g.short_blocks:
        if g.mixed_block_flag:
            for sfb in range(8):
                scalefac_l[sfb] = reader.bits(slen1)
            _read_short_scalefactors(reader, scalefac_s, 3, slen1, slen2)
        else:
            _read_short_scalefactors(reader, scalefac_s, 0, slen1, slen2)
        return scalefac_l, scalefac_s

    groups = ((0, 6, slen1), (6, 11, slen1), (11, 16, slen2), (16, 21, slen2))
    for band, (start, stop, nbits) in enumerate(groups):
        if gr == 1 and scfsi[band] and previous_l is not None:
            scalefac_l[start:stop] = previous_l[start:stop]
            continue
        for sfb in range(start, stop):
            scalefac_l[sfb] = reader.bits(nbits)
    return scalefac_l, scalefac_s


# ============================================================================
# Huffman region
# ============================================================================

def read_huffman(reader: BitReader, g: GranuleInfo, part2_start: int,
                 sampling_frequency: int):
    """
    Decode the frequency lines of one granule and channel.

    Leaves the reader at the first bit after ``part2_3_length``.

    Returns:
        (samples, count1) where ``count1`` indexes the first line of the
        zero region
    """
    samples = np.zeros(GRANULE_SAMPLES, dtype=np.int64)
    if g.part2_3_length == 0:
        return samples, 0

    bit_pos_end = part2_start + g.part2_3_length - 1
    if g.short_blocks:
        region1_start = 36
        region2_start = GRANULE_SAMPLES
    else:
        sfband_l = SF_BAND_INDICES_LONG[sampling_frequency]
        region1_start = sfband_l[min(g.region0_count + 1, 22)]
        region2_start = sfband_l[min(g.region0_count + g.region1_count + 2, 22)]

    big_end = min(g.big_values * 2, GRANULE_SAMPLES)
    for pos in range(0, big_end, 2):
        if pos < region1_start:
            table_num = g.table_select[0]
        elif pos < region2_start:
            table_num = g.table_select[1]
        else:
            table_num = g.table_select[2]
        samples[pos], samples[pos + 1] = decode_pair(reader, table_num)

    table_num = g.count1table_select + 32
    pos = big_end
    while pos <= GRANULE_SAMPLES - 4 and reader.pos <= bit_pos_end:
        samples[pos:pos + 4] = decode_quad(reader, table_num)
        pos += 4
    # Drop the last quadruple if it ran past the region
    if reader.pos > bit_pos_end + 1:
        pos -= 4
    count1 = max(pos, 0)
    samples[count1:] = 0
    reader.pos = bit_pos_end + 1
    return samples, count1


def read_main_data(header: FrameHeader, side_info: SideInfo, data: bytes) -> MainData:
    """Decode the scalefactors and frequency lines of both granules."""
    nch = header.channels
    main = MainData.silent(nch)
    reader = BitReader(data)
    for gr in range(2):
        for ch in range(nch):
            g = side_info.granules[gr][ch]
            part2_start = reader.pos
            previous_l = main.scalefac_l[0][ch] if gr == 1 else None
            main.scalefac_l[gr][ch], main.scalefac_s[gr][ch] = read_scalefactors(
                reader, g, side_info.scfsi[ch], gr, previous_l)
            main.samples[gr][ch], main.count1[gr][ch] = read_huffman(
                reader, g, part2_start, header.sampling_frequency)
    return main
