"""Layer III side information."""

from dataclasses import dataclass, field
from typing import List

from .bits import BitReader
from .header import FrameHeader


@dataclass
class GranuleInfo:
    """Side information of one granule of one channel."""
    part2_3_length: int = 0
    big_values: int = 0
    global_gain: int = 0
    scalefac_compress: int = 0
    win_switch_flag: int = 0
    block_type: int = 0
    mixed_block_flag: int = 0
    table_select: List[int] = field(default_factory=lambda: [0, 0, 0])
    subblock_gain: List[int] = field(default_factory=lambda: [0, 0, 0])
    region0_count: int = 0
    region1_count: int = 0
    preflag: int = 0
    scalefac_scale: int = 0
    count1table_select: int = 0

    @property
    def short_blocks(self) -> bool:
        return bool(self.win_switch_flag) and self.block_type == 2

    @property
    def mixed_short_blocks(self) -> bool:
        return self.short_blocks and bool(self.mixed_block_flag)


@dataclass
class SideInfo:
    main_data_begin: int
    private_bits: int
    scfsi: List[List[int]]
    # [gr][ch]
    granules: List[List[GranuleInfo]]


def _read_granule(reader: BitReader) -> GranuleInfo:
    g = GranuleInfo()
    g.part2_3_length = reader.bits(12)
    g.big_values = reader.bits(9)
    g.global_gain = reader.bits(8)
    g.scalefac_compress = reader.bits(4)
    g.win_switch_flag = reader.bits(1)
    if g.win_switch_flag:
        g.block_type = reader.bits(2)
        g.mixed_block_flag = reader.bits(1)
        g.table_select = [reader.bits(5), reader.bits(5), 0]
        g.subblock_gain = [reader.bits(3) for _ in range(3)]
        # Region counts are implicit for switched windows
        if g.block_type == 2 and not g.mixed_block_flag:
            g.region0_count = 8
        else:
            g.region0_count = 7
        g.region1_count = 20 - g.region0_count
    else:
        g.table_select = [reader.bits(5) for _ in range(3)]
        g.region0_count = reader.bits(4)
        g.region1_count = reader.bits(3)
        g.block_type = 0
    g.preflag = reader.bits(1)
    g.scalefac_scale = reader.bits(1)
    g.count1table_select = reader.bits(1)
    return g


def parse_side_info(header: FrameHeader, data: bytes) -> SideInfo:
    """Parse the 17 or 32 side information bytes following the header."""
    nch = header.channels
    reader = BitReader(data)
    main_data_begin = reader.bits(9)
    private_bits = reader.bits(5 if nch == 1 else 3)
    scfsi = [[reader.bits(1) for _ in range(4)] for _ in range(nch)]
    granules = [[_read_granule(reader) for _ in range(nch)] for _ in range(2)]
    return SideInfo(main_data_begin, private_bits, scfsi, granules)
