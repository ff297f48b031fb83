import logging
import math
import re
from dataclasses import dataclass
from enum import Enum, IntEnum
from importlib import resources

logger = logging.getLogger(__name__)

MIN_VERSION = 1
MAX_VERSION = 40

# Errors

class QrCodeError(Exception):
    pass

class ParameterRangeError(QrCodeError, ValueError):
    pass

class DataTooLongError(QrCodeError, OverflowError):
    pass

class InternalInvariantError(QrCodeError, RuntimeError):
    pass

# Constants

ALPHANUMERIC_CHARSET = '0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ $%*+-./:'
NUMERIC_REGEX = re.compile(r'[0-9]*')
ALPHANUMERIC_REGEX = re.compile(r'[A-Z0-9 $%*+./:-]*')

# One line per "version-level": ec codewords per block, number of blocks
BLOCK_INFO_PACKAGE = 'qr_data'
BLOCK_INFO_FILE = 'block_info.txt'

def load_block_info() -> list[list[int]]:
    text = resources.files(BLOCK_INFO_PACKAGE).joinpath(BLOCK_INFO_FILE).read_text(encoding='utf-8')
    return [[int(y) for y in x.split()[1:]] for x in text.splitlines() if x.strip()]

block_info = load_block_info()

class Mode(Enum):
    NUMERIC = (0x1, (10, 12, 14))
    ALPHANUMERIC = (0x2, (9, 11, 13))
    BYTE = (0x4, (8, 16, 16))
    KANJI = (0x8, (8, 10, 12))
    ECI = (0x7, (0, 0, 0))

    @property
    def mode_bits(self) -> int:
        return self.value[0]

    def num_char_count_bits(self, version:int) -> int:
        if 1 <= version <= 9: return self.value[1][0]
        elif 10 <= version <= 26: return self.value[1][1]
        return self.value[1][2]

class Ecc(IntEnum):
    LOW = 0
    MEDIUM = 1
    QUARTILE = 2
    HIGH = 3

    @property
    def format_bits(self) -> int:
        return [1, 0, 3, 2][self]

def check_version(version:int) -> None:
    if not (MIN_VERSION <= version <= MAX_VERSION): raise ParameterRangeError(f'Version {version} out of range {MIN_VERSION}..{MAX_VERSION}')

def get_block_info(version:int, ec_level:Ecc) -> tuple[int, int]:
    check_version(version)
    ecc_len, num_blocks = block_info[(version-1)*4+ec_level]
    return ecc_len, num_blocks

# Data Encoding

@dataclass(frozen=True)
class Segment:
    mode: Mode
    num_chars: int
    data: tuple[int, ...]

def append_bits(val:int, length:int, bb:list[int]) -> None:
    if length < 0 or val >> length != 0: raise ValueError(f'Value {val} does not fit in {length} bits')
    bb.extend((val >> i) & 1 for i in range(length-1, -1, -1))

def is_numeric(text:str) -> bool:
    return NUMERIC_REGEX.fullmatch(text) is not None

def is_alphanumeric(text:str) -> bool:
    return ALPHANUMERIC_REGEX.fullmatch(text) is not None

def make_bytes(data:bytes) -> Segment:
    bb = []
    for b in bytes(data): append_bits(b, 8, bb)
    return Segment(Mode.BYTE, len(data), tuple(bb))

def make_numeric(digits:str) -> Segment:
    if not is_numeric(digits): raise ValueError('String contains non-numeric characters.')
    bb = []
    for i in range(0, len(digits), 3):
        group = digits[i:i+3]
        append_bits(int(group), len(group)*3+1, bb)
    return Segment(Mode.NUMERIC, len(digits), tuple(bb))

def make_alphanumeric(text:str) -> Segment:
    if not is_alphanumeric(text): raise ValueError('String contains characters outside the alphanumeric charset.')
    bb = []
    for i in range(0, len(text)-1, 2):
        append_bits(ALPHANUMERIC_CHARSET.index(text[i])*45 + ALPHANUMERIC_CHARSET.index(text[i+1]), 11, bb)
    if len(text) % 2 == 1: append_bits(ALPHANUMERIC_CHARSET.index(text[-1]), 6, bb)
    return Segment(Mode.ALPHANUMERIC, len(text), tuple(bb))

def make_segments(text:str) -> list[Segment]:
    if text == '': return []
    elif is_numeric(text): return [make_numeric(text)]
    elif is_alphanumeric(text): return [make_alphanumeric(text)]
    return [make_bytes(text.encode('utf-8'))]

# Capacity

def get_total_bits(segs:list[Segment], version:int) -> int | float:
    result = 0
    for seg in segs:
        ccbits = seg.mode.num_char_count_bits(version)
        if seg.num_chars >= 1 << ccbits: return math.inf
        result += 4 + ccbits + len(seg.data)
    return result

def get_num_raw_data_modules(version:int) -> int:
    check_version(version)
    result = (16*version + 128)*version + 64
    if version >= 2:
        num_align = version//7 + 2
        result -= (25*num_align - 10)*num_align - 55
        if version >= 7: result -= 36
    return result

def get_num_data_codewords(version:int, ec_level:Ecc) -> int:
    ecc_len, num_blocks = get_block_info(version, ec_level)
    return get_num_raw_data_modules(version)//8 - ecc_len*num_blocks

def choose_version(segs:list[Segment], ec_level:Ecc, min_version:int = MIN_VERSION, max_version:int = MAX_VERSION) -> tuple[int, int]:
    if not (MIN_VERSION <= min_version <= max_version <= MAX_VERSION):
        raise ParameterRangeError(f'Invalid version range {min_version}..{max_version}')
    for version in range(min_version, max_version+1):
        capacity_bits = get_num_data_codewords(version, ec_level)*8
        used_bits = get_total_bits(segs, version)
        if used_bits <= capacity_bits:
            logger.debug('Version %d fits %d of %d data bits at %s', version, used_bits, capacity_bits, ec_level.name)
            return version, used_bits
    if used_bits == math.inf:
        seg = next(s for s in segs if s.num_chars >= 1 << s.mode.num_char_count_bits(max_version))
        raise DataTooLongError(f'Data too long: {seg.num_chars} characters exceed the {seg.mode.num_char_count_bits(max_version)}-bit {seg.mode.name} character count field at version {max_version}, version range {min_version}..{max_version}')
    raise DataTooLongError(f'Data too long: {used_bits} bits needed, {capacity_bits} available at version {max_version} ({ec_level.name}), version range {min_version}..{max_version}')

def boost_ec_level(used_bits:int, version:int, ec_level:Ecc) -> Ecc:
    for new_ec_level in (Ecc.MEDIUM, Ecc.QUARTILE, Ecc.HIGH):
        if new_ec_level > ec_level and used_bits <= get_num_data_codewords(version, new_ec_level)*8: ec_level = new_ec_level
    return ec_level

# Bitstream

def assemble_bits(segs:list[Segment], version:int, ec_level:Ecc) -> list[int]:
    bb = []
    for seg in segs:
        append_bits(seg.mode.mode_bits, 4, bb)
        append_bits(seg.num_chars, seg.mode.num_char_count_bits(version), bb)
        bb.extend(seg.data)
    capacity_bits = get_num_data_codewords(version, ec_level)*8
    if len(bb) > capacity_bits: raise DataTooLongError(f'Data too long: {len(bb)} bits for {capacity_bits} bits of capacity')

    # Terminator, byte alignment, then alternating pad bytes
    append_bits(0, min(4, capacity_bits-len(bb)), bb)
    append_bits(0, (8-len(bb)%8)%8, bb)
    pad_byte = 0xEC
    while len(bb) < capacity_bits:
        append_bits(pad_byte, 8, bb)
        pad_byte ^= 0xEC ^ 0x11
    return bb

def assemble_codewords(segs:list[Segment], version:int, ec_level:Ecc) -> list[int]:
    bb = assemble_bits(segs, version, ec_level)
    return [int(''.join(str(b) for b in bb[i:i+8]), 2) for i in range(0, len(bb), 8)]

# Galois Field 256

def gf_multiply(x:int, y:int) -> int:
    if x >> 8 != 0 or y >> 8 != 0: raise ValueError('Byte out of range')
    z = 0
    for i in range(7, -1, -1):
        z = (z << 1) ^ ((z >> 7)*0x11D)
        z ^= ((y >> i) & 1)*x
    return z

# Reed-Solomon

def rs_compute_divisor(degree:int) -> list[int]:
    """Coefficients of prod(x - 2^i) for i in [0, degree), highest power first, leading 1 omitted."""
    if not (1 <= degree <= 255): raise ValueError('Degree out of range')
    result = [0]*(degree-1) + [1]
    root = 1
    for _ in range(degree):
        for j in range(len(result)):
            result[j] = gf_multiply(result[j], root)
            if j+1 < len(result): result[j] ^= result[j+1]
        root = gf_multiply(root, 0x02)
    return result

def rs_compute_remainder(data:list[int], divisor:list[int]) -> list[int]:
    result = [0]*len(divisor)
    for b in data:
        factor = b ^ result.pop(0)
        result.append(0)
        for i, coef in enumerate(divisor): result[i] ^= gf_multiply(coef, factor)
    return result

# Block separation

def split_blocks(data:list[int], version:int, ec_level:Ecc) -> list[tuple[list[int], list[int]]]:
    if len(data) != get_num_data_codewords(version, ec_level): raise ValueError(f'Expected {get_num_data_codewords(version, ec_level)} data codewords, got {len(data)}')
    ecc_len, num_blocks = get_block_info(version, ec_level)
    raw_codewords = get_num_raw_data_modules(version)//8
    num_short_blocks = num_blocks - raw_codewords % num_blocks
    short_block_len = raw_codewords//num_blocks
    divisor = rs_compute_divisor(ecc_len)
    blocks = []
    k = 0
    for i in range(num_blocks):
        n = short_block_len - ecc_len + (0 if i < num_short_blocks else 1)
        dat = list(data[k:k+n])
        k += n
        blocks.append((dat, rs_compute_remainder(dat, divisor)))
    return blocks

# Message Structuring

def interleave(blocks:list[tuple[list[int], list[int]]]) -> list[int]:
    # Short blocks have one data codeword fewer, so they sit out the last data column
    result = [b[0][i] for i in range(max(len(b[0]) for b in blocks)) for b in blocks if len(b[0]) > i]
    result += [b[1][i] for i in range(len(blocks[0][1])) for b in blocks]
    return result

def add_ecc_and_interleave(data:list[int], version:int, ec_level:Ecc) -> list[int]:
    result = interleave(split_blocks(data, version, ec_level))
    if len(result) != get_num_raw_data_modules(version)//8: raise InternalInvariantError('Interleaved codeword count does not match raw capacity')
    return result
