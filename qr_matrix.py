import logging
from dataclasses import dataclass

from qr_encoding import (
    MAX_VERSION, MIN_VERSION, Ecc, InternalInvariantError, ParameterRangeError, Segment,
    add_ecc_and_interleave, assemble_codewords, boost_ec_level, check_version, choose_version,
    make_bytes, make_segments,
)

logger = logging.getLogger(__name__)

# Cells of the working matrix: bit 0 is the color, FUNCTION marks fixed patterns
FUNCTION = 2

FORMAT_GENERATOR = 0x537
FORMAT_MASK = 0x5412
VERSION_GENERATOR = 0x1F25

def get_bit(x:int, i:int) -> int:
    return (x >> i) & 1

# Function patterns

def get_alignment_pattern_positions(version:int) -> list[int]:
    check_version(version)
    if version == 1: return []
    num_align = version//7 + 2
    step = 26 if version == 32 else -(-(version*4 + 4)//(num_align*2 - 2))*2
    result = [6]
    pos = version*4 + 17 - 7
    while len(result) < num_align:
        result.insert(1, pos)
        pos -= step
    return result

def get_format_bits(ec_level:Ecc, mask:int) -> int:
    data = ec_level.format_bits << 3 | mask
    rem = data
    for _ in range(10): rem = (rem << 1) ^ ((rem >> 9)*FORMAT_GENERATOR)
    return (data << 10 | rem) ^ FORMAT_MASK

def decode_format_bits(bits:int) -> tuple[Ecc, int]:
    data = (bits ^ FORMAT_MASK) >> 10
    ec_level = {1: Ecc.LOW, 0: Ecc.MEDIUM, 3: Ecc.QUARTILE, 2: Ecc.HIGH}[data >> 3]
    mask = data & 7
    if get_format_bits(ec_level, mask) != bits: raise ValueError(f'Invalid format information {bits:015b}')
    return ec_level, mask

def get_version_bits(version:int) -> int:
    check_version(version)
    rem = version
    for _ in range(12): rem = (rem << 1) ^ ((rem >> 11)*VERSION_GENERATOR)
    return version << 12 | rem

def set_function_module(matrix:list[list[int]], x:int, y:int, is_dark:bool) -> None:
    matrix[y][x] = FUNCTION | int(is_dark)

def draw_finder_pattern(matrix:list[list[int]], x:int, y:int) -> None:
    size = len(matrix)
    for dy in range(-4, 5):
        for dx in range(-4, 5):
            dist = max(abs(dx), abs(dy))
            if 0 <= x+dx < size and 0 <= y+dy < size:
                set_function_module(matrix, x+dx, y+dy, dist not in (2, 4))

def draw_alignment_pattern(matrix:list[list[int]], x:int, y:int) -> None:
    for dy in range(-2, 3):
        for dx in range(-2, 3):
            set_function_module(matrix, x+dx, y+dy, max(abs(dx), abs(dy)) != 1)

def draw_format_bits(matrix:list[list[int]], ec_level:Ecc, mask:int) -> None:
    size = len(matrix)
    bits = get_format_bits(ec_level, mask)

    # Around the top left finder
    for i in range(6): set_function_module(matrix, 8, i, get_bit(bits, i))
    set_function_module(matrix, 8, 7, get_bit(bits, 6))
    set_function_module(matrix, 8, 8, get_bit(bits, 7))
    set_function_module(matrix, 7, 8, get_bit(bits, 8))
    for i in range(9, 15): set_function_module(matrix, 14-i, 8, get_bit(bits, i))

    # Split between the top right and bottom left finders
    for i in range(8): set_function_module(matrix, size-1-i, 8, get_bit(bits, i))
    for i in range(8, 15): set_function_module(matrix, 8, size-15+i, get_bit(bits, i))
    set_function_module(matrix, 8, size-8, True)

def draw_version(matrix:list[list[int]], version:int) -> None:
    if version < 7: return
    size = len(matrix)
    bits = get_version_bits(version)
    for i in range(18):
        a = size - 11 + i % 3
        b = i//3
        set_function_module(matrix, a, b, get_bit(bits, i))
        set_function_module(matrix, b, a, get_bit(bits, i))

def draw_function_patterns(matrix:list[list[int]], version:int, ec_level:Ecc) -> None:
    size = len(matrix)
    for i in range(size):
        set_function_module(matrix, 6, i, i % 2 == 0)
        set_function_module(matrix, i, 6, i % 2 == 0)
    draw_finder_pattern(matrix, 3, 3)
    draw_finder_pattern(matrix, size-4, 3)
    draw_finder_pattern(matrix, 3, size-4)
    alignment_positions = get_alignment_pattern_positions(version)
    last = len(alignment_positions) - 1
    for i, x in enumerate(alignment_positions):
        for j, y in enumerate(alignment_positions):
            # Corners already hold finder patterns
            if (i, j) not in ((0, 0), (0, last), (last, 0)): draw_alignment_pattern(matrix, x, y)
    draw_format_bits(matrix, ec_level, 0)
    draw_version(matrix, version)

# Data placement

def draw_codewords(matrix:list[list[int]], data:list[int]) -> None:
    size = len(matrix)
    i = 0
    right = size - 1
    while right >= 1:
        if right == 6: right = 5
        upward = ((right+1) & 2) == 0
        for vert in range(size):
            y = size - 1 - vert if upward else vert
            for x in (right, right-1):
                if not matrix[y][x] & FUNCTION and i < len(data)*8:
                    matrix[y][x] = get_bit(data[i >> 3], 7 - (i & 7))
                    i += 1
        right -= 2
    if i != len(data)*8: raise InternalInvariantError(f'Placed {i} of {len(data)*8} codeword bits')

# Masking

def mask_applies(mask:int, x:int, y:int) -> bool:
    match mask:
        case 0: return (x+y) % 2 == 0
        case 1: return y % 2 == 0
        case 2: return x % 3 == 0
        case 3: return (x+y) % 3 == 0
        case 4: return (x//3 + y//2) % 2 == 0
        case 5: return (x*y) % 2 + (x*y) % 3 == 0
        case 6: return ((x*y) % 2 + (x*y) % 3) % 2 == 0
        case 7: return ((x+y) % 2 + (x*y) % 3) % 2 == 0
    raise InternalInvariantError(f'No mask pattern {mask}')

def apply_mask(matrix:list[list[int]], mask:int) -> None:
    for y, row in enumerate(matrix):
        for x in range(len(row)):
            if not row[x] & FUNCTION and mask_applies(mask, x, y): row[x] ^= 1

def get_penalty_score(matrix:list[list[int]]) -> int:
    colors = [[cell & 1 for cell in row] for row in matrix]
    penalty = 0

    # Runs of five or more in rows and columns
    for line in colors + [list(column) for column in zip(*colors)]:
        run_color = None
        count = 0
        for module in line:
            if module == run_color:
                count += 1
                if count == 5: penalty += 3
                elif count > 5: penalty += 1
            else:
                run_color = module
                count = 1

    # 2x2 blocks of one color
    for y in range(len(colors)-1):
        for x in range(len(colors)-1):
            if colors[y][x] == colors[y][x+1] == colors[y+1][x] == colors[y+1][x+1]: penalty += 3
    return penalty

def choose_mask(matrix:list[list[int]], ec_level:Ecc) -> tuple[int, int]:
    best_mask, min_penalty = -1, None
    for mask in range(8):
        apply_mask(matrix, mask)
        draw_format_bits(matrix, ec_level, mask)
        penalty = get_penalty_score(matrix)
        logger.debug('Mask %d penalty %d', mask, penalty)
        if min_penalty is None or penalty < min_penalty: best_mask, min_penalty = mask, penalty
        apply_mask(matrix, mask)
    return best_mask, min_penalty

# Symbol

@dataclass(frozen=True)
class Symbol:
    version: int
    ec_level: Ecc
    mask: int
    _modules: tuple[tuple[bool, ...], ...]

    @property
    def size(self) -> int:
        return self.version*4 + 17

    def get_module(self, x:int, y:int) -> bool:
        return 0 <= x < self.size and 0 <= y < self.size and self._modules[y][x]

    def to_text(self, dark:str = '1', light:str = '0') -> str:
        return '\n'.join(''.join(dark if m else light for m in row) for row in self._modules)

def read_format_bits(symbol:Symbol) -> tuple[int, int]:
    size = symbol.size
    first = [symbol.get_module(8, i) for i in range(6)]
    first += [symbol.get_module(8, 7), symbol.get_module(8, 8), symbol.get_module(7, 8)]
    first += [symbol.get_module(14-i, 8) for i in range(9, 15)]
    second = [symbol.get_module(size-1-i, 8) for i in range(8)]
    second += [symbol.get_module(8, size-15+i) for i in range(8, 15)]
    return tuple(sum(int(b) << i for i, b in enumerate(bits)) for bits in (first, second))

def build_symbol(version:int, ec_level:Ecc, data_codewords:list[int], mask:int = -1) -> Symbol:
    if not (-1 <= mask <= 7): raise ParameterRangeError(f'Mask {mask} out of range -1..7')
    size = version*4 + 17
    matrix = [[0]*size for _ in range(size)]
    draw_function_patterns(matrix, version, ec_level)
    draw_codewords(matrix, add_ecc_and_interleave(data_codewords, version, ec_level))
    if mask == -1:
        mask, penalty = choose_mask(matrix, ec_level)
        logger.debug('Chose mask %d with penalty %d', mask, penalty)
    apply_mask(matrix, mask)
    draw_format_bits(matrix, ec_level, mask)
    return Symbol(version, ec_level, mask, tuple(tuple(bool(cell & 1) for cell in row) for row in matrix))

# Encode functions

def encode_segments(segs:list[Segment], ec_level:Ecc, min_version:int = MIN_VERSION, max_version:int = MAX_VERSION, mask:int = -1, boost_ecl:bool = True) -> Symbol:
    if not (MIN_VERSION <= min_version <= max_version <= MAX_VERSION): raise ParameterRangeError(f'Invalid version range {min_version}..{max_version}')
    if not (-1 <= mask <= 7): raise ParameterRangeError(f'Mask {mask} out of range -1..7')
    ec_level = Ecc(ec_level)
    version, used_bits = choose_version(segs, ec_level, min_version, max_version)
    if boost_ecl:
        boosted = boost_ec_level(used_bits, version, ec_level)
        if boosted != ec_level: logger.debug('Boosted error correction from %s to %s', ec_level.name, boosted.name)
        ec_level = boosted
    symbol = build_symbol(version, ec_level, assemble_codewords(segs, version, ec_level), mask)
    logger.debug('Encoded %d segment(s) as version %d, %s, mask %d', len(segs), symbol.version, symbol.ec_level.name, symbol.mask)
    return symbol

def encode_text(text:str, ec_level:Ecc) -> Symbol:
    return encode_segments(make_segments(text), ec_level)

def encode_binary(data:bytes, ec_level:Ecc) -> Symbol:
    return encode_segments([make_bytes(data)], ec_level)
