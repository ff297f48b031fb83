import logging
import math
import os
import sys

from PIL import Image, ImageOps

from qr_encoding import Ecc, QrCodeError
from qr_matrix import Symbol, encode_text

logger = logging.getLogger(__name__)

DEFAULT_SCALE = 10
DEFAULT_BORDER = 4
DEFAULT_FOREGROUND = '#000000'
DEFAULT_BACKGROUND = '#ffffff'
JPEG_QUALITY = 90

USAGE = 'usage: qr-generate <text> [ec_level L|M|Q|H] [output.png|output.jpg] [foreground] [background]'

def symbol_to_image(symbol:Symbol, scale:int = DEFAULT_SCALE, border:int = DEFAULT_BORDER, foreground:str = DEFAULT_FOREGROUND, background:str = DEFAULT_BACKGROUND, size:int | None = None) -> Image.Image:
    if scale < 1: raise ValueError(f'Scale must be at least 1, got {scale}')
    if border < 0: raise ValueError(f'Border must not be negative, got {border}')
    N = symbol.size
    im = Image.new('L', (N, N), 255)
    im.putdata([0 if symbol.get_module(x, y) else 255 for y in range(N) for x in range(N)])
    frame = Image.new('L', (N+border*2, N+border*2), 255)
    frame.paste(im, (border, border))
    frame = frame.resize((frame.size[0]*scale, frame.size[1]*scale), resample=Image.BOX)
    if size is not None:
        if size < 1: raise ValueError(f'Size must be at least 1, got {size}')
        frame = frame.resize((size, size), resample=Image.NEAREST)
    logger.debug('Rendered %dx%d symbol to %dx%d image', N, N, *frame.size)
    return ImageOps.colorize(frame, black=foreground, white=background)

def dark_ratio(image:Image.Image) -> float:
    # Raw RGB triples, a pixel is dark when its channel mean is below 128
    raw = image.convert('RGB').tobytes()
    dark = sum(1 for i in range(0, len(raw), 3) if raw[i] + raw[i+1] + raw[i+2] < 128*3)
    light = len(raw)//3 - dark
    return dark/light if light else math.inf

def check_contrast(image:Image.Image) -> bool:
    ratio = dark_ratio(image)
    if 0.1 < ratio < 0.9:
        logger.debug('Dark/light pixel ratio %.3f looks valid', ratio)
        return True
    logger.warning('Dark/light pixel ratio %.3f, the symbol may have contrast issues', ratio)
    return False

def save_symbol(symbol:Symbol, path:str, fmt:str | None = None, **render_options) -> Image.Image:
    fmt = (fmt or os.path.splitext(str(path))[1].lstrip('.')).upper()
    if fmt == 'JPG': fmt = 'JPEG'
    if fmt not in ('PNG', 'JPEG'): raise ValueError(f'Unsupported image format {fmt!r}, use PNG or JPEG')
    image = symbol_to_image(symbol, **render_options)
    check_contrast(image)
    if fmt == 'JPEG': image.save(path, 'JPEG', quality=JPEG_QUALITY)
    else: image.save(path, 'PNG')
    return image

def parse_ec_level(value:str) -> Ecc:
    value = value.strip().upper()
    if value in ('L', 'M', 'Q', 'H'): return Ecc('LMQH'.index(value))
    if value in ('0', '1', '2', '3'): return Ecc(int(value))
    raise ValueError(f'Invalid ec_level {value!r}. Should be one of L, M, Q, H or 0 to 3.')

def main(argv:list[str] | None = None) -> int:
    logging.basicConfig(level=logging.INFO, format='%(levelname)s: %(message)s')
    argv = sys.argv[1:] if argv is None else argv
    if not (1 <= len(argv) <= 5):
        logger.error('%d positional arguments were found. %s', len(argv), USAGE)
        return 2
    output = argv[2] if len(argv) > 2 else 'output.png'
    colors = {}
    if len(argv) > 3: colors['foreground'] = argv[3]
    if len(argv) > 4: colors['background'] = argv[4]
    try:
        ec_level = parse_ec_level(argv[1]) if len(argv) > 1 else Ecc.HIGH
        symbol = encode_text(argv[0], ec_level)
        save_symbol(symbol, output, **colors)
    except (QrCodeError, ValueError) as e:
        logger.error('%s', e)
        return 1
    logger.info('Saved version %d symbol (%s, mask %d) to %s', symbol.version, symbol.ec_level.name, symbol.mask, output)
    return 0

if __name__ == '__main__':
    sys.exit(main())
