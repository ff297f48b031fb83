"""
Shared fixtures for the QR encoder test suite.

Golden symbols under tests/golden/ were produced by the reference encoder.
Each file holds a "version level mask" header line followed by one row of
0/1 modules per line.
"""

from pathlib import Path

import pytest

from qr_encoding import Ecc

GOLDEN_DIR = Path(__file__).parent / 'golden'


def read_golden(name):
    lines = (GOLDEN_DIR / f'{name}.txt').read_text().split()
    version, level, mask = lines[0], lines[1], lines[2]
    rows = tuple(tuple(c == '1' for c in row) for row in lines[3:])
    return int(version), Ecc[level], int(mask), rows


@pytest.fixture
def golden():
    return read_golden
