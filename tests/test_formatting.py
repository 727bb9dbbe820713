import struct
from datetime import date, datetime
from decimal import Decimal

import pytest

from resultgrid.formatting.formatter import Result_Formatter
from resultgrid.formatting.geometry import GeometryError, wkb_to_wkt


@pytest.fixture
def formatter():
    return Result_Formatter()


@pytest.mark.parametrize('value, expected', [
    (None, None),
    (True, 'true'),
    (datetime(2024, 1, 2, 3, 4, 5), '2024-01-02 03:04:05'),
    (date(2024, 1, 2), '2024-01-02'),
    (Decimal('10.50'), '10.50'),
    ({'a': 1}, '{"a":1}'),
    ([1, None, 3], '{1,NULL,3}'),
    (memoryview(b'\x01\x02'), b'\x01\x02'),
])
def test_format_value(formatter, value, expected):
    assert formatter.format_value(value) == expected


def test_format_json_list(formatter):
    assert formatter.format_value([1, 2], is_json=True) == '[1,2]'


def test_partial_text(formatter):
    assert formatter.get_partial_text('abcdef', 3, 'P') == (True, 'abc...', 6)
    assert formatter.get_partial_text('abcdef', 3, 'F') == (False, 'abcdef', 6)
    assert formatter.get_partial_text('abc', 3, 'P') == (False, 'abc', 3)


def test_mime_default_keeps_layout(formatter):
    assert formatter.mime_default('<a>  b\nc') == '&lt;a&gt; &nbsp;b<br>\nc'


def test_format_byte_down(formatter):
    assert formatter.format_byte_down(500, 3, 1) == ('500', 'B')
    assert formatter.format_byte_down(2048, 3, 1) == ('2.0', 'KiB')


def test_bits_and_binary(formatter):
    assert formatter.printable_bit_value(5, 4) == '0101'
    assert formatter.printable_bit_value('11', 4) == '0011'
    assert formatter.is_printable_utf8('héllo'.encode('utf-8'))
    assert not formatter.is_printable_utf8(b'\x00abc')
    assert not formatter.is_printable_utf8(b'\xff\xfe')
    assert formatter.to_hex(b'\x0a\xff') == '0x0aff'


def _point(x, y, prefix='<'):
    order = 1 if prefix == '<' else 0
    return struct.pack(prefix + 'BIdd', order, 1, x, y)


def test_point_to_wkt():
    assert wkb_to_wkt(_point(1.0, 2.5)) == 'POINT(1 2.5)'
    assert wkb_to_wkt(_point(1.0, 2.0, '>')) == 'POINT(1 2)'


def test_ewkb_srid():
    data = struct.pack('<BIIdd', 1, 1 | 0x20000000, 4326, 10.0, 20.0)
    assert wkb_to_wkt(data, include_srid=True) == "'POINT(10 20)',4326"


def test_linestring_and_multipoint():
    line = struct.pack('<BII', 1, 2, 2) + struct.pack('<dddd', 0.0, 0.0, 1.0, 1.0)
    assert wkb_to_wkt(line) == 'LINESTRING(0 0,1 1)'

    multipoint = struct.pack('<BII', 1, 4, 2) + _point(1.0, 2.0) + _point(3.0, 4.0)
    assert wkb_to_wkt(multipoint) == 'MULTIPOINT(1 2,3 4)'


def test_invalid_geometry():
    with pytest.raises(GeometryError):
        wkb_to_wkt(b'\x01\x01\x00')
    with pytest.raises(GeometryError):
        wkb_to_wkt(struct.pack('<BI', 1, 99))
