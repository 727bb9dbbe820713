"""
Conversion of PostGIS geometry values to well-known text.

PostGIS sends geometry columns as hex encoded EWKB: standard WKB whose type
word may carry Z/M/SRID flags, followed by the SRID when the flag is set.
ISO WKB type codes (1000/2000/3000 offsets) are accepted as well.
"""

import struct
from typing import List, Optional, Tuple

GEOMETRY_TYPES = {
    1: 'POINT',
    2: 'LINESTRING',
    3: 'POLYGON',
    4: 'MULTIPOINT',
    5: 'MULTILINESTRING',
    6: 'MULTIPOLYGON',
    7: 'GEOMETRYCOLLECTION',
}

EWKB_Z_FLAG = 0x80000000
EWKB_M_FLAG = 0x40000000
EWKB_SRID_FLAG = 0x20000000


class GeometryError(ValueError):
    """Raised when a value is not valid (E)WKB."""
    pass


class _Reader:
    def __init__(self, data: bytes):
        self.data = data
        self.offset = 0

    def read(self, fmt: str) -> tuple:
        size = struct.calcsize(fmt)
        if self.offset + size > len(self.data):
            raise GeometryError("Truncated geometry value")
        values = struct.unpack_from(fmt, self.data, self.offset)
        self.offset += size
        return values


def _number(value: float) -> str:
    text = repr(float(value))
    return text[:-2] if text.endswith('.0') else text


def _coordinates(values) -> str:
    return ' '.join(_number(v) for v in values)


def _read_points(reader: _Reader, prefix: str, dims: int) -> List[str]:
    (count,) = reader.read(prefix + 'I')
    return [_coordinates(reader.read(prefix + 'd' * dims)) for _ in range(count)]


def _read_geometry(reader: _Reader) -> Tuple[Optional[int], str, str]:
    """Read one geometry; returns (srid, tagged type name, body)."""
    (order,) = reader.read('B')
    if order not in (0, 1):
        raise GeometryError(f"Invalid byte order marker: {order}")
    prefix = '<' if order == 1 else '>'

    (type_code,) = reader.read(prefix + 'I')
    has_z = bool(type_code & EWKB_Z_FLAG)
    has_m = bool(type_code & EWKB_M_FLAG)
    srid = None
    if type_code & EWKB_SRID_FLAG:
        (srid,) = reader.read(prefix + 'I')
    type_code &= 0x0FFFFFFF

    if type_code >= 3000:
        has_z = has_m = True
        type_code -= 3000
    elif type_code >= 2000:
        has_m = True
        type_code -= 2000
    elif type_code >= 1000:
        has_z = True
        type_code -= 1000

    name = GEOMETRY_TYPES.get(type_code)
    if name is None:
        raise GeometryError(f"Unknown geometry type: {type_code}")

    dims = 2 + int(has_z) + int(has_m)
    if has_z and has_m:
        tag = name + ' ZM '
    elif has_z:
        tag = name + ' Z '
    elif has_m:
        tag = name + ' M '
    else:
        tag = name

    if type_code == 1:
        values = reader.read(prefix + 'd' * dims)
        if all(v != v for v in values):
            return srid, name, ' EMPTY'
        return srid, tag, '(' + _coordinates(values) + ')'

    if type_code == 2:
        points = _read_points(reader, prefix, dims)
        if not points:
            return srid, name, ' EMPTY'
        return srid, tag, '(' + ','.join(points) + ')'

    if type_code == 3:
        (ring_count,) = reader.read(prefix + 'I')
        if ring_count == 0:
            return srid, name, ' EMPTY'
        rings = ['(' + ','.join(_read_points(reader, prefix, dims)) + ')' for _ in range(ring_count)]
        return srid, tag, '(' + ','.join(rings) + ')'

    (member_count,) = reader.read(prefix + 'I')
    if member_count == 0:
        return srid, name, ' EMPTY'
    members = []
    for _ in range(member_count):
        _, member_tag, member_body = _read_geometry(reader)
        if type_code == 4:
            members.append(member_body[1:-1] if member_body.startswith('(') else member_body.strip())
        elif type_code == 7:
            members.append(member_tag + member_body)
        else:
            members.append(member_body.strip())
    return srid, tag, '(' + ','.join(members) + ')'


def wkb_to_wkt(data: bytes, include_srid: bool = False) -> str:
    """
    Convert an (E)WKB value to WKT.

    Args:
        data: Raw (E)WKB bytes
        include_srid: Return ``'WKT',SRID`` like the GIS editor expects

    Returns:
        str: The geometry as well-known text

    Raises:
        GeometryError: If the value cannot be decoded
    """
    reader = _Reader(bytes(data))
    srid, tag, body = _read_geometry(reader)
    wkt = tag + body
    if include_srid:
        return f"'{wkt}',{srid or 0}"
    return wkt
