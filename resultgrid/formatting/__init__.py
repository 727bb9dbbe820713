# Result value formatting module

from .formatter import Result_Formatter
from .geometry import GeometryError, wkb_to_wkt

__all__ = ['Result_Formatter', 'GeometryError', 'wkb_to_wkt']
