"""
Encoded polyline codec.

Coordinates are stored as a compact printable string: each latitude and
longitude is rounded to 5 decimal places, delta-encoded against the previous
value of the same axis, zig-zag transformed and written as 5-bit groups.
"""
import math
from typing import Iterable, List, NamedTuple, Tuple

from ..exceptions import CodecDecodeError

PRECISION = 5
FACTOR = 10 ** PRECISION

CHAR_OFFSET = 63
CONTINUATION_BIT = 0x20
CHUNK_MASK = 0x1F


class LatLng(NamedTuple):
    lat: float
    lng: float


def zigzag_encode(value: int) -> int:
    """Map a signed integer to a non-negative one (negatives become odd)."""
    return ~(value << 1) if value < 0 else value << 1


def zigzag_decode(value: int) -> int:
    """Inverse of zigzag_encode."""
    return ~(value >> 1) if value & 1 else value >> 1


def encode_value(value: int) -> str:
    """Encode one signed scaled integer as a run of printable characters."""
    remaining = zigzag_encode(value)
    chars = []
    while remaining >= CONTINUATION_BIT:
        chars.append(chr((CONTINUATION_BIT | (remaining & CHUNK_MASK)) + CHAR_OFFSET))
        remaining >>= 5
    chars.append(chr(remaining + CHAR_OFFSET))
    return "".join(chars)


def decode_value(text: str, index: int) -> Tuple[int, int]:
    """Decode one signed integer starting at index; return it and the next index."""
    result = 0
    shift = 0

    while True:
        if index >= len(text):
            raise CodecDecodeError("Invalid polyline: unterminated value at end of input")
        chunk = ord(text[index]) - CHAR_OFFSET
        if chunk < 0 or chunk > 0x3F:
            raise CodecDecodeError(
                f"Invalid polyline: character {text[index]!r} at position {index} is outside the alphabet"
            )
        index += 1
        result |= (chunk & CHUNK_MASK) << shift
        shift += 5
        if chunk < CONTINUATION_BIT:
            break

    return zigzag_decode(result), index


def _scale(value: float) -> int:
    # round half up
    return int(math.floor(value * FACTOR + 0.5))


def encode(points: Iterable[Tuple[float, float]]) -> str:
    """Encode an ordered sequence of (lat, lng) pairs."""
    parts = []
    prev_lat = 0
    prev_lng = 0

    for lat, lng in points:
        scaled_lat = _scale(lat)
        scaled_lng = _scale(lng)
        parts.append(encode_value(scaled_lat - prev_lat))
        parts.append(encode_value(scaled_lng - prev_lng))
        prev_lat, prev_lng = scaled_lat, scaled_lng

    return "".join(parts)


def decode(text: str) -> List[LatLng]:
    """Decode an encoded polyline into a list of LatLng."""
    coordinates: List[LatLng] = []
    index = 0
    lat = 0
    lng = 0

    while index < len(text):
        lat_change, index = decode_value(text, index)
        if index >= len(text):
            raise CodecDecodeError("Invalid polyline: latitude without a matching longitude")
        lng_change, index = decode_value(text, index)
        lat += lat_change
        lng += lng_change
        coordinates.append(LatLng(lat / FACTOR, lng / FACTOR))

    return coordinates
