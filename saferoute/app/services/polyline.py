"""
Encoded polyline codec.

Routes travel between client, server and storage as encoded polyline
strings (the Google format): coordinates scaled by 1e5, delta-encoded,
zigzag-signed and packed into 5-bit chunks offset into printable ASCII.
"""

import logging
from typing import Iterable, List

from saferoute.app.services.geo import LatLng

logger = logging.getLogger("saferoute.polyline")

PRECISION = 1e5

_CHUNK_MASK = 0x1F
_CONTINUATION = 0x20
_OFFSET = 63
_MAX_CHAR = 126


def _encode_value(value: int) -> str:
    # Zigzag: shift left, invert negatives so the sign lands in bit 0
    value = ~(value << 1) if value < 0 else (value << 1)
    chunks = []
    while value >= _CONTINUATION:
        chunks.append(chr((_CONTINUATION | (value & _CHUNK_MASK)) + _OFFSET))
        value >>= 5
    chunks.append(chr(value + _OFFSET))
    return "".join(chunks)


def encode(points: Iterable) -> str:
    """
    Encode a sequence of (latitude, longitude) pairs.

    Args:
        points: LatLng values or plain 2-tuples, in path order

    Returns:
        Encoded polyline string ("" for an empty sequence)
    """
    parts = []
    prev_lat = 0
    prev_lng = 0
    for lat, lng in points:
        lat_e5 = int(round(lat * PRECISION))
        lng_e5 = int(round(lng * PRECISION))
        parts.append(_encode_value(lat_e5 - prev_lat))
        parts.append(_encode_value(lng_e5 - prev_lng))
        prev_lat = lat_e5
        prev_lng = lng_e5
    return "".join(parts)


def _decode_value(encoded: str, index: int):
    result = 0
    shift = 0
    while True:
        if index >= len(encoded):
            raise ValueError("truncated chunk")
        code = ord(encoded[index])
        if code < _OFFSET or code > _MAX_CHAR:
            raise ValueError(f"invalid character {encoded[index]!r} at {index}")
        chunk = code - _OFFSET
        index += 1
        result |= (chunk & _CHUNK_MASK) << shift
        shift += 5
        if not chunk & _CONTINUATION:
            break
    value = ~(result >> 1) if result & 1 else result >> 1
    return value, index


def decode(encoded) -> List[LatLng]:
    """
    Decode an encoded polyline.

    Empty or malformed input yields an empty list; callers treat an empty
    path as "cannot evaluate route adherence".
    """
    if not encoded or not isinstance(encoded, str):
        return []

    points = []
    index = 0
    lat = 0
    lng = 0
    try:
        while index < len(encoded):
            d_lat, index = _decode_value(encoded, index)
            d_lng, index = _decode_value(encoded, index)
            lat += d_lat
            lng += d_lng
            points.append(LatLng(lat / PRECISION, lng / PRECISION))
    except ValueError as exc:
        logger.debug("Discarding malformed polyline (%s)", exc)
        return []
    return points
