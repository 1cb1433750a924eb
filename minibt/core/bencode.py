"""Bencode encoder and decoder.

Decoded values map onto Python types as follows:

* byte string -> ``bytes`` (never assumed to be text)
* integer     -> ``int``
* list        -> ``list``
* dictionary  -> ``dict`` with ``bytes`` keys, in the order they were encoded

Dictionaries keep their encoded key order, and the encoder writes keys in the
order the caller supplies them. Re-encoding a decoded value therefore
reproduces the original bytes, which is what the info-hash relies on.
"""

from __future__ import annotations

import re
from typing import Any, Union

from minibt.exceptions import DecodeError, EncodeError

BencodeValue = Union[bytes, int, list, dict]

_INT = ord("i")
_LIST = ord("l")
_DICT = ord("d")
_END = ord("e")
_ZERO = ord("0")
_NINE = ord("9")

_INTEGER_RE = re.compile(rb"-?(?:0|[1-9][0-9]*)")
_LENGTH_RE = re.compile(rb"0|[1-9][0-9]*")


def _is_digit(byte: int) -> bool:
    return _ZERO <= byte <= _NINE


def _read_integer(data: bytes, pos: int) -> tuple[int, int]:
    """Parse ``i<digits>e`` at ``pos``; return the value and the next index."""
    end = data.find(b"e", pos + 1)
    if end == -1:
        msg = f"Unterminated integer at position {pos}"
        raise DecodeError(msg)
    token = data[pos + 1 : end]
    if not _INTEGER_RE.fullmatch(token) or token == b"-0":
        msg = f"Invalid integer {token!r} at position {pos}"
        raise DecodeError(msg)
    return int(token), end + 1


def _read_length(data: bytes, pos: int) -> tuple[int, int]:
    """Parse the ``<len>:`` prefix at ``pos``; return length and content start."""
    colon = data.find(b":", pos)
    if colon == -1:
        msg = f"Missing ':' in byte string at position {pos}"
        raise DecodeError(msg)
    token = data[pos:colon]
    if not _LENGTH_RE.fullmatch(token):
        msg = f"Invalid byte string length {token!r} at position {pos}"
        raise DecodeError(msg)
    length = int(token)
    start = colon + 1
    if start + length > len(data):
        msg = (
            f"Byte string at position {pos} declares {length} bytes, "
            f"only {len(data) - start} remain"
        )
        raise DecodeError(msg)
    return length, start


def find_value_end(data: bytes, pos: int) -> int:
    """Return the index just past the value that starts at ``pos``.

    Containers are matched with an explicit depth counter instead of
    recursion. Byte strings are skipped by their declared length and integers
    by their terminator, so an ``e`` (or ``l``/``d``) inside their content is
    never taken for structure.

    Raises:
        DecodeError: If the value is truncated or contains an invalid marker

    """
    depth = 0
    size = len(data)
    while True:
        if pos >= size:
            msg = "Unexpected end of data"
            raise DecodeError(msg, {"depth": depth})
        marker = data[pos]
        if marker in (_LIST, _DICT):
            depth += 1
            pos += 1
            continue
        if marker == _END:
            if depth == 0:
                msg = f"Unexpected end marker at position {pos}"
                raise DecodeError(msg)
            depth -= 1
            pos += 1
        elif marker == _INT:
            _, pos = _read_integer(data, pos)
        elif _is_digit(marker):
            length, start = _read_length(data, pos)
            pos = start + length
        else:
            msg = f"Invalid bencode marker {bytes([marker])!r} at position {pos}"
            raise DecodeError(msg)
        if depth == 0:
            return pos


class BencodeDecoder:
    """Recursive-descent bencode decoder over a byte buffer."""

    def __init__(self, data: bytes | bytearray | memoryview):
        """Initialize the decoder.

        Args:
            data: Bencoded input

        """
        if isinstance(data, str):
            msg = "BencodeDecoder expects bytes, not str"
            raise TypeError(msg)
        self.data = bytes(data)

    def decode(self) -> BencodeValue:
        """Decode the whole buffer as exactly one value.

        Raises:
            DecodeError: If the input is malformed or has trailing bytes

        """
        try:
            value, end = self.decode_at(0)
        except RecursionError as e:
            msg = "Bencode nesting too deep"
            raise DecodeError(msg) from e
        if end != len(self.data):
            msg = f"Trailing data after bencoded value: {len(self.data) - end} bytes"
            raise DecodeError(msg, {"position": end})
        return value

    def decode_at(self, pos: int) -> tuple[BencodeValue, int]:
        """Decode the value at ``pos``; return it with the index that follows it."""
        if pos >= len(self.data):
            msg = "Unexpected end of data"
            raise DecodeError(msg, {"position": pos})
        marker = self.data[pos]
        if _is_digit(marker):
            return self._decode_bytes(pos)
        if marker == _INT:
            return _read_integer(self.data, pos)
        if marker == _LIST:
            return self._decode_list(pos)
        if marker == _DICT:
            return self._decode_dict(pos)
        msg = f"Invalid bencode marker {bytes([marker])!r} at position {pos}"
        raise DecodeError(msg)

    def _decode_bytes(self, pos: int) -> tuple[bytes, int]:
        length, start = _read_length(self.data, pos)
        return self.data[start : start + length], start + length

    def _content_bounds(self, pos: int) -> tuple[int, int]:
        """Return (first content index, terminator index) of a container."""
        end = find_value_end(self.data, pos)
        return pos + 1, end - 1

    def _check_closed(self, cursor: int, close: int, pos: int) -> None:
        if cursor != close:
            msg = f"Container at position {pos} overruns its terminator"
            raise DecodeError(msg)

    def _decode_list(self, pos: int) -> tuple[list, int]:
        cursor, close = self._content_bounds(pos)
        items: list[BencodeValue] = []
        while cursor < close:
            item, cursor = self.decode_at(cursor)
            items.append(item)
        self._check_closed(cursor, close, pos)
        return items, close + 1

    def _decode_dict(self, pos: int) -> tuple[dict, int]:
        cursor, close = self._content_bounds(pos)
        result: dict[bytes, BencodeValue] = {}
        while cursor < close:
            if not _is_digit(self.data[cursor]):
                msg = f"Dictionary key at position {cursor} is not a byte string"
                raise DecodeError(msg)
            key, cursor = self._decode_bytes(cursor)
            if cursor >= close:
                msg = f"Dictionary key {key!r} has no value"
                raise DecodeError(msg)
            if key in result:
                msg = f"Duplicate dictionary key {key!r}"
                raise DecodeError(msg)
            result[key], cursor = self.decode_at(cursor)
        self._check_closed(cursor, close, pos)
        return result, close + 1


class BencodeEncoder:
    """Bencode encoder that writes dictionary keys in caller order."""

    def encode(self, value: Any) -> bytes:
        """Encode a value.

        Raises:
            EncodeError: If the value (or a nested value) has no bencode form

        """
        out = bytearray()
        self._encode_into(value, out)
        return bytes(out)

    def _encode_into(self, value: Any, out: bytearray) -> None:
        # bool is an int subclass but has no bencode form
        if isinstance(value, bool):
            msg = "Cannot bencode bool"
            raise EncodeError(msg)
        if isinstance(value, int):
            out += b"i%de" % value
        elif isinstance(value, (bytes, bytearray, memoryview)):
            self._encode_bytes(bytes(value), out)
        elif isinstance(value, str):
            self._encode_bytes(value.encode("utf-8"), out)
        elif isinstance(value, (list, tuple)):
            out += b"l"
            for item in value:
                self._encode_into(item, out)
            out += b"e"
        elif isinstance(value, dict):
            out += b"d"
            for key, item in value.items():
                if isinstance(key, str):
                    key = key.encode("utf-8")
                elif not isinstance(key, (bytes, bytearray)):
                    msg = f"Dictionary keys must be bytes or str, got {type(key).__name__}"
                    raise EncodeError(msg)
                self._encode_bytes(bytes(key), out)
                self._encode_into(item, out)
            out += b"e"
        else:
            msg = f"Cannot bencode {type(value).__name__}"
            raise EncodeError(msg)

    @staticmethod
    def _encode_bytes(data: bytes, out: bytearray) -> None:
        out += b"%d:" % len(data)
        out += data


def decode(data: bytes | bytearray | memoryview) -> BencodeValue:
    """Decode a complete bencoded buffer."""
    return BencodeDecoder(data).decode()


def encode(value: Any) -> bytes:
    """Encode a value to bencode."""
    return BencodeEncoder().encode(value)


def to_json_compatible(value: BencodeValue) -> Any:
    """Convert a decoded value into something ``json.dumps`` accepts.

    Byte strings become text when they are valid UTF-8 and hex otherwise.
    """
    if isinstance(value, bytes):
        try:
            return value.decode("utf-8")
        except UnicodeDecodeError:
            return value.hex()
    if isinstance(value, list):
        return [to_json_compatible(item) for item in value]
    if isinstance(value, dict):
        return {
            to_json_compatible(key): to_json_compatible(item)
            for key, item in value.items()
        }
    return value
