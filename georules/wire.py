"""Protobuf wire-format reader over a byte cursor.

Only what the two database schemas need: varints, length-delimited payloads and
skipping of unknown fields. Every read is bounds-checked and raises
:class:`~georules.errors.MalformedInput` instead of returning short data.
"""

from __future__ import annotations

from collections.abc import Iterator

from georules.errors import MalformedInput

VARINT = 0
FIXED64 = 1
LENGTH_DELIMITED = 2
FIXED32 = 5

_MAX_VARINT_BYTES = 10
_INT64_SIGN = 1 << 63
_UINT64_RANGE = 1 << 64


class Cursor:
    """Reads one message body: ``data[start:end]``."""

    __slots__ = ("_data", "_end", "_pos")

    def __init__(self, data: bytes | memoryview, start: int = 0, end: int | None = None) -> None:
        self._data = memoryview(data)
        self._pos = start
        self._end = len(self._data) if end is None else end

    @property
    def offset(self) -> int:  # noqa: D102
        return self._pos

    def at_end(self) -> bool:  # noqa: D102
        return self._pos >= self._end

    def read_varint(self) -> int:  # noqa: D102
        result = 0
        for index in range(_MAX_VARINT_BYTES):
            if self._pos >= self._end:
                raise MalformedInput("truncated varint", self._pos)
            byte = self._data[self._pos]
            self._pos += 1
            result |= (byte & 0x7F) << (7 * index)
            if not byte & 0x80:
                return result & (_UINT64_RANGE - 1)
        raise MalformedInput("varint longer than 10 bytes", self._pos)

    def read_int64(self) -> int:  # noqa: D102
        value = self.read_varint()
        return value - _UINT64_RANGE if value >= _INT64_SIGN else value

    def read_bool(self) -> bool:  # noqa: D102
        return self.read_varint() != 0

    def read_tag(self) -> tuple[int, int]:  # noqa: D102
        offset = self._pos
        key = self.read_varint()
        field_number, wire_type = key >> 3, key & 0x07
        if field_number == 0:
            raise MalformedInput("invalid field number 0", offset)
        if wire_type not in (VARINT, FIXED64, LENGTH_DELIMITED, FIXED32):
            raise MalformedInput(f"invalid wire type {wire_type}", offset)
        return field_number, wire_type

    def _span(self) -> tuple[int, int]:
        length = self.read_varint()
        start = self._pos
        end = start + length
        if end > self._end:
            raise MalformedInput(f"length {length} runs past end of message", start)
        self._pos = end
        return start, end

    def read_length_delimited(self) -> Cursor:
        """Return a sub-cursor over the next length-prefixed payload and step past it."""
        start, end = self._span()
        return Cursor(self._data, start, end)

    def read_bytes(self) -> bytes:  # noqa: D102
        start, end = self._span()
        return bytes(self._data[start:end])

    def read_string(self) -> str:  # noqa: D102
        return self.read_bytes().decode("utf-8", errors="replace")

    def skip(self, wire_type: int) -> None:  # noqa: D102
        match wire_type:
            case 0:
                self.read_varint()
            case 2:
                self._span()
            case 1 | 5:
                width = 8 if wire_type == FIXED64 else 4
                if self._pos + width > self._end:
                    raise MalformedInput("truncated fixed-width field", self._pos)
                self._pos += width
            case _:
                raise MalformedInput(f"invalid wire type {wire_type}", self._pos)

    def fields(self) -> Iterator[tuple[int, int]]:
        """Yield ``(field_number, wire_type)`` until the message ends.

        The caller must consume (or :meth:`skip`) each field's payload before the
        next iteration.
        """
        while not self.at_end():
            yield self.read_tag()


def expect(wire_type: int, expected: int, field_number: int, cursor: Cursor) -> None:  # noqa: D103
    if wire_type != expected:
        raise MalformedInput(
            f"field {field_number} has wire type {wire_type}, expected {expected}",
            cursor.offset,
        )
