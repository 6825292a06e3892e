"""Text/bytes conversion for characteristic and descriptor values."""

from __future__ import annotations

import re
from collections.abc import Iterable

from gattconsole.core.errors import EncodeError
from gattconsole.core.model import ByteOrder, DataFormat

_FORMAT_ALIASES = {
    "ascii": DataFormat.ASCII,
    "utf8": DataFormat.UTF8,
    "utf-8": DataFormat.UTF8,
    "dec": DataFormat.DEC,
    "decimal": DataFormat.DEC,
    "hex": DataFormat.HEX,
    "hexadecimal": DataFormat.HEX,
    "hexdecimal": DataFormat.HEX,
    "bin": DataFormat.BIN,
    "binary": DataFormat.BIN,
}

_MULTI_PREFIX = {
    DataFormat.ASCII: "ascii: ",
    DataFormat.UTF8: "utf8:\t",
    DataFormat.DEC: "dec:\t",
    DataFormat.HEX: "hex:\t",
    DataFormat.BIN: "bin:\t",
}

_ESCAPE_RE = re.compile(r"\\(x[0-9a-fA-F]{2}|u[0-9a-fA-F]{4}|.)", re.DOTALL)
_SIMPLE_ESCAPES = {
    "t": "\t",
    "n": "\n",
    "r": "\r",
    "0": "\0",
    "a": "\a",
    "f": "\f",
    "v": "\v",
    "\\": "\\",
}

_DEC_TOKEN_RE = re.compile(r"^[+-]?\d+$")
_HEX_TOKEN_RE = re.compile(r"^(0[xX])?[0-9a-fA-F]{1,2}$")
_BIN_TOKEN_RE = re.compile(r"^[01]{1,8}$")

# Widths tried, in order, for a single signed Dec scalar outside 0..255.
_SCALAR_WIDTHS = (2, 4, 8)


def parse_format(name: str) -> DataFormat | None:
    """Return the format named ``name`` (case-insensitive), or None."""
    return _FORMAT_ALIASES.get(name.strip().lower())


def unescape(text: str) -> str:
    r"""Expand ``\t``, ``\n``, ``\r``, ``\xHH``, ``\uHHHH`` and friends; unknown escapes stay literal."""

    def _sub(match: re.Match[str]) -> str:
        body = match.group(1)
        if len(body) > 1 and body[0] in "xu":
            return chr(int(body[1:], 16))
        return _SIMPLE_ESCAPES.get(body, match.group(0))

    return _ESCAPE_RE.sub(_sub, text)


def _encode_scalar(value: int, byte_order: ByteOrder) -> bytes:
    if 0 <= value <= 0xFF:
        return bytes([value])
    for width in _SCALAR_WIDTHS:
        bits = width * 8
        if -(1 << (bits - 1)) <= value < (1 << (bits - 1)):
            return value.to_bytes(width, byte_order.value, signed=True)
    raise EncodeError(f"Value {value} does not fit in 8 bytes")


def _encode_tokens(tokens: list[str], fmt: DataFormat) -> bytes:
    out = bytearray()
    for token in tokens:
        if fmt is DataFormat.DEC:
            if not _DEC_TOKEN_RE.match(token):
                raise EncodeError(f"Malformed decimal value '{token}'")
            value = int(token)
        elif fmt is DataFormat.HEX:
            if not _HEX_TOKEN_RE.match(token):
                raise EncodeError(f"Malformed hex byte '{token}'")
            value = int(token, 16)
        else:
            if not _BIN_TOKEN_RE.match(token):
                raise EncodeError(f"Malformed binary byte '{token}'")
            value = int(token, 2)
        if not 0 <= value <= 0xFF:
            raise EncodeError(f"Byte value '{token}' is out of range 0..255")
        out.append(value)
    return bytes(out)


def encode(text: str, fmt: DataFormat, byte_order: ByteOrder = ByteOrder.LITTLE) -> bytes:
    """Encode user text into the bytes to write.

    Text formats expand escape sequences first. Numeric formats take
    space separated byte tokens; a single Dec token outside 0..255 is
    written as the smallest signed 2, 4 or 8 byte integer in ``byte_order``.
    """
    if fmt is DataFormat.ASCII:
        return unescape(text).encode("ascii", errors="replace")
    if fmt is DataFormat.UTF8:
        return unescape(text).encode("utf-8")

    tokens = text.split()
    if not tokens:
        raise EncodeError("No value to encode")
    if fmt is DataFormat.DEC and len(tokens) == 1:
        if not _DEC_TOKEN_RE.match(tokens[0]):
            raise EncodeError(f"Malformed decimal value '{tokens[0]}'")
        return _encode_scalar(int(tokens[0]), byte_order)
    return _encode_tokens(tokens, fmt)


def _negative_scalar(data: bytes, byte_order: ByteOrder) -> int | None:
    """Signed value of a 2, 4 or 8 byte buffer when it is negative and re-encodes to the same bytes."""
    if len(data) not in _SCALAR_WIDTHS:
        return None
    value = int.from_bytes(data, byte_order.value, signed=True)
    if value < 0 and _encode_scalar(value, byte_order) == data:
        return value
    return None


def decode(data: bytes, fmt: DataFormat, byte_order: ByteOrder = ByteOrder.LITTLE) -> str:
    if fmt is DataFormat.UTF8:
        return data.decode("utf-8", errors="replace")
    if fmt is DataFormat.DEC:
        scalar = _negative_scalar(data, byte_order)
        if scalar is not None:
            return str(scalar)
        return " ".join(str(b) for b in data)
    if fmt is DataFormat.HEX:
        return " ".join(f"{b:02X}" for b in data)
    if fmt is DataFormat.BIN:
        return " ".join(f"{b:08b}" for b in data)
    return "".join(chr(b) if b < 0x80 else "?" for b in data)


def _coerce(fmt: DataFormat | str) -> DataFormat:
    if isinstance(fmt, DataFormat):
        return fmt
    return parse_format(str(fmt)) or DataFormat.ASCII


def decode_multi(
    data: bytes,
    formats: Iterable[DataFormat | str],
    byte_order: ByteOrder = ByteOrder.LITTLE,
) -> str:
    """Render ``data`` once per format, one prefixed line each, in the given order."""
    lines = []
    for fmt in formats:
        resolved = _coerce(fmt)
        lines.append(_MULTI_PREFIX[resolved] + decode(data, resolved, byte_order))
    return "\n".join(lines)


def render(
    data: bytes,
    formats: list[DataFormat],
    byte_order: ByteOrder = ByteOrder.LITTLE,
) -> str:
    """Single-format output is unprefixed; several formats use :func:`decode_multi`."""
    if len(formats) > 1:
        return decode_multi(data, formats, byte_order)
    fmt = formats[0] if formats else DataFormat.UTF8
    return decode(data, fmt, byte_order)
