"""Session settings: data formats and byte order."""

from __future__ import annotations

import re

from gattconsole.commands.base import BaseCommand
from gattconsole.core.codec import parse_format
from gattconsole.core.context import SessionContext
from gattconsole.core.dispatcher import EXIT_FAILURE, EXIT_OK
from gattconsole.core.model import ByteOrder, DataFormat

VALID_FORMATS = "ASCII, UTF8, Dec, Hex, Bin"

_BYTE_ORDERS = {
    "little": ByteOrder.LITTLE,
    "le": ByteOrder.LITTLE,
    "l": ByteOrder.LITTLE,
    "big": ByteOrder.BIG,
    "be": ByteOrder.BIG,
    "b": ByteOrder.BIG,
}
_BYTE_ORDER_LABELS = {ByteOrder.LITTLE: "Little Endian", ByteOrder.BIG: "Big Endian"}


def _join(formats: list[DataFormat], sep: str) -> str:
    return sep.join(fmt.value for fmt in formats)


class _FormatCommandBase(BaseCommand):
    def parse_formats(self, text: str, separators: str) -> list[DataFormat] | None:
        formats: list[DataFormat] = []
        for item in re.split(f"[{re.escape(separators)}]", text):
            item = item.strip()
            if not item:
                continue
            fmt = parse_format(item)
            if fmt is None:
                self.out.line(f"Unknown format: {item}")
                self.out.line(f"Valid formats: {VALID_FORMATS}")
                return None
            formats.append(fmt)
        if not formats:
            self.out.line(f"Valid formats: {VALID_FORMATS}")
            return None
        return formats


class FormatCommand(_FormatCommandBase):
    name = "format"
    aliases = ("fmt",)
    description = "Show or change the send and receive data formats"
    usage = "format [ASCII|UTF8|Dec|Hex|Bin[+...]]"

    def execute(self, context: SessionContext, params: str) -> int:
        if not params:
            self.out.line(f"Current send data format: {context.send_format.value}")
            self.out.line(f"Current received data format: {_join(context.receive_formats, '+')}")
            return EXIT_OK
        formats = self.parse_formats(params, "+,")
        if formats is None:
            return EXIT_FAILURE
        context.receive_formats = formats
        context.send_format = formats[-1]
        self.out.line(f"Data format set to: {_join(formats, '+')}")
        return EXIT_OK


class FormatSendCommand(_FormatCommandBase):
    name = "format_send"
    aliases = ("fmts",)
    description = "Show or change the data format used for writes"
    usage = "format_send [ASCII|UTF8|Dec|Hex|Bin]"

    def execute(self, context: SessionContext, params: str) -> int:
        if params:
            fmt = parse_format(params)
            if fmt is None:
                self.out.line(f"Unknown format: {params}")
                self.out.line(f"Valid formats: {VALID_FORMATS}")
                return EXIT_FAILURE
            context.send_format = fmt
        self.out.line(f"Current send data format: {context.send_format.value}")
        return EXIT_OK


class FormatReceiveCommand(_FormatCommandBase):
    name = "format_receive"
    aliases = ("format_rec", "fmtr")
    description = "Show or change the display formats for received data"
    usage = "format_receive [fmt[,fmt...]]"

    def execute(self, context: SessionContext, params: str) -> int:
        if params:
            formats = self.parse_formats(params, ",")
            if formats is None:
                return EXIT_FAILURE
            context.receive_formats = formats
        self.out.line(f"Current received data format: {_join(context.receive_formats, ', ')}")
        return EXIT_OK


class EndianCommand(BaseCommand):
    name = "endian"
    aliases = ("bo",)
    description = "Show or change the byte order for numeric values"
    usage = "endian [little|big]"

    def execute(self, context: SessionContext, params: str) -> int:
        if not params:
            self.out.line(f"Current byte order: {_BYTE_ORDER_LABELS[context.byte_order]}")
            return EXIT_OK
        order = _BYTE_ORDERS.get(params.lower())
        if order is None:
            self.out.line("Invalid parameter. Use: endian [little|big]")
            self.out.line("  Shortcuts: le/l for Little Endian, be/b for Big Endian")
            return EXIT_FAILURE
        context.byte_order = order
        self.out.line(f"Byte order set to {_BYTE_ORDER_LABELS[order]}")
        return EXIT_OK
