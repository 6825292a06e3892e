"""Console utility commands: help, quit, print, delay, wait, clear."""

from __future__ import annotations

import logging
from datetime import datetime

from gattconsole.commands.base import BaseCommand
from gattconsole.core.context import SessionContext, WaitKind, WaitOutcome
from gattconsole.core.dispatcher import EXIT_FAILURE, EXIT_OK, EXIT_QUIT

LOGGER = logging.getLogger(__name__)

_DEVICE_VARIABLES = ("%mac", "%addr", "%name", "%stat", "%id")

_SCRIPTING_HELP = (
    ("foreach [device_mask]", "start a device loop; '$' in the body is replaced by each device name"),
    ("endfor", "end foreach loop and replay it"),
    ("if <cmd> <params>", "run the block only when <cmd> succeeds"),
    ("elif <cmd> <params>", "alternative conditional branch"),
    ("else [<cmd> <params>]", "branch taken when no earlier branch ran"),
    ("endif", "end conditional block"),
)


class HelpCommand(BaseCommand):
    name = "help"
    aliases = ("?",)
    description = "Show available commands"
    usage = "help"

    def execute(self, context: SessionContext, params: str) -> int:
        registry = self.env.registry
        self.out.line("Available commands:")
        self.out.line("")
        for command in registry.commands() if registry is not None else ():
            names = ", ".join((command.name, *command.aliases))
            self.out.line(f"  {names:<32}: {command.description}")
            if command.usage and command.usage != command.name:
                self.out.line(f"  {'':<32}  {command.usage}")
        self.out.line("")
        self.out.line("Scripting:")
        for usage, text in _SCRIPTING_HELP:
            self.out.line(f"  {usage:<32}: {text}")
        self.out.line("")
        self.out.line("  <char> may be 'service/characteristic', a characteristic name, # or UUID.")
        return EXIT_OK


class QuitCommand(BaseCommand):
    name = "quit"
    aliases = ("q", "exit")
    description = "Exit the console"
    usage = "quit"

    def execute(self, context: SessionContext, params: str) -> int:
        return EXIT_QUIT


def _gmt_offset(now: datetime) -> str:
    offset = now.strftime("%z")
    if len(offset) == 5:
        offset = f"{offset[:3]}:{offset[3:]}"
    return f"GMT {offset}"


def expand_date_variables(text: str, now: datetime) -> str:
    replacements = (
        ("%NOW", f"{now:%A, %d %B %Y} {now:%H:%M:%S} {_gmt_offset(now)}"),
        ("%now", f"{now:%Y-%m-%d %H:%M}"),
        ("%HH", f"{now:%H}"),
        ("%hh", f"{now:%I}"),
        ("%mm", f"{now:%M}"),
        ("%ss", f"{now:%S}"),
        ("%D", f"{now:%A, %d %B %Y}"),
        ("%d", f"{now:%Y-%m-%d}"),
        ("%T", f"{now:%H:%M:%S} {_gmt_offset(now)}"),
        ("%t", f"{now:%H:%M}"),
        ("%z", _gmt_offset(now)),
    )
    for variable, value in replacements:
        text = text.replace(variable, value)
    return text


class PrintCommand(BaseCommand):
    name = "print"
    aliases = ("p",)
    description = "Print text with device and date/time variables"
    usage = "print <text> (%id %addr %mac %name %stat %NOW %now %HH %hh %mm %ss %D %d %T %t %z)"

    def execute(self, context: SessionContext, params: str) -> int:
        needs_device = any(variable in params for variable in _DEVICE_VARIABLES)
        device = context.selected_device
        connected = device is not None and self.transport.is_connected(device)
        if needs_device and not connected:
            return EXIT_FAILURE

        text = expand_date_variables(params, datetime.now().astimezone())
        text = text.replace("\\t", "\t").replace("\\n", "\n").replace("\\r", "\r")
        if needs_device and device is not None:
            mac = device.address
            try:
                addr = str(int(mac.replace(":", ""), 16))
            except ValueError:
                addr = mac
            text = (
                text.replace("%mac", mac)
                .replace("%addr", addr)
                .replace("%name", device.name)
                .replace("%id", device.id)
                .replace("%stat", str(connected))
            )
        self.out.line(text)
        return EXIT_OK


class DelayCommand(BaseCommand):
    name = "delay"
    description = "Pause execution; Ctrl-C ends the pause early"
    usage = "delay <msec>"

    def execute(self, context: SessionContext, params: str) -> int:
        if params:
            if not params.isdigit():
                self.out.line(f"Invalid delay '{params}'. Use a number of milliseconds.")
                return EXIT_FAILURE
            delay_s = int(params) / 1000.0
        else:
            delay_s = context.timeout_s
        context.wait_for(WaitKind.DELAY, delay_s)
        return EXIT_OK


class WaitCommand(BaseCommand):
    name = "wait"
    description = "Wait for a notification from a subscribed characteristic"
    usage = "wait"

    def execute(self, context: SessionContext, params: str) -> int:
        outcome = context.wait_for(WaitKind.NOTIFICATION, context.timeout_s)
        if outcome is WaitOutcome.TIMED_OUT:
            LOGGER.debug("No notification within %.1fs", context.timeout_s)
            return EXIT_FAILURE
        return EXIT_OK


class ClearCommand(BaseCommand):
    name = "clear"
    aliases = ("cls", "clr")
    description = "Clear the screen"
    usage = "clear"

    def execute(self, context: SessionContext, params: str) -> int:
        self.out.clear()
        return EXIT_OK
