"""Stable public API for embedding the console.

This module is the supported integration surface for third-party callers
(test harnesses, GUIs, other scripts). Avoid importing from internal
modules unless intentionally depending on non-stable internals.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import TextIO

from gattconsole.commands import CommandEnv, build_registry
from gattconsole.commands.device import close_device
from gattconsole.core.codec import decode_multi
from gattconsole.core.context import SessionContext
from gattconsole.core.dispatcher import CommandRegistry
from gattconsole.core.errors import (
    AccessDeniedError,
    AmbiguousEntityError,
    ConfigLoadError,
    ConfigValidationError,
    DeviceUnreachableError,
    EncodeError,
    EntityNotFoundError,
    GattConsoleError,
    ProtocolError,
    ResolutionError,
    ScriptError,
    StateError,
    TransportError,
    TransportTimeoutError,
)
from gattconsole.core.interpreter import PROMPT, ScriptInterpreter
from gattconsole.core.model import (
    ByteOrder,
    DataFormat,
    GattCharacteristic,
    SessionConfig,
)
from gattconsole.core.output import ConsoleOutput, OutputWriter
from gattconsole.core.pairing import PairingStateMachine
from gattconsole.core.subscriptions import SubscriptionManager
from gattconsole.transports.base import BLETransport

LOGGER = logging.getLogger(__name__)

__all__ = [
    "AccessDeniedError",
    "AmbiguousEntityError",
    "ConfigLoadError",
    "ConfigValidationError",
    "DeviceUnreachableError",
    "EncodeError",
    "EntityNotFoundError",
    "GattConsoleError",
    "ProtocolError",
    "ResolutionError",
    "ScriptError",
    "StateError",
    "TransportError",
    "TransportTimeoutError",
    "ByteOrder",
    "DataFormat",
    "SessionConfig",
    "BLETransport",
    "Console",
]


class Console:
    """One console session bound to a transport.

    A `Console` owns the session context, the command registry, the
    subscription manager, the pairing state machine and the script
    interpreter. Lines are fed either one at a time with :meth:`execute`
    or from a stream with :meth:`run`.
    """

    def __init__(
        self,
        transport: BLETransport,
        *,
        config: SessionConfig | None = None,
        out: OutputWriter | None = None,
        interactive: bool = False,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.transport = transport
        self.config = config or SessionConfig()
        self.out = out if out is not None else ConsoleOutput()
        self.context = SessionContext(self.config)
        self.subscriptions = SubscriptionManager(
            transport,
            self.context.subscriptions,
            self.context.notify_value,
        )
        self.pairing = PairingStateMachine(transport, self.context, echo=self.out.line)
        self.env = CommandEnv(
            out=self.out,
            transport=transport,
            subscriptions=self.subscriptions,
            pairing=self.pairing,
        )
        self.registry: CommandRegistry = build_registry(self.env)
        self.interpreter = ScriptInterpreter(
            self.registry,
            self.context,
            self.out,
            interactive=interactive,
            sleep=sleep,
        )
        self.context.on_value_changed = self._print_value
        self._watching = False

    @property
    def exit_code(self) -> int:
        return self.interpreter.exit_code

    def _print_value(self, characteristic: GattCharacteristic, data: bytes) -> None:
        value = decode_multi(data, self.context.receive_formats, self.context.byte_order)
        if self.interpreter.interactive:
            self.out.write(
                f"Value changed for {characteristic.uuid} ({len(data)} bytes):\n{value}\n{PROMPT}"
            )
        else:
            self.out.line(value)

    def start(self) -> bool:
        """Start device discovery and run the configured startup lines.

        Returns False when a startup line ended the session.
        """
        self.transport.watch_devices(self.context.apply_device_event)
        self._watching = True
        for line in self.config.startup:
            LOGGER.debug("Startup: %s", line)
            if not self.execute(line):
                return False
        return True

    def execute(self, line: str) -> bool:
        """Execute one line; returns False once the session should end."""
        return self.interpreter.feed(line)

    def run(self, stream: TextIO) -> int:
        return self.interpreter.run(stream)

    def interrupt(self) -> bool:
        return self.interpreter.interrupt()

    def close(self) -> None:
        if self.context.selected_device is not None:
            close_device(self.env, self.context)
        if self._watching:
            self._watching = False
            try:
                self.transport.stop_watching()
            except TransportError as exc:
                LOGGER.warning("Stopping device discovery failed: %s", exc)
        closer = getattr(self.transport, "close", None)
        if closer is not None:
            closer()

    def __enter__(self) -> Console:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
