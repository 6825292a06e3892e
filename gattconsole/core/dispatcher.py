"""Command registry and execution boundary."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from gattconsole.core.context import SessionContext
from gattconsole.core.output import OutputWriter

if TYPE_CHECKING:
    from gattconsole.commands.base import BaseCommand

LOGGER = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_QUIT = -1


class CommandRegistry:
    """Case-insensitive map of command names and aliases to handlers.

    Registering a name that already exists replaces the previous handler.
    """

    def __init__(self, out: OutputWriter) -> None:
        self._out = out
        self._handlers: dict[str, BaseCommand] = {}
        self._commands: list[BaseCommand] = []

    def register(self, command: BaseCommand) -> None:
        for key in (command.name, *command.aliases):
            previous = self._handlers.get(key.lower())
            if previous is not None and previous is not command:
                LOGGER.debug("Command %r now handled by %s", key, type(command).__name__)
            self._handlers[key.lower()] = command
        self._commands = [c for c in self._commands if c.name.lower() != command.name.lower()]
        self._commands.append(command)

    def has(self, name: str) -> bool:
        return name.strip().lower() in self._handlers

    def get(self, name: str) -> BaseCommand | None:
        return self._handlers.get(name.strip().lower())

    def commands(self) -> list[BaseCommand]:
        """Distinct live handlers, in registration order."""
        live = set(map(id, self._handlers.values()))
        return [command for command in self._commands if id(command) in live]

    def execute(self, name: str, context: SessionContext, params: str = "") -> int:
        name = name.strip()
        if not name:
            return EXIT_OK
        command = self._handlers.get(name.lower())
        if command is None:
            self._out.line(f"Unknown command: {name}")
            self._out.line("Type 'help' for available commands.")
            return EXIT_FAILURE
        try:
            return command.run(context, params)
        except Exception as exc:
            LOGGER.debug("Command %r raised", name, exc_info=True)
            self._out.line(f"Error executing '{name}': {exc}")
            return EXIT_FAILURE
