"""REPL and batch script execution with if/elif/else/endif and foreach/endfor blocks."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TextIO

from gattconsole.core.context import SessionContext
from gattconsole.core.dispatcher import EXIT_FAILURE, EXIT_OK, EXIT_QUIT, CommandRegistry
from gattconsole.core.errors import ScriptError
from gattconsole.core.output import OutputWriter

LOGGER = logging.getLogger(__name__)

PROMPT = "BLE: "
COMMENT_MARKER = "//"
LOOP_VARIABLE = "$"
_WRITE_COMMANDS = frozenset({"write", "w"})


def split_command(line: str) -> tuple[str, str]:
    """Split a line into a lower-cased command and its single-spaced parameter string."""
    tokens = line.split()
    if not tokens:
        return "", ""
    return tokens[0].lower(), " ".join(tokens[1:])


@dataclass
class ConditionalState:
    """Single-level conditional tracking.

    ``depth`` counts open ``if`` blocks but only one suppression flag
    exists. An ``if`` seen while suppressing is not evaluated; it bumps
    ``skipped`` instead. Its ``elif`` and ``else`` are ignored and its
    ``endif`` unwinds that counter, so the whole nested block stays suppressed.
    """

    depth: int = 0
    failed: bool = False
    suppressing: bool = False
    skipped: int = 0


@dataclass
class ScriptLoopState:
    lines: list[str] = field(default_factory=list)
    device_mask: str = ""
    collecting: bool = False
    replaying: bool = False

    def reset(self) -> None:
        self.lines = []
        self.device_mask = ""
        self.collecting = False
        self.replaying = False


class ScriptInterpreter:
    def __init__(
        self,
        registry: CommandRegistry,
        context: SessionContext,
        out: OutputWriter,
        *,
        interactive: bool = False,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._registry = registry
        self._context = context
        self._out = out
        self._sleep = sleep
        self.interactive = interactive
        self.conditional = ConditionalState()
        self.loop = ScriptLoopState()
        self.exit_code = EXIT_OK
        self.running = True

    def run(self, stream: TextIO) -> int:
        """Read and execute lines until EOF, ``quit``, or an interrupt."""
        while self.running:
            if self.interactive:
                self._out.write(PROMPT)
            try:
                raw = stream.readline()
            except KeyboardInterrupt:
                self._terminate()
                break
            if raw == "":
                break
            if not self.interactive and raw.lstrip().startswith(COMMENT_MARKER):
                continue
            try:
                self.feed(raw)
            except KeyboardInterrupt:
                self._terminate()
        return self.exit_code

    def feed(self, raw: str) -> bool:
        """Execute one input line; returns False once the interpreter should stop."""
        try:
            self._handle_line(raw.strip())
        except ScriptError as exc:
            self._out.line(f"Script error: {exc}")
            self.exit_code = EXIT_FAILURE
        return self.running

    def interrupt(self) -> bool:
        """Release a pending wait or delay; otherwise stop the loop. Returns True if a wait was released."""
        if self._context.cancel_wait():
            return True
        self.running = False
        return False

    def _terminate(self) -> None:
        self.running = False
        if self.interactive:
            self._out.line("")
            self._out.line("Console terminated")

    def _handle_line(self, line: str) -> None:
        if not line:
            return
        cmd, params = split_command(line)

        if self.loop.collecting:
            if cmd == "endfor":
                self._end_loop()
            elif cmd == "foreach":
                raise ScriptError("Nested foreach is not supported")
            else:
                self.loop.lines.append(line)
            return

        self._handle_command(cmd, params)

    def _handle_command(self, cmd: str, params: str) -> None:
        if cmd in ("elif", "else", "endif"):
            self._branch(cmd, params)
            return
        if self.conditional.suppressing:
            if cmd == "if":
                self.conditional.skipped += 1
            return
        if cmd == "if":
            self.conditional.depth += 1
            failed = self._evaluate(params)
            self.conditional.failed = failed
            self.conditional.suppressing = failed
        elif cmd == "foreach":
            self.loop.collecting = True
            self.loop.device_mask = params.lower()
        elif cmd == "endfor":
            raise ScriptError("endfor without matching foreach")
        else:
            self._run(cmd, params)

    def _branch(self, cmd: str, params: str) -> None:
        state = self.conditional
        if state.skipped:
            if cmd == "endif":
                state.skipped -= 1
            return
        if state.depth == 0:
            raise ScriptError(f"{cmd} without matching if")
        if cmd == "endif":
            state.depth -= 1
            state.failed = False
            state.suppressing = False
            return
        if not state.failed:
            state.suppressing = True
            return
        if cmd == "elif":
            failed = self._evaluate(params)
            state.failed = failed
            state.suppressing = failed
            return
        state.failed = False
        state.suppressing = False
        if params:
            self._run(*split_command(params))

    def _evaluate(self, condition: str) -> bool:
        """Run a condition command; True means the branch failed. Its exit code is not recorded."""
        cmd, params = split_command(condition)
        if not cmd:
            return False
        result = self._registry.execute(cmd, self._context, params)
        if result == EXIT_QUIT:
            self.running = False
            return True
        return result != EXIT_OK

    def _end_loop(self) -> None:
        mask = self.loop.device_mask
        names = [
            device.name
            for device in self._context.ordered_devices()
            if device.name and device.name.lower().startswith(mask)
        ]
        lines = list(self.loop.lines)
        self.loop.collecting = False
        self.loop.replaying = True
        LOGGER.debug("Replaying %d line(s) for %d device(s)", len(lines), len(names))
        try:
            for name in names:
                for line in lines:
                    if not self.running:
                        return
                    cmd, params = split_command(line)
                    self._handle_command(cmd, params.replace(LOOP_VARIABLE, name))
        finally:
            self.loop.reset()

    def _run(self, cmd: str, params: str) -> None:
        result = self._registry.execute(cmd, self._context, params)
        if result == EXIT_QUIT:
            self.running = False
            return
        if result != EXIT_OK:
            self.exit_code = result
        if cmd in _WRITE_COMMANDS and self._context.write_pause_s > 0:
            self._sleep(self._context.write_pause_s)
