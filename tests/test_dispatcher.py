from __future__ import annotations

from conftest import FakeTransport, RecordingOutput
from gattconsole.commands import COMMAND_TYPES, build_registry
from gattconsole.commands.base import BaseCommand, CommandEnv
from gattconsole.core.context import SessionContext
from gattconsole.core.dispatcher import EXIT_FAILURE, EXIT_OK, CommandRegistry
from gattconsole.core.errors import EntityNotFoundError
from gattconsole.core.pairing import PairingStateMachine
from gattconsole.core.subscriptions import SubscriptionManager


def _env(out: RecordingOutput, transport: FakeTransport, context: SessionContext) -> CommandEnv:
    return CommandEnv(
        out=out,
        transport=transport,
        subscriptions=SubscriptionManager(transport, context.subscriptions, context.notify_value),
        pairing=PairingStateMachine(transport, context, out.line),
    )


class EchoCommand(BaseCommand):
    name = "echo"
    aliases = ("e",)

    def execute(self, context: SessionContext, params: str) -> int:
        self.out.line(f"echo:{params}")
        return EXIT_OK


class LoudEchoCommand(EchoCommand):
    aliases = ()

    def execute(self, context: SessionContext, params: str) -> int:
        self.out.line(params.upper())
        return EXIT_OK


class BrokenCommand(BaseCommand):
    name = "broken"

    def execute(self, context: SessionContext, params: str) -> int:
        raise RuntimeError("boom")


class MissingCommand(BaseCommand):
    name = "missing"

    def execute(self, context: SessionContext, params: str) -> int:
        raise EntityNotFoundError("No service found by name x.")


def test_names_and_aliases_are_case_insensitive(out: RecordingOutput, transport: FakeTransport) -> None:
    context = SessionContext()
    registry = CommandRegistry(out)
    registry.register(EchoCommand(_env(out, transport, context)))

    assert registry.execute("ECHO", context, "  hi ") == EXIT_OK
    assert registry.execute("E", context, "there") == EXIT_OK
    assert out.lines == ["echo:hi", "echo:there"]


def test_unknown_command(out: RecordingOutput) -> None:
    registry = CommandRegistry(out)
    assert registry.execute("frobnicate", SessionContext()) == EXIT_FAILURE
    assert out.lines == ["Unknown command: frobnicate", "Type 'help' for available commands."]


def test_empty_command_is_ok(out: RecordingOutput) -> None:
    assert CommandRegistry(out).execute("  ", SessionContext()) == EXIT_OK
    assert out.lines == []


def test_later_registration_replaces_earlier(out: RecordingOutput, transport: FakeTransport) -> None:
    context = SessionContext()
    env = _env(out, transport, context)
    registry = CommandRegistry(out)
    registry.register(EchoCommand(env))
    registry.register(LoudEchoCommand(env))

    registry.execute("echo", context, "hi")
    assert out.lines == ["HI"]
    assert [type(c) for c in registry.commands()] == [LoudEchoCommand]


def test_handler_exceptions_become_exit_codes(out: RecordingOutput, transport: FakeTransport) -> None:
    context = SessionContext()
    env = _env(out, transport, context)
    registry = CommandRegistry(out)
    registry.register(BrokenCommand(env))
    registry.register(MissingCommand(env))

    assert registry.execute("broken", context) == EXIT_FAILURE
    assert registry.execute("missing", context) == EXIT_FAILURE
    assert out.lines == ["Error executing 'broken': boom", "No service found by name x."]


def test_build_registry_registers_every_command(out: RecordingOutput, transport: FakeTransport) -> None:
    env = _env(out, transport, SessionContext())
    registry = build_registry(env)

    assert env.registry is registry
    assert len(registry.commands()) == len(COMMAND_TYPES)
    for alias in ("?", "q", "ls", "st", "di", "r", "ra", "w", "rd", "wd", "sub", "unsub", "fmt", "bo", "p", "cls"):
        assert registry.has(alias), alias
