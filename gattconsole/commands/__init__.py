"""Command handlers and registry assembly."""

from __future__ import annotations

from gattconsole.commands.base import BaseCommand, CommandEnv
from gattconsole.commands.config import (
    EndianCommand,
    FormatCommand,
    FormatReceiveCommand,
    FormatSendCommand,
)
from gattconsole.commands.device import (
    CloseCommand,
    DeviceInfoCommand,
    ListCommand,
    OpenCommand,
    PairCommand,
    StatCommand,
    TimeoutCommand,
    UnpairCommand,
)
from gattconsole.commands.gatt import (
    DescCommand,
    MtuCommand,
    ReadAllCommand,
    ReadCommand,
    ReadDescCommand,
    SetCommand,
    SubsCommand,
    UnsubsCommand,
    WriteCommand,
    WriteDescCommand,
)
from gattconsole.commands.utility import (
    ClearCommand,
    DelayCommand,
    HelpCommand,
    PrintCommand,
    QuitCommand,
    WaitCommand,
)
from gattconsole.core.dispatcher import CommandRegistry

COMMAND_TYPES: tuple[type[BaseCommand], ...] = (
    HelpCommand,
    QuitCommand,
    ListCommand,
    OpenCommand,
    CloseCommand,
    StatCommand,
    TimeoutCommand,
    DeviceInfoCommand,
    PairCommand,
    UnpairCommand,
    SetCommand,
    ReadCommand,
    ReadAllCommand,
    WriteCommand,
    DescCommand,
    ReadDescCommand,
    WriteDescCommand,
    SubsCommand,
    UnsubsCommand,
    MtuCommand,
    FormatCommand,
    FormatSendCommand,
    FormatReceiveCommand,
    EndianCommand,
    PrintCommand,
    DelayCommand,
    WaitCommand,
    ClearCommand,
)


def build_registry(env: CommandEnv) -> CommandRegistry:
    registry = CommandRegistry(env.out)
    env.registry = registry
    for command_type in COMMAND_TYPES:
        registry.register(command_type(env))
    return registry


__all__ = ["BaseCommand", "CommandEnv", "COMMAND_TYPES", "build_registry"]
