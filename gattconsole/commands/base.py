"""Shared command plumbing: the handler base class and lookup helpers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from gattconsole.core.context import SessionContext
from gattconsole.core.dispatcher import EXIT_FAILURE
from gattconsole.core.errors import (
    GattConsoleError,
    NoDeviceSelectedError,
    NoServiceSelectedError,
    ProtocolError,
    TransportError,
)
from gattconsole.core.gatt_names import describe_protocol_error
from gattconsole.core.model import ConnectedDevice, GattCharacteristic, GattDescriptor, GattService
from gattconsole.core.output import OutputWriter
from gattconsole.core.pairing import PairingStateMachine
from gattconsole.core.resolver import (
    CHARACTERISTIC_RESOLVER,
    DESCRIPTOR_RESOLVER,
    SERVICE_RESOLVER,
)
from gattconsole.core.subscriptions import SubscriptionManager
from gattconsole.transports.base import BLETransport

if TYPE_CHECKING:
    from gattconsole.core.dispatcher import CommandRegistry


@dataclass
class CommandEnv:
    """Collaborators handed to every command handler."""

    out: OutputWriter
    transport: BLETransport
    subscriptions: SubscriptionManager
    pairing: PairingStateMachine
    registry: CommandRegistry | None = None


class BaseCommand:
    name: str = ""
    aliases: tuple[str, ...] = ()
    description: str = ""
    usage: str = ""

    def __init__(self, env: CommandEnv) -> None:
        self.env = env
        self.out = env.out
        self.transport = env.transport

    def run(self, context: SessionContext, params: str) -> int:
        try:
            return self.execute(context, params.strip())
        except GattConsoleError as exc:
            self.out.line(str(exc))
            return EXIT_FAILURE

    def execute(self, context: SessionContext, params: str) -> int:
        raise NotImplementedError

    def usage_error(self) -> int:
        self.out.line(f"Usage: {self.usage}")
        return EXIT_FAILURE

    def report_failure(self, action: str, exc: TransportError) -> None:
        self.out.line(f"{action} failed: {exc}")
        if isinstance(exc, ProtocolError):
            self.out.line(f"Protocol error: {describe_protocol_error(exc.code)}")


def require_device(context: SessionContext) -> ConnectedDevice:
    if context.selected_device is None:
        raise NoDeviceSelectedError("No device connected. Use 'open' first.")
    return context.selected_device


def require_service(context: SessionContext) -> GattService:
    if context.selected_service is None:
        raise NoServiceSelectedError("No service selected. Use 'set' first.")
    return context.selected_service


def resolve_characteristic(
    transport: BLETransport,
    context: SessionContext,
    token: str,
) -> GattCharacteristic:
    """Resolve ``service/characteristic`` or a characteristic of the selected service."""
    if "/" in token:
        service_token, char_token = token.split("/", 1)
        service = SERVICE_RESOLVER.resolve(context.services, service_token)
        characteristics = transport.enumerate_characteristics(service)
        return CHARACTERISTIC_RESOLVER.resolve(characteristics, char_token)
    require_service(context)
    return CHARACTERISTIC_RESOLVER.resolve(context.characteristics, token)


def resolve_descriptor(
    transport: BLETransport,
    context: SessionContext,
    token: str,
) -> tuple[GattCharacteristic, GattDescriptor]:
    """Resolve ``<characteristic>/<descriptor>``; the characteristic part may itself be ``service/char``."""
    char_token, desc_token = token.rsplit("/", 1)
    characteristic = resolve_characteristic(transport, context, char_token)
    descriptors = transport.enumerate_descriptors(characteristic)
    return characteristic, DESCRIPTOR_RESOLVER.resolve(descriptors, desc_token)
