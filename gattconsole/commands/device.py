"""Device-level commands: discovery listing, connection, status, pairing."""

from __future__ import annotations

import logging

from gattconsole.commands.base import BaseCommand, CommandEnv, require_device
from gattconsole.core.codec import decode
from gattconsole.core.context import SessionContext
from gattconsole.core.dispatcher import EXIT_FAILURE, EXIT_OK
from gattconsole.core.errors import GattConsoleError, TransportError, TransportTimeoutError
from gattconsole.core.gatt_names import short_uuid
from gattconsole.core.model import (
    ConnectedDevice,
    DataFormat,
    PairingMode,
    PairingRequest,
    PairingStatus,
    UnpairingStatus,
)
from gattconsole.core.pairing import parse_pairing_request
from gattconsole.core.resolver import DEVICE_RESOLVER

LOGGER = logging.getLogger(__name__)

NO_ADVERTISING_NAME = "no_advertising_name"
MIN_TIMEOUT_S = 1
MAX_TIMEOUT_S = 59

DEVICE_INFORMATION_SERVICE = 0x180A
DEVICE_INFORMATION_FIELDS = (
    (0x2A29, "Manufacturer", DataFormat.UTF8),
    (0x2A24, "Model Number", DataFormat.UTF8),
    (0x2A25, "Serial Number", DataFormat.UTF8),
    (0x2A27, "Hardware Revision", DataFormat.UTF8),
    (0x2A26, "Firmware Revision", DataFormat.UTF8),
    (0x2A28, "Software Revision", DataFormat.UTF8),
    (0x2A23, "System ID", DataFormat.HEX),
    (0x2A50, "PnP ID", DataFormat.HEX),
)


def close_device(env: CommandEnv, context: SessionContext) -> ConnectedDevice | None:
    """Drop subscriptions, selections and the connection; returns the closed device."""
    device = context.selected_device
    if len(context.subscriptions):
        report = env.subscriptions.unsubscribe_all()
        for characteristic, exc in report.failures:
            env.out.error(f"Failed to unsubscribe from {characteristic.name}: {exc}")
    context.clear_device_selection()
    context.selected_device = None
    if device is not None:
        try:
            env.transport.disconnect(device)
        except TransportError as exc:
            LOGGER.warning("Disconnect from %s failed: %s", device.id, exc)
    return device


class ListCommand(BaseCommand):
    name = "list"
    aliases = ("ls",)
    description = "List discovered BLE devices"
    usage = "list [w]  (w = wide format with IDs)"

    def execute(self, context: SessionContext, params: str) -> int:
        devices = context.ordered_devices()
        if not devices:
            self.out.line("No BLE devices found.")
            return EXIT_OK

        wide = params.lower() == "w"
        if wide:
            self.out.line(f"#    {'ID':<50} Name")
        else:
            self.out.line(f"#    {'Address':<18} Name")
        for index, device in enumerate(devices):
            name = device.name or NO_ADVERTISING_NAME
            column = device.id if wide else device.address
            width = 50 if wide else 18
            self.out.line(f"#{index:02d}: {column:<{width}} {name}")
        return EXIT_OK


class OpenCommand(BaseCommand):
    name = "open"
    description = "Connect to a BLE device, with optional pairing PIN"
    usage = "open <name|#|address> [pin]"

    def execute(self, context: SessionContext, params: str) -> int:
        if not params:
            self.out.line("Device name cannot be empty.")
            return EXIT_FAILURE
        token, _, pin = params.partition(" ")
        target = DEVICE_RESOLVER.resolve(context.ordered_devices(), token)

        if context.selected_device is not None:
            close_device(self.env, context)
        context.clear_device_selection()

        try:
            device = self.transport.connect(target.id, context.timeout_s)
        except TransportTimeoutError:
            self.out.line(f"Connection to device {token} timed out.")
            return EXIT_FAILURE
        except TransportError as exc:
            LOGGER.info("Connect to %s failed: %s", target.id, exc)
            self.out.line(f"Device {token} is unreachable.")
            return EXIT_FAILURE
        context.selected_device = device

        paired = context.is_paired(device)
        status = ""
        if device.can_pair:
            status = " It is paired." if paired else " It is not paired."
        self.out.line(f"Connecting to {device.name}.{status}")
        if device.can_pair and not paired:
            self._auto_pair(device, pin.strip() or None)

        try:
            services = self.transport.enumerate_services(device)
        except TransportError as exc:
            LOGGER.info("Service discovery on %s failed: %s", device.id, exc)
            self.out.line(f"Device {token} is unreachable.")
            return EXIT_FAILURE
        context.services = services
        self.out.line(f"Found {len(services)} services:")
        for index, service in enumerate(services):
            self.out.line(f"#{index:02d}: {service.name}")
        return EXIT_OK

    def _auto_pair(self, device: ConnectedDevice, pin: str | None) -> None:
        if pin:
            self.out.line("Attempting to pair with PIN...")
            request = PairingRequest(mode=PairingMode.PROVIDE_PIN, pin=pin)
        else:
            self.out.line("Attempting to pair...")
            request = PairingRequest(mode=PairingMode.CONFIRM_ONLY)
        try:
            status = self.env.pairing.pair(device, request)
        except GattConsoleError as exc:
            self.out.line(f"Pairing error: {exc}. Continuing without pairing...")
            return
        if status is PairingStatus.PAIRED:
            self.out.line("Pairing successful.")
        elif status is PairingStatus.ALREADY_PAIRED:
            self.out.line("Device is already paired.")
        else:
            self.out.line(f"Pairing failed: {status.value}. Continuing without pairing...")


class CloseCommand(BaseCommand):
    name = "close"
    description = "Disconnect from the current device"
    usage = "close"

    def execute(self, context: SessionContext, params: str) -> int:
        device = close_device(self.env, context)
        if device is None:
            self.out.line("No device is connected.")
        elif not self.out.is_redirected:
            self.out.line(f"Device {device.name} is disconnected.")
        return EXIT_OK


class StatCommand(BaseCommand):
    name = "stat"
    aliases = ("st", "status")
    description = "Show current device status"
    usage = "stat"

    def execute(self, context: SessionContext, params: str) -> int:
        device = context.selected_device
        if device is None:
            self.out.line("No device connected.")
            return EXIT_OK

        connected = self.transport.is_connected(device)
        self.out.line(f"Device name: {device.name}")
        self.out.line(f"Device ID: {device.id}")
        self.out.line(f"Connection status: {'Connected' if connected else 'Disconnected'}")
        if device.can_pair:
            self.out.line(f"Paired: {context.is_paired(device)}")
        else:
            self.out.line("Paired: pairing not supported")
        if context.selected_service is not None:
            self.out.line(f"Selected service: {context.selected_service.name}")
        if context.selected_characteristic is not None:
            self.out.line(f"Selected characteristic: {context.selected_characteristic.name}")
        self.out.line(f"Subscriptions: {len(context.subscriptions)}")
        return EXIT_OK


class TimeoutCommand(BaseCommand):
    name = "timeout"
    description = "Show or change the connection timeout (default 3 sec)"
    usage = "timeout [sec]"

    def execute(self, context: SessionContext, params: str) -> int:
        result = EXIT_OK
        if params:
            if params.isdigit() and MIN_TIMEOUT_S <= int(params) <= MAX_TIMEOUT_S:
                context.timeout_s = float(params)
            else:
                self.out.line(
                    f"Invalid timeout '{params}'. Use {MIN_TIMEOUT_S}..{MAX_TIMEOUT_S} seconds."
                )
                result = EXIT_FAILURE
        self.out.line(f"Device connection timeout (sec): {context.timeout_s:g}")
        return result


class PairCommand(BaseCommand):
    name = "pair"
    description = "Pair the connected device"
    usage = (
        "pair [[mode=]ProvidePin <pin> | ConfirmOnly | DisplayPin | ConfirmPinMatch"
        " | ProvidePasswordCredential <user> <pass>]"
    )

    def execute(self, context: SessionContext, params: str) -> int:
        device = require_device(context)
        if not device.can_pair:
            self.out.line("Device does not support pairing.")
            return EXIT_FAILURE
        if context.is_paired(device):
            self.out.line("Device is already paired.")
            return EXIT_OK

        status = self.env.pairing.pair(device, parse_pairing_request(params))
        if status is PairingStatus.PAIRED:
            self.out.line("Pairing successful.")
            return EXIT_OK
        if status is PairingStatus.ALREADY_PAIRED:
            self.out.line("Device is already paired.")
            return EXIT_OK
        self.out.line(f"Pairing failed: {status.value}")
        return EXIT_FAILURE


class UnpairCommand(BaseCommand):
    name = "unpair"
    description = "Unpair the connected device"
    usage = "unpair"

    def execute(self, context: SessionContext, params: str) -> int:
        device = require_device(context)
        if not context.is_paired(device):
            self.out.line("Device is NOT paired")
            return EXIT_OK
        status = self.env.pairing.unpair(device)
        if status is UnpairingStatus.UNPAIRED:
            self.out.line("Unpaired device")
            return EXIT_OK
        if status is UnpairingStatus.ALREADY_UNPAIRED:
            self.out.line("Device is already unpaired.")
            return EXIT_OK
        self.out.line(f"Unable to unpair device: {status.value}")
        return EXIT_FAILURE


class DeviceInfoCommand(BaseCommand):
    name = "device-info"
    aliases = ("di", "info")
    description = "Read the Device Information Service"
    usage = "device-info"

    def execute(self, context: SessionContext, params: str) -> int:
        device = require_device(context)
        services = context.services or self.transport.enumerate_services(device)
        service = next(
            (s for s in services if short_uuid(s.uuid) == DEVICE_INFORMATION_SERVICE),
            None,
        )
        if service is None:
            self.out.line("Device Information Service not found.")
            return EXIT_FAILURE

        characteristics = {
            short_uuid(c.uuid): c for c in self.transport.enumerate_characteristics(service)
        }
        self.out.line("Device Information:")
        self.out.line("==================")
        for short, label, fmt in DEVICE_INFORMATION_FIELDS:
            characteristic = characteristics.get(short)
            if characteristic is None or not characteristic.can_read:
                continue
            try:
                data = self.transport.read_value(characteristic)
            except TransportError as exc:
                LOGGER.debug("Skipping %s: %s", label, exc)
                continue
            self.out.line(f"  {label:<20}: {decode(data, fmt, context.byte_order)}")
        return EXIT_OK
