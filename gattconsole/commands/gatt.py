"""GATT attribute commands: service selection, reads, writes, descriptors, subscriptions."""

from __future__ import annotations

import logging

from gattconsole.commands.base import (
    BaseCommand,
    require_device,
    require_service,
    resolve_characteristic,
    resolve_descriptor,
)
from gattconsole.core.codec import decode, encode, render
from gattconsole.core.context import SessionContext
from gattconsole.core.dispatcher import EXIT_FAILURE, EXIT_OK
from gattconsole.core.errors import (
    EncodeError,
    NotSubscribedError,
    ProtocolError,
    TransportError,
)
from gattconsole.core.gatt_names import describe_protocol_error
from gattconsole.core.model import DataFormat
from gattconsole.core.resolver import SERVICE_RESOLVER

LOGGER = logging.getLogger(__name__)

ATT_HEADER_BYTES = 3


class SetCommand(BaseCommand):
    name = "set"
    description = "Select the service used by read/write/subs"
    usage = "set <service_name|#|uuid>"

    def execute(self, context: SessionContext, params: str) -> int:
        require_device(context)
        if not params:
            self.out.line("Invalid service name or number")
            return EXIT_FAILURE
        service = SERVICE_RESOLVER.resolve(context.services, params)
        try:
            characteristics = self.transport.enumerate_characteristics(service)
        except TransportError as exc:
            LOGGER.info("Characteristic discovery for %s failed: %s", service.uuid, exc)
            self.out.line("Error accessing service.")
            return EXIT_FAILURE

        context.selected_service = service
        context.selected_characteristic = None
        context.characteristics = characteristics
        self.out.line(f"Selected service {service.name}.")
        if not characteristics:
            self.out.line("Service doesn't have any characteristics.")
            return EXIT_FAILURE

        width = max(len(c.name) for c in characteristics)
        for index, characteristic in enumerate(characteristics):
            self.out.line(f"#{index:02d}: {characteristic.name.ljust(width)}   {characteristic.flags}")
        return EXIT_OK


class ReadCommand(BaseCommand):
    name = "read"
    aliases = ("r",)
    description = "Read a characteristic value"
    usage = "read <char>"

    def execute(self, context: SessionContext, params: str) -> int:
        require_device(context)
        if not params:
            return self.usage_error()
        characteristic = resolve_characteristic(self.transport, context, params)
        if not characteristic.can_read:
            self.out.line(f"Characteristic '{characteristic.name}' is not readable.")
            return EXIT_FAILURE
        context.selected_characteristic = characteristic
        try:
            data = self.transport.read_value(characteristic)
        except TransportError as exc:
            self.report_failure("Read", exc)
            return EXIT_FAILURE
        self.out.line(render(data, context.receive_formats, context.byte_order))
        return EXIT_OK


class ReadAllCommand(BaseCommand):
    name = "read-all"
    aliases = ("ra",)
    description = "Read every readable characteristic of a service"
    usage = "read-all [service]"

    def execute(self, context: SessionContext, params: str) -> int:
        require_device(context)
        if params:
            service = SERVICE_RESOLVER.resolve(context.services, params)
            characteristics = self.transport.enumerate_characteristics(service)
        else:
            service = require_service(context)
            characteristics = context.characteristics

        readable = [c for c in characteristics if c.can_read]
        if not readable:
            self.out.line(f"No readable characteristics found in service '{service.name}'.")
            return EXIT_OK

        fmt = context.receive_formats[0] if context.receive_formats else DataFormat.UTF8
        self.out.line(f"Reading {len(readable)} characteristic(s) from '{service.name}':")
        self.out.line("-" * 80)
        succeeded = failed = 0
        for index, characteristic in enumerate(readable):
            try:
                data = self.transport.read_value(characteristic)
            except TransportError as exc:
                failed += 1
                error = describe_protocol_error(exc.code) if isinstance(exc, ProtocolError) else str(exc)
                self.out.line(f"  #{index:02d}: {characteristic.name:<40} [ERROR] {error}")
                continue
            succeeded += 1
            value = decode(data, fmt, context.byte_order)
            self.out.line(f"  #{index:02d}: {characteristic.name:<40} [{len(data):4d} bytes] {value}")
        self.out.line("-" * 80)
        self.out.line(f"Summary: {succeeded} succeeded, {failed} failed")
        return EXIT_FAILURE if failed else EXIT_OK


class WriteCommand(BaseCommand):
    name = "write"
    aliases = ("w",)
    description = "Write a value to a characteristic (-nr: without response)"
    usage = "write [-nr] <char> <value>"

    def execute(self, context: SessionContext, params: str) -> int:
        require_device(context)
        with_response = True
        if params.split(" ", 1)[0] == "-nr":
            with_response = False
            params = params[len("-nr"):].strip()
        target, _, value = params.partition(" ")
        if not target or not value:
            return self.usage_error()

        characteristic = resolve_characteristic(self.transport, context, target)
        if not characteristic.can_write:
            self.out.line(f"Characteristic '{characteristic.name}' is not writable.")
            return EXIT_FAILURE
        try:
            data = encode(value, context.send_format, context.byte_order)
        except EncodeError as exc:
            self.out.line(f"Failed to format data: {exc}")
            return EXIT_FAILURE

        context.selected_characteristic = characteristic
        try:
            self.transport.write_value(characteristic, data, with_response=with_response)
        except TransportError as exc:
            self.report_failure("Write", exc)
            return EXIT_FAILURE
        if not self.out.is_redirected:
            mode = "" if with_response else " (no response)"
            self.out.line(f"Wrote {len(data)} bytes{mode}")
        return EXIT_OK


class DescCommand(BaseCommand):
    name = "desc"
    aliases = ("descriptors",)
    description = "List the descriptors of a characteristic"
    usage = "desc <char>"

    def execute(self, context: SessionContext, params: str) -> int:
        require_device(context)
        if not params:
            return self.usage_error()
        characteristic = resolve_characteristic(self.transport, context, params)
        try:
            descriptors = self.transport.enumerate_descriptors(characteristic)
        except TransportError as exc:
            self.out.line(f"Failed to get descriptors: {exc}")
            return EXIT_FAILURE
        if not descriptors:
            self.out.line("No descriptors found for this characteristic.")
            return EXIT_OK
        self.out.line(f"Descriptors for {characteristic.name}:")
        for index, descriptor in enumerate(descriptors):
            self.out.line(f"  #{index:02d}: {descriptor.name}")
        return EXIT_OK


class ReadDescCommand(BaseCommand):
    name = "read-desc"
    aliases = ("rd",)
    description = "Read a descriptor value"
    usage = "read-desc <char>/<descriptor>"

    def execute(self, context: SessionContext, params: str) -> int:
        require_device(context)
        if "/" not in params:
            self.usage_error()
            self.out.line("Example: read-desc DeviceName/ClientCharacteristicConfiguration")
            return EXIT_FAILURE
        _, descriptor = resolve_descriptor(self.transport, context, params)
        try:
            data = self.transport.read_descriptor(descriptor)
        except TransportError as exc:
            self.report_failure("Read", exc)
            return EXIT_FAILURE
        self.out.line(render(data, context.receive_formats, context.byte_order))
        return EXIT_OK


class WriteDescCommand(BaseCommand):
    name = "write-desc"
    aliases = ("wd",)
    description = "Write a descriptor value"
    usage = "write-desc <char>/<descriptor> <value>"

    def execute(self, context: SessionContext, params: str) -> int:
        require_device(context)
        target, _, value = params.partition(" ")
        if "/" not in target or not value:
            self.usage_error()
            self.out.line("Example: write-desc DeviceName/ClientCharacteristicConfiguration 01 00")
            return EXIT_FAILURE
        _, descriptor = resolve_descriptor(self.transport, context, target)
        try:
            data = encode(value, context.send_format, context.byte_order)
        except EncodeError as exc:
            self.out.line(f"Failed to format data: {exc}")
            return EXIT_FAILURE
        try:
            self.transport.write_descriptor(descriptor, data)
        except TransportError as exc:
            self.report_failure("Write", exc)
            return EXIT_FAILURE
        if not self.out.is_redirected:
            self.out.line(f"Wrote {len(data)} bytes to descriptor")
        return EXIT_OK


class SubsCommand(BaseCommand):
    name = "subs"
    aliases = ("sub",)
    description = "Subscribe to value changes of a characteristic"
    usage = "subs <char>"

    def execute(self, context: SessionContext, params: str) -> int:
        require_device(context)
        if not params:
            self.out.line("Nothing to subscribe, please specify characteristic name or #.")
            return EXIT_FAILURE
        characteristic = resolve_characteristic(self.transport, context, params)
        try:
            token = self.env.subscriptions.subscribe(characteristic)
        except TransportError as exc:
            LOGGER.info("Subscribe to %s failed: %s", characteristic.uuid, exc)
            self.out.line(f"Can't subscribe to characteristic {characteristic.name}")
            return EXIT_FAILURE
        self.out.line(f"Subscribed to characteristic {characteristic.name} ({token.mode.value})")
        return EXIT_OK


class UnsubsCommand(BaseCommand):
    name = "unsubs"
    aliases = ("unsub",)
    description = "Unsubscribe from one characteristic or all of them"
    usage = "unsubs [all|<char>]"

    def execute(self, context: SessionContext, params: str) -> int:
        if not len(context.subscriptions):
            self.out.line("No active subscriptions.")
            return EXIT_OK

        if not params or params.lower() == "all":
            report = self.env.subscriptions.unsubscribe_all()
            for characteristic, exc in report.failures:
                self.out.error(f"Failed to unsubscribe from {characteristic.name}: {exc}")
            self.out.line(f"Unsubscribed from {report.removed} characteristic(s).")
            return EXIT_FAILURE if report.failures else EXIT_OK

        characteristic = resolve_characteristic(self.transport, context, params)
        try:
            self.env.subscriptions.unsubscribe(characteristic)
        except NotSubscribedError as exc:
            self.out.line(str(exc))
            return EXIT_OK
        except TransportError as exc:
            self.out.error(f"Failed to unsubscribe from {characteristic.name}: {exc}")
            return EXIT_FAILURE
        self.out.line(f"Unsubscribed from {characteristic.name}.")
        return EXIT_OK


class MtuCommand(BaseCommand):
    name = "mtu"
    description = "Show the negotiated MTU"
    usage = "mtu"

    def execute(self, context: SessionContext, params: str) -> int:
        device = require_device(context)
        try:
            mtu = self.transport.mtu(device)
        except TransportError as exc:
            LOGGER.info("MTU query failed: %s", exc)
            self.out.line("Unable to get MTU information.")
            return EXIT_FAILURE
        self.out.line(f"Current MTU: {mtu} bytes")
        self.out.line(f"Effective payload: {mtu - ATT_HEADER_BYTES} bytes (MTU - 3 byte header)")
        return EXIT_OK
