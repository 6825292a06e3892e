"""BLE GATT transport implementation on top of bleak."""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import re
import sys
import threading
from collections.abc import Coroutine
from typing import Any

from gattconsole.core.errors import (
    AccessDeniedError,
    DeviceUnreachableError,
    ProtocolError,
    TransportError,
    TransportTimeoutError,
)
from gattconsole.core.gatt_names import (
    characteristic_name,
    descriptor_name,
    is_sig_uuid,
    service_name,
)
from gattconsole.core.model import (
    ConnectedDevice,
    DeviceEvent,
    DeviceEventKind,
    DiscoveredDevice,
    GattCharacteristic,
    GattDescriptor,
    GattService,
    NotifyMode,
    PairingRequest,
    PairingStatus,
    UnpairingStatus,
)
from gattconsole.transports.base import ChallengeHandler, DeviceEventHandler, ValueHandler

LOGGER = logging.getLogger(__name__)

USER_DESCRIPTION_UUID = "00002901-0000-1000-8000-00805f9b34fb"
DEFAULT_CALL_TIMEOUT_S = 10.0
ENUMERATION_WINDOW_S = 5.0

_ATT_CODE_RE = re.compile(r"0x([0-9a-fA-F]{2})\b")
_CB_ATT_CODE_RE = re.compile(r"CBATTErrorDomain Code=(\d+)")
_ACCESS_DENIED_MARKERS = ("NotAuthorized", "AccessDenied", "not authorized", "access denied")


def att_error_code(message: str) -> int | None:
    """Extract an ATT error code from a backend error message, if it carries one."""
    match = _CB_ATT_CODE_RE.search(message) or _ATT_CODE_RE.search(message)
    if match is None:
        return None
    text = match.group(1)
    return int(text) if match.re is _CB_ATT_CODE_RE else int(text, 16)


def map_error(exc: BaseException, action: str) -> TransportError:
    """Translate a bleak/backend exception into the transport error taxonomy."""
    if isinstance(exc, TransportError):
        return exc
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError, concurrent.futures.TimeoutError)):
        return TransportTimeoutError(f"{action} timed out")
    message = str(exc) or type(exc).__name__
    code = att_error_code(message)
    if code is not None:
        return ProtocolError(code, f"{action} failed: {message}")
    if any(marker in message for marker in _ACCESS_DENIED_MARKERS):
        return AccessDeniedError(f"{action} failed: {message}")
    return TransportError(f"{action} failed: {message}")


def pairing_status_from_error(exc: BaseException) -> PairingStatus:
    message = str(exc)
    if "AlreadyExists" in message:
        return PairingStatus.ALREADY_PAIRED
    if "AuthenticationFailed" in message:
        return PairingStatus.AUTHENTICATION_FAILURE
    if "AuthenticationRejected" in message or "AuthenticationCanceled" in message:
        return PairingStatus.REJECTED_BY_HANDLER
    if "ConnectionAttemptFailed" in message:
        return PairingStatus.CONNECTION_REJECTED
    return PairingStatus.FAILED


class BleakTransport:
    """Blocking facade over bleak.

    All bleak objects live on one private event loop thread; public methods
    submit coroutines there and wait for the result. Scanner callbacks and
    notifications are delivered on that thread.
    """

    def __init__(self, *, call_timeout_s: float = DEFAULT_CALL_TIMEOUT_S) -> None:
        self._call_timeout_s = call_timeout_s
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._run_loop, name="gattconsole-ble", daemon=True)
        self._thread.start()
        self._client: Any = None
        self._scanner: Any = None
        self._on_event: DeviceEventHandler | None = None
        self._names: dict[str, str] = {}
        self._handlers_lock = threading.Lock()
        self._handlers: dict[int, list[ValueHandler]] = {}
        self._characteristics: dict[int, GattCharacteristic] = {}

    def _run_loop(self) -> None:
        asyncio.set_event_loop(self._loop)
        self._loop.run_forever()

    def _call(self, coro: Coroutine[Any, Any, Any], action: str, timeout_s: float | None = None) -> Any:
        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        try:
            return future.result(timeout_s or self._call_timeout_s)
        except concurrent.futures.TimeoutError as exc:
            future.cancel()
            raise TransportTimeoutError(f"{action} timed out") from exc
        except TransportError:
            raise
        except Exception as exc:
            raise map_error(exc, action) from exc

    def close(self) -> None:
        if self._client is not None:
            try:
                self._call(self._client.disconnect(), "Disconnect")
            except TransportError as exc:
                LOGGER.warning("Disconnect during shutdown failed: %s", exc)
            self._client = None
        if self._scanner is not None:
            self.stop_watching()
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout=2.0)

    # Discovery

    def watch_devices(self, on_event: DeviceEventHandler) -> None:
        try:
            from bleak import BleakScanner  # type: ignore
        except Exception as exc:  # pragma: no cover - import failure path
            raise TransportError("BLE transport requires 'bleak'. Install dependency and retry.") from exc

        if self._scanner is not None:
            self.stop_watching()
        self._on_event = on_event
        seen: set[str] = set()

        def _detected(device: Any, advertisement: Any) -> None:
            name = advertisement.local_name or device.name or ""
            if name:
                self._names[device.address] = name
            kind = DeviceEventKind.UPDATED if device.address in seen else DeviceEventKind.ADDED
            seen.add(device.address)
            on_event(
                DeviceEvent(
                    kind=kind,
                    device=DiscoveredDevice(id=device.address, name=self._names.get(device.address, "")),
                )
            )

        async def _start() -> Any:
            scanner = BleakScanner(detection_callback=_detected)
            await scanner.start()
            self._loop.call_later(
                ENUMERATION_WINDOW_S,
                on_event,
                DeviceEvent(kind=DeviceEventKind.ENUMERATION_COMPLETED),
            )
            return scanner

        self._scanner = self._call(_start(), "Device discovery")
        LOGGER.debug("Device watcher started")

    def stop_watching(self) -> None:
        scanner, self._scanner = self._scanner, None
        if scanner is None:
            return
        try:
            self._call(scanner.stop(), "Stop discovery")
        finally:
            if self._on_event is not None:
                self._on_event(DeviceEvent(kind=DeviceEventKind.STOPPED))

    # Connection

    def connect(self, device_id: str, timeout_s: float) -> ConnectedDevice:
        try:
            from bleak import BleakClient  # type: ignore
        except Exception as exc:  # pragma: no cover - import failure path
            raise DeviceUnreachableError(
                "BLE transport requires 'bleak'. Install dependency and retry."
            ) from exc

        def _disconnected(_: Any) -> None:
            LOGGER.info("Device %s disconnected", device_id)

        async def _connect() -> Any:
            client = BleakClient(device_id, timeout=timeout_s, disconnected_callback=_disconnected)
            await client.connect()
            return client

        try:
            client = self._call(_connect(), f"Connect to {device_id}", timeout_s + 1.0)
        except TransportTimeoutError:
            raise
        except TransportError as exc:
            raise DeviceUnreachableError(str(exc)) from exc
        if not client.is_connected:
            raise DeviceUnreachableError(f"BLE connect failed for {device_id}")

        self._client = client
        return ConnectedDevice(
            id=device_id,
            name=self._names.get(device_id, device_id),
            can_pair=sys.platform != "darwin",
            native=client,
        )

    def disconnect(self, device: ConnectedDevice) -> None:
        client = device.native
        with self._handlers_lock:
            self._handlers.clear()
        self._characteristics.clear()
        if client is self._client:
            self._client = None
        if client is not None and client.is_connected:
            self._call(client.disconnect(), "Disconnect")

    def is_connected(self, device: ConnectedDevice) -> bool:
        client = device.native
        return client is not None and bool(client.is_connected)

    def _require_client(self) -> Any:
        if self._client is None:
            raise DeviceUnreachableError("No BLE connection is open")
        return self._client

    # Discovery of attributes

    def enumerate_services(self, device: ConnectedDevice) -> list[GattService]:
        client = device.native
        return [
            GattService(handle=s.handle, uuid=s.uuid, name=service_name(s.uuid), native=s)
            for s in client.services
        ]

    def enumerate_characteristics(self, service: GattService) -> list[GattCharacteristic]:
        characteristics = []
        for native in service.native.characteristics:
            description = "" if is_sig_uuid(native.uuid) else self._user_description(native)
            characteristic = GattCharacteristic(
                handle=native.handle,
                uuid=native.uuid,
                name=characteristic_name(native.uuid, description),
                properties=frozenset(native.properties),
                user_description=description,
                native=native,
            )
            self._characteristics[characteristic.handle] = characteristic
            characteristics.append(characteristic)
        return characteristics

    def _user_description(self, native: Any) -> str:
        descriptor = next(
            (d for d in native.descriptors if d.uuid.lower() == USER_DESCRIPTION_UUID),
            None,
        )
        if descriptor is None:
            return ""
        try:
            data = self._call(
                self._require_client().read_gatt_descriptor(descriptor.handle),
                "Read user description",
            )
        except TransportError as exc:
            LOGGER.debug("No user description for %s: %s", native.uuid, exc)
            return ""
        return bytes(data).decode("utf-8", errors="replace").rstrip("\x00")

    def enumerate_descriptors(self, characteristic: GattCharacteristic) -> list[GattDescriptor]:
        return [
            GattDescriptor(handle=d.handle, uuid=d.uuid, name=descriptor_name(d.uuid), native=d)
            for d in characteristic.native.descriptors
        ]

    # Values

    def read_value(self, characteristic: GattCharacteristic) -> bytes:
        client = self._require_client()
        return bytes(self._call(client.read_gatt_char(characteristic.native), "Read"))

    def write_value(
        self,
        characteristic: GattCharacteristic,
        data: bytes,
        *,
        with_response: bool = True,
    ) -> None:
        client = self._require_client()
        self._call(
            client.write_gatt_char(characteristic.native, data, response=with_response),
            "Write",
        )

    def read_descriptor(self, descriptor: GattDescriptor) -> bytes:
        client = self._require_client()
        return bytes(self._call(client.read_gatt_descriptor(descriptor.handle), "Read descriptor"))

    def write_descriptor(self, descriptor: GattDescriptor, data: bytes) -> None:
        client = self._require_client()
        self._call(client.write_gatt_descriptor(descriptor.handle, data), "Write descriptor")

    # Notifications

    def set_notification(self, characteristic: GattCharacteristic, mode: NotifyMode) -> None:
        client = self._require_client()
        if mode is NotifyMode.NONE:
            self._call(client.stop_notify(characteristic.native), "Disable notifications")
            return
        # bleak enables notify when the characteristic offers both.
        self._characteristics[characteristic.handle] = characteristic
        self._call(
            client.start_notify(characteristic.native, self._dispatch_notification),
            "Enable notifications",
        )

    def _dispatch_notification(self, sender: Any, data: bytearray) -> None:
        handle = getattr(sender, "handle", sender)
        characteristic = self._characteristics.get(handle)
        with self._handlers_lock:
            handlers = list(self._handlers.get(handle, ()))
        if characteristic is None or not handlers:
            LOGGER.debug("Dropping notification for unknown handle %s", handle)
            return
        for handler in handlers:
            handler(characteristic, bytes(data))

    def attach_value_handler(self, characteristic: GattCharacteristic, handler: ValueHandler) -> None:
        with self._handlers_lock:
            self._handlers.setdefault(characteristic.handle, []).append(handler)

    def detach_value_handler(self, characteristic: GattCharacteristic, handler: ValueHandler) -> None:
        with self._handlers_lock:
            handlers = self._handlers.get(characteristic.handle, [])
            for index, attached in enumerate(handlers):
                if attached is handler:
                    del handlers[index]
                    break
            if not handlers:
                self._handlers.pop(characteristic.handle, None)

    def mtu(self, device: ConnectedDevice) -> int:
        return int(device.native.mtu_size)

    # Pairing

    def pair(
        self,
        device: ConnectedDevice,
        request: PairingRequest,
        challenge_handler: ChallengeHandler,
    ) -> PairingStatus:
        # Passkey and PIN prompts are answered by the platform pairing agent;
        # bleak does not surface them, so challenge_handler is never invoked here.
        if request.pin or request.username:
            LOGGER.info("Credentials for %s must be entered through the system pairing agent", device.id)
        try:
            result = self._call(device.native.pair(), "Pair")
        except TransportTimeoutError:
            return PairingStatus.FAILED
        except TransportError as exc:
            return pairing_status_from_error(exc)
        return PairingStatus.FAILED if result is False else PairingStatus.PAIRED

    def unpair(self, device: ConnectedDevice) -> UnpairingStatus:
        try:
            result = self._call(device.native.unpair(), "Unpair")
        except TransportError as exc:
            if "DoesNotExist" in str(exc):
                return UnpairingStatus.ALREADY_UNPAIRED
            LOGGER.info("Unpair %s failed: %s", device.id, exc)
            return UnpairingStatus.FAILED
        return UnpairingStatus.FAILED if result is False else UnpairingStatus.UNPAIRED
