"""Transport interfaces."""

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol

from gattconsole.core.model import (
    ConnectedDevice,
    DeviceEvent,
    GattCharacteristic,
    GattDescriptor,
    GattService,
    NotifyMode,
    PairingChallenge,
    PairingRequest,
    PairingResponse,
    PairingStatus,
    UnpairingStatus,
)

DeviceEventHandler = Callable[[DeviceEvent], None]
ValueHandler = Callable[[GattCharacteristic, bytes], None]
ChallengeHandler = Callable[[PairingChallenge], PairingResponse]


class BLETransport(Protocol):
    """Blocking facade over a native BLE stack.

    Every call runs to completion (or raises a ``TransportError``) before
    returning. Device events and value notifications are delivered on the
    transport's own thread.
    """

    def watch_devices(self, on_event: DeviceEventHandler) -> None:
        """Start (or restart) device discovery, reporting events to ``on_event``."""

    def stop_watching(self) -> None:
        ...

    def connect(self, device_id: str, timeout_s: float) -> ConnectedDevice:
        ...

    def disconnect(self, device: ConnectedDevice) -> None:
        ...

    def is_connected(self, device: ConnectedDevice) -> bool:
        ...

    def enumerate_services(self, device: ConnectedDevice) -> list[GattService]:
        ...

    def enumerate_characteristics(self, service: GattService) -> list[GattCharacteristic]:
        ...

    def enumerate_descriptors(self, characteristic: GattCharacteristic) -> list[GattDescriptor]:
        ...

    def read_value(self, characteristic: GattCharacteristic) -> bytes:
        ...

    def write_value(
        self,
        characteristic: GattCharacteristic,
        data: bytes,
        *,
        with_response: bool = True,
    ) -> None:
        ...

    def read_descriptor(self, descriptor: GattDescriptor) -> bytes:
        ...

    def write_descriptor(self, descriptor: GattDescriptor, data: bytes) -> None:
        ...

    def set_notification(self, characteristic: GattCharacteristic, mode: NotifyMode) -> None:
        ...

    def attach_value_handler(self, characteristic: GattCharacteristic, handler: ValueHandler) -> None:
        ...

    def detach_value_handler(self, characteristic: GattCharacteristic, handler: ValueHandler) -> None:
        """Remove exactly ``handler``; other handlers for the same characteristic stay attached."""

    def mtu(self, device: ConnectedDevice) -> int:
        ...

    def pair(
        self,
        device: ConnectedDevice,
        request: PairingRequest,
        challenge_handler: ChallengeHandler,
    ) -> PairingStatus:
        ...

    def unpair(self, device: ConnectedDevice) -> UnpairingStatus:
        ...
