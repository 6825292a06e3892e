"""Mutable session state shared by every command handler."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from gattconsole.core.model import (
    ByteOrder,
    ConnectedDevice,
    DataFormat,
    DeviceEvent,
    DeviceEventKind,
    DiscoveredDevice,
    GattCharacteristic,
    GattService,
    SessionConfig,
)
from gattconsole.core.subscriptions import SubscriptionRegistry

LOGGER = logging.getLogger(__name__)

ValueCallback = Callable[[GattCharacteristic, bytes], None]


class WaitKind(str, Enum):
    NOTIFICATION = "notification"
    DELAY = "delay"


class WaitOutcome(str, Enum):
    SIGNALLED = "signalled"
    CANCELLED = "cancelled"
    TIMED_OUT = "timed_out"


@dataclass
class _WaitSlot:
    kind: WaitKind
    event: threading.Event = field(default_factory=threading.Event)
    outcome: WaitOutcome = WaitOutcome.TIMED_OUT


class SessionContext:
    """Single source of truth for one console session.

    Device discovery and notification delivery arrive on transport threads,
    so the device list, the pairing cache, and the wait slot are guarded by
    a lock. Everything else is touched only from the interpreter thread.
    """

    def __init__(self, config: SessionConfig | None = None) -> None:
        self._lock = threading.RLock()
        self._devices: dict[str, DiscoveredDevice] = {}
        self._pairing_cache: dict[str, bool] = {}
        self._wait: _WaitSlot | None = None

        self.selected_device: ConnectedDevice | None = None
        self.services: list[GattService] = []
        self.selected_service: GattService | None = None
        self.characteristics: list[GattCharacteristic] = []
        self.selected_characteristic: GattCharacteristic | None = None
        self.subscriptions = SubscriptionRegistry()
        self.on_value_changed: ValueCallback | None = None

        self.timeout_s = 3.0
        self.send_format = DataFormat.UTF8
        self.receive_formats: list[DataFormat] = [DataFormat.UTF8, DataFormat.HEX]
        self.byte_order = ByteOrder.LITTLE
        self.write_pause_s = 0.2
        if config is not None:
            self.apply_config(config)

    def apply_config(self, config: SessionConfig) -> None:
        self.timeout_s = config.timeout_s
        self.send_format = config.send_format
        self.receive_formats = list(config.receive_formats)
        self.byte_order = config.byte_order
        self.write_pause_s = config.write_pause_s

    # Devices

    def apply_device_event(self, event: DeviceEvent) -> None:
        with self._lock:
            if event.kind is DeviceEventKind.STOPPED:
                self._devices.clear()
                return
            device = event.device
            if device is None:
                return
            if event.kind is DeviceEventKind.ADDED:
                if device.id in self._devices:
                    return
                if device.name and any(d.name == device.name for d in self._devices.values()):
                    return
                self._devices[device.id] = device
            elif event.kind is DeviceEventKind.UPDATED and device.id in self._devices:
                self._devices[device.id] = device

    @property
    def devices(self) -> list[DiscoveredDevice]:
        with self._lock:
            return list(self._devices.values())

    def ordered_devices(self) -> list[DiscoveredDevice]:
        """Devices sorted by name; ``#N`` indexes and listings use this order."""
        return sorted(self.devices, key=lambda device: device.name.lower())

    def clear_device_selection(self) -> None:
        self.selected_service = None
        self.selected_characteristic = None
        self.services = []
        self.characteristics = []

    # Pairing cache

    def is_paired(self, device: ConnectedDevice) -> bool:
        with self._lock:
            return self._pairing_cache.get(device.id, device.reported_paired)

    def set_pairing_status(self, device_id: str, paired: bool) -> None:
        with self._lock:
            self._pairing_cache[device_id] = paired

    def clear_pairing_status(self, device_id: str) -> None:
        with self._lock:
            self._pairing_cache.pop(device_id, None)

    # Notifications and waits

    def notify_value(self, characteristic: GattCharacteristic, data: bytes) -> None:
        callback = self.on_value_changed
        if callback is not None:
            callback(characteristic, data)
        self.signal_wait(WaitKind.NOTIFICATION)

    def wait_for(self, kind: WaitKind, timeout_s: float) -> WaitOutcome:
        """Block until signalled, cancelled, or ``timeout_s`` elapses."""
        slot = _WaitSlot(kind)
        with self._lock:
            self._wait = slot
        try:
            slot.event.wait(timeout_s)
        finally:
            with self._lock:
                self._wait = None
        return slot.outcome

    def signal_wait(self, kind: WaitKind) -> bool:
        return self._release(WaitOutcome.SIGNALLED, kind)

    def cancel_wait(self) -> bool:
        return self._release(WaitOutcome.CANCELLED, None)

    @property
    def is_waiting(self) -> bool:
        with self._lock:
            return self._wait is not None

    def _release(self, outcome: WaitOutcome, kind: WaitKind | None) -> bool:
        with self._lock:
            slot = self._wait
            if slot is None or slot.event.is_set():
                return False
            if kind is not None and slot.kind is not kind:
                return False
            slot.outcome = outcome
            slot.event.set()
        LOGGER.debug("Released %s wait: %s", slot.kind.value, outcome.value)
        return True
