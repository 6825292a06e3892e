from __future__ import annotations

import pytest

from gattconsole.api import Console
from gattconsole.core.errors import TransportError
from gattconsole.core.gatt_names import characteristic_name, descriptor_name, service_name
from gattconsole.core.model import (
    ConnectedDevice,
    DeviceEvent,
    DeviceEventKind,
    DiscoveredDevice,
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


def sig_uuid(short: int) -> str:
    return f"0000{short:04x}-0000-1000-8000-00805f9b34fb"


CUSTOM_SERVICE_UUID = "6e400001-b5a3-f393-e0a9-e50e24dcca9e"
CUSTOM_TX_UUID = "6e400002-b5a3-f393-e0a9-e50e24dcca9e"
CUSTOM_RX_UUID = "6e400003-b5a3-f393-e0a9-e50e24dcca9e"

DEV1 = DiscoveredDevice(id="BluetoothLE#BluetoothLE00:1a:7d:da:71:13-c4:be:84:71:a3:01", name="Dev1")
DEV2 = DiscoveredDevice(id="BluetoothLE#BluetoothLE00:1a:7d:da:71:13-c4:be:84:71:a3:02", name="Dev2")
THERMO = DiscoveredDevice(id="BluetoothLE#BluetoothLE00:1a:7d:da:71:13-d0:11:22:33:44:55", name="Thermometer")


def make_service(handle: int, uuid: str) -> GattService:
    return GattService(handle=handle, uuid=uuid, name=service_name(uuid))


def make_characteristic(
    handle: int,
    uuid: str,
    properties: tuple[str, ...],
    user_description: str = "",
) -> GattCharacteristic:
    return GattCharacteristic(
        handle=handle,
        uuid=uuid,
        name=characteristic_name(uuid, user_description),
        properties=frozenset(properties),
        user_description=user_description,
    )


def make_descriptor(handle: int, uuid: str) -> GattDescriptor:
    return GattDescriptor(handle=handle, uuid=uuid, name=descriptor_name(uuid))


class FakeTransport:
    """In-memory peripheral with four services.

    Handles: GenericAccess 1 (DeviceName 2, Appearance 4), Battery 10
    (BatteryLevel 11, CCCD 12), DeviceInformation 20 (21, 23, 25) and a
    custom UART-like service 30 (TX Data 31, RX Data 33).
    """

    def __init__(self, devices: list[DiscoveredDevice] | None = None) -> None:
        self.devices = list(devices) if devices is not None else [DEV1, DEV2, THERMO]
        self.services = [
            make_service(1, sig_uuid(0x1800)),
            make_service(10, sig_uuid(0x180F)),
            make_service(20, sig_uuid(0x180A)),
            make_service(30, CUSTOM_SERVICE_UUID),
        ]
        self.characteristics = {
            1: [
                make_characteristic(2, sig_uuid(0x2A00), ("read", "write")),
                make_characteristic(4, sig_uuid(0x2A01), ("read",)),
            ],
            10: [make_characteristic(11, sig_uuid(0x2A19), ("read", "notify"))],
            20: [
                make_characteristic(21, sig_uuid(0x2A29), ("read",)),
                make_characteristic(23, sig_uuid(0x2A24), ("read",)),
                make_characteristic(25, sig_uuid(0x2A23), ("read",)),
            ],
            30: [
                make_characteristic(31, CUSTOM_TX_UUID, ("write-without-response", "write"), "TX Data"),
                make_characteristic(33, CUSTOM_RX_UUID, ("notify", "indicate"), "RX Data"),
            ],
        }
        self.descriptors = {
            11: [make_descriptor(12, sig_uuid(0x2902))],
            33: [make_descriptor(34, sig_uuid(0x2901)), make_descriptor(35, sig_uuid(0x2902))],
        }
        self.values: dict[int, bytes] = {
            2: b"Dev1",
            4: b"\x00\x00",
            11: b"\x64",
            12: b"\x00\x00",
            21: b"Acme",
            23: b"M-1",
            25: bytes.fromhex("0102030405060708"),
            34: b"RX Data",
        }
        self.errors: dict[tuple[str, int], TransportError] = {}
        self.writes: list[tuple[int, bytes, bool]] = []
        self.notifications: dict[int, NotifyMode] = {}
        self.handlers: dict[int, list] = {}
        self.connected: set[str] = set()
        self.connect_error: TransportError | None = None
        self.can_pair = True
        self.reported_paired = False
        self.pair_status = PairingStatus.PAIRED
        self.unpair_status = UnpairingStatus.UNPAIRED
        self.challenges: list[PairingChallenge] = []
        self.challenge_responses: list[PairingResponse] = []
        self.pair_requests: list[PairingRequest] = []
        self.mtu_value = 247
        self.watching = False
        self.calls: list[str] = []

    def _fail(self, op: str, handle: int) -> None:
        error = self.errors.get((op, handle))
        if error is not None:
            raise error

    def _characteristic(self, handle: int) -> GattCharacteristic:
        for characteristics in self.characteristics.values():
            for characteristic in characteristics:
                if characteristic.handle == handle:
                    return characteristic
        raise KeyError(handle)

    def watch_devices(self, on_event) -> None:
        self.watching = True
        for device in self.devices:
            on_event(DeviceEvent(kind=DeviceEventKind.ADDED, device=device))
        on_event(DeviceEvent(kind=DeviceEventKind.ENUMERATION_COMPLETED))

    def stop_watching(self) -> None:
        self.watching = False

    def connect(self, device_id: str, timeout_s: float) -> ConnectedDevice:
        self.calls.append(f"connect {device_id}")
        if self.connect_error is not None:
            raise self.connect_error
        self.connected.add(device_id)
        name = next((d.name for d in self.devices if d.id == device_id), device_id)
        return ConnectedDevice(
            id=device_id,
            name=name,
            can_pair=self.can_pair,
            reported_paired=self.reported_paired,
        )

    def disconnect(self, device: ConnectedDevice) -> None:
        self.calls.append(f"disconnect {device.id}")
        self.connected.discard(device.id)

    def is_connected(self, device: ConnectedDevice) -> bool:
        return device.id in self.connected

    def enumerate_services(self, device: ConnectedDevice) -> list[GattService]:
        self._fail("services", 0)
        return list(self.services)

    def enumerate_characteristics(self, service: GattService) -> list[GattCharacteristic]:
        self._fail("characteristics", service.handle)
        return list(self.characteristics.get(service.handle, []))

    def enumerate_descriptors(self, characteristic: GattCharacteristic) -> list[GattDescriptor]:
        return list(self.descriptors.get(characteristic.handle, []))

    def read_value(self, characteristic: GattCharacteristic) -> bytes:
        self._fail("read", characteristic.handle)
        return self.values.get(characteristic.handle, b"")

    def write_value(self, characteristic: GattCharacteristic, data: bytes, *, with_response: bool = True) -> None:
        self._fail("write", characteristic.handle)
        self.writes.append((characteristic.handle, data, with_response))

    def read_descriptor(self, descriptor: GattDescriptor) -> bytes:
        self._fail("read", descriptor.handle)
        return self.values.get(descriptor.handle, b"")

    def write_descriptor(self, descriptor: GattDescriptor, data: bytes) -> None:
        self._fail("write", descriptor.handle)
        self.writes.append((descriptor.handle, data, True))

    def set_notification(self, characteristic: GattCharacteristic, mode: NotifyMode) -> None:
        self._fail("notify", characteristic.handle)
        if mode is NotifyMode.NONE:
            self.notifications.pop(characteristic.handle, None)
        else:
            self.notifications[characteristic.handle] = mode

    def attach_value_handler(self, characteristic: GattCharacteristic, handler) -> None:
        self.handlers.setdefault(characteristic.handle, []).append(handler)

    def detach_value_handler(self, characteristic: GattCharacteristic, handler) -> None:
        handlers = self.handlers.get(characteristic.handle, [])
        if handler in handlers:
            handlers.remove(handler)
        if not handlers:
            self.handlers.pop(characteristic.handle, None)

    def mtu(self, device: ConnectedDevice) -> int:
        self._fail("mtu", 0)
        return self.mtu_value

    def pair(self, device: ConnectedDevice, request: PairingRequest, challenge_handler) -> PairingStatus:
        self.pair_requests.append(request)
        self.challenge_responses = [challenge_handler(c) for c in self.challenges]
        self._fail("pair", 0)
        return self.pair_status

    def unpair(self, device: ConnectedDevice) -> UnpairingStatus:
        self.calls.append(f"unpair {device.id}")
        return self.unpair_status

    def push(self, handle: int, data: bytes) -> None:
        characteristic = self._characteristic(handle)
        for handler in list(self.handlers.get(handle, [])):
            handler(characteristic, data)


class RecordingOutput:
    def __init__(self, *, is_redirected: bool = True) -> None:
        self.is_redirected = is_redirected
        self.lines: list[str] = []
        self.written: list[str] = []
        self.errors: list[str] = []
        self.cleared = 0

    def line(self, text: str = "") -> None:
        self.lines.append(text)

    def write(self, text: str) -> None:
        self.written.append(text)

    def error(self, text: str) -> None:
        self.errors.append(text)

    def clear(self) -> None:
        self.cleared += 1

    @property
    def text(self) -> str:
        return "\n".join(self.lines)

    def reset(self) -> None:
        self.lines.clear()
        self.written.clear()
        self.errors.clear()


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def out() -> RecordingOutput:
    return RecordingOutput()


@pytest.fixture
def console(transport: FakeTransport, out: RecordingOutput) -> Console:
    session = Console(transport, out=out, sleep=lambda seconds: None)
    session.start()
    return session


@pytest.fixture
def connected(console: Console, out: RecordingOutput) -> Console:
    """Console connected to Dev1, already paired, with output cleared."""
    console.context.set_pairing_status(DEV1.id, True)
    console.execute("open Dev1")
    out.reset()
    return console
