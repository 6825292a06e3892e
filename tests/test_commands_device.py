from __future__ import annotations

from datetime import datetime, timedelta, timezone

from conftest import DEV1, DEV2, FakeTransport, RecordingOutput
from gattconsole.api import Console
from gattconsole.commands.utility import expand_date_variables
from gattconsole.core.dispatcher import EXIT_FAILURE, EXIT_OK
from gattconsole.core.errors import DeviceUnreachableError, TransportError, TransportTimeoutError
from gattconsole.core.model import DiscoveredDevice, PairingMode, PairingStatus, UnpairingStatus


def test_list_devices(console: Console, out: RecordingOutput) -> None:
    assert console.registry.execute("ls", console.context) == EXIT_OK
    assert out.lines == [
        "#    Address            Name",
        "#00: C4:BE:84:71:A3:01  Dev1",
        "#01: C4:BE:84:71:A3:02  Dev2",
        "#02: D0:11:22:33:44:55  Thermometer",
    ]


def test_list_wide_and_unnamed_devices(out: RecordingOutput) -> None:
    transport = FakeTransport(devices=[DiscoveredDevice(id="anon-device", name="")])
    console = Console(transport, out=out)
    console.start()
    console.execute("list w")
    assert out.lines[1].startswith("#00: anon-device")
    assert out.lines[1].endswith(" no_advertising_name")


def test_list_without_devices(out: RecordingOutput) -> None:
    console = Console(FakeTransport(devices=[]), out=out)
    console.execute("list")
    assert out.lines == ["No BLE devices found."]


def test_open_by_index_auto_pairs_and_lists_services(
    console: Console, out: RecordingOutput, transport: FakeTransport
) -> None:
    console.execute("open #1")
    assert console.context.selected_device.id == DEV2.id
    assert out.lines == [
        "Connecting to Dev2. It is not paired.",
        "Attempting to pair...",
        "Pairing successful.",
        "Found 4 services:",
        "#00: GenericAccess",
        "#01: Battery",
        "#02: DeviceInformation",
        "#03: Custom Service: 6e400001-b5a3-f393-e0a9-e50e24dcca9e",
    ]
    assert transport.pair_requests[0].mode is PairingMode.CONFIRM_ONLY


def test_open_with_pin_continues_after_failed_pairing(
    console: Console, out: RecordingOutput, transport: FakeTransport
) -> None:
    transport.pair_status = PairingStatus.AUTHENTICATION_FAILURE
    console.execute("open Dev1 123456")
    assert "Attempting to pair with PIN..." in out.lines
    assert "Pairing failed: AuthenticationFailure. Continuing without pairing..." in out.lines
    assert transport.pair_requests[0].pin == "123456"
    assert console.context.selected_device is not None
    assert console.exit_code == EXIT_OK


def test_open_skips_pairing_when_unsupported(
    console: Console, out: RecordingOutput, transport: FakeTransport
) -> None:
    transport.can_pair = False
    console.execute("open Dev1")
    assert out.lines[0] == "Connecting to Dev1."
    assert transport.pair_requests == []


def test_open_ambiguous_name(console: Console, out: RecordingOutput, transport: FakeTransport) -> None:
    console.execute("open Dev")
    assert out.lines == [
        "Found multiple devices with names started from Dev. Please provide an exact name."
    ]
    assert transport.calls == []
    assert console.exit_code == EXIT_FAILURE


def test_open_timeout_and_unreachable(console: Console, out: RecordingOutput, transport: FakeTransport) -> None:
    transport.connect_error = TransportTimeoutError("slow")
    console.execute("open Thermo")
    transport.connect_error = DeviceUnreachableError("gone")
    console.execute("open Thermo")
    assert out.lines == ["Connection to device Thermo timed out.", "Device Thermo is unreachable."]
    assert console.context.selected_device is None


def test_reopen_tears_down_previous_device(connected: Console, transport: FakeTransport) -> None:
    connected.execute("set Battery")
    connected.execute("subs BatteryLevel")
    connected.context.set_pairing_status(DEV2.id, True)

    connected.execute("open Dev2")

    assert f"disconnect {DEV1.id}" in transport.calls
    assert len(connected.context.subscriptions) == 0
    assert transport.notifications == {}
    assert connected.context.selected_service is None
    assert connected.context.selected_device.id == DEV2.id


def test_close(connected: Console, out: RecordingOutput, transport: FakeTransport) -> None:
    connected.execute("close")
    assert transport.connected == set()
    assert connected.context.selected_device is None
    assert out.lines == []

    connected.execute("close")
    assert out.lines == ["No device is connected."]


def test_close_reports_device_when_not_redirected(connected: Console, out: RecordingOutput) -> None:
    out.is_redirected = False
    connected.execute("close")
    assert out.lines == ["Device Dev1 is disconnected."]


def test_stat(connected: Console, out: RecordingOutput) -> None:
    connected.execute("set Battery")
    out.reset()
    connected.execute("stat")
    assert out.lines == [
        "Device name: Dev1",
        f"Device ID: {DEV1.id}",
        "Connection status: Connected",
        "Paired: True",
        "Selected service: Battery",
        "Subscriptions: 0",
    ]


def test_stat_reads_liveness_from_transport(
    connected: Console, out: RecordingOutput, transport: FakeTransport
) -> None:
    transport.connected.discard(DEV1.id)
    connected.execute("stat")
    assert out.lines[2] == "Connection status: Disconnected"
    assert not hasattr(connected.context.selected_device, "connected")


def test_stat_without_device(console: Console, out: RecordingOutput) -> None:
    console.execute("st")
    assert out.lines == ["No device connected."]
    assert console.exit_code == EXIT_OK


def test_timeout(console: Console, out: RecordingOutput) -> None:
    console.execute("timeout 10")
    console.execute("timeout 60")
    assert out.lines == [
        "Device connection timeout (sec): 10",
        "Invalid timeout '60'. Use 1..59 seconds.",
        "Device connection timeout (sec): 10",
    ]
    assert console.context.timeout_s == 10.0
    assert console.exit_code == EXIT_FAILURE


def test_pair_and_unpair(console: Console, out: RecordingOutput, transport: FakeTransport) -> None:
    transport.pair_status = PairingStatus.FAILED
    console.execute("open Dev1")
    out.reset()

    transport.pair_status = PairingStatus.PAIRED
    console.execute("pair ProvidePin 4321")
    console.execute("pair")
    console.execute("unpair")
    console.execute("unpair")
    assert out.lines == [
        "Pairing successful.",
        "Device is already paired.",
        "Unpaired device",
        "Device is NOT paired",
    ]
    assert transport.pair_requests[-1].pin == "4321"


def test_pair_failure_sets_exit_code(console: Console, out: RecordingOutput, transport: FakeTransport) -> None:
    transport.pair_status = PairingStatus.FAILED
    console.execute("open Dev1")
    out.reset()
    transport.pair_status = PairingStatus.REJECTED_BY_HANDLER
    console.execute("pair")
    assert out.lines == ["Pairing failed: RejectedByHandler"]
    assert console.exit_code == EXIT_FAILURE


def test_unpair_failure(connected: Console, out: RecordingOutput, transport: FakeTransport) -> None:
    transport.unpair_status = UnpairingStatus.FAILED
    connected.execute("unpair")
    assert out.lines == ["Unable to unpair device: Failed"]


def test_commands_need_a_device(console: Console, out: RecordingOutput) -> None:
    console.execute("pair")
    console.execute("mtu")
    assert out.lines == ["No device connected. Use 'open' first."] * 2


def test_device_info(connected: Console, out: RecordingOutput, transport: FakeTransport) -> None:
    transport.errors[("read", 23)] = TransportError("nope")
    connected.execute("di")
    assert out.lines == [
        "Device Information:",
        "==================",
        "  Manufacturer        : Acme",
        "  System ID           : 01 02 03 04 05 06 07 08",
    ]


def test_print_device_variables(connected: Console, out: RecordingOutput) -> None:
    connected.execute("p %name at %mac (%stat)")
    connected.execute("print addr=%addr")
    assert out.lines == [
        "Dev1 at C4:BE:84:71:A3:01 (True)",
        f"addr={int('C4BE8471A301', 16)}",
    ]


def test_print_device_variables_without_device(console: Console, out: RecordingOutput) -> None:
    console.execute("p %name")
    assert out.lines == []
    assert console.exit_code == EXIT_FAILURE


def test_print_escapes(console: Console, out: RecordingOutput) -> None:
    console.execute(r"p a\tb")
    assert out.lines == ["a\tb"]


def test_expand_date_variables() -> None:
    now = datetime(2024, 3, 5, 14, 7, 9, tzinfo=timezone(timedelta(hours=2)))
    assert expand_date_variables("%d %t", now) == "2024-03-05 14:07"
    assert expand_date_variables("%HH:%mm:%ss %hh", now) == "14:07:09 02"
    assert expand_date_variables("%z", now) == "GMT +02:00"
    assert expand_date_variables("%now", now) == "2024-03-05 14:07"


def test_help_lists_commands(console: Console, out: RecordingOutput) -> None:
    console.execute("?")
    assert out.lines[0] == "Available commands:"
    assert any(line.strip().startswith("read, r") for line in out.lines)
    assert "Scripting:" in out.lines


def test_clear(console: Console, out: RecordingOutput) -> None:
    console.execute("cls")
    assert out.cleared == 1
