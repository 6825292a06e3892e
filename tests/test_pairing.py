from __future__ import annotations

import pytest

from conftest import FakeTransport
from gattconsole.core.context import SessionContext
from gattconsole.core.errors import StateError, TransportError
from gattconsole.core.model import (
    ConnectedDevice,
    PairingChallenge,
    PairingMode,
    PairingRequest,
    PairingStatus,
    UnpairingStatus,
)
from gattconsole.core.pairing import PairingState, PairingStateMachine, parse_pairing_request

DEVICE = ConnectedDevice(id="dev-1", name="Dev1", can_pair=True)


def _machine(transport: FakeTransport) -> tuple[PairingStateMachine, SessionContext, list[str]]:
    context = SessionContext()
    echoed: list[str] = []
    return PairingStateMachine(transport, context, echoed.append), context, echoed


@pytest.mark.parametrize(
    ("params", "expected"),
    [
        ("", PairingRequest()),
        ("ProvidePin 1234", PairingRequest(mode=PairingMode.PROVIDE_PIN, pin="1234")),
        ("mode=providepin 0000", PairingRequest(mode=PairingMode.PROVIDE_PIN, pin="0000")),
        ("pin", PairingRequest(mode=PairingMode.PROVIDE_PIN)),
        ("ConfirmOnly", PairingRequest(mode=PairingMode.CONFIRM_ONLY)),
        (
            "ProvidePasswordCredential alice s3cret",
            PairingRequest(
                mode=PairingMode.PROVIDE_PASSWORD_CREDENTIAL,
                username="alice",
                password="s3cret",
            ),
        ),
        ("ProvidePasswordCredential alice", PairingRequest()),
        ("Whatever", PairingRequest()),
    ],
)
def test_parse_pairing_request(params: str, expected: PairingRequest) -> None:
    assert parse_pairing_request(params) == expected


def test_successful_pairing_updates_cache(transport: FakeTransport) -> None:
    machine, context, _ = _machine(transport)
    status = machine.pair(DEVICE, PairingRequest())
    assert status is PairingStatus.PAIRED
    assert machine.state is PairingState.PAIRED
    assert context.is_paired(DEVICE) is True


def test_already_paired_skips_transport(transport: FakeTransport) -> None:
    machine, context, _ = _machine(transport)
    context.set_pairing_status(DEVICE.id, True)
    assert machine.pair(DEVICE, PairingRequest()) is PairingStatus.ALREADY_PAIRED
    assert transport.pair_requests == []


def test_failed_pairing_leaves_cache_untouched(transport: FakeTransport) -> None:
    machine, context, _ = _machine(transport)
    transport.pair_status = PairingStatus.AUTHENTICATION_FAILURE
    assert machine.pair(DEVICE, PairingRequest()) is PairingStatus.AUTHENTICATION_FAILURE
    assert machine.state is PairingState.FAILED
    assert context.is_paired(DEVICE) is False


def test_transport_error_marks_failure(transport: FakeTransport) -> None:
    machine, _, _ = _machine(transport)
    transport.errors[("pair", 0)] = TransportError("radio off")
    with pytest.raises(TransportError):
        machine.pair(DEVICE, PairingRequest())
    assert machine.state is PairingState.FAILED


def test_device_without_pairing_support_is_refused(transport: FakeTransport) -> None:
    machine, _, _ = _machine(transport)
    with pytest.raises(StateError):
        machine.pair(ConnectedDevice(id="x", name="X", can_pair=False), PairingRequest())


def test_challenges_are_answered_from_request(transport: FakeTransport) -> None:
    machine, _, echoed = _machine(transport)
    transport.challenges = [
        PairingChallenge(kind=PairingMode.PROVIDE_PIN),
        PairingChallenge(kind=PairingMode.DISPLAY_PIN, pin="123456"),
        PairingChallenge(kind=PairingMode.CONFIRM_PIN_MATCH, pin="654321"),
        PairingChallenge(kind=PairingMode.CONFIRM_ONLY),
    ]
    machine.pair(DEVICE, PairingRequest(mode=PairingMode.PROVIDE_PIN, pin="9999"))

    responses = transport.challenge_responses
    assert responses[0].pin == "9999"
    assert all(response.accept for response in responses)
    assert echoed == ["Device PIN: 123456", "Confirm PIN: 654321"]


def test_credential_challenge_uses_request_credentials(transport: FakeTransport) -> None:
    machine, _, _ = _machine(transport)
    transport.challenges = [PairingChallenge(kind=PairingMode.PROVIDE_PASSWORD_CREDENTIAL)]
    machine.pair(DEVICE, parse_pairing_request("ProvidePasswordCredential bob pw"))
    response = transport.challenge_responses[0]
    assert (response.username, response.password) == ("bob", "pw")


def test_unpair_requires_paired_device(transport: FakeTransport) -> None:
    machine, context, _ = _machine(transport)
    assert machine.unpair(DEVICE) is UnpairingStatus.ALREADY_UNPAIRED
    assert transport.calls == []

    context.set_pairing_status(DEVICE.id, True)
    assert machine.unpair(DEVICE) is UnpairingStatus.UNPAIRED
    assert context.is_paired(DEVICE) is False


def test_failed_unpair_keeps_cache(transport: FakeTransport) -> None:
    machine, context, _ = _machine(transport)
    context.set_pairing_status(DEVICE.id, True)
    transport.unpair_status = UnpairingStatus.FAILED
    assert machine.unpair(DEVICE) is UnpairingStatus.FAILED
    assert context.is_paired(DEVICE) is True
