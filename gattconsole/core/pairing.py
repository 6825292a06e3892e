"""Pairing negotiation and the session pairing cache."""

from __future__ import annotations

import logging
from collections.abc import Callable
from enum import Enum

from gattconsole.core.context import SessionContext
from gattconsole.core.errors import StateError, TransportError
from gattconsole.core.model import (
    ConnectedDevice,
    PairingChallenge,
    PairingMode,
    PairingRequest,
    PairingResponse,
    PairingStatus,
    UnpairingStatus,
)
from gattconsole.transports.base import BLETransport

LOGGER = logging.getLogger(__name__)

_MODE_NAMES = {mode.value.lower(): mode for mode in PairingMode}
_MODE_NAMES["pin"] = PairingMode.PROVIDE_PIN


class PairingState(str, Enum):
    UNPAIRED = "unpaired"
    PAIRING = "pairing"
    PAIRED = "paired"
    FAILED = "failed"


def parse_pairing_request(params: str) -> PairingRequest:
    """Parse ``[mode=]<Mode> [args]``; anything unrecognized means plain pairing."""
    parts = params.split()
    if not parts:
        return PairingRequest()
    token = parts[0]
    if token.lower().startswith("mode="):
        token = token[len("mode="):]
    mode = _MODE_NAMES.get(token.lower())
    if mode is None:
        LOGGER.debug("Unrecognized pairing mode %r, using plain pairing", token)
        return PairingRequest()
    if mode is PairingMode.PROVIDE_PIN:
        return PairingRequest(mode=mode, pin=parts[1] if len(parts) > 1 else None)
    if mode is PairingMode.PROVIDE_PASSWORD_CREDENTIAL:
        if len(parts) < 3:
            return PairingRequest()
        return PairingRequest(mode=mode, username=parts[1], password=parts[2])
    return PairingRequest(mode=mode)


class PairingStateMachine:
    """Drives one pairing or unpairing exchange at a time.

    Challenges are always accepted: this console never blocks on manual
    confirmation. Displayed PINs are echoed through ``echo``.
    """

    def __init__(
        self,
        transport: BLETransport,
        context: SessionContext,
        echo: Callable[[str], None],
    ) -> None:
        self._transport = transport
        self._context = context
        self._echo = echo
        self._request: PairingRequest | None = None
        self.state = PairingState.UNPAIRED

    def pair(self, device: ConnectedDevice, request: PairingRequest) -> PairingStatus:
        if not device.can_pair:
            raise StateError("Device does not support pairing.")
        if self._context.is_paired(device):
            self.state = PairingState.PAIRED
            return PairingStatus.ALREADY_PAIRED

        self.state = PairingState.PAIRING
        self._request = request
        try:
            status = self._transport.pair(device, request, self.handle_challenge)
        except TransportError:
            self.state = PairingState.FAILED
            raise
        finally:
            self._request = None

        if status in (PairingStatus.PAIRED, PairingStatus.ALREADY_PAIRED):
            self._context.set_pairing_status(device.id, True)
            self.state = PairingState.PAIRED
        else:
            self.state = PairingState.FAILED
        LOGGER.info("Pairing %s finished: %s", device.id, status.value)
        return status

    def handle_challenge(self, challenge: PairingChallenge) -> PairingResponse:
        request = self._request or PairingRequest()
        if challenge.kind is PairingMode.PROVIDE_PIN:
            return PairingResponse(pin=request.pin) if request.pin else PairingResponse()
        if challenge.kind is PairingMode.DISPLAY_PIN:
            self._echo(f"Device PIN: {challenge.pin}")
        elif challenge.kind is PairingMode.CONFIRM_PIN_MATCH:
            self._echo(f"Confirm PIN: {challenge.pin}")
        elif challenge.kind is PairingMode.PROVIDE_PASSWORD_CREDENTIAL:
            return PairingResponse(username=request.username, password=request.password)
        return PairingResponse()

    def unpair(self, device: ConnectedDevice) -> UnpairingStatus:
        if not self._context.is_paired(device):
            self.state = PairingState.UNPAIRED
            return UnpairingStatus.ALREADY_UNPAIRED
        status = self._transport.unpair(device)
        if status in (UnpairingStatus.UNPAIRED, UnpairingStatus.ALREADY_UNPAIRED):
            self._context.set_pairing_status(device.id, False)
            self.state = PairingState.UNPAIRED
        return status
