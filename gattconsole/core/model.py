"""Core data models shared by the session engine, commands, and transports."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class DataFormat(str, Enum):
    ASCII = "ASCII"
    UTF8 = "UTF8"
    DEC = "Dec"
    HEX = "Hex"
    BIN = "Bin"


class ByteOrder(str, Enum):
    LITTLE = "little"
    BIG = "big"


class NotifyMode(str, Enum):
    NONE = "none"
    NOTIFY = "notify"
    INDICATE = "indicate"


class PairingMode(str, Enum):
    CONFIRM_ONLY = "ConfirmOnly"
    PROVIDE_PIN = "ProvidePin"
    DISPLAY_PIN = "DisplayPin"
    CONFIRM_PIN_MATCH = "ConfirmPinMatch"
    PROVIDE_PASSWORD_CREDENTIAL = "ProvidePasswordCredential"


class PairingStatus(str, Enum):
    PAIRED = "Paired"
    ALREADY_PAIRED = "AlreadyPaired"
    NOT_READY_TO_PAIR = "NotReadyToPair"
    CONNECTION_REJECTED = "ConnectionRejected"
    AUTHENTICATION_FAILURE = "AuthenticationFailure"
    REJECTED_BY_HANDLER = "RejectedByHandler"
    FAILED = "Failed"


class UnpairingStatus(str, Enum):
    UNPAIRED = "Unpaired"
    ALREADY_UNPAIRED = "AlreadyUnpaired"
    FAILED = "Failed"


class DeviceEventKind(str, Enum):
    ADDED = "added"
    UPDATED = "updated"
    ENUMERATION_COMPLETED = "enumeration_completed"
    STOPPED = "stopped"


@dataclass(frozen=True)
class DiscoveredDevice:
    id: str
    name: str
    is_connectable: bool = True

    @property
    def address(self) -> str:
        """Hardware address embedded in the transport id, colon separated when recognizable."""
        tail = self.id.split("-")[-1].replace(":", "")
        if len(tail) == 12:
            return ":".join(tail[i : i + 2] for i in range(0, 12, 2)).upper()
        return self.id


@dataclass(frozen=True)
class DeviceEvent:
    kind: DeviceEventKind
    device: DiscoveredDevice | None = None


@dataclass(frozen=True)
class ConnectedDevice:
    id: str
    name: str
    can_pair: bool = False
    reported_paired: bool = False
    native: Any = field(default=None, compare=False, repr=False)

    @property
    def address(self) -> str:
        return DiscoveredDevice(id=self.id, name=self.name).address


@dataclass(frozen=True)
class GattService:
    handle: int
    uuid: str
    name: str
    native: Any = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class GattCharacteristic:
    handle: int
    uuid: str
    name: str
    properties: frozenset[str] = frozenset()
    user_description: str = ""
    native: Any = field(default=None, compare=False, repr=False)

    @property
    def can_read(self) -> bool:
        return "read" in self.properties

    @property
    def can_write(self) -> bool:
        return bool(
            self.properties
            & {"write", "write-without-response", "reliable-write", "writable-auxiliaries"}
        )

    @property
    def can_notify(self) -> bool:
        return "notify" in self.properties

    @property
    def can_indicate(self) -> bool:
        return "indicate" in self.properties

    @property
    def flags(self) -> str:
        return (
            ("R" if self.can_read else " ")
            + ("W" if self.can_write else " ")
            + ("N" if self.can_notify else " ")
            + ("I" if self.can_indicate else " ")
        )


@dataclass(frozen=True)
class GattDescriptor:
    handle: int
    uuid: str
    name: str
    native: Any = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class PairingRequest:
    mode: PairingMode | None = None
    pin: str | None = None
    username: str | None = None
    password: str | None = None


@dataclass(frozen=True)
class PairingChallenge:
    """A platform pairing prompt delivered to the challenge handler."""

    kind: PairingMode
    pin: str | None = None


@dataclass(frozen=True)
class PairingResponse:
    accept: bool = True
    pin: str | None = None
    username: str | None = None
    password: str | None = None


@dataclass(frozen=True)
class SessionConfig:
    timeout_s: float = 3.0
    send_format: DataFormat = DataFormat.UTF8
    receive_formats: tuple[DataFormat, ...] = (DataFormat.UTF8, DataFormat.HEX)
    byte_order: ByteOrder = ByteOrder.LITTLE
    write_pause_s: float = 0.2
    startup: tuple[str, ...] = ()
