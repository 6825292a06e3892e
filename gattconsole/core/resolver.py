"""Token-to-entity resolution for devices and GATT attributes."""

from __future__ import annotations

import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

from gattconsole.core.errors import AmbiguousEntityError, EntityNotFoundError
from gattconsole.core.model import DiscoveredDevice, GattCharacteristic, GattDescriptor, GattService

T = TypeVar("T")

_HW_ADDRESS_RE = re.compile(r"^[0-9a-f]{2}(:[0-9a-f]{2}){5}$", re.IGNORECASE)


def is_hardware_address(token: str) -> bool:
    """Return True for a colon separated 6-octet address such as ``AA:BB:CC:DD:EE:FF``."""
    return len(token) == 17 and token.count(":") == 5 and bool(_HW_ADDRESS_RE.match(token))


class ResolutionStatus(str, Enum):
    FOUND = "found"
    NOT_FOUND = "not_found"
    AMBIGUOUS = "ambiguous"


@dataclass(frozen=True)
class Resolution(Generic[T]):
    status: ResolutionStatus
    item: T | None = None
    candidates: tuple[T, ...] = ()
    message: str = ""

    @property
    def found(self) -> bool:
        return self.status is ResolutionStatus.FOUND


class EntityResolver(Generic[T]):
    """Resolve ``#N``, hardware addresses, exact UUIDs, and name prefixes.

    One instance exists per entity kind. ``name_of`` extracts the display
    name used for prefix matching and ``ident_of`` the identifier returned
    by :meth:`resolve_id`. ``uuid_of`` enables exact UUID matching and
    ``address_of`` enables hardware address matching.
    """

    def __init__(
        self,
        kind: str,
        *,
        name_of: Callable[[T], str],
        ident_of: Callable[[T], str],
        uuid_of: Callable[[T], str] | None = None,
        address_of: Callable[[T], str] | None = None,
    ) -> None:
        self.kind = kind
        self._name_of = name_of
        self._ident_of = ident_of
        self._uuid_of = uuid_of
        self._address_of = address_of

    def lookup(self, items: Sequence[T], token: str) -> Resolution[T]:
        token = token.strip()
        if not token:
            return Resolution(ResolutionStatus.NOT_FOUND, message=f"Empty {self.kind} name.")

        if token.startswith("#"):
            return self._by_index(items, token[1:])

        if self._address_of is not None and is_hardware_address(token):
            needle = token.lower()
            matches = tuple(item for item in items if needle in self._address_of(item).lower())
            return self._pick(matches, token, by="address")

        if self._uuid_of is not None:
            needle = token.lower()
            exact = tuple(item for item in items if self._uuid_of(item).lower() == needle)
            if exact:
                return self._pick(exact, token, by="uuid")

        prefix = token.lower()
        matches = tuple(item for item in items if self._name_of(item).lower().startswith(prefix))
        return self._pick(matches, token, by="name")

    def resolve(self, items: Sequence[T], token: str) -> T:
        result = self.lookup(items, token)
        if result.status is ResolutionStatus.AMBIGUOUS:
            raise AmbiguousEntityError(
                result.message,
                candidates=tuple(self._name_of(item) for item in result.candidates),
            )
        if result.item is None:
            raise EntityNotFoundError(result.message)
        return result.item

    def resolve_id(self, items: Sequence[T], token: str) -> str:
        return self._ident_of(self.resolve(items, token))

    def _by_index(self, items: Sequence[T], digits: str) -> Resolution[T]:
        if not (digits.isascii() and digits.isdigit()):
            return Resolution(
                ResolutionStatus.NOT_FOUND,
                message=f"Invalid {self.kind} number {digits}",
            )
        index = int(digits)
        if index >= len(items):
            return Resolution(
                ResolutionStatus.NOT_FOUND,
                message=f"{self.kind.capitalize()} number {index:02d} is not in {self.kind} list range",
            )
        return Resolution(ResolutionStatus.FOUND, item=items[index], candidates=(items[index],))

    def _pick(self, matches: tuple[T, ...], token: str, *, by: str) -> Resolution[T]:
        if not matches:
            return Resolution(
                ResolutionStatus.NOT_FOUND,
                message=f"No {self.kind} found by {by} {token}.",
            )
        if len(matches) > 1:
            return Resolution(
                ResolutionStatus.AMBIGUOUS,
                candidates=matches,
                message=(
                    f"Found multiple {self.kind}s with {by}s started from {token}. "
                    "Please provide an exact name."
                ),
            )
        return Resolution(ResolutionStatus.FOUND, item=matches[0], candidates=matches)


DEVICE_RESOLVER: EntityResolver[DiscoveredDevice] = EntityResolver(
    "device",
    name_of=lambda device: device.name,
    ident_of=lambda device: device.id,
    address_of=lambda device: device.id,
)

SERVICE_RESOLVER: EntityResolver[GattService] = EntityResolver(
    "service",
    name_of=lambda service: service.name,
    ident_of=lambda service: service.uuid,
    uuid_of=lambda service: service.uuid,
)

CHARACTERISTIC_RESOLVER: EntityResolver[GattCharacteristic] = EntityResolver(
    "characteristic",
    name_of=lambda characteristic: characteristic.name,
    ident_of=lambda characteristic: characteristic.uuid,
    uuid_of=lambda characteristic: characteristic.uuid,
)

DESCRIPTOR_RESOLVER: EntityResolver[GattDescriptor] = EntityResolver(
    "descriptor",
    name_of=lambda descriptor: descriptor.name,
    ident_of=lambda descriptor: descriptor.uuid,
    uuid_of=lambda descriptor: descriptor.uuid,
)
