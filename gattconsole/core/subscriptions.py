"""Notify/indicate subscription bookkeeping."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass

from gattconsole.core.errors import (
    AlreadySubscribedError,
    NotNotifiableError,
    NotSubscribedError,
    TransportError,
)
from gattconsole.core.model import GattCharacteristic, NotifyMode
from gattconsole.transports.base import BLETransport, ValueHandler

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class SubscriptionToken:
    """One live subscription and the exact handler instance attached for it."""

    handle: int
    characteristic: GattCharacteristic
    handler: ValueHandler
    mode: NotifyMode


class SubscriptionRegistry:
    """Thread-safe map of characteristic handle to its subscription token."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._tokens: dict[int, SubscriptionToken] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._tokens)

    def __contains__(self, handle: object) -> bool:
        with self._lock:
            return handle in self._tokens

    def get(self, handle: int) -> SubscriptionToken | None:
        with self._lock:
            return self._tokens.get(handle)

    def add(self, token: SubscriptionToken) -> None:
        with self._lock:
            if token.handle in self._tokens:
                raise AlreadySubscribedError(
                    f"Already subscribed to characteristic {token.characteristic.name}"
                )
            self._tokens[token.handle] = token

    def remove(self, handle: int) -> SubscriptionToken | None:
        with self._lock:
            return self._tokens.pop(handle, None)

    def tokens(self) -> list[SubscriptionToken]:
        with self._lock:
            return list(self._tokens.values())

    def clear(self) -> None:
        with self._lock:
            self._tokens.clear()


@dataclass(frozen=True)
class UnsubscribeReport:
    removed: int
    failures: tuple[tuple[GattCharacteristic, TransportError], ...]


class SubscriptionManager:
    """Subscribes and unsubscribes characteristics through the transport.

    Every value change is routed to ``on_value`` with the sending
    characteristic; payloads are not interpreted here.
    """

    def __init__(
        self,
        transport: BLETransport,
        registry: SubscriptionRegistry,
        on_value: Callable[[GattCharacteristic, bytes], None],
    ) -> None:
        self._transport = transport
        self._registry = registry
        self._on_value = on_value

    @property
    def registry(self) -> SubscriptionRegistry:
        return self._registry

    def is_subscribed(self, characteristic: GattCharacteristic) -> bool:
        return characteristic.handle in self._registry

    def subscribe(self, characteristic: GattCharacteristic) -> SubscriptionToken:
        if characteristic.handle in self._registry:
            raise AlreadySubscribedError(
                f"Already subscribed to characteristic {characteristic.name}"
            )
        if characteristic.can_notify:
            mode = NotifyMode.NOTIFY
        elif characteristic.can_indicate:
            mode = NotifyMode.INDICATE
        else:
            raise NotNotifiableError(
                f"Characteristic {characteristic.name} does not support notify or indicate"
            )

        self._transport.set_notification(characteristic, mode)

        def _handler(sender: GattCharacteristic, data: bytes) -> None:
            self._on_value(sender, data)

        token = SubscriptionToken(
            handle=characteristic.handle,
            characteristic=characteristic,
            handler=_handler,
            mode=mode,
        )
        self._transport.attach_value_handler(characteristic, _handler)
        self._registry.add(token)
        LOGGER.debug("Subscribed handle %d (%s)", characteristic.handle, mode.value)
        return token

    def unsubscribe(self, characteristic: GattCharacteristic) -> SubscriptionToken:
        token = self._registry.get(characteristic.handle)
        if token is None:
            raise NotSubscribedError(f"Not subscribed to characteristic '{characteristic.name}'.")
        self._teardown(token)
        self._registry.remove(token.handle)
        return token

    def unsubscribe_all(self) -> UnsubscribeReport:
        failures: list[tuple[GattCharacteristic, TransportError]] = []
        tokens = self._registry.tokens()
        try:
            for token in tokens:
                try:
                    self._teardown(token)
                except TransportError as exc:
                    LOGGER.warning(
                        "Could not unsubscribe from %s: %s", token.characteristic.name, exc
                    )
                    failures.append((token.characteristic, exc))
                    self._transport.detach_value_handler(token.characteristic, token.handler)
        finally:
            self._registry.clear()
        return UnsubscribeReport(removed=len(tokens), failures=tuple(failures))

    def _teardown(self, token: SubscriptionToken) -> None:
        self._transport.set_notification(token.characteristic, NotifyMode.NONE)
        self._transport.detach_value_handler(token.characteristic, token.handler)
