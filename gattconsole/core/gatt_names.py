"""Human-readable names for SIG-assigned GATT UUIDs and ATT protocol errors."""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache
from importlib import resources

import yaml

_BASE_UUID_RE = re.compile(
    r"^0000([0-9a-f]{4})-0000-1000-8000-00805f9b34fb$",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class NameTables:
    services: dict[int, str]
    characteristics: dict[int, str]
    descriptors: dict[int, str]
    protocol_errors: dict[int, str]


def _as_table(raw: dict[str, str] | None) -> dict[int, str]:
    return {int(str(key), 16): str(value) for key, value in (raw or {}).items()}


@lru_cache(maxsize=1)
def load_name_tables() -> NameTables:
    text = resources.files("gattconsole.data").joinpath("gatt_names.yaml").read_text(
        encoding="utf-8"
    )
    doc = yaml.safe_load(text) or {}
    return NameTables(
        services=_as_table(doc.get("services")),
        characteristics=_as_table(doc.get("characteristics")),
        descriptors=_as_table(doc.get("descriptors")),
        protocol_errors=_as_table(doc.get("protocol_errors")),
    )


def short_uuid(uuid: str) -> int | None:
    """16-bit assigned number of a SIG base UUID, or None for custom UUIDs."""
    match = _BASE_UUID_RE.match(uuid.strip())
    if match is None:
        return None
    return int(match.group(1), 16)


def is_sig_uuid(uuid: str) -> bool:
    return short_uuid(uuid) is not None


def service_name(uuid: str) -> str:
    short = short_uuid(uuid)
    if short is None:
        return f"Custom Service: {uuid}"
    return load_name_tables().services.get(short, f"0x{short:04X}")


def characteristic_name(uuid: str, user_description: str = "") -> str:
    short = short_uuid(uuid)
    if short is None:
        if user_description:
            return user_description
        return f"Custom Characteristic: {uuid}"
    return load_name_tables().characteristics.get(short, f"0x{short:04X}")


def descriptor_name(uuid: str) -> str:
    short = short_uuid(uuid)
    if short is None:
        return f"Custom Descriptor: {uuid}"
    return load_name_tables().descriptors.get(short, f"0x{short:04X}")


def describe_protocol_error(code: int | None) -> str:
    """Render an ATT error code as ``0x0E: Unlikely Error``."""
    if code is None:
        return "Unknown"
    name = load_name_tables().protocol_errors.get(code)
    if name is None:
        return f"0x{code:02X}: Unknown"
    return f"0x{code:02X}: {name.replace('_', ' ')}"
