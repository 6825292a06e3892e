"""Configuration loading and validation for the YAML session config."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from importlib import resources
from pathlib import Path
from typing import Any

import yaml
from jsonschema import ValidationError, validators

from gattconsole.core.codec import parse_format
from gattconsole.core.errors import ConfigLoadError, ConfigValidationError
from gattconsole.core.model import ByteOrder, DataFormat, SessionConfig

LOGGER = logging.getLogger(__name__)

CONFIG_FILENAME = "config.yaml"


class UniqueKeyLoader(yaml.SafeLoader):
    """YAML loader that rejects duplicate mapping keys."""


UniqueKeyLoader.yaml_implicit_resolvers = {
    key: list(value) for key, value in yaml.SafeLoader.yaml_implicit_resolvers.items()
}

for first_char, mappings in list(UniqueKeyLoader.yaml_implicit_resolvers.items()):
    UniqueKeyLoader.yaml_implicit_resolvers[first_char] = [
        (tag, regexp)
        for tag, regexp in mappings
        if tag != "tag:yaml.org,2002:bool"
    ]


def _construct_mapping(loader: UniqueKeyLoader, node: yaml.Node, deep: bool = False) -> dict[str, Any]:
    mapping: dict[str, Any] = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=deep)
        if key in mapping:
            raise ConfigValidationError(f"Duplicate key '{key}' in YAML document")
        mapping[key] = loader.construct_object(value_node, deep=deep)
    return mapping


UniqueKeyLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG,
    _construct_mapping,
)


@dataclass(frozen=True)
class LoadedConfig:
    config: SessionConfig
    source: Path | None
    warnings: tuple[str, ...]


def _load_schema_validator() -> Any:
    schema_text = resources.files("gattconsole.schemas").joinpath("config.schema.json").read_text(
        encoding="utf-8"
    )
    schema = json.loads(schema_text)
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def default_config_path() -> Path:
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    return xdg_config / "gattconsole" / CONFIG_FILENAME


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigLoadError(f"Could not read config file {path}: {exc}") from exc

    try:
        loaded = yaml.load(content, Loader=UniqueKeyLoader)
    except yaml.YAMLError as exc:
        raise ConfigValidationError(f"Invalid YAML in {path}: {exc}") from exc

    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ConfigValidationError(f"Config file {path} must contain a mapping at root")
    return loaded


def _format(value: str, *, context: str) -> DataFormat:
    fmt = parse_format(value)
    if fmt is None:
        raise ConfigValidationError(
            f"{context}: unknown data format '{value}' (expected ASCII, UTF8, Dec, Hex or Bin)"
        )
    return fmt


def build_config(doc: dict[str, Any], source: Path | str = "<config>") -> SessionConfig:
    validator = _load_schema_validator()
    try:
        validator.validate(doc)
    except ValidationError as exc:
        path = ".".join(str(p) for p in exc.path)
        where = f" ({path})" if path else ""
        raise ConfigValidationError(f"Schema validation failed for {source}{where}: {exc.message}") from exc

    defaults = SessionConfig()
    receive = defaults.receive_formats
    if "receive_formats" in doc:
        receive = tuple(
            _format(item, context=f"receive_formats[{index}]")
            for index, item in enumerate(doc["receive_formats"])
        )
    return SessionConfig(
        timeout_s=float(doc.get("timeout_s", defaults.timeout_s)),
        send_format=_format(doc["send_format"], context="send_format")
        if "send_format" in doc
        else defaults.send_format,
        receive_formats=receive,
        byte_order=ByteOrder(doc.get("byte_order", defaults.byte_order.value)),
        write_pause_s=doc["write_pause_ms"] / 1000.0
        if "write_pause_ms" in doc
        else defaults.write_pause_s,
        startup=tuple(doc.get("startup", ())),
    )


def load_config(path: Path | None = None) -> LoadedConfig:
    """Load ``path``, or the XDG default when it exists; defaults otherwise.

    An explicitly given path must exist.
    """
    warnings: list[str] = []
    target = path if path is not None else default_config_path()
    if path is None and not target.exists():
        LOGGER.debug("No config file at %s, using defaults", target)
        return LoadedConfig(config=SessionConfig(), source=None, warnings=())

    doc = _read_yaml(target)
    config = build_config(doc, target)
    if len(set(config.receive_formats)) != len(config.receive_formats):
        message = f"{target}: receive_formats lists a format more than once"
        warnings.append(message)
        LOGGER.warning(message)
    return LoadedConfig(config=config, source=target, warnings=tuple(warnings))
