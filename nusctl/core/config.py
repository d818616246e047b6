"""Loading and validation of the optional YAML configuration file."""

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

from nusctl.core.errors import ConfigError
from nusctl.core.ids import COMMAND_CHAR_UUID, SERVICE_UUID, STATUS_CHAR_UUID, ProtocolIds, normalize_uuid
from nusctl.core.model import DEFAULT_STATUS_PLACEHOLDER, ConnectPolicy

LOGGER = logging.getLogger(__name__)


class UniqueKeyLoader(yaml.SafeLoader):
    """YAML loader that rejects duplicate mapping keys."""


def _construct_mapping(loader: UniqueKeyLoader, node: yaml.Node, deep: bool = False) -> dict[str, Any]:
    mapping: dict[str, Any] = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=deep)
        if key in mapping:
            raise ConfigError(f"Duplicate key '{key}' in YAML document")
        mapping[key] = loader.construct_object(value_node, deep=deep)
    return mapping


UniqueKeyLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG,
    _construct_mapping,
)


@dataclass(frozen=True)
class ControllerConfig:
    service_uuid: str = SERVICE_UUID
    command_char_uuid: str = COMMAND_CHAR_UUID
    status_char_uuid: str = STATUS_CHAR_UUID
    connect_policy: ConnectPolicy = ConnectPolicy.REJECT
    status_placeholder: str = DEFAULT_STATUS_PLACEHOLDER
    scan_seconds: float = 5.0
    timeout_s: float = 10.0

    @property
    def ids(self) -> ProtocolIds:
        return ProtocolIds(
            service=self.service_uuid,
            command=self.command_char_uuid,
            status=self.status_char_uuid,
        )


def default_config_path() -> Path:
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    return xdg_config / "nusctl/config.yaml"


def _load_schema_validator() -> Any:
    schema_text = resources.files("nusctl.schemas").joinpath("config.schema.json").read_text(
        encoding="utf-8"
    )
    schema = json.loads(schema_text)
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Could not read config file {path}: {exc}") from exc

    try:
        loaded = yaml.load(content, Loader=UniqueKeyLoader)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc

    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ConfigError(f"Config file {path} must contain a mapping at root")
    return loaded


def _normalize_uuid(value: str, *, context: str) -> str:
    try:
        return normalize_uuid(value)
    except ValueError as exc:
        raise ConfigError(f"{context}: {exc}") from exc


def _build_config(doc: dict[str, Any], source: Path) -> ControllerConfig:
    validator = _load_schema_validator()
    try:
        validator.validate(doc)
    except ValidationError as exc:
        path = ".".join(str(p) for p in exc.path)
        where = f" ({path})" if path else ""
        raise ConfigError(f"Schema validation failed for {source}{where}: {exc.message}") from exc

    defaults = ControllerConfig()
    return ControllerConfig(
        service_uuid=_normalize_uuid(doc.get("service_uuid", defaults.service_uuid), context="service_uuid"),
        command_char_uuid=_normalize_uuid(
            doc.get("command_char_uuid", defaults.command_char_uuid),
            context="command_char_uuid",
        ),
        status_char_uuid=_normalize_uuid(
            doc.get("status_char_uuid", defaults.status_char_uuid),
            context="status_char_uuid",
        ),
        connect_policy=ConnectPolicy(doc.get("connect_policy", defaults.connect_policy.value)),
        status_placeholder=doc.get("status_placeholder", defaults.status_placeholder),
        scan_seconds=float(doc.get("scan_seconds", defaults.scan_seconds)),
        timeout_s=float(doc.get("timeout_s", defaults.timeout_s)),
    )


def load_config(path: Path | None = None) -> ControllerConfig:
    """Load configuration from `path`, or from the XDG location when omitted.

    A missing default file yields the built-in defaults; a missing explicit
    path is an error.
    """
    explicit = path is not None
    source = path if path is not None else default_config_path()
    if not source.exists():
        if explicit:
            raise ConfigError(f"Config file {source} does not exist")
        LOGGER.debug("No config file at %s, using defaults", source)
        return ControllerConfig()

    config = _build_config(_read_yaml(source), source)
    LOGGER.debug("Loaded config from %s", source)
    return config
