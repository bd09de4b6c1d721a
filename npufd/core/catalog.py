"""Device catalog loading and product lookup."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from importlib import resources
from importlib.resources.abc import Traversable
from pathlib import Path
from typing import Any, Mapping

import yaml
from jsonschema import ValidationError, validators

from npufd.core.errors import CatalogLoadError, CatalogValidationError, UnknownDeviceError
from npufd.core.model import DeviceProduct

LOGGER = logging.getLogger(__name__)


class StringScalarLoader(yaml.SafeLoader):
    """YAML loader that keeps every plain scalar a string and rejects duplicate keys.

    Device ids such as ``1020`` would otherwise resolve to integers.
    """


StringScalarLoader.yaml_implicit_resolvers = {
    first_char: [
        (tag, regexp)
        for tag, regexp in mappings
        if tag
        not in {
            "tag:yaml.org,2002:bool",
            "tag:yaml.org,2002:int",
            "tag:yaml.org,2002:float",
        }
    ]
    for first_char, mappings in yaml.SafeLoader.yaml_implicit_resolvers.items()
}


def _construct_mapping(loader: StringScalarLoader, node: yaml.Node, deep: bool = False) -> dict[str, Any]:
    mapping: dict[str, Any] = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=deep)
        if key in mapping:
            raise CatalogValidationError(f"Duplicate key '{key}' in YAML document")
        mapping[key] = loader.construct_object(value_node, deep=deep)
    return mapping


StringScalarLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG,
    _construct_mapping,
)


@dataclass(frozen=True)
class DeviceCatalog:
    products: Mapping[str, str]
    warnings: tuple[str, ...] = field(default=())

    def product_from_device_id(self, device_id: str) -> DeviceProduct:
        code = self.products.get(device_id)
        if code is None:
            raise UnknownDeviceError(device_id)
        return DeviceProduct(code)


def _load_schema_validator() -> Any:
    schema_text = resources.files("npufd.schemas").joinpath("catalog.schema.json").read_text(
        encoding="utf-8"
    )
    schema = json.loads(schema_text)
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def _read_yaml(path: Path | Traversable) -> dict[str, Any]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise CatalogLoadError(f"Could not read catalog file {path}: {exc}") from exc

    try:
        loaded = yaml.load(content, Loader=StringScalarLoader)
    except yaml.YAMLError as exc:
        raise CatalogValidationError(f"Invalid YAML in {path}: {exc}") from exc

    if not isinstance(loaded, dict):
        raise CatalogValidationError(f"Catalog file {path} must contain a mapping at root")
    return loaded


def _read_products(path: Path | Traversable) -> dict[str, str]:
    doc = _read_yaml(path)
    validator = _load_schema_validator()
    try:
        validator.validate(doc)
    except ValidationError as exc:
        where = ".".join(str(p) for p in exc.path)
        where = f" ({where})" if where else ""
        raise CatalogValidationError(f"Schema validation failed for {path}{where}: {exc.message}") from exc
    return dict(doc["products"])


def load_catalog(extra_path: Path | None = None) -> DeviceCatalog:
    """Load the packaged device table, optionally overlaid with an operator file."""
    products = _read_products(resources.files("npufd.data").joinpath("devices.yaml"))
    warnings: list[str] = []

    if extra_path is not None:
        for device_id, code in _read_products(extra_path).items():
            if device_id in products and products[device_id] != code:
                warning = f"Device id '{device_id}' from {extra_path} overrides packaged product {products[device_id]}"
                LOGGER.warning(warning)
                warnings.append(warning)
            products[device_id] = code

    return DeviceCatalog(products=products, warnings=tuple(warnings))
